"""Garbage collection and inspection commands for the doccache CLI."""

from __future__ import annotations

import logging

from ..cache import DistributedCache
from ..errors import DocCacheError, PreconditionFailedError

logger = logging.getLogger(__name__)


async def run_gc(cache: DistributedCache) -> int:
    """Run one garbage collection pass over the configured collection."""
    print(f"🧹 Collecting expired entries in '{cache.collection}'...")

    try:
        before = await _count(cache)
        result = await cache.collect_garbage_async()
        after = await _count(cache)
    except PreconditionFailedError as e:
        print(f"⚠️  Collection stopped, an entry changed while it was being swept: {e}")
        print("   Remaining expired entries will be collected on the next run.")
        return 1
    except DocCacheError as e:
        print(f"❌ Garbage collection failed: {e}")
        return 1

    print(f"  Absolute expirations deleted: {result.absolute_deleted}")
    print(f"  Sliding expirations deleted: {result.sliding_deleted}")
    print(f"  Pages scanned: {result.pages}")
    print(f"  Entries: {before} -> {after}")
    print("✅ Garbage collection completed")
    return 0


async def run_inspect(cache: DistributedCache, key: str) -> int:
    """Show the stored state of a single cache entry."""
    try:
        snapshot = await cache.get_entry_async(key)
    except DocCacheError as e:
        print(f"❌ Inspect failed: {e}")
        return 1

    if snapshot is None:
        print(f"{key}: absent")
        return 0

    entry = snapshot.entry
    print(f"{key}: {entry.state(cache.now()).value}")
    print(f"  Size: {len(entry.value)} bytes")
    print(f"  Last refresh: {entry.last_refresh.isoformat()}")
    if entry.absolute_expiration is not None:
        print(f"  Absolute expiration: {entry.absolute_expiration.isoformat()}")
    if entry.sliding_expiration is not None:
        deadline = entry.sliding_deadline()
        print(f"  Sliding expiration: {entry.sliding_expiration} (until {deadline.isoformat()})")
    return 0


async def _count(cache: DistributedCache) -> int:
    await cache.initialize()
    return await cache.store.count(cache.collection)

"""Distributed cache over a document store with absolute and sliding expiration."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar

from .collector import DEFAULT_PAGE_SIZE, GarbageCollectionResult, GarbageCollector
from .entry import BytesLike, Clock, EntryOptions, build_entry, utcnow
from .errors import ConfigurationError, EntryNotFoundError
from .store.base import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COLLECTION = "Sessions"


def _run_sync(awaitable: Awaitable[T]) -> T:
    """Block the calling thread until a coroutine completes."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(awaitable)  # type: ignore[arg-type]

    if asyncio.iscoroutine(awaitable):
        awaitable.close()
    raise RuntimeError(
        "Blocking cache methods cannot run inside an event loop; use the *_async variants"
    )


class DistributedCache:
    """Key/value cache whose entries live in a document store collection.

    Reads filter expired entries lazily and never delete them; physical
    removal is left to ``remove`` and to ``collect_garbage``, which callers
    are expected to run periodically.

    Each operation has a blocking form (``get``) and a coroutine form
    (``get_async``) with identical semantics. Cancelling the task running a
    coroutine form aborts the in-flight store call.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = DEFAULT_COLLECTION,
        clock: Optional[Clock] = None,
        gc_page_size: int = DEFAULT_PAGE_SIZE,
        gc_max_sliding_pages: Optional[int] = None,
    ):
        if not isinstance(collection, str) or not collection.strip():
            raise ConfigurationError("Cache collection name must not be empty")

        self._store = store
        self._collection = collection
        self._clock = clock or utcnow
        self._collector = GarbageCollector(
            store,
            collection,
            clock=self._clock,
            page_size=gc_page_size,
            max_sliding_pages=gc_max_sliding_pages,
        )
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def store(self) -> DocumentStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    async def initialize(self) -> None:
        """Initialize the backing store."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return
            await self._store.initialize()
            self._initialized = True
            logger.info(
                f"Cache initialized: {self._store.backend_type} store, "
                f"collection '{self._collection}'"
            )

    async def close_async(self) -> None:
        """Close the backing store."""
        if self._initialized:
            await self._store.close()
            self._initialized = False

    async def __aenter__(self) -> "DistributedCache":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close_async()

    async def get_async(self, key: str) -> Optional[bytes]:
        """Return the cached bytes, or None if the key is missing or expired."""
        await self.initialize()
        snapshot = await self._store.get(self._collection, key)
        if snapshot is None:
            return None
        if not snapshot.entry.is_valid(self._clock()):
            logger.debug(f"Cache entry '{key}' is expired")
            return None
        return snapshot.entry.value

    async def get_entry_async(self, key: str) -> Optional[DocumentSnapshot]:
        """Return the stored document for a key, expired or not."""
        await self.initialize()
        return await self._store.get(self._collection, key)

    async def set_async(
        self, key: str, value: BytesLike, options: Optional[EntryOptions] = None
    ) -> None:
        """Store a value, replacing any previous entry and its expirations."""
        entry = build_entry(value, options, self._clock())
        await self.initialize()
        await self._store.put(self._collection, key, entry)

    async def refresh_async(self, key: str) -> None:
        """Restart the sliding expiration window of an entry.

        Raises:
            EntryNotFoundError: If the key does not exist
        """
        await self.initialize()
        try:
            await self._store.update(self._collection, key, {"last_refresh": self._clock()})
        except EntryNotFoundError:
            logger.debug(f"Refresh of missing cache entry '{key}'")
            raise

    async def remove_async(self, key: str) -> None:
        """Delete an entry; removing a missing key is a no-op."""
        await self.initialize()
        await self._store.delete(self._collection, key)

    async def collect_garbage_async(self) -> GarbageCollectionResult:
        """Delete expired entries from the collection. See ``GarbageCollector``."""
        await self.initialize()
        return await self._collector.collect()

    def get(self, key: str) -> Optional[bytes]:
        return _run_sync(self.get_async(key))

    def set(self, key: str, value: BytesLike, options: Optional[EntryOptions] = None) -> None:
        _run_sync(self.set_async(key, value, options))

    def refresh(self, key: str) -> None:
        _run_sync(self.refresh_async(key))

    def remove(self, key: str) -> None:
        _run_sync(self.remove_async(key))

    def collect_garbage(self) -> GarbageCollectionResult:
        return _run_sync(self.collect_garbage_async())

    def close(self) -> None:
        _run_sync(self.close_async())


def create_cache(settings: Any = None, clock: Optional[Clock] = None) -> DistributedCache:
    """Build a cache and its store from settings.

    Args:
        settings: Settings class or object; defaults to ``doccache.config.Settings``
        clock: Optional clock override
    """
    from .config.settings import Settings
    from .store.engine import create_store

    settings = settings or Settings
    store = create_store(settings.DOCCACHE_STORE_URL, settings.DOCCACHE_DB_POOL_MAX_SIZE)
    return DistributedCache(
        store,
        collection=settings.DOCCACHE_COLLECTION,
        clock=clock,
        gc_page_size=settings.DOCCACHE_GC_PAGE_SIZE,
        gc_max_sliding_pages=settings.DOCCACHE_GC_MAX_SLIDING_PAGES,
    )

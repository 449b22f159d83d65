import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from doccache.cache import DistributedCache, create_cache
from doccache.config.settings import Settings
from doccache.entry import MAX_EXPIRATION_WINDOW, EntryOptions
from doccache.errors import ConfigurationError, EntryNotFoundError, StoreUnavailableError
from doccache.store.memory import MemoryDocumentStore


class TestConstruction:
    """Cache construction and configuration."""

    @pytest.mark.parametrize("collection", ["", "   ", "\t\n"])
    def test_blank_collection_rejected(self, store, collection):
        with pytest.raises(ConfigurationError):
            DistributedCache(store, collection=collection)

    @pytest.mark.parametrize("collection", [123, None, b"Sessions"])
    def test_non_string_collection_rejected(self, store, collection):
        with pytest.raises(ConfigurationError):
            DistributedCache(store, collection=collection)

    def test_default_collection(self, store):
        assert DistributedCache(store).collection == "Sessions"

    def test_invalid_page_size_rejected(self, store):
        with pytest.raises(ConfigurationError):
            DistributedCache(store, gc_page_size=0)

    def test_create_cache_from_settings(self):
        class CustomSettings(Settings):
            DOCCACHE_STORE_URL = "memory://"
            DOCCACHE_COLLECTION = "Carts"
            DOCCACHE_GC_PAGE_SIZE = 7

        cache = create_cache(CustomSettings)
        assert cache.collection == "Carts"
        assert isinstance(cache.store, MemoryDocumentStore)


class TestAsyncOperations:
    """Coroutine forms of the cache operations."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, cache):
        # Entry does not exist before setting
        assert await cache.get_async("k") is None

        await cache.set_async(
            "k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=1200))
        )
        assert await cache.get_async("k") == b"value"

        await cache.remove_async("k")
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_absolute_expiration_in_past(self, cache, clock):
        await cache.set_async(
            "k", b"value", EntryOptions(absolute_expiration=clock.now - timedelta(seconds=1))
        )
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_negative_relative_expiration(self, cache):
        await cache.set_async(
            "k", b"value", EntryOptions(absolute_expiration_relative_to_now=timedelta(seconds=-1))
        )
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_absolute_relative_to_now_expires(self, cache, clock):
        await cache.set_async(
            "k", b"value", EntryOptions(absolute_expiration_relative_to_now=timedelta(seconds=3))
        )
        clock.advance(seconds=2)
        assert await cache.get_async("k") == b"value"
        clock.advance(seconds=1)
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_refresh_extends_sliding_window(self, cache, clock):
        await cache.set_async("k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=4)))
        clock.advance(seconds=3)
        await cache.refresh_async("k")
        clock.advance(seconds=3)
        assert await cache.get_async("k") == b"value"
        clock.advance(seconds=3)
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_longest_sliding_window(self, cache, clock):
        await cache.set_async(
            "k", b"value", EntryOptions(sliding_expiration=MAX_EXPIRATION_WINDOW)
        )
        clock.advance(days=365 * 500)
        assert await cache.get_async("k") == b"value"
        await cache.refresh_async("k")
        assert await cache.get_async("k") == b"value"

    @pytest.mark.asyncio
    async def test_unrepresentable_window_never_stored(self, cache, store):
        with pytest.raises(ValueError):
            await cache.set_async("k", b"value", EntryOptions(sliding_expiration=timedelta.max))
        assert await store.count("Sessions") == 0

    @pytest.mark.asyncio
    async def test_get_does_not_refresh(self, cache, clock):
        await cache.set_async("k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=4)))
        clock.advance(seconds=3)
        assert await cache.get_async("k") == b"value"
        clock.advance(seconds=1)
        assert await cache.get_async("k") is None

    @pytest.mark.asyncio
    async def test_expired_entry_stays_stored(self, cache, store, clock):
        await cache.set_async("k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=1)))
        clock.advance(seconds=5)
        assert await cache.get_async("k") is None
        assert await store.count("Sessions") == 1
        snapshot = await cache.get_entry_async("k")
        assert snapshot.entry.value == b"value"

    @pytest.mark.asyncio
    async def test_set_replaces_previous_expirations(self, cache, clock):
        await cache.set_async(
            "k",
            b"old",
            EntryOptions(
                absolute_expiration=clock.now + timedelta(seconds=5),
                sliding_expiration=timedelta(seconds=5),
            ),
        )
        await cache.set_async("k", b"new")
        clock.advance(days=30)
        assert await cache.get_async("k") == b"new"
        snapshot = await cache.get_entry_async("k")
        assert snapshot.entry.absolute_expiration is None
        assert snapshot.entry.sliding_expiration is None

    @pytest.mark.asyncio
    async def test_refresh_only_touches_last_refresh(self, cache, clock):
        deadline = clock.now + timedelta(hours=1)
        await cache.set_async(
            "k",
            b"value",
            EntryOptions(absolute_expiration=deadline, sliding_expiration=timedelta(minutes=5)),
        )
        clock.advance(minutes=2)
        await cache.refresh_async("k")

        entry = (await cache.get_entry_async("k")).entry
        assert entry.value == b"value"
        assert entry.absolute_expiration == deadline
        assert entry.sliding_expiration == timedelta(minutes=5)
        assert entry.last_refresh == clock.now

    @pytest.mark.asyncio
    async def test_refresh_missing_key_raises(self, cache):
        with pytest.raises(EntryNotFoundError) as exc_info:
            await cache.refresh_async("missing")
        assert exc_info.value.key == "missing"
        # Refresh never creates an entry
        assert await cache.get_entry_async("missing") is None

    @pytest.mark.asyncio
    async def test_remove_missing_key_is_noop(self, cache):
        await cache.remove_async("missing")
        assert await cache.get_async("missing") is None

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, store, clock):
        sessions = DistributedCache(store, collection="Sessions", clock=clock)
        carts = DistributedCache(store, collection="Carts", clock=clock)
        await sessions.set_async("k", b"session")
        await carts.set_async("k", b"cart")

        assert await sessions.get_async("k") == b"session"
        assert await carts.get_async("k") == b"cart"
        await carts.remove_async("k")
        assert await sessions.get_async("k") == b"session"

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, cache, store):
        store.get = AsyncMock(side_effect=StoreUnavailableError("connection refused"))
        with pytest.raises(StoreUnavailableError, match="connection refused"):
            await cache.get_async("k")

    @pytest.mark.asyncio
    async def test_cancellation_aborts_store_call(self, cache, store):
        started = asyncio.Event()

        async def slow_get(collection, key):
            started.set()
            await asyncio.sleep(60)

        store.get = slow_get
        task = asyncio.create_task(cache.get_async("k"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_store_initialized_once(self, clock):
        store = MemoryDocumentStore()
        store.initialize = AsyncMock()
        cache = DistributedCache(store, clock=clock)

        await asyncio.gather(cache.get_async("a"), cache.get_async("b"))
        assert store.initialize.await_count == 1

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_store(self, clock):
        store = MemoryDocumentStore()
        store.close = AsyncMock()
        async with DistributedCache(store, clock=clock) as cache:
            await cache.set_async("k", b"v")
        store.close.assert_awaited_once()


class TestSyncOperations:
    """Blocking forms of the cache operations."""

    def test_set_get_remove(self, cache):
        assert cache.get("k") is None
        cache.set("k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=1200)))
        assert cache.get("k") == b"value"
        cache.remove("k")
        assert cache.get("k") is None

    def test_refresh_extends_sliding_window(self, cache, clock):
        cache.set("k", b"value", EntryOptions(sliding_expiration=timedelta(seconds=4)))
        clock.advance(seconds=3)
        cache.refresh("k")
        clock.advance(seconds=3)
        assert cache.get("k") == b"value"
        clock.advance(seconds=3)
        assert cache.get("k") is None

    def test_refresh_missing_key_raises(self, cache):
        with pytest.raises(EntryNotFoundError):
            cache.refresh("missing")

    def test_collect_garbage(self, cache, clock):
        cache.set("old", b"1", EntryOptions(sliding_expiration=timedelta(seconds=1)))
        cache.set("new", b"2", EntryOptions(sliding_expiration=timedelta(hours=1)))
        clock.advance(seconds=2)

        result = cache.collect_garbage()
        assert result.sliding_deleted == 1
        assert cache.get("new") == b"2"
        cache.close()

    @pytest.mark.asyncio
    async def test_blocking_call_inside_event_loop_rejected(self, cache):
        with pytest.raises(RuntimeError, match="_async"):
            cache.get("k")

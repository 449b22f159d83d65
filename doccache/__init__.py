"""Distributed key/value cache with absolute and sliding expiration.

Entries live in a document store collection. Reads treat expired entries as
absent; ``collect_garbage`` physically removes them and must be driven by an
external scheduler.

Configure via environment variables (see ``doccache.config.Settings``):

    DOCCACHE_STORE_URL=sqlite:///.doccache/cache.db
    DOCCACHE_COLLECTION=Sessions
"""

from .cache import DistributedCache, create_cache
from .collector import GarbageCollectionResult, GarbageCollector
from .entry import (
    MAX_EXPIRATION_WINDOW,
    CacheEntry,
    EntryOptions,
    EntryState,
    build_entry,
    is_valid,
)
from .errors import (
    ConfigurationError,
    DocCacheError,
    EntryNotFoundError,
    PreconditionFailedError,
    StoreUnavailableError,
)
from .store import DocumentStore, MemoryDocumentStore, create_store

__version__ = "0.1.0"

__all__ = [
    "MAX_EXPIRATION_WINDOW",
    "CacheEntry",
    "ConfigurationError",
    "DistributedCache",
    "DocCacheError",
    "DocumentStore",
    "EntryNotFoundError",
    "EntryOptions",
    "EntryState",
    "GarbageCollectionResult",
    "GarbageCollector",
    "MemoryDocumentStore",
    "PreconditionFailedError",
    "StoreUnavailableError",
    "build_entry",
    "create_cache",
    "create_store",
    "is_valid",
]

"""Document store abstraction for the cache.

Configure via DOCCACHE_STORE_URL environment variable.

Examples:
    In-memory: memory://
    SQLite (default): sqlite:///.doccache/cache.db
"""

from .base import (
    DocumentSnapshot,
    DocumentStore,
    Precondition,
    StoreQuery,
    WriteBatch,
)
from .engine import create_store, parse_store_url
from .memory import MemoryDocumentStore

__all__ = [
    "DocumentSnapshot",
    "DocumentStore",
    "MemoryDocumentStore",
    "Precondition",
    "StoreQuery",
    "WriteBatch",
    "create_store",
    "parse_store_url",
]

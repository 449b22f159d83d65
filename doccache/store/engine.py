"""Document store factory driven by store URLs."""

from __future__ import annotations

import logging
import os
import re
from typing import Optional

from ..config.settings import _as_int
from ..errors import ConfigurationError
from .base import DocumentStore
from .memory import MemoryDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "sqlite:///.doccache/cache.db"


def parse_store_url(url: str) -> dict:
    """Parse a store URL into components.

    Supports:
        - memory://
        - sqlite:///path/to/cache.db
        - sqlite:///:memory:

    Args:
        url: Store URL string

    Returns:
        Dictionary with backend type and connection parameters
    """
    url = (url or "").strip()

    if url.startswith("memory:"):
        return {"backend": "memory"}

    if url.startswith("sqlite"):
        match = re.match(r"sqlite:///(.+)", url)
        if match:
            return {"backend": "sqlite", "path": match.group(1)}
        raise ConfigurationError(f"Invalid SQLite URL: {url}")

    raise ConfigurationError(
        f"Unsupported store URL: {url!r}. Supported: memory://, sqlite:///path"
    )


def create_store(url: Optional[str] = None, max_pool_size: Optional[int] = None) -> DocumentStore:
    """Create an uninitialized document store for a URL.

    Args:
        url: Store URL. If not provided, uses DOCCACHE_STORE_URL or the
             default SQLite file.
        max_pool_size: SQLite connection pool size (DOCCACHE_DB_POOL_MAX_SIZE)
    """
    url = url or os.getenv("DOCCACHE_STORE_URL") or DEFAULT_STORE_URL
    parsed = parse_store_url(url)

    if parsed["backend"] == "memory":
        store: DocumentStore = MemoryDocumentStore()
    else:
        # Import here so that memory-only users never load aiosqlite
        from .sqlite import SQLiteDocumentStore

        if max_pool_size is None:
            max_pool_size = _as_int(os.getenv("DOCCACHE_DB_POOL_MAX_SIZE"), 10)
        store = SQLiteDocumentStore(db_path=parsed["path"], max_pool_size=max_pool_size)

    logger.debug(f"Created {store.backend_type} document store for {url}")
    return store

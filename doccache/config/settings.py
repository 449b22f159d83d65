"""Cache settings resolved from the environment."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

from ..errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return default


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        logger.warning(f"Ignoring non-integer setting value: {value!r}")
        return None


class Settings:
    """Cache settings resolved from environment variables."""

    DOCCACHE_STORE_URL: str = "sqlite:///.doccache/cache.db"
    DOCCACHE_COLLECTION: str = "Sessions"
    DOCCACHE_GC_PAGE_SIZE: int = 40
    DOCCACHE_GC_MAX_SLIDING_PAGES: Optional[int] = None
    DOCCACHE_DB_POOL_MAX_SIZE: int = 10

    LOG_LEVEL: str = "WARNING"

    @classmethod
    def refresh_from_env(cls) -> None:
        """Re-read every setting from the environment."""
        cls.DOCCACHE_STORE_URL = _as_str(
            os.getenv("DOCCACHE_STORE_URL"), "sqlite:///.doccache/cache.db"
        )
        cls.DOCCACHE_COLLECTION = _as_str(os.getenv("DOCCACHE_COLLECTION"), "Sessions")
        cls.DOCCACHE_GC_PAGE_SIZE = _as_int(os.getenv("DOCCACHE_GC_PAGE_SIZE"), 40)
        cls.DOCCACHE_GC_MAX_SLIDING_PAGES = _as_optional_int(
            os.getenv("DOCCACHE_GC_MAX_SLIDING_PAGES")
        )
        cls.DOCCACHE_DB_POOL_MAX_SIZE = _as_int(os.getenv("DOCCACHE_DB_POOL_MAX_SIZE"), 10)
        cls.LOG_LEVEL = _as_str(os.getenv("LOG_LEVEL"), "WARNING")

    @classmethod
    def validate(cls) -> None:
        if not cls.DOCCACHE_COLLECTION.strip():
            raise ConfigurationError("DOCCACHE_COLLECTION must not be empty")
        if cls.DOCCACHE_GC_PAGE_SIZE < 1:
            raise ConfigurationError(
                f"DOCCACHE_GC_PAGE_SIZE must be at least 1, got {cls.DOCCACHE_GC_PAGE_SIZE}"
            )
        max_pages = cls.DOCCACHE_GC_MAX_SLIDING_PAGES
        if max_pages is not None and max_pages < 1:
            raise ConfigurationError(
                f"DOCCACHE_GC_MAX_SLIDING_PAGES must be at least 1, got {max_pages}"
            )
        if cls.DOCCACHE_DB_POOL_MAX_SIZE < 1:
            raise ConfigurationError(
                f"DOCCACHE_DB_POOL_MAX_SIZE must be at least 1, "
                f"got {cls.DOCCACHE_DB_POOL_MAX_SIZE}"
            )


Settings.refresh_from_env()


def setup_logging(level_override: Optional[str] = None) -> None:
    """Configure root logging using the environment or an override."""

    level_name = (level_override or Settings.LOG_LEVEL or "WARNING").upper()

    if level_name in {"NO", "NONE", "OFF"}:
        level = logging.CRITICAL + 10
    else:
        level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )

    logging.getLogger("doccache").setLevel(level)
    logging.getLogger("aiosqlite").setLevel(max(level, logging.INFO))

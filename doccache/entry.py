"""Cache entry model, expiration options and the validity rule."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Union

Clock = Callable[[], datetime]
BytesLike = Union[bytes, bytearray, memoryview]

# Longest sliding window or relative absolute expiration accepted by Set.
# Deadlines stay far inside the datetime range and int64 microseconds.
MAX_EXPIRATION_WINDOW = timedelta(days=365 * 1000)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EntryState(Enum):
    """Logical state of a stored entry at a given instant."""

    LIVE = "live"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CacheEntry:
    """The document stored for each cache key."""

    value: bytes
    last_refresh: datetime
    absolute_expiration: Optional[datetime] = None
    sliding_expiration: Optional[timedelta] = None

    def is_valid(self, now: datetime) -> bool:
        return is_valid(self, now)

    def state(self, now: datetime) -> EntryState:
        return EntryState.LIVE if is_valid(self, now) else EntryState.EXPIRED

    def sliding_deadline(self) -> Optional[datetime]:
        """Instant at which the sliding window runs out, if one is set."""
        if self.sliding_expiration is None:
            return None
        return self.last_refresh + self.sliding_expiration


# Field names usable in partial updates and ordered queries.
ENTRY_FIELDS = frozenset(f.name for f in fields(CacheEntry))


def is_valid(entry: CacheEntry, now: datetime) -> bool:
    """Return True if the entry may still be served at ``now``.

    Absolute and sliding expiration are checked independently; the sliding
    window is not capped by the absolute expiration.
    """
    if entry.absolute_expiration is not None and now >= entry.absolute_expiration:
        return False
    deadline = entry.sliding_deadline()
    if deadline is not None and now >= deadline:
        return False
    return True


@dataclass
class EntryOptions:
    """Expiration options supplied with a Set call.

    Attributes:
        sliding_expiration: Inactivity window, reset by every Refresh.
        absolute_expiration: Fixed instant after which the entry is invalid.
        absolute_expiration_relative_to_now: Offset from the time of the Set;
            overrides ``absolute_expiration`` when both are given.
    """

    sliding_expiration: Optional[timedelta] = None
    absolute_expiration: Optional[datetime] = None
    absolute_expiration_relative_to_now: Optional[timedelta] = None

    def __post_init__(self) -> None:
        sliding = self.sliding_expiration
        if sliding is not None and sliding <= timedelta(0):
            raise ValueError(f"sliding_expiration must be positive, got {sliding}")
        if sliding is not None and sliding > MAX_EXPIRATION_WINDOW:
            raise ValueError(
                f"sliding_expiration must not exceed {MAX_EXPIRATION_WINDOW}, "
                f"got {sliding}"
            )
        relative = self.absolute_expiration_relative_to_now
        if relative is not None and abs(relative) > MAX_EXPIRATION_WINDOW:
            raise ValueError(
                f"absolute_expiration_relative_to_now must be within "
                f"{MAX_EXPIRATION_WINDOW} of now, got {relative}"
            )

    def resolve_absolute_expiration(self, now: datetime) -> Optional[datetime]:
        resolved = None
        if self.absolute_expiration is not None:
            resolved = ensure_utc(self.absolute_expiration)
        if self.absolute_expiration_relative_to_now is not None:
            resolved = now + self.absolute_expiration_relative_to_now
        return resolved


def build_entry(value: BytesLike, options: Optional[EntryOptions], now: datetime) -> CacheEntry:
    """Build a brand-new entry for a Set call made at ``now``."""
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"Cache values must be bytes, got {type(value).__name__}")

    options = options or EntryOptions()
    return CacheEntry(
        value=bytes(value),
        last_refresh=now,
        absolute_expiration=options.resolve_absolute_expiration(now),
        sliding_expiration=options.sliding_expiration,
    )

"""Base document store abstractions for multi-backend support."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..entry import ENTRY_FIELDS, CacheEntry

logger = logging.getLogger(__name__)

# Exclusive query cursor: (order_by field value, document key)
Cursor = Tuple[Any, str]


def new_update_token() -> str:
    """Generate a fresh last-modification marker for a write."""
    return uuid.uuid4().hex


def check_field(name: str) -> str:
    """Validate a field name used in an update or a query."""
    if name not in ENTRY_FIELDS:
        raise ValueError(f"Unknown entry field: {name!r}")
    return name


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store."""

    key: str
    entry: CacheEntry
    update_token: str


@dataclass(frozen=True)
class Precondition:
    """Guard for a delete: the document must still carry this update token."""

    update_token: str

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Precondition":
        return cls(update_token=snapshot.update_token)


@dataclass(frozen=True)
class StoreQuery:
    """Ordered range query over one entry field.

    Documents whose ``order_by`` field is unset are never returned. Ties are
    broken by key in the same direction as the field.

    Attributes:
        order_by: Entry field to order on
        descending: Order direction
        start_at: Inclusive field-value cursor
        start_after: Exclusive (value, key) cursor, for resuming a scan
        limit: Maximum number of documents returned
    """

    order_by: str
    limit: int
    descending: bool = False
    start_at: Any = None
    start_after: Optional[Cursor] = None

    def __post_init__(self) -> None:
        check_field(self.order_by)
        if self.limit < 1:
            raise ValueError(f"Query limit must be positive, got {self.limit}")

    def admits(self, value: Any, key: str) -> bool:
        """Return True if a document with this field value passes the cursors."""
        if value is None:
            return False
        if self.start_at is not None:
            if self.descending and value > self.start_at:
                return False
            if not self.descending and value < self.start_at:
                return False
        if self.start_after is not None:
            position = (value, key)
            if self.descending and position >= self.start_after:
                return False
            if not self.descending and position <= self.start_after:
                return False
        return True


@dataclass(frozen=True)
class BatchDelete:
    collection: str
    key: str
    precondition: Optional[Precondition] = None


@dataclass
class WriteBatch:
    """Deletes that are committed together, all or none."""

    deletes: List[BatchDelete] = field(default_factory=list)

    def delete(
        self, collection: str, key: str, precondition: Optional[Precondition] = None
    ) -> "WriteBatch":
        self.deletes.append(BatchDelete(collection, key, precondition))
        return self

    def __len__(self) -> int:
        return len(self.deletes)


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    backend_type: str = "abstract"

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (open connections, create schema)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release all resources held by the store."""
        ...

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[DocumentSnapshot]:
        """Read a single document.

        Returns:
            The document snapshot, or None if the key does not exist
        """
        ...

    @abstractmethod
    async def put(self, collection: str, key: str, entry: CacheEntry) -> None:
        """Write a document, replacing any existing one entirely."""
        ...

    @abstractmethod
    async def update(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        """Update some fields of an existing document.

        Raises:
            EntryNotFoundError: If the document does not exist
        """
        ...

    @abstractmethod
    async def delete(
        self, collection: str, key: str, precondition: Optional[Precondition] = None
    ) -> None:
        """Delete a document.

        Without a precondition a missing document is not an error.

        Raises:
            PreconditionFailedError: If the precondition does not hold
        """
        ...

    @abstractmethod
    async def query(self, collection: str, query: StoreQuery) -> List[DocumentSnapshot]:
        """Run an ordered range query."""
        ...

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """Apply every delete in the batch atomically.

        Raises:
            PreconditionFailedError: If any guarded delete does not hold;
                nothing in the batch is applied
        """
        ...

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Number of documents stored in a collection, expired or not."""
        ...

    def batch(self) -> WriteBatch:
        """Start an empty write batch."""
        return WriteBatch()


def validate_update(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Check partial-update field names against the entry fields."""
    if not fields:
        raise ValueError("Partial update needs at least one field")
    return {check_field(name): value for name, value in fields.items()}

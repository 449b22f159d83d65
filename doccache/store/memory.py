"""In-memory document store for development and testing."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..entry import CacheEntry
from ..errors import EntryNotFoundError, PreconditionFailedError
from .base import (
    DocumentSnapshot,
    DocumentStore,
    Precondition,
    StoreQuery,
    WriteBatch,
    new_update_token,
    validate_update,
)

logger = logging.getLogger(__name__)

# (entry, update token)
_Document = Tuple[CacheEntry, str]


class MemoryDocumentStore(DocumentStore):
    """Process-local document store.

    Every operation, including a whole batch commit, runs under one lock so it
    is atomic with respect to the other operations. Suitable for tests and
    single-process deployments only; nothing is shared between processes.
    """

    backend_type = "memory"

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, _Document]] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info("Initializing in-memory document store")

    async def close(self) -> None:
        self._collections.clear()
        logger.info("In-memory document store closed")

    def _documents(self, collection: str) -> Dict[str, _Document]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, key: str) -> Optional[DocumentSnapshot]:
        async with self._lock:
            document = self._documents(collection).get(key)
            if document is None:
                return None
            entry, token = document
            return DocumentSnapshot(key=key, entry=entry, update_token=token)

    async def put(self, collection: str, key: str, entry: CacheEntry) -> None:
        async with self._lock:
            self._documents(collection)[key] = (entry, new_update_token())

    async def update(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        changes = validate_update(fields)
        async with self._lock:
            documents = self._documents(collection)
            if key not in documents:
                raise EntryNotFoundError(collection, key)
            entry, _ = documents[key]
            documents[key] = (dataclasses.replace(entry, **changes), new_update_token())

    def _check_precondition(
        self, collection: str, key: str, precondition: Optional[Precondition]
    ) -> None:
        if precondition is None:
            return
        document = self._documents(collection).get(key)
        actual = document[1] if document else None
        if actual != precondition.update_token:
            raise PreconditionFailedError(collection, key, precondition.update_token, actual)

    async def delete(
        self, collection: str, key: str, precondition: Optional[Precondition] = None
    ) -> None:
        async with self._lock:
            self._check_precondition(collection, key, precondition)
            self._documents(collection).pop(key, None)

    async def query(self, collection: str, query: StoreQuery) -> List[DocumentSnapshot]:
        async with self._lock:
            matches = []
            for key, (entry, token) in self._documents(collection).items():
                value = getattr(entry, query.order_by)
                if query.admits(value, key):
                    matches.append((value, key, entry, token))

        matches.sort(key=lambda m: (m[0], m[1]), reverse=query.descending)
        return [
            DocumentSnapshot(key=key, entry=entry, update_token=token)
            for _, key, entry, token in matches[: query.limit]
        ]

    async def commit(self, batch: WriteBatch) -> None:
        async with self._lock:
            # Check everything first so a failure leaves the store untouched
            for op in batch.deletes:
                self._check_precondition(op.collection, op.key, op.precondition)
            for op in batch.deletes:
                self._documents(op.collection).pop(op.key, None)

    async def count(self, collection: str) -> int:
        async with self._lock:
            return len(self._documents(collection))

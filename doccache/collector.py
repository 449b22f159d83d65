"""Garbage collection of expired cache entries.

A collection pass has two phases that share one ``now`` taken when the pass
starts:

1. Absolute sweep: entries whose ``absolute_expiration`` is already due are
   found with a store-side range query and deleted page by page.
2. Sliding sweep: a sliding deadline is the sum ``last_refresh +
   sliding_expiration``, which cannot be range-filtered, so entries are
   scanned oldest-refreshed first and checked client-side.

Every delete is guarded by the update token seen when the page was read. If
any entry in a page changed since (a concurrent Refresh or Set), the whole
page's batch is rejected by the store and ``PreconditionFailedError``
propagates; earlier pages stay committed and the survivors are picked up by
the next pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .entry import Clock, is_valid, utcnow
from .errors import ConfigurationError, PreconditionFailedError
from .store.base import DocumentSnapshot, DocumentStore, Precondition, StoreQuery

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 40


@dataclass
class GarbageCollectionResult:
    """Counts for one collection pass."""

    started_at: datetime
    absolute_deleted: int = 0
    sliding_deleted: int = 0
    pages: int = 0

    @property
    def deleted(self) -> int:
        return self.absolute_deleted + self.sliding_deleted


class GarbageCollector:
    """Caller-triggered sweeper for one collection. Never schedules itself."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        clock: Optional[Clock] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_sliding_pages: Optional[int] = None,
    ):
        if page_size < 1:
            raise ConfigurationError(f"page_size must be at least 1, got {page_size}")
        if max_sliding_pages is not None and max_sliding_pages < 1:
            raise ConfigurationError(
                f"max_sliding_pages must be at least 1, got {max_sliding_pages}"
            )

        self.store = store
        self.collection = collection
        self.clock = clock or utcnow
        self.page_size = page_size
        self.max_sliding_pages = max_sliding_pages

    async def collect(self) -> GarbageCollectionResult:
        """Run both sweep phases once.

        Raises:
            PreconditionFailedError: A page's batch was rejected because an
                entry was modified after it was read
        """
        result = GarbageCollectionResult(started_at=self.clock())
        try:
            await self._sweep_absolute(result)
            await self._sweep_sliding(result)
        except PreconditionFailedError as e:
            logger.warning(
                f"Garbage collection of '{self.collection}' stopped after "
                f"{result.deleted} deletions: {e}"
            )
            raise

        logger.info(
            f"Garbage collection of '{self.collection}' deleted {result.deleted} entries "
            f"({result.absolute_deleted} absolute, {result.sliding_deleted} sliding) "
            f"in {result.pages} pages"
        )
        return result

    async def _delete_page(self, snapshots: List[DocumentSnapshot]) -> None:
        batch = self.store.batch()
        for snapshot in snapshots:
            batch.delete(self.collection, snapshot.key, Precondition.from_snapshot(snapshot))
        await self.store.commit(batch)

    async def _sweep_absolute(self, result: GarbageCollectionResult) -> None:
        now = result.started_at
        query = StoreQuery(
            order_by="absolute_expiration",
            descending=True,
            start_at=now,
            limit=self.page_size,
        )
        while True:
            page = await self.store.query(self.collection, query)
            result.pages += 1
            await self._delete_page(page)
            result.absolute_deleted += len(page)
            logger.debug(f"Absolute sweep page: {len(page)} expired entries deleted")

            if len(page) < self.page_size:
                break

    async def _sweep_sliding(self, result: GarbageCollectionResult) -> None:
        now = result.started_at
        cursor = None
        pages = 0
        while True:
            query = StoreQuery(order_by="last_refresh", start_after=cursor, limit=self.page_size)
            page = await self.store.query(self.collection, query)
            result.pages += 1
            pages += 1

            expired = [snapshot for snapshot in page if not is_valid(snapshot.entry, now)]
            await self._delete_page(expired)
            result.sliding_deleted += len(expired)
            logger.debug(
                f"Sliding sweep page: {len(expired)} of {len(page)} scanned entries deleted"
            )

            if len(page) < self.page_size:
                break
            if self.max_sliding_pages is not None and pages >= self.max_sliding_pages:
                logger.info(
                    f"Sliding sweep of '{self.collection}' stopped at the "
                    f"{self.max_sliding_pages} page limit"
                )
                break

            last = page[-1]
            cursor = (last.entry.last_refresh, last.key)

"""SQLite document store for single-host deployments and integration tests."""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, List, Mapping, Optional, Tuple

import aiosqlite

from ..entry import CacheEntry
from ..errors import EntryNotFoundError, PreconditionFailedError, StoreUnavailableError
from .base import (
    DocumentSnapshot,
    DocumentStore,
    Precondition,
    StoreQuery,
    WriteBatch,
    check_field,
    new_update_token,
    validate_update,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS cache_entries (
        collection TEXT NOT NULL,
        key TEXT NOT NULL,
        value BLOB NOT NULL,
        last_refresh INTEGER NOT NULL,
        absolute_expiration INTEGER,
        sliding_expiration INTEGER,
        update_token TEXT NOT NULL,
        PRIMARY KEY (collection, key)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_cache_absolute "
    "ON cache_entries(collection, absolute_expiration, key)",
    "CREATE INDEX IF NOT EXISTS idx_cache_refresh "
    "ON cache_entries(collection, last_refresh, key)",
)

_COLUMNS = (
    "key, value, last_refresh, absolute_expiration, sliding_expiration, update_token"
)


# Datetimes and timedeltas are stored as integer microseconds so that column
# ordering matches chronological ordering.


def _datetime_to_column(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return (value - _EPOCH) // timedelta(microseconds=1)


def _column_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return _EPOCH + timedelta(microseconds=value)


def _timedelta_to_column(value: Optional[timedelta]) -> Optional[int]:
    if value is None:
        return None
    return value // timedelta(microseconds=1)


def _column_to_timedelta(value: Optional[int]) -> Optional[timedelta]:
    if value is None:
        return None
    return timedelta(microseconds=value)


def _encode_field(name: str, value: Any) -> Any:
    if name in ("last_refresh", "absolute_expiration"):
        return _datetime_to_column(value)
    if name == "sliding_expiration":
        return _timedelta_to_column(value)
    return value


def _row_to_snapshot(row: Tuple[Any, ...]) -> DocumentSnapshot:
    key, value, last_refresh, absolute, sliding, token = row
    entry = CacheEntry(
        value=bytes(value),
        last_refresh=_column_to_datetime(last_refresh),
        absolute_expiration=_column_to_datetime(absolute),
        sliding_expiration=_column_to_timedelta(sliding),
    )
    return DocumentSnapshot(key=key, entry=entry, update_token=token)


class SQLiteDocumentStore(DocumentStore):
    """Document store on a SQLite database, accessed through aiosqlite.

    Several processes may share one database file. Batch commits run in a
    single transaction.
    """

    backend_type = "sqlite"

    def __init__(self, db_path: str, max_pool_size: int = 10):
        self._db_path = db_path
        # Every connection to :memory: opens a separate database
        self._max_pool_size = 1 if db_path == ":memory:" else max_pool_size
        self._pool: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(
            maxsize=self._max_pool_size
        )
        self._lock = asyncio.Lock()
        self._closed = False
        self._total_connections = 0

        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """Open the first connection and create the schema."""
        logger.info(
            f"Initializing SQLite document store: {self._db_path} (max: {self._max_pool_size})"
        )
        self._closed = False
        async with self.transaction() as conn:
            for statement in _SCHEMA:
                await conn.execute(statement)
        logger.info("SQLite document store initialized")

    async def _create_connection(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self._db_path, timeout=30.0)
        if self._db_path != ":memory:":
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        await conn.commit()
        self._total_connections += 1
        return conn

    async def close(self) -> None:
        """Close all pooled connections."""
        self._closed = True

        while not self._pool.empty():
            try:
                conn = self._pool.get_nowait()
                await conn.close()
            except asyncio.QueueEmpty:
                break
            except Exception as e:
                logger.error(f"Error closing connection: {e}")

        self._total_connections = 0
        logger.info("SQLite document store closed")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a connection from the pool, translating driver errors."""
        if self._closed:
            raise StoreUnavailableError("SQLite document store is closed")

        conn = None
        try:
            try:
                conn = self._pool.get_nowait()
            except asyncio.QueueEmpty:
                async with self._lock:
                    if self._total_connections < self._max_pool_size:
                        conn = await self._create_connection()
                if conn is None:
                    conn = await self._pool.get()

            yield conn

        except sqlite3.Error as e:
            logger.error(f"SQLite store error on {self._db_path}: {e}")
            raise StoreUnavailableError(f"SQLite store error: {e}") from e
        finally:
            if conn is not None:
                if self._closed:
                    await conn.close()
                else:
                    self._pool.put_nowait(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a connection with automatic commit or rollback."""
        async with self.connection() as conn:
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    async def get(self, collection: str, key: str) -> Optional[DocumentSnapshot]:
        async with self.connection() as conn:
            async with conn.execute(
                f"SELECT {_COLUMNS} FROM cache_entries WHERE collection = ? AND key = ?",
                (collection, key),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_snapshot(row) if row else None

    async def put(self, collection: str, key: str, entry: CacheEntry) -> None:
        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries
                    (collection, key, value, last_refresh, absolute_expiration,
                     sliding_expiration, update_token)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    collection,
                    key,
                    entry.value,
                    _datetime_to_column(entry.last_refresh),
                    _datetime_to_column(entry.absolute_expiration),
                    _timedelta_to_column(entry.sliding_expiration),
                    new_update_token(),
                ),
            )

    async def update(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        changes = validate_update(fields)
        assignments = ", ".join(f"{name} = ?" for name in changes)
        params = [_encode_field(name, value) for name, value in changes.items()]
        async with self.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE cache_entries SET {assignments}, update_token = ? "
                "WHERE collection = ? AND key = ?",
                (*params, new_update_token(), collection, key),
            )
            if cursor.rowcount == 0:
                raise EntryNotFoundError(collection, key)

    async def _current_token(
        self, conn: aiosqlite.Connection, collection: str, key: str
    ) -> Optional[str]:
        async with conn.execute(
            "SELECT update_token FROM cache_entries WHERE collection = ? AND key = ?",
            (collection, key),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def _delete(
        self,
        conn: aiosqlite.Connection,
        collection: str,
        key: str,
        precondition: Optional[Precondition],
    ) -> None:
        if precondition is None:
            await conn.execute(
                "DELETE FROM cache_entries WHERE collection = ? AND key = ?",
                (collection, key),
            )
            return

        cursor = await conn.execute(
            "DELETE FROM cache_entries WHERE collection = ? AND key = ? AND update_token = ?",
            (collection, key, precondition.update_token),
        )
        if cursor.rowcount == 0:
            actual = await self._current_token(conn, collection, key)
            raise PreconditionFailedError(collection, key, precondition.update_token, actual)

    async def delete(
        self, collection: str, key: str, precondition: Optional[Precondition] = None
    ) -> None:
        async with self.transaction() as conn:
            await self._delete(conn, collection, key, precondition)

    async def query(self, collection: str, query: StoreQuery) -> List[DocumentSnapshot]:
        column = check_field(query.order_by)
        direction = "DESC" if query.descending else "ASC"
        before = "<" if query.descending else ">"

        clauses = ["collection = ?", f"{column} IS NOT NULL"]
        params: List[Any] = [collection]
        if query.start_at is not None:
            clauses.append(f"{column} {before}= ?")
            params.append(_encode_field(column, query.start_at))
        if query.start_after is not None:
            value, key = query.start_after
            encoded = _encode_field(column, value)
            clauses.append(f"({column} {before} ? OR ({column} = ? AND key {before} ?))")
            params.extend([encoded, encoded, key])

        sql = (
            f"SELECT {_COLUMNS} FROM cache_entries WHERE {' AND '.join(clauses)} "
            f"ORDER BY {column} {direction}, key {direction} LIMIT ?"
        )
        params.append(query.limit)

        async with self.connection() as conn:
            async with conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_snapshot(row) for row in rows]

    async def commit(self, batch: WriteBatch) -> None:
        if not batch.deletes:
            return
        async with self.transaction() as conn:
            for op in batch.deletes:
                await self._delete(conn, op.collection, op.key, op.precondition)

    async def count(self, collection: str) -> int:
        async with self.connection() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM cache_entries WHERE collection = ?", (collection,)
            ) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0

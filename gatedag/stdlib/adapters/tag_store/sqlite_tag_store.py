"""SQLite tag store implementation with async support."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal

import aiosqlite

from gatedag.kernel.domain.artifact import TagRecord
from gatedag.kernel.exceptions import DuplicateTagError, NotFoundError, TagStoreError
from gatedag.kernel.logging import get_logger
from gatedag.kernel.ports.tag_store import TagStore

logger = get_logger(__name__)

SQLiteJournalMode = Literal["WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF"]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tags (
    run_id     TEXT PRIMARY KEY,
    tag        TEXT NOT NULL UNIQUE,
    created_at REAL NOT NULL
)
"""


class SQLiteTagStore(TagStore):
    """Append-only tag ledger in a SQLite file.

    One row per run id. The table's ``PRIMARY KEY(run_id)`` and
    ``UNIQUE(tag)`` constraints enforce the ledger's integrity in the
    database itself, and every write is committed before ``aput`` returns.

    Examples
    --------
    Example usage::

        store = SQLiteTagStore(".gatedag/tags.db")
        await store.aput("9f2c1a", "push.7-9f2c1a")
        record = await store.aget("9f2c1a")
        await store.close()
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        timeout: float = 5.0,
        journal_mode: SQLiteJournalMode = "WAL",
        **kwargs: Any,
    ) -> None:
        """Initialize the tag store.

        Args
        ----
            db_path: Path to SQLite database file, or ":memory:" for an in-memory ledger.
            timeout: Connection timeout in seconds. Default: 5.0.
            journal_mode: SQLite journal mode (WAL, DELETE, etc). Default: "WAL".
            **kwargs: Additional options for forward compatibility.
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else ":memory:"
        self.timeout = timeout
        self.journal_mode = journal_mode
        self.connection: aiosqlite.Connection | None = None
        # Writes share one connection and transaction; serialize them
        self._write_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()

    async def _ensure_database(self) -> None:
        """Open the connection and create the table on first use."""
        if self.connection is not None:
            return

        async with self._init_lock:
            if self.connection is not None:
                return

            if isinstance(self.db_path, Path):
                try:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise TagStoreError(f"Cannot create directory for {self.db_path}: {e}") from e
                db_path = str(self.db_path)
            else:
                db_path = self.db_path

            connection: aiosqlite.Connection | None = None
            try:
                connection = await aiosqlite.connect(db_path, timeout=self.timeout)
                connection.row_factory = aiosqlite.Row
                async with connection.cursor() as cursor:
                    if self.journal_mode and db_path != ":memory:":
                        await cursor.execute(f"PRAGMA journal_mode = {self.journal_mode}")
                    await cursor.execute(_SCHEMA)
                await connection.commit()
            except aiosqlite.Error as e:
                if connection is not None:
                    await connection.close()
                logger.error(f"Cannot open tag store {db_path}: {e}")
                raise TagStoreError(f"Cannot open tag store {db_path}: {e}") from e
            # Published only once the schema exists
            self.connection = connection

    @asynccontextmanager
    async def _get_cursor(self) -> AsyncIterator[aiosqlite.Cursor]:
        """Context manager for a database cursor.

        Yields
        ------
        aiosqlite.Cursor
            Async SQLite database cursor

        Raises
        ------
        TagStoreError
            If a database error occurs during the operation
        """
        await self._ensure_database()
        if self.connection is None:
            raise TagStoreError("Database connection not established")

        async with self.connection.cursor() as cursor:
            try:
                yield cursor
            except aiosqlite.IntegrityError:
                await self.connection.rollback()
                raise
            except aiosqlite.Error as e:
                logger.error(f"Database error: {e}")
                await self.connection.rollback()
                raise TagStoreError(f"Tag store error: {e}") from e

    async def aput(self, run_id: str, tag: str) -> TagRecord:
        created_at = time.time()
        try:
            async with self._write_lock, self._get_cursor() as cursor:
                await cursor.execute(
                    "INSERT INTO tags (run_id, tag, created_at) VALUES (?, ?, ?)",
                    (run_id, tag, created_at),
                )
                await self.connection.commit()  # type: ignore[union-attr]
        except aiosqlite.IntegrityError as e:
            existing = await self._find_by_run_id(run_id)
            if existing is None:
                # The tag itself is already held by another run
                holder = await self.afind_by_tag(tag)
                logger.error(
                    "Tag {tag} already recorded for run {holder}",
                    tag=tag,
                    holder=holder.run_id if holder else "?",
                )
                raise DuplicateTagError(run_id, tag) from e
            logger.error(
                "Run {run_id} already has tag {existing}", run_id=run_id, existing=existing.tag
            )
            raise DuplicateTagError(run_id, existing.tag) from e

        logger.debug("Recorded tag {tag} for run {run_id}", tag=tag, run_id=run_id)
        return TagRecord(run_id=run_id, tag=tag, created_at=created_at)

    async def aget(self, run_id: str) -> TagRecord:
        record = await self._find_by_run_id(run_id)
        if record is None:
            raise NotFoundError(run_id)
        return record

    async def afind_by_tag(self, tag: str) -> TagRecord | None:
        async with self._get_cursor() as cursor:
            await cursor.execute("SELECT run_id, tag, created_at FROM tags WHERE tag = ?", (tag,))
            row = await cursor.fetchone()
        return self._to_record(row) if row else None

    async def alist(self, limit: int = 50) -> list[TagRecord]:
        async with self._get_cursor() as cursor:
            await cursor.execute(
                "SELECT run_id, tag, created_at FROM tags"
                " ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    async def _find_by_run_id(self, run_id: str) -> TagRecord | None:
        async with self._get_cursor() as cursor:
            await cursor.execute(
                "SELECT run_id, tag, created_at FROM tags WHERE run_id = ?", (run_id,)
            )
            row = await cursor.fetchone()
        return self._to_record(row) if row else None

    @staticmethod
    def _to_record(row: aiosqlite.Row) -> TagRecord:
        return TagRecord(run_id=row["run_id"], tag=row["tag"], created_at=row["created_at"])

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> SQLiteTagStore:
        await self._ensure_database()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

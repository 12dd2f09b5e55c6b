"""TagStore port: durable, append-only ledger of run id -> artifact tag.

There is deliberately no update or delete. A run publishes its tag at most
once; every later write for the same run is an integrity violation.

Adapters
--------
- ``SQLiteTagStore``: file-backed store on aiosqlite.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from gatedag.kernel.domain.artifact import TagRecord


@runtime_checkable
class TagStore(Protocol):
    """Append-only tag ledger."""

    @abstractmethod
    async def aput(self, run_id: str, tag: str) -> TagRecord:
        """Record *tag* for *run_id*.

        Once this returns, the record must survive a process restart.

        Raises
        ------
        DuplicateTagError
            If *run_id* already has a tag (or *tag* is already recorded).
        TagStoreError
            If the backing storage fails.
        """
        ...

    @abstractmethod
    async def aget(self, run_id: str) -> TagRecord:
        """Return the record for *run_id*.

        Raises
        ------
        NotFoundError
            If no tag was recorded for *run_id*.
        """
        ...

    @abstractmethod
    async def afind_by_tag(self, tag: str) -> TagRecord | None:
        """Return the record holding *tag*, or None."""
        ...

    @abstractmethod
    async def alist(self, limit: int = 50) -> list[TagRecord]:
        """List records, newest first."""
        ...

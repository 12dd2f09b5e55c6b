"""In-memory tag store for tests."""

from __future__ import annotations

import time
from typing import Any

from gatedag.kernel.domain.artifact import TagRecord
from gatedag.kernel.exceptions import DuplicateTagError, NotFoundError, TagStoreError
from gatedag.kernel.ports.tag_store import TagStore


class MockTagStore(TagStore):
    """Dictionary-backed ledger with the same integrity rules as the SQLite store.

    Set ``should_raise`` to simulate a storage outage on ``aput``.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.records: dict[str, TagRecord] = {}
        self.put_calls: list[tuple[str, str]] = []
        self.should_raise = False

    async def aput(self, run_id: str, tag: str) -> TagRecord:
        self.put_calls.append((run_id, tag))
        if self.should_raise:
            raise TagStoreError("Mock tag store error for testing")
        if run_id in self.records:
            raise DuplicateTagError(run_id, self.records[run_id].tag)
        if any(record.tag == tag for record in self.records.values()):
            raise DuplicateTagError(run_id, tag)
        record = TagRecord(run_id=run_id, tag=tag, created_at=time.time())
        self.records[run_id] = record
        return record

    async def aget(self, run_id: str) -> TagRecord:
        try:
            return self.records[run_id]
        except KeyError:
            raise NotFoundError(run_id) from None

    async def afind_by_tag(self, tag: str) -> TagRecord | None:
        return next((r for r in self.records.values() if r.tag == tag), None)

    async def alist(self, limit: int = 50) -> list[TagRecord]:
        ordered = sorted(self.records.values(), key=lambda r: r.created_at, reverse=True)
        return ordered[:limit]

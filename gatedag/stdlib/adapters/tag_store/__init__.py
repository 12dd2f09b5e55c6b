"""Tag store adapters."""

from gatedag.stdlib.adapters.tag_store.sqlite_tag_store import SQLiteTagStore

__all__ = ["SQLiteTagStore"]

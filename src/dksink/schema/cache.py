"""Process-wide cache of destination table metadata."""

import threading
from typing import Optional, Union

from dksink.schema.models import TableDescriptor
from dksink.types import TableName

__all__ = ["NOT_LOADED", "TableMetadataCache"]


class _NotLoaded:
    """Sentinel: the table is known to exist but its columns were not fetched."""

    def __repr__(self) -> str:
        return "NOT_LOADED"


NOT_LOADED = _NotLoaded()

CacheEntry = Union[TableDescriptor, _NotLoaded]


class TableMetadataCache:
    """Table name -> TableDescriptor, or NOT_LOADED for tables known to exist.

    A table has an entry only once it has been confirmed to exist. Entries are
    written after an existence check, after a fetch, and after a completed
    alteration; nothing else invalidates them.

    Each table gets its own lock so callers can serialize alteration of one
    table without blocking the others.
    """

    def __init__(self) -> None:
        self._entries: dict[TableName, CacheEntry] = {}
        self._locks: dict[TableName, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def __contains__(self, table_name: TableName) -> bool:
        return table_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def mark_exists(self, table_name: TableName) -> None:
        """Record that a table exists without loading its columns."""
        self._entries.setdefault(table_name, NOT_LOADED)

    def get(self, table_name: TableName) -> Optional[TableDescriptor]:
        """Return the loaded descriptor, or None if absent or not loaded."""
        entry = self._entries.get(table_name)
        if isinstance(entry, TableDescriptor):
            return entry
        return None

    def is_loaded(self, table_name: TableName) -> bool:
        return self.get(table_name) is not None

    def put(self, descriptor: TableDescriptor) -> None:
        """Replace the entry for the descriptor's table."""
        self._entries[descriptor.table_name] = descriptor

    def lock(self, table_name: TableName) -> threading.Lock:
        """Lock serializing schema changes for one table."""
        with self._locks_guard:
            lock = self._locks.get(table_name)
            if lock is None:
                lock = self._locks[table_name] = threading.Lock()
            return lock

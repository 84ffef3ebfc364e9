"""
Per-table writer locks.

Every read-modify-write on a table runs while holding that table's lock,
so concurrent creates cannot allocate the same id and concurrent
withdrawals cannot both spend the same units.

Invariants:
    - One asyncio.Lock per physical table name
    - Lock order is subject table first, then the ledger table
    - The ledger lock is never held while waiting on another lock

How to change safely:
    - These locks serialise writers inside one process only; running
      several processes against one store reintroduces last-write-wins
"""

from __future__ import annotations

import asyncio
from typing import Dict


class TableLocks:
    """Registry of one writer lock per table.

    Example:
        >>> locks = TableLocks()
        >>> async with locks.for_table("Articles"):
        ...     ...
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def for_table(self, table: str) -> asyncio.Lock:
        """Get (or create) the lock of a table."""
        lock = self._locks.get(table)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[table] = lock
        return lock

    def locked(self, table: str) -> bool:
        lock = self._locks.get(table)
        return lock is not None and lock.locked()

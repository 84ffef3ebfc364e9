"""
In-memory table backend for testing.

This module provides a simple in-memory grid for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Provides the same row numbering and search semantics as SQLite
    - Safe for concurrent access from multiple coroutines

How to change safely:
    - Keep behaviour identical to SqliteTableBackend; tests rely on it
    - Add testing helpers rather than special cases in the engine
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..errors import ConfigurationError, StorageUnavailableError
from .base import Cell, Row, cell_text

logger = logging.getLogger(__name__)


@dataclass
class InMemoryTable:
    """In-memory grid storage."""
    rows: List[Row] = field(default_factory=list)
    frozen_rows: int = 1


class InMemoryTableBackend:
    """In-memory implementation of TableBackend.

    Thread safety:
        Uses an asyncio lock around every call. Safe to use from
        multiple coroutines.

    Example:
        >>> backend = InMemoryTableBackend()
        >>> await backend.create_table("Articles", ["Id", "Product"])
        >>> await backend.append_row("Articles", [1, "Widget"])
        1
    """

    def __init__(self) -> None:
        self._tables: Dict[str, InMemoryTable] = {}
        self._lock = asyncio.Lock()
        self._outages = 0

    def _table(self, name: str) -> InMemoryTable:
        table = self._tables.get(name)
        if table is None:
            raise ConfigurationError(f"Table not found: {name}", table=name)
        return table

    def _check_available(self, operation: str) -> None:
        if self._outages > 0:
            self._outages -= 1
            raise StorageUnavailableError(
                f"Simulated storage outage during {operation}", operation=operation
            )

    async def create_table(self, name: str, header: Sequence[str]) -> None:
        async with self._lock:
            self._check_available("create_table")
            if name in self._tables:
                return
            rows = [list(header)] if header else []
            self._tables[name] = InMemoryTable(rows=rows)
            logger.debug("Created in-memory table", extra={"table": name})

    async def table_exists(self, name: str) -> bool:
        return name in self._tables

    async def list_tables(self) -> List[str]:
        return list(self._tables)

    async def get_header(self, name: str) -> Row:
        async with self._lock:
            self._check_available("get_header")
            table = self._table(name)
            return list(table.rows[0]) if table.rows else []

    async def get_rows(self, name: str) -> List[Row]:
        async with self._lock:
            self._check_available("get_rows")
            return copy.deepcopy(self._table(name).rows)

    async def get_row(self, name: str, row_number: int) -> Row:
        async with self._lock:
            self._check_available("get_row")
            rows = self._table(name).rows
            if row_number < 0 or row_number >= len(rows):
                raise IndexError(f"Row {row_number} out of range for table {name}")
            return list(rows[row_number])

    async def get_column(self, name: str, column_index: int) -> List[Cell]:
        async with self._lock:
            self._check_available("get_column")
            rows = self._table(name).rows
            return [
                row[column_index] if column_index < len(row) else ""
                for row in rows[1:]
            ]

    async def row_count(self, name: str) -> int:
        async with self._lock:
            self._check_available("row_count")
            return len(self._table(name).rows)

    async def append_row(self, name: str, values: Sequence[Cell]) -> int:
        async with self._lock:
            self._check_available("append_row")
            rows = self._table(name).rows
            rows.append(list(values))
            return len(rows) - 1

    async def update_row(self, name: str, row_number: int, values: Sequence[Cell]) -> None:
        async with self._lock:
            self._check_available("update_row")
            rows = self._table(name).rows
            if row_number < 1 or row_number >= len(rows):
                raise IndexError(f"Row {row_number} out of range for table {name}")
            rows[row_number] = list(values)

    async def update_cells(
        self, name: str, row_number: int, cells: Mapping[int, Cell]
    ) -> None:
        async with self._lock:
            self._check_available("update_cells")
            rows = self._table(name).rows
            if row_number < 1 or row_number >= len(rows):
                raise IndexError(f"Row {row_number} out of range for table {name}")
            row = rows[row_number]
            for column_index, value in cells.items():
                if column_index >= len(row):
                    row.extend([""] * (column_index + 1 - len(row)))
                row[column_index] = value

    async def delete_rows(self, name: str, row_numbers: Sequence[int]) -> int:
        async with self._lock:
            self._check_available("delete_rows")
            rows = self._table(name).rows
            removed = 0
            # Highest first so earlier row numbers stay valid
            for row_number in sorted(set(row_numbers), reverse=True):
                if 1 <= row_number < len(rows):
                    del rows[row_number]
                    removed += 1
            return removed

    async def find_row(self, name: str, column_index: int, text: str) -> Optional[int]:
        async with self._lock:
            self._check_available("find_row")
            table = self._table(name)
            rows = table.rows
            for row_number in range(max(table.frozen_rows, 1), len(rows)):
                row = rows[row_number]
                if column_index < len(row) and cell_text(row[column_index]) == text:
                    return row_number
            return None

    async def frozen_rows(self, name: str) -> int:
        return self._table(name).frozen_rows

    async def close(self) -> None:
        self._tables.clear()
        logger.debug("InMemoryTableBackend closed")

    # Testing helpers

    def simulate_outage(self, times: int = 1) -> None:
        """Make the next `times` calls raise StorageUnavailableError."""
        self._outages = times

    def set_frozen_rows(self, name: str, count: int) -> None:
        """Freeze the top `count` rows of a table (header included)."""
        self._table(name).frozen_rows = count

    def raw_rows(self, name: str) -> List[Row]:
        """Direct access to the stored rows, header included."""
        return self._table(name).rows

"""
Base protocol and helpers for table storage backends.

A backend is the physical grid behind every collection: a named table of
rows, row 0 being the header. Backends know nothing about schemas, ids or
stock; they store scalar cells and find rows by exact cell text.

Invariants:
    - Row numbers are 0-based and row 0 is the header
    - Deleting rows shifts the following rows up
    - find_row compares normalised cell text (see cell_text)
    - Transient failures surface as StorageUnavailableError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep cell_text stable: it defines what "the same identifier" means
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import (
    Any,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
    TYPE_CHECKING,
)

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

Cell = Any
Row = List[Cell]


def cell_text(value: Cell) -> str:
    """Render a cell the way an exact-match search sees it.

    >>> cell_text(5.0), cell_text("5 "), cell_text(True)
    ('5', '5', 'TRUE')
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def is_blank_row(row: Sequence[Cell]) -> bool:
    """True when every cell in the row is empty."""
    return all(cell_text(v) == "" for v in row)


def pad_row(row: Sequence[Cell], width: int) -> Row:
    """Return a copy of row padded with "" (or truncated) to width cells."""
    values = list(row[:width])
    if len(values) < width:
        values.extend([""] * (width - len(values)))
    return values


@runtime_checkable
class TableBackend(Protocol):
    """Protocol for table storage backends.

    Implementations:
        - SqliteTableBackend: cell grid in SQLite with an indexed text column
        - InMemoryTableBackend: lists in memory, for tests and local runs
    """

    async def create_table(self, name: str, header: Sequence[str]) -> None:
        """Create a table with the given header row (no-op if it exists)."""
        ...

    async def table_exists(self, name: str) -> bool:
        ...

    async def list_tables(self) -> List[str]:
        ...

    async def get_header(self, name: str) -> Row:
        """Row 0, or an empty list for an empty table."""
        ...

    async def get_rows(self, name: str) -> List[Row]:
        """All rows including the header."""
        ...

    async def get_row(self, name: str, row_number: int) -> Row:
        ...

    async def get_column(self, name: str, column_index: int) -> List[Cell]:
        """Values of one column for every data row (row 1..N)."""
        ...

    async def row_count(self, name: str) -> int:
        ...

    async def append_row(self, name: str, values: Sequence[Cell]) -> int:
        """Append a row and return its row number."""
        ...

    async def update_row(self, name: str, row_number: int, values: Sequence[Cell]) -> None:
        ...

    async def update_cells(
        self, name: str, row_number: int, cells: Mapping[int, Cell]
    ) -> None:
        ...

    async def delete_rows(self, name: str, row_numbers: Sequence[int]) -> int:
        """Physically delete rows and return how many were removed."""
        ...

    async def find_row(self, name: str, column_index: int, text: str) -> Optional[int]:
        """First row below the frozen rows whose cell text in column_index equals text."""
        ...

    async def frozen_rows(self, name: str) -> int:
        ...

    async def close(self) -> None:
        ...


def create_backend(config: StorageConfig) -> TableBackend:
    """Create a backend from configuration.

    Args:
        config: Storage configuration

    Returns:
        Configured backend instance

    Raises:
        ValueError: If the configured backend is not supported
    """
    from ..config import StoreBackend

    if config.backend == StoreBackend.SQLITE:
        from .sqlite import SqliteTableBackend

        return SqliteTableBackend(
            path=config.path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
            io_timeout_seconds=config.io_timeout_seconds,
        )
    elif config.backend == StoreBackend.MEMORY:
        from .memory import InMemoryTableBackend

        return InMemoryTableBackend()
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")


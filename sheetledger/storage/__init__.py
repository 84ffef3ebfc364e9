"""
Table storage abstraction for sheetledger.

This module provides a pluggable grid backend supporting:
- SQLite cell grid (recommended for production)
- In-memory (for testing)

A backend is the "spreadsheet": named tables of rows, row 0 being the
header. Everything above this layer (schemas, ids, stock) is built on
the TableBackend protocol only.

Invariants:
    - Row 0 is the header row, data rows start at 1
    - find_row matches on normalised cell text
    - Transient failures surface as StorageUnavailableError

How to change safely:
    - New backends must implement the TableBackend protocol
    - Run the backend unit tests against every implementation
"""

from .base import (
    Cell,
    Row,
    TableBackend,
    cell_text,
    create_backend,
    is_blank_row,
    pad_row,
)
from .memory import InMemoryTableBackend
from .sqlite import SqliteTableBackend

__all__ = [
    # Protocol and helpers
    "TableBackend",
    "Cell",
    "Row",
    "cell_text",
    "is_blank_row",
    "pad_row",
    # Factory
    "create_backend",
    # Implementations
    "InMemoryTableBackend",
    "SqliteTableBackend",
]

"""
Identifier allocation.

Ids are allocated as max(existing numeric ids) + 1, scanning the id column
below the frozen header rows. Blank and non-numeric cells are ignored.
Allocation is only race-free when the caller holds the table lock
between next_id() and the append of the new row.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..storage.base import Cell, TableBackend, cell_text

logger = logging.getLogger(__name__)


def parse_id(value: Cell) -> Optional[int]:
    """Parse an id cell; None for blank, non-numeric or fractional values.

    >>> parse_id(7), parse_id("7"), parse_id(7.0), parse_id("abc"), parse_id(7.5)
    (7, 7, 7, None, None)
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = cell_text(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not number.is_integer():
        return None
    return int(number)


def max_id(values: Iterable[Cell]) -> int:
    """Largest numeric id among values, 0 when there is none."""
    ids = [i for i in (parse_id(v) for v in values) if i is not None]
    return max(ids) if ids else 0


class IdAllocator:
    """Computes the next identifier of a table.

    Example:
        >>> allocator = IdAllocator(backend)
        >>> await allocator.next_id("Articles", id_index=0)
        1
    """

    def __init__(self, backend: TableBackend) -> None:
        self.backend = backend

    async def next_id(self, table: str, id_index: int) -> int:
        """Return max(id) + 1 for the table, or 1 when it has no ids."""
        column = await self.backend.get_column(table, id_index)
        frozen = await self.backend.frozen_rows(table)
        # get_column starts at row 1; skip any frozen rows below the header
        skip = max(frozen - 1, 0)
        next_value = max_id(column[skip:]) + 1
        logger.debug(
            "Allocated id",
            extra={"table": table, "id": next_value, "scanned": len(column) - skip},
        )
        return next_value

"""
Row lookup by logical identifier.

The search key and every candidate cell are normalised with cell_text, so
7, 7.0 and "7" find the same row. The first match in row order wins; the
SQLite backend answers this from an index instead of scanning.
"""

from __future__ import annotations

from typing import Any, Optional

from ..storage.base import TableBackend, cell_text


class RowLocator:
    """Maps a record id to a physical row number."""

    def __init__(self, backend: TableBackend) -> None:
        self.backend = backend

    async def find_row(self, table: str, id_index: int, record_id: Any) -> Optional[int]:
        """Row number holding record_id, or None when it does not resolve."""
        key = normalize_id(record_id)
        if not key or id_index < 0:
            return None
        return await self.backend.find_row(table, id_index, key)


def normalize_id(record_id: Any) -> str:
    """Normalise an id the way the locator compares it.

    >>> normalize_id(7.0), normalize_id(" 7 "), normalize_id(None)
    ('7', '7', '')
    """
    text = cell_text(record_id)
    # "7.0" typed by a caller matches a stored 7
    try:
        number = float(text)
    except ValueError:
        return text
    if number.is_integer() and "e" not in text.lower():
        return str(int(number))
    return text

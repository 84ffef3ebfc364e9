"""
Audit ledger.

Every mutation appends one entry to the History table: who, when, what,
and the available quantity before and after. The ledger is best-effort:
a failed append is logged and swallowed, it never fails the mutation
that triggered it.

Invariants:
    - Entries are appended, never updated or deleted
    - Ledger ids are max(id) + 1 scoped to the ledger table
    - append() never raises
    - The History table is created on first use

How to change safely:
    - Add ledger columns at the end of the History header
    - Never take another table's lock while holding the ledger lock
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..schema.resolver import SchemaResolver
from ..schema.types import CollectionDef, ColumnMap, ColumnRole, as_number
from ..storage.base import Cell, TableBackend, cell_text, is_blank_row
from .allocator import IdAllocator, parse_id
from .locator import normalize_id
from .locks import TableLocks
from .records import Clock, json_value, to_datetime, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    """One immutable ledger entry.

    Attributes:
        subject_id: Id of the mutated record
        subject: Label of the mutated record
        group: Grouping of the mutated record (program, location, ...)
        quantity_before: Available units before the mutation
        quantity_after: Available units after the mutation
        action: Human-readable description of the mutation
        actor: Who performed it
        timestamp: When it happened (stamped by the ledger when None)
        fulfilled_at: Fulfilment date for withdrawals
        fulfilled_quantity: Units handed out by a withdrawal
        origin: Logical collection the subject belongs to
        history_id: Ledger id (set once stored)
    """

    subject_id: Any
    subject: str
    quantity_before: int | float
    quantity_after: int | float
    action: str
    actor: str
    group: str = ""
    timestamp: Optional[datetime] = None
    fulfilled_at: Optional[datetime] = None
    fulfilled_quantity: Optional[int | float] = None
    origin: Optional[str] = None
    history_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "history_id": self.history_id,
            "subject_id": self.subject_id,
            "timestamp": json_value(self.timestamp),
            "subject": self.subject,
            "group": self.group,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "action": self.action,
            "actor": self.actor,
            "fulfilled_at": json_value(self.fulfilled_at),
            "fulfilled_quantity": self.fulfilled_quantity,
            "origin": self.origin,
        }


class AuditLedger:
    """Append-only ledger stored in the History table.

    Example:
        >>> ledger = AuditLedger(backend, HISTORY_DEF, TableLocks())
        >>> await ledger.append(AuditEntry(
        ...     subject_id=1, subject="Widget", quantity_before=0,
        ...     quantity_after=10, action="Created: Widget in Articles",
        ...     actor="System",
        ... ))
        1
    """

    def __init__(
        self,
        backend: TableBackend,
        collection: CollectionDef,
        locks: TableLocks,
        resolver: Optional[SchemaResolver] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.backend = backend
        self.collection = collection
        self.locks = locks
        self.resolver = resolver or SchemaResolver()
        self.clock = clock
        self._allocator = IdAllocator(backend)
        self._column_map: Optional[ColumnMap] = None

    @property
    def table(self) -> str:
        return self.collection.table

    async def _ensure_table(self) -> ColumnMap:
        if self._column_map is not None:
            return self._column_map
        if not await self.backend.table_exists(self.table):
            await self.backend.create_table(self.table, list(self.collection.header))
            logger.info(f"Created ledger table: {self.table}")
        header = await self.backend.get_header(self.table)
        schema = self.resolver.resolve(header, self.table)
        self._column_map = self.resolver.bind(self.collection, schema)
        return self._column_map

    def refresh(self) -> None:
        """Forget the cached ledger schema; it is re-read on next use."""
        self._column_map = None

    async def append(self, entry: AuditEntry) -> Optional[int]:
        """Append an entry.

        Returns:
            The new ledger id, or None if the entry could not be written
        """
        try:
            async with self.locks.for_table(self.table):
                column_map = await self._ensure_table()
                id_index = column_map.require(ColumnRole.ID)
                history_id = await self._allocator.next_id(self.table, id_index)
                row = self._build_row(column_map, history_id, entry)
                await self.backend.append_row(self.table, row)
        except Exception:
            logger.exception(
                "Failed to append audit entry",
                extra={
                    "subject_id": cell_text(entry.subject_id),
                    "origin": entry.origin,
                    "action": entry.action,
                },
            )
            return None

        logger.debug(
            "Audit entry appended",
            extra={"history_id": history_id, "origin": entry.origin, "action": entry.action},
        )
        return history_id

    def _build_row(self, column_map: ColumnMap, history_id: int, entry: AuditEntry) -> List[Cell]:
        row: List[Cell] = [""] * column_map.schema.width
        values: Dict[str, Cell] = {
            "subject_id": entry.subject_id,
            "timestamp": entry.timestamp or self.clock(),
            "subject": entry.subject,
            "group": entry.group,
            "quantity_before": entry.quantity_before,
            "quantity_after": entry.quantity_after,
            "action": entry.action,
            "actor": entry.actor,
            "fulfilled_at": entry.fulfilled_at if entry.fulfilled_at is not None else "",
            "fulfilled_quantity": (
                entry.fulfilled_quantity if entry.fulfilled_quantity is not None else ""
            ),
            "origin": entry.origin or "",
        }
        row[column_map.index(ColumnRole.ID)] = history_id
        for key, value in values.items():
            index = column_map.field_index(key)
            if index >= 0:
                row[index] = value
        return row

    async def entries(
        self,
        subject_id: Any = None,
        origin: Optional[str] = None,
    ) -> List[AuditEntry]:
        """Read ledger entries in append order, optionally filtered.

        Args:
            subject_id: Only entries about this record id
            origin: Only entries about this collection
        """
        if not await self.backend.table_exists(self.table):
            return []
        column_map = await self._ensure_table()
        rows = await self.backend.get_rows(self.table)

        def cell(row: List[Cell], key: str) -> Cell:
            index = column_map.field_index(key)
            return row[index] if 0 <= index < len(row) else ""

        wanted_subject = normalize_id(subject_id) if subject_id is not None else None
        result = []
        for row in rows[1:]:
            if is_blank_row(row):
                continue
            if wanted_subject is not None and normalize_id(cell(row, "subject_id")) != wanted_subject:
                continue
            if origin is not None and cell_text(cell(row, "origin")) != origin:
                continue
            id_index = column_map.index(ColumnRole.ID)
            fulfilled_quantity = cell(row, "fulfilled_quantity")
            result.append(
                AuditEntry(
                    history_id=parse_id(row[id_index]) if id_index < len(row) else None,
                    subject_id=cell(row, "subject_id"),
                    timestamp=to_datetime(cell(row, "timestamp")),
                    subject=cell_text(cell(row, "subject")),
                    group=cell_text(cell(row, "group")),
                    quantity_before=as_number(cell(row, "quantity_before")),
                    quantity_after=as_number(cell(row, "quantity_after")),
                    action=cell_text(cell(row, "action")),
                    actor=cell_text(cell(row, "actor")),
                    fulfilled_at=to_datetime(cell(row, "fulfilled_at")),
                    fulfilled_quantity=(
                        as_number(fulfilled_quantity) if cell_text(fulfilled_quantity) else None
                    ),
                    origin=cell_text(cell(row, "origin")) or None,
                )
            )
        return result

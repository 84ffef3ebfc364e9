"""
Tabular store engine.

TableStore is the CRUD surface shared by every collection: create, read,
read-all, update, soft delete, withdraw and bulk deactivate, plus the
patch/delete primitives the comment engine builds on. It resolves column
indices through the schema layer, finds rows through the row locator,
keeps derived columns as literal values and audits every mutation.

Invariants:
    - available == received - issued after every write that touches stock
    - Days in storage is recomputed on write and on read
    - Every read-modify-write runs under the table's writer lock
    - Every mutation appends one audit entry (best-effort)
    - Append-only tables refuse writes through the store
    - Rows are never physically removed except by delete_rows()

How to change safely:
    - New derived columns go in _recompute(), nowhere else
    - Keep lock order: subject table, then the ledger
    - Audit failures must never turn a successful mutation into an error
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import (
    ConfigurationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..identity import Actor, resolve_actor
from ..schema.collections import HISTORY
from ..schema.registry import CollectionRegistry
from ..schema.resolver import SchemaResolver
from ..schema.types import CollectionDef, ColumnMap, ColumnRole, as_number, coerce_number
from ..storage.base import Cell, Row, TableBackend, cell_text, is_blank_row, pad_row
from .allocator import IdAllocator
from .audit import AuditEntry, AuditLedger
from .locator import RowLocator, normalize_id
from .locks import TableLocks
from .records import (
    ACTIVE,
    DEACTIVATED,
    BulkResult,
    Clock,
    MutationReceipt,
    Record,
    storage_days,
    utc_now,
)
from .validate import RECEIVED_DELTA, validate_create, validate_update

logger = logging.getLogger(__name__)


def _fmt(quantity: int | float) -> str:
    return str(int(quantity)) if float(quantity).is_integer() else str(quantity)


class TableStore:
    """Generic CRUD engine over collection tables.

    Thread safety:
        Writers are serialised per table with asyncio locks. Readers
        take no lock and see last-write-wins snapshots.

    Example:
        >>> store = TableStore(backend, registry)
        >>> receipt = await store.create("Articles", {"product": "Widget", "received": 10})
        >>> await store.withdraw("Articles", receipt.record_id, 4)
        >>> (await store.read("Articles", receipt.record_id)).available
        6
    """

    def __init__(
        self,
        backend: TableBackend,
        registry: CollectionRegistry,
        ledger: Optional[AuditLedger] = None,
        locks: Optional[TableLocks] = None,
        resolver: Optional[SchemaResolver] = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Table storage backend
            registry: Collection definitions
            ledger: Audit ledger (defaults to one on the History collection)
            locks: Writer locks (shared with the ledger)
            resolver: Schema resolver
            clock: Source of "now" for every timestamp
        """
        self.backend = backend
        self.registry = registry
        self.locks = locks or TableLocks()
        self.resolver = resolver or SchemaResolver()
        self.clock = clock
        self.ledger = ledger or AuditLedger(
            backend,
            registry.require(HISTORY),
            self.locks,
            resolver=self.resolver,
            clock=clock,
        )
        self.allocator = IdAllocator(backend)
        self.locator = RowLocator(backend)
        self._column_maps: Dict[str, ColumnMap] = {}

    # Schema

    async def column_map(self, collection: str) -> ColumnMap:
        """Bound column map of a collection, built once and cached.

        Raises:
            ConfigurationError: If the table or its mandatory columns are missing
        """
        definition = self.registry.require(collection)
        cached = self._column_maps.get(definition.name)
        if cached is not None:
            return cached

        if not await self.backend.table_exists(definition.table):
            raise ConfigurationError(
                f"Table '{definition.table}' for collection '{definition.name}' does not exist",
                table=definition.table,
            )
        header = await self.backend.get_header(definition.table)
        schema = self.resolver.resolve(header, definition.table)
        column_map = self.resolver.bind(definition, schema)
        self._column_maps[definition.name] = column_map
        logger.debug(
            "Bound collection schema",
            extra={"collection": definition.name, "columns": list(schema.columns)},
        )
        return column_map

    async def refresh_schema(self, collection: str) -> ColumnMap:
        """Re-read the header of a collection's table and rebind it."""
        definition = self.registry.require(collection)
        self._column_maps.pop(definition.name, None)
        if definition.name == self.ledger.collection.name:
            self.ledger.refresh()
        return await self.column_map(definition.name)

    async def _writable(self, collection: str) -> Tuple[CollectionDef, ColumnMap]:
        column_map = await self.column_map(collection)
        definition = column_map.collection
        if definition.append_only:
            raise ConfigurationError(
                f"Collection '{definition.name}' is append-only",
                table=definition.table,
            )
        column_map.require(ColumnRole.ID)
        return definition, column_map

    async def _locate(self, column_map: ColumnMap, record_id: Any) -> Tuple[int, Row]:
        row_number = await self.locator.find_row(
            column_map.table, column_map.index(ColumnRole.ID), record_id
        )
        if row_number is None:
            raise NotFoundError(
                f"Record {record_id} not found in {column_map.collection.name}",
                resource_type=column_map.collection.name,
                resource_id=str(record_id),
            )
        row = await self.backend.get_row(column_map.table, row_number)
        return row_number, pad_row(row, column_map.schema.width)

    async def _data_rows(self, column_map: ColumnMap) -> List[Tuple[int, Row]]:
        rows = await self.backend.get_rows(column_map.table)
        start = max(await self.backend.frozen_rows(column_map.table), 1)
        return [
            (row_number, rows[row_number])
            for row_number in range(start, len(rows))
            if not is_blank_row(rows[row_number])
        ]

    # Derived columns

    @staticmethod
    def _set(row: Row, column_map: ColumnMap, role: ColumnRole, value: Cell) -> None:
        index = column_map.index(role)
        if index >= 0:
            row[index] = value

    @staticmethod
    def _get(row: Row, column_map: ColumnMap, role: ColumnRole) -> Cell:
        index = column_map.index(role)
        return row[index] if 0 <= index < len(row) else ""

    def _available(self, row: Row, column_map: ColumnMap) -> int | float:
        if not (column_map.has(ColumnRole.RECEIVED) and column_map.has(ColumnRole.ISSUED)):
            return 0
        received = as_number(self._get(row, column_map, ColumnRole.RECEIVED))
        issued = as_number(self._get(row, column_map, ColumnRole.ISSUED))
        return received - issued

    def _recompute(self, row: Row, column_map: ColumnMap, now: datetime) -> int | float:
        """Write literal derived values into row and return available units."""
        available = self._available(row, column_map)
        if column_map.has(ColumnRole.RECEIVED) and column_map.has(ColumnRole.ISSUED):
            self._set(row, column_map, ColumnRole.AVAILABLE, available)
        if column_map.has(ColumnRole.CREATED_AT):
            self._set(
                row,
                column_map,
                ColumnRole.STORAGE_DAYS,
                storage_days(self._get(row, column_map, ColumnRole.CREATED_AT), now),
            )
        return available

    def _label(self, row: Row, column_map: ColumnMap) -> str:
        return cell_text(self._get(row, column_map, ColumnRole.LABEL))

    async def _audit(
        self,
        column_map: ColumnMap,
        row: Row,
        before: int | float,
        after: int | float,
        action: str,
        actor: Actor,
        fulfilled_at: Optional[datetime] = None,
        fulfilled_quantity: Optional[int | float] = None,
    ) -> Optional[int]:
        return await self.ledger.append(
            AuditEntry(
                subject_id=self._get(row, column_map, ColumnRole.ID),
                subject=self._label(row, column_map),
                group=cell_text(self._get(row, column_map, ColumnRole.GROUP)),
                quantity_before=before,
                quantity_after=after,
                action=action,
                actor=actor.display,
                timestamp=self.clock(),
                fulfilled_at=fulfilled_at,
                fulfilled_quantity=fulfilled_quantity,
                origin=column_map.collection.name,
            )
        )

    # Reads

    async def read(self, collection: str, record_id: Any) -> Optional[Record]:
        """Read one record; None when the id does not resolve."""
        column_map = await self.column_map(collection)
        if column_map.schema.is_empty:
            return None
        row_number = await self.locator.find_row(
            column_map.table, column_map.index(ColumnRole.ID), record_id
        )
        if row_number is None:
            return None
        row = await self.backend.get_row(column_map.table, row_number)
        return Record.from_row(column_map, row_number, row, now=self.clock())

    async def read_all(self, collection: str) -> List[Record]:
        """Every non-blank record, whatever its status."""
        column_map = await self.column_map(collection)
        if column_map.schema.is_empty:
            return []
        now = self.clock()
        return [
            Record.from_row(column_map, row_number, row, now=now)
            for row_number, row in await self._data_rows(column_map)
        ]

    async def read_all_active(self, collection: str) -> List[Record]:
        """Records whose status is Active (all records when there is no status column)."""
        return [r for r in await self.read_all(collection) if r.is_active]

    # Mutations

    async def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> MutationReceipt:
        """Create a record with a freshly allocated id.

        Raises:
            ValidationError: Unknown keys, missing mandatory keys or bad values
            ConfigurationError: Table or id column missing, or append-only table
        """
        definition, column_map = await self._writable(collection)
        values = validate_create(definition, fields)
        actor = resolve_actor(actor)
        now = self.clock()
        table = column_map.table

        async with self.locks.for_table(table):
            record_id = await self.allocator.next_id(table, column_map.index(ColumnRole.ID))

            row: Row = [""] * column_map.schema.width
            for key, value in values.items():
                index = column_map.field_index(key)
                if index >= 0:
                    row[index] = value
                else:
                    logger.debug(
                        "Field has no column, value dropped",
                        extra={"collection": definition.name, "field": key},
                    )

            self._set(row, column_map, ColumnRole.ID, record_id)
            self._set(row, column_map, ColumnRole.CREATED_AT, now)
            self._set(row, column_map, ColumnRole.UPDATED_AT, now)
            self._set(row, column_map, ColumnRole.STATUS, ACTIVE)
            if column_map.has(ColumnRole.RECEIVED):
                self._set(row, column_map, ColumnRole.RECEIVED, as_number(values.get("received", 0)))
                self._set(row, column_map, ColumnRole.ISSUED, 0)
                self._set(row, column_map, ColumnRole.FULFILLED_QUANTITY, 0)
            available = self._recompute(row, column_map, now)

            await self.backend.append_row(table, row)
            audit_id = await self._audit(
                column_map,
                row,
                before=0,
                after=available,
                action=f"Created: {self._label(row, column_map)} in {definition.name}",
                actor=actor,
            )

        logger.info(
            "Record created",
            extra={"collection": definition.name, "id": record_id, "actor": actor.display},
        )
        image_url = values.get("image_url")
        return MutationReceipt(
            collection=definition.name,
            record_id=record_id,
            quantity_before=0,
            quantity_after=available,
            image_url=image_url or None,
            audit_id=audit_id,
        )

    async def update(
        self,
        collection: str,
        record_id: Any,
        fields: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> MutationReceipt:
        """Overwrite editable fields and optionally restock.

        A positive received_delta adds incoming units. When the record has
        no units left, the stocking cycle restarts instead: received is set
        to the delta, issued to 0 and the creation date to now.

        Raises:
            NotFoundError: If the id does not resolve
            ValidationError: Bad keys or values, or a negative delta
        """
        definition, column_map = await self._writable(collection)
        values = validate_update(definition, fields)

        delta: int | float = 0
        if fields.get(RECEIVED_DELTA) not in (None, ""):
            delta = coerce_number(fields[RECEIVED_DELTA], RECEIVED_DELTA)
            if delta < 0:
                raise ValidationError(
                    f"Field '{RECEIVED_DELTA}' cannot be negative",
                    field_name=RECEIVED_DELTA,
                )
            if delta > 0:
                column_map.require(ColumnRole.RECEIVED)
                column_map.require(ColumnRole.ISSUED)

        if not values and delta == 0:
            raise ValidationError(f"Nothing to update in {definition.name} record {record_id}")

        actor = resolve_actor(actor)
        now = self.clock()
        table = column_map.table

        async with self.locks.for_table(table):
            row_number, row = await self._locate(column_map, record_id)
            record_id = self._get(row, column_map, ColumnRole.ID)
            before = self._available(row, column_map)

            for key, value in values.items():
                index = column_map.field_index(key)
                if index >= 0:
                    row[index] = value

            restarted = False
            if delta > 0:
                if before <= 0:
                    restarted = True
                    self._set(row, column_map, ColumnRole.RECEIVED, delta)
                    self._set(row, column_map, ColumnRole.ISSUED, 0)
                    self._set(row, column_map, ColumnRole.CREATED_AT, now)
                else:
                    received = as_number(self._get(row, column_map, ColumnRole.RECEIVED))
                    self._set(row, column_map, ColumnRole.RECEIVED, received + delta)

            self._set(row, column_map, ColumnRole.UPDATED_AT, now)
            after = self._recompute(row, column_map, now)
            await self.backend.update_row(table, row_number, row)

            action = f"Updated: {self._label(row, column_map)}"
            if delta > 0:
                action += f" (+{_fmt(delta)} received{', new cycle' if restarted else ''})"
            audit_id = await self._audit(
                column_map, row, before, after, action, actor
            )

        logger.info(
            "Record updated",
            extra={
                "collection": definition.name,
                "id": record_id,
                "fields": sorted(values),
                "received_delta": delta,
                "actor": actor.display,
            },
        )
        return MutationReceipt(
            collection=definition.name,
            record_id=record_id,
            quantity_before=before,
            quantity_after=after,
            image_url=values.get("image_url") or None,
            audit_id=audit_id,
        )

    async def soft_delete(
        self,
        collection: str,
        record_id: Any,
        actor: Optional[Actor] = None,
    ) -> MutationReceipt:
        """Mark a record Deactivated; the row stays in the table.

        Tables without a status column only log a warning.

        Raises:
            NotFoundError: If the id does not resolve
        """
        definition, column_map = await self._writable(collection)
        actor = resolve_actor(actor)
        table = column_map.table

        async with self.locks.for_table(table):
            row_number, row = await self._locate(column_map, record_id)
            record_id = self._get(row, column_map, ColumnRole.ID)
            available = self._available(row, column_map)

            if not column_map.has(ColumnRole.STATUS):
                logger.warning(
                    f"Collection '{definition.name}' has no status column; "
                    f"record {record_id} left unchanged"
                )
                return MutationReceipt(
                    collection=definition.name,
                    record_id=record_id,
                    quantity_before=available,
                    quantity_after=available,
                    changed=False,
                )

            now = self.clock()
            cells = {column_map.index(ColumnRole.STATUS): DEACTIVATED}
            if column_map.has(ColumnRole.UPDATED_AT):
                cells[column_map.index(ColumnRole.UPDATED_AT)] = now
            await self.backend.update_cells(table, row_number, cells)

            audit_id = await self._audit(
                column_map,
                row,
                available,
                available,
                f"Deactivated: {self._label(row, column_map)}",
                actor,
            )

        logger.info(
            "Record deactivated",
            extra={"collection": definition.name, "id": record_id, "actor": actor.display},
        )
        return MutationReceipt(
            collection=definition.name,
            record_id=record_id,
            quantity_before=available,
            quantity_after=available,
            audit_id=audit_id,
        )

    async def withdraw(
        self,
        collection: str,
        record_id: Any,
        quantity: Any,
        actor: Optional[Actor] = None,
    ) -> MutationReceipt:
        """Hand out units of a record.

        The availability check and the write happen under the table lock,
        so concurrent withdrawals cannot overdraw a record.

        Raises:
            ConfigurationError: If the table has no received/issued columns
            ValidationError: If quantity is not a number
            InsufficientStockError: If quantity <= 0 or exceeds available units
            NotFoundError: If the id does not resolve
        """
        definition, column_map = await self._writable(collection)
        issued_index = column_map.require(ColumnRole.ISSUED)
        column_map.require(ColumnRole.RECEIVED)
        requested = coerce_number(quantity, "quantity")
        actor = resolve_actor(actor)
        table = column_map.table

        async with self.locks.for_table(table):
            row_number, row = await self._locate(column_map, record_id)
            record_id = self._get(row, column_map, ColumnRole.ID)
            before = self._available(row, column_map)
            label = self._label(row, column_map)

            if requested <= 0:
                raise InsufficientStockError(
                    f"Withdraw quantity must be positive, got {_fmt(requested)} "
                    f"({_fmt(before)} available for '{label}')",
                    requested=requested,
                    available=before,
                )
            if requested > before:
                raise InsufficientStockError(
                    f"Cannot withdraw {_fmt(requested)} units of '{label}': "
                    f"only {_fmt(before)} available",
                    requested=requested,
                    available=before,
                )

            now = self.clock()
            row[issued_index] = as_number(row[issued_index]) + requested
            fulfilled_total = as_number(
                self._get(row, column_map, ColumnRole.FULFILLED_QUANTITY)
            ) + requested
            self._set(row, column_map, ColumnRole.FULFILLED_AT, now)
            self._set(row, column_map, ColumnRole.FULFILLED_QUANTITY, fulfilled_total)
            self._set(row, column_map, ColumnRole.UPDATED_AT, now)
            after = self._recompute(row, column_map, now)
            await self.backend.update_row(table, row_number, row)

            audit_id = await self._audit(
                column_map,
                row,
                before,
                after,
                f"Withdrawn: {_fmt(requested)} x {label}",
                actor,
                fulfilled_at=now,
                fulfilled_quantity=requested,
            )

        logger.info(
            "Units withdrawn",
            extra={
                "collection": definition.name,
                "id": record_id,
                "quantity": requested,
                "available": after,
                "actor": actor.display,
            },
        )
        return MutationReceipt(
            collection=definition.name,
            record_id=record_id,
            quantity_before=before,
            quantity_after=after,
            audit_id=audit_id,
        )

    async def bulk_deactivate(
        self,
        collection: str,
        record_ids: Iterable[Any],
        actor: Optional[Actor] = None,
    ) -> BulkResult:
        """Deactivate many records in one pass over the table.

        Unknown ids are skipped and reported in not_found; records that
        are already Deactivated are reported in unchanged.
        """
        definition, column_map = await self._writable(collection)
        actor = resolve_actor(actor)
        table = column_map.table
        result = BulkResult()
        ids = _unique(record_ids)
        if not ids:
            return result

        async with self.locks.for_table(table):
            positions = _index_rows(await self._data_rows(column_map), column_map)
            status_index = column_map.index(ColumnRole.STATUS)
            if status_index < 0:
                logger.warning(
                    f"Collection '{definition.name}' has no status column; "
                    "bulk deactivation changes nothing"
                )

            now = self.clock()
            for record_id in ids:
                found = positions.get(normalize_id(record_id))
                if found is None:
                    result.not_found.append(record_id)
                    continue
                row_number, row = found
                stored_id = self._get(row, column_map, ColumnRole.ID)
                if status_index < 0 or cell_text(self._get(row, column_map, ColumnRole.STATUS)) == DEACTIVATED:
                    result.unchanged.append(stored_id)
                    continue

                cells = {status_index: DEACTIVATED}
                if column_map.has(ColumnRole.UPDATED_AT):
                    cells[column_map.index(ColumnRole.UPDATED_AT)] = now
                await self.backend.update_cells(table, row_number, cells)
                available = self._available(row, column_map)
                await self._audit(
                    column_map,
                    row,
                    available,
                    available,
                    f"Deactivated: {self._label(row, column_map)}",
                    actor,
                )
                result.updated.append(stored_id)

        logger.info(
            "Bulk deactivation finished",
            extra={
                "collection": definition.name,
                "updated": result.count,
                "not_found": len(result.not_found),
                "unchanged": len(result.unchanged),
            },
        )
        return result

    # Primitives used by the comment engine

    async def patch(
        self,
        collection: str,
        record_id: Any,
        fields: Optional[Mapping[str, Cell]] = None,
        roles: Optional[Mapping[ColumnRole, Cell]] = None,
        actor: Optional[Actor] = None,
        action: Optional[str] = None,
    ) -> Record:
        """Write specific cells of one record.

        Fields are addressed by key and coerced; roles are written as given.
        Keys whose column is missing from the table are skipped. An audit
        entry is written only when action is given.

        Raises:
            NotFoundError: If the id does not resolve
        """
        result, records = await self._patch_rows(
            collection, [record_id], fields, roles, actor, action
        )
        if result.not_found:
            column_map = await self.column_map(collection)
            raise NotFoundError(
                f"Record {record_id} not found in {column_map.collection.name}",
                resource_type=column_map.collection.name,
                resource_id=str(record_id),
            )
        return records[0]

    async def patch_many(
        self,
        collection: str,
        record_ids: Iterable[Any],
        fields: Optional[Mapping[str, Cell]] = None,
        roles: Optional[Mapping[ColumnRole, Cell]] = None,
        actor: Optional[Actor] = None,
        action: Optional[str] = None,
    ) -> BulkResult:
        """Write the same cells on many records in one pass."""
        result, _ = await self._patch_rows(collection, record_ids, fields, roles, actor, action)
        return result

    async def _patch_rows(
        self,
        collection: str,
        record_ids: Iterable[Any],
        fields: Optional[Mapping[str, Cell]],
        roles: Optional[Mapping[ColumnRole, Cell]],
        actor: Optional[Actor],
        action: Optional[str],
    ) -> Tuple[BulkResult, List[Record]]:
        definition, column_map = await self._writable(collection)
        actor = resolve_actor(actor)
        cells: Dict[int, Cell] = {}
        for key, value in (fields or {}).items():
            binding = definition.get_field(key)
            if binding is None:
                raise ValidationError(f"Unknown field '{key}' for {definition.name}", field_name=key)
            index = column_map.field_index(key)
            if index >= 0:
                cells[index] = binding.coerce(value) if value not in (None, "") else ""
        for role, value in (roles or {}).items():
            index = column_map.index(role)
            if index >= 0:
                cells[index] = value

        result = BulkResult()
        records: List[Record] = []
        ids = _unique(record_ids)
        if not ids:
            return result, records

        table = column_map.table
        async with self.locks.for_table(table):
            positions = _index_rows(await self._data_rows(column_map), column_map)
            now = self.clock()
            for record_id in ids:
                found = positions.get(normalize_id(record_id))
                if found is None:
                    result.not_found.append(record_id)
                    continue
                row_number, row = found
                row = pad_row(row, column_map.schema.width)
                if cells:
                    await self.backend.update_cells(table, row_number, cells)
                    for index, value in cells.items():
                        row[index] = value
                result.updated.append(self._get(row, column_map, ColumnRole.ID))
                records.append(Record.from_row(column_map, row_number, row, now=now))
                if action:
                    available = self._available(row, column_map)
                    await self._audit(
                        column_map, row, available, available, action, actor
                    )
        return result, records

    async def delete_rows(
        self,
        collection: str,
        record_ids: Iterable[Any],
        actor: Optional[Actor] = None,
    ) -> BulkResult:
        """Physically remove records. Only the comment engine uses this."""
        definition, column_map = await self._writable(collection)
        actor = resolve_actor(actor)
        result = BulkResult()
        ids = _unique(record_ids)
        if not ids:
            return result

        table = column_map.table
        async with self.locks.for_table(table):
            positions = _index_rows(await self._data_rows(column_map), column_map)
            doomed: List[Tuple[int, Row]] = []
            for record_id in ids:
                found = positions.get(normalize_id(record_id))
                if found is None:
                    result.not_found.append(record_id)
                else:
                    doomed.append(found)

            if doomed:
                removed = await self.backend.delete_rows(table, [n for n, _ in doomed])
                logger.info(
                    "Rows deleted",
                    extra={"collection": definition.name, "requested": len(doomed), "removed": removed},
                )
            for _, row in doomed:
                result.updated.append(self._get(row, column_map, ColumnRole.ID))
                await self._audit(
                    column_map,
                    row,
                    0,
                    0,
                    f"Deleted: {self._label(row, column_map)} from {definition.name}",
                    actor,
                )
        return result


def _unique(record_ids: Iterable[Any]) -> List[Any]:
    """Ids in order, without duplicates or blanks (compared normalised)."""
    seen = set()
    result = []
    for record_id in record_ids:
        key = normalize_id(record_id)
        if key and key not in seen:
            seen.add(key)
            result.append(record_id)
    return result


def _index_rows(
    rows: List[Tuple[int, Row]], column_map: ColumnMap
) -> Dict[str, Tuple[int, Row]]:
    """Normalised id -> (row number, row), first occurrence wins."""
    id_index = column_map.index(ColumnRole.ID)
    positions: Dict[str, Tuple[int, Row]] = {}
    for row_number, row in rows:
        if id_index >= len(row):
            continue
        key = normalize_id(row[id_index])
        if key and key not in positions:
            positions[key] = (row_number, row)
    return positions

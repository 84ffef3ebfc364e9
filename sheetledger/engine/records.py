"""
Record views and operation results.

A Record is a materialised row: header name -> cell value, plus typed
accessors for the columns the engine understands. Records are snapshots;
mutating one does not touch storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..storage.base import Cell, cell_text
from ..schema.types import ColumnMap, ColumnRole, as_number

ACTIVE = "Active"
DEACTIVATED = "Deactivated"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: Cell) -> Optional[datetime]:
    """Read a cell as a timezone-aware datetime (naive values are UTC)."""
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    else:
        text = cell_text(value)
        if not text:
            return None
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            return None
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def storage_days(created_at: Cell, now: datetime) -> int:
    """Whole days between created_at and now, never negative."""
    created = to_datetime(created_at)
    if created is None:
        return 0
    return max((now - created).days, 0)


def json_value(value: Cell) -> Any:
    """Make a cell value JSON friendly."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass
class Record:
    """A row materialised through a ColumnMap.

    Attributes:
        collection: Logical collection name
        record_id: Value of the Id column
        row_number: Physical row number at read time
        values: Header name -> cell value, in column order
        roles: Engine role -> cell value, for the roles the table has
    """

    collection: str
    record_id: Any
    row_number: int
    values: Dict[str, Cell] = field(default_factory=dict)
    roles: Dict[ColumnRole, Cell] = field(default_factory=dict)

    @classmethod
    def from_row(
        cls,
        column_map: ColumnMap,
        row_number: int,
        row: Sequence[Cell],
        now: Optional[datetime] = None,
    ) -> Record:
        """Materialise a raw row.

        Days in storage is recomputed from the creation date when now is given.
        """
        def cell(index: int) -> Cell:
            return row[index] if 0 <= index < len(row) else ""

        schema = column_map.schema
        values = {
            name: cell(index)
            for index, name in enumerate(schema.columns)
            if name and schema.positions.get(name) == index
        }

        roles = {
            role: cell(index) for role, index in column_map.role_indices.items()
        }

        if now is not None and ColumnRole.STORAGE_DAYS in roles and ColumnRole.CREATED_AT in roles:
            days = storage_days(roles[ColumnRole.CREATED_AT], now)
            roles[ColumnRole.STORAGE_DAYS] = days
            values[column_map.header(ColumnRole.STORAGE_DAYS)] = days

        return cls(
            collection=column_map.collection.name,
            record_id=roles.get(ColumnRole.ID, ""),
            row_number=row_number,
            values=values,
            roles=roles,
        )

    def get(self, header: str, default: Any = None) -> Any:
        return self.values.get(header, default)

    def role(self, role: ColumnRole, default: Any = None) -> Any:
        return self.roles.get(role, default)

    @property
    def label(self) -> str:
        return cell_text(self.roles.get(ColumnRole.LABEL))

    @property
    def group(self) -> str:
        return cell_text(self.roles.get(ColumnRole.GROUP))

    @property
    def status(self) -> Optional[str]:
        """Status text, or None when the table has no status column."""
        if ColumnRole.STATUS not in self.roles:
            return None
        return cell_text(self.roles[ColumnRole.STATUS])

    @property
    def is_active(self) -> bool:
        status = self.status
        return status is None or status == ACTIVE

    @property
    def received(self) -> int | float:
        return as_number(self.roles.get(ColumnRole.RECEIVED))

    @property
    def issued(self) -> int | float:
        return as_number(self.roles.get(ColumnRole.ISSUED))

    @property
    def available(self) -> int | float:
        """received - issued, computed from the counters."""
        return self.received - self.issued

    def to_dict(self) -> Dict[str, Any]:
        return {name: json_value(value) for name, value in self.values.items()}


@dataclass(frozen=True)
class MutationReceipt:
    """Result of a single-record mutation.

    Attributes:
        collection: Logical collection name
        record_id: Id of the created or mutated record
        quantity_before: Available units before the mutation
        quantity_after: Available units after the mutation
        image_url: Blob locator supplied by the caller, if any
        audit_id: Ledger id of the audit entry (None if auditing failed)
        changed: False when the mutation was a no-op
    """

    collection: str
    record_id: Any
    quantity_before: int | float = 0
    quantity_after: int | float = 0
    image_url: Optional[str] = None
    audit_id: Optional[int] = None
    changed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "id": self.record_id,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "image_url": self.image_url,
            "audit_id": self.audit_id,
            "changed": self.changed,
        }


@dataclass
class BulkResult:
    """Result of a batch operation.

    Attributes:
        updated: Ids whose rows were changed
        not_found: Ids that did not resolve
        unchanged: Ids that resolved but needed no change
    """

    updated: List[Any] = field(default_factory=list)
    not_found: List[Any] = field(default_factory=list)
    unchanged: List[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.updated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "updated": list(self.updated),
            "not_found": list(self.not_found),
            "unchanged": list(self.unchanged),
        }

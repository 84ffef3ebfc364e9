"""
Core type definitions for the sheetledger schema layer.

This module defines the typed mapping that replaces raw header strings:
- FieldKind: how a caller-supplied value is coerced before storage
- ColumnRole: the columns the engine itself reads or writes
- FieldBinding: one caller-facing input key bound to a column
- CollectionDef: definition of a logical collection
- TableSchema: the header discovered from row 0 of a table
- ColumnMap: a CollectionDef bound to a TableSchema

Invariants:
    - Column names are trimmed; lookups by name are case-sensitive
    - The ID role is matched case-insensitively against "Id"
    - A missing column resolves to index -1, never to an exception
    - Duplicate header names: the last occurrence wins

How to change safely:
    - Add role aliases rather than renaming existing ones
    - Add new FieldBindings with new keys; never reuse a key for another column
    - Keep coercion rules stable, existing rows were written with them

Example:
    >>> from sheetledger.schema.types import CollectionDef, ColumnRole, binding
    >>> Notes = CollectionDef(
    ...     name="Notes",
    ...     table="Notes",
    ...     header=("Id", "Title", "Status"),
    ...     roles={ColumnRole.ID: ("Id",), ColumnRole.LABEL: ("Title",)},
    ...     fields=(binding("title", role=ColumnRole.LABEL, required=True),),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from dataclasses import field as dataclass_field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import ConfigurationError, ValidationError
from ..storage.base import Cell, cell_text

_TRUE_TEXT = frozenset({"true", "1", "yes", "y", "si", "sí"})
_FALSE_TEXT = frozenset({"false", "0", "no", "n", ""})


class FieldKind(Enum):
    """Supported input kinds.

    These decide how caller input is coerced into a cell value.
    """

    STRING = "str"
    NUMBER = "number"
    DATE = "date"  # Caller-supplied business date, never an audit timestamp
    BOOLEAN = "bool"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")


class ColumnRole(Enum):
    """Columns with engine-level meaning."""

    ID = "id"
    LABEL = "label"
    GROUP = "group"
    STATUS = "status"
    RECEIVED = "received"
    ISSUED = "issued"
    AVAILABLE = "available"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    STORAGE_DAYS = "storage_days"
    FULFILLED_AT = "fulfilled_at"
    FULFILLED_QUANTITY = "fulfilled_quantity"
    LATEST_COMMENT = "latest_comment"
    IMAGE = "image"


# Coercion helpers


def coerce_number(value: Any, name: str = "value") -> int | float:
    """Coerce caller input to a number (int when integral).

    Raises:
        ValidationError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValidationError(f"Field '{name}' must be a number, got a boolean", field_name=name)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValidationError(f"Field '{name}' must be a finite number", field_name=name)
        return int(value) if value.is_integer() else value
    text = str(value).strip() if value is not None else ""
    try:
        number = float(text)
    except ValueError:
        raise ValidationError(
            f"Field '{name}' must be a number, got '{value}'", field_name=name
        )
    return coerce_number(number, name)


def coerce_date(value: Any, name: str = "value") -> date | datetime:
    """Coerce caller input to a date or datetime.

    Raises:
        ValidationError: If the value is not an ISO-8601 date
    """
    if isinstance(value, (date, datetime)):
        return value
    text = str(value).strip() if value is not None else ""
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"Field '{name}' must be an ISO-8601 date, got '{value}'", field_name=name
        )


def coerce_bool(value: Any, name: str = "value") -> bool:
    """Coerce caller input to a boolean.

    Raises:
        ValidationError: If the value is not a recognised boolean
    """
    if isinstance(value, bool):
        return value
    text = cell_text(value).lower()
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    raise ValidationError(f"Field '{name}' must be a boolean, got '{value}'", field_name=name)


def as_number(cell: Cell) -> int | float:
    """Read a stored cell as a number; blanks and junk read as 0."""
    if cell_text(cell) == "":
        return 0
    try:
        return coerce_number(cell)
    except ValidationError:
        return 0


def as_bool(cell: Cell) -> bool:
    """Read a stored cell as a boolean; anything unrecognised is False."""
    if isinstance(cell, bool):
        return cell
    return cell_text(cell).lower() in _TRUE_TEXT


_COERCERS = {
    FieldKind.NUMBER: coerce_number,
    FieldKind.DATE: coerce_date,
    FieldKind.BOOLEAN: coerce_bool,
}


@dataclass(frozen=True)
class FieldBinding:
    """A caller-facing input key bound to one column.

    Attributes:
        key: Input key used by callers (e.g. "product")
        header: Column header, used when no role is given
        kind: How input is coerced
        required: Must be present on create
        editable: May be changed by update
        default: Value written on create when the key is absent
        role: Bind through a column role instead of a fixed header
    """

    key: str
    header: str = ""
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    editable: bool = True
    default: Any = None
    role: Optional[ColumnRole] = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("Field key cannot be empty")
        if not self.header and self.role is None:
            raise ValueError(f"Field '{self.key}' needs a header or a role")

    def coerce(self, value: Any) -> Cell:
        """Coerce an input value for storage.

        Raises:
            ValidationError: If the value does not match the field kind
        """
        coercer = _COERCERS.get(self.kind)
        if coercer is None:
            return cell_text(value)
        return coercer(value, self.key)


def binding(
    key: str,
    header: str = "",
    kind: str | FieldKind = FieldKind.STRING,
    *,
    required: bool = False,
    editable: bool = True,
    default: Any = None,
    role: Optional[ColumnRole] = None,
) -> FieldBinding:
    """Convenience function to create a FieldBinding.

    Example:
        >>> price = binding("price", "Price", "number")
        >>> product = binding("product", role=ColumnRole.LABEL, required=True)
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldBinding(
        key=key,
        header=header,
        kind=kind,
        required=required,
        editable=editable,
        default=default,
        role=role,
    )


@dataclass(frozen=True)
class CollectionDef:
    """Definition of a logical collection.

    Attributes:
        name: Logical name (e.g. "Articles")
        table: Physical table name
        header: Default header written when the table is created
        roles: Header aliases per role, tried in order
        fields: Caller-facing input keys
        append_only: Ledger tables refuse create/update/delete through the store
        description: Human-readable description
    """

    name: str
    table: str
    header: tuple[str, ...]
    roles: Mapping[ColumnRole, tuple[str, ...]] = dataclass_field(default_factory=dict)
    fields: tuple[FieldBinding, ...] = ()
    append_only: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Collection name cannot be empty")
        if not self.table:
            raise ValueError(f"Collection '{self.name}' needs a physical table name")
        keys = [f.key for f in self.fields]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Duplicate field key in collection '{self.name}'")

    def get_field(self, key: str) -> Optional[FieldBinding]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    @property
    def field_keys(self) -> list[str]:
        return [f.key for f in self.fields]

    @property
    def required_keys(self) -> list[str]:
        return [f.key for f in self.fields if f.required]

    @property
    def has_stock(self) -> bool:
        """Whether the collection declares received/issued counters."""
        return ColumnRole.RECEIVED in self.roles and ColumnRole.ISSUED in self.roles

    def with_table(self, table: str) -> CollectionDef:
        """Copy of this definition stored under another physical table."""
        return replace(self, table=table)


@dataclass(frozen=True)
class TableSchema:
    """Header of a table as discovered from row 0.

    Attributes:
        columns: Trimmed column names in physical order
        positions: Column name -> index (last occurrence wins)
        duplicates: Names that occur more than once in the header
    """

    columns: tuple[str, ...] = ()
    positions: Mapping[str, int] = dataclass_field(default_factory=dict)
    duplicates: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.columns

    @property
    def width(self) -> int:
        return len(self.columns)

    def index_of(self, name: str) -> int:
        """Index of a column by exact name, or -1 when absent."""
        return self.positions.get(name, -1)

    def __contains__(self, name: object) -> bool:
        return name in self.positions


@dataclass(frozen=True)
class ColumnMap:
    """A collection bound to the schema of its table.

    Built once per collection by SchemaResolver.bind and shared by every
    engine operation until the schema is refreshed.
    """

    collection: CollectionDef
    schema: TableSchema
    role_indices: Mapping[ColumnRole, int] = dataclass_field(default_factory=dict)
    field_indices: Mapping[str, int] = dataclass_field(default_factory=dict)

    @property
    def table(self) -> str:
        return self.collection.table

    def index(self, role: ColumnRole) -> int:
        """Column index for a role, or -1 when the table lacks it."""
        return self.role_indices.get(role, -1)

    def has(self, role: ColumnRole) -> bool:
        return self.index(role) >= 0

    def header(self, role: ColumnRole) -> Optional[str]:
        """The header name a role resolved to, if any."""
        index = self.index(role)
        return self.schema.columns[index] if index >= 0 else None

    def field_index(self, key: str) -> int:
        return self.field_indices.get(key, -1)

    def require(self, role: ColumnRole) -> int:
        """Column index for a role the operation cannot work without.

        Raises:
            ConfigurationError: If the table has no such column
        """
        index = self.index(role)
        if index < 0:
            aliases = self.collection.roles.get(role, ())
            raise ConfigurationError(
                f"Table '{self.table}' has no {role.value} column "
                f"(expected one of: {', '.join(aliases) or role.value})",
                table=self.table,
                column=aliases[0] if aliases else role.value,
            )
        return index

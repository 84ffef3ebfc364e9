"""
Schema resolution for sheetledger tables.

The header row of a table is the only schema the store has. The resolver
reads it into a TableSchema and binds a CollectionDef to it, producing
the ColumnMap every engine operation works from.

Invariants:
    - resolve() never raises, whatever the header looks like
    - bind() raises only when the ID column, or a declared LABEL column,
      is missing from a non-empty header
    - An empty header binds to a map where every role is -1

How to change safely:
    - Header drift is handled with role aliases in CollectionDef, not here
    - Keep last-occurrence-wins for duplicates; existing tables depend on it
"""

from __future__ import annotations

import logging
from typing import Dict, Sequence

from ..errors import ConfigurationError
from ..storage.base import Cell, cell_text
from .types import CollectionDef, ColumnMap, ColumnRole, TableSchema

logger = logging.getLogger(__name__)

ID_HEADER = "id"


class SchemaResolver:
    """Turns header rows into schemas and column maps.

    Example:
        >>> resolver = SchemaResolver()
        >>> schema = resolver.resolve(["Id", " Product ", "Status"])
        >>> schema.index_of("Product")
        1
        >>> schema.index_of("Price")
        -1
    """

    def resolve(self, header_row: Sequence[Cell], table: str = "") -> TableSchema:
        """Build a TableSchema from a header row.

        Args:
            header_row: Row 0 of the table (may be empty)
            table: Table name, used only in log messages

        Returns:
            TableSchema with trimmed names; blank header cells keep their
            position but are not addressable by name
        """
        columns = tuple(cell_text(value) for value in header_row)
        positions: Dict[str, int] = {}
        duplicates: list[str] = []

        for index, name in enumerate(columns):
            if not name:
                continue
            if name in positions and name not in duplicates:
                duplicates.append(name)
            positions[name] = index

        if duplicates:
            logger.warning(
                f"Duplicate header names in table '{table}': {', '.join(duplicates)}. "
                "Using the last occurrence of each."
            )

        # Trailing blank header cells are not columns
        while columns and not columns[-1]:
            columns = columns[:-1]

        return TableSchema(
            columns=columns,
            positions=positions,
            duplicates=tuple(duplicates),
        )

    def bind(self, collection: CollectionDef, schema: TableSchema) -> ColumnMap:
        """Bind a collection definition to a discovered schema.

        Raises:
            ConfigurationError: If the ID column, or the LABEL column of a
                collection that declares one, is missing
        """
        role_indices: Dict[ColumnRole, int] = {}

        if not schema.is_empty:
            for role, aliases in collection.roles.items():
                index = self._find_role(role, aliases, schema)
                if index >= 0:
                    role_indices[role] = index

            if ColumnRole.ID not in role_indices:
                raise ConfigurationError(
                    f"Table '{collection.table}' has no 'Id' column",
                    table=collection.table,
                    column="Id",
                )

            if ColumnRole.LABEL in collection.roles and ColumnRole.LABEL not in role_indices:
                aliases = collection.roles[ColumnRole.LABEL]
                raise ConfigurationError(
                    f"Table '{collection.table}' has no label column "
                    f"(expected one of: {', '.join(aliases)})",
                    table=collection.table,
                    column=aliases[0] if aliases else None,
                )

        field_indices: Dict[str, int] = {}
        for f in collection.fields:
            if f.role is not None:
                field_indices[f.key] = role_indices.get(f.role, -1)
            else:
                field_indices[f.key] = schema.index_of(f.header)

        column_map = ColumnMap(
            collection=collection,
            schema=schema,
            role_indices=role_indices,
            field_indices=field_indices,
        )

        missing = [f.key for f in collection.fields if field_indices[f.key] < 0]
        if missing and not schema.is_empty:
            logger.debug(
                "Collection fields without a column",
                extra={"collection": collection.name, "fields": missing},
            )

        return column_map

    @staticmethod
    def _find_role(role: ColumnRole, aliases: Sequence[str], schema: TableSchema) -> int:
        if role == ColumnRole.ID:
            found = -1
            for index, name in enumerate(schema.columns):
                if name.lower() == ID_HEADER:
                    found = index
            return found

        for alias in aliases:
            index = schema.index_of(alias)
            if index >= 0:
                return index
        return -1

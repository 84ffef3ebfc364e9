"""
Schema module for sheetledger.

This module provides the typed layer between header rows and the engine:
- Collection definitions (CollectionDef, FieldBinding, ColumnRole)
- The schema resolver (header row -> TableSchema -> ColumnMap)
- The collection registry (logical name -> definition)

Invariants:
    - The header row of a table is its schema
    - The engine addresses columns by role or field key, never by raw header
    - Identifier and label columns are mandatory; everything else may drift

How to change safely:
    - Add columns at the end of default headers
    - Keep old header names as role aliases
"""

from .collections import (
    ARTICLES,
    COMMENTS,
    DECOR,
    DEFAULT_COLLECTIONS,
    FOOD,
    HISTORY,
    STATIONERY,
    STOCK_COLLECTIONS,
    USERS,
    default_collections,
)
from .registry import (
    CollectionRegistry,
    DuplicateRegistrationError,
    RegistryFrozenError,
)
from .resolver import SchemaResolver
from .types import (
    CollectionDef,
    ColumnMap,
    ColumnRole,
    FieldBinding,
    FieldKind,
    TableSchema,
    as_bool,
    as_number,
    binding,
    coerce_bool,
    coerce_date,
    coerce_number,
)

__all__ = [
    # Types
    "CollectionDef",
    "ColumnMap",
    "ColumnRole",
    "FieldBinding",
    "FieldKind",
    "TableSchema",
    "binding",
    "as_bool",
    "as_number",
    "coerce_bool",
    "coerce_date",
    "coerce_number",
    # Resolver
    "SchemaResolver",
    # Registry
    "CollectionRegistry",
    "DuplicateRegistrationError",
    "RegistryFrozenError",
    # Collections
    "ARTICLES",
    "FOOD",
    "DECOR",
    "STATIONERY",
    "USERS",
    "COMMENTS",
    "HISTORY",
    "STOCK_COLLECTIONS",
    "DEFAULT_COLLECTIONS",
    "default_collections",
]

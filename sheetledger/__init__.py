"""
sheetledger - inventory tracking on top of a spreadsheet-shaped table store.

Every collection (articles, food, decor, stationery, users, comments,
history) lives in its own table whose first row is the schema. One generic
engine provides create/read/update/soft-delete/withdraw for all of them,
keeps derived columns literal, and appends an audit entry for every mutation.

Architecture:
    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │  Controller  │────▶│ InventoryService │────▶│   TableStore     │
    │  (external)  │     │ (result dicts)   │     │   (engine)       │
    └──────────────┘     └────────┬─────────┘     └────────┬─────────┘
                                  │                        │
                                  ▼                        ▼
                         ┌──────────────────┐     ┌──────────────────┐
                         │  CommentEngine   │────▶│   AuditLedger    │
                         └──────────────────┘     └────────┬─────────┘
                                                           │
                        ┌──────────────────────────────────┘
                        ▼
               ┌──────────────────────────────────────────────┐
               │ TableBackend (SQLite cell grid / in-memory)  │
               └──────────────────────────────────────────────┘

Invariants:
    - Row 0 of every table is its header; schemas are discovered from it
    - Every managed table has exactly one "Id" column (case-insensitive)
    - Available units always equal received minus issued after a write
    - Audit logging never fails the mutation it describes
    - Writers to one table are serialised by a per-table lock

How to change safely:
    - New collections are added in schema/collections.py, not in the engine
    - Header renames need a new alias on the collection role, not a code change
    - Keep the ledger append-only; never add update paths for History
"""

from ._version import __version__

__all__ = ["__version__"]

"""
Tabular store engine for sheetledger.

This module provides the operations shared by every collection:
- Identifier allocation and row lookup
- CRUD with soft delete, withdraw and bulk deactivation
- The audit ledger every mutation appends to
- The comment/notification lifecycle

Invariants:
    - Derived columns are literal values recomputed on every write
    - Writers are serialised per table
    - Audit failures never fail a mutation

How to change safely:
    - New operations must audit through AuditLedger.append
    - Keep the lock order: subject table, then the ledger
"""

from .allocator import IdAllocator, max_id, parse_id
from .audit import AuditEntry, AuditLedger
from .comments import Comment, CommentEngine, CommentState
from .locator import RowLocator, normalize_id
from .locks import TableLocks
from .records import (
    ACTIVE,
    DEACTIVATED,
    BulkResult,
    MutationReceipt,
    Record,
    storage_days,
    utc_now,
)
from .store import TableStore

__all__ = [
    # Leaves
    "IdAllocator",
    "RowLocator",
    "TableLocks",
    "max_id",
    "parse_id",
    "normalize_id",
    # Records
    "Record",
    "MutationReceipt",
    "BulkResult",
    "ACTIVE",
    "DEACTIVATED",
    "storage_days",
    "utc_now",
    # Engines
    "TableStore",
    "AuditEntry",
    "AuditLedger",
    "Comment",
    "CommentEngine",
    "CommentState",
]

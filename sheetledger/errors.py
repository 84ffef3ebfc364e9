"""
Error types for sheetledger.

This module defines every exception the engine raises:
- SheetLedgerError: Base exception
- ConfigurationError: Table or mandatory column missing
- ValidationError: Missing or invalid caller input
- NotFoundError: Identifier does not resolve
- InsufficientStockError: Withdraw precondition violated
- StorageUnavailableError: Transient storage failure

Invariants:
    - All errors inherit from SheetLedgerError
    - Errors carry a stable code for programmatic handling
    - Only StorageUnavailableError is retryable
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SheetLedgerError(Exception):
    """Base exception for all sheetledger errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
        retryable: Whether the caller may retry with backoff
    """

    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SHEETLEDGER_ERROR"
        self.details = details or {}


class ConfigurationError(SheetLedgerError):
    """A table or a mandatory column is missing.

    Raised when:
    - The physical table for a collection does not exist
    - The identifier column is absent from the header
    - The primary label column is absent from the header
    - A write targets an append-only table
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        column: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"table": table, "column": column},
        )
        self.table = table
        self.column = column


class ValidationError(SheetLedgerError):
    """Caller input failed validation.

    Raised when:
    - A mandatory field is missing on create
    - A field is unknown or not editable
    - A value cannot be coerced to the column's kind
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class NotFoundError(SheetLedgerError):
    """Identifier does not resolve to a row."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InsufficientStockError(SheetLedgerError):
    """Withdraw quantity is not positive or exceeds the available units.

    Attributes:
        requested: Quantity the caller asked for
        available: Units available when the request was evaluated
    """

    def __init__(
        self,
        message: str,
        requested: Any,
        available: float,
    ) -> None:
        super().__init__(
            message,
            code="INSUFFICIENT_STOCK",
            details={"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class StorageUnavailableError(SheetLedgerError):
    """The storage backend failed transiently or timed out.

    The engine never retries on its own; callers should retry with backoff.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="STORAGE_UNAVAILABLE",
            details={"operation": operation},
        )
        self.operation = operation

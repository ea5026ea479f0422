"""
Error types for the reconciliation engine.

Every error carries a stable code for clients, a human readable message and
the HTTP status the API layer should answer with.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Import errors
    NO_TRANSACTIONS_FOUND = "NO_TRANSACTIONS_FOUND"
    DUPLICATE_FILE = "DUPLICATE_FILE"
    IMPORT_ERROR = "IMPORT_ERROR"

    # Lookups
    STATEMENT_NOT_FOUND = "STATEMENT_NOT_FOUND"
    LINE_NOT_FOUND = "LINE_NOT_FOUND"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"

    # Integrity violations
    LINE_ALREADY_RECONCILED = "LINE_ALREADY_RECONCILED"
    LINE_IGNORED = "LINE_IGNORED"
    LINE_NOT_RECONCILED = "LINE_NOT_RECONCILED"
    TRANSACTION_ALREADY_MATCHED = "TRANSACTION_ALREADY_MATCHED"


class ReconciliationError(Exception):
    """Base exception with structured error info."""

    status_code: int = 400

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "success": False,
            "error": self.code.value,
            "message": self.message,
        }
        if self.context:
            result["context"] = self.context
        return result


class NoTransactionsFound(ReconciliationError):
    """The file parsed cleanly but yielded no usable bank lines."""

    status_code = 422

    def __init__(self, skipped_count: int = 0):
        super().__init__(
            code=ErrorCode.NO_TRANSACTIONS_FOUND,
            message="No transactions could be parsed from the file",
            context={"skipped_rows": skipped_count},
        )


class DuplicateFileError(ReconciliationError):
    """Byte-identical content was already imported."""

    status_code = 409

    def __init__(self, file_hash: str, existing_statement_id: Optional[int] = None):
        context: Dict[str, Any] = {"file_hash": file_hash}
        if existing_statement_id is not None:
            context["statement_id"] = existing_statement_id
        super().__init__(
            code=ErrorCode.DUPLICATE_FILE,
            message="This file has already been imported",
            context=context,
        )


class ImportFailed(ReconciliationError):
    """Unreadable input or unexpected failure while importing."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(code=ErrorCode.IMPORT_ERROR, message=detail)


class StatementNotFound(ReconciliationError):
    status_code = 404

    def __init__(self, statement_id: int):
        super().__init__(
            code=ErrorCode.STATEMENT_NOT_FOUND,
            message=f"Bank statement {statement_id} not found",
            context={"statement_id": statement_id},
        )


class LineNotFound(ReconciliationError):
    status_code = 404

    def __init__(self, line_id: int):
        super().__init__(
            code=ErrorCode.LINE_NOT_FOUND,
            message=f"Bank transaction line {line_id} not found",
            context={"line_id": line_id},
        )


class TransactionNotFound(ReconciliationError):
    status_code = 404

    def __init__(self, transaction_id: int):
        super().__init__(
            code=ErrorCode.TRANSACTION_NOT_FOUND,
            message=f"Accounting transaction {transaction_id} not found",
            context={"transaction_id": transaction_id},
        )


class LineAlreadyReconciled(ReconciliationError):
    status_code = 409

    def __init__(self, line_id: int, matched_transaction_id: Optional[int]):
        super().__init__(
            code=ErrorCode.LINE_ALREADY_RECONCILED,
            message=f"Bank transaction line {line_id} is already reconciled",
            context={
                "line_id": line_id,
                "matched_transaction_id": matched_transaction_id,
            },
        )


class LineIgnored(ReconciliationError):
    status_code = 409

    def __init__(self, line_id: int):
        super().__init__(
            code=ErrorCode.LINE_IGNORED,
            message=f"Bank transaction line {line_id} is marked as ignored",
            context={"line_id": line_id},
        )


class LineNotReconciled(ReconciliationError):
    status_code = 409

    def __init__(self, line_id: int):
        super().__init__(
            code=ErrorCode.LINE_NOT_RECONCILED,
            message=f"Bank transaction line {line_id} has no match to undo",
            context={"line_id": line_id},
        )


class TransactionAlreadyMatched(ReconciliationError):
    status_code = 409

    def __init__(self, transaction_id: int, line_id: int):
        super().__init__(
            code=ErrorCode.TRANSACTION_ALREADY_MATCHED,
            message=(
                f"Accounting transaction {transaction_id} is already matched "
                f"to bank line {line_id}"
            ),
            context={"transaction_id": transaction_id, "line_id": line_id},
        )

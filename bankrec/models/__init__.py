"""Data models for the bank reconciliation engine."""

from .enums import (
    StatementStatus,
    TransactionType,
    ReconciliationState,
    MatchCategory,
    VoucherType,
    PaymentStatus,
    AuditAction,
    COUNTERPART_VOUCHER,
)
from .transaction import (
    ParsedLine,
    BankLine,
    AccountingTransaction,
    Party,
    MatchCandidate,
)
from .reconciliation import (
    MatchAssignment,
    UnmatchedLine,
    AutoMatchResult,
    ReconciliationStatusSummary,
    StatementSummary,
    StatementDetails,
    AuditEntry,
    ImportResult,
)

__all__ = [
    # Enums
    "StatementStatus",
    "TransactionType",
    "ReconciliationState",
    "MatchCategory",
    "VoucherType",
    "PaymentStatus",
    "AuditAction",
    "COUNTERPART_VOUCHER",
    # Transactions
    "ParsedLine",
    "BankLine",
    "AccountingTransaction",
    "Party",
    "MatchCandidate",
    # Reconciliation
    "MatchAssignment",
    "UnmatchedLine",
    "AutoMatchResult",
    "ReconciliationStatusSummary",
    "StatementSummary",
    "StatementDetails",
    "AuditEntry",
    "ImportResult",
]

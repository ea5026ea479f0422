"""Enumerations for the bank reconciliation engine."""

from enum import Enum


class StatementStatus(str, Enum):
    """
    Lifecycle of an imported bank statement.

    IMPORTED: Stored, no line reconciled yet
    PROCESSING: Auto-matcher is running over the statement
    PARTIALLY_RECONCILED: Some lines reconciled, some still open
    RECONCILED: Every line is reconciled or ignored
    """
    IMPORTED = "imported"
    PROCESSING = "processing"
    PARTIALLY_RECONCILED = "partially_reconciled"
    RECONCILED = "reconciled"


class TransactionType(str, Enum):
    """Direction of a bank line."""
    DEBIT = "debit"        # Money out (payment made)
    CREDIT = "credit"      # Money in (payment received)


class ReconciliationState(str, Enum):
    """Reconciliation state of a single bank line."""
    UNRECONCILED = "unreconciled"
    RECONCILED = "reconciled"
    IGNORED = "ignored"


class MatchCategory(str, Enum):
    """How a reconciled line got its match."""
    AUTO = "auto"
    MANUAL = "manual"


class VoucherType(str, Enum):
    """Voucher type of an accounting transaction."""
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"
    RECEIPT = "receipt"
    PAYMENT = "payment"


class PaymentStatus(str, Enum):
    """Settlement status of an accounting transaction."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class AuditAction(str, Enum):
    """Type of audit action."""
    STATEMENT_IMPORTED = "STATEMENT_IMPORTED"
    STATEMENT_DELETED = "STATEMENT_DELETED"
    AUTO_MATCH = "AUTO_MATCH"
    MANUAL_MATCH = "MANUAL_MATCH"
    UNMATCH = "UNMATCH"
    IGNORE = "IGNORE"


# Bank line direction -> voucher type that settles it
COUNTERPART_VOUCHER = {
    TransactionType.CREDIT: VoucherType.SALE,
    TransactionType.DEBIT: VoucherType.PURCHASE,
}

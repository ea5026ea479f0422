"""Transaction models for the bank reconciliation engine."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List, Dict, Any

from .enums import (
    MatchCategory,
    PaymentStatus,
    ReconciliationState,
    TransactionType,
    VoucherType,
)


@dataclass
class ParsedLine:
    """
    Canonical bank line produced by the statement parser.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    """
    transaction_date: Optional[date]
    description: str
    amount_cents: int
    transaction_type: TransactionType
    balance_cents: Optional[int] = None

    # Where the row came from
    source_row: Optional[int] = None
    raw_data: List[str] = field(default_factory=list)

    @property
    def amount(self) -> float:
        """Return amount in standard units."""
        return self.amount_cents / 100.0

    @property
    def balance(self) -> Optional[float]:
        if self.balance_cents is None:
            return None
        return self.balance_cents / 100.0


@dataclass
class BankLine:
    """Detached view of a stored bank transaction line."""
    id: int
    statement_id: int
    transaction_date: Optional[date]
    description: str
    amount_cents: int
    transaction_type: TransactionType
    balance_cents: Optional[int] = None
    state: ReconciliationState = ReconciliationState.UNRECONCILED
    matched_transaction_id: Optional[int] = None
    category: Optional[MatchCategory] = None
    match_confidence: Optional[float] = None

    @property
    def amount(self) -> float:
        return self.amount_cents / 100.0

    @property
    def is_reconciled(self) -> bool:
        return self.state == ReconciliationState.RECONCILED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "statement_id": self.statement_id,
            "transaction_date": self.transaction_date.isoformat() if self.transaction_date else None,
            "description": self.description,
            "amount": self.amount,
            "type": self.transaction_type.value,
            "balance": self.balance_cents / 100.0 if self.balance_cents is not None else None,
            "state": self.state.value,
            "is_reconciled": self.is_reconciled,
            "matched_transaction_id": self.matched_transaction_id,
            "category": self.category.value if self.category else None,
            "match_confidence": self.match_confidence,
        }


@dataclass
class AccountingTransaction:
    """
    Recorded sale/purchase owned by the bookkeeping ledger.
    Read-only here except for payment_status.
    """
    id: int
    voucher_type: VoucherType
    transaction_date: date
    total_amount_cents: int
    voucher_no: Optional[str] = None
    party_id: Optional[int] = None
    party_name: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    @property
    def total_amount(self) -> float:
        return self.total_amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "voucher_type": self.voucher_type.value,
            "voucher_no": self.voucher_no,
            "date": self.transaction_date.isoformat(),
            "total_amount": self.total_amount,
            "party_id": self.party_id,
            "party_name": self.party_name,
            "payment_status": self.payment_status.value,
        }


@dataclass
class Party:
    """Entry of the party (customer/vendor) registry."""
    id: int
    name: str
    party_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.party_type}


@dataclass
class MatchCandidate:
    """
    A potential match between a bank line and an accounting transaction.
    Ephemeral: built, scored and ranked inside a single matcher run.
    """
    line: BankLine
    transaction: AccountingTransaction

    amount_delta_cents: int = 0
    date_delta_days: int = 0

    # Scores
    amount_score: float = 0.0  # 0-1
    date_score: float = 0.0    # 0-1
    combined_score: float = 0.0

    def calculate_combined_score(
        self,
        amount_weight: float = 0.6,
        date_weight: float = 0.4,
    ) -> float:
        """Calculate weighted combined score."""
        self.combined_score = (
            self.amount_score * amount_weight +
            self.date_score * date_weight
        )
        return self.combined_score

    def rank_key(self) -> tuple:
        """Sort key: best score, then smallest amount delta, then lowest id."""
        return (-round(self.combined_score, 9), self.amount_delta_cents, self.transaction.id)

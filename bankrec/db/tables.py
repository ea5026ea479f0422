"""
ORM table mappings.

bank_statements / bank_transactions / audit_logs are owned by the engine.
transactions / parties belong to the bookkeeping core; they are mapped here so
the default ledger and party registry can share the matcher's session.
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..models import (
    MatchCategory,
    PaymentStatus,
    ReconciliationState,
    StatementStatus,
    TransactionType,
    VoucherType,
)
from .base import Base


def _enum_column(enum_cls):
    """Store enum values (not names) as plain strings."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class BankStatementRow(Base):
    """One imported statement file."""

    __tablename__ = "bank_statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    import_date: Mapped[date] = mapped_column(Date, nullable=False)
    statement_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_credits_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_debits_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[StatementStatus] = mapped_column(
        _enum_column(StatementStatus),
        nullable=False,
        default=StatementStatus.IMPORTED,
    )
    bank_format: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    lines: Mapped[List["BankTransactionRow"]] = relationship(
        back_populates="statement",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BankTransactionRow.id",
    )


class BankTransactionRow(Base):
    """One parsed statement line."""

    __tablename__ = "bank_transactions"
    __table_args__ = (
        # An accounting transaction can be the target of at most one line
        UniqueConstraint("matched_transaction_id", name="uq_bank_transactions_matched_txn"),
        Index("ix_bank_transactions_statement_state", "statement_id", "state"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    statement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("bank_statements.id", ondelete="CASCADE"),
        nullable=False,
    )
    transaction_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        "type", _enum_column(TransactionType), nullable=False
    )
    balance_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    state: Mapped[ReconciliationState] = mapped_column(
        _enum_column(ReconciliationState),
        nullable=False,
        default=ReconciliationState.UNRECONCILED,
    )
    matched_transaction_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category: Mapped[Optional[MatchCategory]] = mapped_column(
        _enum_column(MatchCategory), nullable=True
    )
    match_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    statement: Mapped[BankStatementRow] = relationship(back_populates="lines")

    @property
    def is_reconciled(self) -> bool:
        return self.state == ReconciliationState.RECONCILED


class AuditLogRow(Base):
    """Append-only audit trail."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    old_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)


class PartyRow(Base):
    """Customer / vendor registry (bookkeeping core)."""

    __tablename__ = "parties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    party_type: Mapped[Optional[str]] = mapped_column("type", String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AccountingTransactionRow(Base):
    """Recorded sale / purchase voucher (bookkeeping core)."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    voucher_type: Mapped[VoucherType] = mapped_column(_enum_column(VoucherType), nullable=False)
    voucher_no: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    transaction_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    party_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("parties.id"), nullable=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    party: Mapped[Optional[PartyRow]] = relationship()

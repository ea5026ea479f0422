"""Persistence layer: SQLAlchemy engine, session scope and table mappings."""

from .base import Base
from .engine import Database
from .tables import (
    AccountingTransactionRow,
    AuditLogRow,
    BankStatementRow,
    BankTransactionRow,
    PartyRow,
)

__all__ = [
    "Base",
    "Database",
    "AccountingTransactionRow",
    "AuditLogRow",
    "BankStatementRow",
    "BankTransactionRow",
    "PartyRow",
]

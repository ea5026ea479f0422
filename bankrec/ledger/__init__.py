"""Seams to the bookkeeping core: accounting transactions and parties."""

from .interface import AccountingLedger, PartyRegistry
from .sql import SqlAccountingLedger, SqlPartyRegistry

__all__ = [
    "AccountingLedger",
    "PartyRegistry",
    "SqlAccountingLedger",
    "SqlPartyRegistry",
]

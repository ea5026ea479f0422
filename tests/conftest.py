"""
Shared fixtures: a fresh SQLite database per test plus ledger seeding helpers.
"""

from datetime import date
from typing import Optional

import pytest
from sqlalchemy import func, select

from bankrec.config import Settings
from bankrec.db import Database
from bankrec.db.tables import AccountingTransactionRow, BankTransactionRow, PartyRow
from bankrec.ingestion import DuplicateImportGuard, StatementParser, detect_format
from bankrec.models import PaymentStatus, VoucherType
from bankrec.store import StatementStore


STATEMENT_HEADER = "Date,Description,Amount,Type,Balance"


class LedgerSeeder:
    """Writes bookkeeping-side rows (parties, vouchers) for a test."""

    def __init__(self, database: Database):
        self.database = database

    def party(self, name: str, party_type: str = "customer", is_active: bool = True) -> int:
        with self.database.session_scope() as session:
            row = PartyRow(name=name, party_type=party_type, is_active=is_active)
            session.add(row)
            session.flush()
            return row.id

    def transaction(
        self,
        voucher_type: VoucherType,
        transaction_date: date,
        amount_cents: int,
        party_id: Optional[int] = None,
        voucher_no: Optional[str] = None,
        payment_status: PaymentStatus = PaymentStatus.UNPAID,
        is_active: bool = True,
    ) -> int:
        with self.database.session_scope() as session:
            row = AccountingTransactionRow(
                voucher_type=voucher_type,
                voucher_no=voucher_no,
                transaction_date=transaction_date,
                total_amount_cents=amount_cents,
                party_id=party_id,
                payment_status=payment_status,
                is_active=is_active,
            )
            session.add(row)
            session.flush()
            return row.id

    def payment_status(self, transaction_id: int) -> PaymentStatus:
        with self.database.session_scope() as session:
            return session.get(AccountingTransactionRow, transaction_id).payment_status

    def line_count(self) -> int:
        with self.database.session_scope() as session:
            return session.scalar(select(func.count(BankTransactionRow.id)))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'bankrec.db'}",
        reports_dir=tmp_path / "reports",
    )


@pytest.fixture
def database(settings):
    db = Database(settings=settings)
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def ledger(database):
    return LedgerSeeder(database)


@pytest.fixture
def store(database, settings):
    return StatementStore(database, settings=settings)


@pytest.fixture
def make_statement(store, settings):
    """Store a statement built from CSV rows; returns its id."""
    parser = StatementParser(settings)

    def _make(*rows: str, file_name: str = "statement.csv") -> int:
        content = "\n".join((STATEMENT_HEADER,) + rows) + "\n"
        parse_result = parser.parse(content, detect_format(content, file_name))
        file_hash = DuplicateImportGuard.fingerprint(content.encode("utf-8"))
        return store.save_statement(file_name, file_hash, parse_result, "DEFAULT")

    return _make

"""SQLAlchemy-backed ledger and party registry."""

from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.tables import AccountingTransactionRow, PartyRow
from ..exceptions import TransactionNotFound
from ..models import AccountingTransaction, Party, PaymentStatus, VoucherType
from .interface import AccountingLedger, PartyRegistry


def _to_transaction(row: AccountingTransactionRow) -> AccountingTransaction:
    return AccountingTransaction(
        id=row.id,
        voucher_type=row.voucher_type,
        voucher_no=row.voucher_no,
        transaction_date=row.transaction_date,
        total_amount_cents=row.total_amount_cents,
        party_id=row.party_id,
        party_name=row.party.name if row.party else None,
        payment_status=row.payment_status,
    )


class SqlAccountingLedger(AccountingLedger):
    """Ledger reading the `transactions` table in the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def find_open_transactions(
        self,
        voucher_type: VoucherType,
        start_date: date,
        end_date: date,
    ) -> List[AccountingTransaction]:
        rows = self.session.scalars(
            select(AccountingTransactionRow)
            .where(
                AccountingTransactionRow.voucher_type == voucher_type,
                AccountingTransactionRow.is_active.is_(True),
                AccountingTransactionRow.payment_status != PaymentStatus.PAID,
                AccountingTransactionRow.transaction_date.between(start_date, end_date),
            )
            .order_by(AccountingTransactionRow.id)
        )
        return [_to_transaction(row) for row in rows]

    def get_transaction(self, transaction_id: int) -> Optional[AccountingTransaction]:
        row = self.session.get(AccountingTransactionRow, transaction_id)
        return _to_transaction(row) if row else None

    def update_payment_status(self, transaction_id: int, status: PaymentStatus) -> None:
        row = self.session.get(AccountingTransactionRow, transaction_id)
        if row is None:
            raise TransactionNotFound(transaction_id)
        row.payment_status = status


class SqlPartyRegistry(PartyRegistry):
    """Party registry reading the `parties` table."""

    def __init__(self, session: Session):
        self.session = session

    def list_active(self) -> List[Party]:
        rows = self.session.scalars(
            select(PartyRow).where(PartyRow.is_active.is_(True)).order_by(PartyRow.id)
        )
        return [Party(id=r.id, name=r.name, party_type=r.party_type) for r in rows]


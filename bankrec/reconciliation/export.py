"""CSV projection of reconciled lines joined with their accounting transactions."""

import csv
import io
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import aliased

from ..config import Settings, get_settings
from ..db import Database
from ..db.tables import AccountingTransactionRow, BankStatementRow, BankTransactionRow, PartyRow
from ..exceptions import StatementNotFound
from ..models import ReconciliationState

logger = structlog.get_logger()

EXPORT_HEADER = [
    "Bank Date",
    "Description",
    "Bank Amount",
    "Type",
    "Voucher No",
    "Txn Date",
    "Party",
    "Txn Amount",
]


def _money(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    return f"{cents / 100:.2f}"


def export_matched_csv(database: Database, statement_id: int) -> str:
    """
    Reconciled lines of a statement as CSV text, ordered by bank date.

    Raises:
        StatementNotFound: if the id is unknown
    """
    party = aliased(PartyRow)
    query = (
        select(BankTransactionRow, AccountingTransactionRow, party.name)
        .join(
            AccountingTransactionRow,
            AccountingTransactionRow.id == BankTransactionRow.matched_transaction_id,
        )
        .outerjoin(party, party.id == AccountingTransactionRow.party_id)
        .where(
            BankTransactionRow.statement_id == statement_id,
            BankTransactionRow.state == ReconciliationState.RECONCILED,
        )
        .order_by(BankTransactionRow.transaction_date, BankTransactionRow.id)
    )

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)

    with database.session_scope() as session:
        if session.get(BankStatementRow, statement_id) is None:
            raise StatementNotFound(statement_id)

        count = 0
        for line, txn, party_name in session.execute(query):
            writer.writerow([
                line.transaction_date.isoformat() if line.transaction_date else "",
                line.description,
                _money(line.amount_cents),
                line.transaction_type.value,
                txn.voucher_no or "",
                txn.transaction_date.isoformat(),
                party_name or "",
                _money(txn.total_amount_cents),
            ])
            count += 1

    logger.info("Matched transactions exported", statement_id=statement_id, rows=count)
    return buffer.getvalue()


def write_matched_csv(
    database: Database,
    statement_id: int,
    output_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> Path:
    """Write the export to disk, by default under the reports directory."""
    settings = settings or get_settings()
    if output_path is None:
        output_path = Path(settings.reports_dir) / f"statement_{statement_id}_matched.csv"

    content = export_matched_csv(database, statement_id)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding="utf-8")
    return output_path

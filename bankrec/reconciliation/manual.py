"""
Manual reconciliation: operator-driven match, unmatch and ignore.

Each operation runs in one transaction; a rejected request changes nothing.
"""

from typing import Callable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import Database
from ..db.tables import BankTransactionRow
from ..exceptions import (
    LineAlreadyReconciled,
    LineIgnored,
    LineNotFound,
    LineNotReconciled,
    TransactionAlreadyMatched,
    TransactionNotFound,
)
from ..ledger import AccountingLedger, SqlAccountingLedger
from ..models import (
    AuditAction,
    AuditEntry,
    BankLine,
    MatchCategory,
    PaymentStatus,
    ReconciliationState,
)
from ..store import StatementStore, to_bank_line
from ..utils.audit_logger import AuditLogger
from .auto_matcher import LINE_ENTITY
from .scoring import compute_confidence, settlement_status

logger = structlog.get_logger()

MATCH_ACTIONS = (AuditAction.AUTO_MATCH, AuditAction.MANUAL_MATCH)


class ManualReconciliation:
    """Operator actions on single bank lines."""

    def __init__(
        self,
        database: Database,
        ledger_factory: Callable[[Session], AccountingLedger] = SqlAccountingLedger,
        audit: Optional[AuditLogger] = None,
        store: Optional[StatementStore] = None,
    ):
        self.database = database
        self.ledger_factory = ledger_factory
        self.audit = audit or AuditLogger()
        self.store = store or StatementStore(database, audit=self.audit)

    def match(
        self,
        line_id: int,
        transaction_id: int,
        performed_by: Optional[str] = None,
    ) -> BankLine:
        """
        Link a bank line to an accounting transaction.

        Raises:
            LineNotFound, TransactionNotFound: unknown ids
            LineAlreadyReconciled: the line already has a match
            LineIgnored: the line was set aside
            TransactionAlreadyMatched: another line holds the transaction
        """
        with self.database.session_scope() as session:
            row = self._get_line(session, line_id)
            if row.state == ReconciliationState.RECONCILED:
                raise LineAlreadyReconciled(line_id, row.matched_transaction_id)
            if row.state == ReconciliationState.IGNORED:
                raise LineIgnored(line_id)

            ledger = self.ledger_factory(session)
            transaction = ledger.get_transaction(transaction_id)
            if transaction is None:
                raise TransactionNotFound(transaction_id)

            holder = session.scalar(
                select(BankTransactionRow.id)
                .where(BankTransactionRow.matched_transaction_id == transaction_id)
            )
            if holder is not None:
                raise TransactionAlreadyMatched(transaction_id, holder)

            confidence = compute_confidence(row.amount_cents, transaction.total_amount_cents)
            new_status = settlement_status(row.amount_cents, transaction.total_amount_cents)

            row.state = ReconciliationState.RECONCILED
            row.matched_transaction_id = transaction_id
            row.category = MatchCategory.MANUAL
            row.match_confidence = confidence
            ledger.update_payment_status(transaction_id, new_status)

            self.audit.record(
                session,
                AuditAction.MANUAL_MATCH,
                LINE_ENTITY,
                line_id,
                user=performed_by,
                old_value={
                    "state": ReconciliationState.UNRECONCILED.value,
                    "matched_transaction_id": None,
                    "payment_status": transaction.payment_status.value,
                },
                new_value={
                    "state": ReconciliationState.RECONCILED.value,
                    "matched_transaction_id": transaction_id,
                    "category": MatchCategory.MANUAL.value,
                    "match_confidence": confidence,
                    "payment_status": new_status.value,
                },
            )
            session.flush()
            self.store.refresh_status(session, row.statement)
            line = to_bank_line(row)

        logger.info("Manual match", line_id=line_id, transaction_id=transaction_id)
        return line

    def unmatch(self, line_id: int, performed_by: Optional[str] = None) -> BankLine:
        """
        Return a reconciled or ignored line to the open pool.

        The accounting transaction gets back the payment status it had
        before the reversed match.

        Raises:
            LineNotFound: unknown id
            LineNotReconciled: the line is already open
        """
        with self.database.session_scope() as session:
            row = self._get_line(session, line_id)
            if row.state == ReconciliationState.UNRECONCILED:
                raise LineNotReconciled(line_id)

            old_value = {
                "state": row.state.value,
                "matched_transaction_id": row.matched_transaction_id,
                "category": row.category.value if row.category else None,
                "match_confidence": row.match_confidence,
            }
            new_value = {"state": ReconciliationState.UNRECONCILED.value}

            transaction_id = row.matched_transaction_id
            if transaction_id is not None:
                restored = self._previous_payment_status(session, line_id)
                ledger = self.ledger_factory(session)
                if ledger.get_transaction(transaction_id) is not None:
                    ledger.update_payment_status(transaction_id, restored)
                    new_value["payment_status"] = restored.value

            row.state = ReconciliationState.UNRECONCILED
            row.matched_transaction_id = None
            row.category = None
            row.match_confidence = None

            self.audit.record(
                session,
                AuditAction.UNMATCH,
                LINE_ENTITY,
                line_id,
                user=performed_by,
                old_value=old_value,
                new_value=new_value,
            )
            session.flush()
            self.store.refresh_status(session, row.statement)
            line = to_bank_line(row)

        logger.info("Line unmatched", line_id=line_id, transaction_id=transaction_id)
        return line

    def ignore(self, line_id: int, performed_by: Optional[str] = None) -> BankLine:
        """
        Set an open line aside (fees, transfers between own accounts).

        Raises:
            LineNotFound: unknown id
            LineAlreadyReconciled: the line has a match
            LineIgnored: the line is already ignored
        """
        with self.database.session_scope() as session:
            row = self._get_line(session, line_id)
            if row.state == ReconciliationState.RECONCILED:
                raise LineAlreadyReconciled(line_id, row.matched_transaction_id)
            if row.state == ReconciliationState.IGNORED:
                raise LineIgnored(line_id)

            row.state = ReconciliationState.IGNORED
            self.audit.record(
                session,
                AuditAction.IGNORE,
                LINE_ENTITY,
                line_id,
                user=performed_by,
                old_value={"state": ReconciliationState.UNRECONCILED.value},
                new_value={"state": ReconciliationState.IGNORED.value},
            )
            session.flush()
            self.store.refresh_status(session, row.statement)
            line = to_bank_line(row)

        logger.info("Line ignored", line_id=line_id)
        return line

    def get_audit_trail(self, line_id: int) -> List[AuditEntry]:
        """Every recorded decision on a line, oldest first."""
        with self.database.session_scope() as session:
            return self.audit.get_entries(session, LINE_ENTITY, line_id)

    def _get_line(self, session: Session, line_id: int) -> BankTransactionRow:
        row = session.get(BankTransactionRow, line_id)
        if row is None:
            raise LineNotFound(line_id)
        return row

    def _previous_payment_status(self, session: Session, line_id: int) -> PaymentStatus:
        entry = self.audit.latest(session, LINE_ENTITY, line_id, MATCH_ACTIONS)
        if entry and entry.old_value and entry.old_value.get("payment_status"):
            return PaymentStatus(entry.old_value["payment_status"])
        return PaymentStatus.UNPAID

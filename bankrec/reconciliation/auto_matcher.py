"""
Auto-Matcher: links open bank lines to recorded sales and purchases.

For every open, dated line of a statement:
1. Build the candidate pool (counterpart voucher type, not paid, within the
   date window and amount tolerance, not matched to any other line)
2. Score all candidates (amount 0.6, date 0.4)
3. Rank by (score desc, amount delta asc, transaction id asc)
4. Commit the head if it clears the acceptance floor

The pool, the ranking and every commit share one transaction, and the
UNIQUE constraint on matched_transaction_id backs the consumed set.
"""

from datetime import timedelta
from typing import Callable, List, Optional, Set

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..db import Database
from ..db.tables import BankStatementRow, BankTransactionRow
from ..exceptions import StatementNotFound
from ..ledger import AccountingLedger, PartyRegistry, SqlAccountingLedger, SqlPartyRegistry
from ..models import (
    AuditAction,
    AutoMatchResult,
    COUNTERPART_VOUCHER,
    MatchAssignment,
    MatchCandidate,
    MatchCategory,
    Party,
    ReconciliationState,
    StatementStatus,
    UnmatchedLine,
)
from ..store import StatementStore, to_bank_line
from ..utils.audit_logger import SYSTEM_USER, AuditLogger
from .party_suggestion import PartySuggester
from .scoring import (
    MatchTolerance,
    build_candidate,
    compute_confidence,
    is_acceptable,
    rank_candidates,
    settlement_status,
)

logger = structlog.get_logger()

LINE_ENTITY = "bank_transactions"


class AutoMatcher:
    """Deterministic matcher over one statement at a time."""

    def __init__(
        self,
        database: Database,
        ledger_factory: Callable[[Session], AccountingLedger] = SqlAccountingLedger,
        registry_factory: Callable[[Session], PartyRegistry] = SqlPartyRegistry,
        suggester: Optional[PartySuggester] = None,
        audit: Optional[AuditLogger] = None,
        store: Optional[StatementStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.database = database
        self.settings = settings or get_settings()
        self.ledger_factory = ledger_factory
        self.registry_factory = registry_factory
        self.suggester = suggester or PartySuggester(self.settings)
        self.audit = audit or AuditLogger()
        self.store = store or StatementStore(database, audit=self.audit, settings=self.settings)

    def run(
        self,
        statement_id: int,
        amount_tolerance: Optional[float] = None,
        amount_tolerance_ratio: Optional[float] = None,
        date_window_days: Optional[int] = None,
    ) -> AutoMatchResult:
        """
        Match every open line of a statement.

        Args:
            statement_id: Statement to process
            amount_tolerance: Absolute tolerance in currency units (overrides ratio)
            amount_tolerance_ratio: Tolerance as a fraction of the line amount
            date_window_days: Max days between bank and voucher dates

        Returns:
            AutoMatchResult with assignments and the still-open lines

        Raises:
            StatementNotFound: if the id is unknown
        """
        tolerance = MatchTolerance.from_settings(
            self.settings,
            amount_tolerance=amount_tolerance,
            amount_tolerance_ratio=amount_tolerance_ratio,
            date_window_days=date_window_days,
        )

        self._mark_processing(statement_id)
        try:
            with self.database.session_scope() as session:
                statement = session.get(BankStatementRow, statement_id)
                result = self._match_statement(session, statement, tolerance)
                self.store.refresh_status(session, statement)
        except Exception:
            self._restore_status(statement_id)
            raise

        logger.info(
            "Auto-reconciliation complete",
            statement_id=statement_id,
            matched=result.matched,
            unmatched=len(result.unmatched),
            skipped_undated=result.skipped_undated,
        )
        return result

    def unmatched_lines(self, statement_id: int, limit: Optional[int] = None) -> List[UnmatchedLine]:
        """Open lines of a statement with party hints, without matching."""
        with self.database.session_scope() as session:
            if session.get(BankStatementRow, statement_id) is None:
                raise StatementNotFound(statement_id)
            rows = self._open_lines(session, statement_id)
            if limit is not None:
                rows = rows[:limit]
            parties = self.registry_factory(session).list_active()
            return [self._with_suggestion(row, parties) for row in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mark_processing(self, statement_id: int) -> None:
        with self.database.session_scope() as session:
            statement = session.get(BankStatementRow, statement_id)
            if statement is None:
                raise StatementNotFound(statement_id)
            statement.status = StatementStatus.PROCESSING

    def _restore_status(self, statement_id: int) -> None:
        with self.database.session_scope() as session:
            statement = session.get(BankStatementRow, statement_id)
            if statement is not None:
                self.store.refresh_status(session, statement)

    def _open_lines(self, session: Session, statement_id: int) -> List[BankTransactionRow]:
        return list(session.scalars(
            select(BankTransactionRow)
            .where(
                BankTransactionRow.statement_id == statement_id,
                BankTransactionRow.state == ReconciliationState.UNRECONCILED,
            )
            .order_by(BankTransactionRow.transaction_date, BankTransactionRow.id)
        ))

    def _consumed_ids(self, session: Session) -> Set[int]:
        """Every accounting transaction already matched to some line."""
        return set(session.scalars(
            select(BankTransactionRow.matched_transaction_id)
            .where(BankTransactionRow.matched_transaction_id.is_not(None))
        ))

    def _match_statement(
        self,
        session: Session,
        statement: BankStatementRow,
        tolerance: MatchTolerance,
    ) -> AutoMatchResult:
        ledger = self.ledger_factory(session)
        consumed = self._consumed_ids(session)
        result = AutoMatchResult(statement_id=statement.id)
        open_rows: List[BankTransactionRow] = []

        for row in self._open_lines(session, statement.id):
            if row.transaction_date is None:
                result.skipped_undated += 1
                open_rows.append(row)
                continue

            ranked = rank_candidates(self._candidates(ledger, row, tolerance, consumed))
            best = ranked[0] if ranked else None

            if best is None or not is_acceptable(best, self.settings.acceptance_floor):
                open_rows.append(row)
                continue

            result.assignments.append(self._commit(session, ledger, row, best))
            consumed.add(best.transaction.id)

        if open_rows:
            parties = self.registry_factory(session).list_active()
            result.unmatched = [self._with_suggestion(row, parties) for row in open_rows]

        return result

    def _candidates(
        self,
        ledger: AccountingLedger,
        row: BankTransactionRow,
        tolerance: MatchTolerance,
        consumed: Set[int],
    ) -> List[MatchCandidate]:
        line = to_bank_line(row)
        window = timedelta(days=tolerance.date_window_days)
        pool = ledger.find_open_transactions(
            COUNTERPART_VOUCHER[line.transaction_type],
            line.transaction_date - window,
            line.transaction_date + window,
        )

        candidates = []
        for transaction in pool:
            if transaction.id in consumed:
                continue
            candidate = build_candidate(
                line,
                transaction,
                tolerance,
                amount_weight=self.settings.amount_weight,
                date_weight=self.settings.date_weight,
            )
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def _commit(
        self,
        session: Session,
        ledger: AccountingLedger,
        row: BankTransactionRow,
        candidate: MatchCandidate,
    ) -> MatchAssignment:
        transaction = candidate.transaction
        confidence = compute_confidence(row.amount_cents, transaction.total_amount_cents)
        new_status = settlement_status(row.amount_cents, transaction.total_amount_cents)

        row.state = ReconciliationState.RECONCILED
        row.matched_transaction_id = transaction.id
        row.category = MatchCategory.AUTO
        row.match_confidence = confidence
        ledger.update_payment_status(transaction.id, new_status)

        self.audit.record(
            session,
            AuditAction.AUTO_MATCH,
            LINE_ENTITY,
            row.id,
            user=SYSTEM_USER,
            old_value={
                "state": ReconciliationState.UNRECONCILED.value,
                "payment_status": transaction.payment_status.value,
            },
            new_value={
                "state": ReconciliationState.RECONCILED.value,
                "matched_transaction_id": transaction.id,
                "category": MatchCategory.AUTO.value,
                "match_confidence": confidence,
                "score": round(candidate.combined_score, 4),
                "payment_status": new_status.value,
            },
        )
        session.flush()

        return MatchAssignment(
            line_id=row.id,
            transaction_id=transaction.id,
            score=candidate.combined_score,
            confidence=confidence,
            amount_delta_cents=candidate.amount_delta_cents,
            date_delta_days=candidate.date_delta_days,
        )

    def _with_suggestion(self, row: BankTransactionRow, parties: List[Party]) -> UnmatchedLine:
        return UnmatchedLine(
            line=to_bank_line(row),
            suggested_party=self.suggester.suggest(row.description, parties),
        )

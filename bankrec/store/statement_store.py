"""
Statement store: atomic persistence of statements and their lines.

A statement and all of its lines are written in one transaction; either
the whole file enters the matching pool or nothing does.
"""

from datetime import date
from typing import Iterator, List, Optional, Sequence

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..config import Settings, get_settings
from ..db import Database
from ..db.tables import BankStatementRow, BankTransactionRow
from ..exceptions import DuplicateFileError, StatementNotFound
from ..ingestion import DuplicateImportGuard, ParseResult
from ..models import (
    AuditAction,
    BankLine,
    ParsedLine,
    ReconciliationState,
    ReconciliationStatusSummary,
    StatementDetails,
    StatementStatus,
    StatementSummary,
)
from ..utils.audit_logger import AuditLogger

logger = structlog.get_logger()

STATEMENT_ENTITY = "bank_statements"


def to_bank_line(row: BankTransactionRow) -> BankLine:
    """Detach a line row into a plain model."""
    return BankLine(
        id=row.id,
        statement_id=row.statement_id,
        transaction_date=row.transaction_date,
        description=row.description,
        amount_cents=row.amount_cents,
        transaction_type=row.transaction_type,
        balance_cents=row.balance_cents,
        state=row.state,
        matched_transaction_id=row.matched_transaction_id,
        category=row.category,
        match_confidence=row.match_confidence,
    )


def to_summary(row: BankStatementRow) -> StatementSummary:
    return StatementSummary(
        id=row.id,
        file_name=row.file_name,
        file_hash=row.file_hash,
        import_date=row.import_date,
        statement_date=row.statement_date,
        total_credits_cents=row.total_credits_cents,
        total_debits_cents=row.total_debits_cents,
        record_count=row.record_count,
        status=row.status,
    )


def _chunked(records: Sequence[ParsedLine], size: int) -> Iterator[Sequence[ParsedLine]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


class StatementStore:
    """Persistence and read models for bank statements and their lines."""

    def __init__(
        self,
        database: Database,
        audit: Optional[AuditLogger] = None,
        guard: Optional[DuplicateImportGuard] = None,
        settings: Optional[Settings] = None,
    ):
        self.database = database
        self.audit = audit or AuditLogger()
        self.guard = guard or DuplicateImportGuard()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_statement(
        self,
        file_name: str,
        file_hash: str,
        parse_result: ParseResult,
        bank_format: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> int:
        """Insert statement + lines in their own transaction; returns the statement id."""
        with self.database.session_scope() as session:
            statement = self.create_statement_with_lines(
                session, file_name, file_hash, parse_result, bank_format, performed_by
            )
            return statement.id

    def create_statement_with_lines(
        self,
        session: Session,
        file_name: str,
        file_hash: str,
        parse_result: ParseResult,
        bank_format: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> BankStatementRow:
        """
        Write a statement header and all of its lines in the given session.

        The duplicate check is repeated here, inside the insert transaction,
        and the UNIQUE constraint on file_hash closes the remaining race.

        Raises:
            DuplicateFileError: if the fingerprint is already stored
        """
        self.guard.check(session, file_hash)

        records = parse_result.records
        today = date.today()
        statement_date = next(
            (r.transaction_date for r in records if r.transaction_date is not None),
            today,
        )

        statement = BankStatementRow(
            file_name=file_name,
            file_hash=file_hash,
            import_date=today,
            statement_date=statement_date,
            total_credits_cents=parse_result.total_credits_cents,
            total_debits_cents=parse_result.total_debits_cents,
            record_count=len(records),
            status=StatementStatus.IMPORTED,
            bank_format=bank_format,
        )
        session.add(statement)
        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateFileError(file_hash) from e

        for chunk in _chunked(records, self.settings.import_chunk_size):
            session.add_all(
                BankTransactionRow(
                    statement_id=statement.id,
                    transaction_date=record.transaction_date,
                    description=record.description,
                    amount_cents=record.amount_cents,
                    transaction_type=record.transaction_type,
                    balance_cents=record.balance_cents,
                    state=ReconciliationState.UNRECONCILED,
                )
                for record in chunk
            )
            session.flush()

        self.audit.record(
            session,
            AuditAction.STATEMENT_IMPORTED,
            STATEMENT_ENTITY,
            statement.id,
            user=performed_by,
            new_value={
                "file_name": file_name,
                "file_hash": file_hash,
                "record_count": len(records),
            },
        )

        logger.info(
            "Statement stored",
            statement_id=statement.id,
            file_name=file_name,
            lines=len(records),
        )
        return statement

    def delete_statement(self, statement_id: int, performed_by: Optional[str] = None) -> None:
        """
        Delete a statement; its lines go with it.

        Raises:
            StatementNotFound: if the id is unknown
        """
        with self.database.session_scope() as session:
            statement = session.get(BankStatementRow, statement_id)
            if statement is None:
                raise StatementNotFound(statement_id)

            old_value = {
                "file_name": statement.file_name,
                "file_hash": statement.file_hash,
                "record_count": statement.record_count,
                "status": statement.status.value,
            }
            session.delete(statement)
            self.audit.record(
                session,
                AuditAction.STATEMENT_DELETED,
                STATEMENT_ENTITY,
                statement_id,
                user=performed_by,
                old_value=old_value,
            )

        logger.info("Statement deleted", statement_id=statement_id)

    def refresh_status(self, session: Session, statement: BankStatementRow) -> StatementStatus:
        """Derive the statement status from its lines' states."""
        summary = self._status_query(session, statement.id)
        open_lines = summary.unreconciled

        if summary.total > 0 and open_lines == 0:
            statement.status = StatementStatus.RECONCILED
        elif summary.reconciled > 0:
            statement.status = StatementStatus.PARTIALLY_RECONCILED
        else:
            statement.status = StatementStatus.IMPORTED
        return statement.status

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_statement(self, statement_id: int) -> StatementDetails:
        """
        Statement header, lines (by date, then id) and reconciliation status.

        Raises:
            StatementNotFound: if the id is unknown
        """
        with self.database.session_scope() as session:
            statement = session.get(
                BankStatementRow,
                statement_id,
                options=[selectinload(BankStatementRow.lines)],
            )
            if statement is None:
                raise StatementNotFound(statement_id)

            lines = sorted(
                (to_bank_line(row) for row in statement.lines),
                key=lambda line: (line.transaction_date is None, line.transaction_date or date.min, line.id),
            )
            return StatementDetails(
                statement=to_summary(statement),
                lines=lines,
                reconciliation=self._status_query(session, statement_id),
            )

    def list_statements(self, limit: int = 20) -> List[StatementSummary]:
        """Import history, most recent first."""
        with self.database.session_scope() as session:
            rows = session.scalars(
                select(BankStatementRow)
                .order_by(BankStatementRow.import_date.desc(), BankStatementRow.id.desc())
                .limit(limit)
            )
            return [to_summary(row) for row in rows]

    def get_reconciliation_status(self, statement_id: int) -> ReconciliationStatusSummary:
        """
        Raises:
            StatementNotFound: if the id is unknown
        """
        with self.database.session_scope() as session:
            if session.get(BankStatementRow, statement_id) is None:
                raise StatementNotFound(statement_id)
            return self._status_query(session, statement_id)

    def list_unreconciled_lines(self, limit: int = 100) -> List[BankLine]:
        """Open lines across all statements, newest first."""
        with self.database.session_scope() as session:
            rows = session.scalars(
                select(BankTransactionRow)
                .where(BankTransactionRow.state == ReconciliationState.UNRECONCILED)
                .order_by(
                    BankTransactionRow.transaction_date.desc(),
                    BankTransactionRow.id.desc(),
                )
                .limit(limit)
            )
            return [to_bank_line(row) for row in rows]

    def _status_query(self, session: Session, statement_id: int) -> ReconciliationStatusSummary:
        state = BankTransactionRow.state
        amount = BankTransactionRow.amount_cents

        def count_in(value: ReconciliationState):
            return func.coalesce(func.sum(case((state == value, 1), else_=0)), 0)

        def amount_in(value: ReconciliationState):
            return func.coalesce(func.sum(case((state == value, amount), else_=0)), 0)

        row = session.execute(
            select(
                func.count(BankTransactionRow.id),
                count_in(ReconciliationState.RECONCILED),
                count_in(ReconciliationState.UNRECONCILED),
                count_in(ReconciliationState.IGNORED),
                amount_in(ReconciliationState.RECONCILED),
                amount_in(ReconciliationState.UNRECONCILED),
            ).where(BankTransactionRow.statement_id == statement_id)
        ).one()

        return ReconciliationStatusSummary(
            total=row[0],
            reconciled=row[1],
            unreconciled=row[2],
            ignored=row[3],
            reconciled_amount_cents=row[4],
            unreconciled_amount_cents=row[5],
        )

"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from .enums import StatementStatus
from .transaction import BankLine, Party


@dataclass
class MatchAssignment:
    """A committed link between a bank line and an accounting transaction."""
    line_id: int
    transaction_id: int
    score: float
    confidence: float
    amount_delta_cents: int = 0
    date_delta_days: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineId": self.line_id,
            "transactionId": self.transaction_id,
            "score": round(self.score, 4),
            "confidence": self.confidence,
            "amountDelta": self.amount_delta_cents / 100.0,
            "dateDelta": self.date_delta_days,
        }


@dataclass
class UnmatchedLine:
    """An open bank line with its advisory party hint."""
    line: BankLine
    suggested_party: Optional[Party] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.line.to_dict()
        data["suggestedParty"] = self.suggested_party.to_dict() if self.suggested_party else None
        return data


@dataclass
class AutoMatchResult:
    """Outcome of one auto-matcher run over a statement."""
    statement_id: int
    assignments: List[MatchAssignment] = field(default_factory=list)
    unmatched: List[UnmatchedLine] = field(default_factory=list)
    skipped_undated: int = 0

    @property
    def matched(self) -> int:
        return len(self.assignments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "statementId": self.statement_id,
            "matchedCount": self.matched,
            "unmatchedCount": len(self.unmatched),
            "skippedUndated": self.skipped_undated,
            "matches": [a.to_dict() for a in self.assignments],
            "transactions": [u.to_dict() for u in self.unmatched],
        }


@dataclass
class ReconciliationStatusSummary:
    """Counts and amounts of a statement's lines by reconciliation state."""
    total: int = 0
    reconciled: int = 0
    unreconciled: int = 0
    ignored: int = 0
    reconciled_amount_cents: int = 0
    unreconciled_amount_cents: int = 0

    @property
    def match_percentage(self) -> float:
        """Percentage of lines reconciled."""
        if self.total == 0:
            return 0.0
        return round((self.reconciled / self.total) * 100, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "matched": self.reconciled,
            "unmatched": self.unreconciled,
            "ignored": self.ignored,
            "matchPercentage": self.match_percentage,
            "matchedAmount": self.reconciled_amount_cents / 100.0,
            "unmatchedAmount": self.unreconciled_amount_cents / 100.0,
        }


@dataclass
class StatementSummary:
    """Statement header as returned by list/detail queries."""
    id: int
    file_name: str
    file_hash: str
    import_date: date
    statement_date: Optional[date]
    total_credits_cents: int
    total_debits_cents: int
    record_count: int
    status: StatementStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "file_hash": self.file_hash,
            "import_date": self.import_date.isoformat(),
            "statement_date": self.statement_date.isoformat() if self.statement_date else None,
            "total_credits": self.total_credits_cents / 100.0,
            "total_debits": self.total_debits_cents / 100.0,
            "record_count": self.record_count,
            "status": self.status.value,
        }


@dataclass
class StatementDetails:
    """A statement with its lines and reconciliation status."""
    statement: StatementSummary
    lines: List[BankLine]
    reconciliation: ReconciliationStatusSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement": self.statement.to_dict(),
            "transactions": [line.to_dict() for line in self.lines],
            "reconciliation": self.reconciliation.to_dict(),
        }


@dataclass
class AuditEntry:
    """An entry in the audit log."""
    id: int
    timestamp: datetime
    user: str
    action: str
    entity_type: str
    entity_id: int
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "user": self.user,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


@dataclass
class ImportResult:
    """Result handed back to the caller of a statement import."""
    success: bool
    statement_id: Optional[int] = None
    file_name: str = ""
    total_transactions: int = 0
    total_credits_cents: int = 0
    total_debits_cents: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    unmatched_preview: List[UnmatchedLine] = field(default_factory=list)
    format: Optional[str] = None
    confidence: float = 0.0
    skipped_rows: int = 0
    warnings: List[str] = field(default_factory=list)

    # Failure
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the public result shape."""
        if not self.success:
            return {"success": False, "error": self.error, "message": self.message}

        return {
            "success": True,
            "statementId": self.statement_id,
            "fileName": self.file_name,
            "totalTransactions": self.total_transactions,
            "totalCredits": self.total_credits_cents / 100.0,
            "totalDebits": self.total_debits_cents / 100.0,
            "matchedCount": self.matched_count,
            "unmatchedCount": self.unmatched_count,
            "transactions": [u.to_dict() for u in self.unmatched_preview],
            "format": self.format,
            "confidence": self.confidence,
            "skippedRows": self.skipped_rows,
            "warnings": self.warnings,
        }

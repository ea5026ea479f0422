"""
Statement import pipeline.

read -> decode -> detect format -> parse -> fingerprint -> store
-> auto-match (best effort) -> result
"""

from pathlib import Path
from typing import List, Optional, Union

import structlog
from sqlalchemy.exc import OperationalError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Settings, get_settings
from ..db import Database
from ..exceptions import ErrorCode, ImportFailed, ReconciliationError
from ..ingestion import DuplicateImportGuard, ParseResult, StatementParser, detect_format
from ..models import ImportResult, ReconciliationState, UnmatchedLine
from ..store import StatementStore
from .auto_matcher import AutoMatcher

logger = structlog.get_logger()

ENCODINGS = ("utf-8-sig", "latin-1")

IMPORT_ERROR_CODES = (
    ErrorCode.NO_TRANSACTIONS_FOUND,
    ErrorCode.DUPLICATE_FILE,
    ErrorCode.IMPORT_ERROR,
)


def decode_content(raw: bytes) -> str:
    """UTF-8 (BOM tolerant) first, then Latin-1, which accepts any byte."""
    for encoding in ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ImportFailed("File content could not be decoded")


class StatementImporter:
    """Chains detection, parsing, storage and auto-matching for one file."""

    def __init__(
        self,
        database: Database,
        parser: Optional[StatementParser] = None,
        guard: Optional[DuplicateImportGuard] = None,
        store: Optional[StatementStore] = None,
        matcher: Optional[AutoMatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.database = database
        self.settings = settings or get_settings()
        self.parser = parser or StatementParser(self.settings)
        self.guard = guard or DuplicateImportGuard()
        self.store = store or StatementStore(database, guard=self.guard, settings=self.settings)
        self.matcher = matcher or AutoMatcher(database, store=self.store, settings=self.settings)

    def import_file(
        self,
        path: Union[str, Path],
        auto_reconcile: bool = True,
        amount_tolerance: Optional[float] = None,
        performed_by: Optional[str] = None,
    ) -> ImportResult:
        """Import a statement file from disk."""
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.error("Statement file unreadable", path=str(path), error=str(e))
            return self._failure(path.name, ImportFailed(f"Cannot read file {path.name}: {e}"))

        return self.import_content(
            raw,
            path.name,
            auto_reconcile=auto_reconcile,
            amount_tolerance=amount_tolerance,
            performed_by=performed_by,
        )

    def import_content(
        self,
        raw: bytes,
        file_name: str,
        auto_reconcile: bool = True,
        amount_tolerance: Optional[float] = None,
        performed_by: Optional[str] = None,
    ) -> ImportResult:
        """
        Import raw statement bytes.

        Never raises: failures come back as ImportResult(success=False) with
        error NO_TRANSACTIONS_FOUND, DUPLICATE_FILE or IMPORT_ERROR.
        """
        logger.info("Importing statement", file_name=file_name, size=len(raw))
        try:
            return self._import(raw, file_name, auto_reconcile, amount_tolerance, performed_by)
        except ReconciliationError as e:
            logger.warning("Import rejected", file_name=file_name, error=e.code.value)
            return self._failure(file_name, e)
        except Exception as e:
            logger.exception("Import failed", file_name=file_name)
            return self._failure(file_name, ImportFailed(str(e)))

    def _import(
        self,
        raw: bytes,
        file_name: str,
        auto_reconcile: bool,
        amount_tolerance: Optional[float],
        performed_by: Optional[str],
    ) -> ImportResult:
        content = decode_content(raw)
        detection = detect_format(content, file_name)
        parse_result = self.parser.parse(content, detection)
        file_hash = self.guard.fingerprint(raw)

        statement_id = self._save(file_name, file_hash, parse_result, detection.format.value, performed_by)

        warnings = list(parse_result.warnings)
        matched_count = 0
        unmatched: Optional[List[UnmatchedLine]] = None

        if auto_reconcile:
            try:
                match_result = self.matcher.run(statement_id, amount_tolerance=amount_tolerance)
                matched_count = match_result.matched
                unmatched = match_result.unmatched
            except Exception:
                logger.exception("Auto-reconciliation failed", statement_id=statement_id)
                warnings.append("auto-reconciliation failed; all lines left unreconciled")

        if unmatched is None:
            unmatched = self._open_lines(statement_id, warnings)

        if unmatched is None:
            unmatched_count = len(parse_result.records) - matched_count
            unmatched = []
        else:
            unmatched_count = len(unmatched)

        result = ImportResult(
            success=True,
            statement_id=statement_id,
            file_name=file_name,
            total_transactions=len(parse_result.records),
            total_credits_cents=parse_result.total_credits_cents,
            total_debits_cents=parse_result.total_debits_cents,
            matched_count=matched_count,
            unmatched_count=unmatched_count,
            unmatched_preview=unmatched[: self.settings.unmatched_preview_limit],
            format=detection.format.value,
            confidence=detection.confidence,
            skipped_rows=parse_result.skipped_count,
            warnings=warnings,
        )

        logger.info(
            "Statement imported",
            statement_id=statement_id,
            file_name=file_name,
            transactions=result.total_transactions,
            matched=matched_count,
            unmatched=result.unmatched_count,
        )
        return result

    def _open_lines(self, statement_id: int, warnings: List[str]) -> Optional[List[UnmatchedLine]]:
        """
        Open lines of an already stored statement, for the import result.

        The statement is committed at this point, so failures here only
        degrade the result: party hints are dropped first, then the preview.
        """
        try:
            return self.matcher.unmatched_lines(statement_id)
        except Exception:
            logger.exception("Party suggestions unavailable", statement_id=statement_id)
            warnings.append("party suggestions unavailable")

        try:
            lines = self.store.get_statement(statement_id).lines
        except Exception:
            logger.exception("Stored lines unavailable", statement_id=statement_id)
            warnings.append("unmatched line preview unavailable")
            return None
        return [
            UnmatchedLine(line=line)
            for line in lines
            if line.state == ReconciliationState.UNRECONCILED
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def _save(
        self,
        file_name: str,
        file_hash: str,
        parse_result: ParseResult,
        bank_format: str,
        performed_by: Optional[str],
    ) -> int:
        # SQLite "database is locked" surfaces as OperationalError
        return self.store.save_statement(file_name, file_hash, parse_result, bank_format, performed_by)

    @staticmethod
    def _failure(file_name: str, error: ReconciliationError) -> ImportResult:
        code = error.code if error.code in IMPORT_ERROR_CODES else ErrorCode.IMPORT_ERROR
        return ImportResult(
            success=False,
            file_name=file_name,
            error=code.value,
            message=error.message,
        )

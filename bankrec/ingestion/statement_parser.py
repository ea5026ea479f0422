"""
Delimited bank statement parser.

Template-free: the detected format only contributes column-name hints and
positional defaults; columns are discovered from the header row. Malformed
rows are skipped and reported, never fatal.
"""

import csv
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import structlog

from ..config import Settings, get_settings
from ..exceptions import NoTransactionsFound
from ..models import ParsedLine, TransactionType
from .formats import BankFormat, FormatDetection, FormatProfile, PROFILES
from .normalize import amount_marker, is_amount_like, is_date_like, parse_amount, parse_date, to_cents

logger = structlog.get_logger()

DELIMITER_PREFERENCE = ("\t", ";", ",")
MIN_COLUMNS = 3


@dataclass
class ColumnMapping:
    """Detected column positions for a statement."""
    date_col: Optional[int] = None
    description_col: Optional[int] = None
    amount_col: Optional[int] = None
    debit_col: Optional[int] = None
    credit_col: Optional[int] = None
    balance_col: Optional[int] = None
    type_col: Optional[int] = None

    @property
    def has_amount_source(self) -> bool:
        return any(c is not None for c in (self.amount_col, self.debit_col, self.credit_col))


@dataclass
class ParseReport:
    """Running tally of what the parser dropped or repaired."""
    skipped_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def skip(self, row_number: int, reason: str) -> None:
        self.skipped_count += 1
        self.warnings.append(f"row {row_number}: skipped ({reason})")

    def warn(self, message: str) -> None:
        self.warnings.append(message)


@dataclass
class ParseResult:
    """Result of parsing a bank statement."""
    records: List[ParsedLine]
    skipped_count: int
    warnings: List[str]
    delimiter: str
    header_row: Optional[int]
    column_mapping: ColumnMapping

    @property
    def total_credits_cents(self) -> int:
        return sum(r.amount_cents for r in self.records if r.transaction_type == TransactionType.CREDIT)

    @property
    def total_debits_cents(self) -> int:
        return sum(r.amount_cents for r in self.records if r.transaction_type == TransactionType.DEBIT)


@dataclass
class StatementLayout:
    """Where the data sits inside the file."""
    lines: List[str]
    delimiter: str
    header_row: Optional[int]
    data_start: int
    mapping: ColumnMapping


class StatementParser:
    """
    Parser for delimited (CSV / TSV / semicolon) bank statement exports.
    """

    # Generic header keywords per column role
    ROLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
        "date": ("date", "txn date", "transaction date"),
        "description": ("description", "narration", "particulars", "details"),
        "amount": ("amount",),
        "debit": ("debit", "withdrawal", "paid out"),
        "credit": ("credit", "deposit", "received"),
        "balance": ("balance", "closing"),
        "type": ("type", "dr/cr", "cr/dr", "debit/credit"),
    }
    # Resolution order; a column can hold only one role
    ROLE_ORDER = ("date", "balance", "type", "debit", "credit", "amount", "description")

    CREDIT_MARKERS = ("credit", "cr", "deposit")
    DEBIT_MARKERS = ("debit", "dr", "withdrawal")

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def parse(
        self,
        content: str,
        detection: Optional[FormatDetection] = None,
    ) -> ParseResult:
        """
        Parse raw statement text into canonical lines.

        Args:
            content: Decoded file content
            detection: Format hint from detect_format (DEFAULT if omitted)

        Returns:
            ParseResult with records, skipped row count and warnings

        Raises:
            NoTransactionsFound: if no row yields a usable line
        """
        report = ParseReport()
        layout = self._layout(content, detection)
        records = list(self._iter_rows(layout, report))

        logger.info(
            "Statement parsed",
            records=len(records),
            skipped=report.skipped_count,
            delimiter=repr(layout.delimiter),
            header_row=layout.header_row,
        )

        if not records:
            raise NoTransactionsFound(skipped_count=report.skipped_count)

        return ParseResult(
            records=records,
            skipped_count=report.skipped_count,
            warnings=report.warnings,
            delimiter=layout.delimiter,
            header_row=layout.header_row,
            column_mapping=layout.mapping,
        )

    def iter_records(
        self,
        content: str,
        detection: Optional[FormatDetection] = None,
        report: Optional[ParseReport] = None,
    ) -> Iterator[ParsedLine]:
        """Lazily yield canonical lines in file order (single pass)."""
        report = report if report is not None else ParseReport()
        yield from self._iter_rows(self._layout(content, detection), report)

    # ------------------------------------------------------------------
    # Layout discovery
    # ------------------------------------------------------------------

    def sniff_delimiter(self, lines: Sequence[str], profile: FormatProfile) -> str:
        """Tab, then semicolon, then comma, by presence in the header area."""
        for line in lines[: self.settings.header_scan_lines]:
            for candidate in DELIMITER_PREFERENCE:
                if candidate in line:
                    return candidate
        return profile.delimiter

    def locate_header(
        self,
        lines: Sequence[str],
        delimiter: str,
        profile: Optional[FormatProfile] = None,
    ) -> Tuple[Optional[int], int]:
        """
        Find the header row within the first few lines.

        The first line carrying both a date-like and an amount-like token is
        the first data row. The header is the nearest line above it whose
        cells name at least two column roles, so an undated row (opening
        balance, unreadable date) between header and data stays a data row.
        Without such a line, the line before the first data row is taken;
        a data row at line 0 means the file has no header at all.

        Returns:
            (header_row or None, index of first data row)
        """
        if not lines:
            return None, 0

        scan = lines[: self.settings.header_scan_lines]
        first_data = next(
            (i for i, line in enumerate(scan) if self._looks_like_data(self._split(line, delimiter))),
            None,
        )

        limit = first_data if first_data is not None else len(scan)
        for i in range(limit - 1, -1, -1):
            if self._looks_like_header(self._split(lines[i], delimiter), profile):
                return i, i + 1

        if first_data is None:
            return 0, 1
        return (first_data - 1 if first_data > 0 else None), first_data

    def _looks_like_data(self, cells: Sequence[str]) -> bool:
        has_date = any(is_date_like(c) for c in cells)
        has_amount = any(is_amount_like(c) for c in cells if not is_date_like(c))
        return has_date and has_amount

    def _looks_like_header(self, cells: Sequence[str], profile: Optional[FormatProfile]) -> bool:
        if any(is_date_like(c) or is_amount_like(c) for c in cells):
            return False
        headers = [c.lower() for c in cells if c]
        hints = profile.column_hints if profile is not None else {}
        roles = [
            role for role, keywords in self.ROLE_KEYWORDS.items()
            if any(k in h for h in headers for k in keywords + hints.get(role, ()))
        ]
        return len(roles) >= 2

    def resolve_columns(
        self,
        header_cells: Sequence[str],
        profile: FormatProfile,
    ) -> ColumnMapping:
        """Map column roles by case-insensitive substring match on header cells."""
        if not header_cells:
            return ColumnMapping(**{f"{role}_col": idx for role, idx in profile.positional.items()})

        headers = [h.strip().lower() for h in header_cells]
        claimed: set = set()
        found: Dict[str, Optional[int]] = {}

        for role in self.ROLE_ORDER:
            keywords = self.ROLE_KEYWORDS[role] + profile.column_hints.get(role, ())
            found[role] = None
            for idx, header in enumerate(headers):
                if idx in claimed or not any(k in header for k in keywords):
                    continue
                if role == "amount" and "balance" in header:
                    continue
                found[role] = idx
                claimed.add(idx)
                break

        return ColumnMapping(**{f"{role}_col": idx for role, idx in found.items()})

    def _layout(
        self,
        content: str,
        detection: Optional[FormatDetection],
    ) -> StatementLayout:
        lines = [line for line in content.splitlines() if line.strip()]
        profile = (detection or FormatDetection(BankFormat.DEFAULT, 0.3)).profile

        delimiter = self.sniff_delimiter(lines, profile)
        header_row, data_start = self.locate_header(lines, delimiter, profile)
        header_cells = self._split(lines[header_row], delimiter) if header_row is not None else []

        return StatementLayout(
            lines=lines,
            delimiter=delimiter,
            header_row=header_row,
            data_start=data_start,
            mapping=self.resolve_columns(header_cells, profile),
        )

    # ------------------------------------------------------------------
    # Row handling
    # ------------------------------------------------------------------

    def _iter_rows(
        self,
        layout: StatementLayout,
        report: ParseReport,
    ) -> Iterator[ParsedLine]:
        mapping = layout.mapping
        if not mapping.has_amount_source:
            report.warn("no amount, debit or credit column could be identified")
        if mapping.date_col is None:
            report.warn("no date column could be identified; dates left empty")

        for row_number in range(layout.data_start, len(layout.lines)):
            columns = self._split(layout.lines[row_number], layout.delimiter)
            if len(columns) < MIN_COLUMNS:
                report.skip(row_number + 1, f"only {len(columns)} columns")
                continue

            try:
                record = self.parse_row(columns, mapping, row_number + 1, report)
            except (ValueError, InvalidOperation) as e:
                report.skip(row_number + 1, str(e))
                continue

            if record is None:
                continue
            yield record

    def parse_row(
        self,
        columns: Sequence[str],
        mapping: ColumnMapping,
        row_number: int,
        report: ParseReport,
    ) -> Optional[ParsedLine]:
        """Turn one split row into a ParsedLine, or None when it has no amount."""
        amount, transaction_type = self._resolve_amount(columns, mapping)
        amount_cents = abs(to_cents(amount))
        if amount_cents == 0:
            report.skip(row_number, "zero or missing amount")
            return None

        transaction_date = None
        if mapping.date_col is not None:
            raw_date = self._cell(columns, mapping.date_col)
            transaction_date = parse_date(raw_date)
            if transaction_date is None:
                report.warn(f"row {row_number}: unparseable date {raw_date!r}")

        balance_cents = None
        raw_balance = self._cell(columns, mapping.balance_col)
        if is_amount_like(raw_balance):
            balance_cents = to_cents(parse_amount(raw_balance))

        return ParsedLine(
            transaction_date=transaction_date,
            description=self._cell(columns, mapping.description_col),
            amount_cents=amount_cents,
            transaction_type=transaction_type,
            balance_cents=balance_cents,
            source_row=row_number,
            raw_data=list(columns),
        )

    def _resolve_amount(
        self,
        columns: Sequence[str],
        mapping: ColumnMapping,
    ) -> Tuple[Decimal, TransactionType]:
        if mapping.amount_col is not None and self._cell(columns, mapping.amount_col):
            raw_amount = self._cell(columns, mapping.amount_col)
            amount = parse_amount(raw_amount)
            type_text = self._cell(columns, mapping.type_col)
            return amount, self.classify_direction(type_text, amount, amount_marker(raw_amount))

        debit = abs(parse_amount(self._cell(columns, mapping.debit_col)))
        credit = abs(parse_amount(self._cell(columns, mapping.credit_col)))

        if credit > 0:
            return credit, TransactionType.CREDIT
        if debit > 0:
            return debit, TransactionType.DEBIT
        return Decimal("0"), TransactionType.CREDIT

    def classify_direction(
        self,
        type_text: str,
        amount: Decimal,
        marker: Optional[str] = None,
    ) -> TransactionType:
        """Keyword match on the type cell, then a Cr/Dr marker on the amount, then its sign."""
        lower = (type_text or "").strip().lower()
        if lower:
            if any(m in lower for m in self.CREDIT_MARKERS):
                return TransactionType.CREDIT
            if any(m in lower for m in self.DEBIT_MARKERS):
                return TransactionType.DEBIT
        if marker == "cr":
            return TransactionType.CREDIT
        if marker == "dr":
            return TransactionType.DEBIT
        return TransactionType.CREDIT if amount >= 0 else TransactionType.DEBIT

    @staticmethod
    def _split(line: str, delimiter: str) -> List[str]:
        row = next(csv.reader([line], delimiter=delimiter), [])
        return [cell.strip() for cell in row]

    @staticmethod
    def _cell(columns: Sequence[str], index: Optional[int]) -> str:
        if index is None or index >= len(columns):
            return ""
        return columns[index]


def supported_formats() -> List[str]:
    """Names of the bank layouts the detector can recognise."""
    return [f"{fmt.value}: {PROFILES[fmt].name}" for fmt in BankFormat]

"""
Bank format detection.

Known layouts are a closed enumeration. Each variant carries a declarative
profile; supporting a new bank means adding a variant and its profile.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import structlog

from .normalize import is_amount_like, is_date_like

logger = structlog.get_logger()


class BankFormat(str, Enum):
    HDFC = "HDFC"
    ICICI = "ICICI"
    SBI = "SBI"
    AXIS = "AXIS"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class FormatProfile:
    """Column hints and conventions for one bank layout."""
    name: str
    identifiers: Tuple[str, ...] = ()
    delimiter: str = ","
    date_formats: Tuple[str, ...] = ("DD/MM/YYYY", "YYYY-MM-DD")
    # Extra header keywords per column role, on top of the generic ones
    column_hints: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    # Column positions used when the file carries no header row
    positional: Dict[str, int] = field(default_factory=dict)


_STANDARD_POSITIONS = {"date": 0, "description": 1, "amount": 2, "type": 3, "balance": 4}

PROFILES: Dict[BankFormat, FormatProfile] = {
    BankFormat.HDFC: FormatProfile(
        name="HDFC Bank",
        identifiers=("hdfc", "housing development"),
        date_formats=("DD/MM/YYYY", "DD-MM-YYYY", "YYYY-MM-DD"),
        column_hints={"type": ("debit/credit",), "description": ("remarks",)},
        positional=_STANDARD_POSITIONS,
    ),
    BankFormat.ICICI: FormatProfile(
        name="ICICI Bank",
        identifiers=("icici", "industrial credit"),
        date_formats=("DD/MM/YYYY", "DD-MM-YYYY"),
        column_hints={"amount": ("transaction amount",), "type": ("transaction type", "cr/dr")},
        positional=_STANDARD_POSITIONS,
    ),
    BankFormat.SBI: FormatProfile(
        name="State Bank of India",
        identifiers=("sbi", "state bank", "statebank"),
        date_formats=("DD-MM-YYYY",),
        column_hints={"debit": ("withdrawals",), "credit": ("deposits",)},
        positional={"date": 0, "description": 2, "amount": 4, "balance": 5},
    ),
    BankFormat.AXIS: FormatProfile(
        name="Axis Bank",
        identifiers=("axis",),
        date_formats=("DD/MM/YYYY",),
        column_hints={"date": ("tran date",)},
        positional=_STANDARD_POSITIONS,
    ),
    BankFormat.DEFAULT: FormatProfile(
        name="Generic Bank Statement",
        date_formats=("DD/MM/YYYY", "YYYY-MM-DD"),
        positional=_STANDARD_POSITIONS,
    ),
}


@dataclass
class FormatDetection:
    """Advisory guess of the statement layout."""
    format: BankFormat
    confidence: float

    @property
    def profile(self) -> FormatProfile:
        return PROFILES[self.format]


def _non_empty_lines(content: str) -> List[str]:
    return [line for line in content.splitlines() if line.strip()]


def detect_format(content: str, filename: str = "") -> FormatDetection:
    """
    Guess the bank layout from the header line.

    Args:
        content: Raw statement text
        filename: Original file name (logged only)

    Returns:
        FormatDetection; never raises
    """
    lines = _non_empty_lines(content)
    if len(lines) < 2:
        return FormatDetection(BankFormat.DEFAULT, 0.5)

    header = lines[0].lower()
    for bank_format, profile in PROFILES.items():
        if any(marker in header for marker in profile.identifiers):
            logger.debug("Bank format identified", format=bank_format.value, filename=filename)
            return FormatDetection(bank_format, 0.95)

    columns = [c.strip() for c in lines[1].split(",")]
    has_date = any(is_date_like(c) for c in columns)
    has_amount = any(is_amount_like(c) and not is_date_like(c) for c in columns)

    if has_date and has_amount:
        return FormatDetection(BankFormat.DEFAULT, 0.7)

    return FormatDetection(BankFormat.DEFAULT, 0.3)

"""
Cell-level helpers shared by the format detector and the statement parser.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Tuple


DATE_LIKE_PATTERNS = [
    re.compile(r"^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}$"),  # DD/MM/YYYY or DD-MM-YY
    re.compile(r"^\d{4}[/-]\d{1,2}[/-]\d{1,2}$"),    # YYYY-MM-DD
    re.compile(r"^\d{1,2}[A-Za-z]{3,}\d{2,4}$"),     # 01Mar2024
]

# (pattern, group order as (day, month, year))
DATE_FORMATS = [
    (re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$"), (1, 2, 3)),
    (re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2})$"), (1, 2, 3)),
    (re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$"), (3, 2, 1)),
]

CURRENCY_CHARS = re.compile(r"[₹$€£,\s]|INR|Rs\.?", re.I)
DIRECTION_SUFFIX = re.compile(r"(cr|dr)\.?$", re.I)
NUMERIC = re.compile(r"^-?\d*\.?\d+$")


def split_amount_text(text: str) -> Tuple[str, Optional[str]]:
    """
    Strip currency symbols, thousands separators and a trailing Cr/Dr marker.

    Returns:
        (numeric text, "cr" / "dr" marker or None)
    """
    cleaned = CURRENCY_CHARS.sub("", text.strip())
    marker = None
    suffix = DIRECTION_SUFFIX.search(cleaned)
    if suffix:
        marker = suffix.group(1).lower()
        cleaned = cleaned[: suffix.start()]
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    cleaned = cleaned.replace("(", "").replace(")", "")
    if negative and cleaned and not cleaned.startswith("-"):
        cleaned = "-" + cleaned
    return cleaned, marker


def clean_amount_text(text: str) -> str:
    return split_amount_text(text)[0]


def amount_marker(text: Optional[str]) -> Optional[str]:
    """Direction marker written into an amount cell ("500.00 Dr"), if any."""
    if not text:
        return None
    return split_amount_text(text)[1]


def is_date_like(text: Optional[str]) -> bool:
    if not text:
        return False
    value = text.strip()
    return any(p.match(value) for p in DATE_LIKE_PATTERNS)


def is_amount_like(text: Optional[str]) -> bool:
    if not text or not text.strip():
        return False
    return bool(NUMERIC.match(clean_amount_text(text)))


def parse_amount(text: Optional[str]) -> Decimal:
    """
    Parse an amount cell.

    Returns Decimal('0') for empty or non-numeric input; parenthesised
    values come back negative.
    """
    if not text:
        return Decimal("0")
    cleaned = clean_amount_text(str(text))
    if not NUMERIC.match(cleaned):
        return Decimal("0")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")


def to_cents(amount: Decimal) -> int:
    """Convert standard units to integer cents (half-up)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_date(text: Optional[str]) -> Optional[date]:
    """
    Parse DD/MM/YYYY, DD-MM-YYYY, DD/MM/YY and YYYY-MM-DD.

    Two-digit years are taken as 20YY. Returns None for anything else,
    including impossible calendar dates.
    """
    if not text:
        return None
    value = text.strip()

    for pattern, (d_idx, m_idx, y_idx) in DATE_FORMATS:
        match = pattern.match(value)
        if not match:
            continue
        year = match.group(y_idx)
        if len(year) == 2:
            year = "20" + year
        try:
            return date(int(year), int(match.group(m_idx)), int(match.group(d_idx)))
        except ValueError:
            return None

    return None

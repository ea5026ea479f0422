"""
Candidate scoring for the auto-matcher.

Amount and date closeness each fall linearly with their delta and are worth
exactly half at their limit, so a candidate sitting on both limits scores
the acceptance floor. Anything beyond a limit never enters the pool.

Every pooled candidate therefore scores at least 0.5: with the default
floor of 0.5 the acceptance check never rejects a candidate, and the pool
bounds alone decide eligibility. Only a floor raised above 0.5 binds.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from ..config import Settings
from ..models import (
    AccountingTransaction,
    BankLine,
    MatchCandidate,
    PaymentStatus,
)


@dataclass(frozen=True)
class MatchTolerance:
    """
    Amount and date limits for one matcher run.

    The amount limit is either a ratio of the bank line amount or an absolute
    value in cents; `min_absolute_cents` is a floor applied to either.
    """
    ratio: Optional[Decimal] = Decimal("0.01")
    absolute_cents: Optional[Decimal] = None
    min_absolute_cents: Decimal = Decimal("0")
    date_window_days: int = 7

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        amount_tolerance: Optional[float] = None,
        amount_tolerance_ratio: Optional[float] = None,
        date_window_days: Optional[int] = None,
    ) -> "MatchTolerance":
        """
        Build limits from settings plus per-run overrides.

        Args:
            amount_tolerance: Absolute tolerance in currency units (wins over ratio)
            amount_tolerance_ratio: Fraction of the line amount
            date_window_days: Max days between bank date and voucher date
        """
        absolute = None
        if amount_tolerance is not None:
            absolute = Decimal(str(amount_tolerance)) * 100

        ratio = amount_tolerance_ratio
        if ratio is None:
            ratio = settings.amount_tolerance_ratio

        window = settings.date_window_days if date_window_days is None else date_window_days

        return cls(
            ratio=Decimal(str(ratio)),
            absolute_cents=absolute,
            min_absolute_cents=Decimal(str(settings.min_absolute_tolerance)) * 100,
            date_window_days=window,
        )

    def amount_limit_cents(self, amount_cents: int) -> Decimal:
        if self.absolute_cents is not None:
            limit = abs(self.absolute_cents)
        else:
            limit = abs(Decimal(amount_cents) * (self.ratio or Decimal("0")))
        return max(limit, self.min_absolute_cents)


def closeness(delta, limit) -> float:
    """
    Linear closeness in [0.5, 1] for 0 <= delta <= limit.

    A zero limit only admits an exact hit.
    """
    delta = Decimal(abs(delta))
    limit = Decimal(limit)
    if limit <= 0:
        return 1.0 if delta == 0 else 0.0
    return float(1 - delta / (2 * limit))


def build_candidate(
    line: BankLine,
    transaction: AccountingTransaction,
    tolerance: MatchTolerance,
    amount_weight: float = 0.6,
    date_weight: float = 0.4,
) -> Optional[MatchCandidate]:
    """Score one pairing; None when it falls outside either limit."""
    if line.transaction_date is None:
        return None

    amount_delta = abs(line.amount_cents - transaction.total_amount_cents)
    date_delta = abs((line.transaction_date - transaction.transaction_date).days)

    amount_limit = tolerance.amount_limit_cents(line.amount_cents)
    if amount_delta > amount_limit or date_delta > tolerance.date_window_days:
        return None

    candidate = MatchCandidate(
        line=line,
        transaction=transaction,
        amount_delta_cents=amount_delta,
        date_delta_days=date_delta,
        amount_score=closeness(amount_delta, amount_limit),
        date_score=closeness(date_delta, tolerance.date_window_days),
    )
    candidate.calculate_combined_score(amount_weight, date_weight)
    return candidate


def rank_candidates(candidates: Iterable[MatchCandidate]) -> List[MatchCandidate]:
    """Score desc, then amount delta asc, then transaction id asc."""
    return sorted(candidates, key=lambda c: c.rank_key())


def is_acceptable(candidate: MatchCandidate, floor: float = 0.5) -> bool:
    return round(candidate.combined_score, 9) >= floor


def compute_confidence(bank_amount_cents: int, transaction_amount_cents: int) -> float:
    """100 minus the amount delta as a percentage of the bank amount, in [0, 100]."""
    delta = abs(bank_amount_cents - transaction_amount_cents)
    if bank_amount_cents == 0:
        return 100.0 if delta == 0 else 0.0
    confidence = 100 - (delta / abs(bank_amount_cents)) * 100
    return round(min(100.0, max(0.0, confidence)), 2)


def settlement_status(bank_amount_cents: int, transaction_amount_cents: int) -> PaymentStatus:
    """PAID when the bank movement covers the voucher total, else PARTIAL."""
    if bank_amount_cents >= transaction_amount_cents:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL

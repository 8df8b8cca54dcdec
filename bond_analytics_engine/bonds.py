from __future__ import annotations

import pandas as pd
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import ValidationError
from .utils import DayCount, months_per_period


class ExerciseStyle(str, Enum):
    AMERICAN = "AMERICAN"
    EUROPEAN = "EUROPEAN"
    BERMUDA = "BERMUDA"


@dataclass(frozen=True)
class BondTerms:
    """
    Contractual terms of a fixed-coupon bond.

    Rates are decimals (0.05 = 5%); the percent -> decimal conversion happens
    once, at the request boundary.
    """
    issue_date: pd.Timestamp
    maturity: pd.Timestamp
    coupon_rate: float
    face: float = 100.0
    freq: int = 2
    day_count: DayCount = DayCount.THIRTY_360
    first_coupon_date: Optional[pd.Timestamp] = None
    settlement_lag: int = 2
    issuer: str = ""
    currency: str = "USD"
    isin: Optional[str] = None
    cusip: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "day_count", DayCount.parse(self.day_count))
        validate_terms(self)


@dataclass(frozen=True)
class AmortizationEntry:
    date: pd.Timestamp
    principal_pct: float  # percent of ORIGINAL face, (0, 100]


@dataclass(frozen=True)
class CouponRateChange:
    effective_date: pd.Timestamp
    new_rate: float  # decimal


@dataclass(frozen=True)
class OptionEntry:
    """One call or put window."""
    start: pd.Timestamp
    end: pd.Timestamp
    strike_pct: float  # percent of face
    style: ExerciseStyle = ExerciseStyle.AMERICAN
    exercise_dates: Tuple[pd.Timestamp, ...] = ()


@dataclass(frozen=True)
class BondFeatures:
    amortization: Tuple[AmortizationEntry, ...] = ()
    calls: Tuple[OptionEntry, ...] = ()
    puts: Tuple[OptionEntry, ...] = ()
    rate_changes: Tuple[CouponRateChange, ...] = ()

    @property
    def has_options(self) -> bool:
        return bool(self.calls or self.puts)


NO_FEATURES = BondFeatures()


def validate_terms(terms: BondTerms) -> None:
    if not terms.face > 0:
        raise ValidationError(f"Face value must be positive, got {terms.face}")
    if terms.maturity <= terms.issue_date:
        raise ValidationError(
            f"Maturity {terms.maturity.date()} must be after issue date {terms.issue_date.date()}"
        )
    months_per_period(terms.freq)
    if terms.first_coupon_date is not None and not (terms.issue_date < terms.first_coupon_date <= terms.maturity):
        raise ValidationError("First coupon date must fall in (issue, maturity].")
    if terms.settlement_lag < 0:
        raise ValidationError("Settlement lag must be non-negative.")
    if not (-0.01 <= terms.coupon_rate <= 0.5):
        raise ValidationError(f"Coupon rate out of plausible range: {terms.coupon_rate:.4%}")


def validate_features(terms: BondTerms, features: BondFeatures) -> None:
    """
    Check feature schedules against the bond's life. Ordering inside each list must be strictly increasing.
    """
    total_pct = 0.0
    prev = None
    for a in features.amortization:
        if not (terms.issue_date < a.date < terms.maturity):
            raise ValidationError(f"Amortization date {a.date.date()} must fall strictly between issue and maturity.")
        if not (0.0 < a.principal_pct <= 100.0):
            raise ValidationError(f"Amortization percent must be in (0, 100], got {a.principal_pct}")
        if prev is not None and a.date <= prev:
            raise ValidationError("Amortization schedule dates must be strictly increasing.")
        prev = a.date
        total_pct += a.principal_pct
    if total_pct > 100.0 + 1e-9:
        raise ValidationError(f"Amortization percents sum to {total_pct:.6g}% (> 100%).")

    prev = None
    for rc in features.rate_changes:
        if rc.effective_date <= terms.issue_date:
            raise ValidationError(f"Coupon rate change {rc.effective_date.date()} must be after issue date.")
        if not (-0.01 <= rc.new_rate <= 0.5):
            raise ValidationError(f"Coupon rate change out of plausible range: {rc.new_rate:.4%}")
        if prev is not None and rc.effective_date <= prev:
            raise ValidationError("Coupon rate changes must be strictly increasing in effective date.")
        prev = rc.effective_date

    for label, entries in (("Call", features.calls), ("Put", features.puts)):
        for o in entries:
            if o.end < o.start:
                raise ValidationError(f"{label} window ends before it starts ({o.start.date()} > {o.end.date()}).")
            if o.start <= terms.issue_date or o.end > terms.maturity:
                raise ValidationError(f"{label} window must fall within (issue, maturity].")
            if not o.strike_pct > 0:
                raise ValidationError(f"{label} strike must be positive, got {o.strike_pct}")
            for d in o.exercise_dates:
                if not (o.start <= d <= o.end):
                    raise ValidationError(f"{label} exercise date {d.date()} outside its window.")


def coupon_rate_on(terms: BondTerms, features: BondFeatures, coupon_date: pd.Timestamp) -> float:
    """
    Annual rate paid on `coupon_date`: the latest change effective on or
    before that date, else the base rate.
    """
    rate = terms.coupon_rate
    for rc in features.rate_changes:
        if rc.effective_date <= coupon_date:
            rate = rc.new_rate
        else:
            break
    return rate

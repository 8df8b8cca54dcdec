from __future__ import annotations

import pandas as pd
from enum import Enum
from typing import List, Optional
from pandas.tseries.offsets import BDay, MonthEnd

from .errors import DateRangeError, ValidationError


class DayCount(str, Enum):
    THIRTY_360 = "30/360"
    THIRTY_E_360 = "30E/360"
    ACT_ACT = "ACT/ACT"
    ACT_360 = "ACT/360"
    ACT_365 = "ACT/365"

    @classmethod
    def parse(cls, value) -> "DayCount":
        if isinstance(value, DayCount):
            return value
        key = str(value).upper().replace(" ", "")
        key = _DAY_COUNT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unsupported day count convention: {value}") from None


_DAY_COUNT_ALIASES = {
    "30/360US": "30/360",
    "30U/360": "30/360",
    "BOND": "30/360",
    "30E/360ISMA": "30E/360",
    "EUROBOND": "30E/360",
    "ACT/ACTISDA": "ACT/ACT",
    "ACT/ACTICMA": "ACT/ACT",
    "ACT/ACTISMA": "ACT/ACT",
    "ACTUAL/ACTUAL": "ACT/ACT",
    "ACT/365F": "ACT/365",
    "ACT/365FIXED": "ACT/365",
    "ACTUAL/365": "ACT/365",
    "ACTUAL/360": "ACT/360",
}


def to_date(value) -> pd.Timestamp:
    """
    Parse an ISO 8601 calendar date (or date-like) into a tz-naive midnight Timestamp.

    Calendar dates only: anything carrying a time of day or a timezone is rejected.
    """
    if value is None:
        raise ValidationError("Missing date.")
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc
    if ts is pd.NaT:
        raise ValidationError(f"Invalid date: {value!r}")
    if ts.tzinfo is not None:
        raise ValidationError(f"Dates must not carry a timezone: {value!r}")
    if ts != ts.normalize():
        raise ValidationError(f"Dates must not carry a time component: {value!r}")
    return ts


def days_between(start: pd.Timestamp, end: pd.Timestamp) -> int:
    return (pd.Timestamp(end) - pd.Timestamp(start)).days


def _is_leap(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def _act_act_isda(start: pd.Timestamp, end: pd.Timestamp) -> float:
    if start.year == end.year:
        return (end - start).days / (366.0 if _is_leap(start.year) else 365.0)

    frac = 0.0
    for year in range(start.year, end.year + 1):
        lo = start if year == start.year else pd.Timestamp(year=year, month=1, day=1)
        hi = end if year == end.year else pd.Timestamp(year=year + 1, month=1, day=1)
        frac += (hi - lo).days / (366.0 if _is_leap(year) else 365.0)
    return frac


def year_fraction(start: pd.Timestamp, end: pd.Timestamp, convention) -> float:
    """
    Year fraction between two dates under a day count convention.

    Supported:
    - 30/360 (US bond basis), 30E/360 (Eurobond basis)
    - ACT/ACT (ISDA: days in leap years over 366, the rest over 365)
    - ACT/360, ACT/365 (fixed)
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    convention = DayCount.parse(convention)

    if end < start:
        raise DateRangeError(f"end < start: start={start.date()} end={end.date()}")

    if convention is DayCount.ACT_365:
        return (end - start).days / 365.0

    if convention is DayCount.ACT_360:
        return (end - start).days / 360.0

    if convention is DayCount.ACT_ACT:
        return _act_act_isda(start, end)

    y1, m1, d1 = start.year, start.month, start.day
    y2, m2, d2 = end.year, end.month, end.day

    if convention is DayCount.THIRTY_E_360:
        d1 = min(d1, 30)
        d2 = min(d2, 30)
    else:
        if d1 == 31:
            d1 = 30
        if d2 == 31 and d1 == 30:
            d2 = 30

    return ((y2 - y1) * 360 + (m2 - m1) * 30 + (d2 - d1)) / 360.0


# Discount times are always measured from settlement.
def years_from_settlement(settle: pd.Timestamp, date: pd.Timestamp, convention) -> float:
    return year_fraction(settle, date, convention)


def accrual_fraction(
    period_start: pd.Timestamp,
    settle: pd.Timestamp,
    period_end: pd.Timestamp,
    convention,
) -> float:
    """
    Elapsed share of a coupon period at `settle`, in [0, 1].

    ACT/ACT uses the ISMA ratio (actual days elapsed over actual days in the period);
    every other convention is the ratio of its own year fractions.
    """
    convention = DayCount.parse(convention)
    if not (period_start <= settle <= period_end):
        raise DateRangeError(
            f"settlement {pd.Timestamp(settle).date()} outside coupon period "
            f"[{pd.Timestamp(period_start).date()}, {pd.Timestamp(period_end).date()}]"
        )

    if convention is DayCount.ACT_ACT:
        num = days_between(period_start, settle)
        den = days_between(period_start, period_end)
    else:
        num = year_fraction(period_start, settle, convention)
        den = year_fraction(period_start, period_end, convention)

    if den <= 0:
        raise DateRangeError("Invalid coupon period length from schedule/daycount.")
    return num / den


def months_per_period(freq: int) -> int:
    if freq <= 0 or 12 % freq != 0:
        raise ValidationError(f"Payment frequency must divide 12, got {freq}")
    return 12 // freq


def _is_month_end(d: pd.Timestamp) -> bool:
    return d.is_month_end


def add_months(anchor: pd.Timestamp, months: int, month_end: bool = False) -> pd.Timestamp:
    """
    Calendar month offset from `anchor`, clipping to the last day of short months.

    With `month_end`, results are rolled to the last day of their month (end-of-month rule).
    """
    out = pd.Timestamp(anchor) + pd.DateOffset(months=months)
    if month_end:
        out = out + MonthEnd(0)
    return out


def coupon_dates(
    issue: pd.Timestamp,
    maturity: pd.Timestamp,
    freq: int,
    first_coupon: Optional[pd.Timestamp] = None,
) -> List[pd.Timestamp]:
    """
    Coupon payment dates strictly after issue, ending at maturity (inclusive).

    With a first coupon date the ladder steps forward from it; otherwise it is
    anchored at maturity and stepped backwards. Each date is an offset from the
    anchor (not from the previous date) so month-end clipping never drifts.
    """
    issue = pd.Timestamp(issue)
    maturity = pd.Timestamp(maturity)
    months = months_per_period(freq)

    if maturity <= issue:
        raise ValidationError("Maturity must be after issue date.")

    dates: List[pd.Timestamp] = []

    if first_coupon is not None:
        first_coupon = pd.Timestamp(first_coupon)
        if not (issue < first_coupon <= maturity):
            raise ValidationError("First coupon date must fall in (issue, maturity].")
        eom = _is_month_end(first_coupon)
        k = 0
        d = first_coupon
        while d < maturity:
            dates.append(d)
            k += 1
            d = add_months(first_coupon, k * months, month_end=eom)
        dates.append(maturity)
        return dates

    eom = _is_month_end(maturity)
    k = 0
    d = maturity
    while d > issue:
        dates.append(d)
        k += 1
        d = add_months(maturity, -k * months, month_end=eom)
    dates.reverse()
    return dates


def settlement_date(trade_date: pd.Timestamp, lag_days: int = 2) -> pd.Timestamp:
    """
    Settlement date: trade date + lag_days business days (weekends skipped).
    Holiday calendars are not modelled.
    """
    if lag_days < 0:
        raise ValidationError("Settlement lag must be non-negative.")
    trade_date = pd.Timestamp(trade_date)
    if lag_days == 0:
        return trade_date
    return trade_date + BDay(lag_days)

import pandas as pd
import pytest

from bond_analytics_engine.errors import DateRangeError, ValidationError
from bond_analytics_engine.utils import (
    DayCount,
    accrual_fraction,
    add_months,
    coupon_dates,
    settlement_date,
    to_date,
    year_fraction,
)


def test_thirty_360_us_end_of_month_rules():
    yf = year_fraction(pd.Timestamp("2025-01-31"), pd.Timestamp("2025-03-31"), "30/360")
    assert yf == pytest.approx(60 / 360, abs=1e-15), "d1=31 -> 30, then d2=31 -> 30"

    yf = year_fraction(pd.Timestamp("2025-02-28"), pd.Timestamp("2025-03-31"), "30/360")
    assert yf == pytest.approx(33 / 360, abs=1e-15), "d2=31 is kept when d1 < 30"


def test_thirty_e_360_caps_both_days():
    yf = year_fraction(pd.Timestamp("2025-02-28"), pd.Timestamp("2025-03-31"), DayCount.THIRTY_E_360)
    assert yf == pytest.approx(32 / 360, abs=1e-15)


def test_act_act_isda_splits_leap_year():
    yf = year_fraction(pd.Timestamp("2023-07-01"), pd.Timestamp("2024-07-01"), "ACT/ACT")
    assert yf == pytest.approx(184 / 365 + 182 / 366, abs=1e-15)


def test_act_fixed_denominators():
    start, end = pd.Timestamp("2025-01-01"), pd.Timestamp("2025-07-01")
    assert year_fraction(start, end, "ACT/360") == pytest.approx(181 / 360)
    assert year_fraction(start, end, "ACT/365") == pytest.approx(181 / 365)


def test_year_fraction_rejects_reversed_dates():
    with pytest.raises(DateRangeError):
        year_fraction(pd.Timestamp("2025-07-01"), pd.Timestamp("2025-01-01"), "30/360")


def test_day_count_aliases():
    assert DayCount.parse("act/365f") is DayCount.ACT_365
    assert DayCount.parse(" ACT/ACT ICMA ") is DayCount.ACT_ACT
    assert DayCount.parse("30/360 US") is DayCount.THIRTY_360
    with pytest.raises(ValidationError):
        DayCount.parse("BUS/252")


def test_accrual_fraction_half_period():
    frac = accrual_fraction(
        pd.Timestamp("2025-01-15"), pd.Timestamp("2025-04-15"), pd.Timestamp("2025-07-15"), "30/360"
    )
    assert frac == pytest.approx(0.5, abs=1e-15)

    with pytest.raises(DateRangeError):
        accrual_fraction(pd.Timestamp("2025-01-15"), pd.Timestamp("2025-08-15"), pd.Timestamp("2025-07-15"), "30/360")


def test_coupon_dates_backward_from_maturity():
    dates = coupon_dates(pd.Timestamp("2025-01-15"), pd.Timestamp("2027-01-15"), 2)
    assert dates == [
        pd.Timestamp("2025-07-15"),
        pd.Timestamp("2026-01-15"),
        pd.Timestamp("2026-07-15"),
        pd.Timestamp("2027-01-15"),
    ]


def test_coupon_dates_month_end_rule_does_not_drift():
    dates = coupon_dates(pd.Timestamp("2025-02-28"), pd.Timestamp("2027-02-28"), 2)
    assert dates == [
        pd.Timestamp("2025-08-31"),
        pd.Timestamp("2026-02-28"),
        pd.Timestamp("2026-08-31"),
        pd.Timestamp("2027-02-28"),
    ]


def test_coupon_dates_forward_from_first_coupon_with_short_stub():
    dates = coupon_dates(
        pd.Timestamp("2025-03-01"), pd.Timestamp("2026-06-15"), 4, first_coupon=pd.Timestamp("2025-06-15")
    )
    assert dates[0] == pd.Timestamp("2025-06-15")
    assert dates[-1] == pd.Timestamp("2026-06-15")
    assert len(dates) == 5
    assert all(b > a for a, b in zip(dates, dates[1:]))


def test_add_months_clips_short_months():
    assert add_months(pd.Timestamp("2025-01-31"), 1) == pd.Timestamp("2025-02-28")
    assert add_months(pd.Timestamp("2024-02-29"), 6, month_end=True) == pd.Timestamp("2024-08-31")


def test_settlement_skips_weekend():
    friday = pd.Timestamp("2025-01-17")
    assert settlement_date(friday, 0) == friday
    assert settlement_date(friday, 1) == pd.Timestamp("2025-01-20")
    assert settlement_date(friday, 2) == pd.Timestamp("2025-01-21")


def test_to_date_calendar_dates_only():
    assert to_date("2025-01-15") == pd.Timestamp("2025-01-15")
    with pytest.raises(ValidationError):
        to_date("2025-01-15T10:30:00")
    with pytest.raises(ValidationError):
        to_date("not a date")
    with pytest.raises(ValidationError):
        to_date(None)

import pandas as pd
import pytest

from bond_analytics_engine.bonds import AmortizationEntry, BondFeatures, BondTerms
from bond_analytics_engine.cashflows import build_schedule
from bond_analytics_engine.pricing import flow_arrays
from bond_analytics_engine.risk import average_life, compute_risk, macaulay_duration
from bond_analytics_engine.solver import solve_yield


@pytest.fixture(scope="module")
def settle():
    return pd.Timestamp("2025-01-15")


@pytest.fixture(scope="module")
def bullet_terms():
    return BondTerms(
        issue_date=pd.Timestamp("2025-01-15"),
        maturity=pd.Timestamp("2035-01-15"),
        coupon_rate=0.05,
        face=1000.0,
        freq=2,
        day_count="30/360",
    )


@pytest.fixture(scope="module")
def bullet_at_par(bullet_terms, settle):
    sched = build_schedule(bullet_terms)
    y = solve_yield(sched, settle, 100.0).annual_yield
    return sched, y, compute_risk(sched, settle, y, 100.0)


def test_bullet_scenario(bullet_at_par):
    _, y, risk = bullet_at_par
    assert y == pytest.approx(0.05, abs=1e-9)
    assert abs(risk.modified_duration - 7.8) < 0.1
    assert risk.macaulay_duration == pytest.approx(risk.modified_duration * 1.025, rel=1e-12)
    assert risk.dv01 == pytest.approx(0.78, abs=0.005), "DV01 in currency for 1000 face"


def test_effective_metrics_match_analytic(bullet_at_par):
    _, _, risk = bullet_at_par
    assert risk.effective_duration == pytest.approx(risk.modified_duration, rel=1e-5)
    assert risk.effective_convexity == pytest.approx(risk.convexity, rel=1e-4)
    assert risk.convexity > 0


def test_carry_metrics(bullet_at_par, settle):
    _, _, risk = bullet_at_par
    assert risk.current_yield == pytest.approx(0.05)
    assert risk.average_life == pytest.approx(10.0)
    assert risk.total_coupons == pytest.approx(500.0)
    assert risk.outstanding == 1000.0
    assert risk.next_payment_date == pd.Timestamp("2025-07-15")
    assert risk.next_payment_amount == pytest.approx(25.0)
    assert risk.days_to_next_payment == 181


def test_zero_coupon_macaulay_equals_maturity(settle):
    terms = BondTerms(settle, pd.Timestamp("2030-01-15"), 0.0, face=100.0, freq=1)
    sched = build_schedule(terms)
    arrays = flow_arrays(sched, settle)
    assert macaulay_duration(arrays, 0.04, 1) == pytest.approx(5.0, abs=1e-12)


def test_average_life_amortizing(bullet_terms, settle):
    feats = BondFeatures(amortization=(
        AmortizationEntry(pd.Timestamp("2027-01-15"), 25.0),
        AmortizationEntry(pd.Timestamp("2030-01-15"), 25.0),
        AmortizationEntry(pd.Timestamp("2032-01-15"), 25.0),
    ))
    sched = build_schedule(bullet_terms, feats)
    assert average_life(sched, settle) == pytest.approx(6.0)

    bullet_risk = compute_risk(build_schedule(bullet_terms), settle, 0.05, 100.0)
    amort_risk = compute_risk(sched, settle, 0.05, 100.0)
    assert amort_risk.modified_duration < bullet_risk.modified_duration

import numpy as np
import pandas as pd
import pytest

from bond_analytics_engine.bonds import AmortizationEntry, BondFeatures, BondTerms, CouponRateChange
from bond_analytics_engine.cashflows import (
    CashFlow,
    PaymentType,
    adopt_schedule,
    build_schedule,
    outstanding_before,
    parse_cash_flows,
    truncate_at,
)
from bond_analytics_engine.errors import ScheduleError, ValidationError


@pytest.fixture(scope="module")
def amortizing_terms():
    return BondTerms(
        issue_date=pd.Timestamp("2025-01-15"),
        maturity=pd.Timestamp("2035-01-15"),
        coupon_rate=0.05,
        face=1000.0,
        freq=2,
        day_count="30/360",
        issuer="AMORT 10Y",
    )


@pytest.fixture(scope="module")
def amortizing_features():
    return BondFeatures(
        amortization=(
            AmortizationEntry(pd.Timestamp("2027-01-15"), 25.0),
            AmortizationEntry(pd.Timestamp("2030-01-15"), 25.0),
            AmortizationEntry(pd.Timestamp("2032-01-15"), 25.0),
        )
    )


@pytest.fixture(scope="module")
def amortizing_schedule(amortizing_terms, amortizing_features):
    return build_schedule(amortizing_terms, amortizing_features)


def test_bullet_schedule_shape(amortizing_terms):
    sched = build_schedule(amortizing_terms)
    assert len(sched) == 20
    assert all(cf.payment_type is PaymentType.COUPON for cf in sched.flows[:-1])
    last = sched.flows[-1]
    assert last.payment_type is PaymentType.MATURITY
    assert last.principal == 1000.0 and last.coupon == pytest.approx(25.0)
    assert last.outstanding == 0.0


def test_amortization_conserves_face_exactly(amortizing_schedule):
    assert amortizing_schedule.total_principal() == 1000.0
    amort = [cf for cf in amortizing_schedule if cf.payment_type is PaymentType.AMORTIZATION]
    assert [cf.principal for cf in amort] == [250.0, 250.0, 250.0]
    assert amortizing_schedule.flows[-1].principal == 250.0


def test_coupons_follow_outstanding_notional(amortizing_schedule):
    by_date = {cf.date: cf for cf in amortizing_schedule}
    # period ending on the amortization date still accrues on the full notional
    assert by_date[pd.Timestamp("2027-01-15")].coupon == pytest.approx(25.0)
    assert by_date[pd.Timestamp("2027-07-15")].coupon == pytest.approx(18.75)
    assert by_date[pd.Timestamp("2034-07-15")].coupon == pytest.approx(6.25)


def test_outstanding_invariant(amortizing_schedule):
    outs = np.array([cf.outstanding for cf in amortizing_schedule])
    assert np.all(outs >= 0)
    assert np.all(np.diff(outs) <= 0), "outstanding notional must be non-increasing"
    assert outs[-1] == 0.0
    for cf in amortizing_schedule:
        assert cf.total == pytest.approx(cf.coupon + cf.principal, abs=1e-12)


def test_random_amortization_conservation():
    rng = np.random.default_rng(7)
    issue = pd.Timestamp("2025-03-31")
    for _ in range(25):
        years = int(rng.integers(3, 20))
        freq = int(rng.choice([1, 2, 4, 12]))
        face = float(rng.choice([100.0, 1000.0, 1_000_000.0]))
        terms = BondTerms(issue, issue + pd.DateOffset(years=years), 0.04, face=face, freq=freq)
        ladder = build_schedule(terms).dates[:-1]

        n = int(rng.integers(1, min(6, len(ladder)) + 1))
        picks = sorted(rng.choice(len(ladder), size=n, replace=False))
        pcts = rng.dirichlet(np.ones(n + 1))[:n] * 100.0
        feats = BondFeatures(amortization=tuple(
            AmortizationEntry(ladder[i], float(p)) for i, p in zip(picks, pcts)
        ))

        sched = build_schedule(terms, feats)
        assert sched.total_principal() == pytest.approx(face, rel=0, abs=1e-9 * face)
        assert sched.flows[-1].outstanding == 0.0
        assert np.all(np.diff([cf.outstanding for cf in sched]) <= 0)


def test_step_up_pays_new_rate_on_effective_coupon_date():
    terms = BondTerms(pd.Timestamp("2025-01-15"), pd.Timestamp("2035-01-15"), 0.03, face=1000.0, freq=2)
    feats = BondFeatures(rate_changes=(CouponRateChange(pd.Timestamp("2030-01-15"), 0.06),))
    sched = build_schedule(terms, feats)
    by_date = {cf.date: cf for cf in sched}

    assert by_date[pd.Timestamp("2029-07-15")].coupon == pytest.approx(15.0)
    assert by_date[pd.Timestamp("2030-01-15")].coupon == pytest.approx(30.0)
    assert by_date[pd.Timestamp("2030-01-15")].coupon_rate == 0.06
    assert by_date[pd.Timestamp("2030-07-15")].coupon == pytest.approx(30.0)
    assert by_date[pd.Timestamp("2035-01-15")].coupon_rate == 0.06


def test_step_up_effective_mid_period_reaches_next_coupon():
    terms = BondTerms(pd.Timestamp("2025-01-15"), pd.Timestamp("2035-01-15"), 0.03, face=1000.0, freq=2)
    feats = BondFeatures(rate_changes=(CouponRateChange(pd.Timestamp("2030-03-01"), 0.06),))
    by_date = {cf.date: cf for cf in build_schedule(terms, feats)}

    assert by_date[pd.Timestamp("2030-01-15")].coupon == pytest.approx(15.0)
    assert by_date[pd.Timestamp("2030-07-15")].coupon == pytest.approx(30.0)


def test_amortization_off_ladder_is_schedule_error(amortizing_terms):
    feats = BondFeatures(amortization=(AmortizationEntry(pd.Timestamp("2027-02-01"), 10.0),))
    with pytest.raises(ScheduleError):
        build_schedule(amortizing_terms, feats)


def test_amortization_over_face_is_schedule_error(amortizing_terms):
    feats = BondFeatures(amortization=(
        AmortizationEntry(pd.Timestamp("2027-01-15"), 60.0),
        AmortizationEntry(pd.Timestamp("2028-01-15"), 60.0),
    ))
    with pytest.raises(ScheduleError):
        build_schedule(amortizing_terms, feats)


def test_full_early_amortization_ends_schedule(amortizing_terms):
    feats = BondFeatures(amortization=(
        AmortizationEntry(pd.Timestamp("2027-01-15"), 40.0),
        AmortizationEntry(pd.Timestamp("2029-01-15"), 60.0),
    ))
    sched = build_schedule(amortizing_terms, feats)
    assert sched.maturity == pd.Timestamp("2029-01-15")
    assert sched.total_principal() == 1000.0
    assert sched.flows[-1].outstanding == 0.0


def test_adopt_schedule_passes_flows_through(amortizing_terms, amortizing_schedule):
    adopted = adopt_schedule(amortizing_terms, amortizing_schedule.flows)
    assert adopted.source == "predefined"
    assert adopted.flows == amortizing_schedule.flows


def test_adopt_schedule_rejects_inconsistent_flows(amortizing_terms, amortizing_schedule):
    flows = list(amortizing_schedule.flows)

    bad_total = flows.copy()
    cf = bad_total[3]
    bad_total[3] = CashFlow(cf.date, cf.coupon, cf.principal, cf.total + 1.0, cf.outstanding, cf.payment_type, cf.coupon_rate)
    with pytest.raises(ScheduleError):
        adopt_schedule(amortizing_terms, bad_total)

    with pytest.raises(ScheduleError):
        adopt_schedule(amortizing_terms, flows[:-1])  # final outstanding not zero

    with pytest.raises(ScheduleError):
        adopt_schedule(amortizing_terms, [flows[1], flows[0]] + flows[2:])

    with pytest.raises(ScheduleError):
        adopt_schedule(amortizing_terms, [])


def test_parse_persisted_rows_derives_missing_rate():
    rows = [
        {"date": "2025-07-15", "couponPayment": 25.0, "principalPayment": 0.0,
         "totalPayment": 25.0, "remainingNotional": 1000.0, "paymentType": "COUPON"},
        {"date": "2026-01-15", "couponPayment": 25.0, "principalPayment": 500.0,
         "totalPayment": 525.0, "remainingNotional": 500.0, "paymentType": "AMORTIZATION"},
        {"date": "2026-07-15", "couponPayment": 12.5, "principalPayment": 500.0,
         "remainingNotional": 0.0},
    ]
    flows = parse_cash_flows(rows, face=1000.0, freq=2)
    assert [cf.coupon_rate for cf in flows] == pytest.approx([0.05, 0.05, 0.05])
    assert flows[-1].payment_type is PaymentType.MATURITY
    assert flows[-1].total == 512.5

    with pytest.raises(ValidationError):
        parse_cash_flows([{"date": "2025-07-15", "couponPayment": 25.0}], face=1000.0, freq=2)


def test_truncate_at_redeems_outstanding_at_strike(amortizing_schedule):
    d = pd.Timestamp("2031-01-15")
    notional = outstanding_before(amortizing_schedule, d)
    assert notional == 500.0

    alt = truncate_at(amortizing_schedule, d, 102.0, PaymentType.CALL)
    last = alt.flows[-1]
    assert last.date == d and last.payment_type is PaymentType.CALL
    assert last.principal == pytest.approx(510.0)
    assert last.coupon == pytest.approx(12.5)
    assert last.outstanding == 0.0


def test_truncate_off_coupon_date_pays_accrued_share(amortizing_schedule):
    d = pd.Timestamp("2026-04-15")
    alt = truncate_at(amortizing_schedule, d, 100.0, PaymentType.PUT)
    last = alt.flows[-1]
    assert last.coupon == pytest.approx(12.5)
    assert last.principal == pytest.approx(1000.0)
    assert len(alt) == 3


def test_to_frame_columns(amortizing_schedule):
    df = amortizing_schedule.to_frame()
    assert list(df.columns) == ["date", "coupon", "principal", "total", "outstanding", "payment_type", "coupon_rate"]
    assert len(df) == len(amortizing_schedule)

import pandas as pd
import pytest

from bond_analytics_engine.bonds import BondTerms
from bond_analytics_engine.cashflows import build_schedule


def _random_schedule(rng):
    """Random bullet schedule plus a settlement date strictly inside its life."""
    issue = pd.Timestamp("2024-01-01") + pd.Timedelta(days=int(rng.integers(0, 700)))
    years = int(rng.integers(1, 31))
    terms = BondTerms(
        issue_date=issue,
        maturity=issue + pd.DateOffset(years=years),
        coupon_rate=float(rng.uniform(0.0, 0.12)),
        face=float(rng.choice([100.0, 1000.0])),
        freq=int(rng.choice([1, 2, 4, 12])),
        day_count=str(rng.choice(["30/360", "30E/360", "ACT/ACT", "ACT/360", "ACT/365"])),
    )
    sched = build_schedule(terms)
    life = (sched.maturity - issue).days
    settle = issue + pd.Timedelta(days=int(rng.integers(0, life)))
    return sched, settle


@pytest.fixture(scope="session")
def random_schedule():
    return _random_schedule

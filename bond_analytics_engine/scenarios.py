from __future__ import annotations

import pandas as pd
from typing import Sequence

from .cashflows import CashFlowSchedule
from .config import BP, DEFAULT_SETTINGS, SolverSettings
from .pricing import flow_arrays, present_value
from .risk import convexity, modified_duration
from .solver import solve_yield

DEFAULT_SHOCKS_BP = (-100, -50, -25, 25, 50, 100)
DEFAULT_PRICE_CHANGES_PCT = (-5.0, -2.0, -1.0, 1.0, 2.0, 5.0)


def run_yield_scenarios(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    base_yield: float,
    shocks_bp: Sequence[float] = DEFAULT_SHOCKS_BP,
) -> pd.DataFrame:
    """
    Reprice under parallel yield shocks. P&L is per 100 of face; `approx_PnL`
    is the duration + convexity estimate for comparison.
    """
    settle = pd.Timestamp(settle)
    arrays = flow_arrays(schedule, settle)
    base = present_value(schedule, settle, base_yield, arrays)

    mod = modified_duration(arrays, base_yield, schedule.freq)
    cvx = convexity(arrays, base_yield, schedule.freq)

    rows = []
    for s_bp in shocks_bp:
        dy = s_bp / BP
        px = present_value(schedule, settle, base_yield + dy, arrays)
        rows.append(
            {
                "scenario": f"YLD_{s_bp:+g}bp",
                "shock_bp": s_bp,
                "yield": base_yield + dy,
                "clean": px.clean,
                "dirty": px.dirty,
                "PnL": px.dirty - base.dirty,
                "approx_PnL": base.dirty * (-mod * dy + 0.5 * cvx * dy * dy),
            }
        )

    out = pd.DataFrame(rows)
    return out.sort_values("shock_bp").reset_index(drop=True)


def run_price_sensitivity(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    base_clean: float,
    pct_changes: Sequence[float] = DEFAULT_PRICE_CHANGES_PCT,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> pd.DataFrame:
    """Yield implied by relative clean price moves (pct_changes in percent of the base price)."""
    settle = pd.Timestamp(settle)
    base_y = solve_yield(schedule, settle, base_clean, settings=settings).annual_yield

    rows = []
    for chg in pct_changes:
        clean = base_clean * (1.0 + chg / 100.0)
        y = solve_yield(schedule, settle, clean, seed=base_y, settings=settings).annual_yield
        rows.append(
            {
                "price_change_pct": chg,
                "clean": clean,
                "yield": y,
                "yield_change_bp": (y - base_y) * BP,
            }
        )
    return pd.DataFrame(rows)

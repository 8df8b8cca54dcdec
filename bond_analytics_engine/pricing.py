from __future__ import annotations

import numpy as np
import pandas as pd
from typing import List, NamedTuple, Optional, Tuple

from .cashflows import CashFlow, CashFlowSchedule
from .errors import ScheduleError, ValidationError
from .utils import accrual_fraction, years_from_settlement


class PriceResult(NamedTuple):
    """Prices per 100 of original face."""
    dirty: float
    clean: float
    accrued: float


class FlowArrays(NamedTuple):
    amounts: np.ndarray   # flow totals, currency
    years: np.ndarray     # years from settlement under the bond's day count
    periods: np.ndarray   # years * freq (fractional for odd periods)


def future_flows(schedule: CashFlowSchedule, settle: pd.Timestamp) -> List[CashFlow]:
    """Flows strictly after settlement; anything on or before it has been paid."""
    settle = pd.Timestamp(settle)
    return [cf for cf in schedule.flows if cf.date > settle]


def outstanding_at(schedule: CashFlowSchedule, settle: pd.Timestamp) -> float:
    """Notional after the last flow on or before settlement (face value if none)."""
    settle = pd.Timestamp(settle)
    out = schedule.face
    for cf in schedule.flows:
        if cf.date <= settle:
            out = cf.outstanding
        else:
            break
    return out


def _current_period(schedule: CashFlowSchedule, settle: pd.Timestamp) -> Tuple[pd.Timestamp, CashFlow]:
    prev = schedule.issue_date
    for cf in schedule.flows:
        if cf.date <= settle:
            prev = cf.date
        else:
            return prev, cf
    raise ScheduleError(f"No remaining cashflows after settlement {settle.date()}.")


def accrued_interest(schedule: CashFlowSchedule, settle: pd.Timestamp) -> float:
    """
    Accrued interest in currency units (not per 100):
    outstanding * current period rate / freq * elapsed share of the period.
    """
    settle = pd.Timestamp(settle)
    if settle < schedule.issue_date:
        raise ValidationError("Settlement before issue date.")

    period_start, nxt = _current_period(schedule, settle)
    notional = outstanding_at(schedule, settle)
    frac = accrual_fraction(period_start, settle, nxt.date, schedule.day_count)
    return notional * (nxt.coupon_rate / schedule.freq) * frac


def flow_arrays(schedule: CashFlowSchedule, settle: pd.Timestamp) -> FlowArrays:
    flows = future_flows(schedule, settle)
    if len(flows) == 0:
        raise ScheduleError("No remaining cashflows after settlement.")

    amounts = np.array([cf.total for cf in flows], dtype=float)
    years = np.array([years_from_settlement(settle, cf.date, schedule.day_count) for cf in flows], dtype=float)
    return FlowArrays(amounts, years, years * schedule.freq)


def _growth(annual_yield: float, freq: int) -> float:
    v = 1.0 + annual_yield / freq
    if v <= 0:
        raise ValidationError(f"Yield {annual_yield:.4%} is below -100% per period.")
    return v


def discount_factors(arrays: FlowArrays, annual_yield: float, freq: int) -> np.ndarray:
    return _growth(annual_yield, freq) ** (-arrays.periods)


def dirty_from_arrays(arrays: FlowArrays, annual_yield: float, freq: int, face: float) -> float:
    return float(100.0 * np.sum(arrays.amounts * discount_factors(arrays, annual_yield, freq)) / face)


def dirty_and_derivative(arrays: FlowArrays, annual_yield: float, freq: int, face: float) -> Tuple[float, float]:
    """
    Dirty price (per 100) and its closed-form yield derivative:
      dP/dy = -sum(CF * n * v^-(n+1)) / freq = -ModDur * P
    """
    v = _growth(annual_yield, freq)
    dfs = v ** (-arrays.periods)
    pv = np.sum(arrays.amounts * dfs)
    dpv = -np.sum(arrays.amounts * arrays.periods * dfs) / (v * freq)
    scale = 100.0 / face
    return float(pv * scale), float(dpv * scale)


def present_value(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    annual_yield: float,
    arrays: Optional[FlowArrays] = None,
) -> PriceResult:
    """
    Returns (dirty_per_100, clean_per_100, accrued_per_100) of original face.

    Discounting: (1 + y/f)^-(years_from_settlement * f) on flows strictly after settlement.
    """
    settle = pd.Timestamp(settle)
    if arrays is None:
        arrays = flow_arrays(schedule, settle)

    dirty = dirty_from_arrays(arrays, annual_yield, schedule.freq, schedule.face)
    ai = 100.0 * accrued_interest(schedule, settle) / schedule.face
    return PriceResult(dirty, dirty - ai, ai)

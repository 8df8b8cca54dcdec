from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Optional

from .cashflows import CashFlowSchedule
from .config import BUMP
from .pricing import FlowArrays, discount_factors, dirty_from_arrays, flow_arrays, future_flows, outstanding_at
from .utils import days_between, years_from_settlement


@dataclass(frozen=True)
class RiskMetrics:
    macaulay_duration: float     # years
    modified_duration: float
    convexity: float
    dv01: float                  # currency, per the bond's face amount
    effective_duration: float
    effective_convexity: float
    average_life: float          # years
    current_yield: Optional[float]
    total_coupons: float         # remaining coupon cash, currency
    outstanding: float           # notional at settlement
    next_payment_date: pd.Timestamp
    next_payment_amount: float
    days_to_next_payment: int


def macaulay_duration(arrays: FlowArrays, annual_yield: float, freq: int) -> float:
    pv = arrays.amounts * discount_factors(arrays, annual_yield, freq)
    return float(np.sum(pv * arrays.years) / np.sum(pv))


def modified_duration(arrays: FlowArrays, annual_yield: float, freq: int) -> float:
    return macaulay_duration(arrays, annual_yield, freq) / (1.0 + annual_yield / freq)


def convexity(arrays: FlowArrays, annual_yield: float, freq: int) -> float:
    """Analytic d2P/dy2 / P: sum(CF * n(n+1) * v^-(n+2)) / (f^2 * P)."""
    v = 1.0 + annual_yield / freq
    n = arrays.periods
    dfs = discount_factors(arrays, annual_yield, freq)
    pv = np.sum(arrays.amounts * dfs)
    d2 = np.sum(arrays.amounts * n * (n + 1) * dfs) / (v * v)
    return float(d2 / (freq * freq * pv))


def dv01(mod_duration: float, dirty_per_100: float, face: float) -> float:
    """Currency change in dirty value for a 1bp yield move."""
    return mod_duration * dirty_per_100 / 100.0 * face * BUMP


def effective_duration_convexity(arrays: FlowArrays, annual_yield: float, freq: int, face: float, h: float = BUMP):
    base = dirty_from_arrays(arrays, annual_yield, freq, face)
    up = dirty_from_arrays(arrays, annual_yield + h, freq, face)
    down = dirty_from_arrays(arrays, annual_yield - h, freq, face)

    eff_dur = (down - up) / (2.0 * base * h)
    eff_cvx = (up + down - 2.0 * base) / (base * h ** 2)
    return eff_dur, eff_cvx


def average_life(schedule: CashFlowSchedule, settle: pd.Timestamp) -> float:
    """Principal-weighted time (years) to the remaining principal repayments."""
    flows = [cf for cf in future_flows(schedule, settle) if cf.principal > 0]
    total = sum(cf.principal for cf in flows)
    if total <= 0:
        return 0.0
    t = sum(cf.principal * years_from_settlement(settle, cf.date, schedule.day_count) for cf in flows)
    return t / total


def compute_risk(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    annual_yield: float,
    clean_per_100: float,
    arrays: Optional[FlowArrays] = None,
) -> RiskMetrics:
    settle = pd.Timestamp(settle)
    if arrays is None:
        arrays = flow_arrays(schedule, settle)
    freq, face = schedule.freq, schedule.face

    dirty = dirty_from_arrays(arrays, annual_yield, freq, face)
    mac = macaulay_duration(arrays, annual_yield, freq)
    mod = mac / (1.0 + annual_yield / freq)
    eff_dur, eff_cvx = effective_duration_convexity(arrays, annual_yield, freq, face)

    flows = future_flows(schedule, settle)
    nxt = flows[0]
    notional = outstanding_at(schedule, settle)

    clean_ccy = clean_per_100 / 100.0 * face
    cy = notional * nxt.coupon_rate / clean_ccy if clean_ccy > 0 else None

    return RiskMetrics(
        macaulay_duration=mac,
        modified_duration=mod,
        convexity=convexity(arrays, annual_yield, freq),
        dv01=dv01(mod, dirty, face),
        effective_duration=eff_dur,
        effective_convexity=eff_cvx,
        average_life=average_life(schedule, settle),
        current_yield=cy,
        total_coupons=float(sum(cf.coupon for cf in flows)),
        outstanding=notional,
        next_payment_date=nxt.date,
        next_payment_amount=nxt.total,
        days_to_next_payment=days_between(settle, nxt.date),
    )

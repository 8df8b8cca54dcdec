from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from typing import List, NamedTuple, Optional, Sequence

from scipy.optimize import bisect, brentq

from .bonds import ExerciseStyle, OptionEntry
from .cashflows import CashFlowSchedule, PaymentType, truncate_at
from .config import BP, DEFAULT_SEED_YIELD, DEFAULT_SETTINGS, SolverSettings
from .curves import BenchmarkCurve
from .errors import NoSolutionError
from .pricing import FlowArrays, accrued_interest, dirty_and_derivative, dirty_from_arrays, flow_arrays

logger = logging.getLogger(__name__)


class SolverResult(NamedTuple):
    annual_yield: float
    iterations: int
    converged: bool
    method: str  # "newton" | "bisection"


class ExerciseYield(NamedTuple):
    kind: str  # "CALL" | "PUT"
    date: pd.Timestamp
    strike_pct: float
    annual_yield: float
    bounded: bool = False  # price unreachable for this date; yield pinned to a domain bound


class WorstYield(NamedTuple):
    ytm: float
    yield_to_worst: float
    yield_to_call: Optional[float]
    yield_to_put: Optional[float]
    worst_date: pd.Timestamp
    candidates: List[ExerciseYield]


def _tolerance(target_dirty: float, s: SolverSettings) -> float:
    return s.price_tol * max(1.0, abs(target_dirty))


def _check_solvable(arrays: FlowArrays, freq: int, face: float, target_dirty: float, s: SolverSettings) -> None:
    if np.any(arrays.amounts < 0):
        grid = np.linspace(s.lower, s.upper, s.monotone_grid)
        prices = np.array([dirty_from_arrays(arrays, y, freq, face) for y in grid])
        if not np.all(np.diff(prices) < 0):
            raise NoSolutionError("Price is not monotonic in yield over the solver domain (negative cash flows).")

    p_max = dirty_from_arrays(arrays, s.lower, freq, face)
    p_min = dirty_from_arrays(arrays, s.upper, freq, face)
    tol = _tolerance(target_dirty, s)
    if not (p_min - tol <= target_dirty <= p_max + tol):
        raise NoSolutionError(
            f"Target dirty price {target_dirty:.6f} outside achievable range "
            f"[{p_min:.6f}, {p_max:.6f}] for yields in [{s.lower:.2%}, {s.upper:.2%}]."
        )


def _newton(arrays: FlowArrays, freq: int, face: float, target_dirty: float, seed: float, s: SolverSettings):
    y = min(max(seed, s.lower), s.upper)
    prev_y = None
    clamp_hits = 0
    tol = _tolerance(target_dirty, s)

    for it in range(1, s.max_iter + 1):
        p, dp = dirty_and_derivative(arrays, y, freq, face)
        err = p - target_dirty
        if abs(err) < tol:
            return y, it, True

        if abs(dp) < 1e-14:
            logger.debug("Newton derivative underflow at y=%.6f", y)
            return y, it, False

        y_new = y - err / dp
        if y_new < s.lower or y_new > s.upper:
            clamp_hits += 1
            y_new = min(max(y_new, s.lower), s.upper)
            if clamp_hits >= s.max_clamp_hits:
                logger.debug("Newton clamped %d times, last y=%.6f", clamp_hits, y_new)
                return y_new, it, False
        else:
            clamp_hits = 0

        if prev_y is not None and abs(y_new - prev_y) < 1e-15 and abs(y_new - y) > 1e-15:
            logger.debug("Newton oscillating between %.10f and %.10f", y, y_new)
            return y_new, it, False

        prev_y, y = y, y_new

    return y, s.max_iter, False


def _solve_dirty(
    arrays: FlowArrays,
    freq: int,
    face: float,
    target_dirty: float,
    seed: float,
    settings: SolverSettings,
) -> SolverResult:
    _check_solvable(arrays, freq, face, target_dirty, settings)

    y, n_iter, ok = _newton(arrays, freq, face, target_dirty, seed, settings)
    if ok:
        logger.debug("Newton converged in %d iterations: y=%.8f", n_iter, y)
        return SolverResult(y, n_iter, True, "newton")

    logger.warning("Newton-Raphson did not converge after %d iterations; falling back to bisection.", n_iter)

    def f(yy: float) -> float:
        return dirty_from_arrays(arrays, yy, freq, face) - target_dirty

    tol = _tolerance(target_dirty, settings)
    f_lo, f_hi = f(settings.lower), f(settings.upper)
    if abs(f_lo) < tol:
        return SolverResult(settings.lower, n_iter, True, "bisection")
    if abs(f_hi) < tol:
        return SolverResult(settings.upper, n_iter, True, "bisection")
    if f_lo * f_hi > 0:
        raise NoSolutionError("Root not bracketed over the solver domain.")

    root, info = bisect(
        f,
        settings.lower,
        settings.upper,
        xtol=settings.bisect_xtol,
        maxiter=settings.bisect_max_iter,
        full_output=True,
        disp=False,
    )
    # converged on bracket width
    if not info.converged:
        raise NoSolutionError(f"Bisection did not converge within {settings.bisect_max_iter} iterations ({info.flag}).")
    return SolverResult(float(root), n_iter + int(info.iterations), True, "bisection")


def seed_yield(schedule: CashFlowSchedule, settle: pd.Timestamp) -> float:
    """Current coupon rate, or DEFAULT_SEED_YIELD for zero-coupon / fully amortized periods."""
    for cf in schedule.flows:
        if cf.date > settle:
            return cf.coupon_rate if cf.coupon_rate > 0 else DEFAULT_SEED_YIELD
    return DEFAULT_SEED_YIELD


def solve_yield(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    target_clean: float,
    seed: Optional[float] = None,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> SolverResult:
    """
    Yield (annual decimal, compounded `freq` times a year) that reprices the bond
    to `target_clean` (per 100 of original face).

    Newton-Raphson with the analytic derivative -ModDur * P, iterates clamped to
    [settings.lower, settings.upper]; bisection over the whole domain is the fallback.
    """
    settle = pd.Timestamp(settle)
    arrays = flow_arrays(schedule, settle)
    ai = 100.0 * accrued_interest(schedule, settle) / schedule.face
    if seed is None:
        seed = seed_yield(schedule, settle)
    return _solve_dirty(arrays, schedule.freq, schedule.face, target_clean + ai, seed, settings)


def solve_yield_from_dirty(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    target_dirty: float,
    seed: Optional[float] = None,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> SolverResult:
    settle = pd.Timestamp(settle)
    arrays = flow_arrays(schedule, settle)
    if seed is None:
        seed = seed_yield(schedule, settle)
    return _solve_dirty(arrays, schedule.freq, schedule.face, target_dirty, seed, settings)


# ---- Spreads ----

def spread_bp(annual_yield: float, benchmark_yield: float) -> float:
    return (annual_yield - benchmark_yield) * BP


def yield_from_spread(spread: float, benchmark_yield: float) -> float:
    """Spread in bp over a benchmark yield (decimal) -> yield (decimal)."""
    return benchmark_yield + spread / BP


def z_spread_dirty(
    arrays: FlowArrays,
    freq: int,
    face: float,
    curve: BenchmarkCurve,
    spread: float,
) -> float:
    rates = curve.yield_at(arrays.years) + spread
    return float(100.0 * np.sum(arrays.amounts * (1.0 + rates / freq) ** (-arrays.periods)) / face)


def solve_z_spread(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    target_dirty: float,
    curve: BenchmarkCurve,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> float:
    """
    Constant spread (decimal) over the interpolated benchmark curve that reprices
    the flows to `target_dirty`; each flow is discounted at curve(t) + z.
    """
    settle = pd.Timestamp(settle)
    arrays = flow_arrays(schedule, settle)
    lo = settings.lower - float(curve.yields.min())
    hi = settings.upper

    def f(z: float) -> float:
        return z_spread_dirty(arrays, schedule.freq, schedule.face, curve, z) - target_dirty

    f_lo, f_hi = f(lo), f(hi)
    if f_lo * f_hi > 0:
        raise NoSolutionError("Z-spread root not bracketed.")
    return float(brentq(f, lo, hi, xtol=settings.bisect_xtol, maxiter=settings.bisect_max_iter))


# ---- Early termination (yield-to-worst) ----

def exercise_dates(schedule: CashFlowSchedule, entry: OptionEntry, settle: pd.Timestamp) -> List[pd.Timestamp]:
    """
    Candidate exercise dates strictly after settlement and before maturity:
    - EUROPEAN: window start
    - AMERICAN: every coupon date inside the window (window start if none)
    - BERMUDA: explicit exercise dates, else coupon dates inside the window
    """
    in_window = [d for d in schedule.dates if entry.start <= d <= entry.end]

    if entry.style is ExerciseStyle.EUROPEAN:
        dates = [entry.start]
    elif entry.style is ExerciseStyle.BERMUDA and entry.exercise_dates:
        dates = list(entry.exercise_dates)
    else:
        dates = in_window or [entry.start]

    return sorted({d for d in dates if settle < d < schedule.maturity})


def _exercise_yield(
    alt: CashFlowSchedule,
    settle: pd.Timestamp,
    target_dirty: float,
    ytm: float,
    settings: SolverSettings,
    kind: str,
    date: pd.Timestamp,
    strike_pct: float,
) -> Optional[ExerciseYield]:
    """
    Solve one exercise candidate. A price outside the range this schedule can reach
    pins the yield to the nearer domain bound; a non-monotone candidate is dropped.
    """
    try:
        res = solve_yield_from_dirty(alt, settle, target_dirty, seed=ytm, settings=settings)
    except NoSolutionError as exc:
        arrays = flow_arrays(alt, settle)
        if target_dirty < dirty_from_arrays(arrays, settings.upper, alt.freq, alt.face):
            bound = settings.upper
        elif target_dirty > dirty_from_arrays(arrays, settings.lower, alt.freq, alt.face):
            bound = settings.lower
        else:
            logger.warning("Skipping %s candidate on %s: %s", kind, date.date(), exc)
            return None
        logger.info("%s candidate on %s unreachable at this price; yield pinned to %.2f%%", kind, date.date(), bound * 100)
        return ExerciseYield(kind, date, strike_pct, bound, True)
    return ExerciseYield(kind, date, strike_pct, res.annual_yield)


def yield_to_worst(
    schedule: CashFlowSchedule,
    settle: pd.Timestamp,
    target_dirty: float,
    ytm: float,
    calls: Sequence[OptionEntry] = (),
    puts: Sequence[OptionEntry] = (),
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> WorstYield:
    """
    Re-solve the yield with each early-termination date/strike as an alternate maturity.

    Calls are issuer options: the holder's worst is the lowest call yield.
    Puts are holder options: the holder takes the best put yield when it beats
    holding to maturity. Worst = min(max(ytm, best put), lowest call).
    """
    settle = pd.Timestamp(settle)
    candidates: List[ExerciseYield] = []

    for kind, ptype, entries in (("CALL", PaymentType.CALL, calls), ("PUT", PaymentType.PUT, puts)):
        for entry in entries:
            for d in exercise_dates(schedule, entry, settle):
                alt = truncate_at(schedule, d, entry.strike_pct, ptype)
                cand = _exercise_yield(alt, settle, target_dirty, ytm, settings, kind, d, entry.strike_pct)
                if cand is not None:
                    candidates.append(cand)

    call_ylds = [c for c in candidates if c.kind == "CALL"]
    put_ylds = [c for c in candidates if c.kind == "PUT"]

    ytc = min(call_ylds, key=lambda c: c.annual_yield) if call_ylds else None
    ytp = max(put_ylds, key=lambda c: c.annual_yield) if put_ylds else None

    worst, worst_date = ytm, schedule.maturity
    if ytp is not None and ytp.annual_yield > worst:
        worst, worst_date = ytp.annual_yield, ytp.date
    if ytc is not None and ytc.annual_yield < worst:
        worst, worst_date = ytc.annual_yield, ytc.date

    logger.debug("Yield-to-worst %.6f on %s from %d candidates", worst, worst_date.date(), len(candidates))
    return WorstYield(
        ytm,
        worst,
        ytc.annual_yield if ytc is not None else None,
        ytp.annual_yield if ytp is not None else None,
        worst_date,
        candidates,
    )

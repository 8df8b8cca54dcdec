from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .cashflows import CashFlowSchedule, adopt_schedule, build_schedule
from .config import BP, DEFAULT_SETTINGS, SolverSettings
from .errors import BondAnalyticsError
from .models import AnalyticsResult, CalculationRequest, Price, Spread, Yield
from .pricing import accrued_interest, flow_arrays, present_value
from .risk import average_life, compute_risk
from .solver import solve_yield, solve_z_spread, spread_bp, yield_from_spread, yield_to_worst

logger = logging.getLogger(__name__)


class CalcState(str, Enum):
    RECEIVED = "RECEIVED"
    SCHEDULE_READY = "SCHEDULE_READY"
    PRICED = "PRICED"
    SOLVED = "SOLVED"
    METRICS_READY = "METRICS_READY"
    RETURNED = "RETURNED"
    FAILED = "FAILED"


class AnalyticsEngine:
    """
    Runs one request at a time through
    RECEIVED -> SCHEDULE_READY -> PRICED | SOLVED -> METRICS_READY -> RETURNED,
    or FAILED from any state. `trace` holds the states visited by the last run.

    An instance keeps only that trace; use one instance per thread.
    """

    def __init__(self, settings: SolverSettings = DEFAULT_SETTINGS):
        self.settings = settings
        self.trace: List[CalcState] = []

    def _advance(self, state: CalcState) -> None:
        logger.debug("%s -> %s", self.trace[-1].value if self.trace else "-", state.value)
        self.trace.append(state)

    def build_schedule(self, request: CalculationRequest) -> CashFlowSchedule:
        if request.predefined_flows:
            return adopt_schedule(request.terms, request.predefined_flows)
        return build_schedule(request.terms, request.features)

    def _benchmark(self, request: CalculationRequest, schedule: CashFlowSchedule) -> Tuple[Optional[float], Optional[str]]:
        if request.benchmark_yield is not None:
            return request.benchmark_yield, "point"
        if request.benchmark_curve is not None:
            wal = average_life(schedule, request.settlement)
            pt = request.benchmark_curve.point(wal)
            logger.debug("Benchmark at WAL %.3fy: %.4f%% (%s)", wal, pt.yield_ * 100, pt.method)
            return pt.yield_, pt.method
        return None, None

    def calculate(self, request: CalculationRequest) -> AnalyticsResult:
        self.trace = [CalcState.RECEIVED]
        try:
            return self._run(request)
        except BondAnalyticsError as exc:
            self._advance(CalcState.FAILED)
            logger.debug("Calculation failed (%s): %s", exc.kind, exc)
            raise

    def _run(self, request: CalculationRequest) -> AnalyticsResult:
        settle = request.settlement
        schedule = self.build_schedule(request)
        self._advance(CalcState.SCHEDULE_READY)

        arrays = flow_arrays(schedule, settle)
        accrued_amt = accrued_interest(schedule, settle)
        bench, bench_method = self._benchmark(request, schedule)

        locked = request.locked
        if isinstance(locked, Price):
            res = solve_yield(schedule, settle, locked.value, settings=self.settings)
            ytm, iterations, converged, method = res
            ai = 100.0 * accrued_amt / schedule.face
            clean, dirty = locked.value, locked.value + ai
            self._advance(CalcState.SOLVED)
        else:
            if isinstance(locked, Yield):
                ytm = locked.value
            elif isinstance(locked, Spread):
                ytm = yield_from_spread(locked.value, bench)
            else:
                raise TypeError(f"Unknown locked input {locked!r}")
            dirty, clean, ai = present_value(schedule, settle, ytm, arrays)
            iterations, converged, method = 0, True, "direct"
            self._advance(CalcState.PRICED)

        metrics = compute_risk(schedule, settle, ytm, clean, arrays)

        worst = None
        if request.features.has_options:
            worst = yield_to_worst(
                schedule, settle, dirty, ytm, request.features.calls, request.features.puts, self.settings
            )

        spread = spread_bp(ytm, bench) if bench is not None else None
        z = None
        if request.benchmark_curve is not None:
            z = solve_z_spread(schedule, settle, dirty, request.benchmark_curve, self.settings) * BP
        self._advance(CalcState.METRICS_READY)

        self._advance(CalcState.RETURNED)
        logger.info(
            "Calculated %s %s: clean=%.6f ytm=%.6f%% (%s, %d iterations)",
            request.terms.issuer or "bond", request.terms.maturity.date(), clean, ytm * 100, method, iterations,
        )
        return AnalyticsResult(
            clean_price=clean,
            dirty_price=dirty,
            accrued_interest=ai,
            accrued_amount=accrued_amt,
            ytm=ytm,
            modified_duration=metrics.modified_duration,
            macaulay_duration=metrics.macaulay_duration,
            convexity=metrics.convexity,
            dv01=metrics.dv01,
            iterations=iterations,
            converged=converged,
            solver_method=method,
            schedule=schedule,
            effective_duration=metrics.effective_duration,
            effective_convexity=metrics.effective_convexity,
            average_life=metrics.average_life,
            current_yield=metrics.current_yield,
            total_coupons=metrics.total_coupons,
            outstanding=metrics.outstanding,
            next_payment_date=metrics.next_payment_date,
            next_payment_amount=metrics.next_payment_amount,
            days_to_next_payment=metrics.days_to_next_payment,
            yield_to_worst=worst.yield_to_worst if worst else None,
            worst_date=worst.worst_date if worst else None,
            yield_to_call=worst.yield_to_call if worst else None,
            yield_to_put=worst.yield_to_put if worst else None,
            exercise_yields=tuple(worst.candidates) if worst else (),
            spread_bp=spread,
            z_spread_bp=z,
            benchmark_yield=bench,
            benchmark_method=bench_method,
            states=tuple(s.value for s in self.trace),
        )

    def handle(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """JSON in, JSON out. Errors come back as {kind, message} with no partial result."""
        self.trace = [CalcState.RECEIVED]
        try:
            request = CalculationRequest.from_dict(payload)
        except BondAnalyticsError as exc:
            self._advance(CalcState.FAILED)
            return {"status": "error", "error": exc.to_dict()}

        try:
            result = self.calculate(request)
        except BondAnalyticsError as exc:
            return {"status": "error", "error": exc.to_dict()}
        return {"status": "success", "result": result.to_dict()}


def calculate(request: CalculationRequest, settings: SolverSettings = DEFAULT_SETTINGS) -> AnalyticsResult:
    return AnalyticsEngine(settings).calculate(request)


def handle(payload: Mapping[str, Any], settings: SolverSettings = DEFAULT_SETTINGS) -> Dict[str, Any]:
    return AnalyticsEngine(settings).handle(payload)

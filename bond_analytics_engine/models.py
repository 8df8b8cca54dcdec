from __future__ import annotations

import pandas as pd
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .bonds import (
    AmortizationEntry,
    BondFeatures,
    BondTerms,
    CouponRateChange,
    ExerciseStyle,
    NO_FEATURES,
    OptionEntry,
    validate_features,
)
from .cashflows import CashFlow, CashFlowSchedule, parse_cash_flows
from .curves import BenchmarkCurve
from .errors import AmbiguousInputError, ValidationError
from .solver import ExerciseYield
from .utils import settlement_date, to_date


# ---- Locked input (exactly one per request) ----

@dataclass(frozen=True)
class Price:
    """Clean price, percent of original face."""
    value: float


@dataclass(frozen=True)
class Yield:
    """Annual yield, decimal, compounded at the bond's payment frequency."""
    value: float


@dataclass(frozen=True)
class Spread:
    """Spread to benchmark, basis points."""
    value: float


Locked = Union[Price, Yield, Spread]

_LOCKED_KEYS = (("marketPrice", Price), ("targetYield", Yield), ("targetSpread", Spread))


def _pct(value, what: str) -> float:
    """Percent at the JSON boundary -> decimal. The only place this conversion happens."""
    try:
        return float(value) / 100.0
    except (TypeError, ValueError):
        raise ValidationError(f"{what} must be a number, got {value!r}") from None


def _num(value, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{what} must be a number, got {value!r}") from None


def _opt_date(value) -> Optional[pd.Timestamp]:
    return None if value in (None, "") else to_date(value)


def _rows(value, what: str) -> Tuple[Mapping, ...]:
    """A JSON list of objects; anything else is a ValidationError."""
    if value is None:
        return ()
    if isinstance(value, (str, bytes, Mapping)):
        raise ValidationError(f"{what} must be a list of objects.")
    try:
        rows = tuple(value)
    except TypeError:
        raise ValidationError(f"{what} must be a list of objects.") from None
    for i, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValidationError(f"{what}[{i}] must be an object, got {row!r}")
    return rows


def _first(row: Mapping, *keys, default=None):
    for k in keys:
        if k in row and row[k] is not None:
            return row[k]
    return default


@dataclass(frozen=True)
class CalculationRequest:
    terms: BondTerms
    settlement: pd.Timestamp
    locked: Locked
    features: BondFeatures = NO_FEATURES
    benchmark_yield: Optional[float] = None           # decimal, single point
    benchmark_curve: Optional[BenchmarkCurve] = None
    predefined_flows: Optional[Tuple[CashFlow, ...]] = None

    def __post_init__(self):
        if not isinstance(self.locked, (Price, Yield, Spread)):
            raise AmbiguousInputError("Exactly one of price, yield or spread must be supplied.")
        if not (self.terms.issue_date <= self.settlement < self.terms.maturity):
            raise ValidationError(
                f"Settlement {self.settlement.date()} must fall within "
                f"[{self.terms.issue_date.date()}, {self.terms.maturity.date()})."
            )
        if self.benchmark_yield is not None and self.benchmark_curve is not None:
            raise AmbiguousInputError("Supply either a benchmark yield or a benchmark curve, not both.")
        if isinstance(self.locked, Spread) and not self.has_benchmark:
            raise ValidationError("A target spread needs a benchmark yield or curve.")
        if isinstance(self.locked, Price) and not self.locked.value > 0:
            raise ValidationError(f"Market price must be positive, got {self.locked.value}")
        validate_features(self.terms, self.features)

    @property
    def has_benchmark(self) -> bool:
        return self.benchmark_yield is not None or self.benchmark_curve is not None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CalculationRequest":
        """
        Build a request from the JSON shape used at the boundary.

        Accepts flat feature lists (`amortizationSchedule`, ...) or a persisted bond
        definition (`bondInfo`, `schedules`, `cashFlowSchedule`). Rates and prices
        arrive in percent; spreads in basis points.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Request must be a JSON object.")

        bond = _first(payload, "bond", "bondInfo")
        if not isinstance(bond, Mapping):
            raise ValidationError("Request has no bond terms.")

        try:
            terms = BondTerms(
                issue_date=to_date(bond.get("issueDate")),
                maturity=to_date(bond.get("maturityDate")),
                coupon_rate=_pct(bond.get("couponRate"), "couponRate"),
                face=_num(bond.get("faceValue", 100.0), "faceValue"),
                freq=int(bond.get("paymentFrequency", 2)),
                day_count=bond.get("dayCountConvention", "30/360"),
                first_coupon_date=_opt_date(bond.get("firstCouponDate")),
                settlement_lag=int(bond.get("settlementDays", 2)),
                issuer=str(bond.get("issuer", "")),
                currency=str(bond.get("currency", "USD")),
                isin=bond.get("isin"),
                cusip=bond.get("cusip"),
                name=bond.get("name"),
            )
        except ValidationError:
            raise
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid bond terms: {exc}") from exc

        schedules = payload.get("schedules") or {}
        if not isinstance(schedules, Mapping):
            raise ValidationError("schedules must be an object.")
        features = features_from_dict({**schedules, **{k: v for k, v in payload.items() if k in _FEATURE_KEYS}})

        locked = _locked_from_dict(payload)

        if payload.get("settlementDate") not in (None, ""):
            settle = to_date(payload["settlementDate"])
        elif payload.get("tradeDate") not in (None, ""):
            settle = settlement_date(to_date(payload["tradeDate"]), terms.settlement_lag)
        else:
            raise ValidationError("Request needs a settlementDate or a tradeDate.")

        bench_yield = None
        if payload.get("benchmarkYield") is not None:
            bench_yield = _pct(payload["benchmarkYield"], "benchmarkYield")
        curve = None
        if payload.get("benchmarkCurve"):
            raw = payload["benchmarkCurve"]
            curve = BenchmarkCurve.from_tenors(raw) if isinstance(raw, Mapping) else BenchmarkCurve.from_points(raw)

        flows = None
        rows = _rows(_first(payload, "predefinedCashFlows", "cashFlowSchedule"), "cashFlowSchedule")
        if rows:
            flows = tuple(parse_cash_flows(rows, terms.face, terms.freq))

        return cls(
            terms=terms,
            settlement=settle,
            locked=locked,
            features=features,
            benchmark_yield=bench_yield,
            benchmark_curve=curve,
            predefined_flows=flows,
        )


_FEATURE_KEYS = ("amortizationSchedule", "callSchedule", "putSchedule", "couponRateChanges")


def _locked_from_dict(payload: Mapping[str, Any]) -> Locked:
    present = [(k, kind) for k, kind in _LOCKED_KEYS if payload.get(k) is not None]
    if len(present) != 1:
        names = ", ".join(k for k, _ in present) or "none"
        raise AmbiguousInputError(
            f"Exactly one of marketPrice, targetYield, targetSpread must be supplied (got {names})."
        )
    key, kind = present[0]
    if kind is Yield:
        return Yield(_pct(payload[key], key))
    return kind(_num(payload[key], key))


def _options_from_rows(rows, prefix: str) -> Tuple[OptionEntry, ...]:
    """Call/put rows: {firstCallDate, lastCallDate, callPrice, callType, exerciseDates} or generic names."""
    cap = prefix.capitalize()
    out: List[OptionEntry] = []
    for row in _rows(rows, f"{prefix}Schedule"):
        start = to_date(_first(row, f"first{cap}Date", "startDate", "date"))
        end = _first(row, f"last{cap}Date", "endDate")
        style = str(_first(row, f"{prefix}Type", "style", default="AMERICAN")).upper()
        try:
            style = ExerciseStyle(style)
        except ValueError:
            raise ValidationError(f"Unknown exercise style {style!r}") from None
        out.append(
            OptionEntry(
                start=start,
                end=start if end in (None, "") else to_date(end),
                strike_pct=_num(_first(row, f"{prefix}Price", "price", "strike", default=100.0), f"{prefix}Price"),
                style=style,
                exercise_dates=tuple(to_date(d) for d in row.get("exerciseDates") or ()),
            )
        )
    return tuple(out)


def features_from_dict(data: Mapping[str, Any]) -> BondFeatures:
    amort = tuple(
        AmortizationEntry(
            to_date(row.get("date")),
            _num(_first(row, "principalPercent", "percent", "principalPct"), "principalPercent"),
        )
        for row in _rows(data.get("amortizationSchedule"), "amortizationSchedule")
    )
    changes = tuple(
        CouponRateChange(
            to_date(_first(row, "effectiveDate", "date")),
            _pct(_first(row, "newCouponRate", "couponRate", "rate"), "newCouponRate"),
        )
        for row in _rows(data.get("couponRateChanges"), "couponRateChanges")
    )
    return BondFeatures(
        amortization=amort,
        calls=_options_from_rows(data.get("callSchedule"), "call"),
        puts=_options_from_rows(data.get("putSchedule"), "put"),
        rate_changes=changes,
    )


# ---- Result ----

def _pct_out(x: Optional[float]) -> Optional[float]:
    return None if x is None else x * 100.0


def _iso(d: Optional[pd.Timestamp]) -> Optional[str]:
    return None if d is None else d.strftime("%Y-%m-%d")


@dataclass(frozen=True)
class AnalyticsResult:
    clean_price: float        # per 100 of original face
    dirty_price: float
    accrued_interest: float   # per 100 of original face
    accrued_amount: float     # currency
    ytm: float                # decimal
    modified_duration: float
    macaulay_duration: float
    convexity: float
    dv01: float
    iterations: int
    converged: bool
    solver_method: str
    schedule: CashFlowSchedule
    effective_duration: float
    effective_convexity: float
    average_life: float
    current_yield: Optional[float]
    total_coupons: float
    outstanding: float
    next_payment_date: pd.Timestamp
    next_payment_amount: float
    days_to_next_payment: int
    yield_to_worst: Optional[float] = None
    worst_date: Optional[pd.Timestamp] = None
    yield_to_call: Optional[float] = None
    yield_to_put: Optional[float] = None
    exercise_yields: Tuple[ExerciseYield, ...] = ()
    spread_bp: Optional[float] = None
    z_spread_bp: Optional[float] = None
    benchmark_yield: Optional[float] = None
    benchmark_method: Optional[str] = None
    states: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase JSON view; yields in percent, prices per 100 of face."""
        return {
            "cleanPrice": self.clean_price,
            "dirtyPrice": self.dirty_price,
            "accruedInterest": self.accrued_interest,
            "accruedAmount": self.accrued_amount,
            "yieldToMaturity": _pct_out(self.ytm),
            "yieldToWorst": _pct_out(self.yield_to_worst),
            "worstDate": _iso(self.worst_date),
            "yieldToCall": _pct_out(self.yield_to_call),
            "yieldToPut": _pct_out(self.yield_to_put),
            "exerciseYields": [
                {
                    "type": c.kind,
                    "date": _iso(c.date),
                    "price": c.strike_pct,
                    "yield": _pct_out(c.annual_yield),
                    "bounded": c.bounded,
                }
                for c in self.exercise_yields
            ],
            "modifiedDuration": self.modified_duration,
            "macaulayDuration": self.macaulay_duration,
            "convexity": self.convexity,
            "dv01": self.dv01,
            "effectiveDuration": self.effective_duration,
            "effectiveConvexity": self.effective_convexity,
            "averageLife": self.average_life,
            "currentYield": _pct_out(self.current_yield),
            "totalCoupons": self.total_coupons,
            "outstandingNotional": self.outstanding,
            "nextPaymentDate": _iso(self.next_payment_date),
            "nextPaymentAmount": self.next_payment_amount,
            "daysToNextPayment": self.days_to_next_payment,
            "spreadToBenchmark": self.spread_bp,
            "zSpread": self.z_spread_bp,
            "benchmarkYield": _pct_out(self.benchmark_yield),
            "benchmarkMethod": self.benchmark_method,
            "iterations": self.iterations,
            "converged": self.converged,
            "solverMethod": self.solver_method,
            "scheduleSource": self.schedule.source,
            "cashFlows": [cf.to_dict() for cf in self.schedule.flows],
        }

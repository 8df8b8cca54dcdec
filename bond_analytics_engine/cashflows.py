from __future__ import annotations

import logging
import pandas as pd
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Sequence, Tuple

from .bonds import BondFeatures, BondTerms, NO_FEATURES, coupon_rate_on
from .errors import ScheduleError, ValidationError
from .utils import DayCount, accrual_fraction, coupon_dates, to_date

logger = logging.getLogger(__name__)


class PaymentType(str, Enum):
    COUPON = "COUPON"
    PRINCIPAL = "PRINCIPAL"
    AMORTIZATION = "AMORTIZATION"
    MATURITY = "MATURITY"
    CALL = "CALL"
    PUT = "PUT"


@dataclass(frozen=True)
class CashFlow:
    date: pd.Timestamp
    coupon: float
    principal: float
    total: float
    outstanding: float  # notional AFTER this payment
    payment_type: PaymentType
    coupon_rate: float  # annual decimal rate accrued over the period ending here

    def to_dict(self) -> dict:
        return {
            "date": self.date.strftime("%Y-%m-%d"),
            "coupon": self.coupon,
            "principal": self.principal,
            "total": self.total,
            "outstandingNotional": self.outstanding,
            "paymentType": self.payment_type.value,
            "couponRate": self.coupon_rate * 100.0,
        }


@dataclass(frozen=True)
class CashFlowSchedule:
    """
    Ordered payment timetable plus the context needed to price it.

    `issue_date` starts the first accrual period; `source` records whether the
    flows were generated from terms or adopted from a supplied schedule.
    """
    flows: Tuple[CashFlow, ...]
    issue_date: pd.Timestamp
    face: float
    freq: int
    day_count: DayCount
    source: str = "generated"

    def __len__(self) -> int:
        return len(self.flows)

    def __iter__(self):
        return iter(self.flows)

    @property
    def maturity(self) -> pd.Timestamp:
        return self.flows[-1].date

    @property
    def dates(self) -> List[pd.Timestamp]:
        return [cf.date for cf in self.flows]

    def total_principal(self) -> float:
        return sum(cf.principal for cf in self.flows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                (cf.date, cf.coupon, cf.principal, cf.total, cf.outstanding, cf.payment_type.value, cf.coupon_rate)
                for cf in self.flows
            ],
            columns=["date", "coupon", "principal", "total", "outstanding", "payment_type", "coupon_rate"],
        )


def build_schedule(terms: BondTerms, features: BondFeatures = NO_FEATURES) -> CashFlowSchedule:
    """
    Generate the cash-flow timetable from contractual terms.

    - coupon = outstanding * period rate / freq (step-up/step-down via rate changes)
    - amortization principal = face * pct / 100 on matching coupon dates
    - maturity principal = whatever is still outstanding (exact zero-out)

    The amortized amount is accumulated as a running total and every outstanding
    value is `face - total`, so principal legs sum back to face exactly.
    """
    ladder = coupon_dates(terms.issue_date, terms.maturity, terms.freq, terms.first_coupon_date)
    ladder_set = set(ladder)

    amort = {}
    for a in features.amortization:
        if a.date not in ladder_set:
            raise ScheduleError(f"Amortization date {a.date.date()} is not a coupon date.")
        if a.date == terms.maturity:
            continue
        amort[a.date] = amort.get(a.date, 0.0) + terms.face * a.principal_pct / 100.0

    flows: List[CashFlow] = []
    amortized = 0.0
    outstanding = terms.face

    for d in ladder:
        rate = coupon_rate_on(terms, features, d)
        coupon = outstanding * rate / terms.freq

        if d == terms.maturity:
            principal = terms.face - amortized
            ptype = PaymentType.MATURITY
            outstanding_after = 0.0
        elif d in amort:
            remaining = terms.face - amortized
            principal = amort[d]
            if principal > remaining + 1e-12 * terms.face:
                raise ScheduleError(
                    f"Scheduled amortization {amortized + principal:.6f} exceeds face value "
                    f"{terms.face:.6f} before maturity."
                )
            if principal >= remaining - 1e-12 * terms.face:
                # fully repaid early: this flow is the final redemption
                principal = remaining
                amortized = terms.face
            else:
                amortized += principal
            ptype = PaymentType.AMORTIZATION
            outstanding_after = terms.face - amortized
        else:
            principal = 0.0
            ptype = PaymentType.COUPON
            outstanding_after = outstanding

        if outstanding_after < 0:
            raise ScheduleError(f"Negative outstanding notional on {d.date()}.")

        flows.append(CashFlow(d, coupon, principal, coupon + principal, outstanding_after, ptype, rate))
        outstanding = outstanding_after

        if outstanding == 0.0:
            break

    logger.debug(
        "Built %d flows for %s %s (amortizing=%s, step=%s)",
        len(flows), terms.issuer or "bond", terms.maturity.date(),
        bool(features.amortization), bool(features.rate_changes),
    )
    return CashFlowSchedule(tuple(flows), terms.issue_date, terms.face, terms.freq, terms.day_count, "generated")


def _close(a: float, b: float, scale: float) -> bool:
    return abs(a - b) <= 1e-9 * max(1.0, abs(scale))


def adopt_schedule(terms: BondTerms, flows: Sequence[CashFlow]) -> CashFlowSchedule:
    """
    Validate an externally supplied (e.g. persisted) schedule and pass it through unchanged.

    Checks: strictly increasing dates after issue and ending no later than maturity,
    non-negative amounts, total = coupon + principal, outstanding consistent with
    principal paid, non-increasing and non-negative, zero on the final flow.
    """
    flows = tuple(flows)
    if not flows:
        raise ScheduleError("Predefined schedule is empty.")

    face = terms.face
    prev_date = terms.issue_date
    prev_outstanding = face

    for i, cf in enumerate(flows):
        where = f"flow {i} ({cf.date.date()})"
        if cf.date <= prev_date:
            raise ScheduleError(f"{where}: dates must be strictly increasing and after issue.")
        if cf.date > terms.maturity:
            raise ScheduleError(f"{where}: payment after maturity {terms.maturity.date()}.")
        if cf.coupon < 0 or cf.principal < 0 or cf.outstanding < 0:
            raise ScheduleError(f"{where}: negative amount.")
        if not _close(cf.total, cf.coupon + cf.principal, face):
            raise ScheduleError(f"{where}: total != coupon + principal.")
        if cf.outstanding > prev_outstanding + 1e-9 * face:
            raise ScheduleError(f"{where}: outstanding notional increases.")
        if not _close(prev_outstanding - cf.principal, cf.outstanding, face):
            raise ScheduleError(f"{where}: outstanding notional inconsistent with principal paid.")
        prev_date = cf.date
        prev_outstanding = cf.outstanding

    last = flows[-1]
    if abs(last.outstanding) > 1e-9 * face:
        raise ScheduleError(f"Final outstanding notional must be 0, got {last.outstanding}.")

    logger.debug("Adopted predefined schedule with %d flows", len(flows))
    return CashFlowSchedule(flows, terms.issue_date, face, terms.freq, terms.day_count, "predefined")


_ROW_KEYS = {
    "coupon": ("coupon", "couponPayment", "coupon_payment"),
    "principal": ("principal", "principalPayment", "principal_payment"),
    "total": ("total", "totalPayment", "total_payment"),
    "outstanding": ("outstandingNotional", "remainingNotional", "outstanding", "outstanding_notional"),
    "payment_type": ("paymentType", "payment_type", "type"),
    "coupon_rate": ("couponRate", "coupon_rate"),
}


def _pick(row: Mapping, field: str):
    for key in _ROW_KEYS[field]:
        if key in row and row[key] is not None:
            return row[key]
    return None


def parse_cash_flows(rows: Iterable[Mapping], face: float, freq: int) -> List[CashFlow]:
    """
    JSON rows -> CashFlow objects. Accepts this engine's own `to_dict` keys and the
    persisted-bond names (couponPayment, principalPayment, totalPayment, remainingNotional).

    Coupon rates are percent at the boundary; when a row has none, the rate is
    derived from the coupon amount and the notional outstanding before the flow.
    """
    out: List[CashFlow] = []
    prev_outstanding = face
    for i, row in enumerate(rows):
        try:
            d = to_date(row["date"])
        except KeyError:
            raise ValidationError(f"Cash flow row {i} has no date.") from None

        coupon = float(_pick(row, "coupon") or 0.0)
        principal = float(_pick(row, "principal") or 0.0)
        total = _pick(row, "total")
        total = coupon + principal if total is None else float(total)
        outstanding = _pick(row, "outstanding")
        if outstanding is None:
            raise ValidationError(f"Cash flow row {i} has no outstanding notional.")
        outstanding = float(outstanding)

        ptype = _pick(row, "payment_type")
        if ptype is None:
            ptype = PaymentType.COUPON if principal == 0 else (
                PaymentType.MATURITY if outstanding == 0 else PaymentType.AMORTIZATION
            )
        else:
            try:
                ptype = PaymentType(str(ptype).upper())
            except ValueError:
                raise ValidationError(f"Cash flow row {i}: unknown payment type {ptype!r}") from None

        rate = _pick(row, "coupon_rate")
        if rate is None:
            rate = coupon * freq / prev_outstanding if prev_outstanding > 0 else 0.0
        else:
            rate = float(rate) / 100.0

        out.append(CashFlow(d, coupon, principal, total, outstanding, ptype, rate))
        prev_outstanding = outstanding
    return out


def outstanding_before(schedule: CashFlowSchedule, date: pd.Timestamp) -> float:
    """Notional outstanding just before any payment on `date` (after all earlier flows)."""
    outstanding = schedule.face
    for cf in schedule.flows:
        if cf.date < date:
            outstanding = cf.outstanding
        else:
            break
    return outstanding


def truncate_at(
    schedule: CashFlowSchedule,
    exercise_date: pd.Timestamp,
    strike_pct: float,
    payment_type: PaymentType,
) -> CashFlowSchedule:
    """
    Early-termination schedule: flows before `exercise_date` unchanged, then a single
    redemption of the notional outstanding just before that date at `strike_pct` of it,
    plus the coupon due (accrued share of the running period when off a coupon date).
    Amortization scheduled on or after the exercise date never happens.
    """
    exercise_date = pd.Timestamp(exercise_date)
    if not (schedule.issue_date < exercise_date <= schedule.maturity):
        raise ValidationError(f"Exercise date {exercise_date.date()} outside the bond's life.")

    kept = [cf for cf in schedule.flows if cf.date < exercise_date]
    notional = kept[-1].outstanding if kept else schedule.face
    period_start = kept[-1].date if kept else schedule.issue_date

    nxt = next(cf for cf in schedule.flows if cf.date >= exercise_date)
    if nxt.date == exercise_date:
        coupon = nxt.coupon
    else:
        frac = accrual_fraction(period_start, exercise_date, nxt.date, schedule.day_count)
        coupon = notional * nxt.coupon_rate / schedule.freq * frac

    principal = notional * strike_pct / 100.0
    redemption = CashFlow(exercise_date, coupon, principal, coupon + principal, 0.0, payment_type, nxt.coupon_rate)
    return CashFlowSchedule(
        tuple(kept) + (redemption,),
        schedule.issue_date,
        schedule.face,
        schedule.freq,
        schedule.day_count,
        schedule.source,
    )


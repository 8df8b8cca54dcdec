"""
Bond Analytics Engine

Modules:
- utils: day count + coupon date ladder + settlement helpers
- bonds: bond terms + amortization / call / put / step-up feature schedules
- cashflows: cash-flow schedule builder + predefined schedule adoption
- pricing: present value, accrued interest, clean/dirty
- curves: benchmark yield curve (tenor knots, interpolation)
- solver: yield / spread / z-spread solvers + yield-to-worst
- risk: duration/convexity/DV01 + effective metrics, average life
- models: request / result objects and their JSON shapes
- engine: analytics facade (request -> result, JSON boundary)
- scenarios: yield shock and price sensitivity runners
"""
from .errors import (
    AmbiguousInputError,
    BondAnalyticsError,
    DateRangeError,
    NoSolutionError,
    ScheduleError,
    ValidationError,
)
from .bonds import AmortizationEntry, BondFeatures, BondTerms, CouponRateChange, ExerciseStyle, OptionEntry
from .cashflows import CashFlow, CashFlowSchedule, PaymentType, adopt_schedule, build_schedule
from .curves import BenchmarkCurve
from .engine import AnalyticsEngine, calculate, handle
from .models import AnalyticsResult, CalculationRequest, Price, Spread, Yield
from .pricing import present_value
from .solver import solve_yield
from .utils import DayCount

__version__ = "0.1.0"

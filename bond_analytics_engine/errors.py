from __future__ import annotations


class BondAnalyticsError(ValueError):
    """
    Base class for every failure the engine reports.

    `kind` is the machine-readable error kind surfaced at the JSON boundary.
    """
    kind = "error"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": str(self)}


class ValidationError(BondAnalyticsError):
    """Malformed or out-of-range bond terms / request fields."""
    kind = "validation_error"


class DateRangeError(BondAnalyticsError):
    """Day-count call with start date after end date."""
    kind = "date_range_error"


class ScheduleError(BondAnalyticsError):
    """Inconsistent cash-flow schedule (generated or supplied)."""
    kind = "schedule_error"


class AmbiguousInputError(BondAnalyticsError):
    """Zero or several of price / yield / spread were supplied."""
    kind = "ambiguous_input_error"


class NoSolutionError(BondAnalyticsError):
    """Solver could not bracket or converge on a root."""
    kind = "no_solution_error"

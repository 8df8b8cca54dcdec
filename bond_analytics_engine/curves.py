from __future__ import annotations

import re
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Iterable, Mapping, NamedTuple, Tuple

from .errors import ValidationError


class CurvePoint(NamedTuple):
    yield_: float  # decimal
    method: str    # "exact" | "interpolated" | "extrapolated"
    lower: Tuple[float, float]
    upper: Tuple[float, float]


_TENOR_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(D|W|M|MO|Y|YR)\s*$", re.IGNORECASE)
_TENOR_UNITS = {"D": 1 / 365.0, "W": 7 / 365.0, "M": 1 / 12.0, "MO": 1 / 12.0, "Y": 1.0, "YR": 1.0}


def _knot(t: np.ndarray, y: np.ndarray, k: int) -> Tuple[float, float]:
    return float(t[k]), float(y[k])


def tenor_to_years(tenor) -> float:
    """'3M' -> 0.25, '10Y' -> 10.0; plain numbers are taken as years."""
    if isinstance(tenor, (int, float)):
        return float(tenor)
    m = _TENOR_RE.match(str(tenor))
    if m is None:
        raise ValidationError(f"Unrecognised tenor: {tenor!r}")
    return float(m.group(1)) * _TENOR_UNITS[m.group(2).upper()]


@dataclass(frozen=True)
class BenchmarkCurve:
    """
    Benchmark (e.g. Treasury par) yield curve on tenor knots in years.

    - Within knot range: linear interpolation in yield.
    - Outside: flat extrapolation from the nearest knot.
    Yields are decimals.
    """
    tenors: np.ndarray
    yields: np.ndarray

    def __post_init__(self):
        tenors = np.asarray(self.tenors, dtype=float)
        yields = np.asarray(self.yields, dtype=float)
        if tenors.ndim != 1 or tenors.shape != yields.shape or len(tenors) == 0:
            raise ValidationError("Benchmark curve needs matching, non-empty tenor and yield arrays.")
        if np.any(tenors < 0) or not np.all(np.isfinite(yields)):
            raise ValidationError("Benchmark curve tenors must be non-negative and yields finite.")
        order = np.argsort(tenors, kind="mergesort")
        tenors, yields = tenors[order], yields[order]
        if np.any(np.diff(tenors) <= 0):
            raise ValidationError("Benchmark curve tenors must be distinct.")
        object.__setattr__(self, "tenors", tenors)
        object.__setattr__(self, "yields", yields)

    @classmethod
    def flat(cls, annual_yield: float) -> "BenchmarkCurve":
        return cls(np.array([1.0]), np.array([annual_yield]))

    @classmethod
    def from_tenors(cls, tenors: Mapping[str, float], in_percent: bool = True) -> "BenchmarkCurve":
        """{'3M': 4.31, '10Y': 4.25} -> curve. Rates are percent unless in_percent=False."""
        scale = 0.01 if in_percent else 1.0
        pairs = sorted((tenor_to_years(k), float(v) * scale) for k, v in tenors.items() if v is not None)
        if not pairs:
            raise ValidationError("Benchmark curve has no points.")
        t, y = zip(*pairs)
        return cls(np.array(t), np.array(y))

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float]], in_percent: bool = True) -> "BenchmarkCurve":
        scale = 0.01 if in_percent else 1.0
        pts = [(float(t), float(r) * scale) for t, r in points]
        if not pts:
            raise ValidationError("Benchmark curve has no points.")
        t, y = zip(*pts)
        return cls(np.array(t), np.array(y))

    def yield_at(self, years) -> np.ndarray:
        return np.interp(np.asarray(years, dtype=float), self.tenors, self.yields)

    def point(self, years: float) -> CurvePoint:
        """Interpolated yield at `years` plus the bracketing knots and the method used."""
        years = float(years)
        t, y = self.tenors, self.yields

        hit = np.where(np.abs(t - years) < 1e-2)[0]
        if len(hit):
            k = int(hit[0])
            return CurvePoint(float(y[k]), "exact", _knot(t, y, k), _knot(t, y, k))
        if years <= t[0]:
            return CurvePoint(float(y[0]), "extrapolated", _knot(t, y, 0), _knot(t, y, 0))
        if years >= t[-1]:
            return CurvePoint(float(y[-1]), "extrapolated", _knot(t, y, -1), _knot(t, y, -1))

        k = int(np.searchsorted(t, years)) - 1
        w = (years - t[k]) / (t[k + 1] - t[k])
        val = (1 - w) * y[k] + w * y[k + 1]
        return CurvePoint(float(val), "interpolated", _knot(t, y, k), _knot(t, y, k + 1))

    def shifted(self, shift_bp: float) -> "BenchmarkCurve":
        """Parallel shift by shift_bp."""
        return BenchmarkCurve(self.tenors.copy(), self.yields + shift_bp / 10000.0)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"tenor_years": self.tenors, "yield": self.yields})

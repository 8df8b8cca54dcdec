from __future__ import annotations

from dataclasses import dataclass

# Yield domain (annualized, decimal) every solver iterate is clamped to.
YIELD_FLOOR = -0.99
YIELD_CAP = 10.0

# Convergence on |dirty(y) - target| relative to the target price (floored at 1 per 100 of face).
PRICE_TOL = 1e-11
MAX_NEWTON_ITER = 50

BISECT_XTOL = 1e-13
MAX_BISECT_ITER = 500

# 1bp bump used by the finite-difference (effective) metrics.
BUMP = 0.0001

BP = 10000.0

DEFAULT_SEED_YIELD = 0.10


@dataclass(frozen=True)
class SolverSettings:
    lower: float = YIELD_FLOOR
    upper: float = YIELD_CAP
    price_tol: float = PRICE_TOL
    max_iter: int = MAX_NEWTON_ITER
    bisect_xtol: float = BISECT_XTOL
    bisect_max_iter: int = MAX_BISECT_ITER
    # consecutive clamped Newton steps tolerated before giving up on Newton
    max_clamp_hits: int = 3
    # grid points used to check PV monotonicity when negative flows exist
    monotone_grid: int = 201

    def __post_init__(self):
        if not self.lower < self.upper:
            raise ValueError("Solver domain must satisfy lower < upper.")
        if self.price_tol <= 0:
            raise ValueError("price_tol must be positive.")
        if self.max_iter <= 0:
            raise ValueError("max_iter must be positive.")


DEFAULT_SETTINGS = SolverSettings()

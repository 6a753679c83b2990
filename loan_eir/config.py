"""Numerical defaults for the EIR engine.

Every tolerance, budget and bound used by the solver and the calculator is
defined here once. ``SolverSettings`` bundles the solver values so a caller
can override them for a single calculation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Tuple

# =============================================================================
# SOLVER
# =============================================================================

# Rates are fractions per year (0.12 == 12 %). -1 is the pole of 1 / (1 + r).
MIN_RATE = -0.99
MAX_RATE = 10.0

# Convergence threshold is this factor times the sum of absolute amounts.
TOLERANCE_FACTOR = 1e-7

NEWTON_MAX_ITERATIONS = 100
BISECTION_MAX_ITERATIONS = 200

# Candidate rates scanned for a sign change when Newton-Raphson gives up.
SCAN_GRID: Tuple[float, ...] = (
    -0.99, -0.95, -0.9, -0.8, -0.7, -0.6, -0.5, -0.4, -0.3, -0.2, -0.1,
    -0.05, 0.0, 0.02, 0.05, 0.1, 0.15, 0.2, 0.3, 0.4, 0.5, 0.75, 1.0,
    1.5, 2.0, 3.0, 4.0, 5.0, 7.5, 10.0,
)

# =============================================================================
# RESULT
# =============================================================================

# EIR is reported as a percentage with this many decimal places
EIR_DECIMAL_PLACES = 2

# Money fields on the result are rounded to this many places
MONEY_DECIMAL_PLACES = 2

DEFAULT_CURRENCY_CODE = "INR"

# =============================================================================
# TIMELINE
# =============================================================================

# Day-count convention used when none is given (a ``DayCountConvention`` value)
DEFAULT_CONVENTION = "ACT/365"

# Start of the synthetic fallback timeline when the loan carries no
# disbursement date; the rate must not move with the day it is priced.
FALLBACK_ANCHOR_DATE = date(2000, 1, 1)


@dataclass(frozen=True)
class SolverSettings:
    """Tunable parameters for ``solve_irr``."""

    min_rate: float = MIN_RATE
    max_rate: float = MAX_RATE
    tolerance_factor: float = TOLERANCE_FACTOR
    newton_max_iterations: int = NEWTON_MAX_ITERATIONS
    bisection_max_iterations: int = BISECTION_MAX_ITERATIONS
    scan_grid: Tuple[float, ...] = SCAN_GRID

    def clamp(self, rate: float) -> float:
        return min(max(rate, self.min_rate), self.max_rate)


DEFAULT_SOLVER_SETTINGS = SolverSettings()

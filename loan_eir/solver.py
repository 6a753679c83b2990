"""Internal rate of return solver.

Finds the annual rate ``r`` at which the net present value of a dated
cash-flow series is zero::

    NPV(r) = sum(amount / (1 + r) ** t)

where ``t`` is the time in years from the earliest cash flow, measured with
``years_between`` under the chosen day-count convention. Because time is in
years, the root is already an annual-equivalent rate.

Newton-Raphson is tried first from a money-weighted initial guess. If it
stalls, leaves the search domain or meets a flat or non-finite derivative,
the solver scans a coarse grid of rates for a sign change and bisects the
bracket nearest the initial guess.

For a series with one outflow followed only by inflows, NPV is strictly
decreasing in ``r`` and the root is unique. Series whose sign changes more
than once may have several roots. For those the returned root lies in the
sign-change bracket of the scan grid nearest the initial guess, whichever
method found it, and the solution is flagged with ``multiple_roots_possible``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .cashflows import merge_cash_flows, sign_changes
from .config import DEFAULT_SOLVER_SETTINGS, SolverSettings
from .data_models import CashFlowEntry
from .day_count import DEFAULT_DAY_COUNT, DayCountConvention, years_between
from .exceptions import DegenerateCashFlowError, NonConvergenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IRRSolution:
    rate: float
    iterations: int
    algorithm: str  # "newton" or "bisection"
    npv: float
    tolerance: float
    multiple_roots_possible: bool = False


def _series(
    cashflows: Sequence[CashFlowEntry], convention: DayCountConvention
) -> Tuple[List[float], List[float]]:
    anchor = cashflows[0].date
    amounts = [float(e.amount) for e in cashflows]
    times = [years_between(anchor, e.date, convention) for e in cashflows]
    return amounts, times


def _npv(rate: float, amounts: Sequence[float], times: Sequence[float]) -> float:
    base = 1.0 + rate
    if base <= 0:
        return math.nan
    total = 0.0
    try:
        for amount, t in zip(amounts, times):
            total += amount * base ** (-t)
    except OverflowError:
        return math.nan
    return total


def _npv_derivative(rate: float, amounts: Sequence[float], times: Sequence[float]) -> float:
    base = 1.0 + rate
    if base <= 0:
        return math.nan
    total = 0.0
    try:
        for amount, t in zip(amounts, times):
            total -= t * amount * base ** (-t - 1.0)
    except OverflowError:
        return math.nan
    return total


def npv(
    rate: float,
    cashflows: Sequence[CashFlowEntry],
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
) -> float:
    """Net present value at ``rate``, discounted to the earliest cash flow.

    Returns ``nan`` when the value is not finite (``rate <= -1`` or overflow).
    """
    entries = merge_cash_flows(cashflows)
    if not entries:
        return 0.0
    amounts, times = _series(entries, convention)
    return _npv(rate, amounts, times)


def initial_guess(
    cashflows: Sequence[CashFlowEntry],
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
    settings: SolverSettings = DEFAULT_SOLVER_SETTINGS,
) -> float:
    """Money-weighted starting rate for Newton-Raphson.

    ``(sum of inflows / sum of outflows - 1) / span in years``, clamped to
    the solver's rate bounds.
    """
    entries = merge_cash_flows(cashflows)
    inflows = sum(float(e.amount) for e in entries if e.amount > 0)
    outflows = -sum(float(e.amount) for e in entries if e.amount < 0)
    if not entries or outflows == 0:
        return 0.0
    span = years_between(entries[0].date, entries[-1].date, convention)
    if span == 0:
        return 0.0
    return settings.clamp((inflows / outflows - 1.0) / span)


def _newton(
    guess: float,
    amounts: Sequence[float],
    times: Sequence[float],
    tolerance: float,
    settings: SolverSettings,
) -> Tuple[Optional[float], int, float]:
    """Return ``(rate, iterations, npv)``; ``rate`` is None when Newton gives up."""
    rate = guess
    value = math.nan
    for iteration in range(1, settings.newton_max_iterations + 1):
        value = _npv(rate, amounts, times)
        if not math.isfinite(value):
            logger.debug("Newton: NPV not finite at rate %.10f", rate)
            return None, iteration, value
        if abs(value) < tolerance:
            return rate, iteration, value
        slope = _npv_derivative(rate, amounts, times)
        if not math.isfinite(slope) or slope == 0:
            logger.debug("Newton: flat or non-finite derivative at rate %.10f", rate)
            return None, iteration, value
        rate = rate - value / slope
        if not (settings.min_rate <= rate <= settings.max_rate):
            logger.debug("Newton: step left the search domain (rate %.6f)", rate)
            return None, iteration, value
    return None, settings.newton_max_iterations, value


def _find_bracket(
    guess: float,
    amounts: Sequence[float],
    times: Sequence[float],
    settings: SolverSettings,
) -> Tuple[float, float, float, float]:
    grid = sorted(r for r in settings.scan_grid if settings.min_rate <= r <= settings.max_rate)
    points = [(r, _npv(r, amounts, times)) for r in grid]
    points = [(r, v) for r, v in points if math.isfinite(v)]
    if not points:
        raise NonConvergenceError("NPV is not finite anywhere in the scanned range")

    brackets = []
    for (lo, f_lo), (hi, f_hi) in zip(points, points[1:]):
        if f_lo == 0 or f_hi == 0 or (f_lo < 0) != (f_hi < 0):
            if lo <= guess <= hi:
                distance = 0.0
            else:
                distance = min(abs(lo - guess), abs(hi - guess))
            brackets.append((distance, lo, hi, f_lo, f_hi))
    if not brackets:
        raise NonConvergenceError(
            "No sign change of NPV found in the scanned rate range",
            last_rate=guess,
        )
    _, lo, hi, f_lo, f_hi = min(brackets)
    return lo, hi, f_lo, f_hi


def _bisect(
    bracket: Tuple[float, float, float, float],
    amounts: Sequence[float],
    times: Sequence[float],
    tolerance: float,
    settings: SolverSettings,
) -> Tuple[float, int, float]:
    lo, hi, f_lo, f_hi = bracket
    if abs(f_lo) < tolerance:
        return lo, 0, f_lo
    if abs(f_hi) < tolerance:
        return hi, 0, f_hi
    mid = lo
    for iteration in range(1, settings.bisection_max_iterations + 1):
        mid = (lo + hi) / 2.0
        f_mid = _npv(mid, amounts, times)
        if abs(f_mid) < tolerance:
            return mid, iteration, f_mid
        if (f_mid < 0) == (f_lo < 0):
            lo, f_lo = mid, f_mid
        else:
            hi = mid
    raise NonConvergenceError(
        "Bisection did not reach the NPV tolerance",
        iterations=settings.bisection_max_iterations,
        last_rate=mid,
    )


def solve_irr(
    cashflows: Sequence[CashFlowEntry],
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
    settings: Optional[SolverSettings] = None,
) -> IRRSolution:
    """Solve ``NPV(r) = 0`` for a dated cash-flow series.

    Parameters
    ----------
    cashflows:
        Signed entries in any order; same-date entries are summed.
    convention:
        Day-count convention used to measure time from the earliest entry.
    settings:
        Bounds, tolerance and iteration budgets; defaults from ``config``.

    Returns
    -------
    IRRSolution
        The annual rate as a fraction (0.1268 for 12.68 %) and how it was found.

    Raises
    ------
    DegenerateCashFlowError
        Fewer than two dates, no outflow or no inflow, or zero time span.
    NonConvergenceError
        Neither Newton-Raphson nor bisection found a root within budget.
    """
    settings = settings or DEFAULT_SOLVER_SETTINGS
    entries = merge_cash_flows(cashflows)
    if len(entries) < 2:
        raise DegenerateCashFlowError(
            "At least two cash flows on distinct dates are required", entries=len(entries)
        )
    if not any(e.amount < 0 for e in entries) or not any(e.amount > 0 for e in entries):
        raise DegenerateCashFlowError(
            "Cash flows must contain both an outflow and an inflow", entries=len(entries)
        )

    amounts, times = _series(entries, convention)
    if times[-1] == 0:
        raise DegenerateCashFlowError(
            "Cash flows span no time under the day-count convention", entries=len(entries)
        )

    tolerance = settings.tolerance_factor * sum(abs(a) for a in amounts)
    multiple = sign_changes(entries) > 1
    guess = initial_guess(entries, convention, settings)
    logger.debug(
        "Solving IRR for %d cash flows (guess %.6f, tolerance %.6g)", len(entries), guess, tolerance
    )

    rate, iterations, value = _newton(guess, amounts, times, tolerance, settings)
    if rate is not None and not multiple:
        return IRRSolution(rate, iterations, "newton", value, tolerance, multiple)

    if rate is None:
        logger.debug("Newton-Raphson gave up after %d iterations; bisecting", iterations)
        bracket = _find_bracket(guess, amounts, times, settings)
    else:
        # Newton may land on any root; keep it only inside the bracket nearest the guess
        try:
            bracket = _find_bracket(guess, amounts, times, settings)
        except NonConvergenceError:
            logger.debug("No grid bracket around the Newton root %.10f; keeping it", rate)
            return IRRSolution(rate, iterations, "newton", value, tolerance, multiple)
        if bracket[0] <= rate <= bracket[1]:
            return IRRSolution(rate, iterations, "newton", value, tolerance, multiple)
        logger.debug(
            "Newton root %.10f lies outside the nearest bracket [%g, %g]; bisecting",
            rate, bracket[0], bracket[1],
        )
    rate, bisections, value = _bisect(bracket, amounts, times, tolerance, settings)
    return IRRSolution(rate, iterations + bisections, "bisection", value, tolerance, multiple)

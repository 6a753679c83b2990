"""Day-count conventions.

``years_between`` is the only function in the package that measures elapsed
time. The solver discounts every cash flow with it and nothing else does
date arithmetic on the timeline, so switching the convention changes the
whole calculation consistently.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from .config import DEFAULT_CONVENTION


class DayCountConvention(str, Enum):
    ACTUAL_365 = "ACT/365"
    ACTUAL_360 = "ACT/360"
    THIRTY_360 = "30/360"


DEFAULT_DAY_COUNT = DayCountConvention(DEFAULT_CONVENTION)


def _thirty_360_days(d0: date, d1: date) -> int:
    # US (bond basis) 30/360
    day0 = min(d0.day, 30)
    day1 = d1.day
    if day0 == 30 and day1 == 31:
        day1 = 30
    return (d1.year - d0.year) * 360 + (d1.month - d0.month) * 30 + (day1 - day0)


def years_between(d0: date, d1: date, convention: DayCountConvention = DEFAULT_DAY_COUNT) -> float:
    """Return the time from ``d0`` to ``d1`` in years.

    The result is exactly ``0.0`` when the dates are equal and never
    decreases as ``d1`` moves later.

    Raises
    ------
    ValueError
        If ``d1`` is earlier than ``d0``.
    """
    if d1 < d0:
        raise ValueError(f"End date {d1} is before start date {d0}")
    if d0 == d1:
        return 0.0
    convention = DayCountConvention(convention)
    if convention is DayCountConvention.ACTUAL_365:
        return (d1 - d0).days / 365.0
    if convention is DayCountConvention.ACTUAL_360:
        return (d1 - d0).days / 360.0
    return max(_thirty_360_days(d0, d1), 0) / 360.0

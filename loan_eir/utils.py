"""Utility functions for the EIR engine.

This module provides helpers for turning loosely typed loan-record values
into Python data types (``Decimal`` amounts and ``datetime.date`` values) and
for stepping calendar dates by whole months, which the synthetic installment
schedule of the fallback method relies on.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, getcontext
from typing import Any, Optional

getcontext().prec = 28  # increase decimal precision to avoid rounding errors


def parse_date(value: Any) -> Optional[date]:
    """Parse a loan-record date into a ``date`` object.

    Parameters
    ----------
    value:
        Either an ISO string (``"YYYY-MM-DD"``, a trailing time part is
        ignored), a ``[year, month, day]`` list as returned by the banking
        API, or an existing ``date``. ``None`` passes through.

    Raises
    ------
    ValueError
        If the value cannot be interpreted as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        if isinstance(value, (list, tuple)):
            year, month, day = (int(part) for part in value[:3])
            return date(year, month, day)
        text = str(value).strip()
        return date.fromisoformat(text[:10])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date value: {value!r}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric value into a ``Decimal``.

    Strings may contain thousands separators. Floats go through ``str`` so
    ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    ``None`` passes through; anything else that is not a finite number raises
    ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).replace(",", "").strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid numeric value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result

from datetime import date, timedelta

import pytest

from loan_eir.config import DEFAULT_CONVENTION
from loan_eir.data_models import EIRCalculationResult
from loan_eir.day_count import DEFAULT_DAY_COUNT, DayCountConvention, years_between
from loan_eir.engine import EIRCalculator


@pytest.mark.parametrize("convention", list(DayCountConvention))
def test_same_date_is_exactly_zero(convention):
    assert years_between(date(2024, 2, 29), date(2024, 2, 29), convention) == 0.0


def test_actual_365_is_the_default():
    assert years_between(date(2023, 1, 1), date(2024, 1, 1)) == 1.0
    assert years_between(date(2024, 1, 1), date(2025, 1, 1)) == pytest.approx(366 / 365)


def test_actual_360():
    assert years_between(date(2023, 1, 1), date(2023, 3, 2), DayCountConvention.ACTUAL_360) == pytest.approx(60 / 360)


@pytest.mark.parametrize(
    "start, end, days",
    [
        (date(2023, 1, 15), date(2023, 2, 15), 30),
        (date(2023, 1, 31), date(2023, 2, 28), 28),
        (date(2023, 1, 30), date(2023, 3, 31), 60),
        (date(2023, 1, 15), date(2024, 1, 15), 360),
    ],
)
def test_thirty_360(start, end, days):
    assert years_between(start, end, DayCountConvention.THIRTY_360) == pytest.approx(days / 360)


def test_convention_accepts_its_string_value():
    assert years_between(date(2023, 1, 15), date(2023, 7, 15), "30/360") == pytest.approx(0.5)


@pytest.mark.parametrize("convention", list(DayCountConvention))
def test_non_decreasing_in_end_date(convention):
    start = date(2023, 1, 31)
    values = [years_between(start, start + timedelta(days=n), convention) for n in range(0, 800)]
    assert all(b >= a for a, b in zip(values, values[1:]))
    assert all(v >= 0 for v in values)


def test_end_before_start_raises():
    with pytest.raises(ValueError):
        years_between(date(2024, 1, 2), date(2024, 1, 1))


def test_default_convention_comes_from_config():
    assert DEFAULT_DAY_COUNT is DayCountConvention(DEFAULT_CONVENTION)
    assert EIRCalculator().convention is DEFAULT_DAY_COUNT
    assert EIRCalculationResult.__dataclass_fields__["convention"].default is DEFAULT_DAY_COUNT
    start, end = date(2023, 1, 31), date(2023, 3, 1)
    assert years_between(start, end) == years_between(start, end, DEFAULT_DAY_COUNT)

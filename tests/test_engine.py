import dataclasses
import logging
from datetime import date
from decimal import Decimal

import pytest

from loan_eir.data_models import (
    AuthoritativeSchedule,
    CalculationMethod,
    CalculationStatus,
    Charge,
    ChargeTiming,
    DisbursementTranche,
    EmiSource,
    LoanData,
    Provenance,
    RepaymentFrequency,
    RepaymentPeriod,
    SummaryOnly,
)
from loan_eir.day_count import DayCountConvention
from loan_eir.engine import INSUFFICIENT_DATA, EIRCalculator, _calculate_annuity_payment, calculate_eir
from loan_eir.exceptions import ApproximateResultWarning
from loan_eir.utils import add_months

from .conftest import monthly_periods, scheduled_loan

CALC_DATE = date(2024, 6, 1)


@pytest.fixture
def calculator():
    return EIRCalculator(clock=lambda: CALC_DATE)


def test_amortizing_loan_at_twelve_percent_nominal(calculator):
    loan = scheduled_loan("100000", "8884.88", 12)
    result = EIRCalculator(DayCountConvention.THIRTY_360).calculate(loan, CALC_DATE)
    assert result.status is CalculationStatus.COMPLETED
    assert result.method is CalculationMethod.IRR_METHOD
    assert result.provenance is Provenance.SCHEDULE
    assert result.formula_used == "IRR"
    assert abs(result.effective_interest_rate - Decimal("12.68")) <= Decimal("0.05")
    assert result.emi_amount == Decimal("8884.88")
    assert result.emi_source is EmiSource.SCHEDULE
    assert result.principal_amount == Decimal("100000.00")
    assert result.net_disbursement_amount == Decimal("100000.00")
    assert result.tenure_in_periods == 12
    assert not result.is_approximate
    assert result.reason is None


def test_thirty_day_spacing_under_actual_365(calculator):
    start = date(2024, 1, 1)
    periods = tuple(
        RepaymentPeriod(period_number=k, due_date=date.fromordinal(start.toordinal() + 30 * k), principal_due=Decimal("8884.88"))
        for k in range(1, 13)
    )
    loan = LoanData(
        principal=Decimal("100000"),
        schedule=AuthoritativeSchedule(periods=periods),
        disbursement_tranches=[DisbursementTranche(start, Decimal("100000"))],
    )
    result = calculator.calculate(loan)
    # a 1 % rate per 30 days compounds 365/30 times a year
    assert abs(result.effective_interest_rate - Decimal("12.87")) <= Decimal("0.05")


def test_upfront_charge_raises_the_eir(calculator):
    start = date(2023, 1, 15)
    fee = Charge(Decimal("2500"), ChargeTiming.UPFRONT, start, "Processing fee")
    with_fee = calculator.calculate(scheduled_loan("50000", "8900", 6, start, [fee]))
    without_fee = calculator.calculate(scheduled_loan("50000", "8900", 6, start))
    assert with_fee.status is CalculationStatus.COMPLETED
    assert without_fee.status is CalculationStatus.COMPLETED
    assert with_fee.net_disbursement_amount == Decimal("47500.00")
    assert without_fee.net_disbursement_amount == Decimal("50000.00")
    assert with_fee.effective_interest_rate > without_fee.effective_interest_rate


def test_fallback_with_summary_terms_only(calculator):
    loan = LoanData(principal=Decimal("10000"), term_in_months=10)
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.COMPLETED
    assert result.provenance is Provenance.FALLBACK
    assert result.formula_used == "IRR (Frontend)"
    assert result.is_approximate
    assert result.emi_amount == Decimal("1000.00")
    assert result.emi_source is EmiSource.FLAT
    assert result.tenure_in_periods == 10
    assert result.net_disbursement_amount == Decimal("10000.00")
    assert result.effective_interest_rate == Decimal("0.00")
    assert result.calculation_date == CALC_DATE
    assert any("fallback" in w for w in result.warnings)


def test_fallback_uses_supplied_emi_and_net_disbursal(calculator):
    loan = LoanData(
        principal=Decimal("10000"),
        net_disbursal_amount=Decimal("9500"),
        emi_amount=Decimal("1100"),
        number_of_repayments=10,
        disbursement_date=date(2024, 1, 10),
    )
    result = calculator.calculate(loan)
    assert result.emi_source is EmiSource.SUPPLIED
    assert result.emi_amount == Decimal("1100.00")
    assert result.net_disbursement_amount == Decimal("9500.00")
    assert result.effective_interest_rate > Decimal("20")


def test_fallback_annuity_emi_reproduces_nominal_rate(calculator):
    loan = LoanData(
        principal=Decimal("100000"),
        annual_interest_rate=Decimal("12"),
        term_in_months=12,
        disbursement_date=date(2023, 1, 15),
    )
    result = EIRCalculator(DayCountConvention.THIRTY_360).calculate(loan, CALC_DATE)
    assert result.emi_source is EmiSource.ANNUITY
    assert abs(result.emi_amount - Decimal("8884.88")) <= Decimal("0.01")
    assert result.effective_interest_rate == Decimal("12.68")


def test_fallback_net_disbursal_defaults_to_principal_less_upfront_charges(calculator):
    loan = LoanData(
        principal=Decimal("10000"),
        term_in_months=10,
        charges=[Charge(Decimal("500"), ChargeTiming.UPFRONT)],
    )
    result = calculator.calculate(loan)
    assert result.net_disbursement_amount == Decimal("9500.00")
    assert result.effective_interest_rate > Decimal("0")


def test_weekly_tenure_is_derived_from_term_in_months(calculator):
    loan = LoanData(
        principal=Decimal("5200"),
        term_in_months=6,
        repayment_frequency=RepaymentFrequency.WEEKS,
    )
    result = calculator.calculate(loan)
    assert result.tenure_in_periods == 26
    assert result.emi_amount == Decimal("200.00")


def test_schedule_without_amounts_falls_back(calculator):
    start = date(2024, 1, 10)
    periods = tuple(monthly_periods(start, 12, Decimal("0")))
    loan = LoanData(
        principal=Decimal("12000"),
        schedule=AuthoritativeSchedule(periods=periods),
        disbursement_tranches=[DisbursementTranche(start, Decimal("12000"))],
        number_of_repayments=12,
        annual_interest_rate=Decimal("10"),
    )
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.COMPLETED
    assert result.provenance is Provenance.FALLBACK
    assert any("no amounts" in w for w in result.warnings)


def test_empty_schedule_and_no_tranches_fail_with_insufficient_data(calculator):
    loan = LoanData(principal=Decimal("1000"), schedule=AuthoritativeSchedule(periods=()))
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.FAILED
    assert result.reason == INSUFFICIENT_DATA
    assert result.effective_interest_rate == Decimal("0.00")
    assert result.effective_interest_rate.is_finite()


def test_insufficient_data_even_without_principal(calculator):
    loan = LoanData(principal=None, schedule=AuthoritativeSchedule())
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.FAILED
    assert result.reason == INSUFFICIENT_DATA
    assert result.principal_amount == Decimal("0.00")


@pytest.mark.parametrize(
    "loan, fragment",
    [
        (LoanData(principal=None, term_in_months=12), "missing principal"),
        (LoanData(principal=Decimal("0"), term_in_months=12), "missing principal"),
        (LoanData(principal=Decimal("1000")), "tenure"),
        (
            LoanData(principal=Decimal("1000"), net_disbursal_amount=Decimal("0"), term_in_months=12),
            "net disbursement",
        ),
    ],
)
def test_invalid_input_is_reported_not_raised(calculator, loan, fragment):
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.FAILED
    assert fragment in result.reason


def test_repayments_that_never_cover_the_loan_fail(calculator):
    start = date(2023, 1, 1)
    loan = LoanData(
        principal=Decimal("100"),
        schedule=AuthoritativeSchedule(periods=(RepaymentPeriod(1, add_months(start, 12), Decimal("0.5")),)),
        disbursement_tranches=[DisbursementTranche(start, Decimal("100"))],
    )
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.FAILED
    assert "sign change" in result.reason
    assert result.tenure_in_periods == 1


def test_interleaved_tranches_are_flagged_approximate(calculator):
    start = date(2023, 1, 1)
    periods = [RepaymentPeriod(1, add_months(start, 1), Decimal("1000"))]
    periods += [RepaymentPeriod(k, add_months(start, k), Decimal("1800")) for k in range(2, 15)]
    loan = LoanData(
        principal=Decimal("20000"),
        schedule=AuthoritativeSchedule(periods=tuple(periods)),
        disbursement_tranches=[
            DisbursementTranche(start, Decimal("10000")),
            DisbursementTranche(add_months(start, 3), Decimal("10000")),
        ],
    )
    result = calculator.calculate(loan)
    assert result.status is CalculationStatus.COMPLETED
    assert result.is_approximate
    assert any("more than once" in w for w in result.warnings)


def test_calculate_is_idempotent_apart_from_the_date():
    loan = scheduled_loan("50000", "8900", 6)
    first = EIRCalculator(clock=lambda: date(2024, 1, 1)).calculate(loan)
    second = EIRCalculator(clock=lambda: date(2024, 2, 1)).calculate(loan)
    assert first != second
    assert dataclasses.replace(second, calculation_date=first.calculation_date) == first
    assert EIRCalculator(clock=lambda: date(2024, 1, 1)).calculate(loan) == first


def test_result_is_immutable(calculator):
    result = calculator.calculate(scheduled_loan("50000", "8900", 6))
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.effective_interest_rate = Decimal("1")


def test_result_to_dict(calculator):
    loan = scheduled_loan("50000", "8900", 6)
    loan.currency_code = "KES"
    data = calculator.calculate(loan).to_dict()
    assert data["calculationMethod"] == "IRR_METHOD"
    assert data["calculationStatus"] == "COMPLETED"
    assert data["calculationDate"] == "2024-06-01"
    assert data["currencyCode"] == "KES"
    assert data["loanId"] == 42
    assert data["tenureInPeriods"] == 6
    assert data["dayCountConvention"] == "ACT/365"


def test_default_currency(calculator):
    result = calculator.calculate(LoanData(principal=Decimal("10000"), term_in_months=10))
    assert result.currency_code == "INR"


def test_calculate_eir_shortcut():
    loan = LoanData(principal=Decimal("10000"), term_in_months=10, loan_id=3)
    result = calculate_eir(loan, calculation_date=CALC_DATE)
    assert result.loan_id == 3
    assert result.calculation_date == CALC_DATE


def test_annuity_payment_zero_rate_is_flat():
    assert _calculate_annuity_payment(Decimal("1200"), Decimal("0"), 12) == Decimal("100")
    with pytest.raises(ValueError):
        _calculate_annuity_payment(Decimal("1200"), Decimal("0.01"), 0)


def test_summary_only_is_the_default_schedule():
    assert isinstance(LoanData(principal=Decimal("1")).schedule, SummaryOnly)


def test_fallback_rate_does_not_depend_on_the_calculation_date():
    loan = LoanData(principal=Decimal("10000"), net_disbursal_amount=Decimal("9500"), term_in_months=10)
    first = EIRCalculator().calculate(loan, date(2024, 1, 31))
    second = EIRCalculator().calculate(loan, date(2024, 3, 1))
    assert first.provenance is Provenance.FALLBACK
    assert first.effective_interest_rate > Decimal("0")
    assert first.effective_interest_rate == second.effective_interest_rate
    assert dataclasses.replace(second, calculation_date=first.calculation_date) == first


def test_approximate_results_emit_a_warning():
    loan = LoanData(principal=Decimal("10000"), term_in_months=10)
    with pytest.warns(ApproximateResultWarning, match="fallback"):
        result = EIRCalculator().calculate(loan, CALC_DATE)
    assert result.is_approximate


def test_exact_results_emit_no_warning(recwarn):
    result = EIRCalculator().calculate(scheduled_loan("50000", "8900", 6), CALC_DATE)
    assert not result.is_approximate
    assert not [w for w in recwarn if issubclass(w.category, ApproximateResultWarning)]


def test_approximate_results_are_logged_at_info(caplog):
    loan = LoanData(principal=Decimal("10000"), term_in_months=10)
    with caplog.at_level(logging.INFO, logger="loan_eir.engine"):
        EIRCalculator().calculate(loan, CALC_DATE)
    records = [r for r in caplog.records if r.getMessage().startswith("Approximate EIR result")]
    assert records
    assert all(r.levelno == logging.INFO for r in records)

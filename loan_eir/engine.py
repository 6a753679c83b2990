"""Effective Interest Rate calculation engine.

``EIRCalculator`` turns a ``LoanData`` snapshot into an
``EIRCalculationResult``. Loans with an authoritative repayment schedule are
priced from their actual cash flows; loans with summary terms only (or a
schedule whose rows carry no amounts yet) go through the fallback method, a
synthetic timeline of equal installments. Either way the annual rate comes
from the IRR solver, measured in years under the calculator's day-count
convention, so it needs no further compounding before it is reported as a
percentage.

``calculate`` never raises. Invalid input, degenerate cash flows and solver
failures all come back as ``FAILED`` results with a reason, because the
result is shown directly to borrowers.

Reported figures follow one precedence rule each:

EMI
    1. first schedule period (``period_number > 0``) with a non-zero total due
    2. ``emi_amount`` supplied with the loan
    3. annuity payment from ``annual_interest_rate`` over the tenure (approximate)
    4. ``principal / tenure`` (approximate)
Tenure
    1. number of schedule periods with ``period_number > 0``
    2. ``number_of_repayments``
    3. ``term_in_months`` converted to repayment periods
Net disbursement
    schedule path: tranches less the upfront charges netted against them;
    fallback path: ``net_disbursal_amount``, else principal less upfront charges
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from .cashflows import (
    build_cash_flows,
    build_installment_cash_flows,
    disbursement_cash_flows,
    net_disbursement,
)
from .config import (
    DEFAULT_CURRENCY_CODE,
    EIR_DECIMAL_PLACES,
    FALLBACK_ANCHOR_DATE,
    MONEY_DECIMAL_PLACES,
    SolverSettings,
)
from .data_models import (
    AuthoritativeSchedule,
    CalculationMethod,
    CalculationStatus,
    CashFlowEntry,
    ChargeTiming,
    EIRCalculationResult,
    EmiSource,
    LoanData,
    Provenance,
    RepaymentPeriod,
)
from .day_count import DEFAULT_DAY_COUNT, DayCountConvention
from .exceptions import ApproximateResultWarning, EIRError, InvalidInputError
from .solver import solve_irr

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "insufficient cash flow data"
FORMULA_SCHEDULE = "IRR"
FORMULA_FALLBACK = "IRR (Frontend)"


def _calculate_annuity_payment(principal: Decimal, rate_per_period: Decimal, term: int) -> Decimal:
    """Return the annuity (equal installment) payment for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the interest rate per repayment
    period and ``n`` is the number of payments. When the interest rate is
    zero, the payment simplifies to ``P / n``.
    """
    if term <= 0:
        raise ValueError("Term must be positive")
    if rate_per_period == 0:
        return principal / Decimal(term)
    factor = (1 + rate_per_period) ** term
    return principal * (rate_per_period * factor) / (factor - 1)


def _quantize(value: Decimal, places: int) -> Decimal:
    result = value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return result.copy_abs() if result.is_zero() else result


def _rate_to_percentage(rate: float) -> Decimal:
    return _quantize(Decimal(repr(rate)) * 100, EIR_DECIMAL_PLACES)


@dataclass
class _CashFlowPlan:
    """Inputs to the solver plus the figures reported alongside the rate."""

    cash_flows: List[CashFlowEntry]
    provenance: Provenance
    emi_amount: Decimal = Decimal("0")
    emi_source: Optional[EmiSource] = None
    tenure: int = 0
    net_disbursement: Decimal = Decimal("0")
    warnings: List[str] = field(default_factory=list)


class EIRCalculator:
    """Compute the Effective Interest Rate of a loan.

    Parameters
    ----------
    convention:
        Day-count convention for discounting; also the basis of the
        reported annual rate.
    settings:
        Solver bounds, tolerance and iteration budgets.
    clock:
        Returns the calculation date when ``calculate`` is not given one.
    """

    def __init__(
        self,
        convention: DayCountConvention = DEFAULT_DAY_COUNT,
        settings: Optional[SolverSettings] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.convention = DayCountConvention(convention)
        self.settings = settings
        self.clock = clock

    def calculate(self, loan: LoanData, calculation_date: Optional[date] = None) -> EIRCalculationResult:
        """Calculate the EIR of ``loan``; failures are returned, not raised."""
        calc_date = calculation_date or self.clock()
        self._transition(loan, CalculationStatus.PENDING)
        self._transition(loan, CalculationStatus.COMPUTING)

        plan: Optional[_CashFlowPlan] = None
        try:
            plan = self._plan(loan)
            if not plan.cash_flows:
                return self._failed(loan, calc_date, INSUFFICIENT_DATA, plan)
            solution = solve_irr(plan.cash_flows, self.convention, self.settings)
        except EIRError as exc:
            return self._failed(loan, calc_date, exc.message, plan)
        except (ArithmeticError, ValueError) as exc:
            return self._failed(loan, calc_date, f"calculation error: {exc}", plan)

        if solution.multiple_roots_possible:
            self._note_approximation(
                plan,
                "cash-flow signs change more than once; the rate nearest the initial guess was reported",
            )
        effective_rate = _rate_to_percentage(solution.rate)
        logger.debug(
            "Loan %s: rate %.10f via %s after %d iterations",
            loan.loan_id,
            solution.rate,
            solution.algorithm,
            solution.iterations,
        )
        self._transition(loan, CalculationStatus.COMPLETED)
        for message in plan.warnings:
            warnings.warn(message, ApproximateResultWarning, stacklevel=2)
        return EIRCalculationResult(
            effective_interest_rate=effective_rate,
            method=CalculationMethod.IRR_METHOD,
            status=CalculationStatus.COMPLETED,
            calculation_date=calc_date,
            emi_amount=_quantize(plan.emi_amount, MONEY_DECIMAL_PLACES),
            principal_amount=_quantize(loan.principal, MONEY_DECIMAL_PLACES),
            net_disbursement_amount=_quantize(plan.net_disbursement, MONEY_DECIMAL_PLACES),
            tenure_in_periods=plan.tenure,
            provenance=plan.provenance,
            formula_used=FORMULA_SCHEDULE if plan.provenance is Provenance.SCHEDULE else FORMULA_FALLBACK,
            emi_source=plan.emi_source,
            is_approximate=bool(plan.warnings),
            warnings=tuple(plan.warnings),
            currency_code=loan.currency_code or DEFAULT_CURRENCY_CODE,
            loan_id=loan.loan_id,
            convention=self.convention,
        )

    # ------------------------------------------------------------------
    # Cash-flow selection

    def _plan(self, loan: LoanData) -> _CashFlowPlan:
        if isinstance(loan.schedule, AuthoritativeSchedule):
            periods = loan.schedule.repayment_periods
            if not periods or any(p.total_due != 0 for p in periods):
                return self._plan_from_schedule(loan, periods)
            plan = self._plan_fallback(loan)
            self._note_approximation(plan, "repayment schedule carries no amounts; used the fallback method")
            return plan
        return self._plan_fallback(loan)

    def _plan_from_schedule(self, loan: LoanData, periods: Sequence[RepaymentPeriod]) -> _CashFlowPlan:
        cash_flows = build_cash_flows(loan.disbursement_tranches, periods, loan.charges)
        plan = _CashFlowPlan(cash_flows=cash_flows, provenance=Provenance.SCHEDULE, tenure=len(periods))
        if not cash_flows:
            return plan
        self._require_principal(loan)
        plan.net_disbursement = net_disbursement(
            disbursement_cash_flows(loan.disbursement_tranches, loan.charges)
        )
        plan.emi_amount, plan.emi_source = self._derive_emi(loan, periods, plan.tenure)
        if plan.emi_source is not EmiSource.SCHEDULE:
            self._note_approximation(plan, f"EMI derived by the {plan.emi_source.value.lower()} rule")
        return plan

    def _plan_fallback(self, loan: LoanData) -> _CashFlowPlan:
        principal = self._require_principal(loan)
        tenure = self._derive_tenure(loan)
        if loan.net_disbursal_amount is not None:
            disbursed = loan.net_disbursal_amount
        else:
            upfront = sum(
                (c.amount for c in loan.charges if c.timing is ChargeTiming.UPFRONT), Decimal("0")
            )
            disbursed = principal - upfront
        if disbursed <= 0:
            raise InvalidInputError("net disbursement must be positive", {"net_disbursement": str(disbursed)})

        emi, source = self._derive_emi(loan, (), tenure)
        anchor = self._fallback_anchor(loan)
        cash_flows = build_installment_cash_flows(
            anchor, disbursed, emi, tenure, loan.repayment_frequency, loan.repayment_every
        )
        plan = _CashFlowPlan(
            cash_flows=cash_flows,
            provenance=Provenance.FALLBACK,
            emi_amount=emi,
            emi_source=source,
            tenure=tenure,
            net_disbursement=disbursed,
        )
        self._note_approximation(plan, "per-period schedule unavailable; used the fallback method")
        if source in (EmiSource.ANNUITY, EmiSource.FLAT):
            self._note_approximation(plan, f"EMI derived by the {source.value.lower()} rule")
        return plan

    # ------------------------------------------------------------------
    # Precedence rules

    @staticmethod
    def _require_principal(loan: LoanData) -> Decimal:
        if loan.principal is None or loan.principal <= 0:
            raise InvalidInputError("missing principal", {"principal": loan.principal})
        return loan.principal

    @staticmethod
    def _derive_tenure(loan: LoanData) -> int:
        if loan.number_of_repayments is not None and loan.number_of_repayments > 0:
            return loan.number_of_repayments
        if loan.term_in_months is not None and loan.term_in_months > 0:
            per_year = loan.repayment_frequency.periods_per_year(loan.repayment_every)
            periods = (Decimal(loan.term_in_months) * per_year / 12).to_integral_value(rounding=ROUND_CEILING)
            return max(int(periods), 1)
        raise InvalidInputError("missing tenure: numberOfRepayments or termInMonths is required")

    @staticmethod
    def _derive_emi(
        loan: LoanData, periods: Sequence[RepaymentPeriod], tenure: int
    ) -> Tuple[Decimal, EmiSource]:
        for period in periods:
            if period.period_number > 0 and period.total_due != 0:
                return period.total_due, EmiSource.SCHEDULE
        if loan.emi_amount is not None and loan.emi_amount > 0:
            return loan.emi_amount, EmiSource.SUPPLIED
        if loan.annual_interest_rate is not None and loan.annual_interest_rate > 0:
            per_year = loan.repayment_frequency.periods_per_year(loan.repayment_every)
            rate_per_period = loan.annual_interest_rate / Decimal(100) / per_year
            return _calculate_annuity_payment(loan.principal, rate_per_period, tenure), EmiSource.ANNUITY
        return loan.principal / Decimal(tenure), EmiSource.FLAT

    @staticmethod
    def _fallback_anchor(loan: LoanData) -> date:
        if loan.disbursement_date is not None:
            return loan.disbursement_date
        if loan.disbursement_tranches:
            return min(t.date for t in loan.disbursement_tranches)
        return FALLBACK_ANCHOR_DATE

    # ------------------------------------------------------------------
    # Bookkeeping

    @staticmethod
    def _note_approximation(plan: _CashFlowPlan, message: str) -> None:
        plan.warnings.append(message)
        logger.info("Approximate EIR result: %s", message)

    @staticmethod
    def _transition(loan: LoanData, status: CalculationStatus) -> None:
        logger.debug("Loan %s: EIR calculation %s", loan.loan_id, status.value)

    def _failed(
        self,
        loan: LoanData,
        calc_date: date,
        reason: str,
        plan: Optional[_CashFlowPlan] = None,
    ) -> EIRCalculationResult:
        logger.warning("EIR calculation failed for loan %s: %s", loan.loan_id, reason)
        self._transition(loan, CalculationStatus.FAILED)
        principal = loan.principal if loan.principal is not None else Decimal("0")
        if plan is not None:
            provenance = plan.provenance
        elif isinstance(loan.schedule, AuthoritativeSchedule):
            provenance = Provenance.SCHEDULE
        else:
            provenance = Provenance.FALLBACK
        return EIRCalculationResult(
            effective_interest_rate=Decimal("0.00"),
            method=CalculationMethod.IRR_METHOD,
            status=CalculationStatus.FAILED,
            calculation_date=calc_date,
            emi_amount=_quantize(plan.emi_amount if plan else Decimal("0"), MONEY_DECIMAL_PLACES),
            principal_amount=_quantize(principal, MONEY_DECIMAL_PLACES),
            net_disbursement_amount=_quantize(plan.net_disbursement if plan else Decimal("0"), MONEY_DECIMAL_PLACES),
            tenure_in_periods=plan.tenure if plan else 0,
            provenance=provenance,
            formula_used=FORMULA_SCHEDULE if provenance is Provenance.SCHEDULE else FORMULA_FALLBACK,
            emi_source=plan.emi_source if plan else None,
            is_approximate=bool(plan and plan.warnings),
            warnings=tuple(plan.warnings) if plan else (),
            reason=reason,
            currency_code=loan.currency_code or DEFAULT_CURRENCY_CODE,
            loan_id=loan.loan_id,
            convention=self.convention,
        )


def calculate_eir(
    loan: LoanData,
    convention: DayCountConvention = DEFAULT_DAY_COUNT,
    settings: Optional[SolverSettings] = None,
    calculation_date: Optional[date] = None,
) -> EIRCalculationResult:
    """Shortcut for ``EIRCalculator(convention, settings).calculate(loan)``."""
    return EIRCalculator(convention, settings).calculate(loan, calculation_date)

"""Data models for the EIR engine.

This module defines dataclasses representing the entities the engine works
with: dated cash flows, disbursement tranches, repayment periods, charges,
the loan itself and the calculation result. A loan's repayment schedule is
an explicit variant, either ``AuthoritativeSchedule`` (per-period detail from
the loan's actual schedule) or ``SummaryOnly`` (no detail; only summary
terms), chosen once when the loan record is read.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .day_count import DEFAULT_DAY_COUNT, DayCountConvention


class ChargeTiming(str, Enum):
    """When a charge is collected.

    ``UPFRONT`` charges are deducted from the amount disbursed. ``ONGOING``
    (one-off, on a specified date) and ``PERIODIC`` (recurring) charges are
    paid separately by the borrower.
    """

    UPFRONT = "UPFRONT"
    ONGOING = "ONGOING"
    PERIODIC = "PERIODIC"


class RepaymentFrequency(str, Enum):
    DAYS = "DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"
    YEARS = "YEARS"

    def periods_per_year(self, every: int = 1) -> Decimal:
        """Number of repayment periods in one year for an ``every``-unit step."""
        per_year = {
            RepaymentFrequency.DAYS: Decimal(365),
            RepaymentFrequency.WEEKS: Decimal(52),
            RepaymentFrequency.MONTHS: Decimal(12),
            RepaymentFrequency.YEARS: Decimal(1),
        }[self]
        return per_year / Decimal(max(every, 1))


class CalculationMethod(str, Enum):
    IRR_METHOD = "IRR_METHOD"


class CalculationStatus(str, Enum):
    PENDING = "PENDING"
    COMPUTING = "COMPUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Provenance(str, Enum):
    """Where the cash flows behind a result came from."""

    SCHEDULE = "SCHEDULE"
    FALLBACK = "FALLBACK"


class EmiSource(str, Enum):
    """Which precedence rule produced the reported EMI."""

    SCHEDULE = "SCHEDULE"
    SUPPLIED = "SUPPLIED"
    ANNUITY = "ANNUITY"
    FLAT = "FLAT"


@dataclass(frozen=True)
class CashFlowEntry:
    """A dated, signed amount seen from the lender's side.

    Positive amounts are inflows to the lender (repayments, fees collected);
    negative amounts are outflows (disbursements).
    """

    date: date
    amount: Decimal


@dataclass(frozen=True)
class DisbursementTranche:
    date: date
    principal_amount: Decimal


@dataclass(frozen=True)
class RepaymentPeriod:
    """One row of the loan's repayment schedule.

    ``period_number`` 0 is the disbursement placeholder row and never
    contributes a repayment.
    """

    period_number: int
    due_date: date
    principal_due: Decimal = Decimal("0")
    interest_due: Decimal = Decimal("0")
    fee_due: Decimal = Decimal("0")
    penalty_due: Decimal = Decimal("0")

    @property
    def total_due(self) -> Decimal:
        return self.principal_due + self.interest_due + self.fee_due + self.penalty_due


@dataclass(frozen=True)
class Charge:
    amount: Decimal
    timing: ChargeTiming
    effective_date: Optional[date] = None
    name: str = ""


@dataclass(frozen=True)
class AuthoritativeSchedule:
    """Per-period repayment detail taken from the loan's actual schedule."""

    periods: Tuple[RepaymentPeriod, ...] = ()

    @property
    def repayment_periods(self) -> List[RepaymentPeriod]:
        return [p for p in self.periods if p.period_number > 0]


@dataclass(frozen=True)
class SummaryOnly:
    """No per-period detail is available; only the loan's summary terms."""


Schedule = Union[AuthoritativeSchedule, SummaryOnly]


@dataclass
class LoanData:
    """Everything the engine needs to know about one loan.

    Amounts are already resolved ``Decimal`` values. Optional fields are
    ``None`` when the loan record does not carry them; the calculator decides
    which field wins through its precedence rules, never by probing for
    truthy values.
    """

    principal: Optional[Decimal]
    schedule: Schedule = field(default_factory=SummaryOnly)
    disbursement_tranches: List[DisbursementTranche] = field(default_factory=list)
    charges: List[Charge] = field(default_factory=list)
    net_disbursal_amount: Optional[Decimal] = None
    repayment_frequency: RepaymentFrequency = RepaymentFrequency.MONTHS
    repayment_every: int = 1
    number_of_repayments: Optional[int] = None
    term_in_months: Optional[int] = None
    emi_amount: Optional[Decimal] = None
    annual_interest_rate: Optional[Decimal] = None  # nominal, in percent
    disbursement_date: Optional[date] = None
    currency_code: Optional[str] = None
    loan_id: Optional[int] = None


@dataclass(frozen=True)
class EIRCalculationResult:
    """Outcome of one EIR calculation.

    Produced by ``EIRCalculator.calculate`` and never changed afterwards. A
    ``FAILED`` result carries ``reason`` and an ``effective_interest_rate`` of
    zero so it can be displayed as-is.
    """

    effective_interest_rate: Decimal  # percent, e.g. Decimal("12.68")
    method: CalculationMethod
    status: CalculationStatus
    calculation_date: date
    emi_amount: Decimal
    principal_amount: Decimal
    net_disbursement_amount: Decimal
    tenure_in_periods: int
    provenance: Provenance = Provenance.SCHEDULE
    formula_used: str = "IRR"
    emi_source: Optional[EmiSource] = None
    is_approximate: bool = False
    warnings: Tuple[str, ...] = ()
    reason: Optional[str] = None
    currency_code: Optional[str] = None
    loan_id: Optional[int] = None
    convention: DayCountConvention = DEFAULT_DAY_COUNT

    @property
    def succeeded(self) -> bool:
        return self.status is CalculationStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation (camelCase keys)."""
        return {
            "loanId": self.loan_id,
            "effectiveInterestRate": float(self.effective_interest_rate),
            "calculationMethod": self.method.value,
            "calculationStatus": self.status.value,
            "calculationDate": self.calculation_date.isoformat(),
            "emiAmount": float(self.emi_amount),
            "principalAmount": float(self.principal_amount),
            "netDisbursementAmount": float(self.net_disbursement_amount),
            "tenureInPeriods": self.tenure_in_periods,
            "provenance": self.provenance.value,
            "formulaUsed": self.formula_used,
            "emiSource": self.emi_source.value if self.emi_source else None,
            "isApproximate": self.is_approximate,
            "warnings": list(self.warnings),
            "reason": self.reason,
            "currencyCode": self.currency_code,
            "dayCountConvention": self.convention.value,
        }

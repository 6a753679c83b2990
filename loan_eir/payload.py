"""Conversion of raw loan records into ``LoanData``.

Loan records arrive as JSON-like mappings in the banking API's camelCase
shape. This module reads such a record exactly once and produces an explicit
``LoanData``: the schedule variant is chosen here, and every field is taken
from the first key of a fixed precedence list that holds a value.

================  ==========================================================
Field             Keys, in order of precedence
================  ==========================================================
principal         ``principal``, ``approvedPrincipal``
net disbursal     ``netDisbursalAmount``
disbursement day  ``timeline.actualDisbursementDate``,
                  ``timeline.expectedDisbursementDate``, ``disbursementDate``,
                  due date of the schedule's disbursement row
tranches          ``disbursementDetails``, disbursement rows of the schedule
                  (``principalDisbursed``), principal at the disbursement day
emi               ``emiAmount``, ``fixedEmiAmount``
tenure            ``numberOfRepayments``; ``termInMonths``, ``termFrequency``
                  when the term is expressed in months
currency          ``currency.code``, ``currencyCode``
================  ==========================================================
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .data_models import (
    AuthoritativeSchedule,
    Charge,
    ChargeTiming,
    DisbursementTranche,
    LoanData,
    RepaymentFrequency,
    RepaymentPeriod,
    Schedule,
    SummaryOnly,
)
from .exceptions import InvalidInputError
from .utils import parse_date, to_decimal

logger = logging.getLogger(__name__)

# Charge time-type codes (last segment of ``chargeTimeType.code``). Codes not
# listed here (overdue penalties, annual fees on savings, ...) are not part of
# the cost of credit at origination.
CHARGE_TIMING_BY_CODE: Dict[str, ChargeTiming] = {
    "disbursement": ChargeTiming.UPFRONT,
    "tranchedisbursement": ChargeTiming.UPFRONT,
    "specifiedduedate": ChargeTiming.ONGOING,
    "instalmentfee": ChargeTiming.PERIODIC,
}

FREQUENCY_BY_NAME: Dict[str, RepaymentFrequency] = {
    "days": RepaymentFrequency.DAYS,
    "daily": RepaymentFrequency.DAYS,
    "weeks": RepaymentFrequency.WEEKS,
    "weekly": RepaymentFrequency.WEEKS,
    "months": RepaymentFrequency.MONTHS,
    "monthly": RepaymentFrequency.MONTHS,
    "years": RepaymentFrequency.YEARS,
    "yearly": RepaymentFrequency.YEARS,
}


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key present with a non-null value."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _decimal(value: Any, field_name: str) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise InvalidInputError(f"invalid amount for {field_name}", {field_name: value}) from exc


def _date(value: Any, field_name: str) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise InvalidInputError(f"invalid date for {field_name}", {field_name: value}) from exc


def _int(value: Any, field_name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"invalid integer for {field_name}", {field_name: value}) from exc


def _code_suffix(value: Any) -> Optional[str]:
    """Normalize an enum-like API value (``{"code": "a.b.months"}`` or a string)."""
    if isinstance(value, Mapping):
        value = _first(value, "code", "value")
    if value is None:
        return None
    return str(value).rsplit(".", 1)[-1].strip().lower()


def parse_frequency(value: Any) -> RepaymentFrequency:
    suffix = _code_suffix(value)
    if suffix is None:
        return RepaymentFrequency.MONTHS
    try:
        return FREQUENCY_BY_NAME[suffix]
    except KeyError:
        raise InvalidInputError("unsupported repayment frequency", {"repaymentFrequency": value}) from None


def _parse_period(row: Mapping[str, Any]) -> RepaymentPeriod:
    number = _int(row.get("period"), "period") or 0
    due_date = _date(row.get("dueDate"), "dueDate")
    if due_date is None:
        raise InvalidInputError("schedule period without a due date", {"period": number})
    principal = _decimal(_first(row, "principalDue", "principalOriginalDue"), "principalDue")
    interest = _decimal(_first(row, "interestDue", "interestOriginalDue"), "interestDue")
    fees = _decimal(row.get("feeChargesDue"), "feeChargesDue")
    penalties = _decimal(row.get("penaltyChargesDue"), "penaltyChargesDue")
    if all(v is None for v in (principal, interest, fees, penalties)):
        # Summary-style rows carry only the period total
        principal = _decimal(
            _first(row, "totalDueForPeriod", "totalInstallmentAmountForPeriod"), "totalDueForPeriod"
        )
    zero = Decimal("0")
    return RepaymentPeriod(
        period_number=number,
        due_date=due_date,
        principal_due=principal or zero,
        interest_due=interest or zero,
        fee_due=fees or zero,
        penalty_due=penalties or zero,
    )


def _parse_charges(rows: Iterable[Mapping[str, Any]]) -> List[Charge]:
    charges: List[Charge] = []
    for row in rows:
        code = _code_suffix(row.get("chargeTimeType"))
        timing = CHARGE_TIMING_BY_CODE.get(code or "")
        name = str(row.get("name") or "")
        if timing is None:
            logger.debug("Skipping charge %r with time type %r", name, code)
            continue
        effective_date = _date(row.get("dueDate"), "dueDate")
        if timing is ChargeTiming.PERIODIC and effective_date is None:
            # collected through the fee dues of each schedule period
            logger.debug("Periodic charge %r has no due date; left to the schedule", name)
            continue
        amount = _decimal(_first(row, "amount", "amountOrPercentage"), "amount")
        if amount is None:
            raise InvalidInputError("charge without an amount", {"name": name})
        charges.append(Charge(amount=amount, timing=timing, effective_date=effective_date, name=name))
    return charges


def _parse_tranches(
    payload: Mapping[str, Any],
    disbursement_rows: List[Mapping[str, Any]],
    principal: Optional[Decimal],
    disbursement_date: Optional[date],
) -> List[DisbursementTranche]:
    details = payload.get("disbursementDetails") or []
    tranches: List[DisbursementTranche] = []
    for row in details:
        tranche_date = _date(
            _first(row, "actualDisbursementDate", "expectedDisbursementDate"), "disbursementDetails.date"
        )
        amount = _decimal(row.get("principal"), "disbursementDetails.principal")
        if tranche_date is not None and amount is not None:
            tranches.append(DisbursementTranche(date=tranche_date, principal_amount=amount))
    if tranches:
        return tranches

    for row in disbursement_rows:
        amount = _decimal(row.get("principalDisbursed"), "principalDisbursed")
        row_date = _date(row.get("dueDate"), "dueDate")
        if amount and row_date is not None:
            tranches.append(DisbursementTranche(date=row_date, principal_amount=amount))
    if tranches:
        return tranches

    if principal is not None and disbursement_date is not None:
        return [DisbursementTranche(date=disbursement_date, principal_amount=principal)]
    return []


def _parse_term_in_months(payload: Mapping[str, Any]) -> Optional[int]:
    term = _int(payload.get("termInMonths"), "termInMonths")
    if term is not None:
        return term
    if _code_suffix(payload.get("termPeriodFrequencyType")) == "months":
        return _int(payload.get("termFrequency"), "termFrequency")
    return None


def loan_data_from_dict(payload: Mapping[str, Any]) -> LoanData:
    """Build ``LoanData`` from a raw loan record.

    Raises
    ------
    InvalidInputError
        If a value cannot be parsed, or if the record has repayment periods
        but no disbursement date can be found for them.
    """
    if not isinstance(payload, Mapping):
        raise InvalidInputError("loan record must be a mapping")

    principal = _decimal(_first(payload, "principal", "approvedPrincipal"), "principal")
    schedule_rows = (payload.get("repaymentSchedule") or {}).get("periods") or []
    disbursement_rows = [r for r in schedule_rows if (_int(r.get("period"), "period") or 0) == 0]
    periods = [_parse_period(r) for r in schedule_rows if (_int(r.get("period"), "period") or 0) > 0]

    timeline = payload.get("timeline") or {}
    disbursement_date = _date(
        _first(timeline, "actualDisbursementDate", "expectedDisbursementDate")
        or payload.get("disbursementDate"),
        "disbursementDate",
    )
    if disbursement_date is None and disbursement_rows:
        disbursement_date = _date(disbursement_rows[0].get("dueDate"), "dueDate")

    tranches = _parse_tranches(payload, disbursement_rows, principal, disbursement_date)
    schedule: Schedule = SummaryOnly()
    if periods:
        if not tranches:
            raise InvalidInputError("missing disbursement date", {"loanId": payload.get("id")})
        schedule = AuthoritativeSchedule(periods=tuple(periods))

    currency = payload.get("currency")
    if not isinstance(currency, Mapping):
        currency = {"code": currency}
    return LoanData(
        principal=principal,
        schedule=schedule,
        disbursement_tranches=tranches,
        charges=_parse_charges(payload.get("charges") or []),
        net_disbursal_amount=_decimal(payload.get("netDisbursalAmount"), "netDisbursalAmount"),
        repayment_frequency=parse_frequency(
            _first(payload, "repaymentFrequencyType", "repaymentFrequency")
        ),
        repayment_every=_int(payload.get("repaymentEvery"), "repaymentEvery") or 1,
        number_of_repayments=_int(payload.get("numberOfRepayments"), "numberOfRepayments"),
        term_in_months=_parse_term_in_months(payload),
        emi_amount=_decimal(_first(payload, "emiAmount", "fixedEmiAmount"), "emiAmount"),
        annual_interest_rate=_decimal(payload.get("annualInterestRate"), "annualInterestRate"),
        disbursement_date=disbursement_date,
        currency_code=_first(currency, "code") or payload.get("currencyCode"),
        loan_id=_int(payload.get("id"), "id"),
    )

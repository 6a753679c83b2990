"""Cash-flow construction for the EIR engine.

This module turns a loan's disbursement tranches, repayment periods and
charges into a single chronological sequence of signed ``CashFlowEntry``
values, seen from the lender's side. It also builds the synthetic
equal-installment timeline used when the loan has no per-period schedule.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .data_models import (
    CashFlowEntry,
    Charge,
    ChargeTiming,
    DisbursementTranche,
    RepaymentFrequency,
    RepaymentPeriod,
)
from .utils import add_months


def merge_cash_flows(entries: Iterable[CashFlowEntry]) -> List[CashFlowEntry]:
    """Sum entries sharing a date and return them sorted by date."""
    mapping: Dict[date, Decimal] = {}
    for entry in entries:
        mapping[entry.date] = mapping.get(entry.date, Decimal("0")) + entry.amount
    return [CashFlowEntry(date=d, amount=mapping[d]) for d in sorted(mapping)]


def sign_changes(entries: Sequence[CashFlowEntry]) -> int:
    """Count sign changes along the series, ignoring zero amounts."""
    signs = [1 if e.amount > 0 else -1 for e in entries if e.amount != 0]
    return sum(1 for a, b in zip(signs, signs[1:]) if a != b)


def net_disbursement(entries: Iterable[CashFlowEntry]) -> Decimal:
    """Return the total amount paid out by the lender (a positive number)."""
    return -sum((e.amount for e in entries if e.amount < 0), Decimal("0"))


def _assign_upfront_charges(
    tranches: List[DisbursementTranche], charges: Iterable[Charge]
) -> Tuple[Dict[int, Decimal], List[Charge]]:
    """Match each upfront charge to the tranche it is deducted from.

    A charge is netted against the earliest tranche dated on or after its
    effective date; an undated charge goes against the first tranche. Charges
    dated after every tranche cannot be netted and are returned separately.
    """
    deductions: Dict[int, Decimal] = {}
    unmatched: List[Charge] = []
    for charge in charges:
        if charge.timing is not ChargeTiming.UPFRONT:
            continue
        index: Optional[int] = 0
        if charge.effective_date is not None:
            index = next(
                (i for i, t in enumerate(tranches) if t.date >= charge.effective_date),
                None,
            )
        if index is None:
            unmatched.append(charge)
            continue
        deductions[index] = deductions.get(index, Decimal("0")) + charge.amount
    return deductions, unmatched


def disbursement_cash_flows(
    tranches: Iterable[DisbursementTranche], charges: Iterable[Charge] = ()
) -> List[CashFlowEntry]:
    """Return one outflow per tranche, net of the upfront charges deducted from it."""
    tranches_sorted = sorted(tranches, key=lambda t: t.date)
    deductions, _ = _assign_upfront_charges(tranches_sorted, charges)
    return [
        CashFlowEntry(date=t.date, amount=-(t.principal_amount - deductions.get(i, Decimal("0"))))
        for i, t in enumerate(tranches_sorted)
    ]


def build_cash_flows(
    tranches: Iterable[DisbursementTranche],
    periods: Iterable[RepaymentPeriod],
    charges: Iterable[Charge] = (),
) -> List[CashFlowEntry]:
    """Build the merged, date-ordered cash-flow sequence for a loan.

    Parameters
    ----------
    tranches:
        Disbursements. Each contributes ``-principal_amount`` at its date,
        reduced by the upfront charges netted against it.
    periods:
        Repayment schedule rows. Rows with ``period_number > 0`` contribute
        their total due at ``due_date``; rows totalling zero are dropped since
        they cannot move the rate.
    charges:
        Upfront charges are netted against disbursements; ongoing and
        periodic charges become separate inflows at their effective date.

    Returns
    -------
    List[CashFlowEntry]
        Entries sorted ascending by date with at most one entry per date.
        Empty when there are no tranches or no repayment periods.
    """
    tranches_sorted = sorted(tranches, key=lambda t: t.date)
    repayments = [p for p in periods if p.period_number > 0]
    if not tranches_sorted or not repayments:
        return []
    charges = list(charges)

    entries = disbursement_cash_flows(tranches_sorted, charges)
    _, unmatched = _assign_upfront_charges(tranches_sorted, charges)
    for charge in unmatched:
        entries.append(CashFlowEntry(date=charge.effective_date, amount=charge.amount))

    for period in repayments:
        total = period.total_due
        if total != 0:
            entries.append(CashFlowEntry(date=period.due_date, amount=total))

    for charge in charges:
        if charge.timing is ChargeTiming.UPFRONT or charge.effective_date is None:
            continue
        entries.append(CashFlowEntry(date=charge.effective_date, amount=charge.amount))

    return merge_cash_flows(entries)


def installment_dates(
    anchor: date, count: int, frequency: RepaymentFrequency, every: int = 1
) -> List[date]:
    """Return ``count`` due dates stepping from ``anchor`` by the loan frequency.

    The anchor itself (the disbursement date) is not included.
    """
    every = max(every, 1)
    dates: List[date] = []
    for k in range(1, count + 1):
        if frequency is RepaymentFrequency.MONTHS:
            dates.append(add_months(anchor, k * every))
        elif frequency is RepaymentFrequency.YEARS:
            dates.append(add_months(anchor, 12 * k * every))
        elif frequency is RepaymentFrequency.WEEKS:
            dates.append(anchor + timedelta(weeks=k * every))
        else:
            dates.append(anchor + timedelta(days=k * every))
    return dates


def build_installment_cash_flows(
    anchor: date,
    disbursed: Decimal,
    installment: Decimal,
    count: int,
    frequency: RepaymentFrequency = RepaymentFrequency.MONTHS,
    every: int = 1,
) -> List[CashFlowEntry]:
    """Build the synthetic timeline of the fallback method.

    One outflow of ``disbursed`` at ``anchor`` followed by ``count`` equal
    installments at the loan's repayment frequency.
    """
    entries = [CashFlowEntry(date=anchor, amount=-disbursed)]
    entries.extend(
        CashFlowEntry(date=d, amount=installment)
        for d in installment_dates(anchor, count, frequency, every)
    )
    return merge_cash_flows(entries)

"""Shared builders for EIR engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

import pytest

from loan_eir.data_models import (
    AuthoritativeSchedule,
    Charge,
    DisbursementTranche,
    LoanData,
    RepaymentPeriod,
)
from loan_eir.utils import add_months


def monthly_periods(start: date, count: int, installment: Decimal) -> List[RepaymentPeriod]:
    """Equal installments (booked as principal) due monthly after ``start``."""
    return [
        RepaymentPeriod(period_number=k, due_date=add_months(start, k), principal_due=installment)
        for k in range(1, count + 1)
    ]


def scheduled_loan(
    principal: str,
    installment: str,
    count: int,
    start: date = date(2023, 1, 15),
    charges: Optional[List[Charge]] = None,
) -> LoanData:
    amount = Decimal(principal)
    periods = [RepaymentPeriod(period_number=0, due_date=start)]
    periods += monthly_periods(start, count, Decimal(installment))
    return LoanData(
        principal=amount,
        schedule=AuthoritativeSchedule(periods=tuple(periods)),
        disbursement_tranches=[DisbursementTranche(date=start, principal_amount=amount)],
        charges=charges or [],
        number_of_repayments=count,
        loan_id=42,
    )


@pytest.fixture
def fineract_loan() -> dict:
    """A loan record shaped like the banking API's loan resource."""
    return {
        "id": 7,
        "principal": 50000,
        "netDisbursalAmount": 47500,
        "annualInterestRate": 24,
        "numberOfRepayments": 6,
        "termFrequency": 6,
        "termPeriodFrequencyType": {"id": 2, "code": "termFrequency.periodFrequencyType.months", "value": "Months"},
        "repaymentEvery": 1,
        "repaymentFrequencyType": {"id": 2, "code": "repaymentFrequency.periodFrequencyType.months", "value": "Months"},
        "currency": {"code": "INR", "name": "Indian Rupee"},
        "timeline": {"actualDisbursementDate": [2024, 1, 10]},
        "charges": [
            {
                "name": "Processing fee",
                "amount": 2500,
                "chargeTimeType": {"id": 1, "code": "chargeTimeType.disbursement", "value": "Disbursement"},
                "dueDate": [2024, 1, 10],
            },
            {
                "name": "Late fee",
                "amount": 300,
                "chargeTimeType": {"id": 9, "code": "chargeTimeType.overdueInstallment", "value": "Overdue Fees"},
            },
        ],
        "repaymentSchedule": {
            "periods": [
                {"dueDate": [2024, 1, 10], "principalDisbursed": 50000, "principalLoanBalanceOutstanding": 50000},
                *[
                    {
                        "period": k,
                        "dueDate": [2024 + (k // 12), (k % 12) + 1, 10],
                        "principalDue": 8000,
                        "interestDue": 900,
                        "feeChargesDue": 0,
                        "penaltyChargesDue": 0,
                        "totalDueForPeriod": 8900,
                    }
                    for k in range(1, 7)
                ],
            ]
        },
    }

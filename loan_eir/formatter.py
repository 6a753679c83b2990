"""Output helpers for the EIR command-line interface.

This module renders a calculation result and a cash-flow timeline as plain
text. Amounts are printed as bare numbers with two decimals; currency
formatting is left to whatever displays the result to borrowers.
"""

from __future__ import annotations

from typing import Iterable

from .data_models import CashFlowEntry, EIRCalculationResult


def print_result(result: EIRCalculationResult) -> None:
    """Print an EIR result in a human-readable format."""
    print("Effective Interest Rate")
    print("-" * 72)
    if result.loan_id is not None:
        print(f"Loan               : {result.loan_id}")
    print(f"Status             : {result.status.value}")
    if result.reason:
        print(f"Reason             : {result.reason}")
    print(f"EIR                : {result.effective_interest_rate:.2f}%")
    print(f"Method             : {result.method.value} ({result.formula_used})")
    print(f"Provenance         : {result.provenance.value}")
    print(f"Day count          : {result.convention.value}")
    print(f"Principal          : {result.principal_amount:.2f} {result.currency_code or ''}".rstrip())
    print(f"Net disbursement   : {result.net_disbursement_amount:.2f}")
    emi_note = f" ({result.emi_source.value.lower()})" if result.emi_source else ""
    print(f"EMI                : {result.emi_amount:.2f}{emi_note}")
    print(f"Tenure (periods)   : {result.tenure_in_periods}")
    print(f"Calculation date   : {result.calculation_date.isoformat()}")
    for warning in result.warnings:
        print(f"Note               : {warning}")
    print("-" * 72)


def print_cash_flows(entries: Iterable[CashFlowEntry]) -> None:
    """Print a cash-flow timeline as a simple table with a running total."""
    print("\t".join(["Date", "Amount", "Cumulative"]))
    running = 0
    for entry in entries:
        running += entry.amount
        print("\t".join([entry.date.isoformat(), f"{entry.amount:.2f}", f"{running:.2f}"]))

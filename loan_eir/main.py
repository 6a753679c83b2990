"""Command-line interface for the EIR engine.

This module uses the ``click`` library to implement a multi-command
interface. Users can calculate the Effective Interest Rate of a loan record
stored as JSON, inspect the cash-flow timeline the calculation is based on,
or price a loan from its summary terms alone with the fallback method.
Results can be printed to the terminal or exported to a JSON file.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .cashflows import build_cash_flows
from .data_models import AuthoritativeSchedule, EIRCalculationResult, LoanData
from .day_count import DEFAULT_DAY_COUNT, DayCountConvention
from .engine import EIRCalculator
from .exceptions import InvalidInputError
from .formatter import print_cash_flows, print_result
from .payload import loan_data_from_dict, parse_frequency
from .utils import parse_date, to_decimal

CONVENTION_CHOICE = click.Choice([c.value for c in DayCountConvention])


def load_loan(path: Path) -> LoanData:
    """Read a loan record from a JSON file and convert it to ``LoanData``."""
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise click.ClickException(f"Cannot read loan record {path}: {exc}")
    try:
        return loan_data_from_dict(payload)
    except InvalidInputError as exc:
        raise click.ClickException(str(exc))


def parse_calculation_date(value: Optional[str]) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """Parse a numeric option, accepting ``k``/``m`` suffixes (``"50k"``)."""
    if value is None:
        return None
    text = value.strip().lower().replace(",", "")
    factor = 1
    if text.endswith("k"):
        factor, text = 1_000, text[:-1]
    elif text.endswith("m"):
        factor, text = 1_000_000, text[:-1]
    try:
        return to_decimal(text) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def export_to_json(path: Path, result: EIRCalculationResult) -> None:
    """Export a result to a JSON file."""
    data: Dict[str, Any] = {"eirCalculation": result.to_dict()}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def emit(result: EIRCalculationResult, output: Optional[str]) -> None:
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Result export must use .json extension")
        export_to_json(path, result)
        click.echo(f"Result exported to {path}")
    else:
        print_result(result)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log calculation steps to stderr")
def cli(verbose: bool) -> None:
    """Effective Interest Rate calculator for Key Fact Statements."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("loan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--convention", "convention", type=CONVENTION_CHOICE, default=DEFAULT_DAY_COUNT.value, help="Day-count convention")
@click.option("--date", "calculation_date", help="Calculation date (YYYY-MM-DD); defaults to today")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def calculate(loan_file: Path, convention: str, calculation_date: Optional[str], output: Optional[str]) -> None:
    """Calculate the EIR of the loan record in LOAN_FILE."""
    loan = load_loan(loan_file)
    calculator = EIRCalculator(DayCountConvention(convention))
    result = calculator.calculate(loan, parse_calculation_date(calculation_date))
    emit(result, output)
    if not result.succeeded:
        sys.exit(1)


@cli.command()
@click.argument("loan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def cashflows(loan_file: Path) -> None:
    """Print the cash-flow timeline built from LOAN_FILE's repayment schedule."""
    loan = load_loan(loan_file)
    if not isinstance(loan.schedule, AuthoritativeSchedule):
        raise click.ClickException("Loan record has no repayment schedule")
    entries = build_cash_flows(loan.disbursement_tranches, loan.schedule.periods, loan.charges)
    if not entries:
        raise click.ClickException("insufficient cash flow data")
    print_cash_flows(entries)


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Loan amount")
@click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")
@click.option("--net-disbursal", "net_disbursal", help="Amount actually paid out after upfront charges")
@click.option("--rate", "-r", "rate", type=float, help="Nominal annual interest rate (percent)")
@click.option("--emi", "emi", help="Installment amount, if known")
@click.option("--repayments", "repayments", type=int, help="Number of repayments (defaults from the term)")
@click.option("--frequency", "frequency", type=click.Choice(["days", "weeks", "months", "years"]), default="months", help="Repayment frequency")
@click.option("--start-date", "-s", "start_date", help="Disbursement date (YYYY-MM-DD)")
@click.option("--convention", "convention", type=CONVENTION_CHOICE, default=DEFAULT_DAY_COUNT.value, help="Day-count convention")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def quick(
    principal: str,
    term: int,
    net_disbursal: Optional[str],
    rate: Optional[float],
    emi: Optional[str],
    repayments: Optional[int],
    frequency: str,
    start_date: Optional[str],
    convention: str,
    output: Optional[str],
) -> None:
    """Estimate the EIR from summary terms with the fallback method."""
    loan = LoanData(
        principal=parse_amount(principal),
        net_disbursal_amount=parse_amount(net_disbursal),
        repayment_frequency=parse_frequency(frequency),
        number_of_repayments=repayments,
        term_in_months=term,
        emi_amount=parse_amount(emi),
        annual_interest_rate=to_decimal(rate),
        disbursement_date=parse_calculation_date(start_date),
    )
    result = EIRCalculator(DayCountConvention(convention)).calculate(loan)
    emit(result, output)
    if not result.succeeded:
        sys.exit(1)


if __name__ == "__main__":
    cli()

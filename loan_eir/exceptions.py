"""Exceptions raised by the EIR engine.

Only the payload boundary lets these escape to callers. ``EIRCalculator``
catches every one of them and turns it into a ``FAILED`` result.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EIRError(Exception):
    """Base exception for all EIR engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidInputError(EIRError, ValueError):
    """Raised when loan data is missing something the calculation needs."""


class DegenerateCashFlowError(EIRError):
    """Raised when a cash-flow series cannot have a rate of return.

    That is the case for fewer than two dated entries, for a series without
    both an outflow and an inflow, or for one that spans no time at all.
    """

    def __init__(self, message: str, entries: int = 0):
        super().__init__(message, {"entries": entries})


class NonConvergenceError(EIRError):
    """Raised when the solver exhausts its budget without finding a root."""

    def __init__(self, message: str, iterations: int = 0, last_rate: Optional[float] = None):
        details: Dict[str, Any] = {"iterations": iterations}
        if last_rate is not None:
            details["last_rate"] = last_rate
        super().__init__(message, details)


class ApproximateResultWarning(UserWarning):
    """Marks a result computed with the fallback method or an approximation.

    Not a failure. The calculator records the message in
    ``EIRCalculationResult.warnings`` instead of raising it.
    """

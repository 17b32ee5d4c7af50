"""Exception types raised by the score-test machinery."""

from __future__ import annotations


class CVEKError(Exception):
    """Base class for all errors raised by cvek."""


class DimensionError(CVEKError, ValueError):
    """Inputs disagree on the number of observations or matrix shape."""


class NumericalInstabilityError(CVEKError, ArithmeticError):
    """A matrix or statistic could not be computed to a finite value."""


class UnsupportedTestError(CVEKError, ValueError):
    """The requested calibration procedure is not known."""

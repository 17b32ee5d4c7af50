"""Core numerical machinery for kernel score tests."""

from .errors import CVEKError, DimensionError, NumericalInstabilityError, UnsupportedTestError
from .info import compute_info, efficient_information, information_matrix
from .linalg import DEFAULT_RCOND, ginv
from .pvalue import empirical_pvalue, scaled_chi2_params, scaled_chi2_pvalue
from .result import ScoreTestResult
from .stat import compute_stat, null_covariance, projection_matrix

__all__ = [
    "CVEKError",
    "DEFAULT_RCOND",
    "DimensionError",
    "NumericalInstabilityError",
    "ScoreTestResult",
    "UnsupportedTestError",
    "compute_info",
    "compute_stat",
    "efficient_information",
    "empirical_pvalue",
    "ginv",
    "information_matrix",
    "null_covariance",
    "projection_matrix",
    "scaled_chi2_params",
    "scaled_chi2_pvalue",
]

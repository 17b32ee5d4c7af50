"""
cvek: Score Tests for Interactions in Kernel-Ensemble Regression

Tests whether an additional, more flexible kernel term (typically a
nonlinear interaction) explains variance beyond a fitted null model made of
fixed effects plus an ensemble of kernel random effects.

Features
--------
- Variance-component score statistic from the fitted null model
- Asymptotic p-values via a scaled chi-square fitted to the efficient
  information
- Parametric-bootstrap p-values with independent, reproducible random
  streams and optional thread parallelism
- SVD-based generalized inverses throughout, tolerating rank deficiency

Quick Start
-----------
>>> import cvek
>>> result = cvek.testing(Y, X, [K1, K2], K_int,
...                       estimator=cvek.AverageEnsembleEstimator(),
...                       test="asym", lambda_=1.0)
>>> print(result.pvalue)

Testing several candidate kernels against one null fit:

>>> st = cvek.ScoreTest(test="boot", n_bootstrap=500, lambda_=1.0)
>>> st.fit(Y, X, [K1, K2], cvek.AverageEnsembleEstimator())
>>> pvalues = [st.test(K).pvalue for K in candidates]
"""

__version__ = "0.1.0"

# Main API
from .model import (
    AverageEnsembleEstimator,
    InteractionTestResult,
    ScoreTest,
    TestType,
    test_asym,
    test_boot,
)

# Functional API
from . import tl
from .tl import testing

# Utilities (for advanced users building custom pipelines)
from .core import (
    DimensionError,
    NumericalInstabilityError,
    UnsupportedTestError,
    compute_info,
    compute_stat,
    ginv,
)
from .model.null import Estimator, NullModelFit, estimate_sigma2
from .utils import setup_logging, teardown_logging

__all__ = [
    "__version__",
    # Main API
    "ScoreTest",
    "InteractionTestResult",
    "TestType",
    "testing",
    "test_asym",
    "test_boot",
    # Functional submodule
    "tl",
    # Null model
    "AverageEnsembleEstimator",
    "Estimator",
    "NullModelFit",
    "estimate_sigma2",
    # Utilities
    "compute_info",
    "compute_stat",
    "ginv",
    "setup_logging",
    "teardown_logging",
    # Errors
    "DimensionError",
    "NumericalInstabilityError",
    "UnsupportedTestError",
]

"""High-level model interface for the kernel interaction score test."""

from .calibrate import (
    AsymptoticCalibrator,
    BootstrapCalibrator,
    Calibrator,
    TestType,
    make_calibrator,
    test_asym,
    test_boot,
)
from .null import (
    AverageEnsembleEstimator,
    Estimator,
    FittedQuantities,
    NoiseEstimator,
    NullModelFit,
    estimate_sigma2,
    fit_null_model,
)
from .score import InteractionTestResult, ScoreTest

__all__ = [
    # Score test
    "ScoreTest",
    "InteractionTestResult",
    # Calibration
    "TestType",
    "Calibrator",
    "AsymptoticCalibrator",
    "BootstrapCalibrator",
    "make_calibrator",
    "test_asym",
    "test_boot",
    # Null model
    "Estimator",
    "NoiseEstimator",
    "NullModelFit",
    "FittedQuantities",
    "AverageEnsembleEstimator",
    "estimate_sigma2",
    "fit_null_model",
]

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pytest
from scipy.spatial.distance import cdist

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvek.model.null import AverageEnsembleEstimator, estimate_sigma2  # noqa: E402
from cvek.preprocessing.design import ensure_intercept  # noqa: E402


def rbf_kernel(x: np.ndarray, lengthscale: float = 1.0) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64).reshape(len(x), -1)
    return np.exp(-cdist(x, x, "sqeuclidean") / (2 * lengthscale ** 2))


def linear_kernel(z: np.ndarray) -> np.ndarray:
    z = np.asarray(z, dtype=np.float64).reshape(len(z), -1)
    return z @ z.T


@dataclass
class SimData:
    Y: np.ndarray
    X: np.ndarray
    K_list: list[np.ndarray]
    K_int_true: np.ndarray
    K_int_null: np.ndarray
    lam: float


def simulate(
    rng: np.random.Generator,
    n: int = 50,
    interaction: float = 0.0,
    lam: float = 1.0,
    sigma: float = 1.0,
) -> SimData:
    """Additive kernel model in x1, x2 with an optional x1·x2 interaction.

    The random effect is drawn from N(0, τ K_ens) with τ = σ²/λ, so the null
    model used by the tests is correctly specified when ``interaction=0``.
    """
    x = rng.standard_normal((n, 4))
    x1, x2, x3, x4 = x.T
    K_list = [rbf_kernel(x1), rbf_kernel(x2)]
    K_ens = (K_list[0] + K_list[1]) / 2

    tau = sigma ** 2 / lam
    g = rng.multivariate_normal(np.zeros(n), tau * K_ens, method="eigh")
    Y = (
        1.0 + 0.5 * x1 - 0.5 * x2 + g
        + interaction * x1 * x2
        + sigma * rng.standard_normal(n)
    )
    return SimData(
        Y=Y,
        X=np.column_stack([x1, x2]),
        K_list=K_list,
        K_int_true=linear_kernel(x1 * x2),
        K_int_null=linear_kernel(x3 * x4),
        lam=lam,
    )


def fitted_quantities(data: SimData) -> dict:
    """Keyword arguments for test_asym/test_boot from the fitted null model."""
    n = len(data.Y)
    X = ensure_intercept(data.X, n)
    fit = AverageEnsembleEstimator().estimate(data.Y, X, data.K_list, lambda_=data.lam)
    y_fixed = X @ fit.beta
    sigma2 = estimate_sigma2(data.Y, X, fit.lambda_, y_fixed, fit.alpha, fit.K_ens)
    return {
        "Y": data.Y,
        "X": X,
        "y_fixed": y_fixed,
        "alpha0": fit.alpha,
        "K_ens": fit.K_ens,
        "sigma2_hat": sigma2,
        "tau_hat": sigma2 / fit.lambda_,
    }


class RecordingEstimator(AverageEnsembleEstimator):
    """AverageEnsembleEstimator that remembers how it was called."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[dict] = []

    def estimate(self, Y, X, K_list, **kwargs):
        self.calls.append({"Y": Y, "X": X, "K_list": K_list, **kwargs})
        return super().estimate(Y, X, K_list, **kwargs)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def null_data(rng: np.random.Generator) -> SimData:
    return simulate(rng, n=50, interaction=0.0)


@pytest.fixture
def alt_data(rng: np.random.Generator) -> SimData:
    return simulate(rng, n=50, interaction=1.5)


@pytest.fixture
def null_fitted(null_data: SimData) -> dict:
    return fitted_quantities(null_data)


@pytest.fixture
def recording_estimator() -> RecordingEstimator:
    return RecordingEstimator()


@pytest.fixture
def make_data():
    return simulate


@pytest.fixture
def make_fitted():
    return fitted_quantities


@pytest.fixture
def kernels():
    return {"rbf": rbf_kernel, "linear": linear_kernel}

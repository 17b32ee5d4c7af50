"""
Null-model quantities consumed by the score tests.

The ensemble weights and the tuning parameter are produced by an external
estimator implementing :class:`Estimator`. This module defines that
contract, the bundle of fitted quantities handed to the calibrators, the
closed-form kernel-ridge fit at a fixed ensemble kernel, and the default
noise-variance estimator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from ..core.errors import DimensionError, NumericalInstabilityError
from ..core.linalg import ginv
from ..preprocessing.design import MatrixLike, as_kernel, as_kernel_list, as_vector


def _frozen(a: NDArray[np.floating]) -> NDArray[np.float64]:
    """Read-only float view; the caller's array stays writeable."""
    view = np.asarray(a, dtype=np.float64).view()
    view.flags.writeable = False
    return view


@dataclass(frozen=True)
class NullModelFit:
    """Output of an :class:`Estimator`."""

    lambda_: float
    """Selected tuning parameter (noise-to-signal ratio σ²/τ)."""

    beta: NDArray[np.floating]
    """Fixed-effect coefficients, shape (p,)."""

    alpha: NDArray[np.floating]
    """Random-effect coefficients, shape (n,)."""

    K_ens: NDArray[np.floating]
    """Ensemble kernel matrix, shape (n, n)."""

    u_hat: NDArray[np.floating]
    """Weights of the kernels in the library, shape (n_kernels,)."""


class Estimator(Protocol):
    """Fits the null model: fixed effects plus an ensemble of kernels."""

    def estimate(
        self,
        Y: NDArray[np.floating],
        X: NDArray[np.floating],
        K_list: list[NDArray[np.floating]],
        *,
        mode: str,
        strategy: str,
        beta_exp: float,
        lambda_: NDArray[np.floating],
    ) -> NullModelFit:
        ...


class NoiseEstimator(Protocol):
    """Estimates σ² from a fitted null model."""

    def __call__(
        self,
        Y: NDArray[np.floating],
        X: NDArray[np.floating],
        lambda_: float,
        y_fixed: NDArray[np.floating],
        alpha0: NDArray[np.floating],
        K_ens: NDArray[np.floating],
    ) -> float:
        ...


@dataclass(frozen=True)
class FittedQuantities:
    """
    Everything a calibrator needs about the null fit.

    Arrays are stored as read-only views so the asymptotic and bootstrap
    calibrators, and repeated ``test`` calls, all see the same values.
    """

    Y: NDArray[np.float64]
    X: NDArray[np.float64]
    y_fixed: NDArray[np.float64]
    alpha0: NDArray[np.float64]
    K_ens: NDArray[np.float64]
    sigma2_hat: float
    tau_hat: float

    def __post_init__(self):
        n = as_vector(self.Y, "Y").shape[0]
        for name in ("Y", "y_fixed", "alpha0"):
            arr = as_vector(getattr(self, name), name, n)
            object.__setattr__(self, name, _frozen(arr))
        X = np.asarray(self.X, dtype=np.float64)
        if X.ndim != 2 or X.shape[0] != n:
            raise DimensionError(f"X must have shape ({n}, p), got {X.shape}")
        object.__setattr__(self, "X", _frozen(X))
        object.__setattr__(self, "K_ens", _frozen(as_kernel(self.K_ens, "K_ens", n)))
        for name in ("sigma2_hat", "tau_hat"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value <= 0:
                raise ValueError(
                    f"{name} must be a positive finite number, got {value}"
                )
            object.__setattr__(self, name, value)

    @property
    def n_obs(self) -> int:
        return self.Y.shape[0]

    @property
    def mean_Y(self) -> NDArray[np.float64]:
        """Fitted null mean ``K_ens α0 + y_fixed``."""
        return self.K_ens @ self.alpha0 + self.y_fixed


def fit_null_model(
    Y: NDArray[np.floating],
    X: NDArray[np.floating],
    K_ens: NDArray[np.floating],
    lambda_: float,
    rcond: float | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Kernel-ridge fit of the null model at a fixed kernel and tuning parameter.

    With ``V = K_ens + λ I``::

        β = (Xᵀ V⁻¹ X)⁻ Xᵀ V⁻¹ Y
        α = V⁻¹ (Y − X β)

    Returns
    -------
    (beta, alpha) : tuple of ndarray
        Shapes (p,) and (n,).
    """
    n = Y.shape[0]
    V_inv = ginv(K_ens + lambda_ * np.eye(n), rcond=rcond)
    V_inv_X = V_inv @ X
    beta = ginv(X.T @ V_inv_X, rcond=rcond) @ (V_inv_X.T @ Y)
    alpha = V_inv @ (Y - X @ beta)
    return beta, alpha


def estimate_sigma2(
    Y: NDArray[np.floating],
    X: NDArray[np.floating],
    lambda_: float,
    y_fixed: NDArray[np.floating],
    alpha0: NDArray[np.floating],
    K_ens: NDArray[np.floating],
) -> float:
    """
    Noise variance from the residuals of the null fit.

    Divides the residual sum of squares by the effective residual degrees
    of freedom ``tr(I − A)``, where ``A`` is the hat matrix of the
    kernel-ridge fit::

        V   = K_ens + λ I
        P_X = X (Xᵀ V⁻¹ X)⁻ Xᵀ V⁻¹
        A   = P_X + K_ens V⁻¹ (I − P_X)

    Raises
    ------
    NumericalInstabilityError
        If the degrees of freedom or the estimate are not positive.
    """
    n = K_ens.shape[0]
    I_n = np.eye(n)
    V_inv = ginv(K_ens + lambda_ * I_n)
    V_inv_X = V_inv @ X
    P_X = X @ ginv(X.T @ V_inv_X) @ V_inv_X.T
    A = P_X + K_ens @ V_inv @ (I_n - P_X)

    df_resid = n - float(np.trace(A))
    if not np.isfinite(df_resid) or df_resid <= 0:
        raise NumericalInstabilityError(
            f"non-positive residual degrees of freedom ({df_resid:.3g}); "
            f"lambda={lambda_:.3g} leaves no residual information"
        )

    resid = Y - y_fixed - K_ens @ alpha0
    sigma2_hat = float(resid @ resid) / df_resid
    if not np.isfinite(sigma2_hat) or sigma2_hat <= 0:
        raise NumericalInstabilityError(
            f"noise variance estimate must be positive, got {sigma2_hat}"
        )
    return sigma2_hat


class AverageEnsembleEstimator:
    """
    Reference estimator with fixed ensemble weights and a single lambda.

    The ensemble kernel is ``Σ u_k K_k`` with ``u`` normalized to sum to
    one (uniform when ``weights`` is None); the null model is then fitted by
    :func:`fit_null_model`. No tuning is performed, so ``lambda_`` must hold
    exactly one value, and ``mode``/``strategy``/``beta_exp`` are ignored.

    Parameters
    ----------
    weights : array-like of shape (n_kernels,), optional
        Non-negative kernel weights.
    rcond : float, optional
        Cut-off passed to :func:`~cvek.core.linalg.ginv`.
    """

    def __init__(
        self,
        weights: NDArray[np.floating] | None = None,
        rcond: float | None = None,
    ):
        if weights is not None:
            weights = np.asarray(weights, dtype=np.float64)
            if weights.ndim != 1 or len(weights) == 0:
                raise ValueError(f"weights must be a non-empty vector, got shape {weights.shape}")
            if np.any(weights < 0) or weights.sum() <= 0:
                raise ValueError("weights must be non-negative with a positive sum")
        self.weights = weights
        self.rcond = rcond

    def estimate(
        self,
        Y: NDArray[np.floating],
        X: NDArray[np.floating],
        K_list: list[MatrixLike],
        *,
        mode: str = "loocv",
        strategy: str = "avg",
        beta_exp: float = 1.0,
        lambda_: NDArray[np.floating] | float = 1.0,
    ) -> NullModelFit:
        Y = as_vector(Y, "Y")
        n = Y.shape[0]
        K_list = as_kernel_list(K_list, n)

        grid = np.atleast_1d(np.asarray(lambda_, dtype=np.float64))
        if grid.shape[0] != 1:
            raise ValueError(
                f"AverageEnsembleEstimator fits a single lambda, got a grid of "
                f"{grid.shape[0]} values; use a tuning estimator to select one"
            )
        lam = float(grid[0])

        if self.weights is None:
            u_hat = np.full(len(K_list), 1.0 / len(K_list))
        else:
            if len(self.weights) != len(K_list):
                raise DimensionError(
                    f"weights has length {len(self.weights)}, "
                    f"K_list has {len(K_list)} kernels"
                )
            u_hat = self.weights / self.weights.sum()

        K_ens = sum(u * K for u, K in zip(u_hat, K_list))
        beta, alpha = fit_null_model(Y, X, K_ens, lam, rcond=self.rcond)
        logger.debug(f"Average ensemble of {len(K_list)} kernels fitted at lambda={lam:.4g}")
        return NullModelFit(lambda_=lam, beta=beta, alpha=alpha, K_ens=K_ens, u_hat=u_hat)

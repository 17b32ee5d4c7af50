"""
Score statistic for an additional kernel term.

Under the null model

    Y = X β + h(Z) + ε,   h ~ GP(0, τ K_ens),   ε ~ N(0, σ² I)

the marginal covariance is ``V0 = τ K_ens + σ² I``. Adding a candidate term
with covariance ``δ τ K_int`` gives the score for δ at δ = 0:

    T = τ/2 · rᵀ V0⁻¹ K_int V0⁻¹ r,   r = Y − X β̂

The same normalization is used by the observed and the resampled statistics
and by the first moment ``τ tr(K_int P0) / 2`` of the asymptotic calibrator.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ..preprocessing.design import as_kernel, as_vector
from .errors import NumericalInstabilityError
from .linalg import ginv


def null_covariance(
    K_ens: NDArray[np.floating],
    sigma2_hat: float,
    tau_hat: float,
) -> NDArray[np.float64]:
    """Null-model marginal covariance ``V0 = tau·K_ens + sigma2·I``."""
    K_ens = np.asarray(K_ens, dtype=np.float64)
    V0 = tau_hat * K_ens
    V0[np.diag_indices_from(V0)] += sigma2_hat
    return V0


def projection_matrix(
    V0_inv: NDArray[np.floating],
    X: NDArray[np.floating],
    rcond: float | None = None,
) -> NDArray[np.float64]:
    """
    Residual-forming matrix of the null model.

    ``P0 = V0⁻¹ − V0⁻¹ X (Xᵀ V0⁻¹ X)⁻ Xᵀ V0⁻¹``
    """
    V0_inv_X = V0_inv @ X
    XtVX_inv = ginv(X.T @ V0_inv_X, rcond=rcond)
    P0 = V0_inv - V0_inv_X @ XtVX_inv @ V0_inv_X.T
    # Symmetrize: rounding leaves asymmetry at the 1e-16 level
    return (P0 + P0.T) / 2


def score_quadratic_form(
    residuals: NDArray[np.floating],
    K_int: NDArray[np.floating],
    V0_inv: NDArray[np.floating],
    tau_hat: float,
) -> NDArray[np.float64] | float:
    """
    Evaluate ``tau/2 · rᵀ V0⁻¹ K_int V0⁻¹ r`` for one or many residuals.

    Parameters
    ----------
    residuals : ndarray of shape (n,) or (B, n)
        Null-model residuals ``Y − y_fixed``; one per row when 2D.
    K_int : ndarray of shape (n, n)
    V0_inv : ndarray of shape (n, n)
        Generalized inverse of the null covariance (symmetric).
    tau_hat : float

    Returns
    -------
    float for 1D input, ndarray of shape (B,) for 2D input.
    """
    R = np.atleast_2d(residuals)
    W = R @ V0_inv  # rows are (V0⁻¹ r)ᵀ since V0⁻¹ is symmetric
    stats = 0.5 * tau_hat * np.einsum("bi,ij,bj->b", W, K_int, W)
    if not np.all(np.isfinite(stats)):
        raise NumericalInstabilityError("score statistic is not finite")
    if np.ndim(residuals) == 1:
        return float(stats[0])
    return stats


def compute_stat(
    Y: NDArray[np.floating],
    K_int: NDArray[np.floating],
    y_fixed: NDArray[np.floating],
    K_ens: NDArray[np.floating],
    sigma2_hat: float,
    tau_hat: float,
    rcond: float | None = None,
) -> float:
    """
    Score statistic for the candidate kernel ``K_int``.

    Parameters
    ----------
    Y : array-like of shape (n,)
        Responses.
    K_int : array-like of shape (n, n)
        Kernel matrix under test.
    y_fixed : array-like of shape (n,)
        Fitted fixed effects ``X β̂`` of the null model.
    K_ens : array-like of shape (n, n)
        Ensemble kernel matrix of the null model.
    sigma2_hat, tau_hat : float
        Noise and random-effect variance estimates (both > 0).
    rcond : float, optional
        Cut-off passed to :func:`~cvek.core.linalg.ginv`.

    Returns
    -------
    score : float
    """
    Y = as_vector(Y, "Y")
    n = Y.shape[0]
    y_fixed = as_vector(y_fixed, "y_fixed", n)
    K_int = as_kernel(K_int, "K_int", n)
    K_ens = as_kernel(K_ens, "K_ens", n)
    _check_variances(sigma2_hat, tau_hat)

    V0_inv = ginv(null_covariance(K_ens, sigma2_hat, tau_hat), rcond=rcond)
    return score_quadratic_form(Y - y_fixed, K_int, V0_inv, tau_hat)


def _check_variances(sigma2_hat: float, tau_hat: float) -> None:
    for name, value in (("sigma2_hat", sigma2_hat), ("tau_hat", tau_hat)):
        if not np.isfinite(value) or value <= 0:
            raise ValueError(f"{name} must be a positive finite number, got {value}")

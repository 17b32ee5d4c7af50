"""
Fisher information of the variance components.

For a Gaussian model with covariance ``V(θ)`` the expected information of
the restricted likelihood is ``I[i, j] = tr(P0 ∂V/∂θ_i P0 ∂V/∂θ_j) / 2``.
The tested parameter δ comes first, the nuisance components (σ², τ) after.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .linalg import ginv, trace_product


def information_matrix(
    P0: NDArray[np.floating],
    derivatives: list[NDArray[np.floating]],
) -> NDArray[np.float64]:
    """
    Information matrix for an arbitrary list of covariance derivatives.

    Parameters
    ----------
    P0 : ndarray of shape (n, n)
        Null-model projection matrix.
    derivatives : list of ndarray of shape (n, n)
        ``∂V/∂θ_k`` for each parameter, in output order.

    Returns
    -------
    info : ndarray of shape (k, k)
        Symmetric information matrix.
    """
    # P0 @ M_k is reused by every entry of row and column k
    PM = [P0 @ M for M in derivatives]
    k = len(PM)
    info = np.empty((k, k))
    for i in range(k):
        for j in range(i, k):
            info[i, j] = info[j, i] = 0.5 * trace_product(PM[i], PM[j])
    return info


def compute_info(
    P0: NDArray[np.floating],
    mat_del: NDArray[np.floating],
    mat_sigma2: NDArray[np.floating],
    mat_tau: NDArray[np.floating],
) -> NDArray[np.float64]:
    """
    3×3 information over (δ, σ², τ).

    Parameters
    ----------
    P0 : ndarray of shape (n, n)
    mat_del : ndarray of shape (n, n)
        ``∂V/∂δ = τ K_int``.
    mat_sigma2 : ndarray of shape (n, n)
        ``∂V/∂σ² = I``.
    mat_tau : ndarray of shape (n, n)
        ``∂V/∂τ = K_ens``.
    """
    return information_matrix(P0, [mat_del, mat_sigma2, mat_tau])


def efficient_information(
    info: NDArray[np.floating],
    rcond: float | None = None,
) -> float:
    """
    Information for the first parameter after profiling out the rest.

    Schur complement ``I_00 − I_0n I_nn⁻ I_n0``; the nuisance block is
    inverted with :func:`~cvek.core.linalg.ginv` so a rank-deficient block
    (e.g. ``K_ens`` proportional to the identity) is tolerated.
    """
    info = np.asarray(info, dtype=np.float64)
    if info.shape[0] == 1:
        return float(info[0, 0])
    cross = info[0, 1:]
    nuisance_inv = ginv(info[1:, 1:], rcond=rcond)
    return float(info[0, 0] - cross @ nuisance_inv @ cross)

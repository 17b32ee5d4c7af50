"""
Shared dense linear algebra.

Every inverse in the package goes through :func:`ginv` and shares its
singular value cut-off.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from .errors import NumericalInstabilityError

DEFAULT_RCOND = float(np.sqrt(np.finfo(float).eps))
"""Relative singular value cut-off (same default as MASS::ginv)."""


def ginv(
    A: NDArray[np.floating],
    rcond: float | None = None,
) -> NDArray[np.float64]:
    """
    Moore-Penrose generalized inverse via SVD.

    Parameters
    ----------
    A : ndarray of shape (m, n)
        Matrix to invert. Need not be square or full rank.
    rcond : float, optional
        Singular values ``<= rcond * s_max`` are treated as zero.
        Default: ``sqrt(machine eps)``.

    Returns
    -------
    A_pinv : ndarray of shape (n, m)

    Raises
    ------
    NumericalInstabilityError
        If ``A`` has non-finite entries, the SVD does not converge, or the
        result is not finite.
    """
    A = np.atleast_2d(np.asarray(A, dtype=np.float64))
    if rcond is None:
        rcond = DEFAULT_RCOND
    if rcond < 0:
        raise ValueError(f"rcond must be >= 0, got {rcond}")
    if A.size == 0:
        return np.zeros((A.shape[1], A.shape[0]))
    if not np.all(np.isfinite(A)):
        raise NumericalInstabilityError(
            f"cannot invert a matrix with non-finite entries (shape {A.shape})"
        )

    try:
        U, s, Vt = linalg.svd(A, full_matrices=False, lapack_driver="gesdd")
    except linalg.LinAlgError:
        # gesdd occasionally fails on badly scaled input where gesvd succeeds
        try:
            U, s, Vt = linalg.svd(A, full_matrices=False, lapack_driver="gesvd")
        except linalg.LinAlgError as err:
            raise NumericalInstabilityError(
                f"SVD did not converge for matrix of shape {A.shape}"
            ) from err

    if s.size == 0 or s[0] == 0.0:
        return np.zeros((A.shape[1], A.shape[0]))

    keep = s > rcond * s[0]
    s_inv = np.zeros_like(s)
    s_inv[keep] = 1.0 / s[keep]
    A_pinv = (Vt.T * s_inv) @ U.T

    if not np.all(np.isfinite(A_pinv)):
        raise NumericalInstabilityError(
            f"generalized inverse is not finite (shape {A.shape})"
        )
    return A_pinv


def trace_product(A: NDArray[np.floating], B: NDArray[np.floating]) -> float:
    """tr(A @ B) without forming the product: O(n²) instead of O(n³)."""
    return float(np.sum(A * B.T))

"""
Input coercion for responses, design matrices and kernel matrices.

All helpers return float64 arrays and never modify their input.
"""

from __future__ import annotations

from typing import Union

import numpy as np
from numpy.typing import NDArray
from scipy import sparse

from ..core.errors import DimensionError

MatrixLike = Union[NDArray[np.floating], sparse.spmatrix]


def as_vector(
    y: NDArray[np.floating],
    name: str,
    n: int | None = None,
) -> NDArray[np.float64]:
    """Coerce to a 1D float vector, checking length against ``n``."""
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 2 and 1 in y.shape:
        y = y.ravel()
    if y.ndim != 1:
        raise DimensionError(f"{name} must be a vector, got shape {y.shape}")
    if y.shape[0] == 0:
        raise DimensionError(f"{name} must have at least one observation")
    if n is not None and y.shape[0] != n:
        raise DimensionError(
            f"{name} has length {y.shape[0]}, expected {n} observations"
        )
    return y


def as_kernel(
    K: MatrixLike,
    name: str,
    n: int,
) -> NDArray[np.float64]:
    """Coerce to a dense (n, n) float matrix."""
    if sparse.issparse(K):
        K = K.toarray()
    K = np.asarray(K, dtype=np.float64)
    if K.shape != (n, n):
        raise DimensionError(f"{name} must have shape ({n}, {n}), got {K.shape}")
    return K


def as_kernel_list(
    K_list: list[MatrixLike],
    n: int,
) -> list[NDArray[np.float64]]:
    """Coerce every candidate kernel of the library to (n, n)."""
    if len(K_list) == 0:
        raise ValueError("K_list must contain at least one kernel matrix")
    return [as_kernel(K, f"K_list[{i}]", n) for i, K in enumerate(K_list)]


def has_intercept(X: NDArray[np.floating]) -> bool:
    """True when the first column of ``X`` is the constant 1."""
    return X.shape[1] > 0 and bool(np.all(X[:, 0] == 1.0))


def ensure_intercept(
    X: NDArray[np.floating] | None,
    n: int,
) -> NDArray[np.float64]:
    """
    Return the design matrix with an intercept as its first column.

    A column of ones is prepended unless the first column already is one,
    so an intercept is never duplicated.

    Parameters
    ----------
    X : array-like of shape (n, p), (n,) or None
        Fixed-effect covariates. ``None`` means intercept only.
    n : int
        Number of observations.

    Returns
    -------
    X : ndarray of shape (n, p) or (n, p + 1)
    """
    ones = np.ones((n, 1), dtype=np.float64)
    if X is None:
        return ones

    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise DimensionError(f"X must be 2D, got shape {X.shape}")
    if X.shape[0] != n:
        raise DimensionError(
            f"X has {X.shape[0]} rows, expected {n} observations"
        )
    if X.shape[1] > n:
        raise DimensionError(
            f"X has more columns ({X.shape[1]}) than observations ({n})"
        )

    if has_intercept(X):
        return X
    return np.hstack([ones, X])

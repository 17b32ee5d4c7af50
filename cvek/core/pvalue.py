"""
P-value computation for score statistics.

Provides:
- Scaled chi-square (Satterthwaite) moment matching
- Asymptotic p-values from the fitted chi-square
- Empirical p-values from a resampled null distribution
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.stats import chi2 as _chi2_dist

DEGENERATE_TOL = 1e-10
"""Relative cut-off below which a moment makes the chi-square fit degenerate."""


def scaled_chi2_params(
    mean_T: float,
    var_T: float,
    mean_scale: float = 1.0,
    var_scale: float = 1.0,
) -> tuple[float, float, bool]:
    """
    Match T to ``m · χ²_d`` through its first two moments.

    With E[T] = ``mean_T`` and Var[T] = ``var_T``::

        m = Var[T] / (2 E[T]),   d = E[T] / m

    For the score statistic ``mean_T`` is ``τ tr(K_int P0) / 2`` and
    ``var_T`` is the efficient information ``I_δδ``.

    Parameters
    ----------
    mean_T, var_T : float
        First two moments of T.
    mean_scale, var_scale : float, default=1.0
        Magnitudes the moments are compared against, so the degeneracy
        check does not depend on the units of T. The defaults give an
        absolute check.

    Returns
    -------
    (m_chi, d_chi, degenerate) : tuple
        When either moment is not finite or not above ``DEGENERATE_TOL``
        times its scale the fit is undefined: returns ``(nan, nan, True)``.
    """
    ok = (
        np.isfinite(mean_T) and np.isfinite(var_T)
        and mean_T > DEGENERATE_TOL * mean_scale
        and var_T > DEGENERATE_TOL * var_scale
        and mean_T > 0 and var_T > 0
    )
    if not ok:
        return float("nan"), float("nan"), True
    m_chi = var_T / (2.0 * mean_T)
    d_chi = mean_T / m_chi
    return float(m_chi), float(d_chi), False


def scaled_chi2_pvalue(
    statistic: float,
    m_chi: float,
    d_chi: float,
) -> float:
    """Upper tail ``P(χ²_d > T / m)``, clipped to [0, 1]."""
    pvalue = _chi2_dist.sf(statistic / m_chi, d_chi)
    return float(np.clip(pvalue, 0.0, 1.0))


def empirical_pvalue(
    observed: float,
    null_stats: NDArray[np.floating],
) -> float:
    """
    Fraction of null statistics at least as large as ``observed``.

    Ties count as exceedances. With B null statistics the result is always
    a multiple of 1/B.
    """
    null_stats = np.asarray(null_stats, dtype=float)
    if null_stats.size == 0:
        raise ValueError("null_stats must contain at least one statistic")
    return float(np.mean(null_stats >= observed))

"""
Result containers for score tests.

Provides a unified interface for the output of both calibration
procedures, so callers never branch on the method to read a p-value.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

import numpy as np
from numpy.typing import NDArray


@dataclass
class ScoreTestResult:
    """
    Outcome of calibrating one score statistic.

    Common fields for asymptotic and bootstrap calibration; fields that
    only one procedure produces are left at their defaults by the other.
    """

    pvalue: float
    """P-value in [0, 1]."""

    statistic: float
    """Observed score statistic."""

    method: str
    """Calibration procedure: ``"asym"`` or ``"boot"``."""

    m_chi: float = float("nan")
    """Scale of the fitted chi-square (asymptotic only)."""

    d_chi: float = float("nan")
    """Degrees of freedom of the fitted chi-square (asymptotic only)."""

    degenerate: bool = False
    """True when the chi-square fit was undefined and ``pvalue`` set to 1."""

    bootstrap_statistics: NDArray[np.floating] | None = field(default=None, repr=False)
    """Resampled null statistics (bootstrap only)."""

    @property
    def n_bootstrap(self) -> int:
        """Number of bootstrap replicates (0 for the asymptotic test)."""
        if self.bootstrap_statistics is None:
            return 0
        return int(self.bootstrap_statistics.shape[0])

    def is_significant(self, alpha: float = 0.05) -> bool:
        """Whether the null is rejected at level ``alpha``."""
        return self.pvalue < alpha

    def to_dict(self) -> dict:
        """Plain-Python summary (bootstrap statistics omitted)."""
        d = asdict(self)
        d.pop("bootstrap_statistics")
        d["n_bootstrap"] = self.n_bootstrap
        return d

"""
Calibration of the score statistic into a p-value.

Two procedures form a closed set, selected through :class:`TestType`:

- Asymptotic: match the statistic to a scaled chi-square using the
  efficient information of the tested variance component
  (Lin 1997; Maity & Lin 2011).
- Bootstrap: resample responses from the fitted null model and recompute
  the statistic (Bůžková, Lumley & Rice 2011).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from ..core.errors import UnsupportedTestError
from ..core.info import compute_info, efficient_information
from ..core.linalg import ginv
from ..core.pvalue import empirical_pvalue, scaled_chi2_params, scaled_chi2_pvalue
from ..core.resample import DEFAULT_CHUNK_SIZE, RandomState, bootstrap_statistics
from ..core.result import ScoreTestResult
from ..core.stat import null_covariance, projection_matrix, score_quadratic_form
from ..preprocessing.design import MatrixLike, as_kernel
from .null import FittedQuantities


class TestType(Enum):
    """Supported calibration procedures."""

    ASYMPTOTIC = "asym"
    BOOTSTRAP = "boot"

    @classmethod
    def parse(cls, test: "TestType | str") -> "TestType":
        """Accept an enum member or its name (``"asym"``/``"boot"``)."""
        if isinstance(test, cls):
            return test
        try:
            return cls(str(test).strip().lower())
        except ValueError:
            choices = [t.value for t in cls]
            raise UnsupportedTestError(
                f"Unsupported test type {test!r}; choose from {choices}"
            ) from None


class Calibrator(ABC):
    """Maps a candidate kernel and a null fit to a :class:`ScoreTestResult`."""

    method: TestType

    def __init__(self, rcond: float | None = None):
        self.rcond = rcond

    @abstractmethod
    def calibrate(
        self,
        fitted: FittedQuantities,
        K_int: NDArray[np.floating],
    ) -> ScoreTestResult:
        ...

    def _null_inverse(self, fitted: FittedQuantities) -> NDArray[np.float64]:
        V0 = null_covariance(fitted.K_ens, fitted.sigma2_hat, fitted.tau_hat)
        return ginv(V0, rcond=self.rcond)


class AsymptoticCalibrator(Calibrator):
    """Scaled chi-square approximation of the null distribution."""

    method = TestType.ASYMPTOTIC

    def calibrate(
        self,
        fitted: FittedQuantities,
        K_int: NDArray[np.floating],
    ) -> ScoreTestResult:
        n = fitted.n_obs
        K_int = as_kernel(K_int, "K_int", n)
        tau = fitted.tau_hat
        V0_inv = self._null_inverse(fitted)
        score_chi = score_quadratic_form(fitted.Y - fitted.y_fixed, K_int, V0_inv, tau)

        P0 = projection_matrix(V0_inv, fitted.X, rcond=self.rcond)
        I0 = compute_info(
            P0,
            mat_del=tau * K_int,
            mat_sigma2=np.eye(n),
            mat_tau=fitted.K_ens,
        )
        I_deldel = efficient_information(I0, rcond=self.rcond)
        md = tau * float(np.sum(K_int * P0)) / 2  # tr(K_int P0), both symmetric

        # |md| <= tau ||K_int||_F ||P0||_F / 2 and I_deldel <= I0[0, 0]
        md_scale = tau * np.linalg.norm(K_int) * np.linalg.norm(P0) / 2
        m_chi, d_chi, degenerate = scaled_chi2_params(
            md, I_deldel, mean_scale=md_scale, var_scale=I0[0, 0]
        )
        if degenerate:
            logger.warning(
                f"Degenerate chi-square fit (mean={md:.3g}, information={I_deldel:.3g}); "
                "K_int carries no information beyond the null model, reporting p-value 1"
            )
            pvalue = 1.0
        else:
            pvalue = scaled_chi2_pvalue(score_chi, m_chi, d_chi)
            logger.debug(
                f"Asymptotic test: score={score_chi:.4g}, m_chi={m_chi:.4g}, "
                f"d_chi={d_chi:.4g}, p={pvalue:.4g}"
            )

        return ScoreTestResult(
            pvalue=pvalue,
            statistic=score_chi,
            method=self.method.value,
            m_chi=m_chi,
            d_chi=d_chi,
            degenerate=degenerate,
        )


class BootstrapCalibrator(Calibrator):
    """
    Parametric bootstrap from the fitted null model.

    Parameters
    ----------
    n_bootstrap : int, default=100
        Number of resamples B.
    random_state : int, Generator, SeedSequence or None, default=None
        Root of the per-chunk random streams.
    n_jobs : int, default=1
        joblib worker threads.
    chunk_size : int
        Resamples drawn from one random stream.
    rcond : float, optional
        Cut-off passed to :func:`~cvek.core.linalg.ginv`.
    """

    method = TestType.BOOTSTRAP

    def __init__(
        self,
        n_bootstrap: int = 100,
        random_state: RandomState = None,
        n_jobs: int = 1,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        rcond: float | None = None,
    ):
        super().__init__(rcond=rcond)
        if n_bootstrap < 1:
            raise ValueError(f"n_bootstrap must be >= 1, got {n_bootstrap}")
        self.n_bootstrap = int(n_bootstrap)
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.chunk_size = chunk_size

    def calibrate(
        self,
        fitted: FittedQuantities,
        K_int: NDArray[np.floating],
    ) -> ScoreTestResult:
        K_int = as_kernel(K_int, "K_int", fitted.n_obs)
        V0_inv = self._null_inverse(fitted)
        bs_stats = bootstrap_statistics(
            mean_Y=fitted.mean_Y,
            y_fixed=fitted.y_fixed,
            K_int=K_int,
            V0_inv=V0_inv,
            sigma2_hat=fitted.sigma2_hat,
            tau_hat=fitted.tau_hat,
            n_bootstrap=self.n_bootstrap,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            chunk_size=self.chunk_size,
        )
        original_test = score_quadratic_form(
            fitted.Y - fitted.y_fixed, K_int, V0_inv, fitted.tau_hat
        )
        pvalue = empirical_pvalue(original_test, bs_stats)
        logger.debug(
            f"Bootstrap test: score={original_test:.4g}, B={self.n_bootstrap}, p={pvalue:.4g}"
        )

        return ScoreTestResult(
            pvalue=pvalue,
            statistic=original_test,
            method=self.method.value,
            bootstrap_statistics=bs_stats,
        )


def make_calibrator(
    test: TestType | str,
    n_bootstrap: int = 100,
    random_state: RandomState = None,
    n_jobs: int = 1,
    rcond: float | None = None,
) -> Calibrator:
    """Build the calibrator for ``test``; bootstrap options are ignored for ``asym``."""
    test = TestType.parse(test)
    if test is TestType.ASYMPTOTIC:
        return AsymptoticCalibrator(rcond=rcond)
    return BootstrapCalibrator(
        n_bootstrap=n_bootstrap,
        random_state=random_state,
        n_jobs=n_jobs,
        rcond=rcond,
    )


def _fitted_from_args(Y, X, y_fixed, alpha0, K_ens, sigma2_hat, tau_hat) -> FittedQuantities:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    return FittedQuantities(
        Y=Y, X=X, y_fixed=y_fixed, alpha0=alpha0, K_ens=K_ens,
        sigma2_hat=sigma2_hat, tau_hat=tau_hat,
    )


def test_asym(
    Y: NDArray[np.floating],
    X: NDArray[np.floating],
    K_int: MatrixLike,
    y_fixed: NDArray[np.floating],
    alpha0: NDArray[np.floating],
    K_ens: NDArray[np.floating],
    sigma2_hat: float,
    tau_hat: float,
    B: int | None = None,
) -> float:
    """
    Asymptotic score-test p-value for the candidate kernel ``K_int``.

    ``B`` is accepted for signature compatibility with :func:`test_boot`
    and ignored.
    """
    fitted = _fitted_from_args(Y, X, y_fixed, alpha0, K_ens, sigma2_hat, tau_hat)
    return AsymptoticCalibrator().calibrate(fitted, K_int).pvalue


def test_boot(
    Y: NDArray[np.floating],
    X: NDArray[np.floating],
    K_int: MatrixLike,
    y_fixed: NDArray[np.floating],
    alpha0: NDArray[np.floating],
    K_ens: NDArray[np.floating],
    sigma2_hat: float,
    tau_hat: float,
    B: int = 100,
    random_state: RandomState = None,
    n_jobs: int = 1,
) -> float:
    """Parametric-bootstrap score-test p-value, a multiple of ``1/B``."""
    fitted = _fitted_from_args(Y, X, y_fixed, alpha0, K_ens, sigma2_hat, tau_hat)
    calibrator = BootstrapCalibrator(n_bootstrap=B, random_state=random_state, n_jobs=n_jobs)
    return calibrator.calibrate(fitted, K_int).pvalue


# Not pytest tests, even when imported into a test module
test_asym.__test__ = False
test_boot.__test__ = False
TestType.__test__ = False

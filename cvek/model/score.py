"""
Score test for an additional kernel term in a kernel-ensemble model.

The null model is fitted once (fixed effects plus an ensemble of kernels);
any number of candidate interaction kernels can then be tested against it.

Complexity:
- fit():  O(n³) for the estimator and the noise-variance hat matrix
- test(): O(n³) for V0⁻ and P0, plus O(B·n²) for the bootstrap
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from ..core.errors import DimensionError, NumericalInstabilityError
from ..core.resample import RandomState
from ..core.result import ScoreTestResult
from ..preprocessing.design import (
    MatrixLike,
    as_kernel,
    as_kernel_list,
    as_vector,
    ensure_intercept,
)
from .calibrate import Calibrator, TestType, make_calibrator
from .null import (
    Estimator,
    FittedQuantities,
    NoiseEstimator,
    NullModelFit,
    estimate_sigma2,
)

DEFAULT_LAMBDA_GRID = np.exp(np.arange(-10, 6, dtype=np.float64))
"""Candidate tuning parameters ``exp(-10), ..., exp(5)``."""


@dataclass
class InteractionTestResult(ScoreTestResult):
    """
    Result of testing one candidate kernel against a fitted null model.

    Extends ScoreTestResult with the null-fit quantities that the caller
    usually wants to report alongside the p-value.
    """

    lambda_: float = float("nan")
    """Tuning parameter selected by the estimator."""

    u_hat: NDArray[np.floating] = field(default_factory=lambda: np.empty(0))
    """Ensemble weights of the kernels in the library."""

    sigma2_hat: float = float("nan")
    """Estimated noise variance."""

    tau_hat: float = float("nan")
    """Estimated random-effect scale ``sigma2_hat / lambda_``."""

    def to_dict(self) -> dict:
        """Extend base dict with the null-fit quantities."""
        d = super().to_dict()
        d["u_hat"] = np.asarray(self.u_hat).tolist()
        return d


class ScoreTest:
    """
    Score test for an interaction kernel in kernel-ensemble regression.

    Parameters
    ----------
    test : {"asym", "boot"} or TestType, default="boot"
        Calibration procedure.
    n_bootstrap : int, default=100
        Number of parametric-bootstrap resamples B (``test="boot"`` only).
    mode : str, default="loocv"
        Tuning criterion, passed to the estimator.
    strategy : str, default="stack"
        Ensemble strategy, passed to the estimator.
    beta_exp : float, default=1.0
        Exponent of the exponential-weighting ensemble strategy, passed to
        the estimator.
    lambda_ : float or array-like, optional
        Candidate tuning parameters (all > 0). Default: ``exp(-10..5)``.
    rcond : float, optional
        Relative singular value cut-off for every generalized inverse.
    n_jobs : int, default=1
        joblib threads for the bootstrap.
    random_state : int, Generator or None, default=0
        Seed of the bootstrap random streams.

    Examples
    --------
    >>> from cvek import ScoreTest, AverageEnsembleEstimator
    >>> st = ScoreTest(test="asym", lambda_=1.0)
    >>> result = st.fit(Y, X, [K1, K2], AverageEnsembleEstimator()).test(K_int)
    >>> print(result.pvalue)
    """

    def __init__(
        self,
        test: TestType | str = TestType.BOOTSTRAP,
        n_bootstrap: int = 100,
        mode: str = "loocv",
        strategy: str = "stack",
        beta_exp: float = 1.0,
        lambda_: float | NDArray[np.floating] | None = None,
        rcond: float | None = None,
        n_jobs: int = 1,
        random_state: RandomState = 0,
    ):
        # Validate parameters; unknown test names fail here, before any fitting
        test = TestType.parse(test)
        if n_bootstrap < 1:
            raise ValueError(f"n_bootstrap must be >= 1, got {n_bootstrap}")
        if n_jobs == 0:
            raise ValueError("n_jobs must be non-zero")
        if lambda_ is None:
            lambda_ = DEFAULT_LAMBDA_GRID
        lambda_ = np.atleast_1d(np.asarray(lambda_, dtype=np.float64))
        if lambda_.ndim != 1 or len(lambda_) == 0:
            raise ValueError("lambda_ must be a scalar or a non-empty 1D grid")
        if np.any(~np.isfinite(lambda_)) or np.any(lambda_ <= 0):
            raise ValueError(f"lambda_ values must be > 0, got {lambda_}")
        if rcond is not None and rcond < 0:
            raise ValueError(f"rcond must be >= 0, got {rcond}")

        self.test_type = test
        self.n_bootstrap = int(n_bootstrap)
        self.mode = mode
        self.strategy = strategy
        self.beta_exp = beta_exp
        self.lambda_ = lambda_
        self.rcond = rcond
        self.n_jobs = n_jobs
        self.random_state = random_state

        self._fitted = False

        # Set by fit()
        self._null_fit: NullModelFit
        self._quantities: FittedQuantities

    @property
    def null_fit(self) -> NullModelFit:
        """Estimator output for the null model."""
        if not self._fitted:
            raise RuntimeError("Model not fitted yet")
        return self._null_fit

    @property
    def fitted_quantities(self) -> FittedQuantities:
        """Read-only bundle shared by every calibration."""
        if not self._fitted:
            raise RuntimeError("Model not fitted yet")
        return self._quantities

    def _make_calibrator(self) -> Calibrator:
        return make_calibrator(
            self.test_type,
            n_bootstrap=self.n_bootstrap,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            rcond=self.rcond,
        )

    def fit(
        self,
        Y: NDArray[np.floating],
        X: NDArray[np.floating] | None,
        K_list: list[MatrixLike],
        estimator: Estimator,
        noise_estimator: NoiseEstimator = estimate_sigma2,
    ) -> "ScoreTest":
        """
        Fit the null model.

        Prepends an intercept to ``X`` when needed, runs the estimator,
        and derives ``sigma2_hat`` and ``tau_hat = sigma2_hat / lambda``.

        Parameters
        ----------
        Y : array-like of shape (n,)
            Responses.
        X : array-like of shape (n, p) or None
            Fixed-effect covariates.
        K_list : list of array-like of shape (n, n)
            Library of candidate kernel matrices for the null ensemble.
        estimator : Estimator
            Produces lambda, beta, alpha, the ensemble kernel and weights.
        noise_estimator : callable, default=estimate_sigma2
            Produces sigma2_hat from the fitted null model.

        Returns
        -------
        self : ScoreTest
        """
        Y = as_vector(Y, "Y")
        n = Y.shape[0]
        X = ensure_intercept(X, n)
        K_list = as_kernel_list(K_list, n)

        result = estimator.estimate(
            Y, X, K_list,
            mode=self.mode,
            strategy=self.strategy,
            beta_exp=self.beta_exp,
            lambda_=self.lambda_,
        )
        null_fit = self._check_null_fit(result, n, X.shape[1], len(K_list))

        y_fixed = X @ null_fit.beta
        sigma2_hat = float(
            noise_estimator(Y, X, null_fit.lambda_, y_fixed, null_fit.alpha, null_fit.K_ens)
        )
        if not np.isfinite(sigma2_hat) or sigma2_hat <= 0:
            raise NumericalInstabilityError(
                f"noise variance estimate must be positive, got {sigma2_hat}"
            )
        tau_hat = sigma2_hat / null_fit.lambda_

        self._null_fit = null_fit
        self._quantities = FittedQuantities(
            Y=Y,
            X=X,
            y_fixed=y_fixed,
            alpha0=null_fit.alpha,
            K_ens=null_fit.K_ens,
            sigma2_hat=sigma2_hat,
            tau_hat=tau_hat,
        )
        self._fitted = True

        logger.info(
            f"Null model fitted: n={n}, p={X.shape[1]}, kernels={len(K_list)}, "
            f"lambda={null_fit.lambda_:.4g}, sigma2={sigma2_hat:.4g}, tau={tau_hat:.4g}"
        )
        return self

    @staticmethod
    def _check_null_fit(
        result: NullModelFit,
        n: int,
        p: int,
        n_kernels: int,
    ) -> NullModelFit:
        lam = float(result.lambda_)
        if not np.isfinite(lam) or lam <= 0:
            raise ValueError(f"estimator returned a non-positive lambda ({lam})")

        beta = np.asarray(result.beta, dtype=np.float64).ravel()
        if beta.shape[0] != p:
            raise DimensionError(
                f"estimator returned {beta.shape[0]} fixed-effect coefficients, "
                f"design matrix has {p} columns"
            )
        alpha = as_vector(result.alpha, "alpha", n)
        K_ens = as_kernel(result.K_ens, "K_ens", n)
        u_hat = np.asarray(result.u_hat, dtype=np.float64).ravel()
        if u_hat.shape[0] != n_kernels:
            raise DimensionError(
                f"estimator returned {u_hat.shape[0]} kernel weights for "
                f"{n_kernels} kernels"
            )
        return NullModelFit(lambda_=lam, beta=beta, alpha=alpha, K_ens=K_ens, u_hat=u_hat)

    def test(self, K_int: MatrixLike) -> InteractionTestResult:
        """
        Test whether ``K_int`` explains variance beyond the null model.

        Parameters
        ----------
        K_int : array-like of shape (n, n)
            Kernel matrix of the interaction term under test.

        Returns
        -------
        result : InteractionTestResult
        """
        if not self._fitted:
            raise RuntimeError("Must call fit() before test()")

        fitted = self._quantities
        K_int = as_kernel(K_int, "K_int", fitted.n_obs)
        base = self._make_calibrator().calibrate(fitted, K_int)

        return InteractionTestResult(
            pvalue=base.pvalue,
            statistic=base.statistic,
            method=base.method,
            m_chi=base.m_chi,
            d_chi=base.d_chi,
            degenerate=base.degenerate,
            bootstrap_statistics=base.bootstrap_statistics,
            lambda_=self._null_fit.lambda_,
            u_hat=self._null_fit.u_hat,
            sigma2_hat=fitted.sigma2_hat,
            tau_hat=fitted.tau_hat,
        )

    def fit_test(
        self,
        Y: NDArray[np.floating],
        X: NDArray[np.floating] | None,
        K_list: list[MatrixLike],
        K_int: MatrixLike,
        estimator: Estimator,
        noise_estimator: NoiseEstimator = estimate_sigma2,
    ) -> InteractionTestResult:
        """Fit the null model and test ``K_int`` in one call."""
        # Shape errors in K_int surface before the estimator runs
        K_int = as_kernel(K_int, "K_int", as_vector(Y, "Y").shape[0])
        return self.fit(Y, X, K_list, estimator, noise_estimator).test(K_int)

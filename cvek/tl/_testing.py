"""Kernel interaction score test (functional API)."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ..core.resample import RandomState
from ..model.calibrate import TestType
from ..model.null import Estimator, NoiseEstimator, estimate_sigma2
from ..model.score import InteractionTestResult, ScoreTest
from ..preprocessing.design import MatrixLike


def testing(
    Y: NDArray[np.floating],
    X: NDArray[np.floating] | None,
    K_list: list[MatrixLike],
    K_int: MatrixLike,
    estimator: Estimator,
    mode: str = "loocv",
    strategy: str = "stack",
    beta_exp: float = 1.0,
    test: TestType | str = "boot",
    lambda_: float | NDArray[np.floating] | None = None,
    B: int = 100,
    noise_estimator: NoiseEstimator = estimate_sigma2,
    n_jobs: int = 1,
    random_state: RandomState = 0,
    rcond: float | None = None,
) -> InteractionTestResult:
    """
    Test whether an interaction kernel improves a fitted kernel-ensemble model.

    Fits the null model (fixed effects plus an ensemble of the kernels in
    ``K_list``) with ``estimator``, then computes the score statistic for
    ``K_int`` and calibrates it.

    Parameters
    ----------
    Y
        Responses, shape (n,).
    X
        Fixed-effect covariates, shape (n, p). An intercept column is
        prepended unless the first column is already all ones.
    K_list
        Library of kernel matrices for the null model, each (n, n).
    K_int
        Kernel matrix of the term under test, (n, n).
    estimator
        Null-model estimator (see :class:`~cvek.model.null.Estimator`).
    mode
        Tuning criterion, passed to the estimator.
    strategy
        Ensemble strategy, passed to the estimator.
    beta_exp
        Exponent for the exponential-weighting strategy, passed to the
        estimator.
    test
        ``"asym"`` for the scaled chi-square approximation, ``"boot"`` for
        the parametric bootstrap.
    lambda_
        Candidate tuning parameters, all > 0. Default ``exp(-10..5)``.
    B
        Number of bootstrap resamples (``test="boot"`` only).
    noise_estimator
        Produces ``sigma2_hat`` from the fitted null model.
    n_jobs
        joblib threads for the bootstrap.
    random_state
        Seed of the bootstrap random streams.
    rcond
        Relative singular value cut-off for generalized inverses.

    Returns
    -------
    InteractionTestResult with ``pvalue``, the selected ``lambda_`` and the
    kernel weights ``u_hat``, plus calibration diagnostics.

    Raises
    ------
    UnsupportedTestError
        If ``test`` is not a known procedure; raised before the estimator
        runs.
    DimensionError
        If the inputs disagree on the number of observations.

    Examples
    --------
    >>> import cvek
    >>> res = cvek.testing(Y, X, [K1, K2], K_int,
    ...                    estimator=cvek.AverageEnsembleEstimator(),
    ...                    test="asym", lambda_=1.0)
    >>> res.pvalue, res.lambda_, res.u_hat
    """
    model = ScoreTest(
        test=test,
        n_bootstrap=B,
        mode=mode,
        strategy=strategy,
        beta_exp=beta_exp,
        lambda_=lambda_,
        rcond=rcond,
        n_jobs=n_jobs,
        random_state=random_state,
    )
    return model.fit_test(Y, X, K_list, K_int, estimator, noise_estimator)


# Not a pytest test, even when imported into a test module
testing.__test__ = False

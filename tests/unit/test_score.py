from __future__ import annotations

import numpy as np
import pytest

import cvek
from cvek.core.errors import DimensionError, NumericalInstabilityError, UnsupportedTestError
from cvek.model.calibrate import TestType
from cvek.model.null import AverageEnsembleEstimator, NullModelFit
from cvek.model.score import DEFAULT_LAMBDA_GRID, InteractionTestResult, ScoreTest


class TestParams:
    def test_defaults(self) -> None:
        st = ScoreTest()
        assert st.test_type is TestType.BOOTSTRAP
        assert st.n_bootstrap == 100
        assert st.mode == "loocv"
        assert st.strategy == "stack"
        np.testing.assert_allclose(st.lambda_, np.exp(np.arange(-10, 6)))
        assert len(DEFAULT_LAMBDA_GRID) == 16

    def test_scalar_lambda_becomes_grid(self) -> None:
        st = ScoreTest(lambda_=2.0)
        assert st.lambda_.shape == (1,)

    @pytest.mark.parametrize(
        "kwargs, match",
        [
            ({"n_bootstrap": 0}, "n_bootstrap"),
            ({"n_jobs": 0}, "n_jobs"),
            ({"lambda_": [1.0, 0.0]}, "lambda_"),
            ({"lambda_": -1.0}, "lambda_"),
            ({"lambda_": []}, "lambda_"),
            ({"rcond": -1e-3}, "rcond"),
        ],
    )
    def test_invalid(self, kwargs, match) -> None:
        with pytest.raises(ValueError, match=match):
            ScoreTest(**kwargs)

    def test_unknown_test_fails_before_estimation(self, null_data, recording_estimator) -> None:
        with pytest.raises(UnsupportedTestError):
            ScoreTest(test="permutation")
        with pytest.raises(UnsupportedTestError):
            cvek.testing(
                null_data.Y, null_data.X, null_data.K_list, null_data.K_int_true,
                estimator=recording_estimator, test="permutation", lambda_=1.0,
            )
        assert recording_estimator.calls == []


class TestFit:
    def test_not_fitted(self, null_data) -> None:
        st = ScoreTest(lambda_=1.0)
        with pytest.raises(RuntimeError, match="fit"):
            st.test(null_data.K_int_true)
        with pytest.raises(RuntimeError):
            st.null_fit
        with pytest.raises(RuntimeError):
            st.fitted_quantities

    def test_intercept_prepended(self, null_data, recording_estimator) -> None:
        ScoreTest(lambda_=1.0).fit(
            null_data.Y, null_data.X, null_data.K_list, recording_estimator
        )
        X_seen = recording_estimator.calls[0]["X"]
        assert X_seen.shape == (50, 3)
        np.testing.assert_array_equal(X_seen[:, 0], 1.0)
        np.testing.assert_array_equal(X_seen[:, 1:], null_data.X)

    def test_existing_intercept_kept(self, rng, kernels, recording_estimator) -> None:
        n = 10
        X = np.column_stack([np.ones(n), rng.standard_normal(n)])
        Y = rng.standard_normal(n)
        K = kernels["rbf"](rng.standard_normal(n))
        ScoreTest(lambda_=1.0).fit(Y, X, [K], recording_estimator)
        assert recording_estimator.calls[0]["X"].shape == (n, 2)

    def test_no_covariates_gives_intercept_only(self, null_data, recording_estimator) -> None:
        ScoreTest(lambda_=1.0).fit(null_data.Y, None, null_data.K_list, recording_estimator)
        X_seen = recording_estimator.calls[0]["X"]
        assert X_seen.shape == (50, 1)
        np.testing.assert_array_equal(X_seen, 1.0)

    def test_options_forwarded_to_estimator(self, null_data, recording_estimator) -> None:
        ScoreTest(mode="gmpml", strategy="exp", beta_exp=2.5, lambda_=0.5).fit(
            null_data.Y, null_data.X, null_data.K_list, recording_estimator
        )
        call = recording_estimator.calls[0]
        assert call["mode"] == "gmpml"
        assert call["strategy"] == "exp"
        assert call["beta_exp"] == 2.5
        np.testing.assert_array_equal(call["lambda_"], [0.5])

    def test_fitted_quantities(self, null_data) -> None:
        st = ScoreTest(lambda_=2.0).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator()
        )
        fq = st.fitted_quantities
        assert st.null_fit.lambda_ == 2.0
        assert fq.tau_hat == pytest.approx(fq.sigma2_hat / 2.0)
        np.testing.assert_allclose(fq.y_fixed, fq.X @ st.null_fit.beta)
        np.testing.assert_allclose(st.null_fit.u_hat, [0.5, 0.5])

    def test_mismatched_kernel_size(self, null_data) -> None:
        with pytest.raises(DimensionError):
            ScoreTest(lambda_=1.0).fit(
                null_data.Y, null_data.X, [np.eye(49)], AverageEnsembleEstimator()
            )

    def test_noise_estimator_must_be_positive(self, null_data) -> None:
        st = ScoreTest(lambda_=1.0)
        with pytest.raises(NumericalInstabilityError):
            st.fit(
                null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator(),
                noise_estimator=lambda *args: 0.0,
            )

    def test_custom_noise_estimator(self, null_data) -> None:
        st = ScoreTest(lambda_=4.0).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator(),
            noise_estimator=lambda *args: 2.0,
        )
        assert st.fitted_quantities.sigma2_hat == 2.0
        assert st.fitted_quantities.tau_hat == 0.5


class _BadEstimator:
    def __init__(self, **overrides):
        self.overrides = overrides

    def estimate(self, Y, X, K_list, **kwargs):
        n, p = X.shape
        fields = {
            "lambda_": 1.0,
            "beta": np.zeros(p),
            "alpha": np.zeros(n),
            "K_ens": np.eye(n),
            "u_hat": np.full(len(K_list), 1.0 / len(K_list)),
        }
        fields.update(self.overrides)
        return NullModelFit(**fields)


class TestEstimatorOutput:
    @pytest.mark.parametrize("lam", [0.0, -1.0, np.nan])
    def test_bad_lambda(self, null_data, lam) -> None:
        with pytest.raises(ValueError, match="lambda"):
            ScoreTest(lambda_=1.0).fit(
                null_data.Y, null_data.X, null_data.K_list, _BadEstimator(lambda_=lam)
            )

    def test_bad_beta_length(self, null_data) -> None:
        with pytest.raises(DimensionError, match="fixed-effect"):
            ScoreTest(lambda_=1.0).fit(
                null_data.Y, null_data.X, null_data.K_list, _BadEstimator(beta=np.zeros(7))
            )

    def test_bad_weights_length(self, null_data) -> None:
        with pytest.raises(DimensionError, match="kernel weights"):
            ScoreTest(lambda_=1.0).fit(
                null_data.Y, null_data.X, null_data.K_list, _BadEstimator(u_hat=np.ones(3))
            )

    def test_bad_alpha_length(self, null_data) -> None:
        with pytest.raises(DimensionError):
            ScoreTest(lambda_=1.0).fit(
                null_data.Y, null_data.X, null_data.K_list, _BadEstimator(alpha=np.zeros(3))
            )


class TestScoreTest:
    def test_asym_result(self, null_data) -> None:
        st = ScoreTest(test="asym", lambda_=1.0).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator()
        )
        result = st.test(null_data.K_int_null)

        assert isinstance(result, InteractionTestResult)
        assert result.method == "asym"
        assert 0.0 <= result.pvalue <= 1.0
        assert result.lambda_ == 1.0
        assert result.n_bootstrap == 0
        assert np.isfinite(result.m_chi) and np.isfinite(result.d_chi)

    def test_boot_result(self, null_data) -> None:
        st = ScoreTest(test="boot", n_bootstrap=50, lambda_=1.0, random_state=3).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator()
        )
        result = st.test(null_data.K_int_null)

        assert result.method == "boot"
        assert result.n_bootstrap == 50
        assert result.pvalue * 50 == pytest.approx(round(result.pvalue * 50))
        assert st.test(null_data.K_int_null).pvalue == result.pvalue

    def test_several_kernels_against_one_fit(self, null_data, recording_estimator) -> None:
        st = ScoreTest(test="asym", lambda_=1.0).fit(
            null_data.Y, null_data.X, null_data.K_list, recording_estimator
        )
        candidates = [null_data.K_int_true, null_data.K_int_null, np.zeros((50, 50))]
        pvalues = [st.test(K).pvalue for K in candidates]

        assert len(recording_estimator.calls) == 1
        assert all(0.0 <= p <= 1.0 for p in pvalues)
        assert pvalues[2] == 1.0

    def test_fit_test_matches_fit_then_test(self, null_data) -> None:
        a = ScoreTest(test="asym", lambda_=1.0).fit_test(
            null_data.Y, null_data.X, null_data.K_list, null_data.K_int_true,
            AverageEnsembleEstimator(),
        )
        st = ScoreTest(test="asym", lambda_=1.0).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator()
        )
        b = st.test(null_data.K_int_true)
        assert a.pvalue == pytest.approx(b.pvalue)
        assert a.statistic == pytest.approx(b.statistic)

    def test_wrong_kernel_shape(self, null_data) -> None:
        st = ScoreTest(test="asym", lambda_=1.0).fit(
            null_data.Y, null_data.X, null_data.K_list, AverageEnsembleEstimator()
        )
        with pytest.raises(DimensionError):
            st.test(np.eye(10))

    def test_wrong_kernel_shape_fails_before_estimation(
        self, null_data, recording_estimator
    ) -> None:
        with pytest.raises(DimensionError, match="K_int"):
            ScoreTest(test="asym", lambda_=1.0).fit_test(
                null_data.Y, null_data.X, null_data.K_list, np.eye(7), recording_estimator
            )
        with pytest.raises(DimensionError, match="K_int"):
            cvek.testing(
                null_data.Y, null_data.X, null_data.K_list, np.eye(7),
                estimator=recording_estimator, test="boot", lambda_=1.0,
            )
        assert recording_estimator.calls == []


class TestFunctionalAPI:
    def test_testing_returns_fit_summary(self, null_data) -> None:
        result = cvek.testing(
            null_data.Y, null_data.X, null_data.K_list, null_data.K_int_true,
            estimator=AverageEnsembleEstimator(weights=[3.0, 1.0]),
            test="asym", lambda_=1.0,
        )
        assert 0.0 <= result.pvalue <= 1.0
        assert result.lambda_ == 1.0
        np.testing.assert_allclose(result.u_hat, [0.75, 0.25])

        d = result.to_dict()
        assert d["method"] == "asym"
        assert d["u_hat"] == pytest.approx([0.75, 0.25])
        assert d["n_bootstrap"] == 0
        assert "bootstrap_statistics" not in d

    def test_testing_bootstrap_is_seeded(self, null_data) -> None:
        kwargs = dict(
            estimator=AverageEnsembleEstimator(), test="boot", lambda_=1.0, B=40,
        )
        a = cvek.testing(null_data.Y, null_data.X, null_data.K_list, null_data.K_int_null, **kwargs)
        b = cvek.testing(null_data.Y, null_data.X, null_data.K_list, null_data.K_int_null, **kwargs)
        assert a.pvalue == b.pvalue
        np.testing.assert_array_equal(a.bootstrap_statistics, b.bootstrap_statistics)

    def test_tl_namespace(self) -> None:
        assert cvek.tl.testing is cvek.testing

"""
Monte Carlo study of the cvek interaction score tests.

Runs two experiments on the additive-kernel simulation model
Y = 1 + 0.5 x1 - 0.5 x2 + g(x1, x2) + a * x1 * x2 + e:

1. Type I error control (a = 0, K_int built from unrelated covariates)
2. Power over a grid of interaction strengths a

Both the asymptotic and the bootstrap calibration are evaluated.
All results saved to benchmarks/results/*.csv
"""

import sys
import os
import time

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist
from scipy.stats import kstest

# Use local cvek package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from cvek import AverageEnsembleEstimator, ScoreTest

RESULTS_DIR = os.path.join(os.path.dirname(__file__), "results")


# ---------------------------------------------------------------------------
# Simulation helpers
# ---------------------------------------------------------------------------

def rbf_kernel(x: np.ndarray, lengthscale: float = 1.0) -> np.ndarray:
    """Gaussian RBF kernel matrix of a single covariate."""
    x = x.reshape(-1, 1)
    return np.exp(-cdist(x, x, "sqeuclidean") / (2 * lengthscale ** 2))


def simulate(n: int, interaction: float, lam: float,
             rng: np.random.Generator) -> dict:
    """Draw one dataset; the null model is correctly specified at a = 0."""
    x = rng.standard_normal((n, 4))
    x1, x2, x3, x4 = x.T
    K_list = [rbf_kernel(x1), rbf_kernel(x2)]
    K_ens = (K_list[0] + K_list[1]) / 2

    g = rng.multivariate_normal(np.zeros(n), K_ens / lam, method="eigh")
    Y = 1.0 + 0.5 * x1 - 0.5 * x2 + g + interaction * x1 * x2 + rng.standard_normal(n)

    z_true = (x1 * x2).reshape(-1, 1)
    z_null = (x3 * x4).reshape(-1, 1)
    return {
        "Y": Y,
        "X": np.column_stack([x1, x2]),
        "K_list": K_list,
        "K_int_true": z_true @ z_true.T,
        "K_int_null": z_null @ z_null.T,
    }


def run_one(data: dict, K_int: np.ndarray, test: str, lam: float,
            n_bootstrap: int, seed: int) -> float:
    model = ScoreTest(test=test, n_bootstrap=n_bootstrap, lambda_=lam, random_state=seed)
    result = model.fit_test(data["Y"], data["X"], data["K_list"], K_int,
                            AverageEnsembleEstimator())
    return result.pvalue


# ---------------------------------------------------------------------------
# Experiment 1: Type I error
# ---------------------------------------------------------------------------

def run_type1_error(n_reps: int = 500, n_bootstrap: int = 200, lam: float = 1.0):
    print("=" * 70)
    print("EXPERIMENT 1: Type I Error Control")
    print("=" * 70)

    rng = np.random.default_rng(2024)
    rows = []
    for n in (50, 100):
        print(f"\n  n={n}, {n_reps} reps")
        t0 = time.time()
        for rep in range(n_reps):
            data = simulate(n, 0.0, lam, rng)
            seed = int(rng.integers(2**31))
            for test in ("asym", "boot"):
                p = run_one(data, data["K_int_null"], test, lam, n_bootstrap, seed)
                rows.append({"n": n, "test": test, "rep": rep, "pvalue": p})
        print(f"    done in {time.time() - t0:.1f}s")

    df = pd.DataFrame(rows)
    os.makedirs(RESULTS_DIR, exist_ok=True)
    out_path = os.path.join(RESULTS_DIR, "type1_error.csv")
    df.to_csv(out_path, index=False)
    print(f"\n  Saved to {out_path}")

    print("\n  Summary:")
    for (n, test), sub in df.groupby(["n", "test"]):
        ks_p = kstest(sub["pvalue"], "uniform").pvalue
        print(f"    n={n:<4} {test:<5} FPR(p<0.05)={np.mean(sub['pvalue'] < 0.05):.4f} "
              f"FPR(p<0.01)={np.mean(sub['pvalue'] < 0.01):.4f} KS p={ks_p:.3g}")
    return df


# ---------------------------------------------------------------------------
# Experiment 2: Power
# ---------------------------------------------------------------------------

def run_power_analysis(n_reps: int = 200, n_bootstrap: int = 200, lam: float = 1.0):
    print("\n" + "=" * 70)
    print("EXPERIMENT 2: Power Analysis")
    print("=" * 70)

    effects = [0.25, 0.5, 1.0, 1.5]
    rng = np.random.default_rng(7)
    rows = []
    for n in (50, 100):
        for a in effects:
            print(f"\n  n={n}, interaction={a}")
            for rep in range(n_reps):
                data = simulate(n, a, lam, rng)
                seed = int(rng.integers(2**31))
                for test in ("asym", "boot"):
                    p = run_one(data, data["K_int_true"], test, lam, n_bootstrap, seed)
                    rows.append({"n": n, "interaction": a, "test": test,
                                 "rep": rep, "pvalue": p})
            sub = [r["pvalue"] for r in rows[-2 * n_reps:]]
            print(f"    Mean power(p<0.05)={np.mean(np.asarray(sub) < 0.05):.3f}")

    df = pd.DataFrame(rows)
    os.makedirs(RESULTS_DIR, exist_ok=True)
    out_path = os.path.join(RESULTS_DIR, "power.csv")
    df.to_csv(out_path, index=False)
    print(f"\n  Saved to {out_path}")

    summary = (df.assign(reject=df["pvalue"] < 0.05)
                 .pivot_table(index=["n", "interaction"], columns="test",
                              values="reject", aggfunc="mean"))
    print("\n  Power at alpha=0.05:")
    print(summary.to_string(float_format=lambda v: f"{v:.3f}"))
    return df


if __name__ == "__main__":
    run_type1_error()
    run_power_analysis()

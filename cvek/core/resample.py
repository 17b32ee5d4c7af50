"""
Parametric bootstrap under the fitted null model.

Replicates are generated in fixed-size chunks. Chunk ``k`` always draws from
child ``k`` of one :class:`numpy.random.SeedSequence`, so for a given seed
the statistics are identical whether chunks run serially or on a joblib
thread pool, and no two chunks share a generator.
"""

from __future__ import annotations

from typing import Union

import numpy as np
from joblib import Parallel, delayed
from loguru import logger
from numpy.typing import NDArray

from .stat import score_quadratic_form

DEFAULT_CHUNK_SIZE = 256
"""Bootstrap replicates drawn from one random stream."""

RandomState = Union[int, np.random.Generator, np.random.SeedSequence, None]


def spawn_generators(
    random_state: RandomState,
    n_streams: int,
) -> list[np.random.Generator]:
    """Independent generators, one per stream."""
    if isinstance(random_state, np.random.Generator):
        return random_state.spawn(n_streams)
    if isinstance(random_state, np.random.SeedSequence):
        seed_seq = random_state
    else:
        seed_seq = np.random.SeedSequence(random_state)
    return [np.random.default_rng(s) for s in seed_seq.spawn(n_streams)]


def draw_null_responses(
    mean_Y: NDArray[np.floating],
    sigma2_hat: float,
    size: int,
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """``size`` response vectors ``mean_Y + ε``, ``ε ~ N(0, σ² I)``; shape (size, n)."""
    noise = rng.standard_normal((size, mean_Y.shape[0]))
    return mean_Y + np.sqrt(sigma2_hat) * noise


def bootstrap_statistics(
    mean_Y: NDArray[np.floating],
    y_fixed: NDArray[np.floating],
    K_int: NDArray[np.floating],
    V0_inv: NDArray[np.floating],
    sigma2_hat: float,
    tau_hat: float,
    n_bootstrap: int,
    random_state: RandomState = None,
    n_jobs: int = 1,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> NDArray[np.float64]:
    """
    Score statistics of ``n_bootstrap`` responses drawn from the null model.

    Parameters
    ----------
    mean_Y : ndarray of shape (n,)
        Fitted null mean ``K_ens α0 + y_fixed``.
    y_fixed : ndarray of shape (n,)
        Fitted fixed effects, subtracted from every draw.
    K_int, V0_inv : ndarray of shape (n, n)
        Kernel under test and generalized inverse of the null covariance.
    sigma2_hat, tau_hat : float
    n_bootstrap : int
        Number of replicates B.
    random_state : int, Generator, SeedSequence or None
        Root of the per-chunk random streams.
    n_jobs : int, default=1
        joblib worker threads; -1 uses all cores.
    chunk_size : int
        Replicates per random stream.

    Returns
    -------
    stats : ndarray of shape (n_bootstrap,)
    """
    if n_bootstrap < 1:
        raise ValueError(f"n_bootstrap must be >= 1, got {n_bootstrap}")
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    n_chunks, remainder = divmod(n_bootstrap, chunk_size)
    sizes = [chunk_size] * n_chunks + ([remainder] if remainder else [])
    rngs = spawn_generators(random_state, len(sizes))

    def _one_chunk(size: int, rng: np.random.Generator) -> NDArray[np.float64]:
        Y_star = draw_null_responses(mean_Y, sigma2_hat, size, rng)
        return np.atleast_1d(
            score_quadratic_form(Y_star - y_fixed, K_int, V0_inv, tau_hat)
        )

    logger.debug(
        f"Bootstrap: B={n_bootstrap} in {len(sizes)} chunk(s) of <= {chunk_size}, "
        f"n_jobs={n_jobs}"
    )

    # Serial for a single chunk or n_jobs=1
    if n_jobs == 1 or len(sizes) == 1:
        chunks = [_one_chunk(size, rng) for size, rng in zip(sizes, rngs)]
    else:
        # Threads share the inputs; the BLAS calls release the GIL
        chunks = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_one_chunk)(size, rng) for size, rng in zip(sizes, rngs)
        )
    return np.concatenate(chunks)

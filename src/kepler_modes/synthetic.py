from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike

from .config import Parameters, SimParams
from .sampler import sample_trajectory
from .state import Observations, SigmaLike, StateVector


def study_times(n: int = 40, spacing: float = 0.1) -> np.ndarray:
    """Observation times t_i = i*spacing, i = 1..n."""
    return spacing*np.arange(1, n + 1, dtype=np.float64)


def make_synthetic_observations(state0: StateVector,
                                params: Parameters,
                                sim: SimParams,
                                times: ArrayLike,
                                sigma: SigmaLike = 0.01,
                                seed: int | None = 1954,
                                t0: float = 0.0) -> Observations:
    """Simulate at the true parameters and add independent Gaussian noise per axis.

    seed=None returns the noiseless positions.
    """
    traj = sample_trajectory(state0, params, sim, times, t0=t0)
    sig = np.broadcast_to(np.asarray(sigma, dtype=np.float64), traj.q.shape)
    if seed is None:
        q_obs = np.array(traj.q)
    else:
        rng = np.random.default_rng(seed)
        q_obs = traj.q + sig*rng.standard_normal(traj.q.shape)
    return Observations(t=traj.t, q=q_obs, sigma=sig)

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional
import numpy as np
from numpy.typing import NDArray
from scipy.stats import norm

from .config import Parameters, SimParams
from .sampler import sample_trajectory
from .state import Observations, StateVector, Trajectory

LogPrior = Callable[[Parameters], float]


def gaussian_log_likelihood(q_sim: NDArray[np.float64], obs: Observations) -> float:
    """sum_{t, axis} log N(observed; simulated, sigma), independent in time and axis."""
    q_sim = np.asarray(q_sim, dtype=np.float64)
    if q_sim.shape != obs.q.shape:
        raise ValueError(f"simulated positions {q_sim.shape} do not match observations {obs.q.shape}")
    return float(np.sum(norm.logpdf(obs.q, loc=q_sim, scale=obs.sigma)))


def gaussian_constant(obs: Observations) -> float:
    """Log-likelihood of a perfect fit: -sum(log sigma) - N/2 log(2 pi)."""
    return float(-np.sum(np.log(obs.sigma)) - 0.5*obs.sigma.size*math.log(2.0*math.pi))


def log_density(traj: Trajectory,
                obs: Observations,
                params: Optional[Parameters] = None,
                log_prior: Optional[LogPrior] = None) -> float:
    """Log-joint density of a simulated trajectory against observations.

    Without a prior the density is the likelihood (flat, improper prior).
    Returns -inf for a clamped trajectory or a prior of zero mass; that is an
    evaluable point, not a fault.
    """
    if len(traj) != len(obs):
        raise ValueError(f"trajectory has {len(traj)} times, observations have {len(obs)}")
    if not np.allclose(traj.t, obs.t, rtol=1e-12, atol=1e-12):
        raise ValueError("trajectory times do not match observation times")

    lp = 0.0
    if log_prior is not None:
        if params is None:
            raise ValueError("a log_prior needs the parameters it is evaluated at")
        lp = float(log_prior(params))
        if math.isnan(lp):
            raise ValueError(f"log_prior returned nan at {params}")
        if lp == -math.inf:
            return -math.inf

    if traj.clamped:
        return -math.inf
    return gaussian_log_likelihood(traj.q, obs) + lp


def log_density_at(params: Parameters,
                   state0: StateVector,
                   obs: Observations,
                   sim: SimParams,
                   log_prior: Optional[LogPrior] = None,
                   t0: float = 0.0) -> float:
    """Simulate at params and score against obs: the black-box objective."""
    traj = sample_trajectory(state0, params, sim, obs.t, t0=t0)
    return log_density(traj, obs, params=params, log_prior=log_prior)


@dataclass(frozen=True)
class NormalPrior:
    """Independent normal prior terms per parameter, picklable for process pools.

    Defaults follow the study: k ~ N(0, 1) restricted to k > 0, star
    coordinates ~ N(0, 0.5). A scale of None leaves that parameter flat.
    Densities are unnormalised over the k > 0 truncation.
    """
    k_loc: float = 0.0
    k_scale: Optional[float] = 1.0
    q_star_loc: float = 0.0
    q_star_scale: Optional[float] = 0.5
    m_loc: float = 1.0
    m_scale: Optional[float] = None
    positive_k: bool = True

    def __call__(self, params: Parameters) -> float:
        if self.positive_k and not params.k > 0.0:
            return -math.inf
        lp = 0.0
        if self.k_scale is not None:
            lp += float(norm.logpdf(params.k, loc=self.k_loc, scale=self.k_scale))
        if self.q_star_scale is not None:
            lp += float(np.sum(norm.logpdf(params.q_star, loc=self.q_star_loc, scale=self.q_star_scale)))
        if self.m_scale is not None:
            lp += float(norm.logpdf(params.m, loc=self.m_loc, scale=self.m_scale))
        return lp

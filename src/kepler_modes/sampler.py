"""Trajectory sampling at observation times.

Times are reached by fixed stepping from the initial state, never by
interpolation: every requested time must sit on an integer multiple of dt
(relative tolerance ``SimParams.align_tol``). The study picks dt = 0.001 for
observations at t = 0.1, 0.2, ..., so the sampled positions are the exact
integrator states and likelihood values are reproducible bit for bit.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .config import Parameters, SimParams
from .errors import StepAlignmentError
from .integrate import _advance, validate_times
from .state import StateVector, Trajectory


def step_indices(times: ArrayLike, sim: SimParams, t0: float = 0.0) -> NDArray[np.int64]:
    """Step count reaching each requested time; StepAlignmentError if one falls between steps."""
    t = validate_times(times, t0)
    x = (t - t0) / sim.dt
    n = np.rint(x)
    bad = np.abs(x - n) > sim.align_tol*np.maximum(1.0, np.abs(x))
    if np.any(bad):
        i = int(np.argmax(bad))
        raise StepAlignmentError(f"time {t[i]!r} is not a multiple of dt={sim.dt!r} from t0={t0!r} "
                                 f"({x[i]:.12g} steps)")
    return n.astype(np.int64)


def sample_trajectory(state0: StateVector,
                      params: Parameters,
                      sim: SimParams,
                      times: ArrayLike,
                      t0: float = 0.0) -> Trajectory:
    """One state per requested time, reached by stepping forward from state0 at t0."""
    t = validate_times(times, t0)
    idx = step_indices(t, sim, t0)
    Q, P, clamped = _advance(state0, params, sim, idx, t0=t0)
    return Trajectory(t=t, q=Q, p=P, n_steps=int(idx[-1]), clamped=clamped)


def positions_at(state0: StateVector,
                 params: Parameters,
                 sim: SimParams,
                 times: ArrayLike,
                 t0: float = 0.0) -> NDArray[np.float64]:
    return sample_trajectory(state0, params, sim, times, t0).q

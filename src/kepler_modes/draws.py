"""Scoring of parameter draws produced by an external sampler.

Draws are opaque records (dicts, pandas rows) carrying some of ``k``, ``m``,
``q_star``, ``q_star_x``/``q_star_y`` or the CmdStan columns ``q_star[1]``/``q_star[2]``
(``q_star.1``/``q_star.2``); missing entries fall back to a base
Parameters value. Extra columns (lp__, sigma, ...) are ignored.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union
import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .config import Parameters, SimParams
from .errors import TRAJECTORY_FAULTS, fault_label
from .likelihood import LogPrior, log_density
from .sampler import sample_trajectory
from .state import Observations, StateVector

log = logging.getLogger(__name__)

Draws = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


# sampler-native spellings of the star coordinates (CmdStan: q_star[1], q_star.1)
STAR_KEYS = {
    "q_star_x": "q_star_x", "q_star[1]": "q_star_x", "q_star.1": "q_star_x",
    "q_star_y": "q_star_y", "q_star[2]": "q_star_y", "q_star.2": "q_star_y",
}


def params_from_draw(draw: Mapping[str, Any], base: Parameters) -> Parameters:
    """Map one draw onto Parameters.

    Raises KeyError for a q_star* key that names no star coordinate.
    """
    params = base
    for name in ("k", "m"):
        if name in draw:
            params = params.replace_axis(name, float(draw[name]))
    for key in draw.keys():
        key = str(key)
        if not key.startswith("q_star") or key == "q_star":
            continue
        if key not in STAR_KEYS:
            raise KeyError(f"draw key '{key}' is not a star coordinate; "
                           f"expected one of {sorted(STAR_KEYS)} or 'q_star'")
        params = params.replace_axis(STAR_KEYS[key], float(draw[key]))
    if "q_star" in draw:
        qs = np.asarray(draw["q_star"], dtype=float).reshape(-1)
        if qs.size != 2:
            raise ValueError(f"q_star must have two components, got {qs.size}")
        params = params.replace_axis("q_star_x", qs[0]).replace_axis("q_star_y", qs[1])
    return params


def _iter_draws(draws: Draws):
    if isinstance(draws, pd.DataFrame):
        return (row for _, row in draws.iterrows())
    return iter(draws)


def score_draws(draws: Draws,
                base: Parameters,
                state0: StateVector,
                obs: Observations,
                sim: SimParams,
                log_prior: Optional[LogPrior] = None,
                t0: float = 0.0) -> NDArray[np.float64]:
    """Log-density of each draw; nan where the trajectory faulted."""
    out = []
    for i, draw in enumerate(_iter_draws(draws)):
        params = params_from_draw(draw, base)
        try:
            traj = sample_trajectory(state0, params, sim, obs.t, t0=t0)
        except TRAJECTORY_FAULTS as e:
            log.warning("draw %d (%s) failed: %s: %s", i, fault_label(e), type(e).__name__, e)
            out.append(np.nan)
            continue
        out.append(log_density(traj, obs, params=params, log_prior=log_prior))
    return np.asarray(out, dtype=np.float64)


def predictive_positions(draws: Draws,
                         base: Parameters,
                         state0: StateVector,
                         sim: SimParams,
                         times,
                         t0: float = 0.0) -> NDArray[np.float64]:
    """Simulated positions per draw, shape (n_draws, n_times, 2), for predictive overlays.

    Faulted draws are filled with nan.
    """
    times = np.asarray(times, dtype=np.float64).reshape(-1)
    rows = []
    for i, draw in enumerate(_iter_draws(draws)):
        params = params_from_draw(draw, base)
        try:
            rows.append(np.array(sample_trajectory(state0, params, sim, times, t0=t0).q))
        except TRAJECTORY_FAULTS as e:
            log.warning("draw %d (%s) failed: %s: %s", i, fault_label(e), type(e).__name__, e)
            rows.append(np.full((times.size, 2), np.nan))
    if not rows:
        return np.empty((0, times.size, 2), dtype=np.float64)
    return np.stack(rows, axis=0)

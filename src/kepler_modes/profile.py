"""Grid / profile evaluation of the log-density.

One or two parameter axes are swept over caller-supplied grids (full
Cartesian product for two), with every other parameter pinned to the base
value. Each grid point is an independent task: tasks are chunked and sent to
a process pool (or run in-process for ``workers == 1``), and results are
merged into disjoint slots at the end.

Faults confined to one trajectory (SingularityFault, StepBudgetExceeded) are
recorded as ``nan`` with a status label so the sweep completes. Ordering and
alignment faults in the observation times are raised before any dispatch.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray
from tqdm import tqdm

from .config import AXES, Parameters, ParallelParams, SimParams
from .errors import TRAJECTORY_FAULTS, fault_label
from .likelihood import LogPrior, log_density_at
from .sampler import step_indices
from .state import Observations, StateVector

log = logging.getLogger(__name__)

STATUS_OK = "ok"


@dataclass
class GridResult:
    axes: Tuple[str, ...]
    values: Tuple[NDArray[np.float64], ...]
    log_density: NDArray[np.float64]      # (n,) or (n_x, n_y); nan marks a faulted point
    status: NDArray[np.object_]           # same shape, "ok" or a fault label
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.log_density.shape

    @property
    def ok(self) -> NDArray[np.bool_]:
        return self.status == STATUS_OK

    @property
    def n_failed(self) -> int:
        return int(np.sum(~self.ok))

    def pairs(self) -> List[Tuple[float, float]]:
        """(value, log-density) pairs of a 1-D sweep, in grid order."""
        if len(self.axes) != 1:
            raise ValueError("pairs() is only defined for a 1-D sweep")
        return [(float(v), float(ld)) for v, ld in zip(self.values[0], self.log_density)]

    def argmax(self) -> Dict[str, float]:
        """Axis values of the highest-density grid point (faulted points ignored)."""
        ld = np.where(self.ok, self.log_density, -np.inf)
        if not np.any(ld > -np.inf):
            raise ValueError("no grid point has a finite log-density")
        idx = np.unravel_index(int(np.argmax(ld)), self.shape)
        return {name: float(self.values[a][idx[a]]) for a, name in enumerate(self.axes)}

    def to_frame(self) -> pd.DataFrame:
        """One row per grid point: axis values, log_density, status."""
        mesh = np.meshgrid(*self.values, indexing="ij")
        cols: Dict[str, Any] = {name: mesh[a].ravel() for a, name in enumerate(self.axes)}
        cols["log_density"] = self.log_density.ravel()
        cols["status"] = self.status.ravel()
        return pd.DataFrame(cols)


def _chunked(seq, n):
    for k in range(0, len(seq), n):
        yield seq[k:k+n]


def _worker_one(params: Parameters, ctx: tuple) -> float:
    state0, obs, sim, log_prior, t0 = ctx
    return log_density_at(params, state0, obs, sim, log_prior=log_prior, t0=t0)


def _worker_chunk(payload):
    """
    Run a chunk of (flat_index, Parameters) tasks in one process.
    Return: list[(flat_index, log_density, status, err_str)]

    Trajectory faults are captured and returned as failed points.
    Anything else is a programming bug and still raises (fail-fast).
    """
    chunk, ctx = payload
    out = []
    for flat_index, params in chunk:
        try:
            out.append((flat_index, _worker_one(params, ctx), STATUS_OK, ""))
        except TRAJECTORY_FAULTS as e:
            err = f"{type(e).__name__}: {e}"
            if len(err) > 300:
                err = err[:300] + "..."
            out.append((flat_index, float("nan"), fault_label(e), err))
    return out


def _check_axes(axes: Sequence[str], grids: Sequence[ArrayLike]) -> Tuple[Tuple[str, ...], Tuple[NDArray[np.float64], ...]]:
    if not 1 <= len(axes) <= 2:
        raise ValueError(f"profile sweeps one or two axes, got {len(axes)}")
    if len(axes) != len(grids):
        raise ValueError(f"{len(axes)} axes but {len(grids)} grids")
    if len(set(axes)) != len(axes):
        raise ValueError(f"axes must be distinct, got {tuple(axes)}")
    vals = []
    for name, g in zip(axes, grids):
        if name not in AXES:
            raise KeyError(f"Unknown parameter axis '{name}'; valid axes: {AXES}")
        g = np.asarray(g, dtype=np.float64).reshape(-1)
        if g.size == 0:
            raise ValueError(f"grid for axis '{name}' is empty")
        if not np.all(np.isfinite(g)):
            raise ValueError(f"grid for axis '{name}' contains non-finite values")
        g.setflags(write=False)
        vals.append(g)
    return tuple(axes), tuple(vals)


def build_tasks(base: Parameters,
                axes: Tuple[str, ...],
                values: Tuple[NDArray[np.float64], ...]) -> List[Tuple[int, Parameters]]:
    shape = tuple(v.size for v in values)
    tasks = []
    for flat_index, idx in enumerate(np.ndindex(*shape)):
        params = base
        for a, name in enumerate(axes):
            params = params.replace_axis(name, values[a][idx[a]])
        tasks.append((flat_index, params))
    return tasks


def profile(axes: Sequence[str],
            grids: Sequence[ArrayLike],
            base: Parameters,
            state0: StateVector,
            obs: Observations,
            sim: SimParams,
            parallel: ParallelParams = ParallelParams(),
            log_prior: Optional[LogPrior] = None,
            t0: float = 0.0,
            progress: bool = False) -> GridResult:
    """Evaluate the log-density on the Cartesian product of the axis grids.

    With workers != 1, log_prior must be picklable (a module-level function or
    a NormalPrior, not a lambda).
    """
    axes, values = _check_axes(axes, grids)

    # raises OrderingFault / StepAlignmentError before anything is dispatched
    step_indices(obs.t, sim, t0)

    shape = tuple(v.size for v in values)
    tasks = build_tasks(base, axes, values)
    ctx = (state0, obs, sim, log_prior, t0)

    workers = int(parallel.workers) or (os.cpu_count() or 4)
    chunksize = max(1, int(parallel.chunksize))
    task_chunks = list(_chunked(tasks, chunksize))

    ld = np.full(shape, np.nan, dtype=np.float64)
    status = np.full(shape, "pending", dtype=object)
    errors: List[Dict[str, Any]] = []

    def merge(results):
        for flat_index, value, lab, err_str in results:
            idx = np.unravel_index(flat_index, shape)
            ld[idx] = value
            status[idx] = lab
            if err_str:
                rec = {"index": [int(i) for i in idx], "status": lab, "error": err_str}
                for a, name in enumerate(axes):
                    rec[name] = float(values[a][idx[a]])
                errors.append(rec)
                log.warning("grid point %s failed: %s", rec["index"], err_str)

    log.debug("profile over %s: %d points, %d chunks, %d workers",
              axes, len(tasks), len(task_chunks), workers)

    with tqdm(total=len(tasks), disable=not progress) as pbar:
        if workers == 1 or len(task_chunks) == 1:
            for ch in task_chunks:
                results = _worker_chunk((ch, ctx))
                merge(results)
                pbar.update(len(results))
        else:
            with ProcessPoolExecutor(max_workers=workers) as ex:
                futures = [ex.submit(_worker_chunk, (ch, ctx)) for ch in task_chunks]
                for fut in as_completed(futures):
                    results = fut.result()
                    merge(results)
                    pbar.update(len(results))

    errors.sort(key=lambda rec: rec["index"])
    result = GridResult(axes=axes, values=values, log_density=ld, status=status, errors=errors)
    log.info("profile over %s done: %d points, %d failed", axes, len(tasks), result.n_failed)
    return result


def profile_1d(axis: str,
               grid: ArrayLike,
               base: Parameters,
               state0: StateVector,
               obs: Observations,
               sim: SimParams,
               **kwargs) -> GridResult:
    return profile((axis,), (grid,), base, state0, obs, sim, **kwargs)


def profile_2d(axis_x: str,
               grid_x: ArrayLike,
               axis_y: str,
               grid_y: ArrayLike,
               base: Parameters,
               state0: StateVector,
               obs: Observations,
               sim: SimParams,
               **kwargs) -> GridResult:
    """Heatmap sweep; log_density[i, j] is at (grid_x[i], grid_y[j])."""
    return profile((axis_x, axis_y), (grid_x, grid_y), base, state0, obs, sim, **kwargs)

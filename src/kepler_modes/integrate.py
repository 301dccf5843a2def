from __future__ import annotations

import logging
import math
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.integrate import solve_ivp

from .config import Parameters, SimParams
from .errors import OrderingFault, SingularityFault, StepBudgetExceeded
from .rhs import acceleration, rhs_kepler
from .state import StateVector, Trajectory

log = logging.getLogger(__name__)


def validate_times(times: ArrayLike, t0: float = 0.0) -> NDArray[np.float64]:
    """Return times as a float array or raise OrderingFault.

    Times must be strictly ascending and none may precede t0; a time equal
    to t0 requests the initial state.
    """
    t = np.asarray(times, dtype=np.float64).reshape(-1)
    if t.size == 0:
        raise OrderingFault("time grid is empty")
    if not np.all(np.isfinite(t)):
        raise OrderingFault("time grid contains non-finite values")
    if t[0] < t0:
        raise OrderingFault(f"first requested time {t[0]!r} precedes the initial time {t0!r}")
    if t.size > 1 and np.any(np.diff(t) <= 0.0):
        i = int(np.argmax(np.diff(t) <= 0.0))
        raise OrderingFault(f"time grid is not strictly ascending at index {i + 1}: "
                            f"{t[i]!r} -> {t[i + 1]!r}")
    return t


def _step_once(qx: float, qy: float, px: float, py: float,
               params: Parameters,
               sim: SimParams,
               t: float = 0.0) -> tuple[float, float, float, float, bool]:
    """One fixed step on python floats: (qx, qy, px, py, clamped).

    symplectic: kick then drift (semi-implicit Euler), p' = p + dt*F(q), q' = q + dt*p'/m.
    euler:      explicit Euler, both updates from the old state. Short horizons only.
    """
    r_min = sim.r_min
    fx, fy, r = acceleration(qx, qy, params, r_min)
    clamped = False
    if r < r_min:
        if sim.on_singularity != "clamp":
            raise SingularityFault(f"star distance {r:.3e} < r_min={r_min:.3e} at t={t:.6g}",
                                   t=t, r=r)
        clamped = True
    dt = sim.dt
    m = params.m
    if sim.method == "symplectic":
        px += dt*fx; py += dt*fy
        qx += dt*px/m; qy += dt*py/m
    else:
        qx, qy = qx + dt*px/m, qy + dt*py/m
        px += dt*fx; py += dt*fy
    return qx, qy, px, py, clamped


def step(state: StateVector, params: Parameters, sim: SimParams, t: float = 0.0) -> StateVector:
    """Advance the state by exactly one step of sim.dt, under sim's method and singularity policy.

    With on_singularity="clamp" the force is evaluated at r_min; use
    integrate_fixed(..., n_steps=1) when the clamped flag is needed.
    """
    qx, qy, px, py, _ = _step_once(float(state.q[0]), float(state.q[1]),
                                   float(state.p[0]), float(state.p[1]), params, sim, t)
    return StateVector(q=np.array([qx, qy]), p=np.array([px, py]))


def _advance(state0: StateVector,
             params: Parameters,
             sim: SimParams,
             record_at: NDArray[np.int64],
             t0: float = 0.0) -> tuple[NDArray[np.float64], NDArray[np.float64], bool]:
    """Fixed-step loop recording the state after each step count in record_at.

    record_at must be non-decreasing step indices (0 = initial state).
    Runs on python floats; an (N,2) array per record is the only allocation.
    """
    n_total = int(record_at[-1]) if len(record_at) else 0
    if n_total > sim.max_steps:
        raise StepBudgetExceeded(n_total, sim.max_steps)

    if sim.method == "euler":
        log.warning("explicit Euler integration (%d steps, dt=%g) is only accurate "
                    "for short horizons; energy drifts secularly", n_total, sim.dt)

    qx, qy = float(state0.q[0]), float(state0.q[1])
    px, py = float(state0.p[0]), float(state0.p[1])
    dt = float(sim.dt)

    Q = np.empty((len(record_at), 2), dtype=np.float64)
    P = np.empty((len(record_at), 2), dtype=np.float64)

    n = 0
    clamped = False
    for j, target in enumerate(record_at):
        while n < target:
            qx, qy, px, py, hit = _step_once(qx, qy, px, py, params, sim, t0 + n*dt)
            clamped = clamped or hit
            n += 1

        if not (math.isfinite(qx) and math.isfinite(qy) and math.isfinite(px) and math.isfinite(py)):
            raise SingularityFault(f"Non-finite state encountered (nan/inf) at t={t0 + n*dt:.6g}",
                                   t=t0 + n*dt)
        Q[j, 0] = qx; Q[j, 1] = qy
        P[j, 0] = px; P[j, 1] = py

    return Q, P, clamped


def integrate_fixed(state0: StateVector,
                    params: Parameters,
                    sim: SimParams,
                    n_steps: int,
                    t0: float = 0.0) -> Trajectory:
    """Full trajectory at integration resolution: n_steps+1 states including the initial one.

    Cost is O(n_steps). There is no adaptive control: at larger k the orbital
    period shrinks, so a fixed dt gives proportionally more phase error per
    unit time. Shrink dt if accuracy matters there.
    """
    if n_steps < 0:
        raise ValueError(f"n_steps must be >= 0, got {n_steps}")
    record_at = np.arange(n_steps + 1, dtype=np.int64)
    Q, P, clamped = _advance(state0, params, sim, record_at, t0=t0)
    T = t0 + sim.dt*record_at.astype(np.float64)
    log.debug("integrate_fixed: %d steps, dt=%g, clamped=%s", n_steps, sim.dt, clamped)
    return Trajectory(t=T, q=Q, p=P, n_steps=n_steps, clamped=clamped)


def reference_trajectory(state0: StateVector,
                         params: Parameters,
                         times: ArrayLike,
                         t0: float = 0.0,
                         rtol: float = 1e-12,
                         atol: float = 1e-12) -> Trajectory:
    """High-precision adaptive solution (DOP853) at the requested times.

    Used as the yardstick for fixed-step error, not by the scoring pipeline.
    """
    times = validate_times(times, t0)
    if times[-1] == t0:
        y0 = state0.as_array()
        return Trajectory(t=times, q=y0[None, :2], p=y0[None, 2:])

    def fun(t, yy):
        return rhs_kepler(t, yy, params)

    sol = solve_ivp(
        fun, (t0, float(times[-1])), state0.as_array(),
        method="DOP853",
        rtol=rtol, atol=atol,
        t_eval=times,
    )
    if not sol.success:
        raise SingularityFault(f"reference integration failed: {sol.message}")
    Y = sol.y.T
    if not np.all(np.isfinite(Y)):
        raise SingularityFault("Non-finite state encountered (nan/inf) in reference integration")
    return Trajectory(t=sol.t, q=Y[:, :2], p=Y[:, 2:])

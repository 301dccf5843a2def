from __future__ import annotations

import math
import numpy as np
from numpy.typing import NDArray
from .config import Parameters


def acceleration(qx: float, qy: float, params: Parameters, r_floor: float = 0.0) -> tuple[float, float, float]:
    """Force on the planet, dp/dt = -(k/r^3)(q - q_star). Scalar, allocation-free.

    Returns (fx, fy, r) where r is the true (unclamped) star distance.
    If r_floor > 0 the force is evaluated at max(r, r_floor).
    """
    dx = qx - params.q_star[0]
    dy = qy - params.q_star[1]
    r = math.sqrt(dx*dx + dy*dy)
    r_eff = r if r >= r_floor else r_floor
    s = -params.k / (r_eff*r_eff*r_eff)
    return s*dx, s*dy, r


def rhs_kepler(t: float, y: NDArray[np.float64], params: Parameters) -> NDArray[np.float64]:
    """Hamiltonian two-body RHS in solve_ivp layout y = [qx, qy, px, py]."""
    qx, qy, px, py = y[0], y[1], y[2], y[3]
    fx, fy, _ = acceleration(qx, qy, params)

    out = np.empty_like(y)
    out[0] = px / params.m; out[1] = py / params.m
    out[2] = fx; out[3] = fy
    return out


def star_distance(q: NDArray[np.float64], params: Parameters) -> NDArray[np.float64]:
    """|q - q_star| for q of shape (2,) or (N, 2)."""
    d = np.asarray(q, dtype=float) - np.asarray(params.q_star, dtype=float)
    return np.linalg.norm(d, axis=-1)


def energy(q: NDArray[np.float64], p: NDArray[np.float64], params: Parameters) -> NDArray[np.float64]:
    """H = |p|^2/(2m) - k/r, vectorised over leading axes."""
    p = np.asarray(p, dtype=float)
    KE = 0.5*np.sum(p*p, axis=-1) / params.m
    PE = -params.k / star_distance(q, params)
    return KE + PE


def angular_momentum(q: NDArray[np.float64], p: NDArray[np.float64], params: Parameters) -> NDArray[np.float64]:
    """Scalar z angular momentum about the star."""
    d = np.asarray(q, dtype=float) - np.asarray(params.q_star, dtype=float)
    p = np.asarray(p, dtype=float)
    return d[..., 0]*p[..., 1] - d[..., 1]*p[..., 0]


def orbital_period(q: NDArray[np.float64], p: NDArray[np.float64], params: Parameters) -> float:
    """Keplerian period 2*pi*sqrt(a^3/mu) with mu = k/m, from vis-viva."""
    mu = params.k / params.m
    r = float(star_distance(q, params))
    v = np.asarray(p, dtype=float) / params.m
    eps = 0.5*float(np.dot(v, v)) - mu/r
    if eps >= 0.0:
        raise ValueError(f"orbit is unbound (specific energy {eps:.6g} >= 0); no period")
    a = -mu / (2.0*eps)
    return float(2.0*np.pi*np.sqrt(a**3 / mu))

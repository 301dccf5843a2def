from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union
import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray


def _frozen(a: ArrayLike) -> NDArray[np.float64]:
    out = np.array(a, dtype=np.float64)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class StateVector:
    """Planar Hamiltonian state: position q and momentum p.

    Layout used by the ODE right-hand side:
      y = [qx, qy, px, py]
    """
    q: NDArray[np.float64]
    p: NDArray[np.float64]

    def __post_init__(self):
        q = _frozen(self.q)
        p = _frozen(self.p)
        if q.shape != (2,) or p.shape != (2,):
            raise ValueError(f"q and p must be 2-vectors, got shapes {q.shape} and {p.shape}")
        object.__setattr__(self, "q", q)
        object.__setattr__(self, "p", p)

    def as_array(self) -> NDArray[np.float64]:
        return np.hstack([self.q, self.p]).astype(np.float64)

    @classmethod
    def from_array(cls, y: ArrayLike) -> "StateVector":
        y = np.asarray(y, dtype=np.float64)
        return cls(q=y[:2], p=y[2:4])


@dataclass(frozen=True, eq=False)
class Observations:
    """Measured positions with per-axis Gaussian noise scales.

    t: (N,), q: (N, 2), sigma: (N, 2). A scalar sigma, or one (sx, sy) pair,
    is broadcast to every time.
    """
    t: NDArray[np.float64]
    q: NDArray[np.float64]
    sigma: NDArray[np.float64]

    def __post_init__(self):
        t = np.asarray(self.t, dtype=np.float64).reshape(-1)
        q = np.asarray(self.q, dtype=np.float64)
        if q.shape != (t.size, 2):
            raise ValueError(f"q must have shape ({t.size}, 2), got {q.shape}")
        sigma = np.broadcast_to(np.asarray(self.sigma, dtype=np.float64), q.shape)
        if not np.all(np.isfinite(q)):
            raise ValueError("observed positions must be finite")
        if not np.all(sigma > 0.0):
            raise ValueError("sigma must be strictly positive")
        object.__setattr__(self, "t", _frozen(t))
        object.__setattr__(self, "q", _frozen(q))
        object.__setattr__(self, "sigma", _frozen(sigma))

    def __len__(self) -> int:
        return int(self.t.size)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "t": self.t,
            "x": self.q[:, 0],
            "y": self.q[:, 1],
            "sigma_x": self.sigma[:, 0],
            "sigma_y": self.sigma[:, 1],
        })


def observations_from_frame(df: pd.DataFrame) -> Observations:
    """Build Observations from a table with columns t, x, y, sigma_x, sigma_y."""
    missing = [c for c in ("t", "x", "y", "sigma_x", "sigma_y") if c not in df.columns]
    if missing:
        raise ValueError(f"observation table is missing columns {missing}")
    return Observations(
        t=df["t"].to_numpy(dtype=float),
        q=df[["x", "y"]].to_numpy(dtype=float),
        sigma=df[["sigma_x", "sigma_y"]].to_numpy(dtype=float),
    )


def initial_state(q0: Sequence[float] = (1.0, 0.0),
                  p0: Sequence[float] = (0.0, 1.0)) -> StateVector:
    """Initial condition of the study: circular orbit for k = m = 1."""
    return StateVector(q=np.asarray(q0, dtype=np.float64), p=np.asarray(p0, dtype=np.float64))


@dataclass(frozen=True, eq=False)
class Trajectory:
    """States at an ordered sequence of times.

    Built fresh by every integration call; the arrays are read-only.
    n_steps is the number of fixed steps taken (0 for the adaptive reference).
    clamped is set when the force had to be evaluated at the singularity floor.
    """
    t: NDArray[np.float64]
    q: NDArray[np.float64]
    p: NDArray[np.float64]
    n_steps: int = 0
    clamped: bool = False

    def __post_init__(self):
        object.__setattr__(self, "t", _frozen(self.t))
        object.__setattr__(self, "q", _frozen(self.q))
        object.__setattr__(self, "p", _frozen(self.p))

    def __len__(self) -> int:
        return int(self.t.size)

    def state_at(self, i: int) -> StateVector:
        return StateVector(q=self.q[i], p=self.p[i])


SigmaLike = Union[float, Sequence[float], NDArray[np.float64]]

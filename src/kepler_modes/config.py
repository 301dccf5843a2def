from __future__ import annotations

from dataclasses import dataclass, asdict, field, replace
from typing import Any, Dict, List, Optional, Tuple
import json


METHODS = ("symplectic", "euler")
SINGULARITY_POLICIES = ("raise", "clamp")

# scalar names a grid sweep may vary
AXES = ("k", "m", "q_star_x", "q_star_y")


@dataclass(frozen=True)
class Parameters:
    # gravitational coupling (k > 0 expected, not enforced)
    k: float

    # planet mass, fixed to 1 in the study
    m: float = 1.0

    # star position
    q_star: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        # JSON round trips hand back lists
        object.__setattr__(self, "q_star", (float(self.q_star[0]), float(self.q_star[1])))

    def get_axis(self, name: str) -> float:
        if name == "q_star_x":
            return self.q_star[0]
        if name == "q_star_y":
            return self.q_star[1]
        if name in ("k", "m"):
            return float(getattr(self, name))
        raise KeyError(f"Unknown parameter axis '{name}'; valid axes: {AXES}")

    def replace_axis(self, name: str, value: float) -> "Parameters":
        """Return a copy with one scalar axis replaced."""
        value = float(value)
        if name == "q_star_x":
            return replace(self, q_star=(value, self.q_star[1]))
        if name == "q_star_y":
            return replace(self, q_star=(self.q_star[0], value))
        if name in ("k", "m"):
            return replace(self, **{name: value})
        raise KeyError(f"Unknown parameter axis '{name}'; valid axes: {AXES}")


@dataclass(frozen=True)
class SimParams:
    # fixed step size
    dt: float = 1e-3

    # "symplectic" (semi-implicit Euler) or "euler" (explicit, short horizons only)
    method: str = "symplectic"

    # --- numerical safety rails ---
    # Star-planet distance below which the force is considered singular.
    r_min: float = 1e-6
    # "raise" -> SingularityFault, "clamp" -> evaluate force at r_min and flag
    # the trajectory so its density degrades to -inf.
    on_singularity: str = "raise"

    # Hard ceiling on steps for a single trajectory.
    max_steps: int = 5_000_000

    # Relative tolerance for a requested time to count as step-aligned.
    align_tol: float = 1e-9

    def __post_init__(self):
        if not self.dt > 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.method not in METHODS:
            raise ValueError(f"Unknown method '{self.method}'; expected one of {METHODS}")
        if self.on_singularity not in SINGULARITY_POLICIES:
            raise ValueError(f"Unknown on_singularity '{self.on_singularity}'; "
                             f"expected one of {SINGULARITY_POLICIES}")
        if not self.r_min > 0.0:
            raise ValueError(f"r_min must be positive, got {self.r_min}")
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {self.max_steps}")


@dataclass(frozen=True)
class ParallelParams:
    workers: int = 1  # 0 => use os.cpu_count(), 1 => in-process
    chunksize: int = 8


@dataclass(frozen=True)
class AxisSpec:
    name: str
    start: float
    stop: float
    num: int

    def values(self) -> List[float]:
        if self.num < 1:
            raise ValueError(f"axis '{self.name}' needs num >= 1")
        if self.num == 1:
            return [float(self.start)]
        step = (float(self.stop) - float(self.start)) / (self.num - 1)
        return [float(self.start) + i*step for i in range(self.num)]


@dataclass(frozen=True)
class ObservationSpec:
    # either a CSV with columns t,x,y,sigma_x,sigma_y ...
    csv_path: Optional[str] = None

    # ... or synthetic data at the "true" parameters
    true_params: Optional[Parameters] = None
    t_start: float = 0.1
    t_stop: float = 4.0
    n_times: int = 40
    sigma: float = 0.01
    seed: int = 1954


@dataclass(frozen=True)
class ProfileConfig:
    base: Parameters
    axes: List[AxisSpec]

    # initial state
    q0: Tuple[float, float] = (1.0, 0.0)
    p0: Tuple[float, float] = (0.0, 1.0)
    t0: float = 0.0

    observations: ObservationSpec = field(default_factory=ObservationSpec)
    prior: Optional[Dict[str, float]] = None

    sim: SimParams = field(default_factory=SimParams)
    parallel: ParallelParams = field(default_factory=ParallelParams)

    out_dir: str = "out_profile"


def _dataclass_from_dict(cls, d: Dict[str, Any]):
    # allow passing dict for nested dataclasses
    kwargs = {}
    for f in cls.__dataclass_fields__.values():  # type: ignore
        if f.name not in d:
            continue
        kwargs[f.name] = d[f.name]
    return cls(**kwargs)  # type: ignore


def load_profile_config(path: str) -> ProfileConfig:
    with open(path, "r", encoding="utf-8") as f:
        d = json.load(f)
    return profile_config_from_dict(d)


def profile_config_from_dict(d: Dict[str, Any]) -> ProfileConfig:
    d = dict(d)
    if "base" not in d or "axes" not in d:
        raise ValueError("profile config needs 'base' and 'axes'")
    d["base"] = _dataclass_from_dict(Parameters, d["base"])
    d["axes"] = [_dataclass_from_dict(AxisSpec, a) for a in d["axes"]]
    if not 1 <= len(d["axes"]) <= 2:
        raise ValueError(f"profile config needs one or two axes, got {len(d['axes'])}")
    if "observations" in d:
        obs = dict(d["observations"])
        if obs.get("true_params") is not None:
            obs["true_params"] = _dataclass_from_dict(Parameters, obs["true_params"])
        d["observations"] = _dataclass_from_dict(ObservationSpec, obs)
    if "sim" in d:
        d["sim"] = _dataclass_from_dict(SimParams, d["sim"])
    if "parallel" in d:
        d["parallel"] = _dataclass_from_dict(ParallelParams, d["parallel"])
    for key in ("q0", "p0"):
        if key in d:
            d[key] = (float(d[key][0]), float(d[key][1]))
    return _dataclass_from_dict(ProfileConfig, d)


def to_json(obj: Any, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(obj), f, indent=2)

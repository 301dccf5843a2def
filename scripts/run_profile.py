#!/usr/bin/env python
from __future__ import annotations

import os
import json
import logging
import argparse
from dataclasses import asdict
import numpy as np
import pandas as pd

from kepler_modes.config import ProfileConfig, load_profile_config, to_json
from kepler_modes.likelihood import NormalPrior
from kepler_modes.profile import profile
from kepler_modes.state import Observations, initial_state, observations_from_frame
from kepler_modes.synthetic import make_synthetic_observations

log = logging.getLogger("run_profile")


def _set_thread_env():
    # Avoid oversubscription when also using multiple processes.
    os.environ.setdefault("OMP_NUM_THREADS", "1")
    os.environ.setdefault("OPENBLAS_NUM_THREADS", "1")
    os.environ.setdefault("MKL_NUM_THREADS", "1")
    os.environ.setdefault("VECLIB_MAXIMUM_THREADS", "1")
    os.environ.setdefault("NUMEXPR_NUM_THREADS", "1")


def build_observations(cfg: ProfileConfig) -> Observations:
    src = cfg.observations
    if src.csv_path:
        return observations_from_frame(pd.read_csv(src.csv_path))
    true_params = src.true_params if src.true_params is not None else cfg.base
    if src.n_times == 1:
        times = np.array([src.t_start])
    else:
        times = np.linspace(src.t_start, src.t_stop, src.n_times)
    return make_synthetic_observations(initial_state(cfg.q0, cfg.p0), true_params, cfg.sim,
                                       times, sigma=src.sigma, seed=src.seed, t0=cfg.t0)


def main():
    _set_thread_env()
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", required=True, help="Path to profile JSON config")
    ap.add_argument("--log-level", default="INFO")
    ap.add_argument("--no-progress", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    cfg = load_profile_config(args.config)
    out_dir = cfg.out_dir
    os.makedirs(out_dir, exist_ok=True)

    obs = build_observations(cfg)
    obs.to_frame().to_csv(os.path.join(out_dir, "observations.csv"), index=False)

    log_prior = NormalPrior(**cfg.prior) if cfg.prior is not None else None

    res = profile(
        axes=[a.name for a in cfg.axes],
        grids=[a.values() for a in cfg.axes],
        base=cfg.base,
        state0=initial_state(cfg.q0, cfg.p0),
        obs=obs,
        sim=cfg.sim,
        parallel=cfg.parallel,
        log_prior=log_prior,
        t0=cfg.t0,
        progress=not args.no_progress,
    )

    np.save(os.path.join(out_dir, "log_density.npy"), res.log_density)
    for name, vals in zip(res.axes, res.values):
        np.save(os.path.join(out_dir, f"{name}_vals.npy"), vals)
    res.to_frame().to_csv(os.path.join(out_dir, "profile.csv"), index=False)

    err_path = os.path.join(out_dir, "errors.jsonl")
    with open(err_path, "w", encoding="utf-8") as ef:
        for rec in res.errors:
            ef.write(json.dumps(rec) + "\n")

    to_json(cfg, os.path.join(out_dir, "config_used.json"))

    log.info("Saved profile outputs to: %s", out_dir)
    if np.any(res.ok & (res.log_density > -np.inf)):
        log.info("Best grid point: %s", res.argmax())
    log.info("Failed grid points logged: %d -> %s", res.n_failed, err_path)
    log.debug("config: %s", asdict(cfg))


if __name__ == "__main__":
    main()

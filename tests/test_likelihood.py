import math

import numpy as np
import pytest
from scipy.stats import norm

from kepler_modes.config import Parameters, SimParams
from kepler_modes.likelihood import (
    NormalPrior,
    gaussian_constant,
    gaussian_log_likelihood,
    log_density,
    log_density_at,
)
from kepler_modes.sampler import sample_trajectory
from kepler_modes.state import Observations, Trajectory, initial_state
from kepler_modes.synthetic import make_synthetic_observations, study_times


def noiseless_obs(params=Parameters(k=1.0), sigma=0.01):
    return make_synthetic_observations(initial_state(), params, SimParams(), study_times(),
                                       sigma=sigma, seed=None)


def test_perfect_fit_is_constant_term_only():
    obs = noiseless_obs()
    traj = sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), obs.t)
    ld = log_density(traj, obs)
    expected = -80*math.log(0.01) - 40*math.log(2*math.pi)
    assert ld == pytest.approx(expected, rel=1e-12)
    assert gaussian_constant(obs) == pytest.approx(expected, rel=1e-12)


def test_gaussian_sum_matches_closed_form():
    t = np.array([1.0, 2.0])
    q_obs = np.array([[1.0, 0.0], [0.0, 1.0]])
    sigma = np.array([[0.1, 0.2], [0.1, 0.2]])
    obs = Observations(t=t, q=q_obs, sigma=sigma)
    q_sim = q_obs + np.array([[0.1, 0.0], [0.0, -0.4]])

    resid = (q_obs - q_sim) / sigma
    expected = float(np.sum(-0.5*resid**2 - np.log(sigma) - 0.5*np.log(2*np.pi)))
    assert gaussian_log_likelihood(q_sim, obs) == pytest.approx(expected, rel=1e-12)
    # misfit costs density
    assert gaussian_log_likelihood(q_sim, obs) < gaussian_constant(obs)


def test_prior_added_once():
    obs = noiseless_obs()
    params = Parameters(k=1.1)
    traj = sample_trajectory(initial_state(), params, SimParams(), obs.t)
    prior = NormalPrior()
    flat = log_density(traj, obs)
    with_prior = log_density(traj, obs, params=params, log_prior=prior)
    assert with_prior == pytest.approx(flat + prior(params), rel=1e-12)


def test_prior_needs_params():
    obs = noiseless_obs()
    traj = sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), obs.t)
    with pytest.raises(ValueError):
        log_density(traj, obs, log_prior=NormalPrior())


def test_zero_mass_prior_is_degenerate_not_fault():
    obs = noiseless_obs()
    params = Parameters(k=-0.5)
    traj = sample_trajectory(initial_state(), params, SimParams(), obs.t)
    assert log_density(traj, obs, params=params, log_prior=NormalPrior()) == -math.inf


def test_clamped_trajectory_scores_minus_inf():
    obs = noiseless_obs()
    traj = Trajectory(t=obs.t, q=obs.q, p=np.zeros_like(obs.q), n_steps=4000, clamped=True)
    assert log_density(traj, obs) == -math.inf


def test_clamped_pipeline_scores_minus_inf():
    # straight flight through a star sitting at (1, 2)
    params = Parameters(k=1e-6, q_star=(1.0, 2.0))
    obs = noiseless_obs(Parameters(k=1e-6, q_star=(1.0, -1.0)))
    sim = SimParams(r_min=0.05, on_singularity="clamp")
    assert log_density_at(params, initial_state(), obs, sim) == -math.inf


def test_mismatched_inputs_rejected():
    obs = noiseless_obs()
    traj = sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), obs.t[:10])
    with pytest.raises(ValueError):
        log_density(traj, obs)

    shifted = sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), obs.t + 0.001)
    with pytest.raises(ValueError):
        log_density(shifted, obs)


def test_log_density_at_matches_manual_pipeline():
    obs = make_synthetic_observations(initial_state(), Parameters(k=1.0), SimParams(), study_times(),
                                      sigma=0.01, seed=7)
    params = Parameters(k=0.95)
    traj = sample_trajectory(initial_state(), params, SimParams(), obs.t)
    assert log_density_at(params, initial_state(), obs, SimParams()) == log_density(traj, obs)


def test_normal_prior_values():
    prior = NormalPrior()
    params = Parameters(k=1.0, q_star=(0.0, 0.0))
    expected = norm.logpdf(1.0, 0.0, 1.0) + 2*norm.logpdf(0.0, 0.0, 0.5)
    assert prior(params) == pytest.approx(expected, rel=1e-12)
    assert prior(Parameters(k=0.0)) == -math.inf

    flat_star = NormalPrior(q_star_scale=None)
    assert flat_star(Parameters(k=1.0, q_star=(5.0, 5.0))) == pytest.approx(norm.logpdf(1.0, 0.0, 1.0))

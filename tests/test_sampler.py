import numpy as np
import pytest

from kepler_modes.config import Parameters, SimParams
from kepler_modes.errors import OrderingFault, StepAlignmentError, StepBudgetExceeded
from kepler_modes.integrate import integrate_fixed, reference_trajectory
from kepler_modes.sampler import positions_at, sample_trajectory, step_indices, validate_times
from kepler_modes.state import initial_state
from kepler_modes.synthetic import study_times


def test_study_scenario_reproduces_reference_orbit():
    # q0=(1,0), p0=(0,1), k=1, m=1, dt=0.001, t = i/10 for i = 1..40
    params = Parameters(k=1.0, m=1.0)
    state0 = initial_state((1.0, 0.0), (0.0, 1.0))
    times = study_times()
    assert times.size == 40 and times[0] == pytest.approx(0.1) and times[-1] == pytest.approx(4.0)

    traj = sample_trajectory(state0, params, SimParams(dt=0.001), times)
    assert traj.q.shape == (40, 2)
    assert traj.n_steps == 4000
    assert not traj.clamped

    ref = reference_trajectory(state0, params, times)
    np.testing.assert_allclose(traj.q, ref.q, atol=1e-2)
    # circular orbit of radius one: (cos t, sin t)
    analytic = np.stack([np.cos(times), np.sin(times)], axis=1)
    np.testing.assert_allclose(ref.q, analytic, atol=1e-8)


def test_samples_land_on_integrator_steps():
    params = Parameters(k=1.0)
    state0 = initial_state()
    sim = SimParams(dt=0.01)
    full = integrate_fixed(state0, params, sim, n_steps=300)
    traj = sample_trajectory(state0, params, sim, [0.5, 1.0, 3.0])
    assert np.array_equal(traj.q, full.q[[50, 100, 300]])
    assert np.array_equal(traj.p, full.p[[50, 100, 300]])


def test_repeat_calls_are_identical_and_fresh():
    params = Parameters(k=0.8)
    state0 = initial_state()
    sim = SimParams()
    a = positions_at(state0, params, sim, study_times())
    b = positions_at(state0, params, sim, study_times())
    assert np.array_equal(a, b)
    assert a is not b


def test_nonzero_initial_time():
    params = Parameters(k=1.0)
    state0 = initial_state()
    sim = SimParams(dt=0.01)
    shifted = sample_trajectory(state0, params, sim, [10.5, 11.0], t0=10.0)
    plain = sample_trajectory(state0, params, sim, [0.5, 1.0])
    assert np.array_equal(shifted.q, plain.q)
    assert np.array_equal(shifted.t, [10.5, 11.0])


@pytest.mark.parametrize("times", [
    [0.2, 0.1, 0.3],
    [0.1, 0.1, 0.2],
    [-0.1, 0.1],
    [],
    [0.1, np.nan],
])
def test_ordering_fault(times):
    with pytest.raises(OrderingFault):
        validate_times(times)
    with pytest.raises(OrderingFault):
        sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), times)


def test_time_equal_to_initial_time_returns_initial_state():
    assert np.array_equal(validate_times([0.0, 0.1]), [0.0, 0.1])
    state0 = initial_state()
    traj = sample_trajectory(state0, Parameters(k=1.0), SimParams(), [0.0, 0.1])
    assert np.array_equal(traj.q[0], state0.q)
    assert np.array_equal(traj.p[0], state0.p)
    assert traj.n_steps == 100
    full = integrate_fixed(state0, Parameters(k=1.0), SimParams(), n_steps=100)
    assert np.array_equal(traj.q[1], full.q[100])

    shifted = sample_trajectory(state0, Parameters(k=1.0), SimParams(), [2.0], t0=2.0)
    assert np.array_equal(shifted.q[0], state0.q)
    assert shifted.n_steps == 0


def test_times_before_initial_time():
    with pytest.raises(OrderingFault):
        sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(), [0.5, 1.0], t0=0.7)


def test_step_alignment_required():
    sim = SimParams(dt=0.01)
    assert list(step_indices([0.1, 0.25], sim)) == [10, 25]
    with pytest.raises(StepAlignmentError):
        step_indices([0.1, 0.105], sim)
    with pytest.raises(ValueError):
        sample_trajectory(initial_state(), Parameters(k=1.0), sim, [0.1, 0.1234])


def test_step_budget_checked_before_integrating():
    with pytest.raises(StepBudgetExceeded):
        sample_trajectory(initial_state(), Parameters(k=1.0), SimParams(max_steps=100), study_times())

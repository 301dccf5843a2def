"""Fault taxonomy for trajectory simulation and scoring.

Faults local to one trajectory (singularity, step budget) are caught by the
grid profiler and recorded per grid point. Ordering and alignment faults are
input errors and always reach the caller.

A zero-probability density is not a fault: it is returned as ``-inf``.
"""

from __future__ import annotations


class KeplerModesError(Exception):
    """Base class for all package faults."""


class SingularityFault(KeplerModesError, FloatingPointError):
    """Star-planet distance fell below the safety threshold, or the state went non-finite."""

    def __init__(self, message: str, t: float = float("nan"), r: float = float("nan")):
        super().__init__(message)
        self.t = float(t)
        self.r = float(r)


class OrderingFault(KeplerModesError, ValueError):
    """Requested times are not strictly ascending or precede the initial time."""


class StepAlignmentError(KeplerModesError, ValueError):
    """A requested time does not land on an integer multiple of dt."""


class StepBudgetExceeded(KeplerModesError, RuntimeError):
    """A trajectory needs more steps than the configured ceiling."""

    def __init__(self, n_steps: int, max_steps: int):
        super().__init__(f"trajectory needs {n_steps} steps, ceiling is {max_steps}")
        self.n_steps = int(n_steps)
        self.max_steps = int(max_steps)


# Faults that invalidate a single trajectory but not a whole sweep.
TRAJECTORY_FAULTS = (SingularityFault, StepBudgetExceeded)


def fault_label(exc: BaseException) -> str:
    if isinstance(exc, SingularityFault):
        return "singularity"
    if isinstance(exc, StepBudgetExceeded):
        return "step_budget"
    return "failed"

"""
Integrator
==========

Advances the thermal PID model over a fixed time grid.

Uses scipy's LSODA (automatic stiff / non-stiff switching with error
control) internally, but reports samples only at the requested grid points.
A run that fails to converge is returned flagged instead of raising, so the
optimizer can score it and move on.
"""

import logging
import math
from dataclasses import dataclass
from functools import cached_property
from typing import Optional

import numpy as np
from scipy.integrate import solve_ivp

from .exceptions import InvalidConfiguration
from .parameters import INITIAL_STATE, ParameterSet, SimulationState
from .thermal_model import control_law, pid_derivatives

logger = logging.getLogger(__name__)


# Solver tolerances (relative and absolute)
RTOL = 1e-6
ATOL = 1e-6


def time_grid(start: float = 0.0, stop: float = 300.0, step: float = 0.1) -> np.ndarray:
    """
    Evenly spaced time grid from start, ending at the last step not past stop.

    The default (0 to 300 s at 0.1 s) has 3001 points.
    """
    if step <= 0:
        raise InvalidConfiguration(f"step must be > 0, got {step}")
    if stop <= start:
        raise InvalidConfiguration(f"stop ({stop}) must be greater than start ({start})")

    # Last point is the final whole step that does not pass stop
    n_points = int(math.floor((stop - start) / step + 1e-9)) + 1
    if n_points < 2:
        raise InvalidConfiguration(f"step ({step}) is longer than the span {stop - start}")
    return np.linspace(start, start + (n_points - 1) * step, n_points)


DEFAULT_GRID = time_grid()


def _check_grid(grid: np.ndarray) -> np.ndarray:
    grid = np.asarray(grid, dtype=float)
    if grid.ndim != 1 or len(grid) < 2:
        raise InvalidConfiguration("time grid needs at least two points")
    if not np.all(np.isfinite(grid)):
        raise InvalidConfiguration("time grid must be finite")

    steps = np.diff(grid)
    if np.any(steps <= 0):
        raise InvalidConfiguration("time grid must be strictly increasing")
    if not np.allclose(steps, steps[0], rtol=1e-6, atol=1e-12):
        raise InvalidConfiguration("time grid must have a fixed step")
    return grid


@dataclass(frozen=True, eq=False)
class Trajectory:
    """
    Sampled solution of one run.

    Arrays share one index: sample i was taken at time[i]. An unstable run
    holds only the finite samples reached before the solver gave up.
    """
    time: np.ndarray
    temperature: np.ndarray
    error_sum: np.ndarray
    prev_error: np.ndarray
    parameters: ParameterSet
    unstable: bool = False
    message: str = ""

    def __len__(self) -> int:
        return len(self.time)

    @property
    def dt(self) -> float:
        return float(self.time[1] - self.time[0]) if len(self.time) > 1 else 0.0

    @cached_property
    def output(self) -> np.ndarray:
        """Heater output the control law applies at each sample."""
        p = self.parameters
        return np.array([
            control_law(p, T, S, E).output
            for T, S, E in zip(self.temperature, self.error_sum, self.prev_error)
        ])


def run_simulation(
    parameters: ParameterSet,
    initial_state: SimulationState = INITIAL_STATE,
    grid: Optional[np.ndarray] = None
) -> Trajectory:
    """
    Integrate the closed loop over ``grid``.

    Args:
        parameters: Gains, plant and actuator limits
        initial_state: State at grid[0]
        grid: Sample times (default: 0..300 s at 0.1 s)

    Returns:
        Trajectory with one sample per grid point, or the finite leading
        samples flagged ``unstable`` if integration broke down.
    """
    grid = DEFAULT_GRID if grid is None else _check_grid(grid)
    y0 = initial_state.to_array()

    with np.errstate(over='ignore', invalid='ignore'):
        sol = solve_ivp(
            pid_derivatives,
            (grid[0], grid[-1]),
            y0,
            method='LSODA',
            t_eval=grid,
            args=(parameters,),
            rtol=RTOL,
            atol=ATOL,
        )

    y = sol.y
    finite = np.all(np.isfinite(y), axis=0)
    n_valid = len(finite) if finite.all() else int(np.argmin(finite))

    unstable = (not sol.success) or n_valid < len(grid)
    if unstable:
        message = sol.message if not sol.success else "non-finite state"
        logger.warning(
            "Numerically unstable run (%s) for %r after %d/%d samples",
            message, parameters.gains, n_valid, len(grid)
        )
    else:
        message = ""
        logger.debug("Integrated %d samples (nfev=%d) for %r",
                     n_valid, sol.nfev, parameters.gains)

    return Trajectory(
        time=sol.t[:n_valid],
        temperature=y[0, :n_valid],
        error_sum=y[1, :n_valid],
        prev_error=y[2, :n_valid],
        parameters=parameters,
        unstable=unstable,
        message=message,
    )

from __future__ import annotations

import numpy as np
import pytest

from hotend_tuner.integrator import Trajectory, time_grid
from hotend_tuner.parameters import ParameterSet


@pytest.fixture
def default_params() -> ParameterSet:
    """Default hotend parameters (Kp=1, Ki=0.02, Kd=0.1, setpoint 200 °C)."""
    return ParameterSet()


@pytest.fixture
def short_grid() -> np.ndarray:
    """0..30 s at 0.1 s, enough to see the first approach to the setpoint."""
    return time_grid(0.0, 30.0, 0.1)


def make_trajectory(temperatures, dt: float = 0.1, unstable: bool = False) -> Trajectory:
    """Trajectory with the given temperatures and zeroed controller states."""
    temperature = np.asarray(temperatures, dtype=float)
    n = len(temperature)
    return Trajectory(
        time=np.arange(n) * dt,
        temperature=temperature,
        error_sum=np.zeros(n),
        prev_error=np.zeros(n),
        parameters=ParameterSet(),
        unstable=unstable,
    )

"""
Simulation Parameters
=====================

Configuration bundles for one closed-loop run:

- PIDGains: controller gains (Kp, Ki, Kd)
- ParameterSet: gains plus the thermal plant and actuator limits
- SimulationState: state vector [temperature, error_sum, prev_error]

All three are immutable. A ParameterSet is validated on construction, so an
instance that exists is always safe to integrate.
"""

import math
from dataclasses import dataclass, fields, replace

import numpy as np

from .exceptions import InvalidConfiguration


@dataclass(frozen=True)
class PIDGains:
    """PID controller gains."""
    Kp: float = 1.0
    Ki: float = 0.02
    Kd: float = 0.1

    def to_array(self) -> np.ndarray:
        return np.array([self.Kp, self.Ki, self.Kd])

    @classmethod
    def from_array(cls, arr: np.ndarray) -> 'PIDGains':
        return cls(Kp=float(arr[0]), Ki=float(arr[1]), Kd=float(arr[2]))

    def format(self) -> str:
        """Two-decimal summary shown next to the gain controls."""
        return f"Kp = {self.Kp:.2f}, Ki = {self.Ki:.2f}, Kd = {self.Kd:.2f}"

    def __repr__(self):
        return f"PIDGains(Kp={self.Kp:.4f}, Ki={self.Ki:.4f}, Kd={self.Kd:.4f})"


@dataclass(frozen=True)
class ParameterSet:
    """
    Everything one simulation run needs besides the initial state.

    Thermal plant (first-order, Newtonian cooling):
        dT/dt = efficiency * u - decay_rate * (T - ambient_temp)

    Where u is the PID output clamped to [min_output, max_output] and forced
    to 0 while T > max_temperature.
    """
    # Controller gains
    Kp: float = 1.0
    Ki: float = 0.02
    Kd: float = 0.1

    # Physical properties
    decay_rate: float = 0.1    # 1/s
    efficiency: float = 0.2    # °C/s per unit of output

    # Temperatures (°C)
    ambient_temp: float = 25.0
    setpoint: float = 200.0

    # Actuator limits
    max_output: float = 100.0
    min_output: float = 0.0

    # Heater cut-off
    max_temperature: float = 250.0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            try:
                finite = math.isfinite(value)
            except TypeError:
                raise InvalidConfiguration(
                    f"{f.name} must be a real number, got {value!r}"
                ) from None
            if not finite:
                raise InvalidConfiguration(f"{f.name} must be finite, got {value!r}")
        if self.min_output > self.max_output:
            raise InvalidConfiguration(
                f"min_output ({self.min_output}) must not exceed "
                f"max_output ({self.max_output})"
            )

    @property
    def gains(self) -> PIDGains:
        return PIDGains(Kp=self.Kp, Ki=self.Ki, Kd=self.Kd)

    def with_gains(self, gains: PIDGains) -> 'ParameterSet':
        """Copy of this parameter set with different controller gains."""
        return replace(self, Kp=gains.Kp, Ki=gains.Ki, Kd=gains.Kd)


@dataclass(frozen=True)
class SimulationState:
    """Integrated state. Defaults are the cold-start initial condition."""
    temperature: float = 25.0
    error_sum: float = 0.0
    prev_error: float = 0.0

    def to_array(self) -> np.ndarray:
        return np.array([self.temperature, self.error_sum, self.prev_error], dtype=float)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> 'SimulationState':
        return cls(
            temperature=float(arr[0]),
            error_sum=float(arr[1]),
            prev_error=float(arr[2]),
        )


INITIAL_STATE = SimulationState()

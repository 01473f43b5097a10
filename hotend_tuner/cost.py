"""
Tracking-Quality Cost
=====================

Composite cost used to rank PID gains:

    J = Σ(T - sp)²                      tracking error
      + 10 · Σ max(0, T - sp)²          overshoot
      + 10 · k_settle                   stabilization (first sample in ±5 °C)
      + 5 · Σ(T_{k+1} - T_k)²           oscillation

Overshoot is penalized ten times harder than plain tracking error, and a
rough trajectory five times harder. Unstable or truncated runs get a
sentinel that is worse than any finite cost.

Also provides classical step-response metrics (settling time, overshoot,
rise time) for reporting.
"""

import sys
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .exceptions import InvalidConfiguration
from .integrator import Trajectory


# Worse than (or equal to) any finite cost
INSTABILITY_PENALTY = sys.float_info.max


@dataclass(frozen=True)
class CostWeights:
    """Weights of the composite cost."""
    tracking: float = 1.0
    overshoot: float = 10.0
    stabilization: float = 10.0   # per sample before entering the band
    oscillation: float = 5.0
    band: float = 5.0             # °C

    def __post_init__(self):
        for name in ('tracking', 'overshoot', 'stabilization', 'oscillation'):
            if getattr(self, name) < 0:
                raise InvalidConfiguration(f"weight {name} must be >= 0")
        if self.band <= 0:
            raise InvalidConfiguration("band must be > 0")


DEFAULT_WEIGHTS = CostWeights()


@dataclass(frozen=True)
class CostBreakdown:
    """Cost components. Penalties are unweighted; total applies the weights."""
    tracking_error: float
    overshoot_penalty: float
    stabilization_penalty: float
    oscillation_penalty: float
    total: float
    unstable: bool = False

    @classmethod
    def sentinel(cls) -> 'CostBreakdown':
        return cls(
            tracking_error=INSTABILITY_PENALTY,
            overshoot_penalty=INSTABILITY_PENALTY,
            stabilization_penalty=INSTABILITY_PENALTY,
            oscillation_penalty=INSTABILITY_PENALTY,
            total=INSTABILITY_PENALTY,
            unstable=True,
        )

    @property
    def fitness(self) -> float:
        return -self.total


def samples_to_band(temperature: np.ndarray, setpoint: float, band: float = 5.0) -> int:
    """
    One-based position of the first sample strictly inside ±band.

    Returns len(temperature) when the band is never reached.
    """
    inside = np.abs(temperature - setpoint) < band
    if not inside.any():
        return len(temperature)
    return int(np.argmax(inside)) + 1


def evaluate_cost(
    trajectory: Trajectory,
    setpoint: float,
    expected_samples: Optional[int] = None,
    weights: CostWeights = DEFAULT_WEIGHTS
) -> CostBreakdown:
    """
    Score a trajectory against a setpoint.

    Args:
        trajectory: Simulation output
        setpoint: Target temperature (°C)
        expected_samples: Grid length; a shorter trajectory is treated as
            unstable
        weights: Cost weights

    Returns:
        CostBreakdown (lower total is better). Never raises on NaN/Inf.
    """
    temperature = np.asarray(trajectory.temperature, dtype=float)

    if trajectory.unstable or len(temperature) == 0:
        return CostBreakdown.sentinel()
    if expected_samples is not None and len(temperature) < expected_samples:
        return CostBreakdown.sentinel()
    if not np.all(np.isfinite(temperature)):
        return CostBreakdown.sentinel()

    with np.errstate(over='ignore', invalid='ignore'):
        error = temperature - setpoint
        tracking = float(np.sum(error ** 2))
        overshoot = float(np.sum(np.maximum(0.0, error) ** 2))
        stabilization = weights.stabilization * samples_to_band(
            temperature, setpoint, weights.band
        )
        oscillation = float(np.sum(np.diff(temperature) ** 2))

        total = (
            weights.tracking * tracking
            + weights.overshoot * overshoot
            + stabilization
            + weights.oscillation * oscillation
        )

    if not np.isfinite(total):
        return CostBreakdown.sentinel()

    return CostBreakdown(
        tracking_error=tracking,
        overshoot_penalty=overshoot,
        stabilization_penalty=float(stabilization),
        oscillation_penalty=oscillation,
        total=float(total),
    )


def compute_settling_time(
    time: np.ndarray,
    temperature: np.ndarray,
    setpoint: float,
    band: float = 5.0
) -> float:
    """
    Time after which the temperature stays within ±band of the setpoint.

    Returns:
        Settling time in seconds (inf if it never settles)
    """
    if len(time) < 2:
        return np.inf

    within_band = np.abs(temperature - setpoint) < band
    if not within_band[-1]:
        return np.inf

    outside = np.flatnonzero(~within_band)
    if len(outside) == 0:
        return 0.0
    return float(time[outside[-1] + 1])


def compute_overshoot(temperature: np.ndarray, setpoint: float, start: float) -> float:
    """
    Percentage overshoot relative to the size of the step.

    Args:
        temperature: Temperature response
        setpoint: Target temperature
        start: Temperature at the start of the step
    """
    step = setpoint - start
    if step == 0:
        return 0.0

    peak = np.max(temperature) if step > 0 else np.min(temperature)
    excess = (peak - setpoint) / step
    return max(0.0, 100.0 * excess)


def compute_rise_time(
    time: np.ndarray,
    temperature: np.ndarray,
    setpoint: float,
    low_pct: float = 0.1,
    high_pct: float = 0.9
) -> float:
    """
    Rise time (10% to 90% of the step by default), for heating steps.

    Returns:
        Rise time in seconds (inf if the response never gets there)
    """
    if len(time) < 2:
        return np.inf

    start = temperature[0]
    step = setpoint - start
    if step <= 0:
        return np.inf

    low_val = start + low_pct * step
    high_val = start + high_pct * step

    above_low = temperature >= low_val
    above_high = temperature >= high_val
    if not above_low.any() or not above_high.any():
        return np.inf

    return float(time[np.argmax(above_high)] - time[np.argmax(above_low)])


def performance_summary(trajectory: Trajectory, setpoint: float, band: float = 5.0) -> dict:
    """
    Step-response summary of a trajectory.

    Returns:
        Dictionary of performance metrics
    """
    time = trajectory.time
    temperature = trajectory.temperature

    if len(temperature) == 0:
        return {'unstable': True}

    in_band = np.abs(temperature - setpoint) < band

    return {
        'settling_time': compute_settling_time(time, temperature, setpoint, band),
        'overshoot': compute_overshoot(temperature, setpoint, temperature[0]),
        'rise_time': compute_rise_time(time, temperature, setpoint),
        'steady_state_error': float(abs(temperature[-1] - setpoint)),
        'peak_temperature': float(np.max(temperature)),
        'time_in_band': float(np.count_nonzero(in_band) * trajectory.dt),
        'unstable': trajectory.unstable,
    }

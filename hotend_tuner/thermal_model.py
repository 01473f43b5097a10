"""
Thermal PID Model
=================

Right-hand side of the closed-loop hotend ODE.

State Vector: y = [T, S, E]
              (temperature, error accumulator, previous error)

Control law:
    e = setpoint - T
    u = Kp*e + Ki*S + Kd*(e - E)

Features:
- Output saturation to [min_output, max_output]
- Anti-windup (integral correction while saturated)
- Heater cut-off above max_temperature

State equations:
    dT/dt = efficiency*u - decay_rate*(T - ambient_temp)
    dS/dt = S + e
    dE/dt = e

The accumulator and previous-error rates are kept exactly as the tuned
reference behaviour defines them. Changing them changes the dynamics and
with it every gain the optimizer has ever produced.
"""

from dataclasses import dataclass

import numpy as np

from .parameters import ParameterSet


@dataclass(frozen=True)
class ControlAction:
    """Result of evaluating the control law at one state."""
    output: float               # Applied heater output
    raw_output: float           # P + I + D before limits
    error: float                # setpoint - temperature
    corrected_error_sum: float  # Accumulator after anti-windup correction
    saturated: bool
    cutoff: bool


def control_law(
    params: ParameterSet,
    temperature: float,
    error_sum: float,
    prev_error: float
) -> ControlAction:
    """
    Evaluate the PID law with saturation, anti-windup and cut-off.

    Args:
        params: Parameter set for the run
        temperature: Current temperature (°C)
        error_sum: Integral accumulator
        prev_error: Previous error sample

    Returns:
        ControlAction
    """
    e = params.setpoint - temperature

    P = params.Kp * e
    I = params.Ki * error_sum
    D = params.Kd * (e - prev_error)

    raw_output = P + I + D
    output = raw_output
    saturated = False

    # Saturation; the correction only applies to this evaluation
    if output > params.max_output:
        output = params.max_output
        error_sum = error_sum - params.Ki * e
        saturated = True
    elif output < params.min_output:
        output = params.min_output
        error_sum = error_sum - params.Ki * e
        saturated = True

    cutoff = temperature > params.max_temperature
    if cutoff:
        output = 0.0

    return ControlAction(
        output=output,
        raw_output=raw_output,
        error=e,
        corrected_error_sum=error_sum,
        saturated=saturated,
        cutoff=cutoff,
    )


def heat_balance(params: ParameterSet, temperature: float, output: float) -> float:
    """dT/dt for a given heater output."""
    heat_transfer = params.efficiency * output
    cooling = params.decay_rate * (temperature - params.ambient_temp)
    return heat_transfer - cooling


def pid_derivatives(t: float, y: np.ndarray, params: ParameterSet) -> np.ndarray:
    """
    Derivative of [T, S, E] for the ODE solver.

    Signature follows scipy.integrate.solve_ivp (time first); the system is
    autonomous so ``t`` is unused.
    """
    temperature, error_sum, prev_error = y
    action = control_law(params, temperature, error_sum, prev_error)

    d_temperature = heat_balance(params, temperature, action.output)

    return np.array([
        d_temperature,
        action.corrected_error_sum + action.error,
        action.error,
    ])

# Hotend PID Simulation and Auto-Tuning
# =====================================
#
# Closed-loop thermal simulation of a 3D-printer hotend under PID control
# (output saturation, anti-windup, heater cut-off), and a genetic algorithm
# that searches (Kp, Ki, Kd) for the lowest tracking-quality cost.
#
# Cost terms:
#   Tracking error   - Σ(T - setpoint)²
#   Overshoot        - Σ max(0, T - setpoint)²        (x10)
#   Stabilization    - samples until within ±5 °C     (x10)
#   Oscillation      - Σ(ΔT)²                         (x5)

from .exceptions import HotendTunerError, InvalidConfiguration
from .parameters import ParameterSet, PIDGains, SimulationState
from .thermal_model import control_law, pid_derivatives
from .integrator import Trajectory, run_simulation, time_grid
from .cost import CostBreakdown, evaluate_cost, performance_summary
from .genetic import GainBounds, GeneticOptimizer, StochasticOptimizer
from .tuning import OptimizationResult, TuningConfig, format_gains, optimize_pid

__all__ = [
    'HotendTunerError',
    'InvalidConfiguration',
    'ParameterSet',
    'PIDGains',
    'SimulationState',
    'control_law',
    'pid_derivatives',
    'Trajectory',
    'run_simulation',
    'time_grid',
    'CostBreakdown',
    'evaluate_cost',
    'performance_summary',
    'GainBounds',
    'GeneticOptimizer',
    'StochasticOptimizer',
    'OptimizationResult',
    'TuningConfig',
    'format_gains',
    'optimize_pid'
]

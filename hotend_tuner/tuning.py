"""
PID Auto-Tuning
===============

Ties the pieces together: every candidate gain vector is turned into a
ParameterSet, simulated, scored, and handed back to the genetic optimizer as
fitness = -cost.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from .cost import DEFAULT_WEIGHTS, INSTABILITY_PENALTY, CostWeights, evaluate_cost
from .exceptions import InvalidConfiguration
from .genetic import GainBounds, GenerationReport, GeneticOptimizer
from .integrator import DEFAULT_GRID, run_simulation
from .parameters import INITIAL_STATE, ParameterSet, PIDGains, SimulationState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TuningConfig:
    """Search settings and the plant constants held fixed while tuning."""
    # Search space
    bounds: GainBounds = field(default_factory=GainBounds)

    # GA parameters
    population_size: int = 50
    n_generations: int = 200
    crossover_prob: float = 0.9
    mutation_prob: float = 0.1
    crossover_eta: float = 15.0
    mutation_eta: float = 20.0
    elitism: float = 0.05
    seed: Optional[int] = None

    # Execution
    n_workers: int = 1
    timeout: Optional[float] = None  # seconds
    log_every: int = 10

    # Fixed plant / actuator constants
    efficiency: float = 0.2
    max_output: float = 100.0
    min_output: float = 0.0
    max_temperature: float = 250.0

    weights: CostWeights = field(default_factory=CostWeights)

    def __post_init__(self):
        if self.population_size < 2:
            raise InvalidConfiguration("population_size must be >= 2")
        if self.n_generations < 1:
            raise InvalidConfiguration("n_generations must be >= 1")
        if self.n_workers < 1:
            raise InvalidConfiguration("n_workers must be >= 1")
        if self.min_output > self.max_output:
            raise InvalidConfiguration(
                f"min_output ({self.min_output}) must not exceed max_output ({self.max_output})"
            )


@dataclass
class OptimizationResult:
    """Best gains found by optimize_pid."""
    best_gains: PIDGains
    best_fitness: float
    generations_run: int
    cancelled: bool = False
    history: dict = field(default_factory=dict)

    @property
    def best_cost(self) -> float:
        return -self.best_fitness

    @property
    def unstable(self) -> bool:
        """True when no candidate produced a finite cost."""
        return self.best_cost >= INSTABILITY_PENALTY


def format_gains(gains: PIDGains) -> str:
    """Summary shown after tuning, e.g. 'Kp = 1.00, Ki = 0.02, Kd = 0.10'."""
    return gains.format()


def environment_parameters(
    setpoint: float,
    decay_rate: float,
    ambient_temp: float,
    config: TuningConfig
) -> ParameterSet:
    """ParameterSet holding the fixed environment; gains are placeholders."""
    return ParameterSet(
        decay_rate=decay_rate,
        efficiency=config.efficiency,
        ambient_temp=ambient_temp,
        setpoint=setpoint,
        max_output=config.max_output,
        min_output=config.min_output,
        max_temperature=config.max_temperature,
    )


def create_fitness_function(
    environment: ParameterSet,
    initial_state: SimulationState = INITIAL_STATE,
    grid: np.ndarray = DEFAULT_GRID,
    weights: CostWeights = DEFAULT_WEIGHTS
) -> Callable[[np.ndarray], float]:
    """
    Create the fitness function for the GA.

    Returns a function that takes [Kp, Ki, Kd] and returns -cost. It only
    reads its closed-over arguments, so it is safe to call from several
    threads at once.
    """
    expected_samples = len(grid)

    def fitness_function(genes: np.ndarray) -> float:
        """Simulate one candidate and return its fitness."""
        params = environment.with_gains(PIDGains.from_array(genes))
        trajectory = run_simulation(params, initial_state, grid)
        breakdown = evaluate_cost(trajectory, params.setpoint, expected_samples, weights)
        return breakdown.fitness

    return fitness_function


def optimize_pid(
    setpoint: float,
    decay_rate: float,
    ambient_temp: float,
    config: Optional[TuningConfig] = None,
    *,
    on_generation: Optional[Callable[[GenerationReport], None]] = None,
    cancel_event: Optional[threading.Event] = None
) -> OptimizationResult:
    """
    Search PID gains that minimize the tracking-quality cost.

    Args:
        setpoint: Target temperature (°C)
        decay_rate: Plant cooling rate (1/s)
        ambient_temp: Ambient temperature (°C)
        config: Search settings (defaults: population 50, 200 generations)
        on_generation: Called with a GenerationReport after each generation
        cancel_event: Set it from another thread to stop early

    Returns:
        OptimizationResult with the best gains seen in any generation
    """
    config = config or TuningConfig()
    environment = environment_parameters(setpoint, decay_rate, ambient_temp, config)

    logger.info("Tuning PID for setpoint=%.1f °C, decay_rate=%g, ambient=%.1f °C (seed=%s)",
                setpoint, decay_rate, ambient_temp, config.seed)

    optimizer = GeneticOptimizer(
        fitness_function=create_fitness_function(environment, weights=config.weights),
        bounds=config.bounds,
        population_size=config.population_size,
        n_generations=config.n_generations,
        crossover_prob=config.crossover_prob,
        mutation_prob=config.mutation_prob,
        crossover_eta=config.crossover_eta,
        mutation_eta=config.mutation_eta,
        elitism=config.elitism,
        seed=config.seed,
        n_workers=config.n_workers,
        on_generation=on_generation,
        cancel_event=cancel_event,
        timeout=config.timeout,
        log_every=config.log_every,
    )

    search = optimizer.run()
    result = OptimizationResult(
        best_gains=PIDGains.from_array(search.best.genes),
        best_fitness=search.best.fitness,
        generations_run=search.generations_run,
        cancelled=search.cancelled,
        history=search.history,
    )

    if result.unstable:
        logger.warning("No candidate produced a stable simulation")
    logger.info("Optimized PID parameters: %s (cost %.6g)",
                format_gains(result.best_gains), result.best_cost)
    return result

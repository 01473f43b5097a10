"""
Genetic Algorithm for PID Gain Search
=====================================

Single-objective, real-coded genetic algorithm behind a minimal
StochasticOptimizer interface, so any population-based metaheuristic can be
dropped in.

Features:
- Latin Hypercube Sampling (LHS) for population initialization
- Tournament selection on fitness
- Simulated Binary Crossover (SBX)
- Polynomial Mutation
- Elitism (best individuals survive unchanged)
- Per-generation progress callback, cancellation and wall-clock timeout
"""

import logging
import sys
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from .exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)


# Fitness assigned to candidates whose evaluation produced NaN
INVALID_FITNESS = -sys.float_info.max


@dataclass
class Individual:
    """An individual in the population."""
    genes: np.ndarray  # [Kp, Ki, Kd]
    fitness: float = -np.inf
    evaluated: bool = False

    def __lt__(self, other: 'Individual') -> bool:
        """Higher fitness sorts first."""
        return self.fitness > other.fitness


@dataclass(frozen=True)
class GainBounds:
    """Search space bounds for PID gains."""
    Kp_min: float = 0.0
    Kp_max: float = 2.0
    Ki_min: float = 0.0
    Ki_max: float = 0.05
    Kd_min: float = 0.0
    Kd_max: float = 0.5

    def __post_init__(self):
        for name, lo, hi in (('Kp', self.Kp_min, self.Kp_max),
                             ('Ki', self.Ki_min, self.Ki_max),
                             ('Kd', self.Kd_min, self.Kd_max)):
            if not (np.isfinite(lo) and np.isfinite(hi)):
                raise InvalidConfiguration(f"{name} bounds must be finite")
            if lo > hi:
                raise InvalidConfiguration(f"{name} lower bound {lo} exceeds upper bound {hi}")

    @property
    def lower(self) -> np.ndarray:
        return np.array([self.Kp_min, self.Ki_min, self.Kd_min])

    @property
    def upper(self) -> np.ndarray:
        return np.array([self.Kp_max, self.Ki_max, self.Kd_max])

    def contains(self, genes: np.ndarray) -> bool:
        genes = np.asarray(genes)
        return bool(np.all(genes >= self.lower) and np.all(genes <= self.upper))


@dataclass(frozen=True)
class GenerationReport:
    """Progress snapshot handed to the caller after every generation."""
    generation: int
    n_generations: int
    best_genes: np.ndarray
    best_fitness: float
    mean_fitness: float
    n_invalid: int
    elapsed: float


@dataclass
class SearchResult:
    """Outcome of a search run."""
    best: Individual
    generations_run: int
    cancelled: bool
    history: dict = field(default_factory=dict)


class StochasticOptimizer(ABC):
    """
    Population-based maximizer over a box.

    Subclasses provide initialization, selection, crossover and mutation;
    the base class owns evaluation, termination, progress reporting and the
    generation loop. Fitness is maximized.
    """

    def __init__(
        self,
        fitness_function: Callable[[np.ndarray], float],
        bounds: GainBounds = GainBounds(),
        population_size: int = 50,
        n_generations: int = 200,
        seed: Optional[int] = None,
        n_workers: int = 1,
        on_generation: Optional[Callable[[GenerationReport], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
        log_every: int = 10
    ):
        if population_size < 2:
            raise InvalidConfiguration("population_size must be >= 2")
        if n_generations < 1:
            raise InvalidConfiguration("n_generations must be >= 1")
        if n_workers < 1:
            raise InvalidConfiguration("n_workers must be >= 1")
        if timeout is not None and timeout <= 0:
            raise InvalidConfiguration("timeout must be > 0")

        self.fitness_fn = fitness_function
        self.bounds = bounds
        self.pop_size = population_size
        self.n_gen = n_generations
        self.seed = seed
        self.n_workers = n_workers
        self.on_generation = on_generation
        self.cancel_event = cancel_event
        self.timeout = timeout
        self.log_every = log_every

        self.rng = np.random.default_rng(seed)
        self._started = 0.0
        self.history = self._new_history()

    @staticmethod
    def _new_history() -> dict:
        return {
            'best_fitness': [],
            'mean_fitness': [],
            'best_genes': [],
            'n_invalid': [],
            'generations': []
        }

    # --- seams for concrete algorithms ---

    @abstractmethod
    def initialize_population(self) -> List[Individual]:
        """First generation."""

    @abstractmethod
    def select(self, population: List[Individual]) -> Individual:
        """Pick one parent (returned as a fresh, unevaluated copy)."""

    @abstractmethod
    def crossover(self, parent1: np.ndarray, parent2: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Recombine two parent gene vectors into two children."""

    @abstractmethod
    def mutate(self, genes: np.ndarray) -> np.ndarray:
        """Perturb a gene vector, staying within bounds."""

    def survivors(
        self,
        population: List[Individual],
        offspring: List[Individual]
    ) -> List[Individual]:
        """Next generation from the current one and its offspring."""
        return offspring

    # --- shared machinery ---

    def _evaluate(self, genes: np.ndarray) -> float:
        value = float(self.fitness_fn(genes))
        if np.isnan(value):
            return INVALID_FITNESS
        return value

    def evaluate_population(self, population: List[Individual]):
        """Evaluate fitness for every individual not yet evaluated."""
        pending = [ind for ind in population if not ind.evaluated]
        if self.n_workers > 1:
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                results = list(executor.map(self._evaluate, [ind.genes for ind in pending]))
        else:
            results = [self._evaluate(ind.genes) for ind in pending]

        for ind, value in zip(pending, results):
            ind.fitness = value
            ind.evaluated = True

    def should_stop(self) -> bool:
        """True when the caller cancelled or the time budget ran out."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.warning("Optimization cancelled by caller")
            return True
        if self.timeout is not None and time.monotonic() - self._started >= self.timeout:
            logger.warning("Optimization timed out after %.1f s", self.timeout)
            return True
        return False

    def create_offspring(self, population: List[Individual]) -> List[Individual]:
        """Create offspring population through selection, crossover, and mutation."""
        offspring = []

        while len(offspring) < self.pop_size:
            # Selection
            parent1 = self.select(population)
            parent2 = self.select(population)

            # Crossover
            child1_genes, child2_genes = self.crossover(parent1.genes, parent2.genes)

            # Mutation
            child1_genes = self.mutate(child1_genes)
            child2_genes = self.mutate(child2_genes)

            offspring.append(Individual(genes=child1_genes))
            if len(offspring) < self.pop_size:
                offspring.append(Individual(genes=child2_genes))

        return offspring

    def _record(self, generation: int, population: List[Individual], best: Individual):
        fitness = np.array([ind.fitness for ind in population])
        valid = np.isfinite(fitness) & (fitness > INVALID_FITNESS)
        mean_fitness = float(fitness[valid].mean()) if valid.any() else INVALID_FITNESS
        n_invalid = int(np.count_nonzero(~valid))

        self.history['best_fitness'].append(best.fitness)
        self.history['mean_fitness'].append(mean_fitness)
        self.history['best_genes'].append(best.genes.copy())
        self.history['n_invalid'].append(n_invalid)
        self.history['generations'].append(generation)

        if self.log_every and (generation % self.log_every == 0 or generation == self.n_gen):
            logger.info("Gen %3d/%d | best fitness: %.6g | mean: %.6g | invalid: %d",
                        generation, self.n_gen, best.fitness, mean_fitness, n_invalid)

        if self.on_generation is not None:
            self.on_generation(GenerationReport(
                generation=generation,
                n_generations=self.n_gen,
                best_genes=best.genes.copy(),
                best_fitness=best.fitness,
                mean_fitness=mean_fitness,
                n_invalid=n_invalid,
                elapsed=time.monotonic() - self._started,
            ))

    @staticmethod
    def _fittest(population: List[Individual], current: Optional[Individual]) -> Individual:
        best = current
        for ind in population:
            if best is None or ind.fitness > best.fitness:
                best = ind
        return best

    def run(self) -> SearchResult:
        """
        Run the search for the configured number of generations.

        The initial population counts as generation 1. Cancellation and
        timeout are checked between generations; either one ends the run
        early with the best individual found so far.

        Returns:
            SearchResult
        """
        self.rng = np.random.default_rng(self.seed)
        self.history = self._new_history()
        self._started = time.monotonic()

        logger.info("%s: population %d, generations %d, search space "
                    "Kp=[%g, %g], Ki=[%g, %g], Kd=[%g, %g]",
                    type(self).__name__, self.pop_size, self.n_gen,
                    self.bounds.Kp_min, self.bounds.Kp_max,
                    self.bounds.Ki_min, self.bounds.Ki_max,
                    self.bounds.Kd_min, self.bounds.Kd_max)

        population = self.initialize_population()
        self.evaluate_population(population)

        best = self._fittest(population, None)
        generation = 1
        self._record(generation, population, best)
        cancelled = False

        while generation < self.n_gen:
            if self.should_stop():
                cancelled = True
                break

            offspring = self.create_offspring(population)
            self.evaluate_population(offspring)
            population = self.survivors(population, offspring)

            best = self._fittest(population, best)
            generation += 1
            self._record(generation, population, best)

        logger.info("Search finished after %d generation(s) in %.1f s; best fitness %.6g",
                    generation, time.monotonic() - self._started, best.fitness)

        return SearchResult(
            best=Individual(genes=best.genes.copy(), fitness=best.fitness, evaluated=True),
            generations_run=generation,
            cancelled=cancelled,
            history=self.history,
        )


class GeneticOptimizer(StochasticOptimizer):
    """
    Real-coded GA: LHS start, tournament selection, SBX crossover,
    polynomial mutation and elitism.
    """

    def __init__(
        self,
        fitness_function: Callable[[np.ndarray], float],
        bounds: GainBounds = GainBounds(),
        population_size: int = 50,
        n_generations: int = 200,
        crossover_prob: float = 0.9,
        mutation_prob: float = 0.1,
        crossover_eta: float = 15.0,  # SBX distribution index
        mutation_eta: float = 20.0,   # Polynomial mutation distribution index
        elitism: float = 0.05,        # Fraction of the population kept as elites
        tournament_size: int = 2,
        **kwargs
    ):
        super().__init__(
            fitness_function,
            bounds=bounds,
            population_size=population_size,
            n_generations=n_generations,
            **kwargs
        )
        if not 0.0 <= crossover_prob <= 1.0:
            raise InvalidConfiguration("crossover_prob must be within [0, 1]")
        if not 0.0 <= mutation_prob <= 1.0:
            raise InvalidConfiguration("mutation_prob must be within [0, 1]")
        if not 0.0 <= elitism < 1.0:
            raise InvalidConfiguration("elitism must be within [0, 1)")
        if not 1 <= tournament_size <= population_size:
            raise InvalidConfiguration("tournament_size must be within [1, population_size]")

        self.crossover_prob = crossover_prob
        self.mutation_prob = mutation_prob
        self.crossover_eta = crossover_eta
        self.mutation_eta = mutation_eta
        self.n_elite = max(1, int(round(population_size * elitism))) if elitism > 0 else 0
        self.tournament_size = tournament_size

    def initialize_population(self) -> List[Individual]:
        """
        Initialize population using Latin Hypercube Sampling.

        LHS ensures better coverage of the search space compared
        to random initialization.
        """
        n_vars = 3  # Kp, Ki, Kd
        lower = self.bounds.lower
        upper = self.bounds.upper

        # One sample per equal-width stratum, then shuffle each column
        samples = np.zeros((self.pop_size, n_vars))
        intervals = np.linspace(0, 1, self.pop_size + 1)
        for j in range(n_vars):
            strata = self.rng.uniform(intervals[:-1], intervals[1:])
            samples[:, j] = self.rng.permutation(strata)

        samples = lower + samples * (upper - lower)

        return [Individual(genes=samples[i]) for i in range(self.pop_size)]

    def select(self, population: List[Individual]) -> Individual:
        """Tournament selection on fitness."""
        candidates = self.rng.choice(len(population), size=self.tournament_size, replace=False)
        best = population[candidates[0]]
        for i in candidates[1:]:
            if population[i].fitness > best.fitness:
                best = population[i]
        return Individual(genes=best.genes.copy())

    def crossover(
        self,
        parent1: np.ndarray,
        parent2: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Simulated Binary Crossover (SBX).

        Creates two offspring from two parents using a polynomial
        probability distribution.
        """
        if self.rng.random() > self.crossover_prob:
            return parent1.copy(), parent2.copy()

        eta = self.crossover_eta
        child1 = parent1.copy()
        child2 = parent2.copy()
        lower = self.bounds.lower
        upper = self.bounds.upper

        for i in range(len(parent1)):
            if self.rng.random() > 0.5 or abs(parent1[i] - parent2[i]) <= 1e-10:
                continue

            y1, y2 = min(parent1[i], parent2[i]), max(parent1[i], parent2[i])
            yl, yu = lower[i], upper[i]
            rand = self.rng.random()

            beta = 1.0 + (2.0 * (y1 - yl) / (y2 - y1))
            alpha = 2.0 - beta ** (-(eta + 1))
            if rand <= 1.0 / alpha:
                betaq = (rand * alpha) ** (1.0 / (eta + 1))
            else:
                betaq = (1.0 / (2.0 - rand * alpha)) ** (1.0 / (eta + 1))
            c1 = 0.5 * ((y1 + y2) - betaq * (y2 - y1))

            beta = 1.0 + (2.0 * (yu - y2) / (y2 - y1))
            alpha = 2.0 - beta ** (-(eta + 1))
            if rand <= 1.0 / alpha:
                betaq = (rand * alpha) ** (1.0 / (eta + 1))
            else:
                betaq = (1.0 / (2.0 - rand * alpha)) ** (1.0 / (eta + 1))
            c2 = 0.5 * ((y1 + y2) + betaq * (y2 - y1))

            child1[i] = np.clip(c1, yl, yu)
            child2[i] = np.clip(c2, yl, yu)

        return child1, child2

    def mutate(self, genes: np.ndarray) -> np.ndarray:
        """
        Polynomial mutation.

        Applies small perturbations based on polynomial distribution.
        """
        mutant = genes.copy()
        eta = self.mutation_eta
        mut_pow = 1.0 / (eta + 1)

        for i in range(len(mutant)):
            if self.rng.random() >= self.mutation_prob:
                continue

            y = mutant[i]
            yl = self.bounds.lower[i]
            yu = self.bounds.upper[i]
            if yu == yl:
                continue

            delta1 = (y - yl) / (yu - yl)
            delta2 = (yu - y) / (yu - yl)
            rand = self.rng.random()

            if rand < 0.5:
                xy = 1.0 - delta1
                val = 2.0 * rand + (1.0 - 2.0 * rand) * (xy ** (eta + 1))
                deltaq = val ** mut_pow - 1.0
            else:
                xy = 1.0 - delta2
                val = 2.0 * (1.0 - rand) + 2.0 * (rand - 0.5) * (xy ** (eta + 1))
                deltaq = 1.0 - val ** mut_pow

            mutant[i] = np.clip(y + deltaq * (yu - yl), yl, yu)

        return mutant

    def survivors(
        self,
        population: List[Individual],
        offspring: List[Individual]
    ) -> List[Individual]:
        """Elites of the current generation replace the worst offspring."""
        if self.n_elite == 0:
            return offspring

        elites = sorted(population)[:self.n_elite]
        kept = sorted(offspring)[:self.pop_size - self.n_elite]
        return elites + kept

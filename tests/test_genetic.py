from __future__ import annotations

import threading

import numpy as np
import pytest

from hotend_tuner.exceptions import InvalidConfiguration
from hotend_tuner.genetic import (
    INVALID_FITNESS,
    GainBounds,
    GeneticOptimizer,
    Individual,
    StochasticOptimizer,
)

TARGET = np.array([1.2, 0.03, 0.2])


def sphere(genes: np.ndarray) -> float:
    """Maximum (0) at TARGET, scaled so every axis matters."""
    scale = np.array([2.0, 0.05, 0.5])
    return -float(np.sum(((genes - TARGET) / scale) ** 2))


def make_optimizer(**kwargs) -> GeneticOptimizer:
    options = dict(population_size=20, n_generations=15, seed=11, log_every=0)
    options.update(kwargs)
    return GeneticOptimizer(sphere, **options)


def test_default_bounds_match_gain_ranges():
    bounds = GainBounds()
    np.testing.assert_array_equal(bounds.lower, [0.0, 0.0, 0.0])
    np.testing.assert_array_equal(bounds.upper, [2.0, 0.05, 0.5])


def test_inverted_bounds_are_rejected():
    with pytest.raises(InvalidConfiguration):
        GainBounds(Kp_min=3.0, Kp_max=2.0)


@pytest.mark.parametrize("kwargs", [
    dict(population_size=1),
    dict(n_generations=0),
    dict(n_workers=0),
    dict(timeout=0.0),
    dict(crossover_prob=1.5),
    dict(mutation_prob=-0.1),
    dict(elitism=1.0),
    dict(tournament_size=50),
])
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(InvalidConfiguration):
        make_optimizer(**kwargs)


def test_genetic_optimizer_implements_interface():
    assert issubclass(GeneticOptimizer, StochasticOptimizer)
    with pytest.raises(TypeError):
        StochasticOptimizer(sphere)


def test_initial_population_is_within_bounds():
    optimizer = make_optimizer()
    population = optimizer.initialize_population()

    assert len(population) == 20
    for ind in population:
        assert optimizer.bounds.contains(ind.genes)
        assert not ind.evaluated


def test_lhs_covers_each_axis():
    optimizer = make_optimizer(population_size=10)
    genes = np.array([ind.genes for ind in optimizer.initialize_population()])
    unit = (genes - optimizer.bounds.lower) / (optimizer.bounds.upper - optimizer.bounds.lower)

    for j in range(3):
        column = np.sort(unit[:, j])
        # One sample per tenth, allowing for rounding at the stratum edges
        assert np.all(column >= np.arange(10) / 10 - 1e-9)
        assert np.all(column <= np.arange(1, 11) / 10 + 1e-9)


def test_variation_operators_stay_within_bounds():
    optimizer = make_optimizer(mutation_prob=1.0, crossover_prob=1.0)
    rng = np.random.default_rng(0)
    lower, upper = optimizer.bounds.lower, optimizer.bounds.upper

    for _ in range(200):
        p1 = lower + rng.random(3) * (upper - lower)
        p2 = lower + rng.random(3) * (upper - lower)
        c1, c2 = optimizer.crossover(p1, p2)
        assert optimizer.bounds.contains(c1)
        assert optimizer.bounds.contains(c2)
        assert optimizer.bounds.contains(optimizer.mutate(c1))


def test_mutation_leaves_degenerate_axis_alone():
    bounds = GainBounds(Kd_min=0.3, Kd_max=0.3)
    optimizer = make_optimizer(bounds=bounds, mutation_prob=1.0)
    mutant = optimizer.mutate(np.array([1.0, 0.02, 0.3]))
    assert mutant[2] == 0.3


def test_elites_survive_unchanged():
    optimizer = make_optimizer(population_size=20, elitism=0.1)
    assert optimizer.n_elite == 2

    population = [Individual(genes=np.full(3, i), fitness=-float(i), evaluated=True)
                  for i in range(20)]
    offspring = [Individual(genes=np.full(3, 100 + i), fitness=-100.0 - i, evaluated=True)
                 for i in range(20)]
    survivors = optimizer.survivors(population, offspring)

    assert len(survivors) == 20
    assert survivors[0] is population[0]
    assert survivors[1] is population[1]
    assert survivors[2] is offspring[0]


def test_search_approaches_optimum_and_stays_in_bounds():
    result = make_optimizer(population_size=30, n_generations=40).run()

    assert result.generations_run == 40
    assert not result.cancelled
    assert GainBounds().contains(result.best.genes)
    assert result.best.fitness > -2e-2


def test_best_fitness_never_gets_worse():
    result = make_optimizer().run()
    best = result.history['best_fitness']

    assert len(best) == 15
    assert result.history['generations'] == list(range(1, 16))
    assert all(later >= earlier for earlier, later in zip(best, best[1:]))
    assert result.best.fitness == best[-1]


def test_same_seed_same_result():
    first = make_optimizer(seed=5).run()
    second = make_optimizer(seed=5).run()

    np.testing.assert_array_equal(first.best.genes, second.best.genes)
    assert first.history['best_fitness'] == second.history['best_fitness']


def test_rerunning_an_optimizer_is_reproducible():
    optimizer = make_optimizer(seed=5)
    first = optimizer.run()
    first_genes = first.best.genes.copy()
    second = optimizer.run()

    np.testing.assert_array_equal(first_genes, second.best.genes)
    assert first.history['best_fitness'] == second.history['best_fitness']


def test_earlier_result_keeps_its_own_history():
    optimizer = make_optimizer(n_generations=3)
    first = optimizer.run()
    optimizer.n_gen = 2
    second = optimizer.run()

    assert first.history is not second.history
    assert len(first.history['best_fitness']) == 3
    assert first.history['generations'] == [1, 2, 3]
    assert len(second.history['best_fitness']) == 2


def test_parallel_evaluation_matches_serial():
    serial = make_optimizer(seed=9).run()
    parallel = make_optimizer(seed=9, n_workers=4).run()

    np.testing.assert_array_equal(serial.best.genes, parallel.best.genes)
    assert serial.history['best_fitness'] == parallel.history['best_fitness']


def test_nan_fitness_is_ranked_last():
    def picky(genes):
        return np.nan if genes[0] > 1.0 else sphere(genes)

    result = GeneticOptimizer(picky, population_size=20, n_generations=10,
                              seed=2, log_every=0).run()

    assert result.best.genes[0] <= 1.0
    assert result.best.fitness > INVALID_FITNESS
    assert max(result.history['n_invalid']) > 0


def test_cancel_before_second_generation():
    cancel = threading.Event()
    cancel.set()
    result = make_optimizer(cancel_event=cancel).run()

    assert result.cancelled
    assert result.generations_run == 1
    assert GainBounds().contains(result.best.genes)
    assert np.isfinite(result.best.fitness)


def test_cancel_from_progress_callback_keeps_best_so_far():
    cancel = threading.Event()
    reports = []

    def on_generation(report):
        reports.append(report)
        if report.generation == 3:
            cancel.set()

    result = make_optimizer(on_generation=on_generation, cancel_event=cancel).run()

    assert result.cancelled
    assert result.generations_run == 3
    assert [r.generation for r in reports] == [1, 2, 3]
    assert result.best.fitness == reports[-1].best_fitness
    np.testing.assert_array_equal(result.best.genes, reports[-1].best_genes)


def test_timeout_stops_the_search():
    result = make_optimizer(timeout=1e-9).run()

    assert result.cancelled
    assert result.generations_run == 1

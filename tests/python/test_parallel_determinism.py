from __future__ import annotations

import pytest
from pytest import approx

from flock.sim.core.config import SimulationConfig
from flock.sim.core.pool import TickPool
from flock.sim.core.population import Population
from flock.sim.core.rng import DeterministicRng
from flock.sim.core.world import World
from flock.sim.systems.rules import Align, Attract, Avoid


def _evaluate(rule, population: Population, workers: int, chunk_size: int, executor: str = "thread"):
    config = SimulationConfig(workers=workers, chunk_size=chunk_size, executor=executor)
    with TickPool(workers, chunk_size, executor) as pool:
        with World(config, rule=rule, population=population, pool=pool) as world:
            return world.turn()


def _assert_same(sequential, parallel):
    assert not sequential.faults and not parallel.faults
    assert len(sequential.effects) == len(parallel.effects)
    for left, right in zip(sequential.effects, parallel.effects):
        assert left.index == right.index
        assert left.neighbors == right.neighbors
        assert left.steering.x == approx(right.steering.x)
        assert left.steering.y == approx(right.steering.y)
    seq_boids = sequential.world.population.boids
    par_boids = parallel.world.population.boids
    for left, right in zip(seq_boids, par_boids):
        assert left.id == right.id
        assert left.position.x == approx(right.position.x)
        assert left.position.y == approx(right.position.y)


@pytest.mark.parametrize("rule", [Avoid(n_nearest=3), Attract(), Align(n_nearest=4)])
def test_parallel_matches_sequential(rule):
    population = Population.scatter(3_000, DeterministicRng(13), extent=150.0, speed=1.0, cell_size=5.0)

    sequential = _evaluate(rule, population, workers=1, chunk_size=3_000)
    parallel = _evaluate(rule, population, workers=8, chunk_size=97)

    _assert_same(sequential, parallel)


@pytest.mark.parametrize("rule", [Avoid(n_nearest=3), Attract(), Align(n_nearest=2)])
def test_process_workers_match_sequential(rule):
    population = Population.scatter(600, DeterministicRng(21), extent=60.0, speed=1.0, cell_size=4.0)

    sequential = _evaluate(rule, population, workers=1, chunk_size=600)
    in_processes = _evaluate(rule, population, workers=3, chunk_size=50, executor="process")

    assert in_processes.metrics.evaluated == 600
    assert [effect.neighbors for effect in in_processes.effects] == [effect.neighbors for effect in sequential.effects]
    _assert_same(sequential, in_processes)


def test_attract_parallel_matches_sequential_at_full_scale():
    population = Population.scatter(100_000, DeterministicRng(1), extent=1_000.0, speed=1.0, cell_size=5.0)
    rule = Attract()

    sequential = _evaluate(rule, population, workers=1, chunk_size=100_000)
    parallel = _evaluate(rule, population, workers=10, chunk_size=1_024)

    assert sequential.metrics.evaluated == parallel.metrics.evaluated == 100_000
    _assert_same(sequential, parallel)


@pytest.mark.slow
def test_avoid_parallel_matches_sequential_at_full_scale():
    population = Population.scatter(100_000, DeterministicRng(2), extent=1_000.0, speed=1.0, cell_size=5.0)
    rule = Avoid(n_nearest=3)

    sequential = _evaluate(rule, population, workers=1, chunk_size=100_000)
    parallel = _evaluate(rule, population, workers=10, chunk_size=1_024)

    assert parallel.metrics.evaluated == 100_000
    _assert_same(sequential, parallel)

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Iterator, List, Tuple

from loguru import logger

from .config import SimulationConfig
from .pool import TickPool
from .population import Population
from .rng import DeterministicRng
from ..systems import metrics as metrics_system
from ..systems.rules import Rule, RuleEffect, RuleKind, build_rule
from ..types.metrics import AgentFault, TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata


class WorldState(str, Enum):
    IDLE = "Idle"
    TICKED = "Ticked"


class WorldSpentError(RuntimeError):
    """Raised when ``turn()`` is called on a world whose tick already ran."""


@dataclass(slots=True)
class TickResult:
    tick: int
    world: "World"
    effects: List[RuleEffect | None] = field(default_factory=list)
    faults: List[AgentFault] = field(default_factory=list)
    metrics: TickMetrics | None = None
    cancelled: bool = False


_ChunkOutcome = Tuple[List[RuleEffect | None], List[AgentFault]]


def _evaluate_chunk(
    chunk: range,
    rule: Rule,
    snapshot: Population,
    stop_event: threading.Event | None,
) -> _ChunkOutcome | None:
    effects: List[RuleEffect | None] = []
    faults: List[AgentFault] = []
    for boid_ix in chunk:
        if stop_event is not None and stop_event.is_set():
            return None
        try:
            effects.append(rule.use_on(boid_ix, snapshot))
        except Exception as exc:
            effects.append(None)
            faults.append(AgentFault(index=boid_ix, boid_id=snapshot.boids[boid_ix].id, error=exc))
    return effects, faults


class World:
    """
    One rule applied to one population snapshot.

    A world runs a single tick: ``turn()`` evaluates the rule for every boid
    against the same frozen population, applies all effects at once and hands
    back the next world in the returned :class:`TickResult`. The rule and the
    worker pool carry over from world to world.
    """

    def __init__(
        self,
        config: SimulationConfig,
        rule: Rule | None = None,
        population: Population | None = None,
        pool: TickPool | None = None,
        tick: int = 0,
    ):
        self._config = config
        self._rule = rule if rule is not None else build_rule(config.rule, config)
        if population is None:
            population = Population.scatter(
                config.population_size,
                DeterministicRng(config.seed),
                config.world_size,
                speed=config.spawn_speed,
                cell_size=config.cell_size,
            )
        self._population = population
        self._owns_pool = pool is None
        self._pool = pool if pool is not None else TickPool(config.workers, config.chunk_size, config.executor)
        self._tick = tick
        self._state = WorldState.IDLE
        self._metrics: TickMetrics | None = None

    @classmethod
    def create(
        cls,
        rule: str | RuleKind,
        n_boids: int,
        config: SimulationConfig | None = None,
        pool: TickPool | None = None,
    ) -> "World":
        config = config if config is not None else SimulationConfig()
        population = Population.scatter(
            n_boids,
            DeterministicRng(config.seed),
            config.world_size,
            speed=config.spawn_speed,
            cell_size=config.cell_size,
        )
        return cls(config, rule=build_rule(rule, config), population=population, pool=pool)

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def rule(self) -> Rule:
        return self._rule

    @property
    def population(self) -> Population:
        return self._population

    @property
    def pool(self) -> TickPool:
        return self._pool

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def state(self) -> WorldState:
        return self._state

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def turn(self, stop_event: threading.Event | None = None) -> TickResult:
        if self._state is WorldState.TICKED:
            raise WorldSpentError(f"world at tick {self._tick} has already been turned")
        self._state = WorldState.TICKED
        start = perf_counter()
        snapshot = self._population
        rule = self._rule

        # Events cannot cross a process boundary; there the check happens after the join.
        worker_stop = stop_event if self._pool.shares_memory else None
        outcomes = self._pool.map_chunks(_evaluate_chunk, snapshot.size(), rule, snapshot, worker_stop)

        stopped = stop_event is not None and stop_event.is_set()
        if stopped or any(outcome is None for outcome in outcomes):
            logger.warning("tick {} cancelled; keeping the previous population", self._tick)
            return TickResult(tick=self._tick, world=self._successor(snapshot, self._tick), cancelled=True)

        effects: List[RuleEffect | None] = []
        faults: List[AgentFault] = []
        for chunk_effects, chunk_faults in outcomes:
            effects.extend(chunk_effects)
            faults.extend(chunk_faults)
        for fault in faults:
            logger.opt(exception=fault.error).error(
                "rule {} failed on tick {}: {}", rule.kind.value, self._tick, fault.describe()
            )

        time_step = self._config.time_step
        max_speed = self._config.max_speed
        next_boids = [
            boid if effect is None else boid.react_to(effect, time_step, max_speed)
            for boid, effect in zip(snapshot.boids, effects)
        ]
        next_population = snapshot.advance(next_boids)

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            self._tick, rule.kind.value, next_population, effects, faults, elapsed_ms
        )
        logger.debug(
            "tick {} ({}): {} boids, {} faults, {:.2f} ms",
            self._tick,
            rule.kind.value,
            metrics.population,
            metrics.faults,
            elapsed_ms,
        )
        next_world = self._successor(next_population, self._tick + 1)
        next_world._metrics = metrics
        return TickResult(tick=self._tick, world=next_world, effects=effects, faults=faults, metrics=metrics)

    def run(self, ticks: int, stop_event: threading.Event | None = None) -> Iterator[TickResult]:
        world = self
        for _ in range(ticks):
            result = world.turn(stop_event)
            yield result
            if result.cancelled:
                return
            world = result.world

    def snapshot(self) -> Snapshot:
        metadata = SnapshotMetadata(
            rule=self._rule.kind.value,
            world_size=self._config.world_size,
            sim_dt=self._config.time_step,
            seed=self._config.seed,
            config_version=self._config.config_version,
        )
        return Snapshot(
            tick=self._tick,
            metrics=self._metrics,
            agents=[boid.to_payload() for boid in self._population],
            metadata=metadata,
        )

    def close(self) -> None:
        if self._owns_pool:
            self._pool.close()

    def __enter__(self) -> "World":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _successor(self, population: Population, tick: int) -> "World":
        successor = World(self._config, rule=self._rule, population=population, pool=self._pool, tick=tick)
        # Closing any world of a lineage closes a pool that lineage created.
        successor._owns_pool = self._owns_pool
        return successor

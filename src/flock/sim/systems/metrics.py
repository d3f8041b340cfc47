from __future__ import annotations

from typing import Sequence

from ..core.population import Population
from ..types.metrics import AgentFault, TickMetrics
from .rules import RuleEffect


def create_metrics(
    tick: int,
    rule: str,
    population: Population,
    effects: Sequence[RuleEffect | None],
    faults: Sequence[AgentFault],
    duration_ms: float,
) -> TickMetrics:
    size = population.size()
    evaluated = 0
    neighbor_checks = 0
    steering_sum = 0.0
    for effect in effects:
        if effect is None:
            continue
        evaluated += 1
        neighbor_checks += effect.influence
        steering_sum += effect.magnitude
    speed_sum = sum(boid.speed for boid in population)
    return TickMetrics(
        tick=tick,
        rule=rule,
        population=size,
        evaluated=evaluated,
        faults=len(faults),
        neighbor_checks=neighbor_checks,
        mean_speed=0.0 if size == 0 else speed_sum / size,
        mean_steering=0.0 if evaluated == 0 else steering_sum / evaluated,
        tick_duration_ms=duration_ms,
    )

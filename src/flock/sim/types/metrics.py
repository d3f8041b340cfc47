from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    rule: str
    population: int
    evaluated: int
    faults: int
    neighbor_checks: int
    mean_speed: float
    mean_steering: float
    tick_duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class AgentFault:
    index: int
    boid_id: uuid.UUID | None
    error: BaseException

    def describe(self) -> str:
        return f"boid {self.index} ({self.boid_id}): {type(self.error).__name__}: {self.error}"

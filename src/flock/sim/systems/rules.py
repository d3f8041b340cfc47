from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Tuple

from loguru import logger
from pygame.math import Vector2

from ..utils.math2d import _safe_normalize_xy

if TYPE_CHECKING:
    from ..core.config import SimulationConfig
    from ..core.population import Population

_EPSILON_SQ = 1e-12


class RuleKind(str, Enum):
    AVOID = "avoid"
    ATTRACT = "attract"
    ALIGN = "align"


@dataclass(frozen=True, slots=True)
class RuleEffect:
    index: int
    steering: Vector2 = field(default_factory=Vector2)
    neighbors: Tuple[int, ...] = ()
    # Boids that contributed; population-wide rules leave ``neighbors`` empty.
    influence: int = 0

    @property
    def magnitude(self) -> float:
        return self.steering.length()


class Rule(ABC):
    """
    Steering rule evaluated for one boid against a frozen population snapshot.

    Implementations hold parameters only; ``use_on`` must not write to the
    population, so one instance is shared by every worker and every tick.
    """

    kind: RuleKind

    @abstractmethod
    def use_on(self, boid_ix: int, boids: Population) -> RuleEffect:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class Avoid(Rule):
    n_nearest: int = 3
    weight: float = 1.0
    min_distance: float = 1e-3
    kind: RuleKind = field(default=RuleKind.AVOID, init=False)

    def __post_init__(self) -> None:
        _check_neighbor_count(self.n_nearest)

    def use_on(self, boid_ix: int, boids: Population) -> RuleEffect:
        target = boids.get(boid_ix)
        nearest = boids.nearest(boid_ix, self.n_nearest)
        logger.trace("{} boid {}: nearest (distance, index) {}", self.kind.value, target.id, nearest)
        if not nearest:
            return RuleEffect(index=boid_ix)
        accum_x = 0.0
        accum_y = 0.0
        floor = max(self.min_distance, 1e-12)
        for distance, index in nearest:
            other = boids.get(index)
            # Coincident neighbors are selected but have no direction to push along.
            away = _safe_normalize_xy(target.position.x - other.position.x, target.position.y - other.position.y)
            inv_dist = 1.0 / max(distance, floor)
            accum_x += away.x * inv_dist
            accum_y += away.y * inv_dist
        return RuleEffect(
            index=boid_ix,
            steering=Vector2(accum_x * self.weight, accum_y * self.weight),
            neighbors=tuple(index for _distance, index in nearest),
            influence=len(nearest),
        )


@dataclass(frozen=True, slots=True)
class Attract(Rule):
    weight: float = 1.0
    kind: RuleKind = field(default=RuleKind.ATTRACT, init=False)

    def use_on(self, boid_ix: int, boids: Population) -> RuleEffect:
        target = boids.get(boid_ix)
        centroid = boids.centroid_excluding(boid_ix)
        logger.trace("attract boid {} at {}: centroid of others {}", target.id, target.position, centroid)
        if centroid is None:
            return RuleEffect(index=boid_ix)
        offset_x = centroid.x - target.position.x
        offset_y = centroid.y - target.position.y
        if offset_x * offset_x + offset_y * offset_y < _EPSILON_SQ:
            steering = Vector2()
        else:
            steering = Vector2(offset_x * self.weight, offset_y * self.weight)
        return RuleEffect(index=boid_ix, steering=steering, influence=boids.size() - 1)


@dataclass(frozen=True, slots=True)
class Align(Rule):
    n_nearest: int = 3
    weight: float = 1.0
    kind: RuleKind = field(default=RuleKind.ALIGN, init=False)

    def __post_init__(self) -> None:
        _check_neighbor_count(self.n_nearest)

    def use_on(self, boid_ix: int, boids: Population) -> RuleEffect:
        target = boids.get(boid_ix)
        nearest = boids.nearest(boid_ix, self.n_nearest)
        logger.trace("{} boid {}: nearest (distance, index) {}", self.kind.value, target.id, nearest)
        if not nearest:
            return RuleEffect(index=boid_ix)
        sum_x = 0.0
        sum_y = 0.0
        for _distance, index in nearest:
            velocity = boids.get(index).velocity
            sum_x += velocity.x
            sum_y += velocity.y
        inv = 1.0 / len(nearest)
        offset_x = sum_x * inv - target.velocity.x
        offset_y = sum_y * inv - target.velocity.y
        if offset_x * offset_x + offset_y * offset_y < _EPSILON_SQ:
            steering = Vector2()
        else:
            steering = Vector2(offset_x * self.weight, offset_y * self.weight)
        return RuleEffect(
            index=boid_ix,
            steering=steering,
            neighbors=tuple(index for _distance, index in nearest),
            influence=len(nearest),
        )


def parse_rule_kind(value: str | RuleKind) -> RuleKind:
    if isinstance(value, RuleKind):
        return value
    try:
        return RuleKind(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(kind.value for kind in RuleKind)
        raise ValueError(f"Unknown rule: {value!r} (expected one of {choices})") from None


def build_rule(kind: str | RuleKind, config: SimulationConfig) -> Rule:
    kind = parse_rule_kind(kind)
    if kind is RuleKind.AVOID:
        avoid = config.avoid
        return Avoid(n_nearest=avoid.n_nearest, weight=avoid.weight, min_distance=avoid.min_distance)
    if kind is RuleKind.ATTRACT:
        return Attract(weight=config.attract.weight)
    align = config.align
    return Align(n_nearest=align.n_nearest, weight=align.weight)


def _check_neighbor_count(n_nearest: int) -> None:
    if isinstance(n_nearest, bool) or not isinstance(n_nearest, int) or n_nearest < 1:
        raise ValueError(f"n_nearest must be a positive int, got {n_nearest!r}")

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict

from pygame.math import Vector2

from .rng import DeterministicRng, new_identifier
from ..utils.math2d import _clamp_length_xy, _heading_from_velocity, distance_between

if TYPE_CHECKING:
    from ..systems.rules import RuleEffect


class BoidKind(str, Enum):
    DUMB = "Dumb"


@dataclass(slots=True)
class Boid:
    id: uuid.UUID
    kind: BoidKind = BoidKind.DUMB
    position: Vector2 = field(default_factory=Vector2)
    velocity: Vector2 = field(default_factory=Vector2)

    @classmethod
    def create(cls, rng: DeterministicRng | None = None) -> "Boid":
        return cls(id=new_identifier(rng))

    @property
    def speed(self) -> float:
        return self.velocity.length()

    @property
    def heading(self) -> float:
        return _heading_from_velocity(self.velocity)

    def distance_to(self, other: "Boid") -> float:
        return distance_between(self.position, other.position)

    def react_to(self, effect: "RuleEffect", time_step: float, max_speed: float) -> "Boid":
        """
        Return this boid's state for the next tick.

        Only this boid's pre-tick state and an effect computed from the shared
        snapshot are read, so every boid of a tick can be advanced in any order.
        """

        steering = effect.steering
        velocity = _clamp_length_xy(
            self.velocity.x + steering.x * time_step,
            self.velocity.y + steering.y * time_step,
            max_speed,
        )
        position = Vector2(
            self.position.x + velocity.x * time_step,
            self.position.y + velocity.y * time_step,
        )
        return Boid(id=self.id, kind=self.kind, position=position, velocity=velocity)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "x": self.position.x,
            "y": self.position.y,
            "vx": self.velocity.x,
            "vy": self.velocity.y,
            "speed": self.speed,
            "heading": self.heading,
        }

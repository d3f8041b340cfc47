from __future__ import annotations

import math
import random
import uuid

from pygame.math import Vector2


class DeterministicRng:
    def __init__(self, seed: int):
        self._random = random.Random(seed)

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_unit_circle(self) -> Vector2:
        angle = self._random.uniform(0, 2 * math.pi)
        vector = Vector2()
        vector.from_polar((1, math.degrees(angle)))
        return vector

    def next_uuid(self) -> uuid.UUID:
        """Version-4 UUID drawn from this stream, so seeded runs reproduce their ids."""
        return uuid.UUID(int=self._random.getrandbits(128), version=4)


def new_identifier(rng: DeterministicRng | None = None) -> uuid.UUID:
    if rng is None:
        return uuid.uuid4()
    return rng.next_uuid()

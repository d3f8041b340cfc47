from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence, Tuple

from pygame.math import Vector2

from .agent import Boid
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid

DEFAULT_CELL_SIZE = 5.0


class Population:
    """
    Immutable, ordered snapshot of the boids of one tick.

    Indices are dense ``0..size()`` and insertion order is traversal order.
    The spatial grid and the position sum are built once at
    construction, so every query afterwards is read-only and thread-safe.
    A new ``Population`` is made for each tick via :meth:`advance`.
    """

    __slots__ = ("_boids", "_grid", "_position_sum")

    def __init__(self, boids: Iterable[Boid], cell_size: float = DEFAULT_CELL_SIZE) -> None:
        self._boids: Tuple[Boid, ...] = tuple(boids)
        self._grid = SpatialGrid(cell_size)
        sum_x = sum_y = 0.0
        for index, boid in enumerate(self._boids):
            self._grid.insert(index, boid.position)
            sum_x += boid.position.x
            sum_y += boid.position.y
        self._position_sum = (sum_x, sum_y)

    @classmethod
    def create(
        cls,
        n_boids: int,
        rng: DeterministicRng | None = None,
        cell_size: float = DEFAULT_CELL_SIZE,
    ) -> "Population":
        _check_size(n_boids)
        return cls((Boid.create(rng) for _ in range(n_boids)), cell_size=cell_size)

    @classmethod
    def scatter(
        cls,
        n_boids: int,
        rng: DeterministicRng,
        extent: float,
        speed: float = 0.0,
        cell_size: float = DEFAULT_CELL_SIZE,
    ) -> "Population":
        _check_size(n_boids)
        boids: List[Boid] = []
        for _ in range(n_boids):
            boid = Boid.create(rng)
            boid.position = Vector2(rng.next_range(0.0, extent), rng.next_range(0.0, extent))
            boid.velocity = rng.next_unit_circle() * speed
            boids.append(boid)
        return cls(boids, cell_size=cell_size)

    @classmethod
    def from_positions(
        cls,
        positions: Sequence[Tuple[float, float]],
        rng: DeterministicRng | None = None,
        cell_size: float = DEFAULT_CELL_SIZE,
    ) -> "Population":
        boids: List[Boid] = []
        for x, y in positions:
            boid = Boid.create(rng)
            boid.position = Vector2(x, y)
            boids.append(boid)
        return cls(boids, cell_size=cell_size)

    @property
    def boids(self) -> Tuple[Boid, ...]:
        return self._boids

    @property
    def cell_size(self) -> float:
        return self._grid.cell_size

    def get(self, boid_ix: int) -> Boid:
        if not 0 <= boid_ix < len(self._boids):
            raise IndexError(f"boid index {boid_ix} out of range for population of {len(self._boids)}")
        return self._boids[boid_ix]

    def size(self) -> int:
        return len(self._boids)

    def __len__(self) -> int:
        return len(self._boids)

    def __getitem__(self, boid_ix: int) -> Boid:
        return self.get(boid_ix)

    def __iter__(self) -> Iterator[Boid]:
        # A fresh iterator per call: traversal is restartable and shares no cursor.
        return iter(self._boids)

    def __reduce__(self):
        # The grid is rebuilt on load; only the boids and the cell size travel.
        return (Population, (self._boids, self._grid.cell_size))

    def advance(self, boids: Iterable[Boid]) -> "Population":
        return Population(boids, cell_size=self._grid.cell_size)

    def distances_from(self, boid_ix: int) -> List[Tuple[float, int]]:
        """All-pairs reference scan: ``(distance, index)`` to every other boid, in index order."""

        target = self.get(boid_ix)
        return [
            (boid.distance_to(target), index)
            for index, boid in enumerate(self._boids)
            if index != boid_ix
        ]

    def nearest(self, boid_ix: int, k: int) -> List[Tuple[float, int]]:
        target = self.get(boid_ix)
        boids = self._boids
        return self._grid.nearest(target.position, k, exclude=boid_ix, tie_key=lambda index: boids[index].id)

    def within(self, boid_ix: int, radius: float) -> List[int]:
        target = self.get(boid_ix)
        return self._grid.get_neighbors(target.position, radius, exclude=boid_ix)

    def centroid_excluding(self, boid_ix: int) -> Vector2 | None:
        own = self.get(boid_ix).position
        others = len(self._boids) - 1
        if others <= 0:
            return None
        total_x, total_y = self._position_sum
        return Vector2((total_x - own.x) / others, (total_y - own.y) / others)


def _check_size(n_boids: int) -> None:
    if isinstance(n_boids, bool) or not isinstance(n_boids, int):
        raise ValueError(f"population size must be an int, got {n_boids!r}")
    if n_boids < 0:
        raise ValueError(f"population size must be non-negative, got {n_boids}")

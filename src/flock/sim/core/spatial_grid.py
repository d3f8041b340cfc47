from __future__ import annotations

import heapq
import math
from typing import Any, Callable, Dict, Iterator, List, Tuple

from pygame.math import Vector2


class SpatialGrid:
    """
    Uniform bucket grid over boid indices.

    The grid is filled once per population snapshot and only read afterwards,
    so queries keep their buffers local and may run from several threads.
    """

    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[int]] = {}
        self._positions: Dict[int, Vector2] = {}
        self._bounds: Tuple[int, int, int, int] | None = None

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def __len__(self) -> int:
        return len(self._positions)

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(radius / self._cell_size))
        return [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]

    def insert(self, index: int, position: Vector2) -> None:
        key = self._cell_key(position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
        bucket.append(index)
        self._positions[index] = position
        if self._bounds is None:
            self._bounds = (key[0], key[0], key[1], key[1])
        else:
            min_x, max_x, min_y, max_y = self._bounds
            self._bounds = (min(min_x, key[0]), max(max_x, key[0]), min(min_y, key[1]), max(max_y, key[1]))

    def get_neighbors(self, position: Vector2, radius: float, exclude: int | None = None) -> List[int]:
        base_key = self._cell_key(position)
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        positions = self._positions
        found: List[int] = []

        for dx, dy in self.build_neighbor_cell_offsets(radius):
            bucket = self._cells.get((base_key[0] + dx, base_key[1] + dy))
            if not bucket:
                continue
            for index in bucket:
                if index == exclude:
                    continue
                pos = positions[index]
                offset_x = pos.x - pos_x
                offset_y = pos.y - pos_y
                if offset_x * offset_x + offset_y * offset_y <= radius_sq:
                    found.append(index)
        return found

    def nearest(
        self,
        position: Vector2,
        k: int,
        exclude: int | None = None,
        tie_key: Callable[[int], Any] | None = None,
    ) -> List[Tuple[float, int]]:
        """
        Return up to ``k`` ``(distance, index)`` pairs closest to ``position``, nearest first.

        Rings of cells are scanned outwards from the query cell. Anything beyond
        ring ``r`` is farther than ``r * cell_size``, so the scan stops once the
        k-th candidate lies within that bound. Once more cells have been looked
        up than there are points, the remaining search is a linear scan over
        every point, so sparse or widely spread grids cost at most O(n).
        Equal distances are ordered by ``tie_key(index)`` (the index itself
        when not given).
        """

        if k <= 0 or self._bounds is None:
            return []
        key_of = tie_key if tie_key is not None else (lambda index: index)
        base_key = self._cell_key(position)
        max_ring = self._max_ring(base_key)
        pos_x = position.x
        pos_y = position.y
        positions = self._positions
        cell_budget = len(positions)
        cells_scanned = 0
        candidates: List[Tuple[float, Any, int]] = []

        ring = 0
        while ring <= max_ring:
            if cells_scanned > cell_budget:
                return self._nearest_by_scan(pos_x, pos_y, k, exclude, key_of)
            for dx, dy in _ring_offsets(ring):
                bucket = self._cells.get((base_key[0] + dx, base_key[1] + dy))
                if not bucket:
                    continue
                for index in bucket:
                    if index == exclude:
                        continue
                    pos = positions[index]
                    offset_x = pos.x - pos_x
                    offset_y = pos.y - pos_y
                    distance = math.sqrt(offset_x * offset_x + offset_y * offset_y)
                    candidates.append((distance, key_of(index), index))
            cells_scanned += 8 * ring if ring else 1
            if len(candidates) >= k:
                candidates.sort()
                if candidates[k - 1][0] <= ring * self._cell_size:
                    break
            ring += 1

        candidates.sort()
        return [(distance, index) for distance, _key, index in candidates[:k]]

    def _nearest_by_scan(
        self,
        pos_x: float,
        pos_y: float,
        k: int,
        exclude: int | None,
        key_of: Callable[[int], Any],
    ) -> List[Tuple[float, int]]:
        candidates = []
        for index, pos in self._positions.items():
            if index == exclude:
                continue
            offset_x = pos.x - pos_x
            offset_y = pos.y - pos_y
            candidates.append((math.sqrt(offset_x * offset_x + offset_y * offset_y), key_of(index), index))
        return [(distance, index) for distance, _key, index in heapq.nsmallest(k, candidates)]

    def _max_ring(self, base_key: Tuple[int, int]) -> int:
        min_x, max_x, min_y, max_y = self._bounds
        return max(
            abs(base_key[0] - min_x),
            abs(max_x - base_key[0]),
            abs(base_key[1] - min_y),
            abs(max_y - base_key[1]),
        )

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))


def _ring_offsets(ring: int) -> Iterator[Tuple[int, int]]:
    if ring == 0:
        yield (0, 0)
        return
    for dx in range(-ring, ring + 1):
        yield (dx, -ring)
        yield (dx, ring)
    for dy in range(-ring + 1, ring):
        yield (-ring, dy)
        yield (ring, dy)

from __future__ import annotations

import math

import pytest
from pytest import approx
from pygame.math import Vector2

from flock.sim.core.rng import DeterministicRng
from flock.sim.core.spatial_grid import SpatialGrid


def test_neighbor_query_matches_bruteforce():
    grid = SpatialGrid(cell_size=2.5)
    positions = [
        Vector2(0, 0),
        Vector2(1, 1),
        Vector2(3, 0.5),
        Vector2(6, 6),
    ]
    for idx, pos in enumerate(positions):
        grid.insert(idx, pos)

    center = Vector2(1, 1)
    radius = 3.0
    neighbors = grid.get_neighbors(center, radius)
    brute = [idx for idx, pos in enumerate(positions) if (pos - center).length_squared() <= radius * radius]
    assert sorted(neighbors) == sorted(brute)


def test_neighbor_query_skips_excluded_index():
    grid = SpatialGrid(cell_size=2.5)
    grid.insert(0, Vector2(0, 0))
    grid.insert(1, Vector2(0.5, 0))
    assert grid.get_neighbors(Vector2(0, 0), 1.0, exclude=0) == [1]


def test_nearest_matches_bruteforce_across_cells():
    rng = DeterministicRng(21)
    grid = SpatialGrid(cell_size=1.5)
    positions = [Vector2(rng.next_range(-20, 20), rng.next_range(-20, 20)) for _ in range(400)]
    for idx, pos in enumerate(positions):
        grid.insert(idx, pos)

    for query in (Vector2(0, 0), Vector2(-19, 19), Vector2(35, -35)):
        brute = sorted((math.dist(query, pos), idx) for idx, pos in enumerate(positions))
        found = grid.nearest(query, 5)
        assert [idx for _d, idx in found] == [idx for _d, idx in brute[:5]]
        assert [d for d, _idx in found] == pytest.approx([d for d, _idx in brute[:5]])


def test_nearest_handles_sparse_far_points():
    grid = SpatialGrid(cell_size=1.0)
    grid.insert(0, Vector2(0, 0))
    grid.insert(1, Vector2(50, 0))
    grid.insert(2, Vector2(0.5, 0))

    found = grid.nearest(Vector2(0, 0), 2, exclude=0)

    assert [idx for _d, idx in found] == [2, 1]


def test_nearest_orders_ties_with_tie_key():
    grid = SpatialGrid(cell_size=1.0)
    for idx, pos in enumerate([Vector2(1, 0), Vector2(-1, 0), Vector2(0, 1)]):
        grid.insert(idx, pos)

    found = grid.nearest(Vector2(0, 0), 3, tie_key=lambda idx: -idx)

    assert [idx for _d, idx in found] == [2, 1, 0]


def test_nearest_on_empty_grid_and_zero_k():
    grid = SpatialGrid(cell_size=1.0)
    assert grid.nearest(Vector2(), 3) == []
    grid.insert(0, Vector2())
    assert grid.nearest(Vector2(), 0) == []


def test_nearest_reaches_points_far_outside_the_grid():
    grid = SpatialGrid(cell_size=1.0)
    grid.insert(0, Vector2(0, 0))
    grid.insert(1, Vector2(1_000_000, 0))
    assert grid.nearest(Vector2(0, 0), 1, exclude=0) == [(approx(1_000_000.0), 1)]
    assert grid.nearest(Vector2(1_000_000, 0), 3, exclude=1) == [(approx(1_000_000.0), 0)]


def test_sparse_grid_matches_bruteforce_with_outliers():
    points = [Vector2(x * 0.7, (x % 3) * 0.4) for x in range(20)]
    points += [Vector2(50_000, -30_000), Vector2(-80_000, 120_000), Vector2(50_000, -30_000)]
    grid = SpatialGrid(cell_size=1.0)
    for index, point in enumerate(points):
        grid.insert(index, point)

    for query in (0, 10, 20, 21, 22):
        origin = points[query]
        brute = sorted(
            (math.sqrt((p.x - origin.x) * (p.x - origin.x) + (p.y - origin.y) * (p.y - origin.y)), index)
            for index, p in enumerate(points)
            if index != query
        )
        assert grid.nearest(points[query], 4, exclude=query) == [(approx(d), i) for d, i in brute[:4]]


def test_rejects_non_positive_cell_size():
    with pytest.raises(ValueError):
        SpatialGrid(cell_size=0.0)

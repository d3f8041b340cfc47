from __future__ import annotations

import pytest
from pygame.math import Vector2
from pytest import approx

from flock.sim.core.rng import DeterministicRng
from flock.sim.utils.math2d import _clamp_length_xy, _safe_normalize_xy, distance_between


def test_distance_to_self_is_zero():
    rng = DeterministicRng(3)
    for _ in range(50):
        point = Vector2(rng.next_range(-1e3, 1e3), rng.next_range(-1e3, 1e3))
        assert distance_between(point, point) == 0.0


def test_distance_is_symmetric_and_non_negative():
    rng = DeterministicRng(11)
    for _ in range(200):
        a = Vector2(rng.next_range(-50, 50), rng.next_range(-50, 50))
        b = Vector2(rng.next_range(-50, 50), rng.next_range(-50, 50))
        assert distance_between(a, b) == distance_between(b, a)
        assert distance_between(a, b) >= 0.0


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0.0, 0.0), (3.0, 4.0), 5.0),
        ((1.0, 1.0), (1.0, 1.0), 0.0),
        ((-2.0, 0.0), (2.0, 0.0), 4.0),
    ],
)
def test_distance_matches_euclidean_norm(a, b, expected):
    assert distance_between(Vector2(a), Vector2(b)) == approx(expected)


def test_safe_normalize_returns_zero_for_tiny_vectors():
    assert _safe_normalize_xy(0.0, 0.0) == Vector2()
    unit = _safe_normalize_xy(3.0, 4.0)
    assert unit.x == approx(0.6)
    assert unit.y == approx(0.8)


def test_clamp_length_scales_only_long_vectors():
    assert _clamp_length_xy(1.0, 0.0, 2.0) == Vector2(1.0, 0.0)
    clamped = _clamp_length_xy(3.0, 4.0, 1.0)
    assert clamped.length() == approx(1.0)
    assert _clamp_length_xy(3.0, 4.0, 0.0) == Vector2()

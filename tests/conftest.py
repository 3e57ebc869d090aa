"""Shared fixtures for plancore tests"""

import pytest

from plancore.config import default_rules
from plancore.models import Opening, Point, Wall


def _wall(wall_id, x1, y1, x2, y2, **kwargs):
    return Wall(id=wall_id, start=Point(x1, y1), end=Point(x2, y2), **kwargs)


@pytest.fixture
def make_wall():
    """Factory: make_wall("W1", x1, y1, x2, y2, thickness=..., ...)"""
    return _wall


@pytest.fixture
def rules():
    return default_rules()


@pytest.fixture
def square_walls():
    """Closed 4000 x 3000 rectangle drawn counter-clockwise."""
    return [
        _wall("S", 0, 0, 4000, 0),
        _wall("E", 4000, 0, 4000, 3000),
        _wall("N", 4000, 3000, 0, 3000),
        _wall("W", 0, 3000, 0, 0),
    ]


@pytest.fixture
def two_room_walls():
    """6000 x 3000 rectangle split by a partition at x=3000, already noded."""
    return [
        _wall("B1", 0, 0, 3000, 0),
        _wall("B2", 3000, 0, 6000, 0),
        _wall("R", 6000, 0, 6000, 3000),
        _wall("T2", 6000, 3000, 3000, 3000),
        _wall("T1", 3000, 3000, 0, 3000),
        _wall("L", 0, 3000, 0, 0),
        _wall("M", 3000, 0, 3000, 3000),
    ]


@pytest.fixture
def messy_walls():
    """
    Hand-drawn rectangle with an un-noded partition, a reversed duplicate
    of the left wall and a corner that misses by a fraction of a unit.
    """
    return [
        _wall("bottom", 0, 0, 6000, 0),
        _wall("right", 6000, 0, 6000, 3000),
        _wall("top", 6000.2, 3000.1, 0, 3000),
        _wall("left", 0, 3000, 0, 0),
        _wall("left-copy", 0, 0, 0, 3000),
        _wall("partition", 3000, 0, 3000, 3000),
    ]


@pytest.fixture
def window():
    return Opening(id="win-1", kind="window", offset=500, width=1200, height=1500, sill_height=900)

"""Tests for the spatial index and level of detail"""

import math

import pytest

from plancore.config import SpatialConfig
from plancore.models import Point, Room
from plancore.spatial import (
    COARSE,
    FINE,
    MEDIUM,
    SpatialIndex,
    bounds_intersect,
    build_spatial_index,
    level_of_detail,
    point_bounds,
    rooms_in_viewport,
)


@pytest.fixture
def index(square_walls):
    return build_spatial_index(square_walls, SpatialConfig())


def ids(walls):
    return [w.id for w in walls]


@pytest.mark.parametrize("zoom, expected", [
    (0.1, COARSE),
    (0.39, COARSE),
    (0.4, MEDIUM),
    (1.19, MEDIUM),
    (1.2, FINE),
    (4.0, FINE),
])
def test_level_of_detail_thresholds(zoom, expected):
    assert level_of_detail(zoom, SpatialConfig()) == expected


def test_level_of_detail_flags():
    assert not COARSE.show_fill
    assert MEDIUM.show_dimensions and not MEDIUM.show_layers
    assert FINE.show_layers


def test_query_range(index):
    assert ids(index.query_range((1900, -10, 2100, 10))) == ["S"]
    assert index.query_range((10000, 10000, 11000, 11000)) == []


def test_query_range_uses_thickness(index):
    """Boxes are grown by half the wall thickness"""
    assert ids(index.query_range((-100, 1000, -70, 1010))) == ["W"]
    assert index.query_range((-100, 1000, -80, 1010)) == []


def test_query_point(index):
    assert ids(index.query_point(Point(2000, 100), 50)) == ["S"]
    assert ids(index.query_point(Point(0, 0), 10)) == ["S", "W"]


def test_vertices_are_unique(index):
    assert len(index.vertices) == 4
    corner = index.nearest_vertex(Point(10, 10), 100)
    assert corner.point == Point(0, 0)
    assert set(corner.wall_ids) == {"S", "W"}


def test_nearest_vertices_sorted_by_distance(index):
    found = index.nearest_vertices(Point(1500, 0), 3000)

    assert [v.point for v in found] == [Point(0, 0), Point(4000, 0)]
    assert index.nearest_vertex(Point(2000, 1500), 100) is None


def test_viewport_culling_with_margin(index):
    assert index.walls_in_viewport((5000, 5000, 6000, 6000), margin=0) == []
    assert ids(index.walls_in_viewport((5000, 5000, 6000, 6000), margin=3000)) == ["E", "N"]


def test_rooms_in_viewport():
    near = Room(id="near", name="Near", wall_ids=[],
                vertices=[Point(0, 0), Point(1000, 0), Point(1000, 1000), Point(0, 1000)])
    far = Room(id="far", name="Far", wall_ids=[],
               vertices=[Point(9000, 9000), Point(9500, 9000), Point(9500, 9500)])
    empty = Room(id="empty", name="Empty", wall_ids=[], vertices=[])

    visible = rooms_in_viewport([near, far, empty], (500, 500, 2000, 2000), margin=0)

    assert [r.id for r in visible] == ["near"]
    assert [r.id for r in rooms_in_viewport([near, far], (3000, 3000, 8500, 8500), margin=600)] == ["far"]


def test_rebuild_returns_new_index(index, square_walls):
    rebuilt = SpatialIndex.rebuild(square_walls[:2])

    assert len(rebuilt) == 2
    assert len(index) == 4
    assert rebuilt is not index


def test_empty_index():
    index = SpatialIndex([])

    assert index.query_range((0, 0, 10, 10)) == []
    assert index.query_point(Point(0, 0), 10) == []
    assert index.nearest_vertex(Point(0, 0), 10) is None


def test_non_finite_walls_skipped(make_wall):
    index = SpatialIndex([make_wall("A", 0, 0, 10, 0), make_wall("bad", math.inf, 0, 10, 0)])

    assert ids(index.walls) == ["A"]


def test_bounds_helpers():
    assert bounds_intersect((0, 0, 10, 10), (10, 10, 20, 20))
    assert not bounds_intersect((0, 0, 10, 10), (11, 0, 20, 10))
    assert point_bounds([Point(1, 5), Point(3, 2)], expand=1) == (0, 1, 4, 6)
    assert point_bounds([]) is None

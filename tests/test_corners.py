"""Tests for corner geometry, bevels and centre drags"""

import math

import pytest

from plancore.config import CornerConfig
from plancore.corners import (
    bevel,
    bevel_length_for,
    corner_geometry,
    drag_center,
    exterior_normal,
    move_node,
    node_key,
    resolve_corner_pair,
)
from plancore.geometry import distance, dot, sub
from plancore.models import Point

NODE = Point(0, 0)


@pytest.fixture
def corner_walls(make_wall):
    """Two 1000-long, 200-thick walls meeting at the origin, exterior to the right."""
    return [
        make_wall("A", 0, 0, 1000, 0, thickness=200, exterior_side="right"),
        make_wall("B", 0, 1000, 0, 0, thickness=200, exterior_side="right", material="concrete"),
    ]


@pytest.fixture
def pair(corner_walls):
    return resolve_corner_pair(corner_walls, NODE)


@pytest.fixture
def geometry(pair):
    return corner_geometry(pair)


def bevel_connectors(walls):
    return [w for w in walls if w.is_bevel_segment]


def test_exterior_normal_follows_side(make_wall):
    left = make_wall("L", 0, 0, 10, 0, exterior_side="left")
    right = make_wall("R", 0, 0, 10, 0, exterior_side="right")

    assert exterior_normal(left) == pytest.approx((0, 1))
    assert exterior_normal(right) == pytest.approx((0, -1))
    assert exterior_normal(make_wall("D", 1, 1, 1, 1)) is None


def test_resolve_corner_pair(pair):
    assert (pair.wall_a.id, pair.wall_b.id) == ("A", "B")
    assert pair.away_a == pytest.approx((1, 0))
    assert pair.away_b == pytest.approx((0, 1))
    assert pair.length_a == pytest.approx(1000)


def test_resolve_corner_pair_needs_two_walls(corner_walls):
    assert resolve_corner_pair(corner_walls[:1], NODE) is None
    assert resolve_corner_pair(corner_walls, Point(500, 500)) is None


def test_corner_geometry(geometry):
    outer, inner = geometry.outer_vertex, geometry.inner_vertex

    assert (outer.x, outer.y) == pytest.approx((-100, -100))
    assert (inner.x, inner.y) == pytest.approx((100, 100))
    assert (geometry.center.x, geometry.center.y) == pytest.approx((0, 0))
    assert geometry.angle_deg == pytest.approx(90)
    assert geometry.max_bevel_length == pytest.approx(1000 / 3)


def test_outer_vertex_on_convex_side(pair, geometry):
    """The outer vertex lies away from the walls, the inner vertex between them"""
    bisector = (pair.away_a[0] + pair.away_b[0], pair.away_a[1] + pair.away_b[1])

    assert dot(sub(geometry.outer_vertex, NODE), bisector) < 0
    assert dot(sub(geometry.inner_vertex, NODE), bisector) > 0


def test_center_radial_falls_back_to_bisector(geometry):
    radial = geometry.center_radial

    assert radial == pytest.approx((math.sqrt(0.5), math.sqrt(0.5)))


def test_bevel_length_clamped(geometry):
    for pointer in [Point(0, 0), Point(-150, -150), Point(-300, -300), Point(-5000, -5000), Point(800, 800)]:
        length = bevel_length_for(geometry, "outer", pointer)
        assert 0 <= length <= geometry.max_bevel_length + 1e-9

    assert bevel_length_for(geometry, "outer", Point(-5000, -5000)) == pytest.approx(1000 / 3)
    assert bevel_length_for(geometry, "outer", Point(0, 0)) == 0


def test_bevel_length_unknown_handle(geometry):
    with pytest.raises(ValueError):
        bevel_length_for(geometry, "center", Point(0, 0))


def test_bevel_adds_connector(corner_walls, pair, geometry):
    walls = bevel(corner_walls, pair, geometry, "outer", Point(-300, -300), CornerConfig())

    expected = math.hypot(200, 200)
    by_id = {w.id: w for w in walls}
    assert (by_id["A"].start.x, by_id["A"].start.y) == pytest.approx((expected, 0))
    assert (by_id["B"].end.x, by_id["B"].end.y) == pytest.approx((0, expected))

    connectors = bevel_connectors(walls)
    assert len(connectors) == 1
    connector = connectors[0]
    assert connector.start == by_id["A"].start
    assert connector.end == by_id["B"].end
    assert connector.bevel_node_key == node_key(NODE)
    assert connector.bevel_source_wall_ids == ["A", "B"]
    assert connector.thickness == 200
    assert connector.material == "brick"
    assert connector.openings == []

    # Input untouched
    assert corner_walls[0].start == NODE


def test_bevel_replaces_existing_connector(corner_walls, pair, geometry):
    first = bevel(corner_walls, pair, geometry, "outer", Point(-300, -300), CornerConfig())
    second = bevel(first, pair, geometry, "outer", Point(-200, -200), CornerConfig())

    connectors = bevel_connectors(second)
    assert len(connectors) == 1
    by_id = {w.id: w for w in second}
    expected = math.hypot(100, 100)
    assert (by_id["A"].start.x, by_id["A"].start.y) == pytest.approx((expected, 0))
    assert (by_id["B"].end.x, by_id["B"].end.y) == pytest.approx((0, expected))
    assert connectors[0].start == by_id["A"].start
    assert connectors[0].end == by_id["B"].end


def test_zero_bevel_removes_connector(corner_walls, pair, geometry):
    first = bevel(corner_walls, pair, geometry, "outer", Point(-300, -300), CornerConfig())
    removed = bevel(first, pair, geometry, "outer", Point(0, 0), CornerConfig())

    assert bevel_connectors(removed) == []
    assert len(removed) == 2
    by_id = {w.id: w for w in removed}
    assert by_id["A"].start == NODE
    assert by_id["B"].end == NODE


def test_drag_center_moves_node(corner_walls, pair, geometry):
    walls = drag_center(corner_walls, pair, geometry, Point(100, 100), CornerConfig())

    by_id = {w.id: w for w in walls}
    assert (by_id["A"].start.x, by_id["A"].start.y) == pytest.approx((100, 100))
    assert by_id["A"].start == by_id["B"].end
    assert by_id["A"].end == Point(1000, 0)


def test_drag_center_rejects_sharp_corner(corner_walls, pair, geometry):
    """Dragging the node far out closes the angle below the minimum"""
    assert drag_center(corner_walls, pair, geometry, Point(5000, 5000), CornerConfig()) is None


def test_move_node(corner_walls):
    moved = move_node(corner_walls, NODE, Point(5, 5))

    assert moved[0].start == Point(5, 5)
    assert moved[1].end == Point(5, 5)
    assert distance(moved[0].end, Point(1000, 0)) == 0

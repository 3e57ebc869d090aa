"""Tests for room detection, identity and validation"""

import pytest

from plancore.config import RoomDetectionConfig
from plancore.models import Point, Room, Severity, copy_room
from plancore.rooms import (
    auto_label_rooms,
    build_wall_graph,
    canonical_cycle_key,
    detect_and_label_rooms,
    detect_rooms,
    extract_faces,
    room_adjacency,
    validate_nested_rooms,
    validate_room_topology,
)


def nested_walls(make_wall):
    return [
        make_wall("O1", 0, 0, 10000, 0),
        make_wall("O2", 10000, 0, 10000, 10000),
        make_wall("O3", 10000, 10000, 0, 10000),
        make_wall("O4", 0, 10000, 0, 0),
        make_wall("I1", 2000, 2000, 4000, 2000),
        make_wall("I2", 4000, 2000, 4000, 4000),
        make_wall("I3", 4000, 4000, 2000, 4000),
        make_wall("I4", 2000, 4000, 2000, 2000),
    ]


def test_single_room_detected(square_walls):
    rooms = detect_rooms(square_walls)

    assert len(rooms) == 1
    room = rooms[0]
    assert room.id == "room-1"
    assert room.name == "Room 1"
    assert room.area == pytest.approx(12_000_000)
    assert room.perimeter == pytest.approx(14_000)
    assert room.centroid.x == pytest.approx(2000)
    assert room.centroid.y == pytest.approx(1500)
    assert sorted(room.wall_ids) == ["E", "N", "S", "W"]
    assert not room.is_exterior
    assert room.parent_room_id is None


def test_bounded_faces_are_counter_clockwise(square_walls, rules):
    faces = extract_faces(square_walls, rules.rooms)

    assert len(faces) == 1
    assert faces[0].signed_area > 0


def test_two_rooms_share_partition(two_room_walls):
    rooms = detect_rooms(two_room_walls)

    assert [r.name for r in rooms] == ["Room 1", "Room 2"]
    left, right = rooms
    assert left.centroid.x < right.centroid.x
    assert "M" in left.wall_ids and "M" in right.wall_ids
    assert room_adjacency(rooms) == {left.id: {right.id}, right.id: {left.id}}


def test_open_chain_yields_no_rooms(make_wall):
    walls = [
        make_wall("A", 0, 0, 1000, 0),
        make_wall("B", 1000, 0, 1000, 1000),
        make_wall("C", 1000, 1000, 0, 1000),
    ]

    assert detect_rooms(walls) == []


def test_tiny_faces_filtered(make_wall):
    walls = [
        make_wall("A", 0, 0, 1, 0),
        make_wall("B", 1, 0, 1, 1),
        make_wall("C", 1, 1, 0, 1),
        make_wall("D", 0, 1, 0, 0),
    ]

    assert detect_rooms(walls) == []


def test_graph_sorts_outgoing_half_edges(square_walls):
    graph = build_wall_graph(square_walls, 0.5)

    assert len(graph.positions) == 4
    for edges in graph.outgoing.values():
        assert len(edges) == 2
        angles = [e.angle % (2 * 3.141592653589793) for e in edges]
        assert angles == sorted(angles)


def test_previous_room_identity_kept(two_room_walls):
    """A re-detected room keeps its id, name and user fields"""
    rooms = detect_rooms(two_room_walls)
    edited = [
        copy_room(rooms[0], name="Kitchen", space_type="Kitchen", color="#ffcc00", ceiling_height=2700),
        rooms[1],
    ]

    again = detect_rooms(two_room_walls, edited)

    assert [r.id for r in again] == [r.id for r in rooms]
    kitchen = again[0]
    assert kitchen.name == "Kitchen"
    assert kitchen.space_type == "Kitchen"
    assert kitchen.color == "#ffcc00"
    assert kitchen.ceiling_height == 2700


def test_new_room_continues_numbering(square_walls):
    previous = [Room(id="room-1", name="Room 5", vertices=[], wall_ids=["x", "y", "z"])]

    rooms = detect_rooms(square_walls, previous)

    assert rooms[0].id == "room-2"
    assert rooms[0].name == "Room 6"


def test_nested_rooms(make_wall):
    rooms = detect_rooms(nested_walls(make_wall))
    by_area = sorted(rooms, key=lambda r: r.area)
    inner, outer = by_area

    assert len(rooms) == 2
    assert outer.is_exterior
    assert not inner.is_exterior
    assert inner.parent_room_id == outer.id
    assert outer.child_room_ids == [inner.id]
    assert inner.depth == 1
    assert outer.depth == 0
    assert inner.name == "Sub-room 1"
    assert outer.name == "Room 1"
    assert validate_nested_rooms(rooms) == []


def _room(room_id, area, parent=None, size=10):
    vertices = [Point(0, 0), Point(size, 0), Point(size, size), Point(0, size)]
    return Room(id=room_id, name=room_id, vertices=vertices, wall_ids=["a", "b", "c", "d"],
                area=area, parent_room_id=parent)


def test_validate_nested_rooms_errors():
    dangling = [_room("child", 10, parent="ghost")]
    cycle = [_room("a", 10, parent="b"), _room("b", 20, parent="a")]
    too_big = [_room("parent", 10), _room("child", 10, parent="parent")]

    assert [d.code for d in validate_nested_rooms(dangling)] == ["dangling_parent"]
    assert "parent_cycle" in [d.code for d in validate_nested_rooms(cycle)]
    assert [d.code for d in validate_nested_rooms(too_big)] == ["child_not_smaller"]
    assert all(d.severity == Severity.ERROR for d in validate_nested_rooms(cycle))


def test_validate_room_topology():
    degenerate = Room(id="r1", name="R1", vertices=[Point(0, 0), Point(1, 0)], wall_ids=["a", "b"])
    bowtie = Room(
        id="r2", name="R2",
        vertices=[Point(0, 0), Point(10, 10), Point(10, 0), Point(0, 10)],
        wall_ids=["a", "b", "c", "a"],
    )

    codes = {d.code for d in validate_room_topology([degenerate, bowtie])}

    assert {"too_few_vertices", "too_few_walls", "duplicate_wall", "self_intersection"} <= codes
    assert validate_room_topology([_room("ok", 100)]) == []


def test_detect_and_label_rooms_messages(square_walls):
    rooms, messages = detect_and_label_rooms(square_walls)

    assert len(rooms) == 1
    assert messages == ["warning: No windows detected for Room 1"]


def test_detect_and_label_rooms_with_window(square_walls, window):
    square_walls[0].openings.append(window)

    _, messages = detect_and_label_rooms(square_walls)

    assert messages == []


def test_auto_label_rooms():
    rooms = [_room("a", 1), _room("b", 1), _room("c", 1), _room("d", 1)]
    rooms[0].name = "Room 2"
    rooms[1].name = ""
    rooms[2].name = "Kitchen"
    rooms[3].name = "  "

    labelled = auto_label_rooms(rooms)

    assert [r.name for r in labelled] == ["Room 2", "Room 3", "Kitchen", "Room 4"]
    assert rooms[1].name == ""


def test_canonical_cycle_key_ignores_rotation_and_direction():
    key = canonical_cycle_key(["b", "c", "a"])

    assert key == canonical_cycle_key(["a", "b", "c"])
    assert key == canonical_cycle_key(["c", "b", "a"])
    assert canonical_cycle_key([]) == ()


def test_min_room_area_configurable(square_walls):
    config = RoomDetectionConfig(min_room_area=20_000_000)

    assert detect_rooms(square_walls, config=config) == []

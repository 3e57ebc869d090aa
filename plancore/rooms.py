"""
Floor Plan Room Detection Module
Extracts enclosed faces from a cleaned wall graph and keeps room identity
stable across incremental edits.

Algorithm:
1. Wall endpoints -> graph nodes (snapped on a tolerance grid), walls -> edges
2. At each node, sort outgoing half-edges by angle
3. Trace faces: the successor of half-edge u->v is the outgoing edge at v
   just clockwise of v->u, so bounded faces come out counter-clockwise
4. Drop the unbounded face (non-positive signed area) and tiny faces
5. Match faces to previous rooms by wall-id signature
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .config import RoomDetectionConfig, default_rules
from .geometry import (
    point_in_polygon,
    polygon_centroid,
    polygon_contains_polygon,
    polygon_perimeter,
    polygon_self_intersects,
    signed_area,
)
from .models import Diagnostic, Point, Room, Severity, Wall, copy_room, filter_valid_walls
from .qc import QualityChecker

logger = logging.getLogger(__name__)

NodeKey = Tuple[int, int]


@dataclass
class HalfEdge:
    """Directed traversal of a wall between two graph nodes."""
    wall_id: str
    origin: NodeKey
    target: NodeKey
    angle: float


@dataclass
class WallGraph:
    """Planar graph of snapped wall endpoints."""
    positions: Dict[NodeKey, Point] = field(default_factory=dict)
    outgoing: Dict[NodeKey, List[HalfEdge]] = field(default_factory=dict)

    @property
    def half_edges(self) -> List[HalfEdge]:
        return [he for node in sorted(self.outgoing) for he in self.outgoing[node]]


@dataclass
class Face:
    """A traced face before it becomes a Room."""
    wall_ids: List[str]
    vertices: List[Point]
    signed_area: float

    @property
    def area(self) -> float:
        return abs(self.signed_area)


def build_wall_graph(walls: Sequence[Wall], tolerance: float) -> WallGraph:
    """
    Build the half-edge graph of a wall list.

    Endpoints are keyed on a grid of ``tolerance`` cells; each node keeps the
    first position seen for its key.
    """
    graph = WallGraph()
    cell = tolerance if tolerance > 0 else 1e-6

    def node_for(point: Point) -> NodeKey:
        key = (int(math.floor(point.x / cell + 0.5)), int(math.floor(point.y / cell + 0.5)))
        if key not in graph.positions:
            graph.positions[key] = point
            graph.outgoing[key] = []
        return key

    for wall in walls:
        a = node_for(wall.start)
        b = node_for(wall.end)
        if a == b:
            logger.debug(f"Skipping degenerate wall {wall.id} in room graph")
            continue
        pa, pb = graph.positions[a], graph.positions[b]
        graph.outgoing[a].append(HalfEdge(wall.id, a, b, math.atan2(pb.y - pa.y, pb.x - pa.x)))
        graph.outgoing[b].append(HalfEdge(wall.id, b, a, math.atan2(pa.y - pb.y, pa.x - pb.x)))

    for edges in graph.outgoing.values():
        edges.sort(key=lambda he: (he.angle % (2 * math.pi), he.wall_id))

    return graph


def next_half_edge(graph: WallGraph, edge: HalfEdge) -> HalfEdge:
    """Outgoing edge at the target node immediately clockwise of the reverse edge."""
    candidates = graph.outgoing[edge.target]
    for index, candidate in enumerate(candidates):
        if candidate.wall_id == edge.wall_id and candidate.target == edge.origin:
            return candidates[index - 1]
    raise KeyError(f"Reverse half-edge missing for wall {edge.wall_id}")


def trace_faces(graph: WallGraph, max_steps: int = 2048) -> List[Face]:
    """Trace every face of the graph once; the unbounded face included."""
    visited: Set[Tuple[str, NodeKey, NodeKey]] = set()
    faces: List[Face] = []

    for start in graph.half_edges:
        start_key = (start.wall_id, start.origin, start.target)
        if start_key in visited:
            continue

        wall_ids: List[str] = []
        vertices: List[Point] = []
        current = start
        closed = False
        for _ in range(max_steps):
            key = (current.wall_id, current.origin, current.target)
            if key in visited:
                break
            visited.add(key)
            wall_ids.append(current.wall_id)
            vertices.append(graph.positions[current.origin])
            current = next_half_edge(graph, current)
            if current is start:
                closed = True
                break

        if not closed:
            logger.debug(f"Abandoned open trace starting at wall {start.wall_id}")
            continue
        faces.append(Face(wall_ids=wall_ids, vertices=vertices, signed_area=signed_area(vertices)))

    return faces


def canonical_cycle_key(wall_ids: Sequence[str]) -> Tuple[str, ...]:
    """Smallest rotation of the cycle or of its reverse."""
    if not wall_ids:
        return tuple()
    candidates = []
    for sequence in (list(wall_ids), list(reversed(wall_ids))):
        for i in range(len(sequence)):
            candidates.append(tuple(sequence[i:] + sequence[:i]))
    return min(candidates)


def extract_faces(walls: Sequence[Wall], config: RoomDetectionConfig) -> List[Face]:
    """Bounded, non-trivial, de-duplicated faces of the wall graph."""
    graph = build_wall_graph(walls, config.snap_tolerance)
    faces = []
    seen: Set[Tuple[str, ...]] = set()

    for face in trace_faces(graph, config.max_trace_steps):
        if face.signed_area <= 0:
            continue
        if face.area < config.min_room_area:
            continue
        if len(set(face.wall_ids)) < 3:
            continue
        key = canonical_cycle_key(face.wall_ids)
        if key in seen:
            continue
        seen.add(key)
        faces.append(face)

    return faces


class RoomDetector:
    """
    Detects rooms from a wall network and reconciles them with the rooms of
    the previous snapshot.
    """

    def __init__(self, config: Optional[RoomDetectionConfig] = None):
        self.config = config or default_rules().rooms

    def detect(self, walls: List[Wall], previous_rooms: Optional[List[Room]] = None) -> List[Room]:
        """
        Detect rooms.

        Args:
            walls: Cleaned walls
            previous_rooms: Rooms of the previous snapshot, used to keep ids,
                names and user fields stable

        Returns:
            New Room list ordered by centroid (y, then x)
        """
        previous_rooms = previous_rooms or []
        finite, dropped = filter_valid_walls(walls)
        if dropped:
            logger.warning(f"Ignoring {len(dropped)} invalid wall(s) in room detection: {dropped}")

        faces = extract_faces(finite, self.config)
        rooms = [self._face_to_room(face) for face in faces]
        rooms.sort(key=lambda r: (round(r.centroid.y, 6), round(r.centroid.x, 6)))

        rooms = mark_exterior_rooms(rooms)
        rooms = assign_nesting(rooms)
        rooms = self._reconcile(rooms, previous_rooms)

        logger.info(f"Detected {len(rooms)} rooms from {len(finite)} walls")
        return rooms

    def _face_to_room(self, face: Face) -> Room:
        return Room(
            id="",
            name="",
            vertices=list(face.vertices),
            wall_ids=list(face.wall_ids),
            area=face.area,
            perimeter=polygon_perimeter(face.vertices),
            centroid=polygon_centroid(face.vertices),
        )

    def _reconcile(self, rooms: List[Room], previous_rooms: List[Room]) -> List[Room]:
        """Carry ids and user fields over from matching previous rooms."""
        by_signature: Dict[str, Room] = {}
        for room in previous_rooms:
            by_signature.setdefault(room.boundary_signature, room)

        taken_ids = {room.id for room in previous_rooms}
        used_signatures: Set[str] = set()
        matched: List[Room] = []
        fresh_index = 1

        for room in rooms:
            signature = room.boundary_signature
            previous = by_signature.get(signature)
            if previous is not None and signature not in used_signatures:
                used_signatures.add(signature)
                matched.append(copy_room(
                    room,
                    id=previous.id,
                    name=previous.name,
                    space_type=previous.space_type,
                    color=previous.color,
                    ceiling_height=previous.ceiling_height,
                ))
                continue

            while f"room-{fresh_index}" in taken_ids:
                fresh_index += 1
            new_id = f"room-{fresh_index}"
            taken_ids.add(new_id)
            matched.append(copy_room(room, id=new_id))

        # Parent/child links were computed on placeholder ids
        matched = _relink_nesting(rooms, matched)
        return self._name_new_rooms(matched, previous_rooms)

    def _name_new_rooms(self, rooms: List[Room], previous_rooms: List[Room]) -> List[Room]:
        existing = [r.name for r in previous_rooms] + [r.name for r in rooms]
        counters = {
            self.config.auto_name_prefix: highest_name_index(existing, self.config.auto_name_prefix),
            self.config.sub_room_prefix: highest_name_index(existing, self.config.sub_room_prefix),
        }
        named = []
        for room in rooms:
            if room.name:
                named.append(room)
                continue
            prefix = self.config.sub_room_prefix if room.parent_room_id else self.config.auto_name_prefix
            counters[prefix] += 1
            named.append(copy_room(room, name=f"{prefix} {counters[prefix]}"))
        return named


def _relink_nesting(placeholders: List[Room], rooms: List[Room]) -> List[Room]:
    """Rewrite parent/child references from list positions to final ids."""
    position_to_id = {f"#{i}": room.id for i, room in enumerate(rooms)}
    relinked = []
    for placeholder, room in zip(placeholders, rooms):
        parent = position_to_id.get(placeholder.parent_room_id) if placeholder.parent_room_id else None
        children = sorted(position_to_id[c] for c in placeholder.child_room_ids)
        relinked.append(copy_room(room, parent_room_id=parent, child_room_ids=children))
    return relinked


def highest_name_index(names: Sequence[str], prefix: str) -> int:
    """Largest ``n`` among names of the form ``"<prefix> <n>"``."""
    pattern = re.compile(rf"^{re.escape(prefix)} (\d+)$")
    highest = 0
    for name in names:
        match = pattern.match(name or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def mark_exterior_rooms(rooms: List[Room]) -> List[Room]:
    """Flag faces whose polygon contains another face's centroid."""
    marked = []
    for room in rooms:
        is_exterior = any(
            other is not room and point_in_polygon(other.centroid, room.vertices)
            for other in rooms
        )
        marked.append(copy_room(room, is_exterior=is_exterior))
    return marked


def assign_nesting(rooms: List[Room]) -> List[Room]:
    """
    Link each room to the smallest strictly larger room containing it.

    Parent and child references use ``"#<index>"`` placeholders until the
    rooms have ids.
    """
    parents: Dict[int, Optional[int]] = {}
    for i, room in enumerate(rooms):
        best: Optional[int] = None
        for j, other in enumerate(rooms):
            if i == j or other.area <= room.area:
                continue
            if not polygon_contains_polygon(other.vertices, room.vertices):
                continue
            if best is None or other.area < rooms[best].area:
                best = j
        parents[i] = best

    def depth_of(index: int) -> int:
        depth = 0
        parent = parents[index]
        while parent is not None:
            depth += 1
            parent = parents[parent]
        return depth

    nested = []
    for i, room in enumerate(rooms):
        children = [f"#{j}" for j, p in parents.items() if p == i]
        parent = parents[i]
        nested.append(copy_room(
            room,
            parent_room_id=f"#{parent}" if parent is not None else None,
            child_room_ids=children,
            depth=depth_of(i),
        ))
    return nested


# =============================================================================
# Validation and queries
# =============================================================================

def validate_nested_rooms(rooms: List[Room]) -> List[Diagnostic]:
    """Errors for dangling parents, parent cycles and children not smaller than parents."""
    diagnostics = []
    by_id = {room.id: room for room in rooms}

    for room in rooms:
        if room.parent_room_id is None:
            continue
        parent = by_id.get(room.parent_room_id)
        if parent is None:
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id,
                f"Room {room.name or room.id} references missing parent {room.parent_room_id}",
                code="dangling_parent",
            ))
            continue
        if room.area >= parent.area:
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id,
                f"Room {room.name or room.id} is not smaller than its parent {parent.name or parent.id}",
                code="child_not_smaller",
            ))

        seen = {room.id}
        current = parent
        while current is not None:
            if current.id in seen:
                diagnostics.append(Diagnostic(
                    Severity.ERROR, room.id,
                    f"Room {room.name or room.id} is part of a parent cycle",
                    code="parent_cycle",
                ))
                break
            seen.add(current.id)
            current = by_id.get(current.parent_room_id) if current.parent_room_id else None

    return diagnostics


def validate_room_topology(rooms: List[Room]) -> List[Diagnostic]:
    """Structural checks on each room polygon and its wall references."""
    diagnostics = []
    ids = {room.id for room in rooms}

    for room in rooms:
        label = room.name or room.id
        if len(room.vertices) < 3:
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id, f"Room {label} has fewer than 3 vertices", code="too_few_vertices"
            ))
        if len(room.wall_ids) < 3:
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id, f"Room {label} has fewer than 3 bounding walls", code="too_few_walls"
            ))
        if len(set(room.wall_ids)) != len(room.wall_ids):
            diagnostics.append(Diagnostic(
                Severity.WARNING, room.id, f"Room {label} references a wall more than once", code="duplicate_wall"
            ))
        if room.parent_room_id is not None and room.parent_room_id not in ids:
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id, f"Room {label} has missing parent {room.parent_room_id}",
                code="dangling_parent",
            ))
        if polygon_self_intersects(room.vertices):
            diagnostics.append(Diagnostic(
                Severity.ERROR, room.id, f"Room {label} polygon self-intersects", code="self_intersection"
            ))

    return diagnostics


def room_adjacency(rooms: List[Room]) -> Dict[str, Set[str]]:
    """Room id -> ids of rooms sharing at least one wall."""
    by_wall: Dict[str, Set[str]] = {}
    for room in rooms:
        for wall_id in room.wall_ids:
            by_wall.setdefault(wall_id, set()).add(room.id)

    adjacency: Dict[str, Set[str]] = {room.id: set() for room in rooms}
    for members in by_wall.values():
        for room_id in members:
            adjacency[room_id].update(members - {room_id})
    return adjacency


def auto_label_rooms(rooms: List[Room], prefix: str = "Room") -> List[Room]:
    """Give unnamed rooms ``"<prefix> <n>"`` names continuing the existing numbering."""
    counter = highest_name_index([r.name for r in rooms], prefix)
    labelled = []
    for room in rooms:
        if room.name and room.name.strip():
            labelled.append(room)
            continue
        counter += 1
        labelled.append(copy_room(room, name=f"{prefix} {counter}"))
    return labelled


def detect_rooms(
    walls: List[Wall],
    previous_rooms: Optional[List[Room]] = None,
    config: Optional[RoomDetectionConfig] = None
) -> List[Room]:
    """
    Convenience function to detect rooms.

    Args:
        walls: Cleaned walls
        previous_rooms: Rooms of the previous snapshot
        config: Detection thresholds

    Returns:
        List of Room
    """
    return RoomDetector(config).detect(walls, previous_rooms)


def detect_and_label_rooms(
    walls: List[Wall],
    previous_rooms: Optional[List[Room]] = None,
    config: Optional[RoomDetectionConfig] = None
) -> Tuple[List[Room], List[str]]:
    """
    Detect rooms and run every room check.

    Returns:
        (rooms, messages) where each message reads ``"error: ..."`` or
        ``"warning: ..."``
    """
    config = config or default_rules().rooms
    rooms = RoomDetector(config).detect(walls, previous_rooms)

    diagnostics = validate_room_topology(rooms)
    diagnostics.extend(validate_nested_rooms(rooms))
    diagnostics.extend(QualityChecker(config).check(rooms, walls).warnings)

    return rooms, [str(d) for d in diagnostics]

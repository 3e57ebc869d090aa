"""
Floor Plan Data Model
Plain value aggregates shared by cleanup, room detection, spatial index,
corner editing and the parametric solver.

All coordinates are plane coordinates in one consistent length unit
(millimetres by convention). Core operations never mutate these objects in
place; they return new copies built with ``copy_wall`` / ``copy_room``.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


class Severity(str, Enum):
    """Diagnostic severity level."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Point:
    """A point in the drawing plane."""
    x: float
    y: float

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Opening:
    """Door or window hosted by a wall."""
    id: str
    kind: str = "door"  # "door" or "window"
    offset: float = 0.0  # distance from wall start along the centre line
    width: float = 900.0
    height: float = 2100.0
    sill_height: float = 0.0


@dataclass
class BevelControl:
    """Outer/inner bevel offsets at one wall end."""
    outer_offset: float = 0.0
    inner_offset: float = 0.0


@dataclass
class Wall:
    """
    Wall centre-line segment.

    Interior and exterior faces are the centre line offset by half the
    thickness along the wall normals. ``exterior_side`` says which normal
    (left or right of start->end) faces outside.
    """
    id: str
    start: Point
    end: Point
    thickness: float = 150.0
    height: float = 3000.0
    material: str = "brick"
    layer: str = "partition"
    wall_type: str = "interior"
    exterior_side: str = "left"
    openings: List[Opening] = field(default_factory=list)
    start_bevel: BevelControl = field(default_factory=BevelControl)
    end_bevel: BevelControl = field(default_factory=BevelControl)
    connected_wall_ids: List[str] = field(default_factory=list)

    # Synthetic corner connector produced by corner bevel editing
    is_bevel_segment: bool = False
    bevel_node_key: Optional[str] = None
    bevel_source_wall_ids: List[str] = field(default_factory=list)

    @property
    def length(self) -> float:
        return math.hypot(self.end.x - self.start.x, self.end.y - self.start.y)

    @property
    def direction(self) -> Optional[Tuple[float, float]]:
        """Unit vector from start to end, None for a degenerate wall."""
        length = self.length
        if length <= 1e-9:
            return None
        return ((self.end.x - self.start.x) / length, (self.end.y - self.start.y) / length)

    @property
    def midpoint(self) -> Point:
        return Point((self.start.x + self.end.x) / 2, (self.start.y + self.end.y) / 2)

    def is_finite(self) -> bool:
        return (
            self.start.is_finite()
            and self.end.is_finite()
            and math.isfinite(self.thickness)
            and math.isfinite(self.height)
        )

    def is_valid(self) -> bool:
        """Finite geometry with a positive thickness."""
        return self.is_finite() and self.thickness > 0

    def bounds(self, expand: float = 0.0) -> Tuple[float, float, float, float]:
        """Axis-aligned bounds (min_x, min_y, max_x, max_y) grown by ``expand``."""
        return (
            min(self.start.x, self.end.x) - expand,
            min(self.start.y, self.end.y) - expand,
            max(self.start.x, self.end.x) + expand,
            max(self.start.y, self.end.y) + expand,
        )


@dataclass
class Room:
    """Enclosed face of the wall graph."""
    id: str
    name: str
    vertices: List[Point]
    wall_ids: List[str]
    area: float = 0.0
    perimeter: float = 0.0
    centroid: Point = Point(0.0, 0.0)
    space_type: str = "detected"
    parent_room_id: Optional[str] = None
    child_room_ids: List[str] = field(default_factory=list)
    depth: int = 0
    is_exterior: bool = False
    color: Optional[str] = None
    ceiling_height: float = 3000.0

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def boundary_signature(self) -> str:
        """Order-independent key of the bounding wall ids."""
        return "|".join(sorted(set(self.wall_ids)))


@dataclass
class DimensionConstraint:
    """Drives one wall length from a literal target or an expression."""
    id: str
    wall_id: str
    target_length: Optional[float] = None
    expression: Optional[str] = None
    min_length: Optional[float] = None
    max_length: Optional[float] = None
    equality_group_id: Optional[str] = None
    enabled: bool = True


@dataclass
class DimensionChain:
    """Ordered walls constrained jointly by a total or by equal segments."""
    id: str
    wall_ids: List[str]
    total_length: Optional[float] = None
    equal_segments: bool = False
    min_segment_length: Optional[float] = None
    max_segment_length: Optional[float] = None
    enabled: bool = True


@dataclass
class Parameter:
    """Named value, literal or defined by an expression over other parameters."""
    id: str
    value: Optional[float] = None
    expression: Optional[str] = None
    description: str = ""


@dataclass
class Diagnostic:
    """Severity-tagged message scoped to the id that caused it."""
    severity: Severity
    source_id: str
    message: str
    code: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.message}"


def copy_wall(wall: Wall, **changes) -> Wall:
    """Copy a wall, detaching every mutable list, then apply ``changes``."""
    copied = replace(
        wall,
        openings=[replace(o) for o in wall.openings],
        start_bevel=replace(wall.start_bevel),
        end_bevel=replace(wall.end_bevel),
        connected_wall_ids=list(wall.connected_wall_ids),
        bevel_source_wall_ids=list(wall.bevel_source_wall_ids),
    )
    if changes:
        copied = replace(copied, **changes)
    return copied


def copy_room(room: Room, **changes) -> Room:
    """Copy a room, detaching its lists, then apply ``changes``."""
    copied = replace(
        room,
        vertices=list(room.vertices),
        wall_ids=list(room.wall_ids),
        child_room_ids=list(room.child_room_ids),
    )
    if changes:
        copied = replace(copied, **changes)
    return copied


def filter_valid_walls(walls: List[Wall]) -> Tuple[List[Wall], List[str]]:
    """Split walls into usable ones and the ids of those with non-finite
    geometry or a non-positive thickness."""
    kept = []
    dropped = []
    for wall in walls:
        if wall.is_valid():
            kept.append(wall)
        else:
            dropped.append(wall.id)
    return kept, dropped

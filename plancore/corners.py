"""
Floor Plan Corner Editing Module
Outer/inner/centre control geometry at a two-wall junction, corner bevels
and centre drags.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import CornerConfig, default_rules
from .geometry import (
    Vector,
    angle_between_deg,
    distance,
    dot,
    left_normal,
    midpoint,
    normalize,
    points_close,
    ray_intersection,
    sub,
    translate,
)
from .models import Point, Wall, copy_wall

logger = logging.getLogger(__name__)

HANDLES = ("outer", "inner")


@dataclass
class CornerPair:
    """Two walls meeting at a node."""
    node: Point
    wall_a: Wall
    wall_b: Wall
    away_a: Vector
    away_b: Vector
    length_a: float
    length_b: float


@dataclass
class CornerGeometry:
    """Control points of a corner."""
    outer_vertex: Point
    inner_vertex: Point
    center: Point
    outer_radial: Optional[Vector]
    inner_radial: Optional[Vector]
    center_radial: Optional[Vector]
    max_bevel_length: float
    angle_deg: float


def node_key(point: Point) -> str:
    """Node identity rounded to 1/1000 of a unit."""
    return f"{round(point.x * 1000)}:{round(point.y * 1000)}"


def exterior_normal(wall: Wall) -> Optional[Vector]:
    """Unit normal on the wall's exterior side."""
    direction = wall.direction
    if direction is None:
        return None
    normal = left_normal(direction)
    if wall.exterior_side == "right":
        return (-normal[0], -normal[1])
    return normal


def direction_away_from_node(wall: Wall, node: Point, tolerance: float) -> Optional[Vector]:
    if points_close(wall.start, node, tolerance):
        return normalize(sub(wall.end, wall.start))
    if points_close(wall.end, node, tolerance):
        return normalize(sub(wall.start, wall.end))
    return None


def set_wall_node_point(wall: Wall, node: Point, replacement: Point, tolerance: float) -> Wall:
    """Copy of ``wall`` with whichever endpoint sits at ``node`` moved."""
    if points_close(wall.start, node, tolerance):
        return copy_wall(wall, start=replacement)
    if points_close(wall.end, node, tolerance):
        return copy_wall(wall, end=replacement)
    return wall


def move_node(walls: Sequence[Wall], source: Point, target: Point, tolerance: float = 0.5) -> List[Wall]:
    """Relocate every wall endpoint at ``source`` to ``target``."""
    moved = []
    for wall in walls:
        start = target if points_close(wall.start, source, tolerance) else wall.start
        end = target if points_close(wall.end, source, tolerance) else wall.end
        if start is wall.start and end is wall.end:
            moved.append(wall)
        else:
            moved.append(copy_wall(wall, start=start, end=end))
    return moved


def resolve_corner_pair(
    walls: Sequence[Wall],
    node: Point,
    wall_ids: Optional[Sequence[str]] = None,
    tolerance: float = 0.5
) -> Optional[CornerPair]:
    """
    First two walls with an endpoint at ``node``.

    Args:
        walls: Wall snapshot
        node: Junction point
        wall_ids: Restrict the search to these walls
        tolerance: Endpoint coincidence tolerance

    Returns:
        CornerPair, or None if fewer than two usable walls meet there
    """
    candidates = [
        wall for wall in walls
        if (not wall_ids or wall.id in wall_ids)
        and (points_close(wall.start, node, tolerance) or points_close(wall.end, node, tolerance))
    ]
    if len(candidates) < 2:
        return None

    wall_a, wall_b = candidates[0], candidates[1]
    away_a = direction_away_from_node(wall_a, node, tolerance)
    away_b = direction_away_from_node(wall_b, node, tolerance)
    if away_a is None or away_b is None:
        return None

    far_a = wall_a.end if points_close(wall_a.start, node, tolerance) else wall_a.start
    far_b = wall_b.end if points_close(wall_b.start, node, tolerance) else wall_b.start
    length_a = distance(far_a, node)
    length_b = distance(far_b, node)
    if length_a <= 1e-4 or length_b <= 1e-4:
        return None

    return CornerPair(node, wall_a, wall_b, away_a, away_b, length_a, length_b)


def corner_geometry(pair: CornerPair) -> Optional[CornerGeometry]:
    """
    Outer and inner vertices are where the two walls' exterior (resp.
    interior) faces meet; each face is the centre line shifted by half the
    wall's own thickness. Parallel faces fall back to the midpoint of the
    two face points at the node.
    """
    normal_a = exterior_normal(pair.wall_a)
    normal_b = exterior_normal(pair.wall_b)
    if normal_a is None or normal_b is None:
        return None

    half_a = pair.wall_a.thickness / 2
    half_b = pair.wall_b.thickness / 2
    outer_a = translate(pair.node, normal_a, half_a)
    outer_b = translate(pair.node, normal_b, half_b)
    inner_a = translate(pair.node, normal_a, -half_a)
    inner_b = translate(pair.node, normal_b, -half_b)

    outer_vertex = ray_intersection(outer_a, pair.away_a, outer_b, pair.away_b) or midpoint(outer_a, outer_b)
    inner_vertex = ray_intersection(inner_a, pair.away_a, inner_b, pair.away_b) or midpoint(inner_a, inner_b)
    center = midpoint(outer_vertex, inner_vertex)

    center_radial = normalize(sub(center, pair.node))
    if center_radial is None:
        center_radial = normalize((pair.away_a[0] + pair.away_b[0], pair.away_a[1] + pair.away_b[1]))

    return CornerGeometry(
        outer_vertex=outer_vertex,
        inner_vertex=inner_vertex,
        center=center,
        outer_radial=normalize(sub(outer_vertex, pair.node)),
        inner_radial=normalize(sub(inner_vertex, pair.node)),
        center_radial=center_radial,
        max_bevel_length=min(pair.length_a, pair.length_b) / 3,
        angle_deg=angle_between_deg(pair.away_a, pair.away_b),
    )


def bevel_wall_id(pair: CornerPair) -> str:
    ids = sorted([pair.wall_a.id, pair.wall_b.id])
    return f"bevel:{ids[0]}:{ids[1]}:{node_key(pair.node)}"


def existing_connector(walls: Sequence[Wall], pair: CornerPair) -> Optional[Wall]:
    """Connector a previous bevel left at this node for the same two walls."""
    key = node_key(pair.node)
    for wall in walls:
        if (
            wall.is_bevel_segment
            and wall.bevel_node_key == key
            and sorted(wall.bevel_source_wall_ids) == sorted([pair.wall_a.id, pair.wall_b.id])
        ):
            return wall
    return None


def connector_end_for(connector: Wall, wall_id: str) -> Point:
    """Connector endpoint that sits on the given source wall."""
    if connector.bevel_source_wall_ids[0] == wall_id:
        return connector.start
    return connector.end


def bevel_length_for(geometry: CornerGeometry, handle: str, pointer: Point) -> Optional[float]:
    """Pointer projected onto the handle's radial, clamped to [0, max_bevel_length]."""
    if handle not in HANDLES:
        raise ValueError(f"Unknown corner handle: {handle}")
    radial = geometry.outer_radial if handle == "outer" else geometry.inner_radial
    origin = geometry.outer_vertex if handle == "outer" else geometry.inner_vertex
    if radial is None:
        return None
    projected = dot(sub(pointer, origin), radial)
    return max(0.0, min(geometry.max_bevel_length, projected))


def bevel(
    walls: Sequence[Wall],
    pair: CornerPair,
    geometry: CornerGeometry,
    handle: str,
    pointer: Point,
    config: Optional[CornerConfig] = None
) -> Optional[List[Wall]]:
    """
    Cut the corner back from the node and join the cut points with a
    connector wall.

    Any previous connector for the same node and walls is replaced and the
    walls are trimmed from the node again, so repeated bevels do not
    accumulate; a bevel length at or below the configured epsilon removes
    the connector and restores the sharp corner.

    Returns:
        New wall list, or None if the handle has no radial direction
    """
    config = config or default_rules().corners
    length = bevel_length_for(geometry, handle, pointer)
    if length is None:
        return None

    key = node_key(pair.node)
    previous = existing_connector(walls, pair)
    cut_a = translate(pair.node, pair.away_a, length)
    cut_b = translate(pair.node, pair.away_b, length)
    cuts = {pair.wall_a.id: cut_a, pair.wall_b.id: cut_b}

    kept = []
    for wall in walls:
        if wall is previous:
            continue
        if wall.id not in cuts:
            kept.append(copy_wall(wall))
            continue
        if previous is not None:
            # Still cut back to the previous bevel; restore the node first
            trimmed_end = connector_end_for(previous, wall.id)
            wall = set_wall_node_point(wall, trimmed_end, pair.node, config.tolerance)
        kept.append(set_wall_node_point(wall, pair.node, cuts[wall.id], config.tolerance))

    if length <= config.bevel_epsilon:
        logger.debug(f"Removed bevel at node {key}")
        return kept

    connector = Wall(
        id=bevel_wall_id(pair),
        start=cut_a,
        end=cut_b,
        thickness=min(pair.wall_a.thickness, pair.wall_b.thickness),
        height=min(pair.wall_a.height, pair.wall_b.height),
        material=pair.wall_a.material,
        layer=pair.wall_a.layer,
        wall_type=pair.wall_a.wall_type,
        exterior_side=pair.wall_a.exterior_side,
        openings=[],
        is_bevel_segment=True,
        bevel_node_key=key,
        bevel_source_wall_ids=[pair.wall_a.id, pair.wall_b.id],
    )
    kept.append(connector)
    logger.debug(f"Bevel {connector.id}: length {length:.3f}")
    return kept


def drag_center(
    walls: Sequence[Wall],
    pair: CornerPair,
    geometry: CornerGeometry,
    pointer: Point,
    config: Optional[CornerConfig] = None
) -> Optional[List[Wall]]:
    """
    Slide the shared node along the node-to-centre line.

    Returns:
        New wall list, or None when the move would leave the corner angle
        outside the allowed range
    """
    config = config or default_rules().corners
    radial = geometry.center_radial
    if radial is None:
        return None

    projected = dot(sub(pointer, geometry.center), radial)
    next_node = translate(pair.node, radial, projected)

    moved = move_node(walls, pair.node, next_node, config.tolerance)
    moved_pair = resolve_corner_pair(moved, next_node, [pair.wall_a.id, pair.wall_b.id], config.tolerance)
    if moved_pair is None:
        return None

    angle = angle_between_deg(moved_pair.away_a, moved_pair.away_b)
    if angle < config.min_angle_deg or angle > config.max_angle_deg:
        logger.debug(f"Rejected corner drag: angle {angle:.1f} outside "
                     f"[{config.min_angle_deg}, {config.max_angle_deg}]")
        return None
    return moved

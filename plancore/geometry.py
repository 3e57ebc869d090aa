"""
Floor Plan Geometry Primitives
Segment intersection, distance/perimeter/area, offsets and polygon predicates.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon

from .models import Point

EPSILON = 1e-9

Vector = Tuple[float, float]


def distance(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def midpoint(a: Point, b: Point) -> Point:
    return Point((a.x + b.x) / 2, (a.y + b.y) / 2)


def normalize(vector: Vector) -> Optional[Vector]:
    """Unit vector, or None when the vector is (near) zero."""
    length = math.hypot(vector[0], vector[1])
    if length <= 1e-8:
        return None
    return (vector[0] / length, vector[1] / length)


def dot(a: Vector, b: Vector) -> float:
    return a[0] * b[0] + a[1] * b[1]


def cross(a: Vector, b: Vector) -> float:
    return a[0] * b[1] - a[1] * b[0]


def sub(a: Point, b: Point) -> Vector:
    return (a.x - b.x, a.y - b.y)


def translate(point: Point, vector: Vector, scale: float = 1.0) -> Point:
    return Point(point.x + vector[0] * scale, point.y + vector[1] * scale)


def is_finite_point(point: Point) -> bool:
    return math.isfinite(point.x) and math.isfinite(point.y)


def points_close(a: Point, b: Point, tolerance: float) -> bool:
    return distance(a, b) <= tolerance


def direction_angle_deg(start: Point, end: Point) -> float:
    return math.degrees(math.atan2(end.y - start.y, end.x - start.x))


def normalize_angle_deg(angle: float) -> float:
    """Wrap an angle into [-180, 180]."""
    result = angle
    while result > 180:
        result -= 360
    while result < -180:
        result += 360
    return result


def angle_between_deg(a: Vector, b: Vector) -> float:
    """Unsigned angle between two unit vectors in degrees."""
    cos_angle = float(np.clip(dot(a, b), -1.0, 1.0))
    return math.degrees(math.acos(cos_angle))


# =============================================================================
# Segments and lines
# =============================================================================

def _orientation(a: Point, b: Point, c: Point) -> float:
    return (b.x - a.x) * (c.y - a.y) - (b.y - a.y) * (c.x - a.x)


def _within_box(p: Point, a: Point, b: Point) -> bool:
    return (
        min(a.x, b.x) - EPSILON <= p.x <= max(a.x, b.x) + EPSILON
        and min(a.y, b.y) - EPSILON <= p.y <= max(a.y, b.y) + EPSILON
    )


def segments_intersect(a1: Point, a2: Point, b1: Point, b2: Point) -> bool:
    """True if the closed segments share at least one point."""
    o1 = _orientation(a1, a2, b1)
    o2 = _orientation(a1, a2, b2)
    o3 = _orientation(b1, b2, a1)
    o4 = _orientation(b1, b2, a2)

    if ((o1 > EPSILON and o2 < -EPSILON) or (o1 < -EPSILON and o2 > EPSILON)) and \
            ((o3 > EPSILON and o4 < -EPSILON) or (o3 < -EPSILON and o4 > EPSILON)):
        return True

    if abs(o1) <= EPSILON and _within_box(b1, a1, a2):
        return True
    if abs(o2) <= EPSILON and _within_box(b2, a1, a2):
        return True
    if abs(o3) <= EPSILON and _within_box(a1, b1, b2):
        return True
    if abs(o4) <= EPSILON and _within_box(a2, b1, b2):
        return True
    return False


def line_intersection(a1: Point, a2: Point, b1: Point, b2: Point) -> Optional[Point]:
    """Intersection of the infinite lines through two segments, None if parallel."""
    da = sub(a2, a1)
    db = sub(b2, b1)
    det = cross(da, db)
    if abs(det) <= EPSILON:
        return None
    t = cross(sub(b1, a1), db) / det
    return Point(a1.x + da[0] * t, a1.y + da[1] * t)


def ray_intersection(origin_a: Point, dir_a: Vector, origin_b: Point, dir_b: Vector) -> Optional[Point]:
    """Intersection of two infinite lines given as point + direction."""
    det = cross(dir_a, dir_b)
    if abs(det) <= 1e-8:
        return None
    t = cross(sub(origin_b, origin_a), dir_b) / det
    return Point(origin_a.x + dir_a[0] * t, origin_a.y + dir_a[1] * t)


def segment_intersection_point(a1: Point, a2: Point, b1: Point, b2: Point) -> Optional[Point]:
    """Crossing point of two non-parallel segments, None if they do not meet."""
    if not segments_intersect(a1, a2, b1, b2):
        return None
    return line_intersection(a1, a2, b1, b2)


def point_on_segment(point: Point, start: Point, end: Point, tolerance: float) -> bool:
    """Distance-sum test: |sp| + |pe| ~= |se| within ``2 * tolerance``."""
    segment_length = distance(start, end)
    if segment_length <= tolerance:
        return False
    d1 = distance(start, point)
    d2 = distance(point, end)
    return abs(d1 + d2 - segment_length) <= tolerance * 2


def project_point_parameter(point: Point, start: Point, end: Point) -> float:
    """Parameter t of the orthogonal projection of ``point`` onto start->end."""
    d = sub(end, start)
    length_sq = dot(d, d)
    if length_sq <= EPSILON:
        return 0.0
    return dot(sub(point, start), d) / length_sq


def point_segment_distance(point: Point, start: Point, end: Point) -> float:
    t = min(1.0, max(0.0, project_point_parameter(point, start, end)))
    closest = Point(start.x + (end.x - start.x) * t, start.y + (end.y - start.y) * t)
    return distance(point, closest)


def left_normal(direction: Vector) -> Vector:
    return (-direction[1], direction[0])


def offset_line(start: Point, end: Point, offset: float) -> Optional[Tuple[Point, Point]]:
    """Shift a segment by ``offset`` along its left normal (negative = right)."""
    direction = normalize(sub(end, start))
    if direction is None:
        return None
    normal = left_normal(direction)
    return translate(start, normal, offset), translate(end, normal, offset)


# =============================================================================
# Polygons
# =============================================================================

def _as_array(vertices: Sequence[Point]) -> np.ndarray:
    return np.array([(p.x, p.y) for p in vertices], dtype=np.float64).reshape((-1, 2))


def signed_area(vertices: Sequence[Point]) -> float:
    """Shoelace signed area, positive for counter-clockwise (y up) loops."""
    if len(vertices) < 3:
        return 0.0
    pts = _as_array(vertices)
    x = pts[:, 0]
    y = pts[:, 1]
    return float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0


def polygon_area(vertices: Sequence[Point]) -> float:
    return abs(signed_area(vertices))


def polygon_perimeter(vertices: Sequence[Point]) -> float:
    if len(vertices) < 2:
        return 0.0
    pts = _as_array(vertices)
    deltas = np.roll(pts, -1, axis=0) - pts
    return float(np.hypot(deltas[:, 0], deltas[:, 1]).sum())


def average_point(points: Sequence[Point]) -> Point:
    if not points:
        return Point(0.0, 0.0)
    pts = _as_array(points)
    cx, cy = pts.mean(axis=0)
    return Point(float(cx), float(cy))


def polygon_centroid(vertices: Sequence[Point]) -> Point:
    """Area-weighted centroid, vertex average for degenerate polygons."""
    if len(vertices) < 3:
        return average_point(vertices)

    pts = _as_array(vertices)
    x = pts[:, 0]
    y = pts[:, 1]
    xn = np.roll(x, -1)
    yn = np.roll(y, -1)
    crosses = x * yn - xn * y
    area_factor = crosses.sum()
    if abs(area_factor) < 1e-8:
        return average_point(vertices)

    factor = 1.0 / (3.0 * area_factor)
    return Point(float(((x + xn) * crosses).sum() * factor),
                 float(((y + yn) * crosses).sum() * factor))


def polygon_bounds(vertices: Sequence[Point]) -> Tuple[float, float, float, float]:
    pts = _as_array(vertices)
    if len(pts) == 0:
        return (0.0, 0.0, 0.0, 0.0)
    min_x, min_y = pts.min(axis=0)
    max_x, max_y = pts.max(axis=0)
    return (float(min_x), float(min_y), float(max_x), float(max_y))


def to_shapely(vertices: Sequence[Point]) -> ShapelyPolygon:
    return ShapelyPolygon([(p.x, p.y) for p in vertices])


def point_in_polygon(point: Point, vertices: Sequence[Point]) -> bool:
    if len(vertices) < 3:
        return False
    return to_shapely(vertices).contains(ShapelyPoint(point.x, point.y))


def polygon_contains_polygon(outer: Sequence[Point], inner: Sequence[Point]) -> bool:
    """True if ``inner`` lies inside ``outer`` (shared boundary allowed)."""
    if len(outer) < 3 or len(inner) < 3:
        return False
    outer_poly = to_shapely(outer)
    inner_poly = to_shapely(inner)
    if not outer_poly.is_valid or not inner_poly.is_valid:
        return False
    return outer_poly.covers(inner_poly) and outer_poly.area > inner_poly.area


def polygon_self_intersects(vertices: Sequence[Point]) -> bool:
    if len(vertices) < 4:
        return False
    return not to_shapely(vertices).is_valid


def dedupe_consecutive(vertices: List[Point], tolerance: float = 1e-6) -> List[Point]:
    """Drop repeated consecutive vertices and a closing duplicate."""
    cleaned: List[Point] = []
    for vertex in vertices:
        if not cleaned or not points_close(cleaned[-1], vertex, tolerance):
            cleaned.append(vertex)
    if len(cleaned) > 1 and points_close(cleaned[0], cleaned[-1], tolerance):
        cleaned.pop()
    return cleaned

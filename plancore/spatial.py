"""
Floor Plan Spatial Index Module
Read-only bounding-box tree over walls plus hashed vertex buckets.

An index is built once from a wall snapshot and never updated; any wall
change means building a new index with ``SpatialIndex.rebuild``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import box
from shapely.strtree import STRtree

from .config import SpatialConfig, default_rules
from .geometry import distance
from .models import Point, Room, Wall, filter_valid_walls

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # min_x, min_y, max_x, max_y
CellKey = Tuple[int, int]


@dataclass(frozen=True)
class LevelOfDetail:
    """What a renderer should draw at a zoom level."""
    name: str
    show_fill: bool
    show_layers: bool
    show_dimensions: bool


COARSE = LevelOfDetail("coarse", show_fill=False, show_layers=False, show_dimensions=False)
MEDIUM = LevelOfDetail("medium", show_fill=True, show_layers=False, show_dimensions=True)
FINE = LevelOfDetail("fine", show_fill=True, show_layers=True, show_dimensions=True)


def level_of_detail(zoom: float, config: Optional[SpatialConfig] = None) -> LevelOfDetail:
    """Map a zoom factor to a level of detail."""
    config = config or default_rules().spatial
    if zoom < config.coarse_below_zoom:
        return COARSE
    if zoom < config.medium_below_zoom:
        return MEDIUM
    return FINE


def bounds_intersect(a: Bounds, b: Bounds) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])


def point_bounds(points: Iterable[Point], expand: float = 0.0) -> Optional[Bounds]:
    """Bounds of a point set, None when empty."""
    points = list(points)
    if not points:
        return None
    return (
        min(p.x for p in points) - expand,
        min(p.y for p in points) - expand,
        max(p.x for p in points) + expand,
        max(p.y for p in points) + expand,
    )


@dataclass(frozen=True)
class IndexedVertex:
    """A clustered wall endpoint and the walls meeting there."""
    point: Point
    wall_ids: Tuple[str, ...]


class SpatialIndex:
    """
    Spatial queries over one wall snapshot.

    Walls are stored as boxes grown by half their thickness in a shapely
    STRtree. Unique vertices are bucketed on a square grid of
    ``vertex_cell_size``.
    """

    def __init__(
        self,
        walls: Sequence[Wall] = (),
        config: Optional[SpatialConfig] = None
    ):
        self.config = config or default_rules().spatial

        finite, dropped = filter_valid_walls(list(walls))
        if dropped:
            logger.warning(f"Ignoring {len(dropped)} invalid wall(s) in spatial index: {dropped}")

        self._walls: Tuple[Wall, ...] = tuple(finite)
        self._boxes = [box(*w.bounds(w.thickness / 2)) for w in self._walls]
        self._tree = STRtree(self._boxes) if self._boxes else None
        self._vertices, self._buckets = self._build_vertices(self._walls)

        logger.debug(f"Spatial index: {len(self._walls)} walls, {len(self._vertices)} vertices, "
                     f"{len(self._buckets)} buckets")

    @classmethod
    def rebuild(cls, walls: Sequence[Wall], config: Optional[SpatialConfig] = None) -> "SpatialIndex":
        """Build a fresh index from a wall snapshot."""
        return cls(walls, config)

    @property
    def walls(self) -> Tuple[Wall, ...]:
        return self._walls

    @property
    def vertices(self) -> Tuple[IndexedVertex, ...]:
        return self._vertices

    def __len__(self) -> int:
        return len(self._walls)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _cell(self, x: float, y: float) -> CellKey:
        size = self.config.vertex_cell_size
        return (int(math.floor(x / size)), int(math.floor(y / size)))

    def _cells_around(self, point: Point, radius: float) -> Iterable[CellKey]:
        min_cell = self._cell(point.x - radius, point.y - radius)
        max_cell = self._cell(point.x + radius, point.y + radius)
        for cx in range(min_cell[0], max_cell[0] + 1):
            for cy in range(min_cell[1], max_cell[1] + 1):
                yield (cx, cy)

    def _build_vertices(
        self,
        walls: Sequence[Wall]
    ) -> Tuple[Tuple[IndexedVertex, ...], Dict[CellKey, Tuple[int, ...]]]:
        tolerance = self.config.vertex_tolerance
        points: List[Point] = []
        wall_ids: List[List[str]] = []
        buckets: Dict[CellKey, List[int]] = {}

        for wall in walls:
            for endpoint in (wall.start, wall.end):
                match = None
                for cell in self._cells_around(endpoint, tolerance):
                    for index in buckets.get(cell, ()):
                        if distance(points[index], endpoint) <= tolerance:
                            match = index
                            break
                    if match is not None:
                        break

                if match is None:
                    points.append(endpoint)
                    wall_ids.append([wall.id])
                    buckets.setdefault(self._cell(endpoint.x, endpoint.y), []).append(len(points) - 1)
                elif wall.id not in wall_ids[match]:
                    wall_ids[match].append(wall.id)

        vertices = tuple(IndexedVertex(p, tuple(ids)) for p, ids in zip(points, wall_ids))
        return vertices, {key: tuple(indices) for key, indices in buckets.items()}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_range(self, bounds: Bounds) -> List[Wall]:
        """Walls whose expanded box intersects ``bounds``, in snapshot order."""
        if self._tree is None:
            return []
        indices = self._tree.query(box(*bounds))
        return [self._walls[i] for i in sorted(int(i) for i in indices)]

    def query_point(self, point: Point, radius: float) -> List[Wall]:
        """Walls whose expanded box lies within ``radius`` of a point."""
        if self._tree is None:
            return []
        target = ShapelyPoint(point.x, point.y)
        candidates = self._tree.query(box(point.x - radius, point.y - radius,
                                          point.x + radius, point.y + radius))
        hits = [int(i) for i in candidates if self._boxes[int(i)].distance(target) <= radius]
        return [self._walls[i] for i in sorted(hits)]

    def nearest_vertices(self, point: Point, radius: float) -> List[IndexedVertex]:
        """Vertices within ``radius`` of a point, nearest first."""
        found = []
        for cell in self._cells_around(point, radius):
            for index in self._buckets.get(cell, ()):
                vertex = self._vertices[index]
                d = distance(vertex.point, point)
                if d <= radius:
                    found.append((d, index, vertex))
        found.sort(key=lambda item: (item[0], item[1]))
        return [vertex for _, _, vertex in found]

    def nearest_vertex(self, point: Point, radius: float) -> Optional[IndexedVertex]:
        nearest = self.nearest_vertices(point, radius)
        return nearest[0] if nearest else None

    def walls_in_viewport(self, viewport: Bounds, margin: Optional[float] = None) -> List[Wall]:
        """Viewport culling: walls intersecting the viewport grown by ``margin``."""
        if margin is None:
            margin = self.config.viewport_margin
        min_x, min_y, max_x, max_y = viewport
        return self.query_range((min_x - margin, min_y - margin, max_x + margin, max_y + margin))


def rooms_in_viewport(
    rooms: Sequence[Room],
    viewport: Bounds,
    margin: Optional[float] = None
) -> List[Room]:
    """Viewport culling for rooms: those whose outline bounds meet the grown viewport."""
    if margin is None:
        margin = default_rules().spatial.viewport_margin
    min_x, min_y, max_x, max_y = viewport
    grown = (min_x - margin, min_y - margin, max_x + margin, max_y + margin)

    visible = []
    for room in rooms:
        bounds = point_bounds(room.vertices)
        if bounds is not None and bounds_intersect(bounds, grown):
            visible.append(room)
    return visible


def build_spatial_index(walls: Sequence[Wall], config: Optional[SpatialConfig] = None) -> SpatialIndex:
    """
    Convenience function to index a wall snapshot.

    Args:
        walls: Walls to index
        config: Bucket size, tolerance and LOD thresholds

    Returns:
        SpatialIndex
    """
    return SpatialIndex.rebuild(walls, config)

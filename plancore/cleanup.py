"""
Floor Plan Wall-Network Cleanup Module
Heals hand-drawn wall geometry into a clean planar graph.

Stages run in a fixed order because each one assumes the normalization done
by the stages before it:

1. remove duplicate and near-zero walls
2. cluster nearby vertices onto shared centroids
3. heal endpoint gaps
4. split host walls at T-junctions
5. split walls at true crossings
6. merge collinear wall runs
7. rebuild wall adjacency
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union

from .config import CleanupOptions, default_rules
from .geometry import (
    direction_angle_deg,
    distance,
    line_intersection,
    midpoint,
    normalize_angle_deg,
    point_on_segment,
    segments_intersect,
)
from .models import Opening, Point, Wall, copy_wall, filter_valid_walls

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    """Counts of what each cleanup stage changed."""
    removed_duplicates: int = 0
    merged_collinear_walls: int = 0
    split_at_t_junctions: int = 0
    split_at_intersections: int = 0
    healed_endpoint_gaps: int = 0

    @property
    def total_changes(self) -> int:
        return sum(asdict(self).values())

    @property
    def is_clean(self) -> bool:
        return self.total_changes == 0


@dataclass
class CleanupResult:
    """Cleaned walls plus the stage report."""
    walls: List[Wall]
    report: CleanupReport
    dropped_wall_ids: List[str] = field(default_factory=list)


class IdAllocator:
    """Deterministic ids for walls and openings created during cleanup."""

    def __init__(self, taken: Set[str]):
        self.taken = set(taken)

    def derive(self, base: str) -> str:
        n = 1
        candidate = f"{base}:{n}"
        while candidate in self.taken:
            n += 1
            candidate = f"{base}:{n}"
        self.taken.add(candidate)
        return candidate


class WallNetworkCleaner:
    """
    Normalizes a raw wall list into a planar graph.
    """

    def __init__(self, options: Optional[CleanupOptions] = None):
        self.options = options or default_rules().cleanup

    @property
    def tolerance(self) -> float:
        return self.options.endpoint_tolerance

    def clean(self, walls: List[Wall]) -> CleanupResult:
        """
        Run every enabled stage over a snapshot of walls.

        Args:
            walls: Raw walls; never modified

        Returns:
            CleanupResult with new wall objects and the change report
        """
        report = CleanupReport()
        valid, dropped = filter_valid_walls(walls)
        if dropped:
            logger.warning(f"Dropped {len(dropped)} invalid wall(s): {dropped}")

        working = [copy_wall(w) for w in valid]
        ids = IdAllocator({w.id for w in working})

        working, removed = self.remove_duplicates(working)
        report.removed_duplicates += removed

        working, collapsed = self.deduplicate_vertices(working)
        report.removed_duplicates += collapsed

        if self.options.enable_gap_healing:
            working, healed = self.heal_endpoint_gaps(working)
            report.healed_endpoint_gaps += healed
            if healed:
                working, shortened = self.drop_short_walls(working)
                report.removed_duplicates += shortened

        if self.options.enable_t_junction_fix:
            working, splits = self.split_at_t_junctions(working, ids)
            report.split_at_t_junctions += splits

        if self.options.enable_intersection_healing:
            working, splits = self.split_at_intersections(working, ids)
            report.split_at_intersections += splits

        if self.options.enable_collinear_merge:
            working, merged = self.merge_collinear(working, ids)
            report.merged_collinear_walls += merged

        working = rebuild_adjacency(working, self.tolerance)

        logger.info(
            f"Cleanup: {len(walls)} -> {len(working)} walls "
            f"(removed={report.removed_duplicates}, healed={report.healed_endpoint_gaps}, "
            f"t_splits={report.split_at_t_junctions}, x_splits={report.split_at_intersections}, "
            f"merged={report.merged_collinear_walls})"
        )
        return CleanupResult(walls=working, report=report, dropped_wall_ids=dropped)

    # -------------------------------------------------------------------------
    # Stage 1: duplicates
    # -------------------------------------------------------------------------

    def remove_duplicates(self, walls: List[Wall]) -> Tuple[List[Wall], int]:
        """Drop near-zero walls and later copies of an identical wall."""
        unique: List[Wall] = []
        removed = 0
        min_length = self.tolerance * 0.2

        for wall in walls:
            if wall.length <= min_length:
                logger.debug(f"Removing near-zero wall {wall.id}")
                removed += 1
                continue
            if any(same_segment(existing, wall, self.tolerance) and same_properties(existing, wall)
                   for existing in unique):
                logger.debug(f"Removing duplicate wall {wall.id}")
                removed += 1
                continue
            unique.append(wall)

        return unique, removed

    # -------------------------------------------------------------------------
    # Stage 2: vertex clustering
    # -------------------------------------------------------------------------

    def deduplicate_vertices(self, walls: List[Wall]) -> Tuple[List[Wall], int]:
        """
        Cluster endpoints within tolerance into running centroids, then snap
        every endpoint to its cluster's final centroid.

        Clusters whose centroids drift within tolerance of each other are
        folded together until every pair of centroids is further apart than
        the tolerance. Walls whose two endpoints land in the same cluster are
        dropped.
        """
        sums: List[List[float]] = []  # [sum_x, sum_y, count]
        assignment: List[Tuple[int, int]] = []

        def centroid(index: int) -> Point:
            sx, sy, count = sums[index]
            return Point(sx / count, sy / count)

        def find_or_create(point: Point) -> int:
            for index in range(len(sums)):
                if distance(point, centroid(index)) <= self.tolerance:
                    sx, sy, count = sums[index]
                    sums[index] = [sx + point.x, sy + point.y, count + 1]
                    return index
            sums.append([point.x, point.y, 1])
            return len(sums) - 1

        for wall in walls:
            assignment.append((find_or_create(wall.start), find_or_create(wall.end)))

        owner = list(range(len(sums)))
        folded = True
        while folded:
            folded = False
            live = [i for i in range(len(sums)) if owner[i] == i]
            for position, keep in enumerate(live):
                for other in live[position + 1:]:
                    if distance(centroid(keep), centroid(other)) > self.tolerance:
                        continue
                    sums[keep] = [a + b for a, b in zip(sums[keep], sums[other])]
                    owner[other] = keep
                    folded = True
                    break
                if folded:
                    break

        def root(index: int) -> int:
            while owner[index] != index:
                index = owner[index]
            return index

        snapped = []
        collapsed = 0
        for wall, (start_index, end_index) in zip(walls, assignment):
            start_index, end_index = root(start_index), root(end_index)
            if start_index == end_index:
                logger.debug(f"Wall {wall.id} collapsed onto a single vertex")
                collapsed += 1
                continue
            snapped.append(copy_wall(wall, start=centroid(start_index), end=centroid(end_index)))

        return snapped, collapsed

    # -------------------------------------------------------------------------
    # Stage 3: endpoint gaps
    # -------------------------------------------------------------------------

    def heal_endpoint_gaps(self, walls: List[Wall]) -> Tuple[List[Wall], int]:
        """Snap endpoints of different walls that nearly touch to their midpoint."""
        endpoints: List[Tuple[int, str, Point]] = []
        for index, wall in enumerate(walls):
            endpoints.append((index, "start", wall.start))
            endpoints.append((index, "end", wall.end))

        replacements: Dict[Tuple[int, str], Point] = {}
        healed = 0

        for i in range(len(endpoints)):
            wall_a, kind_a, point_a = endpoints[i]
            point_a = replacements.get((wall_a, kind_a), point_a)
            for j in range(i + 1, len(endpoints)):
                wall_b, kind_b, point_b = endpoints[j]
                if wall_a == wall_b:
                    continue
                point_b = replacements.get((wall_b, kind_b), point_b)
                d = distance(point_a, point_b)
                if d > self.tolerance or d < 1e-9:
                    continue
                mid = midpoint(point_a, point_b)
                replacements[(wall_a, kind_a)] = mid
                replacements[(wall_b, kind_b)] = mid
                point_a = mid
                healed += 1

        if not replacements:
            return walls, 0

        healed_walls = []
        for index, wall in enumerate(walls):
            start = replacements.get((index, "start"), wall.start)
            end = replacements.get((index, "end"), wall.end)
            healed_walls.append(copy_wall(wall, start=start, end=end))

        return healed_walls, healed

    def drop_short_walls(self, walls: List[Wall]) -> Tuple[List[Wall], int]:
        """Drop walls that gap healing pulled down to the tolerance or below."""
        kept = []
        for wall in walls:
            if wall.length <= self.tolerance:
                logger.debug(f"Removing wall {wall.id} shortened to {wall.length:.3f} by gap healing")
                continue
            kept.append(wall)
        return kept, len(walls) - len(kept)

    # -------------------------------------------------------------------------
    # Stage 4: T-junctions
    # -------------------------------------------------------------------------

    def split_at_t_junctions(self, walls: List[Wall], ids: IdAllocator) -> Tuple[List[Wall], int]:
        """Split host walls wherever another wall's endpoint touches their interior."""
        working = list(walls)
        splits = 0
        visited: Set[str] = set()

        for _ in range(self.options.max_passes):
            found = self._find_t_junction(working, visited)
            if found is None:
                break
            host_index, point = found
            host = working[host_index]
            visited.add(split_key(host, point))
            pieces = split_wall_at_point(host, point, ids)
            if pieces is None:
                continue
            working[host_index:host_index + 1] = list(pieces)
            splits += 1
        else:
            logger.warning(f"T-junction splitting stopped after {self.options.max_passes} passes")

        return working, splits

    def _find_t_junction(self, walls: List[Wall], visited: Set[str]) -> Optional[Tuple[int, Point]]:
        for i, source in enumerate(walls):
            for endpoint in (source.start, source.end):
                for j, host in enumerate(walls):
                    if i == j:
                        continue
                    if near_endpoint(endpoint, host, self.tolerance):
                        continue
                    if not point_on_segment(endpoint, host.start, host.end, self.tolerance):
                        continue
                    if split_key(host, endpoint) in visited:
                        continue
                    return j, endpoint
        return None

    # -------------------------------------------------------------------------
    # Stage 5: crossings
    # -------------------------------------------------------------------------

    def split_at_intersections(self, walls: List[Wall], ids: IdAllocator) -> Tuple[List[Wall], int]:
        """Split walls that cross at a point which is an endpoint of neither."""
        working = list(walls)
        splits = 0
        visited: Set[str] = set()

        for _ in range(self.options.max_passes):
            found = self._find_crossing(working, visited)
            if found is None:
                break
            i, j, point = found
            a, b = working[i], working[j]
            visited.add(split_key(a, point))
            visited.add(split_key(b, point))

            replacement: List[Wall] = []
            for wall in (a, b):
                pieces = None
                if not near_endpoint(point, wall, self.tolerance):
                    pieces = split_wall_at_point(wall, point, ids)
                if pieces is None:
                    replacement.append(wall)
                else:
                    replacement.extend(pieces)
                    splits += 1

            # j > i, so remove j first to keep i valid
            del working[j]
            del working[i]
            working.extend(replacement)
        else:
            logger.warning(f"Intersection splitting stopped after {self.options.max_passes} passes")

        return working, splits

    def _find_crossing(self, walls: List[Wall], visited: Set[str]) -> Optional[Tuple[int, int, Point]]:
        for i in range(len(walls)):
            a = walls[i]
            for j in range(i + 1, len(walls)):
                b = walls[j]
                if not segments_intersect(a.start, a.end, b.start, b.end):
                    continue
                point = line_intersection(a.start, a.end, b.start, b.end)
                if point is None:
                    continue
                a_ends = near_endpoint(point, a, self.tolerance)
                b_ends = near_endpoint(point, b, self.tolerance)
                if a_ends and b_ends:
                    continue
                if (a_ends or split_key(a, point) in visited) and \
                        (b_ends or split_key(b, point) in visited):
                    continue
                return i, j, point
        return None

    # -------------------------------------------------------------------------
    # Stage 6: collinear merge
    # -------------------------------------------------------------------------

    def merge_collinear(self, walls: List[Wall], ids: IdAllocator) -> Tuple[List[Wall], int]:
        """
        Fuse pairs of compatible collinear walls that meet end to end at a
        node no other wall touches.
        """
        working = list(walls)
        merged = 0

        for _ in range(self.options.max_passes):
            found = self._find_mergeable(working)
            if found is None:
                break
            i, j, shared = found
            fused = merge_walls(working[i], working[j], shared, self.tolerance, ids)
            del working[j]
            working[i] = fused
            merged += 1
        else:
            logger.warning(f"Collinear merging stopped after {self.options.max_passes} passes")

        return working, merged

    def _find_mergeable(self, walls: List[Wall]) -> Optional[Tuple[int, int, Point]]:
        for i in range(len(walls)):
            a = walls[i]
            if a.is_bevel_segment:
                continue
            for j in range(i + 1, len(walls)):
                b = walls[j]
                if b.is_bevel_segment:
                    continue
                shared = single_shared_endpoint(a, b, self.tolerance)
                if shared is None:
                    continue
                if not same_properties(a, b):
                    continue
                if not are_collinear(a, b, self.options.collinear_angle_tolerance_deg):
                    continue
                if node_degree(walls, shared, self.tolerance) != 2:
                    continue
                return i, j, shared
        return None


# =============================================================================
# Wall helpers
# =============================================================================

def same_properties(a: Wall, b: Wall) -> bool:
    return (
        a.wall_type == b.wall_type
        and a.layer == b.layer
        and a.material == b.material
        and abs(a.thickness - b.thickness) <= 1e-6
        and abs(a.height - b.height) <= 1e-6
    )


def same_segment(a: Wall, b: Wall, tolerance: float) -> bool:
    direct = distance(a.start, b.start) <= tolerance and distance(a.end, b.end) <= tolerance
    reverse = distance(a.start, b.end) <= tolerance and distance(a.end, b.start) <= tolerance
    return direct or reverse


def near_endpoint(point: Point, wall: Wall, tolerance: float) -> bool:
    return distance(point, wall.start) <= tolerance or distance(point, wall.end) <= tolerance


def split_key(wall: Wall, point: Point) -> str:
    return f"{wall.id}@{point.x:.6f},{point.y:.6f}"


def single_shared_endpoint(a: Wall, b: Wall, tolerance: float) -> Optional[Point]:
    """The one endpoint two walls share, None if they share none or both."""
    shared = []
    for pa in (a.start, a.end):
        for pb in (b.start, b.end):
            if distance(pa, pb) <= tolerance:
                shared.append(midpoint(pa, pb))
    if len(shared) != 1:
        return None
    return shared[0]


def other_endpoint(wall: Wall, point: Point, tolerance: float) -> Optional[Point]:
    if distance(wall.start, point) <= tolerance:
        return wall.end
    if distance(wall.end, point) <= tolerance:
        return wall.start
    return None


def node_degree(walls: List[Wall], node: Point, tolerance: float) -> int:
    """Number of wall endpoints sitting on a node."""
    count = 0
    for wall in walls:
        if distance(wall.start, node) <= tolerance:
            count += 1
        if distance(wall.end, node) <= tolerance:
            count += 1
    return count


def are_collinear(a: Wall, b: Wall, angle_tolerance_deg: float) -> bool:
    delta = normalize_angle_deg(
        direction_angle_deg(a.start, a.end) - direction_angle_deg(b.start, b.end)
    )
    return abs(delta) <= angle_tolerance_deg or abs(abs(delta) - 180) <= angle_tolerance_deg


def split_wall_at_point(wall: Wall, point: Point, ids: IdAllocator) -> Optional[Tuple[Wall, Wall]]:
    """
    Split a wall into start->point and point->end.

    Openings go to the piece containing their offset, re-based on the
    second piece. Returns None if either piece would be degenerate.
    """
    first_length = distance(wall.start, point)
    second_length = distance(point, wall.end)
    if first_length <= 1e-9 or second_length <= 1e-9:
        return None

    first_openings: List[Opening] = []
    second_openings: List[Opening] = []
    for opening in wall.openings:
        if opening.offset < first_length:
            first_openings.append(Opening(**asdict(opening)))
        else:
            moved = Opening(**asdict(opening))
            moved.offset = opening.offset - first_length
            second_openings.append(moved)

    first = copy_wall(
        wall, id=ids.derive(wall.id), end=point,
        openings=first_openings, connected_wall_ids=[],
    )
    second = copy_wall(
        wall, id=ids.derive(wall.id), start=point,
        openings=second_openings, connected_wall_ids=[],
    )
    logger.debug(f"Split wall {wall.id} at ({point.x:.3f}, {point.y:.3f}) -> {first.id}, {second.id}")
    return first, second


def merge_walls(a: Wall, b: Wall, shared: Point, tolerance: float, ids: IdAllocator) -> Wall:
    """
    Fuse two collinear walls sharing ``shared`` into one wall spanning their
    far endpoints. Opening offsets are re-based and openings get fresh ids.
    """
    start = other_endpoint(a, shared, tolerance)
    end = other_endpoint(b, shared, tolerance)
    length_a = a.length
    length_b = b.length
    a_reversed = distance(a.start, shared) <= tolerance
    b_reversed = distance(b.end, shared) <= tolerance

    merged_id = ids.derive(a.id)
    openings: List[Opening] = []
    for opening in a.openings:
        offset = length_a - opening.offset if a_reversed else opening.offset
        openings.append(_reidentified(opening, offset, merged_id, len(openings)))
    for opening in b.openings:
        offset = length_a + (length_b - opening.offset if b_reversed else opening.offset)
        openings.append(_reidentified(opening, offset, merged_id, len(openings)))

    logger.debug(f"Merged collinear walls {a.id} + {b.id} -> {merged_id}")
    return copy_wall(
        a, id=merged_id, start=start, end=end,
        openings=openings, connected_wall_ids=[],
    )


def _reidentified(opening: Opening, offset: float, wall_id: str, index: int) -> Opening:
    data = asdict(opening)
    data.update(id=f"{wall_id}/opening-{index + 1}", offset=offset)
    return Opening(**data)


def rebuild_adjacency(walls: List[Wall], tolerance: float) -> List[Wall]:
    """Recompute symmetric connected-wall ids from endpoint coincidence."""
    connected: Dict[str, Set[str]] = {w.id: set() for w in walls}
    for i in range(len(walls)):
        a = walls[i]
        for j in range(i + 1, len(walls)):
            b = walls[j]
            if any(distance(pa, pb) <= tolerance
                   for pa in (a.start, a.end) for pb in (b.start, b.end)):
                connected[a.id].add(b.id)
                connected[b.id].add(a.id)
    return [copy_wall(w, connected_wall_ids=sorted(connected[w.id])) for w in walls]


def cleanup_walls(
    walls: List[Wall],
    options: Union[CleanupOptions, Mapping[str, Any], None] = None
) -> CleanupResult:
    """
    Convenience function to clean a wall network.

    Args:
        walls: Raw walls
        options: CleanupOptions or a mapping of option names
            (``endpointTolerance``, ``enableGapHealing`` ...)

    Returns:
        CleanupResult
    """
    if isinstance(options, Mapping):
        options = CleanupOptions.from_mapping(options)
    return WallNetworkCleaner(options).clean(walls)

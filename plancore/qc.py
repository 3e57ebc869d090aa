"""
Floor Plan Quality Control Module
Advisory room checks: small area, missing windows, minimum dimensions.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import RoomDetectionConfig, default_rules
from .geometry import polygon_bounds
from .models import Diagnostic, Room, Severity, Wall

logger = logging.getLogger(__name__)


@dataclass
class QCReport:
    """Quality control report for a room set."""
    is_valid: bool
    warnings: List[Diagnostic]
    statistics: Dict = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len([w for w in self.warnings if w.severity == Severity.ERROR])

    @property
    def warning_count(self) -> int:
        return len([w for w in self.warnings if w.severity == Severity.WARNING])


def infer_room_type(area_m2: float, config: Optional[RoomDetectionConfig] = None) -> str:
    """Room type by floor area; the first threshold the area is below wins."""
    config = config or default_rules().rooms
    for threshold, room_type in config.type_by_area_m2:
        if area_m2 < threshold:
            return room_type
    return config.default_room_type


def minimum_dimension(room: Room) -> float:
    """Smaller side of the room's axis-aligned bounding box."""
    if not room.vertices:
        return 0.0
    min_x, min_y, max_x, max_y = polygon_bounds(room.vertices)
    return min(max_x - min_x, max_y - min_y)


class QualityChecker:
    """
    Performs advisory quality checks on detected rooms.

    Every finding is warning-severity; a plan that is mid-edit is expected
    to fail some of them.
    """

    def __init__(self, config: Optional[RoomDetectionConfig] = None):
        self.config = config or default_rules().rooms

    def check(self, rooms: List[Room], walls: List[Wall]) -> QCReport:
        """
        Run quality checks on detected rooms.

        Args:
            rooms: Detected rooms
            walls: Walls the rooms were detected from

        Returns:
            QCReport
        """
        walls_by_id = {wall.id: wall for wall in walls}
        warnings: List[Diagnostic] = []

        for room in rooms:
            warnings.extend(self._check_area(room))
            warnings.extend(self._check_windows(room, walls_by_id))
            warnings.extend(self._check_dimensions(room))

        statistics = self._compute_statistics(rooms)
        report = QCReport(
            is_valid=not any(w.is_error for w in warnings),
            warnings=warnings,
            statistics=statistics,
        )
        logger.info(f"QC: {len(rooms)} rooms, {report.warning_count} warnings")
        return report

    def room_type(self, room: Room) -> str:
        """The room's declared type if it has minimums, else the type inferred from area."""
        if room.space_type in self.config.min_dimension_by_type:
            return room.space_type
        return infer_room_type(self.config.area_to_m2(room.area), self.config)

    def _check_area(self, room: Room) -> List[Diagnostic]:
        area_m2 = self.config.area_to_m2(room.area)
        if area_m2 >= self.config.warn_min_area_m2:
            return []
        return [Diagnostic(
            Severity.WARNING, room.id,
            f"{room.name or room.id} area {area_m2:.2f} m2 is below "
            f"{self.config.warn_min_area_m2:g} m2 (possible drawing error)",
            code="small_area",
        )]

    def _check_windows(self, room: Room, walls_by_id: Dict[str, Wall]) -> List[Diagnostic]:
        for wall_id in room.wall_ids:
            wall = walls_by_id.get(wall_id)
            if wall and any(o.kind == "window" for o in wall.openings):
                return []
        return [Diagnostic(
            Severity.WARNING, room.id,
            f"No windows detected for {room.name or room.id}",
            code="no_windows",
        )]

    def _check_dimensions(self, room: Room) -> List[Diagnostic]:
        room_type = self.room_type(room)
        required = self.config.min_dimension_by_type.get(room_type)
        if required is None:
            return []

        actual = minimum_dimension(room)
        if actual >= required:
            return []
        return [Diagnostic(
            Severity.WARNING, room.id,
            f"{room_type} minimum dimension is below {required / self.config.units_per_meter:.1f}m "
            f"({room.name or room.id}: {actual / self.config.units_per_meter:.2f}m)",
            code="min_dimension",
        )]

    def _compute_statistics(self, rooms: List[Room]) -> Dict:
        areas = [self.config.area_to_m2(r.area) for r in rooms]
        stats = {
            'total_rooms': len(rooms),
            'total_area_m2': round(sum(areas), 2),
            'exterior_rooms': len([r for r in rooms if r.is_exterior]),
            'nested_rooms': len([r for r in rooms if r.parent_room_id]),
        }
        if areas:
            stats['avg_room_area_m2'] = round(sum(areas) / len(areas), 2)
            stats['min_room_area_m2'] = round(min(areas), 2)
            stats['max_room_area_m2'] = round(max(areas), 2)
        return stats


def run_qc(rooms: List[Room], walls: List[Wall], config: Optional[RoomDetectionConfig] = None) -> QCReport:
    """
    Convenience function to run quality checks.

    Args:
        rooms: Detected rooms
        walls: Walls the rooms came from
        config: Room thresholds

    Returns:
        QCReport
    """
    checker = QualityChecker(config)
    return checker.check(rooms, walls)

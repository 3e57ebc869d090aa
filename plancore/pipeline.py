"""
Floor Plan Core Pipeline
Runs cleanup, room detection, validation and spatial indexing over one
wall snapshot.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .cleanup import CleanupReport, WallNetworkCleaner
from .config import PlanRules, default_rules, load_rules
from .models import Diagnostic, Room, Wall
from .qc import QCReport, QualityChecker
from .rooms import RoomDetector, validate_nested_rooms, validate_room_topology
from .spatial import SpatialIndex

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result of one pipeline run."""
    success: bool
    walls: List[Wall] = field(default_factory=list)
    cleanup_report: Optional[CleanupReport] = None
    rooms: List[Room] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    qc_report: Optional[QCReport] = None
    index: Optional[SpatialIndex] = None
    errors: List[str] = field(default_factory=list)

    @property
    def messages(self) -> List[str]:
        """Diagnostics as ``"<severity>: <message>"`` strings."""
        return [str(d) for d in self.diagnostics]


class PlanPipeline:
    """
    End-to-end processing of a raw wall snapshot.
    """

    def __init__(self, rules: Optional[PlanRules] = None):
        """
        Initialize pipeline.

        Args:
            rules: Plan rules; packaged defaults when omitted
        """
        self.rules = rules or default_rules()
        self.cleaner = WallNetworkCleaner(self.rules.cleanup)
        self.room_detector = RoomDetector(self.rules.rooms)
        self.qc_checker = QualityChecker(self.rules.rooms)

    def run(self, walls: List[Wall], previous_rooms: Optional[List[Room]] = None) -> PipelineResult:
        """
        Process a wall snapshot.

        Args:
            walls: Raw walls
            previous_rooms: Rooms of the previous snapshot

        Returns:
            PipelineResult
        """
        result = PipelineResult(success=False)

        try:
            logger.info(f"[1/4] Cleaning {len(walls)} walls")
            cleaned = self.cleaner.clean(walls)
            result.walls = cleaned.walls
            result.cleanup_report = cleaned.report

            logger.info("[2/4] Detecting rooms")
            rooms = self.room_detector.detect(cleaned.walls, previous_rooms)
            result.rooms = rooms

            logger.info("[3/4] Validating rooms")
            result.diagnostics.extend(validate_room_topology(rooms))
            result.diagnostics.extend(validate_nested_rooms(rooms))
            qc_report = self.qc_checker.check(rooms, cleaned.walls)
            result.qc_report = qc_report
            result.diagnostics.extend(qc_report.warnings)

            logger.info("[4/4] Building spatial index")
            result.index = SpatialIndex.rebuild(cleaned.walls, self.rules.spatial)

            result.success = True
            logger.info(f"Pipeline completed: {len(result.walls)} walls, {len(rooms)} rooms, "
                        f"{len(result.diagnostics)} diagnostics")

        except Exception as e:
            logger.error(f"Pipeline error: {e}", exc_info=True)
            result.errors.append(str(e))

        return result


def run_pipeline(
    walls: List[Wall],
    previous_rooms: Optional[List[Room]] = None,
    rules_path: Optional[Path] = None
) -> PipelineResult:
    """
    Process a wall snapshot.

    Args:
        walls: Raw walls
        previous_rooms: Rooms of the previous snapshot
        rules_path: Optional YAML rules file

    Returns:
        PipelineResult
    """
    rules = load_rules(rules_path) if rules_path else None
    return PlanPipeline(rules).run(walls, previous_rooms)

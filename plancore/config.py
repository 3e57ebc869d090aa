"""
Floor Plan Rules Configuration
Loads tolerances and thresholds from YAML rules into typed dataclasses.
"""

import copy
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from . import RULES_DIR

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = RULES_DIR / "plan_rules.yaml"


@dataclass
class CleanupOptions:
    """Wall-network cleanup tolerances and stage toggles."""
    endpoint_tolerance: float = 0.5
    collinear_angle_tolerance_deg: float = 1.5
    enable_t_junction_fix: bool = True
    enable_intersection_healing: bool = True
    enable_collinear_merge: bool = True
    enable_gap_healing: bool = True
    max_passes: int = 10000

    # Option names used by the editor layer
    CAMEL_CASE_KEYS = {
        "endpointTolerance": "endpoint_tolerance",
        "collinearAngleToleranceDeg": "collinear_angle_tolerance_deg",
        "enableTJunctionFix": "enable_t_junction_fix",
        "enableIntersectionHealing": "enable_intersection_healing",
        "enableCollinearMerge": "enable_collinear_merge",
        "enableGapHealing": "enable_gap_healing",
    }

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None) -> "CleanupOptions":
        """Build options from snake_case or camelCase keys; missing keys keep defaults."""
        normalized = {}
        for key, value in (options or {}).items():
            normalized[cls.CAMEL_CASE_KEYS.get(key, key)] = value
        return _build(cls, normalized)


@dataclass
class RoomDetectionConfig:
    """Room detection, naming and validation thresholds."""
    snap_tolerance: float = 0.5
    min_room_area: float = 4.0
    auto_name_prefix: str = "Room"
    sub_room_prefix: str = "Sub-room"
    max_trace_steps: int = 2048
    warn_min_area_m2: float = 2.0
    units_per_meter: float = 1000.0
    type_by_area_m2: List[Tuple[float, str]] = field(default_factory=lambda: [
        (5.0, "Bathroom/Closet"),
        (15.0, "Bedroom"),
        (25.0, "Living Room"),
    ])
    default_room_type: str = "Open Space"
    min_dimension_by_type: Dict[str, float] = field(default_factory=lambda: {
        "Bedroom": 2400.0,
        "Living Room": 3000.0,
        "Bathroom/Closet": 1200.0,
    })

    def area_to_m2(self, area: float) -> float:
        return area / (self.units_per_meter * self.units_per_meter)


@dataclass
class SpatialConfig:
    """Spatial index bucket size, viewport margin and LOD zoom thresholds."""
    vertex_cell_size: float = 400.0
    vertex_tolerance: float = 0.5
    viewport_margin: float = 200.0
    coarse_below_zoom: float = 0.4
    medium_below_zoom: float = 1.2


@dataclass
class CornerConfig:
    """Corner bevel and centre-drag limits."""
    tolerance: float = 0.5
    min_angle_deg: float = 15.0
    max_angle_deg: float = 165.0
    bevel_epsilon: float = 0.001


@dataclass
class SolverConfig:
    """Parametric solver numeric limits."""
    min_length: float = 1e-6


@dataclass
class PlanRules:
    """All rule sections bundled together."""
    cleanup: CleanupOptions = field(default_factory=CleanupOptions)
    rooms: RoomDetectionConfig = field(default_factory=RoomDetectionConfig)
    spatial: SpatialConfig = field(default_factory=SpatialConfig)
    corners: CornerConfig = field(default_factory=CornerConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)


def _build(cls, data: Mapping[str, Any]):
    """Instantiate a config dataclass from the keys it knows about."""
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key in known:
            kwargs[key] = value
        else:
            logger.debug(f"Ignoring unknown {cls.__name__} key: {key}")
    return cls(**kwargs)


def _parse_rooms(data: Mapping[str, Any]) -> RoomDetectionConfig:
    data = dict(data)
    if "type_by_area_m2" in data:
        data["type_by_area_m2"] = [
            (float(threshold), str(name)) for threshold, name in data["type_by_area_m2"]
        ]
    if "min_dimension_by_type" in data:
        data["min_dimension_by_type"] = {
            str(name): float(value) for name, value in data["min_dimension_by_type"].items()
        }
    return _build(RoomDetectionConfig, data)


def _parse_spatial(data: Mapping[str, Any]) -> SpatialConfig:
    data = dict(data)
    lod = data.pop("lod", None) or {}
    data.update(lod)
    return _build(SpatialConfig, data)


def load_rules(config_path: Optional[Path] = None) -> PlanRules:
    """
    Load plan rules from YAML.

    Args:
        config_path: Rules file; the packaged defaults are used when omitted

    Returns:
        PlanRules with file values overlaid on dataclass defaults
    """
    path = Path(config_path) if config_path else DEFAULT_RULES_PATH

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load rules from {path}: {e}")
        return PlanRules()

    return PlanRules(
        cleanup=CleanupOptions.from_mapping(data.get("cleanup")),
        rooms=_parse_rooms(data.get("rooms") or {}),
        spatial=_parse_spatial(data.get("spatial") or {}),
        corners=_build(CornerConfig, data.get("corners") or {}),
        solver=_build(SolverConfig, data.get("solver") or {}),
    )


_DEFAULT_RULES: Optional[PlanRules] = None


def default_rules() -> PlanRules:
    """Packaged rules, read once per process; each caller gets its own copy."""
    global _DEFAULT_RULES
    if _DEFAULT_RULES is None:
        _DEFAULT_RULES = load_rules()
    return copy.deepcopy(_DEFAULT_RULES)

"""
Floor Plan File Envelope
JSON envelope ``{schema, version, metadata, data: {walls, rooms, ...}}``
validation, forward migration and model (de)serialization.

Envelopes are checked before any migration runs; migrations step forward
one version at a time. Everything here is text-in/text-out.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError
from pydantic.alias_generators import to_camel

from .models import BevelControl, Opening, Point, Room, Wall

logger = logging.getLogger(__name__)

SCHEMA_ID = "plancore.floor-plan"
CURRENT_VERSION = 2
DEFAULT_UNIT = "mm"


class PlanFileError(ValueError):
    """Envelope failed validation or cannot be migrated."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid floor plan file: {'; '.join(self.errors)}")


# =============================================================================
# Envelope models
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PlanData(_CamelModel):
    """Payload of an envelope; walls and rooms stay raw until converted."""
    model_config = ConfigDict(extra="allow")

    walls: List[Any]
    rooms: List[Any]


class PlanMetadata(_CamelModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    unit: Optional[str] = None
    author: Optional[str] = None


class PlanEnvelope(BaseModel):
    """Structural contract every envelope version shares."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    schema_id: Literal["plancore.floor-plan"] = Field(alias="schema")
    version: StrictInt = Field(ge=1)
    metadata: Optional[PlanMetadata] = None
    data: PlanData


# =============================================================================
# Record models
# =============================================================================

class PointRecord(BaseModel):
    x: float
    y: float


class OpeningRecord(_CamelModel):
    id: str
    kind: str = Field(default="door", alias="type")
    offset: float = 0.0
    width: float = 900.0
    height: float = 2100.0
    sill_height: float = 0.0


class BevelRecord(_CamelModel):
    outer_offset: float = 0.0
    inner_offset: float = 0.0


class WallRecord(_CamelModel):
    """Wall as stored in the envelope (camelCase keys)."""
    id: str
    start: PointRecord
    end: PointRecord
    thickness: float = Field(150.0, gt=0)
    height: float = 3000.0
    material: str = "brick"
    layer: str = "partition"
    wall_type: str = "interior"
    exterior_side: str = "left"
    openings: List[OpeningRecord] = Field(default_factory=list)
    start_bevel: BevelRecord = Field(default_factory=BevelRecord)
    end_bevel: BevelRecord = Field(default_factory=BevelRecord)
    connected_wall_ids: List[str] = Field(default_factory=list)
    is_bevel_segment: bool = False
    bevel_node_key: Optional[str] = None
    bevel_source_wall_ids: List[str] = Field(default_factory=list)


class RoomRecord(_CamelModel):
    """Room as stored in the envelope (camelCase keys)."""
    id: str
    name: str = ""
    vertices: List[PointRecord] = Field(default_factory=list)
    wall_ids: List[str] = Field(default_factory=list)
    area: float = 0.0
    perimeter: float = 0.0
    centroid: PointRecord = Field(default_factory=lambda: PointRecord(x=0.0, y=0.0))
    space_type: str = "detected"
    parent_room_id: Optional[str] = None
    child_room_ids: List[str] = Field(default_factory=list)
    depth: int = 0
    is_exterior: bool = False
    color: Optional[str] = None
    ceiling_height: float = 3000.0


def _point(record: PointRecord) -> Point:
    return Point(record.x, record.y)


def _point_dict(point: Point) -> Dict[str, float]:
    return {"x": point.x, "y": point.y}


def wall_to_dict(wall: Wall) -> Dict[str, Any]:
    record = WallRecord(
        id=wall.id,
        start=_point_dict(wall.start),
        end=_point_dict(wall.end),
        thickness=wall.thickness,
        height=wall.height,
        material=wall.material,
        layer=wall.layer,
        wall_type=wall.wall_type,
        exterior_side=wall.exterior_side,
        openings=[OpeningRecord(
            id=o.id, kind=o.kind, offset=o.offset, width=o.width, height=o.height, sill_height=o.sill_height
        ) for o in wall.openings],
        start_bevel=BevelRecord(outer_offset=wall.start_bevel.outer_offset,
                                inner_offset=wall.start_bevel.inner_offset),
        end_bevel=BevelRecord(outer_offset=wall.end_bevel.outer_offset,
                              inner_offset=wall.end_bevel.inner_offset),
        connected_wall_ids=list(wall.connected_wall_ids),
        is_bevel_segment=wall.is_bevel_segment,
        bevel_node_key=wall.bevel_node_key,
        bevel_source_wall_ids=list(wall.bevel_source_wall_ids),
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def wall_from_dict(data: Dict[str, Any]) -> Wall:
    """
    Build a Wall from its envelope form.

    Raises:
        PlanFileError: record is missing required fields or has bad types
    """
    try:
        record = WallRecord.model_validate(data)
    except ValidationError as e:
        raise PlanFileError(_format_errors(e, prefix="wall"))

    return Wall(
        id=record.id,
        start=_point(record.start),
        end=_point(record.end),
        thickness=record.thickness,
        height=record.height,
        material=record.material,
        layer=record.layer,
        wall_type=record.wall_type,
        exterior_side=record.exterior_side,
        openings=[Opening(
            id=o.id, kind=o.kind, offset=o.offset, width=o.width, height=o.height, sill_height=o.sill_height
        ) for o in record.openings],
        start_bevel=BevelControl(record.start_bevel.outer_offset, record.start_bevel.inner_offset),
        end_bevel=BevelControl(record.end_bevel.outer_offset, record.end_bevel.inner_offset),
        connected_wall_ids=list(record.connected_wall_ids),
        is_bevel_segment=record.is_bevel_segment,
        bevel_node_key=record.bevel_node_key,
        bevel_source_wall_ids=list(record.bevel_source_wall_ids),
    )


def room_to_dict(room: Room) -> Dict[str, Any]:
    record = RoomRecord(
        id=room.id,
        name=room.name,
        vertices=[_point_dict(v) for v in room.vertices],
        wall_ids=list(room.wall_ids),
        area=room.area,
        perimeter=room.perimeter,
        centroid=_point_dict(room.centroid),
        space_type=room.space_type,
        parent_room_id=room.parent_room_id,
        child_room_ids=list(room.child_room_ids),
        depth=room.depth,
        is_exterior=room.is_exterior,
        color=room.color,
        ceiling_height=room.ceiling_height,
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def room_from_dict(data: Dict[str, Any]) -> Room:
    try:
        record = RoomRecord.model_validate(data)
    except ValidationError as e:
        raise PlanFileError(_format_errors(e, prefix="room"))

    return Room(
        id=record.id,
        name=record.name,
        vertices=[_point(v) for v in record.vertices],
        wall_ids=list(record.wall_ids),
        area=record.area,
        perimeter=record.perimeter,
        centroid=_point(record.centroid),
        space_type=record.space_type,
        parent_room_id=record.parent_room_id,
        child_room_ids=list(record.child_room_ids),
        depth=record.depth,
        is_exterior=record.is_exterior,
        color=record.color,
        ceiling_height=record.ceiling_height,
    )


# =============================================================================
# Validation
# =============================================================================

def _format_errors(error: ValidationError, prefix: str = "") -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]).replace("schema_id", "schema")
        if prefix:
            location = f"{prefix}.{location}" if location else prefix
        messages.append(f"{location}: {item['msg']}")
    return messages


def validate_envelope(raw: Any) -> List[str]:
    """
    Check an envelope's structure.

    Returns:
        Error messages; empty when the envelope is usable
    """
    if not isinstance(raw, dict):
        return ["envelope must be an object"]
    try:
        PlanEnvelope.model_validate(raw)
    except ValidationError as e:
        return _format_errors(e)
    return []


def parse_plan_file(text: str) -> Dict[str, Any]:
    """
    Parse and validate envelope JSON.

    Raises:
        PlanFileError: malformed JSON or invalid envelope
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise PlanFileError([f"malformed JSON: {e}"])

    errors = validate_envelope(raw)
    if errors:
        raise PlanFileError(errors)
    return raw


# =============================================================================
# Migration
# =============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _migrate_v1_to_v2(envelope: Dict[str, Any]) -> Dict[str, Any]:
    data = envelope.get("data") or {}
    now = _timestamp()
    return {
        "schema": SCHEMA_ID,
        "version": 2,
        "metadata": {
            "createdAt": now,
            "updatedAt": now,
            "unit": DEFAULT_UNIT,
        },
        "data": {
            **data,
            "walls": list(data.get("walls") or []),
            "rooms": list(data.get("rooms") or []),
            "scale": data.get("scale", 1),
            "width": data.get("width", 0),
            "height": data.get("height", 0),
        },
    }


# version -> step to version + 1
MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1_to_v2,
}


def migrate_envelope(envelope: Dict[str, Any], target_version: int = CURRENT_VERSION) -> Dict[str, Any]:
    """
    Migrate a validated envelope forward to ``target_version``.

    Raises:
        ValueError: unsupported target version
        PlanFileError: invalid envelope or no migration path
    """
    if target_version != CURRENT_VERSION:
        raise ValueError(f"Unsupported migration target version {target_version}")

    errors = validate_envelope(envelope)
    if errors:
        raise PlanFileError(errors)

    current = envelope
    while current["version"] < target_version:
        step = MIGRATIONS.get(current["version"])
        if step is None:
            raise PlanFileError([f"no migration from version {current['version']}"])
        logger.info(f"Migrating floor plan file v{current['version']} -> v{current['version'] + 1}")
        current = step(current)

    if current["version"] != target_version:
        raise PlanFileError([f"unsupported floor plan file version {current['version']}"])
    return current


# =============================================================================
# Creation and loading
# =============================================================================

def create_plan_file(
    walls: List[Wall],
    rooms: List[Room],
    metadata: Optional[Dict[str, Any]] = None,
    scale: float = 1.0,
    width: float = 0.0,
    height: float = 0.0
) -> Dict[str, Any]:
    """Current-version envelope for a wall/room snapshot."""
    metadata = dict(metadata or {})
    now = _timestamp()
    meta = {
        "createdAt": metadata.pop("createdAt", None) or now,
        "updatedAt": metadata.pop("updatedAt", None) or now,
        "unit": metadata.pop("unit", None) or DEFAULT_UNIT,
    }
    meta.update({k: v for k, v in metadata.items() if v is not None})

    return {
        "schema": SCHEMA_ID,
        "version": CURRENT_VERSION,
        "metadata": meta,
        "data": {
            "walls": [wall_to_dict(w) for w in walls],
            "rooms": [room_to_dict(r) for r in rooms],
            "scale": scale,
            "width": width,
            "height": height,
        },
    }


def serialize_plan_file(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, indent=2)


def load_plan_data(text: str) -> Tuple[List[Wall], List[Room]]:
    """Parse, migrate and convert envelope JSON into walls and rooms."""
    envelope = migrate_envelope(parse_plan_file(text))
    walls = [wall_from_dict(w) for w in envelope["data"]["walls"]]
    rooms = [room_from_dict(r) for r in envelope["data"]["rooms"]]
    logger.info(f"Loaded floor plan: {len(walls)} walls, {len(rooms)} rooms")
    return walls, rooms

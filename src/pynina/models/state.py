"""Unified observatory state models.

The wire shape (camelCase) of these models is what dashboard widgets
render; field names and enum values must stay stable.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from pynina.models._base import LenientFloat, LenientInt, LenientStr, NinaBaseModel, NinaTimestamp


class EquipmentType(StrEnum):
    MOUNT = "mount"
    CAMERA = "camera"
    FILTER_WHEEL = "filterWheel"
    GUIDER = "guider"
    FOCUSER = "focuser"
    ROTATOR = "rotator"
    OTHER = "other"


class EquipmentStatus(StrEnum):
    IDLE = "idle"
    SLEWING = "slewing"
    TRACKING = "tracking"
    EXPOSING = "exposing"
    SETTLING = "settling"
    COOLING = "cooling"
    WARMING = "warming"
    CALIBRATING = "calibrating"
    MOVING = "moving"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"


class UpdateKind(StrEnum):
    SESSION = "session"
    EQUIPMENT = "equipment"
    IMAGE = "image"
    STACK = "stack"
    EVENTS = "events"
    FULL_SYNC = "fullSync"
    HEARTBEAT = "heartbeat"


class TargetInfo(NinaBaseModel):
    project_name: LenientStr = None
    target_name: LenientStr = None
    ra: LenientFloat = None
    dec: LenientFloat = None
    panel_index: LenientInt = None
    rotation_deg: LenientFloat = None


class ImageProgress(NinaBaseModel):
    frame_index: LenientInt = None
    total_frames: LenientInt = None


class LastImage(NinaBaseModel):
    at: NinaTimestamp = None
    file_path: LenientStr = None
    stars: LenientInt = None
    hfr: LenientFloat = None


class ImagingInfo(NinaBaseModel):
    current_filter: LenientStr = None
    exposure_seconds: LenientFloat = None
    frame_type: LenientStr = None
    sequence_name: LenientStr = None
    progress: ImageProgress | None = None
    last_image: LastImage | None = None


class GuidingInfo(NinaBaseModel):
    is_guiding: bool = False
    last_rms_total: LenientFloat = None
    last_rms_ra: LenientFloat = None
    last_rms_dec: LenientFloat = None
    last_update: NinaTimestamp = None


class Session(NinaBaseModel):
    """The current imaging context.

    Created lazily by the state manager on the first session-relevant event
    and merged into afterwards.
    """

    is_active: bool | None = None
    started_at: NinaTimestamp = None
    target: TargetInfo = Field(default_factory=TargetInfo)
    imaging: ImagingInfo = Field(default_factory=ImagingInfo)
    guiding: GuidingInfo = Field(default_factory=GuidingInfo)


class EquipmentDevice(NinaBaseModel):
    id: str
    type: EquipmentType = EquipmentType.OTHER
    name: str
    connected: bool = False
    status: EquipmentStatus = EquipmentStatus.UNKNOWN
    last_change: datetime | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class RecentEvent(NinaBaseModel):
    time: datetime
    type: str
    summary: str
    meta: dict[str, Any] = Field(default_factory=dict)


class UnifiedState(NinaBaseModel):
    current_session: Session | None = None
    equipment: list[EquipmentDevice] = Field(default_factory=list)
    recent_events: list[RecentEvent] = Field(default_factory=list)

    def find_equipment(self, equipment_id: str) -> EquipmentDevice | None:
        for device in self.equipment:
            if device.id == equipment_id:
                return device
        return None

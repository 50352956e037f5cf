"""Data models for the unified observatory state."""

from pynina.models._base import NinaBaseModel, NinaFrozenModel, NinaTimestamp
from pynina.models.envelope import (
    SCHEMA_VERSION,
    EventWatermark,
    StateChange,
    StateEnvelope,
    SystemStatus,
)
from pynina.models.events import ControllerEvent, EventDomain, EventHistoryResponse
from pynina.models.patches import (
    GuidingPatch,
    ImagingPatch,
    LastImagePatch,
    ProgressPatch,
    SessionPatch,
    TargetPatch,
)
from pynina.models.state import (
    EquipmentDevice,
    EquipmentStatus,
    EquipmentType,
    GuidingInfo,
    ImageProgress,
    ImagingInfo,
    LastImage,
    RecentEvent,
    Session,
    TargetInfo,
    UnifiedState,
    UpdateKind,
)

__all__ = [
    "SCHEMA_VERSION",
    "ControllerEvent",
    "EquipmentDevice",
    "EquipmentStatus",
    "EquipmentType",
    "EventDomain",
    "EventHistoryResponse",
    "EventWatermark",
    "GuidingInfo",
    "GuidingPatch",
    "ImageProgress",
    "ImagingInfo",
    "ImagingPatch",
    "LastImage",
    "LastImagePatch",
    "NinaBaseModel",
    "NinaFrozenModel",
    "NinaTimestamp",
    "ProgressPatch",
    "RecentEvent",
    "Session",
    "SessionPatch",
    "StateChange",
    "StateEnvelope",
    "SystemStatus",
    "TargetInfo",
    "TargetPatch",
    "UnifiedState",
    "UpdateKind",
]

"""Outbound broadcast envelope and status models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pynina.models._base import NinaFrozenModel
from pynina.models.state import UnifiedState, UpdateKind

SCHEMA_VERSION: Literal[1] = 1


class StateChange(NinaFrozenModel):
    """Hint of what changed, so subscribers never need to diff."""

    path: str
    summary: str
    meta: dict[str, Any] | None = None


class StateEnvelope(NinaFrozenModel):
    """One broadcast: the full state plus a hint of what changed."""

    schema_version: Literal[1] = SCHEMA_VERSION
    timestamp: datetime
    update_kind: UpdateKind
    update_reason: str
    changed: StateChange | None = None
    state: UnifiedState


class EventWatermark(NinaFrozenModel):
    """Identity of the last controller event the normalizer applied."""

    event_type: str
    event_time: datetime | None = None
    processed_at: datetime


class SystemStatus(NinaFrozenModel):
    initialized: bool
    seeded: bool
    connection: str
    equipment_count: int
    session_active: bool
    recent_event_count: int
    events_processed: int = 0
    events_ignored: int = 0
    events_failed: int = 0
    last_event: EventWatermark | None = None
    last_message_at: datetime | None = None
    last_seeded_at: datetime | None = None

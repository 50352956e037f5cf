"""Controller event normalizer.

Translates classified NINA events into state-manager calls:

- a typed session patch and/or an equipment upsert
- one short :class:`RecentEvent` for the activity feed
- exactly one change notification

Live events and replayed history both enter through
:meth:`EventNormalizer.process_event`, so seeding and live operation can
never interpret the same event differently.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any

from pydantic import ValidationError

from pynina.ingestion.classify import (
    equipment_id_for,
    equipment_name_for,
    equipment_type_for,
    target_has_ended,
)
from pynina.ingestion.normalize import (
    ensure_utc,
    first_present,
    parse_timestamp,
    safe_float,
    safe_int,
    safe_str,
    scalar_items,
)
from pynina.models.envelope import EventWatermark, StateChange
from pynina.models.events import ControllerEvent, EventDomain
from pynina.models.patches import (
    GuidingPatch,
    ImagingPatch,
    LastImagePatch,
    ProgressPatch,
    SessionPatch,
    TargetPatch,
)
from pynina.models.state import EquipmentDevice, EquipmentStatus, RecentEvent, UpdateKind
from pynina.state.manager import StateManager

_logger = logging.getLogger(__name__)

_I = re.IGNORECASE

# Guiding
_START_RE = re.compile(r"start", _I)
_STOP_OR_DISCONNECT_RE = re.compile(r"stop|disconnect", _I)
_DISCONNECT_RE = re.compile(r"disconnect", _I)
_DITHER_RE = re.compile(r"dither", _I)
_STATS_RE = re.compile(r"stats|update", _I)

# Session
_TARGET_CHANGED_RE = re.compile(r"target.*changed|targetstart", _I)
_SEQUENCE_STARTED_RE = re.compile(r"sequence.*start", _I)
_SEQUENCE_ENDED_RE = re.compile(r"sequence.*(completed|stopped|finished)", _I)
_SCHEDULER_START_RE = re.compile(r"ts-(new)?targetstart", _I)

# Equipment
_DISCONNECTED_RE = re.compile(r"disconnected", _I)
_CONNECTED_RE = re.compile(r"connected", _I)
_SLEWING_RE = re.compile(r"slew", _I)
_TRACKING_RE = re.compile(r"track", _I)
_EXPOSING_RE = re.compile(r"exposing", _I)
_COOLING_RE = re.compile(r"cooling", _I)
_WARMING_RE = re.compile(r"warming", _I)
_FILTER_CHANGED_RE = re.compile(r"filter.*changed", _I)
_FOCUS_DONE_RE = re.compile(r"focus.*(finished|completed)", _I)
_FOCUS_MOVING_RE = re.compile(r"focus.*mov|autofocus", _I)
_FLIP_RE = re.compile(r"flip", _I)

# Image
_IMAGE_SAVE_RE = re.compile(r"image.*save", _I)

_DETAIL_SKIP_KEYS = frozenset({"Event", "Type"})


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _rms_value(event: ControllerEvent, key: str, nested: dict[str, Any], nested_key: str) -> float | None:
    value = event.pick(key)
    if value is None:
        value = nested.get(nested_key)
    return safe_float(value)


def _format_number(value: float | None) -> str:
    return f"{value:g}" if value is not None else ""


class EventNormalizer:
    """Single interpretation path from raw controller events to state.

    Parameters
    ----------
    state : StateManager
        The only object this normalizer mutates, and only through its
        public methods.
    observatory_tz : tzinfo
        Zone used for naive controller timestamps and for correcting target
        scheduler start times that arrive labelled as UTC.
    clock : callable, optional
        Defaults to the state manager's clock.
    """

    def __init__(
        self,
        state: StateManager,
        *,
        observatory_tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._state = state
        self._tz = observatory_tz
        self._clock = clock or state.clock
        self._handlers: dict[EventDomain, Callable[[ControllerEvent], bool]] = {
            EventDomain.GUIDING: self._handle_guiding,
            EventDomain.SESSION: self._handle_session,
            EventDomain.EQUIPMENT: self._handle_equipment,
            EventDomain.IMAGE: self._handle_image,
            EventDomain.STACK: self._handle_stack,
            EventDomain.UNKNOWN: self._handle_unknown,
        }
        self.processed_count = 0
        self.ignored_count = 0
        self.failed_count = 0
        self.watermark: EventWatermark | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process_event(self, raw: Mapping[str, Any] | ControllerEvent | None) -> bool:
        """Apply one controller event.  Never raises.

        Returns ``True`` when the event changed state and was broadcast.
        """
        if raw is None:
            _logger.warning("Null event received")
            self.ignored_count += 1
            return False

        if isinstance(raw, ControllerEvent):
            event = raw
        elif isinstance(raw, Mapping):
            try:
                event = ControllerEvent.from_raw(dict(raw))
            except ValidationError:
                _logger.warning("Malformed controller event dropped", exc_info=True)
                self.failed_count += 1
                return False
        else:
            _logger.warning("Ignoring non-object event of type %s", type(raw).__name__)
            self.ignored_count += 1
            return False

        if not event.type:
            _logger.warning("Event missing Event/Type field: %s", json.dumps(event.raw, default=str)[:100])
            self.ignored_count += 1
            return False

        _logger.debug("Processing event: %s (%s)", event.type, event.domain)
        try:
            handled = self._handlers[event.domain](event)
        except Exception:
            _logger.exception("Error processing event %s", event.type)
            self.failed_count += 1
            return False

        if not handled:
            self.ignored_count += 1
            return False

        self.processed_count += 1
        self.watermark = EventWatermark(
            event_type=event.type,
            event_time=event.time,
            processed_at=self._clock(),
        )
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _localize(self, value: datetime) -> datetime:
        """Naive controller timestamps are observatory wall-clock time."""
        if value.tzinfo is None:
            return value.replace(tzinfo=self._tz)
        return value

    def _event_time(self, event: ControllerEvent) -> datetime:
        if event.time is None:
            return self._clock()
        return self._localize(event.time)

    def _correct_scheduler_time(self, value: datetime) -> datetime:
        """Shift a UTC-labelled scheduler timestamp by the observatory offset."""
        offset = value.utcoffset()
        if offset is not None and offset != timedelta(0):
            return value
        instant = ensure_utc(value)
        shift = instant.astimezone(self._tz).utcoffset() or timedelta(0)
        if not shift:
            return instant
        corrected = instant + shift
        _logger.debug("Adjusted scheduler start time from %s to %s", instant.isoformat(), corrected.isoformat())
        return corrected

    # ------------------------------------------------------------------
    # Guiding
    # ------------------------------------------------------------------

    def _handle_guiding(self, event: ControllerEvent) -> bool:
        event_type = event.type or ""
        is_guiding = False
        update_reason = "guiding-update"
        summary = "Guiding update"

        if _START_RE.search(event_type):
            is_guiding, update_reason, summary = True, "guiding-started", "Guiding started"
        elif _STOP_OR_DISCONNECT_RE.search(event_type):
            if _DISCONNECT_RE.search(event_type):
                update_reason, summary = "guiding-disconnected", "Guiding disconnected"
            else:
                update_reason, summary = "guiding-stopped", "Guiding stopped"
        elif _DITHER_RE.search(event_type):
            is_guiding, update_reason, summary = True, "guiding-dithering", "Dithering"
        elif _STATS_RE.search(event_type):
            is_guiding = True

        rms = event.pick("RMS")
        rms_source = rms if isinstance(rms, dict) else {}
        rms_values = {
            "last_rms_total": _rms_value(event, "RMSTotal", rms_source, "Total"),
            "last_rms_ra": _rms_value(event, "RMSRA", rms_source, "RA"),
            "last_rms_dec": _rms_value(event, "RMSDec", rms_source, "Dec"),
        }
        patch = GuidingPatch(is_guiding=is_guiding, last_update=self._clock(), **_without_none(rms_values))

        rms_total = rms_values["last_rms_total"]
        if update_reason == "guiding-update" and rms_total is not None:
            summary = f'RMS: {rms_total:.2f}"'

        self._state.update_session(SessionPatch(guiding=patch))
        self._state.add_recent_event(
            RecentEvent(
                time=self._event_time(event),
                type="GUIDING",
                summary=summary,
                meta={"rms": rms_total},
            )
        )
        self._state.notify_listeners(
            UpdateKind.SESSION,
            update_reason,
            StateChange(
                path="currentSession.guiding",
                summary=f"Guiding {update_reason.removeprefix('guiding-')}",
                meta=patch.model_dump(mode="json", by_alias=True, exclude_unset=True),
            ),
        )
        return True

    # ------------------------------------------------------------------
    # Session / target / sequence
    # ------------------------------------------------------------------

    def _handle_session(self, event: ControllerEvent) -> bool:
        event_type = event.type or ""
        now = self._clock()
        update_reason = "session-update"
        patch_kwargs: dict[str, Any] = {}

        event_time = self._event_time(event)
        if event.time is not None and _SCHEDULER_START_RE.search(event_type):
            event_time = self._correct_scheduler_time(event.time)

        if _TARGET_CHANGED_RE.search(event_type):
            update_reason = "target-changed"
            coordinates = event.pick("Coordinates")
            coords: dict[str, Any] = coordinates if isinstance(coordinates, dict) else {}
            patch_kwargs["target"] = TargetPatch(
                project_name=event.pick("ProjectName"),
                target_name=event.pick("TargetName"),
                ra=first_present(coords, event.raw, event.data, keys=("RA",)),
                dec=first_present(coords, event.raw, event.data, keys=("Dec",)),
                panel_index=event.pick("PanelIndex"),
                rotation_deg=event.pick("Rotation", "RotationDeg"),
            )
            end_time = parse_timestamp(event.pick("TargetEndTime"))
            ended = target_has_ended(self._localize(end_time) if end_time is not None else None, now)
            if ended is not None:
                patch_kwargs["is_active"] = not ended
                _logger.debug("Target %s (end time check)", "ended" if ended else "still active")
        elif _SEQUENCE_STARTED_RE.search(event_type):
            update_reason = "sequence-started"
            patch_kwargs["is_active"] = True
            patch_kwargs["started_at"] = now
            patch_kwargs["imaging"] = ImagingPatch(
                sequence_name=event.pick("SequenceName"),
                current_filter=event.pick("Filter"),
                exposure_seconds=event.pick("ExposureTime"),
                frame_type=event.pick("FrameType") or "LIGHT",
            )
        elif _SEQUENCE_ENDED_RE.search(event_type):
            update_reason = "sequence-completed"
            patch_kwargs["is_active"] = False

        patch = SessionPatch(**patch_kwargs)
        self._state.update_session(patch)

        target_name = patch.target.target_name if patch.target else None
        project_name = patch.target.project_name if patch.target else None
        sequence_name = patch.imaging.sequence_name if patch.imaging else None
        if target_name:
            summary = f"Target: {target_name}"
            if project_name:
                summary += f" ({project_name})"
        elif sequence_name:
            summary = f"Sequence: {sequence_name}"
        elif update_reason == "sequence-completed":
            summary = "Sequence completed"
        elif update_reason == "sequence-started":
            summary = "Sequence started"
        else:
            summary = "Session update"

        self._state.add_recent_event(
            RecentEvent(
                time=event_time,
                type="SESSION",
                summary=summary,
                meta=_without_none(
                    {
                        "TargetName": target_name,
                        "ProjectName": project_name,
                        "SequenceName": sequence_name,
                    }
                ),
            )
        )
        self._state.notify_listeners(
            UpdateKind.SESSION,
            update_reason,
            StateChange(
                path="currentSession",
                summary=update_reason.replace("-", " "),
                meta=patch.model_dump(mode="json", by_alias=True, exclude_unset=True),
            ),
        )
        return True

    # ------------------------------------------------------------------
    # Equipment
    # ------------------------------------------------------------------

    def _handle_equipment(self, event: ControllerEvent) -> bool:
        event_type = event.type or ""
        equipment_id = equipment_id_for(event_type)
        display_name = equipment_name_for(equipment_id)
        connected = True
        status = EquipmentStatus.UNKNOWN
        update_reason = "equipment-update"

        if _DISCONNECTED_RE.search(event_type):
            connected, status = False, EquipmentStatus.DISCONNECTED
            update_reason = f"{equipment_id}-disconnected"
        elif _CONNECTED_RE.search(event_type):
            status = EquipmentStatus.IDLE
            update_reason = f"{equipment_id}-connected"
        elif _SLEWING_RE.search(event_type):
            status, update_reason = EquipmentStatus.SLEWING, "mount-slewing"
        elif _TRACKING_RE.search(event_type):
            status, update_reason = EquipmentStatus.TRACKING, "mount-tracking"
        elif _EXPOSING_RE.search(event_type):
            status, update_reason = EquipmentStatus.EXPOSING, "camera-exposing"
        elif _COOLING_RE.search(event_type):
            status, update_reason = EquipmentStatus.COOLING, "camera-cooling"
        elif _WARMING_RE.search(event_type):
            status, update_reason = EquipmentStatus.WARMING, "camera-warming"
        elif _FILTER_CHANGED_RE.search(event_type):
            status, update_reason = EquipmentStatus.IDLE, "filter-changed"
            new_filter = event.pick("New")
            filter_name = safe_str(new_filter.get("Name")) if isinstance(new_filter, dict) else None
            if filter_name:
                self._state.update_session(SessionPatch(imaging=ImagingPatch(current_filter=filter_name)))
                _logger.debug("Filter changed to: %s", filter_name)
        elif _FOCUS_DONE_RE.search(event_type):
            status, update_reason = EquipmentStatus.IDLE, "focuser-idle"
        elif _FOCUS_MOVING_RE.search(event_type):
            status, update_reason = EquipmentStatus.MOVING, "focuser-moving"
        elif _FLIP_RE.search(event_type):
            status, update_reason = EquipmentStatus.SLEWING, "mount-flipping"

        details = {key: value for key, value in scalar_items(event.data).items() if key not in _DETAIL_SKIP_KEYS}
        name = event.pick("Name")
        self._state.upsert_equipment(
            EquipmentDevice(
                id=equipment_id,
                type=equipment_type_for(equipment_id),
                name=name if isinstance(name, str) else display_name,
                connected=connected,
                status=status,
                details=details,
            )
        )

        if not connected:
            summary = f"{display_name}: disconnected"
        elif status == EquipmentStatus.IDLE:
            summary = f"{display_name}: connected"
        else:
            summary = f"{display_name}: {status}"

        meta = {"equipmentId": equipment_id, "status": str(status), "connected": connected}
        self._state.add_recent_event(
            RecentEvent(time=self._event_time(event), type="EQUIPMENT", summary=summary, meta=meta)
        )
        _, _, verb = update_reason.partition("-")
        self._state.notify_listeners(
            UpdateKind.EQUIPMENT,
            update_reason,
            StateChange(
                path=f"equipment.{equipment_id}",
                summary=f"{display_name} {verb or 'updated'}",
                meta=meta,
            ),
        )
        return True

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    def _handle_image(self, event: ControllerEvent) -> bool:
        event_type = event.type or ""
        if not _IMAGE_SAVE_RE.search(event_type):
            _logger.debug("Image event without a saved frame ignored: %s", event_type)
            return False

        statistics = event.raw.get("ImageStatistics")
        stats: dict[str, Any] = statistics if isinstance(statistics, dict) else event.data

        filter_name = safe_str(first_present(stats, event.raw, keys=("Filter",)))
        exposure = safe_float(first_present(stats, event.raw, keys=("ExposureTime", "Exposure")))
        frame_type = safe_str(first_present(stats, keys=("ImageType", "FrameType"))) or "LIGHT"
        event_time = self._event_time(event)

        imaging_kwargs: dict[str, Any] = {
            "current_filter": filter_name,
            "exposure_seconds": exposure,
            "frame_type": frame_type,
            "last_image": LastImagePatch(
                at=event_time,
                file_path=first_present(stats, event.raw, keys=("FilePath", "Path")),
                stars=first_present(stats, keys=("Stars",)),
                hfr=first_present(stats, keys=("HFR",)),
            ),
        }
        progress = first_present(stats, event.raw, keys=("Progress",))
        if isinstance(progress, dict):
            imaging_kwargs["progress"] = ProgressPatch(
                frame_index=safe_int(progress.get("Current")),
                total_frames=safe_int(progress.get("Total")),
            )

        self._state.update_session(SessionPatch(is_active=True, imaging=ImagingPatch(**imaging_kwargs)))

        if filter_name and exposure is not None:
            summary = f"{filter_name} {_format_number(exposure)}s"
        elif filter_name:
            summary = f"{filter_name} image"
        elif frame_type != "LIGHT":
            summary = f"{frame_type} frame"
        else:
            summary = "Image saved"

        meta = {"Filter": filter_name, "Exposure": exposure, "FrameType": frame_type}
        self._state.add_recent_event(RecentEvent(time=event_time, type="IMAGE-SAVE", summary=summary, meta=meta))
        self._state.notify_listeners(
            UpdateKind.IMAGE,
            "image-saved",
            StateChange(
                path="currentSession.imaging.lastImage",
                summary=f"Image saved: {frame_type} {filter_name or ''}".rstrip(),
                meta=meta,
            ),
        )
        return True

    # ------------------------------------------------------------------
    # Stack
    # ------------------------------------------------------------------

    def _handle_stack(self, event: ControllerEvent) -> bool:
        target = safe_str(event.pick("Target")) or "Unknown"
        filter_name = safe_str(event.pick("Filter")) or ""
        stack_count = safe_int(event.pick("StackCount")) or 0

        if filter_name:
            summary = f"{filter_name}: {stack_count} frames"
        else:
            summary = f"{target}: {stack_count} frames"

        meta = {"Target": target, "Filter": filter_name, "StackCount": stack_count}
        self._state.add_recent_event(
            RecentEvent(time=self._event_time(event), type="STACK", summary=summary, meta=meta)
        )
        self._state.notify_listeners(
            UpdateKind.STACK,
            "stack-update",
            StateChange(path="stack", summary=event.type or "Stack update", meta=meta),
        )
        return True

    # ------------------------------------------------------------------
    # Unknown
    # ------------------------------------------------------------------

    def _handle_unknown(self, event: ControllerEvent) -> bool:
        _logger.info("Unhandled event type: %s", event.type)
        return False

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from pynina.ingestion.normalizer import EventNormalizer
from pynina.models.envelope import StateEnvelope
from pynina.models.state import EquipmentStatus, EquipmentType, UpdateKind
from pynina.state.manager import StateManager

NOW = datetime(2026, 1, 15, 21, 0, tzinfo=UTC)


class Harness:
    def __init__(self, **normalizer_kwargs) -> None:
        self.state = StateManager(clock=lambda: NOW)
        self.normalizer = EventNormalizer(self.state, **normalizer_kwargs)
        self.envelopes: list[StateEnvelope] = []
        self.state.subscribe(self.envelopes.append)

    def process(self, raw) -> bool:
        return self.normalizer.process_event(raw)

    @property
    def session(self):
        session = self.state.get_state().current_session
        assert session is not None
        return session


@pytest.fixture
def harness() -> Harness:
    return Harness()


def test_guider_start_sets_guiding_and_broadcasts_once(harness: Harness) -> None:
    assert harness.process({"Event": "GUIDER-START", "Time": "2026-01-15T20:59:00Z"}) is True

    guiding = harness.session.guiding
    assert guiding.is_guiding is True
    assert guiding.last_update == NOW

    recent = harness.state.get_state().recent_events
    assert len(recent) == 1
    assert recent[0].type == "GUIDING"
    assert recent[0].summary == "Guiding started"

    assert len(harness.envelopes) == 1
    envelope = harness.envelopes[0]
    assert envelope.update_kind == UpdateKind.SESSION
    assert envelope.update_reason == "guiding-started"
    assert envelope.changed is not None
    assert envelope.changed.path == "currentSession.guiding"


def test_guider_disconnect_and_stop(harness: Harness) -> None:
    harness.process({"Event": "GUIDER-START"})
    harness.process({"Event": "GUIDER-DISCONNECT"})
    assert harness.session.guiding.is_guiding is False
    assert harness.envelopes[-1].update_reason == "guiding-disconnected"

    harness.process({"Event": "GUIDER-STOP"})
    assert harness.envelopes[-1].update_reason == "guiding-stopped"


def test_guiding_stats_copy_rms(harness: Harness) -> None:
    harness.process({"Event": "GUIDING-STATS", "Data": {"RMSTotal": 0.52, "RMSRA": 0.31, "RMSDec": 0.41}})

    guiding = harness.session.guiding
    assert guiding.is_guiding is True
    assert guiding.last_rms_total == pytest.approx(0.52)
    assert guiding.last_rms_ra == pytest.approx(0.31)
    assert guiding.last_rms_dec == pytest.approx(0.41)
    assert harness.state.get_state().recent_events[0].summary == 'RMS: 0.52"'


def test_guiding_without_rms_keeps_previous_values(harness: Harness) -> None:
    harness.process({"Event": "GUIDING-STATS", "RMSTotal": 0.8})
    harness.process({"Event": "GUIDER-DITHER"})

    assert harness.session.guiding.last_rms_total == pytest.approx(0.8)
    assert harness.envelopes[-1].update_reason == "guiding-dithering"


def test_image_save_updates_imaging_and_last_image(harness: Harness) -> None:
    handled = harness.process(
        {
            "Event": "IMAGE-SAVE",
            "Time": "2026-01-15T20:58:30Z",
            "ImageStatistics": {"Filter": "Ha", "ExposureTime": 300, "ImageType": "LIGHT", "HFR": 2.3, "Stars": 412},
        }
    )

    assert handled is True
    session = harness.session
    assert session.is_active is True
    assert session.imaging.current_filter == "Ha"
    assert session.imaging.exposure_seconds == 300.0
    assert session.imaging.frame_type == "LIGHT"
    assert session.imaging.progress is None
    last_image = session.imaging.last_image
    assert last_image is not None
    assert last_image.at == datetime(2026, 1, 15, 20, 58, 30, tzinfo=UTC)
    assert last_image.hfr == pytest.approx(2.3)
    assert last_image.stars == 412

    recent = harness.state.get_state().recent_events[0]
    assert recent.type == "IMAGE-SAVE"
    assert recent.summary == "Ha 300s"
    assert [(e.update_kind, e.update_reason) for e in harness.envelopes] == [(UpdateKind.IMAGE, "image-saved")]


def test_image_save_without_time_uses_now(harness: Harness) -> None:
    harness.process({"Event": "IMAGE-SAVE", "ImageStatistics": {"ImageType": "DARK"}})

    last_image = harness.session.imaging.last_image
    assert last_image is not None
    assert last_image.at == NOW
    assert harness.state.get_state().recent_events[0].summary == "DARK frame"


def test_image_progress_only_set_when_present(harness: Harness) -> None:
    harness.process({"Event": "IMAGE-SAVE", "ImageStatistics": {"Filter": "L", "Progress": {"Current": 4, "Total": 30}}})
    harness.process({"Event": "IMAGE-SAVE", "ImageStatistics": {"Filter": "L"}})

    progress = harness.session.imaging.progress
    assert progress is not None
    assert progress.frame_index == 4
    assert progress.total_frames == 30


def test_non_save_image_event_leaves_state_unchanged(harness: Harness) -> None:
    before = harness.state.get_state().to_wire()

    assert harness.process({"Event": "EXPOSURE-STARTED"}) is False

    assert harness.state.get_state().to_wire() == before
    assert harness.envelopes == []


def test_target_with_past_end_time_is_inactive(harness: Harness) -> None:
    harness.process(
        {
            "Event": "TS-TARGETSTART",
            "TargetName": "M31",
            "ProjectName": "Andromeda",
            "Coordinates": {"RA": 10.68, "Dec": 41.27},
            "TargetEndTime": (NOW - timedelta(minutes=30)).isoformat(),
        }
    )

    session = harness.session
    assert session.is_active is False
    assert session.target.target_name == "M31"
    assert session.target.project_name == "Andromeda"
    assert session.target.ra == pytest.approx(10.68)
    assert session.target.dec == pytest.approx(41.27)
    assert harness.state.get_state().recent_events[0].summary == "Target: M31 (Andromeda)"
    assert harness.envelopes[-1].update_reason == "target-changed"


def test_target_with_future_end_time_is_active(harness: Harness) -> None:
    harness.process(
        {
            "Event": "TS-NEWTARGETSTART",
            "TargetName": "NGC 7000",
            "TargetEndTime": (NOW + timedelta(hours=3)).isoformat(),
        }
    )

    assert harness.session.is_active is True


def test_target_without_end_time_leaves_activity_alone(harness: Harness) -> None:
    harness.process({"Event": "SEQUENCE-STARTING"})
    harness.process({"Event": "TARGET-CHANGED", "Data": {"TargetName": "M42"}})

    assert harness.session.is_active is True
    assert harness.session.target.target_name == "M42"


def test_sequence_start_and_finish(harness: Harness) -> None:
    harness.process({"Event": "SEQUENCE-STARTING", "SequenceName": "Ha night", "Filter": "Ha", "ExposureTime": 600})

    session = harness.session
    assert session.is_active is True
    assert session.started_at == NOW
    assert session.imaging.sequence_name == "Ha night"
    assert session.imaging.frame_type == "LIGHT"
    assert session.imaging.exposure_seconds == 600.0
    assert harness.state.get_state().recent_events[0].summary == "Sequence: Ha night"

    harness.process({"Event": "SEQUENCE-FINISHED"})

    assert harness.session.is_active is False
    assert harness.envelopes[-1].update_reason == "sequence-completed"
    assert harness.state.get_state().recent_events[0].summary == "Sequence completed"


def test_camera_connect_then_disconnect(harness: Harness) -> None:
    harness.process({"Event": "CAMERA-CONNECTED", "Data": {"Name": "ZWO ASI2600MM", "Gain": 100, "Info": {"x": 1}}})

    camera = harness.state.get_state().find_equipment("camera")
    assert camera is not None
    assert camera.type == EquipmentType.CAMERA
    assert camera.name == "ZWO ASI2600MM"
    assert camera.connected is True
    assert camera.status == EquipmentStatus.IDLE
    assert camera.details == {"Name": "ZWO ASI2600MM", "Gain": 100}
    assert harness.envelopes[-1].update_reason == "camera-connected"

    harness.process({"Event": "CAMERA-DISCONNECTED"})

    state = harness.state.get_state()
    assert len(state.equipment) == 1
    camera = state.find_equipment("camera")
    assert camera is not None
    assert camera.connected is False
    assert camera.status == EquipmentStatus.DISCONNECTED
    assert camera.name == "Camera"
    assert state.recent_events[0].summary == "Camera: disconnected"
    assert harness.envelopes[-1].update_kind == UpdateKind.EQUIPMENT
    assert harness.envelopes[-1].update_reason == "camera-disconnected"


def test_filter_change_updates_current_filter(harness: Harness) -> None:
    harness.process({"Event": "FILTERWHEEL-CHANGED", "Previous": {"Name": "Ha"}, "New": {"Name": "OIII"}})

    wheel = harness.state.get_state().find_equipment("filterWheel")
    assert wheel is not None
    assert wheel.status == EquipmentStatus.IDLE
    assert harness.session.imaging.current_filter == "OIII"
    assert len(harness.envelopes) == 1
    assert harness.envelopes[0].update_reason == "filter-changed"


def test_mount_flip_maps_to_slewing(harness: Harness) -> None:
    harness.process({"Event": "MOUNT-BEFORE-FLIP"})

    mount = harness.state.get_state().find_equipment("mount")
    assert mount is not None
    assert mount.status == EquipmentStatus.SLEWING
    assert harness.envelopes[-1].update_reason == "mount-flipping"


def test_autofocus_marks_focuser_moving(harness: Harness) -> None:
    harness.process({"Event": "FOCUSER-AUTOFOCUS-STARTING"})

    focuser = harness.state.get_state().find_equipment("focuser")
    assert focuser is not None
    assert focuser.status == EquipmentStatus.MOVING


def test_stack_event_only_adds_recent_event(harness: Harness) -> None:
    harness.process({"Event": "STACK-UPDATED", "Target": "M31", "Filter": "Ha", "StackCount": 12})

    state = harness.state.get_state()
    assert state.current_session is None
    assert state.equipment == []
    assert state.recent_events[0].type == "STACK"
    assert state.recent_events[0].summary == "Ha: 12 frames"
    assert harness.envelopes[-1].update_kind == UpdateKind.STACK
    assert harness.envelopes[-1].update_reason == "stack-update"


def test_unknown_event_leaves_state_byte_for_byte_unchanged(harness: Harness) -> None:
    harness.process({"Event": "CAMERA-CONNECTED"})
    before = harness.state.get_state().to_wire()
    envelope_count = len(harness.envelopes)

    assert harness.process({"Event": "PROFILE-CHANGED", "Data": {"Name": "Default"}}) is False

    assert harness.state.get_state().to_wire() == before
    assert len(harness.envelopes) == envelope_count
    assert harness.normalizer.ignored_count == 1


@pytest.mark.parametrize("raw", [None, {}, {"Time": "2026-01-15T20:00:00Z"}, ["GUIDER-START"], "GUIDER-START"])
def test_invalid_input_is_ignored_without_raising(harness: Harness, raw) -> None:
    assert harness.process(raw) is False
    assert harness.state.get_state().current_session is None
    assert harness.envelopes == []


def test_handler_exception_is_contained(harness: Harness, monkeypatch) -> None:
    def explode(_device) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(harness.state, "upsert_equipment", explode)

    assert harness.process({"Event": "CAMERA-CONNECTED"}) is False
    assert harness.normalizer.failed_count == 1
    assert harness.process({"Event": "GUIDER-START"}) is True


def test_counters_and_watermark(harness: Harness) -> None:
    harness.process({"Event": "GUIDER-START", "Time": "2026-01-15T20:00:00Z"})
    harness.process({"Event": "PROFILE-CHANGED"})
    harness.process({"Event": "CAMERA-CONNECTED", "Time": "2026-01-15T20:01:00Z"})

    normalizer = harness.normalizer
    assert normalizer.processed_count == 2
    assert normalizer.ignored_count == 1
    assert normalizer.failed_count == 0
    assert normalizer.watermark is not None
    assert normalizer.watermark.event_type == "CAMERA-CONNECTED"
    assert normalizer.watermark.event_time == datetime(2026, 1, 15, 20, 1, tzinfo=UTC)
    assert normalizer.watermark.processed_at == NOW


def test_every_handled_event_broadcasts_exactly_once(harness: Harness) -> None:
    events = [
        {"Event": "GUIDER-START"},
        {"Event": "SEQUENCE-STARTING"},
        {"Event": "CAMERA-CONNECTED"},
        {"Event": "FILTERWHEEL-CHANGED", "New": {"Name": "Ha"}},
        {"Event": "IMAGE-SAVE", "ImageStatistics": {"Filter": "Ha"}},
        {"Event": "STACK-UPDATED"},
    ]
    for raw in events:
        harness.process(raw)

    assert len(harness.envelopes) == len(events)


def test_recent_events_capped_at_five_newest_first(harness: Harness) -> None:
    for index in range(7):
        harness.process({"Event": "STACK-UPDATED", "Filter": f"F{index}", "StackCount": index})

    summaries = [event.summary for event in harness.state.get_state().recent_events]
    assert summaries == ["F6: 6 frames", "F5: 5 frames", "F4: 4 frames", "F3: 3 frames", "F2: 2 frames"]


def test_scheduler_start_time_shifted_by_observatory_offset() -> None:
    harness = Harness(observatory_tz=ZoneInfo("America/Chicago"))

    harness.process({"Event": "TS-TARGETSTART", "Time": "2026-01-15T20:00:00Z", "TargetName": "M1"})

    recent = harness.state.get_state().recent_events[0]
    assert recent.time == datetime(2026, 1, 15, 14, 0, tzinfo=UTC)


def test_scheduler_start_time_with_local_offset_is_kept() -> None:
    harness = Harness(observatory_tz=ZoneInfo("America/Chicago"))

    harness.process({"Event": "TS-NEWTARGETSTART", "Time": "2026-01-15T14:00:00-06:00", "TargetName": "M1"})

    recent = harness.state.get_state().recent_events[0]
    assert recent.time == datetime(2026, 1, 15, 20, 0, tzinfo=UTC)


def test_scheduler_start_time_untouched_with_utc_observatory(harness: Harness) -> None:
    harness.process({"Event": "TS-TARGETSTART", "Time": "2026-01-15T20:00:00Z", "TargetName": "M1"})

    assert harness.state.get_state().recent_events[0].time == datetime(2026, 1, 15, 20, 0, tzinfo=UTC)


def test_other_session_events_are_not_time_shifted() -> None:
    harness = Harness(observatory_tz=ZoneInfo("America/Chicago"))

    harness.process({"Event": "SEQUENCE-STARTING", "Time": "2026-01-15T20:00:00Z"})

    assert harness.state.get_state().recent_events[0].time == datetime(2026, 1, 15, 20, 0, tzinfo=UTC)


def test_naive_target_end_time_is_observatory_local() -> None:
    # NOW is 15:00 in Chicago; the target runs until 20:00 local.
    harness = Harness(observatory_tz=ZoneInfo("America/Chicago"))

    harness.process({"Event": "TS-TARGETSTART", "TargetName": "M1", "TargetEndTime": "2026-01-15T20:00:00"})

    assert harness.session.is_active is True


def test_naive_target_end_time_in_the_local_past_ends_target() -> None:
    harness = Harness(observatory_tz=ZoneInfo("America/Chicago"))

    harness.process({"Event": "TS-TARGETSTART", "TargetName": "M1", "TargetEndTime": "2026-01-15T14:30:00"})

    assert harness.session.is_active is False


def test_payload_with_raw_field_is_still_processed(harness: Harness) -> None:
    assert harness.process({"Event": "GUIDER-START", "raw": "x"}) is True

    assert harness.session.guiding.is_guiding is True
    assert harness.normalizer.failed_count == 0

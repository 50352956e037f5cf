"""Partial-update models for the session.

A patch only changes the fields that were explicitly set on it
(``model_fields_set``).  Setting a field to ``None`` clears it; leaving it
out keeps the current value.  Nested patches merge key by key, see
:mod:`pynina.state.merge`.
"""

from __future__ import annotations

from pydantic import ConfigDict

from pynina.models._base import LenientFloat, LenientInt, LenientStr, NinaFrozenModel, NinaTimestamp


class _Patch(NinaFrozenModel):
    model_config = ConfigDict(extra="forbid")


class TargetPatch(_Patch):
    project_name: LenientStr = None
    target_name: LenientStr = None
    ra: LenientFloat = None
    dec: LenientFloat = None
    panel_index: LenientInt = None
    rotation_deg: LenientFloat = None


class ProgressPatch(_Patch):
    frame_index: LenientInt = None
    total_frames: LenientInt = None


class LastImagePatch(_Patch):
    at: NinaTimestamp = None
    file_path: LenientStr = None
    stars: LenientInt = None
    hfr: LenientFloat = None


class ImagingPatch(_Patch):
    current_filter: LenientStr = None
    exposure_seconds: LenientFloat = None
    frame_type: LenientStr = None
    sequence_name: LenientStr = None
    progress: ProgressPatch | None = None
    last_image: LastImagePatch | None = None


class GuidingPatch(_Patch):
    is_guiding: bool | None = None
    last_rms_total: LenientFloat = None
    last_rms_ra: LenientFloat = None
    last_rms_dec: LenientFloat = None
    last_update: NinaTimestamp = None


class SessionPatch(_Patch):
    is_active: bool | None = None
    started_at: NinaTimestamp = None
    target: TargetPatch | None = None
    imaging: ImagingPatch | None = None
    guiding: GuidingPatch | None = None

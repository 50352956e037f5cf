"""Typed session merges.

One merge function per session sub-structure.  Patch semantics:

- a field absent from ``patch.model_fields_set`` leaves the current value
- a field set explicitly (even to ``None``) replaces the current value
- nested structures merge key by key; scalars are replaced wholesale
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from pynina.models.patches import (
    GuidingPatch,
    ImagingPatch,
    LastImagePatch,
    ProgressPatch,
    SessionPatch,
    TargetPatch,
)
from pynina.models.state import (
    GuidingInfo,
    ImageProgress,
    ImagingInfo,
    LastImage,
    Session,
    TargetInfo,
)

_TARGET_FIELDS = ("project_name", "target_name", "ra", "dec", "panel_index", "rotation_deg")
_PROGRESS_FIELDS = ("frame_index", "total_frames")
_LAST_IMAGE_FIELDS = ("at", "file_path", "stars", "hfr")
_IMAGING_SCALARS = ("current_filter", "exposure_seconds", "frame_type", "sequence_name")
_GUIDING_FIELDS = ("last_rms_total", "last_rms_ra", "last_rms_dec", "last_update")
_SESSION_SCALARS = ("is_active", "started_at")


def _assign_set_fields(target: BaseModel, patch: BaseModel, names: tuple[str, ...]) -> None:
    fields_set = patch.model_fields_set
    for name in names:
        if name in fields_set:
            setattr(target, name, getattr(patch, name))


def merge_target(target: TargetInfo, patch: TargetPatch) -> None:
    _assign_set_fields(target, patch, _TARGET_FIELDS)


def merge_progress(current: ImageProgress | None, patch: ProgressPatch | None) -> ImageProgress | None:
    if patch is None:
        return None
    result = current.model_copy() if current is not None else ImageProgress()
    _assign_set_fields(result, patch, _PROGRESS_FIELDS)
    return result


def merge_last_image(current: LastImage | None, patch: LastImagePatch | None) -> LastImage | None:
    if patch is None:
        return None
    result = current.model_copy() if current is not None else LastImage()
    _assign_set_fields(result, patch, _LAST_IMAGE_FIELDS)
    return result


def merge_imaging(imaging: ImagingInfo, patch: ImagingPatch) -> None:
    _assign_set_fields(imaging, patch, _IMAGING_SCALARS)
    fields_set = patch.model_fields_set
    if "progress" in fields_set:
        imaging.progress = merge_progress(imaging.progress, patch.progress)
    if "last_image" in fields_set:
        imaging.last_image = merge_last_image(imaging.last_image, patch.last_image)


def merge_guiding(guiding: GuidingInfo, patch: GuidingPatch) -> None:
    # is_guiding is a plain bool on the state side; None on the patch means "unchanged".
    if "is_guiding" in patch.model_fields_set and patch.is_guiding is not None:
        guiding.is_guiding = patch.is_guiding
    _assign_set_fields(guiding, patch, _GUIDING_FIELDS)


def merge_session(session: Session, patch: SessionPatch) -> None:
    """Merge ``patch`` into ``session`` in place."""
    _assign_set_fields(session, patch, _SESSION_SCALARS)
    if patch.target is not None:
        merge_target(session.target, patch.target)
    if patch.imaging is not None:
        merge_imaging(session.imaging, patch.imaging)
    if patch.guiding is not None:
        merge_guiding(session.guiding, patch.guiding)


def coerce_session_patch(patch: SessionPatch | dict[str, Any]) -> SessionPatch:
    """Accept either a typed patch or a plain (camelCase or snake_case) dict."""
    if isinstance(patch, SessionPatch):
        return patch
    return SessionPatch.model_validate(patch)

"""Event type classification.

NINA identifies events only by a type string (``GUIDER-START``,
``IMAGE-SAVE``, ``FILTERWHEEL-CHANGED``, ...).  This module maps that
string onto an :class:`EventDomain` and, for equipment events, onto a
logical device id.  Domains are tested in a fixed priority order and are
mutually exclusive: the first match wins.
"""

from __future__ import annotations

import re
from datetime import datetime

from pynina.ingestion.normalize import ensure_utc
from pynina.models.events import EventDomain
from pynina.models.state import EquipmentType

_I = re.IGNORECASE

_GUIDING_RE = re.compile(r"guiding|guider.*(start|stop|disconnect|dither|stats)", _I)
_SESSION_RE = re.compile(r"target|sequence|project", _I)
_EQUIPMENT_RE = re.compile(
    r"mount|telescope|camera|filter|focus|rotator|dome|weather|flat|connected|slew|track|flip",
    _I,
)
_IMAGE_RE = re.compile(r"image.*save|exposure", _I)
_STACK_RE = re.compile(r"stack", _I)

_DOMAIN_TESTS: tuple[tuple[EventDomain, re.Pattern[str]], ...] = (
    (EventDomain.GUIDING, _GUIDING_RE),
    (EventDomain.SESSION, _SESSION_RE),
    (EventDomain.EQUIPMENT, _EQUIPMENT_RE),
    (EventDomain.IMAGE, _IMAGE_RE),
    (EventDomain.STACK, _STACK_RE),
)

# First match wins.
_EQUIPMENT_ID_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"camera", _I), "camera"),
    (re.compile(r"mount|telescope", _I), "mount"),
    (re.compile(r"filter", _I), "filterWheel"),
    (re.compile(r"focus", _I), "focuser"),
    (re.compile(r"rotat", _I), "rotator"),
    (re.compile(r"guid", _I), "guider"),
    (re.compile(r"dome", _I), "dome"),
    (re.compile(r"weather", _I), "weather"),
    (re.compile(r"flat", _I), "flatPanel"),
)

OTHER_EQUIPMENT_ID = "other"

EQUIPMENT_NAMES: dict[str, str] = {
    "camera": "Camera",
    "mount": "Mount",
    "filterWheel": "Filter Wheel",
    "focuser": "Focuser",
    "rotator": "Rotator",
    "guider": "Guider",
    "dome": "Dome",
    "weather": "Weather Station",
    "flatPanel": "Flat Panel",
}

EQUIPMENT_TYPES: dict[str, EquipmentType] = {
    "camera": EquipmentType.CAMERA,
    "mount": EquipmentType.MOUNT,
    "filterWheel": EquipmentType.FILTER_WHEEL,
    "focuser": EquipmentType.FOCUSER,
    "rotator": EquipmentType.ROTATOR,
    "guider": EquipmentType.GUIDER,
    "dome": EquipmentType.OTHER,
    "weather": EquipmentType.OTHER,
    "flatPanel": EquipmentType.OTHER,
}


def classify_event_type(event_type: str | None) -> EventDomain:
    """Map a raw NINA event type onto its handler domain."""
    if not event_type:
        return EventDomain.UNKNOWN
    for domain, pattern in _DOMAIN_TESTS:
        if pattern.search(event_type):
            return domain
    return EventDomain.UNKNOWN


def equipment_id_for(event_type: str) -> str:
    for pattern, equipment_id in _EQUIPMENT_ID_RULES:
        if pattern.search(event_type):
            return equipment_id
    return OTHER_EQUIPMENT_ID


def equipment_name_for(equipment_id: str) -> str:
    return EQUIPMENT_NAMES.get(equipment_id, equipment_id)


def equipment_type_for(equipment_id: str) -> EquipmentType:
    return EQUIPMENT_TYPES.get(equipment_id, EquipmentType.OTHER)


def target_has_ended(end_time: datetime | None, now: datetime) -> bool | None:
    """Whether ``now`` is past the controller-supplied target end time.

    ``None`` when there is no end time to compare against.
    """
    if end_time is None:
        return None
    return ensure_utc(now) > ensure_utc(end_time)

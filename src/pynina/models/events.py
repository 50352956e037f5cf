"""Inbound controller event models.

Raw NINA events are loosely shaped: the type lives under ``Event`` or
``Type``, and payload fields sit either under ``Data`` or at the top level.
:class:`ControllerEvent` is the boundary that turns such a dict into one
typed value with its :class:`EventDomain` already decided.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pynina.ingestion.normalize import first_present
from pynina.models._base import NinaTimestamp


class EventDomain(StrEnum):
    GUIDING = "guiding"
    SESSION = "session"
    EQUIPMENT = "equipment"
    IMAGE = "image"
    STACK = "stack"
    UNKNOWN = "unknown"


class ControllerEvent(BaseModel):
    """A single NINA event, classified.

    Parameters
    ----------
    type : str or None
        The raw event type string (``Event`` or ``Type`` field).
    domain : EventDomain
        Which handler family the type belongs to; ``UNKNOWN`` when no
        pattern matches.
    time : datetime or None
        Parsed ``Time`` field, if present and parseable.
    data : dict
        ``Data`` when it is an object, otherwise the whole event.
    raw : dict
        The event as received.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str | None = None
    domain: EventDomain = EventDomain.UNKNOWN
    time: NinaTimestamp = None
    data: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, values: dict[str, Any]) -> ControllerEvent:
        """Classify a raw controller dict and split out its payload."""
        # Import lazily to avoid coupling the models back into ingestion.
        from pynina.ingestion.classify import classify_event_type

        event_type = values.get("Event") or values.get("Type")
        event_type = str(event_type).strip() if event_type is not None else None
        nested = values.get("Data")
        return cls.model_validate(
            {
                "type": event_type or None,
                "domain": classify_event_type(event_type) if event_type else EventDomain.UNKNOWN,
                "time": values.get("Time"),
                "data": nested if isinstance(nested, dict) else values,
                "raw": values,
            }
        )

    def pick(self, *keys: str) -> Any:
        """First meaningful value among ``keys``, top level first, then ``data``."""
        return first_present(self.raw, self.data, keys=keys)


class EventHistoryResponse(BaseModel):
    """Body of ``GET /v2/api/event-history``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = Field(default=False, alias="Success")
    response: list[Any] = Field(default_factory=list, alias="Response")
    error: str | None = Field(default=None, alias="Error")
    status_code: int | None = Field(default=None, alias="StatusCode")

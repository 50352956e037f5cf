"""Base model for pynina state and wire models.

Every state model inherits from :class:`NinaBaseModel` which provides:

* ``alias_generator=to_camel`` so snake_case fields serialize to the
  camelCase keys dashboard clients expect.
* ``populate_by_name=True`` so models can be built from either spelling.
* :meth:`NinaBaseModel.to_wire` for the JSON-ready camelCase dict.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from pynina.ingestion.normalize import parse_timestamp, safe_float, safe_int, safe_str


def _lenient_timestamp(value: Any) -> datetime | None:
    return parse_timestamp(value)


NinaTimestamp = Annotated[datetime | None, BeforeValidator(_lenient_timestamp)]
"""Datetime that accepts ISO strings or epoch numbers and turns junk into ``None``."""

LenientFloat = Annotated[float | None, BeforeValidator(safe_float)]
LenientInt = Annotated[int | None, BeforeValidator(safe_int)]
LenientStr = Annotated[str | None, BeforeValidator(safe_str)]


class NinaBaseModel(BaseModel):
    """Base for mutable state models owned by the state manager."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump as the JSON-ready camelCase dict sent to dashboard clients."""
        return self.model_dump(mode="json", by_alias=True)


class NinaFrozenModel(NinaBaseModel):
    """Base for immutable value models (patches, envelopes, status)."""

    model_config = ConfigDict(frozen=True)

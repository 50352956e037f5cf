"""Normalization helpers.

Lenient parsing helpers for NINA payload values.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

_MISSING = object()

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def is_meaningful(value: Any) -> bool:
    """Return True if the value carries information worth keeping."""

    if value is None:
        return False
    if value == "":
        return False
    if value == "--":
        return False
    if value == {}:
        return False
    return bool(value != [])


def first_present(*sources: Mapping[str, Any] | None, keys: tuple[str, ...]) -> Any:
    """Return the first meaningful value for any of ``keys`` across ``sources``.

    Sources are searched in order, and within each source the keys are tried in
    order.  NINA is inconsistent about whether fields live at the top level of
    an event or under ``Data``, so callers usually pass both.
    """

    for source in sources:
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            value = source.get(key, _MISSING)
            if value is not _MISSING and is_meaningful(value):
                return value
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a NINA timestamp into a datetime.

    - ISO-8601 strings (``Z`` suffix accepted); naive results stay naive so
      callers can decide which zone they belong to
    - epoch seconds or milliseconds -> UTC
    - anything unparseable -> None
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts <= 0 or not math.isfinite(ts):
            return None
        if ts > _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # NINA emits up to 7 fractional digits; fromisoformat accepts at most 6.
    head, dot, tail = text.partition(".")
    if dot:
        digits = ""
        rest = ""
        for index, char in enumerate(tail):
            if not char.isdigit():
                rest = tail[index:]
                break
            digits += char
        text = f"{head}.{digits[:6]}{rest}" if digits else f"{head}{rest}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def scalar_items(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Keep only the scalar, meaningful fields of a payload.

    Used for equipment ``details`` so device entries never accumulate nested
    raw event bodies.
    """

    if not isinstance(data, Mapping):
        return {}
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, (str, int, float, bool)) and is_meaningful(value):
            if isinstance(value, float) and math.isnan(value):
                continue
            result[str(key)] = value
    return result

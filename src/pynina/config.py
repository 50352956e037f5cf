"""Client configuration for pynina."""

from __future__ import annotations

import dataclasses
import os
from datetime import UTC
from datetime import tzinfo as TzInfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pynina.exceptions import NinaConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _split_base_url(base_url: str) -> tuple[str, str]:
    """Split ``base_url`` into ``(scheme, host)``, dropping any path or port."""
    value = base_url.strip()
    if not value:
        raise NinaConfigError("base_url is empty")

    scheme = "http"
    if "://" in value:
        scheme, value = value.split("://", 1)
    if "/" in value:
        value = value.split("/", 1)[0]

    host, _, maybe_port = value.rpartition(":")
    if host and maybe_port.isdigit():
        value = host
    if not value:
        raise NinaConfigError(f"base_url has no host: {base_url!r}")
    return scheme.lower(), value


@dataclasses.dataclass(frozen=True)
class NinaConfig:
    """Configuration for the unified observatory state system.

    Parameters
    ----------
    base_url : str
        Host running NINA's Advanced API, with or without scheme.  Any port
        in the URL is ignored in favour of ``api_port``.
    api_port : int
        Port of the Advanced API (HTTP and WebSocket share it).
    events_path : str
        Path of the live event WebSocket, relative to the host.
    history_path : str
        Path of the event history endpoint.
    request_timeout : float
        Seconds before a single history HTTP request is abandoned.
    retry_attempts : int
        Extra attempts for a history request after a transient network error.
    retry_delay : float
        Seconds to wait between history retries.
    reconnect_delay : float
        Fixed delay in seconds before the event socket reconnects.
    ws_handshake_timeout : float
        Seconds allowed for the WebSocket handshake.
    ws_heartbeat : float or None
        Ping interval for the WebSocket; ``None`` disables pings.
    history_limit : int
        Maximum number of most recent history events replayed when seeding.
    history_timeout : float or None
        Upper bound on the whole seeding fetch, retries included.
    heartbeat_interval : float
        Seconds between ``heartbeat`` broadcasts to subscribers.  ``0``
        disables them.
    observatory_timezone : str
        IANA time zone of the observatory.  Used to correct target
        scheduler start timestamps that NINA labels as UTC.
    reset_on_refresh : bool
        Whether an operator refresh wipes state before replaying history.
    """

    base_url: str = "http://localhost"
    api_port: int = 1888
    events_path: str = "v2/socket"
    history_path: str = "/v2/api/event-history"
    request_timeout: float = 5.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    reconnect_delay: float = 5.0
    ws_handshake_timeout: float = 10.0
    ws_heartbeat: float | None = 30.0
    history_limit: int = 100
    history_timeout: float | None = 15.0
    heartbeat_interval: float = 30.0
    observatory_timezone: str = "UTC"
    reset_on_refresh: bool = True

    def __post_init__(self) -> None:
        if self.history_limit <= 0:
            raise NinaConfigError("history_limit must be positive")
        if self.retry_attempts < 0:
            raise NinaConfigError("retry_attempts must not be negative")
        if self.reconnect_delay < 0:
            raise NinaConfigError("reconnect_delay must not be negative")
        # Validate eagerly so a bad zone fails at startup, not on the first event.
        _ = self.tzinfo

    @property
    def host(self) -> str:
        return _split_base_url(self.base_url)[1]

    @property
    def api_base_url(self) -> str:
        """``scheme://host:port`` of the Advanced API."""
        scheme, host = _split_base_url(self.base_url)
        return f"{scheme}://{host}:{self.api_port}"

    @property
    def websocket_url(self) -> str:
        return f"ws://{self.host}:{self.api_port}/{self.events_path.lstrip('/')}"

    @property
    def history_url(self) -> str:
        return f"{self.api_base_url}/{self.history_path.lstrip('/')}"

    @property
    def tzinfo(self) -> TzInfo:
        if self.observatory_timezone.strip().upper() in {"UTC", "Z"}:
            return UTC
        try:
            return ZoneInfo(self.observatory_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise NinaConfigError(f"Unknown observatory_timezone: {self.observatory_timezone!r}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> NinaConfig:
        """Create configuration from ``NINA_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "NINA_BASE_URL": "base_url",
            "NINA_EVENTS_PATH": "events_path",
            "NINA_HISTORY_PATH": "history_path",
            "NINA_OBSERVATORY_TIMEZONE": "observatory_timezone",
        }
        _ENV_INT_MAP = {
            "NINA_API_PORT": "api_port",
            "NINA_RETRY_ATTEMPTS": "retry_attempts",
            "NINA_HISTORY_LIMIT": "history_limit",
        }
        _ENV_FLOAT_MAP = {
            "NINA_REQUEST_TIMEOUT": "request_timeout",
            "NINA_RECONNECT_DELAY": "reconnect_delay",
            "NINA_HEARTBEAT_INTERVAL": "heartbeat_interval",
        }

        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_STR_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = val
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise NinaConfigError(f"Invalid numeric NINA_* environment value: {exc}") from exc

        if "reset_on_refresh" not in overrides:
            config_kwargs["reset_on_refresh"] = _env_bool(env.get("NINA_RESET_ON_REFRESH"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

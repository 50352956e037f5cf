"""Custom exception hierarchy for pynina."""

from __future__ import annotations


class NinaError(Exception):
    """Base exception for all pynina errors."""


class NinaConfigError(NinaError):
    """Invalid or missing configuration."""


class NinaTransportError(NinaError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class NinaApiError(NinaError):
    """NINA answered, but reported ``Success: false`` or an unusable body."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
    ) -> None:
        self.endpoint = endpoint
        super().__init__(message)


class NinaDecodeError(NinaError):
    """A WebSocket frame could not be decoded into an event object."""

"""WebSocket client for NINA's live event stream."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import aiohttp

from pynina.config import NinaConfig
from pynina.exceptions import NinaDecodeError

_logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_SCHEDULED = "reconnect-scheduled"
    DISABLED = "disabled"


def decode_event_frame(payload: str | bytes) -> dict[str, Any]:
    """Decode one socket frame into an event dict.

    NINA wraps socket events as ``{"Response": {...}, "Success": ...}``;
    the wrapper is removed when present.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NinaDecodeError("Binary frame is not UTF-8") from exc
    try:
        message = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise NinaDecodeError(f"Invalid JSON frame: {payload[:100]}") from exc

    if isinstance(message, dict) and message.get("Response"):
        message = message["Response"]
    if not isinstance(message, dict):
        raise NinaDecodeError(f"Expected a JSON object, got {type(message).__name__}")
    return message


class ControllerSocketClient:
    """Long-lived event stream connection with fixed-delay reconnects.

    Runs entirely on the event loop that called :meth:`connect`.  Every
    decoded event is handed to ``on_event`` synchronously, in arrival order.
    At most one reconnect timer is ever pending.
    """

    def __init__(
        self,
        config: NinaConfig,
        on_event: EventCallback,
        *,
        http_session: aiohttp.ClientSession | None = None,
        reconnect: bool = True,
    ) -> None:
        self._config = config
        self._on_event = on_event
        self._http = http_session
        self._owns_http = http_session is None
        self._reconnect_enabled = reconnect
        self._state = ConnectionState.DISCONNECTED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self.messages_received = 0
        self.last_message_at: datetime | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def url(self) -> str:
        return self._config.websocket_url

    def connect(self) -> None:
        """Start connecting in the background.  Must run on the event loop."""
        if self._state is ConnectionState.DISABLED:
            _logger.debug("Socket client disabled, not connecting")
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            _logger.debug("Socket already %s", self._state)
            return

        loop = asyncio.get_running_loop()
        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTING
        _logger.info("Connecting to NINA event stream at %s", self.url)
        try:
            self._task = loop.create_task(self._run(), name="pynina-socket")
        except Exception:
            _logger.exception("Failed to start event stream connection")
            self._on_close()

    async def disconnect(self) -> None:
        """Stop for good: no further reconnects.  Safe to call repeatedly."""
        self._reconnect_enabled = False
        self._cancel_reconnect()
        already_disabled = self._state is ConnectionState.DISABLED
        self._state = ConnectionState.DISABLED

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()

        if self._owns_http and self._http is not None:
            http, self._http = self._http, None
            await http.close()

        if not already_disabled:
            _logger.info("Disconnected from NINA event stream")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            if self._http is None:
                self._http = aiohttp.ClientSession()
            async with asyncio.timeout(self._config.ws_handshake_timeout):
                ws = await self._http.ws_connect(self.url, heartbeat=self._config.ws_heartbeat)
        except Exception as exc:
            self._on_error(exc)
            self._on_close()
            return

        self._ws = ws
        self._on_open()
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._on_error(ws.exception())
        finally:
            self._ws = None
            if not ws.closed:
                await ws.close()
        self._on_close()

    def _on_open(self) -> None:
        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTED
        _logger.info("Connected to NINA event stream")

    def _handle_message(self, payload: str | bytes) -> None:
        try:
            event = decode_event_frame(payload)
        except NinaDecodeError as exc:
            _logger.warning("Dropping event frame: %s", exc)
            return

        self.messages_received += 1
        self.last_message_at = datetime.now(UTC)
        try:
            self._on_event(event)
        except Exception:
            _logger.exception("Event callback failed")

    def _on_error(self, exc: BaseException | None) -> None:
        _logger.warning("NINA event stream error: %r", exc)

    def _on_close(self) -> None:
        if self._state is ConnectionState.DISABLED or self.reconnect_pending:
            return
        self._state = ConnectionState.DISCONNECTED
        _logger.info("NINA event stream closed")
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnect timer
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if not self._reconnect_enabled or self._reconnect_handle is not None:
            return
        delay = self._config.reconnect_delay
        _logger.info("Reconnecting in %.1fs", delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._reconnect)
        self._state = ConnectionState.RECONNECT_SCHEDULED

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self._task = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

"""High-level orchestrator for the unified observatory state."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from pynina._api.history import EventHistoryApi
from pynina._socket import ControllerSocketClient, EventCallback
from pynina._transport import HttpTransport
from pynina.config import NinaConfig
from pynina.ingestion.history import HistorySeeder, HistorySource
from pynina.ingestion.normalizer import EventNormalizer
from pynina.models.envelope import StateChange, SystemStatus
from pynina.models.state import UnifiedState, UpdateKind
from pynina.state.manager import StateListener, StateManager

_logger = logging.getLogger(__name__)

SocketFactory = Callable[..., ControllerSocketClient]

_NOT_CREATED = "not-created"


class ObservatoryStateSystem:
    """Wires socket client, normalizer, state manager and history seeder.

    Usage::

        async with ObservatoryStateSystem(NinaConfig.from_env()) as system:
            unsubscribe = system.subscribe(print)
            ...

    Startup is two-phase: history is seeded first, then the live event
    stream is connected, so the first broadcast a subscriber sees already
    reflects the controller's recent past.
    """

    def __init__(
        self,
        config: NinaConfig | None = None,
        *,
        history: HistorySource | None = None,
        http_session: aiohttp.ClientSession | None = None,
        state: StateManager | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self._config = config or NinaConfig()
        self._state = state or StateManager()
        self._normalizer = EventNormalizer(self._state, observatory_tz=self._config.tzinfo)
        self._history = history
        self._http_session = http_session
        self._external_session = http_session is not None
        self._socket_factory: SocketFactory = socket_factory or ControllerSocketClient
        self._seeder: HistorySeeder | None = None
        self._socket: ControllerSocketClient | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._socket_retry: asyncio.TimerHandle | None = None
        self._initialized = False
        self._seeded = False
        self._last_seeded_at: datetime | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ObservatoryStateSystem:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def config(self) -> NinaConfig:
        return self._config

    @property
    def state_manager(self) -> StateManager:
        return self._state

    @property
    def normalizer(self) -> EventNormalizer:
        return self._normalizer

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def start(self) -> None:
        """Seed from history, then connect the live event stream."""
        if self._initialized:
            _logger.warning("Observatory state system already initialized")
            return

        _logger.info("Initializing observatory state system")
        seeder = self._ensure_seeder()
        self._seeded = await seeder.seed_from_history()
        self._last_seeded_at = seeder.last_seeded_at or self._last_seeded_at
        if not self._seeded:
            _logger.warning("Starting with empty state; history seeding failed")

        self._connect_socket()

        if self._config.heartbeat_interval > 0:
            self._heartbeat_task = asyncio.get_running_loop().create_task(
                self._heartbeat_loop(), name="pynina-heartbeat"
            )

        self._initialized = True
        _logger.info("Observatory state system initialized (seeded=%s)", self._seeded)

    async def stop(self) -> None:
        """Tear everything down.  Safe to call repeatedly."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._socket_retry is not None:
            self._socket_retry.cancel()
            self._socket_retry = None

        socket, self._socket = self._socket, None
        if socket is not None:
            await socket.disconnect()

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            if self._history is None:
                # The default history source is bound to the closed session.
                self._seeder = None

        if self._initialized:
            _logger.info("Observatory state system stopped")
        self._initialized = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> UnifiedState:
        return self._state.get_state()

    def get_snapshot(self) -> dict[str, Any]:
        """Current state as the JSON-ready camelCase dict used for page bootstrap."""
        return self._state.get_state().to_wire()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self._state.subscribe(listener)

    def get_status(self) -> SystemStatus:
        socket = self._socket
        normalizer = self._normalizer
        return SystemStatus(
            initialized=self._initialized,
            seeded=self._seeded,
            connection=str(socket.state) if socket is not None else _NOT_CREATED,
            equipment_count=self._state.equipment_count,
            session_active=self._state.session_active,
            recent_event_count=self._state.recent_event_count,
            events_processed=normalizer.processed_count,
            events_ignored=normalizer.ignored_count,
            events_failed=normalizer.failed_count,
            last_event=normalizer.watermark,
            last_message_at=socket.last_message_at if socket is not None else None,
            last_seeded_at=self._last_seeded_at,
        )

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def refresh_state(self) -> bool:
        """Re-seed from history and broadcast a full sync."""
        _logger.info("Manually refreshing state from NINA")
        seeder = self._ensure_seeder()
        seeded = await seeder.seed_from_history(reset=self._config.reset_on_refresh)
        self._last_seeded_at = seeder.last_seeded_at or self._last_seeded_at
        self._seeded = self._seeded or seeded
        self._state.notify_listeners(
            UpdateKind.FULL_SYNC,
            "state-refreshed",
            StateChange(path="", summary="State refreshed from history", meta={"seeded": seeded}),
        )
        return seeded

    def clear_session(self) -> None:
        self._state.clear_session()
        self._state.notify_listeners(
            UpdateKind.SESSION,
            "session-cleared",
            StateChange(path="currentSession", summary="Session cleared"),
        )

    def reset(self) -> None:
        self._state.reset()
        self._state.notify_listeners(UpdateKind.FULL_SYNC, "state-reset", None)

    def heartbeat(self) -> None:
        """Broadcast the current state unchanged, as a liveness signal."""
        self._state.notify_listeners(UpdateKind.HEARTBEAT, "heartbeat", None)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _on_socket_event(self, event: dict[str, Any]) -> None:
        self._normalizer.process_event(event)

    def _ensure_seeder(self) -> HistorySeeder:
        if self._seeder is not None:
            return self._seeder
        source = self._history
        if source is None:
            source = EventHistoryApi(self._config, HttpTransport(self._config, self._ensure_http_session()))
        self._seeder = HistorySeeder(
            source,
            self._normalizer,
            self._state,
            history_limit=self._config.history_limit,
            history_timeout=self._config.history_timeout,
        )
        return self._seeder

    def _ensure_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    def _connect_socket(self) -> None:
        on_event: EventCallback = self._on_socket_event
        try:
            self._socket = self._socket_factory(
                self._config,
                on_event,
                http_session=self._ensure_http_session(),
            )
        except Exception:
            _logger.exception("Failed to create event stream client")
            self._socket_retry = asyncio.get_running_loop().call_later(
                self._config.reconnect_delay, self._retry_connect_socket
            )
            return
        self._socket.connect()

    def _retry_connect_socket(self) -> None:
        self._socket_retry = None
        self._connect_socket()

    async def _heartbeat_loop(self) -> None:
        interval = self._config.heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            try:
                self.heartbeat()
            except Exception:
                _logger.exception("Heartbeat broadcast failed")

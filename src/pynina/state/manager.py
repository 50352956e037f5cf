"""In-memory owner of the unified observatory state.

This is the only component allowed to mutate :class:`UnifiedState`.  The
normalizer and the history seeder go through the methods below; everything
else only ever sees deep copies.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pynina.models.envelope import StateChange, StateEnvelope
from pynina.models.patches import SessionPatch
from pynina.models.state import EquipmentDevice, RecentEvent, Session, UnifiedState, UpdateKind
from pynina.state.merge import coerce_session_patch, merge_session

_logger = logging.getLogger(__name__)

#: Hard cap on ``UnifiedState.recent_events``.
RECENT_EVENT_LIMIT = 5

StateListener = Callable[[StateEnvelope], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateManager:
    """Owns one :class:`UnifiedState` and fans out change notifications.

    Listener delivery is synchronous and in subscription order: a slow
    listener delays the ones after it and the next inbound event.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._state = UnifiedState()
        self._listeners: list[StateListener] = []

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> UnifiedState:
        """Deep, independent copy of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def equipment_count(self) -> int:
        return len(self._state.equipment)

    @property
    def session_active(self) -> bool:
        session = self._state.current_session
        return bool(session is not None and session.is_active)

    @property
    def recent_event_count(self) -> int:
        return len(self._state.recent_events)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_state(self, state: UnifiedState) -> None:
        """Replace the whole state (reset-style operations only)."""
        self._state = state.model_copy(deep=True)
        _logger.debug("State fully replaced")

    def update_session(self, patch: SessionPatch | Mapping[str, Any]) -> None:
        """Merge ``patch`` into the current session, creating it if needed."""
        typed = coerce_session_patch(dict(patch) if isinstance(patch, Mapping) else patch)
        if self._state.current_session is None:
            self._state.current_session = Session()
            _logger.debug("Session created")
        merge_session(self._state.current_session, typed)

    def upsert_equipment(self, device: EquipmentDevice) -> None:
        """Insert or update a device keyed by ``device.id``.

        Existing entries get name/connected/status overwritten and details
        shallow-merged; ``last_change`` is stamped in both cases.
        """
        now = self._clock()
        existing = self._state.find_equipment(device.id)
        if existing is not None:
            existing.name = device.name
            existing.connected = device.connected
            existing.status = device.status
            existing.last_change = now
            existing.details = {**existing.details, **device.details}
            _logger.debug("Equipment updated: %s", device.id)
            return

        entry = device.model_copy(deep=True)
        entry.last_change = now
        self._state.equipment.append(entry)
        _logger.debug("Equipment added: %s", device.id)

    def add_recent_event(self, event: RecentEvent) -> None:
        """Prepend ``event`` and keep only the newest ``RECENT_EVENT_LIMIT``."""
        self._state.recent_events.insert(0, event.model_copy(deep=True))
        del self._state.recent_events[RECENT_EVENT_LIMIT:]
        _logger.debug("Event added: %s - %s", event.type, event.summary)

    def clear_session(self) -> None:
        self._state.current_session = None
        _logger.debug("Session cleared")

    def reset(self) -> None:
        self._state = UnifiedState()
        _logger.debug("State reset to initial values")

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener``; returns an idempotent unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def build_envelope(
        self,
        update_kind: UpdateKind,
        update_reason: str,
        changed: StateChange | Mapping[str, Any] | None = None,
    ) -> StateEnvelope:
        if changed is not None and not isinstance(changed, StateChange):
            changed = StateChange.model_validate(dict(changed))
        return StateEnvelope(
            timestamp=self._clock(),
            update_kind=update_kind,
            update_reason=update_reason,
            changed=changed,
            state=self.get_state(),
        )

    def notify_listeners(
        self,
        update_kind: UpdateKind,
        update_reason: str,
        changed: StateChange | Mapping[str, Any] | None = None,
    ) -> StateEnvelope:
        """Deliver one envelope to every listener; a failing listener is logged and skipped."""
        envelope = self.build_envelope(update_kind, update_reason, changed)
        _logger.debug("Broadcasting: %s - %s", update_kind, update_reason)

        # Snapshot so listeners may (un)subscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(envelope)
            except Exception:
                _logger.exception("State listener failed for %s/%s", update_kind, update_reason)
        return envelope

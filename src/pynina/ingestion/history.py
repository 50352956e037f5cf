"""History seeding.

On startup (and on operator refresh) the controller's event history is
replayed through the same :class:`EventNormalizer` that handles live
events, so a freshly started dashboard shows the current session instead
of an empty page.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError

from pynina.ingestion.normalizer import EventNormalizer
from pynina.models.events import EventHistoryResponse
from pynina.state.manager import StateManager

_logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    """Anything that can fetch NINA's event history (oldest first)."""

    async def fetch_event_history(self) -> EventHistoryResponse | Mapping[str, Any]:
        ...


class HistorySeeder:
    """Replays the most recent history events into the state manager.

    Parameters
    ----------
    source : HistorySource
        Where history comes from; the production source wraps
        ``GET /v2/api/event-history``.
    normalizer : EventNormalizer
        The live-event normalizer.  Replayed events go through
        :meth:`EventNormalizer.process_event` unchanged.
    state : StateManager
        Reset before replay when ``seed_from_history(reset=True)``.
    history_limit : int
        Only the last ``history_limit`` events are replayed.
    history_timeout : float or None
        Bound on the fetch; ``None`` waits as long as the source does.
    """

    def __init__(
        self,
        source: HistorySource,
        normalizer: EventNormalizer,
        state: StateManager,
        *,
        history_limit: int = 100,
        history_timeout: float | None = 15.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._normalizer = normalizer
        self._state = state
        self._history_limit = history_limit
        self._history_timeout = history_timeout
        self._clock = clock or state.clock
        self.last_seeded_at: datetime | None = None
        self.last_replayed_count = 0

    async def _fetch(self) -> EventHistoryResponse:
        async with asyncio.timeout(self._history_timeout):
            body = await self._source.fetch_event_history()
        if isinstance(body, EventHistoryResponse):
            return body
        return EventHistoryResponse.model_validate(body)

    async def seed_from_history(self, *, reset: bool = False) -> bool:
        """Fetch history and replay it.  Never raises.

        Returns ``False`` (state untouched) when the fetch fails or NINA
        reports ``Success: false``; ``True`` otherwise, including for an
        empty history.
        """
        _logger.info("Seeding state from event history")
        try:
            history = await self._fetch()
        except TimeoutError:
            _logger.warning("Event history fetch timed out after %ss", self._history_timeout)
            return False
        except ValidationError:
            _logger.warning("Malformed event history response", exc_info=True)
            return False
        except Exception:
            _logger.warning("Failed to fetch event history", exc_info=True)
            return False

        if not history.success:
            _logger.warning("Event history unavailable: %s", history.error or "Success=false")
            return False

        # No awaits past this point: reset and replay happen in one loop turn.
        events = history.response[-self._history_limit :]
        if reset:
            self._state.reset()

        replayed = 0
        for raw in events:
            if self._normalizer.process_event(raw):
                replayed += 1

        self.last_replayed_count = replayed
        self.last_seeded_at = self._clock()
        if not events:
            _logger.info("No events in history to seed from")
            return True

        _logger.info("Seeded %d of %d history events", replayed, len(events))
        self._log_summary()
        return True

    def _log_summary(self) -> None:
        state = self._state.get_state()
        session = state.current_session
        if session is not None:
            _logger.info(
                "Session active=%s target=%s guiding=%s rms=%s",
                session.is_active,
                session.target.target_name or "none",
                session.guiding.is_guiding,
                session.guiding.last_rms_total,
            )
        connected = [device for device in state.equipment if device.connected]
        _logger.info("Equipment connected: %d/%d", len(connected), len(state.equipment))
        for device in state.equipment:
            _logger.debug("  %s: %s (%s)", device.id, device.status, "connected" if device.connected else "disconnected")
        for event in state.recent_events:
            _logger.debug("  recent %s: %s", event.type, event.summary)

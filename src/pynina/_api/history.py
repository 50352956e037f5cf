"""Event history endpoint.

Endpoint:
  - GET /v2/api/event-history
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from pynina._transport import Transport
from pynina.config import NinaConfig
from pynina.exceptions import NinaApiError
from pynina.models.events import EventHistoryResponse

_logger = logging.getLogger(__name__)


async def fetch_event_history(config: NinaConfig, transport: Transport) -> EventHistoryResponse:
    """Fetch NINA's event history, oldest event first.

    Raises
    ------
    NinaTransportError
        The request itself failed.
    NinaApiError
        NINA answered with ``Success: false`` or an unrecognizable body.
    """
    endpoint = config.history_path
    body = await transport.get_json(endpoint)

    if not isinstance(body, dict):
        raise NinaApiError(f"Unexpected {type(body).__name__} body from {endpoint}", endpoint=endpoint)
    try:
        response = EventHistoryResponse.model_validate(body)
    except ValidationError as exc:
        raise NinaApiError(f"Malformed history body from {endpoint}: {exc}", endpoint=endpoint) from exc

    if not response.success:
        raise NinaApiError(
            f"{endpoint} failed: {response.error or 'Success=false'}",
            endpoint=endpoint,
        )

    _logger.debug("Fetched %d history events", len(response.response))
    return response


class EventHistoryApi:
    """:class:`~pynina.ingestion.history.HistorySource` backed by the Advanced API."""

    def __init__(self, config: NinaConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def fetch_event_history(self) -> EventHistoryResponse:
        return await fetch_event_history(self._config, self._transport)

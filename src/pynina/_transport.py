"""HTTP transport for NINA's Advanced API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pynina.config import NinaConfig
from pynina.exceptions import NinaTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        ...


class HttpTransport:
    """GET-only JSON transport with a per-request timeout and transient-error retries.

    Connection resets and timeouts are retried ``config.retry_attempts``
    times, ``config.retry_delay`` seconds apart.  HTTP errors and invalid
    JSON are not retried.
    """

    def __init__(self, config: NinaConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    async def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        url = f"{self._config.api_base_url}/{endpoint.lstrip('/')}"
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        attempts = self._config.retry_attempts + 1

        for attempt in range(1, attempts + 1):
            _logger.debug("GET %s (attempt %d/%d)", url, attempt, attempts)
            try:
                async with self._http.get(url, params=params, timeout=timeout) as resp:
                    text = await resp.text()
                    if resp.status != 200:
                        raise NinaTransportError(
                            f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                            status_code=resp.status,
                            endpoint=endpoint,
                        )
                break
            except (aiohttp.ClientConnectionError, TimeoutError) as exc:
                if attempt >= attempts:
                    raise NinaTransportError(
                        f"Request to {endpoint} failed after {attempts} attempts: {exc!r}",
                        endpoint=endpoint,
                    ) from exc
                _logger.warning(
                    "Request to %s failed (%r), retrying in %.1fs",
                    endpoint,
                    exc,
                    self._config.retry_delay,
                )
                await asyncio.sleep(self._config.retry_delay)
            except aiohttp.ClientError as exc:
                raise NinaTransportError(
                    f"Request to {endpoint} failed: {exc}",
                    endpoint=endpoint,
                ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise NinaTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

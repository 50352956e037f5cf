from __future__ import annotations

from datetime import UTC

import pytest

from pynina.config import NinaConfig
from pynina.exceptions import NinaConfigError


def test_default_urls() -> None:
    config = NinaConfig()

    assert config.websocket_url == "ws://localhost:1888/v2/socket"
    assert config.history_url == "http://localhost:1888/v2/api/event-history"
    assert config.api_base_url == "http://localhost:1888"


def test_base_url_scheme_path_and_port_are_stripped_for_websocket() -> None:
    config = NinaConfig(base_url="http://192.168.1.50:8080/dashboard", api_port=1999)

    assert config.host == "192.168.1.50"
    assert config.websocket_url == "ws://192.168.1.50:1999/v2/socket"
    assert config.api_base_url == "http://192.168.1.50:1999"


def test_bare_host_defaults_to_http() -> None:
    config = NinaConfig(base_url="observatory.local")

    assert config.api_base_url == "http://observatory.local:1888"


def test_empty_base_url_rejected() -> None:
    config = NinaConfig(base_url="   ")

    with pytest.raises(NinaConfigError):
        _ = config.websocket_url


def test_utc_timezone_is_default() -> None:
    assert NinaConfig().tzinfo is UTC


def test_unknown_timezone_rejected_at_construction() -> None:
    with pytest.raises(NinaConfigError):
        NinaConfig(observatory_timezone="Mars/Olympus_Mons")


def test_history_limit_must_be_positive() -> None:
    with pytest.raises(NinaConfigError):
        NinaConfig(history_limit=0)


def test_negative_retry_attempts_rejected(monkeypatch) -> None:
    with pytest.raises(NinaConfigError):
        NinaConfig(retry_attempts=-1)

    monkeypatch.setenv("NINA_RETRY_ATTEMPTS", "-1")
    with pytest.raises(NinaConfigError):
        NinaConfig.from_env()

    assert NinaConfig(retry_attempts=0).retry_attempts == 0


def test_from_env_reads_nina_variables(monkeypatch) -> None:
    monkeypatch.setenv("NINA_BASE_URL", "http://nina.lan")
    monkeypatch.setenv("NINA_API_PORT", "2020")
    monkeypatch.setenv("NINA_HISTORY_LIMIT", "25")
    monkeypatch.setenv("NINA_RECONNECT_DELAY", "2.5")
    monkeypatch.setenv("NINA_RESET_ON_REFRESH", "false")

    config = NinaConfig.from_env()

    assert config.websocket_url == "ws://nina.lan:2020/v2/socket"
    assert config.history_limit == 25
    assert config.reconnect_delay == 2.5
    assert config.reset_on_refresh is False


def test_from_env_overrides_win(monkeypatch) -> None:
    monkeypatch.setenv("NINA_API_PORT", "2020")
    monkeypatch.setenv("NINA_BASE_URL", "http://nina.lan")

    config = NinaConfig.from_env(api_port=3030, base_url="http://other.lan")

    assert config.api_port == 3030
    assert config.host == "other.lan"


def test_from_env_invalid_number_raises_config_error(monkeypatch) -> None:
    monkeypatch.setenv("NINA_API_PORT", "not-a-port")

    with pytest.raises(NinaConfigError):
        NinaConfig.from_env()

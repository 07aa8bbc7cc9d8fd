"""Tests for BaseDriver HTTP plumbing and shared helpers."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from pydantic import Field

from automation_hub.config import DriverSettings
from automation_hub.drivers.base import AutomationDriver, BaseDriver, compact
from automation_hub.errors import ConfigurationError, TransportError
from automation_hub.security import compute_signature

# -- Helpers -----------------------------------------------------------------


class _EchoSettings(DriverSettings):
    url: str = Field(default="")
    token: str = Field(default="")
    secret: str = Field(default="")


class EchoDriver(BaseDriver):
    """Posts the message to the configured URL."""

    @property
    def name(self) -> str:
        return "echo"

    async def send(self, message: Any, options: dict[str, Any] | None = None) -> Any:
        url = self.require("url")["url"]
        return await self._request("POST", url, json=message)

    async def handle_webhook(self, payload: Any, headers: dict[str, str] | None = None) -> Any:
        return payload


# -- Protocol ----------------------------------------------------------------


def test_base_driver_satisfies_protocol() -> None:
    assert isinstance(EchoDriver(_EchoSettings()), AutomationDriver)


def test_verification_off_by_default() -> None:
    driver = EchoDriver(_EchoSettings())
    assert driver.supports_verification is False
    assert driver.verify_webhook({}, "") is True


# -- require -----------------------------------------------------------------


def test_require_returns_values() -> None:
    driver = EchoDriver(_EchoSettings(url="https://x", token="t"))
    assert driver.require("url", "token") == {"url": "https://x", "token": "t"}


def test_require_lists_all_missing_keys() -> None:
    driver = EchoDriver(_EchoSettings())
    with pytest.raises(ConfigurationError) as exc_info:
        driver.require("url", "token")
    assert exc_info.value.driver == "echo"
    assert exc_info.value.missing == ["url", "token"]


# -- _request ----------------------------------------------------------------


async def test_request_returns_json_body(http) -> None:
    session = http(200, {"ok": True, "id": 1})
    driver = EchoDriver(_EchoSettings(url="https://svc.example.com/hook"), session=session)

    result = await driver.send({"a": 1})

    assert result == {"ok": True, "id": 1}
    session.request.assert_called_once_with(
        "POST", "https://svc.example.com/hook", json={"a": 1}, headers=None
    )


async def test_request_returns_text_when_not_json(http) -> None:
    driver = EchoDriver(_EchoSettings(url="https://x"), session=http(200, "ok"))
    assert await driver.send({}) == "ok"


async def test_request_empty_body_returns_none(http) -> None:
    driver = EchoDriver(_EchoSettings(url="https://x"), session=http(204, None, "No Content"))
    assert await driver.send({}) is None


async def test_non_success_status_raises_transport_error(http) -> None:
    session = http(403, {"error": "forbidden"}, "Forbidden")
    driver = EchoDriver(_EchoSettings(url="https://x"), session=session)

    with pytest.raises(TransportError) as exc_info:
        await driver.send({})

    err = exc_info.value
    assert err.status == 403
    assert err.reason == "Forbidden"
    assert err.body == {"error": "forbidden"}
    assert "HTTP 403: Forbidden" in str(err)


async def test_network_error_raises_transport_error() -> None:
    session = MagicMock()
    session.closed = False
    session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("Connection refused"))
    driver = EchoDriver(_EchoSettings(url="https://x"), session=session)

    with pytest.raises(TransportError) as exc_info:
        await driver.send({})

    assert exc_info.value.status is None
    assert "Connection refused" in exc_info.value.reason
    assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)


async def test_missing_config_makes_no_request(http) -> None:
    session = http()
    driver = EchoDriver(_EchoSettings(), session=session)
    with pytest.raises(ConfigurationError):
        await driver.send({})
    session.request.assert_not_called()


# -- Session lifecycle -------------------------------------------------------


async def test_lazy_session_created_and_closed() -> None:
    with patch("automation_hub.drivers.base.aiohttp.ClientSession") as mock_cls:
        instance = MagicMock()
        instance.closed = False
        instance.close = AsyncMock()
        mock_cls.return_value = instance

        driver = EchoDriver(_EchoSettings())
        assert driver._get_session() is instance
        assert driver._get_session() is instance
        mock_cls.assert_called_once()

        await driver.close()
        instance.close.assert_awaited_once()
        assert driver._session is None


async def test_injected_session_is_not_closed(http) -> None:
    session = http()
    session.close = AsyncMock()
    driver = EchoDriver(_EchoSettings(), session=session)

    await driver.close()

    session.close.assert_not_awaited()
    assert driver._get_session() is session


# -- Verification helper -----------------------------------------------------


def test_verify_without_secret_allows_and_warns(caplog) -> None:
    driver = EchoDriver(_EchoSettings())
    with caplog.at_level("WARNING"):
        assert driver._verify_with_secret("", {"a": 1}, "") is True
    assert "not configured" in caplog.text


def test_verify_with_secret_checks_hmac() -> None:
    driver = EchoDriver(_EchoSettings())
    sig = compute_signature("k", b"body", prefix="sha256=")
    assert driver._verify_with_secret("k", b"body", sig, prefix="sha256=") is True
    assert driver._verify_with_secret("k", b"other", sig, prefix="sha256=") is False
    assert driver._verify_with_secret("k", b"body", "", prefix="sha256=") is False


def test_compact_drops_none() -> None:
    assert compact({"a": 1, "b": None, "c": False}) == {"a": 1, "c": False}

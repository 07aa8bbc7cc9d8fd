"""Tests for the webhook HTTP server."""

import asyncio
import json
from typing import Any

from aiohttp.test_utils import TestClient, TestServer

from automation_hub.config import N8nSettings, Settings, WhatsAppSettings
from automation_hub.drivers import N8nDriver, WhatsAppDriver
from automation_hub.errors import HandshakeError
from automation_hub.events import normalized_result
from automation_hub.security import compute_signature
from automation_hub.service import AutomationService
from automation_hub.webhooks.listeners import WebhookListeners
from automation_hub.webhooks.server import WebhookServer, _create_web_app, _nest_query

# -- Helpers -----------------------------------------------------------------


class RecordingDriver:
    """Driver that records deliveries and can be told to fail."""

    signature_header = "x-recording-signature"

    def __init__(
        self,
        driver_name: str = "rec",
        *,
        verify_result: bool = True,
        error: Exception | None = None,
    ) -> None:
        self._name = driver_name
        self.supports_verification = True
        self.verify_result = verify_result
        self.error = error
        self.received: list[tuple[Any, dict[str, str]]] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, message: Any, options: dict[str, Any] | None = None) -> Any:
        return None

    async def handle_webhook(self, payload: Any, headers: dict[str, str] | None = None) -> Any:
        if self.error is not None:
            raise self.error
        self.received.append((payload, headers or {}))
        return normalized_result(self._name, payload, event=payload.get("kind"))

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        return self.verify_result

    async def close(self) -> None:
        pass


async def _make_client(app) -> TestClient:
    """Create a TestClient for the webhook app."""
    server = TestServer(app)
    client = TestClient(server)
    await client.start_server()
    return client


# -- Query nesting -----------------------------------------------------------


def test_nest_query_dotted_keys() -> None:
    assert _nest_query({"hub.mode": "subscribe", "hub.challenge": "42", "x": "1"}) == {
        "hub": {"mode": "subscribe", "challenge": "42"},
        "x": "1",
    }


# -- Health check ------------------------------------------------------------


async def test_health_check_lists_drivers() -> None:
    service = AutomationService([RecordingDriver("slack"), RecordingDriver("n8n")])
    client = await _make_client(_create_web_app(service))
    try:
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()
        assert data == {"status": "ok", "drivers": ["slack", "n8n"]}
    finally:
        await client.close()


# -- Routing -----------------------------------------------------------------


async def test_unknown_service_returns_404() -> None:
    client = await _make_client(_create_web_app(AutomationService()))
    try:
        resp = await client.post("/webhooks/nonexistent", json={"test": True})
        assert resp.status == 404
    finally:
        await client.close()


async def test_invalid_json_returns_400() -> None:
    service = AutomationService([RecordingDriver()])
    client = await _make_client(_create_web_app(service))
    try:
        resp = await client.post(
            "/webhooks/rec", data=b"not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 400
    finally:
        await client.close()


async def test_valid_webhook_returns_result() -> None:
    driver = RecordingDriver()
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.post("/webhooks/rec", json={"kind": "ping"})
        assert resp.status == 200
        assert await resp.json() == {
            "service": "rec",
            "event": "ping",
            "payload": {"kind": "ping"},
            "processed": True,
        }
        assert driver.received[0][0] == {"kind": "ping"}
    finally:
        await client.close()


async def test_event_path_segment_tags_payload() -> None:
    driver = RecordingDriver()
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.post("/webhooks/rec/order.created", json={"id": 1})
        assert resp.status == 200
        assert driver.received[0][0] == {"id": 1, "_event": "order.created"}
    finally:
        await client.close()


async def test_custom_prefix() -> None:
    driver = RecordingDriver()
    app = _create_web_app(AutomationService([driver]), prefix="hooks/")
    client = await _make_client(app)
    try:
        resp = await client.post("/hooks/rec", json={})
        assert resp.status == 200
    finally:
        await client.close()


# -- Error mapping -----------------------------------------------------------


async def test_failed_signature_returns_401() -> None:
    driver = RecordingDriver(verify_result=False)
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.post("/webhooks/rec", json={"a": 1})
        assert resp.status == 401
        assert driver.received == []
    finally:
        await client.close()


async def test_handshake_error_returns_403() -> None:
    driver = RecordingDriver(error=HandshakeError("rec", "Invalid verify token"))
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.post("/webhooks/rec", json={})
        assert resp.status == 403
    finally:
        await client.close()


async def test_driver_exception_returns_500() -> None:
    driver = RecordingDriver(error=RuntimeError("boom"))
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.post("/webhooks/rec", json={})
        assert resp.status == 500
        assert await resp.json() == {"error": "internal server error"}
    finally:
        await client.close()


# -- Signatures over the raw body --------------------------------------------


async def test_raw_body_signature_accepted_and_rejected() -> None:
    driver = N8nDriver(N8nSettings(webhook_secret="wf-secret"))
    client = await _make_client(_create_web_app(AutomationService([driver])))
    body = json.dumps({"status": "done", "note": "spacing kept"}, indent=2).encode()
    try:
        good = await client.post(
            "/webhooks/n8n",
            data=body,
            headers={
                "Content-Type": "application/json",
                "X-Signature": compute_signature("wf-secret", body, prefix="sha256="),
            },
        )
        assert good.status == 200
        assert (await good.json())["payload"] == {"status": "done", "note": "spacing kept"}

        bad = await client.post(
            "/webhooks/n8n",
            data=body,
            headers={"Content-Type": "application/json", "X-Signature": "sha256=00"},
        )
        assert bad.status == 401
    finally:
        await client.close()


# -- Handshake over GET ------------------------------------------------------


async def test_whatsapp_get_handshake_returns_plain_challenge() -> None:
    driver = WhatsAppDriver(WhatsAppSettings(verify_token="verify-me", app_secret="s"))
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "77"},
        )
        assert resp.status == 200
        assert await resp.text() == "77"

        bad = await client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "77"},
        )
        assert bad.status == 401
    finally:
        await client.close()


async def test_whatsapp_get_handshake_bad_token_without_app_secret() -> None:
    driver = WhatsAppDriver(WhatsAppSettings(verify_token="verify-me"))
    client = await _make_client(_create_web_app(AutomationService([driver])))
    try:
        resp = await client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "77"},
        )
        assert resp.status == 403
    finally:
        await client.close()


# -- Listeners ---------------------------------------------------------------


async def test_listeners_run_after_dispatch() -> None:
    listeners = WebhookListeners()
    seen: list[dict] = []
    done = asyncio.Event()

    @listeners.on("rec", event="ping")
    async def on_ping(result: dict) -> None:
        seen.append(result)
        done.set()

    app = _create_web_app(AutomationService([RecordingDriver()]), listeners)
    client = await _make_client(app)
    try:
        resp = await client.post("/webhooks/rec", json={"kind": "ping"})
        assert resp.status == 200
        await asyncio.wait_for(done.wait(), timeout=1)
        assert seen[0]["event"] == "ping"
    finally:
        await client.close()


async def test_failing_listener_does_not_affect_response() -> None:
    listeners = WebhookListeners()
    done = asyncio.Event()

    @listeners.on("rec")
    async def explode(result: dict) -> None:
        done.set()
        raise RuntimeError("listener broke")

    app = _create_web_app(AutomationService([RecordingDriver()]), listeners)
    client = await _make_client(app)
    try:
        resp = await client.post("/webhooks/rec", json={"kind": "ping"})
        assert resp.status == 200
        await asyncio.wait_for(done.wait(), timeout=1)
    finally:
        await client.close()


# -- WebhookServer lifecycle -------------------------------------------------


async def test_server_skips_start_when_disabled() -> None:
    server = WebhookServer(AutomationService(), Settings(webhooks_enabled=False), port=9999)
    await server.start()
    assert server._runner is None
    await server.stop()


def test_server_port_defaults_to_settings() -> None:
    server = WebhookServer(AutomationService(), Settings(webhook_port=9100))
    assert server.port == 9100

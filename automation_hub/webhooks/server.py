"""Lightweight async HTTP server exposing the AutomationService webhooks.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Routes:

- ``GET  /health``
- ``POST {prefix}/{service}`` and ``POST {prefix}/{service}/{event}``
- ``GET  {prefix}/{service}`` for query-string handshakes (WhatsApp)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from automation_hub.errors import (
    DriverNotFoundError,
    HandshakeError,
    SignatureVerificationError,
)
from automation_hub.service import AutomationService
from automation_hub.webhooks.listeners import WebhookListeners

if TYPE_CHECKING:
    from collections.abc import Mapping

    from automation_hub.config import Settings
    from automation_hub.webhooks.listeners import WebhookListener

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("automation_service", AutomationService)
LISTENERS_KEY = web.AppKey("webhook_listeners", WebhookListeners)

# Strong references so fire-and-forget listener tasks are not collected early.
_background_tasks: set[asyncio.Task] = set()


def _nest_query(query: Mapping[str, str]) -> dict[str, Any]:
    """Turn ``hub.mode=subscribe`` style keys into ``{"hub": {"mode": ...}}``."""
    nested: dict[str, Any] = {}
    for key, value in query.items():
        node = nested
        *parents, leaf = key.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
    return nested


async def _dispatch(
    request: web.Request,
    name: str,
    payload: Any,
    *,
    event: str | None = None,
    raw_body: bytes | None = None,
) -> Any:
    """Run the dispatch and map the error taxonomy onto HTTP responses."""
    service = request.app[SERVICE_KEY]
    try:
        result = await service.dispatch_webhook(
            name, payload, dict(request.headers), event=event, raw_body=raw_body
        )
    except DriverNotFoundError:
        logger.warning("Webhook 404: no driver for service=%s", name)
        return web.json_response({"error": "unknown service"}, status=404)
    except SignatureVerificationError:
        return web.json_response({"error": "unauthorized"}, status=401)
    except HandshakeError as exc:
        logger.warning("Webhook handshake rejected: service=%s (%s)", name, exc.reason)
        return web.json_response({"error": "forbidden"}, status=403)
    except Exception:
        logger.exception("Webhook processing failed: service=%s, event=%s", name, event)
        return web.json_response({"error": "internal server error"}, status=500)

    for listener in request.app[LISTENERS_KEY].for_result(name, result):
        task = asyncio.create_task(_run_listener(listener, name, result))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
    return result


async def _handle_webhook(request: web.Request) -> web.Response:
    """Route POST {prefix}/<service>[/<event>] to the AutomationService."""
    name = request.match_info["service"]
    event = request.match_info.get("event")

    if not request.app[SERVICE_KEY].has_driver(name):
        logger.warning("Webhook 404: no driver for service=%s", name)
        return web.json_response({"error": "unknown service"}, status=404)

    raw_body = await request.read()
    try:
        payload: Any = json.loads(raw_body) if raw_body else {}
    except ValueError:
        logger.warning("Webhook bad request: invalid JSON (service=%s)", name)
        return web.json_response({"error": "invalid JSON"}, status=400)

    logger.info("Webhook received: service=%s, event=%s", name, event)
    result = await _dispatch(request, name, payload, event=event, raw_body=raw_body)
    if isinstance(result, web.StreamResponse):
        return result
    return web.json_response(result)


async def _handle_handshake(request: web.Request) -> web.Response:
    """GET {prefix}/<service>: answer a query-string handshake with the bare challenge."""
    name = request.match_info["service"]
    result = await _dispatch(request, name, _nest_query(request.query))
    if isinstance(result, web.StreamResponse):
        return result
    if isinstance(result, dict) and "challenge" in result and "processed" not in result:
        return web.Response(text=str(result["challenge"]))
    return web.json_response(result)


async def _run_listener(listener: WebhookListener, name: str, result: dict[str, Any]) -> None:
    """Execute a webhook listener with error logging."""
    try:
        await listener(result)
    except Exception:
        logger.exception("Webhook listener failed: service=%s", name)


async def _health(request: web.Request) -> web.Response:
    """GET /health: liveness plus the registered drivers."""
    return web.json_response(
        {"status": "ok", "drivers": request.app[SERVICE_KEY].list_drivers()}
    )


def _create_web_app(
    service: AutomationService,
    listeners: WebhookListeners | None = None,
    prefix: str = "/webhooks",
) -> web.Application:
    """Build the aiohttp Application with routes."""
    prefix = "/" + prefix.strip("/")
    app = web.Application()
    app[SERVICE_KEY] = service
    app[LISTENERS_KEY] = listeners or WebhookListeners()
    app.router.add_get("/health", _health)
    app.router.add_post(prefix + "/{service}", _handle_webhook)
    app.router.add_post(prefix + "/{service}/{event}", _handle_webhook)
    app.router.add_get(prefix + "/{service}", _handle_handshake)
    return app


class WebhookServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        service: AutomationService,
        settings: Settings,
        listeners: WebhookListeners | None = None,
        port: int | None = None,
    ) -> None:
        self.service = service
        self.settings = settings
        self.listeners = listeners or WebhookListeners()
        self.port = port or settings.webhook_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for incoming webhooks."""
        if not self.settings.webhooks_enabled:
            logger.warning("WEBHOOKS_ENABLED is false, webhook server disabled")
            return

        app = _create_web_app(self.service, self.listeners, self.settings.webhook_prefix)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.settings.webhook_host, self.port)
        await site.start()
        logger.info(
            "Webhook server listening on port %d (drivers: %s)",
            self.port,
            self.service.list_drivers() or ["none registered"],
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Webhook server stopped")

"""Webhook listeners: callbacks run after a delivery has been dispatched."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Listener signature: async (result: dict) -> None
WebhookListener = Callable[[dict[str, Any]], Awaitable[None]]


class WebhookListeners:
    """Registry of callbacks keyed by service and event.

    Usage::

        listeners = WebhookListeners()

        @listeners.on("telegram", event="message")
        async def on_message(result: dict) -> None:
            ...

    ``event=None`` subscribes to every event from that service.
    """

    def __init__(self) -> None:
        self._listeners: dict[tuple[str, str | None], list[WebhookListener]] = {}

    def on(
        self, service: str, event: str | None = None
    ) -> Callable[[WebhookListener], WebhookListener]:
        """Decorator to register an async function as a webhook listener."""

        def decorator(fn: WebhookListener) -> WebhookListener:
            self._listeners.setdefault((service, event), []).append(fn)
            logger.info("Registered webhook listener: %s/%s", service, event or "*")
            return fn

        return decorator

    def for_result(self, service: str, result: Any) -> list[WebhookListener]:
        """Listeners interested in a normalized result. Handshake replies match none."""
        if not isinstance(result, dict) or not result.get("processed"):
            return []
        matched = list(self._listeners.get((service, None), []))
        event = result.get("event")
        if event is not None:
            matched.extend(self._listeners.get((service, event), []))
        return matched

    @property
    def subscriptions(self) -> list[str]:
        """All registered ``service/event`` keys."""
        return [f"{service}/{event or '*'}" for service, event in self._listeners]

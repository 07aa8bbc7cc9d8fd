"""WhatsApp Cloud API driver."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from automation_hub.config import WhatsAppSettings
from automation_hub.drivers.base import BaseDriver
from automation_hub.errors import HandshakeError, TransportError
from automation_hub.events import normalized_result
from automation_hub.security import constant_time_equals

if TYPE_CHECKING:
    from collections.abc import Iterator

    import aiohttp

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def _hub(payload: Any) -> dict[str, Any] | None:
    """Return the ``hub`` block of a subscription handshake, or None."""
    if not isinstance(payload, dict):
        return None
    hub = payload.get("hub")
    if isinstance(hub, dict) and hub.get("mode") == "subscribe":
        return hub
    return None


def _dicts(items: Any) -> Iterator[dict[str, Any]]:
    """Yield the dict members of a list field, skipping anything malformed."""
    if isinstance(items, list):
        yield from (item for item in items if isinstance(item, dict))


class WhatsAppDriver(BaseDriver):
    """Sends messages through the Graph API and receives Cloud API webhooks.

    Deliveries are signed with the app secret in ``X-Hub-Signature-256``.
    The subscription handshake is unsigned and is authenticated by the
    verify token instead.
    """

    supports_verification: ClassVar[bool] = True
    signature_header: ClassVar[str] = "x-hub-signature-256"

    settings: WhatsAppSettings

    def __init__(
        self,
        settings: WhatsAppSettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(settings or WhatsAppSettings(), session)

    @property
    def name(self) -> str:
        return "whatsapp"

    async def send(self, message: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Send a text, template or interactive message."""
        creds = self.require("access_token", "phone_number_id")
        s = self.settings
        url = f"{s.api_url}/{s.api_version}/{creds['phone_number_id']}/messages"

        body = {
            "messaging_product": "whatsapp",
            "type": "text",
            **message,
            **(options or {}),
        }
        try:
            data = await self._request(
                "POST",
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {creds['access_token']}",
                    "Content-Type": "application/json",
                },
            )
        except TransportError:
            logger.exception("Failed to send WhatsApp message (to=%s)", body.get("to"))
            raise

        messages = data.get("messages") if isinstance(data, dict) else None
        logger.info(
            "WhatsApp message sent (to=%s, type=%s, message_id=%s)",
            body.get("to"),
            body.get("type"),
            messages[0].get("id") if messages else None,
        )
        return data

    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Answer the subscription handshake or wrap a notification."""
        if not isinstance(payload, dict):
            return normalized_result(self.name, payload)

        hub = _hub(payload)
        if hub is not None:
            if not self._verify_token_matches(hub):
                raise HandshakeError(self.name, "Invalid verify token")
            return {"challenge": hub.get("challenge")}

        event = None
        for entry in _dicts(payload.get("entry")):
            for change in _dicts(entry.get("changes")):
                if change.get("field") != "messages":
                    continue
                value = change.get("value")
                if not isinstance(value, dict):
                    continue
                received = list(_dicts(value.get("messages")))
                if received:
                    event = "messages"
                    logger.info(
                        "Received WhatsApp message (from=%s, type=%s)",
                        received[0].get("from"),
                        received[0].get("type"),
                    )
                elif value.get("statuses"):
                    event = event or "statuses"

        return normalized_result(self.name, payload, event=event)

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        """Check ``X-Hub-Signature-256``; handshakes are checked by verify token."""
        if not self.settings.app_secret:
            logger.warning("whatsapp app secret not configured, skipping verification")
            return True
        hub = _hub(payload)
        if hub is not None:
            return self._verify_token_matches(hub)
        return self._verify_with_secret(
            self.settings.app_secret, payload, signature, prefix=SIGNATURE_PREFIX
        )

    def _verify_token_matches(self, hub: dict[str, Any]) -> bool:
        expected = self.settings.verify_token
        if not expected:
            logger.warning("whatsapp verify token not configured, rejecting handshake")
            return False
        return constant_time_equals(str(hub.get("verify_token") or ""), expected)

"""Slack driver: incoming-webhook or chat.postMessage sends, Events API webhooks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from automation_hub.config import SlackSettings
from automation_hub.drivers.base import BaseDriver, compact
from automation_hub.errors import ConfigurationError, TransportError
from automation_hub.events import normalized_result

if TYPE_CHECKING:
    import aiohttp

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "v0="


class SlackDriver(BaseDriver):
    """Sends messages to Slack and interprets Slack Events API callbacks.

    Outbound messages use the incoming webhook URL when one is configured,
    otherwise ``chat.postMessage`` with the bot token.
    """

    supports_verification: ClassVar[bool] = True
    signature_header: ClassVar[str] = "x-slack-signature"

    settings: SlackSettings

    def __init__(
        self,
        settings: SlackSettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(settings or SlackSettings(), session)

    @property
    def name(self) -> str:
        return "slack"

    async def send(self, message: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Post a message. Returns Slack's response body."""
        s = self.settings
        if not s.webhook_url and not s.bot_token:
            raise ConfigurationError(
                self.name,
                ["webhook_url", "bot_token"],
                "Slack webhook URL or bot token is required",
            )

        try:
            if s.webhook_url:
                body = compact({
                    "text": message.get("text"),
                    "channel": message.get("channel"),
                    "username": message.get("username") or s.username,
                    "icon_emoji": message.get("icon_emoji") or s.icon_emoji,
                    "attachments": message.get("attachments"),
                    "blocks": message.get("blocks"),
                    **(options or {}),
                })
                data = await self._request("POST", s.webhook_url, json=body)
                logger.info("Slack message sent via webhook (channel=%s)", message.get("channel"))
                return data

            body = compact({
                "text": message.get("text"),
                "channel": message.get("channel") or s.default_channel,
                "attachments": message.get("attachments"),
                "blocks": message.get("blocks"),
                **(options or {}),
            })
            data = await self._request(
                "POST",
                f"{s.api_url}/chat.postMessage",
                json=body,
                headers={
                    "Authorization": f"Bearer {s.bot_token}",
                    "Content-Type": "application/json; charset=utf-8",
                },
            )
            if not isinstance(data, dict) or not data.get("ok"):
                error = data.get("error") if isinstance(data, dict) else data
                raise TransportError(200, f"Slack API error: {error}", data)
            logger.info("Slack message sent via API (channel=%s)", body["channel"])
            return data
        except TransportError:
            logger.exception("Failed to send Slack message")
            raise

    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Interpret a Slack Events API delivery."""
        if not isinstance(payload, dict):
            return normalized_result(self.name, payload)

        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        event = payload.get("event")
        if isinstance(event, dict):
            logger.info(
                "Received Slack event (type=%s, user=%s)", event.get("type"), event.get("user")
            )
            return normalized_result(self.name, payload, event=event.get("type"))

        return normalized_result(self.name, payload)

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        """HMAC-SHA256 with the signing secret, ``v0=``-prefixed hex digest."""
        return self._verify_with_secret(
            self.settings.signing_secret, payload, signature, prefix=SIGNATURE_PREFIX
        )

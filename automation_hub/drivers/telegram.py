"""Telegram driver: Bot API sendMessage and update webhooks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from automation_hub.config import TelegramSettings
from automation_hub.drivers.base import BaseDriver, compact
from automation_hub.errors import TransportError
from automation_hub.events import normalized_result
from automation_hub.security import constant_time_equals

if TYPE_CHECKING:
    import aiohttp

logger = logging.getLogger(__name__)

# Update fields Telegram sends, in the order they are checked.
UPDATE_EVENTS = ("message", "edited_message", "channel_post", "callback_query")


def _field(obj: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``obj[key]`` when it is an object, else an empty dict."""
    value = obj.get(key)
    return value if isinstance(value, dict) else {}


class TelegramDriver(BaseDriver):
    """Sends messages via the Telegram Bot API.

    Telegram does not sign updates. When ``secret_token`` is configured the
    webhook is registered with it and Telegram echoes it back in the
    ``X-Telegram-Bot-Api-Secret-Token`` header, which is what gets verified.
    """

    supports_verification: ClassVar[bool] = True
    signature_header: ClassVar[str] = "x-telegram-bot-api-secret-token"

    settings: TelegramSettings

    def __init__(
        self,
        settings: TelegramSettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(settings or TelegramSettings(), session)

    @property
    def name(self) -> str:
        return "telegram"

    async def send(self, message: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Send a text message to a chat. Returns the sent Message object."""
        token = self.require("bot_token")["bot_token"]
        url = f"{self.settings.api_url}/bot{token}/sendMessage"

        body = compact({
            "chat_id": message.get("chat_id"),
            "text": message.get("text"),
            "parse_mode": message.get("parse_mode") or self.settings.parse_mode,
            "reply_markup": message.get("reply_markup"),
            "disable_notification": message.get("disable_notification", False),
            **(options or {}),
        })

        try:
            data = await self._request("POST", url, json=body)
            if not isinstance(data, dict) or not data.get("ok"):
                description = data.get("description") if isinstance(data, dict) else data
                raise TransportError(200, f"Telegram API error: {description}", data)
        except TransportError as exc:
            # The bot token is part of the URL; keep it out of logs and callers' errors.
            masked = TransportError(exc.status, exc.reason.replace(token, "***"), exc.body)
            logger.error(
                "Failed to send Telegram message (chat_id=%s): %s", body.get("chat_id"), masked
            )
            if masked.reason == exc.reason:
                raise
            raise masked from None

        result = data.get("result") or {}
        logger.info(
            "Message sent to Telegram (chat_id=%s, message_id=%s)",
            body.get("chat_id"),
            result.get("message_id"),
        )
        return result

    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Interpret a Telegram Update."""
        if not isinstance(payload, dict):
            return normalized_result(self.name, payload)

        for event in UPDATE_EVENTS:
            body = payload.get(event)
            if not isinstance(body, dict):
                continue
            sender = _field(body, "from")
            chat = _field(body, "chat") or _field(_field(body, "message"), "chat")
            logger.info(
                "Received Telegram %s (from=%s, chat_id=%s)",
                event,
                sender.get("username"),
                chat.get("id"),
            )
            return normalized_result(self.name, payload, event=event)

        return normalized_result(self.name, payload)

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        """Compare the echoed secret token with the configured one."""
        secret = self.settings.secret_token
        if not secret:
            logger.warning("telegram secret token not configured, skipping verification")
            return True
        if not signature:
            return False
        return constant_time_equals(signature, secret)

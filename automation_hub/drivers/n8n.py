"""n8n driver: triggers workflows through their webhook node."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from automation_hub.config import N8nSettings
from automation_hub.drivers.base import BaseDriver
from automation_hub.errors import TransportError
from automation_hub.events import normalized_result

if TYPE_CHECKING:
    import aiohttp

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def _mask_url(url: str) -> str:
    """Hide the last path segment, which is the workflow's secret webhook id."""
    return re.sub(r"/[^/]+$", "/***", url)


class N8nDriver(BaseDriver):
    """Posts arbitrary JSON to an n8n workflow webhook."""

    supports_verification: ClassVar[bool] = True
    signature_header: ClassVar[str] = "x-n8n-signature"

    settings: N8nSettings

    def __init__(
        self,
        settings: N8nSettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(settings or N8nSettings(), session)

    @property
    def name(self) -> str:
        return "n8n"

    async def send(self, message: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Trigger the workflow. ``options["headers"]`` adds request headers."""
        url = self.require("webhook_url")["webhook_url"]

        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["X-N8N-API-KEY"] = self.settings.api_key
        headers.update((options or {}).get("headers") or {})

        try:
            data = await self._request("POST", url, json=message, headers=headers)
        except TransportError:
            logger.exception("Failed to trigger n8n workflow (webhook=%s)", _mask_url(url))
            raise

        logger.info(
            "n8n workflow triggered (webhook=%s, keys=%s)",
            _mask_url(url),
            list(message.keys())[:10] if isinstance(message, dict) else type(message).__name__,
        )
        return data

    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Wrap a workflow callback in a normalized result."""
        logger.info(
            "Received n8n webhook (keys=%s, content_type=%s)",
            list(payload.keys())[:10] if isinstance(payload, dict) else [],
            next((v for k, v in (headers or {}).items() if k.lower() == "content-type"), None),
        )
        return normalized_result(
            self.name,
            payload,
            timestamp=datetime.now(UTC).isoformat(),
        )

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        """HMAC-SHA256 of the body with the shared secret, ``sha256=`` prefix optional."""
        return self._verify_with_secret(
            self.settings.webhook_secret, payload, signature, prefix=SIGNATURE_PREFIX
        )

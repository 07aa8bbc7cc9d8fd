"""AutomationDriver protocol and the shared BaseDriver implementation."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

import aiohttp

from automation_hub.errors import ConfigurationError, TransportError
from automation_hub.security import verify_hmac_sha256

if TYPE_CHECKING:
    from automation_hub.config import DriverSettings

logger = logging.getLogger(__name__)


@runtime_checkable
class AutomationDriver(Protocol):
    """Protocol that every automation driver must satisfy."""

    # Explicit capability flag; verify_webhook is only called when True.
    supports_verification: bool
    # Provider-specific signature header, checked after ``x-signature``.
    signature_header: str

    @property
    def name(self) -> str:
        """Stable, lowercase, unique driver name (e.g. 'slack')."""
        ...

    async def send(self, message: Any, options: dict[str, Any] | None = None) -> Any:
        """Perform one outbound call and return the service's response body."""
        ...

    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Interpret an inbound event and return a normalized result."""
        ...

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        """Return True if the signature is valid for the payload."""
        ...

    async def close(self) -> None:
        """Release any network resources held by the driver."""
        ...


class BaseDriver(ABC):
    """Common plumbing for HTTP-backed drivers.

    Subclasses provide ``name``, ``send`` and ``handle_webhook`` and, when the
    provider signs its webhooks, set ``supports_verification`` and override
    ``verify_webhook``.
    """

    supports_verification: ClassVar[bool] = False
    signature_header: ClassVar[str] = "x-hub-signature-256"

    def __init__(
        self,
        settings: DriverSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def send(self, message: Any, options: dict[str, Any] | None = None) -> Any: ...

    @abstractmethod
    async def handle_webhook(
        self, payload: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]: ...

    def verify_webhook(self, payload: Any, signature: str) -> bool:
        return True

    def require(self, *keys: str) -> dict[str, str]:
        """Return the named settings, raising ConfigurationError if any is empty."""
        missing = self.settings.missing(*keys)
        if missing:
            raise ConfigurationError(self.name, missing)
        return {key: getattr(self.settings, key) for key in keys}

    def _verify_with_secret(
        self, secret: str, payload: Any, signature: str, prefix: str = ""
    ) -> bool:
        """HMAC-SHA256 check that allows traffic when no secret is configured."""
        if not secret:
            logger.warning(
                "%s webhook secret not configured, skipping verification", self.name
            )
            return True
        return verify_hmac_sha256(secret, payload, signature, prefix=prefix)

    # -- HTTP -----------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        """Return (and lazily create) this driver's aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make one HTTP request and return the decoded response body.

        Raises TransportError for non-2xx responses and network failures.
        """
        session = self._get_session()
        try:
            async with session.request(method, url, json=json, headers=headers) as resp:
                body = _decode_body(await resp.text())
                if not 200 <= resp.status < 300:
                    raise TransportError(resp.status, resp.reason or "", body)
                return body
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TransportError(None, str(exc) or type(exc).__name__) from exc

    async def close(self) -> None:
        """Close the HTTP session if this driver created it."""
        if not self._owns_session or self._session is None:
            return
        if not self._session.closed:
            await self._session.close()
        self._session = None


def compact(body: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None before sending a request body."""
    return {k: v for k, v in body.items() if v is not None}


def _decode_body(text: str) -> Any:
    """Decode a JSON body, falling back to the raw text (e.g. Slack's ``ok``)."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text

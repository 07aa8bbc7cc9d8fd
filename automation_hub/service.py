"""AutomationService: driver registry, outbound dispatch and the webhook gate."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from automation_hub.errors import DriverNotFoundError, SignatureVerificationError
from automation_hub.events import WebhookEvent

if TYPE_CHECKING:
    from collections.abc import Iterable

    from automation_hub.drivers.base import AutomationDriver

logger = logging.getLogger(__name__)

# Checked first for every verifying driver; the driver's own header is the fallback.
PRIMARY_SIGNATURE_HEADER = "x-signature"


class DriverSender:
    """A driver resolved once, used for a single outbound send."""

    def __init__(self, driver: AutomationDriver) -> None:
        self._driver = driver

    @property
    def driver(self) -> AutomationDriver:
        return self._driver

    @property
    def name(self) -> str:
        return self._driver.name

    async def send(self, message: Any, options: dict[str, Any] | None = None) -> Any:
        """Send through the bound driver; errors propagate unchanged."""
        return await self._driver.send(message, options)


class AutomationService:
    """Registry of automation drivers keyed by name.

    Built once at startup and passed to whatever needs dispatch::

        service = AutomationService([SlackDriver(slack_settings), TelegramDriver()])
        await service.resolve("slack").send({"text": "deployed"})
        result = await service.dispatch_webhook("slack", payload, headers)

    Registering a name that already exists replaces the earlier driver.
    """

    def __init__(self, drivers: Iterable[AutomationDriver] = ()) -> None:
        self._drivers: dict[str, AutomationDriver] = {}
        self._lock = threading.Lock()
        for driver in drivers:
            self.register_driver(driver)

    # -- Registry -------------------------------------------------------------

    def register_driver(self, driver: AutomationDriver) -> None:
        """Register a driver under its name, replacing any previous one."""
        name = driver.name
        with self._lock:
            replaced = name in self._drivers
            self._drivers[name] = driver
        if replaced:
            logger.info("Replaced automation driver: %s", name)
        else:
            logger.info("Registered automation driver: %s", name)

    def has_driver(self, name: str) -> bool:
        """Exact, case-sensitive presence check."""
        with self._lock:
            return name in self._drivers

    def get_driver(self, name: str) -> AutomationDriver:
        """Look up a driver. Raises DriverNotFoundError if not registered."""
        with self._lock:
            driver = self._drivers.get(name)
        if driver is None:
            raise DriverNotFoundError(name)
        return driver

    def list_drivers(self) -> list[str]:
        """Names of all registered drivers, in registration order."""
        with self._lock:
            return list(self._drivers)

    def resolve(self, name: str) -> DriverSender:
        """Return a sender bound to the named driver."""
        return DriverSender(self.get_driver(name))

    # -- Outbound -------------------------------------------------------------

    async def send(
        self, name: str, message: Any, options: dict[str, Any] | None = None
    ) -> Any:
        """Send a message through the named driver."""
        return await self.resolve(name).send(message, options)

    # -- Inbound --------------------------------------------------------------

    async def dispatch_webhook(
        self,
        name: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        *,
        event: str | None = None,
        raw_body: bytes | None = None,
    ) -> Any:
        """Verify an inbound webhook and hand it to the driver.

        Verification runs before the driver sees anything, handshakes
        included. A driver that does not support verification always
        receives the payload.

        Raises:
            DriverNotFoundError: no driver is registered under ``name``.
            SignatureVerificationError: the driver rejected the signature.
        """
        driver = self.get_driver(name)
        delivery = WebhookEvent(
            service=name,
            payload=payload,
            headers=headers or {},
            event=event,
            raw_body=raw_body,
        )

        if driver.supports_verification:
            signature = delivery.header(PRIMARY_SIGNATURE_HEADER) or delivery.header(
                driver.signature_header
            )
            if not driver.verify_webhook(delivery.signed_content(), signature):
                logger.warning("Webhook rejected: invalid signature (service=%s)", name)
                raise SignatureVerificationError(name)

        logger.info(
            "Webhook dispatched: service=%s, event=%s, time=%s",
            name,
            event,
            delivery.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
        )
        return await driver.handle_webhook(delivery.routed_payload(), delivery.headers)

    # -- Lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close every driver's network resources."""
        with self._lock:
            drivers = list(self._drivers.values())
        for driver in drivers:
            await driver.close()

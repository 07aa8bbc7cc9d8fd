"""Exception taxonomy for driver lookup, configuration, transport and webhooks."""

from __future__ import annotations

from typing import Any


class AutomationError(Exception):
    """Base class for all automation-hub errors."""


class DriverNotFoundError(AutomationError):
    """No driver is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Automation driver '{name}' not found")


class ConfigurationError(AutomationError):
    """A driver lacks required configuration to perform an operation."""

    def __init__(self, driver: str, missing: list[str] | None = None, message: str = "") -> None:
        self.driver = driver
        self.missing = list(missing or [])
        if not message:
            message = f"Driver '{driver}' is missing required configuration: " + ", ".join(
                self.missing
            )
        super().__init__(message)


class TransportError(AutomationError):
    """The downstream service call failed.

    ``status`` is None when the request never produced an HTTP response
    (connection refused, timeout, ...).
    """

    def __init__(self, status: int | None, reason: str = "", body: Any = None) -> None:
        self.status = status
        self.reason = reason
        self.body = body
        if status is None:
            message = f"Transport failure: {reason}"
        else:
            message = f"HTTP {status}: {reason}"
        if body not in (None, ""):
            message = f"{message} - {str(body)[:500]}"
        super().__init__(message)


class SignatureVerificationError(AutomationError):
    """An inbound webhook failed signature verification."""

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(f"Webhook signature verification failed for '{service}'")


class HandshakeError(AutomationError):
    """A provider handshake (endpoint ownership challenge) was rejected."""

    def __init__(self, service: str, reason: str) -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"Webhook handshake failed for '{service}': {reason}")

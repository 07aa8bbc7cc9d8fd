"""Pluggable outbound-notification / inbound-webhook dispatch layer."""

from automation_hub.drivers import AutomationDriver, BaseDriver
from automation_hub.errors import (
    AutomationError,
    ConfigurationError,
    DriverNotFoundError,
    HandshakeError,
    SignatureVerificationError,
    TransportError,
)
from automation_hub.events import WebhookEvent, normalized_result
from automation_hub.service import AutomationService, DriverSender

__all__ = [
    "AutomationDriver",
    "AutomationError",
    "AutomationService",
    "BaseDriver",
    "ConfigurationError",
    "DriverNotFoundError",
    "DriverSender",
    "HandshakeError",
    "SignatureVerificationError",
    "TransportError",
    "WebhookEvent",
    "normalized_result",
]

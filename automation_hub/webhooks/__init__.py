"""HTTP surface for inbound webhooks."""

from automation_hub.webhooks.listeners import WebhookListeners
from automation_hub.webhooks.server import WebhookServer

__all__ = ["WebhookListeners", "WebhookServer"]

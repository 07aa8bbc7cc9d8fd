"""Automation drivers: one adapter per external messaging service."""

from automation_hub.drivers.base import AutomationDriver, BaseDriver
from automation_hub.drivers.n8n import N8nDriver
from automation_hub.drivers.slack import SlackDriver
from automation_hub.drivers.telegram import TelegramDriver
from automation_hub.drivers.whatsapp import WhatsAppDriver

__all__ = [
    "AutomationDriver",
    "BaseDriver",
    "N8nDriver",
    "SlackDriver",
    "TelegramDriver",
    "WhatsAppDriver",
]

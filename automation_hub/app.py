"""Startup wiring: resolve driver settings once and build the AutomationService."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from automation_hub.config import (
    DriverSettings,
    N8nSettings,
    SlackSettings,
    TelegramSettings,
    WhatsAppSettings,
)
from automation_hub.drivers import N8nDriver, SlackDriver, TelegramDriver, WhatsAppDriver
from automation_hub.errors import ConfigurationError
from automation_hub.service import AutomationService

if TYPE_CHECKING:
    from automation_hub.config import Settings
    from automation_hub.drivers.base import AutomationDriver

logger = logging.getLogger(__name__)

# name -> (settings class, driver class), in registration order.
DRIVER_FACTORIES: dict[str, tuple[type[DriverSettings], Callable[..., AutomationDriver]]] = {
    "slack": (SlackSettings, SlackDriver),
    "telegram": (TelegramSettings, TelegramDriver),
    "n8n": (N8nSettings, N8nDriver),
    "whatsapp": (WhatsAppSettings, WhatsAppDriver),
}

# Per-driver explicit config, or False to disable the driver.
DriverOverrides = Mapping[str, Mapping[str, Any] | bool]


def build_drivers(
    enabled: list[str],
    overrides: DriverOverrides | None = None,
) -> list[AutomationDriver]:
    """Instantiate the enabled drivers with their resolved settings.

    Explicit values from ``overrides`` win over environment variables, which
    win over field defaults.
    """
    overrides = overrides or {}
    unknown = [name for name in [*enabled, *overrides] if name not in DRIVER_FACTORIES]
    if unknown:
        msg = f"Unknown automation driver(s): {', '.join(sorted(set(unknown)))}"
        raise ConfigurationError("app", unknown, msg)

    drivers: list[AutomationDriver] = []
    for name, (settings_cls, driver_cls) in DRIVER_FACTORIES.items():
        if name not in enabled:
            continue
        explicit = overrides.get(name, {})
        if explicit is False:
            logger.info("Automation driver disabled by config: %s", name)
            continue
        if explicit is True:
            explicit = {}

        bad_keys = sorted(set(explicit) - set(settings_cls.model_fields))
        if bad_keys:
            raise ConfigurationError(
                name, bad_keys, f"Unknown config key(s) for '{name}': {', '.join(bad_keys)}"
            )
        drivers.append(driver_cls(settings_cls(**explicit)))
    return drivers


def build_service(
    settings: Settings,
    overrides: DriverOverrides | None = None,
) -> AutomationService:
    """Build the process-wide AutomationService from settings."""
    drivers = build_drivers(settings.get_enabled_drivers(), overrides)
    service = AutomationService(drivers)
    logger.info("Automation drivers ready: %s", service.list_drivers() or ["none"])
    return service

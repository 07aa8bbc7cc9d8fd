"""Application and per-driver settings.

Every value resolves in the same order: an explicit constructor argument,
then the environment variable named after the upper-cased key (with the
driver's prefix, e.g. ``TELEGRAM_BOT_TOKEN``), then the field default.
Settings are resolved once at startup and injected into the drivers.
"""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ALL_DRIVERS = "slack,telegram,n8n,whatsapp"


def _under_pytest() -> bool:
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def _env_file() -> str | None:
    if _under_pytest():
        return None
    return ".env"


class _EnvAwareSettings(BaseSettings):
    """Skips environment and dotenv sources while running under pytest."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if _under_pytest():
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


class DriverSettings(_EnvAwareSettings):
    """Base for per-driver configuration structs."""

    model_config = SettingsConfigDict(
        env_file=_env_file(), env_file_encoding="utf-8", extra="ignore"
    )

    def missing(self, *keys: str) -> list[str]:
        """Return the keys from ``keys`` whose value is empty."""
        return [key for key in keys if not getattr(self, key)]


class SlackSettings(DriverSettings):
    model_config = SettingsConfigDict(env_prefix="SLACK_")

    webhook_url: str = Field(default="")
    bot_token: str = Field(default="")
    signing_secret: str = Field(default="")
    default_channel: str = Field(default="#general")
    username: str = Field(default="Automation Bot")
    icon_emoji: str = Field(default=":robot_face:")
    api_url: str = Field(default="https://slack.com/api")


class TelegramSettings(DriverSettings):
    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: str = Field(default="")
    # Value passed as secret_token to setWebhook; echoed back by Telegram
    # in X-Telegram-Bot-Api-Secret-Token.
    secret_token: str = Field(default="")
    parse_mode: str = Field(default="Markdown")
    api_url: str = Field(default="https://api.telegram.org")


class N8nSettings(DriverSettings):
    model_config = SettingsConfigDict(env_prefix="N8N_")

    webhook_url: str = Field(default="")
    api_key: str = Field(default="")
    webhook_secret: str = Field(default="")


class WhatsAppSettings(DriverSettings):
    model_config = SettingsConfigDict(env_prefix="WHATSAPP_")

    access_token: str = Field(default="")
    phone_number_id: str = Field(default="")
    verify_token: str = Field(default="")
    app_secret: str = Field(default="")
    api_version: str = Field(default="v18.0")
    api_url: str = Field(default="https://graph.facebook.com")


class Settings(_EnvAwareSettings):
    """Process-wide configuration. All values come from environment variables."""

    # Drivers
    enabled_drivers: str = Field(default=ALL_DRIVERS)

    # Webhooks
    webhooks_enabled: bool = Field(default=True)
    webhook_prefix: str = Field(default="/webhooks")
    webhook_host: str = Field(default="0.0.0.0")
    webhook_port: int = Field(default=8443)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    def get_enabled_drivers(self) -> list[str]:
        """Parse ENABLED_DRIVERS into a list of driver names."""
        if not self.enabled_drivers.strip():
            return []
        return [
            name.strip().lower() for name in self.enabled_drivers.split(",") if name.strip()
        ]

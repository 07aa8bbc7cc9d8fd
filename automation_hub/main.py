"""automation-hub entry point: build the driver registry and serve webhooks."""

import asyncio
import logging

from automation_hub.app import build_service
from automation_hub.config import Settings
from automation_hub.webhooks.server import WebhookServer

settings = Settings()

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


async def serve() -> None:
    """Run the webhook server until cancelled."""
    service = build_service(settings)
    server = WebhookServer(service, settings)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        await service.close()


def main() -> None:
    """Start the webhook server with the configured drivers."""
    logger.info("Starting automation-hub...")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()

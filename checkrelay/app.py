"""
Application factory and main entry point.
"""

import sys
import asyncio

from checkrelay.core.config import Settings, settings
from checkrelay.core.logging import setup_logging, get_logger
from checkrelay.services.github.client import GitHubClient
from checkrelay.services.processor import BuildProcessor
from checkrelay.services.travis.client import TravisClient
from checkrelay.state.memory import BuildMemory
from checkrelay.state.serializer import EventSerializer
from checkrelay.webhooks.github import RelayContext
from checkrelay.webhooks.server import create_webhook_app, start_webhook_server

logger = get_logger(__name__)


def create_relay(config: Settings) -> RelayContext:
    """Wire clients, memory and the event serializer from settings."""
    github = GitHubClient(config.github_token, app_id=config.github_app_id, base_url=config.github_api_url)
    travis = TravisClient(
        config.travis_token,
        read_timeout=config.log_read_timeout,
        retry_count=config.log_retry_count,
        retry_backoff=config.log_retry_backoff,
        required_event_type=config.required_event_type,
    )
    processor = BuildProcessor(travis, github, BuildMemory())
    serializer = EventSerializer(processor.process, ceiling=config.coalesce_ceiling)
    return RelayContext(github=github, serializer=serializer, rescan_command=config.rescan_command)


async def main() -> None:
    """Main application entry point."""
    setup_logging(settings.log_level)
    logger.info("Starting check relay...")

    if not settings.github_token:
        logger.error("GITHUB_TOKEN not set!")
        sys.exit(1)

    app = create_webhook_app(create_relay(settings), settings.webhook_path)
    runner = await start_webhook_server(app, settings.webhook_host, settings.webhook_port)

    # Keep running until cancelled
    stop_signal = asyncio.Event()
    try:
        await stop_signal.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()

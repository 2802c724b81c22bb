"""
Webhook server setup.
"""

from aiohttp import web

from checkrelay.core.logging import get_logger
from checkrelay.webhooks.github import RELAY_KEY, RelayContext, handle_github_event

logger = get_logger(__name__)


def create_webhook_app(relay: RelayContext, path: str = "/webhook/github") -> web.Application:
    """Create the aiohttp application serving the webhook route."""
    app = web.Application()
    app[RELAY_KEY] = relay
    app.router.add_post(path, handle_github_event)
    return app


async def start_webhook_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start the webhook server.

    Args:
        app: Application created by create_webhook_app
        host: Host to bind to
        port: Port to bind to

    Returns:
        The runner, to be cleaned up on shutdown
    """
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Webhook server started on {host}:{port}")
    return runner

"""
GitHub webhook handlers for status and issue_comment events.
"""

from dataclasses import dataclass
from typing import Any

from aiohttp import web

from checkrelay.core.exceptions import GitHubAPIError, MalformedEventError
from checkrelay.core.logging import get_logger
from checkrelay.services.github.client import GitHubClient
from checkrelay.services.travis.client import TravisClient
from checkrelay.state.serializer import EventSerializer

logger = get_logger(__name__)


@dataclass
class RelayContext:
    """Services shared by the webhook handlers."""

    github: GitHubClient
    serializer: EventSerializer
    rescan_command: str = "/ci rescan"


RELAY_KEY = web.AppKey("relay", RelayContext)


async def handle_status(relay: RelayContext, payload: dict[str, Any]) -> str:
    """Process a commit status event."""
    logger.info(f"Processing status update {payload.get('id')}")
    try:
        build = TravisClient.parse_status(payload)
    except MalformedEventError as e:
        logger.info(f"No Travis info detected in status update {payload.get('id')}: {e}")
        return "Ignored status"

    admitted = await relay.serializer.submit(build)
    logger.info(f"Finished processing status update {payload.get('id')}")
    return "Processed" if admitted else "Dropped"


def _is_rescan_request(relay: RelayContext, payload: dict[str, Any]) -> bool:
    issue = payload.get("issue") or {}
    comment = payload.get("comment") or {}
    body = str(comment.get("body") or "").strip().lower()
    return (
        issue.get("pull_request") is not None
        and payload.get("action") != "deleted"
        and body == relay.rescan_command.lower()
    )


async def handle_issue_comment(relay: RelayContext, payload: dict[str, Any]) -> str:
    """Process a rescan command left on a pull request."""
    if not _is_rescan_request(relay, payload):
        return "Ignored comment"

    number = payload["issue"]["number"]
    owner = payload["repository"]["owner"]["login"]
    repo = payload["repository"]["name"]
    logger.info(f"Rescan requested for PR {number} in {owner}/{repo}")

    try:
        await relay.github.delete_comment(owner, repo, payload["comment"]["id"])
    except GitHubAPIError as e:
        logger.warning(f"Could not delete rescan comment on PR {number}: {e}")

    try:
        head_sha = await relay.github.get_pull_request_head(owner, repo, number)
        status = await relay.github.get_latest_travis_status(owner, repo, head_sha)
    except GitHubAPIError as e:
        logger.error(f"Failed to look up Travis status for PR {number}: {e}")
        return "Rescan failed"

    if status is None:
        logger.info(f"No Travis run found for PR {number} in {owner}/{repo}")
        return "No Travis run"

    status_payload = {**status, "sha": head_sha, "repository": payload["repository"]}
    try:
        build = TravisClient.parse_status(status_payload)
    except MalformedEventError as e:
        logger.info(f"Could not extract build info from latest Travis run for PR {number}: {e}")
        return "No Travis run"

    await relay.serializer.submit(build)
    return "Processed"


async def handle_github_event(request: web.Request) -> web.Response:
    """Handle GitHub App webhook events."""
    event = request.headers.get("X-GitHub-Event")
    if event not in ("status", "issue_comment"):
        return web.Response(status=200, text="Ignored event")

    relay = request.app[RELAY_KEY]
    try:
        payload = await request.json()
    except ValueError:
        logger.warning(f"Received {event} event with invalid JSON body")
        return web.Response(status=400, text="Invalid JSON")

    try:
        if event == "status":
            text = await handle_status(relay, payload)
        else:
            text = await handle_issue_comment(relay, payload)
        return web.Response(status=200, text=text)
    except Exception as e:
        logger.error(f"Webhook error: {e}")
        return web.Response(status=500, text="Internal Server Error")

"""
GitHub API client for check runs and pull request rescans.
"""

from typing import Any

import httpx

from checkrelay.core.logging import get_logger
from checkrelay.core.exceptions import CheckPublishError, GitHubAPIError
from .schemas import CheckRunRequest

logger = get_logger(__name__)

TRAVIS_STATUS_CONTEXT = "continuous-integration/travis-ci"


class GitHubClient:
    """Client for GitHub Checks API operations."""

    BASE_URL = "https://api.github.com"

    def __init__(self, token: str, app_id: int | None = None, base_url: str | None = None, timeout: float = 10.0):
        self._token = token
        self._app_id = app_id
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def _repo_url(self, owner: str, repo: str) -> str:
        return f"{self._base_url}/repos/{owner}/{repo}"

    async def create_check(self, owner: str, repo: str, request: CheckRunRequest) -> str:
        """
        Create a check run.

        Returns:
            The new check run id

        Raises:
            CheckPublishError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/check-runs"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(url, headers=self._headers, json=request.to_dict())
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise CheckPublishError(f"Failed to create check '{request.name}': {e}") from e

        try:
            return str(response.json()["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise CheckPublishError(f"Unexpected create response for check '{request.name}'") from e

    async def update_check(self, owner: str, repo: str, check_run_id: str, request: CheckRunRequest) -> None:
        """
        Update an existing check run.

        Raises:
            CheckPublishError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/check-runs/{check_run_id}"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.patch(url, headers=self._headers, json=request.to_dict())
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise CheckPublishError(f"Failed to update check {check_run_id}: {e}") from e

    async def list_checks_for_ref(self, owner: str, repo: str, ref: str) -> list[dict[str, Any]]:
        """
        List check runs on a commit, limited to this app when an app id is configured.

        Raises:
            GitHubAPIError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/commits/{ref}/check-runs"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(url, headers=self._headers, params={"per_page": 100})
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to list checks for {ref}: {e}") from e

        check_runs = response.json().get("check_runs", [])
        if self._app_id is None:
            return check_runs
        return [c for c in check_runs if (c.get("app") or {}).get("id") == self._app_id]

    async def get_pull_request_head(self, owner: str, repo: str, number: int) -> str:
        """
        Get the head commit SHA of a pull request.

        Raises:
            GitHubAPIError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/pulls/{number}"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(url, headers=self._headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to get pull request {number}: {e}") from e

        return response.json()["head"]["sha"]

    async def get_latest_travis_status(self, owner: str, repo: str, ref: str) -> dict[str, Any] | None:
        """
        Get the most recent Travis commit status for a ref.

        Raises:
            GitHubAPIError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/commits/{ref}/statuses"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(url, headers=self._headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to list statuses for {ref}: {e}") from e

        # Statuses are returned newest first
        for status in response.json():
            if str(status.get("context", "")).startswith(TRAVIS_STATUS_CONTEXT):
                return status
        return None

    async def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        """
        Delete an issue comment.

        Raises:
            GitHubAPIError: If API call fails
        """
        url = f"{self._repo_url(owner, repo)}/issues/comments/{comment_id}"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.delete(url, headers=self._headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to delete comment {comment_id}: {e}") from e

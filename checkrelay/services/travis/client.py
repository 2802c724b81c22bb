"""
Travis CI API client: build identity, labeled job discovery and log output.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import httpx

from checkrelay.core.exceptions import (
    LogStreamExhaustedError,
    MalformedEventError,
    ProviderFetchError,
    StreamIncompleteError,
)
from checkrelay.core.logging import get_logger
from checkrelay.models.jobs import BuildInfo, JobRecord
from .extractor import DEFAULT_READ_TIMEOUT, read_output_block

logger = get_logger(__name__)

_BUILD_ID_RE = re.compile(r"/builds/(\d+)")
_DOMAIN_RE = re.compile(r"//(travis-ci\.\w+)/", re.IGNORECASE)
_CHECK_NAME_RE = re.compile(r"""CHECK_NAME=('.*?'|".*?"|\S+)""")


def extract_check_name(config: Any) -> str | None:
    """
    Extract the check label from a job's env configuration.

    Accepts ``CHECK_NAME=value`` where value is single-quoted, double-quoted
    or a bare token. Quotes are stripped.
    """
    if isinstance(config, (list, tuple)):
        config = " ".join(str(item) for item in config)
    if not isinstance(config, str):
        return None

    match = _CHECK_NAME_RE.search(config)
    if not match:
        return None
    name = match.group(1).replace('"', "").replace("'", "")
    return name or None


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TravisClient:
    """Client for the Travis CI v3 API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        retry_count: int = 10,
        retry_backoff: float = 3.0,
        required_event_type: str | None = "pull_request",
        timeout: float = 10.0,
    ):
        self._token = token
        self._read_timeout = read_timeout
        self._retry_count = retry_count
        self._retry_backoff = retry_backoff
        self._required_event_type = required_event_type
        self._timeout = timeout

    @staticmethod
    def parse_status(payload: dict[str, Any]) -> BuildInfo:
        """
        Derive build identity from a GitHub status payload.

        Raises:
            MalformedEventError: If the payload does not point at a Travis build
        """
        try:
            target_url = payload.get("target_url") or ""
            head_sha = payload["sha"]
            repo_name = payload["repository"]["name"]
            repo_owner = payload["repository"]["owner"]["login"]
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedEventError(f"Status payload is missing {e}") from e

        build_match = _BUILD_ID_RE.search(target_url)
        domain_match = _DOMAIN_RE.search(target_url)
        if not build_match or not domain_match:
            raise MalformedEventError(f"No Travis build in target URL '{target_url}'")

        head_branch = None
        branches = payload.get("branches") or []
        if branches and isinstance(branches[0], dict):
            head_branch = branches[0].get("name")

        return BuildInfo(
            domain=domain_match.group(1).lower(),
            id=build_match.group(1),
            owner=repo_owner,
            repo=repo_name,
            head_sha=head_sha,
            head_branch=head_branch,
        )

    def _base_url(self, build: BuildInfo) -> str:
        return f"https://api.{build.domain}"

    def _headers(self, build: BuildInfo) -> dict[str, str]:
        headers = {"Travis-API-Version": "3"}
        if build.domain == "travis-ci.com" and self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    def _job_url(self, build: BuildInfo, job_id: str) -> str:
        return f"https://{build.domain}/{build.owner}/{build.repo}/jobs/{job_id}"

    async def fetch_jobs(self, build: BuildInfo) -> list[JobRecord]:
        """
        Fetch the labeled jobs of a build.

        Provider failures are logged and reported as no jobs for this cycle.

        Returns:
            Job records in provider order, unlabeled jobs excluded
        """
        url = f"{self._base_url(build)}/build/{build.id}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    url,
                    headers=self._headers(build),
                    params={"include": "build.jobs,job.config"},
                )
            response.raise_for_status()
            data = response.json()
            jobs = data["jobs"]
        except httpx.HTTPError as e:
            logger.error(f"Failed to load job info for build {build.id}: {e}")
            return []
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed build response for build {build.id}: {e}")
            return []

        event_type = data.get("event_type")
        if self._required_event_type and event_type and event_type != self._required_event_type:
            logger.info(
                f"Skipping build {build.id}: triggered by '{event_type}', "
                f"not '{self._required_event_type}'"
            )
            return []

        fetched_at = _now_iso()
        records = []
        try:
            for job in jobs:
                record = self._to_record(build, job, fetched_at)
                if record is not None:
                    records.append(record)
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"Malformed build response for build {build.id}: {e}")
            return []
        return records

    def _to_record(self, build: BuildInfo, job: dict[str, Any], fetched_at: str) -> JobRecord | None:
        config = job.get("config") or {}
        name = extract_check_name(config.get("env") if isinstance(config, dict) else None)
        if not name:
            return None

        job_id = str(job["id"])
        logger.debug(f"Detected job '{name}' in state '{job.get('state')}'")
        return JobRecord(
            job_id=job_id,
            name=name,
            state=job.get("state") or "",
            started_at=job.get("started_at") or fetched_at,
            finished_at=job.get("finished_at"),
            ignore_failure=bool(job.get("allow_failure")),
            url=self._job_url(build, job_id),
        )

    async def _log_lines(self, build: BuildInfo, job_id: str) -> AsyncIterator[str]:
        url = f"{self._base_url(build)}/job/{job_id}/log.txt"
        logger.debug(f"Getting log stream for job {job_id}")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream("GET", url, headers=self._headers(build)) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        yield line
        except httpx.HTTPError as e:
            raise ProviderFetchError(f"Failed to stream log for job {job_id}: {e}") from e

    async def read_job_output(self, build: BuildInfo, record: JobRecord) -> dict[str, Any] | None:
        """Single extraction attempt for a job's fenced output block."""
        return await read_output_block(
            self._log_lines(build, record.job_id),
            job_id=record.job_id,
            timeout=self._read_timeout,
        )

    async def get_job_output(self, build: BuildInfo, record: JobRecord) -> dict[str, Any] | None:
        """
        Fetch a job's structured check output, retrying incomplete streams.

        Returns:
            The output object, or None when the job log has no output block

        Raises:
            LogStreamExhaustedError: If every attempt ended with an incomplete stream
            OutputParseError: If the output block is malformed (not retried)
        """
        tries = self._retry_count
        while tries > 0:
            try:
                return await self.read_job_output(build, record)
            except StreamIncompleteError:
                tries -= 1
                if tries > 0:
                    logger.debug(
                        f"Retrying incomplete log for job {record.job_id} in "
                        f"{self._retry_backoff}s ({tries} tries left)"
                    )
                    await asyncio.sleep(self._retry_backoff)

        raise LogStreamExhaustedError(record.job_id, self._retry_count)

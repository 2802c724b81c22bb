"""
Publishing of job records as GitHub check runs.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from checkrelay.core.exceptions import CheckPublishError
from checkrelay.core.logging import get_logger
from checkrelay.models.jobs import BuildInfo, JobRecord
from checkrelay.services.github.client import GitHubClient
from checkrelay.services.github.schemas import CheckRunRequest
from checkrelay.services.reconcile import JobDiff

logger = get_logger(__name__)

GetJobOutput = Callable[[JobRecord], Awaitable[dict[str, Any] | None]]


@dataclass
class PublishResult:
    """Outcome of one publication pass."""

    created: list[JobRecord] = field(default_factory=list)
    updated: list[JobRecord] = field(default_factory=list)
    failed_creates: list[JobRecord] = field(default_factory=list)
    failed_updates: list[JobRecord] = field(default_factory=list)


class CheckPublisher:
    """Creates and updates the check runs of one build."""

    def __init__(self, client: GitHubClient, build: BuildInfo, get_job_output: GetJobOutput):
        self._client = client
        self._build = build
        self._get_job_output = get_job_output

    async def _add_completion_info(self, request: CheckRunRequest, record: JobRecord) -> None:
        request.add_completion(record)
        try:
            output = await self._get_job_output(record)
        except Exception as e:
            logger.error(
                f"Error getting output for job {record.job_id}, output will be skipped: {e}"
            )
            return
        if output:
            request.output = output

    async def create_check(self, record: JobRecord) -> str | None:
        """
        Create the check for a job and annotate the record with its id.

        Returns:
            The check run id, or None if creation failed
        """
        request = CheckRunRequest.for_job(self._build, record)
        if request.is_completed:
            await self._add_completion_info(request, record)

        logger.debug(f"Creating check for job {record.job_id}: {request.to_dict()}")
        try:
            check_run_id = await self._client.create_check(self._build.owner, self._build.repo, request)
        except CheckPublishError as e:
            logger.error(f"Error creating check for job {record.job_id}: {e}")
            return None

        record.check_run_id = check_run_id
        logger.debug(f"Check {check_run_id} created for job {record.job_id}")
        return check_run_id

    async def update_check(self, record: JobRecord) -> bool:
        """
        Apply a job's current state to its existing check.

        Returns:
            True if the update was accepted
        """
        if not record.check_run_id:
            logger.warning(f"Job {record.job_id} has no check to update")
            return False

        request = CheckRunRequest.for_job(self._build, record, for_update=True)
        if request.is_completed:
            await self._add_completion_info(request, record)

        logger.debug(f"Updating check {record.check_run_id} for job {record.job_id}: {request.to_dict()}")
        try:
            await self._client.update_check(
                self._build.owner, self._build.repo, record.check_run_id, request
            )
        except CheckPublishError as e:
            logger.error(f"Error updating check {record.check_run_id} for job {record.job_id}: {e}")
            return False

        logger.debug(f"Check {record.check_run_id} updated for job {record.job_id}")
        return True

    async def publish(self, diff: JobDiff) -> PublishResult:
        """Run every create and update of a diff concurrently with isolated failures."""
        operations = [self.create_check(r) for r in diff.create]
        operations += [self.update_check(r) for r in diff.update]
        outcomes = await asyncio.gather(*operations, return_exceptions=True)

        result = PublishResult()
        records = list(diff.create) + list(diff.update)
        for index, (record, outcome) in enumerate(zip(records, outcomes)):
            is_create = index < len(diff.create)
            if isinstance(outcome, BaseException):
                logger.error(f"Unexpected error publishing check for job {record.job_id}: {outcome}")
                outcome = None
            if is_create:
                (result.created if outcome else result.failed_creates).append(record)
            else:
                (result.updated if outcome else result.failed_updates).append(record)
        return result

"""
One reconciliation pass: fetch jobs, diff against memory, publish checks.
"""

from functools import partial
from typing import Any

from checkrelay.core.exceptions import GitHubAPIError
from checkrelay.core.logging import get_logger
from checkrelay.models.jobs import BuildInfo, JobRecord
from checkrelay.services.github.client import GitHubClient
from checkrelay.services.github.schemas import parse_external_id
from checkrelay.services.publisher import CheckPublisher
from checkrelay.services.reconcile import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    ReconciliationEngine,
    derive_status,
)
from checkrelay.services.travis.client import TravisClient
from checkrelay.state.memory import BuildMemory

logger = get_logger(__name__)

# Representative job state for each check status, used when rebuilding
# memory from existing checks. Only the status bucket is compared.
_STATE_FOR_STATUS = {
    STATUS_COMPLETED: "passed",
    STATUS_IN_PROGRESS: "started",
}


def record_from_check_run(check: dict[str, Any], job_id: str) -> JobRecord:
    """Rebuild a job record from an existing check run."""
    return JobRecord(
        job_id=job_id,
        name=check.get("name", ""),
        state=_STATE_FOR_STATUS.get(check.get("status"), "created"),
        started_at=check.get("started_at") or "",
        finished_at=check.get("completed_at"),
        ignore_failure=False,
        url=check.get("details_url") or "",
        check_run_id=str(check["id"]),
    )


class BuildProcessor:
    """Runs reconciliation passes for builds."""

    def __init__(
        self,
        travis: TravisClient,
        github: GitHubClient,
        memory: BuildMemory,
        engine: ReconciliationEngine | None = None,
    ):
        self._travis = travis
        self._github = github
        self._memory = memory
        self._engine = engine or ReconciliationEngine()

    async def _recover_previous(self, build: BuildInfo) -> list[JobRecord]:
        try:
            checks = await self._github.list_checks_for_ref(build.owner, build.repo, build.head_sha)
        except GitHubAPIError as e:
            logger.error(f"Error fetching existing checks for build {build.id}: {e}")
            return []

        records = []
        for check in checks:
            parsed = parse_external_id(check.get("external_id"))
            # External ids carry the build id only, not the Travis domain
            if parsed is None or parsed[0] != build.id:
                continue
            records.append(record_from_check_run(check, parsed[1]))
        logger.debug(f"Recovered {len(records)} existing checks for build {build.id}")
        return records

    async def process(self, build: BuildInfo) -> None:
        """Run one fetch, diff and publish cycle for a build."""
        jobs = await self._travis.fetch_jobs(build)
        if not jobs:
            logger.info(f"No supported jobs for build {build.id}")
            return
        logger.info(f"Discovered {len(jobs)} supported jobs for build {build.id}")

        previous = await self._memory.replace(build.key, jobs)
        if not previous:
            previous = await self._recover_previous(build)
        # Jobs whose check was never created are created again
        previous = [r for r in previous if r.check_run_id]

        diff = self._engine.diff(previous, jobs)
        pending = sum(1 for r in jobs if derive_status(r) != STATUS_COMPLETED)
        logger.info(f"Pending checks for build {build.id}: {pending}")
        logger.info(f"Will create {len(diff.create)} checks and update {len(diff.update)} checks")

        publisher = CheckPublisher(self._github, build, partial(self._travis.get_job_output, build))
        result = await publisher.publish(diff)

        if pending == 0:
            logger.info(f"No remaining pending jobs, forgetting build {build.id}")
            await self._memory.delete(build.key)
            return

        failed = {r.job_id for r in result.failed_updates}
        previous_by_id = {r.job_id: r for r in previous}
        tracked = [r for r in jobs if r.check_run_id and r.job_id not in failed]
        restored = [previous_by_id[job_id] for job_id in failed]
        await self._memory.update(build.key, tracked + restored)

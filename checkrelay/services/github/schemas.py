"""
Request bodies for the GitHub Checks API.
"""

from dataclasses import dataclass, asdict
from typing import Any

from checkrelay.models.jobs import BuildInfo, JobRecord
from checkrelay.services.reconcile import STATUS_COMPLETED, derive_conclusion, derive_status


def external_id_for(build: BuildInfo, job_id: str) -> str:
    """Check run external id linking a check to its Travis job."""
    return f"{build.id}/{job_id}"


def parse_external_id(external_id: str | None) -> tuple[str, str] | None:
    """Split an external id into (build id, job id)."""
    if not external_id or "/" not in external_id:
        return None
    build_id, job_id = external_id.split("/", 1)
    return build_id, job_id


@dataclass
class CheckRunRequest:
    """Payload for a check run create or update call."""

    name: str
    status: str
    started_at: str
    details_url: str
    external_id: str
    head_sha: str | None = None
    head_branch: str | None = None
    conclusion: str | None = None
    completed_at: str | None = None
    output: dict[str, Any] | None = None

    @classmethod
    def for_job(cls, build: BuildInfo, record: JobRecord, for_update: bool = False) -> "CheckRunRequest":
        """Build the request for a job; head ref fields are sent on create only."""
        request = cls(
            name=record.name,
            status=derive_status(record),
            started_at=record.started_at,
            details_url=record.url,
            external_id=external_id_for(build, record.job_id),
        )
        if not for_update:
            request.head_sha = build.head_sha
            request.head_branch = build.head_branch
        return request

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def add_completion(self, record: JobRecord) -> None:
        """Attach conclusion and completion time for a finished job."""
        self.conclusion = derive_conclusion(record)
        self.completed_at = record.finished_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON body, dropping unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}

"""
Diffing of stored job snapshots against freshly fetched job state.
"""

from dataclasses import dataclass, field
from typing import Iterable

from checkrelay.models.jobs import JobRecord

FINISHED_STATES = frozenset({"passed", "failed", "errored", "canceled"})

STATUS_COMPLETED = "completed"
STATUS_IN_PROGRESS = "in_progress"
STATUS_QUEUED = "queued"


def derive_status(record: JobRecord) -> str:
    """Map a Travis job state onto a check run status."""
    if record.state in FINISHED_STATES:
        return STATUS_COMPLETED
    if record.state == "started":
        return STATUS_IN_PROGRESS
    return STATUS_QUEUED


def derive_conclusion(record: JobRecord) -> str:
    """Map a finished Travis job onto a check run conclusion."""
    if record.state == "passed":
        return "success"
    if record.state == "failed" and not record.ignore_failure:
        return "failure"
    if record.state == "canceled":
        return "cancelled"
    return "neutral"


@dataclass
class JobDiff:
    """Checks to create and checks to update for one pass."""

    create: list[JobRecord] = field(default_factory=list)
    update: list[JobRecord] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.create or self.update)


class ReconciliationEngine:
    """Computes the minimal set of check operations between two snapshots."""

    def diff(self, previous: Iterable[JobRecord], current: Iterable[JobRecord]) -> JobDiff:
        """
        Partition current records into creates and updates.

        Matched records inherit the previous check run id. Records present
        only in ``previous`` produce no operation.
        """
        by_id = {record.job_id: record for record in previous}
        result = JobDiff()

        for record in current:
            old = by_id.get(record.job_id)
            if old is None:
                result.create.append(record)
                continue

            record.check_run_id = old.check_run_id
            if derive_status(record) != derive_status(old) or record.name != old.name:
                result.update.append(record)

        return result

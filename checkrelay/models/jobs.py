"""
Data models for builds and the labeled jobs tracked as checks.
"""

from dataclasses import dataclass, asdict, fields
from typing import Any


@dataclass(frozen=True)
class BuildInfo:
    """Identity of one CI build, derived once per webhook event."""

    domain: str
    id: str
    owner: str
    repo: str
    head_sha: str
    head_branch: str | None = None

    @property
    def key(self) -> str:
        """Concurrency key; build ids are only unique per Travis installation."""
        return f"{self.domain}/{self.id}"


@dataclass
class JobRecord:
    """A labeled build step, tracked as one named check."""

    job_id: str
    name: str
    state: str
    started_at: str
    finished_at: str | None
    ignore_failure: bool
    url: str
    check_run_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary for persistence."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        """Rebuild a record from persisted data, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

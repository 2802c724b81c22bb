"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_test_token")
    monkeypatch.setenv("GITHUB_APP_ID", "4242")
    monkeypatch.setenv("TRAVIS_TOKEN", "travis_test_token")


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def build_info():
    """Create a BuildInfo for a travis-ci.com build."""
    from checkrelay.models.jobs import BuildInfo
    return BuildInfo(
        domain="travis-ci.com",
        id="1001",
        owner="octo",
        repo="widgets",
        head_sha="abc123",
        head_branch="feature",
    )


@pytest.fixture
def make_record():
    """Factory for JobRecord instances."""
    from checkrelay.models.jobs import JobRecord

    def _make(job_id="1", name="Lint", state="created", check_run_id=None, ignore_failure=False):
        return JobRecord(
            job_id=job_id,
            name=name,
            state=state,
            started_at="2024-01-01T00:00:00Z",
            finished_at="2024-01-01T00:05:00Z" if state in ("passed", "failed", "errored", "canceled") else None,
            ignore_failure=ignore_failure,
            url=f"https://travis-ci.com/octo/widgets/jobs/{job_id}",
            check_run_id=check_run_id,
        )

    return _make


@pytest.fixture
def status_payload():
    """Create a GitHub status webhook payload pointing at a Travis build."""
    return {
        "id": 555,
        "sha": "abc123",
        "target_url": "https://travis-ci.com/octo/widgets/builds/1001?utm_source=github_status",
        "context": "continuous-integration/travis-ci/pr",
        "branches": [{"name": "feature"}],
        "repository": {"name": "widgets", "owner": {"login": "octo"}},
    }


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_github():
    """Create a mock GitHubClient."""
    github = MagicMock()
    github.create_check = AsyncMock(return_value="9001")
    github.update_check = AsyncMock(return_value=None)
    github.list_checks_for_ref = AsyncMock(return_value=[])
    github.get_pull_request_head = AsyncMock(return_value="abc123")
    github.get_latest_travis_status = AsyncMock(return_value=None)
    github.delete_comment = AsyncMock(return_value=None)
    return github


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def github_client():
    """Create a GitHubClient with test config."""
    from checkrelay.services.github.client import GitHubClient
    return GitHubClient("ghs_test", app_id=4242)


@pytest.fixture
def travis_client():
    """Create a TravisClient that does not wait between retries."""
    from checkrelay.services.travis.client import TravisClient
    return TravisClient("travis_test", read_timeout=1.0, retry_count=3, retry_backoff=0)


@pytest.fixture
def memory():
    """Create an empty BuildMemory."""
    from checkrelay.state.memory import BuildMemory
    return BuildMemory()

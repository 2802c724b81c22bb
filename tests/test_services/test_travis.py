"""
Tests for Travis service.
"""

import time
import pytest
from unittest.mock import patch, AsyncMock, MagicMock
import httpx


def _build_response(jobs, event_type="pull_request"):
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json.return_value = {"id": 1001, "event_type": event_type, "jobs": jobs}
    return response


def _job(job_id, env, state="started", started_at="2024-01-01T00:00:00Z", allow_failure=False):
    return {
        "id": job_id,
        "state": state,
        "started_at": started_at,
        "finished_at": None,
        "allow_failure": allow_failure,
        "config": {"env": env},
    }


class TestExtractCheckName:
    """Tests for the CHECK_NAME label parser."""

    def test_bare_token(self):
        from checkrelay.services.travis.client import extract_check_name
        assert extract_check_name("FOO=1 CHECK_NAME=Lint BAR=2") == "Lint"

    def test_double_quoted(self):
        from checkrelay.services.travis.client import extract_check_name
        assert extract_check_name('CHECK_NAME="Unit tests" OTHER=x') == "Unit tests"

    def test_single_quoted(self):
        from checkrelay.services.travis.client import extract_check_name
        assert extract_check_name("CHECK_NAME='Docs build'") == "Docs build"

    def test_unlabeled(self):
        from checkrelay.services.travis.client import extract_check_name
        assert extract_check_name("PYTHON=3.12") is None
        assert extract_check_name(None) is None

    def test_env_list(self):
        from checkrelay.services.travis.client import extract_check_name
        assert extract_check_name(["A=1", "CHECK_NAME=Lint"]) == "Lint"


class TestParseStatus:
    """Tests for build identity extraction."""

    def test_parse_status(self, status_payload):
        from checkrelay.services.travis.client import TravisClient

        build = TravisClient.parse_status(status_payload)

        assert build.domain == "travis-ci.com"
        assert build.id == "1001"
        assert build.owner == "octo"
        assert build.repo == "widgets"
        assert build.head_sha == "abc123"
        assert build.head_branch == "feature"

    def test_domain_lowercased(self, status_payload):
        from checkrelay.services.travis.client import TravisClient

        status_payload["target_url"] = "https://Travis-CI.org/octo/widgets/builds/42"
        assert TravisClient.parse_status(status_payload).domain == "travis-ci.org"

    def test_missing_branches(self, status_payload):
        from checkrelay.services.travis.client import TravisClient

        del status_payload["branches"]
        assert TravisClient.parse_status(status_payload).head_branch is None

    def test_non_travis_url_is_malformed(self, status_payload):
        from checkrelay.services.travis.client import TravisClient
        from checkrelay.core.exceptions import MalformedEventError

        status_payload["target_url"] = "https://ci.example.com/run/5"
        with pytest.raises(MalformedEventError):
            TravisClient.parse_status(status_payload)

    def test_missing_repository_is_malformed(self, status_payload):
        from checkrelay.services.travis.client import TravisClient
        from checkrelay.core.exceptions import MalformedEventError

        del status_payload["repository"]
        with pytest.raises(MalformedEventError):
            TravisClient.parse_status(status_payload)


class TestFetchJobs:
    """Tests for labeled job discovery."""

    @pytest.mark.asyncio
    async def test_filters_unlabeled_jobs(self, travis_client, build_info):
        jobs = [
            _job(1, "CHECK_NAME=Lint"),
            _job(2, "PYTHON=3.12"),
            _job(3, 'CHECK_NAME="Unit tests"', state="failed", allow_failure=True),
        ]

        with patch("httpx.AsyncClient") as mock_client:
            client_instance = mock_client.return_value.__aenter__.return_value
            client_instance.get = AsyncMock(return_value=_build_response(jobs))

            records = await travis_client.fetch_jobs(build_info)

        assert [r.job_id for r in records] == ["1", "3"]
        assert records[0].name == "Lint"
        assert records[0].url == "https://travis-ci.com/octo/widgets/jobs/1"
        assert records[1].name == "Unit tests"
        assert records[1].ignore_failure is True
        assert all(r.check_run_id is None for r in records)

    @pytest.mark.asyncio
    async def test_sends_token_to_travis_com(self, travis_client, build_info):
        with patch("httpx.AsyncClient") as mock_client:
            client_instance = mock_client.return_value.__aenter__.return_value
            client_instance.get = AsyncMock(return_value=_build_response([]))

            await travis_client.fetch_jobs(build_info)

            call = client_instance.get.call_args
            assert call.args[0] == "https://api.travis-ci.com/build/1001"
            assert call.kwargs["headers"]["Authorization"] == "token travis_test"
            assert call.kwargs["headers"]["Travis-API-Version"] == "3"

    @pytest.mark.asyncio
    async def test_missing_start_defaults_to_now(self, travis_client, build_info):
        jobs = [_job(1, "CHECK_NAME=Lint", state="created", started_at=None)]

        with patch("httpx.AsyncClient") as mock_client:
            client_instance = mock_client.return_value.__aenter__.return_value
            client_instance.get = AsyncMock(return_value=_build_response(jobs))

            records = await travis_client.fetch_jobs(build_info)

        assert records[0].started_at.endswith("Z")
        assert records[0].started_at.startswith(time.strftime("%Y", time.gmtime()))

    @pytest.mark.asyncio
    async def test_http_error_yields_no_jobs(self, travis_client, build_info):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.HTTPError("Network error")
            )

            assert await travis_client.fetch_jobs(build_info) == []

    @pytest.mark.asyncio
    async def test_malformed_body_yields_no_jobs(self, travis_client, build_info):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.return_value = {"unexpected": True}

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(return_value=response)

            assert await travis_client.fetch_jobs(build_info) == []

    @pytest.mark.asyncio
    async def test_push_build_skipped(self, travis_client, build_info):
        jobs = [_job(1, "CHECK_NAME=Lint")]

        with patch("httpx.AsyncClient") as mock_client:
            client_instance = mock_client.return_value.__aenter__.return_value
            client_instance.get = AsyncMock(return_value=_build_response(jobs, event_type="push"))

            assert await travis_client.fetch_jobs(build_info) == []

    @pytest.mark.asyncio
    async def test_job_without_id_yields_no_jobs(self, travis_client, build_info):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.return_value = {"jobs": [{"state": "started", "config": {"env": "CHECK_NAME=Lint"}}]}

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(return_value=response)

            assert await travis_client.fetch_jobs(build_info) == []

    @pytest.mark.asyncio
    async def test_null_job_entry_yields_no_jobs(self, travis_client, build_info):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.return_value = {"jobs": [None]}

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(return_value=response)

            assert await travis_client.fetch_jobs(build_info) == []

    @pytest.mark.asyncio
    async def test_event_filter_disabled(self, build_info):
        from checkrelay.services.travis.client import TravisClient

        client = TravisClient(required_event_type=None)
        jobs = [_job(1, "CHECK_NAME=Lint")]

        with patch("httpx.AsyncClient") as mock_client:
            client_instance = mock_client.return_value.__aenter__.return_value
            client_instance.get = AsyncMock(return_value=_build_response(jobs, event_type="push"))

            records = await client.fetch_jobs(build_info)

        assert len(records) == 1


class TestGetJobOutput:
    """Tests for the retrying output wrapper."""

    @pytest.mark.asyncio
    async def test_succeeds_before_bound(self, travis_client, build_info, make_record):
        from checkrelay.core.exceptions import StreamIncompleteError

        side_effect = [StreamIncompleteError("cut"), StreamIncompleteError("cut"), {"title": "ok"}]
        with patch.object(travis_client, "read_job_output", AsyncMock(side_effect=side_effect)) as mock_read:
            output = await travis_client.get_job_output(build_info, make_record(state="passed"))

        assert output == {"title": "ok"}
        assert mock_read.await_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_at_bound(self, travis_client, build_info, make_record):
        from checkrelay.core.exceptions import LogStreamExhaustedError, StreamIncompleteError

        with patch.object(
            travis_client, "read_job_output", AsyncMock(side_effect=StreamIncompleteError("cut"))
        ) as mock_read:
            with pytest.raises(LogStreamExhaustedError) as exc_info:
                await travis_client.get_job_output(build_info, make_record(job_id="8", state="passed"))

        assert mock_read.await_count == 3
        assert exc_info.value.job_id == "8"

    @pytest.mark.asyncio
    async def test_parse_error_not_retried(self, travis_client, build_info, make_record):
        from checkrelay.core.exceptions import OutputParseError

        with patch.object(
            travis_client, "read_job_output", AsyncMock(side_effect=OutputParseError("bad"))
        ) as mock_read:
            with pytest.raises(OutputParseError):
                await travis_client.get_job_output(build_info, make_record(state="passed"))

        assert mock_read.await_count == 1

    @pytest.mark.asyncio
    async def test_backoff_between_attempts(self, build_info, make_record):
        from checkrelay.services.travis.client import TravisClient
        from checkrelay.core.exceptions import StreamIncompleteError

        client = TravisClient(retry_count=5, retry_backoff=3.0)
        side_effect = [StreamIncompleteError("cut")] * 2 + [None]

        with patch.object(client, "read_job_output", AsyncMock(side_effect=side_effect)), \
                patch("checkrelay.services.travis.client.asyncio.sleep", AsyncMock()) as mock_sleep:
            assert await client.get_job_output(build_info, make_record(state="passed")) is None

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(3.0)


def _patch_transport(handler):
    """Route httpx.AsyncClient through a MockTransport serving handler."""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    return patch("httpx.AsyncClient", side_effect=factory)


class TestJobOutputStream:
    """Tests for job output read from a streamed HTTP log."""

    @pytest.mark.asyncio
    async def test_fenced_body_parsed(self, travis_client, build_info, make_record):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text='noise\n---output\n{"a":1}\n---\ntrailing\n')

        with _patch_transport(handler):
            output = await travis_client.get_job_output(build_info, make_record(job_id="5", state="passed"))

        assert output == {"a": 1}
        assert len(requests) == 1
        assert str(requests[0].url) == "https://api.travis-ci.com/job/5/log.txt"
        assert requests[0].headers["Authorization"] == "token travis_test"

    @pytest.mark.asyncio
    async def test_finished_log_without_block(self, travis_client, build_info, make_record):
        def handler(request):
            return httpx.Response(200, text="installing\nDone. Your build exited with 0.\n")

        with _patch_transport(handler):
            assert await travis_client.get_job_output(build_info, make_record(state="passed")) is None

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, travis_client, build_info, make_record):
        from checkrelay.core.exceptions import LogStreamExhaustedError

        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(500, text="Internal Server Error")

        with _patch_transport(handler):
            with pytest.raises(LogStreamExhaustedError) as exc_info:
                await travis_client.get_job_output(build_info, make_record(job_id="6", state="passed"))

        assert len(requests) == 3
        assert exc_info.value.job_id == "6"

    @pytest.mark.asyncio
    async def test_truncated_log_retried_until_complete(self, travis_client, build_info, make_record):
        bodies = iter([
            "---output\n{\"a\":",
            "---output\n{\"a\":1}\n---\n",
        ])

        def handler(request):
            return httpx.Response(200, text=next(bodies))

        with _patch_transport(handler):
            output = await travis_client.get_job_output(build_info, make_record(state="passed"))

        assert output == {"a": 1}

"""
Custom application exceptions.
"""


class RelayError(Exception):
    """Base exception for check relay errors."""
    pass


class MalformedEventError(RelayError):
    """Webhook payload carries no extractable build identity."""
    pass


class APIError(RelayError):
    """External API call failed."""
    pass


class ProviderFetchError(APIError):
    """Travis build or log fetch failed."""
    pass


class GitHubAPIError(APIError):
    """GitHub API call failed."""
    pass


class CheckPublishError(GitHubAPIError):
    """Creating or updating a check run failed."""
    pass


class StreamIncompleteError(RelayError):
    """Log stream ended, errored or timed out before a result was reached."""
    pass


class OutputParseError(RelayError):
    """Fenced output block did not contain a JSON object."""
    pass


class LogStreamExhaustedError(RelayError):
    """Log stream for a job never completed within the retry bound."""

    def __init__(self, job_id: str, attempts: int):
        super().__init__(f"Log stream for job {job_id} never completed after {attempts} attempts")
        self.job_id = job_id
        self.attempts = attempts

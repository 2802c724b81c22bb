# GitHub services - Checks API integration
from .client import GitHubClient
from .schemas import CheckRunRequest

__all__ = ["GitHubClient", "CheckRunRequest"]

"""GitHub API access: authentication, discovery, and PR/issue management."""

from .auth import GitHubCredentials, TokenProvider
from .discovery import filter_repositories, find_repositories, repo_name_from_url, should_skip_repository
from .http_client import GitHubClient
from .pr_manager import ArtifactRef, PullRequestManager

__all__ = [
    "ArtifactRef",
    "GitHubClient",
    "GitHubCredentials",
    "PullRequestManager",
    "TokenProvider",
    "filter_repositories",
    "find_repositories",
    "repo_name_from_url",
    "should_skip_repository",
]

"""Exception types shared by the runner, the GitHub helpers, and the processing core."""

from __future__ import annotations

from typing import Optional


class CookstyleRunnerError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(CookstyleRunnerError):
    """Raised when settings are missing or invalid; nothing has started yet."""


class AuthenticationError(CookstyleRunnerError):
    """Credentials were rejected or could not be minted.

    Fatal for the whole run: every remaining repository would fail the same way.
    """


class TransientNetworkError(CookstyleRunnerError):
    """An API or VCS call kept failing after the allowed retries."""


class LintToolError(CookstyleRunnerError):
    """Cookstyle exited unexpectedly or produced output that cannot be trusted."""


class CacheIOError(CookstyleRunnerError):
    """The cache file could not be written."""


class GitHubAPIError(CookstyleRunnerError):
    """A pull request or issue call against the GitHub API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "CookstyleRunnerError",
    "ConfigError",
    "AuthenticationError",
    "TransientNetworkError",
    "LintToolError",
    "CacheIOError",
    "GitHubAPIError",
]

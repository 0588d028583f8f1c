"""Central constants for talking to the GitHub REST API."""

from __future__ import annotations

import os

USER_AGENT = "cookstyle-runner/1.0"
BASE_URL = os.getenv("GCR_GITHUB_API_ENDPOINT", "https://api.github.com")
GIT_HOST = os.getenv("GCR_GIT_HOST", "github.com")
PER_PAGE = 100
REQUEST_TIMEOUT = 90
MAX_RETRIES = int(os.getenv("GCR_HTTP_MAX_RETRIES", "6"))
BACKOFF_BASE_SEC = 2
MAX_WAIT_ON_403 = int(os.getenv("MAX_WAIT_ON_403", "180"))
# search API never returns more than 1000 results per query
MAX_SEARCH_PAGES = 10
# installation tokens live for an hour; refresh a little before that
TOKEN_REFRESH_MARGIN_SEC = 60
APP_JWT_TTL_SEC = 10 * 60

__all__ = [
    "USER_AGENT",
    "BASE_URL",
    "GIT_HOST",
    "PER_PAGE",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "BACKOFF_BASE_SEC",
    "MAX_WAIT_ON_403",
    "MAX_SEARCH_PAGES",
    "TOKEN_REFRESH_MARGIN_SEC",
    "APP_JWT_TTL_SEC",
]

"""Repository discovery through the GitHub search API plus name-based filters."""

from __future__ import annotations

import posixpath
from typing import Iterable, List, Optional
from urllib.parse import quote_plus

from src.errors import AuthenticationError, CookstyleRunnerError
from src.log import get_logger

from .config import MAX_SEARCH_PAGES
from .http_client import GitHubClient

logger = get_logger("github.discovery")


def build_search_query(owner: str, topics: Optional[Iterable[str]] = None) -> str:
    """Return the search qualifier string, e.g. ``org:acme topic:chef topic:cookbook``."""
    parts = [f"org:{owner}"]
    parts.extend(f"topic:{topic.strip()}" for topic in (topics or []) if topic and topic.strip())
    return " ".join(parts)


def find_repositories(client: GitHubClient, owner: str, topics: Optional[Iterable[str]] = None) -> List[str]:
    """Return clone URLs of every repository in ``owner`` carrying all ``topics``.

    API failures are logged and produce an empty list; authentication failures
    propagate because every later call would fail the same way.
    """
    query = build_search_query(owner, topics)
    logger.info("Searching repositories: %s", query)
    try:
        items = client.paged_get(
            f"/search/repositories?q={quote_plus(query)}",
            items_key="items",
            max_pages=MAX_SEARCH_PAGES,
        )
    except AuthenticationError:
        raise
    except CookstyleRunnerError as exc:
        logger.error("Error fetching repositories: %s", exc)
        return []

    urls = [item["clone_url"] for item in items if item.get("clone_url")]
    logger.info("Found %s repositories", len(urls))
    return urls


def repo_name_from_url(repo_url: str) -> str:
    """Return the bare repository name (``.../cookbook.git`` -> ``cookbook``)."""
    name = posixpath.basename(repo_url.rstrip("/"))
    return name[: -len(".git")] if name.endswith(".git") else name


def filter_repositories(repo_urls: List[str], filter_repos: Optional[Iterable[str]]) -> List[str]:
    """Keep URLs whose name contains any of ``filter_repos`` (case-insensitive)."""
    needles = [needle.lower() for needle in (filter_repos or []) if needle]
    if not needles:
        return list(repo_urls)

    logger.info("Filtering repositories to include only: %s", ", ".join(needles))
    filtered = [
        url for url in repo_urls
        if any(needle in repo_name_from_url(url).lower() for needle in needles)
    ]
    logger.info("Found %s repositories matching filter criteria", len(filtered))
    return filtered


def should_skip_repository(
    repo_name: str,
    include_repos: Optional[Iterable[str]] = None,
    exclude_repos: Optional[Iterable[str]] = None,
) -> bool:
    """An include list wins over an exclude list; names must match exactly."""
    include = list(include_repos or [])
    if include:
        return repo_name not in include
    exclude = list(exclude_repos or [])
    if exclude:
        return repo_name in exclude
    return False


__all__ = [
    "build_search_query",
    "filter_repositories",
    "find_repositories",
    "repo_name_from_url",
    "should_skip_repository",
]

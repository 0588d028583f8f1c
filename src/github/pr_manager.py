"""Idempotent create-or-update of pull requests and issues."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from src.errors import GitHubAPIError, TransientNetworkError
from src.log import get_logger

from .http_client import GitHubClient

logger = get_logger("github.pr_manager")

PULL_REQUEST = "pull_request"
ISSUE = "issue"


@dataclass(frozen=True)
class ArtifactRef:
    """Pointer to the pull request or issue a run produced."""

    kind: str
    repo: str
    number: int
    url: str
    title: str
    created: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""


def _expect(resp: requests.Response, expected: int, action: str, repo: str) -> Any:
    if resp.status_code != expected:
        raise GitHubAPIError(
            f"Failed to {action} for {repo}: HTTP {resp.status_code} {_error_message(resp)}".rstrip(),
            status_code=resp.status_code,
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise GitHubAPIError(
            f"Failed to {action} for {repo}: HTTP {resp.status_code} with unreadable body",
            status_code=resp.status_code,
        ) from exc


class PullRequestManager:
    """Creates or refreshes the single open PR per branch and the manual-fix issue."""

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    def create_or_update_pr(
        self,
        repo: str,
        branch: str,
        base: str,
        title: str,
        body: str,
        labels: Optional[Iterable[str]] = None,
    ) -> ArtifactRef:
        """Update the open PR for ``branch`` in place, or open a new one.

        ``repo`` is ``owner/name``. Raises GitHubAPIError on any API failure.
        """
        try:
            return self._create_or_update_pr(repo, branch, base, title, body, list(labels or []))
        except TransientNetworkError as exc:
            raise GitHubAPIError(str(exc)) from exc

    def create_or_update_issue(
        self,
        repo: str,
        title: str,
        body: str,
        labels: Optional[Iterable[str]] = None,
    ) -> ArtifactRef:
        """Update the open issue with the same title, or create one."""
        try:
            return self._create_or_update_issue(repo, title, body, list(labels or []))
        except TransientNetworkError as exc:
            raise GitHubAPIError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Internal helpers

    def _create_or_update_pr(
        self, repo: str, branch: str, base: str, title: str, body: str, labels: List[str]
    ) -> ArtifactRef:
        owner = repo.split("/", 1)[0]
        resp = self.client.request(
            "GET",
            f"/repos/{repo}/pulls",
            params={"state": "open", "head": f"{owner}:{branch}"},
        )
        existing = _expect(resp, 200, "list pull requests", repo) or []

        if existing:
            number = existing[0]["number"]
            resp = self.client.request(
                "PATCH",
                f"/repos/{repo}/pulls/{number}",
                json={"title": title, "body": body},
            )
            pr = _expect(resp, 200, f"update pull request #{number}", repo)
            created = False
            logger.info("[%s] Updated pull request #%s", repo, number)
        else:
            resp = self.client.request(
                "POST",
                f"/repos/{repo}/pulls",
                json={"title": title, "body": body, "head": branch, "base": base},
            )
            pr = _expect(resp, 201, "create pull request", repo)
            number = pr["number"]
            created = True
            logger.info("[%s] Created pull request #%s", repo, number)

        self._add_missing_labels(repo, number, labels)
        return ArtifactRef(
            kind=PULL_REQUEST,
            repo=repo,
            number=number,
            url=pr.get("html_url", ""),
            title=title,
            created=created,
        )

    def _create_or_update_issue(self, repo: str, title: str, body: str, labels: List[str]) -> ArtifactRef:
        open_items = self.client.paged_get(f"/repos/{repo}/issues?state=open", strict=True)
        match = next(
            (item for item in open_items if "pull_request" not in item and item.get("title") == title),
            None,
        )

        if match:
            number = match["number"]
            resp = self.client.request("PATCH", f"/repos/{repo}/issues/{number}", json={"body": body})
            issue = _expect(resp, 200, f"update issue #{number}", repo)
            created = False
            logger.info("[%s] Updated issue #%s", repo, number)
        else:
            resp = self.client.request(
                "POST",
                f"/repos/{repo}/issues",
                json={"title": title, "body": body, "labels": labels},
            )
            issue = _expect(resp, 201, "create issue", repo)
            number = issue["number"]
            created = True
            logger.info("[%s] Created issue #%s", repo, number)

        if not created:
            self._add_missing_labels(repo, number, labels)
        return ArtifactRef(
            kind=ISSUE,
            repo=repo,
            number=number,
            url=issue.get("html_url", ""),
            title=title,
            created=created,
        )

    def _add_missing_labels(self, repo: str, number: int, labels: List[str]) -> None:
        """Union ``labels`` into the labels already on the PR or issue."""
        if not labels:
            return
        resp = self.client.request("GET", f"/repos/{repo}/issues/{number}/labels")
        current = {label.get("name") for label in (_expect(resp, 200, "list labels", repo) or [])}
        missing = [label for label in labels if label not in current]
        if not missing:
            return
        resp = self.client.request("POST", f"/repos/{repo}/issues/{number}/labels", json={"labels": missing})
        _expect(resp, 200, "add labels", repo)
        logger.debug("[%s] Added labels %s to #%s", repo, ", ".join(missing), number)


__all__ = [
    "ArtifactRef",
    "ISSUE",
    "PULL_REQUEST",
    "PullRequestManager",
]

"""Per-repository working-set descriptor."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from src.github.auth import GitHubCredentials
from src.github.discovery import repo_name_from_url


@dataclass(frozen=True)
class RepoContext:
    """Everything one worker needs to process one repository.

    Built once per repository and owned by the worker handling it.
    """

    repo_name: str
    owner: str
    repo_url: str
    repo_dir: Path
    credentials: GitHubCredentials

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"

    @classmethod
    def for_url(
        cls,
        repo_url: str,
        *,
        owner: str,
        workspace_dir: Path | str,
        credentials: GitHubCredentials,
    ) -> "RepoContext":
        repo_name = repo_name_from_url(repo_url)
        return cls(
            repo_name=repo_name,
            owner=owner,
            repo_url=repo_url,
            repo_dir=Path(workspace_dir) / owner / repo_name,
            credentials=credentials,
        )


__all__ = ["RepoContext"]

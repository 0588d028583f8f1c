"""Per-repository outcomes and the batch-level tally built from them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.github.pr_manager import ISSUE, PULL_REQUEST, ArtifactRef


class OutcomeStatus(str, enum.Enum):
    SKIPPED = "skipped"
    NO_ISSUES = "no_issues"
    ISSUES_FOUND = "issues_found"
    ERROR = "error"


@dataclass(frozen=True)
class ArtifactError:
    """A PR or issue that could not be created; the lint outcome still stands."""

    kind: str
    repo: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "repo": self.repo, "message": self.message}


@dataclass(frozen=True)
class ProcessingOutcome:
    repo_name: str
    status: OutcomeStatus
    reason: str = ""
    message: str = ""
    artifact: Optional[ArtifactRef] = None
    artifact_error: Optional[ArtifactError] = None
    elapsed: float = 0.0
    attempts: int = 1

    @classmethod
    def skipped(cls, repo_name: str, reason: str, **kwargs: Any) -> "ProcessingOutcome":
        return cls(repo_name=repo_name, status=OutcomeStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def no_issues(cls, repo_name: str, **kwargs: Any) -> "ProcessingOutcome":
        return cls(repo_name=repo_name, status=OutcomeStatus.NO_ISSUES, **kwargs)

    @classmethod
    def issues_found(
        cls,
        repo_name: str,
        artifact: Optional[ArtifactRef] = None,
        artifact_error: Optional[ArtifactError] = None,
        **kwargs: Any,
    ) -> "ProcessingOutcome":
        return cls(
            repo_name=repo_name,
            status=OutcomeStatus.ISSUES_FOUND,
            artifact=artifact,
            artifact_error=artifact_error,
            **kwargs,
        )

    @classmethod
    def error(cls, repo_name: str, message: str, **kwargs: Any) -> "ProcessingOutcome":
        return cls(repo_name=repo_name, status=OutcomeStatus.ERROR, message=message, **kwargs)

    @property
    def is_error(self) -> bool:
        return self.status is OutcomeStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_name": self.repo_name,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "artifact_error": self.artifact_error.to_dict() if self.artifact_error else None,
            "elapsed": round(self.elapsed, 2),
            "attempts": self.attempts,
        }


@dataclass
class AggregateResult:
    """Final tally for a run; one outcome per repository URL."""

    total: int = 0
    no_issues: int = 0
    issues_found: int = 0
    skipped: int = 0
    errors: int = 0
    retries: int = 0
    prs_created: int = 0
    issues_created: int = 0
    pr_errors: int = 0
    issue_errors: int = 0
    artifacts: List[ArtifactRef] = field(default_factory=list)
    artifact_errors: List[ArtifactError] = field(default_factory=list)
    outcomes: List[ProcessingOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.no_issues + self.issues_found

    def add(self, outcome: ProcessingOutcome) -> None:
        self.outcomes.append(outcome)
        self.total += 1
        self.retries += max(0, outcome.attempts - 1)

        if outcome.status is OutcomeStatus.NO_ISSUES:
            self.no_issues += 1
        elif outcome.status is OutcomeStatus.ISSUES_FOUND:
            self.issues_found += 1
        elif outcome.status is OutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

        if outcome.artifact is not None:
            self.artifacts.append(outcome.artifact)
            if outcome.artifact.kind == PULL_REQUEST:
                self.prs_created += 1
            elif outcome.artifact.kind == ISSUE:
                self.issues_created += 1

        if outcome.artifact_error is not None:
            self.artifact_errors.append(outcome.artifact_error)
            if outcome.artifact_error.kind == PULL_REQUEST:
                self.pr_errors += 1
            elif outcome.artifact_error.kind == ISSUE:
                self.issue_errors += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "no_issues": self.no_issues,
            "issues_found": self.issues_found,
            "skipped": self.skipped,
            "errors": self.errors,
            "retries": self.retries,
            "prs_created": self.prs_created,
            "issues_created": self.issues_created,
            "pr_errors": self.pr_errors,
            "issue_errors": self.issue_errors,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "artifact_errors": [error.to_dict() for error in self.artifact_errors],
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


__all__ = [
    "AggregateResult",
    "ArtifactError",
    "ArtifactRef",
    "OutcomeStatus",
    "ProcessingOutcome",
]

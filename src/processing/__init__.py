"""Repository processing pipeline: cache, git, cookstyle, processor, and scheduler."""

from .cache import Cache, CacheEntry, CacheStats
from .context import RepoContext
from .git_ops import GitOperations
from .lint import LintReport, LintRunner
from .outcomes import AggregateResult, ArtifactError, OutcomeStatus, ProcessingOutcome
from .processor import RepositoryProcessor
from .scheduler import Scheduler

__all__ = [
    "AggregateResult",
    "ArtifactError",
    "Cache",
    "CacheEntry",
    "CacheStats",
    "GitOperations",
    "LintReport",
    "LintRunner",
    "OutcomeStatus",
    "ProcessingOutcome",
    "RepoContext",
    "RepositoryProcessor",
    "Scheduler",
]

"""Per-repository state machine: sync, cache check, lint, then PR or issue."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Optional

from src.errors import AuthenticationError, CacheIOError, GitHubAPIError
from src.github.discovery import should_skip_repository
from src.github.pr_manager import ISSUE, PULL_REQUEST, ArtifactRef, PullRequestManager
from src.log import get_logger

from .cache import Cache
from .changelog import update_changelog
from .context import RepoContext
from .git_ops import GitOperations, UrlProvider
from .lint import LintReport, LintRunner
from .outcomes import ArtifactError, ProcessingOutcome

if TYPE_CHECKING:
    from src.pipeline.config import RunnerSettings

logger = get_logger("processing.processor")

COMMIT_MESSAGE = (
    "Cookstyle auto-corrections\n\n"
    "This change is automatically generated by the GitHub Cookstyle Runner."
)


class RepositoryProcessor:
    """Runs one repository end to end and reports a ProcessingOutcome.

    Every failure is converted into an ERROR outcome except
    AuthenticationError, which the scheduler treats as fatal for the run.
    """

    def __init__(
        self,
        settings: "RunnerSettings",
        cache: Cache,
        lint_runner: LintRunner,
        pr_manager: PullRequestManager,
        url_provider: UrlProvider,
        *,
        git_factory: Callable[..., GitOperations] = GitOperations,
        changelog_updater: Callable[..., bool] = update_changelog,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.lint_runner = lint_runner
        self.pr_manager = pr_manager
        self.url_provider = url_provider
        self.git_factory = git_factory
        self.changelog_updater = changelog_updater
        self._clock = clock

    def process(self, repo_url: str, attempt: int = 1) -> ProcessingOutcome:
        started = self._clock()
        context = RepoContext.for_url(
            repo_url,
            owner=self.settings.owner,
            workspace_dir=self.settings.workspace_dir,
            credentials=self.settings.credentials,
        )
        name = context.repo_name

        if should_skip_repository(name, self.settings.include_repos, self.settings.exclude_repos):
            logger.info("[%s] Skipping: excluded by include/exclude lists", name)
            return ProcessingOutcome.skipped(name, "excluded", attempts=attempt)

        logger.info("[%s] Processing (attempt %s)", name, attempt)
        git = self.git_factory(
            context,
            self.url_provider,
            git_name=self.settings.git_name,
            git_email=self.settings.git_email,
        )
        try:
            return self._process(context, git, started, attempt)
        except AuthenticationError:
            raise
        except Exception as exc:
            logger.exception("[%s] Unexpected error while processing", name)
            return ProcessingOutcome.error(
                name, f"unexpected error: {exc}", elapsed=self._clock() - started, attempts=attempt
            )
        finally:
            if self.settings.cleanup_workdirs:
                git.cleanup()

    # ------------------------------------------------------------------
    # State machine

    def _process(self, context: RepoContext, git: GitOperations, started: float, attempt: int) -> ProcessingOutcome:
        name = context.repo_name

        def fail(message: str) -> ProcessingOutcome:
            logger.error("[%s] %s", name, message)
            return ProcessingOutcome.error(name, message, elapsed=self._clock() - started, attempts=attempt)

        if not git.clone_or_update(self.settings.default_branch):
            return fail("failed to clone or update repository")
        synced_sha = git.current_commit_sha()
        if not synced_sha:
            return fail("could not determine HEAD commit")

        if self._cache_check_enabled(name) and self.cache.up_to_date(name, synced_sha, self.settings.cache_max_age_seconds):
            logger.info("[%s] Unchanged since last run (%s), skipping", name, synced_sha[:12])
            return ProcessingOutcome.skipped(name, "unchanged", elapsed=self._clock() - started, attempts=attempt)

        report = self.lint_runner.run(context)
        if report.error:
            return fail(f"cookstyle failed: {report.error_message}")

        artifact: Optional[ArtifactRef] = None
        artifact_error: Optional[ArtifactError] = None

        if report.auto_correctable_count > 0:
            branch = self.settings.branch_name
            if not git.create_branch(branch):
                return fail(f"failed to create branch {branch}")
            if not git.changes_to_commit():
                logger.warning(
                    "[%s] %s auto-correctable offenses reported but autocorrect changed nothing; no PR opened",
                    name,
                    report.auto_correctable_count,
                )
            else:
                if self.settings.manage_changelog:
                    self.changelog_updater(
                        context.repo_dir, self.settings.changelog_location, self.settings.changelog_marker
                    )
                if not git.commit_all(COMMIT_MESSAGE):
                    return fail("failed to commit auto-corrections")
                if not git.push(branch):
                    return fail(f"failed to push branch {branch}")
                artifact, artifact_error = self._open_pull_request(context, report)
        elif report.manual_count > 0 and self.settings.create_manual_fix_issues:
            artifact, artifact_error = self._open_issue(context, report)

        elapsed = self._clock() - started
        final_sha = git.current_commit_sha() or synced_sha
        self._record(name, final_sha, report, elapsed)

        if not report.has_offenses:
            logger.info("[%s] No offenses found", name)
            return ProcessingOutcome.no_issues(name, elapsed=elapsed, attempts=attempt)
        return ProcessingOutcome.issues_found(
            name, artifact=artifact, artifact_error=artifact_error, elapsed=elapsed, attempts=attempt
        )

    # ------------------------------------------------------------------
    # Helpers

    def _cache_check_enabled(self, repo_name: str) -> bool:
        settings = self.settings
        if not settings.use_cache or settings.force_refresh:
            return False
        return repo_name not in settings.force_refresh_repos

    def _pr_body(self, report: LintReport) -> str:
        parts = [self.settings.pr_body_header.strip()]
        if self.settings.topics:
            parts.append(f"This repo was selected due to the topics of {', '.join(self.settings.topics)}.")
        parts.append(report.pr_description)
        return "\n\n".join(part for part in parts if part)

    def _open_pull_request(self, context: RepoContext, report: LintReport):
        try:
            ref = self.pr_manager.create_or_update_pr(
                context.full_name,
                self.settings.branch_name,
                self.settings.default_branch,
                self.settings.pr_title,
                self._pr_body(report),
                self.settings.pr_labels,
            )
        except GitHubAPIError as exc:
            logger.error("[%s] Pull request failed: %s", context.repo_name, exc)
            return None, ArtifactError(kind=PULL_REQUEST, repo=context.full_name, message=str(exc))
        return ref, None

    def _open_issue(self, context: RepoContext, report: LintReport):
        try:
            ref = self.pr_manager.create_or_update_issue(
                context.full_name,
                self.settings.issue_title,
                report.issue_description,
                self.settings.issue_labels,
            )
        except GitHubAPIError as exc:
            logger.error("[%s] Manual-fix issue failed: %s", context.repo_name, exc)
            return None, ArtifactError(kind=ISSUE, repo=context.full_name, message=str(exc))
        return ref, None

    def _record(self, repo_name: str, sha: str, report: LintReport, elapsed: float) -> None:
        if not self.settings.use_cache:
            return
        try:
            self.cache.update(repo_name, sha, report.has_offenses, report.to_cache_result(), elapsed)
        except CacheIOError as exc:
            logger.warning("[%s] Could not persist cache entry: %s", repo_name, exc)


__all__ = ["COMMIT_MESSAGE", "RepositoryProcessor"]

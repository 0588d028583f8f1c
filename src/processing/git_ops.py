"""Git operations scoped to one repository working copy."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from src.errors import AuthenticationError, CookstyleRunnerError
from src.github.auth import redact_url
from src.log import get_logger

from .commands import CmdResult, CommandRunner, run_cmd
from .context import RepoContext

logger = get_logger("processing.git")

UrlProvider = Callable[[str, str], str]

DEFAULT_GIT_NAME = "Cookstyle Bot"
DEFAULT_GIT_EMAIL = "cookstyle-bot@example.com"
DEFAULT_GIT_TIMEOUT = 300

AUTH_FAILURE_MARKERS = (
    "authentication failed",
    "could not read username",
    "permission denied",
    "returned error: 403",
    "invalid username or password",
)


class GitCommandError(CookstyleRunnerError):
    """A git invocation exited non-zero, timed out, or could not start."""


def is_auth_failure(stderr: str) -> bool:
    lowered = (stderr or "").lower()
    return any(marker in lowered for marker in AUTH_FAILURE_MARKERS)


class GitOperations:
    """Clone/update/branch/commit/push against ``context.repo_dir``.

    Ordinary git failures are logged and reported through boolean or None
    results. Authentication failures raise AuthenticationError because every
    other repository would fail the same way.
    """

    def __init__(
        self,
        context: RepoContext,
        url_provider: UrlProvider,
        *,
        runner: CommandRunner = run_cmd,
        git_name: str = DEFAULT_GIT_NAME,
        git_email: str = DEFAULT_GIT_EMAIL,
        timeout: float = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        self.context = context
        self.url_provider = url_provider
        self.runner = runner
        self.git_name = git_name
        self.git_email = git_email
        self.timeout = timeout

    @property
    def repo_dir(self) -> Path:
        return Path(self.context.repo_dir)

    # ------------------------------------------------------------------
    # Queries

    def repo_exists(self) -> bool:
        if not (self.repo_dir / ".git").exists():
            return False
        try:
            result = self._git("rev-parse", "--is-inside-work-tree")
        except GitCommandError:
            return False
        return result.stdout.strip() == "true"

    def current_commit_sha(self) -> Optional[str]:
        try:
            sha = self._git("rev-parse", "HEAD").stdout.strip()
        except GitCommandError as exc:
            self._log_failure("read HEAD", exc)
            return None
        return sha or None

    def changes_to_commit(self) -> bool:
        try:
            status = self._git("status", "--porcelain").stdout
        except GitCommandError as exc:
            self._log_failure("read status", exc)
            return False
        return any(line.strip() for line in status.splitlines())

    # ------------------------------------------------------------------
    # Sync

    def clone_or_update(self, default_branch: str) -> bool:
        """Bring the working copy to the tip of ``default_branch``."""
        try:
            if self.repo_exists():
                self._update(default_branch)
            else:
                self._clone(default_branch)
        except GitCommandError as exc:
            self._log_failure("sync", exc)
            return False
        return True

    def _clone(self, default_branch: str) -> None:
        if self.repo_dir.exists():
            logger.warning("[%s] Removing stale directory %s", self.context.repo_name, self.repo_dir)
            shutil.rmtree(self.repo_dir)
        self.repo_dir.parent.mkdir(parents=True, exist_ok=True)

        url = self.url_provider(self.context.owner, self.context.repo_name)
        logger.info("[%s] Cloning %s", self.context.repo_name, redact_url(url))
        self._git("clone", url, str(self.repo_dir), cwd=self.repo_dir.parent, network=True)

        checkout = self._git("checkout", default_branch, check=False)
        if checkout.exit_code != 0:
            logger.warning(
                "[%s] Could not check out %s, staying on cloned HEAD: %s",
                self.context.repo_name,
                default_branch,
                redact_url(checkout.stderr.strip()),
            )

    def _update(self, default_branch: str) -> None:
        logger.info("[%s] Updating existing checkout", self.context.repo_name)
        self._set_origin()
        self._git("fetch", "origin", network=True)
        self._git("checkout", "-f", default_branch)
        self._git("pull", "origin", default_branch, network=True)
        self._git("clean", "-f", "-d")

    # ------------------------------------------------------------------
    # Mutations

    def create_branch(self, branch_name: str) -> bool:
        """Delete any local ``branch_name`` and create it fresh from HEAD."""
        try:
            self._git("config", "user.name", self.git_name)
            self._git("config", "user.email", self.git_email)
            self._git("branch", "-D", branch_name, check=False)
            self._git("checkout", "-b", branch_name)
        except GitCommandError as exc:
            self._log_failure(f"create branch {branch_name}", exc)
            return False
        return True

    def commit_all(self, message: str) -> bool:
        """Stage everything and commit; False when nothing is staged or git fails."""
        try:
            self._git("add", "-A")
            staged = self._git("diff", "--cached", "--quiet", check=False)
            if staged.exit_code == 0:
                logger.info("[%s] Nothing staged to commit", self.context.repo_name)
                return False
            self._git("commit", "-m", message)
        except GitCommandError as exc:
            self._log_failure("commit", exc)
            return False
        return True

    def push(self, branch_name: str) -> bool:
        """Point origin at a freshly authenticated URL and force-push ``branch_name``."""
        try:
            self._set_origin()
            self._git("push", "--force", "origin", branch_name, network=True)
        except GitCommandError as exc:
            self._log_failure(f"push {branch_name}", exc)
            return False
        logger.info("[%s] Pushed branch %s", self.context.repo_name, branch_name)
        return True

    def cleanup(self) -> bool:
        if not self.repo_dir.exists():
            return True
        try:
            shutil.rmtree(self.repo_dir)
        except OSError as exc:
            logger.warning("[%s] Failed to clean up %s: %s", self.context.repo_name, self.repo_dir, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers

    def _set_origin(self) -> None:
        url = self.url_provider(self.context.owner, self.context.repo_name)
        self._git("remote", "set-url", "origin", url)

    def _git(self, *args: str, cwd: Optional[Path] = None, check: bool = True, network: bool = False) -> CmdResult:
        cmd = ["git", *args]
        try:
            result = self.runner(
                cmd,
                cwd=cwd or self.repo_dir,
                timeout_seconds=self.timeout,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(f"{redact_url(' '.join(cmd))} timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise GitCommandError(f"could not run git: {exc}") from exc

        if result.exit_code != 0:
            if network and is_auth_failure(result.stderr):
                raise AuthenticationError(
                    f"git authentication failed for {self.context.full_name}: {redact_url(result.stderr.strip())}"
                )
            if check:
                raise GitCommandError(
                    f"{result.command_str} exited {result.exit_code}: {redact_url(result.stderr.strip())}"
                )
        return result

    def _log_failure(self, action: str, exc: Exception) -> None:
        logger.error("[%s] Failed to %s: %s", self.context.repo_name, action, redact_url(str(exc)))


__all__ = [
    "AUTH_FAILURE_MARKERS",
    "GitCommandError",
    "GitOperations",
    "UrlProvider",
    "is_auth_failure",
]

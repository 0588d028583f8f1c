"""Configuration for a cookstyle run: defaults, local secrets, GCR_* env vars, then CLI flags."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from src.errors import ConfigError
from src.github.auth import GitHubCredentials
from src.github.config import BASE_URL, GIT_HOST
from src.processing.changelog import DEFAULT_CHANGELOG_LOCATION, DEFAULT_CHANGELOG_MARKER
from src.processing.lint import DEFAULT_LINT_COMMAND, DEFAULT_LINT_TIMEOUT
from src.processing.scheduler import DEFAULT_RETRY_BACKOFF, DEFAULT_RETRY_COUNT
from src.secrets import load_local_secrets

OUTPUT_FORMATS = ("text", "json", "table")
COMMANDS = ("run", "list", "config", "status")
SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_PR_BODY_HEADER = "Hey!\nI ran Cookstyle against this repo and here are the results."


@dataclass(frozen=True)
class RunnerSettings:
    """Resolved, validated settings shared by every component of a run."""

    owner: str
    credentials: GitHubCredentials = field(default_factory=GitHubCredentials)
    topics: Tuple[str, ...] = ()
    api_endpoint: str = BASE_URL
    git_host: str = GIT_HOST
    branch_name: str = "cookstyle-updates"
    default_branch: str = "main"
    pr_title: str = "Cookstyle Automated Fixes"
    pr_body_header: str = DEFAULT_PR_BODY_HEADER
    pr_labels: Tuple[str, ...] = ("cookstyle", "automated")
    issue_title: str = "Manual Cookstyle Fixes Required"
    issue_labels: Tuple[str, ...] = ("cookstyle", "manual-fix")
    git_name: str = "Cookstyle Bot"
    git_email: str = "cookstyle-bot@example.com"
    cache_dir: Path = Path("/tmp/cookstyle-runner")
    workspace_dir: Path = Path("/tmp/cookstyle-runner/repos")
    use_cache: bool = True
    cache_max_age_days: int = 7
    force_refresh: bool = False
    force_refresh_repos: Tuple[str, ...] = ()
    include_repos: Tuple[str, ...] = ()
    exclude_repos: Tuple[str, ...] = ()
    filter_repos: Tuple[str, ...] = ()
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    thread_count: int = field(default_factory=lambda: os.cpu_count() or 1)
    create_manual_fix_issues: bool = True
    manage_changelog: bool = False
    changelog_location: str = DEFAULT_CHANGELOG_LOCATION
    changelog_marker: str = DEFAULT_CHANGELOG_MARKER
    lint_command: str = DEFAULT_LINT_COMMAND
    lint_timeout: int = DEFAULT_LINT_TIMEOUT
    cleanup_workdirs: bool = False
    output_format: str = "text"
    verbose: bool = False
    log_file: Optional[Path] = None

    @property
    def cache_max_age_seconds(self) -> int:
        return self.cache_max_age_days * SECONDS_PER_DAY

    def display_dict(self) -> Dict[str, Any]:
        """Settings safe to print; credentials reduced to their type."""
        return {
            "owner": self.owner,
            "auth_type": self.credentials.auth_type or "none",
            "api_endpoint": self.api_endpoint,
            "topics": list(self.topics),
            "filter_repos": list(self.filter_repos),
            "include_repos": list(self.include_repos),
            "exclude_repos": list(self.exclude_repos),
            "thread_count": self.thread_count,
            "retry_count": self.retry_count,
            "create_manual_fix_issues": self.create_manual_fix_issues,
            "use_cache": self.use_cache,
            "cache_dir": str(self.cache_dir),
            "cache_max_age_days": self.cache_max_age_days,
            "force_refresh": self.force_refresh,
            "workspace_dir": str(self.workspace_dir),
            "branch_name": self.branch_name,
            "default_branch": self.default_branch,
            "git_name": self.git_name,
            "git_email": self.git_email,
            "pr_title": self.pr_title,
            "manage_changelog": self.manage_changelog,
            "lint_timeout": self.lint_timeout,
            "output_format": self.output_format,
        }


# env var -> (settings field, parser)
_ENV_FIELDS: Dict[str, Tuple[str, str]] = {
    "GCR_DESTINATION_REPO_OWNER": ("owner", "str"),
    "GCR_DESTINATION_REPO_TOPICS": ("topics", "list"),
    "GCR_GITHUB_API_ENDPOINT": ("api_endpoint", "str"),
    "GCR_GIT_HOST": ("git_host", "str"),
    "GCR_BRANCH_NAME": ("branch_name", "str"),
    "GCR_DEFAULT_GIT_BRANCH": ("default_branch", "str"),
    "GCR_PULL_REQUEST_TITLE": ("pr_title", "str"),
    "GCR_PULL_REQUEST_BODY_HEADER": ("pr_body_header", "str"),
    "GCR_PULL_REQUEST_LABELS": ("pr_labels", "list"),
    "GCR_ISSUE_TITLE": ("issue_title", "str"),
    "GCR_ISSUE_LABELS": ("issue_labels", "list"),
    "GCR_GIT_NAME": ("git_name", "str"),
    "GCR_GIT_EMAIL": ("git_email", "str"),
    "GCR_CACHE_DIR": ("cache_dir", "path"),
    "GCR_WORKSPACE_DIR": ("workspace_dir", "path"),
    "GCR_USE_CACHE": ("use_cache", "bool"),
    "GCR_CACHE_MAX_AGE": ("cache_max_age_days", "int"),
    "GCR_FORCE_REFRESH": ("force_refresh", "bool"),
    "GCR_FORCE_REFRESH_REPOS": ("force_refresh_repos", "list"),
    "GCR_INCLUDE_REPOS": ("include_repos", "list"),
    "GCR_EXCLUDE_REPOS": ("exclude_repos", "list"),
    "GCR_FILTER_REPOS": ("filter_repos", "list"),
    "GCR_RETRY_COUNT": ("retry_count", "int"),
    "GCR_RETRY_BACKOFF": ("retry_backoff", "float"),
    "GCR_THREAD_COUNT": ("thread_count", "int"),
    "GCR_CREATE_MANUAL_FIX_ISSUES": ("create_manual_fix_issues", "bool"),
    "GCR_MANAGE_CHANGELOG": ("manage_changelog", "bool"),
    "GCR_CHANGELOG_LOCATION": ("changelog_location", "str"),
    "GCR_CHANGELOG_MARKER": ("changelog_marker", "str"),
    "GCR_LINT_COMMAND": ("lint_command", "str"),
    "GCR_LINT_TIMEOUT": ("lint_timeout", "int"),
    "GCR_CLEANUP_WORKDIRS": ("cleanup_workdirs", "bool"),
    "GCR_OUTPUT_FORMAT": ("output_format", "str"),
    "GCR_DEBUG_MODE": ("verbose", "bool"),
    "GCR_LOG_FILE": ("log_file", "path"),
}

_CREDENTIAL_ENV = {
    "GITHUB_TOKEN": "token",
    "GCR_GITHUB_TOKEN": "token",
    "GCR_GITHUB_APP_ID": "app_id",
    "GCR_GITHUB_APP_INSTALLATION_ID": "installation_id",
    "GCR_GITHUB_APP_PRIVATE_KEY": "private_key",
}

_TRUE = {"1", "true", "yes", "on", "y"}
_FALSE = {"0", "false", "no", "off", "n", ""}


def split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


def _convert(kind: str, raw: str) -> Any:
    if kind == "list":
        return split_csv(raw)
    if kind == "bool":
        return parse_bool(raw)
    if kind == "int":
        return int(raw)
    if kind == "float":
        return float(raw)
    if kind == "path":
        return Path(raw).expanduser()
    return raw


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the CLI parser; every flag defaults to None so lower layers show through."""

    parser = argparse.ArgumentParser(
        prog="cookstyle-runner",
        description="Run Cookstyle across an organization's repositories and open PRs or issues.",
    )
    parser.add_argument("command", nargs="?", default="run", choices=COMMANDS)
    parser.add_argument("repos", nargs="*", help="only process repositories whose name contains one of these")
    parser.add_argument("--owner")
    parser.add_argument("--topics", help="comma-separated repository topics")
    parser.add_argument("--branch-name")
    parser.add_argument("--default-branch")
    parser.add_argument("--pr-title")
    parser.add_argument("--pr-labels")
    parser.add_argument("--issue-labels")
    parser.add_argument("--cache-dir")
    parser.add_argument("--workspace-dir")
    parser.add_argument("--cache", dest="use_cache", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--cache-max-age", type=int, help="days")
    parser.add_argument("-f", "--force", dest="force_refresh", action="store_true", default=None)
    parser.add_argument("--force-refresh-repos")
    parser.add_argument("--include-repos")
    parser.add_argument("--exclude-repos")
    parser.add_argument("--retry-count", type=int)
    parser.add_argument("-t", "--threads", dest="thread_count", type=int)
    parser.add_argument(
        "--manual-fix-issues", dest="create_manual_fix_issues", action=argparse.BooleanOptionalAction, default=None
    )
    parser.add_argument("--changelog", dest="manage_changelog", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--lint-timeout", type=int)
    parser.add_argument("--cleanup", dest="cleanup_workdirs", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--format", dest="output_format")
    parser.add_argument("-v", "--verbose", action="store_true", default=None)
    parser.add_argument("--log-file")
    parser.add_argument("--validate", action="store_true", help="with 'config': only validate settings")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments; accepts argv overrides for testing."""

    parser = build_arg_parser()
    return parser.parse_args(argv)


def _from_secrets(secrets: Mapping[str, Any]) -> Dict[str, Any]:
    creds: Dict[str, Any] = {}
    if secrets.get("github_token"):
        creds["token"] = str(secrets["github_token"])
    app = secrets.get("github_app") or {}
    if isinstance(app, dict):
        for key in ("app_id", "installation_id", "private_key"):
            if app.get(key) not in (None, ""):
                creds[key] = app[key]
    return creds


def _from_env(env: Mapping[str, str], values: Dict[str, Any], creds: Dict[str, Any], problems: List[str]) -> None:
    for name, (field_name, kind) in _ENV_FIELDS.items():
        raw = env.get(name)
        if raw is None:
            continue
        try:
            values[field_name] = _convert(kind, raw)
        except ValueError as exc:
            problems.append(f"{name}: {exc}")
    for name, key in _CREDENTIAL_ENV.items():
        if env.get(name):
            creds[key] = env[name]


_CLI_FIELDS: Dict[str, str] = {
    "owner": "str",
    "topics": "list",
    "branch_name": "str",
    "default_branch": "str",
    "pr_title": "str",
    "pr_labels": "list",
    "issue_labels": "list",
    "cache_dir": "path",
    "workspace_dir": "path",
    "force_refresh_repos": "list",
    "include_repos": "list",
    "exclude_repos": "list",
    "output_format": "str",
    "log_file": "path",
}


def _from_args(args: argparse.Namespace, values: Dict[str, Any]) -> None:
    for field_name, kind in _CLI_FIELDS.items():
        raw = getattr(args, field_name, None)
        if raw is not None:
            values[field_name] = _convert(kind, raw)
    for field_name in (
        "use_cache",
        "force_refresh",
        "create_manual_fix_issues",
        "manage_changelog",
        "cleanup_workdirs",
        "verbose",
        "retry_count",
        "thread_count",
        "lint_timeout",
    ):
        raw = getattr(args, field_name, None)
        if raw is not None:
            values[field_name] = raw
    if getattr(args, "cache_max_age", None) is not None:
        values["cache_max_age_days"] = args.cache_max_age
    if getattr(args, "repos", None):
        values["filter_repos"] = tuple(args.repos)


def _build_credentials(creds: Dict[str, Any], problems: List[str]) -> GitHubCredentials:
    installation_id = creds.get("installation_id")
    if installation_id not in (None, ""):
        try:
            installation_id = int(installation_id)
        except (TypeError, ValueError):
            problems.append(f"GitHub App installation id must be an integer, got {installation_id!r}")
            installation_id = None
    return GitHubCredentials(
        token=creds.get("token") or None,
        app_id=str(creds["app_id"]) if creds.get("app_id") else None,
        installation_id=installation_id or None,
        private_key=creds.get("private_key") or None,
    )


def validate_settings(settings: RunnerSettings, *, require_github: bool = True) -> List[str]:
    """Return every configuration problem; empty when the settings are usable.

    ``require_github=False`` skips the owner and credential checks for commands
    that never reach the API.
    """
    problems: List[str] = []
    if require_github and not settings.owner:
        problems.append("destination repository owner is required (GCR_DESTINATION_REPO_OWNER or --owner)")
    if require_github and settings.credentials.auth_type is None:
        problems.append(
            "GitHub credentials are required: GITHUB_TOKEN, or GCR_GITHUB_APP_ID, "
            "GCR_GITHUB_APP_INSTALLATION_ID and GCR_GITHUB_APP_PRIVATE_KEY"
        )
    if settings.thread_count < 1:
        problems.append(f"thread count must be at least 1, got {settings.thread_count}")
    if settings.retry_count < 0:
        problems.append(f"retry count must not be negative, got {settings.retry_count}")
    if settings.cache_max_age_days < 0:
        problems.append(f"cache max age must not be negative, got {settings.cache_max_age_days}")
    if settings.lint_timeout <= 0:
        problems.append(f"lint timeout must be positive, got {settings.lint_timeout}")
    if settings.output_format not in OUTPUT_FORMATS:
        problems.append(f"output format must be one of {', '.join(OUTPUT_FORMATS)}, got {settings.output_format!r}")
    if not settings.branch_name:
        problems.append("branch name must not be empty")
    return problems


def resolve_settings(
    args: Optional[argparse.Namespace] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    secrets: Optional[Mapping[str, Any]] = None,
    require_github: bool = True,
) -> RunnerSettings:
    """Merge defaults < secrets file < environment < CLI flags and validate once.

    Raises ConfigError listing every problem found.
    """

    args = args if args is not None else parse_args([])
    env = os.environ if env is None else env
    secrets = load_local_secrets() if secrets is None else secrets

    problems: List[str] = []
    values: Dict[str, Any] = {}
    creds = _from_secrets(secrets)
    _from_env(env, values, creds, problems)
    _from_args(args, values)

    values.setdefault("owner", "")
    credentials = _build_credentials(creds, problems)
    settings = RunnerSettings(credentials=credentials, **values)

    problems.extend(validate_settings(settings, require_github=require_github))
    if problems:
        raise ConfigError("Invalid configuration:\n  - " + "\n  - ".join(problems))
    return settings


__all__ = [
    "COMMANDS",
    "OUTPUT_FORMATS",
    "RunnerSettings",
    "build_arg_parser",
    "parse_args",
    "parse_bool",
    "resolve_settings",
    "split_csv",
    "validate_settings",
]

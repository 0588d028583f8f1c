"""Entry point wiring settings, GitHub access, the cache, and the scheduler together."""

from __future__ import annotations

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from src.errors import AuthenticationError, ConfigError
from src.github.auth import TokenProvider
from src.github.discovery import filter_repositories, find_repositories
from src.github.http_client import GitHubClient
from src.github.pr_manager import PullRequestManager
from src.log import configure_logging, get_logger
from src.processing.cache import Cache
from src.processing.lint import LintRunner
from src.processing.processor import RepositoryProcessor
from src.processing.scheduler import Scheduler

from .config import RunnerSettings, parse_args, resolve_settings
from .report import render_mapping, render_report, render_repositories

logger = get_logger("runner")


def _build_token_provider(settings: RunnerSettings) -> TokenProvider:
    return TokenProvider(settings.credentials, base_url=settings.api_endpoint, git_host=settings.git_host)


def _build_client(settings: RunnerSettings, tokens: TokenProvider) -> GitHubClient:
    return GitHubClient(tokens, base_url=settings.api_endpoint)


def build_scheduler(
    settings: RunnerSettings, cache: Cache, client: GitHubClient, tokens: TokenProvider
) -> Scheduler:
    processor = RepositoryProcessor(
        settings,
        cache,
        LintRunner(command=settings.lint_command, timeout=settings.lint_timeout),
        PullRequestManager(client),
        tokens.authenticated_clone_url,
    )
    return Scheduler(
        processor,
        cache,
        thread_count=settings.thread_count,
        retry_count=settings.retry_count,
        retry_backoff=settings.retry_backoff,
    )


def discover(settings: RunnerSettings, client: GitHubClient) -> List[str]:
    """Clone URLs matching the owner and topics, narrowed by ``filter_repos``."""
    urls = find_repositories(client, settings.owner, settings.topics)
    return filter_repositories(urls, settings.filter_repos)


@contextmanager
def _graceful_interrupt(scheduler: Scheduler) -> Iterator[None]:
    """First Ctrl-C lets in-flight repositories finish; a second one aborts."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        if scheduler.stopping:
            raise KeyboardInterrupt
        scheduler.request_stop()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def run(settings: RunnerSettings) -> int:
    """Process every discovered repository; returns 1 when any repository ended in error."""
    cache = Cache(settings.cache_dir)
    summary = cache.summary()
    logger.info(
        "Cache at %s holds %s repositories (last updated %s)",
        settings.cache_dir,
        summary["total_repositories"],
        summary["last_updated"],
    )

    tokens = _build_token_provider(settings)
    client = _build_client(settings, tokens)
    repo_urls = discover(settings, client)

    scheduler = build_scheduler(settings, cache, client, tokens)
    with _graceful_interrupt(scheduler):
        result = scheduler.run(repo_urls)

    print(render_report(result, cache.stats.runtime_stats(), settings.output_format))
    return 1 if result.errors else 0


def list_repositories(settings: RunnerSettings) -> int:
    tokens = _build_token_provider(settings)
    client = _build_client(settings, tokens)
    print(render_repositories(discover(settings, client), settings.output_format))
    return 0


def show_status(settings: RunnerSettings) -> int:
    cache = Cache(settings.cache_dir)
    status = {"cache_directory": str(settings.cache_dir), **cache.summary()}
    status["average_processing_time"] = round(cache.average_processing_time(), 2)
    print(render_mapping("Cache Status", status, settings.output_format))
    return 0


def show_config(settings: RunnerSettings, validate_only: bool) -> int:
    if validate_only:
        print("Configuration is valid")
        return 0
    print(render_mapping("Cookstyle Runner Configuration", settings.display_dict(), settings.output_format))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Exit codes: 0 ok, 1 repository errors or auth failure, 2 bad config."""

    args = parse_args(argv)
    needs_github = args.command in ("run", "list") or (args.command == "config" and args.validate)
    try:
        settings = resolve_settings(args, require_github=needs_github)
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return 2

    configure_logging(verbose=settings.verbose, log_file=settings.log_file)
    try:
        if args.command == "config":
            return show_config(settings, args.validate)
        if args.command == "status":
            return show_status(settings)
        if args.command == "list":
            return list_repositories(settings)
        return run(settings)
    except AuthenticationError as exc:
        logger.error("Authentication failed: %s", exc)
        return 1


def cli() -> None:
    sys.exit(main())


__all__ = ["build_scheduler", "cli", "discover", "main", "run"]

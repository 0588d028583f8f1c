"""Tests for the retrying thread-pool scheduler in src.processing.scheduler.

Run with:
    pytest tests/test_scheduler.py --maxfail=1 -v --cov=src.processing.scheduler --cov-report=term-missing
"""

import subprocess
import threading
import time
from collections import defaultdict
from typing import Dict, List
from unittest.mock import MagicMock

import pytest

from src.errors import AuthenticationError, CacheIOError
from src.github.auth import GitHubCredentials
from src.github.discovery import repo_name_from_url
from src.github.pr_manager import ISSUE, PULL_REQUEST, ArtifactRef
from src.pipeline.config import RunnerSettings
from src.processing.cache import Cache
from src.processing.lint import LintRunner
from src.processing.outcomes import ArtifactError, OutcomeStatus, ProcessingOutcome
from src.processing.processor import RepositoryProcessor
from src.processing.scheduler import Scheduler


def _url(name):
    return f"https://github.com/acme/{name}.git"


class FakeProcessor:
    """Returns scripted outcomes per repository name, one per attempt."""

    def __init__(self, script: Dict[str, List[str]] = None, default: str = "no_issues"):
        self.script = script or {}
        self.default = default
        self.attempts: Dict[str, List[int]] = defaultdict(list)
        self._lock = threading.Lock()

    def process(self, url, attempt=1):
        name = repo_name_from_url(url)
        with self._lock:
            self.attempts[name].append(attempt)
        plan = self.script.get(name, [])
        kind = plan[attempt - 1] if attempt - 1 < len(plan) else (plan[-1] if plan else self.default)
        if kind == "auth":
            raise AuthenticationError("bad credentials")
        if kind == "error":
            return ProcessingOutcome.error(name, "boom", attempts=attempt)
        if kind == "pr":
            ref = ArtifactRef(kind=PULL_REQUEST, repo=f"acme/{name}", number=1, url="u", title="t")
            return ProcessingOutcome.issues_found(name, artifact=ref, attempts=attempt)
        if kind == "issue":
            ref = ArtifactRef(kind=ISSUE, repo=f"acme/{name}", number=2, url="u", title="t", created=False)
            return ProcessingOutcome.issues_found(name, artifact=ref, attempts=attempt)
        if kind == "pr_error":
            err = ArtifactError(kind=PULL_REQUEST, repo=f"acme/{name}", message="HTTP 422")
            return ProcessingOutcome.issues_found(name, artifact_error=err, attempts=attempt)
        return ProcessingOutcome.no_issues(name, attempts=attempt)


@pytest.fixture
def cache():
    return MagicMock()


def _scheduler(processor, cache, **kwargs):
    kwargs.setdefault("thread_count", 4)
    kwargs.setdefault("sleep", lambda _: None)
    return Scheduler(processor, cache, **kwargs)


def test_all_success(cache):
    processor = FakeProcessor()
    result = _scheduler(processor, cache).run([_url(f"r{i}") for i in range(10)])
    assert result.total == 10
    assert result.no_issues == 10
    assert result.errors == 0
    assert result.retries == 0
    cache.clear_repo.assert_not_called()


def test_persistent_failure_is_retried_then_reported(cache):
    processor = FakeProcessor({"bad": ["error"]})
    result = _scheduler(processor, cache, retry_count=3).run([_url("bad"), _url("good")])
    assert processor.attempts["bad"] == [1, 2, 3, 4]
    assert result.total == 2
    assert result.errors == 1
    assert result.no_issues == 1
    assert result.retries == 3
    assert cache.clear_repo.call_count == 3
    cache.clear_repo.assert_called_with("bad")
    failed = [o for o in result.outcomes if o.is_error]
    assert failed[0].attempts == 4


def test_failure_then_success_counts_once(cache):
    processor = FakeProcessor({"flaky": ["error", "no_issues"]})
    result = _scheduler(processor, cache).run([_url("flaky")])
    assert result.total == 1
    assert result.no_issues == 1
    assert result.errors == 0
    assert result.retries == 1


def test_zero_retries(cache):
    processor = FakeProcessor({"bad": ["error"]})
    result = _scheduler(processor, cache, retry_count=0).run([_url("bad")])
    assert processor.attempts["bad"] == [1]
    assert result.errors == 1
    cache.clear_repo.assert_not_called()


def test_cache_clear_failure_does_not_stop_retry(cache):
    cache.clear_repo.side_effect = CacheIOError("disk full")
    processor = FakeProcessor({"flaky": ["error", "no_issues"]})
    result = _scheduler(processor, cache).run([_url("flaky")])
    assert result.no_issues == 1


def test_backoff_grows_exponentially(cache, monkeypatch):
    monkeypatch.setattr("src.processing.scheduler.with_jitter", lambda value: value)
    delays = []
    processor = FakeProcessor({"bad": ["error"]})
    _scheduler(processor, cache, retry_count=3, retry_backoff=1.5, sleep=delays.append).run([_url("bad")])
    assert delays == [1.5, 3.0, 6.0]


def test_authentication_error_aborts_run(cache):
    processor = FakeProcessor({"r0": ["auth"]})
    scheduler = _scheduler(processor, cache, thread_count=1)
    with pytest.raises(AuthenticationError):
        scheduler.run([_url(f"r{i}") for i in range(5)])
    assert scheduler.stopping is True


def test_request_stop_skips_remaining_units(cache):
    scheduler = None

    class StoppingProcessor(FakeProcessor):
        def process(self, url, attempt=1):
            scheduler.request_stop()
            return super().process(url, attempt)

    processor = StoppingProcessor()
    scheduler = _scheduler(processor, cache, thread_count=1)
    result = scheduler.run([_url(f"r{i}") for i in range(4)])
    assert result.total == 4
    assert result.no_issues == 1
    assert result.skipped == 3
    assert all(o.reason == "interrupted" for o in result.outcomes if o.status is OutcomeStatus.SKIPPED)


def test_no_retry_after_stop(cache):
    scheduler = None

    class FailingThenStop(FakeProcessor):
        def process(self, url, attempt=1):
            scheduler.request_stop()
            return super().process(url, attempt)

    processor = FailingThenStop({"bad": ["error"]})
    scheduler = _scheduler(processor, cache, thread_count=1)
    result = scheduler.run([_url("bad")])
    assert processor.attempts["bad"] == [1]
    assert result.errors == 1


def test_empty_input(cache):
    result = _scheduler(FakeProcessor(), cache).run([])
    assert result.total == 0
    assert result.to_dict()["outcomes"] == []


def test_artifact_tallies(cache):
    processor = FakeProcessor({"a": ["pr"], "b": ["issue"], "c": ["pr_error"], "d": ["error"]})
    result = _scheduler(processor, cache, retry_count=0).run([_url(n) for n in "abcd"])
    assert result.prs_created == 1
    assert result.issues_created == 1
    assert result.pr_errors == 1
    assert result.issue_errors == 0
    assert result.issues_found == 3
    assert result.errors == 1
    assert result.processed == 3
    assert len(result.artifacts) == 2
    assert result.to_dict()["artifact_errors"][0]["message"] == "HTTP 422"


def test_lint_timeout_exhausts_retries_end_to_end(tmp_path):
    """A real processor whose cookstyle always times out ends as one error after every retry."""
    settings = RunnerSettings(
        owner="acme",
        credentials=GitHubCredentials(token="t"),
        cache_dir=tmp_path / "cache",
        workspace_dir=tmp_path / "repos",
    )
    cache = Cache(settings.cache_dir)

    git = MagicMock()
    git.clone_or_update.return_value = True
    git.current_commit_sha.return_value = "abc"

    def timing_out(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd=cmd, timeout=1)

    processor = RepositoryProcessor(
        settings, cache, LintRunner(timeout=1, runner=timing_out), MagicMock(), lambda o, r: "url",
        git_factory=lambda *args, **kwargs: git,
    )
    result = Scheduler(processor, cache, thread_count=2, retry_count=2, sleep=lambda _: None).run([_url("slow")])

    assert result.total == 1
    assert result.errors == 1
    assert result.retries == 2
    assert "timed out" in result.outcomes[0].message
    assert "slow" not in cache


def test_stop_cuts_retry_backoff_short(cache):
    scheduler = None

    class FailOnceThenStop(FakeProcessor):
        def process(self, url, attempt=1):
            threading.Timer(0.2, scheduler.request_stop).start()
            return super().process(url, attempt)

    processor = FailOnceThenStop({"bad": ["error"]})
    scheduler = Scheduler(processor, cache, thread_count=1, retry_count=3, retry_backoff=60.0)
    started = time.monotonic()
    result = scheduler.run([_url("bad")])

    assert time.monotonic() - started < 10
    assert processor.attempts["bad"] == [1]
    assert result.total == 1

"""Fan repositories out over a bounded thread pool with per-repository retries."""

from __future__ import annotations

import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from src.errors import AuthenticationError, CacheIOError
from src.github.discovery import repo_name_from_url
from src.github.http_client import with_jitter
from src.log import get_logger

from .cache import Cache
from .outcomes import AggregateResult, ProcessingOutcome
from .processor import RepositoryProcessor

logger = get_logger("processing.scheduler")

DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_BACKOFF = 2.0


class Scheduler:
    """Runs every repository URL through the processor and tallies final outcomes.

    A failed repository is resubmitted to the pool with its own attempt counter
    after its cache entry is cleared. ``request_stop`` lets in-flight work finish
    while queued units resolve as skipped.
    """

    def __init__(
        self,
        processor: RepositoryProcessor,
        cache: Cache,
        *,
        thread_count: Optional[int] = None,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self.processor = processor
        self.cache = cache
        self.thread_count = max(1, thread_count or os.cpu_count() or 1)
        self.retry_count = max(0, retry_count)
        self.retry_backoff = max(0.0, retry_backoff)
        self._stop = threading.Event()
        # backoff waits end early once a stop is requested
        self._sleep = sleep or self._stop.wait

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        if not self._stop.is_set():
            logger.warning("Stop requested; finishing in-flight repositories")
        self._stop.set()

    def run(self, repo_urls: Iterable[str]) -> AggregateResult:
        result = AggregateResult()
        urls = list(repo_urls)
        if not urls:
            logger.info("No repositories to process")
            return result

        workers = min(self.thread_count, len(urls))
        logger.info("Processing %s repositories with %s worker threads", len(urls), workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="worker") as pool:
            pending: Dict[Future, Tuple[str, int]] = {
                pool.submit(self._run_unit, url, 1): (url, 1) for url in urls
            }
            try:
                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        url, attempt = pending.pop(future)
                        outcome = future.result()
                        if self._should_retry(outcome, attempt):
                            self._invalidate(outcome.repo_name)
                            logger.warning(
                                "[%s] Attempt %s failed (%s); retrying (%s left)",
                                outcome.repo_name,
                                attempt,
                                outcome.message,
                                self.retry_count - attempt + 1,
                            )
                            pending[pool.submit(self._run_unit, url, attempt + 1)] = (url, attempt + 1)
                            continue
                        result.add(outcome)
            except AuthenticationError as exc:
                logger.error("Authentication failed, aborting run: %s", exc)
                self._abort(pending)
                raise
            except BaseException:
                self._abort(pending)
                raise

        return result

    # ------------------------------------------------------------------
    # Internal helpers

    def _run_unit(self, url: str, attempt: int) -> ProcessingOutcome:
        if attempt > 1:
            delay = self.retry_backoff * (2 ** (attempt - 2))
            if delay > 0:
                self._sleep(with_jitter(delay))
        if self._stop.is_set():
            return ProcessingOutcome.skipped(repo_name_from_url(url), "interrupted", attempts=attempt)
        return self.processor.process(url, attempt=attempt)

    def _should_retry(self, outcome: ProcessingOutcome, attempt: int) -> bool:
        return outcome.is_error and attempt <= self.retry_count and not self._stop.is_set()

    def _invalidate(self, repo_name: str) -> None:
        try:
            self.cache.clear_repo(repo_name)
        except CacheIOError as exc:
            logger.warning("[%s] Could not clear cache entry before retry: %s", repo_name, exc)

    def _abort(self, pending: Dict[Future, Tuple[str, int]]) -> None:
        self._stop.set()
        for future in pending:
            future.cancel()


__all__ = ["DEFAULT_RETRY_BACKOFF", "DEFAULT_RETRY_COUNT", "Scheduler"]

"""SHA-keyed cache of per-repository results, persisted as a single JSON file."""

from __future__ import annotations

import datetime as dt
import json
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from src.errors import CacheIOError
from src.log import get_logger

logger = get_logger("processing.cache")

CACHE_FILENAME = "cache.json"
DEFAULT_MAX_AGE_SEC = 7 * 24 * 60 * 60
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
INVALID_SHA = "invalid"


def utc_timestamp(now: Optional[float] = None) -> str:
    moment = dt.datetime.fromtimestamp(now if now is not None else time.time(), tz=dt.timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(raw: Any) -> Optional[float]:
    """Parse an ISO-8601 UTC timestamp into epoch seconds; None when unparsable."""
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = dt.datetime.strptime(raw, TIMESTAMP_FORMAT).replace(tzinfo=dt.timezone.utc)
    except ValueError:
        try:
            parsed = dt.datetime.fromisoformat(raw)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.timestamp()


@dataclass(frozen=True)
class CacheEntry:
    commit_sha: str
    had_issues: bool
    result: Optional[str]
    processing_time: float
    timestamp: str = field(default_factory=utc_timestamp)

    def matches_sha(self, sha: Optional[str]) -> bool:
        return self.commit_sha == sha

    def expired(self, max_age: Optional[float] = None, now: Optional[float] = None) -> bool:
        """Entries older than ``max_age`` seconds (7 days when unset or <= 0) are stale."""
        if not max_age or max_age <= 0:
            max_age = DEFAULT_MAX_AGE_SEC
        written = parse_timestamp(self.timestamp)
        if written is None:
            return True
        current = now if now is not None else time.time()
        return current - written > max_age

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit_sha": self.commit_sha,
            "had_issues": self.had_issues,
            "result": self.result,
            "processing_time": self.processing_time,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CacheEntry":
        """Build an entry from stored JSON; malformed data yields a never-matching placeholder."""
        try:
            sha = data["commit_sha"]
            if not isinstance(sha, str) or not sha:
                raise ValueError("commit_sha must be a non-empty string")
            result = data.get("result")
            return cls(
                commit_sha=sha,
                had_issues=bool(data.get("had_issues", False)),
                result=None if result is None else str(result),
                processing_time=float(data.get("processing_time") or 0.0),
                timestamp=str(data.get("timestamp") or ""),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return cls(commit_sha=INVALID_SHA, had_issues=False, result=None, processing_time=0.0)


@dataclass
class CacheStats:
    """Process-local counters; never persisted."""

    hits: int = 0
    misses: int = 0
    updates: int = 0
    time_saved: float = 0.0
    start_time: float = field(default_factory=time.time)

    def record_hit(self, processing_time: float) -> None:
        self.hits += 1
        self.time_saved += processing_time

    def record_miss(self) -> None:
        self.misses += 1

    def record_update(self) -> None:
        self.updates += 1

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def runtime_stats(self, now: Optional[float] = None) -> Dict[str, Any]:
        current = now if now is not None else time.time()
        return {
            "cache_hits": self.hits,
            "cache_misses": self.misses,
            "cache_updates": self.updates,
            "cache_hit_rate": round(self.hit_rate * 100, 2),
            "estimated_time_saved": round(self.time_saved, 2),
            "runtime": round(current - self.start_time, 2),
        }


class Cache:
    """Thread-safe cache shared by every worker.

    One re-entrant lock covers the in-memory map and the file; every mutation
    holds it across read, mutate and persist so concurrent workers cannot lose
    each other's updates.
    """

    def __init__(self, cache_dir: Path | str, *, clock: Callable[[], float] = time.time) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / CACHE_FILENAME
        self.stats = CacheStats(start_time=clock())
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._last_updated = utc_timestamp(clock())
        self._load()

    # ------------------------------------------------------------------
    # Lookups

    def up_to_date(self, repo_name: str, current_sha: Optional[str], max_age: Optional[float] = None) -> bool:
        """True when the stored SHA matches and the entry is younger than ``max_age`` seconds."""
        with self._lock:
            entry = self._entries.get(repo_name)
            if entry is None or not current_sha or not entry.matches_sha(current_sha):
                return False
            if entry.expired(max_age, now=self._clock()):
                return False
            self.stats.record_hit(entry.processing_time)
            return True

    def get_result(self, repo_name: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(repo_name)

    def __contains__(self, repo_name: object) -> bool:
        with self._lock:
            return repo_name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def average_processing_time(self) -> float:
        with self._lock:
            times = [entry.processing_time for entry in self._entries.values() if entry.processing_time > 0]
        return sum(times) / len(times) if times else 5.0

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {"total_repositories": len(self._entries), "last_updated": self._last_updated}

    # ------------------------------------------------------------------
    # Mutations (persisted immediately)

    def update(
        self,
        repo_name: str,
        commit_sha: str,
        had_issues: bool,
        result: Optional[str],
        processing_time: float,
    ) -> CacheEntry:
        """Record a successful pass. Raises CacheIOError if the file cannot be written."""
        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                commit_sha=commit_sha,
                had_issues=had_issues,
                result=result,
                processing_time=round(float(processing_time), 2),
                timestamp=utc_timestamp(now),
            )
            self._entries[repo_name] = entry
            self._last_updated = entry.timestamp
            self.stats.record_update()
            self.stats.record_miss()
            self._save()
            return entry

    def clear_repo(self, repo_name: str) -> None:
        with self._lock:
            if self._entries.pop(repo_name, None) is None:
                return
            self._last_updated = utc_timestamp(self._clock())
            self._save()
            logger.debug("Cleared cache entry for %s", repo_name)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_updated = utc_timestamp(self._clock())
            self._save()
            logger.info("Cleared all cache entries")

    # ------------------------------------------------------------------
    # Persistence

    def _load(self) -> None:
        if not self.cache_file.exists():
            return
        try:
            with self.cache_file.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("Cache file %s is unreadable (%s); starting fresh", self.cache_file, exc)
            return

        repositories = data.get("repositories") if isinstance(data, dict) else None
        if not isinstance(repositories, dict):
            logger.warning("Cache file %s has an unexpected layout; starting fresh", self.cache_file)
            return

        self._entries = {str(name): CacheEntry.from_dict(raw) for name, raw in repositories.items()}
        self._last_updated = str(data.get("last_updated") or self._last_updated)
        logger.info("Loaded cache with %s repositories from %s", len(self._entries), self.cache_file)

    def _save(self) -> None:
        payload = {
            "repositories": {name: entry.to_dict() for name, entry in self._entries.items()},
            "last_updated": self._last_updated,
        }
        tmp_path: Optional[str] = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=str(self.cache_dir), prefix=".cache-", suffix=".tmp", delete=False
            ) as handle:
                tmp_path = handle.name
                json.dump(payload, handle, indent=2, sort_keys=True)
                handle.write("\n")
            os.replace(tmp_path, self.cache_file)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise CacheIOError(f"Failed to save cache to {self.cache_file}: {exc}") from exc


__all__ = [
    "CACHE_FILENAME",
    "DEFAULT_MAX_AGE_SEC",
    "Cache",
    "CacheEntry",
    "CacheStats",
    "parse_timestamp",
    "utc_timestamp",
]

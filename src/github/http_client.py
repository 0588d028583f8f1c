"""HTTP helpers with retry/backoff logic for GitHub REST calls."""

from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional

import requests

from src.errors import AuthenticationError, GitHubAPIError, TransientNetworkError
from src.log import get_logger

from .auth import TokenProvider
from .config import BACKOFF_BASE_SEC, BASE_URL, MAX_RETRIES, MAX_WAIT_ON_403, PER_PAGE, REQUEST_TIMEOUT, USER_AGENT

logger = get_logger("github.http")

TERMINAL_STATUSES = {400, 404, 410, 422}


def with_jitter(base: float) -> float:
    """Return ``base`` shifted by up to +/- 12.5%."""
    jitter = base * 0.25 * (0.5 - (os.urandom(1)[0] / 255.0))
    return max(0.0, base + jitter)


def sleep_with_jitter(base: float) -> None:
    time.sleep(with_jitter(base))


def log_http_error(resp: requests.Response, url: str) -> None:
    """Log a short, human-readable message when GitHub returns an error."""
    try:
        body = resp.json()
    except Exception:
        body = {"text": (resp.text or "")[:300]}
    if not isinstance(body, dict):
        body = {"text": str(body)[:300]}
    msg = body.get("message") or body.get("error") or body.get("text")
    logger.error("HTTP %s for %s -> %s", resp.status_code, url, msg)


def _rate_limit_wait(resp: requests.Response, attempt: int) -> Optional[float]:
    """Return seconds to wait when ``resp`` is a rate-limit response, else None."""
    headers = resp.headers or {}
    remaining = headers.get("X-RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset")
    retry_after = headers.get("Retry-After")

    if retry_after and str(retry_after).isdigit():
        wait_sec = float(retry_after)
    elif remaining == "0" and reset and str(reset).isdigit():
        wait_sec = float(max(0, int(reset) - int(time.time())) + 1)
    elif resp.status_code == 429 or remaining == "0":
        wait_sec = float(BACKOFF_BASE_SEC * (2 ** (attempt - 1)))
    else:
        return None
    return min(wait_sec, float(MAX_WAIT_ON_403))


class GitHubClient:
    """Thin wrapper around the GitHub REST API shared by every worker.

    The session is shared read-only; the Authorization header is attached to
    each request so token refreshes never race on session state.
    """

    def __init__(
        self,
        tokens: TokenProvider,
        *,
        base_url: str = BASE_URL,
        session: Optional[requests.Session] = None,
        max_retries: int = MAX_RETRIES,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.tokens = tokens
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            }
        )
        self.max_retries = max(1, int(max_retries))
        self.timeout = timeout

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        path = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Perform a REST call with retry, exponential backoff, and rate-limit waits.

        Returns the response for successes and terminal client errors; raises
        AuthenticationError on 401 and TransientNetworkError once retries run out
        on connection failures.
        """
        url = self.url(path)
        timeout = kwargs.pop("timeout", self.timeout)
        headers: Dict[str, str] = dict(kwargs.pop("headers", None) or {})
        last_exc: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            headers["Authorization"] = f"token {self.tokens.token()}"
            try:
                resp = self.session.request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as exc:
                last_exc = exc
                if attempt >= self.max_retries:
                    break
                delay = BACKOFF_BASE_SEC * (2 ** (attempt - 1))
                logger.warning("[retry %s/%s] %s %s: %s -> sleep %.1fs", attempt, self.max_retries, method, url, exc, delay)
                sleep_with_jitter(delay)
                continue

            if 200 <= resp.status_code < 300:
                return resp

            if resp.status_code == 401:
                log_http_error(resp, url)
                raise AuthenticationError(f"GitHub rejected credentials for {method} {url}")

            if resp.status_code in (403, 429):
                wait_sec = _rate_limit_wait(resp, attempt)
                if wait_sec is None or attempt >= self.max_retries:
                    log_http_error(resp, url)
                    return resp
                logger.warning("[backoff %s] waiting %.0fs for %s", resp.status_code, wait_sec, url)
                sleep_with_jitter(wait_sec)
                continue

            if resp.status_code in TERMINAL_STATUSES:
                log_http_error(resp, url)
                return resp

            if attempt < self.max_retries:
                delay = BACKOFF_BASE_SEC * (2 ** (attempt - 1))
                logger.warning("[retry %s/%s] HTTP %s for %s -> sleep %.1fs", attempt, self.max_retries, resp.status_code, url, delay)
                sleep_with_jitter(delay)
                continue

            log_http_error(resp, url)
            return resp

        raise TransientNetworkError(f"{method} {url} failed after {self.max_retries} attempts: {last_exc}")

    def paged_get(
        self,
        path: str,
        *,
        items_key: Optional[str] = None,
        max_pages: int = 0,
        strict: bool = False,
    ) -> List[Dict[str, Any]]:
        """Retrieve pages until the API returns a short or empty page or max_pages hits.

        ``items_key`` selects the list inside object responses (``"items"`` for search).
        With ``strict`` a non-200 page raises GitHubAPIError instead of ending the listing
        early.
        """
        results: List[Dict[str, Any]] = []
        page = 1
        while True:
            if max_pages and page > max_pages:
                break
            url = self.url(path)
            sep = "&" if "?" in url else "?"
            page_url = f"{url}{sep}per_page={PER_PAGE}&page={page}"
            resp = self.request("GET", page_url)
            if resp.status_code != 200:
                if strict:
                    raise GitHubAPIError(f"GET {page_url} -> HTTP {resp.status_code}", status_code=resp.status_code)
                logger.warning("%s -> %s, stopping pagination", page_url, resp.status_code)
                break

            body = resp.json()
            batch = body.get(items_key) if items_key and isinstance(body, dict) else body
            if not isinstance(batch, list) or not batch:
                break

            results.extend(batch)
            if len(batch) < PER_PAGE:
                break
            page += 1
        return results


__all__ = [
    "GitHubClient",
    "TERMINAL_STATUSES",
    "log_http_error",
    "sleep_with_jitter",
    "with_jitter",
]

"""GitHub credentials: personal access tokens, GitHub App installation tokens, and clone URLs."""

from __future__ import annotations

import datetime as dt
import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import jwt
import requests

from src.errors import AuthenticationError
from src.log import get_logger

from .config import APP_JWT_TTL_SEC, BASE_URL, GIT_HOST, REQUEST_TIMEOUT, TOKEN_REFRESH_MARGIN_SEC, USER_AGENT

logger = get_logger("github.auth")

_URL_CREDENTIALS = re.compile(r"://[^/@\s]+@")


@dataclass(frozen=True)
class GitHubCredentials:
    """Authentication material inherited by every repository context."""

    token: Optional[str] = None
    app_id: Optional[str] = None
    installation_id: Optional[int] = None
    private_key: Optional[str] = None

    @property
    def auth_type(self) -> Optional[str]:
        if self.token:
            return "pat"
        if self.app_id and self.installation_id and self.private_key:
            return "app"
        return None

    def __repr__(self) -> str:  # keep secrets out of logs and tracebacks
        return f"GitHubCredentials(auth_type={self.auth_type!r}, app_id={self.app_id!r})"


def redact_url(text: str) -> str:
    """Mask credentials embedded in URLs (``https://token@host`` -> ``https://***@host``)."""
    return _URL_CREDENTIALS.sub("://***@", text or "")


def read_private_key(private_key: str) -> str:
    """Return PEM content, reading it from disk when ``private_key`` is a path."""
    candidate = os.path.expanduser(private_key)
    if os.path.isfile(candidate):
        with open(candidate, "r", encoding="utf-8") as handle:
            return handle.read()
    return private_key


def generate_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    """Sign the short-lived RS256 JWT GitHub expects from an App."""
    issued = int(now if now is not None else time.time())
    payload = {
        # backdate to tolerate clock drift between us and GitHub
        "iat": issued - 60,
        "exp": issued + APP_JWT_TTL_SEC - 60,
        "iss": str(app_id),
    }
    return jwt.encode(payload, read_private_key(private_key), algorithm="RS256")


def _parse_expiry(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    try:
        parsed = dt.datetime.strptime(raw, "%Y-%m-%dT%H:%M:%SZ")
    except ValueError:
        return None
    return parsed.replace(tzinfo=dt.timezone.utc).timestamp()


class TokenProvider:
    """Hands out API tokens and authenticated clone URLs.

    PATs are returned as-is. For GitHub Apps, API tokens are cached and
    refreshed under a lock once they get close to expiry, while clone/push
    URLs always embed a freshly minted token.
    """

    def __init__(
        self,
        credentials: GitHubCredentials,
        *,
        base_url: str = BASE_URL,
        git_host: str = GIT_HOST,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if credentials.auth_type is None:
            raise AuthenticationError("No GitHub token or complete GitHub App credentials configured")
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.git_host = git_host
        self.session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._cached_token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def auth_type(self) -> str:
        return str(self.credentials.auth_type)

    def token(self) -> str:
        """Return a token for API calls, minting a new installation token only when needed."""
        if self.auth_type == "pat":
            return str(self.credentials.token)
        with self._lock:
            if self._cached_token and self._clock() < self._expires_at - TOKEN_REFRESH_MARGIN_SEC:
                return self._cached_token
            return self._refresh_locked()

    def fresh_token(self) -> str:
        """Return a newly minted token (App) or the PAT; never served from cache."""
        if self.auth_type == "pat":
            return str(self.credentials.token)
        with self._lock:
            return self._refresh_locked()

    def authenticated_clone_url(self, owner: str, repo_name: str) -> str:
        """Build an HTTPS remote URL embedding a fresh credential."""
        token = self.fresh_token()
        if self.auth_type == "pat":
            return f"https://{token}:x-oauth-basic@{self.git_host}/{owner}/{repo_name}.git"
        return f"https://x-access-token:{token}@{self.git_host}/{owner}/{repo_name}.git"

    # ------------------------------------------------------------------
    # Internal helpers

    def _refresh_locked(self) -> str:
        token, expires_at = self._mint_installation_token()
        self._cached_token = token
        self._expires_at = expires_at
        return token

    def _mint_installation_token(self) -> Tuple[str, float]:
        creds = self.credentials
        try:
            app_jwt = generate_jwt(str(creds.app_id), str(creds.private_key), now=int(self._clock()))
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthenticationError(f"Could not sign GitHub App JWT: {exc}") from exc

        url = f"{self.base_url}/app/installations/{creds.installation_id}/access_tokens"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {app_jwt}",
            "User-Agent": USER_AGENT,
        }
        try:
            resp = self.session.post(url, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            raise AuthenticationError(f"Could not reach GitHub to mint an installation token: {exc}") from exc

        if resp.status_code != 201:
            raise AuthenticationError(
                f"GitHub refused installation token for installation {creds.installation_id}: HTTP {resp.status_code}"
            )
        body = resp.json() or {}
        token = body.get("token")
        if not token:
            raise AuthenticationError("GitHub returned an installation token response without a token")
        expires_at = _parse_expiry(body.get("expires_at")) or (self._clock() + 3600)
        logger.debug("Minted installation token for installation %s", creds.installation_id)
        return token, expires_at


__all__ = [
    "GitHubCredentials",
    "TokenProvider",
    "generate_jwt",
    "read_private_key",
    "redact_url",
]

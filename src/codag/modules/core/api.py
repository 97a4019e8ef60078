"""
HTTP client for the Codag service.

All requests carry JSON bodies and a bearer token. A 401 triggers exactly one
token refresh followed by one replay of the original request; there is no
other retry policy.

Errors:
- TransportError: connection failure or unreadable response
- APIError: final status >= 400, with the server's detail message
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from .config import TokenStore
from .errors import APIError, TransportError, extract_detail

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0
USER_AGENT = "codag-cli"


def http_request(
    method: str,
    url: str,
    body: Any = None,
    token: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> tuple[int, bytes]:
    """Send one request and return (status, body).

    Error statuses are returned, not raised. Only transport failures raise.
    """
    data = json.dumps(body).encode() if body is not None else None
    headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    req = urllib.request.Request(url, data=data, headers=headers, method=method)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as e:
        try:
            payload = e.read()
        except OSError:
            payload = b""
        return e.code, payload or b""
    except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
        reason = getattr(e, "reason", e)
        raise TransportError(f"cannot connect to {url}: {reason}", url=url) from e


def parse_json(data: bytes) -> Any:
    try:
        return json.loads(data)
    except ValueError as e:
        raise TransportError(f"parsing response: {e}") from e


def _int(value: Any, default: int = 0) -> int:
    """Lenient int for response fields the server may send as null."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Repo:
    id: int
    name: str = ""
    owner: str = ""
    github_url: str = ""
    last_indexed_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Repo":
        return cls(
            id=_int(data.get("id")),
            name=data.get("name") or "",
            owner=data.get("owner") or "",
            github_url=data.get("github_url") or "",
            last_indexed_at=data.get("last_indexed_at"),
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class BackfillResult:
    repo_id: int
    status: str = ""
    message: str = ""


@dataclass
class Stats:
    repo_id: int = 0
    prs_indexed: int = 0
    files_with_signals: int = 0
    total_signals: int = 0
    danger_signals: int = 0
    indexing: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Stats":
        return cls(
            repo_id=_int(data.get("repo_id")),
            prs_indexed=_int(data.get("prs_indexed")),
            files_with_signals=_int(data.get("files_with_signals")),
            total_signals=_int(data.get("total_signals")),
            danger_signals=_int(data.get("danger_signals")),
            indexing=bool(data.get("indexing", False)),
        )


@dataclass
class WebhookResult:
    status: str = ""
    webhook_id: int | None = None
    message: str = ""


@dataclass
class Subscription:
    tier: str = ""
    status: str = ""
    billing_interval: str = ""
    current_period_end: str = ""
    cancel_at_period_end: bool = False


@dataclass
class Org:
    name: str = ""
    slug: str = ""
    role: str = ""
    tier: str = ""


@dataclass
class Account:
    github_login: str = ""
    email: str = ""
    created_at: str = ""
    subscription: Subscription | None = None
    repos: list[Repo] = field(default_factory=list)
    orgs: list[Org] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        user = data.get("user")
        if not isinstance(user, dict):
            user = {}
        sub = data.get("subscription")
        return cls(
            github_login=user.get("github_login") or "",
            email=user.get("email") or "",
            created_at=user.get("created_at") or "",
            subscription=Subscription(
                tier=sub.get("tier") or "",
                status=sub.get("status") or "",
                billing_interval=sub.get("billing_interval") or "",
                current_period_end=sub.get("current_period_end") or "",
                cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
            )
            if isinstance(sub, dict)
            else None,
            repos=[Repo.from_dict(r) for r in data.get("repos") or [] if isinstance(r, dict)],
            orgs=[
                Org(
                    name=o.get("name") or "",
                    slug=o.get("slug") or "",
                    role=o.get("role") or "",
                    tier=o.get("tier") or "",
                )
                for o in data.get("orgs") or []
                if isinstance(o, dict)
            ],
        )


class ApiClient:
    """Authenticated client for the Codag REST API."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self.timeout = timeout

    @property
    def token(self) -> str:
        return self.tokens.access_token if self.tokens else ""

    def url(self, path: str) -> str:
        return self.base_url + path

    def send(self, method: str, path: str, body: Any = None) -> tuple[int, bytes]:
        """Send a request, refreshing the token and replaying once on 401."""
        status, data = http_request(
            method, self.url(path), body, token=self.token, timeout=self.timeout
        )
        if status == 401 and self.tokens and self.tokens.refresh_token:
            if self.refresh():
                status, data = http_request(
                    method, self.url(path), body, token=self.token, timeout=self.timeout
                )
        return status, data

    def request(self, method: str, path: str, body: Any = None) -> bytes:
        """Send a request and return the body, raising APIError on status >= 400."""
        status, data = self.send(method, path, body)
        if status >= 400:
            raise APIError(status, extract_detail(data), body=data)
        return data

    def request_json(self, method: str, path: str, body: Any = None) -> Any:
        return parse_json(self.request(method, path, body))

    def request_object(self, method: str, path: str, body: Any = None) -> dict:
        """Like request_json, but the response must be a JSON object."""
        payload = self.request_json(method, path, body)
        if not isinstance(payload, dict):
            raise TransportError(
                f"unexpected response from {path}: expected an object, got {type(payload).__name__}"
            )
        return payload

    def request_list(self, method: str, path: str, body: Any = None) -> list[dict]:
        """Like request_json, but the response must be a JSON array of objects."""
        payload = self.request_json(method, path, body)
        if payload is None:
            return []
        if not isinstance(payload, list) or not all(isinstance(p, dict) for p in payload):
            raise TransportError(f"unexpected response from {path}: expected a list of objects")
        return payload

    def refresh(self) -> bool:
        """Exchange the refresh token for a new pair. Returns True on success."""
        if not self.tokens or not self.tokens.refresh_token:
            return False
        try:
            status, data = http_request(
                "POST",
                self.url("/api/auth/refresh"),
                {"refresh_token": self.tokens.refresh_token},
                timeout=self.timeout,
            )
        except TransportError as e:
            logger.debug("Token refresh failed: %s", e)
            return False
        if status != 200:
            logger.debug("Token refresh rejected with status %s", status)
            return False
        try:
            payload = json.loads(data)
            access = payload["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("Unreadable refresh response: %s", e)
            return False

        refresh = payload.get("refresh_token") or self.tokens.refresh_token
        try:
            self.tokens.save(access, refresh)
        except OSError as e:
            # Keep the new pair in memory for the rest of this command
            self.tokens.access_token = access
            self.tokens.refresh_token = refresh
            logger.warning("could not save refreshed tokens: %s", e)
        return True

    # === Repos ===

    def register_repo(self, github_url: str) -> Repo:
        return Repo.from_dict(self.request_object("POST", "/api/repos", {"github_url": github_url}))

    def list_repos(self) -> list[Repo]:
        return [Repo.from_dict(r) for r in self.request_list("GET", "/api/repos")]

    def resolve_repo(self, github_url: str) -> Repo:
        query = urllib.parse.urlencode({"github_url": github_url})
        return Repo.from_dict(self.request_object("GET", f"/api/repos/resolve?{query}"))

    def trigger_backfill(self, repo_id: int, max_prs: int | None = None) -> BackfillResult:
        path = f"/api/repos/{repo_id}/backfill"
        if max_prs:
            path += f"?max_prs={max_prs}"
        data = self.request_object("POST", path)
        return BackfillResult(
            repo_id=_int(data.get("repo_id"), repo_id),
            status=data.get("status") or "",
            message=data.get("message") or "",
        )

    def setup_webhook(self, repo_id: int) -> WebhookResult:
        data = self.request_object("POST", f"/api/repos/{repo_id}/setup-webhook")
        return WebhookResult(
            status=data.get("status") or "",
            webhook_id=data.get("webhook_id"),
            message=data.get("message") or "",
        )

    def get_stats(self, repo_id: int) -> Stats:
        return Stats.from_dict(self.request_object("GET", f"/api/stats?repo={repo_id}"))

    # === Account ===

    def get_me(self) -> Account:
        return Account.from_dict(self.request_object("GET", "/api/console/me"))

    def logout(self) -> None:
        refresh = self.tokens.refresh_token if self.tokens else ""
        self.request("POST", "/api/auth/logout", {"refresh_token": refresh} if refresh else None)

    # === Agent tools ===

    def health(self) -> bool:
        try:
            status, _ = http_request("GET", self.url("/api/health"), timeout=self.timeout)
        except TransportError as e:
            logger.debug("Health check failed: %s", e)
            return False
        return status == 200

    def brief(self, repo_id: int, files: list[str]) -> Any:
        return self.request_json("POST", "/api/brief", {"repo": repo_id, "files": files})

    def check(self, repo_id: int, description: str) -> Any:
        return self.request_json(
            "POST", "/api/check", {"repo": repo_id, "description": description}
        )

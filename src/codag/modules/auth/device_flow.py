"""
OAuth-style device-code login.

1. POST /api/auth/device/code -> device_code, user_code, verification_uri
2. The user opens verification_uri and enters user_code
3. POST /api/auth/device/token every `interval` seconds until approved:
   428 pending, 410 expired, 200 tokens

Tokens are only written once the server hands them over, so every failure
path leaves the token file untouched.
"""

from __future__ import annotations

import json
import logging
import time
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable

from ..core.api import http_request
from ..core.config import TokenStore
from ..core.errors import (
    DeviceCodeExpired,
    DeviceFlowError,
    DeviceFlowTimeout,
    TransportError,
)

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 5
REQUEST_TIMEOUT = 30.0

STATUS_PENDING = 428
STATUS_EXPIRED = 410


@dataclass
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int = MIN_POLL_INTERVAL
    # Clock reading taken just before the code was requested
    requested_at: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceCode":
        try:
            return cls(
                device_code=data["device_code"],
                user_code=data["user_code"],
                verification_uri=data["verification_uri"],
                expires_in=int(data.get("expires_in", 900)),
                interval=int(data.get("interval", MIN_POLL_INTERVAL)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeviceFlowError(f"Unexpected device code response: {e}") from e


@dataclass
class DeviceToken:
    access_token: str
    refresh_token: str
    user: Any = None

    @property
    def identity(self) -> str | None:
        """Best human-readable name for the authenticated user."""
        if isinstance(self.user, str):
            return self.user or None
        if isinstance(self.user, dict):
            return self.user.get("github_login") or self.user.get("email") or None
        return None


def open_browser(url: str) -> bool:
    """Try to open url in the default browser."""
    try:
        return bool(webbrowser.open(url))
    except webbrowser.Error as e:
        logger.debug("Could not open browser: %s", e)
        return False


class DeviceFlow:
    """Drives the device-code exchange against one server."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self._sleep = sleep
        self._clock = clock

    def request_code(self) -> DeviceCode:
        requested_at = self._clock()
        status, data = http_request(
            "POST", self.base_url + "/api/auth/device/code", timeout=REQUEST_TIMEOUT
        )
        if status != 200:
            raise DeviceFlowError(
                f"Could not start login (status {status})", status_code=status
            )
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise DeviceFlowError(f"Unexpected device code response: {e}") from e
        code = DeviceCode.from_dict(payload)
        code.requested_at = requested_at
        return code

    def poll(self, code: DeviceCode) -> DeviceToken:
        """Poll until the code is approved, then persist and return the tokens."""
        interval = max(code.interval, MIN_POLL_INTERVAL)
        start = code.requested_at if code.requested_at is not None else self._clock()
        deadline = start + code.expires_in
        url = self.base_url + "/api/auth/device/token"

        while True:
            if self._clock() >= deadline:
                raise DeviceFlowTimeout()
            self._sleep(interval)

            try:
                status, data = http_request(
                    "POST", url, {"device_code": code.device_code}, timeout=REQUEST_TIMEOUT
                )
            except TransportError as e:
                logger.debug("Device token poll failed, retrying: %s", e)
                continue

            if status == STATUS_PENDING:
                continue
            if status == STATUS_EXPIRED:
                raise DeviceCodeExpired()
            if status != 200:
                raise DeviceFlowError(
                    f"Login failed (status {status})", status_code=status
                )

            token = self._parse_token(data)
            self.tokens.save(token.access_token, token.refresh_token)
            return token

    @staticmethod
    def _parse_token(data: bytes) -> DeviceToken:
        try:
            payload = json.loads(data)
            return DeviceToken(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token") or "",
                user=payload.get("user"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise DeviceFlowError(f"Unexpected token response: {e}") from e

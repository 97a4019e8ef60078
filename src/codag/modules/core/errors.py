"""
Codag error types and structured error payloads.

Exceptions raised by the CLI fall into four groups:
- Authentication: NotLoggedInError, DeviceFlowError and its subclasses
- Transport: TransportError (server unreachable, malformed response)
- Application: APIError (status code + detail from the service)
- Local I/O: ConfigWriteError, UpgradeError

Error codes that agents can programmatically handle (MCP payloads):
- CODAG_ERR_UNAVAILABLE: Repo not connected to Codag for this session
- CODAG_ERR_API: Service returned an error status
- CODAG_ERR_TRANSPORT: Service unreachable
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


# Error codes
ERR_UNAVAILABLE = "CODAG_ERR_UNAVAILABLE"
ERR_API = "CODAG_ERR_API"
ERR_TRANSPORT = "CODAG_ERR_TRANSPORT"

# Raw error bodies longer than this are truncated (proxy HTML pages etc.)
MAX_DETAIL_CHARS = 200


class CodagError(Exception):
    """Base class for all errors raised by the CLI."""


class NotLoggedInError(CodagError):
    def __init__(self, message: str = "Not logged in. Run: codag login") -> None:
        super().__init__(message)


class TransportError(CodagError):
    """The server could not be reached or sent an unreadable response."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class APIError(CodagError):
    """The server answered with a status >= 400."""

    def __init__(self, status_code: int, detail: str, body: bytes = b"") -> None:
        super().__init__(f"Error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.body = body


class DeviceFlowError(CodagError):
    """Device-code login failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeviceCodeExpired(DeviceFlowError):
    def __init__(self) -> None:
        super().__init__("Device code expired. Run: codag login", status_code=410)


class DeviceFlowTimeout(DeviceFlowError):
    def __init__(self) -> None:
        super().__init__("Timed out waiting for authorization. Run: codag login")


class UpgradeError(CodagError):
    pass


class ConfigWriteError(CodagError):
    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(f"Could not write {path}: {cause}")
        self.path = path
        self.cause = cause


class SilentError(CodagError):
    """Wraps an error that has already been shown to the user.

    The top-level handler only turns it into a non-zero exit code.
    """

    def __init__(self, cause: Exception | None = None) -> None:
        super().__init__(str(cause) if cause else "")
        self.cause = cause


def silent(exc: Exception | None = None) -> SilentError:
    """Mark an already-rendered error so it is not printed twice."""
    return SilentError(exc)


def extract_detail(body: bytes) -> str:
    """Pull a human-readable detail out of an error response body.

    Prefers a {"detail": "..."} envelope; falls back to the raw body,
    truncated to MAX_DETAIL_CHARS with an ellipsis.
    """
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    if len(text) > MAX_DETAIL_CHARS:
        return text[:MAX_DETAIL_CHARS] + "…"
    return text


@dataclass
class CodagErrorPayload:
    """Structured error response for machine parsing."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


def make_error(code: str, message: str, **details) -> dict:
    """Create a structured error response dict."""
    return CodagErrorPayload(code=code, message=message, details=details).to_dict()


def make_unavailable_error() -> dict:
    """Payload returned by MCP tools when the repo is not connected."""
    payload = make_error(
        ERR_UNAVAILABLE,
        "Codag is not connected for this repo. Run `codag init` in your repo first.",
        hint="codag init",
    )
    payload["error"] = "codag_unavailable"
    return payload


def make_upstream_error(exc: Exception) -> Any:
    """Payload for an API or transport failure inside an MCP tool.

    A JSON error body from the service is passed through unchanged.
    """
    if isinstance(exc, APIError):
        try:
            return json.loads(exc.body)
        except ValueError:
            pass
        return make_error(ERR_API, exc.detail, status=exc.status_code)
    return make_error(ERR_TRANSPORT, str(exc))


def log_and_return_empty(
    logger_: logging.Logger,
    level: int,
    message: str,
    exc: Exception | None = None,
    return_value: Any = None,
) -> Any:
    """
    Log exception and return a default value.

    Used to replace silent `except: pass` with logged fallbacks.
    """
    if exc:
        logger_.log(level, "%s: %s", message, exc)
    else:
        logger_.log(level, message)
    return return_value

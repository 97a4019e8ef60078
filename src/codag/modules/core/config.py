"""Local configuration: the ~/.codag/.env token file and server resolution.

The env file holds newline-delimited KEY=value pairs. Comments (#) and blank
lines are ignored, and keys already present in the process environment are
never overridden by the file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, MutableMapping

from .errors import NotLoggedInError

if TYPE_CHECKING:
    from ..upgrade.update_check import UpdateChecker

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "https://api.codag.ai"

ACCESS_TOKEN_KEY = "CODAG_ACCESS_TOKEN"
REFRESH_TOKEN_KEY = "CODAG_REFRESH_TOKEN"


def get_codag_home(environ: Mapping[str, str] | None = None) -> Path:
    """Return $CODAG_HOME, defaulting to ~/.codag."""
    env = os.environ if environ is None else environ
    home = env.get("CODAG_HOME")
    if home:
        return Path(home)
    try:
        return Path.home() / ".codag"
    except RuntimeError:
        return Path(".codag")


def get_server_url(environ: Mapping[str, str] | None = None) -> str:
    """API server URL from CODAG_SERVER_URL, then CODAG_URL (as set in .mcp.json)."""
    env = os.environ if environ is None else environ
    return env.get("CODAG_SERVER_URL") or env.get("CODAG_URL") or ""


def resolve_server(flag: str | None, environ: Mapping[str, str] | None = None) -> str:
    """Resolve the API base URL: --server flag > env > default."""
    if flag:
        return flag.rstrip("/")
    return (get_server_url(environ) or DEFAULT_SERVER).rstrip("/")


class EnvFile:
    """A KEY=value file such as ~/.codag/.env."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @classmethod
    def default(cls) -> "EnvFile":
        return cls(get_codag_home() / ".env")

    def read(self) -> dict[str, str]:
        """Parse the file into a dict. A missing file reads as empty."""
        values: dict[str, str] = {}
        try:
            text = self.path.read_text()
        except FileNotFoundError:
            return values
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            key, sep, value = line.partition("=")
            if not sep:
                continue
            key = key.strip()
            if key:
                values[key] = value.strip()
        return values

    def load_into(self, environ: MutableMapping[str, str] | None = None) -> None:
        """Copy file values into the environment without overriding existing keys."""
        env = os.environ if environ is None else environ
        for key, value in self.read().items():
            if key not in env:
                env[key] = value

    def get(self, key: str) -> str | None:
        return self.read().get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def remove(self, *keys: str) -> None:
        if not self.path.exists():
            return
        self.update({key: None for key in keys})

    def update(self, changes: Mapping[str, str | None]) -> None:
        """Apply several key changes in one write. A None value removes the key.

        Unrelated lines (other keys, comments) are kept in place. The file is
        replaced atomically so readers never see a half-written credential pair.
        """
        lines: list[str] = []
        if self.path.exists():
            lines = self.path.read_text().split("\n")

        pending = dict(changes)
        out: list[str] = []
        for line in lines:
            stripped = line.strip()
            key = stripped.partition("=")[0].strip() if "=" in stripped else None
            if key is not None and not stripped.startswith("#") and key in changes:
                value = pending.pop(key, None)
                if value is not None:
                    out.append(f"{key}={value}")
                continue
            out.append(line)
        for key, value in pending.items():
            if value is not None:
                out.append(f"{key}={value}")

        while out and not out[-1].strip():
            out.pop()
        self._write_atomic("\n".join(out) + "\n" if out else "")

    def _write_atomic(self, content: str) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".env.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


@dataclass
class TokenStore:
    """Access/refresh token pair, cached in memory and persisted to the env file."""

    env_file: EnvFile
    access_token: str = ""
    refresh_token: str = ""

    @classmethod
    def load(
        cls,
        env_file: EnvFile | None = None,
        environ: MutableMapping[str, str] | None = None,
    ) -> "TokenStore":
        """Load the env file into the environment, then read tokens from it."""
        env = os.environ if environ is None else environ
        env_file = env_file or EnvFile.default()
        env_file.load_into(env)
        return cls(
            env_file=env_file,
            access_token=env.get(ACCESS_TOKEN_KEY, ""),
            refresh_token=env.get(REFRESH_TOKEN_KEY, ""),
        )

    @property
    def has_auth(self) -> bool:
        return bool(self.access_token)

    def require_auth(self) -> str:
        """Return the access token or raise NotLoggedInError."""
        if not self.access_token:
            raise NotLoggedInError()
        return self.access_token

    def save(self, access_token: str, refresh_token: str | None) -> None:
        """Persist both tokens in a single write."""
        self.env_file.update(
            {
                ACCESS_TOKEN_KEY: access_token,
                REFRESH_TOKEN_KEY: refresh_token or None,
            }
        )
        self.access_token = access_token
        self.refresh_token = refresh_token or ""
        logger.debug("Saved tokens to %s", self.env_file.path)

    def clear(self) -> None:
        self.env_file.remove(ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY)
        self.access_token = ""
        self.refresh_token = ""


@dataclass
class CommandContext:
    """Per-invocation state shared by command handlers.

    Populated when the command starts, read once more when it finishes
    (update notice), discarded at exit.
    """

    server: str
    tokens: TokenStore
    version: str = "dev"
    update_checker: "UpdateChecker | None" = None

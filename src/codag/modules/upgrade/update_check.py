"""Background check for a newer codag release.

The check runs on a daemon thread while the command executes. The command
joins it at the very end, then prints a notice if a newer version exists.
Results are cached in ~/.codag/.update-check for 24 hours.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from ..core import display
from ..core.config import get_codag_home
from ..core.errors import CodagError, log_and_return_empty
from .release import Release, fetch_latest_release, is_newer, strip_version_prefix

logger = logging.getLogger(__name__)

CHECK_INTERVAL = timedelta(hours=24)
FETCH_TIMEOUT = 5.0
JOIN_TIMEOUT = 6.0


def cache_file_path() -> Path:
    return get_codag_home() / ".update-check"


def read_cache(path: Path) -> tuple[datetime, str] | None:
    try:
        data = json.loads(path.read_text())
        checked_at = datetime.fromisoformat(data["checked_at"])
        if checked_at.tzinfo is None:
            checked_at = checked_at.replace(tzinfo=timezone.utc)
        return checked_at, data.get("latest_version") or ""
    except (OSError, ValueError, KeyError, TypeError) as e:
        return log_and_return_empty(logger, logging.DEBUG, f"No usable update cache at {path}", e)


def write_cache(path: Path, latest: str, now: datetime) -> None:
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        path.write_text(json.dumps({"checked_at": now.isoformat(), "latest_version": latest}))
        path.chmod(0o600)
    except OSError as e:
        logger.debug("Could not write update cache %s: %s", path, e)


class UpdateChecker:
    """Fire-and-forget version probe with an explicit join before the notice."""

    def __init__(
        self,
        current_version: str,
        *,
        cache_path: Path | None = None,
        fetch: Callable[[], Release] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.current_version = current_version
        self.cache_path = cache_path or cache_file_path()
        self._fetch = fetch or (lambda: fetch_latest_release(timeout=FETCH_TIMEOUT))
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._thread: threading.Thread | None = None
        self.available: str | None = None

    def start(self) -> "UpdateChecker":
        self._thread = threading.Thread(target=self.run, name="codag-update-check", daemon=True)
        self._thread.start()
        return self

    def run(self) -> None:
        if self.current_version == "dev":
            return
        current = strip_version_prefix(self.current_version)
        now = self._now()

        cached = read_cache(self.cache_path)
        if cached and now - cached[0] < CHECK_INTERVAL:
            latest = strip_version_prefix(cached[1])
        else:
            try:
                latest = self._fetch().version
            except CodagError as e:
                logger.debug("Update check failed: %s", e)
                return
            write_cache(self.cache_path, latest, now)

        if latest and is_newer(latest, current):
            self.available = latest

    def wait(self, timeout: float = JOIN_TIMEOUT) -> str | None:
        """Join the check (abandoning it after timeout) and return the newer version."""
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.debug("Update check still running, abandoning it")
                return None
        return self.available

    def print_notice(self) -> None:
        latest = self.wait()
        if not latest:
            return
        display.line()
        display.warn(
            f"A new version of codag is available: {self.current_version} → {latest}"
        )
        display.info("Run `codag upgrade` to update.")

"""Wait for a repo's indexing job to finish."""

from __future__ import annotations

import logging
import time
from typing import Callable

from . import display
from .api import ApiClient, Stats
from .errors import CodagError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0
POLL_TIMEOUT = 30 * 60.0
# A job that reports "not indexing" with no signals may simply not have
# started recording progress yet.
POLL_GRACE_PERIOD = 2 * 60.0


def poll_indexing(
    client: ApiClient,
    repo_id: int,
    *,
    interval: float = POLL_INTERVAL,
    timeout: float = POLL_TIMEOUT,
    grace_period: float = POLL_GRACE_PERIOD,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Stats | None:
    """Poll /api/stats until indexing completes.

    Returns the final stats, or None when the timeout expired (the user is
    told to check back later; this is not an error).
    """
    spinner = display.Spinner("Waiting for indexing...").start()
    try:
        last_signals = 0
        start = clock()

        while True:
            sleep(interval)
            elapsed = clock() - start

            try:
                stats = client.get_stats(repo_id)
            except CodagError as e:
                logger.debug("Transient stats error while polling: %s", e)
                stats = None

            if stats is not None:
                if stats.total_signals != last_signals:
                    spinner.update(
                        f"Waiting for indexing...  PRs: {stats.prs_indexed} | "
                        f"Signals: {stats.total_signals} | Danger: {stats.danger_signals}"
                    )
                    last_signals = stats.total_signals

                if not stats.indexing and (
                    stats.total_signals > 0 or elapsed > grace_period
                ):
                    break

            if elapsed > timeout:
                spinner.stop()
                display.warn("Indexing is taking a while. Check back with: codag status")
                return None
    finally:
        spinner.stop()

    stats = client.get_stats(repo_id)

    display.success("Done!")
    display.keyval("PRs indexed", str(stats.prs_indexed))
    display.keyval("Files w/ signals", str(stats.files_with_signals))
    display.keyval(
        "Total signals", f"{stats.total_signals} ({stats.danger_signals} danger)"
    )
    return stats

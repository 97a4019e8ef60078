"""Detect the GitHub URL of a local git checkout."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

_SSH_REMOTE_RE = re.compile(r"^git@github\.com:(.+?)(?:\.git)?$")


def normalize_github_remote(remote: str) -> str | None:
    """Turn an origin URL into https://github.com/owner/repo, or None if not GitHub."""
    remote = remote.strip()
    match = _SSH_REMOTE_RE.match(remote)
    if match:
        return "https://github.com/" + match.group(1)
    if "github.com" in remote:
        return remote[: -len(".git")] if remote.endswith(".git") else remote
    return None


def _git(args: list[str], cwd: str | Path | None) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None
    return result.stdout.strip()


def detect_github_remote(cwd: str | Path | None = None) -> str | None:
    """GitHub URL of the 'origin' remote in cwd."""
    remote = _git(["remote", "get-url", "origin"], cwd)
    if not remote:
        return None
    return normalize_github_remote(remote)


def detect_github_url(cwd: str | Path | None = None) -> tuple[str | None, str | None]:
    """Return (github_url, repo_root) for the checkout containing cwd."""
    root = _git(["rev-parse", "--show-toplevel"], cwd)
    if not root:
        return None, None
    url = detect_github_remote(cwd)
    if not url:
        return None, None
    return url, root

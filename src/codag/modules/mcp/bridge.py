"""
Codag MCP Server - Model Context Protocol interface for Codag signals.

Exposes two tools to coding agents (Claude Code, Cursor, VS Code, Codex):
- codag_brief: danger signals and patterns for files about to be modified
- codag_check: signals relevant to a described change

Usage:
    codag mcp serve [workspace]
"""

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from ..core.api import ApiClient
from ..core.config import TokenStore
from ..core.errors import (
    CodagError,
    make_unavailable_error,
    make_upstream_error,
)
from ..core.git import detect_github_remote

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 3.0
RESOLVE_TIMEOUT = 5.0
TOOL_TIMEOUT = 10.0

BRIEF_DESCRIPTION = (
    "Get pre-computed danger signals, warnings, and patterns for files you're about "
    "to modify. Call this ONCE with all files before making changes. Returns ranked "
    "signals with inline context — no follow-up calls needed."
)

CHECK_DESCRIPTION = (
    "Check a planned change against the repo's PR history. Describe what you intend "
    "to do in plain language; returns past incidents, reverts, and review warnings "
    "relevant to that change."
)


def format_payload(payload: Any) -> str:
    """Pretty-print a JSON payload for the tool result text."""
    if payload is None:
        return "{}"
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except ValueError:
            return payload.decode("utf-8", "replace") if isinstance(payload, bytes) else payload
    return json.dumps(payload, indent=2, ensure_ascii=False)


class CodagBridge:
    """Forwards MCP tool calls to the Codag API for one workspace."""

    def __init__(self, server_url: str, tokens: TokenStore, workspace: str | Path) -> None:
        self.server_url = server_url.rstrip("/")
        self.tokens = tokens
        self.workspace = Path(workspace)
        self.repo_id: int | None = None
        self.available = False

    def _client(self, timeout: float) -> ApiClient:
        return ApiClient(self.server_url, self.tokens, timeout=timeout)

    def check_availability(self) -> bool:
        """Health check, git remote detection, then repo resolution.

        Any failure leaves the bridge running but unavailable.
        """
        self.available = False
        self.repo_id = None

        if not self._client(HEALTH_TIMEOUT).health():
            logger.info("Codag server %s is not reachable", self.server_url)
            return False

        github_url = detect_github_remote(self.workspace)
        if not github_url:
            logger.info("No GitHub remote found in %s", self.workspace)
            return False

        try:
            repo = self._client(RESOLVE_TIMEOUT).resolve_repo(github_url)
        except CodagError as e:
            logger.info("Could not resolve %s: %s", github_url, e)
            return False

        self.repo_id = repo.id
        self.available = True
        logger.debug("Connected to repo %s (%s)", repo.id, github_url)
        return True

    def _call(self, method: str, *args) -> str:
        if not self.available or self.repo_id is None:
            return format_payload(make_unavailable_error())
        client = self._client(TOOL_TIMEOUT)
        try:
            result = getattr(client, method)(self.repo_id, *args)
        except CodagError as e:
            logger.warning("codag %s failed: %s", method, e)
            return format_payload(make_upstream_error(e))
        return format_payload(result)

    def brief(self, files: list[str]) -> str:
        return self._call("brief", files)

    def check(self, description: str) -> str:
        return self._call("check", description)


def create_server(bridge: CodagBridge) -> FastMCP:
    """Build the FastMCP server with the codag tools bound to bridge."""
    mcp = FastMCP("codag")

    @mcp.tool(name="codag_brief", description=BRIEF_DESCRIPTION)
    def codag_brief(files: list[str]) -> str:
        """Signals for files you're about to modify.

        Args:
            files: File paths relative to repo root (e.g. ['src/main.py', 'src/utils.py'])
        """
        files = [f for f in files if isinstance(f, str) and f]
        if not files:
            raise ValueError("files array is empty")
        return bridge.brief(files)

    @mcp.tool(name="codag_check", description=CHECK_DESCRIPTION)
    def codag_check(description: str) -> str:
        """Signals relevant to a planned change.

        Args:
            description: Plain-language description of the change
        """
        if not description or not description.strip():
            raise ValueError("description is empty")
        return bridge.check(description.strip())

    return mcp


def serve(workspace: str | Path, server_url: str, tokens: TokenStore) -> None:
    """Run the MCP server over stdio until the client disconnects."""
    bridge = CodagBridge(server_url, tokens, workspace)
    bridge.check_availability()
    create_server(bridge).run(transport="stdio")

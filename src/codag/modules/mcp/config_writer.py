"""Write the codag MCP server entry into editor config files.

- .mcp.json (mcpServers) is always written: Claude Code and Cursor
- .vscode/mcp.json (servers) when .vscode/ exists: VS Code
- .codex/config.toml ([mcp_servers.codag]) when .codex/ exists: Codex

Existing files are merged, never overwritten: unrelated entries survive, and
a file that cannot be parsed is kept as <name>.bak before starting fresh.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import ConfigWriteError

logger = logging.getLogger(__name__)

SERVER_NAME = "codag"
TOML_SECTION = "mcp_servers.codag"

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class WriteResult:
    editor: str
    path: str  # relative to the repo root
    action: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def codag_entry(server_url: str) -> dict:
    """The MCP server entry describing how an editor launches codag."""
    return {
        "command": "codag",
        "args": ["mcp", "serve", "."],
        "env": {"CODAG_URL": server_url},
    }


def _canonical(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def write_json_config(path: Path, servers_key: str, server_url: str) -> str:
    """Merge the codag entry into a JSON config under servers_key.

    Returns "created", "updated" or "unchanged".
    """
    path = Path(path)
    entry = codag_entry(server_url)
    config: dict | None = None
    action = CREATED

    if path.exists():
        try:
            loaded = json.loads(path.read_text())
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug("Malformed %s: %s", path, e)
            loaded = None
        if isinstance(loaded, dict):
            config = loaded
            action = UPDATED
        else:
            backup = path.with_name(path.name + ".bak")
            os.replace(path, backup)
            logger.info("Backed up unreadable %s to %s", path, backup)

    if config is None:
        config = {}

    servers = config.get(servers_key)
    if not isinstance(servers, dict):
        servers = {}
        config[servers_key] = servers

    existing = servers.get(SERVER_NAME)
    if existing is not None and _canonical(existing) == _canonical(entry):
        return UNCHANGED

    servers[SERVER_NAME] = entry
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n")
    return action


def toml_section(server_url: str) -> str:
    entry = codag_entry(server_url)
    args = ", ".join(json.dumps(a) for a in entry["args"])
    return (
        f"[{TOML_SECTION}]\n"
        f"command = {json.dumps(entry['command'])}\n"
        f"args = [{args}]\n"
        f"\n"
        f"[{TOML_SECTION}.env]\n"
        f"CODAG_URL = {json.dumps(server_url)}"
    )


def remove_toml_section(content: str, section: str) -> str:
    """Drop every line of [section] and its [section.*] subsections."""
    out: list[str] = []
    in_section = False
    for line in content.split("\n"):
        stripped = line.strip()
        if stripped.startswith(f"[{section}]") or stripped.startswith(f"[{section}."):
            in_section = True
            continue
        if in_section and stripped.startswith("["):
            in_section = False
        if not in_section:
            out.append(line)
    return "\n".join(out)


def write_codex_toml(path: Path, server_url: str) -> str:
    path = Path(path)
    section = toml_section(server_url)

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(section + "\n")
        return CREATED

    content = path.read_text()
    if f"[{TOML_SECTION}]" in content:
        if section in content:
            return UNCHANGED
        content = remove_toml_section(content, TOML_SECTION)

    content = content.rstrip("\n")
    content = f"{content}\n\n{section}\n" if content else f"{section}\n"
    path.write_text(content)
    return UPDATED


def write_root_config(directory: Path, server_url: str) -> str:
    """Write .mcp.json in directory."""
    return write_json_config(Path(directory) / ".mcp.json", "mcpServers", server_url)


def _attempt(result: WriteResult, write, *args) -> WriteResult:
    try:
        result.action = write(*args)
    except OSError as e:
        result.error = str(ConfigWriteError(result.path, e))
        logger.debug("Config write failed for %s: %s", result.path, e)
    return result


def write_all(directory: Path, server_url: str) -> list[WriteResult]:
    """Write MCP configs for every editor detected in directory."""
    directory = Path(directory)
    results = [
        _attempt(
            WriteResult("Claude Code / Cursor", ".mcp.json"),
            write_root_config,
            directory,
            server_url,
        )
    ]

    if (directory / ".vscode").is_dir():
        results.append(
            _attempt(
                WriteResult("VS Code", ".vscode/mcp.json"),
                write_json_config,
                directory / ".vscode" / "mcp.json",
                "servers",
                server_url,
            )
        )

    if (directory / ".codex").is_dir():
        results.append(
            _attempt(
                WriteResult("Codex", ".codex/config.toml"),
                write_codex_toml,
                directory / ".codex" / "config.toml",
                server_url,
            )
        )

    return results

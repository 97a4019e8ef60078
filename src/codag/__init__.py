"""
Codag CLI: organizational memory for coding agents.

Indexes a repository's PR history into safety signals on the Codag service
and exposes them to coding agents over MCP.

Modules:
- core: Token store, API client, indexing poller, console output
- auth: Device-code login and logout
- mcp: stdio MCP bridge and editor config writer
- upgrade: Self-upgrade and background update check
"""

try:
    from importlib.metadata import version
    __version__ = version("codag")
except Exception:
    __version__ = "dev"

# Stamped by the release build.
__commit__ = "none"
__build_date__ = "unknown"

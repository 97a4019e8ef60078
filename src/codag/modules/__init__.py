"""Codag modules.

Modules:
- core: Token store, API client, indexing poller, console output
- auth: Device-code login and logout
- mcp: stdio MCP bridge and editor config writer
- upgrade: Self-upgrade and background update check
"""

# Lazy imports keep `codag --help` fast and avoid importing mcp for every command
def __getattr__(name: str):
    if name == "core":
        from . import core
        return core
    elif name == "auth":
        from . import auth
        return auth
    elif name == "mcp":
        from . import mcp
        return mcp
    elif name == "upgrade":
        from . import upgrade
        return upgrade
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = ["core", "auth", "mcp", "upgrade"]

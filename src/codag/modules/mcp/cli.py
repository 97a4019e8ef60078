"""MCP CLI - subcommand handler for codag mcp."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..core import display
from ..core.config import CommandContext
from ..core.errors import CodagError


def add_subparser(
    subparsers: argparse._SubParsersAction, parents: list[argparse.ArgumentParser]
) -> None:
    """Add the 'mcp' subcommand to the main CLI parser."""
    mcp_parser = subparsers.add_parser(
        "mcp",
        help="MCP server commands",
        description="Model Context Protocol server for coding agents.",
    )
    mcp_sub = mcp_parser.add_subparsers(dest="mcp_command", required=True)

    serve_p = mcp_sub.add_parser(
        "serve", help="Start the Codag MCP server (stdio)", parents=parents
    )
    serve_p.add_argument("workspace", nargs="?", default=".", help="Workspace path (default: .)")


def handle(args: argparse.Namespace, ctx: CommandContext) -> int:
    """Handle mcp subcommand."""
    if args.mcp_command != "serve":
        raise ValueError(f"Unknown mcp command: {args.mcp_command}")

    # Meant to be launched by an editor, not by a person at a terminal
    if sys.stdin.isatty():
        display.warn("This command starts an MCP server over stdio (JSON-RPC).")
        display.line("  It's meant to be launched by your IDE (Cursor, VS Code, etc.), not run directly.")
        display.line()
        display.line("  To set up MCP for a project, run:")
        display.console.print("    ", display.bold("codag init"), sep="")
        display.line()
        display.line("  This adds the MCP config to your project so your editor picks it up automatically.")
        return 0

    workspace = Path(args.workspace).resolve()
    if not workspace.exists():
        raise CodagError(f"workspace path does not exist: {workspace}")

    from .bridge import serve

    serve(workspace, ctx.server, ctx.tokens)
    return 0

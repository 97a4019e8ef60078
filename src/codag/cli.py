#!/usr/bin/env python3
"""
Codag CLI - Organizational memory for coding agents.

Index your repo's PR history into safety signals for AI coding agents.

Usage:
    codag login                          Log in via your browser
    codag init [github-url]              Register a repo and start indexing
    codag status                         Show indexing status
    codag mcp serve [workspace]          Start the MCP server (stdio)
"""
import argparse
import logging
import os
import signal
import sys
from pathlib import Path

from . import __build_date__, __commit__, __version__
from .modules.core import display
from .modules.core.api import ApiClient, Repo
from .modules.core.config import CommandContext, TokenStore, resolve_server
from .modules.core.errors import (
    APIError,
    CodagError,
    NotLoggedInError,
    SilentError,
    TransportError,
    silent,
)

logger = logging.getLogger(__name__)

# Commands that must not print anything extra to stdout at exit
_NO_UPDATE_CHECK = {"upgrade", "mcp"}
# stdout is the JSON-RPC channel, so no farewell message
_NO_SIGNAL_HANDLERS = {"mcp"}


def handle_api_error(exc: CodagError, server: str) -> SilentError:
    """Render an API or transport error and mark it as already shown."""
    if isinstance(exc, APIError):
        if exc.status_code == 401:
            display.error("Invalid or expired token. Run: codag login")
        else:
            display.error(f"Error {exc.status_code}: {exc.detail}")
    elif isinstance(exc, TransportError):
        display.error(f"Cannot connect to {server}")
        display.hint("Check your connection or try again later.")
    else:
        display.error(str(exc))
    return silent(exc)


def _require_auth(ctx: CommandContext) -> ApiClient:
    try:
        ctx.tokens.require_auth()
    except NotLoggedInError as e:
        display.error("Not logged in.")
        display.hint("Run: codag login")
        raise silent(e)
    return ApiClient(ctx.server, ctx.tokens)


def _short_date(timestamp: str | None) -> str:
    if not timestamp:
        return "never"
    return timestamp[:10]


# === ACCOUNT ===


def cmd_account(args, ctx: CommandContext) -> int:
    if not ctx.tokens.has_auth:
        display.error("Not logged in. Run `codag login` first.")
        raise silent(NotLoggedInError())

    client = ApiClient(ctx.server, ctx.tokens)
    try:
        me = client.get_me()
    except APIError as e:
        if e.status_code == 401:
            display.error("Session expired. Run `codag login` to re-authenticate.")
            raise silent(e)
        raise handle_api_error(e, ctx.server)
    except TransportError as e:
        raise handle_api_error(e, ctx.server)

    display.line()
    display.keyval("User", me.github_login)
    if me.email:
        display.keyval("Email", me.email)

    tier = "Free"
    if me.subscription and me.subscription.tier:
        tier = me.subscription.tier[:1].upper() + me.subscription.tier[1:]
    display.keyval("Plan", tier)
    if me.subscription and me.subscription.cancel_at_period_end:
        display.warn("Cancellation pending — reverts to Free at period end")

    display.keyval("Repos", str(len(me.repos)))
    if me.orgs:
        display.keyval("Orgs", ", ".join(o.name for o in me.orgs))
    display.line()
    return 0


# === INIT ===


def setup_webhook(client: ApiClient, repo_id: int) -> None:
    """Create the GitHub webhook for auto-reindexing. Failures only warn."""
    try:
        result = client.setup_webhook(repo_id)
    except APIError as e:
        if e.status_code == 400:
            display.warn("No GitHub token stored. Webhook skipped.")
            display.hint("Log in at console.codag.ai to enable auto-reindexing.")
        elif e.status_code == 403:
            display.warn("No admin access to this repo. Webhook skipped.")
        else:
            display.warn(f"Webhook setup failed: {e.detail}")
        return
    except CodagError as e:
        display.warn(f"Webhook setup failed: {e}")
        return

    if result.status == "created":
        display.success("Webhook created — auto-reindex on push, PRs, and issues")
    elif result.status == "already_exists":
        display.info("Webhook already configured")


def write_mcp_config(repo_root: str | Path | None, server: str) -> None:
    """Write MCP configs for every detected editor and report what changed."""
    from .modules.mcp.config_writer import CREATED, UNCHANGED, UPDATED, write_all

    if not repo_root:
        return

    results = write_all(Path(repo_root), server)
    written = [r for r in results if r.ok]
    for r in results:
        if not r.ok:
            display.warn(r.error)

    if not written:
        display.warn("Could not write MCP config.")
        display.info("Add this to your .mcp.json manually:")
        display.code_block(
            '"codag": {\n'
            '  "command": "codag",\n'
            '  "args": ["mcp", "serve", "."],\n'
            f'  "env": {{ "CODAG_URL": "{server}" }}\n'
            "}"
        )
        return

    for r in written:
        if r.action == CREATED:
            display.success(f"Created {r.path} ({r.editor})")
        elif r.action == UPDATED:
            display.success(f"Updated {r.path} ({r.editor})")
        elif r.action == UNCHANGED:
            display.info(f"{r.path} already configured ({r.editor})")

    if "localhost" in server or "127.0.0.1" in server:
        display.warn("MCP config points to a local dev server.")
        display.line("  Re-run 'codag init' without --server before committing.")
    else:
        display.line("  Your coding agent now has access to Codag signals.")


def cmd_init(args, ctx: CommandContext) -> int:
    from .modules.core.git import detect_github_url
    from .modules.core.poll import poll_indexing

    client = _require_auth(ctx)

    if args.github_url:
        github_url = args.github_url
        repo_root = os.getcwd()
    else:
        github_url, repo_root = detect_github_url()
        if not github_url:
            display.error("Not in a git repo with a GitHub remote.")
            display.hint("Usage: codag init <github-url>")
            raise silent()
        display.line(f"Detected: {github_url}")
        if not display.ask_yes_no("Index this repo? [Y/n] ", default=True):
            display.info("Cancelled.")
            return 0

    display.line()
    display.info(f"Registering {github_url}...")
    try:
        repo = client.register_repo(github_url)
    except CodagError as e:
        raise handle_api_error(e, ctx.server)

    setup_webhook(client, repo.id)

    if repo.last_indexed_at:
        display.warn(f"Already indexed (last: {_short_date(repo.last_indexed_at)})")
        display.line(f"\n  To re-index: codag index --repo {repo.id}")
        write_mcp_config(repo_root, ctx.server)
        return 0

    display.success(f"Registered: {repo.full_name} (id: {repo.id})")

    display.line()
    display.info("Indexing PR history...")
    try:
        client.trigger_backfill(repo.id, args.max_prs or None)
    except CodagError as e:
        raise handle_api_error(e, ctx.server)

    poll_indexing(client, repo.id)

    display.line()
    write_mcp_config(repo_root, ctx.server)
    return 0


# === INDEX ===


def cmd_index(args, ctx: CommandContext) -> int:
    from .modules.core.poll import poll_indexing

    client = _require_auth(ctx)

    repo_id = args.repo
    if not repo_id:
        try:
            repos = client.list_repos()
        except CodagError as e:
            raise handle_api_error(e, ctx.server)
        if not repos:
            display.error("No repos registered. Run: codag init")
            raise silent()
        last: Repo = repos[-1]
        repo_id = last.id
        display.info(f"Using repo #{last.id} ({last.full_name})")

    if not args.force:
        display.line()
        display.warn("Re-indexing deletes all existing data and can take up to hours.")
        display.line("  This re-processes all PRs from scratch. You usually don't need this —")
        display.line("  new PRs are indexed automatically via webhooks.")
        display.line()
        if not display.ask_yes_no("  Continue? [y/N] ", default=False):
            display.info("Cancelled.")
            return 0
        display.line()

    display.info("Indexing PR history...")
    try:
        result = client.trigger_backfill(repo_id, args.max_prs or None)
    except CodagError as e:
        raise handle_api_error(e, ctx.server)

    if result.status == "already_running":
        display.warn("Indexing already in progress.")

    poll_indexing(client, repo_id)
    return 0


# === STATUS ===


def cmd_status(args, ctx: CommandContext) -> int:
    client = _require_auth(ctx)

    try:
        repos = client.list_repos()
    except CodagError as e:
        raise handle_api_error(e, ctx.server)

    if not repos:
        display.info("No repos registered. Run: codag init")
        return 0

    display.line()
    for repo in repos:
        display.console.print("  ", display.bold(repo.full_name), sep="")
        display.keyval("Last indexed", _short_date(repo.last_indexed_at))
        try:
            stats = client.get_stats(repo.id)
        except CodagError as e:
            logger.debug("Stats unavailable for repo %s: %s", repo.id, e)
            display.line()
            continue
        display.line(
            f"  PRs: {stats.prs_indexed} | Files w/ signals: {stats.files_with_signals} | "
            f"Signals: {stats.total_signals} ({stats.danger_signals} danger)"
        )
        if stats.indexing:
            display.console.print("  [bright_yellow]Status: indexing...[/]")
        display.line()
    return 0


# === VERSION ===


def cmd_version(args, ctx: CommandContext) -> int:
    display.line(f"codag {__version__} ({__commit__[:7]}) built {__build_date__}")
    return 0


def _handle_auth(args, ctx):
    from .modules.auth import cli as auth_cli
    return auth_cli.handle(args, ctx)


def _handle_mcp(args, ctx):
    from .modules.mcp import cli as mcp_cli
    return mcp_cli.handle(args, ctx)


def _handle_upgrade(args, ctx):
    from .modules.upgrade import cli as upgrade_cli
    return upgrade_cli.handle(args, ctx)


COMMANDS = {
    "login": _handle_auth,
    "logout": _handle_auth,
    "account": cmd_account,
    "init": cmd_init,
    "index": cmd_index,
    "status": cmd_status,
    "version": cmd_version,
    "upgrade": _handle_upgrade,
    "mcp": _handle_mcp,
}


def build_parser() -> argparse.ArgumentParser:
    from .modules.auth import cli as auth_cli
    from .modules.mcp import cli as mcp_cli
    from .modules.upgrade import cli as upgrade_cli

    parser = argparse.ArgumentParser(
        prog="codag",
        description="Organizational memory for coding agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Version: %(prog)s """ + __version__ + """

Examples:
    codag login                          # Log in via your browser
    codag init                           # Register this repo and index its PRs
    codag index --repo 12 --force        # Re-index without confirmation
    codag status                         # Indexing status for all repos

Environment:
    CODAG_HOME          Config directory (default: ~/.codag)
    CODAG_SERVER_URL    API server (also read from CODAG_URL)
    CODAG_DEBUG=1       Debug logging on stderr
        """,
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Hidden --server flag shared by every subcommand
    server_parent = argparse.ArgumentParser(add_help=False)
    server_parent.add_argument("--server", default=None, help=argparse.SUPPRESS)
    parents = [server_parent]

    subparsers = parser.add_subparsers(dest="command", required=True)

    auth_cli.add_subparser(subparsers, parents)

    subparsers.add_parser("account", help="Show account info and current plan", parents=parents)

    # codag init [github-url]
    init_p = subparsers.add_parser("init", help="Register a repo and start indexing", parents=parents)
    init_p.add_argument("github_url", nargs="?", default=None, help="GitHub URL (default: origin remote)")
    init_p.add_argument("--max-prs", type=int, default=0, help="Max PRs to fetch (default: 500)")

    # codag index
    index_p = subparsers.add_parser("index", help="Re-index a registered repo", parents=parents)
    index_p.add_argument("--repo", type=int, default=0, help="Repo ID (default: most recent)")
    index_p.add_argument("--max-prs", type=int, default=0, help="Max PRs to fetch")
    index_p.add_argument("-f", "--force", action="store_true", help="Skip confirmation prompt")

    subparsers.add_parser("status", help="Show indexing status", parents=parents)
    subparsers.add_parser("version", help="Print version information", parents=parents)

    upgrade_cli.add_subparser(subparsers, parents)
    mcp_cli.add_subparser(subparsers, parents)

    return parser


def _install_signal_handlers() -> None:
    def _farewell(signum, frame):
        print("\n\nSee ya!")
        sys.exit(0)

    signal.signal(signal.SIGINT, _farewell)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _farewell)


def _configure_logging() -> None:
    if os.environ.get("CODAG_DEBUG"):
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )


def run(argv: list[str] | None = None) -> int:
    """Parse argv, run one command, and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    tokens = TokenStore.load()
    _configure_logging()
    ctx = CommandContext(
        server=resolve_server(getattr(args, "server", None)),
        tokens=tokens,
        version=__version__,
    )

    if args.command not in _NO_SIGNAL_HANDLERS:
        _install_signal_handlers()
    if args.command not in _NO_UPDATE_CHECK and not os.environ.get("CODAG_NO_UPDATE_CHECK"):
        from .modules.upgrade.update_check import UpdateChecker
        ctx.update_checker = UpdateChecker(__version__).start()

    try:
        code = COMMANDS[args.command](args, ctx)
    except SilentError:
        return 1
    except CodagError as e:
        display.error(str(e))
        return 1
    except OSError as e:
        display.error(str(e))
        return 1
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        display.error(str(e) or e.__class__.__name__)
        return 1

    if ctx.update_checker is not None:
        ctx.update_checker.print_notice()
    return code


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()

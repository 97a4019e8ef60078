"""Auth CLI - handlers for codag login / logout."""

from __future__ import annotations

import argparse
import logging

from ..core import display
from ..core.api import ApiClient
from ..core.config import CommandContext
from ..core.errors import CodagError, DeviceFlowError, TransportError, silent
from .device_flow import DeviceFlow, open_browser

logger = logging.getLogger(__name__)


def add_subparser(
    subparsers: argparse._SubParsersAction, parents: list[argparse.ArgumentParser]
) -> None:
    """Add the 'login' and 'logout' subcommands to the main CLI parser."""
    login_p = subparsers.add_parser(
        "login",
        help="Log in to Codag",
        description="Log in with a device code confirmed in your browser.",
        parents=parents,
    )
    login_p.add_argument(
        "--token",
        default=None,
        help="Store an existing access token instead of logging in via the browser",
    )

    subparsers.add_parser("logout", help="Log out and remove stored tokens", parents=parents)


def handle(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.command == "login":
        return login(args, ctx)
    if args.command == "logout":
        return logout(ctx)
    raise ValueError(f"Unknown auth command: {args.command}")


def login(args: argparse.Namespace, ctx: CommandContext) -> int:
    tokens = ctx.tokens

    if tokens.has_auth:
        question = (
            "Token already set. Replace? [y/N] "
            if args.token
            else "Already logged in. Re-authenticate? [y/N] "
        )
        if not display.ask_yes_no(question, default=False):
            display.info("Kept existing credentials.")
            return 0
        display.line()

    if args.token:
        token = args.token.strip()
        if not token:
            display.error("No token provided.")
            raise silent()
        try:
            tokens.save(token, None)
        except OSError as e:
            display.error(f"Could not save token: {e}")
            raise silent(e)
        display.success(f"Saved to {tokens.env_file.path}")
        return 0

    flow = DeviceFlow(ctx.server, tokens)
    try:
        code = flow.request_code()
    except TransportError as e:
        display.error(f"Cannot connect to {ctx.server}")
        display.hint("Check your connection or try again later.")
        raise silent(e)
    except DeviceFlowError as e:
        display.error(str(e))
        raise silent(e)

    display.line()
    display.line(f"  Your code: {code.user_code}")
    display.line()
    if open_browser(code.verification_uri):
        display.info(f"Opened {code.verification_uri} in your browser.")
    else:
        display.info(f"Open {code.verification_uri} and enter the code above.")

    spinner = display.Spinner("Waiting for authorization...").start()
    try:
        token = flow.poll(code)
    except DeviceFlowError as e:
        spinner.stop()
        display.error(str(e))
        raise silent(e)
    finally:
        spinner.stop()

    if token.identity:
        display.success(f"Logged in as {token.identity}")
    else:
        display.success("Logged in.")
    return 0


def logout(ctx: CommandContext) -> int:
    tokens = ctx.tokens
    if not tokens.has_auth and not tokens.refresh_token:
        display.info("Not logged in.")
        return 0

    # Revoking the session server-side is best effort; local tokens go regardless
    try:
        ApiClient(ctx.server, tokens, timeout=10).logout()
    except CodagError as e:
        logger.debug("Server logout failed: %s", e)

    try:
        tokens.clear()
    except OSError as e:
        display.error(f"Could not remove tokens from {tokens.env_file.path}: {e}")
        raise silent(e)
    display.success("Logged out.")
    return 0

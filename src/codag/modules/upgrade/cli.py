"""Upgrade CLI - subcommand handler for codag upgrade."""

from __future__ import annotations

import argparse

from ..core import display
from ..core.config import CommandContext
from ..core.errors import UpgradeError, silent
from . import release as release_mod


def add_subparser(
    subparsers: argparse._SubParsersAction, parents: list[argparse.ArgumentParser]
) -> None:
    """Add the 'upgrade' subcommand to the main CLI parser."""
    upgrade_p = subparsers.add_parser(
        "upgrade", help="Upgrade codag to the latest version", parents=parents
    )
    upgrade_p.add_argument(
        "--force",
        action="store_true",
        help="Force upgrade even on dev builds or when already up to date",
    )


def handle(args: argparse.Namespace, ctx: CommandContext) -> int:
    """Handle upgrade subcommand."""
    if ctx.version == "dev" and not args.force:
        display.warn("Running a dev build — cannot determine current version.")
        display.info("Use --force to upgrade anyway.")
        return 0

    if not release_mod.is_frozen() and not args.force:
        display.warn("codag is installed as a Python package.")
        display.info("Upgrade with: pip install --upgrade codag  (or use --force to install the release binary)")
        return 0

    spinner = display.Spinner("Checking for updates…").start()
    try:
        result = release_mod.run_upgrade(
            ctx.version, force=args.force, progress=spinner.update
        )
    except UpgradeError as e:
        spinner.stop()
        display.error(str(e))
        raise silent(e)
    finally:
        spinner.stop()

    if not result.upgraded:
        display.success(f"Already up to date ({result.current})")
        return 0
    display.success(f"Upgraded codag: {result.current} → {result.latest}")
    return 0

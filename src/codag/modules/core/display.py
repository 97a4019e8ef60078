"""Console output for the codag CLI.

Status lines use a colored one-character marker. Errors go to stderr,
everything else to stdout.
"""

from __future__ import annotations

import sys

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)

BRAILLE_SPINNER = "dots"
ASCII_SPINNER = "line"


def success(msg: str) -> None:
    console.print(Text.assemble(("✓", "bright_green"), " ", msg))


def error(msg: str) -> None:
    err_console.print(Text.assemble(("✗", "bright_red"), " ", msg))


def hint(msg: str) -> None:
    """Indented follow-up line for an error, on stderr."""
    err_console.print(Text(f"  {msg}"))


def warn(msg: str) -> None:
    console.print(Text.assemble(("!", "bright_yellow"), " ", msg))


def info(msg: str) -> None:
    console.print(Text.assemble(("›", "bright_cyan"), " ", msg))


def keyval(key: str, value: str) -> None:
    console.print(Text.assemble("  ", (f"{key}:", "bright_black"), "  ", str(value)))


def line(msg: str = "") -> None:
    console.print(Text(msg))


def bold(text: str) -> Text:
    return Text(text, style="bold")


def code_block(content: str) -> None:
    console.print(Panel(Text(content), border_style="bright_black", expand=False, padding=(0, 1)))


def ask_yes_no(prompt: str, default: bool = False) -> bool:
    """Ask a yes/no question on stdin.

    Empty input returns the default. EOF and anything that isn't a clear
    yes/no returns False.
    """
    console.print(Text(prompt), end="")
    try:
        answer = input().strip().lower()
    except EOFError:
        console.print()
        return False
    if not answer:
        return default
    if answer in ("y", "yes"):
        return True
    return False


class Spinner:
    """Animated status line for long waits.

    rich renders it on a background thread; stop() joins that thread and
    clears the line, so it must be called before printing anything else.
    """

    def __init__(self, message: str, out: Console | None = None) -> None:
        self.message = message
        self._console = out or console
        spinner = ASCII_SPINNER if sys.platform == "win32" else BRAILLE_SPINNER
        self._status = self._console.status(message, spinner=spinner, spinner_style="bright_cyan")
        self._running = False

    def start(self) -> "Spinner":
        if not self._running:
            self._status.start()
            self._running = True
        return self

    def update(self, message: str) -> None:
        self.message = message
        self._status.update(message)

    def stop(self) -> None:
        if self._running:
            self._status.stop()
            self._running = False

    def __enter__(self) -> "Spinner":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()

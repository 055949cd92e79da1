"""Console output for delayq commands."""

import logging
import os

from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

_NO_COLOR_VALUES = ("1", "true", "yes")


def _make_console() -> Console:
    plain = os.environ.get("NO_COLOR", "").lower() in _NO_COLOR_VALUES
    return Console(highlight=False, force_terminal=not plain, no_color=plain)


console = _make_console()


def _mark(symbol: str, style: str, msg: str) -> None:
    console.print(f"  [{style}]{symbol}[/{style}] {msg}")


def success(msg: str) -> None:
    """Print a line for a completed action."""
    _mark("✓", "green", msg)


def error(msg: str) -> None:
    _mark("✗", "red", msg)


def info(msg: str) -> None:
    _mark("→", "dim", msg)


def dim(msg: str) -> None:
    console.print(f"  [dim]{msg}[/dim]")


def error_panel(msg: str, *, title: str = "Failed") -> None:
    """Print a bordered block for errors that end a command."""
    body = Text.assemble(("✗ ", "red bold"), (title, "red"), "\n\n", (msg, "dim"))
    console.print(
        Panel(body, border_style="red dim", box=ROUNDED, padding=(0, 1), expand=False)
    )


def nl() -> None:
    console.print()


def setup_logging(verbose: bool = False) -> None:
    """Route log records through the rich console for `delayq run`."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                show_time=False,
                show_path=False,
                rich_tracebacks=True,
                markup=False,
                keywords=[],
            )
        ],
        force=True,
    )
    logging.getLogger("delayq").setLevel(level)
    # redis-py logs connection chatter at DEBUG.
    logging.getLogger("redis").setLevel(logging.WARNING)

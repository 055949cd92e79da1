"""delayq CLI."""

import typer

from delayq.cli._console import console
from delayq.cli.add import add
from delayq.cli.requeue import requeue
from delayq.cli.run import run
from delayq.cli.status import orphans, stats

app = typer.Typer(
    name="delayq",
    help="Redis-backed delay queue.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from delayq import __version__

        console.print(f"[bold]delayq[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """Schedule tasks for later and run them."""


# Register commands
app.command()(add)
app.command()(run)
app.command()(stats)
app.command()(orphans)
app.command()(requeue)

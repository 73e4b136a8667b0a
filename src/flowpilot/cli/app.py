"""FlowPilot CLI — Main Typer entry point.

Global options live here; each subcommand is its own module.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from flowpilot import __version__

TAGLINE = "Declarative browser workflows with ranked locators."

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold cyan]flowpilot[/bold cyan] {__version__}")
        console.print(f"[dim]{TAGLINE}[/dim]")
        raise typer.Exit()


app = typer.Typer(
    name="flowpilot",
    help=f"FlowPilot -- {TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Print the FlowPilot version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log engine internals at DEBUG level.",
    ),
) -> None:
    """FlowPilot -- run structured browser plans against real sites.

    Plans name logical fields; selector maps say how to find them.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


from flowpilot.cli.profiles_cmd import profiles  # noqa: E402
from flowpilot.cli.run import run  # noqa: E402
from flowpilot.cli.validate import validate  # noqa: E402

app.command(name="run", help="Execute a plan in a real browser.")(run)
app.command(name="validate", help="Check a plan and its logical keys without opening a browser.")(validate)
app.command(name="profiles", help="List the bundled site profiles.")(profiles)

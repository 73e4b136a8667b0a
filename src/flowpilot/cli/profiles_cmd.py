"""flowpilot profiles — List the bundled site profiles."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from flowpilot.config import FlowPilotConfigError
from flowpilot.errors import PlanStructureError
from flowpilot.selectors import list_profiles, load_profile

console = Console()


def profiles() -> None:
    """Show each bundled profile with its site, keys and whether it ships a template plan."""
    names = list_profiles()
    if not names:
        console.print("[yellow]No bundled profiles found.[/yellow]")
        raise typer.Exit(code=0)

    table = Table(title="Site profiles", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Site")
    table.add_column("Keys", justify="right")
    table.add_column("Plan", justify="center")
    table.add_column("Description", style="dim")

    for name in names:
        try:
            profile = load_profile(name)
        except (FlowPilotConfigError, PlanStructureError) as exc:
            table.add_row(name, "[red]invalid[/red]", "-", "-", str(exc).splitlines()[0])
            continue
        table.add_row(
            profile.name,
            profile.site,
            str(len(profile.selectors)),
            "[green]yes[/green]" if profile.plan else "-",
            profile.description,
        )
    console.print(table)

"""flowpilot validate — Check a plan without opening a browser.

Validates the plan against the plan contract (JSON Schema), then checks that
every logical key it references exists in the selector map and, when a
profile declares them, that every value key is allowed.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flowpilot.cli.inputs import load_inputs
from flowpilot.config import FlowPilotConfigError
from flowpilot.errors import PlanStructureError
from flowpilot.plan import key_issues

console = Console(stderr=True)


def _print_issues(title: str, issues: list[str]) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=4)
    table.add_column("Issue", style="red")
    for i, issue in enumerate(issues, 1):
        table.add_row(str(i), issue)
    console.print(table)


def validate(
    plan: Path | None = typer.Argument(
        None,
        help="Plan file (JSON or YAML). Optional with --profile when the profile has a template plan.",
    ),
    selectors: Path | None = typer.Option(
        None,
        "--selectors",
        "-s",
        help="Selector map file (key -> candidate list).",
    ),
    suggested: Path | None = typer.Option(
        None,
        "--suggested",
        help="Suggested candidates merged in front of the selector map.",
    ),
    profile: str | None = typer.Option(
        None,
        "--profile",
        "-p",
        help="Bundled site profile name, or a profile YAML path.",
    ),
) -> None:
    """Validate a plan and its logical keys. Exits 2 when anything is wrong.

    \b
    Examples:
      flowpilot validate plan.json -s selectors.yaml
      flowpilot validate --profile chaicode_signup
    """
    try:
        inputs = load_inputs(plan, selectors, suggested, None, profile)
    except FlowPilotConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)
    except PlanStructureError as exc:
        if exc.issues:
            _print_issues("Plan contract violations", exc.issues)
        else:
            console.print(Panel(f"[red]{exc}[/red]", title="[red]Plan Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    issues = key_issues(inputs.plan, inputs.selector_map, inputs.value_keys)
    if issues:
        _print_issues("Unknown logical keys", issues)
        raise typer.Exit(code=2)

    meta = inputs.plan.meta
    console.print(
        Panel(
            f"[green]Plan is valid[/green]\n\n"
            f"[bold]Site:[/bold]  {meta.site}\n"
            f"[bold]Goal:[/bold]  {meta.goal}\n"
            f"[bold]Steps:[/bold] {len(inputs.plan.steps)}\n"
            f"[bold]Keys:[/bold]  {', '.join(inputs.plan.selector_keys()) or '-'}",
            title="[bold green]Validation Passed[/bold green]",
            border_style="green",
        )
    )

"""flowpilot run — Execute a plan in a real browser.

This is the primary command. It resolves options (config file, then CLI
flags), assembles the plan, selector map and data bag, runs the plan and
reports the outcome.

Exit codes: 0 success, 1 a step failed, 2 config/plan error,
3 infrastructure error (Playwright missing, unexpected failure).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from flowpilot.cli.inputs import load_inputs
from flowpilot.config import (
    FlowPilotConfigError,
    RunOptions,
    parse_viewport,
    resolve_connect_endpoint,
)
from flowpilot.errors import FlowPilotError, PlanStructureError
from flowpilot.plan import validate_plan_keys

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("flowpilot.cli.run")


def _print_error(c: Console, message: str, title: str = "Error") -> None:
    c.print(Panel(f"[red]{message}[/red]", title=f"[red]{title}[/red]", border_style="red"))


# ── Options builder ───────────────────────────────────────────────────────


def _build_options(
    config_path: Path | None,
    headless: bool | None,
    viewport: str | None,
    cdp: str | None,
    user_data_dir: Path | None,
    channel: str | None,
    screenshots: str | None,
    artifacts: Path | None,
    step_delay_ms: int | None,
    keep_open: bool,
    keep_open_ms: int | None,
    human_typing: bool | None,
    no_trace: bool,
) -> RunOptions:
    """Build RunOptions from the config file (if any) with CLI flags on top."""
    options = RunOptions.from_file(config_path) if config_path else RunOptions()
    return options.with_overrides(
        headless=headless,
        viewport=parse_viewport(viewport) if viewport else None,
        connect_endpoint=resolve_connect_endpoint(cdp or options.connect_endpoint),
        user_data_dir=user_data_dir,
        channel=channel,
        screenshot_mode=screenshots,
        artifacts_dir=artifacts,
        step_delay_ms=step_delay_ms,
        keep_open=keep_open or None,
        keep_open_ms=keep_open_ms,
        human_typing=human_typing,
        enable_tracing=False if no_trace else None,
    )


# ── Main command ──────────────────────────────────────────────────────────


def run(
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
        help="Suggested candidates to try before the selector map's own.",
    ),
    data: Path | None = typer.Option(
        None,
        "--data",
        "-d",
        help="Data bag file (value key -> string).",
    ),
    profile: str | None = typer.Option(
        None,
        "--profile",
        "-p",
        help="Bundled site profile name, or a profile YAML path.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Run options YAML file.",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run browser headless or visible.  [default: headless]",
    ),
    viewport: str | None = typer.Option(
        None,
        "--viewport",
        help="Browser viewport as WIDTHxHEIGHT.  [default: 1600x1000]",
    ),
    cdp: str | None = typer.Option(
        None,
        "--cdp",
        help="Attach to a running browser at this remote-debugging endpoint. "
        "Falls back to FLOWPILOT_CDP_ENDPOINT.",
    ),
    user_data_dir: Path | None = typer.Option(
        None,
        "--user-data-dir",
        help="Launch with this persistent browser profile directory.",
    ),
    channel: str | None = typer.Option(
        None,
        "--channel",
        help="Browser channel, e.g. chrome or msedge.",
    ),
    screenshots: str | None = typer.Option(
        None,
        "--screenshots",
        help="Screenshot mode: element, viewport, full_page or both.  [default: element]",
    ),
    artifacts: Path | None = typer.Option(
        None,
        "--artifacts",
        "-a",
        help="Directory for screenshots, trace and run-result.json.  [default: artifacts]",
    ),
    step_delay_ms: int | None = typer.Option(
        None,
        "--step-delay-ms",
        help="Pause between steps in milliseconds.  [default: 800]",
    ),
    keep_open: bool = typer.Option(
        False,
        "--keep-open",
        help="Keep the browser open after success until Enter, q or Ctrl+C.",
    ),
    keep_open_ms: int | None = typer.Option(
        None,
        "--keep-open-ms",
        help="Keep the browser open for this many milliseconds after success.",
    ),
    human_typing: bool | None = typer.Option(
        None,
        "--human-typing/--instant-typing",
        help="Type with per-keystroke delay instead of instant fill.",
    ),
    no_trace: bool = typer.Option(
        False,
        "--no-trace",
        help="Do not record a Playwright trace.",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.  [default: text]",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Run a plan against a live site.

    \b
    Examples:
      flowpilot run plan.json -s selectors.yaml -d data.yaml
      flowpilot run --profile chaicode_signup -d data.yaml --no-headless --keep-open
      flowpilot run plan.json -s selectors.yaml --suggested suggested.json --cdp http://localhost:9222
      flowpilot run plan.json -s selectors.yaml --output json | jq '.passed'
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")

    if output_format not in ("text", "json"):
        _print_error(console, f"Invalid output format: {output_format!r}\n\nValid formats: text, json", "Config Error")
        raise typer.Exit(code=2)

    try:
        options = _build_options(
            config, headless, viewport, cdp, user_data_dir, channel, screenshots,
            artifacts, step_delay_ms, keep_open, keep_open_ms, human_typing, no_trace,
        )
    except FlowPilotConfigError as exc:
        _print_error(console, str(exc), "Config Error")
        raise typer.Exit(code=2)

    try:
        inputs = load_inputs(plan, selectors, suggested, data, profile)
        if inputs.profile is not None:
            validate_plan_keys(inputs.plan, inputs.selector_map, inputs.value_keys)
    except FlowPilotConfigError as exc:
        _print_error(console, str(exc), "Config Error")
        raise typer.Exit(code=2)
    except PlanStructureError as exc:
        _print_error(console, str(exc), "Plan Error")
        raise typer.Exit(code=2)

    # Import the engine (fails if playwright is not installed)
    try:
        from flowpilot.engine.runner import PlanRunner
    except ImportError as exc:
        _print_error(
            console,
            f"Failed to import FlowPilot engine: {exc}\n\n"
            "This usually means Playwright is missing.\n"
            "Try: pip install flowpilot\n"
            "Then: playwright install chromium",
            "Import Error",
        )
        raise typer.Exit(code=3)

    runner = PlanRunner(options, console=console)
    exit_code = 0
    try:
        runner.run(inputs.plan, inputs.selector_map, inputs.data)
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        exit_code = 1
    except PlanStructureError as exc:
        _print_error(console, str(exc), "Plan Error")
        raise typer.Exit(code=2)
    except FlowPilotError as exc:
        _print_error(console, str(exc), "Step Failed")
        exit_code = 1
    except Exception as exc:
        if runner.outcome is not None and runner.outcome.failed_step is not None:
            _print_error(console, f"{type(exc).__name__}: {exc}", "Step Failed")
            exit_code = 1
        else:
            logger.exception("Unexpected error during run")
            _print_error(
                console,
                f"Unexpected error: {exc}\n\nRun with --verbose for full traceback.",
                "Infrastructure Error",
            )
            raise typer.Exit(code=3)

    outcome = runner.outcome
    if output_format == "json" and outcome is not None:
        output_console.print(json.dumps(outcome.to_dict(), indent=2))
    elif outcome is not None:
        verdict = "[bold green]PASSED[/bold green]" if outcome.passed else "[bold red]FAILED[/bold red]"
        done = sum(1 for s in outcome.steps if s.passed)
        failed = f"  failed at step {outcome.failed_step}" if outcome.failed_step else ""
        console.print(
            Panel(
                f"{verdict}  {done} step(s) passed{failed}  [dim]{outcome.duration_seconds:.1f}s[/dim]\n"
                f"[dim]Artifacts: {outcome.artifacts_dir}[/dim]",
                title="[bold]FlowPilot Run[/bold]",
                border_style="green" if outcome.passed else "red",
            )
        )

    if exit_code:
        raise typer.Exit(code=exit_code)

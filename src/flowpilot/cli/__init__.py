"""FlowPilot CLI — Typer-based command-line interface."""

"""FlowPilot Diagnostics — highlight overlay, screenshots, and the console step log.

Screenshots are named so a run directory reads as a storyboard::

    step-01-navigate-view.png
    step-07-fill-first_name-elem.png
    step-07-fill-first_name-full.png
    error-step-12.png
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape

from flowpilot.config import RunOptions
from flowpilot.models import HIGHLIGHT_COLORS, HIGHLIGHT_FADE_MS

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("flowpilot.engine.diagnostics")

_OVERLAY_SCRIPT = """([b, color, fadeMs]) => {
    const id = "__flowpilot_overlay_highlight__";
    let el = document.getElementById(id);
    if (!el) {
        el = document.createElement("div");
        el.id = id;
        Object.assign(el.style, {
            position: "fixed",
            zIndex: "2147483647",
            pointerEvents: "none",
            borderRadius: "6px",
            transition: "opacity 0.2s ease",
        });
        document.body.appendChild(el);
    }
    Object.assign(el.style, {
        left: `${b.x}px`,
        top: `${b.y}px`,
        width: `${b.width}px`,
        height: `${b.height}px`,
        border: `3px solid ${color}`,
        boxShadow: `0 0 10px ${color}`,
        opacity: "1",
    });
    setTimeout(() => { el.style.opacity = "0"; }, fadeMs);
}"""

_SLUG_RE = re.compile(r"[^a-z0-9_-]+", re.I)


def safe_slug(text: str | None) -> str:
    """Make a selector name safe for use in a file name."""
    return _SLUG_RE.sub("_", text) if text else ""


def step_basename(step_index: int, action_type: str, selector: str | None = None) -> str:
    """``step-NN-<type>[-<selector>]`` for a zero-based step index."""
    base = f"step-{step_index + 1:02d}-{action_type}"
    if selector:
        base += f"-{safe_slug(selector)}"
    return base


def error_basename(step_index: int) -> str:
    return f"error-step-{step_index + 1:02d}"


class StepLog:
    """Human-readable progress log on the console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def run_header(self, site: str, goal: str, mode: str, slow_mo_ms: int,
                   viewport: tuple[int, int], step_count: int) -> None:
        self.console.print()
        self.console.print("[bold cyan]=== EXECUTION START ===[/bold cyan]")
        self.console.print(f"[bold]Site:[/bold]     {site}")
        self.console.print(f"[bold]Goal:[/bold]     {goal}")
        self.console.print(f"[bold]Mode:[/bold]     {mode} (slowMo {slow_mo_ms}ms)")
        self.console.print(f"[bold]Viewport:[/bold] {viewport[0]}x{viewport[1]}")
        self.console.print(f"[bold]Steps:[/bold]    {step_count}")
        self.console.print()

    def step_started(self, step_index: int, total: int, payload: dict[str, Any]) -> None:
        self.console.print(
            f"\\[{step_index + 1}/{total}] [bold]{payload['type']}[/bold] → {escape(json.dumps(payload))}",
            markup=True,
            highlight=False,
        )

    def step_done(self, duration_ms: float) -> None:
        self.console.print(f"   [green]✓ step done in {duration_ms:.0f}ms[/green]\n")

    def step_skipped(self, reason: str) -> None:
        self.console.print(f"   [yellow]⏭ {reason}[/yellow]")

    def step_failed(self, error: BaseException, error_shot: Path | None) -> None:
        self.console.print(f"   [bold red]✗ failed:[/bold red] {escape(str(error))}", highlight=False)
        if error_shot is not None:
            self.console.print(f"   [dim]saved {error_shot}[/dim]\n")

    def saved(self, path: Path) -> None:
        self.console.print(f"   [dim]saved {path}[/dim]")

    def note(self, message: str) -> None:
        self.console.print(message)


class DiagnosticsSink:
    """Captures evidence for each step into the run's artifacts directory."""

    def __init__(self, page: Page, options: RunOptions, log: StepLog) -> None:
        self._page = page
        self._options = options
        self._log = log
        self._dir = options.artifacts_dir
        self._dir.mkdir(parents=True, exist_ok=True)
        self.written: list[Path] = []  # every step capture, in order

    @property
    def artifacts_dir(self) -> Path:
        return self._dir

    def highlight(self, locator: Locator, step_index: int) -> None:
        """Outline the element in the live page. Cosmetic: never fails the step."""
        if not self._options.enable_highlight:
            return
        try:
            box = locator.bounding_box()
            if not box:
                return
            color = HIGHLIGHT_COLORS[step_index % len(HIGHLIGHT_COLORS)]
            self._page.evaluate(_OVERLAY_SCRIPT, [box, color, HIGHLIGHT_FADE_MS])
        except Exception as exc:
            logger.debug("Highlight skipped: %s", exc)

    def capture(
        self,
        step_index: int,
        action_type: str,
        selector: str | None = None,
        locator: Locator | None = None,
    ) -> list[Path]:
        """Screenshot the step according to the configured mode. Returns the written paths."""
        if self._options.screenshot_settle_ms > 0:
            self._page.wait_for_timeout(self._options.screenshot_settle_ms)

        mode = self._options.screenshot_mode
        base = step_basename(step_index, action_type, selector)
        written: list[Path] = []

        if mode in ("element", "both"):
            if locator is not None and self._is_shown(locator):
                path = self._dir / f"{base}-elem.png"
                locator.scroll_into_view_if_needed()
                locator.screenshot(path=str(path))
                written.append(path)
            else:
                # Element gone or hidden after the action (waitFor hidden, submit that navigates)
                written.append(self._page_shot(f"{base}-view.png", full_page=False))
        if mode == "viewport":
            written.append(self._page_shot(f"{base}-view.png", full_page=False))
        if mode in ("full_page", "both"):
            written.append(self._page_shot(f"{base}-full.png", full_page=True))

        for path in written:
            self._log.saved(path)
        self.written += written
        return written

    def capture_error(self, step_index: int) -> Path | None:
        """Viewport screenshot for a failed step, regardless of mode.

        Returns None if the page cannot be captured (e.g. the browser died);
        the step's own error is what gets reported.
        """
        try:
            return self._page_shot(f"{error_basename(step_index)}.png", full_page=False)
        except Exception as exc:
            logger.error("Error screenshot for step %d failed: %s", step_index + 1, exc)
            return None

    @staticmethod
    def _is_shown(locator: Locator) -> bool:
        """Non-waiting visibility check; a page mid-navigation counts as not shown."""
        try:
            return locator.is_visible()
        except Exception as exc:
            logger.debug("Visibility check failed, using viewport shot: %s", exc)
            return False

    def _page_shot(self, filename: str, full_page: bool) -> Path:
        path = self._dir / filename
        self._page.screenshot(path=str(path), full_page=full_page, animations="disabled", caret="hide")
        return path

"""FlowPilot Run Orchestrator — executes a plan end to end in one browser session.

Opens the session, drives each step through the ActionInterpreter in order,
paces the steps, captures an error screenshot when a step fails, writes
``run-result.json`` and always releases the session.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from rich.console import Console

from flowpilot.config import RunOptions
from flowpilot.engine.action_executor import ActionInterpreter
from flowpilot.engine.diagnostics import DiagnosticsSink, StepLog
from flowpilot.engine.hold import hold_for, hold_until_signal
from flowpilot.engine.session import BrowserSession, open_session
from flowpilot.engine.strategies import (
    DEFAULT_FILL_STRATEGIES,
    FieldKeys,
    FillStrategy,
    RunState,
)
from flowpilot.plan import Plan, action_to_dict, ensure_navigate, key_issues, parse_plan
from flowpilot.selectors import FormDataBag, SelectorMap

logger = logging.getLogger("flowpilot.engine.runner")

RESULT_FILENAME = "run-result.json"

SessionFactory = Callable[[RunOptions], BrowserSession]


@dataclasses.dataclass
class StepRecord:
    """What happened for one plan step."""

    index: int  # 1-based, as shown in the log
    type: str
    selector: str | None
    passed: bool
    duration_ms: float
    artifacts: list[str]
    error: str | None = None


@dataclasses.dataclass
class RunOutcome:
    """Result of one plan run."""

    site: str
    goal: str
    mode: str
    passed: bool
    artifacts_dir: str
    started_at: str
    finished_at: str = ""
    duration_seconds: float = 0.0
    steps: list[StepRecord] = dataclasses.field(default_factory=list)
    failed_step: int | None = None
    error: str | None = None
    error_screenshot: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


class PlanRunner:
    """Runs plans with a fixed set of options.

    ``session_factory`` opens the browser session; it defaults to a real
    Playwright session and is replaced with a fake in tests.
    """

    def __init__(
        self,
        options: RunOptions | None = None,
        session_factory: SessionFactory = open_session,
        console: Console | None = None,
        field_keys: FieldKeys | None = None,
        fill_strategies: Sequence[FillStrategy] = DEFAULT_FILL_STRATEGIES,
    ) -> None:
        self.options = options or RunOptions()
        self._session_factory = session_factory
        self._log = StepLog(console)
        self._keys = field_keys or FieldKeys()
        self._fill_strategies = tuple(fill_strategies)
        self.outcome: RunOutcome | None = None

    def run(
        self,
        plan: Plan | Mapping[str, Any],
        selector_map: SelectorMap,
        data: FormDataBag,
    ) -> RunOutcome:
        """Execute every step in order.

        Returns the outcome of a fully successful run. When a step fails, the
        outcome is still recorded (``self.outcome`` and ``run-result.json``)
        and the step's exception is re-raised unchanged.

        Raises:
            PlanStructureError: if a raw plan does not match the plan contract.
        """
        if not isinstance(plan, Plan):
            plan = parse_plan(plan)
        plan = ensure_navigate(plan)
        for issue in key_issues(plan, selector_map):
            logger.warning("Plan %s (no candidates in selector map)", issue)

        options = self.options
        outcome = RunOutcome(
            site=plan.meta.site,
            goal=plan.meta.goal,
            mode=self._describe_mode(),
            passed=False,
            artifacts_dir=str(options.artifacts_dir),
            started_at=dt.datetime.now(dt.timezone.utc).isoformat(),
        )
        self.outcome = outcome
        run_start = time.monotonic()

        session = self._session_factory(options)
        try:
            page = session.page
            self._log.run_header(
                plan.meta.site, plan.meta.goal, outcome.mode,
                options.effective_slow_mo_ms, options.viewport, len(plan.steps),
            )
            diagnostics = DiagnosticsSink(page, options, self._log)
            state = RunState(has_explicit_confirm=plan.has_fill_for(self._keys.confirm_password))
            interpreter = ActionInterpreter(
                page, selector_map, data, options, diagnostics, self._log,
                state=state, keys=self._keys, fill_strategies=self._fill_strategies,
            )

            total = len(plan.steps)
            for index, step in enumerate(plan.steps):
                payload = action_to_dict(step)
                self._log.step_started(index, total, payload)
                step_start = time.monotonic()
                already_written = len(diagnostics.written)
                try:
                    artifacts = interpreter.execute(index, step)
                except Exception as exc:
                    elapsed_ms = (time.monotonic() - step_start) * 1000
                    logger.error(
                        "Step %d/%d failed after %.0fms: %s | action=%s",
                        index + 1, total, elapsed_ms, exc, json.dumps(payload),
                    )
                    error_shot = diagnostics.capture_error(index)
                    self._log.step_failed(exc, error_shot)
                    outcome.steps.append(StepRecord(
                        index=index + 1, type=step.type, selector=payload.get("selector"),
                        passed=False, duration_ms=round(elapsed_ms, 1),
                        artifacts=[str(p) for p in diagnostics.written[already_written:]],
                        error=f"{type(exc).__name__}: {exc}",
                    ))
                    outcome.failed_step = index + 1
                    outcome.error = f"{type(exc).__name__}: {exc}"
                    outcome.error_screenshot = str(error_shot) if error_shot else None
                    self._finish(outcome, run_start)
                    raise

                elapsed_ms = (time.monotonic() - step_start) * 1000
                self._log.step_done(elapsed_ms)
                outcome.steps.append(StepRecord(
                    index=index + 1, type=step.type, selector=payload.get("selector"),
                    passed=True, duration_ms=round(elapsed_ms, 1),
                    artifacts=[str(p) for p in artifacts],
                ))
                interpreter.pause(options.step_delay_ms)

            outcome.passed = True
            self._finish(outcome, run_start)
            self._log.note("[bold green]=== EXECUTION DONE ===[/bold green]")
            self._hold(session)
        finally:
            session.close()

        return outcome

    def _describe_mode(self) -> str:
        mode = self.options.session_mode
        if mode == "launch":
            return "headless" if self.options.headless else "headful"
        return mode

    def _hold(self, session: BrowserSession) -> None:
        options = self.options
        if options.keep_open:
            self._log.note("[dim]Browser left open. Press Enter or q to close (Ctrl+C also works).[/dim]")
            reason = hold_until_signal(fallback_ms=options.keep_open_fallback_ms)
            logger.info("Hold ended: %s", reason)
        elif options.keep_open_ms > 0:
            self._log.note(f"[dim]Keeping browser open for {options.keep_open_ms}ms[/dim]")
            reason = hold_for(session.page, options.keep_open_ms)
            logger.info("Hold ended: %s", reason)

    def _finish(self, outcome: RunOutcome, run_start: float) -> None:
        outcome.finished_at = dt.datetime.now(dt.timezone.utc).isoformat()
        outcome.duration_seconds = round(time.monotonic() - run_start, 2)
        self._save_result(outcome, self.options.artifacts_dir)

    @staticmethod
    def _save_result(outcome: RunOutcome, artifacts_dir: Path) -> None:
        try:
            artifacts_dir.mkdir(parents=True, exist_ok=True)
            path = artifacts_dir / RESULT_FILENAME
            path.write_text(json.dumps(outcome.to_dict(), indent=2))
            logger.info("Saved run result JSON to %s", path)
        except Exception as exc:
            logger.warning("Failed to save %s: %s", RESULT_FILENAME, exc)


def run_plan(
    plan: Plan | Mapping[str, Any],
    selector_map: SelectorMap,
    data: FormDataBag,
    options: RunOptions | None = None,
    **runner_kwargs: Any,
) -> RunOutcome:
    """Run one plan with a fresh PlanRunner."""
    return PlanRunner(options, **runner_kwargs).run(plan, selector_map, data)

"""FlowPilot engine — executes plans against a live browser.

- LocatorResolver: ranked candidate resolution against the live document
- ActionInterpreter: performs one typed plan action
- Field strategies: full-name split, confirm password, OTP boxes, default fill
- DiagnosticsSink: highlight overlay, per-step screenshots, console step log
- PlanRunner: session lifecycle, step sequencing, post-run hold

The interpreter and runner import Playwright. Import them from their modules
(or from here) only where Playwright is installed.
"""

from flowpilot.engine.action_executor import ActionInterpreter
from flowpilot.engine.diagnostics import DiagnosticsSink, StepLog
from flowpilot.engine.hold import CancellationToken, hold_for, hold_until_signal
from flowpilot.engine.locators import CandidateResult, GroupMatch, LocatorResolver, LocatorSpec
from flowpilot.engine.runner import PlanRunner, RunOutcome, StepRecord, run_plan
from flowpilot.engine.session import BrowserSession, open_session
from flowpilot.engine.strategies import DEFAULT_FILL_STRATEGIES, FieldKeys, FillStrategy, RunState

__all__ = [
    "ActionInterpreter",
    "BrowserSession",
    "CancellationToken",
    "CandidateResult",
    "DEFAULT_FILL_STRATEGIES",
    "DiagnosticsSink",
    "FieldKeys",
    "FillStrategy",
    "GroupMatch",
    "LocatorResolver",
    "LocatorSpec",
    "PlanRunner",
    "RunOutcome",
    "RunState",
    "StepLog",
    "StepRecord",
    "hold_for",
    "hold_until_signal",
    "open_session",
    "run_plan",
]

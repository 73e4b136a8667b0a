"""FlowPilot error taxonomy.

Locator resolution never raises: a candidate that matches nothing simply
yields to the next one, and a key with no match at all surfaces later as a
``WaitTimeoutError`` or ``InteractionError`` against an empty locator.
"""

from __future__ import annotations


class FlowPilotError(Exception):
    """Base class for all FlowPilot errors."""


class PlanStructureError(FlowPilotError):
    """Raised when a plan is structurally invalid. Always raised before a run starts."""

    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        self.issues = list(issues or [])
        if self.issues:
            message = message + "\n" + "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(message)


class WaitTimeoutError(FlowPilotError):
    """A waitFor or waitNetworkIdle action did not reach its state in time."""


class InteractionError(FlowPilotError):
    """An action against a resolved element (or the page) failed."""

"""FlowPilot Action Interpreter — performs one typed plan action against the page.

Maps each action type (navigate, waitFor, fill, click, press,
waitNetworkIdle) to concrete Playwright calls, resolving logical keys
through the selector map on every use. Each action is attempted exactly
once; any failure propagates to the run orchestrator.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from flowpilot.config import RunOptions
from flowpilot.engine.diagnostics import DiagnosticsSink, StepLog
from flowpilot.engine.locators import LocatorResolver
from flowpilot.engine.strategies import (
    DEFAULT_FILL_STRATEGIES,
    FieldKeys,
    FillStrategy,
    RunState,
)
from flowpilot.errors import InteractionError, WaitTimeoutError
from flowpilot.plan import (
    Action,
    Click,
    Fill,
    Navigate,
    Press,
    WaitFor,
    WaitNetworkIdle,
)
from flowpilot.selectors import FormDataBag, SelectorMap

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("flowpilot.engine.action_executor")


class ActionInterpreter:
    """Executes plan actions for one run."""

    def __init__(
        self,
        page: Page,
        selector_map: SelectorMap,
        data: FormDataBag,
        options: RunOptions,
        diagnostics: DiagnosticsSink,
        log: StepLog,
        state: RunState | None = None,
        keys: FieldKeys | None = None,
        fill_strategies: Sequence[FillStrategy] = DEFAULT_FILL_STRATEGIES,
    ) -> None:
        self.page = page
        self.selector_map = selector_map
        self.data = data
        self.options = options
        self.diagnostics = diagnostics
        self.log = log
        self.state = state or RunState()
        self.keys = keys or FieldKeys()
        self.resolver = LocatorResolver(page)
        self._fill_strategies = tuple(fill_strategies)

    # -- Helpers used by the field strategies ---------------------------------

    def candidates(self, key: str) -> list[str]:
        candidates = self.selector_map.get(key, [])
        if not candidates:
            logger.warning("Selector map has no candidates for '%s'", key)
        return candidates

    def write_text(self, locator: Locator, text: str) -> None:
        """Clear the field, then set or type the text per the typing mode."""
        locator.fill("")
        if self.options.human_typing:
            locator.press_sequentially(text, delay=self.options.typing_delay_ms)
        else:
            locator.fill(text)

    def write_char(self, locator: Locator, char: str) -> None:
        """Clear a single-character box and type into it as a real keystroke."""
        locator.fill("")
        delay = self.options.typing_delay_ms if self.options.human_typing else 0
        locator.press_sequentially(char, delay=delay)

    def pause(self, ms: int) -> None:
        if ms > 0:
            self.page.wait_for_timeout(ms)

    # -- Dispatch ---------------------------------------------------------------

    def execute(self, index: int, action: Action) -> list[Path]:
        """Run one action. Returns the artifacts written for it.

        Raises:
            WaitTimeoutError: a wait did not reach its state in time.
            InteractionError: Playwright failed to perform the action.
        """
        try:
            if isinstance(action, Navigate):
                return self._do_navigate(index, action)
            elif isinstance(action, WaitFor):
                return self._do_wait_for(index, action)
            elif isinstance(action, Fill):
                return self._do_fill(index, action)
            elif isinstance(action, Click):
                return self._do_click(index, action)
            elif isinstance(action, Press):
                return self._do_press(index, action)
            elif isinstance(action, WaitNetworkIdle):
                return self._do_wait_network_idle(index, action)
            raise InteractionError(f"Unsupported action type: {type(action).__name__}")
        except PlaywrightTimeoutError as exc:
            target = getattr(action, "selector", None) or getattr(action, "url", None) or "page"
            if isinstance(action, (WaitFor, WaitNetworkIdle)):
                raise WaitTimeoutError(f"{action.type} '{target}' timed out: {exc}") from exc
            raise InteractionError(f"{action.type} '{target}' timed out: {exc}") from exc
        except PlaywrightError as exc:
            target = getattr(action, "selector", None) or getattr(action, "url", None) or "page"
            raise InteractionError(f"{action.type} '{target}' failed: {exc}") from exc

    def _do_navigate(self, index: int, action: Navigate) -> list[Path]:
        self.page.goto(action.url, wait_until="domcontentloaded")
        return self.diagnostics.capture(index, action.type)

    def _do_wait_for(self, index: int, action: WaitFor) -> list[Path]:
        candidates = list(self.candidates(action.selector))
        if action.selector == self.keys.full_name:
            # Sites that split the name field only expose first/last name inputs
            candidates += self.selector_map.get(self.keys.first_name, [])
        locator = self.resolver.get(candidates)
        self.diagnostics.highlight(locator, index)
        timeout = action.timeout if action.timeout is not None else self.options.default_timeout_ms
        locator.wait_for(state=action.state, timeout=timeout)
        return self.diagnostics.capture(index, action.type, action.selector, locator)

    def _do_fill(self, index: int, action: Fill) -> list[Path]:
        value = self.data.get(action.value_key, "")
        for strategy in self._fill_strategies:
            artifacts = strategy.try_fill(self, index, action, value)
            if artifacts is not None:
                logger.debug("fill '%s' handled by %s", action.selector, strategy.name)
                return artifacts
        raise InteractionError(f"No fill strategy handled '{action.selector}'")

    def _do_click(self, index: int, action: Click) -> list[Path]:
        if action.selector == self.keys.auth_menu:
            signup = self.resolver.first_existing(self.selector_map.get(self.keys.signup_menu, []))
            if signup is not None and signup.is_visible():
                # Clicking again would collapse the already expanded menu
                self.log.step_skipped(f"{action.selector} already open, skipping click")
                logger.info("Skipping click on '%s': '%s' is already visible",
                            action.selector, self.keys.signup_menu)
                return self.diagnostics.capture(index, action.type, action.selector)
        locator = self.resolver.get(self.candidates(action.selector))
        self.diagnostics.highlight(locator, index)
        locator.click()
        return self.diagnostics.capture(index, action.type, action.selector, locator)

    def _do_press(self, index: int, action: Press) -> list[Path]:
        locator = self.resolver.get(self.candidates(action.selector))
        self.diagnostics.highlight(locator, index)
        locator.press(action.key)
        return self.diagnostics.capture(index, action.type, action.selector, locator)

    def _do_wait_network_idle(self, index: int, action: WaitNetworkIdle) -> list[Path]:
        timeout = action.timeout if action.timeout is not None else self.options.default_timeout_ms
        self.page.wait_for_load_state("networkidle", timeout=timeout)
        return self.diagnostics.capture(index, action.type)

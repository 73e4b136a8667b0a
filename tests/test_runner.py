"""Unit tests for flowpilot.engine.runner — sequencing, failure handling, release."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from playwright.sync_api import Error as PlaywrightError

from fakes import FakeElement, FakePage, FakeSession
from flowpilot.errors import InteractionError, PlanStructureError, WaitTimeoutError
from flowpilot.engine.runner import RESULT_FILENAME, PlanRunner, run_plan

SITE = "https://example.com/signup"


def _plan(*steps: dict) -> dict:
    return {"meta": {"site": SITE, "goal": "Create an account"}, "steps": list(steps)}


FIVE_STEPS = _plan(
    {"type": "navigate", "url": SITE},
    {"type": "fill", "selector": "email", "valueKey": "email"},
    {"type": "click", "selector": "submit"},
    {"type": "fill", "selector": "password", "valueKey": "password"},
    {"type": "waitNetworkIdle"},
)


@pytest.fixture
def session(page: FakePage) -> FakeSession:
    return FakeSession(page)


@pytest.fixture
def runner(options, session: FakeSession, console) -> PlanRunner:
    return PlanRunner(options, session_factory=lambda opts: session, console=console)


def _pngs(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.glob("*.png"))


# ---------------------------------------------------------------------------
# 1. Happy path
# ---------------------------------------------------------------------------

class TestSuccessfulRun:
    def test_runs_steps_in_order(self, runner, signup_page, session, signup_selectors, signup_data):
        outcome = runner.run(FIVE_STEPS, signup_selectors, signup_data)

        assert outcome.passed is True
        assert [s.index for s in outcome.steps] == [1, 2, 3, 4, 5]
        assert [c[0] for c in signup_page.calls if c[0] in ("goto", "click", "load_state")] == [
            "goto", "click", "load_state",
        ]
        assert session.close_count == 1

    def test_artifacts_for_every_step(self, runner, signup_page, signup_selectors, signup_data, artifacts_dir):
        runner.run(FIVE_STEPS, signup_selectors, signup_data)

        names = _pngs(artifacts_dir)
        for prefix in ("step-01-navigate", "step-02-fill-email", "step-03-click-submit",
                       "step-04-fill-password", "step-05-waitNetworkIdle"):
            assert any(n.startswith(prefix) for n in names), prefix
        assert not any(n.startswith("error-") for n in names)

    def test_implicit_confirm_when_plan_has_no_confirm_step(self, runner, signup_page, signup_selectors, signup_data):
        runner.run(FIVE_STEPS, signup_selectors, signup_data)
        assert ("fill", "confirm_password", "s3cret-pass") in signup_page.calls

    def test_explicit_confirm_step_suppresses_synthesis(self, runner, signup_page, signup_selectors, signup_data):
        plan = _plan(
            {"type": "navigate", "url": SITE},
            {"type": "fill", "selector": "password", "valueKey": "password"},
            {"type": "fill", "selector": "confirm_password", "valueKey": "confirm_password"},
        )
        runner.run(plan, signup_selectors, signup_data)

        confirm_fills = [c for c in signup_page.calls_of("fill") if c[1] == "confirm_password"]
        assert confirm_fills == [("fill", "confirm_password", ""), ("fill", "confirm_password", "s3cret-pass")]

    def test_step_delay_between_steps(self, options, session, console, signup_page, signup_selectors, signup_data):
        runner = PlanRunner(dataclasses.replace(options, step_delay_ms=800),
                            session_factory=lambda o: session, console=console)
        runner.run(FIVE_STEPS, signup_selectors, signup_data)
        assert signup_page.waits.count(800) == 5

    def test_navigate_is_prepended_when_missing(self, runner, signup_page, signup_selectors, signup_data):
        outcome = runner.run(_plan({"type": "click", "selector": "submit"}), signup_selectors, signup_data)

        assert signup_page.calls_of("goto")[0][1] == SITE
        assert [s.type for s in outcome.steps] == ["navigate", "click"]

    def test_result_file_is_written(self, runner, signup_page, signup_selectors, signup_data, artifacts_dir):
        runner.run(FIVE_STEPS, signup_selectors, signup_data)

        result = json.loads((artifacts_dir / RESULT_FILENAME).read_text())
        assert result["passed"] is True
        assert result["site"] == SITE
        assert len(result["steps"]) == 5

    def test_submit_that_redirects_does_not_fail_the_run(self, runner, signup_page, signup_selectors, signup_data):
        signup_page.registry.clear()
        signup_page.register("label=/email/i", FakeElement("email"))
        signup_page.register("role=button[name=/create account|sign ?up/i]",
                             FakeElement("submit", gone_after_click=True))
        signup_page.register("label=/^password$/i", FakeElement("password"))

        outcome = runner.run(FIVE_STEPS, signup_selectors, signup_data)

        assert outcome.passed is True
        assert outcome.steps[2].artifacts[0].endswith("step-03-click-submit-view.png")

    def test_run_plan_wrapper(self, options, session, console, signup_page, signup_selectors, signup_data):
        outcome = run_plan(FIVE_STEPS, signup_selectors, signup_data, options,
                           session_factory=lambda o: session, console=console)
        assert outcome.passed


# ---------------------------------------------------------------------------
# 2. Failure at step 3 of 5
# ---------------------------------------------------------------------------

class TestFailedRun:
    @pytest.fixture
    def failing_page(self, signup_page: FakePage):
        boom = RuntimeError("submit exploded")
        signup_page.registry.clear()
        signup_page.register("label=/email/i", FakeElement("email"))
        signup_page.register("role=button[name=/create account|sign ?up/i]", FakeElement("submit", fail=boom))
        signup_page.register("label=/^password$/i", FakeElement("password"))
        return signup_page, boom

    def test_original_error_propagates(self, runner, failing_page, signup_selectors, signup_data):
        page, boom = failing_page
        with pytest.raises(RuntimeError) as excinfo:
            runner.run(FIVE_STEPS, signup_selectors, signup_data)
        assert excinfo.value is boom

    def test_artifacts_stop_at_failed_step(self, runner, failing_page, signup_selectors, signup_data, artifacts_dir):
        with pytest.raises(RuntimeError):
            runner.run(FIVE_STEPS, signup_selectors, signup_data)

        names = _pngs(artifacts_dir)
        assert [n for n in names if n.startswith("error-")] == ["error-step-03.png"]
        assert any(n.startswith("step-01-") for n in names)
        assert any(n.startswith("step-02-") for n in names)
        assert not any(n.startswith(("step-03-", "step-04-", "step-05-")) for n in names)

    def test_later_steps_never_run(self, runner, failing_page, signup_selectors, signup_data):
        page, _ = failing_page
        with pytest.raises(RuntimeError):
            runner.run(FIVE_STEPS, signup_selectors, signup_data)
        assert not any(c[1] == "password" for c in page.calls_of("fill"))
        assert page.calls_of("load_state") == []

    def test_session_released_once(self, runner, failing_page, session, signup_selectors, signup_data):
        with pytest.raises(RuntimeError):
            runner.run(FIVE_STEPS, signup_selectors, signup_data)
        assert session.close_count == 1

    def test_outcome_is_recorded(self, runner, failing_page, signup_selectors, signup_data, artifacts_dir):
        with pytest.raises(RuntimeError):
            runner.run(FIVE_STEPS, signup_selectors, signup_data)

        outcome = runner.outcome
        assert outcome.passed is False
        assert outcome.failed_step == 3
        assert "submit exploded" in outcome.error
        assert outcome.error_screenshot.endswith("error-step-03.png")
        assert [s.passed for s in outcome.steps] == [True, True, False]

        result = json.loads((artifacts_dir / RESULT_FILENAME).read_text())
        assert result["failed_step"] == 3

    def test_partial_artifacts_of_failed_step_are_recorded(self, runner, page, signup_selectors, signup_data,
                                                            artifacts_dir):
        page.register("label=/first\\s*name/i", FakeElement("first_name"))
        page.register("label=/last\\s*name/i", FakeElement("last_name", fail=PlaywrightError("detached")))
        plan = _plan({"type": "navigate", "url": SITE},
                     {"type": "fill", "selector": "full_name", "valueKey": "full_name"})

        with pytest.raises(InteractionError):
            runner.run(plan, signup_selectors, signup_data)

        failed = runner.outcome.steps[-1]
        assert failed.passed is False
        assert [Path(p).name for p in failed.artifacts] == ["step-02-fill-first_name-elem.png"]
        result = json.loads((artifacts_dir / RESULT_FILENAME).read_text())
        assert result["steps"][-1]["artifacts"] == failed.artifacts

    def test_wait_timeout_is_reported(self, runner, signup_page, signup_selectors, signup_data):
        plan = _plan({"type": "navigate", "url": SITE}, {"type": "waitFor", "selector": "otp_input", "timeout": 10})
        with pytest.raises(WaitTimeoutError):
            runner.run(plan, signup_selectors, signup_data)
        assert runner.outcome.failed_step == 2

    def test_no_hold_after_failure(self, options, session, console, failing_page, signup_selectors, signup_data):
        runner = PlanRunner(dataclasses.replace(options, keep_open=True),
                            session_factory=lambda o: session, console=console)
        with patch("flowpilot.engine.runner.hold_until_signal") as hold:
            with pytest.raises(RuntimeError):
                runner.run(FIVE_STEPS, signup_selectors, signup_data)
        hold.assert_not_called()


# ---------------------------------------------------------------------------
# 3. Plan acceptance happens before any session is opened
# ---------------------------------------------------------------------------

class TestPlanAcceptance:
    def test_invalid_plan_never_opens_a_session(self, options, console, signup_selectors, signup_data):
        opened: list[object] = []
        runner = PlanRunner(options, session_factory=lambda o: opened.append(o), console=console)

        with pytest.raises(PlanStructureError):
            runner.run(_plan({"type": "fill", "selector": "email"}), signup_selectors, signup_data)
        assert opened == []


# ---------------------------------------------------------------------------
# 4. Post-run hold
# ---------------------------------------------------------------------------

class TestHold:
    def test_keep_open_waits_for_signal_then_closes(self, options, session, console, signup_page,
                                                    signup_selectors, signup_data):
        runner = PlanRunner(dataclasses.replace(options, keep_open=True, keep_open_fallback_ms=1234),
                            session_factory=lambda o: session, console=console)
        with patch("flowpilot.engine.runner.hold_until_signal", return_value="operator input") as hold:
            runner.run(FIVE_STEPS, signup_selectors, signup_data)

        hold.assert_called_once_with(fallback_ms=1234)
        assert session.close_count == 1

    def test_keep_open_ms_holds_on_page(self, options, session, console, signup_page,
                                        signup_selectors, signup_data):
        runner = PlanRunner(dataclasses.replace(options, keep_open_ms=3000),
                            session_factory=lambda o: session, console=console)
        with patch("flowpilot.engine.runner.hold_for", return_value="timeout") as hold:
            runner.run(FIVE_STEPS, signup_selectors, signup_data)

        hold.assert_called_once_with(signup_page, 3000)
        assert session.close_count == 1

    def test_no_hold_by_default(self, runner, signup_page, signup_selectors, signup_data):
        with patch("flowpilot.engine.runner.hold_until_signal") as hold_signal, \
                patch("flowpilot.engine.runner.hold_for") as hold_ms:
            runner.run(FIVE_STEPS, signup_selectors, signup_data)
        hold_signal.assert_not_called()
        hold_ms.assert_not_called()

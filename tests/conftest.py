"""Shared fixtures for FlowPilot unit tests."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Callable

import pytest
from rich.console import Console

from fakes import FakeElement, FakePage
from flowpilot.config import RunOptions
from flowpilot.engine.action_executor import ActionInterpreter
from flowpilot.engine.diagnostics import DiagnosticsSink, StepLog
from flowpilot.engine.strategies import RunState


# ---------------------------------------------------------------------------
# Fixture: run options tuned for tests (no pacing, no tracing)
# ---------------------------------------------------------------------------

@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def options(artifacts_dir: Path) -> RunOptions:
    """RunOptions with every delay at zero and artifacts under tmp_path."""
    return RunOptions(
        artifacts_dir=artifacts_dir,
        step_delay_ms=0,
        screenshot_settle_ms=0,
        enable_tracing=False,
    )


# ---------------------------------------------------------------------------
# Fixture: quiet console
# ---------------------------------------------------------------------------

@pytest.fixture
def console() -> Console:
    """A rich Console that records instead of printing."""
    return Console(record=True, width=200, file=io.StringIO())


# ---------------------------------------------------------------------------
# Fixture: signup-style selector map
# ---------------------------------------------------------------------------

@pytest.fixture
def signup_selectors() -> dict[str, list[str]]:
    return {
        "auth_menu": ["text=/^\\s*authentication\\s*$/i"],
        "signup_menu": ["role=link[name=/sign\\s*up/i]"],
        "full_name": ["label=/full\\s*name/i", "placeholder=Full Name"],
        "first_name": ["label=/first\\s*name/i", "name=firstName"],
        "last_name": ["label=/last\\s*name/i", "name=lastName"],
        "email": ["label=/email/i", "css=input[type='email']"],
        "password": ["label=/^password$/i", "css=input[type='password']"],
        "confirm_password": ["label=/confirm\\s*password/i", "name=confirmPassword"],
        "submit": ["role=button[name=/create account|sign ?up/i]"],
        "otp_input": ["css=input[maxlength='1']", "label=/digit/i"],
    }


@pytest.fixture
def signup_data() -> dict[str, str]:
    return {
        "full_name": "Ada Lovelace",
        "email": "ada@example.com",
        "password": "s3cret-pass",
        "confirm_password": "s3cret-pass",
        "otp": "123456",
    }


# ---------------------------------------------------------------------------
# Fixture: fake page and interpreter factory
# ---------------------------------------------------------------------------

@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def make_interpreter(
    page: FakePage,
    options: RunOptions,
    console: Console,
    signup_selectors: dict[str, list[str]],
    signup_data: dict[str, str],
) -> Callable[..., ActionInterpreter]:
    """Build an ActionInterpreter over the fake page. Keyword args override the defaults."""

    def _make(**overrides: Any) -> ActionInterpreter:
        run_options = overrides.pop("options", options)
        log = StepLog(console)
        return ActionInterpreter(
            page,
            overrides.pop("selector_map", signup_selectors),
            overrides.pop("data", signup_data),
            run_options,
            DiagnosticsSink(page, run_options, log),
            log,
            state=overrides.pop("state", RunState()),
            **overrides,
        )

    return _make


@pytest.fixture
def signup_page(page: FakePage) -> FakePage:
    """A page with split first/last name fields, password and confirm password."""
    page.register("text=/^\\s*authentication\\s*$/i", FakeElement("auth_menu"))
    page.register("label=/first\\s*name/i", FakeElement("first_name"))
    page.register("label=/last\\s*name/i", FakeElement("last_name"))
    page.register("label=/email/i", FakeElement("email"))
    page.register("label=/^password$/i", FakeElement("password"))
    page.register("label=/confirm\\s*password/i", FakeElement("confirm_password"))
    page.register("role=button[name=/create account|sign ?up/i]", FakeElement("submit"))
    return page

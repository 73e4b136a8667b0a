"""Plan model and its external JSON contract.

A plan is ``{"meta": {"site", "goal"}, "steps": [...]}`` with 1..50 tagged
actions. Planners that emit structured output use a *flat* step shape where
every step carries all seven fields and unused ones are ``null``; both the
tagged and the flat shape are accepted here.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, ClassVar, Iterable, Union
from urllib.parse import urlparse

import yaml
from jsonschema import Draft7Validator

from flowpilot.errors import PlanStructureError
from flowpilot.models import ACTION_TYPES, MAX_PLAN_STEPS, WAIT_STATES

logger = logging.getLogger("flowpilot.plan")


# ── Actions ───────────────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class Navigate:
    type: ClassVar[str] = "navigate"
    url: str


@dataclasses.dataclass(frozen=True)
class WaitFor:
    type: ClassVar[str] = "waitFor"
    selector: str
    state: str = "visible"
    timeout: int | None = None  # None -> engine default


@dataclasses.dataclass(frozen=True)
class Fill:
    type: ClassVar[str] = "fill"
    selector: str
    value_key: str


@dataclasses.dataclass(frozen=True)
class Click:
    type: ClassVar[str] = "click"
    selector: str


@dataclasses.dataclass(frozen=True)
class Press:
    type: ClassVar[str] = "press"
    selector: str
    key: str


@dataclasses.dataclass(frozen=True)
class WaitNetworkIdle:
    type: ClassVar[str] = "waitNetworkIdle"
    timeout: int | None = None


Action = Union[Navigate, WaitFor, Fill, Click, Press, WaitNetworkIdle]


@dataclasses.dataclass(frozen=True)
class PlanMeta:
    site: str
    goal: str


@dataclasses.dataclass(frozen=True)
class Plan:
    """An ordered, typed sequence of actions with metadata."""

    meta: PlanMeta
    steps: tuple[Action, ...]

    def selector_keys(self) -> list[str]:
        """Logical keys referenced by the plan, in first-use order."""
        keys: list[str] = []
        for step in self.steps:
            selector = getattr(step, "selector", None)
            if selector and selector not in keys:
                keys.append(selector)
        return keys

    def value_keys(self) -> list[str]:
        keys: list[str] = []
        for step in self.steps:
            if isinstance(step, Fill) and step.value_key not in keys:
                keys.append(step.value_key)
        return keys

    def has_fill_for(self, selector: str) -> bool:
        return any(isinstance(s, Fill) and s.selector == selector for s in self.steps)


# ── JSON Schema (Draft 7) ─────────────────────────────────────────────────

_NULLABLE_STRING = {"type": ["string", "null"]}
_NULLABLE_TIMEOUT = {"type": ["number", "null"], "minimum": 0}


def _requires(action_type: str, *fields: str) -> dict[str, Any]:
    return {
        "if": {"properties": {"type": {"const": action_type}}, "required": ["type"]},
        "then": {
            "required": list(fields),
            "properties": {f: {"type": "string", "minLength": 1} for f in fields},
        },
    }


STEP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": list(ACTION_TYPES)},
        "url": _NULLABLE_STRING,
        "selector": _NULLABLE_STRING,
        "state": {"type": ["string", "null"], "enum": [*WAIT_STATES, None]},
        "valueKey": _NULLABLE_STRING,
        "key": _NULLABLE_STRING,
        "timeout": _NULLABLE_TIMEOUT,
    },
    "required": ["type"],
    "allOf": [
        _requires("navigate", "url"),
        _requires("waitFor", "selector"),
        _requires("fill", "selector", "valueKey"),
        _requires("click", "selector"),
        _requires("press", "selector", "key"),
    ],
}

PLAN_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "meta": {
            "type": "object",
            "properties": {"site": {"type": "string"}, "goal": {"type": "string"}},
            "required": ["site", "goal"],
        },
        "steps": {"type": "array", "items": STEP_SCHEMA, "minItems": 1, "maxItems": MAX_PLAN_STEPS},
    },
    "required": ["meta", "steps"],
}

_VALIDATOR = Draft7Validator(PLAN_SCHEMA)


# ── Parsing ───────────────────────────────────────────────────────────────


def schema_issues(data: Any) -> list[str]:
    """Return human-readable JSON Schema violations for a raw plan (empty when valid)."""
    issues = []
    for err in sorted(_VALIDATOR.iter_errors(data), key=lambda e: [str(p) for p in e.path]):
        loc = ".".join(str(p) for p in err.path) if err.path else "root"
        issues.append(f"{loc}: {err.message}")
    return issues


def parse_plan(data: Any) -> Plan:
    """Validate a raw plan mapping and build a typed Plan.

    Raises:
        PlanStructureError: listing every schema violation found.
    """
    issues = schema_issues(data)
    if issues:
        raise PlanStructureError("Plan does not match the plan contract", issues)

    steps: list[Action] = []
    for index, raw in enumerate(data["steps"]):
        try:
            steps.append(_parse_step(raw))
        except ValueError as exc:
            issues.append(f"steps.{index}: {exc}")
    if issues:
        raise PlanStructureError("Plan does not match the plan contract", issues)

    meta = data["meta"]
    return Plan(meta=PlanMeta(site=meta["site"], goal=meta["goal"]), steps=tuple(steps))


def _parse_step(raw: dict[str, Any]) -> Action:
    action_type = raw["type"]
    timeout = raw.get("timeout")
    timeout = int(timeout) if timeout is not None else None

    if action_type == "navigate":
        url = raw["url"].strip()
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"navigate url is not an absolute URL: {url!r}")
        return Navigate(url=url)
    if action_type == "waitFor":
        return WaitFor(selector=raw["selector"], state=raw.get("state") or "visible", timeout=timeout)
    if action_type == "fill":
        return Fill(selector=raw["selector"], value_key=raw["valueKey"])
    if action_type == "click":
        return Click(selector=raw["selector"])
    if action_type == "press":
        return Press(selector=raw["selector"], key=raw["key"])
    if action_type == "waitNetworkIdle":
        return WaitNetworkIdle(timeout=timeout)
    raise ValueError(f"Unknown action type: {action_type}")


def load_plan(path: Path) -> Plan:
    """Load a plan from a JSON or YAML file."""
    if not path.is_file():
        raise PlanStructureError(f"Plan file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise PlanStructureError(f"Plan file could not be parsed: {path}", [str(exc)])
    return parse_plan(data)


# ── Serialization ─────────────────────────────────────────────────────────

_WIRE_FIELDS = ("url", "selector", "state", "valueKey", "key", "timeout")


def action_to_dict(action: Action, flat: bool = False) -> dict[str, Any]:
    """Serialize one action to the wire shape.

    With ``flat=True`` every step carries all fields, unused ones as null.
    """
    out: dict[str, Any] = {"type": action.type}
    if flat:
        out.update({name: None for name in _WIRE_FIELDS})
    for f in dataclasses.fields(action):
        wire = "valueKey" if f.name == "value_key" else f.name
        out[wire] = getattr(action, f.name)
    return out


def plan_to_dict(plan: Plan, flat: bool = False) -> dict[str, Any]:
    return {
        "meta": {"site": plan.meta.site, "goal": plan.meta.goal},
        "steps": [action_to_dict(step, flat=flat) for step in plan.steps],
    }


# ── Normalization & key validation ────────────────────────────────────────


def ensure_navigate(plan: Plan, url: str | None = None) -> Plan:
    """Return a plan that navigates somewhere, prepending a navigate when it has none."""
    if any(isinstance(step, Navigate) for step in plan.steps):
        return plan
    if len(plan.steps) >= MAX_PLAN_STEPS:
        raise PlanStructureError(
            f"Cannot prepend navigate: plan already has {len(plan.steps)} steps (max {MAX_PLAN_STEPS})"
        )
    target = url or plan.meta.site
    logger.info("Plan has no navigate step; prepending navigate to %s", target)
    return dataclasses.replace(plan, steps=(Navigate(url=target), *plan.steps))


def key_issues(
    plan: Plan,
    selector_keys: Iterable[str],
    value_keys: Iterable[str] | None = None,
) -> list[str]:
    """List logical keys the plan uses that the selector map (or value registry) lacks."""
    known = set(selector_keys)
    issues = [f"unknown selector key: {key}" for key in plan.selector_keys() if key not in known]
    if value_keys is not None:
        allowed = set(value_keys)
        issues.extend(f"unknown value key: {key}" for key in plan.value_keys() if key not in allowed)
    return issues


def validate_plan_keys(
    plan: Plan,
    selector_keys: Iterable[str],
    value_keys: Iterable[str] | None = None,
) -> None:
    """Reject a plan that references keys outside the agreed vocabulary."""
    issues = key_issues(plan, selector_keys, value_keys)
    if issues:
        raise PlanStructureError("Plan references unknown logical keys", issues)

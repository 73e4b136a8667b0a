"""Selector maps and site profiles.

A selector map binds each logical key (``"email"``, ``"submit"``) to an
ordered list of candidate locator strings, most robust first. Site profiles
bundle a selector map with the value keys its plans may use and, optionally,
a template plan.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from flowpilot.config import FlowPilotConfigError
from flowpilot.plan import Plan, parse_plan

logger = logging.getLogger("flowpilot.selectors")

SelectorMap = Dict[str, List[str]]
FormDataBag = Dict[str, str]

PROFILES_DIR = Path(__file__).resolve().parent / "profiles"


def merge_selector_maps(base: SelectorMap, suggested: SelectorMap) -> SelectorMap:
    """Merge suggested candidates in front of a baseline map.

    Every key from either map is kept. For shared keys the suggested
    candidates come first, then the baseline ones; duplicates (by trimmed
    string) are dropped, keeping the first occurrence.
    """
    out: SelectorMap = {key: list(candidates) for key, candidates in base.items()}
    for key, proposed in suggested.items():
        seen: set[str] = set()
        merged: list[str] = []
        for candidate in [*(proposed or []), *out.get(key, [])]:
            trimmed = candidate.strip()
            if trimmed in seen:
                continue
            seen.add(trimmed)
            merged.append(candidate)
        out[key] = merged
    return out


def coerce_selector_map(data: Any, source: str = "selector map") -> SelectorMap:
    """Validate a raw mapping into a SelectorMap. A bare string becomes a one-item list."""
    if not isinstance(data, dict):
        raise FlowPilotConfigError(f"{source} must be a mapping of key -> candidate list")
    out: SelectorMap = {}
    for key, value in data.items():
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise FlowPilotConfigError(f"{source}: candidates for '{key}' must be a list of strings")
        out[str(key)] = value
    return out


def coerce_data_bag(data: Any, source: str = "data bag") -> FormDataBag:
    """Validate a raw mapping into a flat string -> string bag."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FlowPilotConfigError(f"{source} must be a flat mapping of key -> value")
    out: FormDataBag = {}
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            raise FlowPilotConfigError(f"{source}: value for '{key}' must be a scalar")
        out[str(key)] = "" if value is None else str(value)
    return out


def _load_mapping(path: Path) -> Any:
    if not path.is_file():
        raise FlowPilotConfigError(f"File not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise FlowPilotConfigError(f"Could not parse {path}: {exc}") from exc


def load_selector_map(path: Path) -> SelectorMap:
    """Load a selector map from a YAML or JSON file."""
    return coerce_selector_map(_load_mapping(path), source=str(path))


def load_data_bag(path: Path) -> FormDataBag:
    """Load a data bag from a YAML or JSON file."""
    return coerce_data_bag(_load_mapping(path), source=str(path))


# ── Site profiles ─────────────────────────────────────────────────────────


@dataclasses.dataclass
class SiteProfile:
    """The logical-key vocabulary agreed for one site."""

    name: str
    site: str
    description: str
    selectors: SelectorMap
    value_keys: list[str]
    plan: Plan | None = None

    @property
    def selector_keys(self) -> list[str]:
        return list(self.selectors)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> SiteProfile:
        profile = data.get("profile", data)
        if not isinstance(profile, dict):
            raise FlowPilotConfigError(f"Profile '{name}' must be a YAML mapping")
        site = profile.get("site")
        if not site:
            raise FlowPilotConfigError(f"Profile '{name}' is missing required field: site")
        plan_data = profile.get("plan")
        return cls(
            name=profile.get("name", name),
            site=site,
            description=profile.get("description", ""),
            selectors=coerce_selector_map(profile.get("selectors") or {}, source=f"profile '{name}'"),
            value_keys=[str(k) for k in profile.get("value_keys") or []],
            plan=parse_plan(plan_data) if plan_data else None,
        )


def list_profiles(profiles_dir: Path = PROFILES_DIR) -> list[str]:
    """Names of the profiles available in a directory."""
    if not profiles_dir.is_dir():
        return []
    return sorted(p.stem for p in profiles_dir.glob("*.yaml"))


def load_profile(name_or_path: str | Path, profiles_dir: Path = PROFILES_DIR) -> SiteProfile:
    """Load a site profile by bundled name or by file path."""
    path = Path(name_or_path)
    if not path.suffix:
        path = profiles_dir / f"{name_or_path}.yaml"
    if not path.is_file():
        available = ", ".join(list_profiles(profiles_dir)) or "none"
        raise FlowPilotConfigError(
            f"Profile not found: {name_or_path}\n\nAvailable profiles: {available}"
        )
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise FlowPilotConfigError(f"Invalid YAML in profile {path}: {exc}") from exc
    logger.debug("Loaded profile %s from %s", path.stem, path)
    return SiteProfile.from_dict(path.stem, data)

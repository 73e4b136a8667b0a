"""Assemble the plan, selector map and data bag a command works on."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

from flowpilot.config import FlowPilotConfigError
from flowpilot.errors import PlanStructureError
from flowpilot.plan import Plan, load_plan
from flowpilot.selectors import (
    FormDataBag,
    SelectorMap,
    SiteProfile,
    load_data_bag,
    load_profile,
    load_selector_map,
    merge_selector_maps,
)

logger = logging.getLogger("flowpilot.cli.inputs")


@dataclasses.dataclass
class RunInputs:
    plan: Plan
    selector_map: SelectorMap
    data: FormDataBag
    profile: SiteProfile | None = None

    @property
    def value_keys(self) -> list[str] | None:
        """Allowed value keys, when a profile declares them."""
        if self.profile is not None and self.profile.value_keys:
            return self.profile.value_keys
        return None


def load_inputs(
    plan_path: Path | None,
    selectors_path: Path | None = None,
    suggested_path: Path | None = None,
    data_path: Path | None = None,
    profile_name: str | None = None,
) -> RunInputs:
    """Load everything a run needs.

    The selector map is built in layers, later layers taking precedence:
    profile selectors, then ``--selectors``, then ``--suggested``.

    Raises:
        FlowPilotConfigError: on missing or malformed selector/data/profile files.
        PlanStructureError: on an invalid plan, or when no plan is given at all.
    """
    profile = load_profile(profile_name) if profile_name else None

    if plan_path is not None:
        plan = load_plan(plan_path)
    elif profile is not None and profile.plan is not None:
        logger.info("Using template plan from profile %s", profile.name)
        plan = profile.plan
    else:
        raise PlanStructureError("No plan given. Pass a plan file, or --profile with a template plan.")

    selector_map: SelectorMap = dict(profile.selectors) if profile else {}
    if selectors_path is not None:
        selector_map = merge_selector_maps(selector_map, load_selector_map(selectors_path))
    if suggested_path is not None:
        selector_map = merge_selector_maps(selector_map, load_selector_map(suggested_path))
    if not selector_map:
        raise FlowPilotConfigError("No selector map given. Pass --selectors or --profile.")

    data = load_data_bag(data_path) if data_path is not None else {}
    return RunInputs(plan=plan, selector_map=selector_map, data=data, profile=profile)

"""Field strategies — workflow heuristics layered on top of a plain fill.

Each strategy gets a chance to handle a ``fill`` action, in a fixed order.
A strategy returns the artifacts it wrote when it handled the fill, or None
to pass the action on to the next one. ``DefaultFill`` always handles.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from flowpilot.models import OTP_GROUP_MAX, OTP_GROUP_MIN
from flowpilot.plan import Fill

if TYPE_CHECKING:
    from flowpilot.engine.action_executor import ActionInterpreter

logger = logging.getLogger("flowpilot.engine.strategies")


@dataclasses.dataclass(frozen=True)
class FieldKeys:
    """Logical keys (and bag keys) the heuristics recognize."""

    full_name: str = "full_name"
    first_name: str = "first_name"
    last_name: str = "last_name"
    password: str = "password"
    confirm_password: str = "confirm_password"
    otp_input: str = "otp_input"
    auth_menu: str = "auth_menu"
    signup_menu: str = "signup_menu"
    # Bag keys
    confirm_value: str = "confirm_password"
    otp_value: str = "otp"


@dataclasses.dataclass
class RunState:
    """Mutable per-run bookkeeping shared by the strategies."""

    has_explicit_confirm: bool = False
    confirm_filled: bool = False


class FillStrategy(Protocol):
    name: str

    def try_fill(
        self, interp: ActionInterpreter, index: int, action: Fill, value: str
    ) -> list[Path] | None: ...


def split_full_name(value: str) -> tuple[str, str]:
    """Split on whitespace into (first token, remaining tokens)."""
    parts = value.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class FullNameSplit:
    """Fill separate first/last name fields when a site has no single full-name field."""

    name = "full_name_split"

    def try_fill(self, interp, index, action, value):
        keys = interp.keys
        if action.selector != keys.full_name:
            return None
        first_loc = interp.resolver.first_existing(interp.candidates(keys.first_name))
        last_loc = interp.resolver.first_existing(interp.candidates(keys.last_name))
        if first_loc is None or last_loc is None:
            return None

        first, last = split_full_name(value)
        logger.info("Splitting full name across first/last name fields")
        artifacts: list[Path] = []
        for key, locator, text in ((keys.first_name, first_loc, first), (keys.last_name, last_loc, last)):
            interp.diagnostics.highlight(locator, index)
            interp.write_text(locator, text)
            artifacts += interp.diagnostics.capture(index, action.type, key, locator)
        return artifacts


class ExplicitConfirmPassword:
    """Fill the confirm-password field and remember that it has been handled."""

    name = "explicit_confirm_password"

    def try_fill(self, interp, index, action, value):
        keys = interp.keys
        if action.selector != keys.confirm_password:
            return None
        if action.value_key in interp.data:
            text = interp.data[action.value_key]
        else:
            text = interp.data.get(keys.confirm_value, "")
        locator = interp.resolver.get(interp.candidates(action.selector))
        interp.diagnostics.highlight(locator, index)
        interp.write_text(locator, text)
        interp.state.confirm_filled = True
        return interp.diagnostics.capture(index, action.type, action.selector, locator)


def looks_like_otp_group(count: int) -> bool:
    return OTP_GROUP_MIN <= count <= OTP_GROUP_MAX


class OtpGroup:
    """Type a one-time code one character per box."""

    name = "otp_group"

    def try_fill(self, interp, index, action, value):
        if action.selector != interp.keys.otp_input or not value:
            return None
        group = interp.resolver.best_group(interp.candidates(action.selector))
        if group is None or not looks_like_otp_group(group.count):
            return None

        n = min(group.count, len(value))
        logger.info("Filling %d OTP box(es) from candidate %r", n, group.candidate)
        artifacts: list[Path] = []
        for k in range(n):
            box = group.locator.nth(k)
            interp.diagnostics.highlight(box, index)
            interp.write_char(box, value[k])
            artifacts += interp.diagnostics.capture(index, action.type, f"otp_digit_{k + 1}", box)
            interp.pause(interp.options.typing_delay_ms)
        return artifacts


class DefaultFill:
    """Clear and type into the resolved field, then synthesize a missing confirm-password fill."""

    name = "default"

    def try_fill(self, interp, index, action, value):
        locator = interp.resolver.get(interp.candidates(action.selector))
        interp.diagnostics.highlight(locator, index)
        interp.write_text(locator, value)
        artifacts = interp.diagnostics.capture(index, action.type, action.selector, locator)

        keys, state = interp.keys, interp.state
        confirm_value = interp.data.get(keys.confirm_value)
        if (
            action.selector == keys.password
            and confirm_value
            and not state.has_explicit_confirm
            and not state.confirm_filled
        ):
            confirm_loc = interp.resolver.first_existing(interp.candidates(keys.confirm_password))
            if confirm_loc is None:
                logger.info("No confirm-password field on page; nothing to auto-fill")
                return artifacts
            logger.info("Plan has no confirm-password step; filling it after password")
            interp.diagnostics.highlight(confirm_loc, index)
            interp.write_text(confirm_loc, confirm_value)
            artifacts += interp.diagnostics.capture(index, action.type, keys.confirm_password, confirm_loc)
            state.confirm_filled = True
        return artifacts


DEFAULT_FILL_STRATEGIES: tuple[FillStrategy, ...] = (
    FullNameSplit(),
    ExplicitConfirmPassword(),
    OtpGroup(),
    DefaultFill(),
)

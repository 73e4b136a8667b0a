"""FlowPilot run configuration."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from flowpilot.models import (
    CDP_ENDPOINT_ENV,
    DEFAULT_SCREENSHOT_SETTLE_MS,
    DEFAULT_STEP_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_TYPING_DELAY_MS,
    DEFAULT_VIEWPORT,
    HEADFUL_SLOW_MO_MS,
    KEEP_OPEN_FALLBACK_MS,
    SCREENSHOT_MODES,
)


class FlowPilotConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


# YAML spellings accepted for screenshot_mode
_SCREENSHOT_MODE_ALIASES = {
    "fullpage": "full_page",
    "full-page": "full_page",
    "full": "full_page",
    "view": "viewport",
    "elem": "element",
}


@dataclass(frozen=True)
class RunOptions:
    """Session shape, pacing, diagnostics and typing settings for one run.

    Immutable for the duration of a run. Use ``with_overrides`` to derive a
    variant (e.g. after applying CLI flags on top of a config file).
    """

    # Session shape
    headless: bool = True
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    slow_mo_ms: int | None = None  # None -> 0 headless, 1200 headful
    user_data_dir: Path | None = None
    channel: str | None = None  # "chrome" | "msedge"
    executable_path: Path | None = None
    connect_endpoint: str | None = None

    # Timing
    step_delay_ms: int = DEFAULT_STEP_DELAY_MS
    screenshot_settle_ms: int = DEFAULT_SCREENSHOT_SETTLE_MS
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS

    # Diagnostics
    screenshot_mode: str = "element"
    disable_animations: bool = True
    enable_tracing: bool = True
    enable_highlight: bool = True
    artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))

    # Typing realism
    human_typing: bool = False
    typing_delay_ms: int = DEFAULT_TYPING_DELAY_MS

    # Post-run hold
    keep_open: bool = False
    keep_open_ms: int = 0
    keep_open_fallback_ms: int = KEEP_OPEN_FALLBACK_MS

    def __post_init__(self) -> None:
        if self.screenshot_mode not in SCREENSHOT_MODES:
            raise FlowPilotConfigError(
                f"Invalid screenshot_mode: {self.screenshot_mode!r}\n\n"
                f"Valid modes: {', '.join(SCREENSHOT_MODES)}"
            )
        for name in ("step_delay_ms", "screenshot_settle_ms", "typing_delay_ms", "keep_open_ms"):
            if getattr(self, name) < 0:
                raise FlowPilotConfigError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.default_timeout_ms <= 0:
            raise FlowPilotConfigError(f"default_timeout_ms must be > 0, got {self.default_timeout_ms}")

    @property
    def effective_slow_mo_ms(self) -> int:
        if self.slow_mo_ms is not None:
            return self.slow_mo_ms
        return 0 if self.headless else HEADFUL_SLOW_MO_MS

    @property
    def session_mode(self) -> str:
        """Exactly one of ``attach``, ``persistent`` or ``launch``.

        Precedence: attach endpoint > persistent profile > fresh launch.
        """
        if self.connect_endpoint:
            return "attach"
        if self.user_data_dir:
            return "persistent"
        return "launch"

    def with_overrides(self, **overrides: Any) -> RunOptions:
        """Return a copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "screenshot_mode" in changes:
            changes["screenshot_mode"] = normalize_screenshot_mode(changes["screenshot_mode"])
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_file(cls, config_path: Path) -> RunOptions:
        """Load run options from a YAML file."""
        if not config_path.exists():
            raise FlowPilotConfigError(f"Config file not found: {config_path}")
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise FlowPilotConfigError(f"Invalid YAML in config file {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise FlowPilotConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], base_dir: Path) -> RunOptions:
        """Create options from a dictionary. Relative paths resolve against base_dir."""
        kwargs: dict[str, Any] = {}

        for key in ("headless", "disable_animations", "enable_tracing", "enable_highlight",
                    "human_typing", "keep_open"):
            if key in data:
                kwargs[key] = bool(data[key])

        for key in ("slow_mo_ms", "step_delay_ms", "screenshot_settle_ms", "default_timeout_ms",
                    "typing_delay_ms", "keep_open_ms", "keep_open_fallback_ms"):
            if key in data and data[key] is not None:
                try:
                    kwargs[key] = int(data[key])
                except (TypeError, ValueError):
                    raise FlowPilotConfigError(f"{key} must be an integer, got {data[key]!r}")

        if "viewport" in data:
            vp = data["viewport"]
            if isinstance(vp, dict):
                kwargs["viewport"] = (int(vp.get("width", DEFAULT_VIEWPORT[0])),
                                      int(vp.get("height", DEFAULT_VIEWPORT[1])))
            elif isinstance(vp, str):
                kwargs["viewport"] = parse_viewport(vp)

        if "screenshot_mode" in data:
            kwargs["screenshot_mode"] = normalize_screenshot_mode(str(data["screenshot_mode"]))

        if data.get("artifacts_dir"):
            kwargs["artifacts_dir"] = base_dir / data["artifacts_dir"]
        if data.get("user_data_dir"):
            kwargs["user_data_dir"] = Path(data["user_data_dir"]).expanduser()
        if data.get("executable_path"):
            kwargs["executable_path"] = Path(data["executable_path"]).expanduser()
        if data.get("channel"):
            kwargs["channel"] = str(data["channel"])
        if data.get("connect_endpoint"):
            kwargs["connect_endpoint"] = str(data["connect_endpoint"])

        return cls(**kwargs)


def normalize_screenshot_mode(mode: str) -> str:
    """Map YAML/CLI spellings (``fullPage``, ``full-page``) to a canonical mode."""
    key = mode.strip().lower()
    key = _SCREENSHOT_MODE_ALIASES.get(key, key)
    if key not in SCREENSHOT_MODES:
        raise FlowPilotConfigError(
            f"Invalid screenshot mode: {mode!r}\n\nValid modes: {', '.join(SCREENSHOT_MODES)}"
        )
    return key


def parse_viewport(viewport_str: str) -> tuple[int, int]:
    """Parse a 'WIDTHxHEIGHT' string into a (width, height) tuple."""
    try:
        parts = viewport_str.lower().split("x")
        if len(parts) != 2:
            raise ValueError
        return (int(parts[0]), int(parts[1]))
    except (ValueError, IndexError):
        raise FlowPilotConfigError(
            f"Invalid viewport format: {viewport_str}\n\nExpected format: WIDTHxHEIGHT (e.g., 1600x1000)"
        )


def resolve_connect_endpoint(explicit: str | None = None) -> str | None:
    """Resolve the remote-debugging endpoint to attach to, if any.

    Resolution order (highest priority first):
    1. Explicit value (CLI flag or config file)
    2. FLOWPILOT_CDP_ENDPOINT environment variable
    3. .env file in current directory
    """
    if explicit:
        return explicit

    if endpoint := os.environ.get(CDP_ENDPOINT_ENV):
        return endpoint

    env_path = Path(".env")
    if env_path.exists():
        return _parse_env_file(env_path, CDP_ENDPOINT_ENV)

    return None


def _parse_env_file(path: Path, key_name: str) -> str | None:
    """Parse a .env file for a specific key."""
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line.startswith("#") or "=" not in line:
                    continue
                k, _, v = line.partition("=")
                if k.strip() == key_name:
                    return v.strip().strip("'\"") or None
    except OSError:
        pass
    return None

"""Centralized engine defaults."""

# Waits
DEFAULT_TIMEOUT_MS = 15_000
KEEP_OPEN_FALLBACK_MS = 15_000  # auto-close when no terminal is attached

# Pacing
DEFAULT_STEP_DELAY_MS = 800
DEFAULT_SCREENSHOT_SETTLE_MS = 160
DEFAULT_TYPING_DELAY_MS = 100
HEADFUL_SLOW_MO_MS = 1200

# Session
DEFAULT_VIEWPORT = (1600, 1000)
CDP_ENDPOINT_ENV = "FLOWPILOT_CDP_ENDPOINT"

# Plans
MAX_PLAN_STEPS = 50
WAIT_STATES = ("visible", "attached", "hidden", "detached")
ACTION_TYPES = ("navigate", "waitFor", "fill", "click", "press", "waitNetworkIdle")

# Diagnostics
SCREENSHOT_MODES = ("element", "viewport", "full_page", "both")
HIGHLIGHT_COLORS = (
    "rgba(255,0,0,.85)",
    "rgba(0,200,0,.85)",
    "rgba(0,0,255,.85)",
    "rgba(255,165,0,.85)",
    "rgba(128,0,128,.85)",
)
HIGHLIGHT_FADE_MS = 600

# OTP boxes: groups outside this range are filled as a single field
OTP_GROUP_MIN = 2
OTP_GROUP_MAX = 8

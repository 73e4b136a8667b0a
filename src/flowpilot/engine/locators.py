"""FlowPilot Locator Resolver — candidate DSL parsing and ranked resolution.

Candidate strings express one strategy each for finding an element::

    label=/Email/i                 -> page.get_by_label(re.compile("Email", re.I))
    placeholder=Full Name          -> page.get_by_placeholder("Full Name")
    text=/^\\s*sign up\\s*$/i       -> page.get_by_text(...)
    role=button[name=/send/i]      -> page.get_by_role("button", name=...)
    css=input[type='email']        -> page.locator("input[type='email']")
    name=email / id=x / testid=x / aria-label=x
                                   -> rewritten to css attribute selectors

Anything else is handed to ``page.locator`` as-is. Locators are resolved
fresh every time they are needed; the document changes between steps.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("flowpilot.engine.locators")

_REGEX_VALUE = re.compile(r"^/(.+)/([a-z]*)$", re.S)
_ROLE_CANDIDATE = re.compile(r"^role=([a-zA-Z]+)\s*(?:\[\s*name\s*=\s*(.+?)\s*\])?$")
_SHORTHAND = (
    (re.compile(r"^name\s*=\s*(.+)$", re.I), "name"),
    (re.compile(r"^id\s*=\s*(.+)$", re.I), "id"),
    (re.compile(r"^(?:data-)?testid\s*=\s*(.+)$", re.I), "data-testid"),
    (re.compile(r"^aria-label\s*=\s*(.+)$", re.I), "aria-label"),
)
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}

# Matches nothing; used when a key has no usable candidate at all
UNRESOLVED_SELECTOR = "flowpilot-unresolved"


@dataclasses.dataclass(frozen=True)
class LocatorSpec:
    """A parsed candidate: which Playwright query to run and with what argument."""

    kind: str  # label, placeholder, text, role, css
    value: str | re.Pattern
    raw: str
    role: str | None = None


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def parse_value(value: str) -> str | re.Pattern:
    """Compile ``/pattern/flags`` into a regex; anything else stays a literal.

    Raises:
        ValueError: if the pattern is not a valid regular expression.
    """
    match = _REGEX_VALUE.match(value.strip())
    if not match:
        return _unquote(value)
    flags = 0
    for flag in match.group(2):
        flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(match.group(1), flags)
    except re.error as exc:
        raise ValueError(f"Invalid pattern {value!r}: {exc}") from exc


def normalize_candidate(raw: str) -> str:
    """Rewrite ``name=``/``id=``/``testid=``/``aria-label=`` shorthand into ``css=``."""
    candidate = raw.strip()
    for pattern, attribute in _SHORTHAND:
        match = pattern.match(candidate)
        if match:
            value = _unquote(match.group(1)).replace('"', '\\"')
            return f'css=[{attribute}="{value}"]'
    return candidate


def parse_candidate(raw: str) -> LocatorSpec:
    """Parse one candidate string into a LocatorSpec.

    Raises:
        ValueError: on an invalid ``/pattern/`` value.
    """
    candidate = normalize_candidate(raw)
    for prefix in ("label", "placeholder", "text"):
        if candidate.startswith(prefix + "="):
            return LocatorSpec(kind=prefix, value=parse_value(candidate[len(prefix) + 1:]), raw=raw)
    if candidate.startswith("role="):
        match = _ROLE_CANDIDATE.match(candidate)
        if match:
            name = parse_value(match.group(2)) if match.group(2) else ""
            return LocatorSpec(kind="role", value=name, role=match.group(1), raw=raw)
    if candidate.startswith("css="):
        return LocatorSpec(kind="css", value=candidate[len("css="):], raw=raw)
    return LocatorSpec(kind="css", value=candidate, raw=raw)


def compile_locator(page: Page, spec: LocatorSpec) -> Locator:
    """Build the Playwright locator described by a spec (lazy; nothing is queried yet)."""
    if spec.kind == "label":
        return page.get_by_label(spec.value)
    if spec.kind == "placeholder":
        return page.get_by_placeholder(spec.value)
    if spec.kind == "text":
        return page.get_by_text(spec.value)
    if spec.kind == "role":
        if spec.value:
            return page.get_by_role(spec.role, name=spec.value)
        return page.get_by_role(spec.role)
    return page.locator(spec.value)


# ── Resolution results ────────────────────────────────────────────────────


@dataclasses.dataclass
class CandidateResult:
    """Outcome of resolving one candidate against the live document."""

    candidate: str
    status: str  # matched, no_match, error
    count: int = 0
    locator: Any = None
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.status == "matched"


@dataclasses.dataclass
class GroupMatch:
    """The candidate whose locator matched the most elements."""

    candidate: str
    locator: Any
    count: int


class LocatorResolver:
    """Resolves ranked candidate lists against one page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    def resolve(self, candidate: str) -> CandidateResult:
        """Compile one candidate and count its matches. Never raises."""
        try:
            locator = compile_locator(self._page, parse_candidate(candidate))
            count = locator.count()
        except Exception as exc:
            logger.warning("Candidate %r errored during resolution: %s", candidate, exc)
            return CandidateResult(candidate=candidate, status="error", error=f"{type(exc).__name__}: {exc}")
        if count == 0:
            logger.debug("Candidate %r matched nothing", candidate)
            return CandidateResult(candidate=candidate, status="no_match", locator=locator)
        return CandidateResult(candidate=candidate, status="matched", count=count, locator=locator)

    def first_existing(self, candidates: Sequence[str]) -> Locator | None:
        """First element of the first candidate (in declared order) that matches anything."""
        for candidate in candidates:
            result = self.resolve(candidate)
            if result.matched:
                logger.debug("Resolved %r (%d match(es))", candidate, result.count)
                return result.locator.first
        return None

    def best_group(self, candidates: Sequence[str]) -> GroupMatch | None:
        """The candidate matching the most elements; ties keep the earlier candidate."""
        best: GroupMatch | None = None
        for candidate in candidates:
            result = self.resolve(candidate)
            if result.matched and (best is None or result.count > best.count):
                best = GroupMatch(candidate=candidate, locator=result.locator, count=result.count)
        return best

    def get(self, candidates: Sequence[str]) -> Locator:
        """Resolve to the first existing match, or to an empty locator for the first candidate.

        Returning an empty locator instead of raising lets the following
        wait or interaction fail with a clear "not found" error.
        """
        locator = self.first_existing(candidates)
        if locator is not None:
            return locator
        for candidate in candidates[:1]:
            try:
                return compile_locator(self._page, parse_candidate(candidate))
            except ValueError as exc:
                logger.warning("First candidate %r is unusable: %s", candidate, exc)
        return self._page.locator(UNRESOLVED_SELECTOR)

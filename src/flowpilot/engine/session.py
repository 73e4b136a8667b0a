"""FlowPilot Browser Session — acquires and releases one Playwright session per run.

Exactly one of three modes is used, by precedence:

1. ``attach``     -- connect to a running Chromium over its remote-debugging endpoint
2. ``persistent`` -- launch with a persistent user-data directory (logged-in profile)
3. ``launch``     -- launch a fresh, isolated browser
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

from flowpilot.config import RunOptions

logger = logging.getLogger("flowpilot.engine.session")

# Freezes CSS animation, transitions and the text caret in every document
_SUPPRESS_MOTION_SCRIPT = """(() => {
    const style = document.createElement("style");
    style.textContent = `
        * { animation: none !important; transition: none !important; caret-color: transparent !important; }
        html, body { scroll-behavior: auto !important; }
    `;
    document.documentElement.appendChild(style);
})();"""

TRACE_FILENAME = "trace.zip"


class BrowserSession:
    """A browser context plus the page a run drives.

    ``close()`` releases everything exactly once, however many times and
    from however many threads it is called.
    """

    def __init__(
        self,
        playwright: Any,
        context: Any,
        page: Any,
        browser: Any = None,
        owns_context: bool = True,
        trace_path: Path | None = None,
    ) -> None:
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.page = page
        self._owns_context = owns_context
        self._trace_path = trace_path
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._trace_path is not None:
            try:
                self.context.tracing.stop(path=str(self._trace_path))
                logger.info("Trace saved to %s", self._trace_path)
            except Exception as exc:
                logger.debug("Trace stop failed: %s", exc)
        if self._owns_context:
            try:
                self.context.close()
            except Exception as exc:
                logger.debug("Context close failed: %s", exc)
        else:
            # Borrowed context: only the tab this run opened is ours
            try:
                self.page.close()
            except Exception as exc:
                logger.debug("Page close failed: %s", exc)
        try:
            if self.browser is not None:
                self.browser.close()
        except Exception as exc:
            logger.debug("Browser close failed: %s", exc)
        try:
            if self.playwright is not None:
                self.playwright.stop()
        except Exception as exc:
            logger.debug("Playwright stop failed: %s", exc)


def _launch_args(options: RunOptions) -> list[str]:
    width, height = options.viewport
    return [f"--window-size={width},{height}"]


def _acquire_context(playwright: Any, options: RunOptions) -> tuple[Any, Any, bool]:
    """Return (browser, context, owns_context) for the configured mode."""
    chromium = playwright.chromium
    width, height = options.viewport
    viewport = {"width": width, "height": height}
    mode = options.session_mode

    if mode == "attach":
        logger.info("Attaching to browser at %s", options.connect_endpoint)
        browser = chromium.connect_over_cdp(options.connect_endpoint)
        if browser.contexts:
            return browser, browser.contexts[0], False
        return browser, browser.new_context(viewport=viewport), True

    launch_kwargs: dict[str, Any] = {
        "headless": options.headless,
        "slow_mo": options.effective_slow_mo_ms,
        "args": _launch_args(options),
    }
    if options.channel:
        launch_kwargs["channel"] = options.channel
    if options.executable_path:
        launch_kwargs["executable_path"] = str(options.executable_path)

    if mode == "persistent":
        logger.info("Launching persistent profile from %s", options.user_data_dir)
        launch_kwargs["args"].append("--disable-features=TranslateUI")
        context = chromium.launch_persistent_context(
            str(options.user_data_dir), viewport=viewport, **launch_kwargs
        )
        return None, context, True

    logger.info("Launching Chromium (headless=%s)", options.headless)
    browser = chromium.launch(**launch_kwargs)
    return browser, browser.new_context(viewport=viewport), True


def open_session(options: RunOptions) -> BrowserSession:
    """Start Playwright and open a page according to ``options``.

    Any failure after Playwright starts releases what was already acquired.
    """
    from playwright.sync_api import sync_playwright

    playwright = sync_playwright().start()
    browser = context = None
    try:
        browser, context, owns_context = _acquire_context(playwright, options)
        context.set_default_timeout(options.default_timeout_ms)
        if options.disable_animations:
            context.add_init_script(script=_SUPPRESS_MOTION_SCRIPT)

        trace_path = None
        if options.enable_tracing:
            context.tracing.start(screenshots=False, snapshots=True)
            options.artifacts_dir.mkdir(parents=True, exist_ok=True)
            trace_path = options.artifacts_dir / TRACE_FILENAME

        page = context.new_page()
    except Exception:
        if browser is not None:
            try:
                browser.close()
            except Exception as exc:
                logger.debug("Browser close failed: %s", exc)
        elif context is not None:
            try:
                context.close()
            except Exception as exc:
                logger.debug("Context close failed: %s", exc)
        playwright.stop()
        raise

    return BrowserSession(
        playwright=playwright,
        context=context,
        page=page,
        browser=browser,
        owns_context=owns_context,
        trace_path=trace_path,
    )

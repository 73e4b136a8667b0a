"""Post-run hold: keep the browser open for inspection until something says stop.

The hold ends on whichever comes first: an interrupt (Ctrl+C), the operator
pressing Enter or ``q`` on an interactive terminal, or a fallback timeout when
no terminal is attached. On a POSIX terminal a single keypress is enough; the
terminal is switched to cbreak mode for the duration of the hold and restored
afterwards.
"""

from __future__ import annotations

import logging
import os
import select
import signal
import sys
import threading
from typing import Any, BinaryIO, Callable, TextIO

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

logger = logging.getLogger("flowpilot.engine.hold")

_POLL_SECONDS = 0.2
_QUIT_KEYS = (b"q", b"Q", b"\n", b"\r")


class CancellationToken:
    """Single-fire cancellation flag shared between the hold and its triggers."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str) -> bool:
        """Cancel the token. Returns False if it had already been cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        logger.debug("Hold cancelled: %s", reason)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or until ``timeout`` seconds pass.

        Polls in short slices so the main thread keeps handling signals.
        """
        if timeout is None:
            while not self._event.wait(_POLL_SECONDS):
                pass
            return True
        return self._event.wait(timeout)


def _enter_cbreak(stream: Any) -> Callable[[], None] | None:
    """Switch the terminal to single-keypress input.

    Returns a callback restoring the previous settings, or None when the
    stream is not a terminal this platform can switch.
    """
    try:
        import termios
        import tty
    except ImportError:
        return None
    try:
        fd = stream.fileno()
        saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)
    except (AttributeError, ValueError, OSError, termios.error):
        return None
    return lambda: termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _watch_keys(token: CancellationToken, stream: BinaryIO | TextIO) -> None:
    # Polls instead of blocking, so nothing is read once the hold is over
    fd = stream.fileno()
    while not token.cancelled:
        ready, _, _ = select.select([fd], [], [], _POLL_SECONDS)
        if not ready:
            continue
        try:
            key = os.read(fd, 1)
        except OSError:
            key = b""
        if key == b"":
            token.cancel("stdin closed")
            return
        if key in _QUIT_KEYS:
            token.cancel("operator input")
            return


def _watch_lines(token: CancellationToken, stream: TextIO) -> None:
    while not token.cancelled:
        line = stream.readline()
        if line == "":
            token.cancel("stdin closed")
            return
        if line.strip().lower() in ("", "q"):
            token.cancel("operator input")
            return


def hold_until_signal(
    token: CancellationToken | None = None,
    fallback_ms: int = 15000,
    stdin: TextIO | BinaryIO | None = None,
    interactive: bool | None = None,
) -> str:
    """Block until the hold is cancelled. Returns the reason it ended.

    On an interactive terminal the hold waits for Enter/``q`` or Ctrl+C with
    no time limit. Otherwise it auto-closes after ``fallback_ms``.
    """
    token = token or CancellationToken()
    stream = stdin if stdin is not None else sys.stdin
    if interactive is None:
        interactive = bool(stream is not None and stream.isatty())

    previous_handler: Any = None
    installed = threading.current_thread() is threading.main_thread()
    if installed:
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel("interrupt"))

    try:
        if interactive:
            restore = _enter_cbreak(stream)
            watcher = threading.Thread(
                target=_watch_keys if restore is not None else _watch_lines,
                args=(token, stream),
                name="flowpilot-hold-stdin",
                daemon=True,
            )
            watcher.start()
            try:
                token.wait()
            finally:
                if restore is not None:
                    watcher.join(_POLL_SECONDS * 2)
                    restore()
        elif not token.wait(fallback_ms / 1000):
            token.cancel("timeout")
    finally:
        if installed:
            signal.signal(signal.SIGINT, previous_handler)

    return token.reason or "cancelled"


def hold_for(page: Any, duration_ms: int) -> str:
    """Keep the page open for ``duration_ms``, ending early if it is closed."""
    try:
        page.wait_for_event("close", timeout=duration_ms)
    except PlaywrightTimeoutError:
        return "timeout"
    except PlaywrightError as exc:
        logger.info("Browser went away during hold: %s", exc)
        return "browser disconnected"
    return "page closed"

"""Periodic timer running its callback on a background thread."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable

from kvikpy.errors import InvalidArgumentError
from kvikpy.log import get_logger

_log = get_logger("Kvik/Timer")


def _to_seconds(interval: float | timedelta) -> float:
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds < 0:
        raise InvalidArgumentError(f"negative timer interval: {seconds}")
    return seconds


class Timer:
    """Calls ``callback`` every ``interval`` (seconds or timedelta).

    The first call happens after the first interval expires. An interval of
    zero disables periodic calls; only times set by ``set_next_exec`` fire.
    """

    def __init__(self, interval: float | timedelta, callback: Callable[[], None]) -> None:
        self._interval = _to_seconds(interval)
        self._callback = callback
        self._cond = threading.Condition()
        self._running = True
        self._next: float | None = (
            time.monotonic() + self._interval if self._interval > 0 else None
        )
        self._thread = threading.Thread(target=self._run, name="kvik-timer", daemon=True)
        self._thread.start()

    def set_next_exec(self, when: float) -> None:
        """Override the next execution time (a ``time.monotonic()`` value)."""
        with self._cond:
            self._next = when
            self._cond.notify_all()

    def stop(self) -> None:
        """Stop the timer and wait for its thread to finish."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> Timer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _wait_for_due(self) -> bool:
        with self._cond:
            while self._running:
                if self._next is None:
                    self._cond.wait()
                    continue
                remaining = self._next - time.monotonic()
                if remaining <= 0:
                    scheduled = self._next
                    self._next = scheduled + self._interval if self._interval > 0 else None
                    return True
                self._cond.wait(remaining)
            return False

    def _run(self) -> None:
        while self._wait_for_due():
            try:
                self._callback()
            except Exception:
                _log.exception("Timer callback failed")
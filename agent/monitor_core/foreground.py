"""
Foreground monitor — turns the platform usage oracle into poll observations.

The oracle answers one question: "which package was most recently brought to
the foreground within the last N seconds, and when?" It may return nothing at
all (permission revoked, transient empty reading); that is treated as "no
change", never as an error.
"""

import time
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from .config import log
from .constants import (
    FOREGROUND_WINDOW_SEC, FOREGROUND_FALLBACK_WINDOW_SEC, FOREGROUND_STICKY_SEC,
)


@dataclass(frozen=True)
class ForegroundEvent:
    package_name: str
    observed_at: float


class UsageOracle(Protocol):
    def query(self, window_sec: float, now: float) -> Optional[Tuple[str, float]]:
        """Return (package, last_used_ts) for the newest foreground app, or None."""


class ForegroundMonitor:
    """Polls the usage oracle and debounces transient empty readings."""

    def __init__(self, oracle, clock=time.time,
                 window_sec=FOREGROUND_WINDOW_SEC,
                 fallback_window_sec=FOREGROUND_FALLBACK_WINDOW_SEC,
                 sticky_sec=FOREGROUND_STICKY_SEC):
        self._oracle = oracle
        self._clock = clock
        self._window_sec = window_sec
        self._fallback_window_sec = fallback_window_sec
        self._sticky_sec = sticky_sec
        self._last_package = None

    @property
    def last_package(self):
        return self._last_package

    def _query(self, window_sec, now):
        try:
            result = self._oracle.query(window_sec, now)
        except Exception as e:
            log.warning("Usage oracle error: %s", e)
            return None
        if not result or not result[0]:
            return None
        return result

    def poll(self) -> Optional[ForegroundEvent]:
        now = self._clock()
        result = self._query(self._window_sec, now)
        package = result[0] if result else None

        # Empty short window but an app was showing: look a bit further back
        # and keep the previous app if it was used a moment ago.
        if package is None and self._last_package:
            longer = self._query(self._fallback_window_sec, now)
            if longer and longer[0] == self._last_package and (now - longer[1]) < self._sticky_sec:
                package = longer[0]

        if package is None:
            log.debug("Foreground poll: no data")
            return None

        if package != self._last_package:
            log.debug("Foreground changed: %s -> %s", self._last_package, package)
        self._last_package = package
        return ForegroundEvent(package_name=package, observed_at=now)

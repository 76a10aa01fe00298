"""
Intervention lifecycle — when to show the delay overlay, and what to record
once the user dismisses it.

The overlay itself is external: it is started through ``show_intervention``
and reports back through ``report_button_clicked``. The state here prevents
double-show and enforces the cooldown between overlays, which is tracked
separately from tap/session cooldowns.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from .config import log
from .constants import (
    INTERVENTION_COOLDOWN_SEC, REQUIRED_WATCH_SEC, INTERVENTION_TYPE, TRACKED_APPS,
)
from .events import InterventionRecord, stamp


@dataclass
class InterventionState:
    showing: bool = False
    package_name: Optional[str] = None
    shown_at: float = 0.0
    last_shown_at: Optional[float] = None

    def can_show(self, now, cooldown_sec) -> bool:
        if self.showing:
            return False
        return self.last_shown_at is None or (now - self.last_shown_at) >= cooldown_sec

    def on_shown(self, package_name, now):
        self.showing = True
        self.package_name = package_name
        self.shown_at = now
        self.last_shown_at = now

    def on_dismissed(self):
        self.showing = False
        self.package_name = None


class InterventionController:
    def __init__(self, show_intervention, intervention_apps, on_complete=None,
                 app_names=None, cooldown_sec=INTERVENTION_COOLDOWN_SEC,
                 required_watch_sec=REQUIRED_WATCH_SEC,
                 intervention_type=INTERVENTION_TYPE, tz=None):
        self._show = show_intervention
        self._targets = frozenset(intervention_apps)
        self._on_complete = on_complete
        self._app_names = dict(TRACKED_APPS if app_names is None else app_names)
        self._cooldown_sec = cooldown_sec
        self._required_watch_sec = required_watch_sec
        self._intervention_type = intervention_type
        self._tz = tz
        self._lock = threading.Lock()
        self.state = InterventionState()

    @property
    def is_showing(self):
        with self._lock:
            return self.state.showing

    def is_target(self, package_name):
        return package_name in self._targets

    def can_show(self, now):
        with self._lock:
            return self.state.can_show(now, self._cooldown_sec)

    def maybe_trigger(self, package_name, now) -> bool:
        """Show the overlay for a target app unless one is up or cooling down."""
        if package_name not in self._targets:
            return False
        with self._lock:
            if not self.state.can_show(now, self._cooldown_sec):
                return False
            self.state.on_shown(package_name, now)

        log.info("Intervention triggered for %s", package_name)
        try:
            self._show(package_name)
        except Exception as e:
            log.error("show_intervention failed for %s: %s", package_name, e, exc_info=True)
            with self._lock:
                self.state.on_dismissed()
            return False
        return True

    def dismiss(self) -> bool:
        """Clear a showing intervention without recording it (no overlay ran).

        The cooldown still counts from when it was shown.
        """
        with self._lock:
            if not self.state.showing:
                return False
            package_name = self.state.package_name
            self.state.on_dismissed()
        log.info("Intervention for %s dismissed without a result", package_name)
        return True

    def report_button_clicked(self, button_clicked, now, video_duration_sec=None,
                              required_watch_sec=None):
        """Finalize the showing intervention. Returns the record, or None if nothing was showing."""
        with self._lock:
            if not self.state.showing:
                log.warning("Button %r reported with no intervention showing", button_clicked)
                return None
            package_name = self.state.package_name
            shown_at = self.state.shown_at
            self.state.on_dismissed()

        record = InterventionRecord(
            app_name=self._app_names.get(package_name, package_name),
            intervention_type=self._intervention_type,
            started_at=stamp(shown_at, self._tz),
            ended_at=stamp(max(now, shown_at), self._tz),
            button_clicked=button_clicked,
            video_duration_sec=video_duration_sec,
            required_watch_sec=(
                self._required_watch_sec if required_watch_sec is None else required_watch_sec
            ),
        )
        log.info("Intervention finished: %s (%.1fs, %s)",
                 record.app_name, max(now - shown_at, 0.0), button_clicked)
        if self._on_complete is not None:
            self._on_complete(record)
        return record

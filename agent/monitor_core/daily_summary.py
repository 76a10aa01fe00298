"""
Daily totals per app, sent once a day as a ``daily_summary`` event.

Fed by every recorded session, tap and intervention, independently of the
EventStore (which is drained hourly).
"""

import threading
from collections import defaultdict
from datetime import datetime, timedelta

from .constants import BUTTON_CLOSE, DELAY_INTERVENTION_TYPES, DAILY_SUMMARY_HOUR, TRACKED_APPS
from .events import AppStats, DailySummary, EventType


def whole_minutes(session):
    return int(session.duration_sec // 60)


def next_run_at(now, hour=DAILY_SUMMARY_HOUR):
    """Next occurrence of ``hour``:00 strictly after ``now`` (aware or naive datetime)."""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailyStats:
    def __init__(self, app_names=None):
        self._app_names = dict(TRACKED_APPS if app_names is None else app_names)
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self):
        self._sessions = defaultdict(list)       # package -> [AppSession]
        self._taps = defaultdict(int)            # package -> count
        self._interventions = defaultdict(list)  # app name -> [InterventionRecord]

    def add(self, event):
        kind = getattr(event, "kind", None)
        with self._lock:
            if kind is EventType.APP_SESSION:
                self._sessions[event.package_name].append(event)
            elif kind is EventType.APP_TAP:
                self._taps[event.package_name] += 1
            elif kind is EventType.INTERVENTION:
                self._interventions[event.app_name].append(event)

    def reset(self):
        with self._lock:
            self._reset_locked()

    def _name(self, package_name):
        return self._app_names.get(package_name, package_name)

    def build_summary(self, day=None):
        """Summarise everything added since the last reset."""
        day = day or datetime.now().astimezone().date()
        with self._lock:
            sessions = {pkg: list(v) for pkg, v in self._sessions.items()}
            taps = dict(self._taps)
            interventions = {app: list(v) for app, v in self._interventions.items()}

        by_app = {}
        for pkg in set(sessions) | set(taps):
            name = self._name(pkg)
            entry = by_app.setdefault(name, {"minutes": 0, "sessions": 0, "taps": 0})
            entry["minutes"] += sum(whole_minutes(s) for s in sessions.get(pkg, []))
            entry["sessions"] += len(sessions.get(pkg, []))
            entry["taps"] += taps.get(pkg, 0)
        for name in interventions:
            by_app.setdefault(name, {"minutes": 0, "sessions": 0, "taps": 0})

        app_totals = {}
        for name, entry in by_app.items():
            records = interventions.get(name, [])
            app_totals[name] = AppStats(
                minutes=entry["minutes"],
                sessions=entry["sessions"],
                total_taps=entry["taps"],
                total_delays=sum(1 for r in records if r.intervention_type in DELAY_INTERVENTION_TYPES),
                total_abandonments=sum(1 for r in records if r.button_clicked == BUTTON_CLOSE),
                total_interruptions=len(records),
            )

        return DailySummary(
            date=day.isoformat(),
            total_screen_time=sum(s.minutes for s in app_totals.values()),
            app_totals=app_totals,
        )

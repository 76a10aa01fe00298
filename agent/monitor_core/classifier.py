"""
SessionClassifier — decides when a tracked app was *consciously* opened.

Per tracked package:

    IDLE ──tap──▶ TAPPED ──confirmed within window──▶ ACTIVE
      ▲              │                                  │
      └──expired─────┘◀────────foreground left──────────┘

A tap is the user-intent signal. By default it is inferred from a foreground
transition into a tracked app (subject to a per-app cooldown); an external
tap source can also call ``record_tap`` directly. A session only opens when a
tap for that package exists strictly before the observation and no more than
``tap_validity_sec`` earlier. Foreground readings without a fresh tap (app
resumed from background, launched by a notification) never open a session.

Observations arrive from one sequential poll loop, so transitions for a given
package are strictly ordered. The tap maps are also written by external tap
sources and are guarded by a lock held only for the map mutation.
"""

import enum
import threading

from .config import log
from .constants import TAP_VALIDITY_WINDOW_SEC, TAP_COOLDOWN_SEC
from .events import AppSession, AppTap, stamp


class PackageState(enum.Enum):
    IDLE = "idle"
    TAPPED = "tapped"
    ACTIVE = "active"


class SessionClassifier:
    """Tap/session state machine over foreground observations."""

    def __init__(self, tracked_apps, interventions=None, on_tap=None, on_session=None,
                 tap_validity_sec=TAP_VALIDITY_WINDOW_SEC,
                 tap_cooldown_sec=TAP_COOLDOWN_SEC,
                 infer_taps=True, tz=None):
        self._tracked = dict(tracked_apps)
        self._interventions = interventions
        self._on_tap = on_tap
        self._on_session = on_session
        self._tap_validity_sec = tap_validity_sec
        self._tap_cooldown_sec = tap_cooldown_sec
        self._infer_taps = infer_taps
        self._tz = tz

        self._lock = threading.Lock()
        self._recent_taps = {}          # package -> tapped_at
        self._last_tap_recorded = {}    # package -> last tap recording time
        self._sessions = {}             # package -> started_at
        self._last_session_end = {}     # package -> ended_at of the previous session
        self._last_package = None

    # ── Introspection ─────────────────────────────────────────

    def app_name(self, package_name):
        return self._tracked.get(package_name, package_name)

    def is_tracked(self, package_name):
        return package_name in self._tracked

    @property
    def last_package(self):
        return self._last_package

    @property
    def active_sessions(self):
        with self._lock:
            return dict(self._sessions)

    def state_of(self, package_name):
        with self._lock:
            if package_name in self._sessions:
                return PackageState.ACTIVE
            if package_name in self._recent_taps:
                return PackageState.TAPPED
        return PackageState.IDLE

    # ── Taps ──────────────────────────────────────────────────

    def record_tap(self, package_name, now) -> bool:
        """IDLE → TAPPED. Skipped inside the per-app cooldown."""
        if package_name not in self._tracked:
            return False

        with self._lock:
            last = self._last_tap_recorded.get(package_name)
            if last is not None and (now - last) < self._tap_cooldown_sec:
                log.debug("Skipped duplicate tap for %s (%.1fs since last)", package_name, now - last)
                return False
            self._recent_taps[package_name] = now
            self._last_tap_recorded[package_name] = now

        tap = AppTap(
            app_name=self.app_name(package_name),
            package_name=package_name,
            recorded_at=stamp(now, self._tz),
        )
        log.info("Recorded tap: %s", tap.app_name)
        if self._on_tap is not None:
            self._on_tap(tap)
        return True

    def purge_expired_taps(self, now):
        """TAPPED → IDLE for taps older than the validity window."""
        with self._lock:
            expired = [pkg for pkg, ts in self._recent_taps.items()
                       if (now - ts) > self._tap_validity_sec]
            for pkg in expired:
                del self._recent_taps[pkg]
        for pkg in expired:
            log.debug("Tap for %s expired without a session", pkg)
        return expired

    # ── Sessions ──────────────────────────────────────────────

    def _try_open_session(self, package_name, now):
        """TAPPED → ACTIVE when the tap is fresh and strictly precedes ``now``."""
        with self._lock:
            if package_name in self._sessions:
                return False
            tapped_at = self._recent_taps.get(package_name)
            if tapped_at is None or tapped_at >= now:
                return False
            if (now - tapped_at) > self._tap_validity_sec:
                del self._recent_taps[package_name]
                return False
            del self._recent_taps[package_name]
            started = max(now, self._last_session_end.get(package_name, now))
            self._sessions[package_name] = started

        log.info("Started conscious session for %s", package_name)
        return True

    def _close_session(self, package_name, now):
        """ACTIVE → IDLE. Recorded regardless of duration."""
        with self._lock:
            started = self._sessions.pop(package_name, None)
            if started is None:
                return None
            ended = max(now, started)
            self._last_session_end[package_name] = ended

        session = AppSession(
            app_name=self.app_name(package_name),
            package_name=package_name,
            started_at=stamp(started, self._tz),
            ended_at=stamp(ended, self._tz),
        )
        log.info("Ended conscious session for %s (%.1fs)", package_name, ended - started)
        if self._on_session is not None:
            self._on_session(session)
        return session

    def flush(self, now):
        """Close every open session (shutdown / day rollover)."""
        closed = []
        for pkg in list(self.active_sessions):
            session = self._close_session(pkg, now)
            if session is not None:
                closed.append(session)
        return closed

    # ── Poll observations ─────────────────────────────────────

    def observe(self, event):
        """Feed one foreground observation. ``None`` means no change."""
        if event is None or not event.package_name:
            return
        package_name = event.package_name
        now = event.observed_at

        self.purge_expired_taps(now)

        if package_name != self._last_package:
            for pkg in list(self.active_sessions):
                if pkg != package_name:
                    self._close_session(pkg, now)
            if self._infer_taps and package_name in self._tracked:
                self.record_tap(package_name, now)
            self._last_package = package_name

        if package_name in self._tracked:
            self._try_open_session(package_name, now)

        if self._interventions is not None:
            self._interventions.maybe_trigger(package_name, now)

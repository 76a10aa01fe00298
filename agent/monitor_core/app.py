"""
MonitorService — owns every component and the periodic tasks.

Background threads (all daemon, all sleeping on one cancel event):
  poll      — foreground poll → classifier              (every pollIntervalSec)
  batch     — device status + drain store → send_batch  (every batchIntervalSec)
  daily     — daily summary                             (at dailySummaryHour)
  replay    — offline queue replay                      (every replayIntervalSec)

Taps are sent immediately on short-lived worker threads. Every loop body is
wrapped: errors are logged and the loop carries on. stop() cancels all loops;
events still buffered in memory are dropped, the offline queue survives.
"""

import threading
import time
from datetime import datetime

from .config import log, OFFLINE_QUEUE_DIR
from .constants import MONITOR_VERSION
from .api import CollectorClient
from .classifier import SessionClassifier
from .daily_summary import DailyStats, next_run_at
from .event_store import EventStore
from .foreground import ForegroundMonitor
from .intervention import InterventionController
from .offline_queue import OfflineQueue
from .platform_usage import DesktopUsageOracle, is_system_locked
from .sync import SyncEngine
from . import network


class MonitorService:
    def __init__(self, config, oracle=None, client=None, offline_queue=None,
                 show_intervention=None, is_online=None, battery_ok=None,
                 capture_status=None, lock_check=is_system_locked,
                 clock=time.time, tz=None):
        self._config = config
        self._clock = clock
        self._tz = tz
        self._lock_check = lock_check
        self._capture_status = capture_status or network.capture_device_status

        self._cancel = threading.Event()
        self._start_lock = threading.Lock()
        self._running = False
        self._threads = []

        tracked = config["trackedApps"]
        self.store = EventStore()
        self.daily = DailyStats(tracked)
        self.client = client if client is not None else CollectorClient(config)
        self.offline_queue = (
            offline_queue if offline_queue is not None
            else OfflineQueue(OFFLINE_QUEUE_DIR, config["offlineQueueMax"])
        )

        server_url = config["serverUrl"]
        min_battery = config["minBatteryPercent"]
        self.sync = SyncEngine(
            self.client,
            self.offline_queue,
            is_online=is_online or (lambda: network.is_online(server_url)),
            battery_ok=battery_ok or (lambda: network.battery_allows_sync(min_battery)),
            chunk_size=config["chunkSize"],
            item_retries=config["itemRetries"],
            item_retry_delay_sec=config["itemRetryDelaySec"],
            cancel_event=self._cancel,
            clock=clock,
            tz=tz,
        )

        self.interventions = InterventionController(
            show_intervention or self._no_overlay,
            config["interventionApps"],
            on_complete=self.record_intervention,
            app_names=tracked,
            cooldown_sec=config["interventionCooldownSec"],
            required_watch_sec=config["requiredWatchSec"],
            tz=tz,
        )
        self.classifier = SessionClassifier(
            tracked,
            interventions=self.interventions,
            on_tap=self.record_tap,
            on_session=self.record_session,
            tap_validity_sec=config["tapValidityWindowSec"],
            tap_cooldown_sec=config["tapCooldownSec"],
            tz=tz,
        )
        self.monitor = ForegroundMonitor(
            oracle or DesktopUsageOracle(clock=clock, aliases=config.get("processAliases")),
            clock=clock,
        )

    # ─── Lifecycle ───────────────────────────────────────────

    @property
    def running(self):
        return self._running

    def start(self) -> bool:
        """Start all periodic tasks. Only one set of loops runs per service."""
        with self._start_lock:
            if self._running:
                log.info("Monitoring is already active, skipping start")
                return False
            stale = [t.name for t in self._threads if t.is_alive()]
            if stale:
                log.warning("Previous loops still running (%s), refusing to start", ", ".join(stale))
                return False
            self._running = True
            self._cancel.clear()

            cfg = self._config
            loops = [
                ("poll", cfg["pollIntervalSec"], self.poll_once, 0),
                ("batch", cfg["batchIntervalSec"], self.send_now, None),
                ("daily", self._seconds_until_summary, self.send_daily_summary, None),
                ("replay", cfg["replayIntervalSec"], self.replay_offline, 5),
            ]
            self._threads = []
            for name, interval, body, first_delay in loops:
                t = threading.Thread(
                    target=self._run_periodic,
                    args=(name, interval, body, first_delay),
                    name=f"monitor-{name}",
                    daemon=True,
                )
                t.start()
                self._threads.append(t)

        log.info(
            "v%s started (poll=%ss, batch=%ss, replay=%ss, tracked=%d apps)",
            MONITOR_VERSION, cfg["pollIntervalSec"], cfg["batchIntervalSec"],
            cfg["replayIntervalSec"], len(cfg["trackedApps"]),
        )
        return True

    def stop(self, timeout=5.0) -> bool:
        with self._start_lock:
            if not self._running:
                return False
            self._cancel.set()
            threads = list(self._threads)
            self._running = False

        for t in threads:
            t.join(timeout)
        stuck = [t.name for t in threads if t.is_alive()]
        if stuck:
            log.warning("Loops still busy after %ss: %s", timeout, ", ".join(stuck))
        dropped = len(self.store)
        if dropped:
            log.info("Dropped %d buffered events on shutdown", dropped)
        log.info("Monitoring stopped (offline queue: %d)", self.offline_queue.size())
        return True

    def wait(self, timeout=None):
        """Block until stop() is called."""
        return self._cancel.wait(timeout)

    def _run_periodic(self, name, interval, body, first_delay):
        def next_delay():
            return interval() if callable(interval) else interval

        delay = next_delay() if first_delay is None else first_delay
        log.info("%s loop started", name)
        while not self._cancel.wait(delay):
            try:
                body()
            except Exception as e:
                log.error("%s loop error: %s", name, e, exc_info=True)
            delay = next_delay()
        log.info("%s loop stopped", name)

    def _seconds_until_summary(self):
        now = datetime.fromtimestamp(self._clock()).astimezone(self._tz)
        target = next_run_at(now, self._config["dailySummaryHour"])
        return max((target - now).total_seconds(), 1.0)

    # ─── Periodic bodies ─────────────────────────────────────

    def poll_once(self):
        if self._lock_check():
            log.debug("Screen locked, skipping monitor cycle")
            return None
        event = self.monitor.poll()
        self.classifier.observe(event)
        return event

    def send_now(self) -> bool:
        """Device status snapshot + everything buffered, as one batch."""
        online = self.sync.network_available()
        status = self._capture_status(
            online, last_batch_sent=self.sync.last_batch_sent, now=self._clock(), tz=self._tz,
        )
        self.store.record(status)
        events = self.store.drain_all()
        return self.sync.send_batch(events)

    def send_daily_summary(self) -> bool:
        day = datetime.fromtimestamp(self._clock()).astimezone(self._tz).date()
        summary = self.daily.build_summary(day)
        self.daily.reset()
        log.info("Daily summary for %s: %d apps, %d min",
                 summary.date, len(summary.app_totals), summary.total_screen_time)
        return self.sync.send_one(summary)

    def replay_offline(self):
        return self.sync.replay_offline()

    # ─── Recorder callbacks ──────────────────────────────────

    def _dispatch(self, target, *args):
        threading.Thread(target=target, args=args, daemon=True).start()

    def _send_immediately(self, event):
        try:
            self.sync.send_one(event)
        except Exception as e:
            log.warning("Immediate send error: %s", e)

    def record_tap(self, tap):
        self.daily.add(tap)
        if self._config.get("immediateTaps", True):
            self._dispatch(self._send_immediately, tap)
        else:
            self.store.record(tap)

    def record_session(self, session):
        self.daily.add(session)
        self.store.record(session)

    def record_intervention(self, record):
        self.daily.add(record)
        self.store.record(record)

    def _no_overlay(self, package_name):
        """Default when no overlay UI is attached: nothing to wait for."""
        log.info("Intervention requested for %s (no overlay attached)", package_name)
        self.interventions.dismiss()

    def report_button_clicked(self, button_clicked, video_duration_sec=None,
                              required_watch_sec=None):
        """Callback for the overlay UI when the user dismisses it."""
        return self.interventions.report_button_clicked(
            button_clicked, self._clock(),
            video_duration_sec=video_duration_sec,
            required_watch_sec=required_watch_sec,
        )

    # ─── Status ──────────────────────────────────────────────

    def status(self):
        return {
            "running": self._running,
            "serverUrl": self._config["serverUrl"],
            "deviceId": self._config["deviceId"],
            "pending": self.store.peek_counts(),
            "offlineQueue": self.offline_queue.size(),
            "interventionShowing": self.interventions.is_showing,
            "activeSessions": sorted(self.classifier.active_sessions),
        }

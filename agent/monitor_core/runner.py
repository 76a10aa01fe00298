"""
Entry point, maintenance commands and auto-restart wrapper.

    monitor run                      start monitoring (default)
    monitor health                   GET /api/health and print latency
    monitor send-test                send one sample event of each kind
    monitor status                   config + offline queue size
    monitor clear-queue              delete every offline event
    monitor set-server ENV [URL]     production | staging | local | custom URL
"""

import argparse
import logging
import sys
import time

from .constants import MONITOR_VERSION, SERVER_ENVIRONMENTS, INTERVENTION_TYPE, BUTTON_SKIP
from .config import (
    log, safe_print, setup_logging, build_config, set_server_environment,
    ConfigError, OFFLINE_QUEUE_DIR,
)
from .events import AppTap, DeviceStatus, InterventionRecord, stamp
from .api import CollectorClient
from .offline_queue import OfflineQueue
from .sync import SyncEngine
from .platform_usage import ensure_single_instance
from .app import MonitorService
from . import network


def _sync_engine(config):
    client = CollectorClient(config)
    queue = OfflineQueue(OFFLINE_QUEUE_DIR, config["offlineQueueMax"])
    engine = SyncEngine(
        client, queue,
        is_online=lambda: network.is_online(config["serverUrl"]),
        chunk_size=config["chunkSize"],
        item_retries=config["itemRetries"],
        item_retry_delay_sec=config["itemRetryDelaySec"],
    )
    return engine, queue


# ─── Commands ────────────────────────────────────────────────────

def cmd_run(config):
    if not ensure_single_instance():
        safe_print("Already running. Exiting.")
        return 0

    service = MonitorService(config)
    service.start()
    safe_print("Monitoring running. Ctrl+C to stop.\n")
    try:
        service.wait()
    except KeyboardInterrupt:
        log.info("Monitor stopped by user (Ctrl+C)")
    finally:
        service.stop()
    return 0


def cmd_health(config):
    engine, _ = _sync_engine(config)
    result = engine.health_check()
    if result.healthy:
        safe_print(f"Health check PASSED — {result.server_url} ({result.latency_ms}ms): {result.message}")
        return 0
    safe_print(f"Health check FAILED — {result.server_url}: {result.message}")
    return 1


def cmd_send_test(config):
    engine, _ = _sync_engine(config)
    now = time.time()
    samples = [
        AppTap(app_name="Test App", package_name="com.test.app", recorded_at=stamp(now)),
        DeviceStatus(
            battery_level=85, is_charging=False, connection_type="wifi",
            connection_strength="strong", app_version=f"{MONITOR_VERSION}-test",
            captured_at=stamp(now),
        ),
        InterventionRecord(
            app_name="Test App", intervention_type=INTERVENTION_TYPE,
            started_at=stamp(now - 120), ended_at=stamp(now),
            button_clicked=BUTTON_SKIP, video_duration_sec=5, required_watch_sec=3,
        ),
    ]
    sent = 0
    for index, event in enumerate(samples, 1):
        ok = engine.send_one(event)
        sent += ok
        safe_print(f"  [{index}/{len(samples)}] {event.kind.value}: {'sent' if ok else 'FAILED (queued offline)'}")
    safe_print(f"Test complete: {sent}/{len(samples)} successful")
    return 0 if sent == len(samples) else 1


def cmd_status(config):
    queue = OfflineQueue(OFFLINE_QUEUE_DIR, config["offlineQueueMax"])
    safe_print(f"Server URL:      {config['serverUrl']} ({config['serverEnvironment']})")
    safe_print(f"Device ID:       {config['deviceId']}")
    safe_print(f"Offline queue:   {queue.size()} events")
    safe_print(f"Tracked apps:    {', '.join(sorted(config['trackedApps'].values()))}")
    return 0


def cmd_clear_queue(config):
    queue = OfflineQueue(OFFLINE_QUEUE_DIR, config["offlineQueueMax"])
    count = queue.clear()
    safe_print(f"Cleared {count} events from offline queue")
    return 0


def cmd_set_server(config, environment, url=None):
    try:
        new_url = set_server_environment(config, environment, url)
    except ConfigError as e:
        safe_print(f"Error: {e}")
        return 2
    safe_print(f"Server changed to {environment}: {new_url}")
    return 0


# ─── CLI ─────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(prog="monitor", description="App usage intervention monitor")
    parser.add_argument("--version", action="version", version=f"%(prog)s {MONITOR_VERSION}")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="start monitoring (default)")
    sub.add_parser("health", help="check the collector")
    sub.add_parser("send-test", help="send one sample event of each kind")
    sub.add_parser("status", help="show configuration and queue size")
    sub.add_parser("clear-queue", help="delete all offline events")
    server = sub.add_parser("set-server", help="switch collector environment")
    server.add_argument("environment", choices=sorted(SERVER_ENVIRONMENTS))
    server.add_argument("url", nargs="?")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = build_config()
    except ConfigError as e:
        log.error("Configuration error: %s", e)
        return 2

    command = args.command or "run"
    if command == "run":
        return run_with_auto_restart(config)
    if command == "health":
        return cmd_health(config)
    if command == "send-test":
        return cmd_send_test(config)
    if command == "status":
        return cmd_status(config)
    if command == "clear-queue":
        return cmd_clear_queue(config)
    if command == "set-server":
        return cmd_set_server(config, args.environment, args.url)
    return 2


def run_with_auto_restart(config):
    """
    Restart the monitor after a crash. The crash counter resets if the
    monitor ran for 2+ minutes (not a boot loop).
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            return cmd_run(config)
        except KeyboardInterrupt:
            safe_print("\nMonitor stopped by user.")
            return 0
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Monitor crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)


if __name__ == "__main__":
    sys.exit(main())

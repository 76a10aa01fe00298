"""
Paths, logging, config load/save/build, safe_print.
"""

import os
import sys
import json
import uuid
import logging
from pathlib import Path
from urllib.parse import urlparse

from . import constants


# ─── Paths ───────────────────────────────────────────────────────
# One config/state directory per user per machine. MONITOR_HOME overrides it.
_FOLDER_NAME = ".pause_monitor"

BASE_DIR = Path(os.environ.get("MONITOR_HOME") or (Path.home() / _FOLDER_NAME))

CONFIG_FILE = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "monitor.log"
OFFLINE_QUEUE_DIR = BASE_DIR / "offline_analytics"


class ConfigError(ValueError):
    """Raised when the configuration cannot be used (e.g. bad server URL)."""


# ─── Safe print (no crash without a console) ─────────────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except (OSError, ValueError):
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("monitor")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    """File + console logging. The log file is truncated past 1 MB."""
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        if log_file.exists() and log_file.stat().st_size > 1_000_000:
            log_file.write_text("")
    except OSError:
        pass

    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    log.addHandler(console_handler)

    log.setLevel(level)
    log.propagate = False
    return log


# ─── Config Management ──────────────────────────────────────────

def default_config():
    """Config dict populated from constants.py."""
    return {
        "serverUrl": constants.DEFAULT_PRODUCTION_URL,
        "serverEnvironment": "production",
        "deviceId": None,
        "userId": None,
        "trackedApps": dict(constants.TRACKED_APPS),
        "interventionApps": list(constants.INTERVENTION_APPS),
        "pollIntervalSec": constants.POLL_INTERVAL_SEC,
        "batchIntervalSec": constants.BATCH_INTERVAL_SEC,
        "replayIntervalSec": constants.REPLAY_INTERVAL_SEC,
        "chunkSize": constants.CHUNK_SIZE,
        "itemRetries": constants.ITEM_RETRIES,
        "itemRetryDelaySec": constants.ITEM_RETRY_DELAY_SEC,
        "minBatteryPercent": constants.MIN_BATTERY_PERCENT,
        "offlineQueueMax": constants.OFFLINE_QUEUE_MAX,
        "tapValidityWindowSec": constants.TAP_VALIDITY_WINDOW_SEC,
        "tapCooldownSec": constants.TAP_COOLDOWN_SEC,
        "interventionCooldownSec": constants.INTERVENTION_COOLDOWN_SEC,
        "requiredWatchSec": constants.REQUIRED_WATCH_SEC,
        "dailySummaryHour": constants.DAILY_SUMMARY_HOUR,
        "immediateTaps": True,
        "processAliases": dict(constants.DESKTOP_PROCESS_ALIASES),
    }


def load_config(path=CONFIG_FILE):
    """Load config from disk. Returns dict or None."""
    path = Path(path)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Could not read config %s: %s", path, e)
            return None
    return None


def save_config(config, path=CONFIG_FILE):
    """Save config dict to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)


def validate_server_url(url):
    """Return the URL without a trailing slash, or raise ConfigError."""
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Invalid server URL: {url!r}")
    return url.rstrip("/")


def build_config(path=CONFIG_FILE, environ=None):
    """
    Merge defaults, config.json and environment overrides.
    Generates and persists a device id on first run.
    """
    environ = os.environ if environ is None else environ
    config = default_config()
    stored = load_config(path) or {}
    config.update(stored)

    env_url = environ.get("MONITOR_SERVER_URL")
    if env_url:
        config["serverUrl"] = env_url
        config["serverEnvironment"] = "custom"
    if environ.get("MONITOR_USER_ID"):
        config["userId"] = environ["MONITOR_USER_ID"]

    config["serverUrl"] = validate_server_url(config["serverUrl"])
    config["pollIntervalSec"] = min(
        max(float(config["pollIntervalSec"]), constants.POLL_INTERVAL_MIN_SEC),
        constants.POLL_INTERVAL_MAX_SEC,
    )
    if config["pollIntervalSec"] >= float(config["tapValidityWindowSec"]):
        raise ConfigError(
            f"pollIntervalSec ({config['pollIntervalSec']}) must be below "
            f"tapValidityWindowSec ({config['tapValidityWindowSec']}), or no session can open"
        )

    if not config.get("deviceId"):
        config["deviceId"] = f"device_{uuid.uuid4().hex}"
        stored["deviceId"] = config["deviceId"]
        try:
            save_config(stored, path)
        except OSError as e:
            log.warning("Could not persist device id: %s", e)
    return config


def set_server_environment(config, environment, custom_url=None, path=CONFIG_FILE):
    """Switch server environment and persist the choice. Returns the new URL."""
    if environment not in constants.SERVER_ENVIRONMENTS:
        raise ConfigError(f"Unknown server environment: {environment!r}")

    if environment == "custom":
        if not custom_url:
            raise ConfigError("A custom environment needs a server URL")
        url = validate_server_url(custom_url)
    else:
        url = constants.SERVER_ENVIRONMENTS[environment]

    config["serverEnvironment"] = environment
    config["serverUrl"] = url

    stored = load_config(path) or {}
    stored.update({"serverEnvironment": environment, "serverUrl": url})
    save_config(stored, path)
    log.info("Server changed to %s (%s)", environment, url)
    return url

"""
Network and device utilities — connectivity check, battery, device status.

Connectivity: socket-level check against the collector host (works on any
interface type). Battery and interface data come from psutil; machines
without a battery report 100% and charging.
"""

import socket
import time
from urllib.parse import urlparse

import psutil

from .config import log
from .constants import CONNECTIVITY_TIMEOUT, MONITOR_VERSION
from .events import DeviceStatus, stamp


# ─── Connectivity check (network-interface agnostic) ─────────────

def is_online(server_url, timeout=CONNECTIVITY_TIMEOUT):
    """True when a TCP connection to the collector host can be opened."""
    parsed = urlparse(server_url)
    host = parsed.hostname
    if not host:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.close()
        return True
    except OSError:
        return False


# ─── Battery ─────────────────────────────────────────────────────

def battery_status():
    """Return (percent, charging). No battery → (100, True)."""
    try:
        battery = psutil.sensors_battery()
    except (AttributeError, NotImplementedError, OSError) as e:
        log.debug("Battery sensor unavailable: %s", e)
        battery = None
    if battery is None:
        return 100, True
    return int(round(battery.percent)), bool(battery.power_plugged)


def battery_allows_sync(min_percent):
    """Offline replay is skipped at or below ``min_percent`` unless charging."""
    percent, charging = battery_status()
    return charging or percent > min_percent


# ─── Connection type ─────────────────────────────────────────────

_WIFI_PREFIXES = ("wl", "wi-fi", "wifi", "wlan", "airport")
_CELLULAR_PREFIXES = ("wwan", "rmnet", "ppp", "ccmni", "cellular", "mobile")
_ETHERNET_PREFIXES = ("eth", "en", "ethernet", "lan")


def connection_type():
    """Best guess at the active link: wifi, cellular, ethernet or none."""
    try:
        stats = psutil.net_if_stats()
    except OSError as e:
        log.debug("Interface stats unavailable: %s", e)
        return "none"

    found = set()
    for name, st in stats.items():
        lowered = name.lower()
        if not st.isup or lowered.startswith("lo") or "loopback" in lowered:
            continue
        if lowered.startswith(_WIFI_PREFIXES):
            found.add("wifi")
        elif lowered.startswith(_CELLULAR_PREFIXES):
            found.add("cellular")
        elif lowered.startswith(_ETHERNET_PREFIXES):
            found.add("ethernet")

    for kind in ("wifi", "ethernet", "cellular"):
        if kind in found:
            return kind
    return "none"


# ─── Device status snapshot ──────────────────────────────────────

def capture_device_status(online, last_batch_sent=None, now=None, tz=None):
    """One DeviceStatus per sync cycle."""
    now = time.time() if now is None else now
    percent, charging = battery_status()
    return DeviceStatus(
        battery_level=percent,
        is_charging=charging,
        connection_type=connection_type() if online else "none",
        connection_strength="strong" if online else "none",
        app_version=MONITOR_VERSION,
        captured_at=stamp(now, tz),
        last_batch_sent=last_batch_sent,
    )

"""
Constants, thresholds, tracked apps and server environments.
"""

MONITOR_VERSION = "1.3.0"

# ─── Foreground polling ──────────────────────────────────────────
POLL_INTERVAL_SEC = 2          # Must stay below TAP_VALIDITY_WINDOW_SEC; 1s..10s allowed
POLL_INTERVAL_MIN_SEC = 1
POLL_INTERVAL_MAX_SEC = 10
FOREGROUND_WINDOW_SEC = 5      # Trailing window for "most recent foreground app"
FOREGROUND_FALLBACK_WINDOW_SEC = 10
FOREGROUND_STICKY_SEC = 3      # Previous app kept if last used < 3s ago

# ─── Classifier ──────────────────────────────────────────────────
TAP_VALIDITY_WINDOW_SEC = 5.0  # Tap must precede the session open by <= 5s
TAP_COOLDOWN_SEC = 3.0         # Min gap between tap recordings for the same app
INTERVENTION_COOLDOWN_SEC = 15.0
REQUIRED_WATCH_SEC = 10
INTERVENTION_TYPE = "video_delay"

# Button labels reported by the overlay
BUTTON_SKIP = "Skip to app"
BUTTON_CLOSE = "Close app"
BUTTON_VIDEO_COMPLETED = "Video completed"
BUTTON_VIDEO_ERROR = "Video error"

DELAY_INTERVENTION_TYPES = frozenset({"delay", "video_delay"})

# package name -> display name
TRACKED_APPS = {
    "com.instagram.android": "Instagram",
    "com.facebook.katana": "Facebook",
    "com.google.android.youtube": "YouTube",
}
INTERVENTION_APPS = ("com.instagram.android",)

# Desktop process name (lowercase) -> tracked package id
DESKTOP_PROCESS_ALIASES = {
    "instagram.exe": "com.instagram.android",
    "facebook.exe": "com.facebook.katana",
    "youtube.exe": "com.google.android.youtube",
}

# ─── Sync ────────────────────────────────────────────────────────
BATCH_INTERVAL_SEC = 3600      # Hourly device status + batch send
REPLAY_INTERVAL_SEC = 60       # Offline queue replay check
DAILY_SUMMARY_HOUR = 4         # Local time
CHUNK_SIZE = 10
ITEM_RETRIES = 3
ITEM_RETRY_DELAY_SEC = 5
REPLAY_MAX_ITEMS = 50
REPLAY_ITEM_PAUSE_SEC = 0.5
MIN_BATTERY_PERCENT = 20
OFFLINE_QUEUE_MAX = 5000
API_TIMEOUT = 30
CONNECTIVITY_TIMEOUT = 4

# ─── Server environments ─────────────────────────────────────────
DEFAULT_PRODUCTION_URL = "http://54.149.247.183:8080"
DEFAULT_STAGING_URL = "http://54.149.247.183:8080"
DEFAULT_LOCAL_URL = "http://localhost:8080"

SERVER_ENVIRONMENTS = {
    "production": DEFAULT_PRODUCTION_URL,
    "staging": DEFAULT_STAGING_URL,
    "local": DEFAULT_LOCAL_URL,
    "custom": "",
}

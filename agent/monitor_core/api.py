"""
Collector API calls — health, single item, batch.

Blocking calls, made from worker/periodic threads only. None of them raise:
network errors and bad responses come back as False (or an unhealthy
HealthStatus) and are logged. Server rejections (4xx, success:false) are
logged at error level so they stand out from transient failures.
"""

import time
from dataclasses import dataclass
from datetime import datetime

import requests

from .config import log
from .constants import API_TIMEOUT
from . import http_client


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    latency_ms: int
    message: str
    server_url: str


class CollectorClient:
    """Thin wrapper over the collector's three endpoints."""

    def __init__(self, config, session=None, timeout=API_TIMEOUT):
        self.server_url = config["serverUrl"].rstrip("/")
        self.device_id = config["deviceId"]
        self.user_id = config.get("userId")
        self._timeout = timeout
        self.http = session if session is not None else http_client.create_session(self.device_id)

    def _url(self, path):
        return f"{self.server_url}/api/{path}"

    def reset(self):
        """Recreate the HTTP session after repeated errors."""
        self.http = http_client.reset_session(self.http, self.device_id)

    def _interpret(self, resp, what) -> bool:
        status = resp.status_code
        try:
            body = resp.json()
        except ValueError:
            body = None

        if 200 <= status < 300:
            if isinstance(body, dict) and body.get("success") is True:
                return True
            if isinstance(body, dict):
                log.error("%s rejected by server: %s", what, body.get("message", "success=false"))
            else:
                log.warning("%s got a malformed response (HTTP %d)", what, status)
            return False

        message = body.get("message", "") if isinstance(body, dict) else resp.text[:200]
        if 400 <= status < 500:
            log.error("%s rejected: HTTP %d — %s", what, status, message)
        else:
            log.warning("%s failed: HTTP %d — %s", what, status, message)
        return False

    def post_item(self, payload) -> bool:
        """POST /api/analytics/data with one wire-format event."""
        what = f"Send {payload.get('eventType', 'event')}"
        try:
            resp = self.http.post(
                self._url("analytics/data"),
                json=payload,
                headers={"X-Device-ID": self.device_id},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            log.warning("%s network error: %s", what, e)
            return False
        ok = self._interpret(resp, what)
        if ok:
            log.debug("%s OK", what)
        return ok

    def post_batch(self, payloads) -> bool:
        """POST /api/analytics/batch. One pass/fail for the whole batch."""
        body = {
            "deviceId": self.device_id,
            "data": list(payloads),
            "timestamp": datetime.now().astimezone().isoformat(),
        }
        if self.user_id:
            body["userId"] = self.user_id

        what = f"Batch of {len(body['data'])}"
        try:
            resp = self.http.post(
                self._url("analytics/batch"),
                json=body,
                headers={"X-Device-ID": self.device_id},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            log.warning("%s network error: %s", what, e)
            return False
        ok = self._interpret(resp, what)
        if ok:
            log.info("%s items sent OK", what)
        return ok

    def get_health(self) -> HealthStatus:
        """GET /api/health, timing the round trip."""
        started = time.monotonic()
        try:
            resp = self.http.get(self._url("health"), timeout=self._timeout)
        except requests.RequestException as e:
            latency = int((time.monotonic() - started) * 1000)
            log.warning("Health check network error: %s", e)
            return HealthStatus(False, latency, f"Network error: {e}", self.server_url)

        latency = int((time.monotonic() - started) * 1000)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        healthy = resp.status_code == 200 and body.get("success") is True
        message = body.get("message") or f"HTTP {resp.status_code}"
        if healthy:
            log.info("Health check OK (%dms): %s", latency, message)
        else:
            log.warning("Health check failed (%dms): %s", latency, message)
        return HealthStatus(healthy, latency, message, self.server_url)

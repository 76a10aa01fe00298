"""
SyncEngine — batching, retry and offline fallback for telemetry delivery.

send_batch:
  1. No network → every event goes to the offline queue, result False.
  2. Split into chunks (default 10) and POST each chunk to /analytics/batch.
  3. A failed chunk falls back to per-item POSTs, each retried a bounded
     number of times with a fixed delay, so one poison record cannot hold
     back the rest of its chunk.
  4. Items still undelivered are persisted offline (rejections included:
     data is kept at the cost of possible duplicates on replay).
  5. True only if every chunk was delivered, by batch or by fallback.

Malformed events (SerializationError) are logged and dropped; they are the
only events intentionally discarded.

Retry delays wait on the cancel event, so stop() interrupts them; anything
not yet sent at that point is queued offline.
"""

import threading
import time

from .config import log
from .constants import (
    CHUNK_SIZE, ITEM_RETRIES, ITEM_RETRY_DELAY_SEC, REPLAY_ITEM_PAUSE_SEC, REPLAY_MAX_ITEMS,
)
from .events import SerializationError, stamp, to_wire


def chunked(items, size):
    """Split a list into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncEngine:
    def __init__(self, client, offline_queue, is_online, battery_ok=None,
                 chunk_size=CHUNK_SIZE, item_retries=ITEM_RETRIES,
                 item_retry_delay_sec=ITEM_RETRY_DELAY_SEC,
                 replay_pause_sec=REPLAY_ITEM_PAUSE_SEC,
                 cancel_event=None, clock=time.time, tz=None):
        self._client = client
        self._offline = offline_queue
        self._is_online = is_online
        self._battery_ok = battery_ok
        self._chunk_size = chunk_size
        self._item_retries = max(1, item_retries)
        self._item_retry_delay_sec = item_retry_delay_sec
        self._replay_pause_sec = replay_pause_sec
        self._cancel = cancel_event if cancel_event is not None else threading.Event()
        self._clock = clock
        self._tz = tz
        self.last_batch_sent = None

    @property
    def offline_queue(self):
        return self._offline

    # ── Helpers ───────────────────────────────────────────────

    def network_available(self) -> bool:
        try:
            return bool(self._is_online())
        except Exception as e:
            log.warning("Network check failed: %s", e)
            return False

    def _encode(self, event):
        try:
            return to_wire(event)
        except SerializationError as e:
            log.error("Dropping malformed %s: %s", type(event).__name__, e)
            return None

    def _queue_offline(self, payload):
        try:
            self._offline.enqueue_payload(payload)
        except OSError as e:
            log.error("Could not persist %s offline: %s", payload.get("eventType"), e)

    def _post_with_retry(self, payload) -> bool:
        for attempt in range(1, self._item_retries + 1):
            if self._cancel.is_set():
                return False
            if self._client.post_item(payload):
                return True
            if attempt < self._item_retries:
                log.info("Retrying %s in %ss (attempt %d/%d)",
                         payload.get("eventType"), self._item_retry_delay_sec,
                         attempt + 1, self._item_retries)
                if self._cancel.wait(self._item_retry_delay_sec):
                    log.info("Retry of %s cancelled", payload.get("eventType"))
                    return False
        return False

    # ── Delivery ──────────────────────────────────────────────

    def send_one(self, event) -> bool:
        """Deliver a single event now; offline queue on failure."""
        payload = self._encode(event)
        if payload is None:
            return False

        if not self.network_available():
            log.info("No network, queuing %s offline", payload["eventType"])
            self._queue_offline(payload)
            return False

        if self._post_with_retry(payload):
            return True

        log.warning("Failed to send %s after %d attempts — queued offline",
                    payload["eventType"], self._item_retries)
        self._queue_offline(payload)
        return False

    def send_batch(self, events) -> bool:
        payloads = [p for p in (self._encode(e) for e in events) if p is not None]
        if not payloads:
            return True

        if not self.network_available():
            log.info("No network for batch, queuing %d events offline", len(payloads))
            for payload in payloads:
                self._queue_offline(payload)
            return False

        chunks = chunked(payloads, self._chunk_size)
        all_ok = True
        for index, chunk in enumerate(chunks, 1):
            if self._cancel.is_set():
                log.info("Sync cancelled — queuing %d remaining chunk(s) offline",
                         len(chunks) - index + 1)
                for payload in chunk:
                    self._queue_offline(payload)
                all_ok = False
                continue

            if self._client.post_batch(chunk):
                continue

            log.warning("Chunk %d/%d failed — falling back to per-item delivery",
                        index, len(chunks))
            failed = 0
            for payload in chunk:
                if not self._post_with_retry(payload):
                    self._queue_offline(payload)
                    failed += 1
            if failed:
                all_ok = False
                log.warning("Chunk %d/%d: %d of %d items queued offline",
                            index, len(chunks), failed, len(chunk))
            else:
                log.info("Chunk %d/%d recovered via per-item delivery", index, len(chunks))

        if all_ok:
            self.last_batch_sent = stamp(self._clock(), self._tz)
        log.info("Batch sync %s (%d events, %d chunks)",
                 "OK" if all_ok else "incomplete", len(payloads), len(chunks))
        return all_ok

    def health_check(self):
        return self._client.get_health()

    # ── Offline replay ────────────────────────────────────────

    def replay_conditions_met(self) -> bool:
        if not self.network_available():
            return False
        if self._battery_ok is not None:
            try:
                return bool(self._battery_ok())
            except Exception as e:
                log.warning("Battery check failed: %s", e)
                return False
        return True

    def replay_offline(self, max_items=REPLAY_MAX_ITEMS, force=False):
        """
        Replay up to ``max_items`` queued events, one POST each.
        Skipped silently when there is no network or the battery is low.
        Returns (delivered, remaining).
        """
        if self._offline.size() == 0:
            return 0, 0
        if not force and not self.replay_conditions_met():
            log.debug("Offline replay skipped (network/battery)")
            return 0, self._offline.size()

        entries = self._offline.drain(max_items)
        delivered = 0
        failed = []
        for i, entry in enumerate(entries):
            if self._cancel.is_set():
                failed.extend(entries[i:])
                break
            if self._client.post_item(entry.payload):
                self._offline.ack([entry])
                delivered += 1
            else:
                failed.append(entry)
            if i + 1 < len(entries) and self._replay_pause_sec:
                self._cancel.wait(self._replay_pause_sec)

        self._offline.requeue(failed)
        remaining = self._offline.size()
        if delivered or failed:
            log.info("Offline replay: %d delivered, %d still queued", delivered, remaining)
        return delivered, remaining

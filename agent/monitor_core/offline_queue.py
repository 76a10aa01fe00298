"""
OfflineQueue — durable overflow for telemetry that could not be delivered.

One JSON file per event (wire format) in a directory, written atomically
(temp file + rename) so a crash never leaves half a record. Files are named
by creation time, so reloading after a restart preserves order.

Replay protocol:
    entries = queue.drain(50)    # entries go in-flight, files stay on disk
    ...send...
    queue.ack(sent)              # delete files
    queue.requeue(failed)        # back to the head for the next cycle

A crash between send and ack means the event is sent again after restart
(at-least-once delivery). Above ``max_entries`` the oldest queued events are
evicted.
"""

import itertools
import json
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from .config import log
from .constants import OFFLINE_QUEUE_MAX
from .events import from_wire, to_wire


@dataclass(frozen=True)
class QueuedEvent:
    entry_id: str
    payload: dict

    @property
    def event_type(self):
        return self.payload.get("eventType", "unknown")

    @property
    def event(self):
        """Decoded event (raises SerializationError for unknown payloads)."""
        return from_wire(self.payload)


class OfflineQueue:
    def __init__(self, directory, max_entries=OFFLINE_QUEUE_MAX):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._pending = deque()
        self._in_flight = {}
        self._load()

    @property
    def directory(self):
        return self._dir

    # ── Disk helpers ──────────────────────────────────────────

    def _path(self, entry_id):
        return self._dir / f"{entry_id}.json"

    def _unlink(self, entry_id):
        try:
            self._path(entry_id).unlink(missing_ok=True)
        except OSError as e:
            log.warning("Could not delete offline entry %s: %s", entry_id, e)

    def _load(self):
        for tmp in self._dir.glob("*.tmp"):
            tmp.unlink(missing_ok=True)

        loaded = 0
        for path in sorted(self._dir.glob("*.json")):
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
                if not isinstance(payload, dict) or "eventType" not in payload:
                    raise ValueError("not an event object")
            except (OSError, ValueError) as e:
                log.warning("Removing unreadable offline file %s: %s", path.name, e)
                path.unlink(missing_ok=True)
                continue
            self._pending.append(QueuedEvent(path.stem, payload))
            loaded += 1

        if loaded:
            log.info("Loaded %d queued events from %s", loaded, self._dir)

    # ── Public API ────────────────────────────────────────────

    def enqueue(self, event):
        """Persist one event. Raises SerializationError for malformed events."""
        return self.enqueue_payload(to_wire(event))

    def enqueue_payload(self, payload):
        with self._lock:
            entry_id = f"{time.time_ns():020d}_{next(self._seq):06d}_{payload.get('eventType', 'event')}"
            path = self._path(entry_id)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(payload), encoding="utf-8")
            os.replace(tmp, path)
            entry = QueuedEvent(entry_id, payload)
            self._pending.append(entry)

            evicted = []
            while self._pending and (len(self._pending) + len(self._in_flight)) > self._max_entries:
                oldest = self._pending.popleft()
                self._unlink(oldest.entry_id)
                evicted.append(oldest)

        log.debug("Queued %s offline (%s)", entry.event_type, entry_id)
        if evicted:
            log.warning("Offline queue full (%d) — evicted %d oldest events",
                        self._max_entries, len(evicted))
        return entry

    def size(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._in_flight)

    def __len__(self):
        return self.size()

    def drain(self, max_items):
        """Take up to ``max_items`` oldest entries for replay."""
        with self._lock:
            batch = []
            while self._pending and len(batch) < max_items:
                entry = self._pending.popleft()
                self._in_flight[entry.entry_id] = entry
                batch.append(entry)
        return batch

    def ack(self, entries):
        """Delivered: remove from disk."""
        with self._lock:
            for entry in entries:
                self._in_flight.pop(entry.entry_id, None)
                self._unlink(entry.entry_id)

    def requeue(self, entries):
        """Not delivered: back to the head of the queue, order kept."""
        with self._lock:
            for entry in reversed(list(entries)):
                if self._in_flight.pop(entry.entry_id, None) is not None:
                    self._pending.appendleft(entry)

    def clear(self) -> int:
        with self._lock:
            entries = list(self._pending) + list(self._in_flight.values())
            self._pending.clear()
            self._in_flight.clear()
            for entry in entries:
                self._unlink(entry.entry_id)
        log.info("Cleared %d events from offline queue", len(entries))
        return len(entries)

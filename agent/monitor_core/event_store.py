"""
EventStore — in-memory buffer of telemetry awaiting the next batch send.

Many producers (classifier callbacks, intervention completion) call
``record``; only the sync loop calls ``drain_all``. The drain swaps the whole
map under the lock, so an event is either drained or retained, never both.
Nothing here touches the disk: whatever is buffered at shutdown is lost.
"""

import threading
from collections import defaultdict

from .config import log
from .events import EventType

_STORED_KINDS = (
    EventType.APP_SESSION,
    EventType.APP_TAP,
    EventType.INTERVENTION,
    EventType.DEVICE_STATUS,
)


def _key_for(event):
    if event.kind in (EventType.APP_SESSION, EventType.APP_TAP):
        return event.package_name
    if event.kind is EventType.INTERVENTION:
        return event.app_name
    return "device"


def _empty():
    return {kind: defaultdict(list) for kind in _STORED_KINDS}


class EventStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._events = _empty()

    def record(self, event):
        kind = getattr(event, "kind", None)
        if kind not in self._events:
            raise TypeError(f"EventStore does not buffer {type(event).__name__}")
        key = _key_for(event)
        with self._lock:
            self._events[kind][key].append(event)
        log.debug("Buffered %s for %s", kind.value, key)

    def drain_all(self):
        """Take every pending event, leaving the store empty."""
        with self._lock:
            drained, self._events = self._events, _empty()
        events = []
        for kind in _STORED_KINDS:
            for bucket in drained[kind].values():
                events.extend(bucket)
        return events

    def peek_counts(self):
        with self._lock:
            counts = {kind: sum(len(b) for b in self._events[kind].values())
                      for kind in _STORED_KINDS}
        return {
            "sessions": counts[EventType.APP_SESSION],
            "taps": counts[EventType.APP_TAP],
            "interventions": counts[EventType.INTERVENTION],
            "device_status": counts[EventType.DEVICE_STATUS],
        }

    def __len__(self):
        return sum(self.peek_counts().values())

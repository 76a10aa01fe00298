import threading

import pytest

from monitor_core.event_store import EventStore
from monitor_core.events import AppSession, AppTap, DailySummary, DeviceStatus, stamp

from conftest import TZ, BASE_TS, INSTAGRAM, YOUTUBE


def _tap(i, package=INSTAGRAM):
    return AppTap("Instagram", package, stamp(BASE_TS + i, TZ))


class TestEventStore:
    def test_drain_returns_everything_and_empties(self):
        store = EventStore()
        store.record(_tap(0))
        store.record(_tap(1, YOUTUBE))
        store.record(AppSession("Instagram", INSTAGRAM, stamp(BASE_TS, TZ), stamp(BASE_TS + 5, TZ)))
        store.record(DeviceStatus(80, False, "wifi", "strong", "1.3.0", stamp(BASE_TS, TZ)))

        assert store.peek_counts() == {
            "sessions": 1, "taps": 2, "interventions": 0, "device_status": 1,
        }
        events = store.drain_all()

        assert len(events) == 4
        assert len(store) == 0
        assert store.drain_all() == []

    def test_daily_summary_is_not_buffered(self):
        with pytest.raises(TypeError):
            EventStore().record(DailySummary("2026-10-17", 0))

    def test_concurrent_record_and_drain_lose_nothing(self):
        """Events are either drained or retained, never lost or duplicated."""
        store = EventStore()
        drained = []
        done = threading.Event()

        def producer(offset):
            for i in range(250):
                store.record(_tap(offset * 1000 + i))

        def consumer():
            while not done.is_set():
                drained.extend(store.drain_all())

        drainer = threading.Thread(target=consumer)
        drainer.start()
        producers = [threading.Thread(target=producer, args=(n,)) for n in range(8)]
        for t in producers:
            t.start()
        for t in producers:
            t.join()
        done.set()
        drainer.join()
        drained.extend(store.drain_all())

        assert len(drained) == 2000
        assert len({t.recorded_at for t in drained}) == 2000

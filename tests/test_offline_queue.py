from monitor_core.events import AppTap, AppSession, stamp
from monitor_core.offline_queue import OfflineQueue

from conftest import TZ, BASE_TS, INSTAGRAM


def _tap(i):
    return AppTap("Instagram", INSTAGRAM, stamp(BASE_TS + i, TZ))


def _json_files(queue):
    return sorted(queue.directory.glob("*.json"))


class TestPersistence:
    def test_events_survive_restart_in_order(self, tmp_path):
        queue = OfflineQueue(tmp_path / "q")
        queue.enqueue(_tap(0))
        queue.enqueue(AppSession("Instagram", INSTAGRAM, stamp(BASE_TS, TZ), stamp(BASE_TS + 9, TZ)))
        queue.enqueue(_tap(2))

        reloaded = OfflineQueue(tmp_path / "q")

        assert reloaded.size() == 3
        entries = reloaded.drain(10)
        assert [e.event_type for e in entries] == ["app_tap", "app_session", "app_tap"]
        assert entries[0].event == _tap(0)

    def test_unreadable_files_are_discarded_on_load(self, tmp_path):
        directory = tmp_path / "q"
        queue = OfflineQueue(directory)
        queue.enqueue(_tap(0))
        (directory / "00000000000000000001_broken.json").write_text("{not json")
        (directory / "00000000000000000002_list.json").write_text("[1, 2]")
        (directory / "leftover.tmp").write_text("{}")

        reloaded = OfflineQueue(directory)

        assert reloaded.size() == 1
        assert len(list(directory.iterdir())) == 1


class TestReplayProtocol:
    def test_drain_ack_requeue(self, offline_queue):
        for i in range(4):
            offline_queue.enqueue(_tap(i))

        first, second = offline_queue.drain(2)
        # In-flight entries still count towards size
        assert offline_queue.size() == 4

        offline_queue.ack([first])
        offline_queue.requeue([second])

        assert offline_queue.size() == 3
        assert len(_json_files(offline_queue)) == 3
        assert offline_queue.drain(10)[0].entry_id == second.entry_id

    def test_clear_removes_everything(self, offline_queue):
        for i in range(3):
            offline_queue.enqueue(_tap(i))
        offline_queue.drain(1)

        assert offline_queue.clear() == 3
        assert offline_queue.size() == 0
        assert _json_files(offline_queue) == []


def test_oldest_entries_evicted_when_full(tmp_path):
    queue = OfflineQueue(tmp_path / "q", max_entries=3)
    for i in range(5):
        queue.enqueue(_tap(i))

    assert queue.size() == 3
    assert len(_json_files(queue)) == 3
    assert [e.event for e in queue.drain(10)] == [_tap(2), _tap(3), _tap(4)]

from unittest.mock import Mock

import pytest

from monitor_core.app import MonitorService
from monitor_core.classifier import PackageState
from monitor_core.constants import BUTTON_SKIP, POLL_INTERVAL_SEC
from monitor_core.events import AppSession, AppTap, DeviceStatus, stamp

from conftest import TZ, BASE_TS, INSTAGRAM, LAUNCHER, ScriptedOracle


def _status(online, last_batch_sent=None, now=None, tz=None):
    return DeviceStatus(90, True, "wifi" if online else "none", "strong", "1.3.0",
                        captured_at=stamp(now, tz), last_batch_sent=last_batch_sent)


@pytest.fixture
def overlay():
    return Mock()


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def service(config, oracle, client, offline_queue, overlay, clock):
    config["immediateTaps"] = False
    return MonitorService(
        config,
        oracle=oracle,
        client=client,
        offline_queue=offline_queue,
        show_intervention=overlay,
        is_online=lambda: True,
        battery_ok=lambda: True,
        capture_status=_status,
        lock_check=lambda: False,
        clock=clock,
        tz=TZ,
    )


class TestLifecycle:
    def test_start_is_guarded(self, service):
        try:
            assert service.start() is True
            assert service.running
            assert service.start() is False
        finally:
            assert service.stop(timeout=2) is True
        assert not service.running
        assert service.stop() is False

    def test_can_restart_after_stop(self, service):
        service.start()
        service.stop(timeout=2)

        assert service.start() is True
        service.stop(timeout=2)

    def test_wait_returns_after_stop(self, service):
        service.start()
        service.stop(timeout=2)
        assert service.wait(timeout=0.1) is True

    def test_no_restart_while_old_loops_alive(self, service):
        """A loop stuck in a slow call must not run twice after a restart."""
        busy = Mock()
        busy.name = "monitor-batch"
        busy.is_alive.return_value = True
        service._threads = [busy]

        assert service.start() is False
        assert not service.running


class TestPollCycle:
    def test_session_opens_at_default_poll_interval(self, service, oracle, clock):
        step = POLL_INTERVAL_SEC + 0.01
        oracle.results = [(INSTAGRAM, clock.now), (INSTAGRAM, clock.now + step)]

        service.poll_once()
        clock.advance(step)
        service.poll_once()

        assert service.classifier.state_of(INSTAGRAM) is PackageState.ACTIVE

    def test_tap_session_and_intervention_flow(self, service, oracle, clock, overlay):
        oracle.results = [
            (INSTAGRAM, clock.now),
            (INSTAGRAM, clock.now + 2),
            (LAUNCHER, clock.now + 62),
        ]

        service.poll_once()
        clock.advance(2)
        service.poll_once()
        clock.advance(60)
        service.poll_once()

        overlay.assert_called_once_with(INSTAGRAM)
        assert service.store.peek_counts()["taps"] == 1
        assert service.store.peek_counts()["sessions"] == 1

        record = service.report_button_clicked(BUTTON_SKIP, video_duration_sec=30)
        assert record.app_name == "Instagram"
        assert service.store.peek_counts()["interventions"] == 1

    def test_retrigger_without_overlay(self, config, oracle, client, offline_queue, clock):
        service = MonitorService(config, oracle=oracle, client=client, offline_queue=offline_queue,
                                 lock_check=lambda: False, clock=clock, tz=TZ)
        interventions = service.interventions

        assert interventions.maybe_trigger(INSTAGRAM, BASE_TS) is True
        assert not interventions.is_showing
        assert interventions.maybe_trigger(INSTAGRAM, BASE_TS + 10) is False
        assert interventions.maybe_trigger(INSTAGRAM, BASE_TS + 16) is True
        assert service.store.peek_counts()["interventions"] == 0

    def test_locked_screen_skips_poll(self, config, oracle, client, offline_queue, clock):
        service = MonitorService(config, oracle=oracle, client=client, offline_queue=offline_queue,
                                 lock_check=lambda: True, clock=clock, tz=TZ)
        oracle.results = [(INSTAGRAM, clock.now)]

        assert service.poll_once() is None
        assert oracle.calls == []


class TestSending:
    def test_send_now_includes_device_status(self, service, client):
        service.record_session(AppSession("Instagram", INSTAGRAM,
                                          stamp(BASE_TS, TZ), stamp(BASE_TS + 30, TZ)))

        assert service.send_now() is True

        [chunk] = client.post_batch.call_args.args
        assert sorted(p["eventType"] for p in chunk) == ["app_session", "device_status"]
        assert len(service.store) == 0

    def test_second_send_reports_last_batch_time(self, service, client, clock):
        service.send_now()
        first_sent = service.sync.last_batch_sent
        clock.advance(3600)

        service.send_now()

        [chunk] = client.post_batch.call_args.args
        assert chunk[0]["lastBatchSent"] == first_sent.isoformat()

    def test_immediate_tap_dispatched(self, service):
        service._config["immediateTaps"] = True
        service._dispatch = Mock()
        tap = AppTap("Instagram", INSTAGRAM, stamp(BASE_TS, TZ))

        service.record_tap(tap)

        service._dispatch.assert_called_once_with(service._send_immediately, tap)
        assert len(service.store) == 0

    def test_daily_summary_sent_and_reset(self, service, client):
        service.record_session(AppSession("Instagram", INSTAGRAM,
                                          stamp(BASE_TS, TZ), stamp(BASE_TS + 180, TZ)))

        assert service.send_daily_summary() is True

        payload = client.post_item.call_args.args[0]
        assert payload["eventType"] == "daily_summary"
        assert payload["appTotals"]["Instagram"]["minutes"] == 3
        assert service.daily.build_summary().app_totals == {}

    def test_replay_offline(self, service, offline_queue, client):
        offline_queue.enqueue(AppTap("Instagram", INSTAGRAM, stamp(BASE_TS, TZ)))

        assert service.replay_offline() == (1, 0)


def test_status_snapshot(service):
    status = service.status()

    assert status["running"] is False
    assert status["deviceId"] == "device_test"
    assert status["offlineQueue"] == 0
    assert status["interventionShowing"] is False

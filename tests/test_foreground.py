from unittest.mock import Mock

from monitor_core.foreground import ForegroundMonitor
from monitor_core.platform_usage import DesktopUsageOracle

from conftest import FakeClock, ScriptedOracle, INSTAGRAM, YOUTUBE, BASE_TS


class TestForegroundMonitor:
    def test_reports_newest_package(self):
        clock = FakeClock()
        monitor = ForegroundMonitor(ScriptedOracle([(INSTAGRAM, BASE_TS)]), clock=clock)

        event = monitor.poll()

        assert event.package_name == INSTAGRAM
        assert event.observed_at == BASE_TS
        assert monitor.last_package == INSTAGRAM

    def test_empty_reading_without_history_is_no_change(self):
        monitor = ForegroundMonitor(ScriptedOracle([None]), clock=FakeClock())
        assert monitor.poll() is None
        assert monitor.last_package is None

    def test_fallback_keeps_recent_previous_app(self):
        """Short window empty, longer window shows the same app used 1s ago."""
        clock = FakeClock()
        oracle = ScriptedOracle([
            (INSTAGRAM, BASE_TS),
            None,
            (INSTAGRAM, BASE_TS + 4),
        ])
        monitor = ForegroundMonitor(oracle, clock=clock, window_sec=5, fallback_window_sec=10)
        monitor.poll()
        clock.advance(5)

        event = monitor.poll()

        assert event.package_name == INSTAGRAM
        assert oracle.calls == [5, 5, 10]

    def test_fallback_ignores_stale_previous_app(self):
        clock = FakeClock()
        oracle = ScriptedOracle([(INSTAGRAM, BASE_TS), None, (INSTAGRAM, BASE_TS)])
        monitor = ForegroundMonitor(oracle, clock=clock)
        monitor.poll()
        clock.advance(6)

        assert monitor.poll() is None
        # Still remembered for the next comparison
        assert monitor.last_package == INSTAGRAM

    def test_fallback_ignores_different_app(self):
        clock = FakeClock()
        oracle = ScriptedOracle([(INSTAGRAM, BASE_TS), None, (YOUTUBE, BASE_TS + 1)])
        monitor = ForegroundMonitor(oracle, clock=clock)
        monitor.poll()
        clock.advance(2)

        assert monitor.poll() is None

    def test_oracle_error_is_no_data(self):
        oracle = Mock()
        oracle.query.side_effect = PermissionError("usage access revoked")
        monitor = ForegroundMonitor(oracle, clock=FakeClock())

        assert monitor.poll() is None

    def test_blank_package_is_no_data(self):
        monitor = ForegroundMonitor(ScriptedOracle([("", BASE_TS)]), clock=FakeClock())
        assert monitor.poll() is None


class TestDesktopUsageOracle:
    def test_returns_sampled_process(self):
        clock = FakeClock()
        oracle = DesktopUsageOracle(sampler=lambda: "chrome.exe", clock=clock)

        assert oracle.query(5) == ("chrome.exe", BASE_TS)

    def test_remembers_last_used_inside_window(self):
        clock = FakeClock()
        names = iter(["chrome.exe", None, None])
        oracle = DesktopUsageOracle(sampler=lambda: next(names), clock=clock)
        oracle.query(5)
        clock.advance(2)

        assert oracle.query(5) == ("chrome.exe", BASE_TS)
        assert oracle.query(1, now=clock.now) is None

    def test_newest_entry_wins(self):
        clock = FakeClock()
        names = iter(["chrome.exe", "code.exe"])
        oracle = DesktopUsageOracle(sampler=lambda: next(names), clock=clock)
        oracle.query(5)
        clock.advance(1)

        assert oracle.query(5) == ("code.exe", BASE_TS + 1)

    def test_process_names_mapped_to_tracked_ids(self):
        clock = FakeClock()
        oracle = DesktopUsageOracle(sampler=lambda: "Instagram.exe", clock=clock,
                                    aliases={"instagram.exe": INSTAGRAM})

        assert oracle.query(5) == (INSTAGRAM, BASE_TS)

    def test_unmapped_process_names_pass_through(self):
        oracle = DesktopUsageOracle(sampler=lambda: "code.exe", clock=FakeClock(),
                                    aliases={"instagram.exe": INSTAGRAM})

        assert oracle.query(5)[0] == "code.exe"

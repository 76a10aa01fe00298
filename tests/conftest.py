import pytest
from datetime import timezone, timedelta
from unittest.mock import Mock

from monitor_core.config import default_config
from monitor_core.foreground import ForegroundEvent
from monitor_core.offline_queue import OfflineQueue

INSTAGRAM = "com.instagram.android"
YOUTUBE = "com.google.android.youtube"
LAUNCHER = "com.android.launcher"

# Non-UTC offset so tests catch timezone loss
TZ = timezone(timedelta(hours=-7))

BASE_TS = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=BASE_TS):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


class ScriptedOracle:
    """Usage oracle that answers from a queue of scripted results."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls = []

    def query(self, window_sec, now):
        self.calls.append(window_sec)
        if not self.results:
            return None
        return self.results.pop(0)


def fg(package, ts):
    return ForegroundEvent(package_name=package, observed_at=BASE_TS + ts)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    cfg = default_config()
    cfg.update({
        "serverUrl": "http://collector.test",
        "deviceId": "device_test",
        "itemRetryDelaySec": 0,
    })
    return cfg


@pytest.fixture
def offline_queue(tmp_path):
    return OfflineQueue(tmp_path / "offline", max_entries=100)


@pytest.fixture
def client():
    """CollectorClient double: every call succeeds unless told otherwise."""
    mock = Mock()
    mock.post_item = Mock(return_value=True)
    mock.post_batch = Mock(return_value=True)
    return mock

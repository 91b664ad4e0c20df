"""
Tests for the ResourceMonitor snapshot provider.
"""

import time
from unittest.mock import MagicMock

import psutil
import pytest

from tournament_tui.exceptions import SnapshotUnavailable
from tournament_tui.monitor import ResourceMonitor, SystemSnapshot

GB = 1024**3


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def mock_psutil(monkeypatch):
    monkeypatch.setattr(psutil, "cpu_percent", lambda interval=None: 42.0)

    mock_memory = MagicMock()
    mock_memory.used = 8 * GB
    mock_memory.total = 16 * GB
    monkeypatch.setattr(psutil, "virtual_memory", lambda: mock_memory)

    mock_disk = MagicMock()
    mock_disk.free = 380 * GB
    mock_disk.used = 120 * GB
    mock_disk.total = 500 * GB
    mock_disk.percent = 24.0
    monkeypatch.setattr(psutil, "disk_usage", lambda _: mock_disk)

    boot = time.time() - 3600.0
    monkeypatch.setattr(psutil, "boot_time", lambda: boot)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor(mock_psutil, clock):
    return ResourceMonitor(interval=2.0, clock=clock)


def test_initial_snapshot_is_empty(monitor):
    latest = monitor.latest
    assert latest.cpu_percent == 0.0
    assert latest.timestamp == 0.0
    assert monitor.failures == 0


def test_collect(monitor):
    snap = monitor.collect()

    assert snap.cpu_percent == pytest.approx(42.0)
    assert snap.memory_used_gb == pytest.approx(8.0)
    assert snap.memory_total_gb == pytest.approx(16.0)
    assert snap.memory_percent == pytest.approx(50.0)
    assert snap.disk_free_gb == pytest.approx(380.0)
    assert snap.disk_total_gb == pytest.approx(500.0)
    assert snap.disk_used_gb == pytest.approx(120.0)
    assert snap.uptime_seconds == pytest.approx(3600.0, abs=60)


def test_get_disk_info(monitor):
    info = monitor.get_disk_info("/data")
    assert info["used_pct"] == pytest.approx(24.0)
    assert info["free_gb"] == pytest.approx(380.0)


def test_poll_respects_interval(monitor, clock, monkeypatch):
    assert monitor.due()
    first = monitor.poll()
    assert first.cpu_percent == pytest.approx(42.0)

    monkeypatch.setattr(psutil, "cpu_percent", lambda interval=None: 90.0)
    clock.now += 1.0
    assert not monitor.due()
    assert monitor.poll() is first

    clock.now += 1.0
    assert monitor.due()
    assert monitor.poll().cpu_percent == pytest.approx(90.0)


def test_poll_force(monitor):
    monitor.poll()
    assert monitor.poll(force=True) is not None


def test_failure_keeps_previous_snapshot(monitor, clock, monkeypatch):
    good = monitor.poll()

    def broken():
        raise RuntimeError("no access")

    monkeypatch.setattr(psutil, "virtual_memory", broken)
    clock.now += 5.0
    assert monitor.poll() is good
    assert monitor.latest is good
    assert monitor.failures == 1


def test_collect_raises_snapshot_unavailable(monitor, monkeypatch):
    def broken(_path):
        raise OSError("not mounted")

    monkeypatch.setattr(psutil, "disk_usage", broken)
    with pytest.raises(SnapshotUnavailable):
        monitor.collect()


def test_as_dict(monitor):
    monitor.poll()
    data = monitor.as_dict()
    assert data["cpu_percent"] == pytest.approx(42.0)
    assert data["disk_percent"] == pytest.approx(24.0)
    assert set(data) >= {"memory_used_gb", "memory_total_gb", "uptime_seconds"}


def test_snapshot_percentages_handle_zero_totals():
    snap = SystemSnapshot()
    assert snap.memory_percent == 0.0
    assert snap.disk_percent == 0.0

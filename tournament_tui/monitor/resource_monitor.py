"""
System snapshot provider.
Samples CPU, memory, and disk usage and hands out immutable snapshots.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import psutil

from tournament_tui.exceptions import SnapshotUnavailable

DEFAULT_POLL_INTERVAL = 2.0
GB = 1024**3

# Set up logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemSnapshot:
    """Point-in-time read of system resource usage."""

    cpu_percent: float = 0.0
    memory_used_gb: float = 0.0
    memory_total_gb: float = 0.0
    disk_free_gb: float = 0.0
    disk_total_gb: float = 0.0
    uptime_seconds: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def memory_percent(self) -> float:
        if self.memory_total_gb <= 0:
            return 0.0
        return self.memory_used_gb / self.memory_total_gb * 100

    @property
    def disk_used_gb(self) -> float:
        return max(0.0, self.disk_total_gb - self.disk_free_gb)

    @property
    def disk_percent(self) -> float:
        if self.disk_total_gb <= 0:
            return 0.0
        return self.disk_used_gb / self.disk_total_gb * 100


class ResourceMonitor:
    """Polls system resources and caches the last good snapshot."""

    def __init__(
        self,
        path: str = ".",
        interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the resource monitor.

        Args:
            path: Filesystem path whose disk usage is reported (the data dir).
            interval: Minimum seconds between two polls.
            clock: Monotonic time source, injectable for tests.
        """
        self.path = path
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._latest = SystemSnapshot(timestamp=0.0)
        self._last_poll: float | None = None
        self.failures = 0

        # Prime psutil so the first real reading is not 0.0
        try:
            psutil.cpu_percent(interval=None)
        except Exception as e:
            logger.debug("CPU priming failed: %s", e)

    def get_cpu_usage(self) -> float:
        """Return CPU usage percentage since the previous call."""
        return float(psutil.cpu_percent(interval=None))

    def get_memory_info(self) -> dict[str, float]:
        """Return used and total memory in GB."""
        vm = psutil.virtual_memory()
        return {"used_gb": vm.used / GB, "total_gb": vm.total / GB}

    def get_disk_info(self, path: str | None = None) -> dict[str, float]:
        """Return free/total/used disk space in GB for ``path``."""
        usage = psutil.disk_usage(path or self.path)
        return {
            "free_gb": usage.free / GB,
            "total_gb": usage.total / GB,
            "used_gb": usage.used / GB,
            "used_pct": float(usage.percent),
        }

    def get_uptime(self) -> float:
        """Return seconds since boot."""
        return max(0.0, time.time() - psutil.boot_time())

    def collect(self) -> SystemSnapshot:
        """
        Collect a fresh snapshot.

        Raises:
            SnapshotUnavailable: If any underlying probe fails
        """
        try:
            cpu = self.get_cpu_usage()
            memory = self.get_memory_info()
            disk = self.get_disk_info()
            uptime = self.get_uptime()
        except Exception as e:
            raise SnapshotUnavailable(f"System polling failed: {e}") from e

        return SystemSnapshot(
            cpu_percent=cpu,
            memory_used_gb=memory["used_gb"],
            memory_total_gb=memory["total_gb"],
            disk_free_gb=disk["free_gb"],
            disk_total_gb=disk["total_gb"],
            uptime_seconds=uptime,
        )

    def due(self) -> bool:
        """True when the polling interval has elapsed."""
        if self._last_poll is None:
            return True
        return self._clock() - self._last_poll >= self.interval

    def poll(self, force: bool = False) -> SystemSnapshot:
        """
        Refresh the snapshot if due and return the latest one.

        Failures are logged and the previous snapshot is kept.
        """
        if not force and not self.due():
            return self.latest

        self._last_poll = self._clock()
        try:
            snapshot = self.collect()
        except SnapshotUnavailable as e:
            self.failures += 1
            logger.debug("Keeping previous snapshot: %s", e)
            return self.latest

        with self._lock:
            self._latest = snapshot
        return snapshot

    @property
    def latest(self) -> SystemSnapshot:
        with self._lock:
            return self._latest

    def as_dict(self) -> dict[str, Any]:
        """Latest snapshot as a plain dict (for the system info command)."""
        snap = self.latest
        return {
            "cpu_percent": snap.cpu_percent,
            "memory_used_gb": snap.memory_used_gb,
            "memory_total_gb": snap.memory_total_gb,
            "memory_percent": snap.memory_percent,
            "disk_free_gb": snap.disk_free_gb,
            "disk_total_gb": snap.disk_total_gb,
            "disk_percent": snap.disk_percent,
            "uptime_seconds": snap.uptime_seconds,
        }

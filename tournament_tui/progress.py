"""
Operation progress state machine.

One ProgressState per dashboard holds the single active operation slot.
Every mutation goes through begin/update/complete/fail/reset, each of which
takes the same lock, so the renderer thread always reads a consistent view.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tournament_tui.config import REQUIRED_DATASETS
from tournament_tui.events import EventLog
from tournament_tui.exceptions import AlreadyActive, WrongOperation


class OperationKind(Enum):
    """Long-running operations; at most one is current."""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    TRAINING = "training"
    PREDICTING = "predicting"
    UPLOADING = "uploading"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProgressSnapshot:
    """Consistent read of ProgressState for rendering"""

    current: OperationKind = OperationKind.IDLE
    description: str = ""
    progress_pct: float = 0.0
    started_at: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_idle(self) -> bool:
        return self.current is OperationKind.IDLE

    def elapsed(self, now: float | None = None) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, (now if now is not None else time.time()) - self.started_at)


class ProgressState:
    """Mutex-guarded single-slot operation progress"""

    def __init__(self):
        self._lock = threading.RLock()
        self._current = OperationKind.IDLE
        self._description = ""
        self._progress_pct = 0.0
        self._started_at: float | None = None
        self._details: dict[str, Any] = {}
        self.last_completed: OperationKind | None = None
        self.last_completed_pct: float | None = None

    # Reads

    @property
    def current(self) -> OperationKind:
        with self._lock:
            return self._current

    @property
    def progress_pct(self) -> float:
        with self._lock:
            return self._progress_pct

    @property
    def description(self) -> str:
        with self._lock:
            return self._description

    @property
    def details(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._details)

    @property
    def is_idle(self) -> bool:
        with self._lock:
            return self._current is OperationKind.IDLE

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                current=self._current,
                description=self._description,
                progress_pct=self._progress_pct,
                started_at=self._started_at,
                details=dict(self._details),
            )

    def elapsed(self) -> float:
        return self.snapshot().elapsed()

    # Transitions

    def begin(self, kind: OperationKind, description: str) -> None:
        """
        Make ``kind`` the current operation.

        Raises:
            AlreadyActive: If another operation is current
        """
        if kind is OperationKind.IDLE:
            raise ValueError("Cannot begin the idle operation")

        with self._lock:
            if self._current is not OperationKind.IDLE:
                raise AlreadyActive(kind, self._current)
            self._current = kind
            self._description = description
            self._progress_pct = 0.0
            self._started_at = time.time()
            self._details = {}

    def update(
        self,
        kind: OperationKind,
        progress_pct: float | None = None,
        description: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> float:
        """
        Record progress for the current operation and return the stored percentage.

        The percentage is clamped to [0, 100] and never decreases within one
        operation. ``None`` detail values are skipped rather than stored.

        Raises:
            WrongOperation: If ``kind`` is not the current operation
        """
        with self._lock:
            if kind is not self._current or kind is OperationKind.IDLE:
                raise WrongOperation(kind, self._current)

            if progress_pct is not None:
                pct = max(0.0, min(100.0, float(progress_pct)))
                self._progress_pct = max(self._progress_pct, pct)

            if description:
                self._description = description

            if details:
                for key, value in details.items():
                    if value is not None:
                        self._details[key] = value

            return self._progress_pct

    def complete(self, kind: OperationKind) -> None:
        """Mark the current operation finished at 100% and return to idle."""
        with self._lock:
            if kind is not self._current or kind is OperationKind.IDLE:
                raise WrongOperation(kind, self._current)
            self._progress_pct = 100.0
            self.last_completed = kind
            self.last_completed_pct = self._progress_pct
            self._reset_locked()

    def fail(self, kind: OperationKind, reason: str, events: EventLog | None = None) -> None:
        """Log the failure (when an event log is given) and return to idle."""
        with self._lock:
            if self._current not in (kind, OperationKind.IDLE):
                raise WrongOperation(kind, self._current)
            if events is not None:
                events.error(f"{kind.label.capitalize()} failed: {reason}")
            self._reset_locked()

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()

    def _reset_locked(self) -> None:
        self._current = OperationKind.IDLE
        self._description = ""
        self._progress_pct = 0.0
        self._started_at = None
        self._details = {}


@dataclass(frozen=True)
class DownloadSnapshot:
    """Consistent read of DownloadTracker"""

    required: tuple[str, ...]
    in_progress: frozenset[str]
    completed: frozenset[str]
    progress: dict[str, float] = field(default_factory=dict)
    sizes_mb: dict[str, float] = field(default_factory=dict)

    @property
    def relevant(self) -> bool:
        return bool(self.in_progress or self.completed)

    @property
    def all_completed(self) -> bool:
        return all(name in self.completed for name in self.required)


class DownloadTracker:
    """Tracks which datasets are downloading and which are done this cycle"""

    def __init__(self, required: tuple[str, ...] | list[str] = REQUIRED_DATASETS):
        self.required = tuple(required)
        self._lock = threading.Lock()
        self._in_progress: set[str] = set()
        self._completed: set[str] = set()
        self._progress: dict[str, float] = {}
        self._sizes_mb: dict[str, float] = {}

    def start(self, name: str) -> None:
        with self._lock:
            if name in self._completed:
                raise ValueError(f"Dataset {name} already completed this cycle")
            self._in_progress.add(name)
            self._progress[name] = 0.0

    def finish(self, name: str) -> None:
        """Move ``name`` from in-progress to completed in one step."""
        with self._lock:
            self._in_progress.discard(name)
            self._completed.add(name)
            self._progress[name] = 100.0

    def abandon(self, name: str) -> None:
        """Drop ``name`` from in-progress after a failed download."""
        with self._lock:
            self._in_progress.discard(name)
            self._progress.pop(name, None)

    def record_progress(self, name: str, pct: float) -> None:
        with self._lock:
            if name in self._in_progress:
                self._progress[name] = max(0.0, min(100.0, float(pct)))

    def record_size(self, name: str, size_mb: float) -> None:
        with self._lock:
            if size_mb and size_mb > 0:
                self._sizes_mb[name] = float(size_mb)

    def is_completed(self, name: str) -> bool:
        with self._lock:
            return name in self._completed

    def is_in_progress(self, name: str) -> bool:
        with self._lock:
            return name in self._in_progress

    def all_required_completed(self) -> bool:
        with self._lock:
            return all(name in self._completed for name in self.required)

    @property
    def completed(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._completed)

    @property
    def in_progress(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._in_progress)

    def snapshot(self) -> DownloadSnapshot:
        with self._lock:
            return DownloadSnapshot(
                required=self.required,
                in_progress=frozenset(self._in_progress),
                completed=frozenset(self._completed),
                progress=dict(self._progress),
                sizes_mb=dict(self._sizes_mb),
            )

    def reset(self) -> None:
        """Start a new download cycle."""
        with self._lock:
            self._in_progress.clear()
            self._completed.clear()
            self._progress.clear()
            self._sizes_mb.clear()

"""
Tests for frame rendering and the render throttle.
"""

import io
import time
from datetime import datetime

import pytest
from rich.console import Console, Group

from tournament_tui.events import Event, EventLevel
from tournament_tui.monitor import SystemSnapshot
from tournament_tui.progress import (
    DownloadSnapshot,
    OperationKind,
    ProgressSnapshot,
)
from tournament_tui.renderer import (
    DashboardStatus,
    Renderer,
    RenderThrottle,
    format_duration,
    progress_bar,
)
from tournament_tui.runner import PipelineStatus

SNAPSHOT = SystemSnapshot(
    cpu_percent=37.5,
    memory_used_gb=6.0,
    memory_total_gb=16.0,
    disk_free_gb=120.0,
    disk_total_gb=500.0,
    uptime_seconds=7200.0,
)

IDLE = ProgressSnapshot()
NO_DOWNLOADS = DownloadSnapshot(
    required=("train", "validation", "live"), in_progress=frozenset(), completed=frozenset()
)


def event(message, level=EventLevel.INFO):
    return Event(level=level, message=message, timestamp=datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def renderer():
    console = Console(file=io.StringIO(), width=100)
    return Renderer(console, event_rows=5, version="9.9.9")


class TestHelpers:
    def test_progress_bar(self):
        assert progress_bar(75, 8) == "██████░░"
        assert progress_bar(0, 4) == "░░░░"
        assert progress_bar(100, 4) == "████"

    def test_progress_bar_clamps(self):
        assert progress_bar(150, 4) == "████"
        assert progress_bar(-10, 4) == "░░░░"

    def test_format_duration(self):
        assert format_duration(12.34) == "12.3s"
        assert format_duration(270) == "4.5m"
        assert format_duration(4320) == "1.2h"


class TestRenderFrame:
    def test_returns_group(self, renderer):
        frame = renderer.render_frame(IDLE, [], SNAPSHOT, NO_DOWNLOADS)
        assert isinstance(frame, Group)

    def test_idle_frame(self, renderer):
        text = renderer.render_text(IDLE, [], SNAPSHOT, NO_DOWNLOADS)
        assert "TOURNAMENT PIPELINE" in text
        assert "v9.9.9" in text
        assert "CPU:  37.5%" in text
        assert "RAM: 6.0/16.0 GB" in text
        assert "Disk: 120.0/500.0 GB free" in text
        assert "Uptime: 2.0h" in text
        assert "No operation running" in text
        assert "No events yet" in text
        assert "Datasets" not in text

    def test_download_operation(self, renderer):
        progress = ProgressSnapshot(
            current=OperationKind.DOWNLOADING,
            description="Downloading train dataset",
            progress_pct=50.0,
            started_at=time.time() - 5,
            details={"current_mb": 5.0, "total_mb": 10.0, "speed_mb_s": 1.0, "eta_seconds": 5},
        )
        text = renderer.render_text(progress, [], SNAPSHOT, NO_DOWNLOADS)
        assert "Downloading train dataset" in text
        assert "Size: 5.0 / 10.0 MB" in text
        assert "Speed: 1.0 MB/s" in text
        assert "ETA: 5.0s" in text
        assert "50.0%" in text
        assert "█" in text

    def test_training_details(self, renderer):
        progress = ProgressSnapshot(
            current=OperationKind.TRAINING,
            description="Training default_model",
            progress_pct=40.0,
            started_at=time.time(),
            details={"epoch": 2, "total_epochs": 5, "loss": 0.123456, "val_score": 0.0312},
        )
        text = renderer.render_text(progress, [], SNAPSHOT, NO_DOWNLOADS)
        assert "Epoch: 2/5" in text
        assert "Loss: 0.1235" in text
        assert "Validation score: 0.0312" in text

    def test_prediction_rows(self, renderer):
        progress = ProgressSnapshot(
            current=OperationKind.PREDICTING,
            description="Generating predictions",
            progress_pct=10.0,
            started_at=time.time(),
            details={"rows_processed": 5000, "total_rows": 50000},
        )
        text = renderer.render_text(progress, [], SNAPSHOT, NO_DOWNLOADS)
        assert "Rows: 5,000 / 50,000" in text

    def test_non_numeric_details_do_not_break(self, renderer):
        progress = ProgressSnapshot(
            current=OperationKind.TRAINING,
            description="t",
            started_at=time.time(),
            details={"loss": "n/a"},
        )
        assert "Loss: n/a" in renderer.render_text(progress, [], SNAPSHOT, NO_DOWNLOADS)

    def test_download_panel(self, renderer):
        downloads = DownloadSnapshot(
            required=("train", "validation", "live"),
            in_progress=frozenset({"validation"}),
            completed=frozenset({"train"}),
            progress={"train": 100.0, "validation": 40.0},
            sizes_mb={"train": 1250.0},
        )
        text = renderer.render_text(IDLE, [], SNAPSHOT, downloads)
        assert "Datasets 1/3" in text
        assert "✓ train (1250.0 MB)" in text
        assert "validation" in text
        assert "40%" in text
        assert "· live" in text

    def test_pipeline_panel(self, renderer):
        status = DashboardStatus(
            pipeline=PipelineStatus(active=True, stage="train", step=2, started_at=time.time())
        )
        text = renderer.render_text(IDLE, [], SNAPSHOT, NO_DOWNLOADS, status)
        assert "Pipeline" in text
        assert "Stage: train (2/4)" in text

    def test_events_newest_last_and_limited(self, renderer):
        events = [event(f"message {i}") for i in range(8)]
        text = renderer.render_text(IDLE, events, SNAPSHOT, NO_DOWNLOADS)

        assert "message 2" not in text
        assert text.index("message 3") < text.index("message 7")
        assert "12:00:00" in text

    def test_long_event_truncated(self, renderer):
        long_message = "x" * 300
        text = renderer.render_text(IDLE, [event(long_message)], SNAPSHOT, NO_DOWNLOADS)
        assert long_message not in text
        assert "…" in text

    def test_event_markup_is_not_interpreted(self, renderer):
        text = renderer.render_text(
            IDLE, [event("[bold]literal[/bold]", EventLevel.ERROR)], SNAPSHOT, NO_DOWNLOADS
        )
        assert "[bold]literal[/bold]" in text

    def test_status_badges_and_commands(self, renderer):
        status = DashboardStatus(paused=True, auto_submit=True, debug=True, message="Paused")
        text = renderer.render_text(IDLE, [], SNAPSHOT, NO_DOWNLOADS, status)
        assert "PAUSED" in text
        assert "auto-submit" in text
        assert "debug" in text
        assert "Quit" in text
        assert "►" in text

    def test_render_text_width(self, renderer):
        text = renderer.render_text(IDLE, [], SNAPSHOT, NO_DOWNLOADS, width=60)
        assert max(len(line) for line in text.splitlines()) <= 60


class TestRenderThrottle:
    def test_first_frame_is_due(self):
        assert RenderThrottle().due(0.0, active=False)

    def test_active_interval(self):
        throttle = RenderThrottle(active_interval=0.2, idle_interval=1.0)
        throttle.mark_rendered(10.0)
        assert not throttle.due(10.1, active=True)
        assert throttle.due(10.25, active=True)

    def test_idle_interval(self):
        throttle = RenderThrottle(active_interval=0.2, idle_interval=1.0)
        throttle.mark_rendered(10.0)
        assert not throttle.due(10.5, active=False)
        assert throttle.due(11.0, active=False)

    def test_forced_redraw_honoured_once(self):
        throttle = RenderThrottle()
        throttle.mark_rendered(10.0)
        throttle.request_redraw()
        assert throttle.forced
        assert throttle.due(10.01, active=False)

        throttle.mark_rendered(10.01)
        assert not throttle.forced
        assert not throttle.due(10.02, active=False)

"""
Full-screen frame rendering with rich.

Renderer.render_frame is a pure function of its inputs (plus the terminal
size, queried per call); all state lives in the controller.
"""

import io
import time
from dataclasses import dataclass

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from tournament_tui import __version__
from tournament_tui.events import Event, EventLevel
from tournament_tui.monitor import SystemSnapshot
from tournament_tui.progress import DownloadSnapshot, OperationKind, ProgressSnapshot
from tournament_tui.runner import PipelineStatus
from tournament_tui.terminal import HELP_TEXT, KEY_BINDINGS

DEFAULT_BAR_WIDTH = 50

LEVEL_STYLES = {
    EventLevel.INFO: ("ℹ", "cyan"),
    EventLevel.SUCCESS: ("✓", "green"),
    EventLevel.WARNING: ("⚠", "yellow"),
    EventLevel.ERROR: ("✗", "red"),
}

KIND_ICONS = {
    OperationKind.DOWNLOADING: "⬇",
    OperationKind.TRAINING: "🧠",
    OperationKind.PREDICTING: "🔮",
    OperationKind.UPLOADING: "⬆",
}


def progress_bar(percent: float, width: int = DEFAULT_BAR_WIDTH) -> str:
    """
    Create a text-based progress bar.

    Args:
        percent: Percentage value (0-100), clamped
        width: Width of the bar in characters

    Example:
        >>> progress_bar(75, 8)
        '██████░░'
    """
    percent = max(0.0, min(100.0, float(percent)))
    width = max(0, int(width))
    filled = int((percent / 100) * width)
    return "█" * filled + "░" * (width - filled)


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


def _fmt(value, spec: str) -> str:
    try:
        return format(value, spec)
    except (TypeError, ValueError):
        return str(value)


def _truncate(message: str, width: int) -> str:
    if width <= 1 or len(message) <= width:
        return message
    return message[: width - 1] + "…"


@dataclass(frozen=True)
class DashboardStatus:
    """Flags shown in the header and command line"""

    paused: bool = False
    auto_train: bool = True
    auto_submit: bool = False
    debug: bool = False
    pipeline: PipelineStatus | None = None
    message: str = ""


class Renderer:
    """Builds one dashboard frame from snapshots"""

    def __init__(
        self,
        console: Console | None = None,
        event_rows: int = 15,
        bar_width: int = DEFAULT_BAR_WIDTH,
        version: str = __version__,
    ):
        self.console = console or Console()
        self.event_rows = event_rows
        self.bar_width = bar_width
        self.version = version

    @property
    def width(self) -> int:
        return self.console.size.width

    def render_frame(
        self,
        progress: ProgressSnapshot,
        events: list[Event],
        snapshot: SystemSnapshot,
        downloads: DownloadSnapshot | None = None,
        status: DashboardStatus | None = None,
        now: float | None = None,
    ) -> Group:
        status = status or DashboardStatus()
        now = now if now is not None else time.time()

        parts = [self._render_header(snapshot, status), self._render_operation(progress, now)]
        if downloads is not None and downloads.relevant:
            parts.append(self._render_downloads(downloads))
        if status.pipeline is not None and status.pipeline.active:
            parts.append(self._render_pipeline(status.pipeline, now))
        parts.append(self._render_events(events))
        parts.append(self._render_commands(status))
        return Group(*parts)

    def render_text(self, *args, width: int | None = None, **kwargs) -> str:
        """Render a frame and export it as plain text."""
        width = width or self.width
        recorder = Console(record=True, width=width, file=io.StringIO(), color_system=None)
        frame = Renderer(recorder, self.event_rows, self.bar_width, self.version).render_frame(
            *args, **kwargs
        )
        recorder.print(frame)
        return recorder.export_text()

    # Panels

    def _render_header(self, snapshot: SystemSnapshot, status: DashboardStatus) -> Panel:
        badges = []
        if status.paused:
            badges.append("[bold yellow]⏸ PAUSED[/bold yellow]")
        if status.auto_train:
            badges.append("[dim]auto-train[/dim]")
        if status.auto_submit:
            badges.append("[dim]auto-submit[/dim]")
        if status.debug:
            badges.append("[magenta]debug[/magenta]")

        title = f"[bold cyan]🏆 TOURNAMENT PIPELINE[/bold cyan] [dim]v{self.version}[/dim]"
        if badges:
            title += "  " + "  ".join(badges)

        system = (
            f"CPU: {snapshot.cpu_percent:5.1f}%  │  "
            f"RAM: {snapshot.memory_used_gb:.1f}/{snapshot.memory_total_gb:.1f} GB  │  "
            f"Disk: {snapshot.disk_free_gb:.1f}/{snapshot.disk_total_gb:.1f} GB free  │  "
            f"Uptime: {format_duration(snapshot.uptime_seconds)}"
        )
        return Panel(f"{title}\n{system}", style="blue", box=ROUNDED)

    def _render_operation(self, progress: ProgressSnapshot, now: float) -> Panel:
        if progress.is_idle:
            content = (
                "[dim]No operation running.[/dim]\n"
                "[dim]Press [cyan]s[/cyan] to start the pipeline or [cyan]h[/cyan] for help.[/dim]"
            )
            return Panel(content, title="Status: idle", padding=(1, 1), box=ROUNDED)

        kind = progress.current
        lines = [f"[bold cyan]{KIND_ICONS.get(kind, '')} {escape(progress.description)}[/bold cyan]"]
        lines.extend(self._detail_lines(kind, progress.details))
        lines.append(f"[dim]Elapsed: {format_duration(progress.elapsed(now))}[/dim]")

        bar_width = max(10, min(self.bar_width, self.width - 20))
        bar = progress_bar(progress.progress_pct, bar_width)
        lines.append(f"\n[green]{bar}[/green] {progress.progress_pct:5.1f}%")

        return Panel(
            "\n".join(lines), title=f"Status: {kind.label}", padding=(1, 1), box=ROUNDED
        )

    def _detail_lines(self, kind: OperationKind, details: dict) -> list[str]:
        lines = []
        if kind in (OperationKind.DOWNLOADING, OperationKind.UPLOADING):
            if "current_mb" in details and "total_mb" in details:
                current = _fmt(details["current_mb"], ".1f")
                total = _fmt(details["total_mb"], ".1f")
                lines.append(f"Size: {current} / {total} MB")
            if "speed_mb_s" in details:
                lines.append(f"Speed: {_fmt(details['speed_mb_s'], '.1f')} MB/s")
            if isinstance(details.get("eta_seconds"), (int, float)):
                lines.append(f"ETA: {format_duration(details['eta_seconds'])}")
        elif kind is OperationKind.TRAINING:
            if "epoch" in details:
                total = details.get("total_epochs")
                lines.append(f"Epoch: {details['epoch']}" + (f"/{total}" if total else ""))
            if "loss" in details:
                lines.append(f"Loss: {_fmt(details['loss'], '.4f')}")
            if "val_score" in details:
                lines.append(f"Validation score: {_fmt(details['val_score'], '.4f')}")
        elif kind is OperationKind.PREDICTING:
            if "rows_processed" in details:
                total = details.get("total_rows")
                rows = _fmt(details["rows_processed"], ",")
                lines.append(f"Rows: {rows}" + (f" / {_fmt(total, ',')}" if total else ""))
        if "phase" in details:
            lines.append(f"[dim]{escape(str(details['phase']))}[/dim]")
        return lines

    def _render_downloads(self, downloads: DownloadSnapshot) -> Panel:
        lines = []
        for name in downloads.required:
            size = downloads.sizes_mb.get(name)
            size_text = f" [dim]({size:.1f} MB)[/dim]" if size else ""
            if name in downloads.completed:
                lines.append(f"[green]✓[/green] {name}{size_text}")
            elif name in downloads.in_progress:
                pct = downloads.progress.get(name, 0.0)
                lines.append(f"[yellow]⏳[/yellow] {name} {progress_bar(pct, 20)} {pct:.0f}%")
            else:
                lines.append(f"[dim]· {name}[/dim]")
        done = len(downloads.completed & set(downloads.required))
        title = f"Datasets {done}/{len(downloads.required)}"
        return Panel("\n".join(lines), title=title, padding=(0, 1), box=ROUNDED)

    def _render_pipeline(self, pipeline: PipelineStatus, now: float) -> Panel:
        content = (
            f"[bold]Stage:[/bold] {pipeline.stage} ({pipeline.step}/4)\n"
            f"[dim]Elapsed: {format_duration(pipeline.elapsed(now))}[/dim]"
        )
        return Panel(content, title="Pipeline", padding=(0, 1), box=ROUNDED)

    def _render_events(self, events: list[Event]) -> Panel:
        recent = events[-self.event_rows :] if self.event_rows > 0 else []
        if not recent:
            return Panel(
                Text("No events yet", style="dim"), title="Recent events", box=ROUNDED
            )

        width = max(20, self.width - 20)
        text = Text()
        for i, event in enumerate(recent):
            icon, style = LEVEL_STYLES[event.level]
            if i:
                text.append("\n")
            text.append(f"{event.format_time()} ", style="dim")
            text.append(f"{icon} ", style=style)
            text.append(_truncate(event.message, width), style=style)
        return Panel(text, title="Recent events", box=ROUNDED)

    def _render_commands(self, status: DashboardStatus) -> Panel:
        items = [f"[cyan]{key}[/cyan] {HELP_TEXT[cmd]}" for key, cmd in KEY_BINDINGS.items()]
        content = "  ".join(items)
        if status.message:
            content += f"  [dim]|[/dim]  [bold yellow]► {escape(status.message)}[/bold yellow]"
        return Panel(content, title="Commands", box=ROUNDED)


class RenderThrottle:
    """Decides when a new frame is due"""

    def __init__(self, active_interval: float = 0.2, idle_interval: float = 1.0):
        self.active_interval = active_interval
        self.idle_interval = idle_interval
        self.last_render: float | None = None
        self._force = False

    def request_redraw(self) -> None:
        self._force = True

    @property
    def forced(self) -> bool:
        return self._force

    def due(self, now: float, active: bool) -> bool:
        if self._force or self.last_render is None:
            return True
        interval = self.active_interval if active else self.idle_interval
        return now - self.last_render >= interval

    def mark_rendered(self, now: float) -> None:
        self.last_render = now
        self._force = False

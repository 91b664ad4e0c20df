"""
Tournament Dashboard - full-screen terminal UI for the tournament pipeline.

One controller per session. The main thread runs a fixed-interval tick
(input, system polling, rendering); downloads, training, prediction and
upload run on the OperationRunner's background thread.
"""

import logging
import os
import threading
import time
from collections.abc import Callable
from enum import Enum

from rich.console import Console
from rich.live import Live

from tournament_tui.collaborators import ModelPipeline, TournamentClient
from tournament_tui.config import PipelineConfig
from tournament_tui.events import EventLog
from tournament_tui.exceptions import FatalInitError
from tournament_tui.monitor import ResourceMonitor
from tournament_tui.progress import DownloadTracker, ProgressState
from tournament_tui.renderer import DashboardStatus, Renderer, RenderThrottle
from tournament_tui.runner import OperationRunner
from tournament_tui.terminal import (
    HELP_TEXT,
    KEY_BINDINGS,
    Command,
    InputDispatcher,
    TerminalDriver,
    create_terminal_driver,
    raw_terminal,
)

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0


class ControllerState(Enum):
    """Dashboard lifecycle"""

    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class DashboardController:
    """Owns all dashboard state and drives the tick loop"""

    COMMANDS = {
        Command.QUIT: "_cmd_quit",
        Command.START_PIPELINE: "_cmd_start_pipeline",
        Command.DOWNLOAD: "_cmd_download",
        Command.TRAIN: "_cmd_train",
        Command.UPLOAD: "_cmd_upload",
        Command.PAUSE: "_cmd_pause",
        Command.REFRESH: "_cmd_refresh",
        Command.HELP: "_cmd_help",
        Command.CLEAR_EVENTS: "_cmd_clear_events",
        Command.SYSTEM_INFO: "_cmd_system_info",
    }

    def __init__(
        self,
        config: PipelineConfig,
        client: TournamentClient,
        pipeline: ModelPipeline,
        terminal: TerminalDriver | None = None,
        monitor: ResourceMonitor | None = None,
        renderer: Renderer | None = None,
        console: Console | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        auto_chain_delay: float | None = None,
        spawn=None,
    ):
        self.state = ControllerState.INITIALIZING
        self.config = config
        self.settings = config.tui
        self._clock = clock
        self._sleep = sleep

        self.console = console or Console()
        self.throttle = RenderThrottle(self.settings.refresh_active, self.settings.refresh_idle)
        self.progress = ProgressState()
        self.events = EventLog(
            capacity=self.settings.max_events,
            on_append=lambda _event: self.throttle.request_redraw(),
        )
        self.downloads = DownloadTracker()
        self.runner = OperationRunner(
            self.progress,
            self.events,
            self.downloads,
            config,
            client,
            pipeline,
            auto_chain_delay=auto_chain_delay,
            spawn=spawn,
        )
        self.terminal = terminal or create_terminal_driver()
        self.input = InputDispatcher(self.terminal, self.events, debug=self.settings.debug)
        self.monitor = monitor or ResourceMonitor(
            path=config.data_dir if os.path.isdir(config.data_dir) else ".",
            interval=self.settings.system_poll_interval,
            clock=clock,
        )
        self.renderer = renderer or Renderer(self.console, event_rows=self.settings.event_rows)

        self._quit = threading.Event()
        self._live: Live | None = None
        self._auto_start_at: float | None = None
        self._seen_poll_failures = 0
        self.status_message = ""
        self.last_frame = None
        self.frames_rendered = 0

    # Commands

    def execute(self, command: Command) -> None:
        """Dispatch one command. Start commands return immediately."""
        handler = getattr(self, self.COMMANDS[command])
        handler()
        self.throttle.request_redraw()

    def _cmd_quit(self):
        self.events.info("Shutting down...")
        self.request_quit()

    def _cmd_start_pipeline(self):
        if self.runner.start_pipeline() is not None:
            self.status_message = "Pipeline started"

    def _cmd_download(self):
        if self.runner.start_download() is not None:
            self.status_message = "Downloading datasets"

    def _cmd_train(self):
        if self.runner.start_training() is not None:
            self.status_message = "Training"

    def _cmd_upload(self):
        if self.runner.start_upload() is not None:
            self.status_message = "Uploading predictions"

    def _cmd_pause(self):
        if self.runner.toggle_pause():
            self.status_message = "Paused"
            self.events.warning("Paused. Press 'p' to resume")
        else:
            self.status_message = "Resumed"
            self.events.info("Resumed")

    def _cmd_refresh(self):
        self.monitor.poll(force=True)
        self.status_message = "Refreshed"

    def _cmd_help(self):
        self.events.info("Commands:")
        for key, command in KEY_BINDINGS.items():
            self.events.info(f"  {key} - {HELP_TEXT[command]}")

    def _cmd_clear_events(self):
        self.events.clear()
        self.events.info("Events cleared")

    def _cmd_system_info(self):
        info = self.monitor.as_dict()
        self.events.info(
            f"CPU {info['cpu_percent']:.1f}% | "
            f"RAM {info['memory_used_gb']:.1f}/{info['memory_total_gb']:.1f} GB "
            f"({info['memory_percent']:.0f}%) | "
            f"Disk {info['disk_free_gb']:.1f} GB free of {info['disk_total_gb']:.1f} GB"
        )
        self.events.info(
            f"Data: {self.config.data_dir} | Models: {self.config.model_dir} | "
            f"Datasets {len(self.downloads.completed)}/{len(self.downloads.required)}"
        )

    def request_quit(self) -> None:
        self._quit.set()

    @property
    def quit_requested(self) -> bool:
        return self._quit.is_set()

    # Tick

    def schedule_auto_start(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        delay = self.settings.auto_start_delay
        self._auto_start_at = now + delay
        self.events.info(f"Auto-starting pipeline in {delay:g}s")

    def _maybe_auto_start(self, now: float) -> None:
        if self._auto_start_at is None or now < self._auto_start_at:
            return
        self._auto_start_at = None
        if self.runner.busy:
            self.events.info("Auto-start skipped: an operation is already running")
            return
        self.runner.start_pipeline()

    def _refresh_snapshot(self) -> None:
        if not self.monitor.due():
            return
        self.monitor.poll()
        failures = self.monitor.failures
        if failures > self._seen_poll_failures:
            self._seen_poll_failures = failures
            if self.settings.debug:
                self.events.warning(f"[debug] System poll failed ({failures} total)")

    def status(self) -> DashboardStatus:
        return DashboardStatus(
            paused=self.runner.paused,
            auto_train=self.config.auto_train_after_download,
            auto_submit=self.config.auto_submit,
            debug=self.settings.debug,
            pipeline=self.runner.pipeline_status(),
            message=self.status_message,
        )

    def render(self):
        """Build the current frame."""
        return self.renderer.render_frame(
            self.progress.snapshot(),
            self.events.recent(),
            self.monitor.latest,
            self.downloads.snapshot(),
            self.status(),
        )

    def tick(self, now: float | None = None) -> bool:
        """
        Run one loop iteration.

        Returns:
            True if a frame was drawn
        """
        now = self._clock() if now is None else now

        command = self.input.poll()
        if command is not None:
            self.execute(command)

        self._maybe_auto_start(now)
        self._refresh_snapshot()

        active = self.runner.busy
        if not self.throttle.due(now, active):
            return False

        # Events appended while the frame is built force the next one.
        self.throttle.mark_rendered(now)
        frame = self.render()
        if self._live is not None:
            self._live.update(frame, refresh=True)
        self.last_frame = frame
        self.frames_rendered += 1
        return True

    # Lifecycle

    def run(self) -> int:
        """
        Run the dashboard until quit.

        Raises:
            FatalInitError: If the dashboard cannot take over the screen
        """
        if self.state is not ControllerState.INITIALIZING:
            raise FatalInitError(f"Dashboard cannot run from state {self.state.value}")

        self.monitor.poll(force=True)
        self.state = ControllerState.RUNNING
        self.events.info("Dashboard started. Press 'h' for help")
        if self.config.auto_start_pipeline:
            self.schedule_auto_start()

        try:
            with raw_terminal(self.terminal, self.events) as driver:
                self.input.driver = driver
                try:
                    live = Live(
                        self.render(), console=self.console, screen=True, auto_refresh=False
                    )
                    live.start()
                except OSError as e:
                    raise FatalInitError(f"Cannot start full-screen display: {e}") from e

                self._live = live
                try:
                    self._loop()
                finally:
                    self._live = None
                    live.stop()
        except Exception:
            logger.exception("Dashboard loop failed")
            raise
        finally:
            self._shutdown()
        return 0

    def _loop(self) -> None:
        while not self._quit.is_set():
            try:
                self.tick()
                self._sleep(self.settings.tick_interval)
            except KeyboardInterrupt:
                self.request_quit()

    def _shutdown(self) -> None:
        self.state = ControllerState.SHUTTING_DOWN
        self.runner.stop()
        if not self.runner.join(SHUTDOWN_TIMEOUT):
            logger.warning("Operation thread did not stop within %.0fs", SHUTDOWN_TIMEOUT)
        if self.input.reader_running:
            self.input.stop_reader()

        events = self.events.recent()
        logger.info(f"Session ended with {len(events)} retained events")
        for event in events:
            logger.debug(f"{event.format_time()} [{event.level.value}] {event.message}")
        self.state = ControllerState.TERMINATED


def run_dashboard(
    config: PipelineConfig,
    client: TournamentClient | None = None,
    pipeline: ModelPipeline | None = None,
    **kwargs,
) -> int:
    """Run the dashboard, using simulated collaborators for any that are missing."""
    if client is None or pipeline is None:
        from tournament_tui.demo import SimulatedPipeline, SimulatedTournamentClient

        client = client or SimulatedTournamentClient()
        pipeline = pipeline or SimulatedPipeline()

    controller = DashboardController(config, client, pipeline, **kwargs)
    return controller.run()

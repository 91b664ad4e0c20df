"""
Background execution of downloads, training, prediction and upload.

The runner owns one task slot. A task is a daemon thread that walks through
one or more operations (a chain); the ProgressState it drives is read by the
render loop on the main thread. Collaborators only see a ProgressReporter.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tournament_tui.collaborators import (
    ModelPipeline,
    ProgressPhase,
    TournamentClient,
)
from tournament_tui.config import PipelineConfig
from tournament_tui.events import EventLog
from tournament_tui.exceptions import (
    AlreadyActive,
    CollaboratorFailure,
    OperationCancelled,
    OperationInProgress,
)
from tournament_tui.progress import DownloadTracker, OperationKind, ProgressState

logger = logging.getLogger(__name__)

PAUSE_POLL_INTERVAL = 0.05

# Callback fields copied into ProgressState.details. "progress" and "error"
# are handled separately and "size_mb" is only meaningful on completion.
DETAIL_FIELDS = (
    "current_mb",
    "total_mb",
    "speed_mb_s",
    "eta_seconds",
    "epoch",
    "total_epochs",
    "loss",
    "val_score",
    "rows_processed",
    "total_rows",
    "phase",
)

PIPELINE_STEPS = ("download", "train", "predict", "upload")


@dataclass(frozen=True)
class PipelineStatus:
    """State of an explicit full-pipeline run"""

    active: bool = False
    stage: str = ""
    step: int = 0
    started_at: float | None = None

    def elapsed(self, now: float | None = None) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, (now if now is not None else time.time()) - self.started_at)


class ProgressReporter:
    """
    Progress callback handed to a collaborator for a single operation.

    Translates ``(phase, fields)`` calls into ProgressState transitions.
    Every call is a pause/stop checkpoint, so a collaborator that reports
    progress regularly can be paused and cancelled.
    """

    def __init__(self, runner: "OperationRunner", kind: OperationKind, name: str | None = None):
        self.runner = runner
        self.kind = kind
        self.name = name
        self.completed = False
        self.error: str | None = None
        self.size_mb: float | None = None
        self._last_logged_decile = -1

    def __call__(self, phase, fields: dict[str, Any] | None = None, **kwargs: Any) -> None:
        data = dict(fields or {})
        data.update(kwargs)

        try:
            phase = ProgressPhase.parse(phase)
        except ValueError:
            logger.warning(f"Ignoring unknown progress phase {phase!r} for {self.kind.label}")
            return

        self.runner.checkpoint()

        if phase is ProgressPhase.START:
            self._on_start(data)
        elif phase is ProgressPhase.PROGRESS:
            self._on_progress(data)
        elif phase is ProgressPhase.COMPLETE:
            self._on_complete(data)
        elif phase is ProgressPhase.ERROR:
            self.error = str(data.get("error") or data.get("message") or "unknown error")
            raise CollaboratorFailure(self.error)

    def _on_start(self, data: dict[str, Any]) -> None:
        progress = self.runner.progress
        description = data.get("description")
        if progress.current is not self.kind:
            # The runner normally begins on the collaborator's behalf.
            progress.begin(self.kind, description or self.kind.label.capitalize())
        elif description:
            progress.update(self.kind, description=description)

    def _on_progress(self, data: dict[str, Any]) -> None:
        pct = data.get("progress", data.get("percent"))
        details = {key: data[key] for key in DETAIL_FIELDS if key in data}
        if self.name is not None:
            key = "dataset" if self.kind is OperationKind.DOWNLOADING else "model"
            details.setdefault(key, self.name)

        stored = self.runner.progress.update(self.kind, progress_pct=pct, details=details)

        if self.kind is OperationKind.DOWNLOADING and self.name and pct is not None:
            self.runner.downloads.record_progress(self.name, stored)

        if self.runner.debug:
            decile = int(stored // 10)
            if decile > self._last_logged_decile:
                self._last_logged_decile = decile
                self.runner.events.info(
                    f"[debug] {self.name or self.kind.label}: {stored:.0f}%"
                )

    def _on_complete(self, data: dict[str, Any]) -> None:
        self.completed = True
        size = data.get("size_mb")
        if size is not None:
            try:
                self.size_mb = float(size)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric size_mb {size!r}")

    def raise_if_failed(self) -> None:
        """Re-raise an error reported through the callback but swallowed by the collaborator."""
        if self.error is not None:
            raise CollaboratorFailure(self.error)


def _default_spawn(target: Callable[[], None], name: str) -> threading.Thread:
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread


class OperationRunner:
    """Runs operations one at a time on a background thread"""

    def __init__(
        self,
        progress: ProgressState,
        events: EventLog,
        downloads: DownloadTracker,
        config: PipelineConfig,
        client: TournamentClient,
        pipeline: ModelPipeline,
        auto_chain_delay: float | None = None,
        spawn: Callable[[Callable[[], None], str], Any] | None = None,
    ):
        self.progress = progress
        self.events = events
        self.downloads = downloads
        self.config = config
        self.client = client
        self.pipeline = pipeline
        self.auto_chain_delay = (
            config.tui.auto_chain_delay if auto_chain_delay is None else auto_chain_delay
        )
        self.debug = config.tui.debug
        self._spawn = spawn or _default_spawn

        self._slot_lock = threading.Lock()
        self._active_task: str | None = None
        self._thread: Any = None

        self._unpaused = threading.Event()
        self._unpaused.set()
        self._stop = threading.Event()

        self._pipeline_lock = threading.Lock()
        self._pipeline = PipelineStatus()

        self.trained = False
        self.last_predictions: Path | None = None
        self.last_submission_id: str | None = None

    # Task slot

    @property
    def active_task(self) -> str | None:
        with self._slot_lock:
            return self._active_task

    @property
    def busy(self) -> bool:
        thread = self._thread
        alive = thread is not None and thread.is_alive()
        return alive or self.active_task is not None or not self.progress.is_idle

    def _claim(self, task: str) -> None:
        """
        Reserve the task slot for ``task``.

        Raises:
            OperationInProgress: If a task is running or an operation is current
        """
        with self._slot_lock:
            current = self.progress.current
            if self._active_task is not None or current is not OperationKind.IDLE:
                blocking = current if current is not OperationKind.IDLE else self._active_task
                error = OperationInProgress(task, blocking)
                self.events.warning(str(error))
                raise error
            self._active_task = task

    def _release(self) -> None:
        with self._slot_lock:
            self._active_task = None

    def _run_task(self, task: str, work: Callable[[], bool]) -> bool:
        """Task boundary: operation failures become events and never escape."""
        try:
            return bool(work())
        except OperationCancelled:
            self.progress.reset()
            self.events.warning(f"{task.capitalize()} cancelled")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error in {task} task")
            self.progress.reset()
            self.events.error(f"{task.capitalize()} error: {e}")
            return False
        finally:
            if task == "pipeline":
                self._set_pipeline(PipelineStatus())
            self._release()

    def _launch(self, task: str, work: Callable[[], bool]):
        try:
            self._claim(task)
        except OperationInProgress:
            return None
        self._thread = self._spawn(lambda: self._run_task(task, work), f"runner-{task}")
        return self._thread

    def _run_blocking(self, task: str, work: Callable[[], bool]) -> bool:
        self._claim(task)
        return self._run_task(task, work)

    # Public operations

    def start_download(self):
        return self._launch("download", self._download_chain)

    def run_download(self) -> bool:
        return self._run_blocking("download", self._download_chain)

    def start_training(self):
        return self._launch("training", self._training_chain)

    def run_training(self) -> bool:
        return self._run_blocking("training", self._training_chain)

    def start_prediction(self):
        return self._launch("prediction", self._predict)

    def run_prediction(self) -> bool:
        return self._run_blocking("prediction", self._predict)

    def start_upload(self):
        return self._launch("upload", self._submit)

    def run_upload(self) -> bool:
        return self._run_blocking("upload", self._submit)

    def start_pipeline(self):
        return self._launch("pipeline", self._full_pipeline)

    def run_pipeline(self) -> bool:
        return self._run_blocking("pipeline", self._full_pipeline)

    # Pause / cancel

    @property
    def paused(self) -> bool:
        return not self._unpaused.is_set()

    def pause(self) -> None:
        self._unpaused.clear()

    def resume(self) -> None:
        self._unpaused.set()

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        if self.paused:
            self.resume()
        else:
            self.pause()
        return self.paused

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def checkpoint(self) -> None:
        """
        Block while paused.

        Raises:
            OperationCancelled: If the runner is stopping
        """
        while not self._unpaused.wait(PAUSE_POLL_INTERVAL):
            if self._stop.is_set():
                raise OperationCancelled("Runner stopping")
        if self._stop.is_set():
            raise OperationCancelled("Runner stopping")

    def stop(self) -> None:
        self._stop.set()
        self._unpaused.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the active task; True if no task is left running."""
        thread = self._thread
        if thread is not None and hasattr(thread, "join"):
            thread.join(timeout)
            return not thread.is_alive()
        return True

    # Pipeline status

    def pipeline_status(self) -> PipelineStatus:
        with self._pipeline_lock:
            return self._pipeline

    @property
    def pipeline_active(self) -> bool:
        return self.pipeline_status().active

    @property
    def pipeline_stage(self) -> str:
        return self.pipeline_status().stage

    def _set_pipeline(self, status: PipelineStatus) -> None:
        with self._pipeline_lock:
            self._pipeline = status

    # Paths

    @property
    def data_dir(self) -> Path:
        return Path(self.config.data_dir)

    @property
    def model_dir(self) -> Path:
        return Path(self.config.model_dir)

    def _dataset_path(self, name: str) -> Path:
        return self.data_dir / f"{name}.parquet"

    def _dataset_available(self, name: str) -> bool:
        return self.downloads.is_completed(name) or self._dataset_path(name).exists()

    def _models_available(self) -> bool:
        if self.trained:
            return True
        return self.model_dir.is_dir() and any(self.model_dir.iterdir())

    # Operation steps

    def _execute(
        self,
        kind: OperationKind,
        description: str,
        work: Callable[[ProgressReporter], Any],
        name: str | None = None,
    ) -> tuple[bool, Any, ProgressReporter]:
        """Run one collaborator call as a single operation."""
        self.checkpoint()
        try:
            self.progress.begin(kind, description)
        except AlreadyActive as e:
            self.events.warning(str(e))
            raise OperationInProgress(kind, e.current) from e

        reporter = ProgressReporter(self, kind, name)
        try:
            result = work(reporter)
            reporter.raise_if_failed()
        except OperationCancelled:
            raise
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            if name:
                reason = f"{reason} ({name})"
            logger.debug(f"{kind.label} failed", exc_info=True)
            self.progress.fail(kind, reason, self.events)
            return False, None, reporter

        self.progress.complete(kind)
        return True, result, reporter

    def _download_one(self, name: str) -> bool:
        output_path = self._dataset_path(name)
        self.downloads.start(name)
        try:
            ok, _, reporter = self._execute(
                OperationKind.DOWNLOADING,
                f"Downloading {name} dataset",
                lambda r: self.client.download_dataset(name, output_path, r),
                name=name,
            )
        except OperationCancelled:
            self.downloads.abandon(name)
            raise

        if not ok:
            self.downloads.abandon(name)
            return False

        self.downloads.finish(name)
        size = reporter.size_mb
        if size is None and output_path.exists():
            size = output_path.stat().st_size / (1024 * 1024)
        if size:
            self.downloads.record_size(name, size)
            self.events.success(f"Downloaded {name} ({size:.1f} MB)")
        else:
            self.events.success(f"Downloaded {name}")
        return True

    def _download_datasets(self, names: tuple[str, ...] | None = None) -> bool:
        names = names or self.downloads.required
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.events.error(f"Cannot create data directory {self.data_dir}: {e}")
            return False

        pending = [n for n in names if not self.downloads.is_completed(n)]
        if pending:
            self.events.info(f"Downloading {len(pending)} dataset(s): {', '.join(pending)}")

        for name in names:
            self.checkpoint()
            if self.downloads.is_completed(name):
                self.events.info(f"{name} already downloaded, skipping")
                continue
            if not self._download_one(name):
                return False
        return True

    def _train(self) -> bool:
        missing = [n for n in ("train", "validation") if not self._dataset_available(n)]
        if missing:
            self.events.error(f"Missing training data ({', '.join(missing)}). Download first!")
            return False
        try:
            self.model_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.events.error(f"Cannot create model directory {self.model_dir}: {e}")
            return False

        model = self.config.primary_model
        self.events.info(f"Training {model}")
        ok, _, _ = self._execute(
            OperationKind.TRAINING,
            f"Training {model}",
            lambda r: self.pipeline.train(self.data_dir, self.model_dir, r),
            name=model,
        )
        if ok:
            self.trained = True
            self.last_predictions = None
            self.events.success(f"Training complete: {model}")
        return ok

    def _predict(self) -> bool:
        if not self._models_available():
            self.events.error("No trained models available. Train first!")
            return False
        if not self._dataset_available("live"):
            self.events.warning("Live data missing, downloading it first")
            if not self._download_datasets(("live",)):
                return False

        model = self.config.primary_model
        output_path = self.data_dir / "predictions" / f"{model}.csv"
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.events.error(f"Cannot create predictions directory: {e}")
            return False

        ok, result, _ = self._execute(
            OperationKind.PREDICTING,
            f"Generating predictions with {model}",
            lambda r: self.pipeline.predict(self.data_dir, self.model_dir, output_path, r),
            name=model,
        )
        if ok:
            self.last_predictions = Path(result) if result else output_path
            self.events.success(f"Predictions written to {self.last_predictions}")
        return ok

    def _upload(self) -> bool:
        predictions = self.last_predictions
        if predictions is None:
            self.events.error("No predictions to upload")
            return False

        model = self.config.primary_model
        ok, submission_id, _ = self._execute(
            OperationKind.UPLOADING,
            f"Uploading predictions for {model}",
            lambda r: self.client.submit_predictions(model, predictions, r),
            name=model,
        )
        if ok:
            self.last_submission_id = str(submission_id) if submission_id else None
            self.events.success(f"Predictions submitted: {self.last_submission_id or 'ok'}")
        return ok

    def _submit(self) -> bool:
        """Upload the latest predictions, generating them first when needed."""
        if self.last_predictions is None or not self.last_predictions.exists():
            if not self._predict():
                return False
        return self._upload()

    # Chains

    def _cooldown(self) -> bool:
        """Wait before the next chained step; False when stopping."""
        if self.auto_chain_delay > 0:
            return not self._stop.wait(self.auto_chain_delay)
        return not self._stop.is_set()

    def _download_chain(self) -> bool:
        if not self._download_datasets():
            return False

        if not self.downloads.all_required_completed():
            done = len(self.downloads.completed)
            self.events.info(f"Downloaded {done}/{len(self.downloads.required)} datasets")
            return True

        try:
            if not self.config.auto_train_after_download:
                self.events.info("All datasets downloaded. Press 't' to train")
                return True
            if self.progress.current is OperationKind.TRAINING:
                return True

            self.events.info(
                f"All datasets downloaded. Auto-training starts in {self.auto_chain_delay:g}s"
            )
            if not self._cooldown():
                return True
            return self._training_chain()
        finally:
            self._end_download_cycle()

    def _end_download_cycle(self) -> None:
        """Forget this cycle's downloads so the next one fetches fresh data."""
        logger.debug("Download cycle finished, resetting tracker")
        self.downloads.reset()

    def _training_chain(self) -> bool:
        if not self._train():
            return False
        if not self.config.auto_submit:
            return True

        self.events.info(f"Auto-submit enabled. Submitting in {self.auto_chain_delay:g}s")
        if not self._cooldown():
            return True
        return self._submit()

    def _full_pipeline(self) -> bool:
        started = time.time()
        self.events.info("Starting full pipeline")
        steps = {
            "download": self._download_datasets,
            "train": self._train,
            "predict": self._predict,
            "upload": self._upload,
        }

        try:
            for index, stage in enumerate(PIPELINE_STEPS, 1):
                self.checkpoint()
                self._set_pipeline(
                    PipelineStatus(active=True, stage=stage, step=index, started_at=started)
                )
                self.events.info(f"Step {index}/{len(PIPELINE_STEPS)}: {stage}")
                if not steps[stage]():
                    self.events.error(f"Pipeline stopped at step {index} ({stage})")
                    return False
        finally:
            if self.downloads.all_required_completed():
                self._end_download_cycle()

        self.events.success(f"Pipeline completed in {time.time() - started:.1f}s")
        return True

"""Shared fixtures: fake collaborators, a fast config and synchronous spawning."""

import io
import threading
from pathlib import Path
from types import SimpleNamespace

import pytest

from tournament_tui.config import PipelineConfig, TUISettings
from tournament_tui.events import EventLog
from tournament_tui.progress import DownloadTracker, ProgressState
from tournament_tui.runner import OperationRunner
from tournament_tui.terminal import TerminalDriver


class FakeClient:
    """Tournament client that reports four progress steps per call."""

    def __init__(self, fail=None, raise_on=None, gate=None, on_progress=None):
        self.calls = []
        self.fail = dict(fail or {})
        self.raise_on = dict(raise_on or {})
        self.gate = gate
        self.on_progress = on_progress
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def download_dataset(self, name, output_path, progress_callback):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append(("download", name))
            progress_callback("start", {"name": name})
            if self.gate is not None:
                self.gate.wait(5)
            if name in self.raise_on:
                raise RuntimeError(self.raise_on[name])
            for pct in (25, 50, 75, 100):
                if name in self.fail and pct == 50:
                    progress_callback("error", {"name": name, "error": self.fail[name]})
                progress_callback(
                    "progress",
                    {"name": name, "progress": pct, "current_mb": pct / 10, "total_mb": 10.0},
                )
                if self.on_progress is not None:
                    self.on_progress(name, pct)
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            Path(output_path).write_text(name)
            progress_callback("complete", {"name": name, "size_mb": 10.0})
            return output_path
        finally:
            with self._lock:
                self.in_flight -= 1

    def submit_predictions(self, model_name, predictions_path, progress_callback):
        self.calls.append(("upload", model_name))
        if "upload" in self.fail:
            progress_callback("error", {"error": self.fail["upload"]})
        progress_callback("progress", {"progress": 100, "current_mb": 1.0, "total_mb": 1.0})
        return "sub-123"


class FakePipeline:
    """Model pipeline that records train/predict calls."""

    def __init__(self, fail=None):
        self.calls = []
        self.fail = dict(fail or {})

    def train(self, data_dir, model_dir, progress_callback):
        self.calls.append("train")
        if "train" in self.fail:
            progress_callback("error", {"error": self.fail["train"]})
        for epoch in (1, 2):
            progress_callback(
                "progress",
                {"progress": epoch * 50, "epoch": epoch, "total_epochs": 2, "loss": 0.1},
            )
        Path(model_dir).mkdir(parents=True, exist_ok=True)
        (Path(model_dir) / "default_model.model").write_text("model")

    def predict(self, data_dir, model_dir, output_path, progress_callback):
        self.calls.append("predict")
        if "predict" in self.fail:
            progress_callback("error", {"error": self.fail["predict"]})
        progress_callback("progress", {"progress": 100, "rows_processed": 10, "total_rows": 10})
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text("id,prediction\n")
        return output_path

    @property
    def train_calls(self):
        return self.calls.count("train")


def sync_spawn(target, name):
    """Run the task inline and hand back a finished thread stand-in."""
    target()
    return SimpleNamespace(name=name, is_alive=lambda: False, join=lambda timeout=None: None)


def make_config(tmp_path, auto_submit=False, **tui):
    tui.setdefault("auto_chain_delay", 0.0)
    tui.setdefault("auto_start_delay", 0.0)
    return PipelineConfig(
        data_dir=str(tmp_path / "data"),
        model_dir=str(tmp_path / "models"),
        auto_submit=auto_submit,
        tui=TUISettings(**tui),
    )


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def make_runner(tmp_path):
    def _make(client=None, pipeline=None, config=None, spawn=None, **config_kwargs):
        cfg = config or make_config(tmp_path, **config_kwargs)
        return OperationRunner(
            ProgressState(),
            EventLog(capacity=cfg.tui.max_events),
            DownloadTracker(),
            cfg,
            client or FakeClient(),
            pipeline or FakePipeline(),
            spawn=spawn,
        )

    return _make


def mark_completed(tracker, *names):
    for name in names:
        tracker.start(name)
        tracker.finish(name)


def messages(events, level=None):
    return [e.message for e in events.recent() if level is None or e.level.value == level]


class ScriptedTerminal(TerminalDriver):
    """Terminal driver that replays a fixed list of keys."""

    def __init__(self, keys=()):
        super().__init__(io.StringIO(), io.StringIO())
        self.keys = list(keys)
        self.enabled = 0
        self.disabled = 0

    def enable_raw_mode(self):
        self.enabled += 1
        self.raw = True

    def disable_raw_mode(self):
        self.disabled += 1
        self.raw = False

    def read_key_nonblocking(self):
        return self.keys.pop(0) if self.keys else None

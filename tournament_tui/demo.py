"""
Simulated collaborators for demo mode.

They write small placeholder files and report realistic progress through
the callback, sleeping between steps so the dashboard has something to show.
"""

import logging
import random
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from tournament_tui.collaborators import ProgressCallback

logger = logging.getLogger(__name__)

DATASET_SIZES_MB = {"train": 1250.0, "validation": 480.0, "live": 12.5}


class SimulatedTournamentClient:
    """Fake tournament API: downloads and submissions"""

    def __init__(
        self,
        step_delay: float = 0.1,
        steps: int = 20,
        fail_on: set[str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.step_delay = step_delay
        self.steps = max(1, steps)
        self.fail_on = set(fail_on or ())
        self._sleep = sleep
        self.downloads: list[str] = []
        self.submissions: list[str] = []

    def download_dataset(self, name: str, output_path: Path, progress_callback: ProgressCallback):
        self.downloads.append(name)
        total_mb = DATASET_SIZES_MB.get(name, 100.0)
        progress_callback("start", {"name": name, "total_mb": total_mb})

        for step in range(1, self.steps + 1):
            self._sleep(self.step_delay)
            if name in self.fail_on and step > self.steps // 2:
                progress_callback("error", {"name": name, "error": "network timeout"})
                return None

            pct = step / self.steps * 100
            current_mb = total_mb * step / self.steps
            speed = current_mb / max(step * self.step_delay, 0.001)
            progress_callback(
                "progress",
                {
                    "name": name,
                    "progress": pct,
                    "current_mb": current_mb,
                    "total_mb": total_mb,
                    "speed_mb_s": speed,
                    "eta_seconds": (self.steps - step) * self.step_delay,
                },
            )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(f"simulated {name} dataset\n")
        progress_callback("complete", {"name": name, "size_mb": total_mb})
        return output_path

    def submit_predictions(
        self, model_name: str, predictions_path: Path, progress_callback: ProgressCallback
    ) -> str:
        if "upload" in self.fail_on:
            progress_callback("error", {"error": "upload rejected"})
            return ""

        total_mb = 2.0
        progress_callback("start", {"name": model_name, "total_mb": total_mb})
        for step in range(1, self.steps + 1):
            self._sleep(self.step_delay)
            progress_callback(
                "progress",
                {
                    "progress": step / self.steps * 100,
                    "current_mb": total_mb * step / self.steps,
                    "total_mb": total_mb,
                },
            )

        submission_id = uuid.uuid4().hex[:12]
        self.submissions.append(submission_id)
        progress_callback("complete", {"name": model_name})
        return submission_id


class SimulatedPipeline:
    """Fake training and prediction"""

    def __init__(
        self,
        step_delay: float = 0.1,
        epochs: int = 10,
        total_rows: int = 50_000,
        models: tuple[str, ...] = ("default_model",),
        fail_on: set[str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        seed: int | None = None,
    ):
        self.step_delay = step_delay
        self.epochs = max(1, epochs)
        self.total_rows = total_rows
        self.models = models
        self.fail_on = set(fail_on or ())
        self._sleep = sleep
        self._random = random.Random(seed)
        self.train_calls = 0
        self.predict_calls = 0

    def train(self, data_dir: Path, model_dir: Path, progress_callback: ProgressCallback):
        self.train_calls += 1
        progress_callback("start", {"name": self.models[0]})

        loss = 0.25
        for epoch in range(1, self.epochs + 1):
            self._sleep(self.step_delay)
            if "train" in self.fail_on and epoch > self.epochs // 2:
                progress_callback("error", {"error": "training diverged"})
                return None
            loss *= 0.9 + self._random.random() * 0.05
            progress_callback(
                "progress",
                {
                    "progress": epoch / self.epochs * 100,
                    "epoch": epoch,
                    "total_epochs": self.epochs,
                    "loss": loss,
                    "val_score": 0.02 + (1 - loss) * 0.01,
                },
            )

        model_dir = Path(model_dir)
        model_dir.mkdir(parents=True, exist_ok=True)
        for model in self.models:
            (model_dir / f"{model}.model").write_text(f"simulated model {model}\n")
        progress_callback("complete", {"name": self.models[0]})
        return list(self.models)

    def predict(
        self,
        data_dir: Path,
        model_dir: Path,
        output_path: Path,
        progress_callback: ProgressCallback,
    ) -> Path:
        self.predict_calls += 1
        progress_callback("start", {"name": self.models[0], "total_rows": self.total_rows})

        batches = 10
        for batch in range(1, batches + 1):
            self._sleep(self.step_delay)
            if "predict" in self.fail_on:
                progress_callback("error", {"error": "live data unreadable"})
                return Path(output_path)
            rows = self.total_rows * batch // batches
            progress_callback(
                "progress",
                {
                    "progress": batch / batches * 100,
                    "rows_processed": rows,
                    "total_rows": self.total_rows,
                },
            )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text("id,prediction\n")
        logger.debug(f"Wrote simulated predictions to {output_path}")
        progress_callback("complete", {"name": self.models[0]})
        return output_path

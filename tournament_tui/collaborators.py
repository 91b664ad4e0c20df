"""
Interfaces of the external collaborators driven by the dashboard.

The tournament API client and the ML pipeline are not part of this package;
the dashboard only needs them to accept a progress callback and either
return normally or raise.
"""

from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


class ProgressPhase(Enum):
    """Phase tag passed to progress callbacks"""

    START = "start"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"

    @classmethod
    def parse(cls, value: "ProgressPhase | str") -> "ProgressPhase":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


# Field names a collaborator may report; any subset may be present.
PROGRESS_FIELDS = frozenset(
    {
        "name",
        "progress",
        "current_mb",
        "total_mb",
        "size_mb",
        "epoch",
        "total_epochs",
        "loss",
        "val_score",
        "rows_processed",
        "total_rows",
        "speed_mb_s",
        "eta_seconds",
        "error",
    }
)

ProgressCallback = Callable[..., None]


@runtime_checkable
class TournamentClient(Protocol):
    """Dataset download and prediction upload."""

    def download_dataset(
        self, name: str, output_path: Path, progress_callback: ProgressCallback
    ) -> Any: ...

    def submit_predictions(
        self, model_name: str, predictions_path: Path, progress_callback: ProgressCallback
    ) -> str: ...


@runtime_checkable
class ModelPipeline(Protocol):
    """Model training and live prediction."""

    def train(
        self, data_dir: Path, model_dir: Path, progress_callback: ProgressCallback
    ) -> Any: ...

    def predict(
        self,
        data_dir: Path,
        model_dir: Path,
        output_path: Path,
        progress_callback: ProgressCallback,
    ) -> Path: ...

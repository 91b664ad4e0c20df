"""Terminal dashboard for the tournament data/training/submission pipeline."""

__version__ = "0.3.0"

from tournament_tui.config import PipelineConfig, load_config
from tournament_tui.dashboard import ControllerState, DashboardController, run_dashboard

__all__ = [
    "__version__",
    "ControllerState",
    "DashboardController",
    "PipelineConfig",
    "load_config",
    "run_dashboard",
]

"""
Pipeline Configuration
======================

YAML-backed, read-only configuration for the tournament dashboard:
data/model directories, model names, and the auto-chain flags
(auto-start, auto-train after download, auto-submit).
"""

from tournament_tui.exceptions import ConfigError, ValidationError
from .settings import (
    DEFAULT_CONFIG_PATH,
    REQUIRED_DATASETS,
    PipelineConfig,
    TUISettings,
    load_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "REQUIRED_DATASETS",
    "PipelineConfig",
    "TUISettings",
    "load_config",
    "ConfigError",
    "ValidationError",
]

"""
Pipeline configuration for the tournament dashboard.

Configuration lives in a YAML file (``config.yaml`` by default) with an
optional ``tui`` section for dashboard behaviour. A handful of environment
variables override file values so the dashboard can be tuned without
editing the file.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from tournament_tui.exceptions import ConfigError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
REQUIRED_DATASETS = ("train", "validation", "live")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class TUISettings:
    """Dashboard behaviour knobs (the ``tui`` section)."""

    auto_start_pipeline: bool = False
    auto_start_delay: float = 2.0
    auto_train_after_download: bool = True
    auto_chain_delay: float = 2.0
    refresh_active: float = 0.2
    refresh_idle: float = 1.0
    system_poll_interval: float = 2.0
    tick_interval: float = 0.01
    max_events: int = 100
    event_rows: int = 15
    debug: bool = False


@dataclass(frozen=True)
class PipelineConfig:
    """Read-only pipeline configuration consumed by the dashboard."""

    data_dir: str = "data"
    model_dir: str = "models"
    models: tuple[str, ...] = ("default_model",)
    auto_submit: bool = False
    tui: TUISettings = field(default_factory=TUISettings)

    @property
    def auto_start_pipeline(self) -> bool:
        return self.tui.auto_start_pipeline

    @property
    def auto_train_after_download(self) -> bool:
        return self.tui.auto_train_after_download

    @property
    def primary_model(self) -> str:
        return self.models[0] if self.models else "default_model"

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValidationError: If any value is out of range
        """
        intervals = {
            "auto_start_delay": self.tui.auto_start_delay,
            "auto_chain_delay": self.tui.auto_chain_delay,
            "refresh_active": self.tui.refresh_active,
            "refresh_idle": self.tui.refresh_idle,
            "system_poll_interval": self.tui.system_poll_interval,
            "tick_interval": self.tui.tick_interval,
        }
        for name, value in intervals.items():
            if value < 0:
                raise ValidationError(f"tui.{name} must be non-negative, got {value}")

        if self.tui.max_events < 1:
            raise ValidationError(f"tui.max_events must be at least 1, got {self.tui.max_events}")
        if self.tui.event_rows < 1:
            raise ValidationError(f"tui.event_rows must be at least 1, got {self.tui.event_rows}")
        if not self.models:
            raise ValidationError("At least one model name is required")


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(f"{name} must be a boolean, got {value!r}")


def _coerce(name: str, expected: type, value: Any) -> Any:
    """Coerce a raw YAML/env value to the dataclass field type."""
    if expected is bool:
        return _parse_bool(name, value)
    if expected is int:
        if isinstance(value, bool):
            raise ValidationError(f"{name} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer, got {value!r}")
    if expected is float:
        if isinstance(value, bool):
            raise ValidationError(f"{name} must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be a number, got {value!r}")
    if expected is str:
        return str(value)
    return value


def _build_tui(raw: dict[str, Any]) -> TUISettings:
    if not isinstance(raw, dict):
        raise ValidationError("The 'tui' section must be a mapping")

    known = {f.name: f for f in fields(TUISettings)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Ignoring unknown tui setting: %s", key)
            continue
        values[key] = _coerce(f"tui.{key}", type(getattr(TUISettings(), key)), value)
    return TUISettings(**values)


def _build_config(raw: dict[str, Any]) -> PipelineConfig:
    if not isinstance(raw, dict):
        raise ValidationError("Configuration root must be a mapping")

    values: dict[str, Any] = {}

    for key in ("data_dir", "model_dir"):
        if key in raw:
            values[key] = _coerce(key, str, raw[key])

    if "auto_submit" in raw:
        values["auto_submit"] = _parse_bool("auto_submit", raw["auto_submit"])

    if "models" in raw:
        models = raw["models"]
        if isinstance(models, str):
            models = [models]
        if not isinstance(models, list):
            raise ValidationError("models must be a list of model names")
        values["models"] = tuple(str(m) for m in models)

    # Older configs kept the auto flags at the top level
    tui_raw = dict(raw.get("tui") or {})
    for legacy_key in ("auto_start_pipeline", "auto_train_after_download"):
        if legacy_key in raw and legacy_key not in tui_raw:
            tui_raw[legacy_key] = raw[legacy_key]
    values["tui"] = _build_tui(tui_raw)

    return PipelineConfig(**values)


def _apply_env_overrides(config: PipelineConfig) -> PipelineConfig:
    """Apply environment variable overrides."""
    updates: dict[str, Any] = {}

    if os.environ.get("TOURNAMENT_DATA_DIR"):
        updates["data_dir"] = os.environ["TOURNAMENT_DATA_DIR"]
    if os.environ.get("TOURNAMENT_MODEL_DIR"):
        updates["model_dir"] = os.environ["TOURNAMENT_MODEL_DIR"]
    if os.environ.get("TOURNAMENT_AUTO_SUBMIT"):
        updates["auto_submit"] = _parse_bool(
            "TOURNAMENT_AUTO_SUBMIT", os.environ["TOURNAMENT_AUTO_SUBMIT"]
        )
    if os.environ.get("TUI_DEBUG"):
        updates["tui"] = replace(config.tui, debug=_parse_bool("TUI_DEBUG", os.environ["TUI_DEBUG"]))

    return replace(config, **updates) if updates else config


def load_config(path: str | Path | None = None) -> PipelineConfig:
    """
    Load pipeline configuration from YAML.

    Args:
        path: Config file path. Defaults to ``config.yaml`` in the working
              directory; a missing file yields the defaults.

    Returns:
        Validated PipelineConfig

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    config_path = Path(path) if path else Path(DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if path:
            raise ConfigError(f"Config file not found: {config_path}", path=config_path)
        logger.info("No config file at %s, using defaults", config_path)
        config = PipelineConfig()
    else:
        try:
            with open(config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}", path=config_path) from e
        except OSError as e:
            raise ConfigError(f"Cannot read {config_path}: {e}", path=config_path) from e
        config = _build_config(raw)

    config = _apply_env_overrides(config)
    config.validate()
    logger.debug("Loaded configuration: %s", config)
    return config

"""Application configuration loaded from files and the environment."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "data/app-state.json"
DEFAULT_TICK_SECONDS = 45.0
DEFAULT_LOG_LEVEL = "INFO"

ENV_PREFIX = "LEAD_NAVIGATOR_"
_ENV_KEYS = {
    "state_file": f"{ENV_PREFIX}STATE_FILE",
    "background_tick_seconds": f"{ENV_PREFIX}TICK_SECONDS",
    "log_level": f"{ENV_PREFIX}LOG_LEVEL",
}


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


@dataclass(slots=True)
class AppConfig:
    state_file: Path = Path(DEFAULT_STATE_FILE)
    background_tick_seconds: float = DEFAULT_TICK_SECONDS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        config = cls()
        if data.get("state_file"):
            config.state_file = Path(str(data["state_file"]))
        if data.get("background_tick_seconds") is not None:
            config.background_tick_seconds = _parse_seconds(data["background_tick_seconds"])
        if data.get("log_level"):
            config.log_level = str(data["log_level"]).upper()
        return config


def _parse_seconds(value: Any) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"background_tick_seconds must be a number, got {value!r}") from exc
    if seconds <= 0:
        raise ConfigurationError("background_tick_seconds must be positive")
    return seconds


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid JSON: {exc}") from exc
    else:
        import yaml

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping")
    return data


def load_app_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Build the :class:`AppConfig` from an optional file, then environment overrides."""

    data: Dict[str, Any] = load_configuration(path) if path else {}
    env = os.environ if environ is None else environ
    for key, variable in _ENV_KEYS.items():
        value = env.get(variable)
        if value:
            LOGGER.debug("Overriding %s from %s", key, variable)
            data[key] = value
    return AppConfig.from_mapping(data)


__all__ = [
    "AppConfig",
    "ConfigurationError",
    "DEFAULT_STATE_FILE",
    "load_app_config",
    "load_configuration",
]

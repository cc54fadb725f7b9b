"""
Configuration loading for the LogFlow dashboard client.

Settings come from three layers, later layers winning:
defaults, an optional YAML file, then environment variables.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, TypedDict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .errors import InvalidInput
from .timeutil import DEFAULT_TIMEZONE


class Config(TypedDict):
    """Configuration dictionary type."""

    api_base_url: str
    request_timeout_seconds: float
    timezone: str
    heartbeat_seconds: float
    sidebar_poll_seconds: float
    live_feed_poll_seconds: float
    metrics_poll_seconds: float
    overview_poll_seconds: float
    sidebar_limit: int
    live_feed_limit: int
    crash_window_minutes: int
    host: str
    port: int
    log_level: str


DEFAULTS: Dict[str, Any] = {
    "api_base_url": "http://localhost:8080",
    "request_timeout_seconds": 10.0,
    "timezone": DEFAULT_TIMEZONE,
    "heartbeat_seconds": 5.0,
    "sidebar_poll_seconds": 3.0,
    "live_feed_poll_seconds": 1.5,
    "metrics_poll_seconds": 1.5,
    "overview_poll_seconds": 5.0,
    "sidebar_limit": 50,
    "live_feed_limit": 100,
    "crash_window_minutes": 7,
    "host": "127.0.0.1",
    "port": 8501,
    "log_level": "INFO",
}

# Config key -> (environment variable, converter)
ENV_VARS = {
    "api_base_url": ("LOGFLOW_API_URL", str),
    "request_timeout_seconds": ("LOGFLOW_REQUEST_TIMEOUT_SECONDS", float),
    "timezone": ("LOGFLOW_TIMEZONE", str),
    "heartbeat_seconds": ("LOGFLOW_HEARTBEAT_SECONDS", float),
    "sidebar_poll_seconds": ("LOGFLOW_SIDEBAR_POLL_SECONDS", float),
    "live_feed_poll_seconds": ("LOGFLOW_LIVE_FEED_POLL_SECONDS", float),
    "metrics_poll_seconds": ("LOGFLOW_METRICS_POLL_SECONDS", float),
    "overview_poll_seconds": ("LOGFLOW_OVERVIEW_POLL_SECONDS", float),
    "sidebar_limit": ("LOGFLOW_SIDEBAR_LIMIT", int),
    "live_feed_limit": ("LOGFLOW_LIVE_FEED_LIMIT", int),
    "crash_window_minutes": ("LOGFLOW_CRASH_WINDOW_MINUTES", int),
    "host": ("LOGFLOW_WEB_HOST", str),
    "port": ("LOGFLOW_WEB_PORT", int),
    "log_level": ("LOGFLOW_LOG_LEVEL", str),
}

DEFAULT_CONFIG_FILE = Path("logflow.yaml")


def load_yaml_config(path: Optional[Path]) -> Dict[str, Any]:
    """
    Read the optional YAML config file.

    Args:
        path: Explicit file path, or None to use LOGFLOW_CONFIG / ./logflow.yaml.

    Returns:
        Mapping of config keys found in the file (empty if no file exists).
    """
    if path is None:
        env_path = os.getenv("LOGFLOW_CONFIG")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_FILE
        if not env_path and not path.exists():
            return {}

    if not path.exists():
        raise InvalidInput(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise InvalidInput(f"Config file {path} must contain a mapping")

    unknown = set(data) - set(DEFAULTS)
    if unknown:
        raise InvalidInput(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return data


def _convert(key: str, value: Any) -> Any:
    converter = ENV_VARS[key][1]
    try:
        return converter(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Invalid value for {key}: {value!r}") from e


def get_config(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Load configuration from defaults, YAML file and environment variables.

    Args:
        path: Optional YAML config file.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Config dictionary with all settings.

    Raises:
        InvalidInput: If a value cannot be converted or the timezone is unknown.
    """
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = dict(DEFAULTS)
    values.update(load_yaml_config(path))

    for key, (env_name, _) in ENV_VARS.items():
        if env_name in environ:
            values[key] = environ[env_name]

    values = {key: _convert(key, value) for key, value in values.items()}
    values["api_base_url"] = values["api_base_url"].rstrip("/")

    try:
        ZoneInfo(values["timezone"])
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInput(f"Unknown timezone: {values['timezone']}") from e

    if values["request_timeout_seconds"] <= 0:
        raise InvalidInput("request_timeout_seconds must be positive")

    return Config(**values)

"""Configuration loading and validation"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# Default config search paths (in order)
CONFIG_PATHS = [
    Path("config.yaml"),
    Path.home() / ".config" / "plant-monitor" / "config.yaml",
    Path("/etc/plant-monitor/config.yaml"),
]

DEFAULT_BASE_URL = "http://localhost:5000/api"


def get_env(key: str, default: str = "") -> str:
    """Get an environment variable as a string."""
    return os.environ.get(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """Get an environment variable as an integer."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get an environment variable as a float."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


@dataclass
class ApiConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 10.0
    max_retries: int = 2
    retry_delay: float = 1.0  # seconds, constant between attempts


@dataclass
class PollingConfig:
    """Refresh intervals (seconds) for the per-device polling loops"""
    latest: float = 3.0
    realtime: float = 5.0
    historical: float = 15.0
    history_limit: int = 20  # Samples kept for the historical table


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = ""


@dataclass
class Config:
    api: ApiConfig = field(default_factory=ApiConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations"""
    for path in CONFIG_PATHS:
        if path.exists():
            return path
    return None


def apply_env_overrides(config: Config) -> Config:
    """Override config values from PLANT_MONITOR_* environment variables"""
    config.api.base_url = get_env("PLANT_MONITOR_API_URL", config.api.base_url)
    config.api.max_retries = max(
        0, get_env_int("PLANT_MONITOR_MAX_RETRIES", config.api.max_retries)
    )
    config.api.retry_delay = max(
        0.0, get_env_float("PLANT_MONITOR_RETRY_DELAY", config.api.retry_delay)
    )
    config.logging.level = get_env("PLANT_MONITOR_LOG_LEVEL", config.logging.level)
    return config


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file, then apply environment overrides"""
    if config_path:
        path = Path(config_path)
    else:
        path = find_config_file()

    if path is None or not path.exists():
        logger.warning("No config file found, using defaults")
        return apply_env_overrides(Config())

    logger.info("Loading config from: %s", path)

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    config = Config(
        api=ApiConfig(**data.get("api", {})),
        polling=PollingConfig(**data.get("polling", {})),
        logging=LoggingConfig(**data.get("logging", {})),
    )
    return apply_env_overrides(config)

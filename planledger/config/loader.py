"""Configuration loader with validation."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import PlanledgerConfig


class ConfigError(Exception):
    """Configuration error."""

    pass


def load_config(config_path: Path) -> PlanledgerConfig:
    """Load and validate configuration from YAML file.

    A missing file yields the defaults.

    Args:
        config_path: Path to config YAML file

    Returns:
        Validated PlanledgerConfig instance

    Raises:
        ConfigError: If config file is invalid
    """
    if not config_path.exists():
        return PlanledgerConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if data is None:
        return PlanledgerConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_path}")

    # Resolve log dir relative to config file
    if "logging" in data and isinstance(data["logging"], dict) and "log_dir" in data["logging"]:
        log_dir = Path(data["logging"]["log_dir"])
        if not log_dir.is_absolute():
            data["logging"]["log_dir"] = (config_path.parent / log_dir).resolve()

    try:
        return PlanledgerConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def create_default_config(config_path: Path) -> None:
    """Create default configuration file.

    Args:
        config_path: Path where config should be created
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    default_config = {
        "workspace": {
            "dir_name": ".planledger",
            "project_id": "",
        },
        "logging": {
            "level": "INFO",
            "log_dir": "logs",
            "rotation_mb": 10,
            "retention_days": 7,
            "file_logging": False,
        },
    }

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

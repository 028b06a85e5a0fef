"""Harness configuration with YAML support."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import Field, field_validator

from envsets.schemas import BaseSchema

CONFIG_ENV_VAR = "EXOMAT_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/exomat/config.yaml")
DEFAULT_TEMPLATE_DIR = "~/.config/exomat/template"


class HarnessConfig(BaseSchema):
    """User-level defaults for skeleton, run and make-table."""

    repetitions: int = Field(default=1, ge=1)
    log_level: str = "INFO"

    # strftime pattern, {name} is replaced by the experiment source name
    series_name_format: str = "{name}-%Y-%m-%d-%H-%M-%S"

    # copied into new experiment sources when it exists
    template_dir: str | None = DEFAULT_TEMPLATE_DIR

    keep_trial_dir: bool = False
    na_value: str = "NA"

    @field_validator("log_level")
    @classmethod
    def log_level_upper(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return value


def load_config(yaml_path: str | Path) -> HarnessConfig:
    """Load harness configuration from YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        HarnessConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or contains invalid fields
    """
    yaml_path = Path(yaml_path).expanduser()

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    try:
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

    if data is None:
        return HarnessConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return HarnessConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def resolve_config(yaml_path: str | Path | None = None) -> HarnessConfig:
    """Load the explicit path, else $EXOMAT_CONFIG, else the user config if present."""
    if yaml_path is not None:
        return load_config(yaml_path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return load_config(env_path)
    if DEFAULT_CONFIG_PATH.expanduser().is_file():
        return load_config(DEFAULT_CONFIG_PATH)
    return HarnessConfig()


def save_config(config: HarnessConfig, yaml_path: str | Path) -> None:
    """Save harness configuration to YAML file for reproducibility.

    Args:
        config: HarnessConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)

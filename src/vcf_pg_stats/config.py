"""Configuration file support for vcf-pg-stats."""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class StatsOptions:
    """Options for stats creation and loading."""

    batch_size: int = 100
    workers: int = 6
    overwrite: bool = False
    update: bool = False
    aggregation_mapping: dict[str, str] | None = None
    file_id: int | None = None
    load_batch_size: int = 1000
    log_level: str = "INFO"


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

POSITIVE_INT_KEYS = ("batch_size", "workers", "load_batch_size")

BOOL_KEYS = ("overwrite", "update")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


def validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ConfigValidationError: If any configuration value is invalid.
    """
    for key in POSITIVE_INT_KEYS:
        if key in config_dict:
            value = config_dict[key]
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigValidationError(
                    f"{key} must be an integer, got {type(value).__name__}"
                )
            if value <= 0:
                raise ConfigValidationError(f"{key} must be positive, got {value}")

    for key in BOOL_KEYS:
        if key in config_dict and not isinstance(config_dict[key], bool):
            raise ConfigValidationError(
                f"{key} must be a boolean, got {type(config_dict[key]).__name__}"
            )

    if config_dict.get("file_id") is not None and not isinstance(config_dict["file_id"], int):
        raise ConfigValidationError(
            f"file_id must be an integer, got {type(config_dict['file_id']).__name__}"
        )

    mapping = config_dict.get("aggregation_mapping")
    if mapping is not None:
        if not isinstance(mapping, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
        ):
            raise ConfigValidationError("aggregation_mapping must be a table of strings")

    if "log_level" in config_dict:
        log_level = config_dict["log_level"]
        if not isinstance(log_level, str):
            raise ConfigValidationError(
                f"log_level must be a string, got {type(log_level).__name__}"
            )
        if log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"log_level must be one of {VALID_LOG_LEVELS}, got '{log_level}'"
            )


def load_config(config_path: Path, overrides: dict[str, Any] | None = None) -> StatsOptions:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to the TOML configuration file.
        overrides: Optional dict of values to override loaded config.

    Returns:
        StatsOptions instance with loaded values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If any configuration value is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "rb") as f:
        toml_data = tomllib.load(f)

    config_dict = toml_data.get("vcf_pg_stats", {})

    if overrides:
        config_dict.update(overrides)

    validate_config(config_dict)

    valid_fields = set(StatsOptions.__dataclass_fields__)
    unknown = set(config_dict) - valid_fields
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(sorted(unknown)))

    filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

    return StatsOptions(**filtered_config)

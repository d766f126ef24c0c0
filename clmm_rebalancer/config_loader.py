"""
Configuration loading and normalization for the rebalance bot.

Reads a YAML settings file, applies environment overrides (optionally from a
.env file) and validates the result against the Pydantic schema.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from .config_schema import BotSettings, RebalanceConfig, validate_bot_settings
from .exceptions import ConfigurationError, ValidationError

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "REBALANCER_POSITION_ID": (None, "position_id"),
    "REBALANCER_CHECK_INTERVAL": (None, "check_interval_seconds"),
    "REBALANCER_SLIPPAGE_TOLERANCE": ("rebalance", "slippage_tolerance"),
    "REBALANCER_RANGE_WIDTH_PERCENT": ("rebalance", "range_width_percent"),
    "REBALANCER_MIN_INTERVAL": ("rebalance", "min_rebalance_interval"),
    "REBALANCER_GAS_BUDGET": ("rebalance", "gas_budget"),
    "REBALANCER_AUTO_REBALANCE": ("rebalance", "auto_rebalance"),
}


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping in {config_path}",
            {"type": type(config_dict).__name__},
        )
    return config_dict


def apply_env_overrides(
    config_dict: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Overlay REBALANCER_* environment variables onto a raw settings dict.

    Values stay strings; the schema coerces them to the right types.
    """
    environ = os.environ if environ is None else environ
    result = dict(config_dict)

    for env_key, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_key)
        if value is None or value == "":
            continue
        if section is None:
            result[key] = value
        else:
            nested = dict(result.get(section) or {})
            nested[key] = value
            result[section] = nested

    return result


def _format_pydantic_error(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def load_bot_settings(
    config_path: Union[str, Path],
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Union[str, Path]] = None,
) -> BotSettings:
    """
    Load, override and validate bot settings.

    Args:
        config_path: Path to the YAML settings file
        environ: Environment mapping (defaults to os.environ after loading .env)
        dotenv_path: Optional .env file to load before reading the environment

    Raises:
        ConfigurationError: If the file cannot be loaded
        ValidationError: If the settings fail schema validation
    """
    if environ is None:
        load_dotenv(dotenv_path)

    config_dict = apply_env_overrides(load_yaml_config(config_path), environ)

    try:
        return validate_bot_settings(config_dict)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Configuration validation failed: {_format_pydantic_error(e)}",
            {"config_file": str(config_path)},
        )


def build_rebalance_config(values: Optional[Mapping[str, Any]] = None) -> RebalanceConfig:
    """Validate a plain mapping into a RebalanceConfig, raising ConfigurationError."""
    try:
        return RebalanceConfig(**dict(values or {}))
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid rebalance config: {_format_pydantic_error(e)}",
            {"fields": sorted((values or {}).keys())},
        )


def merge_rebalance_config(
    config: RebalanceConfig, changes: Mapping[str, Any]
) -> RebalanceConfig:
    """Apply a partial update, rejecting it whole if any field is invalid."""
    try:
        return config.merged(**dict(changes))
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Rejected config update: {_format_pydantic_error(e)}",
            {"fields": sorted(changes.keys())},
        )


def get_default_settings(position_id: str = "0xpaper_position") -> BotSettings:
    """Get default settings for testing or fallback purposes."""
    return BotSettings(position_id=position_id)

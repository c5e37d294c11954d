"""
Configuration loader with YAML file support and environment variable overrides.

Supports loading from:
1. Default values (defined in settings.py)
2. YAML configuration file
3. Environment variables (highest priority)

Environment variables use the pattern: WEB_HARVEST__{SECTION}__{KEY}
Nested sections continue the pattern:
WEB_HARVEST__BROWSER__RATE_LIMIT__MAX_REQUESTS=10
"""

import os
from pathlib import Path
from typing import Any

import yaml

from web_harvest.config.settings import CrawlConfig
from web_harvest.core.exceptions import ConfigError

ENV_PREFIX = "WEB_HARVEST"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary to merge into
        override: Dictionary with values to override

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    """Parse an environment variable string into bool/None/int/float/list/str."""
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    if lowered in ("none", "null", ""):
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [item.strip() for item in value.split(",") if item.strip()]

    return value


def _load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Args:
        prefix: Environment variable prefix to look for

    Returns:
        Nested dictionary of configuration overrides
    """
    overrides: dict[str, Any] = {}
    prefix_with_sep = f"{prefix}__"

    for key, value in os.environ.items():
        if not key.startswith(prefix_with_sep):
            continue

        key_path = key[len(prefix_with_sep):].lower().split("__")
        if len(key_path) < 2:
            continue

        current = overrides
        for part in key_path[:-1]:
            current = current.setdefault(part, {})

        current[key_path[-1]] = _parse_env_value(value)

    return overrides


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigError: If the file is missing, unparsable, or not a mapping
    """
    if not path.exists():
        raise ConfigError(
            "Configuration file not found", details={"path": str(path)})

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML: {e}", details={"path": str(path)}) from e

    if content is None:
        return {}

    if not isinstance(content, dict):
        raise ConfigError(
            "Configuration file must contain a mapping",
            details={"path": str(path), "type": type(content).__name__},
        )

    return content


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = ENV_PREFIX,
) -> CrawlConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Priority (highest to lowest):
    1. Environment variables
    2. YAML configuration file
    3. Default values

    Args:
        config_path: Path to YAML configuration file. If None, uses defaults only.
        env_prefix: Prefix for environment variables

    Returns:
        Validated CrawlConfig instance

    Raises:
        ConfigError: If the file is unusable or values are invalid
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_data = _deep_merge(config_data, _load_yaml_file(Path(config_path)))

    config_data = _deep_merge(config_data, _load_env_overrides(env_prefix))

    return CrawlConfig.from_options(config_data)


def dump_default_config() -> str:
    """Render the default configuration as YAML."""
    return yaml.safe_dump(
        CrawlConfig().model_dump(mode="json"),
        default_flow_style=False,
        sort_keys=False,
    )

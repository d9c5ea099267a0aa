"""
Configuration file loader for lambda-autofix.

Supports loading configuration from YAML and TOML files with environment variable
overrides and a standard search path.

A configuration file is organised in sections::

    resources: [orders-api, billing-worker]
    remediation:
      auto_fix_enabled: true
      max_concurrent_fixes: 3
    policy:
      error_threshold: 5
    signals:
      window_minutes: 15
    aws:
      region: us-east-1
    state:
      file: ~/.lambda-autofix/state.db
    logging:
      level: INFO
"""

import os
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = "LAMBDA_AUTOFIX_"

CONFIG_FILE_NAMES = ("lambda-autofix.yaml", "lambda-autofix.toml")


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _parse_list(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


# (section, key) in the file -> AutoFixConfig field
SECTION_FIELDS: Dict[Tuple[str, str], str] = {
    ("remediation", "auto_fix_enabled"): "auto_fix_enabled",
    ("remediation", "rollback_enabled"): "rollback_enabled",
    ("remediation", "max_concurrent_fixes"): "max_concurrent_fixes",
    ("remediation", "cooldown_seconds"): "cooldown_seconds",
    ("remediation", "circuit_breaker_threshold"): "circuit_breaker_threshold",
    ("remediation", "stale_reset_factor"): "stale_reset_factor",
    ("remediation", "settle_delay_seconds"): "settle_delay_seconds",
    ("remediation", "inter_batch_delay_seconds"): "inter_batch_delay_seconds",
    ("remediation", "run_deadline_seconds"): "run_deadline_seconds",
    ("remediation", "alias_name"): "alias_name",
    ("remediation", "timeout_ceiling_seconds"): "timeout_ceiling_seconds",
    ("remediation", "memory_ceiling_mb"): "memory_ceiling_mb",
    ("policy", "error_threshold"): "error_threshold",
    ("policy", "min_confidence"): "min_confidence",
    ("policy", "min_priority"): "min_priority",
    ("signals", "window_minutes"): "window_minutes",
    ("signals", "diagnostics_limit"): "diagnostics_limit",
    ("aws", "region"): "region",
    ("state", "file"): "state_file",
    ("logging", "level"): "log_level",
    ("logging", "file"): "log_file",
    ("logging", "json"): "log_json",
}

# Environment variable suffix -> (section, key, parser)
ENV_FIELDS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "AUTO_FIX_ENABLED": ("remediation", "auto_fix_enabled", _parse_bool),
    "ROLLBACK_ENABLED": ("remediation", "rollback_enabled", _parse_bool),
    "MAX_CONCURRENT_FIXES": ("remediation", "max_concurrent_fixes", int),
    "COOLDOWN_SECONDS": ("remediation", "cooldown_seconds", int),
    "CIRCUIT_BREAKER_THRESHOLD": ("remediation", "circuit_breaker_threshold", int),
    "STALE_RESET_FACTOR": ("remediation", "stale_reset_factor", float),
    "SETTLE_DELAY_SECONDS": ("remediation", "settle_delay_seconds", float),
    "INTER_BATCH_DELAY_SECONDS": ("remediation", "inter_batch_delay_seconds", float),
    "RUN_DEADLINE_SECONDS": ("remediation", "run_deadline_seconds", float),
    "ALIAS_NAME": ("remediation", "alias_name", str),
    "TIMEOUT_CEILING_SECONDS": ("remediation", "timeout_ceiling_seconds", int),
    "MEMORY_CEILING_MB": ("remediation", "memory_ceiling_mb", int),
    "ERROR_THRESHOLD": ("policy", "error_threshold", int),
    "MIN_CONFIDENCE": ("policy", "min_confidence", str),
    "MIN_PRIORITY": ("policy", "min_priority", int),
    "WINDOW_MINUTES": ("signals", "window_minutes", int),
    "DIAGNOSTICS_LIMIT": ("signals", "diagnostics_limit", int),
    "REGION": ("aws", "region", str),
    "STATE_FILE": ("state", "file", str),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_FILE": ("logging", "file", str),
    "LOG_JSON": ("logging", "json", _parse_bool),
}


def load_yaml_file(path: Path) -> dict:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If YAML parsing fails
    """
    import yaml

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
            return config if config is not None else {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML config file {path}: {e}") from e


def load_toml_file(path: Path) -> dict:
    """
    Load configuration from a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If TOML parsing fails
    """
    try:
        # Python 3.11+ has tomllib built-in
        import tomllib
    except ImportError:
        import tomli as tomllib

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'rb') as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Failed to parse TOML config file {path}: {e}") from e


def load_config_file(path: str) -> dict:
    """
    Load configuration from a YAML or TOML file.

    The file format is determined by the file extension (.yaml, .yml, or .toml).

    Raises:
        ValueError: If file extension is not supported or parsing fails
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(path).expanduser()
    suffix = file_path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        return load_yaml_file(file_path)
    elif suffix == '.toml':
        return load_toml_file(file_path)
    else:
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            "Supported formats: .yaml, .yml, .toml"
        )


def find_config_file() -> Optional[Path]:
    """
    Search for a configuration file in standard locations.

    Search order:
    1. ./lambda-autofix.yaml
    2. ./lambda-autofix.toml
    3. ~/.lambda-autofix.yaml
    4. ~/.lambda-autofix.toml
    5. /etc/lambda-autofix.yaml
    6. /etc/lambda-autofix.toml

    Returns:
        Path to the first configuration file found, or None if no file is found
    """
    search_paths = (
        [Path.cwd() / name for name in CONFIG_FILE_NAMES]
        + [Path.home() / f".{name}" for name in CONFIG_FILE_NAMES]
        + [Path("/etc") / name for name in CONFIG_FILE_NAMES]
    )

    for path in search_paths:
        if path.exists() and path.is_file():
            logger.info(f"Found configuration file: {path}")
            return path

    logger.debug("No configuration file found in standard locations")
    return None


def get_env_config() -> dict:
    """
    Extract configuration from ``LAMBDA_AUTOFIX_*`` environment variables.

    Values that cannot be parsed are logged and ignored.

    Returns:
        Nested dictionary in the same shape as a configuration file
    """
    config: Dict[str, Any] = {}

    resources = os.getenv(f"{ENV_PREFIX}RESOURCES")
    if resources:
        config["resources"] = _parse_list(resources)

    for suffix, (section, key, parse) in ENV_FIELDS.items():
        raw = os.getenv(f"{ENV_PREFIX}{suffix}")
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError:
            logger.warning(f"Invalid {ENV_PREFIX}{suffix}={raw!r}, ignoring")
            continue
        config.setdefault(section, {})[key] = value

    return config


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries, with override values taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (values take precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def flatten_config(config: dict) -> dict:
    """
    Flatten a sectioned configuration dictionary to AutoFixConfig fields.

    Unknown sections and keys are logged and dropped.

    Args:
        config: Nested configuration dictionary

    Returns:
        Flattened configuration dictionary
    """
    flat: Dict[str, Any] = {}

    if "resources" in config:
        resources = config["resources"]
        flat["resources"] = _parse_list(resources) if isinstance(resources, str) else list(resources)

    for section, values in config.items():
        if section == "resources":
            continue
        if not isinstance(values, dict):
            logger.warning(f"Ignoring unknown configuration entry: {section}")
            continue
        for key, value in values.items():
            field_name = SECTION_FIELDS.get((section, key))
            if field_name is None:
                logger.warning(f"Ignoring unknown configuration key: {section}.{key}")
                continue
            flat[field_name] = value

    return flat


def merge_config(file_config: dict, env_config: dict) -> dict:
    """
    Merge file-based and environment-based configuration.

    Environment variables take precedence over file-based configuration.

    Returns:
        Merged configuration dictionary (flattened)
    """
    merged = deep_merge(file_config, env_config)
    return flatten_config(merged)


def load_config_with_overrides(config_path: Optional[str] = None) -> dict:
    """
    Load configuration from file with environment variable overrides.

    Args:
        config_path: Optional explicit path to config file.
                    If None, searches standard locations.

    Returns:
        Dictionary containing merged configuration

    Raises:
        FileNotFoundError: If explicit config_path is provided but doesn't exist
        ValueError: If config parsing fails
    """
    file_config = {}

    if config_path:
        file_config = load_config_file(config_path)
        logger.info(f"Loaded configuration from: {config_path}")
    else:
        found_path = find_config_file()
        if found_path:
            file_config = load_config_file(str(found_path))
            logger.info(f"Loaded configuration from: {found_path}")

    env_config = get_env_config()
    if env_config:
        logger.info("Applying environment variable overrides")

    return merge_config(file_config, env_config)

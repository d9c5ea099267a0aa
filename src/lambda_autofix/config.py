"""Configuration management for lambda-autofix.

This module provides configuration loading and validation for the remediation
loop. Configuration can be loaded from environment variables, YAML/TOML files,
or direct instantiation.

Classes:
    AutoFixConfig: Main configuration dataclass with validation.

Example:
    >>> from lambda_autofix.config import AutoFixConfig
    >>>
    >>> # Load from environment variables
    >>> config = AutoFixConfig.from_env()
    >>>
    >>> # Load from file with env overrides
    >>> config = AutoFixConfig.from_file("lambda-autofix.yaml")
    >>>
    >>> # Recommended: automatic loading with fallback
    >>> config = AutoFixConfig.load()
    >>> config.validate()
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_ALIAS_NAME,
    DEFAULT_CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_DIAGNOSTICS_LIMIT,
    DEFAULT_ERROR_THRESHOLD,
    DEFAULT_INTER_BATCH_DELAY_SECONDS,
    DEFAULT_MAX_CONCURRENT_FIXES,
    DEFAULT_MEMORY_CEILING_MB,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_PRIORITY,
    DEFAULT_REGION,
    DEFAULT_SETTLE_DELAY_SECONDS,
    DEFAULT_STALE_RESET_FACTOR,
    DEFAULT_TIMEOUT_CEILING_SECONDS,
    DEFAULT_WINDOW_MINUTES,
    MAX_MEMORY_MB,
    MAX_PRIORITY,
    MAX_TIMEOUT_SECONDS,
    MIN_MEMORY_MB,
    VALID_LOG_LEVELS,
)
from .exceptions import InvalidConfigError, MissingConfigError
from .models import Confidence

logger = logging.getLogger(__name__)


@dataclass
class AutoFixConfig:
    """
    Configuration for lambda-autofix.

    Configuration can be loaded from:
    1. Configuration files (YAML or TOML)
    2. Environment variables (override file settings)
    3. Direct instantiation with parameters

    Environment variables use the ``LAMBDA_AUTOFIX_`` prefix followed by the
    upper-cased field name, e.g. ``LAMBDA_AUTOFIX_AUTO_FIX_ENABLED=true`` or
    ``LAMBDA_AUTOFIX_RESOURCES=orders-api,billing-worker``.

    Config file locations (searched in order):
        ./lambda-autofix.yaml, ./lambda-autofix.toml
        ~/.lambda-autofix.yaml, ~/.lambda-autofix.toml
        /etc/lambda-autofix.yaml, /etc/lambda-autofix.toml
    """
    resources: List[str] = field(default_factory=list)

    # Remediation behaviour
    auto_fix_enabled: bool = False
    rollback_enabled: bool = True
    max_concurrent_fixes: int = DEFAULT_MAX_CONCURRENT_FIXES
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    circuit_breaker_threshold: int = DEFAULT_CIRCUIT_BREAKER_THRESHOLD
    stale_reset_factor: float = DEFAULT_STALE_RESET_FACTOR
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS
    inter_batch_delay_seconds: float = DEFAULT_INTER_BATCH_DELAY_SECONDS
    run_deadline_seconds: Optional[float] = None
    alias_name: str = DEFAULT_ALIAS_NAME
    timeout_ceiling_seconds: int = DEFAULT_TIMEOUT_CEILING_SECONDS
    memory_ceiling_mb: int = DEFAULT_MEMORY_CEILING_MB

    # Policy
    error_threshold: int = DEFAULT_ERROR_THRESHOLD
    min_confidence: str = DEFAULT_MIN_CONFIDENCE
    min_priority: int = DEFAULT_MIN_PRIORITY

    # Signals
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    diagnostics_limit: int = DEFAULT_DIAGNOSTICS_LIMIT

    # Environment
    region: str = DEFAULT_REGION
    state_file: Optional[str] = None

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    @property
    def min_confidence_level(self) -> Confidence:
        return Confidence(self.min_confidence.lower())

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            InvalidConfigError: Listing every invalid value
        """
        errors = []

        if not self.resources:
            errors.append("resources must list at least one resource")
        elif len(set(self.resources)) != len(self.resources):
            errors.append("resources must not contain duplicates")

        # Positive integers
        for name in ("max_concurrent_fixes", "window_minutes", "diagnostics_limit",
                     "error_threshold", "circuit_breaker_threshold"):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name} must be positive, got {value}")

        if self.cooldown_seconds < 0:
            errors.append(f"cooldown_seconds must be non-negative, got {self.cooldown_seconds}")
        if self.stale_reset_factor < 1.0:
            errors.append(f"stale_reset_factor must be at least 1.0, got {self.stale_reset_factor}")
        if self.settle_delay_seconds < 0:
            errors.append(f"settle_delay_seconds must be non-negative, got {self.settle_delay_seconds}")
        if self.inter_batch_delay_seconds < 0:
            errors.append(
                f"inter_batch_delay_seconds must be non-negative, got {self.inter_batch_delay_seconds}"
            )
        if self.run_deadline_seconds is not None and self.run_deadline_seconds <= 0:
            errors.append(f"run_deadline_seconds must be positive, got {self.run_deadline_seconds}")

        if not (1 <= self.timeout_ceiling_seconds <= MAX_TIMEOUT_SECONDS):
            errors.append(
                f"timeout_ceiling_seconds must be between 1 and {MAX_TIMEOUT_SECONDS}, "
                f"got {self.timeout_ceiling_seconds}"
            )
        if not (MIN_MEMORY_MB <= self.memory_ceiling_mb <= MAX_MEMORY_MB):
            errors.append(
                f"memory_ceiling_mb must be between {MIN_MEMORY_MB} and {MAX_MEMORY_MB}, "
                f"got {self.memory_ceiling_mb}"
            )

        valid_confidence = {c.value for c in Confidence}
        if self.min_confidence.lower() not in valid_confidence:
            errors.append(
                f"min_confidence must be one of {sorted(valid_confidence)}, got '{self.min_confidence}'"
            )
        if not (1 <= self.min_priority <= MAX_PRIORITY):
            errors.append(f"min_priority must be between 1 and {MAX_PRIORITY}, got {self.min_priority}")

        if not self.alias_name:
            errors.append("alias_name must not be empty")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            )

        if errors:
            raise InvalidConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_env(cls) -> 'AutoFixConfig':
        """
        Create configuration from environment variables only.

        Returns:
            AutoFixConfig instance populated from environment variables
        """
        from .config_loader import flatten_config, get_env_config

        return cls(**flatten_config(get_env_config()))

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> 'AutoFixConfig':
        """
        Create configuration from file with environment variable overrides.

        Loads configuration from YAML or TOML file and applies environment
        variable overrides. If no path is provided, searches standard locations
        and falls back to environment variables when a found file is unreadable.

        Args:
            config_path: Optional explicit path to config file.
                        If None, searches standard locations.

        Returns:
            AutoFixConfig instance with merged configuration

        Raises:
            MissingConfigError: If explicit config_path doesn't exist
            InvalidConfigError: If explicit config_path cannot be parsed

        Example:
            >>> config = AutoFixConfig.from_file("my-config.yaml")
            >>> config = AutoFixConfig.from_file()  # Auto-search
        """
        from .config_loader import load_config_with_overrides

        try:
            config_dict = load_config_with_overrides(config_path)
        except FileNotFoundError as e:
            if config_path:
                raise MissingConfigError(str(e)) from e
            logger.error(f"Failed to load configuration from file: {e}")
            logger.warning("Falling back to environment variable configuration")
            return cls.from_env()
        except ValueError as e:
            if config_path:
                raise InvalidConfigError(str(e)) from e
            logger.error(f"Failed to load configuration from file: {e}")
            logger.warning("Falling back to environment variable configuration")
            return cls.from_env()

        return cls(**config_dict)

    @classmethod
    def load(cls, config_path: Optional[str] = None, use_file: bool = True) -> 'AutoFixConfig':
        """
        Load configuration with automatic fallback.

        This is the recommended method for loading configuration.

        Args:
            config_path: Optional explicit path to config file
            use_file: If True, attempts to load from file before env vars

        Returns:
            AutoFixConfig instance

        Example:
            >>> # Try file, fall back to env vars
            >>> config = AutoFixConfig.load()
            >>>
            >>> # Only use env vars
            >>> config = AutoFixConfig.load(use_file=False)
        """
        if use_file:
            return cls.from_file(config_path)
        else:
            return cls.from_env()

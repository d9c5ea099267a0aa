"""
Centralized logging configuration for lambda-autofix.

Functions:
    setup_logging: Configure root handlers once at startup.
    configure_cli_logging: Map CLI verbosity flags to a level.

Example:
    >>> from lambda_autofix.logging_config import setup_logging
    >>> setup_logging(level='DEBUG', log_file='autofix.log')
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .logging_context import JSONFormatter


_LOGGING_CONFIGURED = False


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str | Path] = None,
    use_json: bool = False,
    include_timestamp: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Configure logging for lambda-autofix.

    Sets up console and optional rotating file logging. Calling it again only
    updates the level.

    Args:
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        log_file: Optional path to log file with rotation.
        use_json: Emit JSON lines with cycle/resource/attempt correlation IDs.
        include_timestamp: Whether to include timestamps in text output.
        max_bytes: Maximum size of log file before rotation (default 10MB).
        backup_count: Number of backup log files to keep (default 5).
    """
    global _LOGGING_CONFIGURED

    root_logger = logging.getLogger()

    if _LOGGING_CONFIGURED:
        root_logger.setLevel(getattr(logging, level.upper()))
        return

    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    elif include_timestamp:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        formatter = logging.Formatter('%(name)s - %(levelname)s - %(message)s')

    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to file: {log_path}")

    _LOGGING_CONFIGURED = True

    root_logger.debug(f"Logging configured at {level} level")


def reset_logging_config() -> None:
    """Reset logging configuration (used by tests)."""
    global _LOGGING_CONFIGURED

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    _LOGGING_CONFIGURED = False


def configure_cli_logging(
    verbose: bool = False,
    quiet: bool = False,
    level: str = 'WARNING',
    log_file: Optional[str] = None,
    use_json: bool = False
) -> None:
    """
    Configure logging for CLI usage.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Only show ERROR and above
        level: Level used when neither flag is set
        log_file: Optional log file path
        use_json: Emit JSON log lines
    """
    if quiet:
        level = 'ERROR'
    elif verbose:
        level = 'DEBUG'

    setup_logging(
        level=level,
        log_file=log_file,
        use_json=use_json,
        include_timestamp=verbose or bool(log_file)
    )

"""
lambda-autofix: detect failing serverless functions, fix them, verify the fix
and roll back automatically when it does not hold.
"""
from .version import __version__, VERSION_INFO, get_version, get_version_info
from .config import AutoFixConfig
from .logging_context import (
    get_logger,
    set_context,
    get_context,
    clear_context,
    LoggingContext,
)
from .metrics import (
    track_attempt,
    track_attempt_duration,
    track_skip,
    track_cycle,
    get_metrics_text,
)
from .remediation import (
    AttemptStateMachine,
    CooldownTable,
    RemediationOrchestrator,
    run_cycle,
)

__all__ = [
    "__version__",
    "VERSION_INFO",
    "get_version",
    "get_version_info",
    "AutoFixConfig",
    "get_logger",
    "set_context",
    "get_context",
    "clear_context",
    "LoggingContext",
    "track_attempt",
    "track_attempt_duration",
    "track_skip",
    "track_cycle",
    "get_metrics_text",
    "AttemptStateMachine",
    "CooldownTable",
    "RemediationOrchestrator",
    "run_cycle",
]

"""
Custom exception types for lambda-autofix.

Failures are resource-scoped: the orchestrator converts them into report
reasons and attempt outcomes. Only configuration errors and a complete
signal source outage escape ``run_cycle``.
"""


class AutoFixError(Exception):
    """Base exception for all lambda-autofix errors."""
    pass


# Signal source errors
class SignalUnavailableError(AutoFixError):
    """Signal source call failed for a single resource."""

    def __init__(self, resource_id: str, message: str):
        self.resource_id = resource_id
        super().__init__(f"Signals unavailable for '{resource_id}': {message}")


class SignalSourceOutageError(AutoFixError):
    """Signal source failed for every monitored resource."""
    pass


# Control plane errors
class ControlPlaneError(AutoFixError):
    """Base exception for resource control plane failures."""

    def __init__(self, resource_id: str, operation: str, message: str):
        self.resource_id = resource_id
        self.operation = operation
        super().__init__(f"{operation} failed for '{resource_id}': {message}")


class SnapshotError(ControlPlaneError):
    """Capturing the pre-attempt state failed."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(resource_id, "snapshot", message)


class ApplyFailedError(ControlPlaneError):
    """Mutating the resource failed before anything was published."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(resource_id, "apply", message)


class PublishError(ControlPlaneError):
    """Publishing a new revision failed."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(resource_id, "publish", message)


class AliasUpdateError(ControlPlaneError):
    """Moving the live alias failed."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(resource_id, "set_alias", message)


class ReadError(ControlPlaneError):
    """Reading the current resource state failed."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(resource_id, "read", message)


# Attempt errors
class VerificationFailedError(AutoFixError):
    """The applied change was not observed after publishing."""
    pass


class RollbackFailedError(AutoFixError):
    """Compensating alias restore failed; the resource needs an operator."""
    pass


# Configuration errors
class ConfigurationError(AutoFixError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """Invalid configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Required configuration missing."""
    pass


__all__ = [
    "AutoFixError",
    "SignalUnavailableError",
    "SignalSourceOutageError",
    "ControlPlaneError",
    "SnapshotError",
    "ApplyFailedError",
    "PublishError",
    "AliasUpdateError",
    "ReadError",
    "VerificationFailedError",
    "RollbackFailedError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
]

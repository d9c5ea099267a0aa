"""
Tests for the exception hierarchy and error messages.
"""
import pytest

from lambda_autofix.exceptions import (
    AliasUpdateError,
    ApplyFailedError,
    AutoFixError,
    ConfigurationError,
    ControlPlaneError,
    InvalidConfigError,
    MissingConfigError,
    PublishError,
    ReadError,
    RollbackFailedError,
    SignalSourceOutageError,
    SignalUnavailableError,
    SnapshotError,
    VerificationFailedError,
)


@pytest.mark.parametrize("error_cls,operation", [
    (SnapshotError, "snapshot"),
    (ApplyFailedError, "apply"),
    (PublishError, "publish"),
    (AliasUpdateError, "set_alias"),
    (ReadError, "read"),
])
def test_control_plane_errors(error_cls, operation):
    error = error_cls("orders-api", "throttled")

    assert isinstance(error, ControlPlaneError)
    assert error.resource_id == "orders-api"
    assert error.operation == operation
    assert str(error) == f"{operation} failed for 'orders-api': throttled"


def test_signal_unavailable():
    error = SignalUnavailableError("orders-api", "metrics timed out")

    assert error.resource_id == "orders-api"
    assert "orders-api" in str(error)
    assert "metrics timed out" in str(error)


def test_exception_hierarchy():
    """Test exception inheritance."""
    assert issubclass(SignalUnavailableError, AutoFixError)
    assert issubclass(SignalSourceOutageError, AutoFixError)
    assert issubclass(ControlPlaneError, AutoFixError)
    assert issubclass(VerificationFailedError, AutoFixError)
    assert issubclass(RollbackFailedError, AutoFixError)
    assert issubclass(InvalidConfigError, ConfigurationError)
    assert issubclass(MissingConfigError, ConfigurationError)
    assert issubclass(ConfigurationError, AutoFixError)
    assert not issubclass(SignalUnavailableError, ControlPlaneError)

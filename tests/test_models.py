"""
Tests for pydantic models.
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from lambda_autofix.models import (
    ActionType,
    AttemptOutcome,
    AttemptRecord,
    AttemptState,
    Confidence,
    DiagnosticSample,
    ErrorCategory,
    ErrorWindow,
    FixSyntax,
    ManualReview,
    RaiseMemory,
    RaiseTimeout,
    RemediationAction,
    RemediationDescriptor,
    ResourceReport,
    ResourceStatus,
    RunSummary,
    UpdateDependencies,
    UpdatePermissions,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_record(resource_id="f1", outcome=AttemptOutcome.COMMITTED, manual=False):
    return AttemptRecord(
        attempt_id=f"att-{resource_id}",
        resource_id=resource_id,
        category=ErrorCategory.TIMEOUT,
        action=RaiseTimeout(seconds=300),
        outcome=outcome,
        requires_manual_remediation=manual,
        states=[AttemptState.IDLE, AttemptState.FAILED],
        started_at=NOW,
        completed_at=NOW + timedelta(seconds=3),
    )


def test_diagnostic_sample_timestamp_parsing() -> None:
    """ISO strings, epoch milliseconds and naive datetimes all become UTC-aware."""
    from_iso = DiagnosticSample(timestamp="2024-01-01T12:00:00Z", message="x")
    from_epoch = DiagnosticSample(timestamp=1704110400000, message="x")
    from_naive = DiagnosticSample(timestamp=datetime(2024, 1, 1, 12, 0), message="x")

    assert from_iso.timestamp == NOW
    assert from_epoch.timestamp == NOW
    assert from_naive.timestamp == NOW


def test_diagnostic_sample_invalid_timestamp() -> None:
    assert DiagnosticSample(timestamp="not a date", message="x").timestamp is None


def test_diagnostic_sample_is_frozen() -> None:
    sample = DiagnosticSample(message="x")
    with pytest.raises(ValidationError):
        sample.message = "y"


def test_error_window_rate() -> None:
    assert ErrorWindow(error_count=5, total_invocations=20).error_rate == 25.0
    assert ErrorWindow().error_rate == 0.0


def test_error_window_rejects_negative() -> None:
    with pytest.raises(ValidationError):
        ErrorWindow(error_count=-1)


def test_confidence_rank() -> None:
    assert Confidence.LOW.rank < Confidence.MEDIUM.rank < Confidence.HIGH.rank


def test_category_declaration_order() -> None:
    assert [c.value for c in ErrorCategory] == [
        "timeout", "memory", "permission", "dependency", "syntax", "runtime", "other"
    ]


class TestActions:
    def test_action_types(self) -> None:
        assert RaiseTimeout(seconds=60).action_type == ActionType.CONFIGURATION
        assert RaiseMemory(megabytes=512).action_type == ActionType.CONFIGURATION
        assert UpdateDependencies().action_type == ActionType.CODE
        assert FixSyntax().action_type == ActionType.CODE
        assert UpdatePermissions().action_type == ActionType.MANUAL
        assert ManualReview().action_type == ActionType.MANUAL

    def test_configuration_targets(self) -> None:
        assert RaiseTimeout(seconds=60).target_property == "timeout"
        assert RaiseTimeout(seconds=60).expected_value == 60
        assert RaiseMemory(megabytes=512).target_property == "memory_size"
        assert RaiseMemory(megabytes=512).expected_value == 512

    def test_describe(self) -> None:
        assert RaiseTimeout(seconds=60).describe() == "Auto-fix: Updated timeout to 60s"
        assert RaiseMemory(megabytes=512).describe() == "Auto-fix: Updated memory to 512MB"
        assert UpdateDependencies(packages=["a", "b"]).describe() == "Auto-fix: Added dependencies: a, b"

    def test_rejects_non_positive_targets(self) -> None:
        with pytest.raises(ValidationError):
            RaiseTimeout(seconds=0)

    def test_discriminated_union(self) -> None:
        adapter = TypeAdapter(RemediationAction)

        action = adapter.validate_python({"kind": "raise_memory", "megabytes": 2048})

        assert isinstance(action, RaiseMemory)
        with pytest.raises(ValidationError):
            adapter.validate_python({"kind": "reboot"})


def test_descriptor_priority_bounds() -> None:
    with pytest.raises(ValidationError):
        RemediationDescriptor(
            category=ErrorCategory.TIMEOUT,
            auto_fixable=True,
            priority=11,
            action=RaiseTimeout(seconds=60),
            title="t",
        )


def test_attempt_record_serialization() -> None:
    record = make_record()

    data = record.model_dump(mode="json")
    restored = AttemptRecord.model_validate(data)

    assert data["action"] == {"kind": "raise_timeout", "seconds": 300}
    assert restored == record
    assert record.succeeded
    assert record.duration_seconds == 3


def test_run_summary_helpers() -> None:
    summary = RunSummary(
        cycle_id="cycle-1",
        started_at=NOW,
        resources=[
            ResourceReport(resource_id="f1", status=ResourceStatus.ATTEMPTED),
            ResourceReport(resource_id="f2", status=ResourceStatus.HEALTHY),
        ],
        attempts=[
            make_record("f1", AttemptOutcome.FAILED, manual=True),
        ],
    )

    assert summary.report_for("f2").status == ResourceStatus.HEALTHY
    assert summary.report_for("missing") is None
    assert summary.attempt_for("f1").outcome == AttemptOutcome.FAILED
    assert [r.resource_id for r in summary.requires_attention] == ["f1"]

    data = summary.to_dict()
    assert data["resources"][0]["status"] == "attempted"
    assert data["attempts"][0]["states"] == ["idle", "failed"]

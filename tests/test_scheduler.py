"""
Tests for the remediation orchestrator.

Covers monitoring, policy gating, cooldown carry-over between cycles, batch
scheduling and the run deadline, all against the in-memory adapters.
"""
from datetime import timedelta

import pytest

from lambda_autofix.config import AutoFixConfig
from lambda_autofix.exceptions import InvalidConfigError, SignalSourceOutageError
from lambda_autofix.metrics import MetricsCollector
from lambda_autofix.models import (
    AttemptOutcome,
    Confidence,
    CooldownEntry,
    ErrorCategory,
    FailureKind,
    ResourceStatus,
)
from lambda_autofix.remediation.cooldown import CooldownTable
from lambda_autofix.remediation.scheduler import (
    DEADLINE_REACHED,
    RemediationOrchestrator,
    generate_cycle_id,
    run_cycle,
)

from conftest import START

TIMEOUT_LINES = ["Task timed out after 3.00 seconds"] * 12
PERMISSION_LINES = ["AccessDeniedException: Access denied for dynamodb:PutItem"] * 12


def add_failing(signals, plane, resource_id, lines=TIMEOUT_LINES):
    signals.add_errors(resource_id, lines, total_invocations=40)
    plane.add_resource(resource_id)


@pytest.fixture
def orchestrator(signals, plane, clock):
    return RemediationOrchestrator(signals, plane, clock=clock, sleep=clock.sleep)


def test_generate_cycle_id():
    assert generate_cycle_id(START).startswith("cycle-20240101120000-")


class TestScenarios:
    """End-to-end cycles for the reference scenarios."""

    @pytest.mark.asyncio
    async def test_timeout_fix_commits(self, orchestrator, signals, plane, make_config):
        """Twelve timeout lines above threshold lead to a committed timeout raise."""
        add_failing(signals, plane, "f1")

        summary = await orchestrator.run_cycle(make_config(["f1"], error_threshold=5))

        report = summary.report_for("f1")
        assert report.category == ErrorCategory.TIMEOUT
        assert report.confidence == Confidence.HIGH
        assert report.status == ResourceStatus.ATTEMPTED
        assert report.outcome == AttemptOutcome.COMMITTED

        record = summary.attempt_for("f1")
        assert record.action.kind == "raise_timeout"
        assert record.action.seconds == 300
        assert plane.live_revision("f1") == record.new_revision
        assert summary.fixed == 1
        assert summary.with_errors == 1

    @pytest.mark.asyncio
    async def test_unchanged_configuration_rolls_back(self, signals, clock, make_config):
        """A change that does not take is rolled back and counts as a failure."""
        from lambda_autofix.integrations.memory import InMemoryControlPlane

        plane = InMemoryControlPlane(clock=clock, ignore_configuration=["f2"])
        prior = plane.add_resource("f2")
        signals.add_errors("f2", TIMEOUT_LINES)
        cooldowns = CooldownTable()
        orchestrator = RemediationOrchestrator(
            signals, plane, cooldowns=cooldowns, clock=clock, sleep=clock.sleep
        )

        summary = await orchestrator.run_cycle(make_config(["f2"]))

        assert summary.attempt_for("f2").outcome == AttemptOutcome.ROLLED_BACK
        assert summary.rolled_back == 1
        assert summary.fixed == 0
        assert plane.live_revision("f2") == prior
        assert cooldowns.get("f2").consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_open_circuit_in_cooldown_is_skipped(self, signals, plane, clock, make_config):
        """Three prior failures one minute ago keep the resource out of this cycle."""
        add_failing(signals, plane, "f3")
        cooldowns = CooldownTable({
            "f3": CooldownEntry(
                resource_id="f3",
                last_attempt_at=START - timedelta(minutes=1),
                consecutive_failures=3,
                attempts=3,
            )
        })
        orchestrator = RemediationOrchestrator(
            signals, plane, cooldowns=cooldowns, clock=clock, sleep=clock.sleep
        )

        summary = await orchestrator.run_cycle(make_config(["f3"], cooldown_seconds=300))

        report = summary.report_for("f3")
        assert report.status == ResourceStatus.SKIPPED
        assert report.reason.startswith("in cooldown")
        assert summary.attempts == []
        assert summary.skipped == 1
        assert plane.calls_for("f3") == []

    @pytest.mark.asyncio
    async def test_batches_of_two(self, orchestrator, signals, plane, make_config):
        """Five eligible resources with a limit of two run as batches of 2, 2 and 1."""
        resources = ["r1", "r2", "r3", "r4", "r5"]
        for resource_id in resources:
            add_failing(signals, plane, resource_id)

        summary = await orchestrator.run_cycle(make_config(resources, max_concurrent_fixes=2))

        assert summary.batches == [["r1", "r2"], ["r3", "r4"], ["r5"]]
        assert summary.fixed == 5

        positions = {}
        for index, (_, resource_id, _) in enumerate(plane.calls):
            positions.setdefault(resource_id, []).append(index)

        for earlier, later in zip(summary.batches, summary.batches[1:]):
            last_of_earlier = max(max(positions[r]) for r in earlier)
            first_of_later = min(min(positions[r]) for r in later)
            assert last_of_earlier < first_of_later

        # attempts inside a batch overlap
        assert min(positions["r2"]) < max(positions["r1"])


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_below_threshold_is_healthy(self, orchestrator, signals, plane, make_config):
        signals.set_window("quiet", 2, 100)
        plane.add_resource("quiet")

        summary = await orchestrator.run_cycle(make_config(["quiet"], error_threshold=5))

        report = summary.report_for("quiet")
        assert report.status == ResourceStatus.HEALTHY
        assert report.error_count == 2
        assert report.total_invocations == 100
        assert summary.with_errors == 0
        assert ("get_diagnostics", "quiet") not in signals.calls

    @pytest.mark.asyncio
    async def test_signal_failure_is_resource_scoped(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "ok")
        signals.unavailable.add("broken")

        summary = await orchestrator.run_cycle(make_config(["ok", "broken"]))

        broken = summary.report_for("broken")
        assert broken.status == ResourceStatus.ERROR
        assert broken.reason.startswith("signals unavailable")
        assert summary.report_for("ok").outcome == AttemptOutcome.COMMITTED
        assert summary.monitored == 2

    @pytest.mark.asyncio
    async def test_window_read_retried(self, orchestrator, signals, plane, clock, make_config):
        signals.unavailable.add("broken")
        add_failing(signals, plane, "ok")

        await orchestrator.run_cycle(make_config(["ok", "broken"]))

        assert signals.calls.count(("get_error_window", "broken")) == 3
        assert len(clock.sleeps) == 2

    @pytest.mark.asyncio
    async def test_all_signals_unavailable(self, orchestrator, signals, make_config):
        signals.unavailable.update({"a", "b"})

        with pytest.raises(SignalSourceOutageError):
            await orchestrator.run_cycle(make_config(["a", "b"]))

    @pytest.mark.asyncio
    async def test_diagnostics_failure(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1")
        signals.diagnostics_unavailable.add("f1")

        summary = await orchestrator.run_cycle(make_config(["f1"]))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.ERROR
        assert report.reason.startswith("diagnostics unavailable")
        assert summary.with_errors == 1
        assert summary.attempts == []

    @pytest.mark.asyncio
    async def test_diagnostics_limit(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1", ["Task timed out"] * 30)

        summary = await orchestrator.run_cycle(make_config(["f1"], diagnostics_limit=4))

        report = summary.report_for("f1")
        # 4 samples: medium confidence, priority round(6 * 0.8) = 5
        assert report.confidence == Confidence.MEDIUM
        assert report.priority == 5


class TestPolicy:
    @pytest.mark.asyncio
    async def test_auto_fix_disabled(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1")

        summary = await orchestrator.run_cycle(make_config(["f1"], auto_fix_enabled=False))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.SKIPPED
        assert report.reason == "auto-fix disabled"
        assert report.category == ErrorCategory.TIMEOUT
        assert report.guidance
        assert plane.calls == []
        assert MetricsCollector().get_counter(
            "autofix_skipped_total", {"reason": "auto_fix_disabled"}
        ) == 1

    @pytest.mark.asyncio
    async def test_not_auto_fixable(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1", PERMISSION_LINES)

        summary = await orchestrator.run_cycle(make_config(["f1"]))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.SKIPPED
        assert report.category == ErrorCategory.PERMISSION
        assert report.reason == "permission errors require manual remediation"
        assert "IAM" in report.guidance

    @pytest.mark.asyncio
    async def test_no_samples(self, orchestrator, signals, plane, make_config):
        signals.set_window("f1", 10)
        plane.add_resource("f1")

        summary = await orchestrator.run_cycle(make_config(["f1"]))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.SKIPPED
        assert report.category == ErrorCategory.OTHER
        assert report.reason == "no diagnostic samples to classify"

    @pytest.mark.asyncio
    async def test_low_confidence(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1", ["Task timed out"] * 2)

        summary = await orchestrator.run_cycle(make_config(["f1"], error_threshold=1))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.SKIPPED
        assert report.reason == "confidence low below medium"

    @pytest.mark.asyncio
    async def test_low_priority(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1", ["Task timed out"] * 5)

        summary = await orchestrator.run_cycle(make_config(["f1"], min_priority=8))

        report = summary.report_for("f1")
        assert report.status == ResourceStatus.SKIPPED
        assert report.reason == "priority 6 below 8"

    @pytest.mark.asyncio
    async def test_configured_ceiling(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1", ["Runtime exited: out of memory"] * 12)

        summary = await orchestrator.run_cycle(make_config(["f1"], memory_ceiling_mb=2048))

        record = summary.attempt_for("f1")
        assert record.action.kind == "raise_memory"
        assert plane.revision_configuration("f1", record.new_revision)["memory_size"] == 2048


class TestCooldownAcrossCycles:
    @pytest.mark.asyncio
    async def test_second_cycle_in_cooldown(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1")
        config = make_config(["f1"])

        first = await orchestrator.run_cycle(config)
        second = await orchestrator.run_cycle(config)

        assert first.fixed == 1
        assert second.report_for("f1").status == ResourceStatus.SKIPPED
        assert second.report_for("f1").reason.startswith("in cooldown")
        assert orchestrator.cooldowns.get("f1").attempts == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_then_stale_reset(self, signals, clock, make_config):
        from lambda_autofix.integrations.memory import InMemoryControlPlane

        plane = InMemoryControlPlane(clock=clock, ignore_configuration=["f1"])
        add_failing(signals, plane, "f1")
        orchestrator = RemediationOrchestrator(signals, plane, clock=clock, sleep=clock.sleep)
        config = make_config(["f1"], cooldown_seconds=60, circuit_breaker_threshold=3)

        for _ in range(3):
            summary = await orchestrator.run_cycle(config)
            assert summary.rolled_back == 1
            clock.advance(90)

        blocked = await orchestrator.run_cycle(config)
        assert blocked.report_for("f1").reason == "circuit open after 3 consecutive failures"
        assert MetricsCollector().get_counter("autofix_skipped_total", {"reason": "circuit_open"}) == 1

        clock.advance(60)
        retried = await orchestrator.run_cycle(config)
        assert retried.report_for("f1").status == ResourceStatus.ATTEMPTED
        assert orchestrator.cooldowns.get("f1").consecutive_failures == 1


class TestExecution:
    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, orchestrator, signals, plane, make_config):
        """An exception escaping one attempt does not affect its batch mates."""
        add_failing(signals, plane, "good")
        add_failing(signals, plane, "bad")
        original_snapshot = plane.snapshot

        async def snapshot(resource_id, alias):
            if resource_id == "bad":
                raise RuntimeError("boom")
            return await original_snapshot(resource_id, alias)

        plane.snapshot = snapshot

        summary = await orchestrator.run_cycle(make_config(["good", "bad"]))

        bad = summary.attempt_for("bad")
        assert bad.outcome == AttemptOutcome.FAILED
        assert bad.failure_kind == FailureKind.UNEXPECTED_ERROR
        assert "RuntimeError: boom" in bad.reason
        assert not bad.requires_manual_remediation
        assert "apply" not in plane.calls_for("bad")
        assert summary.attempt_for("good").outcome == AttemptOutcome.COMMITTED
        assert orchestrator.cooldowns.get("bad").consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_inter_batch_delay(self, orchestrator, signals, plane, clock, make_config):
        resources = ["r1", "r2", "r3"]
        for resource_id in resources:
            add_failing(signals, plane, resource_id)

        await orchestrator.run_cycle(
            make_config(resources, max_concurrent_fixes=1, inter_batch_delay_seconds=2)
        )

        assert clock.sleeps == [2, 2]

    @pytest.mark.asyncio
    async def test_deadline_stops_new_batches(self, orchestrator, signals, plane, make_config):
        resources = ["r1", "r2", "r3"]
        for resource_id in resources:
            add_failing(signals, plane, resource_id)

        summary = await orchestrator.run_cycle(make_config(
            resources,
            max_concurrent_fixes=1,
            settle_delay_seconds=5,
            run_deadline_seconds=10,
        ))

        assert summary.deadline_reached
        assert summary.batches == [["r1"], ["r2"]]
        assert summary.fixed == 2
        report = summary.report_for("r3")
        assert report.status == ResourceStatus.SKIPPED
        assert report.reason == DEADLINE_REACHED
        assert plane.calls_for("r3") == []

    @pytest.mark.asyncio
    async def test_every_resource_reported_in_order(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "b")
        signals.set_window("a", 0, 10)
        signals.unavailable.add("c")

        summary = await orchestrator.run_cycle(make_config(["a", "b", "c"]))

        assert [r.resource_id for r in summary.resources] == ["a", "b", "c"]
        assert [r.status for r in summary.resources] == [
            ResourceStatus.HEALTHY, ResourceStatus.ATTEMPTED, ResourceStatus.ERROR
        ]

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, orchestrator, signals, plane, make_config):
        add_failing(signals, plane, "f1")

        await orchestrator.run_cycle(make_config(["f1"]))

        collector = MetricsCollector()
        assert collector.get_counter(
            "autofix_attempts_total", {"outcome": "committed", "category": "timeout"}
        ) == 1
        assert collector.get_counter("autofix_cycles_total") == 1
        assert collector.get_gauge("autofix_resources_monitored") == 1


class TestValidation:
    @pytest.mark.asyncio
    async def test_empty_resources(self, orchestrator):
        with pytest.raises(InvalidConfigError):
            await orchestrator.run_cycle(AutoFixConfig(resources=[]))

    @pytest.mark.asyncio
    async def test_run_cycle_requires_config(self, signals, plane):
        with pytest.raises(InvalidConfigError):
            await run_cycle({"resources": ["f1"]}, signals, plane)

    @pytest.mark.asyncio
    async def test_run_cycle_function(self, signals, plane, clock, make_config):
        add_failing(signals, plane, "f1")
        cooldowns = CooldownTable()

        summary = await run_cycle(
            make_config(["f1"]), signals, plane, cooldowns=cooldowns,
            clock=clock, sleep=clock.sleep,
        )

        assert summary.fixed == 1
        assert "f1" in cooldowns

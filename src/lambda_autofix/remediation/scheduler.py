"""
Remediation orchestrator: one monitoring and remediation cycle.

A cycle reads error windows for every configured resource, analyzes the ones
above the error threshold, gates them through the cooldown table and the
auto-fix policy, and runs attempts in sequential batches of at most
``max_concurrent_fixes`` concurrent attempts.

Classes:
    RemediationOrchestrator: Runs cycles against a signal source and control plane

Functions:
    run_cycle: Run a single cycle with default collaborators

Example:
    >>> orchestrator = RemediationOrchestrator(signal_source, control_plane)
    >>> summary = await orchestrator.run_cycle(config)
    >>> summary.fixed
    2
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..analysis.catalog import RemediationCatalog
from ..analysis.classifier import classify
from ..analysis.guidance import StaticGuidance
from ..config import AutoFixConfig
from ..constants import DEFAULT_DIAGNOSTICS_FILTER
from ..exceptions import InvalidConfigError, SignalSourceOutageError
from ..integrations.base import ControlPlane, GuidanceSource, SignalSource
from ..logging_context import LoggingContext
from ..metrics import track_attempt, track_attempt_duration, track_cycle, track_skip
from ..models import (
    AttemptOutcome,
    AttemptRecord,
    AttemptState,
    ErrorWindow,
    FailureKind,
    ResourceAnalysis,
    ResourceReport,
    ResourceStatus,
    RunSummary,
)
from ..retry import READ_RETRY, RetryConfig, call_with_retry
from ..utils import chunked, utc_now
from .attempt import AttemptStateMachine
from .cooldown import CooldownPolicy, CooldownTable

logger = logging.getLogger(__name__)

DEADLINE_REACHED = "deadline reached"


def generate_cycle_id(now: datetime) -> str:
    """Generate a unique cycle ID."""
    return f"cycle-{now.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"


class RemediationOrchestrator:
    """
    Cooldown-aware, concurrency-limited remediation scheduler.

    The orchestrator is the only writer of its ``CooldownTable``. Pass the
    same table (or a table loaded from a ``CooldownStore``) into consecutive
    cycles so that cooldowns and open circuits carry over.

    Args:
        signal_source: Source of error windows and diagnostics
        control_plane: Control plane used by every attempt
        cooldowns: Cooldown table to read and update
        catalog: Remediation catalog; built from the cycle config when omitted
        guidance: Guidance attached to resources that are not auto-fixed
        clock: Returns the current UTC time
        sleep: Awaitable used for delays and retry backoff
        read_retry: Retry policy for read-only calls
    """

    def __init__(
        self,
        signal_source: SignalSource,
        control_plane: ControlPlane,
        cooldowns: Optional[CooldownTable] = None,
        catalog: Optional[RemediationCatalog] = None,
        guidance: Optional[GuidanceSource] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        read_retry: Optional[RetryConfig] = None
    ):
        self.signal_source = signal_source
        self.control_plane = control_plane
        self.cooldowns = cooldowns if cooldowns is not None else CooldownTable()
        self.catalog = catalog
        self.guidance = guidance or StaticGuidance()
        self._clock = clock
        self._sleep = sleep
        self._read_retry = read_retry or READ_RETRY

    async def run_cycle(self, config: AutoFixConfig) -> RunSummary:
        """
        Run one monitoring and remediation cycle.

        Resource-scoped failures are reported in the summary and never abort
        the cycle.

        Raises:
            InvalidConfigError: If the configuration is invalid
            SignalSourceOutageError: If no resource's error window could be read
        """
        config.validate()
        catalog = self.catalog or RemediationCatalog(
            timeout_seconds=config.timeout_ceiling_seconds,
            memory_mb=config.memory_ceiling_mb,
        )

        started_at = self._clock()
        cycle_id = generate_cycle_id(started_at)
        deadline = None
        if config.run_deadline_seconds is not None:
            deadline = started_at + timedelta(seconds=config.run_deadline_seconds)

        reports = {
            resource_id: ResourceReport(resource_id=resource_id, status=ResourceStatus.HEALTHY)
            for resource_id in config.resources
        }

        with LoggingContext(cycle_id=cycle_id):
            logger.info(
                f"Starting cycle {cycle_id} for {len(config.resources)} resources "
                f"(auto_fix={'on' if config.auto_fix_enabled else 'off'})"
            )

            windows = await self._monitor(config, reports)
            analyses = await self._analyze(config, catalog, windows, reports)
            eligible = self._select(config, analyses, reports)
            attempts, batches, deadline_reached = await self._execute(
                config, eligible, deadline, reports
            )

            for record in attempts:
                self.cooldowns.record(record)

            summary = self._summarize(
                cycle_id, started_at, config, windows, reports, attempts, batches, deadline_reached
            )
            track_cycle(summary)

            logger.info(
                f"Cycle {cycle_id} complete: monitored={summary.monitored} "
                f"with_errors={summary.with_errors} fixed={summary.fixed} "
                f"rolled_back={summary.rolled_back} failed={summary.failed} "
                f"skipped={summary.skipped}"
            )
            for record in summary.requires_attention:
                logger.error(
                    f"{record.resource_id} requires manual remediation: {record.reason}"
                )

        return summary

    async def _read_window(self, resource_id: str, window: timedelta) -> ErrorWindow:
        return await call_with_retry(
            self.signal_source.get_error_window,
            resource_id,
            window,
            config=self._read_retry,
            sleep=self._sleep,
        )

    async def _monitor(
        self,
        config: AutoFixConfig,
        reports: Dict[str, ResourceReport]
    ) -> Dict[str, ErrorWindow]:
        """Read every resource's error window concurrently."""
        results = await asyncio.gather(
            *(self._read_window(resource_id, config.window) for resource_id in config.resources),
            return_exceptions=True,
        )

        windows: Dict[str, ErrorWindow] = {}
        for resource_id, result in zip(config.resources, results):
            report = reports[resource_id]
            if isinstance(result, Exception):
                logger.warning(f"Could not read error window for {resource_id}: {result}")
                report.status = ResourceStatus.ERROR
                report.reason = f"signals unavailable: {result}"
                continue
            if isinstance(result, BaseException):
                raise result
            windows[resource_id] = result
            report.error_count = result.error_count
            report.total_invocations = result.total_invocations

        if not windows:
            raise SignalSourceOutageError(
                f"Error windows unavailable for all {len(config.resources)} resources"
            )

        return windows

    async def _analyze(
        self,
        config: AutoFixConfig,
        catalog: RemediationCatalog,
        windows: Dict[str, ErrorWindow],
        reports: Dict[str, ResourceReport]
    ) -> List[ResourceAnalysis]:
        """Classify diagnostics for resources at or above the error threshold."""
        flagged = [
            resource_id for resource_id in config.resources
            if resource_id in windows and windows[resource_id].error_count >= config.error_threshold
        ]
        if not flagged:
            return []

        logger.info(f"{len(flagged)} resources at or above {config.error_threshold} errors")

        results = await asyncio.gather(
            *(
                call_with_retry(
                    self.signal_source.get_diagnostics,
                    resource_id,
                    config.window,
                    DEFAULT_DIAGNOSTICS_FILTER,
                    config.diagnostics_limit,
                    config=self._read_retry,
                    sleep=self._sleep,
                )
                for resource_id in flagged
            ),
            return_exceptions=True,
        )

        analyses = []
        for resource_id, result in zip(flagged, results):
            report = reports[resource_id]
            if isinstance(result, Exception):
                logger.warning(f"Could not read diagnostics for {resource_id}: {result}")
                report.status = ResourceStatus.ERROR
                report.reason = f"diagnostics unavailable: {result}"
                continue
            if isinstance(result, BaseException):
                raise result

            classification = classify(result)
            category = classification.dominant
            analysis = ResourceAnalysis(
                resource_id=resource_id,
                window=windows[resource_id],
                classification=classification,
                descriptor=catalog.descriptor_for(category, result),
                confidence=catalog.confidence(classification.total, classification.dominant_count),
                priority=catalog.priority(category, classification.total),
            )
            report.category = category
            report.confidence = analysis.confidence
            report.priority = analysis.priority
            analyses.append(analysis)

            logger.info(
                f"{resource_id}: {classification.total} samples, dominant {category.value} "
                f"({classification.dominant_count}), confidence {analysis.confidence.value}, "
                f"priority {analysis.priority}"
            )

        return analyses

    def _policy_skip(
        self,
        config: AutoFixConfig,
        analysis: ResourceAnalysis
    ) -> Optional[Tuple[str, str]]:
        """Return (metric label, reason) when policy forbids an auto-fix."""
        descriptor = analysis.descriptor
        if not config.auto_fix_enabled:
            return "auto_fix_disabled", "auto-fix disabled"
        if analysis.classification.total == 0:
            return "no_samples", "no diagnostic samples to classify"
        if not descriptor.auto_fixable:
            return "not_auto_fixable", f"{descriptor.category.value} errors require manual remediation"
        if not analysis.confidence.at_least(config.min_confidence_level):
            return "low_confidence", (
                f"confidence {analysis.confidence.value} below {config.min_confidence_level.value}"
            )
        if analysis.priority < config.min_priority:
            return "low_priority", f"priority {analysis.priority} below {config.min_priority}"
        return None

    def _skip(self, report: ResourceReport, label: str, reason: str) -> None:
        report.status = ResourceStatus.SKIPPED
        report.reason = reason
        if report.category is not None:
            report.guidance = self.guidance.guidance(report.category)
        track_skip(label)

    def _select(
        self,
        config: AutoFixConfig,
        analyses: List[ResourceAnalysis],
        reports: Dict[str, ResourceReport]
    ) -> List[ResourceAnalysis]:
        """Gate analyzed resources through the cooldown table and policy."""
        policy = CooldownPolicy.from_config(config)
        now = self._clock()
        eligible = []

        for analysis in analyses:
            resource_id = analysis.resource_id
            report = reports[resource_id]

            decision = self.cooldowns.evaluate(resource_id, now, policy)
            if not decision.eligible:
                label = "circuit_open" if decision.circuit_open else "cooldown"
                self._skip(report, label, decision.reason)
                continue

            skip = self._policy_skip(config, analysis)
            if skip is not None:
                label, reason = skip
                logger.info(f"Skipping {resource_id}: {reason}")
                self._skip(report, label, reason)
                continue

            eligible.append(analysis)

        return eligible

    def _build_attempt(
        self,
        config: AutoFixConfig,
        analysis: ResourceAnalysis,
        deadline: Optional[datetime]
    ) -> AttemptStateMachine:
        return AttemptStateMachine(
            resource_id=analysis.resource_id,
            descriptor=analysis.descriptor,
            control_plane=self.control_plane,
            alias=config.alias_name,
            rollback_enabled=config.rollback_enabled,
            settle_delay_seconds=config.settle_delay_seconds,
            clock=self._clock,
            sleep=self._sleep,
            deadline=deadline,
            read_retry=self._read_retry,
        )

    def _unexpected_failure(
        self,
        machine: AttemptStateMachine,
        error: Exception
    ) -> AttemptRecord:
        """Record for an attempt that raised instead of returning."""
        logger.error(
            f"Attempt {machine.attempt_id} on {machine.resource_id} raised "
            f"{type(error).__name__}: {error}",
            exc_info=error,
        )
        mutated = machine.state not in (AttemptState.IDLE, AttemptState.SNAPSHOT_CAPTURED)
        now = self._clock()
        return AttemptRecord(
            attempt_id=machine.attempt_id,
            resource_id=machine.resource_id,
            category=machine.descriptor.category,
            action=machine.action,
            outcome=AttemptOutcome.FAILED,
            new_revision=machine.new_revision,
            prior_revision=machine.prior_revision,
            failure_kind=FailureKind.UNEXPECTED_ERROR,
            reason=f"unexpected error: {type(error).__name__}: {error}",
            requires_manual_remediation=mutated,
            states=list(machine.states) + [AttemptState.FAILED],
            started_at=machine.started_at or now,
            completed_at=now,
        )

    async def _run_batch(
        self,
        config: AutoFixConfig,
        batch: List[ResourceAnalysis],
        deadline: Optional[datetime]
    ) -> List[AttemptRecord]:
        """Run one batch concurrently; returns when every attempt has terminated."""
        machines = [self._build_attempt(config, analysis, deadline) for analysis in batch]
        results = await asyncio.gather(
            *(machine.run() for machine in machines),
            return_exceptions=True,
        )

        records = []
        for machine, result in zip(machines, results):
            if isinstance(result, Exception):
                result = self._unexpected_failure(machine, result)
            elif isinstance(result, BaseException):
                raise result
            records.append(result)
        return records

    async def _execute(
        self,
        config: AutoFixConfig,
        eligible: List[ResourceAnalysis],
        deadline: Optional[datetime],
        reports: Dict[str, ResourceReport]
    ) -> Tuple[List[AttemptRecord], List[List[str]], bool]:
        """Run eligible resources in sequential batches."""
        batches = chunked(eligible, config.max_concurrent_fixes)
        records: List[AttemptRecord] = []
        started_batches: List[List[str]] = []
        deadline_reached = False

        for index, batch in enumerate(batches):
            if deadline is not None and self._clock() >= deadline:
                deadline_reached = True
                remaining = [a.resource_id for pending in batches[index:] for a in pending]
                logger.warning(
                    f"Run deadline reached, not starting {len(remaining)} remaining attempts"
                )
                for resource_id in remaining:
                    self._skip(reports[resource_id], "deadline", DEADLINE_REACHED)
                break

            resource_ids = [analysis.resource_id for analysis in batch]
            started_batches.append(resource_ids)
            logger.info(f"Starting batch {index + 1}/{len(batches)}: {', '.join(resource_ids)}")

            for record in await self._run_batch(config, batch, deadline):
                records.append(record)
                track_attempt(record)
                track_attempt_duration(record.duration_seconds, record.outcome.value)

                report = reports[record.resource_id]
                report.status = ResourceStatus.ATTEMPTED
                report.outcome = record.outcome
                report.reason = record.reason
                if record.outcome != AttemptOutcome.COMMITTED:
                    report.guidance = self.guidance.guidance(record.category)

            if index < len(batches) - 1 and config.inter_batch_delay_seconds > 0:
                await self._sleep(config.inter_batch_delay_seconds)

        return records, started_batches, deadline_reached

    def _summarize(
        self,
        cycle_id: str,
        started_at: datetime,
        config: AutoFixConfig,
        windows: Dict[str, ErrorWindow],
        reports: Dict[str, ResourceReport],
        attempts: List[AttemptRecord],
        batches: List[List[str]],
        deadline_reached: bool
    ) -> RunSummary:
        resources = [reports[resource_id] for resource_id in config.resources]
        return RunSummary(
            cycle_id=cycle_id,
            started_at=started_at,
            completed_at=self._clock(),
            monitored=len(config.resources),
            with_errors=sum(
                1 for window in windows.values() if window.error_count >= config.error_threshold
            ),
            fixed=sum(1 for a in attempts if a.outcome == AttemptOutcome.COMMITTED),
            failed=sum(1 for a in attempts if a.outcome == AttemptOutcome.FAILED),
            rolled_back=sum(1 for a in attempts if a.outcome == AttemptOutcome.ROLLED_BACK),
            skipped=sum(1 for r in resources if r.status == ResourceStatus.SKIPPED),
            deadline_reached=deadline_reached,
            resources=resources,
            attempts=attempts,
            batches=batches,
        )


async def run_cycle(
    config: AutoFixConfig,
    signal_source: SignalSource,
    control_plane: ControlPlane,
    cooldowns: Optional[CooldownTable] = None,
    **kwargs: Any
) -> RunSummary:
    """
    Run one cycle with a fresh orchestrator.

    Extra keyword arguments are passed to ``RemediationOrchestrator``.

    Raises:
        InvalidConfigError: If the configuration is invalid
        SignalSourceOutageError: If no resource's error window could be read
    """
    if not isinstance(config, AutoFixConfig):
        raise InvalidConfigError(f"Expected AutoFixConfig, got {type(config).__name__}")
    orchestrator = RemediationOrchestrator(signal_source, control_plane, cooldowns=cooldowns, **kwargs)
    return await orchestrator.run_cycle(config)

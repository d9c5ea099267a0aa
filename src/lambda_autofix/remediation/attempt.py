"""
Attempt state machine for a single remediation on a single resource.

An attempt walks ``idle -> snapshot_captured -> applied -> published ->
verifying`` and ends in exactly one of ``committed``, ``rolled_back`` or
``failed``. Published revisions are immutable, so compensation only ever
moves the alias back to the revision captured in the snapshot.

Classes:
    AttemptStateMachine: Runs one attempt and returns its AttemptRecord

Example:
    >>> machine = AttemptStateMachine("orders-api", descriptor, control_plane)
    >>> record = await machine.run()
    >>> record.outcome
    <AttemptOutcome.COMMITTED: 'committed'>
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..constants import DEFAULT_ALIAS_NAME, DEFAULT_SETTLE_DELAY_SECONDS
from ..exceptions import ControlPlaneError
from ..integrations.base import ControlPlane
from ..logging_context import LoggingContext
from ..models import (
    ActionType,
    AttemptOutcome,
    AttemptRecord,
    AttemptState,
    ConfigurationChange,
    FailureKind,
    RemediationDescriptor,
    Snapshot,
)
from ..retry import READ_RETRY, RetryConfig, call_with_retry
from ..utils import utc_now

logger = logging.getLogger(__name__)

TERMINAL_STATES = frozenset({
    AttemptState.COMMITTED,
    AttemptState.ROLLED_BACK,
    AttemptState.FAILED,
})


def generate_attempt_id(now: datetime) -> str:
    """Generate a unique attempt ID."""
    return f"att-{now.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"


class AttemptStateMachine:
    """
    Runs one remediation attempt against a control plane.

    The machine is single-use: ``run()`` may be awaited once. It holds no
    state shared with other attempts, so attempts for different resources
    can run concurrently.

    Args:
        resource_id: Resource to remediate
        descriptor: Auto-fixable descriptor carrying the action
        control_plane: Control plane used for every mutation and read
        alias: Alias that serves live traffic
        rollback_enabled: Restore the prior revision when verification fails
        settle_delay_seconds: Wait between moving the alias and verifying
        clock: Returns the current UTC time
        sleep: Awaitable used for the settle delay and read retries
        deadline: Attempts that have not mutated anything by this time stop
        read_retry: Retry policy for snapshot and verification reads

    Raises:
        ValueError: If the descriptor is not auto-fixable
    """

    def __init__(
        self,
        resource_id: str,
        descriptor: RemediationDescriptor,
        control_plane: ControlPlane,
        alias: str = DEFAULT_ALIAS_NAME,
        rollback_enabled: bool = True,
        settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        deadline: Optional[datetime] = None,
        read_retry: Optional[RetryConfig] = None
    ):
        action = descriptor.action
        if not descriptor.auto_fixable or action.action_type == ActionType.MANUAL:
            raise ValueError(
                f"{descriptor.category.value} remediation '{action.kind}' is not auto-fixable"
            )

        self.resource_id = resource_id
        self.descriptor = descriptor
        self.action = action
        self.control_plane = control_plane
        self.alias = alias
        self.rollback_enabled = rollback_enabled
        self.settle_delay_seconds = settle_delay_seconds
        self.deadline = deadline
        self._clock = clock
        self._sleep = sleep
        self._read_retry = read_retry or READ_RETRY

        self.attempt_id = generate_attempt_id(clock())
        self.state = AttemptState.IDLE
        self.states: List[AttemptState] = [AttemptState.IDLE]
        self.snapshot: Optional[Snapshot] = None
        self.prior_revision: Optional[str] = None
        self.new_revision: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self._started = False

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    async def run(self) -> AttemptRecord:
        """
        Drive the attempt to a terminal state.

        Control plane failures never escape; they are folded into the
        returned record.
        """
        if self._started:
            raise RuntimeError(f"Attempt {self.attempt_id} has already run")
        self._started = True

        started_at = self.started_at = self._clock()
        with LoggingContext(resource_id=self.resource_id, attempt_id=self.attempt_id):
            logger.info(
                f"Starting attempt {self.attempt_id} on {self.resource_id}: {self.action.describe()}"
            )
            record = await self._execute(started_at)

            message = (
                f"Attempt {self.attempt_id} on {self.resource_id} finished "
                f"{record.outcome.value} in {record.duration_seconds:.2f}s"
            )
            if record.failure_kind is not None:
                message += f" ({record.failure_kind.value}: {record.reason})"
            if record.outcome == AttemptOutcome.COMMITTED:
                logger.info(message)
            else:
                logger.warning(message)

        return record

    def _transition(self, state: AttemptState) -> None:
        logger.debug(f"{self.resource_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.states.append(state)

    async def _execute(self, started_at: datetime) -> AttemptRecord:
        try:
            self.snapshot = await call_with_retry(
                self.control_plane.snapshot,
                self.resource_id,
                self.alias,
                config=self._read_retry,
                sleep=self._sleep,
            )
        except ControlPlaneError as e:
            return self._fail(started_at, FailureKind.SNAPSHOT_FAILED, f"snapshot failed: {e}")
        self.prior_revision = self.snapshot.revision
        self._transition(AttemptState.SNAPSHOT_CAPTURED)

        if self.deadline is not None and self._clock() >= self.deadline:
            return self._fail(
                started_at, FailureKind.DEADLINE_EXCEEDED, "run deadline reached before apply"
            )

        try:
            await self.control_plane.apply_action(self.resource_id, self.action)
        except ControlPlaneError as e:
            return await self._compensate(
                started_at, FailureKind.APPLY_FAILED, f"apply failed: {e}", AttemptOutcome.FAILED
            )
        except Exception as e:
            return await self._compensate_unexpected(started_at, "apply", e, AttemptOutcome.FAILED)
        self._transition(AttemptState.APPLIED)

        try:
            self.new_revision = await self.control_plane.publish(
                self.resource_id, self.action.describe()
            )
        except ControlPlaneError as e:
            return await self._compensate(
                started_at, FailureKind.PUBLISH_FAILED, f"publish failed: {e}", AttemptOutcome.ROLLED_BACK
            )
        except Exception as e:
            return await self._compensate_unexpected(started_at, "publish", e, AttemptOutcome.ROLLED_BACK)
        self._transition(AttemptState.PUBLISHED)

        try:
            await self.control_plane.set_alias(self.resource_id, self.alias, self.new_revision)
        except ControlPlaneError as e:
            return await self._compensate(
                started_at, FailureKind.ALIAS_FAILED, f"alias update failed: {e}", AttemptOutcome.ROLLED_BACK
            )
        except Exception as e:
            return await self._compensate_unexpected(started_at, "alias update", e, AttemptOutcome.ROLLED_BACK)
        self._transition(AttemptState.VERIFYING)

        verified, detail = await self._verify()
        if verified:
            self._transition(AttemptState.COMMITTED)
            self.snapshot = None
            return self._record(started_at, AttemptOutcome.COMMITTED)

        if not self.rollback_enabled:
            logger.error(
                f"Verification failed for {self.resource_id} and rollback is disabled; "
                f"alias {self.alias} stays on revision {self.new_revision}"
            )
            return self._fail(
                started_at,
                FailureKind.VERIFICATION_FAILED,
                f"verification failed: {detail}; rollback disabled",
                requires_manual_remediation=True,
            )

        return await self._compensate(
            started_at,
            FailureKind.VERIFICATION_FAILED,
            f"verification failed: {detail}",
            AttemptOutcome.ROLLED_BACK,
        )

    async def _verify(self) -> Tuple[bool, str]:
        """Check that the live alias serves the change; returns (ok, detail)."""
        if self.settle_delay_seconds > 0:
            await self._sleep(self.settle_delay_seconds)

        try:
            state = await call_with_retry(
                self.control_plane.read,
                self.resource_id,
                self.alias,
                config=self._read_retry,
                sleep=self._sleep,
            )
        except ControlPlaneError as e:
            return False, f"read failed: {e}"
        except Exception as e:
            logger.exception(f"Unexpected error reading {self.resource_id} alias {self.alias}")
            return False, f"read failed: {type(e).__name__}: {e}"

        if state.revision != self.new_revision:
            return False, (
                f"alias {self.alias} serves revision {state.revision}, expected {self.new_revision}"
            )

        if isinstance(self.action, ConfigurationChange):
            prop = self.action.target_property
            actual = state.configuration.get(prop)
            if actual != self.action.expected_value:
                return False, f"{prop} is {actual}, expected {self.action.expected_value}"

        return True, "verified"

    async def _compensate(
        self,
        started_at: datetime,
        failure_kind: FailureKind,
        reason: str,
        outcome: AttemptOutcome
    ) -> AttemptRecord:
        """Point the alias back at the snapshot revision and finish."""
        prior = self.prior_revision
        try:
            await self.control_plane.set_alias(self.resource_id, self.alias, prior)
        except Exception as e:
            logger.critical(
                f"Rollback of {self.resource_id} alias {self.alias} to revision {prior} failed: {e}. "
                f"Manual remediation required"
            )
            return self._fail(
                started_at,
                FailureKind.ROLLBACK_FAILED,
                f"{reason}; rollback failed: {e}",
                requires_manual_remediation=True,
            )

        logger.info(f"Restored {self.resource_id} alias {self.alias} to revision {prior}")
        if outcome == AttemptOutcome.FAILED:
            return self._fail(started_at, failure_kind, reason)

        self._transition(AttemptState.ROLLED_BACK)
        return self._record(started_at, AttemptOutcome.ROLLED_BACK, failure_kind, reason)

    async def _compensate_unexpected(
        self,
        started_at: datetime,
        step: str,
        error: Exception,
        outcome: AttemptOutcome
    ) -> AttemptRecord:
        logger.exception(f"Unexpected error during {step} on {self.resource_id}")
        return await self._compensate(
            started_at,
            FailureKind.UNEXPECTED_ERROR,
            f"unexpected error during {step}: {type(error).__name__}: {error}",
            outcome,
        )

    def _fail(
        self,
        started_at: datetime,
        failure_kind: FailureKind,
        reason: str,
        requires_manual_remediation: bool = False
    ) -> AttemptRecord:
        self._transition(AttemptState.FAILED)
        return self._record(
            started_at, AttemptOutcome.FAILED, failure_kind, reason, requires_manual_remediation
        )

    def _record(
        self,
        started_at: datetime,
        outcome: AttemptOutcome,
        failure_kind: Optional[FailureKind] = None,
        reason: Optional[str] = None,
        requires_manual_remediation: bool = False
    ) -> AttemptRecord:
        return AttemptRecord(
            attempt_id=self.attempt_id,
            resource_id=self.resource_id,
            category=self.descriptor.category,
            action=self.action,
            outcome=outcome,
            new_revision=self.new_revision,
            prior_revision=self.prior_revision,
            failure_kind=failure_kind,
            reason=reason,
            requires_manual_remediation=requires_manual_remediation,
            states=list(self.states),
            started_at=started_at,
            completed_at=self._clock(),
        )

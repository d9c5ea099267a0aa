"""
Per-resource cooldown and circuit-breaker bookkeeping.

``CooldownTable`` is the single owner of ``CooldownEntry`` values. The
orchestrator evaluates it before scheduling a resource and records every
completed attempt into it once all batches of a cycle have finished.

Eligibility is evaluated in this order:

1. An entry older than ``stale_reset_factor * cooldown_seconds`` is discarded.
2. An entry younger than ``cooldown_seconds`` blocks the resource.
3. ``consecutive_failures >= circuit_breaker_threshold`` opens the circuit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from ..constants import (
    DEFAULT_CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_STALE_RESET_FACTOR,
)
from ..models import AttemptOutcome, AttemptRecord, CooldownEntry

if TYPE_CHECKING:
    from ..config import AutoFixConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CooldownPolicy:
    """
    Thresholds used when evaluating eligibility.

    Attributes:
        cooldown_seconds: Minimum time between attempts on one resource
        circuit_breaker_threshold: Consecutive failures that open the circuit
        stale_reset_factor: Multiple of the cooldown after which an entry is forgotten
    """
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    circuit_breaker_threshold: int = DEFAULT_CIRCUIT_BREAKER_THRESHOLD
    stale_reset_factor: float = DEFAULT_STALE_RESET_FACTOR

    @classmethod
    def from_config(cls, config: "AutoFixConfig") -> "CooldownPolicy":
        return cls(
            cooldown_seconds=config.cooldown_seconds,
            circuit_breaker_threshold=config.circuit_breaker_threshold,
            stale_reset_factor=config.stale_reset_factor,
        )

    @property
    def stale_after_seconds(self) -> float:
        return self.cooldown_seconds * self.stale_reset_factor


@dataclass(frozen=True)
class EligibilityDecision:
    """Result of evaluating one resource against the cooldown table."""
    eligible: bool
    reason: Optional[str] = None
    circuit_open: bool = False
    stale_reset: bool = False

    @classmethod
    def allow(cls, stale_reset: bool = False) -> "EligibilityDecision":
        return cls(eligible=True, stale_reset=stale_reset)

    @classmethod
    def deny(cls, reason: str, circuit_open: bool = False) -> "EligibilityDecision":
        return cls(eligible=False, reason=reason, circuit_open=circuit_open)


class CooldownTable:
    """
    Cooldown entries keyed by resource id.

    Usage:
        table = CooldownTable()
        decision = table.evaluate("orders-api", now, CooldownPolicy())
        if decision.eligible:
            ...
        table.record(attempt_record)
    """

    def __init__(self, entries: Optional[Dict[str, CooldownEntry]] = None):
        self._entries: Dict[str, CooldownEntry] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._entries

    def __iter__(self) -> Iterator[CooldownEntry]:
        return iter(list(self._entries.values()))

    def get(self, resource_id: str) -> Optional[CooldownEntry]:
        return self._entries.get(resource_id)

    def reset(self, resource_id: str) -> bool:
        """
        Forget a resource's history.

        Returns:
            True if an entry was removed
        """
        return self._entries.pop(resource_id, None) is not None

    def evaluate(
        self,
        resource_id: str,
        now: datetime,
        policy: CooldownPolicy
    ) -> EligibilityDecision:
        """
        Decide whether a resource may be attempted at ``now``.

        A stale entry is discarded as a side effect.
        """
        entry = self._entries.get(resource_id)
        if entry is None:
            return EligibilityDecision.allow()

        elapsed = (now - entry.last_attempt_at).total_seconds()

        if elapsed > policy.stale_after_seconds:
            del self._entries[resource_id]
            logger.info(
                f"Cooldown entry for {resource_id} is stale ({elapsed:.0f}s old), "
                f"resetting failure count {entry.consecutive_failures}"
            )
            return EligibilityDecision.allow(stale_reset=True)

        if elapsed < policy.cooldown_seconds:
            remaining = policy.cooldown_seconds - elapsed
            logger.debug(f"{resource_id} in cooldown for another {remaining:.0f}s")
            return EligibilityDecision.deny(f"in cooldown ({remaining:.0f}s remaining)")

        if entry.consecutive_failures >= policy.circuit_breaker_threshold:
            logger.info(
                f"Circuit open for {resource_id}: {entry.consecutive_failures} consecutive "
                f"failures (threshold {policy.circuit_breaker_threshold})"
            )
            return EligibilityDecision.deny(
                f"circuit open after {entry.consecutive_failures} consecutive failures",
                circuit_open=True,
            )

        return EligibilityDecision.allow()

    def record(self, record: AttemptRecord) -> CooldownEntry:
        """
        Fold a completed attempt into the table.

        A committed attempt resets the failure count; rolled back and failed
        attempts both increment it.
        """
        previous = self._entries.get(record.resource_id)
        failures = previous.consecutive_failures if previous else 0
        attempts = previous.attempts if previous else 0

        if record.outcome == AttemptOutcome.COMMITTED:
            failures = 0
        else:
            failures += 1

        entry = CooldownEntry(
            resource_id=record.resource_id,
            last_attempt_at=record.started_at,
            consecutive_failures=failures,
            attempts=attempts + 1,
        )
        self._entries[record.resource_id] = entry
        return entry

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary keyed by resource id."""
        return {
            resource_id: entry.model_dump(mode="json")
            for resource_id, entry in self._entries.items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CooldownTable":
        return cls({
            resource_id: CooldownEntry.model_validate(value)
            for resource_id, value in data.items()
        })

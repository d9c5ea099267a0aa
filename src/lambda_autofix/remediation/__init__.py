"""
Automated remediation for lambda-autofix.

Classes:
    AttemptStateMachine: Snapshot, apply, publish, verify and roll back one fix
    CooldownTable: Per-resource cooldown and circuit-breaker state
    RemediationOrchestrator: Cooldown-aware, batched remediation cycles

Functions:
    run_cycle: Run one monitoring and remediation cycle
"""

from .attempt import AttemptStateMachine
from .cooldown import CooldownPolicy, CooldownTable, EligibilityDecision
from .scheduler import RemediationOrchestrator, run_cycle

__all__ = [
    "AttemptStateMachine",
    "CooldownPolicy",
    "CooldownTable",
    "EligibilityDecision",
    "RemediationOrchestrator",
    "run_cycle",
]

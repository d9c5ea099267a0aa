"""
Static remediation guidance for error categories.

Used when a resource is not fixed automatically, so the run summary still
tells an operator where to start.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..integrations.base import GuidanceSource
from ..models import ErrorCategory


@dataclass(frozen=True)
class GuidanceEntry:
    """Documentation snippet for one category."""
    title: str
    summary: str
    best_practices: List[str] = field(default_factory=list)

    def render(self) -> str:
        text = f"{self.title}: {self.summary}"
        if self.best_practices:
            text += " " + "; ".join(self.best_practices) + "."
        return text


DEFAULT_GUIDANCE: Dict[ErrorCategory, GuidanceEntry] = {
    ErrorCategory.TIMEOUT: GuidanceEntry(
        title="Function Timeout Configuration",
        summary="Functions have a maximum execution time limit that can be raised up to 15 minutes.",
        best_practices=[
            "Set timeout based on expected execution time",
            "Consider a workflow service for longer jobs",
        ],
    ),
    ErrorCategory.MEMORY: GuidanceEntry(
        title="Function Memory Configuration",
        summary="Memory allocation affects both memory and CPU; too little causes out-of-memory errors.",
        best_practices=[
            "Monitor actual memory usage",
            "Process large datasets in streams or chunks",
        ],
    ),
    ErrorCategory.PERMISSION: GuidanceEntry(
        title="Execution Role Permissions",
        summary="Functions need IAM permissions for every service and resource they access.",
        best_practices=[
            "Follow the principle of least privilege",
            "Check resource ARNs in the failing policy statement",
        ],
    ),
    ErrorCategory.DEPENDENCY: GuidanceEntry(
        title="Function Dependencies",
        summary="A module imported by the function is missing from the deployment package.",
        best_practices=["Bundle dependencies in the package or a layer"],
    ),
    ErrorCategory.SYNTAX: GuidanceEntry(
        title="Function Runtime Errors",
        summary="The deployed code fails to parse.",
        best_practices=["Run a linter before deploying"],
    ),
    ErrorCategory.RUNTIME: GuidanceEntry(
        title="Function Error Handling",
        summary="Unhandled runtime errors terminate invocations.",
        best_practices=["Add null checks around property access", "Add retry logic for transient calls"],
    ),
}

FALLBACK_GUIDANCE = GuidanceEntry(
    title="Manual Investigation Required",
    summary="Review the function's error logs and documentation.",
)


class StaticGuidance(GuidanceSource):
    """GuidanceSource backed by a fixed table."""

    def __init__(self, entries: Optional[Dict[ErrorCategory, GuidanceEntry]] = None):
        self.entries = dict(DEFAULT_GUIDANCE if entries is None else entries)

    def guidance(self, category: ErrorCategory) -> str:
        return self.entries.get(category, FALLBACK_GUIDANCE).render()

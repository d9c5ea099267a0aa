"""
Interfaces consumed by the remediation core.

The signal source and the control plane are external collaborators. Adapters
implement these abstract classes; every method is a coroutine so that the
orchestrator can run attempts for different resources concurrently.
"""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List

from ..models import (
    ApplyResult,
    DiagnosticSample,
    ErrorCategory,
    ErrorWindow,
    RemediationActionBase,
    ResourceState,
    Snapshot,
)


class SignalSource(ABC):
    """Read-only provider of error counts and diagnostic lines."""

    @abstractmethod
    async def get_error_window(self, resource_id: str, window: timedelta) -> ErrorWindow:
        """
        Error and invocation counts over the trailing window.

        Raises:
            SignalUnavailableError: If the counts cannot be retrieved
        """
        pass

    @abstractmethod
    async def get_diagnostics(
        self,
        resource_id: str,
        window: timedelta,
        filter_pattern: str,
        limit: int
    ) -> List[DiagnosticSample]:
        """
        Recent diagnostic lines within the window, at most ``limit`` of them.

        No ordering is guaranteed.

        Raises:
            SignalUnavailableError: If the lines cannot be retrieved
        """
        pass


class ControlPlane(ABC):
    """
    Mutation interface of the managed resource.

    Revisions are immutable once published; the alias is the only mutable
    pointer to live traffic. All methods raise a ``ControlPlaneError``
    subclass on failure.
    """

    @abstractmethod
    async def snapshot(self, resource_id: str, alias: str) -> Snapshot:
        """Capture the revision and configuration the alias currently serves."""
        pass

    @abstractmethod
    async def apply_action(self, resource_id: str, action: RemediationActionBase) -> ApplyResult:
        """Apply the action to the resource's unpublished working copy."""
        pass

    @abstractmethod
    async def publish(self, resource_id: str, description: str) -> str:
        """Publish the working copy as a new immutable revision, returning its id."""
        pass

    @abstractmethod
    async def set_alias(self, resource_id: str, alias: str, revision: str) -> None:
        """Point the alias at a published revision."""
        pass

    @abstractmethod
    async def read(self, resource_id: str, alias: str) -> ResourceState:
        """Read the revision and configuration currently behind the alias."""
        pass


class GuidanceSource(ABC):
    """Provider of human-readable remediation guidance."""

    @abstractmethod
    def guidance(self, category: ErrorCategory) -> str:
        """Guidance text for an error category."""
        pass

"""
In-process signal source and control plane.

Used for dry runs and tests. The control plane keeps the same shape as a
function service: a mutable working copy, immutable published revisions, and
aliases pointing at revisions. Failures can be injected per operation.

Example:
    >>> plane = InMemoryControlPlane()
    >>> plane.add_resource("orders-api", {"timeout": 30, "memory_size": 256})
    >>> plane.fail_on("publish", "orders-api")
"""

import asyncio
import copy
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..constants import DEFAULT_ALIAS_NAME
from ..exceptions import (
    AliasUpdateError,
    ApplyFailedError,
    PublishError,
    ReadError,
    SignalUnavailableError,
    SnapshotError,
)
from ..models import (
    ApplyResult,
    CodeChange,
    ConfigurationChange,
    DiagnosticSample,
    ErrorWindow,
    RemediationActionBase,
    ResourceState,
    Snapshot,
)
from ..utils import utc_now
from .base import ControlPlane, SignalSource

logger = logging.getLogger(__name__)

OPERATIONS = ("snapshot", "apply", "publish", "set_alias", "read")

_ERRORS = {
    "snapshot": SnapshotError,
    "apply": ApplyFailedError,
    "publish": PublishError,
    "set_alias": AliasUpdateError,
    "read": ReadError,
}


@dataclass
class FailureRule:
    """
    Injected failure for one operation.

    Attributes:
        operation: One of ``OPERATIONS``
        resource_id: Resource the rule applies to, None for every resource
        skip: Number of matching calls that succeed before the rule fires
        times: Number of failures before the rule is spent, None for unlimited
        message: Error message carried by the raised exception
    """
    operation: str
    resource_id: Optional[str] = None
    skip: int = 0
    times: Optional[int] = None
    message: str = "injected failure"
    seen: int = 0
    fired: int = 0

    def matches(self, operation: str, resource_id: str) -> bool:
        return self.operation == operation and self.resource_id in (None, resource_id)

    def should_fail(self) -> bool:
        self.seen += 1
        if self.seen <= self.skip:
            return False
        if self.times is not None and self.fired >= self.times:
            return False
        self.fired += 1
        return True


@dataclass
class InMemoryFunction:
    """Working copy, published revisions and aliases of one resource."""
    working: Dict[str, Any]
    revisions: Dict[str, Mapping[str, Any]] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    next_revision: int = 1

    def publish(self) -> str:
        revision = str(self.next_revision)
        self.next_revision += 1
        self.revisions[revision] = MappingProxyType(copy.deepcopy(self.working))
        return revision


class InMemoryControlPlane(ControlPlane):
    """
    ControlPlane backed by dictionaries.

    Every call is appended to ``calls`` as ``(operation, resource_id, detail)``
    and yields to the event loop once, so concurrent attempts interleave the
    way they would against a remote service.

    Args:
        clock: Time source for snapshots
        ignore_configuration: Resources whose configuration changes are
            accepted but silently not applied
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        ignore_configuration: Iterable[str] = ()
    ):
        self._clock = clock
        self.functions: Dict[str, InMemoryFunction] = {}
        self.ignore_configuration: Set[str] = set(ignore_configuration)
        self.failures: List[FailureRule] = []
        self.calls: List[Tuple[str, str, Any]] = []

    def add_resource(
        self,
        resource_id: str,
        configuration: Optional[Dict[str, Any]] = None,
        alias: str = DEFAULT_ALIAS_NAME
    ) -> str:
        """
        Register a resource with one published revision behind ``alias``.

        Returns:
            The initial revision id
        """
        function = InMemoryFunction(working=dict(configuration or {"timeout": 3, "memory_size": 128}))
        revision = function.publish()
        function.aliases[alias] = revision
        self.functions[resource_id] = function
        return revision

    def fail_on(
        self,
        operation: str,
        resource_id: Optional[str] = None,
        skip: int = 0,
        times: Optional[int] = None,
        message: str = "injected failure"
    ) -> FailureRule:
        """Make matching calls of ``operation`` raise its ControlPlaneError."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation '{operation}', expected one of {OPERATIONS}")
        rule = FailureRule(operation, resource_id, skip=skip, times=times, message=message)
        self.failures.append(rule)
        return rule

    def clear_failures(self) -> None:
        self.failures.clear()

    def live_revision(self, resource_id: str, alias: str = DEFAULT_ALIAS_NAME) -> str:
        return self.functions[resource_id].aliases[alias]

    def revision_configuration(self, resource_id: str, revision: str) -> Dict[str, Any]:
        return dict(self.functions[resource_id].revisions[revision])

    def calls_for(self, resource_id: str) -> List[str]:
        return [operation for operation, rid, _ in self.calls if rid == resource_id]

    async def _enter(self, operation: str, resource_id: str, detail: Any = None) -> InMemoryFunction:
        self.calls.append((operation, resource_id, detail))
        await asyncio.sleep(0)

        error_cls = _ERRORS[operation]
        for rule in self.failures:
            if rule.matches(operation, resource_id) and rule.should_fail():
                raise error_cls(resource_id, rule.message)

        function = self.functions.get(resource_id)
        if function is None:
            raise error_cls(resource_id, "resource not found")
        return function

    def _alias_target(self, function: InMemoryFunction, resource_id: str, alias: str, error_cls) -> str:
        revision = function.aliases.get(alias)
        if revision is None:
            raise error_cls(resource_id, f"alias '{alias}' not found")
        return revision

    async def snapshot(self, resource_id: str, alias: str) -> Snapshot:
        function = await self._enter("snapshot", resource_id, alias)
        revision = self._alias_target(function, resource_id, alias, SnapshotError)
        return Snapshot(
            resource_id=resource_id,
            alias=alias,
            revision=revision,
            configuration=dict(function.revisions[revision]),
            captured_at=self._clock(),
        )

    async def apply_action(self, resource_id: str, action: RemediationActionBase) -> ApplyResult:
        function = await self._enter("apply", resource_id, action.kind)

        if isinstance(action, ConfigurationChange):
            detail = {action.target_property: action.expected_value}
            if resource_id in self.ignore_configuration:
                logger.debug(f"Ignoring {detail} for {resource_id}")
            else:
                function.working.update(detail)
        elif isinstance(action, CodeChange):
            digest = hashlib.sha256(
                f"{function.working.get('code_sha256', '')}{action.model_dump_json()}".encode()
            ).hexdigest()
            function.working["code_sha256"] = digest
            detail = {"code_sha256": digest}
        else:
            raise ApplyFailedError(resource_id, f"action '{action.kind}' cannot be applied automatically")

        return ApplyResult(resource_id=resource_id, action_kind=action.kind, detail=detail)

    async def publish(self, resource_id: str, description: str) -> str:
        function = await self._enter("publish", resource_id, description)
        return function.publish()

    async def set_alias(self, resource_id: str, alias: str, revision: str) -> None:
        function = await self._enter("set_alias", resource_id, revision)
        if revision not in function.revisions:
            raise AliasUpdateError(resource_id, f"revision '{revision}' does not exist")
        function.aliases[alias] = revision

    async def read(self, resource_id: str, alias: str) -> ResourceState:
        function = await self._enter("read", resource_id, alias)
        revision = self._alias_target(function, resource_id, alias, ReadError)
        return ResourceState(
            resource_id=resource_id,
            alias=alias,
            revision=revision,
            configuration=dict(function.revisions[revision]),
        )


class InMemorySignalSource(SignalSource):
    """
    SignalSource serving canned error windows and diagnostics.

    The filter pattern is not applied; diagnostics are assumed to be the
    already-filtered error lines. Resources without a window report zero
    errors.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self.windows: Dict[str, ErrorWindow] = {}
        self.diagnostics: Dict[str, List[DiagnosticSample]] = {}
        self.unavailable: Set[str] = set()
        self.diagnostics_unavailable: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []

    def set_window(self, resource_id: str, error_count: int, total_invocations: Optional[int] = None) -> None:
        self.windows[resource_id] = ErrorWindow(
            error_count=error_count,
            total_invocations=total_invocations if total_invocations is not None else error_count,
        )

    def set_diagnostics(
        self,
        resource_id: str,
        messages: Iterable[Union[str, DiagnosticSample]]
    ) -> None:
        now = self._clock()
        samples = []
        for index, message in enumerate(messages):
            if isinstance(message, DiagnosticSample):
                samples.append(message)
            else:
                samples.append(DiagnosticSample(
                    timestamp=now - timedelta(seconds=index),
                    message=message,
                    stream=f"{resource_id}/stream",
                ))
        self.diagnostics[resource_id] = samples

    def add_errors(self, resource_id: str, messages: List[str], total_invocations: Optional[int] = None) -> None:
        """Set a window of ``len(messages)`` errors with matching diagnostics."""
        self.set_window(resource_id, len(messages), total_invocations)
        self.set_diagnostics(resource_id, messages)

    async def get_error_window(self, resource_id: str, window: timedelta) -> ErrorWindow:
        self.calls.append(("get_error_window", resource_id))
        await asyncio.sleep(0)
        if resource_id in self.unavailable:
            raise SignalUnavailableError(resource_id, "metrics unavailable")
        return self.windows.get(resource_id, ErrorWindow())

    async def get_diagnostics(
        self,
        resource_id: str,
        window: timedelta,
        filter_pattern: str,
        limit: int
    ) -> List[DiagnosticSample]:
        self.calls.append(("get_diagnostics", resource_id))
        await asyncio.sleep(0)
        if resource_id in self.diagnostics_unavailable:
            raise SignalUnavailableError(resource_id, "logs unavailable")
        return list(self.diagnostics.get(resource_id, []))[:limit]

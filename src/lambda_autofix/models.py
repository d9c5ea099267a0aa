"""
Data models for lambda-autofix using Pydantic for validation.

Records produced by the signal source, the classifier, the catalog and the
attempt state machine are frozen. ``ResourceReport`` and ``RunSummary`` are
assembled by the orchestrator during a cycle and then handed out.
"""
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from dateutil import parser as date_parser


@lru_cache(maxsize=1024)
def _parse_timestamp_cached(timestamp_str: str) -> Optional[datetime]:
    """Parse a timestamp string, caching repeated formats."""
    try:
        return date_parser.parse(timestamp_str)
    except (ValueError, TypeError, OverflowError):
        return None


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ErrorCategory(str, Enum):
    """
    Closed set of error categories.

    Declaration order matters: the classifier tries patterns in this order and
    dominant-category ties are broken in favour of the earlier member.
    """
    TIMEOUT = "timeout"
    MEMORY = "memory"
    PERMISSION = "permission"
    DEPENDENCY = "dependency"
    SYNTAX = "syntax"
    RUNTIME = "runtime"
    OTHER = "other"


class Confidence(str, Enum):
    """Confidence in a classification, ordered low < medium < high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return list(Confidence).index(self)

    def at_least(self, other: "Confidence") -> bool:
        return self.rank >= other.rank


class DiagnosticSample(BaseModel):
    """
    One diagnostic log line retrieved from the signal source.

    Attributes:
        timestamp: When the line was emitted (ISO string, epoch ms or datetime)
        message: Raw text of the line
        stream: Identifier of the stream the line came from
    """
    model_config = ConfigDict(frozen=True)

    timestamp: Optional[datetime] = None
    message: str = ""
    stream: str = "unknown"

    @field_validator('timestamp', mode='before')
    @classmethod
    def parse_timestamp(cls, v: Any) -> Optional[datetime]:
        """Accept datetimes, epoch milliseconds and date strings."""
        if v is None:
            return None
        if isinstance(v, datetime):
            return _ensure_utc(v)
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        if isinstance(v, str):
            parsed = _parse_timestamp_cached(v)
            return _ensure_utc(parsed) if parsed else None
        return None


class ErrorWindow(BaseModel):
    """Error and invocation counts over a trailing window."""
    model_config = ConfigDict(frozen=True)

    error_count: int = Field(ge=0, default=0)
    total_invocations: int = Field(ge=0, default=0)

    @property
    def error_rate(self) -> float:
        """Errors as a percentage of invocations."""
        if self.total_invocations == 0:
            return 0.0
        return self.error_count / self.total_invocations * 100


class ClassificationResult(BaseModel):
    """Per-category counts for one analysis window."""
    model_config = ConfigDict(frozen=True)

    counts: Dict[ErrorCategory, int]
    total: int = Field(ge=0)
    dominant: ErrorCategory

    def count(self, category: ErrorCategory) -> int:
        return self.counts.get(category, 0)

    @property
    def dominant_count(self) -> int:
        return self.count(self.dominant)


# Remediation actions

class ActionType(str, Enum):
    """How an action changes the resource and how success is verified."""
    CONFIGURATION = "configuration"
    CODE = "code"
    MANUAL = "manual"


class RemediationActionBase(BaseModel):
    """Common base of every remediation action variant."""
    model_config = ConfigDict(frozen=True)

    action_type: ClassVar[ActionType] = ActionType.MANUAL

    def describe(self) -> str:
        return f"Auto-fix: {self.kind}"


class ConfigurationChange(RemediationActionBase):
    """Action that sets a numeric configuration property."""
    action_type: ClassVar[ActionType] = ActionType.CONFIGURATION
    target_property: ClassVar[str] = ""

    @property
    def expected_value(self) -> int:
        raise NotImplementedError


class CodeChange(RemediationActionBase):
    """Action that replaces the resource's code content."""
    action_type: ClassVar[ActionType] = ActionType.CODE


class RaiseTimeout(ConfigurationChange):
    kind: Literal["raise_timeout"] = "raise_timeout"
    seconds: int = Field(gt=0)

    target_property: ClassVar[str] = "timeout"

    @property
    def expected_value(self) -> int:
        return self.seconds

    def describe(self) -> str:
        return f"Auto-fix: Updated timeout to {self.seconds}s"


class RaiseMemory(ConfigurationChange):
    kind: Literal["raise_memory"] = "raise_memory"
    megabytes: int = Field(gt=0)

    target_property: ClassVar[str] = "memory_size"

    @property
    def expected_value(self) -> int:
        return self.megabytes

    def describe(self) -> str:
        return f"Auto-fix: Updated memory to {self.megabytes}MB"


class UpdateDependencies(CodeChange):
    kind: Literal["update_dependencies"] = "update_dependencies"
    packages: List[str] = Field(default_factory=list)

    def describe(self) -> str:
        if self.packages:
            return f"Auto-fix: Added dependencies: {', '.join(self.packages)}"
        return "Auto-fix: Refreshed dependencies"


class SyntaxLocation(BaseModel):
    """A syntax problem located in a diagnostic line."""
    model_config = ConfigDict(frozen=True)

    line: int = 0
    issue: str
    suggested_fix: str
    details: str = ""


class FixSyntax(CodeChange):
    kind: Literal["fix_syntax"] = "fix_syntax"
    locations: List[SyntaxLocation] = Field(default_factory=list)

    def describe(self) -> str:
        return f"Auto-fix: Fixed {len(self.locations)} syntax errors"


class AddErrorHandling(CodeChange):
    kind: Literal["add_error_handling"] = "add_error_handling"
    areas: List[str] = Field(default_factory=list)

    def describe(self) -> str:
        return f"Auto-fix: Added error handling for {', '.join(self.areas) or 'runtime errors'}"


class UpdatePermissions(RemediationActionBase):
    kind: Literal["update_permissions"] = "update_permissions"

    def describe(self) -> str:
        return "IAM permissions need to be updated manually"


class ManualReview(RemediationActionBase):
    kind: Literal["manual_review"] = "manual_review"
    message: str = "Review error logs and documentation"

    def describe(self) -> str:
        return self.message


RemediationAction = Annotated[
    Union[
        RaiseTimeout,
        RaiseMemory,
        UpdateDependencies,
        FixSyntax,
        AddErrorHandling,
        UpdatePermissions,
        ManualReview,
    ],
    Field(discriminator="kind"),
]


class RemediationDescriptor(BaseModel):
    """
    Policy entry mapping an error category to a remediation.

    Attributes:
        category: Category this descriptor handles
        auto_fixable: Whether the action may be applied without an operator
        priority: Base priority (1-10, higher is more urgent)
        action: Structural action to take
        title: Short human-readable title
        description: Longer explanation of the problem
    """
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    auto_fixable: bool
    priority: int = Field(ge=1, le=10)
    action: RemediationAction
    title: str
    description: str = ""

    @property
    def action_kind(self) -> str:
        return self.action.kind


# Control plane records

class Snapshot(BaseModel):
    """Pre-attempt state of a resource: the revision the alias pointed at."""
    model_config = ConfigDict(frozen=True)

    resource_id: str
    alias: str
    revision: str
    configuration: Dict[str, Any] = Field(default_factory=dict)
    captured_at: datetime


class ResourceState(BaseModel):
    """Live state of a resource as seen through its alias."""
    model_config = ConfigDict(frozen=True)

    resource_id: str
    alias: str
    revision: str
    configuration: Dict[str, Any] = Field(default_factory=dict)


class ApplyResult(BaseModel):
    """Outcome of a successful apply call."""
    model_config = ConfigDict(frozen=True)

    resource_id: str
    action_kind: str
    detail: Dict[str, Any] = Field(default_factory=dict)


# Attempt records

class AttemptState(str, Enum):
    """States of the attempt state machine."""
    IDLE = "idle"
    SNAPSHOT_CAPTURED = "snapshot_captured"
    APPLIED = "applied"
    PUBLISHED = "published"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class AttemptOutcome(str, Enum):
    """Terminal outcome of an attempt. ROLLED_BACK and FAILED are never merged."""
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Which step caused a non-committed outcome."""
    SNAPSHOT_FAILED = "snapshot_failed"
    APPLY_FAILED = "apply_failed"
    PUBLISH_FAILED = "publish_failed"
    ALIAS_FAILED = "alias_failed"
    VERIFICATION_FAILED = "verification_failed"
    ROLLBACK_FAILED = "rollback_failed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNEXPECTED_ERROR = "unexpected_error"


class AttemptRecord(BaseModel):
    """Append-only record of one completed remediation attempt."""
    model_config = ConfigDict(frozen=True)

    attempt_id: str
    resource_id: str
    category: ErrorCategory
    action: RemediationAction
    outcome: AttemptOutcome
    new_revision: Optional[str] = None
    prior_revision: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    reason: Optional[str] = None
    requires_manual_remediation: bool = False
    states: List[AttemptState] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.outcome == AttemptOutcome.COMMITTED

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class CooldownEntry(BaseModel):
    """Cooldown and circuit-breaker bookkeeping for one resource."""
    model_config = ConfigDict(frozen=True)

    resource_id: str
    last_attempt_at: datetime
    consecutive_failures: int = Field(ge=0, default=0)
    attempts: int = Field(ge=0, default=0)


# Cycle reporting

class ResourceStatus(str, Enum):
    """Per-cycle status of a monitored resource."""
    HEALTHY = "healthy"
    ERROR = "error"
    SKIPPED = "skipped"
    ATTEMPTED = "attempted"


class ResourceAnalysis(BaseModel):
    """Policy decision inputs for one resource with errors."""
    model_config = ConfigDict(frozen=True)

    resource_id: str
    window: ErrorWindow
    classification: ClassificationResult
    descriptor: RemediationDescriptor
    confidence: Confidence
    priority: int


class ResourceReport(BaseModel):
    """Everything the cycle learned and did for one resource."""
    resource_id: str
    status: ResourceStatus
    error_count: int = 0
    total_invocations: int = 0
    category: Optional[ErrorCategory] = None
    confidence: Optional[Confidence] = None
    priority: Optional[int] = None
    outcome: Optional[AttemptOutcome] = None
    reason: Optional[str] = None
    guidance: Optional[str] = None


class RunSummary(BaseModel):
    """Aggregate result of one monitoring and remediation cycle."""
    cycle_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    monitored: int = 0
    with_errors: int = 0
    fixed: int = 0
    failed: int = 0
    rolled_back: int = 0
    skipped: int = 0
    deadline_reached: bool = False
    resources: List[ResourceReport] = Field(default_factory=list)
    attempts: List[AttemptRecord] = Field(default_factory=list)
    batches: List[List[str]] = Field(default_factory=list)

    def report_for(self, resource_id: str) -> Optional[ResourceReport]:
        return next((r for r in self.resources if r.resource_id == resource_id), None)

    def attempt_for(self, resource_id: str) -> Optional[AttemptRecord]:
        return next((a for a in self.attempts if a.resource_id == resource_id), None)

    @property
    def requires_attention(self) -> List[AttemptRecord]:
        """Attempts that left a resource needing manual remediation."""
        return [a for a in self.attempts if a.requires_manual_remediation]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

"""
Remediation catalog: the static policy table from error category to fix.

Every ``ErrorCategory`` has a descriptor. Configuration fixes raise the
function timeout or memory to the configured ceiling; code fixes carry the
parameters extracted from the diagnostics that triggered them.

Classes:
    RemediationCatalog: Category lookup with configured targets

Functions:
    confidence: Confidence level from sample counts
    priority: Effective priority from base priority and sample count

Example:
    >>> catalog = RemediationCatalog(timeout_seconds=300, memory_mb=1024)
    >>> catalog.lookup(ErrorCategory.TIMEOUT).action
    RaiseTimeout(kind='raise_timeout', seconds=300)
    >>> confidence(12, 12)
    <Confidence.HIGH: 'high'>
"""

import logging
import re
from typing import Dict, List, Sequence

from ..constants import (
    DEFAULT_MEMORY_CEILING_MB,
    DEFAULT_TIMEOUT_CEILING_SECONDS,
    HIGH_CONFIDENCE_RATIO,
    LOW_CONFIDENCE_SAMPLE_LIMIT,
    MAX_MEMORY_MB,
    MAX_PRIORITY,
    MAX_PRIORITY_MULTIPLIER,
    MAX_TIMEOUT_SECONDS,
    MEDIUM_CONFIDENCE_SAMPLE_LIMIT,
    MIN_MEMORY_MB,
    PRIORITY_SAMPLE_DIVISOR,
)
from ..models import (
    AddErrorHandling,
    Confidence,
    DiagnosticSample,
    ErrorCategory,
    FixSyntax,
    ManualReview,
    RaiseMemory,
    RaiseTimeout,
    RemediationDescriptor,
    SyntaxLocation,
    UpdateDependencies,
    UpdatePermissions,
)
from ..utils import round_half_up, unique

logger = logging.getLogger(__name__)


BASE_PRIORITIES: Dict[ErrorCategory, int] = {
    ErrorCategory.SYNTAX: 10,      # prevents execution
    ErrorCategory.DEPENDENCY: 9,   # missing packages
    ErrorCategory.PERMISSION: 8,   # needs manual review
    ErrorCategory.RUNTIME: 7,
    ErrorCategory.TIMEOUT: 6,
    ErrorCategory.MEMORY: 5,
    ErrorCategory.OTHER: 5,
}

AUTO_FIXABLE = frozenset({
    ErrorCategory.TIMEOUT,
    ErrorCategory.MEMORY,
    ErrorCategory.DEPENDENCY,
    ErrorCategory.SYNTAX,
})

_MISSING_MODULE_PATTERNS = (
    re.compile(r"Cannot find module ['\"]([^'\"]+)['\"]"),
    re.compile(r"No module named ['\"]([^'\"]+)['\"]"),
)

_SYNTAX_PATTERNS = (
    (
        re.compile(r"SyntaxError: Unexpected token (.+) at line (\d+)"),
        "unexpected-token",
        "Remove or correct the unexpected token",
    ),
    (
        re.compile(r"SyntaxError: Missing (.+) at line (\d+)"),
        "missing-syntax",
        "Add the missing syntax element",
    ),
    (
        re.compile(r"ReferenceError: (.+) is not defined"),
        "undefined-variable",
        "Define the variable or import the module",
    ),
)

_ERROR_PRONE_MARKERS = (
    ("Cannot read property", "object-property-access"),
    ("Cannot read properties", "object-property-access"),
    ("undefined is not a function", "function-calls"),
    ("null is not an object", "null-checks"),
)


def confidence(total_samples: int, category_samples: int) -> Confidence:
    """
    Confidence that the dominant category is the real problem.

    Args:
        total_samples: Number of classified samples
        category_samples: Samples in the dominant category

    Returns:
        LOW below 3 samples, MEDIUM below 10, otherwise HIGH when more than
        80% of samples share the category, else MEDIUM
    """
    if total_samples < LOW_CONFIDENCE_SAMPLE_LIMIT:
        return Confidence.LOW
    if total_samples < MEDIUM_CONFIDENCE_SAMPLE_LIMIT:
        return Confidence.MEDIUM
    if category_samples / total_samples > HIGH_CONFIDENCE_RATIO:
        return Confidence.HIGH
    return Confidence.MEDIUM


def priority(category: ErrorCategory, total_samples: int) -> int:
    """
    Effective fix priority, higher is more urgent.

    The base priority is scaled by ``min(total_samples / 5, 2)`` and capped
    at 10.
    """
    base = BASE_PRIORITIES[category]
    multiplier = min(total_samples / PRIORITY_SAMPLE_DIVISOR, MAX_PRIORITY_MULTIPLIER)
    return min(round_half_up(base * multiplier), MAX_PRIORITY)


def extract_missing_packages(samples: Sequence[DiagnosticSample]) -> List[str]:
    """Module names reported missing by the runtime."""
    packages = []
    for sample in samples:
        for pattern in _MISSING_MODULE_PATTERNS:
            match = pattern.search(sample.message)
            if match:
                packages.append(match.group(1))
    return unique(packages)


def extract_syntax_errors(samples: Sequence[DiagnosticSample]) -> List[SyntaxLocation]:
    """Syntax problems with line numbers where the message carries one."""
    locations = []
    for sample in samples:
        for regex, issue, fix in _SYNTAX_PATTERNS:
            match = regex.search(sample.message)
            if match:
                line = int(match.group(2)) if match.lastindex and match.lastindex >= 2 else 0
                locations.append(SyntaxLocation(
                    line=line,
                    issue=issue,
                    suggested_fix=fix,
                    details=match.group(0),
                ))
    return locations


def identify_error_prone_areas(samples: Sequence[DiagnosticSample]) -> List[str]:
    """Code areas that need defensive handling, from runtime error text."""
    areas = []
    for sample in samples:
        for marker, area in _ERROR_PRONE_MARKERS:
            if marker in sample.message:
                areas.append(area)
    return unique(areas)


class RemediationCatalog:
    """
    Static policy table: one RemediationDescriptor per ErrorCategory.

    Built once at process start. The timeout and memory targets are the
    configured ceilings; they are validated against the platform maxima.

    Example:
        >>> catalog = RemediationCatalog()
        >>> catalog.lookup(ErrorCategory.PERMISSION).auto_fixable
        False
    """

    def __init__(
        self,
        timeout_seconds: int = DEFAULT_TIMEOUT_CEILING_SECONDS,
        memory_mb: int = DEFAULT_MEMORY_CEILING_MB
    ):
        if not 0 < timeout_seconds <= MAX_TIMEOUT_SECONDS:
            raise ValueError(
                f"timeout_seconds must be between 1 and {MAX_TIMEOUT_SECONDS}, got {timeout_seconds}"
            )
        if not MIN_MEMORY_MB <= memory_mb <= MAX_MEMORY_MB:
            raise ValueError(
                f"memory_mb must be between {MIN_MEMORY_MB} and {MAX_MEMORY_MB}, got {memory_mb}"
            )

        self.timeout_seconds = timeout_seconds
        self.memory_mb = memory_mb
        self._descriptors = self._build_descriptors()

    def _build_descriptors(self) -> Dict[ErrorCategory, RemediationDescriptor]:
        descriptors = {
            ErrorCategory.TIMEOUT: RemediationDescriptor(
                category=ErrorCategory.TIMEOUT,
                auto_fixable=True,
                priority=BASE_PRIORITIES[ErrorCategory.TIMEOUT],
                action=RaiseTimeout(seconds=self.timeout_seconds),
                title="Increase Function Timeout",
                description="The function is timing out due to insufficient timeout configuration.",
            ),
            ErrorCategory.MEMORY: RemediationDescriptor(
                category=ErrorCategory.MEMORY,
                auto_fixable=True,
                priority=BASE_PRIORITIES[ErrorCategory.MEMORY],
                action=RaiseMemory(megabytes=self.memory_mb),
                title="Increase Memory Allocation",
                description="The function is running out of memory during execution.",
            ),
            ErrorCategory.PERMISSION: RemediationDescriptor(
                category=ErrorCategory.PERMISSION,
                auto_fixable=False,
                priority=BASE_PRIORITIES[ErrorCategory.PERMISSION],
                action=UpdatePermissions(),
                title="Update Execution Role Permissions",
                description="The function's execution role lacks a required permission.",
            ),
            ErrorCategory.DEPENDENCY: RemediationDescriptor(
                category=ErrorCategory.DEPENDENCY,
                auto_fixable=True,
                priority=BASE_PRIORITIES[ErrorCategory.DEPENDENCY],
                action=UpdateDependencies(),
                title="Add Missing Dependencies",
                description="The function is missing required packages.",
            ),
            ErrorCategory.SYNTAX: RemediationDescriptor(
                category=ErrorCategory.SYNTAX,
                auto_fixable=True,
                priority=BASE_PRIORITIES[ErrorCategory.SYNTAX],
                action=FixSyntax(),
                title="Fix Syntax Errors",
                description="The function contains syntax errors preventing execution.",
            ),
            ErrorCategory.RUNTIME: RemediationDescriptor(
                category=ErrorCategory.RUNTIME,
                auto_fixable=False,
                priority=BASE_PRIORITIES[ErrorCategory.RUNTIME],
                action=AddErrorHandling(),
                title="Improve Error Handling",
                description="The function needs better error handling and null checks.",
            ),
            ErrorCategory.OTHER: RemediationDescriptor(
                category=ErrorCategory.OTHER,
                auto_fixable=False,
                priority=BASE_PRIORITIES[ErrorCategory.OTHER],
                action=ManualReview(message="Review error logs and documentation"),
                title="Manual Investigation Required",
                description="Unable to automatically classify errors.",
            ),
        }

        missing = set(ErrorCategory) - set(descriptors)
        if missing:
            raise RuntimeError(f"Catalog missing descriptors for: {sorted(c.value for c in missing)}")

        return descriptors

    def lookup(self, category: ErrorCategory) -> RemediationDescriptor:
        """Return the descriptor for a category (total over ErrorCategory)."""
        return self._descriptors[category]

    def descriptor_for(
        self,
        category: ErrorCategory,
        samples: Sequence[DiagnosticSample]
    ) -> RemediationDescriptor:
        """
        Descriptor for a category with action parameters taken from samples.

        Code fixes need to know what to change: missing modules, syntax
        error locations, or error-prone areas found in the diagnostics.
        """
        descriptor = self.lookup(category)

        if category == ErrorCategory.DEPENDENCY:
            action = UpdateDependencies(packages=extract_missing_packages(samples))
        elif category == ErrorCategory.SYNTAX:
            action = FixSyntax(locations=extract_syntax_errors(samples))
        elif category == ErrorCategory.RUNTIME:
            action = AddErrorHandling(areas=identify_error_prone_areas(samples))
        else:
            return descriptor

        return descriptor.model_copy(update={"action": action})

    def confidence(self, total_samples: int, category_samples: int) -> Confidence:
        return confidence(total_samples, category_samples)

    def priority(self, category: ErrorCategory, total_samples: int) -> int:
        return priority(category, total_samples)

    def __iter__(self):
        return iter(self._descriptors.values())

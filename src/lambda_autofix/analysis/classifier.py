"""Keyword classification of diagnostic lines into error categories.

Each sample contributes to exactly one category: the first category (in
``ErrorCategory`` declaration order) whose keywords appear in the lower-cased
message. Samples matching nothing count as ``other``.

Functions:
    classify: Build a ClassificationResult from diagnostic samples.
    match_category: Category for a single message.

Example:
    >>> from lambda_autofix.analysis.classifier import classify
    >>> from lambda_autofix.models import DiagnosticSample
    >>> result = classify([DiagnosticSample(message="Task timed out after 3.00 seconds")])
    >>> result.dominant.value
    'timeout'
"""
from typing import Dict, Iterable, Tuple
import logging

from ..models import ClassificationResult, DiagnosticSample, ErrorCategory

logger = logging.getLogger(__name__)


CATEGORY_KEYWORDS: Dict[ErrorCategory, Tuple[str, ...]] = {
    ErrorCategory.TIMEOUT: ("timeout", "timed out"),
    ErrorCategory.MEMORY: ("memory", "out of memory"),
    ErrorCategory.PERMISSION: ("permission", "access denied"),
    ErrorCategory.DEPENDENCY: ("cannot find module", "import", "no module named"),
    ErrorCategory.SYNTAX: ("syntax error", "syntaxerror", "unexpected token"),
    ErrorCategory.RUNTIME: ("runtime error", "typeerror"),
}


def match_category(message: str) -> ErrorCategory:
    """Return the first category whose keywords occur in ``message``.

    Args:
        message: Raw diagnostic text.

    Returns:
        Matching ErrorCategory, or ``ErrorCategory.OTHER``.
    """
    text = (message or "").lower()
    for category in ErrorCategory:
        keywords = CATEGORY_KEYWORDS.get(category, ())
        if any(keyword in text for keyword in keywords):
            return category
    return ErrorCategory.OTHER


def classify(samples: Iterable[DiagnosticSample]) -> ClassificationResult:
    """Classify diagnostic samples into per-category counts.

    Never fails: an empty input yields all-zero counts with ``other`` as the
    dominant category. The per-category counts always sum to the number of
    samples.

    Args:
        samples: Diagnostic samples in any order.

    Returns:
        ClassificationResult with counts for every category.
    """
    counts: Dict[ErrorCategory, int] = {category: 0 for category in ErrorCategory}
    total = 0

    for sample in samples:
        counts[match_category(sample.message)] += 1
        total += 1

    if total == 0:
        logger.debug("No diagnostic samples to classify, defaulting to 'other'")
        return ClassificationResult(counts=counts, total=0, dominant=ErrorCategory.OTHER)

    # Strict comparison keeps the earliest declared category on ties
    dominant = ErrorCategory.OTHER
    best = -1
    for category in ErrorCategory:
        if counts[category] > best:
            dominant = category
            best = counts[category]

    logger.debug(
        f"Classified {total} samples, dominant category '{dominant.value}' ({best})"
    )
    return ClassificationResult(counts=counts, total=total, dominant=dominant)

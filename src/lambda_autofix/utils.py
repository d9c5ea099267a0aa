"""
Utility functions for lambda-autofix.
"""
import logging
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class PathValidationError(Exception):
    """Raised when path validation fails."""
    pass


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split a sequence into consecutive chunks of at most ``size`` items.

    Args:
        items: Items to split
        size: Maximum chunk size (must be >= 1)

    Returns:
        List of chunks preserving the input order

    Example:
        >>> chunked(["a", "b", "c", "d", "e"], 2)
        [['a', 'b'], ['c', 'd'], ['e']]
    """
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def unique(values: Iterable[T]) -> List[T]:
    """Return values with duplicates removed, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def validate_output_path(
    path: str | Path,
    allow_overwrite: bool = True,
    allowed_extensions: Optional[set[str]] = None
) -> Path:
    """
    Validate that an output file path is safe.

    Args:
        path: Path to validate
        allow_overwrite: Whether to allow overwriting existing files
        allowed_extensions: Set of allowed file extensions (e.g., {'.json'})

    Returns:
        Resolved Path object

    Raises:
        PathValidationError: If path is invalid or unsafe
    """
    try:
        path_obj = Path(path).resolve()
    except (ValueError, OSError) as e:
        raise PathValidationError(f"Invalid output path: {e}") from e

    if allowed_extensions and path_obj.suffix not in allowed_extensions:
        raise PathValidationError(
            f"Invalid file extension '{path_obj.suffix}'. "
            f"Allowed: {', '.join(sorted(allowed_extensions))}"
        )

    if path_obj.exists() and not allow_overwrite:
        raise PathValidationError(f"Output file already exists: {path_obj}")

    parent = path_obj.parent
    if not parent.exists():
        raise PathValidationError(f"Parent directory does not exist: {parent}")

    if not parent.is_dir():
        raise PathValidationError(f"Parent path is not a directory: {parent}")

    if not os.access(parent, os.W_OK):
        raise PathValidationError(f"No write permission for directory: {parent}")

    return path_obj

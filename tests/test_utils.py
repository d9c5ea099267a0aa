"""
Tests for utility functions.
"""
from pathlib import Path

import pytest

from lambda_autofix.utils import (
    PathValidationError,
    chunked,
    round_half_up,
    unique,
    utc_now,
    validate_output_path,
)


def test_chunked() -> None:
    assert chunked(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]
    assert chunked([], 3) == []
    assert chunked(["a"], 5) == [["a"]]


def test_chunked_invalid_size() -> None:
    with pytest.raises(ValueError):
        chunked(["a"], 0)


@pytest.mark.parametrize("value,expected", [
    (0.4, 0), (0.5, 1), (1.2, 1), (2.5, 3), (4.2, 4), (9.6, 10),
])
def test_round_half_up(value, expected) -> None:
    assert round_half_up(value) == expected


def test_unique_keeps_order() -> None:
    assert unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_utc_now_is_aware() -> None:
    assert utc_now().tzinfo is not None


def test_validate_output_path_valid(tmp_path: Path) -> None:
    """Test validation of valid output path."""
    output = tmp_path / "summary.json"

    assert validate_output_path(output, allowed_extensions={".json"}) == output.resolve()


def test_validate_output_path_invalid_extension(tmp_path: Path) -> None:
    """Test validation fails for wrong extension."""
    with pytest.raises(PathValidationError, match="Invalid file extension"):
        validate_output_path(tmp_path / "summary.txt", allowed_extensions={".json"})


def test_validate_output_path_existing_no_overwrite(tmp_path: Path) -> None:
    output = tmp_path / "summary.json"
    output.write_text("{}")

    with pytest.raises(PathValidationError, match="already exists"):
        validate_output_path(output, allow_overwrite=False)


def test_validate_output_path_missing_parent(tmp_path: Path) -> None:
    with pytest.raises(PathValidationError, match="Parent directory does not exist"):
        validate_output_path(tmp_path / "missing" / "summary.json")


def test_version_info() -> None:
    from lambda_autofix import __version__, get_version, get_version_info

    info = get_version_info()
    assert get_version() == __version__
    assert info["name"] == "lambda-autofix"
    info["name"] = "changed"
    assert get_version_info()["name"] == "lambda-autofix"

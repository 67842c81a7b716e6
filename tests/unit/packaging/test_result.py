"""Unit tests for the Result type."""

from __future__ import annotations

import pytest

from vellum.packaging.result import Result
from vellum.utils.exceptions import MetadataInvalidError, PackageNotFoundError


def test_success_result() -> None:
    """Test a successful result carries its value."""
    result = Result.success(42)

    assert result.ok
    assert bool(result) is True
    assert result.value == 42
    assert result.error is None
    assert result.message == ""
    assert result.unwrap() == 42


def test_success_with_none_value() -> None:
    """Test that None is a legitimate success value."""
    result = Result.success()

    assert result.ok
    assert result.value is None


def test_failure_result() -> None:
    """Test a failed result carries a typed error."""
    error = PackageNotFoundError("acme.widgets not found", package_id="acme.widgets")
    result = Result.failure(error)

    assert not result.ok
    assert bool(result) is False
    assert result.error is error
    assert result.message == "acme.widgets not found"
    assert result.error.code == "PackageNotFoundError"


def test_unwrap_failure_raises_error() -> None:
    """Test unwrapping a failure raises the carried error."""
    result = Result.failure(MetadataInvalidError("no id"))

    with pytest.raises(MetadataInvalidError, match="no id"):
        result.unwrap()


def test_failure_requires_error() -> None:
    """Test that a failure cannot be built without an error."""
    with pytest.raises(ValueError):
        Result.failure(None)  # type: ignore[arg-type]

"""Unit tests for package version ordering."""

from __future__ import annotations

import pytest

from vellum.packaging.versions import compare_versions, is_newer


@pytest.mark.parametrize(
    "left, right, expected",
    [
        ("1.2.0", "1.2.0", 0),
        ("1.10.0", "1.9.0", 1),
        ("1.0.0-beta", "1.0.0", -1),
        ("6.9.0.1", "6.9.0", 1),
        ("6.9", "6.9.0.0", 0),
        ("2.0.0.0-beta1", "2.0.0.0", -1),
    ],
)
def test_compare_versions(left: str, right: str, expected: int) -> None:
    """Test semver and four-part version ordering."""
    assert compare_versions(left, right) == expected
    assert compare_versions(right, left) == -expected


def test_is_newer() -> None:
    """Test strict newer-than check."""
    assert is_newer("1.3.0", "1.2.9")
    assert not is_newer("1.2.0", "1.2.0")
    assert not is_newer("1.1.0", "1.2.0")

"""Package version ordering."""

from __future__ import annotations

import re
from typing import Tuple

import semver

_NUMERIC = re.compile(r'^(\d+(?:\.\d+)*)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$')


def _fallback_key(version: str) -> Tuple[Tuple[int, ...], int, str]:
    match = _NUMERIC.match(version.strip())
    if not match:
        return (), 0, version
    numbers = tuple(int(part) for part in match.group(1).split("."))
    numbers = numbers + (0,) * (4 - len(numbers))
    prerelease = match.group(2) or ""
    # A release sorts after any prerelease of the same number.
    return numbers, 0 if prerelease else 1, prerelease


def compare_versions(left: str, right: str) -> int:
    """Compare two package versions.

    Three-part versions are compared with semver; four-part NuGet versions
    fall back to a numeric comparison with the same prerelease rules.

    Returns:
        Negative, zero or positive, like ``cmp``
    """
    try:
        return semver.Version.parse(left.strip()).compare(right.strip())
    except ValueError:
        left_key, right_key = _fallback_key(left), _fallback_key(right)
        return (left_key > right_key) - (left_key < right_key)


def is_newer(candidate: str, current: str) -> bool:
    """Check whether ``candidate`` is strictly newer than ``current``."""
    return compare_versions(candidate, current) > 0

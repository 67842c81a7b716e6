"""Framework variant selection for plugin binaries.

Plugin packages may ship several builds of their binary under
``lib/{framework}/``. The resolver picks the variant the host runtime can
load, falling back to the un-suffixed ``lib/`` directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

from vellum.packaging.result import Result
from vellum.utils.exceptions import BinaryMissingError

CORE_PACKAGE_ID = "SS.CMS"
LIB_DIR = "lib"
DEFAULT_BINARY_EXTENSION = "dll"

# Most preferred first.
DEFAULT_FRAMEWORK_PREFERENCES = ("net45", "net451", "net452", "net46", "net461", "net462")


def is_core_package(package_id: str, core_package_id: str = CORE_PACKAGE_ID) -> bool:
    """Check whether an id names the core platform package."""
    return package_id.strip().lower() == core_package_id.lower()


def select_variant_directory(package_root: Union[str, Path], preferences: Sequence[str]) -> Path:
    """Pick the binary directory for the first matching framework preference.

    Preferences are walked in order; for each one the subdirectories of
    ``lib/`` are checked by sorted name for a case-insensitive prefix match.

    Args:
        package_root: Root of the expanded package
        preferences: Framework identifiers, most preferred first

    Returns:
        The matching variant directory, or ``lib/`` itself when none match
    """
    lib_dir = Path(package_root) / LIB_DIR
    if not lib_dir.is_dir():
        return lib_dir

    variants = sorted(p for p in lib_dir.iterdir() if p.is_dir())
    for preference in preferences:
        prefix = preference.lower()
        for variant in variants:
            if variant.name.lower().startswith(prefix):
                return variant
    return lib_dir


def resolve_binary_directory(
        package_root: Union[str, Path],
        package_id: str,
        preferences: Sequence[str] = DEFAULT_FRAMEWORK_PREFERENCES,
        binary_extension: str = DEFAULT_BINARY_EXTENSION,
        core_package_id: str = CORE_PACKAGE_ID
) -> Result[Optional[Path]]:
    """Resolve the directory holding a package's binary.

    The core platform package is skipped: its binaries live in a fixed
    ``Bin/`` tree rather than a framework variant, so the result is
    ``success(None)``.

    Args:
        package_root: Root of the expanded package
        package_id: Id of the package, also the binary's base name
        preferences: Framework identifiers, most preferred first
        binary_extension: Extension of the binary file, without the dot
        core_package_id: Id of the core platform package

    Returns:
        Result carrying the binary directory, or a BinaryMissingError
    """
    if is_core_package(package_id, core_package_id):
        return Result.success(None)

    directory = select_variant_directory(package_root, preferences)
    binary_name = f"{package_id}.{binary_extension.lstrip('.')}"
    if not (directory / binary_name).is_file():
        return Result.failure(BinaryMissingError(
            f"Package binary {binary_name} not found in {directory}",
            package_id=package_id,
        ))
    return Result.success(directory)

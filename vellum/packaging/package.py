"""Validated views of cached and installed packages."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from vellum.packaging.archive import ARCHIVE_EXTENSION
from vellum.packaging.frameworks import (
    CORE_PACKAGE_ID,
    DEFAULT_BINARY_EXTENSION,
    DEFAULT_FRAMEWORK_PREFERENCES,
    resolve_binary_directory,
)
from vellum.packaging.metadata import DESCRIPTOR_EXTENSION, PackageMetadata, find_descriptor, parse_descriptor
from vellum.packaging.result import Result
from vellum.utils.exceptions import BinaryMissingError, MetadataInvalidError

BIN_DIR = "Bin"


@dataclass(frozen=True)
class CachedPackage:
    """A cache entry that passed validation.

    Attributes:
        directory_path: Entry directory
        archive_path: The ``.nupkg`` archive inside the entry
        descriptor_path: The descriptor the metadata was read from
        metadata: Parsed descriptor
        binary_directory: Directory holding the package binary; None for the
            core platform package
    """

    directory_path: Path
    archive_path: Path
    descriptor_path: Path
    metadata: PackageMetadata
    binary_directory: Optional[Path]

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def version(self) -> str:
        return self.metadata.version


@dataclass(frozen=True)
class InstalledPlugin:
    """A plugin directory that passed validation.

    Attributes:
        directory_path: ``plugins/{id}`` directory
        descriptor_path: ``{id}.nuspec`` inside it
        binary_path: ``Bin/{id}.{ext}`` inside it
        metadata: Parsed descriptor
    """

    directory_path: Path
    descriptor_path: Path
    binary_path: Path
    metadata: PackageMetadata

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def version(self) -> str:
        return self.metadata.version


def load_cached_package(
        directory: Union[str, Path],
        expected_id: Optional[str] = None,
        preferences: Sequence[str] = DEFAULT_FRAMEWORK_PREFERENCES,
        binary_extension: str = DEFAULT_BINARY_EXTENSION,
        core_package_id: str = CORE_PACKAGE_ID
) -> Result[CachedPackage]:
    """Validate an expanded cache entry.

    Nothing is written: this runs before any destructive install step.

    Args:
        directory: Entry directory
        expected_id: Id the descriptor must carry (case-insensitive), if given
        preferences: Framework identifiers, most preferred first
        binary_extension: Extension of the package binary
        core_package_id: Id of the core platform package

    Returns:
        Result carrying the validated package; MetadataInvalidError or
        BinaryMissingError otherwise
    """
    directory = Path(directory)
    descriptor = find_descriptor(directory)
    if descriptor is None:
        return Result.failure(MetadataInvalidError(
            f"No package descriptor found in {directory}", package_id=expected_id
        ))

    parsed = parse_descriptor(descriptor)
    if not parsed.ok:
        return Result.failure(parsed.error)
    metadata = parsed.value

    if expected_id is not None and not metadata.matches_id(expected_id):
        return Result.failure(MetadataInvalidError(
            f"Package descriptor id {metadata.id!r} does not match {expected_id!r}",
            package_id=expected_id,
            version=metadata.version,
        ))

    resolved = resolve_binary_directory(
        directory, metadata.id, preferences, binary_extension, core_package_id
    )
    if not resolved.ok:
        return Result.failure(resolved.error)

    return Result.success(CachedPackage(
        directory_path=directory,
        archive_path=directory / f"{metadata.id_with_version}{ARCHIVE_EXTENSION}",
        descriptor_path=descriptor,
        metadata=metadata,
        binary_directory=resolved.value,
    ))


def load_installed_plugin(
        plugin_dir: Union[str, Path],
        binary_extension: str = DEFAULT_BINARY_EXTENSION
) -> Result[InstalledPlugin]:
    """Validate an installed plugin directory.

    The directory name is the plugin id; it must hold ``{id}.nuspec`` and
    ``Bin/{id}.{ext}``.
    """
    plugin_dir = Path(plugin_dir)
    plugin_id = plugin_dir.name
    descriptor = plugin_dir / f"{plugin_id}{DESCRIPTOR_EXTENSION}"

    parsed = parse_descriptor(descriptor)
    if not parsed.ok:
        return Result.failure(parsed.error)

    binary = plugin_dir / BIN_DIR / f"{plugin_id}.{binary_extension.lstrip('.')}"
    if not binary.is_file():
        return Result.failure(BinaryMissingError(
            f"Plugin binary not found: {binary}",
            package_id=plugin_id,
            version=parsed.value.version,
        ))

    return Result.success(InstalledPlugin(
        directory_path=plugin_dir,
        descriptor_path=descriptor,
        binary_path=binary,
        metadata=parsed.value,
    ))

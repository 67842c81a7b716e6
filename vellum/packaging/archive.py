"""Minimal package archive handling.

Package archives are ZIP files (``.nupkg``) with the descriptor at the root.
Only what the deployment engine needs is implemented: locating and
extracting the descriptor, and expanding the remaining contents with
overwrite semantics.
"""

from __future__ import annotations

import io
import os
import shutil
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable, Optional, Union

from vellum.packaging.metadata import DESCRIPTOR_EXTENSION, PackageMetadata, metadata_from_document
from vellum.utils.exceptions import MetadataInvalidError, PackageIOError

ARCHIVE_EXTENSION = ".nupkg"

# Packaging artefacts that never belong in an expanded package.
SKIPPED_MEMBERS = ("_rels/", "package/", "[Content_Types].xml")

ArchiveSource = Union[str, Path, bytes]


def _open(source: ArchiveSource) -> zipfile.ZipFile:
    handle: Union[str, Path, BinaryIO] = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        return zipfile.ZipFile(handle, "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise PackageIOError(f"Package archive could not be opened: {e}") from e


def find_descriptor_member(archive: zipfile.ZipFile) -> Optional[zipfile.ZipInfo]:
    """Find the descriptor at the root of an archive.

    Args:
        archive: Open archive

    Returns:
        The descriptor entry, or None if the archive has none
    """
    for info in archive.infolist():
        name = PurePosixPath(info.filename)
        if len(name.parts) == 1 and name.suffix.lower() == DESCRIPTOR_EXTENSION:
            return info
    return None


def read_archive_metadata(source: ArchiveSource) -> PackageMetadata:
    """Parse the descriptor inside an archive without extracting it.

    Raises:
        PackageIOError: If the archive cannot be opened
        MetadataInvalidError: If the archive has no valid descriptor
    """
    with _open(source) as archive:
        member = find_descriptor_member(archive)
        if member is None:
            raise MetadataInvalidError("Package archive contains no descriptor")
        return metadata_from_document(archive.read(member), source=member.filename)


def extract_descriptor(source: ArchiveSource, destination: Union[str, Path]) -> Path:
    """Extract only the descriptor from an archive.

    The file is written to a temporary name next to ``destination`` and then
    renamed, so ``destination`` either holds a complete descriptor or does
    not exist.

    Args:
        source: Archive path or bytes
        destination: Path the descriptor is written to

    Returns:
        The destination path

    Raises:
        PackageIOError: If the archive cannot be read or the file cannot be written
        MetadataInvalidError: If the archive has no descriptor
    """
    destination = Path(destination)
    with _open(source) as archive:
        member = find_descriptor_member(archive)
        if member is None:
            raise MetadataInvalidError("Package archive contains no descriptor")
        try:
            data = archive.read(member)
        except (zipfile.BadZipFile, OSError) as e:
            raise PackageIOError(f"Failed to read descriptor from archive: {e}") from e

    write_atomic(destination, data)
    return destination


def write_atomic(destination: Union[str, Path], data: bytes) -> None:
    """Write bytes to a file through a temporary file and a rename.

    Raises:
        PackageIOError: If the file cannot be written
    """
    destination = Path(destination)
    tmp_name: Optional[str] = None
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=destination.parent, suffix=".tmp", delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
        os.replace(tmp_name, destination)
    except OSError as e:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        raise PackageIOError(f"Failed to write {destination}: {e}", file_path=str(destination)) from e


def _is_skipped(name: str, skip: Iterable[str]) -> bool:
    for pattern in skip:
        if pattern.endswith("/") and name.startswith(pattern):
            return True
        if name == pattern:
            return True
    return False


def expand_archive(
        source: ArchiveSource,
        destination: Union[str, Path],
        skip: Iterable[str] = SKIPPED_MEMBERS
) -> Path:
    """Expand an archive into a directory, overwriting existing files.

    The root descriptor is left out; the package cache stores its own copy
    under the package id.

    Args:
        source: Archive path or bytes
        destination: Directory to expand into
        skip: Member names (or ``dir/`` prefixes) to leave out

    Returns:
        The destination directory

    Raises:
        PackageIOError: If the archive is unreadable, a member escapes the
            destination, or a file cannot be written
    """
    destination = Path(destination)
    root = destination.resolve()
    skip = tuple(skip)

    with _open(source) as archive:
        descriptor = find_descriptor_member(archive)
        for info in archive.infolist():
            if info.is_dir() or _is_skipped(info.filename, skip) or info is descriptor:
                continue

            target = (destination / info.filename).resolve()
            if root != target and root not in target.parents:
                raise PackageIOError(
                    f"Archive member escapes the package directory: {info.filename}",
                    file_path=info.filename,
                )

            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except (zipfile.BadZipFile, OSError) as e:
                raise PackageIOError(
                    f"Failed to expand {info.filename}: {e}", file_path=str(target)
                ) from e

    return destination


def create_archive(source_dir: Union[str, Path], output_path: Union[str, Path]) -> Path:
    """Pack a directory into a package archive.

    Used to publish packages into a directory feed.

    Raises:
        PackageIOError: If the archive cannot be created
    """
    source_dir = Path(source_dir)
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as zf:
            for file_path in sorted(source_dir.rglob("*")):
                if file_path.is_file():
                    zf.write(file_path, file_path.relative_to(source_dir).as_posix())
    except OSError as e:
        raise PackageIOError(f"Failed to create package archive: {e}", file_path=str(output_path)) from e
    return output_path

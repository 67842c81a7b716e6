"""Local package cache.

Each package version gets one directory under the packages root::

    {packages_path}/{id}.{version}/
        {id}.{version}.nupkg
        {id}.nuspec

An entry is complete only when both files exist. Files are written through
a temporary name and renamed into place, so a crash never leaves a
truncated file under its final name.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import structlog

from vellum.packaging.archive import ARCHIVE_EXTENSION, expand_archive, extract_descriptor, write_atomic
from vellum.packaging.feed import FeedClient
from vellum.packaging.metadata import DESCRIPTOR_EXTENSION
from vellum.packaging.result import Result
from vellum.utils.exceptions import PackageIOError, PackagingError


class PackageCache:
    """Idempotent local store of downloaded packages.

    Attributes:
        packages_path: Root directory of the cache
        feed: Feed used to fetch missing entries
    """

    def __init__(
            self,
            packages_path: Union[str, Path],
            feed: FeedClient,
            logger: Optional[Any] = None
    ) -> None:
        self.packages_path = Path(packages_path)
        self.feed = feed
        self._logger = logger or structlog.get_logger(__name__)

    def entry_path(self, package_id: str, version: str) -> Path:
        return self.packages_path / f"{package_id}.{version}"

    def archive_path(self, package_id: str, version: str) -> Path:
        return self.entry_path(package_id, version) / f"{package_id}.{version}{ARCHIVE_EXTENSION}"

    def descriptor_path(self, package_id: str, version: str) -> Path:
        return self.entry_path(package_id, version) / f"{package_id}{DESCRIPTOR_EXTENSION}"

    def is_complete(self, package_id: str, version: str) -> bool:
        """Check whether both the archive and the descriptor are present."""
        return (
            self.archive_path(package_id, version).is_file()
            and self.descriptor_path(package_id, version).is_file()
        )

    def ensure_local(self, package_id: str, version: str) -> Result[Path]:
        """Make a package version available in the cache.

        A complete entry is returned as-is without contacting the feed.
        Otherwise the archive is fetched (unless already present) and the
        descriptor extracted next to it. An archive whose descriptor cannot
        be extracted is deleted; one that was already on disk is fetched
        again once before giving up.

        Args:
            package_id: Id of the package
            version: Exact version

        Returns:
            Result carrying the entry directory
        """
        entry = self.entry_path(package_id, version)
        if self.is_complete(package_id, version):
            self._logger.debug("Package already cached", package_id=package_id, version=version)
            return Result.success(entry)

        archive = self.archive_path(package_id, version)
        descriptor = self.descriptor_path(package_id, version)
        try:
            if archive.is_file():
                try:
                    extract_descriptor(archive, descriptor)
                except PackagingError as e:
                    self._logger.warning(
                        "Discarding unreadable cached archive",
                        package_id=package_id,
                        version=version,
                        error=str(e),
                    )
                    self._discard(archive, descriptor)
                else:
                    self._logger.info("Package cached", package_id=package_id, version=version, path=str(entry))
                    return Result.success(entry)

            fetched = self.feed.fetch_archive(package_id, version)
            if not fetched.ok:
                return Result.failure(fetched.error)
            write_atomic(archive, fetched.value)

            try:
                extract_descriptor(archive, descriptor)
            except PackagingError:
                self._discard(archive, descriptor)
                raise

        except PackagingError as e:
            self._logger.error(
                "Failed to cache package", package_id=package_id, version=version, error=str(e)
            )
            if e.package_id is None:
                e.package_id, e.version = package_id, version
                e.details.update(package_id=package_id, version=version)
            return Result.failure(e)

        self._logger.info("Package cached", package_id=package_id, version=version, path=str(entry))
        return Result.success(entry)

    @staticmethod
    def _discard(archive: Path, descriptor: Path) -> None:
        try:
            descriptor.unlink(missing_ok=True)
            archive.unlink(missing_ok=True)
        except OSError as e:
            raise PackageIOError(f"Failed to discard cached files: {e}", file_path=str(archive)) from e

    def expand(self, package_id: str, version: str) -> Result[Path]:
        """Expand the cached archive into its entry directory.

        Existing files are overwritten, so repeated expansion converges.

        Returns:
            Result carrying the entry directory; PackageIOError if the entry
            is not cached or the archive cannot be expanded
        """
        archive = self.archive_path(package_id, version)
        if not archive.is_file():
            return Result.failure(PackageIOError(
                f"Package {package_id} {version} is not cached",
                package_id=package_id,
                version=version,
                file_path=str(archive),
            ))
        try:
            expand_archive(archive, self.entry_path(package_id, version))
        except PackagingError as e:
            return Result.failure(e)

        self._logger.debug("Package expanded", package_id=package_id, version=version)
        return Result.success(self.entry_path(package_id, version))

    def list_cached(self) -> List[Tuple[str, str]]:
        """List the ``(id, version)`` pairs of complete cache entries."""
        entries: List[Tuple[str, str]] = []
        if not self.packages_path.is_dir():
            return entries

        for entry in sorted(self.packages_path.iterdir()):
            if not entry.is_dir():
                continue
            for archive in entry.glob(f"*{ARCHIVE_EXTENSION}"):
                if archive.stem != entry.name:
                    continue
                for descriptor in entry.glob(f"*{DESCRIPTOR_EXTENSION}"):
                    package_id = descriptor.stem
                    if entry.name.startswith(f"{package_id}."):
                        entries.append((package_id, entry.name[len(package_id) + 1:]))
                        break
        return entries

    def remove(self, package_id: str, version: str) -> Result[None]:
        """Delete a cache entry. Removing a missing entry succeeds."""
        entry = self.entry_path(package_id, version)
        try:
            if entry.exists():
                shutil.rmtree(entry)
                self._logger.info("Removed cached package", package_id=package_id, version=version)
        except OSError as e:
            return Result.failure(PackageIOError(
                f"Failed to remove cached package: {e}",
                package_id=package_id,
                version=version,
                file_path=str(entry),
            ))
        return Result.success()

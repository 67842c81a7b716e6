"""Package deployment orchestration.

Ties the feed, cache and installer together::

    find_latest -> ensure_local -> expand -> install

and serializes work on the same package id.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import structlog

from vellum.packaging.cache import PackageCache
from vellum.packaging.feed import FeedClient, HttpFeedClient, PackageSource
from vellum.packaging.frameworks import CORE_PACKAGE_ID, DEFAULT_FRAMEWORK_PREFERENCES
from vellum.packaging.installer import DeploymentLayout, Installer, InstallReport, InstallTarget
from vellum.packaging.locks import KeyedLock
from vellum.packaging.metadata import PackageMetadata
from vellum.packaging.registry import DirectoryPluginRegistry
from vellum.packaging.result import Result
from vellum.packaging.versions import is_newer


class PackageService:
    """Entry point for update checks, downloads and installs.

    Attributes:
        cache: Local package cache
        installer: Installer for the live deployment
        feed: Feed used for lookups
        locks: Per-package locks
    """

    def __init__(
            self,
            cache: PackageCache,
            installer: Installer,
            feed: FeedClient,
            locks: Optional[KeyedLock] = None,
            core_package_id: str = CORE_PACKAGE_ID,
            logger: Optional[Any] = None
    ) -> None:
        self.cache = cache
        self.installer = installer
        self.feed = feed
        self.locks = locks or KeyedLock()
        self.core_package_id = core_package_id
        self._logger = logger or structlog.get_logger(__name__)

    def find_latest(self, package_id: str) -> Result[PackageMetadata]:
        """Look up the latest published version. Never raises."""
        return self.feed.find_latest(package_id)

    def check_for_update(self, package_id: str, installed_version: str) -> Result[Optional[PackageMetadata]]:
        """Check whether the feed has a newer version than the installed one.

        Args:
            package_id: Id of the package
            installed_version: Version currently deployed

        Returns:
            Result carrying the newer metadata, or None when up to date
        """
        latest = self.find_latest(package_id)
        if not latest.ok:
            return Result.failure(latest.error)

        if is_newer(latest.value.version, installed_version):
            self._logger.info(
                "Update available",
                package_id=package_id,
                version=latest.value.version,
                installed_version=installed_version,
            )
            return Result.success(latest.value)
        return Result.success(None)

    def download(self, package_id: str, version: str) -> Result[Path]:
        """Make a package version available in the local cache."""
        with self.locks.hold(package_id):
            return self.cache.ensure_local(package_id, version)

    def install(self, target: InstallTarget, version: str) -> Result[InstallReport]:
        """Download (if needed), expand and install a package version.

        The whole sequence holds the lock for the package id, so two
        requests for the same id never interleave.

        Args:
            target: Core platform or plugin target
            version: Version to install

        Returns:
            Result carrying the install report
        """
        package_id = self.core_package_id if target.is_core else target.plugin_id
        with self.locks.hold(package_id):
            self._logger.info("Deploying package", package_id=package_id, version=version)

            cached = self.cache.ensure_local(package_id, version)
            if not cached.ok:
                return Result.failure(cached.error)

            expanded = self.cache.expand(package_id, version)
            if not expanded.ok:
                return Result.failure(expanded.error)

            return self.installer.install(target, expanded.value)

    def update_core(self, version: str) -> Result[InstallReport]:
        """Install a version of the core platform package."""
        return self.install(InstallTarget.core(), version)

    def install_plugin(self, plugin_id: str, version: str) -> Result[InstallReport]:
        """Install or update a plugin package."""
        return self.install(InstallTarget.plugin(plugin_id), version)


def build_service(config: Any, feed: Optional[FeedClient] = None) -> PackageService:
    """Wire a package service from a configuration manager.

    Args:
        config: Initialized ConfigManager (anything with ``get``)
        feed: Feed to use instead of the configured HTTP feed

    Returns:
        A ready package service
    """
    packaging = config.get('packaging', {})
    deployment = config.get('deployment', {})

    layout = DeploymentLayout(**deployment)
    binary_extension = packaging.get('binary_extension', 'dll')
    core_package_id = packaging.get('core_package_id', CORE_PACKAGE_ID)

    if feed is None:
        source = PackageSource.for_channel(packaging.get('channel', 'stable'), packaging.get('sources'))
        feed = HttpFeedClient(
            source,
            timeout=float(packaging.get('timeout', 30.0)),
            max_retries=int(packaging.get('max_retries', 3)),
            allow_prerelease=bool(packaging.get('allow_prerelease', False)),
        )

    packages_path = Path(packaging.get('packages_path', 'App_Data/packages'))
    if not packages_path.is_absolute():
        packages_path = layout.application_root / packages_path

    registry = DirectoryPluginRegistry(layout.plugins_path, binary_extension)
    installer = Installer(
        layout,
        registry,
        preferences=packaging.get('framework_preferences') or DEFAULT_FRAMEWORK_PREFERENCES,
        binary_extension=binary_extension,
        core_package_id=core_package_id,
    )
    return PackageService(
        PackageCache(packages_path, feed),
        installer,
        feed,
        core_package_id=core_package_id,
    )

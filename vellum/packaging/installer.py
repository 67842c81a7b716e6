"""Install validated packages into a live deployment.

Two targets are supported. The core platform package is copied over the
running application (site files, admin console, binaries, then the merged
configuration file). A plugin package is copied into its own directory
under the plugins root, after which the plugin registry is invalidated.

Package validation always runs first; nothing under the deployment is
created or modified until the package has passed it.
"""

from __future__ import annotations

import enum
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

import pydantic
import structlog

from vellum.packaging.frameworks import (
    CORE_PACKAGE_ID,
    DEFAULT_BINARY_EXTENSION,
    DEFAULT_FRAMEWORK_PREFERENCES,
)
from vellum.packaging.metadata import DESCRIPTOR_EXTENSION
from vellum.packaging.package import BIN_DIR, CachedPackage, load_cached_package
from vellum.packaging.registry import PluginRegistry
from vellum.packaging.result import Result
from vellum.packaging.webconfig import LiveSettings, merge_live_settings, read_live_settings
from vellum.utils.exceptions import ConfigFileMissingError, PackageIOError

ConfigMerger = Callable[[Path, LiveSettings], None]


class TargetKind(str, enum.Enum):
    CORE_PLATFORM = "core_platform"
    PLUGIN = "plugin"


@dataclass(frozen=True)
class InstallTarget:
    """Where a package is installed.

    Attributes:
        kind: Core platform or plugin
        plugin_id: Plugin id for plugin targets, None for the core platform
    """

    kind: TargetKind
    plugin_id: Optional[str] = None

    @classmethod
    def core(cls) -> InstallTarget:
        return cls(kind=TargetKind.CORE_PLATFORM)

    @classmethod
    def plugin(cls, plugin_id: str) -> InstallTarget:
        """Target the plugin directory of ``plugin_id``.

        Raises:
            ValueError: If the id is empty
        """
        if not plugin_id or not plugin_id.strip():
            raise ValueError("Plugin id must not be empty")
        return cls(kind=TargetKind.PLUGIN, plugin_id=plugin_id.strip())

    @property
    def is_core(self) -> bool:
        return self.kind is TargetKind.CORE_PLATFORM


class InstallState(str, enum.Enum):
    """Steps of an installation, in the order they complete."""

    VALIDATING_CONFIG = "ValidatingConfig"
    COPYING_SITE_FILES = "CopyingSiteFiles"
    COPYING_ADMIN_FILES = "CopyingAdminFiles"
    CREATING_DIRECTORY = "CreatingDirectory"
    COPYING_CONTENT = "CopyingContent"
    COPYING_BINARIES = "CopyingBinaries"
    COPYING_CONFIG = "CopyingConfig"
    COPYING_DESCRIPTOR = "CopyingDescriptor"
    INVALIDATING_CACHE = "InvalidatingCache"
    DONE = "Done"


@dataclass
class InstallReport:
    """Outcome of a successful installation.

    Attributes:
        target: Where the package was installed
        package_id: Id of the installed package
        version: Installed version
        states: Completed states, in order
        written_paths: Destination paths written, in order
    """

    target: InstallTarget
    package_id: str
    version: str
    states: List[InstallState] = field(default_factory=list)
    written_paths: List[Path] = field(default_factory=list)


class DeploymentLayout(pydantic.BaseModel):
    """Directory layout of the live deployment.

    Relative directories are resolved against ``application_root``.
    """

    application_root: Path = Path(".")
    site_files_directory: str = "SiteFiles"
    admin_directory: str = "SiteServer"
    bin_directory: str = "Bin"
    plugins_directory: str = "SiteFiles/Plugins"
    config_file_name: str = "Web.config"

    # Names inside a package
    package_site_files: str = "SiteFiles"
    package_admin: str = "SiteServer"
    package_bin: str = "Bin"
    package_content: str = "content"

    @property
    def site_files_path(self) -> Path:
        return self.application_root / self.site_files_directory

    @property
    def admin_path(self) -> Path:
        return self.application_root / self.admin_directory

    @property
    def bin_path(self) -> Path:
        return self.application_root / self.bin_directory

    @property
    def plugins_path(self) -> Path:
        return self.application_root / self.plugins_directory

    @property
    def config_path(self) -> Path:
        return self.application_root / self.config_file_name

    def plugin_path(self, plugin_id: str) -> Path:
        return self.plugins_path / plugin_id


class _InstallFailed(Exception):
    """Carries the state a copy phase failed in."""

    def __init__(self, state: InstallState, cause: Exception) -> None:
        super().__init__(str(cause))
        self.state = state
        self.cause = cause


class Installer:
    """Copies validated cached packages into the live deployment."""

    def __init__(
            self,
            layout: DeploymentLayout,
            registry: PluginRegistry,
            config_merger: ConfigMerger = merge_live_settings,
            preferences: Sequence[str] = DEFAULT_FRAMEWORK_PREFERENCES,
            binary_extension: str = DEFAULT_BINARY_EXTENSION,
            core_package_id: str = CORE_PACKAGE_ID,
            logger: Optional[Any] = None
    ) -> None:
        """Initialize the installer.

        Args:
            layout: Live deployment layout
            registry: Registry invalidated after each plugin install
            config_merger: Writes live settings into a staged configuration file
            preferences: Framework identifiers, most preferred first
            binary_extension: Extension of package binaries
            core_package_id: Id of the core platform package
            logger: Structured logger
        """
        self.layout = layout
        self.registry = registry
        self.config_merger = config_merger
        self.preferences = tuple(preferences)
        self.binary_extension = binary_extension
        self.core_package_id = core_package_id
        self._logger = logger or structlog.get_logger(__name__)

    def install(self, target: InstallTarget, cached_package_dir: Union[str, Path]) -> Result[InstallReport]:
        """Install an expanded cache entry.

        Args:
            target: Core platform or plugin target
            cached_package_dir: Expanded cache entry directory

        Returns:
            Result carrying the install report. Validation failures are
            returned before the deployment is touched; a failure during
            copying is returned as PackageIOError and may leave the
            deployment partially updated.
        """
        expected_id = self.core_package_id if target.is_core else target.plugin_id
        loaded = load_cached_package(
            cached_package_dir,
            expected_id=expected_id,
            preferences=self.preferences,
            binary_extension=self.binary_extension,
            core_package_id=self.core_package_id,
        )
        if not loaded.ok:
            self._logger.warning(
                "Package rejected", package_id=expected_id, error=loaded.message, code=loaded.error.code
            )
            return Result.failure(loaded.error)

        package = loaded.value
        report = InstallReport(target=target, package_id=package.id, version=package.version)
        self._logger.info(
            "Installing package", package_id=package.id, version=package.version, target=target.kind.value
        )

        try:
            if target.is_core:
                self._install_core(package, report)
            else:
                self._install_plugin(package, report)
        except ConfigFileMissingError as e:
            self._logger.error("Installation aborted", package_id=package.id, error=str(e))
            return Result.failure(e)
        except _InstallFailed as e:
            self._logger.error(
                "Installation failed",
                package_id=package.id,
                version=package.version,
                state=e.state.value,
                error=str(e.cause),
            )
            return Result.failure(PackageIOError(
                f"Installation of {package.id} {package.version} failed during {e.state.value}: "
                f"{e.cause}. The installation did not necessarily fully apply",
                package_id=package.id,
                version=package.version,
                state=e.state.value,
                completed_states=[state.value for state in report.states],
            ))

        self._complete(report, InstallState.DONE)
        self._logger.info("Package installed", package_id=package.id, version=package.version)
        return Result.success(report)

    def _complete(self, report: InstallReport, state: InstallState) -> None:
        report.states.append(state)
        self._logger.debug("Install step complete", package_id=report.package_id, state=state.value)

    def _run(self, state: InstallState, step: Callable[[], Any]) -> Any:
        try:
            return step()
        except (ConfigFileMissingError, _InstallFailed):
            raise
        except Exception as e:
            raise _InstallFailed(state, e) from e

    def _copy_tree(self, source: Path, destination: Path, report: InstallReport) -> None:
        """Copy a directory tree, overwriting existing files. Missing sources are skipped."""
        if not source.is_dir():
            self._logger.debug("Nothing to copy", source=str(source))
            return
        shutil.copytree(source, destination, dirs_exist_ok=True)
        report.written_paths.append(destination)

    def _install_core(self, package: CachedPackage, report: InstallReport) -> None:
        layout = self.layout
        package_config = package.directory_path / layout.config_file_name

        with tempfile.TemporaryDirectory(prefix="vellum-config-") as staging:
            staged_config = Path(staging) / layout.config_file_name

            def validate_config() -> Optional[LiveSettings]:
                if not package_config.is_file():
                    raise ConfigFileMissingError(
                        f"Core package {package.id} {package.version} does not contain {layout.config_file_name}",
                        package_id=package.id,
                        version=package.version,
                        file_path=str(package_config),
                    )
                shutil.copy2(package_config, staged_config)
                if not layout.config_path.is_file():
                    self._logger.info("No live configuration to carry forward", path=str(layout.config_path))
                    return None
                settings = read_live_settings(layout.config_path)
                self.config_merger(staged_config, settings)
                return settings

            settings = self._run(InstallState.VALIDATING_CONFIG, validate_config)
            self._complete(report, InstallState.VALIDATING_CONFIG)

            admin_path = layout.admin_path
            if settings is not None and settings.admin_directory:
                admin_path = layout.application_root / settings.admin_directory

            steps = (
                (InstallState.COPYING_SITE_FILES, layout.package_site_files, layout.site_files_path),
                (InstallState.COPYING_ADMIN_FILES, layout.package_admin, admin_path),
                (InstallState.COPYING_BINARIES, layout.package_bin, layout.bin_path),
            )
            for state, source_name, destination in steps:
                self._run(state, lambda: self._copy_tree(package.directory_path / source_name, destination, report))
                self._complete(report, state)

            def copy_config() -> None:
                layout.application_root.mkdir(parents=True, exist_ok=True)
                shutil.copy2(staged_config, layout.config_path)
                report.written_paths.append(layout.config_path)

            self._run(InstallState.COPYING_CONFIG, copy_config)
            self._complete(report, InstallState.COPYING_CONFIG)

    def _install_plugin(self, package: CachedPackage, report: InstallReport) -> None:
        plugin_id = package.id
        plugin_dir = self.layout.plugin_path(plugin_id)

        def create_directory() -> None:
            plugin_dir.mkdir(parents=True, exist_ok=True)
            report.written_paths.append(plugin_dir)

        self._run(InstallState.CREATING_DIRECTORY, create_directory)
        self._complete(report, InstallState.CREATING_DIRECTORY)

        self._run(
            InstallState.COPYING_CONTENT,
            lambda: self._copy_tree(package.directory_path / self.layout.package_content, plugin_dir, report),
        )
        self._complete(report, InstallState.COPYING_CONTENT)

        self._run(
            InstallState.COPYING_BINARIES,
            lambda: self._copy_tree(package.binary_directory, plugin_dir / BIN_DIR, report),
        )
        self._complete(report, InstallState.COPYING_BINARIES)

        def copy_descriptor() -> None:
            destination = plugin_dir / f"{plugin_id}{DESCRIPTOR_EXTENSION}"
            shutil.copy2(package.descriptor_path, destination)
            report.written_paths.append(destination)

        self._run(InstallState.COPYING_DESCRIPTOR, copy_descriptor)
        self._complete(report, InstallState.COPYING_DESCRIPTOR)

        self._run(InstallState.INVALIDATING_CACHE, self.registry.invalidate)
        self._complete(report, InstallState.INVALIDATING_CACHE)

"""Installed plugin registry."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

import structlog

from vellum.packaging.frameworks import DEFAULT_BINARY_EXTENSION
from vellum.packaging.package import InstalledPlugin, load_installed_plugin
from vellum.utils.exceptions import PackagingError


@runtime_checkable
class PluginRegistry(Protocol):
    """Anything that caches the set of installed plugins."""

    def invalidate(self) -> None:
        """Drop cached plugin state so the next lookup rescans."""
        ...


class DirectoryPluginRegistry:
    """Registry built by scanning the plugins directory.

    The index is built on first access and kept until :meth:`invalidate`.
    Directories that fail validation are left out of the index and reported
    through :meth:`errors`.
    """

    def __init__(
            self,
            plugins_directory: Union[str, Path],
            binary_extension: str = DEFAULT_BINARY_EXTENSION,
            logger: Optional[Any] = None
    ) -> None:
        self.plugins_directory = Path(plugins_directory)
        self.binary_extension = binary_extension
        self._logger = logger or structlog.get_logger(__name__)
        self._lock = threading.RLock()
        self._plugins: Optional[Dict[str, InstalledPlugin]] = None
        self._errors: Dict[str, PackagingError] = {}

    def _scan(self) -> Dict[str, InstalledPlugin]:
        with self._lock:
            if self._plugins is not None:
                return self._plugins

            plugins: Dict[str, InstalledPlugin] = {}
            errors: Dict[str, PackagingError] = {}
            if self.plugins_directory.is_dir():
                for plugin_dir in sorted(self.plugins_directory.iterdir()):
                    if not plugin_dir.is_dir():
                        continue
                    result = load_installed_plugin(plugin_dir, self.binary_extension)
                    if result.ok:
                        plugins[plugin_dir.name.lower()] = result.value
                    else:
                        errors[plugin_dir.name] = result.error
                        self._logger.warning(
                            "Skipping invalid plugin directory",
                            package_id=plugin_dir.name,
                            error=result.message,
                        )

            self._plugins = plugins
            self._errors = errors
            self._logger.debug("Plugin index built", count=len(plugins))
            return plugins

    def plugins(self) -> List[InstalledPlugin]:
        """All valid installed plugins, ordered by directory name."""
        return list(self._scan().values())

    def get(self, plugin_id: str) -> Optional[InstalledPlugin]:
        """Look up an installed plugin by id, ignoring case."""
        return self._scan().get(plugin_id.lower())

    def errors(self) -> Dict[str, PackagingError]:
        """Directory name -> validation error for skipped directories."""
        self._scan()
        with self._lock:
            return dict(self._errors)

    def invalidate(self) -> None:
        with self._lock:
            self._plugins = None
            self._errors = {}
        self._logger.debug("Plugin index invalidated")

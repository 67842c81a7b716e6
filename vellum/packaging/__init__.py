"""Package feed, cache, validation and installation."""

from vellum.packaging.cache import PackageCache
from vellum.packaging.feed import (
    DirectoryFeedClient,
    FeedChannel,
    FeedClient,
    HttpFeedClient,
    PackageSource,
)
from vellum.packaging.frameworks import (
    CORE_PACKAGE_ID,
    DEFAULT_FRAMEWORK_PREFERENCES,
    is_core_package,
    resolve_binary_directory,
)
from vellum.packaging.installer import (
    DeploymentLayout,
    Installer,
    InstallReport,
    InstallState,
    InstallTarget,
    TargetKind,
)
from vellum.packaging.locks import KeyedLock
from vellum.packaging.metadata import PackageMetadata, find_descriptor, parse_descriptor, write_descriptor
from vellum.packaging.package import CachedPackage, InstalledPlugin, load_cached_package, load_installed_plugin
from vellum.packaging.registry import DirectoryPluginRegistry, PluginRegistry
from vellum.packaging.result import Result
from vellum.packaging.service import PackageService, build_service
from vellum.packaging.webconfig import LiveSettings, merge_live_settings, read_live_settings

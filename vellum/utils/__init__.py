"""Utility functions and classes for the Vellum platform."""

from vellum.utils.exceptions import (
    BinaryMissingError,
    ConfigFileMissingError,
    ConfigurationError,
    FeedUnavailableError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    MetadataInvalidError,
    PackageIOError,
    PackageNotFoundError,
    PackagingError,
    VellumError,
)

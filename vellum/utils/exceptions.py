from __future__ import annotations

from typing import Any, Optional


class VellumError(Exception):
    """Base exception for all Vellum errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", {})
        self.details.update(kwargs)
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ManagerError(VellumError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, **kwargs)
        self.manager_name = manager_name
        if manager_name:
            self.details["manager_name"] = manager_name

    def __str__(self) -> str:
        """String representation."""
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class ConfigurationError(VellumError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, *args: Any, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            *args: Unused, accepted for signature compatibility.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)


class PackagingError(VellumError):
    """Base exception for package resolution and deployment errors.

    Every packaging error knows which package (and, where relevant, which
    version) it concerns, so a failed Result can be reported without the
    caller having to carry that context separately.
    """

    def __init__(
            self,
            message: str,
            *args: Any,
            package_id: Optional[str] = None,
            version: Optional[str] = None,
            **kwargs: Any
    ) -> None:
        """Initialize a PackagingError.

        Args:
            message: A descriptive error message.
            *args: Unused, accepted for signature compatibility.
            package_id: The package the error concerns.
            version: The package version the error concerns.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if package_id:
            details["package_id"] = package_id
        if version:
            details["version"] = version
        super().__init__(message, details=details, **kwargs)
        self.package_id = package_id
        self.version = version

    @property
    def code(self) -> str:
        """Short name of the error kind."""
        return type(self).__name__


class FeedUnavailableError(PackagingError):
    """The package feed could not be reached or returned an unusable answer."""

    pass


class PackageNotFoundError(PackagingError):
    """The feed has no such package, or no such version of it."""

    pass


class MetadataInvalidError(PackagingError):
    """The package descriptor is missing, unreadable, empty or has no id."""

    pass


class BinaryMissingError(PackagingError):
    """No compatible or fallback binary exists in the package."""

    pass


class ConfigFileMissingError(PackagingError):
    """The core package does not ship the platform configuration file."""

    def __init__(
            self, message: str, *args: Any, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigFileMissingError.

        Args:
            message: A descriptive error message.
            *args: Unused, accepted for signature compatibility.
            file_path: The configuration file that was expected.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, details=details, **kwargs)


class PackageIOError(PackagingError):
    """Copying, extracting or writing package files failed."""

    def __init__(
            self, message: str, *args: Any, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a PackageIOError.

        Args:
            message: A descriptive error message.
            *args: Unused, accepted for signature compatibility.
            file_path: The path being read or written when the error occurred.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, details=details, **kwargs)

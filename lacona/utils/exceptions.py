from __future__ import annotations

from typing import Any, Dict, Optional


class LaconaError(Exception):
    """Base exception for all Lacona addon manager errors.

    Every error carries an ``exit_code`` that the command-line interface
    returns to the shell when the error aborts a command.
    """

    exit_code: int = 1

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        details: Dict[str, Any] = dict(kwargs.pop("details", None) or {})
        details.update({key: value for key, value in kwargs.items() if value is not None})
        self.message = message
        self.details = details
        self.code = type(self).__name__
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ManagerError(LaconaError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class ApplicationError(LaconaError):
    """Exception raised when the application core cannot be assembled."""

    pass


class ConfigurationError(LaconaError):
    """Exception raised for configuration-related errors."""

    exit_code = 10

    def __init__(
            self, message: str, *, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        super().__init__(message, config_key=config_key, **kwargs)
        self.config_key = config_key


class AddonError(LaconaError):
    """Exception raised for addon-related errors."""

    def __init__(
            self, message: str, *, addon_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize an AddonError.

        Args:
            message: A descriptive error message.
            addon_name: The name of the addon the error relates to.
            **kwargs: Additional error information.
        """
        super().__init__(message, addon_name=addon_name, **kwargs)
        self.addon_name = addon_name


class NotAnAddonError(AddonError):
    """The package exists but does not declare Lacona addon metadata."""

    exit_code = 3


class NotFoundError(AddonError):
    """The registry has no package with the requested name."""

    exit_code = 4


class MalformedManifestError(AddonError):
    """A manifest could not be read, parsed or is structurally incomplete."""

    exit_code = 5


class InvalidAddonNameError(MalformedManifestError):
    """An addon name is not safe to use as a directory name."""

    pass


class ConflictError(AddonError):
    """An addon slot is occupied by something the operation must not destroy."""

    exit_code = 6


class NetworkError(AddonError):
    """Exception raised for registry or archive transport failures."""

    exit_code = 7

    def __init__(
            self,
            message: str,
            *,
            url: Optional[str] = None,
            status_code: Optional[int] = None,
            **kwargs: Any,
    ) -> None:
        """Initialize a NetworkError.

        Args:
            message: A descriptive error message.
            url: The URL that was being requested.
            status_code: The HTTP status code, if a response was received.
            **kwargs: Additional error information.
        """
        super().__init__(message, url=url, status_code=status_code, **kwargs)
        self.url = url
        self.status_code = status_code


class ExtractionError(AddonError):
    """An archive could not be unpacked into its destination."""

    exit_code = 8


class FilesystemError(AddonError):
    """Exception raised for permission and I/O failures in the addon store."""

    exit_code = 9

    def __init__(
            self, message: str, *, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a FilesystemError.

        Args:
            message: A descriptive error message.
            file_path: The path of the file that caused the error.
            **kwargs: Additional error information.
        """
        super().__init__(message, file_path=file_path, **kwargs)
        self.file_path = file_path


class ExternalCommandError(AddonError):
    """An external helper command (such as ``npm install``) failed."""

    exit_code = 11

    def __init__(
            self,
            message: str,
            *,
            command: Optional[str] = None,
            returncode: Optional[int] = None,
            **kwargs: Any,
    ) -> None:
        """Initialize an ExternalCommandError.

        Args:
            message: A descriptive error message.
            command: The command line that was run.
            returncode: The exit status of the command.
            **kwargs: Additional error information.
        """
        super().__init__(message, command=command, returncode=returncode, **kwargs)
        self.command = command
        self.returncode = returncode

"""Utility functions and classes for the Lacona addon manager."""

from lacona.utils.exceptions import (
    AddonError,
    ApplicationError,
    ConfigurationError,
    ConflictError,
    ExternalCommandError,
    ExtractionError,
    FilesystemError,
    InvalidAddonNameError,
    LaconaError,
    MalformedManifestError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    NetworkError,
    NotAnAddonError,
    NotFoundError,
)

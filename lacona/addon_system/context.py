"""The working-directory package an operation runs against.

Commands such as ``install`` with no argument, ``uninstall`` with no argument
and ``link`` act on "the current package". Instead of reading the manifest of
the process working directory at import time, callers build a
:class:`PackageContext` and pass it to every :class:`AddonManager` operation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from lacona.addon_system.manifest import MANIFEST_FILENAME, AddonDescriptor, parse_manifest
from lacona.utils.exceptions import MalformedManifestError, NotAnAddonError


@dataclass
class PackageContext:
    """A package directory and its lazily parsed manifest.

    Attributes:
        directory: Root directory of the package
    """

    directory: Path
    _descriptor: Optional[AddonDescriptor] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).resolve()

    @classmethod
    def from_cwd(cls) -> PackageContext:
        """Create a context for the process working directory."""
        return cls(Path(os.getcwd()))

    @classmethod
    def for_directory(cls, directory: Union[str, Path]) -> PackageContext:
        return cls(Path(directory))

    @property
    def manifest_path(self) -> Path:
        return self.directory / MANIFEST_FILENAME

    @property
    def has_manifest(self) -> bool:
        return self.manifest_path.is_file()

    def require_package(self) -> AddonDescriptor:
        """Return the descriptor of the package in this directory.

        The ``lacona`` section is not required; ``uninstall`` only needs a name.

        Raises:
            MalformedManifestError: If there is no usable ``package.json``
        """
        if self._descriptor is None:
            if not self.has_manifest:
                raise MalformedManifestError(
                    f'No {MANIFEST_FILENAME} found in {self.directory}'
                )
            self._descriptor = parse_manifest(self.manifest_path, require_addon=False)
        return self._descriptor

    def require_addon(self) -> AddonDescriptor:
        """Return the descriptor, insisting that the package is a Lacona addon.

        Raises:
            MalformedManifestError: If there is no usable ``package.json``
            NotAnAddonError: If the manifest has no ``lacona`` section
        """
        descriptor = self.require_package()
        if not descriptor.has_lacona_metadata:
            raise NotAnAddonError(
                f'{descriptor.name} is not a Lacona addon (no "lacona" section in '
                f'{self.manifest_path})',
                addon_name=descriptor.name,
            )
        return descriptor

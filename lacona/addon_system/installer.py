"""Addon lifecycle management.

This module provides the operations behind the command-line interface:
installing an addon from the working directory or the registry, removing
it, linking a development checkout and listing what is installed.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from lacona.addon_system.context import PackageContext
from lacona.addon_system.host import DependencyInstaller, HostNotifier, SystemLogReader
from lacona.addon_system.manifest import MANIFEST_FILENAME, AddonDescriptor, parse_manifest
from lacona.addon_system.package import ArchiveFetcher, IgnoreRules, extract_archive, pack_directory
from lacona.addon_system.repository import RegistryClient
from lacona.addon_system.store import AddonStore, InstalledAddon, SlotState
from lacona.utils.exceptions import ApplicationError, ConflictError, MalformedManifestError

# Local packages larger than this are spooled to disk while packing
SPOOL_MAX_SIZE = 16 * 1024 * 1024


@dataclass
class InstallResult:
    """Outcome of an install.

    Attributes:
        name: Slot the addon was installed into
        version: Version that was installed
        mode: ``local`` or ``remote``
        path: Path to the slot
    """

    name: str
    version: str
    mode: str
    path: Path
    title: str = ''

    @property
    def label(self) -> str:
        return f"{self.title or 'Untitled'} ({self.name}@{self.version})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "mode": self.mode,
            "path": str(self.path),
        }


class AddonManager:
    """Handler for installing and managing addons.

    Every operation that acts on "the current package" takes a
    :class:`PackageContext` instead of reading the process working directory.

    Attributes:
        store: Addon directory store
        registry: Remote registry client
        fetcher: Archive downloader
        notifier: Host application notifier, or None to skip notification
        dependency_installer: Dependency installer run before linking, or None
        log_reader: System log reader for :meth:`read_logs`
        ignore_patterns: Extra ignore patterns applied when packing locally
    """

    def __init__(
            self,
            store: AddonStore,
            registry: RegistryClient,
            fetcher: ArchiveFetcher,
            notifier: Optional[HostNotifier] = None,
            dependency_installer: Optional[DependencyInstaller] = None,
            log_reader: Optional[SystemLogReader] = None,
            ignore_patterns: Optional[Iterable[str]] = None,
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        """Initialize the addon manager.

        Args:
            store: Addon directory store
            registry: Remote registry client
            fetcher: Archive downloader
            notifier: Host application notifier
            dependency_installer: Dependency installer run before linking
            log_reader: System log reader
            ignore_patterns: Extra ignore patterns applied when packing locally
            logger: Logger function for recording lifecycle events
        """
        self.store = store
        self.registry = registry
        self.fetcher = fetcher
        self.notifier = notifier
        self.dependency_installer = dependency_installer
        self.log_reader = log_reader
        self.ignore_patterns = list(ignore_patterns or [])
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        """Log a message.

        Args:
            message: Message to log
            level: Log level (info, warning, error, debug)
        """
        self.logger(message, level)

    def install(self, context: PackageContext, package_name: Optional[str] = None) -> InstallResult:
        """Install an addon.

        Without ``package_name`` the package in ``context`` is packed and
        installed as a snapshot. With it, the latest version is fetched from
        the registry. An existing slot of the same name is replaced.

        Args:
            context: The working-directory package
            package_name: Registry package to install

        Returns:
            Details of the installed addon

        Raises:
            NotAnAddonError: If the package is not a Lacona addon
            NotFoundError: If the registry has no such package
            MalformedManifestError: If a manifest is missing or invalid
            NetworkError: If the registry or archive cannot be downloaded
            ExtractionError: If the archive cannot be unpacked
            FilesystemError: If the addon directory cannot be written
        """
        if package_name:
            return self._install_remote(package_name)
        return self._install_local(context)

    def _install_local(self, context: PackageContext) -> InstallResult:
        descriptor = context.require_addon()
        rules = IgnoreRules.for_directory(context.directory, self.ignore_patterns)
        self.log(f"Installing {descriptor.name} from {context.directory}", "info")

        def populate(staging: Path) -> None:
            with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as archive:
                count = pack_directory(context.directory, rules, archive)
                self.log(f"Packed {count} entries from {context.directory}", "debug")
                archive.seek(0)
                extract_archive(archive, staging)

        installed: List[AddonDescriptor] = []
        slot = self.store.materialize_slot(
            descriptor.name,
            populate,
            lambda staging: installed.append(self._validate_staging(staging, descriptor.name)),
        )

        self.log(f"{descriptor.name} installed successfully", "info")
        return InstallResult(
            name=descriptor.name,
            version=installed[0].version,
            mode="local",
            path=slot,
            title=installed[0].title,
        )

    def _install_remote(self, package_name: str) -> InstallResult:
        info = self.registry.resolve_latest(package_name)
        self.log(f"Installing {package_name}@{info.latest_version} from {info.archive_url}", "info")

        installed: List[AddonDescriptor] = []
        slot = self.store.materialize_slot(
            package_name,
            lambda staging: self.fetcher.fetch_and_extract(info.archive_url, staging),
            lambda staging: installed.append(self._validate_staging(staging, package_name)),
        )

        self.log(f"{package_name} installed successfully", "info")
        return InstallResult(
            name=package_name,
            version=installed[0].version,
            mode="remote",
            path=slot,
            title=installed[0].title,
        )

    def _validate_staging(self, staging: Path, expected_name: str) -> AddonDescriptor:
        descriptor = parse_manifest(staging / MANIFEST_FILENAME)
        if descriptor.name != expected_name:
            raise MalformedManifestError(
                f"Archive for {expected_name} contains package {descriptor.name}",
                addon_name=expected_name,
            )
        return descriptor

    def uninstall(self, context: PackageContext, package_name: Optional[str] = None) -> bool:
        """Remove an addon.

        Args:
            context: The working-directory package, used when no name is given
            package_name: Addon to remove

        Returns:
            True if a slot was removed, False if it was not installed

        Raises:
            MalformedManifestError: If no name is given and the working
                directory has no usable manifest
            FilesystemError: If removal fails
        """
        name = package_name or context.require_package().name
        self.log(f"Uninstalling addon {name}", "info")
        removed = self.store.remove_slot(name)
        if not removed:
            self.log(f"{name} is not installed", "info")
        return removed

    def link(self, context: PackageContext) -> Path:
        """Link the working-directory addon into the addon directory.

        Dependencies are installed first, then the slot is pointed at the
        working directory and the host application is asked to reload.

        Returns:
            Path to the linked slot

        Raises:
            NotAnAddonError: If the package is not a Lacona addon
            ConflictError: If an installed copy occupies the slot
            ExternalCommandError: If the dependency install fails
            FilesystemError: If the link cannot be created
        """
        descriptor = context.require_addon()
        if self.store.slot_state(descriptor.name) is SlotState.MATERIALIZED:
            slot = self.store.slot_path(descriptor.name)
            raise ConflictError(
                f"Non-symlink exists at {slot}", addon_name=descriptor.name, file_path=str(slot)
            )

        if self.dependency_installer:
            self.dependency_installer.install(context.directory)

        slot = self.store.link_slot(descriptor.name, context.directory)

        if self.notifier:
            self.notifier.reload_addons()
        return slot

    def list_addons(self) -> List[InstalledAddon]:
        return self.store.list_slots()

    @staticmethod
    def format_listing(addons: Iterable[InstalledAddon]) -> List[str]:
        """Render one ``Title (name@version)`` line per addon, sorted by name."""
        return [addon.descriptor.label for addon in sorted(addons, key=lambda a: a.name)]

    def read_logs(self) -> List[str]:
        """Return the system log lines that mention the host application.

        Raises:
            ApplicationError: If no log reader is configured
            ExternalCommandError: If the log command fails
        """
        if self.log_reader is None:
            raise ApplicationError("No system log command is configured")
        return self.log_reader.read()

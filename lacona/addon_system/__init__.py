"""Lacona addon system.

This package installs, uninstalls, links and lists addons in the addon
directory of the Lacona host application.
"""

from lacona.addon_system.context import PackageContext
from lacona.addon_system.host import DependencyInstaller, HostNotifier, SystemLogReader
from lacona.addon_system.installer import AddonManager, InstallResult
from lacona.addon_system.manifest import AddonDescriptor, LaconaMetadata, PackageManifest, parse_manifest
from lacona.addon_system.package import ArchiveFetcher, IgnoreRules, extract_archive, pack_directory
from lacona.addon_system.repository import RegistryClient, RemotePackageInfo
from lacona.addon_system.store import AddonStore, InstalledAddon, SlotState

__all__ = [
    "AddonDescriptor",
    "AddonManager",
    "AddonStore",
    "ArchiveFetcher",
    "DependencyInstaller",
    "HostNotifier",
    "IgnoreRules",
    "InstallResult",
    "InstalledAddon",
    "LaconaMetadata",
    "PackageContext",
    "PackageManifest",
    "RegistryClient",
    "RemotePackageInfo",
    "SlotState",
    "SystemLogReader",
    "extract_archive",
    "pack_directory",
    "parse_manifest",
]

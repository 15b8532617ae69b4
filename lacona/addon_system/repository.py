"""Registry client for remote addon packages.

This module looks up the latest published version of a package on an
npm-compatible registry and decides whether it is a Lacona addon before
anything is downloaded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from lacona.addon_system.manifest import AddonDescriptor, descriptor_from_document, validate_addon_name
from lacona.utils.exceptions import MalformedManifestError, NetworkError, NotAnAddonError, NotFoundError

DEFAULT_REGISTRY_URL = "https://registry.npmjs.com"


@dataclass(frozen=True)
class RemotePackageInfo:
    """Metadata of the latest version of a registry package.

    Attributes:
        name: Package name
        latest_version: Version tagged ``latest``
        archive_url: Location of the gzip tarball
        is_addon: Whether the metadata declares a ``lacona`` section
        descriptor: Addon descriptor, only set for addons
    """

    name: str
    latest_version: str
    archive_url: str
    is_addon: bool
    descriptor: Optional[AddonDescriptor] = None

    @classmethod
    def from_registry_document(cls, data: Any, source: str) -> RemotePackageInfo:
        """Build package info from a registry ``latest`` document.

        Args:
            data: Decoded JSON response
            source: URL the document came from, used in error messages

        Raises:
            MalformedManifestError: If name, version or ``dist.tarball`` is missing
        """
        if not isinstance(data, dict):
            raise MalformedManifestError(f"Registry response from {source} is not a JSON object")

        name = data.get("name")
        version = data.get("version")
        dist = data.get("dist")
        tarball = dist.get("tarball") if isinstance(dist, dict) else None
        if not isinstance(name, str) or not name or not isinstance(version, str) or not version:
            raise MalformedManifestError(f"Registry response from {source} lacks a name or version")
        if not isinstance(tarball, str) or not tarball:
            raise MalformedManifestError(
                f"Registry response from {source} has no dist.tarball", addon_name=name
            )

        is_addon = isinstance(data.get("lacona"), dict)
        descriptor = descriptor_from_document(data, source) if is_addon else None

        return cls(
            name=name,
            latest_version=version,
            archive_url=tarball,
            is_addon=is_addon,
            descriptor=descriptor,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "latest_version": self.latest_version,
            "archive_url": self.archive_url,
            "is_addon": self.is_addon,
        }


class RegistryClient:
    """Client for an npm-compatible package registry.

    Attributes:
        url: Registry base URL
        timeout: Request timeout in seconds
    """

    def __init__(
            self,
            url: str = DEFAULT_REGISTRY_URL,
            timeout: float = 30.0,
            client: Optional[httpx.Client] = None,
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        """Initialize the registry client.

        Args:
            url: Registry base URL
            timeout: Request timeout in seconds
            client: HTTP client to use (one is created if omitted)
            logger: Logger function for recording registry events
        """
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.logger = logger or (lambda msg, level: None)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def latest_url(self, name: str) -> str:
        return f"{self.url}/{name}/latest"

    def fetch_latest(self, name: str) -> RemotePackageInfo:
        """Look up the latest version of a package.

        Non-addon packages are returned with ``is_addon`` set to False.

        Args:
            name: Package name

        Returns:
            Information about the latest version

        Raises:
            InvalidAddonNameError: If the name is not a safe package name
            NotFoundError: If the registry has no such package
            NetworkError: If the registry cannot be reached or returns an error
            MalformedManifestError: If the response cannot be understood
        """
        validate_addon_name(name)
        url = self.latest_url(name)
        self.log(f"Resolving {name} from {url}", "debug")

        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Failed to connect to registry: {e}", url=url, addon_name=name
            ) from e

        if response.status_code == 404:
            raise NotFoundError(f"Package {name} not found in registry", addon_name=name)
        if response.status_code >= 400:
            raise NetworkError(
                f"Registry returned error: {response.status_code} {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
                addon_name=name,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedManifestError(
                f"Registry returned invalid JSON for {name}: {e}", addon_name=name
            ) from e

        info = RemotePackageInfo.from_registry_document(data, url)
        self.log(f"Resolved {info.name}@{info.latest_version} (addon: {info.is_addon})", "debug")
        return info

    def resolve_latest(self, name: str) -> RemotePackageInfo:
        """Look up the latest version of an addon.

        Raises:
            NotAnAddonError: If the package does not declare a ``lacona`` section
            NotFoundError: If the registry has no such package
            NetworkError: If the registry cannot be reached or returns an error
            MalformedManifestError: If the response cannot be understood
        """
        info = self.fetch_latest(name)
        if not info.is_addon:
            raise NotAnAddonError(f"{name} is not a Lacona addon", addon_name=name)
        return info

"""Package manifests.

Reads ``package.json`` documents, from a working directory or from registry
metadata, and reduces them to the :class:`AddonDescriptor` the rest of the
addon system works with.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional, Union

import pydantic
from pydantic import ConfigDict, field_validator

from lacona.utils.exceptions import InvalidAddonNameError, MalformedManifestError, NotAnAddonError

MANIFEST_FILENAME = "package.json"

# npm-safe, lowercase, and never a path separator or a dot-directory
ADDON_NAME_REGEX = re.compile(r"^[a-z0-9][a-z0-9._~-]{0,213}$")


def validate_addon_name(name: Any) -> str:
    """Check that ``name`` can be used as an addon slot directory name.

    Raises:
        InvalidAddonNameError: If the name is empty, contains a path separator
            or characters npm does not allow.
    """
    if not isinstance(name, str) or not name:
        raise InvalidAddonNameError("Addon name must be a non-empty string")
    if "/" in name or "\\" in name or name in (".", ".."):
        raise InvalidAddonNameError(
            f"Addon name '{name}' contains a path separator", addon_name=name
        )
    if not ADDON_NAME_REGEX.match(name):
        raise InvalidAddonNameError(
            f"Addon name '{name}' is not a valid npm package name", addon_name=name
        )
    return name


class LaconaMetadata(pydantic.BaseModel):
    """The ``lacona`` section of a package manifest."""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    extensions: Optional[Any] = None
    config: Optional[Any] = None


class PackageManifest(pydantic.BaseModel):
    """A parsed ``package.json``; keys other than these are kept but unused."""

    model_config = ConfigDict(extra="allow")

    name: str
    version: str
    description: Optional[str] = None
    lacona: Optional[LaconaMetadata] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        try:
            return validate_addon_name(v)
        except InvalidAddonNameError as e:
            raise ValueError(e.message) from e

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Version must not be empty")
        return v


class AddonDescriptor(pydantic.BaseModel):
    """What the addon store needs to know about a package."""

    model_config = ConfigDict(frozen=True)

    name: str
    title: str = ""
    version: str
    description: str = ""
    has_lacona_metadata: bool = False

    @property
    def display_title(self) -> str:
        return self.title or "Untitled"

    @property
    def label(self) -> str:
        return f"{self.display_title} ({self.name}@{self.version})"

    @classmethod
    def from_manifest(cls, manifest: PackageManifest) -> AddonDescriptor:
        lacona = manifest.lacona
        return cls(
            name=manifest.name,
            title=(lacona.title if lacona else None) or "",
            version=manifest.version,
            description=manifest.description or (lacona.description if lacona else None) or "",
            has_lacona_metadata=lacona is not None,
        )


def descriptor_from_document(
        document: Any,
        source: str,
        require_addon: bool = True
) -> AddonDescriptor:
    """Build a descriptor from already-decoded manifest data.

    Args:
        document: Decoded JSON, either a local ``package.json`` or registry metadata
        source: Where the document came from, used in error messages
        require_addon: Whether a missing ``lacona`` section is an error

    Returns:
        The addon descriptor

    Raises:
        MalformedManifestError: If the document is structurally incomplete
        NotAnAddonError: If ``require_addon`` and the ``lacona`` section is missing
    """
    if not isinstance(document, dict):
        raise MalformedManifestError(f"Manifest {source} is not a JSON object")

    name = document.get("name")
    if require_addon and not isinstance(document.get("lacona"), dict):
        # Checked before full validation so that a non-addon is always reported as such
        if isinstance(name, str) and name:
            raise NotAnAddonError(f"{name} is not a Lacona addon", addon_name=name)
        raise NotAnAddonError(f"{source} does not declare a Lacona addon")

    validate_addon_name(name)

    try:
        manifest = PackageManifest.model_validate(document)
    except pydantic.ValidationError as e:
        errors = ", ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise MalformedManifestError(
            f"Invalid manifest {source}: {errors}", addon_name=name
        ) from e

    return AddonDescriptor.from_manifest(manifest)


def parse_manifest(path: Union[str, Path], require_addon: bool = True) -> AddonDescriptor:
    """Read a ``package.json`` and validate it as an addon manifest.

    Args:
        path: Path to the manifest file
        require_addon: Whether a missing ``lacona`` section is an error

    Returns:
        The addon descriptor

    Raises:
        MalformedManifestError: If the file is unreadable, not JSON or incomplete
        NotAnAddonError: If ``require_addon`` and the ``lacona`` section is missing
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError as e:
        raise MalformedManifestError(f"Manifest file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedManifestError(f"Cannot read manifest {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise MalformedManifestError(f"Invalid manifest file {path}: {e}") from e

    return descriptor_from_document(document, str(path), require_addon=require_addon)

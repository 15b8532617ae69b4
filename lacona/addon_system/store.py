"""Addon directory store.

The store owns a root directory holding one slot per installed addon. A slot
is a subdirectory named after the addon's package name, and is either absent,
an ordinary directory (materialized) or a symbolic link to a development
checkout (linked).
"""

from __future__ import annotations

import enum
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from lacona.addon_system.manifest import MANIFEST_FILENAME, AddonDescriptor, parse_manifest, validate_addon_name
from lacona.utils.exceptions import AddonError, ConflictError, FilesystemError


class SlotState(str, enum.Enum):
    """State of a single addon slot."""

    ABSENT = "absent"
    MATERIALIZED = "materialized"
    LINKED = "linked"


@dataclass
class InstalledAddon:
    """An addon found in the store.

    Attributes:
        name: Slot (directory) name
        descriptor: Descriptor parsed from the slot's manifest
        state: Whether the slot is a copy or a development link
        path: Path to the slot
    """

    name: str
    descriptor: AddonDescriptor
    state: SlotState
    path: Path

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.descriptor.title,
            "version": self.descriptor.version,
            "state": self.state.value,
            "path": str(self.path),
        }


class AddonStore:
    """Filesystem primitives for the addon directory.

    Attributes:
        root: Directory that contains one slot per addon
    """

    STAGING_SUFFIX = ".staging"
    BACKUP_SUFFIX = ".previous"

    def __init__(
            self,
            root: Union[str, Path],
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        """Initialize the store.

        Args:
            root: Addon root directory (created on first write)
            logger: Logger function for recording store events
        """
        self.root = Path(root).expanduser()
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def ensure_root(self) -> Path:
        """Create the root directory if needed.

        Raises:
            FilesystemError: If the directory cannot be created
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Cannot create addon directory {self.root}: {e.strerror or e}",
                file_path=str(self.root),
            ) from e
        return self.root

    def slot_path(self, name: str) -> Path:
        """Get the path of the slot for ``name``.

        Raises:
            InvalidAddonNameError: If the name is not safe as a directory name
        """
        return self.root / validate_addon_name(name)

    def slot_state(self, name: str) -> SlotState:
        path = self.slot_path(name)
        if path.is_symlink():
            return SlotState.LINKED
        if path.exists():
            return SlotState.MATERIALIZED
        return SlotState.ABSENT

    def list_slots(self) -> List[InstalledAddon]:
        """List every slot holding a readable addon manifest, sorted by name.

        Directories without a manifest, with an invalid one, or with one that
        has no ``lacona`` section are skipped rather than reported.
        """
        if not self.root.is_dir():
            self.log(f"Addon directory {self.root} does not exist", "debug")
            return []

        try:
            entries = sorted(self.root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise FilesystemError(
                f"Cannot read addon directory {self.root}: {e.strerror or e}",
                file_path=str(self.root),
            ) from e

        addons: List[InstalledAddon] = []
        for entry in entries:
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            try:
                descriptor = parse_manifest(entry / MANIFEST_FILENAME)
            except AddonError as e:
                self.log(f"Skipping {entry.name}: {e}", "debug")
                continue
            state = SlotState.LINKED if entry.is_symlink() else SlotState.MATERIALIZED
            addons.append(InstalledAddon(entry.name, descriptor, state, entry))

        return addons

    def remove_slot(self, name: str) -> bool:
        """Remove a slot.

        A linked slot is unlinked; its target is never touched.

        Returns:
            True if something was removed, False if the slot was already absent

        Raises:
            FilesystemError: If removal fails
        """
        path = self.slot_path(name)
        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.exists():
                shutil.rmtree(path)
            else:
                return False
        except OSError as e:
            raise FilesystemError(
                f"Failed to remove {path}: {e.strerror or e}", file_path=str(path), addon_name=name
            ) from e

        self.log(f"Removed addon slot {path}", "info")
        return True

    def materialize_slot(
            self,
            name: str,
            populate: Callable[[Path], None],
            validate: Optional[Callable[[Path], None]] = None
    ) -> Path:
        """Replace a slot with freshly written contents.

        ``populate`` writes into a hidden staging directory next to the slot;
        only after it and ``validate`` succeed is the staging directory renamed
        onto the slot. Any previous slot is kept aside until the rename has
        happened and restored if it fails, so a failed write never leaves a
        partial slot behind.

        Args:
            name: Addon name
            populate: Callable filling the staging directory
            validate: Optional callable checking the staging directory

        Returns:
            Path to the slot

        Raises:
            FilesystemError: If the staging or rename steps fail
            AddonError: Whatever ``populate`` or ``validate`` raise
        """
        slot = self.slot_path(name)
        self.ensure_root()

        try:
            staging = Path(tempfile.mkdtemp(prefix=f".{name}.", suffix=self.STAGING_SUFFIX, dir=self.root))
            os.chmod(staging, 0o755)
        except OSError as e:
            raise FilesystemError(
                f"Cannot create staging directory in {self.root}: {e.strerror or e}",
                file_path=str(self.root),
                addon_name=name,
            ) from e

        try:
            self.log(f"Staging {name} in {staging}", "debug")
            populate(staging)
            if validate:
                validate(staging)
            self._swap_into_place(name, staging, slot)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        self.log(f"Materialized addon slot {slot}", "info")
        return slot

    def _swap_into_place(self, name: str, staging: Path, slot: Path) -> None:
        backup: Optional[Path] = None
        try:
            if slot.is_symlink() or slot.exists():
                backup = Path(tempfile.mkdtemp(prefix=f".{name}.", suffix=self.BACKUP_SUFFIX, dir=self.root))
                backup.rmdir()
                os.replace(slot, backup)
            os.replace(staging, slot)
        except OSError as e:
            if backup is not None and not (slot.is_symlink() or slot.exists()):
                os.replace(backup, slot)
                backup = None
            raise FilesystemError(
                f"Failed to move {name} into {slot}: {e.strerror or e}",
                file_path=str(slot),
                addon_name=name,
            ) from e

        if backup is not None:
            self._discard(backup)

    def _discard(self, path: Path) -> None:
        try:
            if path.is_symlink():
                path.unlink()
            else:
                shutil.rmtree(path)
        except OSError as e:
            self.log(f"Could not remove old copy {path}: {e}", "warning")

    def link_slot(self, name: str, target: Union[str, Path]) -> Path:
        """Point a slot at a development directory.

        An existing link is replaced. An existing ordinary directory or file is
        left untouched and the operation fails.

        Args:
            name: Addon name
            target: Directory the slot should link to

        Returns:
            Path to the slot

        Raises:
            ConflictError: If a non-link already occupies the slot
            FilesystemError: If the link cannot be created
        """
        slot = self.slot_path(name)
        target = Path(target).resolve()
        self.ensure_root()

        try:
            if slot.is_symlink():
                self.log(f"Unlinking existing {slot}", "info")
                slot.unlink()
            elif slot.exists():
                raise ConflictError(
                    f"Non-symlink exists at {slot}", addon_name=name, file_path=str(slot)
                )

            self.log(f"Symlinking {slot} to {target}", "info")
            os.symlink(target, slot, target_is_directory=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to link {slot} to {target}: {e.strerror or e}",
                file_path=str(slot),
                addon_name=name,
            ) from e

        return slot

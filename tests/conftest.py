"""Pytest configuration and fixtures for Lacona tests."""

import io
import json
import os
import tarfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional, Union

import pytest
import yaml

from lacona.addon_system.store import AddonStore
from lacona.core.config_manager import ConfigManager


def manifest_document(
        name: str = "lacona-demo",
        version: str = "1.0.0",
        title: Optional[str] = "Demo",
        addon: bool = True,
        **extra: Any
) -> Dict[str, Any]:
    """Build a ``package.json`` document."""
    document: Dict[str, Any] = {"name": name, "version": version, "description": "A test package"}
    if addon:
        document["lacona"] = {"title": title} if title is not None else {}
    document.update(extra)
    return document


def build_tarball(files: Dict[str, Union[str, bytes]], prefix: str = "package") -> bytes:
    """Build an npm-style gzip tarball in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{prefix}/{name}" if prefix else name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def clean_lacona_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ``LACONA_`` variables from the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("LACONA_"):
            monkeypatch.delenv(name)


@pytest.fixture
def addon_root(tmp_path: Path) -> Path:
    """Addon directory that does not exist yet."""
    return tmp_path / "Addons"


@pytest.fixture
def store(addon_root: Path) -> AddonStore:
    """Create an AddonStore over a temporary root."""
    return AddonStore(addon_root)


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a package directory with a ``package.json``."""

    def _make(directory: str = "workspace", files: Optional[Dict[str, str]] = None, **manifest: Any) -> Path:
        package_dir = tmp_path / directory
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / "package.json").write_text(json.dumps(manifest_document(**manifest)), encoding="utf-8")
        for name, content in (files or {}).items():
            path = package_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return package_dir

    return _make


@pytest.fixture
def make_slot(addon_root: Path) -> Callable[..., Path]:
    """Factory writing an installed (materialized) addon slot."""

    def _make(slot_name: str = "lacona-demo", **manifest: Any) -> Path:
        manifest.setdefault("name", slot_name)
        slot = addon_root / slot_name
        slot.mkdir(parents=True, exist_ok=True)
        (slot / "package.json").write_text(json.dumps(manifest_document(**manifest)), encoding="utf-8")
        return slot

    return _make


@pytest.fixture
def temp_config_file(tmp_path: Path, addon_root: Path) -> Generator[str, None, None]:
    """Create a temporary configuration file for testing."""
    test_config = {
        "addons": {"directory": str(addon_root)},
        "registry": {"url": "https://registry.test", "timeout": 5},
        "link": {"install": ["true"]},
        "host": {"reload": ["true"], "logs": ["true"]},
        "logging": {
            "level": "WARNING",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "WARNING"},
        },
    }

    config_path = tmp_path / "config.yaml"
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(test_config, f)

    yield str(config_path)


@pytest.fixture
def config_manager(temp_config_file: str) -> Generator[ConfigManager, None, None]:
    """Create a ConfigManager instance for testing."""
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()
    yield manager
    manager.shutdown()


@pytest.fixture
def make_tarball() -> Callable[..., bytes]:
    """Factory building npm-style tarballs."""
    return build_tarball


@pytest.fixture
def make_manifest() -> Callable[..., Dict[str, Any]]:
    """Factory building ``package.json`` documents."""
    return manifest_document

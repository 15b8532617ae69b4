"""Unit tests for the command-line interface."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from lacona.__version__ import __version__
from lacona.addon_system import cli
from lacona.addon_system.repository import RegistryClient
from lacona.utils.exceptions import NetworkError, NotFoundError


@pytest.fixture
def run(temp_config_file):
    """Run the CLI with the test configuration."""

    def _run(*args):
        return cli.main(["--config", temp_config_file, *args])

    return _run


@pytest.fixture
def in_package(make_package, monkeypatch):
    """Change into a fresh addon package directory."""

    def _enter(**manifest):
        package_dir = make_package(**manifest)
        monkeypatch.chdir(package_dir)
        return package_dir

    return _enter


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0

    assert "usage: lacona" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])

    assert exc_info.value.code == 0
    assert capsys.readouterr().out.strip() == f"lacona {__version__}"


def test_unknown_command_is_usage_error():
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["frobnicate"])

    assert exc_info.value.code == 2


def test_ls_empty(run, capsys):
    assert run("ls") == 0

    assert capsys.readouterr().out == ""


def test_install_then_ls(run, in_package, capsys, addon_root):
    in_package(files={"index.js": "main"})

    assert run("install") == 0
    assert capsys.readouterr().out == "lacona-demo installed successfully\n"
    assert (addon_root / "lacona-demo" / "index.js").exists()

    assert run("list") == 0
    assert capsys.readouterr().out == "Demo (lacona-demo@1.0.0)\n"


def test_install_not_an_addon(run, in_package, capsys, addon_root):
    in_package(addon=False)

    assert run("install") == 3

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error: lacona-demo is not a Lacona addon" in captured.err
    assert not addon_root.exists()


def test_install_without_manifest(run, tmp_path, monkeypatch, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.chdir(empty)

    assert run("install") == 5
    assert "No package.json found" in capsys.readouterr().err


def test_install_remote_not_found(run, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    with patch.object(
        RegistryClient, "fetch_latest", side_effect=NotFoundError("Package no-such-addon not found in registry")
    ):
        assert run("install", "no-such-addon") == 4

    assert "Error: Package no-such-addon not found in registry" in capsys.readouterr().err


def test_install_remote_network_error(run, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    with patch.object(RegistryClient, "fetch_latest", side_effect=NetworkError("Failed to connect to registry")):
        assert run("install", "lacona-demo") == 7


def test_uninstall_twice(run, in_package, capsys, addon_root):
    in_package()
    run("install")
    capsys.readouterr()

    assert run("uninstall") == 0
    assert capsys.readouterr().out == "Uninstalling addon lacona-demo\n"
    assert not (addon_root / "lacona-demo").exists()

    assert run("uninstall", "lacona-demo") == 0
    assert capsys.readouterr().out == "Uninstalling addon lacona-demo\nlacona-demo was not installed\n"


def test_uninstall_unsafe_name(run, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    assert run("uninstall", "../../etc") == 5


def test_link(run, in_package, capsys, addon_root):
    package_dir = in_package()

    assert run("link") == 0

    slot = addon_root / "lacona-demo"
    assert slot.is_symlink()
    assert Path(os.readlink(slot)) == package_dir.resolve()
    assert f"Linked {slot}" in capsys.readouterr().out


def test_link_conflict(run, in_package, make_slot, capsys):
    slot = make_slot("lacona-demo")
    in_package()

    assert run("link") == 6

    assert "Error: Non-symlink exists at" in capsys.readouterr().err
    assert not slot.is_symlink()


def test_link_dependency_failure(tmp_path, in_package, addon_root, capsys):
    config_path = tmp_path / "failing.yaml"
    config_path.write_text(
        yaml.dump({"addons": {"directory": str(addon_root)}, "link": {"install": ["false"]}}),
        encoding="utf-8",
    )
    in_package()

    assert cli.main(["--config", str(config_path), "link"]) == 11
    assert not (addon_root / "lacona-demo").exists()


def test_addons_dir_option(run, in_package, tmp_path, capsys):
    in_package()
    other_root = tmp_path / "OtherAddons"

    assert run("--addons-dir", str(other_root), "install") == 0

    assert (other_root / "lacona-demo").is_dir()


def test_logs(tmp_path, capsys):
    config_path = tmp_path / "logs.yaml"
    config_path.write_text(
        yaml.dump({"host": {"logs": ["printf", "%s", "Lacona[1]: loaded\nkernel: noise\n"]}}),
        encoding="utf-8",
    )

    assert cli.main(["--config", str(config_path), "logs"]) == 0
    assert capsys.readouterr().out == "Lacona[1]: loaded\n"


def test_invalid_configuration(tmp_path, capsys):
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(yaml.dump({"registry": {"url": "ftp://registry.test"}}), encoding="utf-8")

    assert cli.main(["--config", str(config_path), "ls"]) == 10
    assert "Error: Invalid configuration" in capsys.readouterr().err


def test_invalid_registry_option(run, capsys):
    assert run("--registry", "not-a-url", "ls") == 10

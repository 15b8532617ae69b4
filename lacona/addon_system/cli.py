"""Command-line interface for the Lacona addon manager.

This module provides the ``lacona`` command for installing, uninstalling,
linking and listing addons and for reading the host application's log.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Callable, Dict, List, Optional

from lacona.__version__ import __version__
from lacona.addon_system.context import PackageContext
from lacona.core.app import ApplicationCore
from lacona.utils.exceptions import LaconaError


def list_command(args: argparse.Namespace, app: ApplicationCore) -> int:
    """Handle the ls command.

    Args:
        args: Command-line arguments
        app: Initialized application core

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    manager = app.addon_manager
    for line in manager.format_listing(manager.list_addons()):
        print(line)
    return 0


def install_command(args: argparse.Namespace, app: ApplicationCore) -> int:
    """Handle the install command.

    Args:
        args: Command-line arguments
        app: Initialized application core

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    context = PackageContext.from_cwd()
    result = app.addon_manager.install(context, args.package)
    print(f"{result.name} installed successfully")
    return 0


def uninstall_command(args: argparse.Namespace, app: ApplicationCore) -> int:
    """Handle the uninstall command.

    Args:
        args: Command-line arguments
        app: Initialized application core

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    context = PackageContext.from_cwd()
    name = args.package or context.require_package().name
    print(f"Uninstalling addon {name}")
    if not app.addon_manager.uninstall(context, name):
        print(f"{name} was not installed")
    return 0


def link_command(args: argparse.Namespace, app: ApplicationCore) -> int:
    """Handle the link command.

    Args:
        args: Command-line arguments
        app: Initialized application core

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    context = PackageContext.from_cwd()
    slot = app.addon_manager.link(context)
    print(f"Linked {slot} to {context.directory}")
    return 0


def logs_command(args: argparse.Namespace, app: ApplicationCore) -> int:
    """Handle the logs command."""
    for line in app.addon_manager.read_logs():
        print(line)
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, ApplicationCore], int]] = {
    "ls": list_command,
    "install": install_command,
    "uninstall": uninstall_command,
    "link": link_command,
    "logs": logs_command,
}


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the ``lacona`` command."""
    parser = argparse.ArgumentParser(
        prog="lacona",
        description="Manage addons for the Lacona host application",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a YAML or JSON configuration file")
    parser.add_argument("--addons-dir", help="Addon directory (overrides addons.directory)")
    parser.add_argument("--registry", help="Registry base URL (overrides registry.url)")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Log progress to stderr (repeat for debug output)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # List command
    subparsers.add_parser("ls", aliases=["list"], help="List installed addons")

    # Install command
    install_parser = subparsers.add_parser(
        "install", help="Install an addon from the registry, or the current directory if no package is given"
    )
    install_parser.add_argument("package", nargs="?", help="Registry package name")

    # Uninstall command
    uninstall_parser = subparsers.add_parser(
        "uninstall", help="Uninstall an addon, or the current directory's package if no package is given"
    )
    uninstall_parser.add_argument("package", nargs="?", help="Addon name")

    # Link command
    subparsers.add_parser("link", help="Link the current directory into the addon directory for development")

    # Logs command
    subparsers.add_parser("logs", help="View the system logs about Lacona")

    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "addons.directory": args.addons_dir,
        "registry.url": args.registry,
    }
    if args.verbose:
        level = "DEBUG" if args.verbose > 1 else "INFO"
        overrides["logging.level"] = level
        overrides["logging.console.level"] = level
    return overrides


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    command = "ls" if parsed.command == "list" else parsed.command
    if command not in COMMANDS:
        parser.print_help()
        return 0

    app = ApplicationCore(config_path=parsed.config, overrides=_overrides(parsed))
    try:
        app.initialize()
        return COMMANDS[command](parsed, app)
    except LaconaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    finally:
        app.shutdown()


if __name__ == "__main__":
    sys.exit(main())

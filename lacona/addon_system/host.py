"""External processes the addon manager talks to.

The host application, the package manager used to install a linked addon's
dependencies and the operating-system log are all reached through commands
configured in the ``host`` and ``link`` configuration sections.
"""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from lacona.utils.exceptions import ExternalCommandError


def _run(cmd: Sequence[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        list(cmd),
        cwd=str(cwd) if cwd else None,
        text=True,
        capture_output=True,
        check=False,
    )


def _tail(output: str, lines: int = 20) -> str:
    return "\n".join(output.strip().splitlines()[-lines:])


class HostNotifier:
    """Tells the running host application to re-scan its addon directory.

    The notification is fire-and-forget: the command is started and not
    waited on, and a failure to start it is only logged.
    """

    def __init__(
            self,
            command: Sequence[str],
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self.command = list(command)
        self.logger = logger or (lambda msg, level: None)
        self.process: Optional[subprocess.Popen] = None

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def reload_addons(self) -> None:
        self.log("Reloading addons", "info")
        try:
            self.process = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            self.log(f"Could not signal the host application ({shlex.join(self.command)}): {e}", "warning")


class DependencyInstaller:
    """Installs a package's dependencies in its working directory."""

    def __init__(
            self,
            command: Sequence[str],
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self.command = list(command)
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def install(self, directory: Union[str, Path]) -> None:
        """Run the install command in ``directory``.

        Raises:
            ExternalCommandError: If the command cannot be started or exits
                with a non-zero status
        """
        command_line = shlex.join(self.command)
        self.log(f"Installing dependencies with {command_line} in {directory}", "info")
        try:
            cp = _run(self.command, cwd=Path(directory))
        except OSError as e:
            raise ExternalCommandError(
                f"Could not run {command_line}: {e}", command=command_line
            ) from e

        if cp.stdout:
            self.log(cp.stdout.strip(), "debug")
        if cp.returncode != 0:
            raise ExternalCommandError(
                f"{command_line} failed with exit status {cp.returncode}: "
                f"{_tail(cp.stderr or cp.stdout)}",
                command=command_line,
                returncode=cp.returncode,
            )


class SystemLogReader:
    """Reads system log lines that mention the host application."""

    def __init__(
            self,
            command: Sequence[str],
            application: str = "Lacona",
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self.command = list(command)
        self.application = application
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def read(self) -> List[str]:
        """Return matching log lines, oldest first.

        Raises:
            ExternalCommandError: If the log command cannot be run or fails
        """
        command_line = shlex.join(self.command)
        self.log(f"Reading system log with {command_line}", "debug")
        try:
            cp = _run(self.command)
        except OSError as e:
            raise ExternalCommandError(
                f"Could not run {command_line}: {e}", command=command_line
            ) from e
        if cp.returncode != 0:
            raise ExternalCommandError(
                f"{command_line} failed with exit status {cp.returncode}: {_tail(cp.stderr)}",
                command=command_line,
                returncode=cp.returncode,
            )

        needle = self.application.lower()
        return [line for line in cp.stdout.splitlines() if needle in line.lower()]

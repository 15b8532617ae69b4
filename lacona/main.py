"""Entry point for the ``lacona`` command."""

from __future__ import annotations

import sys

from lacona.addon_system import cli


def main() -> None:
    sys.exit(cli.main())


if __name__ == "__main__":
    main()

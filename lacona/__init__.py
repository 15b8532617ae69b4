"""Lacona addon manager.

Installs, uninstalls, links and lists addons for the Lacona host application.
"""

from lacona.__version__ import __version__

__all__ = ["__version__"]

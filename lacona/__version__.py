"""Version information for the Lacona addon manager."""

__version__ = "1.0.0"

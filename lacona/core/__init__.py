"""Core package containing the managers the addon system is assembled from."""

from lacona.core.app import ApplicationCore
from lacona.core.base import LaconaManager
from lacona.core.config_manager import ConfigManager
from lacona.core.logging_manager import LoggingManager

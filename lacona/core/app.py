from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union, cast

from lacona.core.base import LaconaManager
from lacona.core.config_manager import ConfigManager
from lacona.core.logging_manager import LoggingManager
from lacona.utils.exceptions import ApplicationError, LaconaError

T = TypeVar('T', bound=LaconaManager)


class ApplicationCore:
    """The application core.

    Loads configuration, sets up logging and assembles the addon manager
    with its collaborators for a single command-line invocation.
    """

    def __init__(
            self,
            config_path: Optional[Union[str, Path]] = None,
            overrides: Optional[Dict[str, Any]] = None
    ) -> None:
        """Initialize the application core.

        Args:
            config_path: Optional path to configuration file
            overrides: Dot-keyed configuration values that win over file and environment
        """
        self._config_path = config_path
        self._overrides = overrides
        self._managers: Dict[str, LaconaManager] = {}
        self._closeables: List[Any] = []
        self._addon_manager = None
        self._initialized = False
        self._logger: Optional[logging.Logger] = None

    def initialize(self) -> None:
        """Initialize the application core.

        Raises:
            ConfigurationError: If the configuration is invalid
            ApplicationError: If initialization fails for any other reason
        """
        try:
            self._init_config_manager()
            self._init_logging_manager()
            self._init_addon_manager()
            self._initialized = True
            if self._logger:
                self._logger.debug('Lacona initialization complete')
        except LaconaError:
            self._shutdown_managers()
            raise
        except Exception as e:
            self._shutdown_managers()
            raise ApplicationError(f'Failed to initialize application: {str(e)}') from e

    def _init_config_manager(self) -> None:
        config_manager = ConfigManager(config_path=self._config_path, overrides=self._overrides)
        config_manager.initialize()
        self._managers['config_manager'] = config_manager

    def _init_logging_manager(self) -> None:
        config_manager = self.get_manager('config_manager')
        logging_manager = LoggingManager(config_manager)
        logging_manager.initialize()
        self._managers['logging_manager'] = logging_manager
        self._logger = logging_manager.get_logger('app_core')

    def _init_addon_manager(self) -> None:
        # Import here to keep the core importable without the addon system
        from lacona.addon_system.host import DependencyInstaller, HostNotifier, SystemLogReader
        from lacona.addon_system.installer import AddonManager
        from lacona.addon_system.package import ArchiveFetcher
        from lacona.addon_system.repository import RegistryClient
        from lacona.addon_system.store import AddonStore

        config = self.get_manager_typed('config_manager', ConfigManager)
        logging_manager = self.get_manager_typed('logging_manager', LoggingManager)
        timeout = float(config.get('registry.timeout'))

        registry = RegistryClient(
            url=config.get('registry.url'),
            timeout=timeout,
            logger=logging_manager.get_log_function('lacona.registry'),
        )
        self._closeables.append(registry)
        fetcher = ArchiveFetcher(
            timeout=timeout,
            logger=logging_manager.get_log_function('lacona.fetcher'),
        )
        self._closeables.append(fetcher)

        self._addon_manager = AddonManager(
            store=AddonStore(
                config.get_path('addons.directory'),
                logger=logging_manager.get_log_function('lacona.store'),
            ),
            registry=registry,
            fetcher=fetcher,
            notifier=HostNotifier(
                config.get('host.reload'),
                logger=logging_manager.get_log_function('lacona.host'),
            ),
            dependency_installer=DependencyInstaller(
                config.get('link.install'),
                logger=logging_manager.get_log_function('lacona.host'),
            ),
            log_reader=SystemLogReader(
                config.get('host.logs'),
                application=config.get('host.application'),
                logger=logging_manager.get_log_function('lacona.host'),
            ),
            ignore_patterns=config.get('packaging.ignore', []),
            logger=logging_manager.get_log_function('lacona.addons'),
        )

    def get_manager(self, name: str) -> Optional[LaconaManager]:
        """Get a manager by name.

        Args:
            name: Name of the manager

        Returns:
            The manager or None if not found
        """
        return self._managers.get(name)

    def get_manager_typed(self, name: str, manager_type: Type[T]) -> Optional[T]:
        manager = self._managers.get(name)
        if manager and isinstance(manager, manager_type):
            return cast(T, manager)
        return None

    @property
    def addon_manager(self):
        """The assembled :class:`AddonManager`.

        Raises:
            ApplicationError: If the core has not been initialized
        """
        if self._addon_manager is None:
            raise ApplicationError('Application core is not initialized')
        return self._addon_manager

    def is_initialized(self) -> bool:
        return self._initialized

    def shutdown(self) -> None:
        """Shut down the application core in reverse initialization order.

        Raises:
            ApplicationError: If shutdown fails
        """
        if not self._initialized and not self._managers:
            return

        if self._logger:
            self._logger.debug('Shutting down Lacona')
        try:
            self._shutdown_managers()
        except Exception as e:
            raise ApplicationError(f'Failed to shutdown application: {str(e)}') from e

    def _shutdown_managers(self) -> None:
        for closeable in reversed(self._closeables):
            closeable.close()
        self._closeables.clear()
        for manager in reversed(list(self._managers.values())):
            manager.shutdown()
        self._managers.clear()
        self._addon_manager = None
        self._initialized = False

from __future__ import annotations

import abc
from typing import Any, Dict


class LaconaManager(abc.ABC):
    """A component of :class:`~lacona.core.app.ApplicationCore` with an explicit lifecycle.

    Subclasses set ``_initialized`` and ``_healthy`` from
    :meth:`initialize` and clear them in :meth:`shutdown`.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._initialized = False
        self._healthy = False

    @abc.abstractmethod
    def initialize(self) -> None:
        """Bring the manager up.

        Raises:
            ManagerInitializationError: If the manager cannot start
        """

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Release whatever :meth:`initialize` acquired.

        Raises:
            ManagerShutdownError: If resources cannot be released
        """

    def status(self) -> Dict[str, Any]:
        return {
            'name': self._name,
            'initialized': self._initialized,
            'healthy': self._healthy,
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def healthy(self) -> bool:
        return self._healthy

    def __repr__(self) -> str:
        state = 'initialized' if self._initialized else 'stopped'
        return f'<{type(self).__name__} {self._name!r} {state}>'

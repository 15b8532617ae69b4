from __future__ import annotations

import logging
import logging.handlers
import pathlib
import re
import sys
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from lacona.core.base import LaconaManager
from lacona.utils.exceptions import ManagerInitializationError, ManagerShutdownError

LogFunction = Callable[[str, str], None]

DEFAULT_LOG_FILE = "~/.lacona/logs/lacona-cli.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

_SIZE_UNITS = {"": 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}
_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([KMG]?B)?\s*$", re.IGNORECASE)
_DAYS_PATTERN = re.compile(r"^\s*(\d+)\s*(days?)?\s*$", re.IGNORECASE)


def parse_size(value: Any, default: int = DEFAULT_MAX_BYTES) -> int:
    """Convert ``"10 MB"``-style sizes to bytes, falling back to ``default``."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        return default
    return int(match.group(1)) * _SIZE_UNITS[(match.group(2) or "").upper()]


def parse_retention(value: Any, default: int = DEFAULT_BACKUP_COUNT) -> int:
    """Convert ``"5 days"``-style retention to a rotated-file count."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _DAYS_PATTERN.match(str(value))
    return int(match.group(1)) if match else default


class LoggingManager(LaconaManager):
    """Configures logging for a single ``lacona`` invocation.

    Handlers are attached to the root logger from the ``logging``
    configuration section. The console handler writes to stderr because
    stdout carries command output such as the ``ls`` listing. With
    ``format: json`` records are rendered by python-json-logger and
    structlog is configured on top of the standard library.
    """

    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    def __init__(self, config_manager: Any) -> None:
        super().__init__(name="logging_manager")
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._console_handler: Optional[logging.Handler] = None
        self._file_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_structlog = False
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Attach handlers according to the ``logging`` section.

        Raises:
            ManagerInitializationError: If a handler cannot be set up
        """
        try:
            settings = self._config_manager.get("logging", {})
            level = self._level(settings.get("level", "WARNING"))

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(level)
            self._detach_existing_handlers()

            self._enable_structlog = str(settings.get("format", "text")).lower() == "json"
            formatter = self._build_formatter()

            console = settings.get("console", {})
            if console.get("enabled", True):
                self._console_handler = self._attach(
                    logging.StreamHandler(sys.stderr),
                    self._level(console.get("level", "WARNING")),
                    formatter,
                )

            log_file = settings.get("file", {})
            if log_file.get("enabled", False):
                self._file_handler = self._attach(
                    self._create_file_handler(log_file), level, formatter
                )

            if self._enable_structlog:
                self._configure_structlog()

            self._root_logger.debug("Logging configured", extra={"event": "logging_ready"})
            self._initialized = True
            self._healthy = True

        except Exception as e:
            raise ManagerInitializationError(
                f"Failed to initialize LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def _level(self, name: Any) -> int:
        return self.LOG_LEVELS.get(str(name).lower(), logging.WARNING)

    def _detach_existing_handlers(self) -> None:
        for handler in list(self._root_logger.handlers):
            self._root_logger.removeHandler(handler)

    def _attach(self, handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)
        return handler

    def _build_formatter(self) -> logging.Formatter:
        if self._enable_structlog:
            return jsonlogger.JsonFormatter(
                fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
                json_ensure_ascii=False,
            )
        return logging.Formatter(self.TEXT_FORMAT)

    def _create_file_handler(self, settings: Dict[str, Any]) -> logging.Handler:
        path = pathlib.Path(settings.get("path", DEFAULT_LOG_FILE)).expanduser()
        self._log_directory = path.parent
        self._log_directory.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            path,
            maxBytes=parse_size(settings.get("rotation", "10 MB")),
            backupCount=parse_retention(settings.get("retention", "5 days")),
            encoding="utf-8",
        )

    def _configure_structlog(self) -> None:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                structlog.stdlib.render_to_log_kwargs,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Return a logger for ``name``.

        A structlog logger is returned when JSON output is enabled, a plain
        :class:`logging.Logger` otherwise (or before initialization).
        """
        if self._initialized and self._enable_structlog:
            return structlog.get_logger(name)
        return logging.getLogger(name)

    def get_log_function(self, name: str) -> LogFunction:
        """Adapt a logger to the ``log(message, level)`` callback used by addon components."""
        logger = self.get_logger(name)

        def log(message: str, level: str = "info") -> None:
            getattr(logger, level.lower(), logger.info)(message)

        return log

    def shutdown(self) -> None:
        """Detach and close every handler this manager attached.

        Raises:
            ManagerShutdownError: If shutdown fails
        """
        if not self._initialized:
            return

        try:
            for handler in self._handlers:
                if self._root_logger:
                    self._root_logger.removeHandler(handler)
                handler.flush()
                handler.close()
            self._handlers.clear()
            self._console_handler = None
            self._file_handler = None

            if self._enable_structlog:
                structlog.reset_defaults()

            self._initialized = False
            self._healthy = False

        except Exception as e:
            raise ManagerShutdownError(
                f"Failed to shut down LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def status(self) -> Dict[str, Any]:
        status = super().status()
        if self._initialized:
            attached = self._root_logger.handlers if self._root_logger else []
            status.update({
                "log_directory": str(self._log_directory) if self._log_directory else None,
                "handlers": {
                    "console": self._console_handler in attached,
                    "file": self._file_handler in attached,
                },
                "structured_logging": self._enable_structlog,
            })
        return status

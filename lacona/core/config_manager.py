from __future__ import annotations

import json
import os
import pathlib
import shlex
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lacona.core.base import LaconaManager
from lacona.utils.exceptions import ConfigurationError, ManagerInitializationError

DEFAULT_CONFIG_PATH = pathlib.Path('~/.lacona/config.yaml')
CONFIG_SUFFIXES = ('.yaml', '.yml', '.json')


def _command(value: Any) -> Any:
    """Accept a shell-quoted string such as ``"npm install"`` in place of an argument list."""
    if isinstance(value, str):
        try:
            value = shlex.split(value)
        except ValueError as e:
            raise ValueError(f'cannot split command: {e}') from e
    if not isinstance(value, list) or not value:
        raise ValueError('must be a non-empty command list')
    return value


class AddonsSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    directory: str = '~/Library/Application Support/Lacona/Addons'


class RegistrySettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    url: str = 'https://registry.npmjs.com'
    timeout: float = 30.0

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Registry URL must be an http:// or https:// URL.')
        return v

    @field_validator('timeout', mode='before')
    @classmethod
    def validate_timeout(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v <= 0:
            raise ValueError('Registry timeout must be a positive number of seconds.')
        return v


class PackagingSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    ignore: List[str] = Field(default_factory=list)

    @field_validator('ignore', mode='before')
    @classmethod
    def validate_ignore(cls, v: Any) -> Any:
        if not isinstance(v, list):
            raise ValueError('packaging.ignore must be a list of patterns.')
        return v


class LinkSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    install: List[str] = Field(default_factory=lambda: ['npm', 'install'])

    split_install = field_validator('install', mode='before')(_command)


class HostSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    application: str = 'Lacona'
    reload: List[str] = Field(
        default_factory=lambda: ['osascript', '-e', 'tell application "Lacona" to reload addons']
    )
    logs: List[str] = Field(default_factory=lambda: ['syslog'])

    split_commands = field_validator('reload', 'logs', mode='before')(_command)


class FileLogSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    enabled: bool = False
    path: str = '~/.lacona/logs/lacona-cli.log'
    rotation: Union[str, int] = '10 MB'
    retention: Union[str, int] = '5 days'


class ConsoleLogSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    enabled: bool = True
    level: str = 'WARNING'


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    level: str = 'WARNING'
    format: str = 'text'
    file: FileLogSettings = Field(default_factory=FileLogSettings)
    console: ConsoleLogSettings = Field(default_factory=ConsoleLogSettings)

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ('text', 'json'):
            raise ValueError('Log format must be "text" or "json".')
        return v.lower()


class ConfigSchema(BaseModel):
    """Complete ``lacona`` configuration with defaults for every key."""
    model_config = ConfigDict(extra='ignore')

    addons: AddonsSettings = Field(default_factory=AddonsSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    packaging: PackagingSettings = Field(default_factory=PackagingSettings)
    link: LinkSettings = Field(default_factory=LinkSettings)
    host: HostSettings = Field(default_factory=HostSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class ConfigManager(LaconaManager):
    """Loads and serves ``lacona`` settings.

    Values are layered in order: schema defaults, the YAML or JSON config
    file, ``LACONA_*`` environment variables (``LACONA_REGISTRY_URL`` sets
    ``registry.url``), then explicit dot-keyed overrides from the command
    line. The merged result is validated against :class:`ConfigSchema`.
    """

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'LACONA_',
            overrides: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env_prefix = env_prefix
        self._overrides = dict(overrides or {})
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()

    def initialize(self) -> None:
        """Build the configuration from all sources.

        Raises:
            ConfigurationError: If a source cannot be read or the result is invalid
            ManagerInitializationError: If initialization fails for another reason
        """
        try:
            self._config = ConfigSchema().model_dump()
            self._load_from_file()
            self._apply_env_vars()
            self._apply_overrides()
            self._validate_config()

            self._initialized = True
            self._healthy = True
        except ConfigurationError:
            raise
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize ConfigManager: {str(e)}',
                manager_name=self.name
            ) from e

    def _load_from_file(self) -> None:
        if not self._config_path.exists():
            return

        suffix = self._config_path.suffix.lower()
        if suffix not in CONFIG_SUFFIXES:
            raise ConfigurationError(
                f'Unsupported config file format: {self._config_path.suffix}',
                config_key='config_path'
            )

        try:
            with self._config_path.open(encoding='utf-8') as f:
                file_config = json.load(f) if suffix == '.json' else yaml.safe_load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error reading config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if not file_config:
            return
        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f'Config file {self._config_path} must contain a mapping',
                config_key='config_path'
            )
        self._merge_config(file_config, self._config)
        self._loaded_from_file = True

    def _apply_env_vars(self) -> None:
        prefix_length = len(self._env_prefix)
        for env_name in sorted(os.environ):
            if not env_name.startswith(self._env_prefix):
                continue
            keys = env_name[prefix_length:].lower().split('_')
            self._set_nested_value(self._config, keys, self._parse_env_value(os.environ[env_name]))
            self._env_vars_applied.add(env_name)

    def _apply_overrides(self) -> None:
        for key, value in self._overrides.items():
            # Unset command-line options arrive as None
            if value is not None:
                self._set_nested_value(self._config, key.split('.'), value)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Turn an environment string into a bool, int, float or leave it as text."""
        lowered = value.lower()
        if lowered in ('true', 'yes', 'on'):
            return True
        if lowered in ('false', 'no', 'off'):
            return False
        for convert in (int, float):
            try:
                return convert(value)
            except ValueError:
                continue
        return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        *parents, leaf = path
        for key in parents:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]
        config[leaf] = value

    def _merge_config(self, source: Dict[str, Any], target: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge_config(value, target[key])
            elif value is not None:
                target[key] = value

    def _validate_config(self) -> None:
        try:
            self._config = ConfigSchema.model_validate(self._config).model_dump()
        except ValidationError as e:
            errors = e.errors()
            summary = '; '.join(
                f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in errors
            )
            raise ConfigurationError(
                f'Invalid configuration: {summary}',
                details={'validation_errors': errors}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dot-separated key such as ``registry.url``.

        Returns ``default`` when any part of the key is missing.

        Raises:
            ConfigurationError: If called before :meth:`initialize`
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        node: Any = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_path(self, key: str) -> pathlib.Path:
        """Get a configuration value as a user-expanded path."""
        value = self.get(key)
        if not value:
            raise ConfigurationError(f'Missing path setting: {key}', config_key=key)
        return pathlib.Path(str(value)).expanduser()

    def shutdown(self) -> None:
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': len(self._env_vars_applied),
        })
        return status

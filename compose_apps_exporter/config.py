"""
Layered configuration for the exporter.

From lowest to highest priority, values are taken from:
    - Default values
    - User configuration file ($XDG_CONFIG_HOME/compose-apps-exporter/config.yaml)
    - System configuration file (/etc/compose-apps-exporter/config.yaml)
    - Environment variables (prefixed with COMPOSE_APPS_EXPORTER_)
    - Command line arguments

The merged result is an immutable ExporterConfig that is passed explicitly
into the scrape pipeline and the HTTP layer.
"""
import ipaddress
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from compose_apps_exporter.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = 'COMPOSE_APPS_EXPORTER_'
APP_DIR_NAME = 'compose-apps-exporter'
SYSTEM_CONFIG_PATH = Path('/etc') / APP_DIR_NAME / 'config.yaml'

LOG_LEVELS = {'CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'}


class ExporterConfig(BaseModel):
    """Resolved exporter configuration"""

    # Discovery
    compose_configs_glob: List[str] = Field(
        default_factory=lambda: ['/etc/compose-apps/*'],
        description='Glob patterns for docker-compose.yml files or directories containing them'
    )

    # HTTP listener
    port: int = Field(default=9179, ge=1, le=65535)
    address: str = '127.0.0.1'

    # Runtime queries
    runtime_binary: str = 'docker'
    query_timeout: float = Field(default=10.0, gt=0)  # seconds per project
    scrape_timeout: float = Field(default=30.0, gt=0)  # seconds per scrape
    max_workers: int = Field(default=4, ge=1)

    log_level: str = 'INFO'

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('compose_configs_glob', mode='before')
    @classmethod
    def split_single_glob(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator('compose_configs_glob')
    @classmethod
    def require_globs(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError('at least one glob pattern is required')
        return value

    @field_validator('address')
    @classmethod
    def validate_address(cls, value: str) -> str:
        try:
            ipaddress.ip_address(value)
        except ValueError:
            raise ValueError(f'not a valid IP address: {value!r}')
        return value

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f'unknown log level: {value!r}')
        return level


def user_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Per-user config file location under $XDG_CONFIG_HOME (default ~/.config)."""
    environ = os.environ if environ is None else environ
    base = environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return Path(base) / APP_DIR_NAME / 'config.yaml'


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read one YAML config file.

    Args:
        path: File to read

    Returns:
        Mapping of config keys, or an empty dict if the file does not exist

    Raises:
        ConfigError: If the file is unreadable, not YAML, or not a mapping
    """
    if not path.is_file():
        logger.debug(f"Config file {path} not found, skipping")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    logger.debug(f"Loaded config file {path}: {sorted(data)}")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Collect config values from prefixed environment variables.

    COMPOSE_APPS_EXPORTER_COMPOSE_CONFIGS_GLOB is split on commas.
    """
    environ = os.environ if environ is None else environ
    known = set(ExporterConfig.model_fields)
    overrides: Dict[str, Any] = {}

    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key not in known:
            logger.warning(f"Ignoring unknown environment variable {name}")
            continue
        if key == 'compose_configs_glob':
            overrides[key] = [part.strip() for part in value.split(',') if part.strip()]
        else:
            overrides[key] = value

    return overrides


def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    user_path: Optional[Path] = None,
    system_path: Optional[Path] = None,
) -> ExporterConfig:
    """
    Merge all configuration layers into an ExporterConfig.

    Args:
        cli_overrides: Values explicitly given on the command line
        environ: Environment mapping (defaults to os.environ)
        user_path: Override for the user config file location
        system_path: Override for the system config file location

    Returns:
        Validated, immutable configuration

    Raises:
        ConfigError: If any layer is unreadable or the result is invalid
    """
    user_path = user_path or user_config_path(environ)
    system_path = system_path or SYSTEM_CONFIG_PATH

    merged: Dict[str, Any] = {}
    merged.update(load_config_file(user_path))
    merged.update(load_config_file(system_path))
    merged.update(env_overrides(environ))
    merged.update({k: v for k, v in (cli_overrides or {}).items() if v is not None})

    try:
        return ExporterConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

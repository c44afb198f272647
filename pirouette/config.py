"""
Configuration loading and validation.

The configuration file is TOML:

    [source]
    path = "/var/log/app"
    include = ["**/*.log"]
    exclude = ["**/tmp/**"]

    [target]
    path = "/backups/app"

    [retention]
    hours = 24
    days = 7

    [options]
    output_format = "directory"
    log_level = "warn"
    dry_run = false
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pirouette.errors import ConfigError
from pirouette.models import DIRECTORY, OUTPUT_FORMATS, RetentionPolicy


# Level used for `log_level = "off"`, above every standard level
LOG_LEVEL_OFF = logging.CRITICAL + 10

LOG_LEVELS = {
    'off': LOG_LEVEL_OFF,
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
    'trace': logging.DEBUG,
}


class Config:
    """Base configuration"""

    # Config file discovery
    CONFIG_FILE_ENV = 'PIROUETTE_CONFIG_FILE'
    CONFIG_FILE_NAME = 'pirouette.toml'
    CONTAINER_CONFIG_DIR = '/config'

    # Logging
    LOG_DIR_ENV = 'PIROUETTE_LOG_DIR'
    LOG_MAX_BYTES = 10485760  # 10MB
    LOG_BACKUP_COUNT = 10

    # Defaults for the [options] table
    DEFAULT_OUTPUT_FORMAT = DIRECTORY
    DEFAULT_LOG_LEVEL = 'warn'


@dataclass
class PirouetteConfig:
    """Validated configuration for one run."""

    source: Path
    target: Path
    retention: RetentionPolicy
    output_format: str = DIRECTORY
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    dry_run: bool = False
    log_level: str = Config.DEFAULT_LOG_LEVEL

    @property
    def log_level_value(self) -> int:
        return parse_log_level(self.log_level)


def in_container() -> bool:
    """
    Detect whether the process runs inside a container.

    Returns:
        True for Docker, Podman and most OCI runtimes
    """
    if os.path.exists('/.dockerenv') or os.path.exists('/run/.containerenv'):
        return True
    if os.environ.get('container'):
        return True
    try:
        with open('/proc/1/cgroup', 'r') as f:
            cgroup = f.read()
    except OSError:
        return False
    return any(marker in cgroup for marker in ('docker', 'kubepods', 'containerd', 'lxc'))


def default_config_path() -> Path:
    """pirouette.toml in /config inside a container, else in the working directory."""
    directory = Path(Config.CONTAINER_CONFIG_DIR) if in_container() else Path.cwd()
    return directory / Config.CONFIG_FILE_NAME


def find_config_file(explicit: Optional[str] = None) -> Path:
    """
    Resolve the configuration file path.

    Args:
        explicit: Path given on the command line, if any

    Returns:
        Path to the configuration file (not checked for existence)
    """
    if explicit:
        return Path(explicit).expanduser()
    env_path = os.environ.get(Config.CONFIG_FILE_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return default_config_path()


def parse_log_level(value: Any) -> int:
    """Map a log_level option to a logging level. Unknown values fall back to the default."""
    if isinstance(value, str) and value.lower() in LOG_LEVELS:
        return LOG_LEVELS[value.lower()]
    return LOG_LEVELS[Config.DEFAULT_LOG_LEVEL]


def _table(data: Dict[str, Any], name: str, required: bool = True) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        if required:
            raise ConfigError(f"Missing [{name}] table")
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _path(table: Dict[str, Any], name: str) -> Path:
    value = table.get('path')
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{name}.path must be a non-empty string")
    return Path(value).expanduser()


def _patterns(table: Dict[str, Any], key: str) -> List[str]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise ConfigError(f"source.{key} must be a list of strings")
    return value


def parse_config(data: Dict[str, Any]) -> PirouetteConfig:
    """
    Validate parsed TOML data.

    Args:
        data: Parsed configuration document

    Returns:
        PirouetteConfig

    Raises:
        ConfigError: If any field is missing or invalid
    """
    source = _table(data, 'source')
    target = _table(data, 'target')
    retention = _table(data, 'retention')
    options = _table(data, 'options', required=False)

    if not retention:
        raise ConfigError("No retention period was specified")
    try:
        policy = RetentionPolicy.from_mapping(retention)
    except ValueError as e:
        raise ConfigError(f"Invalid retention: {e}") from e

    output_format = options.get('output_format', Config.DEFAULT_OUTPUT_FORMAT)
    if output_format not in OUTPUT_FORMATS:
        raise ConfigError(
            f"Invalid output_format: {output_format}. Valid options: {list(OUTPUT_FORMATS)}"
        )

    dry_run = options.get('dry_run', False)
    if not isinstance(dry_run, bool):
        raise ConfigError("options.dry_run must be a boolean")

    log_level = options.get('log_level', Config.DEFAULT_LOG_LEVEL)
    if not isinstance(log_level, str) or log_level.lower() not in LOG_LEVELS:
        log_level = Config.DEFAULT_LOG_LEVEL

    return PirouetteConfig(
        source=_path(source, 'source'),
        target=_path(target, 'target'),
        retention=policy,
        output_format=output_format,
        include=_patterns(source, 'include'),
        exclude=_patterns(source, 'exclude'),
        dry_run=dry_run,
        log_level=log_level.lower()
    )


def load_config(path: Optional[str] = None) -> PirouetteConfig:
    """
    Read, parse and validate the configuration file.

    Args:
        path: Explicit config file path (default: see find_config_file)

    Returns:
        PirouetteConfig

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    config_path = find_config_file(path)
    try:
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e

    return parse_config(data)

"""
Configuration loader for offline-sync.

This module provides configuration management with:
- Multiple configuration sources (JSON, YAML, TOML files and dicts)
- Environment variable overrides
- Schema validation through pydantic
- Priority-based merging
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, List, Union, Literal
import yaml
import toml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("offline-sync.config")

ENV_PREFIX = "OFFLINE_SYNC_"


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"


class ReconnectConfig(BaseModel):
    """Reconnection policy for the change stream."""
    max_attempts: int = Field(default=5, ge=0)
    base_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=60.0, gt=0)


class ConsumerConfig(BaseModel):
    """Inbound event consumer configuration."""
    record_types: List[str] = Field(default_factory=list)
    channel_size: int = Field(default=100, ge=1)
    retry_failed_operations: bool = True
    max_failed_operations: int = Field(default=500, ge=0)

    @field_validator('record_types', mode='before')
    @classmethod
    def parse_record_types(cls, v):
        """Accept a comma separated string."""
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v


class DrainerConfig(BaseModel):
    """Pending mutation drainer configuration."""
    superseded_policy: Literal["discard", "keep"] = "discard"


class CacheConfig(BaseModel):
    """Local cache configuration."""
    path: Path = Field(default_factory=lambda: Path.home() / ".offline-sync" / "cache.db")
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        """Ensure path is absolute."""
        return Path(v).expanduser().absolute()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    directory: Path = Field(default_factory=lambda: Path.home() / ".offline-sync" / "logs")
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class SyncConfig(BaseModel):
    """Main offline-sync configuration."""
    app_name: str = "offline-sync"

    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    drainer: DrainerConfig = Field(default_factory=DrainerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(validate_assignment=True)


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self._sources: List[ConfigSource] = []
        self._env_prefix = env_prefix
        self._config: Optional[SyncConfig] = None

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> SyncConfig:
        """
        Load configuration from all sources.

        Sources are merged lowest priority first, then environment
        variables are applied on top.

        Returns:
            Merged configuration
        """
        merged_data: Dict[str, Any] = {}

        for source in sorted(self._sources, key=lambda s: s.priority):
            data = self._load_source(source)
            merged_data = self._deep_merge(merged_data, data)

        merged_data = self._deep_merge(merged_data, self._load_env_vars())

        try:
            self._config = SyncConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")

            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.info("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        content = source.path.read_text()

        try:
            if source.source_type == "json":
                return json.loads(content)
            elif source.source_type == "yaml":
                return yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                return toml.loads(content)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to parse {source.path}: {e}", cause=e
            ) from e

        raise ConfigurationError(f"Unknown source type: {source.source_type}")

    def _load_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables.

        OFFLINE_SYNC_RECONNECT__MAX_ATTEMPTS=3 -> {"reconnect": {"max_attempts": 3}}
        """
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self._env_prefix):
                continue

            parts = key[len(self._env_prefix):].lower().split("__")
            current = result
            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        if "," in value:
            return [v.strip() for v in value.split(",")]

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> SyncConfig:
        """Get the last loaded configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def default_config_paths() -> List[Path]:
    """Standard configuration file locations, lowest priority first."""
    home = Path.home() / ".offline-sync"
    return [
        home / "config.toml",
        home / "config.json",
        home / "config.yaml",
        Path("./offline-sync.toml"),
        Path("./offline-sync.json"),
        Path("./offline-sync.yaml"),
    ]


def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None,
    use_default_paths: bool = True,
) -> SyncConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths
        extra_config: Extra configuration to merge with highest priority
        use_default_paths: Also read the standard locations

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader()

    if use_default_paths:
        for i, path in enumerate(default_config_paths()):
            if path.exists():
                loader.add_source(path, priority=10 + i)

    if config_paths:
        for i, path in enumerate(config_paths):
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


__all__ = [
    'SyncConfig',
    'ReconnectConfig',
    'ConsumerConfig',
    'DrainerConfig',
    'CacheConfig',
    'LoggingConfig',
    'ConfigLoader',
    'default_config_paths',
    'load_config',
]

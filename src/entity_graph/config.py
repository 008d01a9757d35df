"""Configuration management for entity-graph using YAML files."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

CONFIG_DIRNAME = ".entity-graph"

DEFAULTS: dict[str, Any] = {
    "database.path": str(Path.home() / CONFIG_DIRNAME / "graph.db"),
    "database.pool_size": 5,
    "database.timeout": 30.0,
    "keepalive.interval": 600.0,
    "owner": None,
}


class Config:
    """Configuration manager using YAML file storage.

    Local config lives in .entity-graph/config.yaml under the current directory,
    global config in ~/.entity-graph/config.yaml. Reads look in local config
    first, then global config.
    """

    def __init__(
        self,
        use_global: bool = False,
        config_dir: Path | None = None,
        global_dir: Path | None = None,
    ) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
            global_dir: Directory holding the global fallback config (defaults to the home directory)
        """
        self.global_dir = Path(global_dir) if global_dir is not None else Path.home() / CONFIG_DIRNAME
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif use_global:
            self.config_dir = self.global_dir
        else:
            self.config_dir = Path.cwd() / CONFIG_DIRNAME
        self.is_global = use_global
        self.config_file = self.config_dir / "config.yaml"

        self._config: dict[str, Any] = self._read(self.config_file)

        self._global_config: dict[str, Any] = {}
        global_file = self.global_dir / "config.yaml"
        if not self.is_global and global_file != self.config_file and global_file.exists():
            try:
                self._global_config = self._read(global_file)
            except ValueError as e:
                logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _read(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            logger.debug("Config file does not exist, initializing empty config", path=str(path))
            return {}

        try:
            with open(path, "r") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", path=str(path), error=str(e))
            raise ValueError(f"Failed to load config from {path}: {e}") from e

        if not isinstance(config, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        logger.debug("Config loaded successfully", keys=list(config.keys()))
        return config

    def _save(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e
        logger.debug("Config saved successfully")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value, falling back to global config for local reads."""
        if key in self._config:
            return self._config[key]
        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]
        return default

    def set(self, key: str, value: str) -> None:
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """List all settings; local config overrides global config."""
        if self.is_global:
            return self._config.copy()
        merged = self._global_config.copy()
        merged.update(self._config)
        return merged


@dataclass
class Settings:
    """Typed view of the configuration used to open the graph."""

    database_path: Path
    pool_size: int = 5
    timeout: float = 30.0
    keepalive_interval: float = 600.0
    owner: str | None = None


NUMERIC_KEYS: dict[str, type] = {
    "database.pool_size": int,
    "database.timeout": float,
    "keepalive.interval": float,
}


def check_value(key: str, raw: Any) -> Any:
    """Convert a raw config value for ``key``; numeric settings must be positive."""
    cast = NUMERIC_KEYS.get(key)
    if cast is None:
        return raw
    try:
        value = cast(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(config: Config) -> Settings:
    """Build Settings from a Config, applying defaults and validating numbers."""

    def value(key: str) -> Any:
        return check_value(key, config.get(key, DEFAULTS[key]))

    owner = value("owner")
    settings = Settings(
        database_path=Path(str(value("database.path"))).expanduser(),
        pool_size=value("database.pool_size"),
        timeout=value("database.timeout"),
        keepalive_interval=value("keepalive.interval"),
        owner=str(owner) if owner else None,
    )
    logger.debug("Settings loaded", database_path=str(settings.database_path), pool_size=settings.pool_size)
    return settings


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.
    """
    return Config(use_global=use_global)

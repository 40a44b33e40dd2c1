"""Configuration management for devvy."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from devvy.core.errors import ConfigValidationError
from devvy.core.paths import ProjectPaths
from devvy.core.types import AppConfig

logger = logging.getLogger(__name__)

_LOG_LEVEL_ALIASES = {"warning": "warn"}


class Config:
    """Raw JSON configuration with dot-notation access."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, nothing is loaded.
        """
        self._config_path = config_path
        self._config_data: dict[str, Any] = {}

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Load configuration from file.

        Args:
            config_path: Path to configuration file.

        Returns:
            Config instance with loaded configuration.
        """
        instance = cls(config_path)
        instance.load()
        return instance

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            Config instance.
        """
        instance = cls()
        instance._config_data = data
        return instance

    @classmethod
    def from_app_config(cls, app_config: AppConfig, config_path: Path | None = None) -> "Config":
        """Create raw configuration from a validated snapshot.

        Args:
            app_config: Validated configuration.
            config_path: Where the configuration will be saved.

        Returns:
            Config instance.
        """
        instance = cls(config_path)
        instance._config_data = app_config.model_dump(mode="json")
        return instance

    def load(self) -> None:
        """Load configuration from file.

        Raises:
            ConfigValidationError: If the file is not valid JSON.
        """
        if self._config_path is None or not self._config_path.exists():
            return

        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(
                str(self._config_path), [f"line {e.lineno}: {e.msg}"]
            ) from e

        if not isinstance(data, dict):
            raise ConfigValidationError(
                str(self._config_path), ["<root>: expected a JSON object"]
            )
        self._config_data = data

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            path: Path to save configuration. Uses config_path if None.
        """
        save_path = path or self._config_path
        if save_path is None:
            raise ValueError("No path specified for saving configuration")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w", encoding="utf-8") as f:
            json.dump(self._config_data, f, indent=2, default=str)
            f.write("\n")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key (supports dot notation).
            default: Default value if key not found.

        Returns:
            Configuration value.
        """
        keys = key.split(".")
        value = self._config_data
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value.

        Args:
            key: Configuration key (supports dot notation).
            value: Value to set.
        """
        keys = key.split(".")
        data = self._config_data
        for k in keys[:-1]:
            if k not in data:
                data[k] = {}
            data = data[k]
        data[keys[-1]] = value

    def to_app_config(self) -> AppConfig:
        """Validate the raw data into an AppConfig.

        Returns:
            Validated configuration snapshot.

        Raises:
            ConfigValidationError: Listing every offending field.
        """
        source = str(self._config_path) if self._config_path else "<config>"
        try:
            return AppConfig.model_validate(self._config_data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigValidationError(source, errors) from e

    @property
    def data(self) -> dict[str, Any]:
        """Get raw configuration data."""
        return self._config_data


def load_app_config(paths: ProjectPaths) -> AppConfig:
    """Load and validate the project's configuration.

    A missing file yields defaults. ``DEVVY_LOG_LEVEL`` overrides the
    configured log level.

    Args:
        paths: Project path layout.

    Returns:
        Validated configuration snapshot.
    """
    config = Config.from_file(paths.config_file)

    env_level = os.environ.get("DEVVY_LOG_LEVEL")
    if env_level:
        level = env_level.lower()
        config.set("logging.level", _LOG_LEVEL_ALIASES.get(level, level))

    app_config = config.to_app_config()
    logger.debug("Loaded configuration from %s", paths.config_file)
    return app_config


def save_app_config(app_config: AppConfig, paths: ProjectPaths) -> None:
    """Persist a configuration snapshot to the project's config file."""
    Config.from_app_config(app_config, paths.config_file).save()

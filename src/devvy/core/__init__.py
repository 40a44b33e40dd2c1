"""Core layer for devvy."""

from devvy.core.config import Config, load_app_config, save_app_config
from devvy.core.errors import (
    CommandLaunchError,
    ConfigValidationError,
    ContainerNotFoundError,
    DevvyError,
    EngineUnreachableError,
    LifecycleError,
    PreconditionError,
)
from devvy.core.types import AppConfig, ContainerInfo, ContainerState

__all__ = [
    "AppConfig",
    "CommandLaunchError",
    "Config",
    "ConfigValidationError",
    "ContainerInfo",
    "ContainerNotFoundError",
    "ContainerState",
    "DevvyError",
    "EngineUnreachableError",
    "LifecycleError",
    "PreconditionError",
    "load_app_config",
    "save_app_config",
]

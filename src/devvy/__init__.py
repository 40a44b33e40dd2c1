"""devvy - Docker development container orchestration tool.

This package starts, stops and rebuilds a local development container,
keeps the SSH trust for it current, and syncs editor settings into it.
"""

__version__ = "0.1.0"

from devvy.core.config import Config, load_app_config
from devvy.core.errors import DevvyError, LifecycleError
from devvy.core.lifecycle import LifecycleOrchestrator, LifecycleOutcome, LifecycleStep
from devvy.core.paths import ProjectPaths
from devvy.core.types import AppConfig, ContainerInfo, ContainerState
from devvy.virtualization.docker import DockerEngine

__all__ = [
    # Configuration
    "AppConfig",
    "Config",
    "ProjectPaths",
    "load_app_config",
    # Container
    "ContainerInfo",
    "ContainerState",
    "DockerEngine",
    # Lifecycle
    "LifecycleOrchestrator",
    "LifecycleOutcome",
    "LifecycleStep",
    # Errors
    "DevvyError",
    "LifecycleError",
]


def main() -> None:
    """CLI entry point."""
    import sys

    from devvy.cli import main as cli_main

    sys.exit(cli_main())

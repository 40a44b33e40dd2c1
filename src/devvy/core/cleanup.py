"""Removal of everything devvy created for a project."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from devvy.core.paths import ProjectPaths
from devvy.core.types import AppConfig
from devvy.editor.sync import EditorSync
from devvy.ssh.keys import SSHKeyManager
from devvy.virtualization.base import ContainerEngine
from devvy.virtualization.compose import ComposeDriver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupAction:
    """One independently confirmable cleanup step.

    Attributes:
        name: Short title.
        description: What the action removes, phrased for a confirmation.
        run: Performs the action.
    """

    name: str
    description: str
    run: Callable[[], None]


class CleanupPlan:
    """The ordered cleanup actions of one project."""

    def __init__(
        self,
        config: AppConfig,
        paths: ProjectPaths,
        engine: ContainerEngine,
        compose: ComposeDriver,
        editor_sync: EditorSync | None = None,
    ) -> None:
        """Initialize cleanup plan.

        Args:
            config: Configuration snapshot.
            paths: Project path layout.
            engine: Container engine.
            compose: Compose driver for the project.
            editor_sync: Project editor config, reset by its action.
        """
        self._config = config
        self._paths = paths
        self._engine = engine
        self._compose = compose
        self._editor_sync = editor_sync or EditorSync(paths.editor_config_dir)

    @property
    def actions(self) -> list[CleanupAction]:
        """Get the actions in the order they run."""
        return [
            CleanupAction(
                "Container and Image",
                "Remove development container and Docker image",
                self.remove_container_and_image,
            ),
            CleanupAction(
                "Docker Volumes",
                "Remove Docker volumes (nvim, npm cache, etc)",
                self.remove_volumes,
            ),
            CleanupAction(
                "Editor Settings",
                "Reset VS Code/Cursor settings to defaults",
                self.reset_editor_settings,
            ),
            CleanupAction(
                "SSH Keys and Secrets",
                "Remove SSH keys and secrets directory",
                self.remove_secrets,
            ),
            CleanupAction(
                "Environment and Config Files",
                "Remove .env and devvy.config.json files",
                self.remove_config_files,
            ),
        ]

    def remove_container_and_image(self) -> None:
        """Remove the container and its image; both may already be gone."""
        docker = self._config.docker
        result = self._compose.down()
        if not result.success:
            logger.debug("docker compose down failed: %s", result.stderr.strip())
        self._engine.remove(docker.container_name, force=True)
        if self._engine.remove_image(docker.image_name, force=True):
            logger.info("Removed image %s", docker.image_name)

    def remove_volumes(self) -> None:
        """Remove the project's named volumes."""
        docker = self._config.docker
        for volume in docker.volumes:
            name = f"{docker.project_name}_{volume}"
            if self._engine.remove_volume(name, force=True):
                logger.info("Removed volume %s", name)

    def reset_editor_settings(self) -> None:
        """Reset the project editor configuration to empty defaults."""
        if not self._editor_sync.project_config_dir.exists():
            logger.info("No editor config directory found")
            return
        self._editor_sync.reset_project_config()

    def remove_secrets(self) -> None:
        """Delete every key and the secrets directory."""
        secrets_dir = self._paths.secrets_dir
        if not secrets_dir.exists():
            return
        count = SSHKeyManager(secrets_dir).cleanup_all()
        secrets_dir.rmdir()
        logger.info("Removed %d files from %s", count, secrets_dir)

    def remove_config_files(self) -> None:
        """Delete the generated environment file and the configuration file."""
        for path in (self._paths.env_file, self._paths.config_file):
            path.unlink(missing_ok=True)

    def run_all(self) -> None:
        """Remove everything, volumes included."""
        result = self._compose.down(remove_volumes=True)
        if not result.success:
            logger.debug("docker compose down -v failed: %s", result.stderr.strip())
        for action in self.actions:
            logger.debug("Cleanup: %s", action.name)
            action.run()

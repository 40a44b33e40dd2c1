"""Host-side path layout and path utilities."""

import os
from pathlib import Path

CONFIG_FILENAME = "devvy.config.json"
ENV_FILENAME = ".env"
SECRETS_DIRNAME = "secrets"
EDITOR_CONFIG_DIRNAME = "vscode-config"
AUTHORIZED_KEYS_FILENAME = "authorized_keys"


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and environment variables in a path.

    Args:
        value: Path string, possibly containing ``~`` or ``$VAR``.

    Returns:
        Expanded path (not resolved).
    """
    return Path(os.path.expandvars(os.path.expanduser(str(value))))


def get_project_root(explicit: Path | None = None) -> Path:
    """Get the project root directory.

    Order: explicit argument, ``DEVVY_PROJECT_ROOT``, current directory.

    Args:
        explicit: Root given on the command line.

    Returns:
        Absolute project root.
    """
    if explicit is not None:
        return explicit.resolve()
    env_root = os.environ.get("DEVVY_PROJECT_ROOT")
    if env_root:
        return expand_path(env_root).resolve()
    return Path.cwd().resolve()


def get_known_hosts_path() -> Path:
    """Get the user's SSH known_hosts file."""
    return Path.home() / ".ssh" / "known_hosts"


class ProjectPaths:
    """Paths of the persisted state inside a project root."""

    def __init__(self, root: Path, compose_file: str = "docker-compose.yml") -> None:
        """Initialize project paths.

        Args:
            root: Project root directory.
            compose_file: Compose file name, relative to the root.
        """
        self._root = root
        self._compose_file = compose_file

    @property
    def root(self) -> Path:
        """Get project root."""
        return self._root

    @property
    def config_file(self) -> Path:
        """Get configuration file path."""
        return self._root / CONFIG_FILENAME

    @property
    def env_file(self) -> Path:
        """Get generated environment file path."""
        return self._root / ENV_FILENAME

    @property
    def compose_file(self) -> Path:
        """Get compose file path."""
        return self._root / self._compose_file

    @property
    def secrets_dir(self) -> Path:
        """Get directory holding SSH key material."""
        return self._root / SECRETS_DIRNAME

    @property
    def editor_config_dir(self) -> Path:
        """Get project-local editor configuration directory."""
        return self._root / EDITOR_CONFIG_DIRNAME

    @property
    def authorized_keys_file(self) -> Path:
        """Get the authorized_keys file mounted into the container."""
        return self.secrets_dir / AUTHORIZED_KEYS_FILENAME

    def github_keys_dir(self, dirname: str = "github") -> Path:
        """Get directory holding the GitHub key pair."""
        return self.secrets_dir / dirname

    def with_compose_file(self, compose_file: str) -> "ProjectPaths":
        """Return a copy using a different compose file name."""
        return ProjectPaths(self._root, compose_file)

"""First-run setup wizard.

Checks the host toolchain, creates the project directories and SSH keys,
collects user settings, and writes ``devvy.config.json`` and ``.env``.
Every step is safe to re-run: existing keys are reused and existing
settings are only replaced after confirmation.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from devvy.core import shell
from devvy.core.config import load_app_config, save_app_config
from devvy.core.env import generate_env_file, has_docker_daemon
from devvy.core.errors import ConfigValidationError, DevvyError, EngineUnreachableError, PreconditionError
from devvy.core.paths import CONFIG_FILENAME, ENV_FILENAME, ProjectPaths, expand_path
from devvy.core.prompt import Prompter
from devvy.core.shell import ShellResult
from devvy.core.types import AppConfig, LazyVimConfig
from devvy.editor.profiles import get_profile
from devvy.editor.sync import EditorSync, SyncReport
from devvy.ssh.keys import SSHKeyManager, SSHKeyPair
from devvy.virtualization.compose import ComposeDriver

logger = logging.getLogger(__name__)

DOCKER_INSTALL_URL = "https://www.docker.com/products/docker-desktop"
GITHUB_NEW_KEY_URL = "https://github.com/settings/ssh/new"
DEFAULT_NVIM_CONFIG = "~/.config/nvim"
DEFAULT_TMUX_CONFIG = "~/.config/tmux"
SECRETS_GITIGNORE = "*\n!.gitignore\n"


@dataclass
class SetupResult:
    """What a setup run produced."""

    config: AppConfig
    host_key: SSHKeyPair | None = None
    github_key: SSHKeyPair | None = None
    env_file: Path | None = None
    editor_report: SyncReport | None = None


class SetupWizard:
    """Walks the user through preparing a project for devvy."""

    def __init__(
        self,
        paths: ProjectPaths,
        prompter: Prompter,
        compose: ComposeDriver,
        runner: Callable[..., ShellResult] = shell.run,
        editor_sync: EditorSync | None = None,
        daemon_check: Callable[[], bool] = has_docker_daemon,
        command_check: Callable[[str], bool] = shell.command_exists,
        echo: Callable[[str], None] = print,
    ) -> None:
        """Initialize setup wizard.

        Args:
            paths: Project path layout.
            prompter: Answers the wizard's questions.
            compose: Compose driver, used to check the compose plugin.
            runner: Captured-mode process runner.
            editor_sync: Editor settings sync. Without one the editor
                import step is skipped.
            daemon_check: Returns True if the Docker daemon answers.
            command_check: Returns True if an executable is on PATH.
            echo: Writes a progress line for the user.
        """
        self._paths = paths
        self._prompter = prompter
        self._compose = compose
        self._runner = runner
        self._editor_sync = editor_sync
        self._daemon_check = daemon_check
        self._command_check = command_check
        self._echo = echo
        self._config_invalid = False

    def run(self) -> SetupResult:
        """Run every setup step in order.

        Returns:
            SetupResult.

        Raises:
            PreconditionError: If Docker or Docker Compose is missing.
            EngineUnreachableError: If the Docker daemon is not running.
        """
        self.check_docker()
        self.check_compose()
        self.create_directories()

        config = self._load_config()
        result = SetupResult(config=config)
        result.host_key = self.setup_host_key(config)
        result.github_key = self.setup_github_key(config)

        config = self.setup_user_config(config)
        save_app_config(config, self._paths)
        result.env_file = generate_env_file(config, self._paths, self._runner)
        self._update_gitignore()
        self._echo("Configuration saved")
        result.config = config

        result.editor_report = self.setup_editor_sync()
        return result

    def check_docker(self) -> None:
        """Verify that Docker is installed and its daemon is running."""
        if not self._command_check("docker"):
            raise PreconditionError(
                "Docker is not installed",
                remediation=[f"Install Docker Desktop from {DOCKER_INSTALL_URL}"],
            )
        if not self._daemon_check():
            raise EngineUnreachableError()
        self._echo("Docker is installed and running")

    def check_compose(self) -> None:
        """Verify that the Docker Compose v2 plugin is available."""
        result = self._compose.version()
        if not result.success:
            raise PreconditionError(
                "Docker Compose is not available",
                remediation=["Update Docker Desktop to get Docker Compose v2"],
            )
        self._echo(f"{result.stdout.strip() or 'Docker Compose'} is available")

    def create_directories(self) -> None:
        """Create the secrets and editor configuration directories."""
        self._paths.secrets_dir.mkdir(parents=True, exist_ok=True)
        gitignore = self._paths.secrets_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(SECRETS_GITIGNORE, encoding="utf-8")

        self._paths.editor_config_dir.mkdir(parents=True, exist_ok=True)
        if self._editor_sync is not None:
            self._editor_sync.ensure_project_config()
        self._echo("Project directories created")

    def setup_host_key(self, config: AppConfig) -> SSHKeyPair:
        """Create the host SSH key if missing and authorize it for the container.

        Returns:
            The host key pair.
        """
        manager = SSHKeyManager(self._paths.secrets_dir)
        pair = manager.get_or_create_key_pair(config.ssh.key_name, config.ssh.key_policy)
        manager.write_authorized_keys(pair)
        self._echo("Host SSH key configured")
        return pair

    def setup_github_key(self, config: AppConfig) -> SSHKeyPair | None:
        """Offer to create, or regenerate, the key used for GitHub.

        Returns:
            The new key pair, or None if nothing was generated.
        """
        manager = self._github_key_manager(config)
        name = config.ssh.github_key_name
        policy = config.ssh.github_key_policy

        if manager.get_key_pair(name) is not None:
            self._echo("GitHub SSH key already exists")
            self._echo("Regenerating it means removing the old key from GitHub and adding the new one")
            if not self._prompter.confirm("Do you want to regenerate the GitHub SSH key?", default=False):
                return None
            pair = manager.rotate_key_pair(name, policy)
        else:
            if not self._prompter.confirm(
                "Would you like to configure GitHub SSH authentication?", default=True
            ):
                return None
            pair = manager.get_or_create_key_pair(name, policy)

        self._show_github_instructions(pair)
        return pair

    def _show_github_instructions(self, pair: SSHKeyPair) -> None:
        self._echo("")
        self._echo("Add this public key to your GitHub account:")
        self._echo("")
        self._echo(pair.public_key_content)
        self._echo("")
        self._echo(f"1. Open {GITHUB_NEW_KEY_URL}")
        self._echo(f"2. Title: devvy ({pair.comment or pair.private_key_path.name})")
        self._echo("3. Paste the key above and click 'Add SSH key'")
        self._prompter.input("Press Enter when you have added the key to GitHub")

    def setup_user_config(self, config: AppConfig) -> AppConfig:
        """Collect the projects path, LazyVim and tmux settings.

        Returns:
            Updated configuration.
        """
        github_configured = (
            self._github_key_manager(config).get_key_pair(config.ssh.github_key_name) is not None
        )
        user = config.user.model_copy(update={"github_ssh_configured": github_configured})

        if (
            self._paths.config_file.exists()
            and not self._config_invalid
            and not self._prompter.confirm(
                "Update devvy configuration (projects path, editor, terminal)?", default=False
            )
        ):
            return config.model_copy(update={"user": user})

        projects_path = self._prompter.input(
            f"Path to your projects folder (mounted to {user.container_projects_path})",
            default=user.projects_path,
        )
        expanded = expand_path(projects_path)
        if not expanded.exists() and self._prompter.confirm(
            f"Directory {projects_path} doesn't exist. Create it?", default=True
        ):
            expanded.mkdir(parents=True, exist_ok=True)
            self._echo(f"Created directory: {projects_path}")

        user = user.model_copy(
            update={
                "projects_path": projects_path,
                "lazyvim": self._ask_lazyvim(user.lazyvim),
                "tmux_config_path": self._ask_tmux(user.tmux_config_path),
            }
        )
        return config.model_copy(update={"user": user})

    def _ask_lazyvim(self, current: LazyVimConfig) -> LazyVimConfig:
        if not self._prompter.confirm(
            "Would you like to install LazyVim in the container?", default=current.enabled
        ):
            return LazyVimConfig(enabled=False)
        if not self._prompter.confirm("Use your existing Neovim configuration?", default=True):
            return LazyVimConfig(enabled=True)

        path = self._prompter.input(
            "Path to your Neovim config directory",
            default=current.read_only_config_path or DEFAULT_NVIM_CONFIG,
        )
        if not expand_path(path).exists():
            self._echo(f"Path {path} doesn't exist. LazyVim will be installed with defaults.")
            return LazyVimConfig(enabled=True)
        return LazyVimConfig(enabled=True, read_only_config_path=path)

    def _ask_tmux(self, current: str | None) -> str | None:
        if not self._prompter.confirm(
            "Would you like to use your existing tmux configuration?", default=bool(current)
        ):
            return None

        path = self._prompter.input(
            "Path to your tmux config directory", default=current or DEFAULT_TMUX_CONFIG
        )
        if not expand_path(path).exists():
            self._echo(f"Path {path} doesn't exist. Tmux will use defaults.")
            return None
        return path

    def setup_editor_sync(self) -> SyncReport | None:
        """Offer to import the host editor's settings into the project.

        Returns:
            SyncReport, or None if nothing was imported.
        """
        sync = self._editor_sync
        if sync is None:
            return None

        if sync.has_project_settings():
            if not self._prompter.confirm(
                "Overwrite existing editor settings with your current configuration?", default=False
            ):
                return None
        elif not self._prompter.confirm(
            "Import editor settings to the project for container use?", default=True
        ):
            return None

        installed = sync.installed()
        if not installed:
            self._echo("No VS Code or Cursor installation detected, skipping editor sync")
            return None

        kind = installed[0]
        if len(installed) > 1:
            names = [get_profile(k).display_name for k in installed]
            choice = self._prompter.select("Which editor settings would you like to import?", names)
            kind = installed[names.index(choice)]

        display_name = get_profile(kind).display_name
        try:
            report = sync.import_settings(kind)
        except (DevvyError, OSError) as e:
            logger.error("Failed to import %s settings: %s", display_name, e)
            return None
        self._echo(f"Imported {display_name} settings")
        return report

    def _load_config(self) -> AppConfig:
        try:
            return load_app_config(self._paths)
        except ConfigValidationError as e:
            logger.warning("Ignoring invalid configuration: %s", e.message)
            self._echo("Existing configuration is invalid, starting from defaults")
            self._config_invalid = True
            return AppConfig()

    def _github_key_manager(self, config: AppConfig) -> SSHKeyManager:
        return SSHKeyManager(self._paths.github_keys_dir(config.ssh.github_key_dir))

    def _update_gitignore(self) -> None:
        gitignore = self._paths.root / ".gitignore"
        existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
        present = {line.strip() for line in existing.splitlines()}
        missing = [name for name in (CONFIG_FILENAME, ENV_FILENAME) if name not in present]
        if not missing:
            return

        prefix = "\n" if existing and not existing.endswith("\n") else ""
        with open(gitignore, "a", encoding="utf-8") as f:
            f.write(prefix + "\n# devvy configuration\n" + "\n".join(missing) + "\n")
        logger.info("Added %s to %s", ", ".join(missing), gitignore)

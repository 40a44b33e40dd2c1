"""Tests for devvy.core.env module."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import requests
from docker.errors import DockerException

from conftest import FakeRunner, failed, ok
from devvy.core.env import (
    generate_env_file,
    git_identity,
    has_docker_daemon,
    render_env_file,
    validate_environment,
)
from devvy.core.errors import CommandLaunchError
from devvy.core.paths import ProjectPaths
from devvy.core.types import AppConfig


class TestHasDockerDaemon:
    """Tests for has_docker_daemon function."""

    @patch("docker.from_env")
    def test_running(self, mock_from_env: MagicMock) -> None:
        """Test a responding daemon."""
        assert has_docker_daemon()
        mock_from_env.return_value.ping.assert_called_once()

    @patch("docker.from_env", side_effect=DockerException("no socket"))
    def test_not_running(self, mock_from_env: MagicMock) -> None:
        """Test an unavailable daemon."""
        assert not has_docker_daemon()

    @patch("docker.from_env")
    def test_connection_refused(self, mock_from_env: MagicMock) -> None:
        """Test a daemon that refuses the ping."""
        mock_from_env.return_value.ping.side_effect = requests.exceptions.ConnectionError()
        assert not has_docker_daemon()
        mock_from_env.return_value.close.assert_called_once()

    @patch("docker.from_env")
    def test_client_closed(self, mock_from_env: MagicMock) -> None:
        """Test that the client is closed after a successful ping."""
        assert has_docker_daemon()
        mock_from_env.return_value.close.assert_called_once()


class TestGitIdentity:
    """Tests for git_identity function."""

    def test_configured(self) -> None:
        """Test reading the global identity."""
        runner = FakeRunner({"git": [ok("Ada Lovelace\n"), ok("ada@example.com\n")]})
        assert git_identity(runner) == ("Ada Lovelace", "ada@example.com")

    def test_unset_uses_placeholders(self) -> None:
        """Test placeholders when git has no identity."""
        runner = FakeRunner({"git": failed()})
        assert git_identity(runner) == ("Your Name", "your.email@example.com")

    def test_git_missing(self) -> None:
        """Test placeholders when git is not installed."""

        def runner(command: str, args: list[str], **kwargs: object) -> None:
            raise CommandLaunchError(command, "command not found")

        assert git_identity(runner) == ("Your Name", "your.email@example.com")


class TestRenderEnvFile:
    """Tests for render_env_file function."""

    def test_required_variables(self) -> None:
        """Test that every required variable is present."""
        content = render_env_file(AppConfig(), 501, 20, "Ada", "ada@example.com")

        assert content.startswith("# Generated from devvy.config.json")
        assert "HOST_UID=501" in content
        assert "HOST_GID=20" in content
        assert 'GIT_USER_NAME="Ada"' in content
        assert 'GIT_USER_EMAIL="ada@example.com"' in content
        assert f"PROJECTS_PATH={Path.home() / 'projects'}" in content
        assert "SSH_PORT=2222" in content
        assert "LOG_LEVEL=warn" in content
        assert "INSTALL_LAZYVIM=true" in content
        assert "LAZYVIM_CONFIG_PATH" not in content
        assert "TMUX_CONFIG_PATH" not in content

    def test_optional_variables(self) -> None:
        """Test optional editor, terminal and firewall settings."""
        config = AppConfig.model_validate(
            {
                "user": {
                    "lazyvim": {"enabled": True, "read_only_config_path": "/cfg/nvim"},
                    "tmux_config_path": "/cfg/tmux",
                    "allowed_domains": ["github.com", "pypi.org"],
                }
            }
        )
        content = render_env_file(config, 1000, 1000, "A", "a@b.c")

        assert "LAZYVIM_CONFIG_PATH=/cfg/nvim" in content
        assert "TMUX_CONFIG_PATH=/cfg/tmux" in content
        assert 'FIREWALL_ALLOWED_DOMAINS="github.com,pypi.org"' in content

    def test_quotes_are_escaped(self) -> None:
        """Test that quotes in the git name cannot break the file."""
        content = render_env_file(AppConfig(), 1, 1, 'Ada "The Countess"', "a@b.c")
        assert 'GIT_USER_NAME="Ada \\"The Countess\\""' in content


class TestGenerateEnvFile:
    """Tests for generate_env_file function."""

    def test_writes_file(self, temp_dir: Path) -> None:
        """Test writing the environment file into the project root."""
        paths = ProjectPaths(temp_dir)
        runner = FakeRunner({"git": [ok("Ada\n"), ok("ada@example.com\n")]})

        path = generate_env_file(AppConfig(), paths, runner)

        assert path == temp_dir / ".env"
        assert 'GIT_USER_NAME="Ada"' in path.read_text(encoding="utf-8")


class TestValidateEnvironment:
    """Tests for validate_environment function."""

    def test_reports_missing_files(self, temp_dir: Path) -> None:
        """Test that every missing prerequisite is listed."""
        config = AppConfig.model_validate({"user": {"projects_path": str(temp_dir / "missing")}})
        problems = validate_environment(config, ProjectPaths(temp_dir))

        assert any("Compose file not found" in p for p in problems)
        assert any("Environment file not found" in p for p in problems)
        assert any("SSH key not found" in p for p in problems)
        assert any("Projects directory does not exist" in p for p in problems)

    def test_ready_project(self, temp_dir: Path) -> None:
        """Test a project with everything in place."""
        paths = ProjectPaths(temp_dir)
        paths.compose_file.write_text("services: {}\n", encoding="utf-8")
        paths.env_file.write_text("", encoding="utf-8")
        paths.secrets_dir.mkdir()
        (paths.secrets_dir / "devvy_ed25519").write_text("key", encoding="utf-8")
        (temp_dir / "projects").mkdir()
        config = AppConfig.model_validate({"user": {"projects_path": str(temp_dir / "projects")}})

        assert validate_environment(config, paths) == []

    def test_missing_optional_path(self, temp_dir: Path) -> None:
        """Test that a configured but missing tmux path is reported."""
        config = AppConfig.model_validate(
            {"user": {"projects_path": str(temp_dir), "tmux_config_path": str(temp_dir / "tmux")}}
        )
        problems = validate_environment(config, ProjectPaths(temp_dir))
        assert any("tmux config path does not exist" in p for p in problems)

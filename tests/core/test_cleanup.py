"""Tests for devvy.core.cleanup module."""

import json
from pathlib import Path

import pytest

from conftest import FakeCompose, FakeEngine, failed
from devvy.core.cleanup import CleanupPlan
from devvy.core.paths import ProjectPaths
from devvy.core.types import AppConfig, ContainerState
from devvy.ssh.keys import SSHKeyManager


class TestCleanupPlan:
    """Tests for CleanupPlan class."""

    @pytest.fixture
    def paths(self, temp_dir: Path) -> ProjectPaths:
        """Create a project with keys, config files and editor settings."""
        paths = ProjectPaths(temp_dir)
        SSHKeyManager(paths.secrets_dir).generate_key_pair("devvy_ed25519")
        SSHKeyManager(paths.github_keys_dir()).generate_key_pair("devvy_github_rsa")
        (paths.secrets_dir / ".gitignore").write_text("*\n", encoding="utf-8")
        paths.env_file.write_text("SSH_PORT=2222\n", encoding="utf-8")
        paths.config_file.write_text("{}", encoding="utf-8")
        paths.editor_config_dir.mkdir()
        (paths.editor_config_dir / "settings.json").write_text('{"a": 1}', encoding="utf-8")
        (paths.editor_config_dir / "snippets").mkdir()
        return paths

    @pytest.fixture
    def engine(self) -> FakeEngine:
        """Create an engine with a running container and one volume."""
        engine = FakeEngine()
        engine.state = ContainerState.RUNNING
        engine.volumes = {"claude-devvy-container_nvim-data", "unrelated_volume"}
        return engine

    @pytest.fixture
    def plan(self, paths: ProjectPaths, engine: FakeEngine) -> tuple[CleanupPlan, FakeCompose]:
        """Create a plan over the fake engine."""
        compose = FakeCompose(engine)
        return CleanupPlan(AppConfig(), paths, engine, compose), compose

    def test_action_order(self, plan: tuple[CleanupPlan, FakeCompose]) -> None:
        """Test that actions are listed in execution order."""
        cleanup, _ = plan
        assert [action.name for action in cleanup.actions] == [
            "Container and Image",
            "Docker Volumes",
            "Editor Settings",
            "SSH Keys and Secrets",
            "Environment and Config Files",
        ]

    def test_remove_container_and_image(
        self, plan: tuple[CleanupPlan, FakeCompose], engine: FakeEngine
    ) -> None:
        """Test removing the container and the image."""
        cleanup, compose = plan

        cleanup.remove_container_and_image()

        assert compose.calls == [("down", False)]
        assert engine.state is None
        assert "claude-devvy-container_devcontainer" not in engine.images

    def test_remove_container_when_down_fails(
        self, plan: tuple[CleanupPlan, FakeCompose], engine: FakeEngine
    ) -> None:
        """Test that a failing compose down does not stop the removal."""
        cleanup, compose = plan
        compose.results["down"] = failed("no configuration file provided")

        cleanup.remove_container_and_image()

        assert "remove" in engine.calls
        assert engine.state is None

    def test_remove_volumes(self, plan: tuple[CleanupPlan, FakeCompose], engine: FakeEngine) -> None:
        """Test that only the project's volumes are removed."""
        cleanup, _ = plan

        cleanup.remove_volumes()

        assert engine.volumes == {"unrelated_volume"}

    def test_reset_editor_settings(self, plan: tuple[CleanupPlan, FakeCompose], paths: ProjectPaths) -> None:
        """Test resetting the project editor config."""
        cleanup, _ = plan

        cleanup.reset_editor_settings()

        settings = json.loads((paths.editor_config_dir / "settings.json").read_text(encoding="utf-8"))
        assert settings == {}
        assert not (paths.editor_config_dir / "snippets").exists()

    def test_reset_editor_settings_without_directory(self, temp_dir: Path, engine: FakeEngine) -> None:
        """Test that a missing editor config directory is left alone."""
        paths = ProjectPaths(temp_dir)
        cleanup = CleanupPlan(AppConfig(), paths, engine, FakeCompose(engine))

        cleanup.reset_editor_settings()

        assert not paths.editor_config_dir.exists()

    def test_remove_secrets(self, plan: tuple[CleanupPlan, FakeCompose], paths: ProjectPaths) -> None:
        """Test removing keys, nested GitHub keys and the directory itself."""
        cleanup, _ = plan

        cleanup.remove_secrets()

        assert not paths.secrets_dir.exists()

    def test_remove_config_files(self, plan: tuple[CleanupPlan, FakeCompose], paths: ProjectPaths) -> None:
        """Test removing the environment and configuration files."""
        cleanup, _ = plan

        cleanup.remove_config_files()
        cleanup.remove_config_files()

        assert not paths.env_file.exists()
        assert not paths.config_file.exists()

    def test_run_all(
        self, plan: tuple[CleanupPlan, FakeCompose], engine: FakeEngine, paths: ProjectPaths
    ) -> None:
        """Test a full reset."""
        cleanup, compose = plan

        cleanup.run_all()

        assert compose.calls[0] == ("down", True)
        assert engine.state is None
        assert engine.volumes == {"unrelated_volume"}
        assert not paths.secrets_dir.exists()
        assert not paths.env_file.exists()
        assert paths.editor_config_dir.exists()

"""Host environment checks and the generated compose environment file."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import docker
import requests
from docker.errors import DockerException

from devvy.core import shell
from devvy.core.errors import CommandLaunchError
from devvy.core.paths import ProjectPaths, expand_path
from devvy.core.shell import ShellResult
from devvy.core.types import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_GIT_NAME = "Your Name"
DEFAULT_GIT_EMAIL = "your.email@example.com"
DEFAULT_HOST_ID = 1000


def has_docker_daemon() -> bool:
    """Check if Docker daemon is running."""
    try:
        client = docker.from_env()
    except DockerException:
        return False
    try:
        client.ping()
        return True
    except (DockerException, requests.exceptions.ConnectionError):
        return False
    finally:
        client.close()


def host_ids() -> tuple[int, int]:
    """Get the host user and group ids the container user should match."""
    getuid = getattr(os, "getuid", None)
    getgid = getattr(os, "getgid", None)
    if getuid is None or getgid is None:
        return DEFAULT_HOST_ID, DEFAULT_HOST_ID
    return getuid(), getgid()


def git_identity(runner: Callable[..., ShellResult] = shell.run) -> tuple[str, str]:
    """Read the global git identity, with placeholders when unset."""

    def read(key: str, default: str) -> str:
        try:
            result = runner("git", ["config", "--global", key])
        except CommandLaunchError:
            return default
        value = result.stdout.strip()
        return value if result.success and value else default

    return read("user.name", DEFAULT_GIT_NAME), read("user.email", DEFAULT_GIT_EMAIL)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_env_file(
    config: AppConfig,
    uid: int,
    gid: int,
    git_name: str,
    git_email: str,
) -> str:
    """Render the compose environment file.

    Args:
        config: Configuration snapshot.
        uid: Host user id.
        gid: Host group id.
        git_name: Git user name.
        git_email: Git user email.

    Returns:
        File content.
    """
    user = config.user
    lines = [
        "# Generated from devvy.config.json - DO NOT EDIT DIRECTLY",
        "# Run 'devvy setup' to modify configuration",
        "",
        "# User IDs for permission matching",
        f"HOST_UID={uid}",
        f"HOST_GID={gid}",
        "",
        "# Git configuration",
        f"GIT_USER_NAME={_quote(git_name)}",
        f"GIT_USER_EMAIL={_quote(git_email)}",
        "",
        "# Projects directory",
        f"PROJECTS_PATH={expand_path(user.projects_path)}",
        "",
        "# System",
        f"LOG_LEVEL={config.logging.level}",
        f"SSH_PORT={config.ssh.port}",
        "",
        "# Editor configuration",
        f"INSTALL_LAZYVIM={'true' if user.lazyvim.enabled else 'false'}",
    ]
    if user.lazyvim.read_only_config_path:
        lines.append(f"LAZYVIM_CONFIG_PATH={expand_path(user.lazyvim.read_only_config_path)}")
    lines.append("")

    if user.tmux_config_path:
        lines.extend(
            [
                "# Terminal configuration",
                f"TMUX_CONFIG_PATH={expand_path(user.tmux_config_path)}",
                "",
            ]
        )

    if user.allowed_domains:
        lines.extend(
            [
                "# Firewall configuration",
                f"FIREWALL_ALLOWED_DOMAINS={_quote(','.join(user.allowed_domains))}",
                "",
            ]
        )

    return "\n".join(lines)


def generate_env_file(
    config: AppConfig,
    paths: ProjectPaths,
    runner: Callable[..., ShellResult] = shell.run,
) -> Path:
    """Write the compose environment file for the current configuration.

    Returns:
        Path of the written file.
    """
    uid, gid = host_ids()
    git_name, git_email = git_identity(runner)
    paths.env_file.write_text(
        render_env_file(config, uid, gid, git_name, git_email), encoding="utf-8"
    )
    logger.debug("Environment file generated: %s", paths.env_file)
    return paths.env_file


def validate_environment(config: AppConfig, paths: ProjectPaths) -> list[str]:
    """Check the host-side state ``start`` depends on.

    Returns:
        Problems found, empty if none.
    """
    errors = []

    if not paths.compose_file.exists():
        errors.append(f"Compose file not found: {paths.compose_file}")

    if not paths.env_file.exists():
        errors.append(f"Environment file not found: {paths.env_file} (run 'devvy setup')")

    key_path = paths.secrets_dir / config.ssh.key_name
    if not key_path.exists():
        errors.append(f"SSH key not found: {key_path} (run 'devvy setup')")

    projects_path = expand_path(config.user.projects_path)
    if not projects_path.is_dir():
        errors.append(f"Projects directory does not exist: {projects_path}")

    optional_paths = [
        ("LazyVim config", config.user.lazyvim.read_only_config_path),
        ("tmux config", config.user.tmux_config_path),
    ]
    for label, value in optional_paths:
        if value and not expand_path(value).exists():
            errors.append(f"{label} path does not exist: {expand_path(value)}")

    return errors

"""Type definitions for devvy."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

DEFAULT_READY_MARKER = "--CLAUDE-DEVVY-CONTAINER-READY--"


class ContainerState(Enum):
    """Container lifecycle state as reported by the engine."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"


class PortMapping(BaseModel):
    """A container port published on the host."""

    container_port: int
    host_port: int | None = None
    protocol: str = "tcp"

    model_config = {"extra": "forbid"}


class ContainerInfo(BaseModel):
    """Snapshot of one container's state.

    ``exit_code`` and ``finished_at`` are set if and only if the container
    has exited.
    """

    id: str
    name: str
    state: ContainerState
    image: str = ""
    ports: list[PortMapping] = Field(default_factory=list)
    created: datetime
    exit_code: int | None = None
    finished_at: datetime | None = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_exit_fields(self) -> "ContainerInfo":
        """Enforce that exit details exist only for exited containers."""
        exited = self.state is ContainerState.EXITED
        has_exit = self.exit_code is not None and self.finished_at is not None
        if exited != has_exit:
            raise ValueError(
                "exit_code and finished_at must be set if and only if state is 'exited'"
            )
        return self

    @property
    def is_running(self) -> bool:
        """Whether the container is running."""
        return self.state is ContainerState.RUNNING

    def host_port_for(self, container_port: int, protocol: str = "tcp") -> int | None:
        """Get the host port a container port is published on.

        Args:
            container_port: Port inside the container.
            protocol: Port protocol.

        Returns:
            Host port or None if the port is not published.
        """
        for mapping in self.ports:
            if mapping.container_port == container_port and mapping.protocol == protocol:
                return mapping.host_port
        return None

    def uptime(self, now: datetime | None = None) -> str:
        """Render time since creation as ``"1d 2h 3m"``."""
        now = now or datetime.now(timezone.utc)
        seconds = max(0, int((now - self.created).total_seconds()))
        days, rem = divmod(seconds, 86400)
        hours, rem = divmod(rem, 3600)
        minutes = rem // 60

        parts = []
        if days:
            parts.append(f"{days}d")
        if hours:
            parts.append(f"{hours}h")
        if minutes:
            parts.append(f"{minutes}m")
        return " ".join(parts) if parts else "Just started"


class ExecResult(BaseModel):
    """Result of a one-shot exec inside a container."""

    exit_code: int
    output: str = ""


class KeyPolicy(BaseModel):
    """Key generation parameters for one purpose."""

    algorithm: Literal["ed25519", "rsa"] = "ed25519"
    bits: int = 4096
    comment: str = "devvy"

    model_config = {"extra": "forbid"}


def _github_key_policy() -> KeyPolicy:
    return KeyPolicy(
        algorithm="rsa",
        bits=4096,
        comment=f"devvy-github-{date.today().isoformat()}",
    )


class DockerConfig(BaseModel):
    """Docker and compose settings."""

    compose_file: str = "docker-compose.yml"
    project_name: str = "claude-devvy-container"
    container_name: str = "claude-devvy-container"
    image_name: str = "claude-devvy-container_devcontainer"
    volumes: list[str] = Field(
        default_factory=lambda: [
            "nvim-data",
            "zsh-history",
            "npm-cache",
            "pnpm-store",
            "claude-code-data",
            "vscode-server",
        ]
    )
    stop_timeout: int = 10
    vnc_port: int = Field(default=5900, ge=1, le=65535)

    model_config = {"extra": "forbid"}


class SshConfig(BaseModel):
    """SSH connection and trust settings."""

    host: str = "localhost"
    port: int = Field(default=2222, ge=1, le=65535)
    user: str = "devvy"
    key_name: str = "devvy_ed25519"
    key_policy: KeyPolicy = Field(default_factory=lambda: KeyPolicy(comment="devvy"))
    github_key_dir: str = "github"
    github_key_name: str = "devvy_github_rsa"
    github_key_policy: KeyPolicy = Field(default_factory=_github_key_policy)
    inject_authorized_key: bool = False
    keyscan_attempts: int = Field(default=15, ge=1)
    keyscan_initial_delay: float = Field(default=3.0, ge=0)
    keyscan_retry_interval: float = Field(default=2.0, ge=0)

    model_config = {"extra": "forbid"}


class ReadinessConfig(BaseModel):
    """Container startup readiness settings."""

    marker: str = DEFAULT_READY_MARKER
    error_patterns: list[str] = Field(
        default_factory=lambda: [
            "[INIT:ERROR]",
            "ERROR:",
            "Failed to",
            "Permission denied",
        ]
    )
    timeout: float = Field(default=60.0, gt=0)
    tail_size: int = Field(default=50, ge=1)

    model_config = {"extra": "forbid"}


class LazyVimConfig(BaseModel):
    """LazyVim installation settings."""

    enabled: bool = True
    read_only_config_path: str | None = None

    model_config = {"extra": "forbid"}


class UserSettings(BaseModel):
    """Settings collected by the setup wizard."""

    projects_path: str = "~/projects"
    container_projects_path: str = "/home/devvy/repos"
    lazyvim: LazyVimConfig = Field(default_factory=LazyVimConfig)
    tmux_config_path: str | None = None
    github_ssh_configured: bool = False
    allowed_domains: list[str] = Field(
        default_factory=lambda: [
            "docs.anthropic.com",
            "nodejs.org",
            "developer.mozilla.org",
            "stackoverflow.com",
            "github.com",
            "npmjs.com",
        ]
    )

    model_config = {"extra": "forbid"}


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: Literal["error", "warn", "info", "debug"] = "warn"

    model_config = {"extra": "forbid"}


class AppConfig(BaseModel):
    """Validated configuration snapshot for one invocation."""

    docker: DockerConfig = Field(default_factory=DockerConfig)
    ssh: SshConfig = Field(default_factory=SshConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    user: UserSettings = Field(default_factory=UserSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid", "frozen": True}

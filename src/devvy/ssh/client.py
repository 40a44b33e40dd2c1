"""Command lines for interactive sessions in the container."""

import shlex
from pathlib import Path
from typing import NamedTuple

from devvy.core.types import SshConfig

TMUX_SESSION = "main"


class SessionCommand(NamedTuple):
    """Executable and arguments of an interactive session."""

    command: str
    args: list[str]

    def display(self) -> str:
        """Render the command line for display."""
        return shlex.join([self.command, *self.args])


class SSHCommandBuilder:
    """Builds ssh, mosh and root exec command lines."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        private_key_path: Path,
    ) -> None:
        """Initialize command builder.

        Args:
            host: Host the container's SSH port is published on.
            port: Published SSH port.
            username: Container user.
            private_key_path: Path to private key file.
        """
        self._host = host
        self._port = port
        self._username = username
        self._private_key_path = private_key_path

    @classmethod
    def from_config(cls, config: SshConfig, private_key_path: Path) -> "SSHCommandBuilder":
        """Create command builder from configuration.

        Args:
            config: SSH configuration.
            private_key_path: Path to private key file.

        Returns:
            SSHCommandBuilder instance.
        """
        return cls(
            host=config.host,
            port=config.port,
            username=config.user,
            private_key_path=private_key_path,
        )

    @property
    def destination(self) -> str:
        """Get ``user@host``."""
        return f"{self._username}@{self._host}"

    def ssh(self, tmux: bool = False) -> SessionCommand:
        """Build an ssh session.

        Args:
            tmux: Attach to (or create) the shared tmux session.
        """
        args = ["-p", str(self._port), "-i", str(self._private_key_path), self.destination]
        if tmux:
            args.extend(["-t", f"tmux new-session -A -s {TMUX_SESSION}"])
        return SessionCommand("ssh", args)

    def mosh(self, tmux: bool = False) -> SessionCommand:
        """Build a mosh session tunnelled over the same ssh settings.

        Args:
            tmux: Attach to (or create) the shared tmux session.
        """
        ssh_command = shlex.join(["ssh", "-p", str(self._port), "-i", str(self._private_key_path)])
        args = ["--ssh", ssh_command, self.destination]
        if tmux:
            args.extend(["--", "tmux", "new-session", "-A", "-s", TMUX_SESSION])
        return SessionCommand("mosh", args)

    @staticmethod
    def root_exec(container: str, tmux: bool = False) -> SessionCommand:
        """Build a ``docker exec`` root shell, bypassing ssh.

        Args:
            container: Container name.
            tmux: Attach to (or create) the shared tmux session.
        """
        args = ["exec", "-it", "-u", "root", container]
        if tmux:
            args.extend(["tmux", "new-session", "-A", "-s", TMUX_SESSION])
        else:
            args.append("bash")
        return SessionCommand("docker", args)

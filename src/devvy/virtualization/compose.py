"""Docker Compose driver."""

import logging
from collections.abc import Callable
from pathlib import Path

from devvy.core import shell
from devvy.core.shell import ShellResult

logger = logging.getLogger(__name__)


class ComposeDriver:
    """Runs ``docker compose`` for one project.

    Every captured operation returns the ShellResult. A non-zero exit is
    returned rather than raised so callers can report the tool's stderr.
    """

    def __init__(
        self,
        project_name: str,
        compose_file: Path,
        project_root: Path,
        runner: Callable[..., ShellResult] = shell.run,
        interactive_runner: Callable[..., int] = shell.run_interactive,
    ) -> None:
        """Initialize compose driver.

        Args:
            project_name: Compose project name (``-p``).
            compose_file: Compose file path (``-f``).
            project_root: Working directory for compose invocations.
            runner: Captured-mode process runner.
            interactive_runner: Terminal-attached process runner.
        """
        self._project_name = project_name
        self._compose_file = compose_file
        self._project_root = project_root
        self._runner = runner
        self._interactive_runner = interactive_runner

    @property
    def compose_file(self) -> Path:
        """Get compose file path."""
        return self._compose_file

    def _argv(self, *args: str) -> list[str]:
        return ["compose", "-p", self._project_name, "-f", str(self._compose_file), *args]

    def _compose(self, *args: str) -> ShellResult:
        result = self._runner("docker", self._argv(*args), cwd=self._project_root)
        if not result.success:
            logger.debug("docker compose %s exited with %d", args[0], result.exit_code)
        return result

    def up(self, detach: bool = True, build: bool = False) -> ShellResult:
        """Create and start the project's services.

        Args:
            detach: Run in the background.
            build: Build images before starting.
        """
        args = ["up"]
        if detach:
            args.append("-d")
        if build:
            args.append("--build")
        return self._compose(*args)

    def up_attached(self, build: bool = False) -> int:
        """Run ``up`` in the foreground with output on the terminal.

        Args:
            build: Build images before starting.

        Returns:
            Exit code of ``docker compose``.
        """
        args = ["up", "--build"] if build else ["up"]
        return self._interactive_runner("docker", self._argv(*args), cwd=self._project_root)

    def down(self, remove_volumes: bool = False) -> ShellResult:
        """Stop and remove the project's services.

        Args:
            remove_volumes: Also remove named volumes.
        """
        args = ["down"]
        if remove_volumes:
            args.append("-v")
        return self._compose(*args)

    def build(self, no_cache: bool = False) -> ShellResult:
        """Build the project's images.

        Args:
            no_cache: Do not use the build cache.
        """
        args = ["build"]
        if no_cache:
            args.append("--no-cache")
        return self._compose(*args)

    def version(self) -> ShellResult:
        """Get the compose plugin version."""
        return self._runner("docker", ["compose", "version"])

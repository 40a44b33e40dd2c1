"""External process execution.

Two modes are supported: captured (stdout/stderr collected, the default) and
interactive (the child inherits the terminal, only the exit code comes back).
A non-zero exit is an ordinary result; only a failure to launch the process
raises.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from devvy.core.errors import CommandLaunchError

logger = logging.getLogger(__name__)


@dataclass
class ShellResult:
    """Result of a captured command."""

    success: bool
    stdout: str
    stderr: str
    exit_code: int


def _merge_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    merged = dict(os.environ)
    merged.update(env)
    return merged


def run(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    input_data: str | None = None,
) -> ShellResult:
    """Run a command and capture its output.

    Args:
        command: Executable name or path.
        args: Arguments passed to the executable.
        cwd: Working directory.
        env: Variables overlaid on the current environment.
        timeout: Seconds before the command is killed.
        input_data: Text written to the command's stdin.

    Returns:
        ShellResult. A timeout yields exit code -1.

    Raises:
        CommandLaunchError: If the executable is missing or not executable.
    """
    argv = [command, *args]
    logger.debug("Running: %s", " ".join(argv))

    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            cwd=cwd,
            env=_merge_env(env),
            timeout=timeout,
            input=input_data,
        )
    except FileNotFoundError as e:
        raise CommandLaunchError(command, "command not found") from e
    except PermissionError as e:
        raise CommandLaunchError(command, "permission denied") from e
    except subprocess.TimeoutExpired:
        logger.debug("Command timed out after %ss: %s", timeout, command)
        return ShellResult(
            success=False,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
            exit_code=-1,
        )

    return ShellResult(
        success=result.returncode == 0,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        exit_code=result.returncode,
    )


def run_interactive(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run a command attached to the current terminal.

    Used for ``ssh``, ``mosh``, ``docker exec -it`` and editor launches.
    Ctrl-C terminates the child and returns 130.

    Args:
        command: Executable name or path.
        args: Arguments passed to the executable.
        cwd: Working directory.
        env: Variables overlaid on the current environment.

    Returns:
        The child's exit code.

    Raises:
        CommandLaunchError: If the executable is missing or not executable.
    """
    argv = [command, *args]
    logger.debug("Executing interactive: %s", " ".join(argv))

    try:
        process = subprocess.Popen(argv, cwd=cwd, env=_merge_env(env))
    except FileNotFoundError as e:
        raise CommandLaunchError(command, "command not found") from e
    except PermissionError as e:
        raise CommandLaunchError(command, "permission denied") from e

    try:
        return process.wait()
    except KeyboardInterrupt:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        return 130


def command_exists(name: str) -> bool:
    """Check whether an executable is on the search path."""
    try:
        return shutil.which(name) is not None
    except OSError:
        return False

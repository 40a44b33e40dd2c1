"""Exception types for devvy.

Services return result objects for expected failures (non-zero exit codes,
missing files). These exceptions cover the conditions that stop a command:
the engine is unreachable, configuration is invalid, a required process
cannot be launched, or a lifecycle step failed.
"""

from collections.abc import Iterable, Sequence


class DevvyError(Exception):
    """Base exception for devvy errors.

    Attributes:
        message: One-line cause shown to the user.
        remediation: Ordered list of steps the user can take.
    """

    def __init__(self, message: str, remediation: Iterable[str] = ()) -> None:
        """Initialize error.

        Args:
            message: One-line cause.
            remediation: Ordered remediation steps.
        """
        super().__init__(message)
        self.message = message
        self.remediation = list(remediation)


class EngineUnreachableError(DevvyError):
    """Raised when the container engine daemon cannot be reached."""

    def __init__(self, detail: str | None = None) -> None:
        message = "Docker daemon is not running"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(
            message,
            remediation=[
                "Start Docker Desktop (or the docker service) and try again",
                "Check that DOCKER_HOST points at a running daemon",
            ],
        )


class ContainerNotFoundError(DevvyError):
    """Raised when an operation requires a container that does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Container '{name}' does not exist",
            remediation=["Run 'devvy start' to create the container"],
        )


class CommandLaunchError(DevvyError):
    """Raised when an external program cannot be started at all."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        super().__init__(
            f"Could not run '{command}': {reason}",
            remediation=[f"Make sure '{command}' is installed and on your PATH"],
        )


class ConfigValidationError(DevvyError):
    """Raised when the configuration file does not match the schema."""

    def __init__(self, source: str, errors: Sequence[str]) -> None:
        """Initialize error.

        Args:
            source: Where the configuration came from (usually a file path).
            errors: One entry per offending field, ``"field.path: reason"``.
        """
        self.errors = list(errors)
        super().__init__(
            f"Invalid configuration in {source}: " + "; ".join(self.errors),
            remediation=[
                f"Fix the listed fields in {source}",
                "Or run 'devvy setup' to regenerate it",
            ],
        )


class PreconditionError(DevvyError):
    """Raised when prior state (keys, config, files) is missing."""


class LifecycleError(DevvyError):
    """Raised when a lifecycle step fails fatally.

    Attributes:
        step: The step that failed.
        details: Diagnostic lines (captured stderr, recent container logs).
        steps: Steps visited before the failure, in order.
    """

    def __init__(
        self,
        step: object,
        message: str,
        remediation: Iterable[str] = (),
        details: Iterable[str] = (),
        steps: Iterable[object] = (),
    ) -> None:
        super().__init__(message, remediation)
        self.step = step
        self.details = list(details)
        self.steps = list(steps)

"""Container lifecycle orchestration.

``start``, ``stop`` and ``rebuild`` walk the steps of ``LifecycleStep`` in
order. Steps whose precondition already holds (container missing, already
stopped) succeed without doing anything, so an interrupted run converges on
the next invocation. Fatal failures raise ``LifecycleError``.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from devvy.core.errors import ContainerNotFoundError, DevvyError, EngineUnreachableError, LifecycleError
from devvy.core.prompt import Prompter
from devvy.core.shell import ShellResult
from devvy.core.types import AppConfig, ContainerInfo, ReadinessConfig
from devvy.ssh.keys import SSHKeyManager, SSHKeyPair
from devvy.ssh.trust import TrustManager
from devvy.virtualization.base import ContainerEngine
from devvy.virtualization.compose import ComposeDriver
from devvy.virtualization.logs import ReadinessMonitor, ReadinessSignal

logger = logging.getLogger(__name__)

DIAGNOSTIC_LINES = 50
EXEC_POLL_INTERVAL = 1.0


class LifecycleStep(Enum):
    """Steps of the lifecycle state machine."""

    IDLE = "idle"
    CHECK_RUNNING = "check_running"
    CONFIRM_STOP = "confirm_stop"
    STOPPING = "stopping"
    TRUST_CLEANUP = "trust_cleanup"
    REMOVING = "removing"
    BUILDING = "building"
    STARTING = "starting"
    WAITING_READY = "waiting_ready"
    TRUST_REESTABLISH = "trust_reestablish"
    HEALTH_CHECK = "health_check"
    DONE = "done"
    FAILED = "failed"


@dataclass
class LifecycleOutcome:
    """Result of a lifecycle operation that did not fail.

    Attributes:
        steps: Visited steps, in order.
        cancelled: The user declined a confirmation; nothing was changed.
        already_running: ``start`` found the container running.
        already_stopped: ``stop`` found the container not running.
        container: Final container snapshot, if known.
        trusted: Whether the new host key was added to known_hosts.
        readiness: Readiness result, if the container was watched.
        rotated_github_key: New GitHub key pair, if rotated during rebuild.
        warnings: Soft failures worth showing to the user.
    """

    steps: list[LifecycleStep] = field(default_factory=list)
    cancelled: bool = False
    already_running: bool = False
    already_stopped: bool = False
    container: ContainerInfo | None = None
    trusted: bool | None = None
    readiness: ReadinessSignal | None = None
    rotated_github_key: SSHKeyPair | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def final_step(self) -> LifecycleStep:
        """Get the last visited step."""
        return self.steps[-1] if self.steps else LifecycleStep.IDLE


def _last_lines(text: str, count: int = DIAGNOSTIC_LINES) -> list[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-count:]


class LifecycleOrchestrator:
    """Sequences stop, trust cleanup, rebuild, start, readiness and trust."""

    def __init__(
        self,
        config: AppConfig,
        engine: ContainerEngine,
        compose: ComposeDriver,
        trust: TrustManager,
        keys: SSHKeyManager | None = None,
        prompter: Prompter | None = None,
        monitor_factory: Callable[[ReadinessConfig], ReadinessMonitor] = ReadinessMonitor.from_config,
        github_keys: SSHKeyManager | None = None,
        on_step: Callable[[LifecycleStep], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize orchestrator.

        Args:
            config: Configuration snapshot.
            engine: Container engine.
            compose: Compose driver for the project.
            trust: known_hosts trust manager.
            keys: Host key manager, used to inject the authorized key.
            prompter: Answers confirmation prompts. Without one every
                confirmation is treated as accepted.
            monitor_factory: Creates the readiness monitor.
            github_keys: GitHub key manager, offered for rotation on rebuild.
            on_step: Called whenever a step is entered.
            sleep: Sleep function.
            clock: Monotonic clock.
        """
        self._config = config
        self._engine = engine
        self._compose = compose
        self._trust = trust
        self._keys = keys
        self._prompter = prompter
        self._monitor_factory = monitor_factory
        self._github_keys = github_keys
        self._on_step = on_step
        self._sleep = sleep
        self._clock = clock

    @property
    def container_name(self) -> str:
        """Get the managed container's name."""
        return self._config.docker.container_name

    def _enter(self, outcome: LifecycleOutcome, step: LifecycleStep) -> None:
        outcome.steps.append(step)
        logger.debug("Lifecycle step: %s", step.value)
        if self._on_step is not None:
            self._on_step(step)

    def _fail(
        self,
        outcome: LifecycleOutcome,
        step: LifecycleStep,
        message: str,
        remediation: list[str],
        details: list[str] | None = None,
    ) -> LifecycleError:
        outcome.steps.append(LifecycleStep.FAILED)
        logger.debug("Lifecycle failed at %s: %s", step.value, message)
        return LifecycleError(
            step,
            message,
            remediation=remediation,
            details=details or [],
            steps=outcome.steps,
        )

    def _confirm(self, message: str, default: bool) -> bool:
        if self._prompter is None:
            return True
        return self._prompter.confirm(message, default=default)

    def _check_compose(
        self,
        outcome: LifecycleOutcome,
        step: LifecycleStep,
        result: ShellResult,
        message: str,
    ) -> None:
        if result.success:
            return
        raise self._fail(
            outcome,
            step,
            message,
            remediation=[
                "Review the output above for the failing instruction",
                "Check that the Docker daemon has enough disk space",
                "Try 'devvy rebuild --no-cache'",
            ],
            details=_last_lines(result.stderr or result.stdout),
        )

    def start(self, build: bool = False, detach: bool = True) -> LifecycleOutcome:
        """Start the container unless it is already running.

        Args:
            build: Build the image first.
            detach: Run in the background and wait for readiness. When
                False, ``compose up`` stays attached to the terminal.

        Returns:
            LifecycleOutcome.

        Raises:
            LifecycleError: If a fatal step fails.
            EngineUnreachableError: If the daemon cannot be reached.
        """
        outcome = LifecycleOutcome()
        self._enter(outcome, LifecycleStep.CHECK_RUNNING)
        info = self._engine.find(self.container_name)
        if info is not None and info.is_running:
            logger.info("Container %s is already running", self.container_name)
            outcome.already_running = True
            outcome.container = info
            self._enter(outcome, LifecycleStep.DONE)
            return outcome

        self._enter(outcome, LifecycleStep.TRUST_CLEANUP)
        self._trust.remove_known_host(self._config.ssh.host, self._config.ssh.port)

        if build:
            self._enter(outcome, LifecycleStep.BUILDING)
            self._check_compose(
                outcome,
                LifecycleStep.BUILDING,
                self._compose.build(),
                "Failed to build container image",
            )

        if not detach:
            self._enter(outcome, LifecycleStep.STARTING)
            exit_code = self._compose.up_attached()
            if exit_code not in (0, 130):
                raise self._fail(
                    outcome,
                    LifecycleStep.STARTING,
                    f"docker compose up exited with code {exit_code}",
                    remediation=["Review the output above", "Try 'devvy rebuild'"],
                )
            self._enter(outcome, LifecycleStep.DONE)
            return outcome

        return self._bring_up(outcome)

    def stop(self, force: bool = False) -> LifecycleOutcome:
        """Stop the container.

        Args:
            force: Skip the confirmation.

        Returns:
            LifecycleOutcome; ``cancelled`` if the user declined.

        Raises:
            LifecycleError: If the container could not be stopped.
            EngineUnreachableError: If the daemon cannot be reached.
        """
        outcome = LifecycleOutcome()
        self._enter(outcome, LifecycleStep.CHECK_RUNNING)
        if not self._is_running():
            outcome.already_stopped = True
            self._enter(outcome, LifecycleStep.DONE)
            return outcome

        if not force:
            self._enter(outcome, LifecycleStep.CONFIRM_STOP)
            if not self._confirm("Are you sure you want to stop the development container?", True):
                outcome.cancelled = True
                return outcome

        self._enter(outcome, LifecycleStep.STOPPING)
        result = self._compose.down()
        if not result.success:
            logger.warning("docker compose down failed, forcing the container to stop")
            outcome.warnings.append("docker compose down failed; the container was force-stopped")
            try:
                self._engine.stop(self.container_name, force=True)
            except DevvyError as e:
                raise self._fail(
                    outcome,
                    LifecycleStep.STOPPING,
                    "Failed to stop container",
                    remediation=[
                        "Check 'docker ps' for the container state",
                        f"Stop it manually with 'docker kill {self.container_name}'",
                    ],
                    details=_last_lines(result.stderr) + [e.message],
                ) from e

        self._enter(outcome, LifecycleStep.DONE)
        return outcome

    def rebuild(self, no_cache: bool = False, force: bool = False) -> LifecycleOutcome:
        """Stop, remove, rebuild and restart the container.

        Args:
            no_cache: Build without the image cache.
            force: Skip confirmations.

        Returns:
            LifecycleOutcome; ``cancelled`` if the user declined.

        Raises:
            LifecycleError: If a fatal step fails.
            EngineUnreachableError: If the daemon cannot be reached.
        """
        outcome = LifecycleOutcome()
        self._enter(outcome, LifecycleStep.CHECK_RUNNING)
        running = self._is_running()

        if running and not force:
            self._enter(outcome, LifecycleStep.CONFIRM_STOP)
            if not self._confirm("Container is running. Stop it before rebuilding?", True):
                outcome.cancelled = True
                return outcome

        if not force:
            outcome.rotated_github_key = self._offer_github_key_rotation()

        if running:
            self._enter(outcome, LifecycleStep.STOPPING)
            try:
                self._engine.stop(
                    self.container_name,
                    force=force,
                    timeout=self._config.docker.stop_timeout,
                )
            except EngineUnreachableError:
                raise
            except DevvyError as e:
                raise self._fail(
                    outcome,
                    LifecycleStep.STOPPING,
                    "Failed to stop container before rebuilding",
                    remediation=[
                        "Check 'docker ps' for the container state",
                        f"Stop it manually with 'docker kill {self.container_name}'",
                        "Then run 'devvy rebuild' again",
                    ],
                    details=[e.message],
                ) from e

        # Before the old container goes away
        self._enter(outcome, LifecycleStep.TRUST_CLEANUP)
        self._trust.rotate_for_rebuild(self._config.ssh.host, self._config.ssh.port)

        self._enter(outcome, LifecycleStep.REMOVING)
        self._engine.remove(self.container_name, force=True)

        self._enter(outcome, LifecycleStep.BUILDING)
        self._check_compose(
            outcome,
            LifecycleStep.BUILDING,
            self._compose.build(no_cache=no_cache),
            "Failed to build container image",
        )

        return self._bring_up(outcome)

    def _is_running(self) -> bool:
        info = self._engine.find(self.container_name)
        return info is not None and info.is_running

    def _offer_github_key_rotation(self) -> SSHKeyPair | None:
        if self._github_keys is None or self._prompter is None:
            return None
        name = self._config.ssh.github_key_name
        if self._github_keys.get_key_pair(name) is None:
            return None

        if not self._prompter.confirm(
            "A GitHub SSH key exists. Regenerating it means replacing the key "
            "registered on GitHub. Regenerate the GitHub SSH key?",
            default=False,
        ):
            logger.info("Keeping existing GitHub SSH key")
            return None
        return self._github_keys.rotate_key_pair(name, self._config.ssh.github_key_policy)

    def _bring_up(self, outcome: LifecycleOutcome) -> LifecycleOutcome:
        """Run STARTING through DONE."""
        self._enter(outcome, LifecycleStep.STARTING)
        started_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        self._check_compose(
            outcome,
            LifecycleStep.STARTING,
            self._compose.up(detach=True),
            "Failed to start container",
        )

        self._enter(outcome, LifecycleStep.WAITING_READY)
        self._wait_ready(outcome, started_at)

        self._enter(outcome, LifecycleStep.TRUST_REESTABLISH)
        self._reestablish_trust(outcome)

        self._enter(outcome, LifecycleStep.HEALTH_CHECK)
        info = self._engine.find(self.container_name)
        if info is None or not info.is_running:
            state = info.state.value if info is not None else "missing"
            raise self._fail(
                outcome,
                LifecycleStep.HEALTH_CHECK,
                f"Container health check failed (state: {state})",
                remediation=[
                    "Check the container output with 'devvy logs'",
                    "Try 'devvy rebuild'",
                ],
            )
        outcome.container = info

        self._enter(outcome, LifecycleStep.DONE)
        return outcome

    def _wait_ready(self, outcome: LifecycleOutcome, started_at: datetime) -> None:
        readiness = self._config.readiness
        if not readiness.marker:
            self._poll_exec(outcome, readiness.timeout)
            return

        try:
            stream = self._engine.open_log_stream(
                self.container_name, follow=True, since=started_at
            )
        except ContainerNotFoundError as e:
            raise self._fail(
                outcome,
                LifecycleStep.WAITING_READY,
                "Container disappeared right after starting",
                remediation=["Check the compose file's container_name", "Try 'devvy rebuild'"],
            ) from e

        monitor = self._monitor_factory(readiness)
        signal = monitor.wait(stream)
        outcome.readiness = signal
        if not signal.ready:
            raise self._fail(
                outcome,
                LifecycleStep.WAITING_READY,
                f"Container did not become ready: {signal.reason}",
                remediation=[
                    "Review the container output below",
                    "Check the full output with 'devvy logs'",
                    "Try 'devvy rebuild'",
                ],
                details=signal.tail,
            )

    def _poll_exec(self, outcome: LifecycleOutcome, timeout: float) -> None:
        deadline = self._clock() + timeout
        while True:
            try:
                result = self._engine.exec_one_shot(self.container_name, ["true"])
                if result.exit_code == 0:
                    return
            except ContainerNotFoundError:
                pass
            if self._clock() >= deadline:
                raise self._fail(
                    outcome,
                    LifecycleStep.WAITING_READY,
                    f"Container did not accept commands within {timeout:g}s",
                    remediation=["Check the container output with 'devvy logs'"],
                )
            self._sleep(EXEC_POLL_INTERVAL)

    def _reestablish_trust(self, outcome: LifecycleOutcome) -> None:
        ssh = self._config.ssh
        outcome.trusted = self._trust.add_known_host(ssh.host, ssh.port)
        if not outcome.trusted:
            message = (
                "Container's SSH host key was not added to known_hosts; "
                "you will be asked to verify it on first connection"
            )
            logger.warning(message)
            outcome.warnings.append(message)

        if ssh.inject_authorized_key and self._keys is not None:
            pair = self._keys.get_key_pair(ssh.key_name)
            if pair is None:
                outcome.warnings.append("No host SSH key to install; run 'devvy setup'")
                return
            try:
                self._trust.authorize_in_container(
                    self._engine, self.container_name, ssh.user, pair.public_key_content
                )
            except DevvyError as e:
                logger.warning("Could not install authorized_keys: %s", e.message)
                outcome.warnings.append(f"Could not install authorized_keys: {e.message}")

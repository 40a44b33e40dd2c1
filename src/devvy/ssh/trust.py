"""Host key trust between the host and the container."""

import base64
import binascii
import hashlib
import logging
import time
from collections.abc import Callable

from devvy.core import shell
from devvy.core.errors import CommandLaunchError, DevvyError
from devvy.core.prompt import Prompter
from devvy.core.shell import ShellResult
from devvy.core.types import SshConfig
from devvy.ssh.known_hosts import KnownHostEntry, KnownHostsStore, host_pattern
from devvy.virtualization.base import ContainerEngine

logger = logging.getLogger(__name__)

KEYSCAN_TIMEOUT = 5


def fingerprint(key: str) -> str:
    """Get the OpenSSH SHA256 fingerprint of a base64 key blob."""
    try:
        blob = base64.b64decode(key)
    except (binascii.Error, ValueError):
        return "SHA256:?"
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii").rstrip("=")
    return f"SHA256:{digest}"


class TrustManager:
    """Maintains the known_hosts entry of the managed container.

    A rebuilt container presents a new host key. The stale entry has to go
    before the old container is removed, and the new key is scanned and
    appended once the container's SSH service listens.
    """

    def __init__(
        self,
        store: KnownHostsStore,
        runner: Callable[..., ShellResult] = shell.run,
        prompter: Prompter | None = None,
        keyscan_attempts: int = 15,
        initial_delay: float = 3.0,
        retry_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize trust manager.

        Args:
            store: known_hosts store to maintain.
            runner: Captured-mode process runner used for ``ssh-keyscan``.
            prompter: Asked before a scanned key is trusted.
            keyscan_attempts: Number of scan attempts.
            initial_delay: Seconds to wait before the first scan.
            retry_interval: Seconds between scan attempts.
            sleep: Sleep function.
        """
        self._store = store
        self._runner = runner
        self._prompter = prompter
        self._keyscan_attempts = max(1, keyscan_attempts)
        self._initial_delay = initial_delay
        self._retry_interval = retry_interval
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        store: KnownHostsStore,
        config: SshConfig,
        prompter: Prompter | None = None,
        runner: Callable[..., ShellResult] = shell.run,
    ) -> "TrustManager":
        """Create a trust manager from SSH settings."""
        return cls(
            store,
            runner=runner,
            prompter=prompter,
            keyscan_attempts=config.keyscan_attempts,
            initial_delay=config.keyscan_initial_delay,
            retry_interval=config.keyscan_retry_interval,
        )

    @property
    def store(self) -> KnownHostsStore:
        """Get the known_hosts store."""
        return self._store

    def remove_known_host(self, host: str, port: int) -> int:
        """Remove entries for a host and port. Never fails.

        Returns:
            Number of removed entries.
        """
        try:
            removed = self._store.remove(host, port)
        except (OSError, ValueError) as e:
            logger.warning("Could not update %s: %s", self._store.path, e)
            return 0
        if removed:
            logger.info("Removed %d known_hosts entries for %s", removed, host_pattern(host, port))
        return removed

    def scan_host_keys(self, host: str, port: int) -> list[str]:
        """Probe a host for its current keys with ``ssh-keyscan``.

        Args:
            host: Host name or address.
            port: SSH port.

        Returns:
            known_hosts lines, empty if the host never answered.
        """
        args = ["-p", str(port), "-T", str(KEYSCAN_TIMEOUT), host]
        for attempt in range(1, self._keyscan_attempts + 1):
            try:
                result = self._runner("ssh-keyscan", args, timeout=KEYSCAN_TIMEOUT * 2)
            except CommandLaunchError as e:
                logger.warning("%s", e.message)
                return []

            lines = [
                line.strip()
                for line in result.stdout.splitlines()
                if line.strip() and not line.lstrip().startswith("#")
            ]
            if lines:
                return lines

            logger.debug(
                "ssh-keyscan attempt %d/%d for %s found no keys",
                attempt,
                self._keyscan_attempts,
                host_pattern(host, port),
            )
            if attempt < self._keyscan_attempts:
                self._sleep(self._retry_interval)
        return []

    def add_known_host(self, host: str, port: int, confirm: bool = True) -> bool:
        """Scan and trust the current host keys of a host.

        Any remaining entries for the host pattern are replaced, so exactly
        the scanned keys are trusted afterwards.

        Args:
            host: Host name or address.
            port: SSH port.
            confirm: Ask the prompter before saving.

        Returns:
            True if the keys were saved. False if the host could not be
            probed or the user declined.
        """
        pattern = host_pattern(host, port)
        if self._initial_delay > 0:
            self._sleep(self._initial_delay)

        lines = self.scan_host_keys(host, port)
        if not lines:
            logger.warning("Could not scan host keys for %s", pattern)
            return False

        if confirm and self._prompter is not None:
            entries = [e for e in (KnownHostEntry.parse(line) for line in lines) if e]
            summary = ", ".join(f"{e.key_type} {fingerprint(e.key)}" for e in entries)
            if not self._prompter.confirm(
                f"Trust host key for {pattern} ({summary})?", default=True
            ):
                logger.info("Host key for %s not trusted", pattern)
                return False

        try:
            self._store.replace(host, port, lines)
        except (OSError, ValueError) as e:
            logger.warning("Could not update %s: %s", self._store.path, e)
            return False
        logger.info("Added host key for %s to %s", pattern, self._store.path)
        return True

    def rotate_for_rebuild(self, host: str, port: int) -> int:
        """Drop the entry of a container that is about to be replaced.

        Must run before the old container is removed.

        Returns:
            Number of removed entries.
        """
        return self.remove_known_host(host, port)

    def authorize_in_container(
        self,
        engine: ContainerEngine,
        container: str,
        user: str,
        public_key: str,
    ) -> None:
        """Install a public key as the user's authorized_keys in a container.

        Args:
            engine: Container engine.
            container: Container name.
            user: Container user.
            public_key: OpenSSH public key line.

        Raises:
            DevvyError: If the file cannot be installed.
        """
        home = "/root" if user == "root" else f"/home/{user}"
        ssh_dir = f"{home}/.ssh"

        engine.put_file(
            container,
            f"{ssh_dir}/authorized_keys",
            (public_key.strip() + "\n").encode("utf-8"),
            mode=0o600,
            owner=f"{user}:{user}",
        )
        for argv in (["chown", f"{user}:{user}", ssh_dir], ["chmod", "700", ssh_dir]):
            result = engine.exec_one_shot(container, argv, user="root")
            if result.exit_code != 0:
                raise DevvyError(f"Could not prepare {ssh_dir}: {result.output.strip()}")
        logger.info("Installed authorized_keys for %s in %s", user, container)

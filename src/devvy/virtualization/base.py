"""Abstract base classes for the container engine."""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from datetime import datetime

from devvy.core.types import ContainerInfo, ExecResult


class LogStream(ABC):
    """A raw, still-framed log byte stream from the engine.

    ``close`` must be safe to call more than once and from another thread
    than the one iterating ``chunks``; closing unblocks a pending read.
    ``framed`` is False when the container has a TTY and the engine sends
    plain bytes instead of multiplexed frames.
    """

    framed: bool = True

    @abstractmethod
    def chunks(self) -> Iterator[bytes]:
        """Yield byte chunks as they arrive until the stream ends."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""
        pass

    def __enter__(self) -> "LogStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ContainerEngine(ABC):
    """Abstract container engine handle.

    Not-found conditions are reported through return values; only an
    unreachable engine raises for the lookup and mutation calls.
    """

    @abstractmethod
    def ping(self) -> None:
        """Check that the engine responds.

        Raises:
            EngineUnreachableError: If the daemon cannot be reached.
        """
        pass

    @abstractmethod
    def find(self, name: str) -> ContainerInfo | None:
        """Look up a container by exact name or id.

        Args:
            name: Container name or id.

        Returns:
            Container snapshot, or None if it does not exist.
        """
        pass

    def is_running(self, name: str) -> bool:
        """Check whether a container is running. Never raises.

        Args:
            name: Container name or id.

        Returns:
            True if the container exists and is running.
        """
        try:
            info = self.find(name)
        except Exception:
            return False
        return info is not None and info.is_running

    @abstractmethod
    def stop(self, name: str, force: bool = False, timeout: int = 10) -> None:
        """Stop a container. Stopping a stopped or missing container succeeds.

        Args:
            name: Container name or id.
            force: Kill immediately instead of a graceful stop.
            timeout: Seconds to wait for a graceful stop.
        """
        pass

    @abstractmethod
    def remove(self, name: str, force: bool = False) -> None:
        """Remove a container. Removing a missing container succeeds.

        Args:
            name: Container name or id.
            force: Remove even if running.
        """
        pass

    @abstractmethod
    def exec_one_shot(self, name: str, argv: Sequence[str], user: str | None = None) -> ExecResult:
        """Run a command inside a running container.

        Args:
            name: Container name or id.
            argv: Command and arguments.
            user: User to run as.

        Returns:
            Exit code and combined output.

        Raises:
            ContainerNotFoundError: If the container does not exist.
        """
        pass

    @abstractmethod
    def open_log_stream(
        self,
        name: str,
        follow: bool = True,
        tail: int | str = "all",
        since: datetime | None = None,
        until: datetime | None = None,
        timestamps: bool = False,
    ) -> LogStream:
        """Open the container's raw log stream.

        Args:
            name: Container name or id.
            follow: Keep the stream open for new output.
            tail: Number of lines from the end, or "all".
            since: Only logs after this time.
            until: Only logs before this time.
            timestamps: Prefix each line with its timestamp.

        Returns:
            LogStream yielding engine-framed bytes.

        Raises:
            ContainerNotFoundError: If the container does not exist.
        """
        pass

    @abstractmethod
    def put_file(
        self,
        name: str,
        path: str,
        content: bytes,
        mode: int = 0o644,
        owner: str | None = None,
    ) -> None:
        """Write a single file into a container.

        Args:
            name: Container name or id.
            path: Absolute destination path inside the container.
            content: File bytes.
            mode: File permission bits.
            owner: ``user`` or ``user:group`` to own the file.
        """
        pass

    @abstractmethod
    def list_containers(self, name_filter: str | None = None) -> list[ContainerInfo]:
        """List containers, running or not.

        Args:
            name_filter: Only containers whose name contains this text.

        Returns:
            Container snapshots.
        """
        pass

    @abstractmethod
    def remove_image(self, image: str, force: bool = False) -> bool:
        """Remove an image.

        Returns:
            True if removed, False if it did not exist.
        """
        pass

    @abstractmethod
    def remove_volume(self, volume: str, force: bool = False) -> bool:
        """Remove a named volume.

        Returns:
            True if removed, False if it did not exist.
        """
        pass

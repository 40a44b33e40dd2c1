"""Pytest fixtures and configuration."""

import shutil
import struct
import tempfile
import threading
from collections.abc import Iterator, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from devvy.core.errors import ContainerNotFoundError
from devvy.core.shell import ShellResult
from devvy.core.types import AppConfig, ContainerInfo, ContainerState, ExecResult
from devvy.virtualization.base import ContainerEngine, LogStream


def frame(payload: bytes, stream: int = 1) -> bytes:
    """Build one multiplexed log frame."""
    return struct.pack(">BxxxL", stream, len(payload)) + payload


def ok(stdout: str = "", stderr: str = "") -> ShellResult:
    """Build a successful ShellResult."""
    return ShellResult(success=True, stdout=stdout, stderr=stderr, exit_code=0)


def failed(stderr: str = "", exit_code: int = 1, stdout: str = "") -> ShellResult:
    """Build a failed ShellResult."""
    return ShellResult(success=False, stdout=stdout, stderr=stderr, exit_code=exit_code)


class FakeLogStream(LogStream):
    """Log stream yielding scripted chunks.

    With ``hold_open`` the stream blocks after the last chunk until closed,
    like a following stream of a container that prints nothing more.
    """

    def __init__(self, chunks: Sequence[bytes] = (), hold_open: bool = False, framed: bool = True) -> None:
        self._chunks = list(chunks)
        self._hold_open = hold_open
        self._closed = threading.Event()
        self.framed = framed
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def chunks(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            if self._closed.is_set():
                return
            yield chunk
        if self._hold_open:
            self._closed.wait(timeout=30)

    def close(self) -> None:
        self.close_calls += 1
        self._closed.set()


class FakeEngine(ContainerEngine):
    """In-memory container engine recording every call."""

    def __init__(self, name: str = "claude-devvy-container") -> None:
        self.name = name
        self.state: ContainerState | None = None
        self.calls: list[str] = []
        self.log_streams: list[FakeLogStream] = []
        self.log_stream_args: list[dict] = []
        self.exec_results: list[ExecResult] = []
        self.files: dict[str, tuple[bytes, int, str | None]] = {}
        self.images = {"claude-devvy-container_devcontainer"}
        self.volumes: set[str] = set()
        self.start_on_up = True

    def info(self) -> ContainerInfo | None:
        if self.state is None:
            return None
        exited = self.state is ContainerState.EXITED
        now = datetime.now(timezone.utc)
        return ContainerInfo(
            id="abc123def4567890",
            name=self.name,
            state=self.state,
            image="claude-devvy-container_devcontainer",
            created=now,
            exit_code=0 if exited else None,
            finished_at=now if exited else None,
        )

    def ping(self) -> None:
        self.calls.append("ping")

    def find(self, name: str) -> ContainerInfo | None:
        self.calls.append("find")
        return self.info() if name == self.name else None

    def stop(self, name: str, force: bool = False, timeout: int = 10) -> None:
        self.calls.append("stop")
        if self.state is ContainerState.RUNNING:
            self.state = ContainerState.EXITED

    def remove(self, name: str, force: bool = False) -> None:
        self.calls.append("remove")
        self.state = None

    def exec_one_shot(self, name: str, argv: Sequence[str], user: str | None = None) -> ExecResult:
        self.calls.append("exec")
        if self.state is None:
            raise ContainerNotFoundError(name)
        if self.exec_results:
            return self.exec_results.pop(0)
        return ExecResult(exit_code=0)

    def open_log_stream(
        self,
        name: str,
        follow: bool = True,
        tail: int | str = "all",
        since: datetime | None = None,
        until: datetime | None = None,
        timestamps: bool = False,
    ) -> LogStream:
        self.calls.append("logs")
        if self.state is None:
            raise ContainerNotFoundError(name)
        self.log_stream_args.append(
            {"follow": follow, "tail": tail, "since": since, "until": until, "timestamps": timestamps}
        )
        return self.log_streams.pop(0)

    def put_file(
        self,
        name: str,
        path: str,
        content: bytes,
        mode: int = 0o644,
        owner: str | None = None,
    ) -> None:
        self.calls.append("put_file")
        self.files[path] = (content, mode, owner)

    def list_containers(self, name_filter: str | None = None) -> list[ContainerInfo]:
        info = self.info()
        return [info] if info is not None else []

    def remove_image(self, image: str, force: bool = False) -> bool:
        self.calls.append("remove_image")
        if image in self.images:
            self.images.discard(image)
            return True
        return False

    def remove_volume(self, volume: str, force: bool = False) -> bool:
        self.calls.append("remove_volume")
        if volume in self.volumes:
            self.volumes.discard(volume)
            return True
        return False

    @property
    def mutations(self) -> list[str]:
        """Calls that change engine state."""
        read_only = {"ping", "find", "logs", "exec"}
        return [call for call in self.calls if call not in read_only]


class FakeCompose:
    """Compose driver double operating on a FakeEngine."""

    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine
        self.calls: list[tuple] = []
        self.results: dict[str, ShellResult] = {}
        self.attached_exit_code = 0

    def _result(self, name: str) -> ShellResult:
        return self.results.get(name, ok())

    def up(self, detach: bool = True, build: bool = False) -> ShellResult:
        self.calls.append(("up", detach, build))
        result = self._result("up")
        if result.success and self.engine.start_on_up:
            self.engine.state = ContainerState.RUNNING
        return result

    def up_attached(self, build: bool = False) -> int:
        self.calls.append(("up_attached", build))
        return self.attached_exit_code

    def down(self, remove_volumes: bool = False) -> ShellResult:
        self.calls.append(("down", remove_volumes))
        result = self._result("down")
        if result.success:
            self.engine.state = None
        return result

    def build(self, no_cache: bool = False) -> ShellResult:
        self.calls.append(("build", no_cache))
        return self._result("build")

    def version(self) -> ShellResult:
        self.calls.append(("version",))
        return self._result("version")

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


class ScriptedPrompter:
    """Prompter answering from scripted queues, recording every question."""

    def __init__(
        self,
        confirms: Sequence[bool] = (),
        inputs: Sequence[str] = (),
        selects: Sequence[str] = (),
        default_confirm: bool | None = None,
    ) -> None:
        self.confirms = list(confirms)
        self.inputs = list(inputs)
        self.selects = list(selects)
        self.default_confirm = default_confirm
        self.questions: list[str] = []

    def confirm(self, message: str, default: bool = False) -> bool:
        self.questions.append(message)
        if self.confirms:
            return self.confirms.pop(0)
        if self.default_confirm is not None:
            return self.default_confirm
        return default

    def select(self, message: str, choices: Sequence[str], default: int = 0) -> str:
        self.questions.append(message)
        if self.selects:
            return self.selects.pop(0)
        return choices[default]

    def input(self, message: str, default: str = "") -> str:
        self.questions.append(message)
        if self.inputs:
            return self.inputs.pop(0)
        return default

    def password(self, message: str) -> str:
        self.questions.append(message)
        return ""


class FakeRunner:
    """Captured-mode runner returning scripted results by command name."""

    def __init__(self, results: dict[str, ShellResult | list[ShellResult]] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, list[str], dict]] = []

    def __call__(self, command: str, args: Sequence[str] = (), **kwargs: object) -> ShellResult:
        self.calls.append((command, list(args), kwargs))
        result = self.results.get(command, ok())
        if isinstance(result, list):
            return result.pop(0) if len(result) > 1 else result[0]
        return result


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def app_config() -> AppConfig:
    """Create a configuration with short readiness and keyscan timings."""
    return AppConfig.model_validate(
        {
            "ssh": {"keyscan_attempts": 1, "keyscan_initial_delay": 0, "keyscan_retry_interval": 0},
            "readiness": {"marker": "--READY--", "timeout": 2},
        }
    )


@pytest.fixture
def engine() -> FakeEngine:
    """Create an engine with no container."""
    return FakeEngine()


@pytest.fixture
def compose(engine: FakeEngine) -> FakeCompose:
    """Create a compose double bound to the engine fixture."""
    return FakeCompose(engine)

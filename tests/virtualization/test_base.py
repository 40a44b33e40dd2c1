"""Tests for devvy.virtualization.base module."""

from conftest import FakeEngine, FakeLogStream
from devvy.core.errors import EngineUnreachableError
from devvy.core.types import ContainerInfo, ContainerState


class UnreachableEngine(FakeEngine):
    """Engine whose daemon never answers."""

    def find(self, name: str) -> ContainerInfo | None:
        raise EngineUnreachableError()


class TestContainerEngine:
    """Tests for ContainerEngine base behavior."""

    def test_is_running(self) -> None:
        """Test the running check for each state."""
        engine = FakeEngine()
        assert not engine.is_running(engine.name)

        engine.state = ContainerState.EXITED
        assert not engine.is_running(engine.name)

        engine.state = ContainerState.RUNNING
        assert engine.is_running(engine.name)
        assert not engine.is_running("other")

    def test_is_running_never_raises(self) -> None:
        """Test that engine failures read as not running."""
        assert not UnreachableEngine().is_running("claude-devvy-container")


class TestLogStream:
    """Tests for LogStream base behavior."""

    def test_context_manager_closes(self) -> None:
        """Test that leaving the block closes the stream."""
        with FakeLogStream([b"x"]) as stream:
            assert not stream.closed
        assert stream.closed

    def test_close_on_error(self) -> None:
        """Test that an exception inside the block still closes the stream."""
        stream = FakeLogStream()
        try:
            with stream:
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert stream.close_calls == 1

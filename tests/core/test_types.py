"""Tests for devvy.core.types module."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from devvy.core.types import (
    DEFAULT_READY_MARKER,
    AppConfig,
    ContainerInfo,
    ContainerState,
    PortMapping,
)

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestContainerState:
    """Tests for ContainerState enum."""

    def test_state_values(self) -> None:
        """Test container state values."""
        assert ContainerState.RUNNING.value == "running"
        assert ContainerState.EXITED.value == "exited"
        assert ContainerState("removing") is ContainerState.REMOVING


class TestContainerInfo:
    """Tests for ContainerInfo model."""

    def test_running_container(self) -> None:
        """Test a running container has no exit details."""
        info = ContainerInfo(id="abc", name="dev", state=ContainerState.RUNNING, created=CREATED)
        assert info.is_running
        assert info.exit_code is None

    def test_exited_requires_exit_details(self) -> None:
        """Test that an exited container must carry exit code and time."""
        with pytest.raises(ValidationError):
            ContainerInfo(id="abc", name="dev", state=ContainerState.EXITED, created=CREATED)

    def test_running_rejects_exit_details(self) -> None:
        """Test that exit details are rejected for a non-exited container."""
        with pytest.raises(ValidationError):
            ContainerInfo(
                id="abc",
                name="dev",
                state=ContainerState.RUNNING,
                created=CREATED,
                exit_code=0,
                finished_at=CREATED,
            )

    def test_exited_container(self) -> None:
        """Test a valid exited container."""
        info = ContainerInfo(
            id="abc",
            name="dev",
            state=ContainerState.EXITED,
            created=CREATED,
            exit_code=137,
            finished_at=CREATED + timedelta(hours=1),
        )
        assert not info.is_running
        assert info.exit_code == 137

    def test_host_port_for(self) -> None:
        """Test looking up published ports."""
        info = ContainerInfo(
            id="abc",
            name="dev",
            state=ContainerState.RUNNING,
            created=CREATED,
            ports=[PortMapping(container_port=22, host_port=2222)],
        )
        assert info.host_port_for(22) == 2222
        assert info.host_port_for(22, "udp") is None
        assert info.host_port_for(80) is None

    def test_uptime(self) -> None:
        """Test uptime rendering."""
        info = ContainerInfo(id="abc", name="dev", state=ContainerState.RUNNING, created=CREATED)
        now = CREATED + timedelta(days=1, hours=2, minutes=3, seconds=4)
        assert info.uptime(now) == "1d 2h 3m"
        assert info.uptime(CREATED + timedelta(seconds=30)) == "Just started"

    def test_json_dump(self) -> None:
        """Test that state serializes as its value."""
        info = ContainerInfo(id="abc", name="dev", state=ContainerState.RUNNING, created=CREATED)
        assert info.model_dump(mode="json")["state"] == "running"


class TestAppConfig:
    """Tests for AppConfig defaults and validation."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = AppConfig()
        assert config.ssh.host == "localhost"
        assert config.ssh.port == 2222
        assert config.readiness.marker == DEFAULT_READY_MARKER
        assert config.readiness.timeout == 60
        assert config.readiness.tail_size == 50
        assert config.ssh.github_key_policy.algorithm == "rsa"
        assert config.ssh.key_policy.algorithm == "ed25519"

    def test_frozen(self) -> None:
        """Test that a snapshot cannot be mutated."""
        config = AppConfig()
        with pytest.raises(ValidationError):
            config.ssh = config.ssh

    def test_port_range(self) -> None:
        """Test that ports outside 1-65535 are rejected."""
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"ssh": {"port": 0}})

    def test_unknown_field_rejected(self) -> None:
        """Test extra='forbid'."""
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"unknown": {}})

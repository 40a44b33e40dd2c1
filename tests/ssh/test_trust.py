"""Tests for devvy.ssh.trust module."""

from pathlib import Path

import pytest

from conftest import FakeEngine, FakeRunner, ScriptedPrompter, ok
from devvy.core.errors import CommandLaunchError, DevvyError
from devvy.core.types import ContainerState, ExecResult, SshConfig
from devvy.ssh.known_hosts import KnownHostsStore
from devvy.ssh.trust import TrustManager, fingerprint

OLD_KEY = "[localhost]:2222 ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOLDOLDOLD"
NEW_KEY = "[localhost]:2222 ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAINEWNEWNEW"
GITHUB_KEY = "github.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGITHUBGITHUB"


class TestFingerprint:
    """Tests for fingerprint function."""

    def test_known_blob(self) -> None:
        """Test the SHA256 fingerprint format."""
        result = fingerprint("AAAAC3NzaC1lZDI1NTE5")
        assert result.startswith("SHA256:")
        assert not result.endswith("=")

    def test_invalid_blob(self) -> None:
        """Test a key that is not base64."""
        assert fingerprint("not base64!") == "SHA256:?"


class TestTrustManager:
    """Tests for TrustManager class."""

    @pytest.fixture
    def store(self, temp_dir: Path) -> KnownHostsStore:
        """Create a known_hosts store holding a stale container key."""
        path = temp_dir / ".ssh" / "known_hosts"
        path.parent.mkdir()
        path.write_text(f"{GITHUB_KEY}\n{OLD_KEY}\n", encoding="utf-8")
        return KnownHostsStore(path)

    def make_manager(
        self,
        store: KnownHostsStore,
        runner: FakeRunner,
        prompter: ScriptedPrompter | None = None,
        attempts: int = 3,
    ) -> tuple[TrustManager, list[float]]:
        sleeps: list[float] = []
        manager = TrustManager(
            store,
            runner=runner,
            prompter=prompter,
            keyscan_attempts=attempts,
            initial_delay=0,
            retry_interval=0.5,
            sleep=sleeps.append,
        )
        return manager, sleeps

    def test_from_config(self, store: KnownHostsStore) -> None:
        """Test creating from SshConfig."""
        manager = TrustManager.from_config(store, SshConfig())
        assert manager.store is store

    def test_remove_known_host(self, store: KnownHostsStore) -> None:
        """Test removing the container entry only."""
        manager, _ = self.make_manager(store, FakeRunner())

        assert manager.rotate_for_rebuild("localhost", 2222) == 1
        assert store.path.read_text(encoding="utf-8") == f"{GITHUB_KEY}\n"

    def test_remove_known_host_missing_file(self, temp_dir: Path) -> None:
        """Test that removal never fails on a missing file."""
        manager, _ = self.make_manager(KnownHostsStore(temp_dir / "none"), FakeRunner())
        assert manager.remove_known_host("localhost", 2222) == 0

    def test_scan_retries(self, store: KnownHostsStore) -> None:
        """Test that scanning retries until keys appear."""
        runner = FakeRunner({"ssh-keyscan": [ok(""), ok("# localhost:2222 SSH-2.0\n"), ok(f"{NEW_KEY}\n")]})
        manager, sleeps = self.make_manager(store, runner)

        assert manager.scan_host_keys("localhost", 2222) == [NEW_KEY]
        assert len(runner.calls) == 3
        assert sleeps == [0.5, 0.5]
        assert runner.calls[0][1] == ["-p", "2222", "-T", "5", "localhost"]

    def test_scan_gives_up(self, store: KnownHostsStore) -> None:
        """Test that scanning stops after the configured attempts."""
        runner = FakeRunner({"ssh-keyscan": ok("")})
        manager, sleeps = self.make_manager(store, runner, attempts=2)

        assert manager.scan_host_keys("localhost", 2222) == []
        assert len(runner.calls) == 2
        assert sleeps == [0.5]

    def test_scan_without_keyscan(self, store: KnownHostsStore) -> None:
        """Test a host without ssh-keyscan installed."""

        def runner(command: str, args: list[str], **kwargs: object) -> None:
            raise CommandLaunchError(command, "command not found")

        manager = TrustManager(store, runner=runner, initial_delay=0)
        assert manager.scan_host_keys("localhost", 2222) == []

    def test_add_known_host_replaces_stale_key(self, store: KnownHostsStore) -> None:
        """Test that exactly the scanned key is trusted afterwards."""
        manager, _ = self.make_manager(store, FakeRunner({"ssh-keyscan": ok(f"{NEW_KEY}\n")}))

        assert manager.add_known_host("localhost", 2222, confirm=False)

        assert [entry.to_line() for entry in store.find("localhost", 2222)] == [NEW_KEY]
        assert store.find("github.com", 22)

    def test_add_known_host_waits_initial_delay(self, store: KnownHostsStore) -> None:
        """Test the delay before the first scan."""
        sleeps: list[float] = []
        manager = TrustManager(
            store,
            runner=FakeRunner({"ssh-keyscan": ok(f"{NEW_KEY}\n")}),
            initial_delay=3.0,
            sleep=sleeps.append,
        )

        manager.add_known_host("localhost", 2222)

        assert sleeps == [3.0]

    def test_add_known_host_confirmed(self, store: KnownHostsStore) -> None:
        """Test asking before trusting a scanned key."""
        prompter = ScriptedPrompter(confirms=[True])
        manager, _ = self.make_manager(store, FakeRunner({"ssh-keyscan": ok(f"{NEW_KEY}\n")}), prompter)

        assert manager.add_known_host("localhost", 2222)
        assert prompter.questions[0].startswith("Trust host key for [localhost]:2222 (ssh-ed25519 SHA256:")

    def test_add_known_host_declined(self, store: KnownHostsStore) -> None:
        """Test that a declined key leaves the file untouched."""
        before = store.path.read_text(encoding="utf-8")
        prompter = ScriptedPrompter(confirms=[False])
        manager, _ = self.make_manager(store, FakeRunner({"ssh-keyscan": ok(f"{NEW_KEY}\n")}), prompter)

        assert not manager.add_known_host("localhost", 2222)
        assert store.path.read_text(encoding="utf-8") == before

    def test_add_known_host_unreachable(self, store: KnownHostsStore) -> None:
        """Test a host that never answers."""
        manager, _ = self.make_manager(store, FakeRunner({"ssh-keyscan": ok("")}), attempts=1)

        assert not manager.add_known_host("localhost", 2222)
        assert [entry.to_line() for entry in store.find("localhost", 2222)] == [OLD_KEY]

    def test_remove_known_host_non_utf8_file(self, temp_dir: Path) -> None:
        """Test removal from a known_hosts file with a Latin-1 comment."""
        path = temp_dir / "known_hosts"
        path.write_bytes(b"# caf\xe9 host\n" + OLD_KEY.encode() + b"\n")
        manager, _ = self.make_manager(KnownHostsStore(path), FakeRunner())

        assert manager.remove_known_host("localhost", 2222) == 1
        assert path.read_bytes() == b"# caf\xe9 host\n"

    def test_unreadable_store_is_soft(self, store: KnownHostsStore) -> None:
        """Test that a store that cannot be decoded never fails the caller."""

        class BrokenStore(KnownHostsStore):
            def replace(self, host: str, port: int, lines: object) -> int:
                raise UnicodeDecodeError("utf-8", b"\xe9", 0, 1, "invalid continuation byte")

        broken = BrokenStore(store.path)
        manager, _ = self.make_manager(broken, FakeRunner({"ssh-keyscan": ok(NEW_KEY + "\n")}))

        assert manager.remove_known_host("localhost", 2222) == 0
        assert not manager.add_known_host("localhost", 2222, confirm=False)

    def test_authorize_in_container(self, store: KnownHostsStore) -> None:
        """Test installing authorized_keys through the engine."""
        engine = FakeEngine()
        engine.state = ContainerState.RUNNING
        manager, _ = self.make_manager(store, FakeRunner())

        manager.authorize_in_container(engine, engine.name, "devvy", "ssh-ed25519 AAAA devvy")

        content, mode, owner = engine.files["/home/devvy/.ssh/authorized_keys"]
        assert content == b"ssh-ed25519 AAAA devvy\n"
        assert mode == 0o600
        assert owner == "devvy:devvy"

    def test_authorize_in_container_failure(self, store: KnownHostsStore) -> None:
        """Test a failing permission fix inside the container."""
        engine = FakeEngine()
        engine.state = ContainerState.RUNNING
        engine.exec_results = [ExecResult(exit_code=1, output="chown: invalid user")]
        manager, _ = self.make_manager(store, FakeRunner())

        with pytest.raises(DevvyError) as exc_info:
            manager.authorize_in_container(engine, engine.name, "devvy", "ssh-ed25519 AAAA")
        assert "invalid user" in exc_info.value.message

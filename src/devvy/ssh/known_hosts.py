"""Host-side known_hosts store."""

import base64
import hashlib
import hmac
import logging
import os
import stat
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
HASHED_PREFIX = "|1|"
KNOWN_HOSTS_MODE = stat.S_IRUSR | stat.S_IWUSR


def host_pattern(host: str, port: int) -> str:
    """Get the known_hosts pattern for a host and port.

    Args:
        host: Host name or address.
        port: SSH port.

    Returns:
        ``host`` for the default port, otherwise ``[host]:port``.
    """
    if port == DEFAULT_SSH_PORT:
        return host
    return f"[{host}]:{port}"


def _hashed_host_matches(hashed: str, pattern: str) -> bool:
    try:
        salt_b64, digest_b64 = hashed[len(HASHED_PREFIX):].split("|", 1)
        salt = base64.b64decode(salt_b64)
        digest = base64.b64decode(digest_b64)
    except ValueError:
        return False
    expected = hmac.new(salt, pattern.encode("utf-8"), hashlib.sha1).digest()
    return hmac.compare_digest(expected, digest)


@dataclass(frozen=True)
class KnownHostEntry:
    """One parsed known_hosts line."""

    hosts: str
    key_type: str
    key: str
    marker: str | None = None
    comment: str = ""

    @classmethod
    def parse(cls, line: str) -> "KnownHostEntry | None":
        """Parse a known_hosts line.

        Returns:
            The entry, or None for blank, comment and malformed lines.
        """
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None

        parts = stripped.split()
        marker = None
        if parts[0].startswith("@"):
            marker = parts.pop(0)
        if len(parts) < 3:
            return None
        return cls(
            hosts=parts[0],
            key_type=parts[1],
            key=parts[2],
            marker=marker,
            comment=" ".join(parts[3:]),
        )

    @property
    def is_hashed(self) -> bool:
        """Whether the host field is hashed."""
        return self.hosts.startswith(HASHED_PREFIX)

    def matches(self, pattern: str) -> bool:
        """Check whether this entry applies to a host pattern."""
        if self.is_hashed:
            return _hashed_host_matches(self.hosts, pattern)
        return pattern in self.hosts.split(",")

    def to_line(self) -> str:
        """Render the entry as a known_hosts line."""
        fields = [self.hosts, self.key_type, self.key]
        if self.marker:
            fields.insert(0, self.marker)
        if self.comment:
            fields.append(self.comment)
        return " ".join(fields)


class KnownHostsStore:
    """Reads and rewrites an OpenSSH known_hosts file.

    Every write replaces the file atomically and leaves it with mode 0600.
    Comment and unparsable lines are preserved as-is.
    """

    def __init__(self, path: Path) -> None:
        """Initialize store.

        Args:
            path: known_hosts file path. It need not exist yet.
        """
        self._path = path

    @property
    def path(self) -> Path:
        """Get known_hosts file path."""
        return self._path

    @staticmethod
    def host_pattern(host: str, port: int) -> str:
        """Get the known_hosts pattern for a host and port."""
        return host_pattern(host, port)

    def _read_lines(self) -> list[str]:
        if not self._path.exists():
            return []
        return self._path.read_text(encoding="utf-8", errors="surrogateescape").splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        parent = self._path.parent
        if not parent.exists():
            parent.mkdir(parents=True, mode=0o700)

        fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=".known_hosts.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as f:
                f.write("".join(f"{line}\n" for line in lines))
            os.chmod(tmp_name, KNOWN_HOSTS_MODE)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def entries(self) -> list[KnownHostEntry]:
        """Get all parsable entries."""
        result = []
        for line in self._read_lines():
            entry = KnownHostEntry.parse(line)
            if entry is not None:
                result.append(entry)
        return result

    def find(self, host: str, port: int) -> list[KnownHostEntry]:
        """Get the entries matching a host and port.

        Args:
            host: Host name or address.
            port: SSH port.

        Returns:
            Matching entries, plain or hashed.
        """
        pattern = host_pattern(host, port)
        return [entry for entry in self.entries() if entry.matches(pattern)]

    def remove(self, host: str, port: int) -> int:
        """Remove every entry for a host and port.

        Args:
            host: Host name or address.
            port: SSH port.

        Returns:
            Number of removed entries. A missing file removes nothing.
        """
        return self.replace(host, port, [])

    def append(self, lines: Iterable[str]) -> int:
        """Append entries to the store.

        Args:
            lines: known_hosts lines. Comments and blank lines are skipped.

        Returns:
            Number of appended entries.
        """
        new_entries = [e for e in (KnownHostEntry.parse(line) for line in lines) if e]
        if not new_entries:
            return 0
        current = self._read_lines()
        self._write_lines(current + [entry.to_line() for entry in new_entries])
        return len(new_entries)

    def replace(self, host: str, port: int, lines: Iterable[str]) -> int:
        """Remove every entry for a host and port, then append ``lines``.

        Both happen in a single write.

        Returns:
            Number of removed entries.
        """
        pattern = host_pattern(host, port)
        new_entries = [e for e in (KnownHostEntry.parse(line) for line in lines) if e]

        kept: list[str] = []
        removed = 0
        for line in self._read_lines():
            entry = KnownHostEntry.parse(line)
            if entry is not None and entry.matches(pattern):
                removed += 1
                continue
            kept.append(line)

        if removed == 0 and not new_entries:
            return 0

        self._write_lines(kept + [entry.to_line() for entry in new_entries])
        logger.debug(
            "Replaced known_hosts entries for %s: removed %d, added %d",
            pattern,
            removed,
            len(new_entries),
        )
        return removed

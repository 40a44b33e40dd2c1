"""SSH trust and key layer for devvy."""

from devvy.ssh.client import SessionCommand, SSHCommandBuilder
from devvy.ssh.keys import SSHKeyManager, SSHKeyPair
from devvy.ssh.known_hosts import KnownHostEntry, KnownHostsStore, host_pattern
from devvy.ssh.trust import TrustManager

__all__ = [
    "KnownHostEntry",
    "KnownHostsStore",
    "SSHCommandBuilder",
    "SSHKeyManager",
    "SSHKeyPair",
    "SessionCommand",
    "TrustManager",
    "host_pattern",
]

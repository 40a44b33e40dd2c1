"""SSH key generation and management."""

import logging
import os
import stat
from pathlib import Path
from typing import NamedTuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from devvy.core.paths import AUTHORIZED_KEYS_FILENAME
from devvy.core.types import KeyPolicy

logger = logging.getLogger(__name__)

PRIVATE_KEY_MODE = stat.S_IRUSR | stat.S_IWUSR
PUBLIC_KEY_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH


class SSHKeyPair(NamedTuple):
    """SSH key pair."""

    private_key_path: Path
    public_key_path: Path
    public_key_content: str

    @property
    def comment(self) -> str:
        """Get the comment field of the public key, if any."""
        parts = self.public_key_content.strip().split(None, 2)
        return parts[2] if len(parts) == 3 else ""


class SSHKeyManager:
    """Manages SSH key generation, storage, and cleanup.

    An existing private key is never overwritten implicitly. A key that may
    already be registered with a remote service is only replaced through
    ``rotate_key_pair``.
    """

    def __init__(self, keys_dir: Path) -> None:
        """Initialize SSH key manager.

        Args:
            keys_dir: Directory to store SSH keys.
        """
        self._keys_dir = keys_dir
        self._keys_dir.mkdir(parents=True, exist_ok=True)

    @property
    def keys_dir(self) -> Path:
        """Get keys directory."""
        return self._keys_dir

    def _paths(self, name: str) -> tuple[Path, Path]:
        return self._keys_dir / name, self._keys_dir / f"{name}.pub"

    def generate_key_pair(self, name: str, policy: KeyPolicy | None = None) -> SSHKeyPair:
        """Generate a new SSH key pair.

        Args:
            name: Base name for the key files.
            policy: Algorithm, size and comment. Defaults to Ed25519.

        Returns:
            SSHKeyPair with paths and public key content.

        Raises:
            FileExistsError: If a private key already exists under ``name``.
        """
        policy = policy or KeyPolicy()
        private_key_path, public_key_path = self._paths(name)
        if private_key_path.exists():
            raise FileExistsError(f"SSH key already exists: {private_key_path}")

        if policy.algorithm == "rsa":
            private_key = rsa.generate_private_key(
                public_exponent=65537, key_size=policy.bits
            )
        else:
            private_key = ed25519.Ed25519PrivateKey.generate()

        private_key_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )

        # 0600 from creation
        fd = os.open(private_key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, PRIVATE_KEY_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(private_key_bytes)
        os.chmod(private_key_path, PRIVATE_KEY_MODE)

        public_key_content = public_key_bytes.decode("utf-8")
        if policy.comment:
            public_key_content = f"{public_key_content} {policy.comment}"
        public_key_path.write_text(public_key_content + "\n", encoding="utf-8")
        os.chmod(public_key_path, PUBLIC_KEY_MODE)

        logger.info("Generated %s key pair at %s", policy.algorithm, private_key_path)
        return SSHKeyPair(
            private_key_path=private_key_path,
            public_key_path=public_key_path,
            public_key_content=public_key_content,
        )

    def get_key_pair(self, name: str) -> SSHKeyPair | None:
        """Get existing key pair.

        Args:
            name: Base name for the key files.

        Returns:
            SSHKeyPair if exists, None otherwise.
        """
        private_key_path, public_key_path = self._paths(name)

        if not private_key_path.exists() or not public_key_path.exists():
            return None

        public_key_content = public_key_path.read_text(encoding="utf-8").strip()

        return SSHKeyPair(
            private_key_path=private_key_path,
            public_key_path=public_key_path,
            public_key_content=public_key_content,
        )

    def get_or_create_key_pair(self, name: str, policy: KeyPolicy | None = None) -> SSHKeyPair:
        """Get existing or create new key pair.

        If only the private key exists, the public half is derived from it
        instead of generating a new key.

        Args:
            name: Base name for the key files.
            policy: Used only when a new key has to be generated.

        Returns:
            SSHKeyPair.
        """
        existing = self.get_key_pair(name)
        if existing:
            logger.debug("Reusing existing key pair %s", existing.private_key_path)
            return existing

        private_key_path, _ = self._paths(name)
        if private_key_path.exists():
            return self._restore_public_key(name, policy or KeyPolicy())
        return self.generate_key_pair(name, policy)

    def _restore_public_key(self, name: str, policy: KeyPolicy) -> SSHKeyPair:
        private_key_path, public_key_path = self._paths(name)
        private_key = serialization.load_ssh_private_key(
            private_key_path.read_bytes(), password=None
        )
        public_key_content = (
            private_key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.OpenSSH,
                format=serialization.PublicFormat.OpenSSH,
            )
            .decode("utf-8")
        )
        if policy.comment:
            public_key_content = f"{public_key_content} {policy.comment}"
        public_key_path.write_text(public_key_content + "\n", encoding="utf-8")
        os.chmod(public_key_path, PUBLIC_KEY_MODE)
        logger.info("Restored missing public key %s", public_key_path)
        return SSHKeyPair(private_key_path, public_key_path, public_key_content)

    def rotate_key_pair(self, name: str, policy: KeyPolicy | None = None) -> SSHKeyPair:
        """Replace a key pair with a freshly generated one.

        Args:
            name: Base name for the key files.
            policy: Key generation parameters.

        Returns:
            The new SSHKeyPair.
        """
        self.delete_key_pair(name)
        return self.generate_key_pair(name, policy)

    def delete_key_pair(self, name: str) -> bool:
        """Delete a key pair.

        Args:
            name: Base name for the key files.

        Returns:
            True if deleted, False if not found.
        """
        deleted = False
        for path in self._paths(name):
            if path.exists():
                path.unlink()
                deleted = True
        return deleted

    def write_authorized_keys(self, *pairs: SSHKeyPair) -> Path:
        """Write an authorized_keys file holding the given public keys.

        The compose file mounts this file into the container.

        Returns:
            Path of the written file.
        """
        path = self._keys_dir / AUTHORIZED_KEYS_FILENAME
        content = "".join(f"{pair.public_key_content.strip()}\n" for pair in pairs)
        path.write_text(content, encoding="utf-8")
        os.chmod(path, PUBLIC_KEY_MODE)
        return path

    def cleanup_all(self) -> int:
        """Delete every file in the keys directory tree.

        Returns:
            Number of files deleted.
        """
        count = 0
        for key_file in sorted(self._keys_dir.rglob("*"), reverse=True):
            if key_file.is_file():
                key_file.unlink()
                count += 1
            elif key_file.is_dir():
                key_file.rmdir()
        return count

    def list_keys(self) -> list[str]:
        """List all key names in the keys directory.

        Returns:
            List of key names (without .pub extension).
        """
        keys = set()
        for key_file in self._keys_dir.glob("*"):
            if not key_file.is_file() or key_file.name == AUTHORIZED_KEYS_FILENAME:
                continue
            if key_file.name.startswith("."):
                continue
            name = key_file.stem if key_file.suffix == ".pub" else key_file.name
            keys.add(name)
        return sorted(keys)

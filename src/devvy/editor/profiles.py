"""Supported editors and where they keep their user configuration."""

import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EditorKind(Enum):
    """Editors whose settings can be synced."""

    VSCODE = "vscode"
    CURSOR = "cursor"

    @classmethod
    def parse(cls, value: str) -> "EditorKind":
        """Parse an editor name as typed on the command line.

        Args:
            value: ``vscode``, ``code`` or ``cursor`` (case-insensitive).

        Raises:
            ValueError: For unknown editors.
        """
        normalized = value.strip().lower()
        aliases = {"code": cls.VSCODE, "vs-code": cls.VSCODE}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unknown editor: {value} (supported: {supported})") from None


@dataclass(frozen=True)
class EditorPaths:
    """Resolved configuration locations of one editor on this machine."""

    config_dir: Path
    settings: Path
    keybindings: Path
    snippets: Path
    extensions: Path


@dataclass(frozen=True)
class EditorProfile:
    """One row of the editor table.

    Attributes:
        kind: Editor variant.
        display_name: Name shown to the user.
        command: Launcher on the search path.
        app_dir: Directory name under the platform's application data dir.
        dot_dir: Home dot directory holding extensions on macOS.
        install_url: Where to get the editor.
    """

    kind: EditorKind
    display_name: str
    command: str
    app_dir: str
    dot_dir: str
    install_url: str

    def paths(self, home: Path | None = None, platform: str | None = None) -> EditorPaths:
        """Resolve configuration paths.

        Args:
            home: Home directory. Defaults to the current user's.
            platform: ``sys.platform`` value. Defaults to the running one.
        """
        home = home or Path.home()
        platform = platform or sys.platform

        if platform == "darwin":
            base = home / "Library" / "Application Support" / self.app_dir
            extensions = home / self.dot_dir / "extensions"
        elif platform == "win32":
            base = home / "AppData" / "Roaming" / self.app_dir
            extensions = base / "extensions"
        else:
            base = home / ".config" / self.app_dir
            extensions = base / "extensions"

        user_dir = base / "User"
        return EditorPaths(
            config_dir=base,
            settings=user_dir / "settings.json",
            keybindings=user_dir / "keybindings.json",
            snippets=user_dir / "snippets",
            extensions=extensions,
        )


EDITOR_PROFILES: dict[EditorKind, EditorProfile] = {
    EditorKind.VSCODE: EditorProfile(
        kind=EditorKind.VSCODE,
        display_name="VS Code",
        command="code",
        app_dir="Code",
        dot_dir=".vscode",
        install_url="https://code.visualstudio.com",
    ),
    EditorKind.CURSOR: EditorProfile(
        kind=EditorKind.CURSOR,
        display_name="Cursor",
        command="cursor",
        app_dir="Cursor",
        dot_dir=".cursor",
        install_url="https://cursor.sh",
    ),
}

# Cursor is a VS Code fork; check it first
DETECTION_ORDER = (EditorKind.CURSOR, EditorKind.VSCODE)


def get_profile(kind: EditorKind) -> EditorProfile:
    """Get the table row of an editor."""
    return EDITOR_PROFILES[kind]


def attached_container_uri(container_name: str, folder: str) -> str:
    """Build the Dev Containers URI that opens a folder in a running container.

    Args:
        container_name: Container name.
        folder: Absolute folder path inside the container.

    Returns:
        ``vscode-remote://attached-container+<hex name><folder>``.
    """
    if not folder.startswith("/"):
        folder = f"/{folder}"
    return f"vscode-remote://attached-container+{container_name.encode('utf-8').hex()}{folder}"


def workspace_folders(host_dir: Path, container_dir: str) -> list[tuple[str, str]]:
    """List the folders an editor can open inside the container.

    Git worktree directories (``<project>-worktrees``) contribute one entry
    per worktree instead of one for the directory itself.

    Args:
        host_dir: Projects directory on the host.
        container_dir: Where ``host_dir`` is mounted in the container.

    Returns:
        ``(label, container path)`` pairs, sorted by label.
    """
    if not host_dir.is_dir():
        return []

    folders = []
    for entry in sorted(host_dir.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if entry.name.endswith("-worktrees"):
            project = entry.name[: -len("-worktrees")]
            for worktree in sorted(entry.iterdir()):
                if worktree.is_dir():
                    folders.append(
                        (f"{project}/{worktree.name}", f"{container_dir}/{entry.name}/{worktree.name}")
                    )
        else:
            folders.append((entry.name, f"{container_dir}/{entry.name}"))
    return sorted(folders)

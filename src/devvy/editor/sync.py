"""Editor settings import and export.

The project-local editor config directory is mounted into the container.
Importing copies the host editor's settings, keybindings, snippets and
extension list into it; exporting writes them back to the host editor.
"""

import json
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from devvy.core import shell
from devvy.core.errors import CommandLaunchError, DevvyError
from devvy.core.shell import ShellResult
from devvy.editor.profiles import DETECTION_ORDER, EditorKind, EditorPaths, get_profile

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
KEYBINDINGS_FILE = "keybindings.json"
EXTENSIONS_FILE = "extensions.txt"
SNIPPETS_DIR = "snippets"

EXTENSION_COMMAND_TIMEOUT = 120


@dataclass
class SyncReport:
    """What a sync copied."""

    copied: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    extensions: int | None = None
    failed_extensions: list[str] = field(default_factory=list)


def _read_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DevvyError(
            f"{path} is not valid JSON (line {e.lineno}): {e.msg}",
            remediation=[f"Fix or remove {path} and try again"],
        ) from e


def _write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


class EditorSync:
    """Moves editor configuration between the host editor and the project."""

    def __init__(
        self,
        project_config_dir: Path,
        runner: Callable[..., ShellResult] = shell.run,
        home: Path | None = None,
        platform: str | None = None,
    ) -> None:
        """Initialize editor sync.

        Args:
            project_config_dir: Project-local editor config directory.
            runner: Captured-mode process runner for the editor launcher.
            home: Home directory used to locate editor configs.
            platform: ``sys.platform`` value used to locate editor configs.
        """
        self._project_dir = project_config_dir
        self._runner = runner
        self._home = home
        self._platform = platform

    @property
    def project_config_dir(self) -> Path:
        """Get project-local editor config directory."""
        return self._project_dir

    def paths(self, kind: EditorKind) -> EditorPaths:
        """Get the host configuration paths of an editor."""
        return get_profile(kind).paths(self._home, self._platform)

    def installed(self) -> list[EditorKind]:
        """Get every editor whose configuration directory exists."""
        return [kind for kind in DETECTION_ORDER if self.paths(kind).config_dir.exists()]

    def detect(self) -> EditorKind | None:
        """Detect the installed editor by its configuration directory.

        Returns:
            Detected editor, Cursor before VS Code, or None.
        """
        installed = self.installed()
        if not installed:
            logger.debug("No VS Code or Cursor installation detected")
            return None
        logger.debug("Detected %s installation", get_profile(installed[0]).display_name)
        return installed[0]

    def has_project_settings(self) -> bool:
        """Check whether the project holds non-empty editor settings."""
        settings = self._project_dir / SETTINGS_FILE
        if not settings.exists():
            return False
        content = settings.read_text(encoding="utf-8").strip()
        return bool(content) and content != "{}"

    def import_settings(self, kind: EditorKind) -> SyncReport:
        """Copy host editor configuration into the project.

        Args:
            kind: Editor to import from.

        Returns:
            SyncReport.
        """
        paths = self.paths(kind)
        report = SyncReport()
        self._project_dir.mkdir(parents=True, exist_ok=True)

        for source, name in ((paths.settings, SETTINGS_FILE), (paths.keybindings, KEYBINDINGS_FILE)):
            if source.exists():
                shutil.copyfile(source, self._project_dir / name)
                report.copied.append(name)
            else:
                report.missing.append(name)

        report.extensions = self.import_extensions(kind)

        if paths.snippets.is_dir():
            shutil.copytree(paths.snippets, self._project_dir / SNIPPETS_DIR, dirs_exist_ok=True)
            report.copied.append(f"{SNIPPETS_DIR}/")

        logger.info("Imported %s settings into %s", get_profile(kind).display_name, self._project_dir)
        return report

    def export_settings(self, kind: EditorKind) -> SyncReport:
        """Write the project's editor configuration back to the host editor.

        Settings are merged over the editor's existing settings; keybindings
        replace the existing ones.

        Args:
            kind: Editor to export to.

        Returns:
            SyncReport.
        """
        paths = self.paths(kind)
        report = SyncReport()

        settings_source = self._project_dir / SETTINGS_FILE
        if settings_source.exists():
            settings = _read_json(settings_source)
            existing = _read_json(paths.settings) if paths.settings.exists() else {}
            if not isinstance(settings, dict) or not isinstance(existing, dict):
                raise DevvyError("settings.json must contain a JSON object")
            _write_json(paths.settings, {**existing, **settings})
            report.copied.append(SETTINGS_FILE)
        else:
            report.missing.append(SETTINGS_FILE)

        keybindings_source = self._project_dir / KEYBINDINGS_FILE
        if keybindings_source.exists():
            _write_json(paths.keybindings, _read_json(keybindings_source))
            report.copied.append(KEYBINDINGS_FILE)
        else:
            report.missing.append(KEYBINDINGS_FILE)

        installed, failed = self.install_extensions(kind)
        report.extensions = installed
        report.failed_extensions = failed

        snippets_source = self._project_dir / SNIPPETS_DIR
        if snippets_source.is_dir():
            shutil.copytree(snippets_source, paths.snippets, dirs_exist_ok=True)
            report.copied.append(f"{SNIPPETS_DIR}/")

        logger.info("Exported project settings to %s", get_profile(kind).display_name)
        return report

    def import_extensions(self, kind: EditorKind) -> int | None:
        """Write the editor's installed extensions to ``extensions.txt``.

        Returns:
            Number of extensions, or None if the launcher is unavailable.
        """
        profile = get_profile(kind)
        try:
            result = self._runner(
                profile.command, ["--list-extensions"], timeout=EXTENSION_COMMAND_TIMEOUT
            )
        except CommandLaunchError:
            logger.warning("Could not fetch extensions from %s", profile.display_name)
            return None
        if not result.success:
            logger.warning("Could not fetch extensions from %s", profile.display_name)
            return None

        extensions = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        self._project_dir.mkdir(parents=True, exist_ok=True)
        (self._project_dir / EXTENSIONS_FILE).write_text("\n".join(extensions), encoding="utf-8")
        return len(extensions)

    def read_extensions(self) -> list[str]:
        """Get the extension ids listed in ``extensions.txt``."""
        path = self._project_dir / EXTENSIONS_FILE
        if not path.exists():
            return []
        return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]

    def install_extensions(self, kind: EditorKind) -> tuple[int, list[str]]:
        """Install every extension listed in ``extensions.txt``.

        Returns:
            Tuple of (newly installed count, failed extension ids).
        """
        profile = get_profile(kind)
        extensions = self.read_extensions()
        installed = 0
        failed: list[str] = []

        for extension in extensions:
            try:
                result = self._runner(
                    profile.command,
                    ["--install-extension", extension],
                    timeout=EXTENSION_COMMAND_TIMEOUT,
                )
            except CommandLaunchError:
                logger.warning("%s launcher not found, skipping extensions", profile.display_name)
                return installed, extensions[extensions.index(extension):]
            if not result.success:
                logger.warning("Failed to install %s", extension)
                failed.append(extension)
            elif "already installed" in result.stderr or "already installed" in result.stdout:
                logger.debug("%s already installed", extension)
            else:
                installed += 1

        return installed, failed

    def ensure_project_config(self) -> None:
        """Create the project config directory with empty defaults."""
        self._project_dir.mkdir(parents=True, exist_ok=True)
        if not (self._project_dir / SETTINGS_FILE).exists():
            _write_json(self._project_dir / SETTINGS_FILE, {})
        if not (self._project_dir / KEYBINDINGS_FILE).exists():
            _write_json(self._project_dir / KEYBINDINGS_FILE, [])
        if not (self._project_dir / EXTENSIONS_FILE).exists():
            (self._project_dir / EXTENSIONS_FILE).write_text("", encoding="utf-8")

    def reset_project_config(self) -> None:
        """Reset the project config to empty defaults and drop snippets."""
        self._project_dir.mkdir(parents=True, exist_ok=True)
        _write_json(self._project_dir / SETTINGS_FILE, {})
        _write_json(self._project_dir / KEYBINDINGS_FILE, [])
        (self._project_dir / EXTENSIONS_FILE).write_text("", encoding="utf-8")
        snippets = self._project_dir / SNIPPETS_DIR
        if snippets.is_dir():
            shutil.rmtree(snippets)

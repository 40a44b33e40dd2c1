"""Editor integration for devvy."""

from devvy.editor.profiles import (
    EDITOR_PROFILES,
    EditorKind,
    EditorPaths,
    EditorProfile,
    attached_container_uri,
    get_profile,
    workspace_folders,
)
from devvy.editor.sync import EditorSync, SyncReport

__all__ = [
    "EDITOR_PROFILES",
    "EditorKind",
    "EditorPaths",
    "EditorProfile",
    "EditorSync",
    "SyncReport",
    "attached_container_uri",
    "get_profile",
    "workspace_folders",
]

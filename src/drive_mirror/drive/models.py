# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

from ..constants import GDRIVE_FOLDER_MIME, GDRIVE_MIME_PREFIX, GDRIVE_SHORTCUT_MIME

NodeKind = Literal["folder", "native", "opaque", "shortcut"]

KIND_FOLDER: NodeKind = "folder"
KIND_NATIVE: NodeKind = "native"
KIND_OPAQUE: NodeKind = "opaque"
KIND_SHORTCUT: NodeKind = "shortcut"


def classify_mime(mime_type: str) -> NodeKind:
    """Classifica un MIME Drive: cartella, scorciatoia, documento nativo o file opaco."""
    if mime_type == GDRIVE_FOLDER_MIME:
        return KIND_FOLDER
    if mime_type == GDRIVE_SHORTCUT_MIME:
        return KIND_SHORTCUT
    if mime_type.startswith(GDRIVE_MIME_PREFIX):
        return KIND_NATIVE
    return KIND_OPAQUE


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class RemoteNode:
    """Snapshot immutabile di un elemento restituito da `files.list`."""

    id: str
    name: str
    mime_type: str
    size: Optional[int] = None
    md5_checksum: Optional[str] = None
    shortcut_target_id: Optional[str] = None
    shortcut_target_mime: Optional[str] = None

    @property
    def kind(self) -> NodeKind:
        return classify_mime(self.mime_type)

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "RemoteNode":
        shortcut = payload.get("shortcutDetails") or {}
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            mime_type=str(payload.get("mimeType") or ""),
            size=_opt_int(payload.get("size")),
            md5_checksum=payload.get("md5Checksum") or None,
            shortcut_target_id=shortcut.get("targetId") or None,
            shortcut_target_mime=shortcut.get("targetMimeType") or None,
        )

    def resolve_shortcut(self) -> "RemoteNode":
        """Ritorna il nodo puntato da una scorciatoia (nome invariato, niente size/md5).

        Se il nodo non è una scorciatoia, o la scorciatoia non espone il target, ritorna self.
        """
        if self.kind != KIND_SHORTCUT or not self.shortcut_target_id:
            return self
        return RemoteNode(
            id=self.shortcut_target_id,
            name=self.name,
            mime_type=self.shortcut_target_mime or "",
        )


__all__ = [
    "NodeKind",
    "KIND_FOLDER",
    "KIND_NATIVE",
    "KIND_OPAQUE",
    "KIND_SHORTCUT",
    "classify_mime",
    "RemoteNode",
]

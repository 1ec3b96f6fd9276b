# SPDX-License-Identifier: GPL-3.0-or-later
# tests/_helpers/fake_drive.py
"""Doppi di test per il resource Drive v3 e per `MediaIoBaseDownload`.

`FakeDrive` simula `files().list/get_media/export_media` su un albero in memoria:
- `folders[folder_id]` è una lista di pagine, ogni pagina una lista di payload `files.list`;
- `contents[file_id]` sono i byte serviti da get_media/export_media;
- `list_errors` / `media_errors` iniettano eccezioni (una lista = una per chiamata, poi successo).
"""

from __future__ import annotations

import re
import threading
import types
from typing import Any, Dict, List, Optional

from drive_mirror.constants import GDRIVE_FOLDER_MIME, GDRIVE_SHORTCUT_MIME

_PARENT_RE = re.compile(r"'([^']+)' in parents")


def folder(file_id: str, name: str) -> Dict[str, Any]:
    return {"id": file_id, "name": name, "mimeType": GDRIVE_FOLDER_MIME}


def opaque(
    file_id: str,
    name: str,
    *,
    size: Optional[int] = None,
    md5: Optional[str] = None,
    mime: str = "application/octet-stream",
) -> Dict[str, Any]:
    item: Dict[str, Any] = {"id": file_id, "name": name, "mimeType": mime}
    if size is not None:
        item["size"] = str(size)
    if md5 is not None:
        item["md5Checksum"] = md5
    return item


def native(file_id: str, name: str, mime: str) -> Dict[str, Any]:
    return {"id": file_id, "name": name, "mimeType": mime}


def shortcut(file_id: str, name: str, target_id: str, target_mime: str) -> Dict[str, Any]:
    return {
        "id": file_id,
        "name": name,
        "mimeType": GDRIVE_SHORTCUT_MIME,
        "shortcutDetails": {"targetId": target_id, "targetMimeType": target_mime},
    }


class _Exec:
    def __init__(self, fn: Any) -> None:
        self._fn = fn

    def execute(self) -> Any:
        return self._fn()


class FakeMediaRequest(types.SimpleNamespace):
    """Richiesta media: porta i byte da servire o l'errore da sollevare in `next_chunk`."""


class FakeDrive:
    def __init__(
        self,
        folders: Optional[Dict[str, List[List[Dict[str, Any]]]]] = None,
        contents: Optional[Dict[str, bytes]] = None,
    ) -> None:
        self.folders = folders or {}
        self.contents = contents or {}
        self.list_errors: Dict[str, Any] = {}
        self.media_errors: Dict[str, BaseException] = {}
        self.list_calls: List[Dict[str, Any]] = []
        self.media_calls: List[Dict[str, Any]] = []
        self.export_calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def files(self) -> "FakeDrive":
        return self

    # files().list(...).execute()
    def list(self, **kwargs: Any) -> _Exec:
        with self._lock:
            self.list_calls.append(kwargs)
        match = _PARENT_RE.search(kwargs.get("q", ""))
        folder_id = match.group(1) if match else ""

        def _run() -> Dict[str, Any]:
            err = self.list_errors.get(folder_id)
            if isinstance(err, list):
                if err:
                    raise err.pop(0)
            elif err is not None:
                raise err
            pages = self.folders.get(folder_id, [[]])
            token = kwargs.get("pageToken")
            idx = int(token[1:]) if token else 0
            resp: Dict[str, Any] = {"files": pages[idx]}
            if idx + 1 < len(pages):
                resp["nextPageToken"] = f"p{idx + 1}"
            return resp

        return _Exec(_run)

    def get_media(self, **kwargs: Any) -> FakeMediaRequest:
        with self._lock:
            self.media_calls.append(kwargs)
        file_id = kwargs["fileId"]
        return FakeMediaRequest(
            file_id=file_id,
            payload=self.contents.get(file_id, b""),
            error=self.media_errors.get(file_id),
        )

    def export_media(self, **kwargs: Any) -> FakeMediaRequest:
        with self._lock:
            self.export_calls.append(kwargs)
        file_id = kwargs["fileId"]
        return FakeMediaRequest(
            file_id=file_id,
            payload=self.contents.get(file_id, b"exported"),
            error=self.media_errors.get(file_id),
        )

    # ------------------------------------------------------------- helper di test
    def listed_folders(self) -> List[str]:
        out: List[str] = []
        for call in self.list_calls:
            match = _PARENT_RE.search(call.get("q", ""))
            if match and not call.get("pageToken"):
                out.append(match.group(1))
        return out

    def media_ids(self) -> List[str]:
        return [c["fileId"] for c in self.media_calls]


class FakeDownloader:
    """Sostituto di `MediaIoBaseDownload`: un solo chunk con l'intero payload."""

    def __init__(self, fd: Any, request: FakeMediaRequest, chunksize: int = 0) -> None:
        self._fd = fd
        self._request = request
        self.chunksize = chunksize
        self.num_retries: Optional[int] = None

    def next_chunk(self, num_retries: int = 0) -> Any:
        self.num_retries = num_retries
        if self._request.error is not None:
            raise self._request.error
        self._fd.write(self._request.payload)
        return None, True


class LoggerStub:
    def __init__(self) -> None:
        self.infos: list[tuple[str, dict[str, Any] | None]] = []
        self.warnings: list[tuple[str, dict[str, Any] | None]] = []
        self.debugs: list[tuple[str, dict[str, Any] | None]] = []
        self.errors: list[tuple[str, dict[str, Any] | None]] = []
        self._lock = threading.Lock()

    def _add(self, bucket: list[tuple[str, dict[str, Any] | None]], event: str, extra: Any) -> None:
        with self._lock:
            bucket.append((event, extra))

    def info(self, event: str, *, extra: dict[str, Any] | None = None) -> None:
        self._add(self.infos, event, extra)

    def warning(self, event: str, *, extra: dict[str, Any] | None = None) -> None:
        self._add(self.warnings, event, extra)

    def debug(self, event: str, *, extra: dict[str, Any] | None = None) -> None:
        self._add(self.debugs, event, extra)

    def error(self, event: str, *, extra: dict[str, Any] | None = None) -> None:
        self._add(self.errors, event, extra)

    def events(self, bucket: str) -> list[str]:
        return [e for e, _ in getattr(self, bucket)]

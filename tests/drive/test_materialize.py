# SPDX-License-Identifier: GPL-3.0-or-later
# tests/drive/test_materialize.py
from __future__ import annotations

import hashlib
import os
import stat
from pathlib import Path

import pytest

from drive_mirror.config import MirrorOptions
from drive_mirror.constants import GDRIVE_DOCUMENT_MIME, GDRIVE_SPREADSHEET_MIME, PDF_MIME_TYPE, XLSX_MIME_TYPE
from drive_mirror.drive.materialize import download_file, export_file
from drive_mirror.drive.models import RemoteNode
from drive_mirror.exceptions import LocalIOError, TransferError
from tests._helpers.fake_drive import FakeDrive

pytestmark = pytest.mark.usefixtures("fake_downloader")


def _leftovers(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if p.name.endswith(".part"))


def test_download_writes_file_and_creates_parent(tmp_path: Path):
    payload = b"hello drive"
    drive = FakeDrive(contents={"f1": payload})
    node = RemoteNode("f1", "a.txt", "text/plain", size=len(payload), md5_checksum=hashlib.md5(payload).hexdigest())
    dest = tmp_path / "out" / "Sub" / "a.txt"

    written = download_file(drive, node, dest, MirrorOptions(include_shared_drives=True))

    assert written == len(payload)
    assert dest.read_bytes() == payload
    assert drive.media_calls == [{"fileId": "f1", "supportsAllDrives": True}]
    assert _leftovers(dest.parent) == []


def test_download_overwrites_existing_file(tmp_path: Path):
    dest = tmp_path / "a.txt"
    dest.write_bytes(b"vecchio contenuto molto lungo")
    drive = FakeDrive(contents={"f1": b"nuovo"})

    download_file(drive, RemoteNode("f1", "a.txt", "text/plain", size=5), dest)

    assert dest.read_bytes() == b"nuovo"


def test_checksum_mismatch_leaves_no_file(tmp_path: Path):
    drive = FakeDrive(contents={"f1": b"corrotto"})
    node = RemoteNode("f1", "a.txt", "text/plain", size=8, md5_checksum="0" * 32)
    dest = tmp_path / "a.txt"

    with pytest.raises(TransferError) as excinfo:
        download_file(drive, node, dest)

    assert excinfo.value.drive_id == "f1"
    assert not dest.exists()
    assert _leftovers(tmp_path) == []


def test_checksum_ignored_when_verification_disabled(tmp_path: Path):
    drive = FakeDrive(contents={"f1": b"corrotto"})
    node = RemoteNode("f1", "a.txt", "text/plain", size=8, md5_checksum="0" * 32)
    dest = tmp_path / "a.txt"

    assert download_file(drive, node, dest, MirrorOptions(verify_checksum=False)) == 8
    assert dest.read_bytes() == b"corrotto"


def test_interrupted_transfer_keeps_previous_file(tmp_path: Path):
    dest = tmp_path / "a.txt"
    dest.write_bytes(b"versione precedente")
    drive = FakeDrive(contents={"f1": b"x"})
    drive.media_errors["f1"] = ConnectionError("connection reset by peer")

    with pytest.raises(TransferError) as excinfo:
        download_file(drive, RemoteNode("f1", "a.txt", "text/plain", size=1), dest)

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert dest.read_bytes() == b"versione precedente"
    assert _leftovers(tmp_path) == []


def test_chunk_retries_follow_max_attempts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from drive_mirror.drive import materialize
    from tests._helpers.fake_drive import FakeDownloader

    seen = []

    class _Recording(FakeDownloader):
        def next_chunk(self, num_retries: int = 0):
            seen.append((self.chunksize, num_retries))
            return super().next_chunk(num_retries=num_retries)

    monkeypatch.setattr(materialize, "MediaIoBaseDownload", _Recording)
    drive = FakeDrive(contents={"f1": b"abc"})
    opts = MirrorOptions(max_attempts=4, chunk_size=512 * 1024)

    download_file(drive, RemoteNode("f1", "a.txt", "text/plain", size=3), tmp_path / "a.txt", opts)

    assert seen == [(512 * 1024, 3)]


def test_empty_file_needs_no_remote_call(tmp_path: Path):
    drive = FakeDrive()
    dest = tmp_path / "vuoto.txt"

    assert download_file(drive, RemoteNode("f0", "vuoto.txt", "text/plain", size=0), dest) == 0
    assert dest.exists() and dest.stat().st_size == 0
    assert drive.media_calls == []


def test_parent_creation_failure_is_local_io_error(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    drive = FakeDrive(contents={"f1": b"abc"})

    with pytest.raises(LocalIOError):
        download_file(drive, RemoteNode("f1", "a.txt", "text/plain", size=3), blocker / "sub" / "a.txt")
    assert drive.media_calls == []


def test_export_parent_creation_failure_makes_no_remote_call(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    drive = FakeDrive()

    with pytest.raises(LocalIOError):
        export_file(drive, RemoteNode("d1", "Report", GDRIVE_DOCUMENT_MIME), blocker / "sub")
    assert drive.export_calls == []


@pytest.mark.skipif(os.name == "nt", reason="permessi POSIX")
@pytest.mark.parametrize("size, payload", [(3, b"abc"), (0, b"")])
def test_committed_file_follows_umask(tmp_path: Path, size: int, payload: bytes):
    previous = os.umask(0o022)
    os.umask(previous)
    drive = FakeDrive(contents={"f1": payload})
    dest = tmp_path / "a.txt"

    download_file(drive, RemoteNode("f1", "a.txt", "text/plain", size=size), dest)

    assert stat.S_IMODE(dest.stat().st_mode) == 0o666 & ~previous


def test_export_uses_rule_and_extension(tmp_path: Path):
    drive = FakeDrive(contents={"d1": b"%PDF-1.4"})
    node = RemoteNode("d1", "Report", GDRIVE_DOCUMENT_MIME)

    path, written = export_file(drive, node, tmp_path)

    assert path == tmp_path / "Report.pdf"
    assert written == len(b"%PDF-1.4")
    assert path.read_bytes() == b"%PDF-1.4"
    assert drive.export_calls == [{"fileId": "d1", "mimeType": PDF_MIME_TYPE}]
    assert drive.media_calls == []


def test_export_does_not_double_extension(tmp_path: Path):
    drive = FakeDrive(contents={"s1": b"PK"})
    node = RemoteNode("s1", "Budget.xlsx", GDRIVE_SPREADSHEET_MIME)

    path, _ = export_file(drive, node, tmp_path)

    assert path.name == "Budget.xlsx"
    assert drive.export_calls[0]["mimeType"] == XLSX_MIME_TYPE


def test_export_failure_leaves_nothing(tmp_path: Path):
    drive = FakeDrive()
    drive.media_errors["d1"] = TimeoutError("timed out")

    with pytest.raises(TransferError):
        export_file(drive, RemoteNode("d1", "Report", GDRIVE_DOCUMENT_MIME), tmp_path)
    assert os.listdir(tmp_path) == []

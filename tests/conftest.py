from __future__ import annotations

# SPDX-License-Identifier: GPL-3.0-or-later
# tests/conftest.py
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
for candidate in (REPO_ROOT, SRC_ROOT):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

from tests._helpers.fake_drive import FakeDownloader, FakeDrive  # noqa: E402

_ENV_KEYS = (
    "SERVICE_ACCOUNT_FILE",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "DRIVE_MIRROR_CONFIG",
    "DRIVE_MIRROR_LOG_LEVEL",
    "DRIVE_MIRROR_INCLUDE_SHARED_DRIVES",
    "DRIVE_MIRROR_SKIP_EXISTING",
    "DRIVE_MIRROR_FAIL_FAST",
    "DRIVE_MIRROR_WORKERS",
    "DRIVE_MIRROR_VERIFY_CHECKSUM",
    "DRIVE_MIRROR_FOLLOW_SHORTCUTS",
    "DRIVE_MIRROR_DRY_RUN",
    "DRIVE_MIRROR_MAX_ATTEMPTS",
    "DRIVE_MIRROR_CHUNK_SIZE",
)


@pytest.fixture(autouse=True)
def _stable_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """
    Ambiente coerente per tutti i test:
    - nessuna credenziale o opzione ereditata dalla shell;
    - CWD nella tmp del test (il default di `--dest` non tocca il repo).
    """
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def fake_downloader(monkeypatch: pytest.MonkeyPatch):
    """Sostituisce `MediaIoBaseDownload` nel materializer con un downloader in memoria."""
    pytest.importorskip(
        "googleapiclient.http",
        reason="Client Google Drive non disponibile: installa google-api-python-client",
    )
    from drive_mirror.drive import materialize

    monkeypatch.setattr(materialize, "MediaIoBaseDownload", FakeDownloader)
    return FakeDownloader


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()

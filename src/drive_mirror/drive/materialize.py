# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/materialize.py
"""Materializzazione di un singolo nodo remoto su disco locale, con commit **atomico**.

Cosa fa
-------
- `download_file`: byte grezzi di un file opaco (`files.get_media`).
- `export_file`: conversione di un documento nativo Google nel formato della sua
  `ExportRule` (`files.export_media`), con nome file calcolato da `export_filename`.
- Ogni file è scritto su un temporaneo nello stesso folder, `flush` + `fsync`,
  quindi `os.replace()` sul path finale: un trasferimento interrotto non lascia mai
  un file parziale con il nome definitivo (quindi `skip_existing` non può
  scambiarlo per un file completo).
- Se il nodo espone `md5Checksum` e `verify_checksum` è attivo, il contenuto viene
  verificato prima del commit.
- La directory padre viene creata on-demand (idempotente: il walker può averla già
  creata) prima di costruire la richiesta remota: un errore locale non costa chiamate.
- Il file finale ha i permessi derivati dalla umask, come una creazione diretta.

Errori
------
- `TransferError`: errore HTTP/rete durante lo streaming o checksum non corrispondente.
- `LocalIOError`: creazione directory, temporaneo, fsync o rename falliti.

Nessun retry dell'intero trasferimento: i chunk transienti sono ritentati dalla
libreria client (`next_chunk(num_retries=max_attempts - 1)`).
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional, Tuple

from googleapiclient.http import MediaIoBaseDownload

from ..config import MirrorOptions
from ..constants import TMP_SUFFIX
from ..exceptions import LocalIOError, TransferError
from ..logging_utils import get_structured_logger, tail_path
from .client import export_request, media_request
from .export_rules import ExportRule, export_filename, resolve_export_rule
from .models import RemoteNode

_LOGGER = get_structured_logger("drive_mirror.drive.materialize")


def _umask_file_mode() -> int:
    # os.umask si legge solo impostandolo: lettura + ripristino immediato
    current = os.umask(0o022)
    os.umask(current)
    return 0o666 & ~current


# Permessi di un file creato normalmente (i temporanei nascono 0600)
_FILE_MODE = _umask_file_mode()


def _ensure_parent(dest_path: Path, *, drive_id: str) -> None:
    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LocalIOError(f"Creazione directory fallita: {e}", drive_id=drive_id, file_path=dest_path.parent) from e


def _md5_of(path: str) -> str:
    h = hashlib.md5()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _stream_atomic(
    request: Any,
    dest_path: Path,
    *,
    drive_id: str,
    chunk_size: int,
    num_retries: int,
    expected_md5: Optional[str] = None,
) -> int:
    """Scarica `request` su `dest_path` via temporaneo + `os.replace`. Ritorna i byte scritti.

    La directory padre deve esistere (la crea il chiamante prima di aprire la richiesta).
    """
    try:
        tmp = tempfile.NamedTemporaryFile(
            mode="wb",
            delete=False,
            dir=str(dest_path.parent),
            prefix=f".{dest_path.name}.",
            suffix=TMP_SUFFIX,
        )
    except OSError as e:
        raise LocalIOError(f"Creazione file temporaneo fallita: {e}", drive_id=drive_id, file_path=dest_path) from e

    tmp_name = tmp.name
    committed = False
    try:
        with tmp:
            downloader = MediaIoBaseDownload(tmp, request, chunksize=int(chunk_size))
            done = False
            while not done:
                try:
                    _status, done = downloader.next_chunk(num_retries=num_retries)
                except Exception as e:  # noqa: BLE001
                    raise TransferError(
                        f"Trasferimento interrotto: {e}", drive_id=drive_id, file_path=dest_path
                    ) from e
            try:
                tmp.flush()
                os.fsync(tmp.fileno())
            except OSError as e:
                raise LocalIOError(f"Flush su disco fallito: {e}", drive_id=drive_id, file_path=dest_path) from e

        written = os.path.getsize(tmp_name)
        if expected_md5:
            actual = _md5_of(tmp_name)
            if actual.lower() != expected_md5.lower():
                raise TransferError(
                    f"Checksum MD5 non corrispondente (atteso {expected_md5}, ottenuto {actual}).",
                    drive_id=drive_id,
                    file_path=dest_path,
                )
        try:
            os.chmod(tmp_name, _FILE_MODE)
            os.replace(tmp_name, dest_path)
        except OSError as e:
            raise LocalIOError(f"Commit del file fallito: {e}", drive_id=drive_id, file_path=dest_path) from e
        committed = True
        return written
    finally:
        if not committed:
            with suppress(OSError):
                os.unlink(tmp_name)


def _write_empty_atomic(dest_path: Path, *, drive_id: str) -> int:
    """File vuoto: Drive risponde 416 al download a range, quindi nessuna chiamata remota."""
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(dest_path.parent), prefix=f".{dest_path.name}.", suffix=TMP_SUFFIX)
        os.close(fd)
        os.chmod(tmp_name, _FILE_MODE)
        os.replace(tmp_name, dest_path)
    except OSError as e:
        raise LocalIOError(f"Scrittura file vuoto fallita: {e}", drive_id=drive_id, file_path=dest_path) from e
    return 0


def download_file(
    service: Any,
    node: RemoteNode,
    dest_path: Path,
    options: Optional[MirrorOptions] = None,
) -> int:
    """Scarica i byte grezzi di `node` in `dest_path`. Ritorna i byte scritti."""
    opts = options or MirrorOptions()
    dest_path = Path(dest_path)
    _LOGGER.debug("materialize.download.start", extra={"drive_id": node.id, "file_path": tail_path(dest_path)})
    _ensure_parent(dest_path, drive_id=node.id)
    if node.size == 0:
        return _write_empty_atomic(dest_path, drive_id=node.id)

    request = media_request(service, node.id, include_shared_drives=opts.include_shared_drives)
    return _stream_atomic(
        request,
        dest_path,
        drive_id=node.id,
        chunk_size=opts.chunk_size,
        num_retries=opts.max_attempts - 1,
        expected_md5=node.md5_checksum if opts.verify_checksum else None,
    )


def export_file(
    service: Any,
    node: RemoteNode,
    dest_dir: Path,
    rule: Optional[ExportRule] = None,
    options: Optional[MirrorOptions] = None,
) -> Tuple[Path, int]:
    """Esporta il documento nativo `node` in `dest_dir`. Ritorna (path finale, byte scritti).

    Se `rule` è None si usa la regola del sottotipo (fallback PDF per i sottotipi sconosciuti).
    """
    opts = options or MirrorOptions()
    rule = rule or resolve_export_rule(node.mime_type)
    dest_path = Path(dest_dir) / export_filename(node.name, rule)
    _LOGGER.debug(
        "materialize.export.start",
        extra={"drive_id": node.id, "file_path": tail_path(dest_path), "target_mime": rule.mime_type},
    )
    _ensure_parent(dest_path, drive_id=node.id)
    request = export_request(service, node.id, rule.mime_type)
    written = _stream_atomic(
        request,
        dest_path,
        drive_id=node.id,
        chunk_size=opts.chunk_size,
        num_retries=opts.max_attempts - 1,
    )
    return dest_path, written


__all__ = ["download_file", "export_file"]

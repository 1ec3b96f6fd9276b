# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/exceptions.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from .logging_utils import tail_path

"""
Gerarchia delle eccezioni di drive-mirror e mappatura verso i codici di uscita.

- `ConfigError` (e le sottoclassi `AuthError`, `InvalidIdentifier`): input non
  valido, rilevato prima di qualsiasi chiamata di attraversamento.
- `ListingError`, `TransferError`, `LocalIOError`: errori durante il mirror, con
  `drive_id` e `file_path` valorizzati e la causa concatenata (`raise ... from`).

Le eccezioni non fanno I/O e non terminano il processo: solo la CLI traduce in
exit code tramite `exit_code_for`.
"""

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


def _mask_drive_id(value: str, keep: int = 6) -> str:
    """Mostra solo la coda dell'ID Drive: `…abcdef`."""
    s = str(value)
    return s if len(s) <= keep else f"…{s[-keep:]}"


class MirrorError(Exception):
    """Errore di dominio del mirror, con contesto opzionale (drive_id, file_path, run_id).

    Il contesto resta disponibile come attributi per il logging strutturato e viene
    reso in forma "safe" da `context()` / `__str__`.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        drive_id: Optional[str] = None,
        file_path: Optional[str | Path] = None,
        run_id: Optional[str] = None,
    ) -> None:
        super().__init__(message or "")
        self.drive_id = drive_id
        self.file_path = file_path
        self.run_id = run_id

    def context(self) -> Dict[str, str]:
        """Contesto mascherato: coda dell'ID, ultime due componenti del path, run_id."""
        ctx: Dict[str, str] = {}
        if self.drive_id:
            ctx["drive_id"] = _mask_drive_id(self.drive_id)
        if self.file_path:
            ctx["file"] = tail_path(self.file_path)
        if self.run_id:
            ctx["run_id"] = self.run_id
        return ctx

    def __str__(self) -> str:
        message = super().__str__() or type(self).__name__
        ctx = self.context()
        if not ctx:
            return message
        return f"{message} [{' | '.join(f'{k}={v}' for k, v in ctx.items())}]"


# ---------------------------------------------------------------------------
# Errori pre-attraversamento (fatali)
# ---------------------------------------------------------------------------


class ConfigError(MirrorError):
    """Errore di caricamento o validazione della configurazione."""

    pass


class AuthError(ConfigError):
    """Credenziali mancanti, illeggibili o non valide."""

    pass


class InvalidIdentifier(ConfigError):
    """ID cartella (o link di condivisione) vuoto o sintatticamente non valido."""

    pass


# ---------------------------------------------------------------------------
# Errori durante il mirror
# ---------------------------------------------------------------------------


class ListingError(MirrorError):
    """Chiamata remota fallita durante l'elenco dei figli di una cartella."""

    pass


class TransferError(MirrorError):
    """Download o export fallito (rete, HTTP, checksum)."""

    pass


class LocalIOError(MirrorError):
    """Creazione di directory/file locale fallita."""

    pass


# ---------------------------------------------------------------------------
# Exit codes centralizzati (nessun side-effect)
# ---------------------------------------------------------------------------

EXIT_CODES = {
    "MirrorError": 1,
    "ConfigError": 2,
    "AuthError": 3,
    "InvalidIdentifier": 4,
    "ListingError": 20,
    "TransferError": 21,
    "LocalIOError": 30,
}


def exit_code_for(exc: BaseException) -> int:
    """Codice di uscita della classe più specifica in `EXIT_CODES` (fallback: MirrorError)."""
    codes = (EXIT_CODES[cls.__name__] for cls in type(exc).__mro__ if cls.__name__ in EXIT_CODES)
    return next(codes, EXIT_CODES["MirrorError"])


__all__ = [
    "MirrorError",
    "ConfigError",
    "AuthError",
    "InvalidIdentifier",
    "ListingError",
    "TransferError",
    "LocalIOError",
    "EXIT_CODES",
    "exit_code_for",
]

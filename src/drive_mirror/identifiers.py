# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/identifiers.py
"""Estrazione e validazione degli ID cartella Google Drive (config-boundary).

Tutte le funzioni qui validano l'input **prima** di qualsiasi chiamata remota:
un ID non valido non deve mai arrivare a `files().list`, perché verrebbe
interpolato nella query `'<id>' in parents`.
"""

from __future__ import annotations

import re
from typing import Optional

from .exceptions import InvalidIdentifier

_FOLDER_LINK_RE = re.compile(r"folders/([A-Za-z0-9_-]+)")
_FORBIDDEN_CHARS = frozenset("/?&'\"\\")


def extract_folder_id(link: str) -> str:
    """Estrae l'ID da un link di condivisione (`.../drive/folders/<id>?usp=sharing`).

    Raises:
        InvalidIdentifier: se il link non contiene un segmento `folders/<id>`.
    """
    match = _FOLDER_LINK_RE.search(link or "")
    if match is None:
        raise InvalidIdentifier("Link cartella Google Drive non valido: segmento 'folders/<id>' assente.")
    return match.group(1)


def validate_folder_id(value: Optional[str]) -> str:
    """Normalizza e valida un ID cartella "nudo".

    Raises:
        InvalidIdentifier: se vuoto o se contiene separatori (`/`, `?`, `&`),
            apici o spazi.
    """
    folder_id = (value or "").strip()
    if not folder_id:
        raise InvalidIdentifier("ID cartella Google Drive mancante o vuoto.")
    bad = sorted({ch for ch in folder_id if ch in _FORBIDDEN_CHARS or ch.isspace()})
    if bad:
        raise InvalidIdentifier(
            f"ID cartella Google Drive non valido: caratteri non ammessi {''.join(bad)!r}.",
            drive_id=folder_id,
        )
    return folder_id


def resolve_folder_ref(value: Optional[str]) -> str:
    """Accetta un ID oppure un link completo e restituisce l'ID validato."""
    raw = (value or "").strip()
    if "folders/" in raw:
        return validate_folder_id(extract_folder_id(raw))
    return validate_folder_id(raw)


__all__ = ["extract_folder_id", "validate_folder_id", "resolve_folder_ref"]

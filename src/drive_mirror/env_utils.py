# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/env_utils.py
from __future__ import annotations

"""Lettura dell'ambiente per drive-mirror (nessun side-effect a import-time).

Il file `.env` della CWD viene caricato al primo accesso a `os.environ`, mai
all'import. Tutte le funzioni accettano un mapping `env` alternativo: in quel
caso `.env` non viene toccato (utile nei test e in `load_mirror_options`).

I parser `parse_bool` / `parse_int` sono condivisi con il layer di config, che
li usa per validare YAML e override con la stessa grammatica dell'ambiente.
"""

import os
from collections.abc import Mapping
from typing import Any, Optional

from dotenv import load_dotenv

from drive_mirror.logging_utils import get_structured_logger

__all__ = [
    "ensure_dotenv_loaded",
    "parse_bool",
    "parse_int",
    "get_env_var",
]

_LOGGER = get_structured_logger("drive_mirror.env_utils")

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})

_dotenv_done = False


def ensure_dotenv_loaded() -> bool:
    """Carica `.env` (senza override delle variabili già presenti) al più una volta.

    True solo per la chiamata che ha effettivamente eseguito il caricamento.
    """
    global _dotenv_done
    if _dotenv_done:
        return False
    found = load_dotenv(override=False)
    _dotenv_done = True
    _LOGGER.debug("env.dotenv.loaded", extra={"status": "found" if found else "absent"})
    return True


def parse_bool(value: Any) -> Optional[bool]:
    """`True`/`False` per i valori riconosciuti, `None` altrimenti."""
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def parse_int(value: Any) -> Optional[int]:
    """Intero decimale (spazi ammessi); `None` per valori non interi o booleani."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _lookup(name: str, env: Mapping[str, str] | None) -> Optional[str]:
    if env is None:
        ensure_dotenv_loaded()
        env = os.environ
    raw = env.get(name)
    if raw is None:
        return None
    raw = str(raw).strip()
    return raw or None


def get_env_var(
    name: str,
    default: Optional[str] = None,
    *,
    required: bool = False,
    env: Mapping[str, str] | None = None,
) -> Optional[str]:
    """Valore trimmato di `name`; stringa vuota equivale a variabile assente.

    Con `required=True` una variabile assente solleva `KeyError`.
    """
    value = _lookup(name, env)
    if value is not None:
        return value
    if required:
        raise KeyError(f"Variabile d'ambiente mancante: {name}")
    return default


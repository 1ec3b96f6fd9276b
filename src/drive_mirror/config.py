# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/config.py
"""
Opzioni di esecuzione del mirror (immutabili per tutta la durata di un run).

`MirrorOptions` viene passato esplicitamente a ogni chiamata di walker e
materializer: nessuno stato globale.

Precedenza dei valori (dal più forte):
1. `overrides` (tipicamente i flag CLI);
2. variabili d'ambiente `DRIVE_MIRROR_<CAMPO>` (con `.env` caricato on-demand);
3. file YAML (`path` esplicito oppure `DRIVE_MIRROR_CONFIG`);
4. default del dataclass.

Esempio di YAML:

    include_shared_drives: true
    skip_existing: true
    workers: 4
    fail_fast: false
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_ATTEMPTS, ENV_CONFIG_FILE, ENV_PREFIX, MIN_CHUNK_SIZE
from .env_utils import get_env_var, parse_bool, parse_int
from .exceptions import ConfigError


@dataclass(frozen=True)
class MirrorOptions:
    """Policy di un singolo run (sola lettura)."""

    include_shared_drives: bool = False
    skip_existing: bool = False
    fail_fast: bool = True
    workers: int = 1
    verify_checksum: bool = True
    follow_shortcuts: bool = True
    dry_run: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def validate(self) -> "MirrorOptions":
        """Valida i valori numerici; ritorna self per comodità di chaining.

        Raises:
            ConfigError: se un valore è fuori range.
        """
        if self.workers < 1:
            raise ConfigError(f"workers deve essere >= 1 (ricevuto {self.workers}).")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts deve essere >= 1 (ricevuto {self.max_attempts}).")
        if self.chunk_size < MIN_CHUNK_SIZE:
            raise ConfigError(f"chunk_size deve essere >= {MIN_CHUNK_SIZE} byte (ricevuto {self.chunk_size}).")
        return self


_KNOWN_FIELDS = {f.name for f in fields(MirrorOptions)}
_BOOL_FIELDS = {f.name for f in fields(MirrorOptions) if f.type in ("bool", bool)}
_INT_FIELDS = {f.name for f in fields(MirrorOptions) if f.type in ("int", int)}


def _coerce(name: str, value: Any, *, source: str) -> Any:
    """Converte `value` nel tipo del campo `name`; `source` compare nel messaggio d'errore."""
    if name in _BOOL_FIELDS:
        parsed = parse_bool(value)
        kind = "booleano"
    elif name in _INT_FIELDS:
        parsed = parse_int(value)
        kind = "intero"
    else:
        return value
    if parsed is None:
        raise ConfigError(f"Valore {kind} non valido per '{name}' ({source}): {value!r}")
    return parsed


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Legge il file YAML di configurazione (mapping al top-level)."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Impossibile leggere il file di configurazione: {e}", file_path=path) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML non valido: {e}", file_path=path) from e
    if not isinstance(data, dict):
        raise ConfigError("Il file di configurazione deve contenere un mapping.", file_path=path)
    unknown = sorted(set(data) - _KNOWN_FIELDS)
    if unknown:
        raise ConfigError(f"Chiavi di configurazione sconosciute: {', '.join(unknown)}", file_path=path)
    return {k: _coerce(k, v, source=path.name) for k, v in data.items()}


def _read_env(env: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    """Estrae i campi valorizzati da `DRIVE_MIRROR_<CAMPO>`."""
    values: Dict[str, Any] = {}
    for f in fields(MirrorOptions):
        key = f"{ENV_PREFIX}{f.name.upper()}"
        raw = get_env_var(key, env=env)
        if raw is not None:
            values[f.name] = _coerce(f.name, raw, source=key)
    return values


def load_mirror_options(
    path: Optional[Path | str] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> MirrorOptions:
    """Costruisce e valida `MirrorOptions` combinando YAML, ENV e override.

    Args:
        path: file YAML opzionale; se assente si usa `DRIVE_MIRROR_CONFIG` (se impostata).
        env: mapping alternativo a `os.environ` (utile nei test).
        overrides: valori espliciti (flag CLI); i `None` vengono ignorati.

    Raises:
        ConfigError: file illeggibile/non valido, chiavi sconosciute o valori fuori range.
    """
    cfg_path = path or get_env_var(ENV_CONFIG_FILE, env=env)
    values: Dict[str, Any] = {}
    if cfg_path:
        values.update(_read_yaml(Path(cfg_path).expanduser()))
    values.update(_read_env(env))
    for k, v in (overrides or {}).items():
        if k not in _KNOWN_FIELDS:
            raise ConfigError(f"Opzione sconosciuta: {k}")
        if v is not None:
            values[k] = _coerce(k, v, source="override")
    return replace(MirrorOptions(), **values).validate()


__all__ = ["MirrorOptions", "load_mirror_options"]

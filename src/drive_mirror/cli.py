# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/cli.py
"""CLI `drive-mirror`: copia una cartella Google Drive (ID o link) in una directory locale.

Esempi:
    drive-mirror https://drive.google.com/drive/folders/<id>?usp=sharing --dest ./out
    drive-mirror <id> --credentials sa.json --skip-existing --workers 4 --keep-going

Codici di uscita: 0 ok, 2 argomenti/config non validi, altri da `exit_code_for`.
"""

from __future__ import annotations

import argparse
import logging
import uuid
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .config import MirrorOptions, load_mirror_options
from .constants import ENV_CREDENTIALS_KEYS
from .drive.client import drive_metrics_scope, get_drive_service, get_retry_metrics
from .drive.report import MirrorReport
from .drive.walker import mirror_folder
from .env_utils import get_env_var
from .exceptions import AuthError, MirrorError, exit_code_for
from .identifiers import resolve_folder_ref
from .logging_utils import get_structured_logger, phase_scope


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"intero non valido: {value!r}") from e
    if n < 1:
        raise argparse.ArgumentTypeError("deve essere >= 1")
    return n


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="drive-mirror",
        description="Copia ricorsiva (one-shot) di una cartella Google Drive su disco locale.",
    )
    p.add_argument("folder", help="ID cartella oppure link di condivisione (.../folders/<id>)")
    p.add_argument(
        "--credentials",
        type=str,
        help="JSON credenziali (service account o utente autorizzato). "
        "Default: SERVICE_ACCOUNT_FILE o GOOGLE_APPLICATION_CREDENTIALS.",
    )
    p.add_argument("--dest", type=str, default=None, help="Directory di destinazione (default: CWD).")
    p.add_argument(
        "--include-shared-drives",
        action="store_true",
        default=None,
        help="Includi elementi dei Drive condivisi.",
    )
    p.add_argument(
        "--skip-existing",
        action="store_true",
        default=None,
        help="Salta i file già presenti localmente.",
    )
    p.add_argument("--workers", type=_positive_int, default=None, help="Trasferimenti paralleli (default: 1).")
    p.add_argument(
        "--keep-going",
        dest="fail_fast",
        action="store_const",
        const=False,
        default=None,
        help="Non fermarsi al primo errore: aggrega i fallimenti e riporta a fine run.",
    )
    p.add_argument(
        "--no-verify",
        dest="verify_checksum",
        action="store_const",
        const=False,
        default=None,
        help="Non verificare l'MD5 dei file scaricati.",
    )
    p.add_argument(
        "--no-follow-shortcuts",
        dest="follow_shortcuts",
        action="store_const",
        const=False,
        default=None,
        help="Ignora le scorciatoie Drive invece di seguirle.",
    )
    p.add_argument("--dry-run", action="store_true", default=None, help="Elenca senza scaricare né scrivere.")
    p.add_argument("--config", type=str, default=None, help="File YAML con le opzioni di default.")
    p.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Livello di logging (default: DRIVE_MIRROR_LOG_LEVEL o INFO).",
    )
    p.add_argument("--log-file", type=str, default=None, help="File di log aggiuntivo (rotazione 1 MiB).")
    return p


def _resolve_credentials(arg: Optional[str]) -> Path:
    """CLI > SERVICE_ACCOUNT_FILE > GOOGLE_APPLICATION_CREDENTIALS."""
    candidates = [arg] + [get_env_var(k) for k in ENV_CREDENTIALS_KEYS]
    for cand in candidates:
        if cand:
            return Path(cand).expanduser()
    raise AuthError(
        "Credenziali mancanti: usare --credentials oppure SERVICE_ACCOUNT_FILE / GOOGLE_APPLICATION_CREDENTIALS."
    )


def _option_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "include_shared_drives": args.include_shared_drives,
        "skip_existing": args.skip_existing,
        "workers": args.workers,
        "fail_fast": args.fail_fast,
        "verify_checksum": args.verify_checksum,
        "follow_shortcuts": args.follow_shortcuts,
        "dry_run": args.dry_run,
    }


# Logger del package che ricevono livello, run_id e file di log del run
_RUN_LOGGERS = (
    "drive_mirror.cli",
    "drive_mirror.env_utils",
    "drive_mirror.drive.client",
    "drive_mirror.drive.materialize",
    "drive_mirror.drive.walker",
)


def configure_run_logging(
    run_id: str,
    *,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> Dict[str, logging.Logger]:
    """Riconfigura tutti i logger del package per il run corrente (idempotente)."""
    path = Path(log_file) if log_file else None
    return {name: get_structured_logger(name, run_id=run_id, level=log_level, log_file=path) for name in _RUN_LOGGERS}


def run_mirror(
    *,
    folder: str,
    credentials: Optional[str],
    dest: Optional[str],
    options: MirrorOptions,
    run_id: str,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> MirrorReport:
    """Bootstrap (ID, credenziali, client) e mirror della cartella. Solleva `MirrorError`."""
    loggers = configure_run_logging(run_id, log_level=log_level, log_file=log_file)
    logger = loggers["drive_mirror.cli"]
    folder_id = resolve_folder_ref(folder)
    cred_path = _resolve_credentials(credentials)
    service = get_drive_service(cred_path)
    dest_dir = Path(dest).expanduser() if dest else Path.cwd()

    with drive_metrics_scope(), phase_scope(logger, stage="mirror") as phase:
        report = mirror_folder(
            service,
            folder_id,
            dest_dir,
            options,
            service_factory=partial(get_drive_service, cred_path),
            logger=loggers["drive_mirror.drive.walker"],
        )
        phase.set_artifacts(len(report.completed))
        retry_metrics = get_retry_metrics()
    if retry_metrics.get("retries_total"):
        logger.info("cli.mirror.retries", extra=retry_metrics)
    logger.info("cli.mirror.completed", extra=report.summary())
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    run_id = uuid.uuid4().hex
    logger = configure_run_logging(run_id, log_level=args.log_level, log_file=args.log_file)["drive_mirror.cli"]
    try:
        options = load_mirror_options(args.config, overrides=_option_overrides(args))
        report = run_mirror(
            folder=args.folder,
            credentials=args.credentials,
            dest=args.dest,
            options=options,
            run_id=run_id,
            log_level=args.log_level,
            log_file=args.log_file,
        )
    except MirrorError as exc:
        exc.run_id = exc.run_id or run_id
        logger.error("cli.mirror.failed", extra={"error": str(exc), "exc_type": type(exc).__name__})
        return int(exit_code_for(exc))

    try:
        # --keep-going: un solo fallimento conserva il suo tipo, più fallimenti → TransferError
        report.raise_for_failures()
    except MirrorError as exc:
        logger.error(
            "cli.mirror.partial",
            extra={"failed": len(report.failed), "error": str(exc), "exc_type": type(exc).__name__},
        )
        return int(exit_code_for(exc))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

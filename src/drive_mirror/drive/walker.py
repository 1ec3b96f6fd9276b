# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/walker.py
"""Attraversamento di una cartella Drive → albero locale (walker).

Cosa fa
-------
- Visita l'albero remoto **depth-first** con uno stack esplicito di frame
  `(folder_id, local_dir, antenati)` (nessuna ricorsione: nessun limite di profondità).
- Per ogni cartella: crea la directory locale (idempotente), elenca i figli in modo
  esaustivo e smista ciascun figlio:
  - cartella → push sullo stack (`local_dir / name`);
  - documento nativo → `export_file` con la sua `ExportRule`;
  - file opaco → `download_file`, oppure skip se `skip_existing` e sul path
    esiste già un'entità che non è una directory (nessuna chiamata remota);
  - scorciatoia → risolta sul target se `follow_shortcuts`, altrimenti saltata;
    una scorciatoia verso una cartella già presente sul cammino dalla radice
    (un antenato) non viene riattraversata (`walker.shortcut.cycle`).
- Ogni cartella reale viene sempre visitata, anche se raggiungibile da più
  genitori o già attraversata tramite una scorciatoia.
- Cartelle sorelle con lo stesso nome confluiscono nella stessa directory locale:
  il merge è intenzionale e viene solo segnalato a log (`walker.folder.merge`).
- Esiti per-nodo raccolti in `MirrorReport`. Con `fail_fast` il primo errore
  interrompe tutto (fratelli successivi e cartelle in coda non vengono mai tentati)
  e viene rilanciato invariato; altrimenti si prosegue e si aggrega.
- Con `workers > 1` i trasferimenti delle foglie girano in un pool limitato
  mentre questo thread continua a visitare le cartelle; ogni worker usa un proprio
  client creato da `service_factory`. Tutto viene atteso prima del ritorno.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, Deque, Dict, FrozenSet, List, Optional, Tuple

from ..config import MirrorOptions
from ..exceptions import ConfigError, ListingError, LocalIOError, MirrorError, TransferError
from ..identifiers import validate_folder_id
from ..logging_utils import get_structured_logger, tail_path
from .client import list_children
from .export_rules import ExportRule, export_filename, resolve_export_rule
from .materialize import download_file, export_file
from .models import KIND_FOLDER, KIND_NATIVE, KIND_SHORTCUT, RemoteNode
from .report import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PLANNED,
    STATUS_SKIPPED,
    MirrorReport,
    NodeOutcome,
)

ServiceFactory = Callable[[], Any]
Transfer = Callable[[Any], Tuple[Path, int]]
# (folder_id, directory locale, ID delle cartelle sul cammino dalla radice)
_Frame = Tuple[str, Path, FrozenSet[str]]

# Futures in volo per worker prima di attendere il più vecchio
_PENDING_PER_WORKER = 4


class _Walker:
    def __init__(
        self,
        service: Any,
        options: MirrorOptions,
        logger: logging.Logger,
        service_factory: Optional[ServiceFactory],
    ) -> None:
        self.service = service
        self.opts = options
        self.log = logger
        self.report = MirrorReport()
        self._service_factory = service_factory
        self._stack: List[_Frame] = []
        self._dir_owner: Dict[Path, str] = {}
        self._file_owner: Dict[Path, str] = {}
        self._abort = threading.Event()
        self._first_error: Optional[MirrorError] = None
        self._error_lock = threading.Lock()
        self._local = threading.local()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Deque[Future[None]] = deque()
        self._capacity = max(1, options.workers * _PENDING_PER_WORKER)

    # ------------------------------------------------------------------ run

    def run(self, root_id: str, root_dir: Path) -> MirrorReport:
        self._stack.append((root_id, root_dir, frozenset({root_id})))
        if self.opts.workers > 1 and not self.opts.dry_run:
            self._executor = ThreadPoolExecutor(max_workers=self.opts.workers, thread_name_prefix="drive-mirror")
        try:
            while self._stack and not self._abort.is_set():
                self._visit(*self._stack.pop())
            while self._pending:
                self._pending.popleft().result()
        finally:
            if self._executor is not None:
                for fut in self._pending:
                    fut.cancel()
                self._executor.shutdown(wait=True)
        if self.opts.fail_fast and self._first_error is not None:
            raise self._first_error
        return self.report

    # --------------------------------------------------------------- folders

    def _visit(self, folder_id: str, local_dir: Path, ancestors: FrozenSet[str]) -> None:
        self.log.debug("walker.folder.enter", extra={"drive_id": folder_id, "file_path": tail_path(local_dir)})
        try:
            if not self.opts.dry_run:
                try:
                    local_dir.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise LocalIOError(
                        f"Creazione directory fallita: {e}", drive_id=folder_id, file_path=local_dir
                    ) from e
            try:
                children = list_children(
                    self.service,
                    folder_id,
                    include_shared_drives=self.opts.include_shared_drives,
                    max_attempts=self.opts.max_attempts,
                )
            except ListingError as e:
                e.file_path = e.file_path or local_dir
                raise
        except MirrorError as e:
            self._fail(RemoteNode(id=folder_id, name=local_dir.name, mime_type=""), KIND_FOLDER, local_dir, e)
            return

        subfolders: List[_Frame] = []
        for child in children:
            if self._abort.is_set():
                return
            self._dispatch(child, local_dir, ancestors, subfolders)
        # push in ordine inverso: la prima sottocartella elencata è la prossima visitata
        self._stack.extend(reversed(subfolders))

    def _dispatch(
        self, child: RemoteNode, local_dir: Path, ancestors: FrozenSet[str], subfolders: List[_Frame]
    ) -> None:
        node = child
        via_shortcut = node.kind == KIND_SHORTCUT
        if via_shortcut:
            if not self.opts.follow_shortcuts or not node.shortcut_target_id:
                self._skip(node, local_dir / node.name, "shortcut")
                return
            node = node.resolve_shortcut()

        if node.kind == KIND_FOLDER:
            sub_dir = local_dir / node.name
            # solo una scorciatoia verso un antenato chiude un ciclo
            if via_shortcut and node.id in ancestors:
                self.log.info("walker.shortcut.cycle", extra={"drive_id": node.id, "file_path": tail_path(sub_dir)})
                self._skip(node, sub_dir, "cycle")
                return
            self._enqueue_folder(node, sub_dir, ancestors, subfolders)
        elif node.kind == KIND_NATIVE:
            rule = resolve_export_rule(node.mime_type)
            dest = local_dir / export_filename(node.name, rule)
            self._leaf(node, dest, partial(self._export, node=node, dest_dir=local_dir, rule=rule))
        else:
            dest = local_dir / node.name
            if self.opts.skip_existing and dest.exists() and not dest.is_dir():
                self._skip(node, dest, "exists")
                return
            self._leaf(node, dest, partial(self._download, node=node, dest=dest))

    def _enqueue_folder(
        self, node: RemoteNode, sub_dir: Path, ancestors: FrozenSet[str], subfolders: List[_Frame]
    ) -> None:
        owner = self._dir_owner.setdefault(sub_dir, node.id)
        if owner != node.id:
            self.log.warning(
                "walker.folder.merge",
                extra={"drive_id": node.id, "other_drive_id": owner, "file_path": tail_path(sub_dir)},
            )
        subfolders.append((node.id, sub_dir, ancestors | {node.id}))

    # ----------------------------------------------------------------- leaves

    def _leaf(self, node: RemoteNode, dest: Path, transfer: Transfer) -> None:
        owner = self._file_owner.setdefault(dest, node.id)
        if owner != node.id:
            self.log.warning(
                "walker.file.collision",
                extra={"drive_id": node.id, "other_drive_id": owner, "file_path": tail_path(dest)},
            )
        if self.opts.dry_run:
            self.report.record(NodeOutcome(node.id, node.name, node.kind, STATUS_PLANNED, path=dest))
            self.log.info("walker.leaf.planned", extra={"drive_id": node.id, "file_path": tail_path(dest)})
            return
        if self._executor is None:
            self._transfer(node, dest, transfer, lambda: self.service)
            return
        self._pending.append(self._executor.submit(self._transfer_in_worker, node, dest, transfer))
        if len(self._pending) >= self._capacity:
            self._pending.popleft().result()

    def _transfer_in_worker(self, node: RemoteNode, dest: Path, transfer: Transfer) -> None:
        if self._abort.is_set():
            return
        try:
            self._transfer(node, dest, transfer, self._worker_service)
        except MirrorError:
            # già registrato; il primo errore viene rilanciato da run()
            pass

    def _worker_service(self) -> Any:
        service = getattr(self._local, "service", None)
        if service is None:
            if self._service_factory is None:
                raise ConfigError("workers > 1 richiede una service_factory (un client Drive per thread).")
            service = self._service_factory()
            self._local.service = service
        return service

    def _transfer(self, node: RemoteNode, dest: Path, transfer: Transfer, get_service: ServiceFactory) -> None:
        try:
            path, written = transfer(get_service())
        except MirrorError as e:
            self._fail(node, node.kind, dest, e)
            return
        except Exception as e:  # noqa: BLE001
            err = TransferError(f"Trasferimento fallito: {e}", drive_id=node.id, file_path=dest)
            err.__cause__ = e
            self._fail(node, node.kind, dest, err)
            return
        self.report.record(NodeOutcome(node.id, node.name, node.kind, STATUS_COMPLETED, path=path, bytes=written))
        self.log.info(
            "walker.leaf.ok",
            extra={"drive_id": node.id, "file_path": tail_path(path), "bytes": written, "kind": node.kind},
        )

    def _download(self, service: Any, *, node: RemoteNode, dest: Path) -> Tuple[Path, int]:
        return dest, download_file(service, node, dest, self.opts)

    def _export(self, service: Any, *, node: RemoteNode, dest_dir: Path, rule: ExportRule) -> Tuple[Path, int]:
        return export_file(service, node, dest_dir, rule, self.opts)

    # ---------------------------------------------------------------- outcomes

    def _skip(self, node: RemoteNode, dest: Path, reason: str) -> None:
        self.report.record(NodeOutcome(node.id, node.name, node.kind, STATUS_SKIPPED, path=dest, reason=reason))
        self.log.debug("walker.leaf.skip", extra={"drive_id": node.id, "file_path": tail_path(dest), "reason": reason})

    def _fail(self, node: RemoteNode, kind: str, path: Path, err: MirrorError) -> None:
        self.report.record(
            NodeOutcome(node.id, node.name, kind, STATUS_FAILED, path=path, reason=str(err), error=err)
        )
        self.log.warning(
            "walker.node.fail",
            extra={"drive_id": node.id, "file_path": tail_path(path), "kind": kind, "error": str(err)},
        )
        if not self.opts.fail_fast:
            return
        with self._error_lock:
            if self._first_error is None:
                self._first_error = err
        self._abort.set()
        raise err


def mirror_folder(
    service: Any,
    folder_id: str,
    local_dir: Path | str,
    options: Optional[MirrorOptions] = None,
    *,
    service_factory: Optional[ServiceFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> MirrorReport:
    """Materializza ricorsivamente la cartella `folder_id` dentro `local_dir`.

    Args:
        service: client Drive v3 già autenticato (usato dal thread del walker).
        folder_id: ID della cartella radice (validato prima di ogni chiamata remota).
        local_dir: directory locale di destinazione (creata se assente).
        options: policy del run; default `MirrorOptions()`.
        service_factory: costruttore di client per i worker; obbligatorio con `workers > 1`.
        logger: logger strutturato opzionale.

    Returns:
        `MirrorReport` con gli esiti per-nodo.

    Raises:
        InvalidIdentifier, ConfigError: input non valido (nessuna chiamata remota).
        ListingError, TransferError, LocalIOError: primo errore, se `fail_fast`.
    """
    opts = (options or MirrorOptions()).validate()
    root_id = validate_folder_id(folder_id)
    if opts.workers > 1 and not opts.dry_run and service_factory is None:
        raise ConfigError("workers > 1 richiede una service_factory (un client Drive per thread).")
    log = logger or get_structured_logger("drive_mirror.drive.walker")
    root_dir = Path(local_dir)

    log.info(
        "drive.mirror.start",
        extra={
            "drive_id": root_id,
            "file_path": str(root_dir),
            "workers": opts.workers,
            "dry_run": opts.dry_run,
            "include_shared_drives": opts.include_shared_drives,
            "skip_existing": opts.skip_existing,
        },
    )
    report = _Walker(service, opts, log, service_factory).run(root_id, root_dir)
    log.info("drive.mirror.end", extra={"drive_id": root_id, **report.summary()})
    return report


__all__ = ["mirror_folder"]

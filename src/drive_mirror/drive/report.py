# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/report.py
"""Esiti per-nodo del mirror e accumulatore thread-safe.

Ogni foglia (file opaco o documento nativo) passa per
`pending → skipped | in-progress → completed | failed`; qui si registra solo lo
stato terminale. In dry-run lo stato terminale è `PLANNED`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import MirrorError, TransferError

STATUS_COMPLETED = "COMPLETED"
STATUS_SKIPPED = "SKIPPED"
STATUS_FAILED = "FAILED"
STATUS_PLANNED = "PLANNED"


@dataclass(frozen=True)
class NodeOutcome:
    """Esito terminale di un singolo nodo remoto."""

    remote_id: str
    name: str
    kind: str
    status: str
    path: Optional[Path] = None
    bytes: int = 0
    reason: Optional[str] = None
    error: Optional[BaseException] = None


class MirrorReport:
    """Accumulatore degli esiti, condiviso tra walker e worker del pool."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: List[NodeOutcome] = []

    def record(self, outcome: NodeOutcome) -> NodeOutcome:
        with self._lock:
            self._outcomes.append(outcome)
        return outcome

    @property
    def outcomes(self) -> List[NodeOutcome]:
        with self._lock:
            return list(self._outcomes)

    def _by_status(self, status: str) -> List[NodeOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def completed(self) -> List[NodeOutcome]:
        return self._by_status(STATUS_COMPLETED)

    @property
    def skipped(self) -> List[NodeOutcome]:
        return self._by_status(STATUS_SKIPPED)

    @property
    def failed(self) -> List[NodeOutcome]:
        return self._by_status(STATUS_FAILED)

    @property
    def planned(self) -> List[NodeOutcome]:
        return self._by_status(STATUS_PLANNED)

    @property
    def bytes_written(self) -> int:
        return sum(o.bytes for o in self.completed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> Dict[str, int]:
        outcomes = self.outcomes
        return {
            "completed": sum(1 for o in outcomes if o.status == STATUS_COMPLETED),
            "skipped": sum(1 for o in outcomes if o.status == STATUS_SKIPPED),
            "failed": sum(1 for o in outcomes if o.status == STATUS_FAILED),
            "planned": sum(1 for o in outcomes if o.status == STATUS_PLANNED),
            "bytes": sum(o.bytes for o in outcomes if o.status == STATUS_COMPLETED),
        }

    def raise_for_failures(self) -> None:
        """Solleva il primo errore registrato (se tipizzato) oppure un `TransferError` aggregato."""
        failed = self.failed
        if not failed:
            return
        first = failed[0]
        if len(failed) == 1 and isinstance(first.error, MirrorError):
            raise first.error
        raise TransferError(
            f"Mirror completato con errori: {len(failed)} elementi falliti.",
            drive_id=first.remote_id,
            file_path=first.path,
        )


__all__ = [
    "STATUS_COMPLETED",
    "STATUS_SKIPPED",
    "STATUS_FAILED",
    "STATUS_PLANNED",
    "NodeOutcome",
    "MirrorReport",
]

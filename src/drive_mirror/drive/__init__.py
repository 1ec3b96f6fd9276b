# SPDX-License-Identifier: GPL-3.0-or-later
"""Package interno 'drive' (client/materialize/walker).

Struttura:
- drive/client.py        → bootstrap client GDrive + retry/metriche + primitive di lettura
- drive/models.py        → RemoteNode e classificazione per tipo
- drive/export_rules.py  → tabella ExportRule e nome file di destinazione
- drive/materialize.py   → download/export di un singolo nodo con commit atomico
- drive/walker.py        → attraversamento depth-first, dispatch, pool di worker
- drive/report.py        → esiti per-nodo (MirrorReport)
"""

from .export_rules import DEFAULT_EXPORT_RULE, EXPORT_RULES, ExportRule, export_filename, resolve_export_rule
from .models import RemoteNode
from .report import MirrorReport, NodeOutcome
from .walker import mirror_folder

__all__ = [
    "DEFAULT_EXPORT_RULE",
    "EXPORT_RULES",
    "ExportRule",
    "export_filename",
    "resolve_export_rule",
    "RemoteNode",
    "MirrorReport",
    "NodeOutcome",
    "mirror_folder",
]

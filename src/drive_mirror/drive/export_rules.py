# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/export_rules.py
"""Regole di export per i documenti nativi Google (Docs/Sheets/Slides/Drawings).

Ogni documento nativo ha esattamente una regola: quella esplicita della tabella
oppure il fallback PDF per i sottotipi sconosciuti (form, site, jam, ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ..constants import (
    GDRIVE_DOCUMENT_MIME,
    GDRIVE_DRAWING_MIME,
    GDRIVE_PRESENTATION_MIME,
    GDRIVE_SPREADSHEET_MIME,
    PDF_MIME_TYPE,
    PNG_MIME_TYPE,
    XLSX_MIME_TYPE,
)


@dataclass(frozen=True)
class ExportRule:
    """MIME di destinazione + estensione (con il punto) del file esportato."""

    mime_type: str
    extension: str


DEFAULT_EXPORT_RULE = ExportRule(PDF_MIME_TYPE, ".pdf")

EXPORT_RULES: Mapping[str, ExportRule] = MappingProxyType(
    {
        GDRIVE_DOCUMENT_MIME: ExportRule(PDF_MIME_TYPE, ".pdf"),
        GDRIVE_SPREADSHEET_MIME: ExportRule(XLSX_MIME_TYPE, ".xlsx"),
        GDRIVE_PRESENTATION_MIME: ExportRule(PDF_MIME_TYPE, ".pdf"),
        GDRIVE_DRAWING_MIME: ExportRule(PNG_MIME_TYPE, ".png"),
    }
)


def resolve_export_rule(mime_type: str) -> ExportRule:
    return EXPORT_RULES.get(mime_type, DEFAULT_EXPORT_RULE)


def export_filename(name: str, rule: ExportRule) -> str:
    """Aggiunge l'estensione della regola solo se il nome non la ha già (case-insensitive).

    >>> export_filename("Report.pdf", DEFAULT_EXPORT_RULE)
    'Report.pdf'
    >>> export_filename("Report", DEFAULT_EXPORT_RULE)
    'Report.pdf'
    """
    if name.lower().endswith(rule.extension.lower()):
        return name
    return f"{name}{rule.extension}"


__all__ = ["ExportRule", "EXPORT_RULES", "DEFAULT_EXPORT_RULE", "resolve_export_rule", "export_filename"]

# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/constants.py
"""Single Source of Truth (SSoT) per i **MIME type** di Google Drive e per i default
di trasferimento usati da walker e materializer.

Note uso:
- I chiamanti devono **importare da qui** invece di hardcodare stringhe.
- La tabella delle regole di export vive in `drive_mirror.drive.export_rules`;
  qui restano solo i MIME "grezzi".
"""

# 📦 Google Drive MIME Types
GDRIVE_MIME_PREFIX = "application/vnd.google-apps."
GDRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"
GDRIVE_SHORTCUT_MIME = "application/vnd.google-apps.shortcut"
GDRIVE_DOCUMENT_MIME = "application/vnd.google-apps.document"
GDRIVE_SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"
GDRIVE_PRESENTATION_MIME = "application/vnd.google-apps.presentation"
GDRIVE_DRAWING_MIME = "application/vnd.google-apps.drawing"

# 📄 MIME Types di destinazione per l'export
PDF_MIME_TYPE = "application/pdf"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PNG_MIME_TYPE = "image/png"

# 🔐 Scope OAuth (sola lettura)
DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"

# 🔁 Listing / download
LIST_PAGE_SIZE = 1000
LIST_FIELDS = (
    "nextPageToken, files(id, name, mimeType, size, md5Checksum, "
    "shortcutDetails(targetId, targetMimeType))"
)
# Chunk di download (8 MiB bilanciato per throughput/ram)
DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024
MIN_CHUNK_SIZE = 256 * 1024
DEFAULT_MAX_ATTEMPTS = 6

# 📄 Suffissi temporanei (commit atomico)
TMP_SUFFIX = ".part"

# 🌱 Variabili d'ambiente
ENV_PREFIX = "DRIVE_MIRROR_"
ENV_CONFIG_FILE = "DRIVE_MIRROR_CONFIG"
ENV_CREDENTIALS_KEYS = ("SERVICE_ACCOUNT_FILE", "GOOGLE_APPLICATION_CREDENTIALS")

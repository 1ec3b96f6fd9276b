# SPDX-License-Identifier: GPL-3.0-or-later
"""drive-mirror: copia one-shot di una cartella Google Drive su disco locale."""

__version__ = "0.1.0"

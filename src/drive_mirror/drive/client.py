# SPDX-License-Identifier: GPL-3.0-or-later
# src/drive_mirror/drive/client.py
"""
Client e primitive di lettura per Google Drive (v3).

Superficie pubblica:
- get_drive_service(credentials_file, *, scopes=...)
    Costruisce un client Drive v3 autenticato in sola lettura. Accetta sia il JSON
    di un service account sia quello di un utente autorizzato (campo `type`).
- list_drive_files(service, folder_id, *, include_shared_drives=False, ...)
    Elenca in modo paginato (nextPageToken fino a esaurimento) i figli non cestinati
    di una cartella. Retry con backoff esponenziale + jitter su errori transienti.
- list_children(service, folder_id, ...)
    Come sopra, materializzato in `list[RemoteNode]` nell'ordine delle pagine;
    gli errori diventano `ListingError`.
- media_request(service, file_id, *, include_shared_drives=False)
- export_request(service, file_id, mime_type)
    Richieste googleapiclient da consumare con `MediaIoBaseDownload`.
- drive_metrics_scope() / get_retry_metrics()
    Raccolta opzionale di metriche sui retry nel blocco corrente.

Note d’uso:
- Nessun `print()`; tutta la diagnostica passa dal logging strutturato.
- L'export non accetta `supportsAllDrives`: il permesso è risolto tramite l'ID.
"""

from __future__ import annotations

import json
import random
import time
from collections import defaultdict
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, cast

from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..constants import DEFAULT_MAX_ATTEMPTS, DRIVE_READONLY_SCOPE, LIST_FIELDS, LIST_PAGE_SIZE
from ..exceptions import AuthError, ListingError
from ..identifiers import validate_folder_id
from ..logging_utils import get_structured_logger, mask_partial
from .models import RemoteNode

logger = get_structured_logger("drive_mirror.drive.client")


# ------------------------------- Metriche & Retry ---------------------------------


@dataclass
class _DriveRetryMetrics:
    """Contatori dei retry Drive raccolti dentro `drive_metrics_scope()`.

    `pages_listed` conta le pagine `files.list` ricevute con successo; gli altri
    campi descrivono solo i tentativi falliti e ritentati.
    """

    pages_listed: int = 0
    retries_total: int = 0
    retries_by_error: Dict[str, int] = field(default_factory=lambda: cast(Dict[str, int], defaultdict(int)))
    backoff_total_ms: int = 0
    last_error: Optional[str] = None
    last_status: Optional[int] = None

    def note_retry(self, err: Exception, sleep_s: float) -> None:
        self.retries_total += 1
        self.retries_by_error[type(err).__name__] += 1
        self.last_error = str(err)[:300]
        self.last_status = _http_status(err)
        self.backoff_total_ms += int(round(sleep_s * 1000))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pages_listed": self.pages_listed,
            "retries_total": self.retries_total,
            "retries_by_error": dict(self.retries_by_error),
            "backoff_total_ms": self.backoff_total_ms,
            "last_error": self.last_error,
            "last_status": self.last_status,
        }


# Il listing gira nel thread del walker: i worker del pool non vedono questo scope.
_METRICS_CTX: ContextVar[Optional[_DriveRetryMetrics]] = ContextVar("drive_mirror_metrics", default=None)


@contextmanager
def drive_metrics_scope() -> Generator[_DriveRetryMetrics, None, None]:
    """Attiva la raccolta delle metriche di listing/retry per il blocco `with`."""
    token = _METRICS_CTX.set(_DriveRetryMetrics())
    try:
        yield cast(_DriveRetryMetrics, _METRICS_CTX.get())
    finally:
        _METRICS_CTX.reset(token)


def get_retry_metrics() -> Dict[str, Any]:
    """Snapshot delle metriche dello scope corrente (`{}` fuori da uno scope)."""
    current = _METRICS_CTX.get()
    return {} if current is None else current.as_dict()


class _RetryBudgetExceeded(RuntimeError):
    """Interno: l'attesa cumulata ha superato `max_total_sleep_s`."""


def _http_status(err: Exception) -> Optional[int]:
    resp = getattr(err, "resp", None)
    status = getattr(resp, "status", None) if resp is not None else getattr(err, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_TRANSIENT_SNIPPETS = (
    "timed out",
    "timeout",
    "temporarily unavailable",
    "connection reset",
    "connection aborted",
    "reset by peer",
    "rate limit",
    "too many requests",
    "quota exceeded",
)


def _is_retryable_error(err: Exception) -> bool:
    """True per 429/5xx, timeout ed errori di connessione; False per il resto (404, 403, ...)."""
    if isinstance(err, HttpError):
        return _http_status(err) in _RETRYABLE_STATUSES
    if isinstance(err, (TimeoutError, ConnectionError)):
        return True
    msg = str(err).lower()
    return any(snippet in msg for snippet in _TRANSIENT_SNIPPETS)


def _retry(
    op: Callable[[], Any],
    *,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_s: float = 0.5,
    max_total_sleep_s: float = 20.0,
    op_name: str = "drive-op",
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Esegue `op()` fino a `max_attempts` volte con backoff esponenziale "full jitter".

    L'attesa prima del tentativo n+1 è uniforme in [0, base_delay_s * 2**(n-1)] e
    viene troncata al budget residuo; a budget esaurito solleva `_RetryBudgetExceeded`.
    """
    check = is_retryable or _is_retryable_error
    slept = 0.0
    attempt = 0
    while True:
        attempt += 1
        try:
            return op()
        except Exception as e:  # noqa: BLE001
            retryable = bool(check(e))
            if not retryable or attempt >= max_attempts:
                logger.debug(
                    "drive.retry.giveup",
                    extra={
                        "op": op_name,
                        "attempts": attempt,
                        "retryable": retryable,
                        "exc_type": type(e).__name__,
                        "error": str(e)[:300],
                    },
                )
                raise
            remaining = max_total_sleep_s - slept
            if remaining <= 0.0:
                logger.debug(
                    "drive.retry.budget_exceeded",
                    extra={"op": op_name, "attempts": attempt, "budget_s": max_total_sleep_s},
                )
                raise _RetryBudgetExceeded(f"Budget di retry esaurito per {op_name}") from e
            delay = min(random.uniform(0, base_delay_s * (2 ** (attempt - 1))), remaining)
            metrics = _METRICS_CTX.get()
            if metrics is not None:
                metrics.note_retry(e, delay)
            logger.debug("drive.retry.backoff", extra={"op": op_name, "attempt": attempt, "sleep_s": round(delay, 3)})
            sleep(delay)
            slept += delay


# ------------------------------- Costruzione client --------------------------------


def _load_credentials(path: Path, scopes: Sequence[str]) -> Any:
    """Carica credenziali da JSON: service account oppure utente autorizzato."""
    try:
        info = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise AuthError(f"File credenziali illeggibile: {e}", file_path=path) from e
    except ValueError as e:
        raise AuthError(f"File credenziali non è un JSON valido: {e}", file_path=path) from e
    if not isinstance(info, dict):
        raise AuthError("File credenziali non valido: atteso un oggetto JSON.", file_path=path)

    cred_type = info.get("type")
    try:
        if cred_type == "service_account":
            return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))
        if cred_type == "authorized_user":
            return user_credentials.Credentials.from_authorized_user_info(info, scopes=list(scopes))
    except ValueError as e:
        raise AuthError(f"Caricamento credenziali fallito: {e}", file_path=path) from e
    raise AuthError(f"Tipo di credenziali non supportato: {cred_type!r}", file_path=path)


def get_drive_service(
    credentials_file: Path | str,
    *,
    scopes: Sequence[str] = (DRIVE_READONLY_SCOPE,),
) -> Any:
    """Costruisce e restituisce un client Google Drive v3 in sola lettura.

    Raises:
        AuthError: file mancante/illeggibile, JSON non valido o client non costruibile.
    """
    path = Path(credentials_file).expanduser()
    if not path.is_file():
        raise AuthError("File credenziali mancante.", file_path=path)

    creds = _load_credentials(path, scopes)
    try:
        service = build("drive", "v3", credentials=creds, cache_discovery=False)
    except Exception as e:  # noqa: BLE001
        raise AuthError(f"Creazione client Google Drive fallita: {e}", file_path=path) from e

    logger.debug("drive.client.built", extra={"credentials": path.name, "scopes": ",".join(scopes)})
    return service


# ------------------------------- Primitive di lettura ------------------------------


def _q_parent(folder_id: str) -> str:
    # Query Drive V3: figli diretti non cestinati
    return f"'{folder_id}' in parents and trashed = false"


def list_drive_files(
    service: Any,
    folder_id: str,
    *,
    include_shared_drives: bool = False,
    fields: str = LIST_FIELDS,
    page_size: int = LIST_PAGE_SIZE,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Generator[Dict[str, Any], None, None]:
    """Elenca i figli di una cartella Drive (paging completo, retry per pagina).

    Raises:
        InvalidIdentifier: se `folder_id` è vuoto o non valido (subito, non all'iterazione).
    """
    folder_id_norm = validate_folder_id(folder_id)
    q = _q_parent(folder_id_norm)

    def _iter() -> Generator[Dict[str, Any], None, None]:
        page_token: Optional[str] = None
        while True:

            def _call() -> Any:
                req = service.files().list(
                    q=q,
                    fields=fields,
                    spaces="drive",
                    pageSize=page_size,
                    pageToken=page_token,
                    includeItemsFromAllDrives=include_shared_drives,
                    supportsAllDrives=include_shared_drives,
                )
                return req.execute()

            resp = _retry(_call, op_name="files.list", max_attempts=max_attempts)
            metrics = _METRICS_CTX.get()
            if metrics is not None:
                metrics.pages_listed += 1
            for f in resp.get("files", []) or []:
                yield f

            page_token = resp.get("nextPageToken")
            if not page_token:
                break

    return _iter()


def list_children(
    service: Any,
    folder_id: str,
    *,
    include_shared_drives: bool = False,
    page_size: int = LIST_PAGE_SIZE,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> List[RemoteNode]:
    """Elenco esaustivo dei figli come `RemoteNode`, nell'ordine delle pagine ricevute.

    Raises:
        ListingError: se una pagina fallisce (dopo i retry).
    """
    files = list_drive_files(
        service,
        folder_id,
        include_shared_drives=include_shared_drives,
        page_size=page_size,
        max_attempts=max_attempts,
    )
    try:
        nodes = [RemoteNode.from_api(f) for f in files]
    except Exception as e:  # noqa: BLE001
        raise ListingError(f"Elenco cartella fallito: {e}", drive_id=folder_id) from e
    logger.debug(
        "drive.list.ok",
        extra={"drive_id": mask_partial(folder_id, keep=6), "count": len(nodes)},
    )
    return nodes


def media_request(service: Any, file_id: str, *, include_shared_drives: bool = False) -> Any:
    """Richiesta per i byte grezzi di un file opaco."""
    return service.files().get_media(fileId=file_id, supportsAllDrives=include_shared_drives)


def export_request(service: Any, file_id: str, mime_type: str) -> Any:
    """Richiesta di conversione di un documento nativo nel MIME indicato."""
    return service.files().export_media(fileId=file_id, mimeType=mime_type)


__all__ = [
    "get_drive_service",
    "list_drive_files",
    "list_children",
    "media_request",
    "export_request",
    "_retry",
    "drive_metrics_scope",
    "get_retry_metrics",
]

"""Documents controller backed by a JSON file.

Stands in for the wallet engine when driving the catalog offline (CLI,
demos, tests). File layout::

    {
      "documents": [
        {
          "id": "pid-1",
          "name": "National ID",
          "format_type": "mso_mdoc",
          "issuer": "Utopia",
          "issued_at": "2024-01-15T00:00:00+00:00",
          "expires_at": "2034-01-15T00:00:00+00:00",
          "state": "issued"
        }
      ]
    }

Timestamps without an offset are taken as UTC. ``retry_issuance`` re-reads
the file, so editing a document's ``state`` from ``pending`` to ``issued``
simulates an issuer completing a deferred issuance.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wallet_catalog.config import _atomic_write_text
from wallet_catalog.errors import DocumentNotFoundError
from wallet_catalog.models import (
    DeleteResult,
    Document,
    IssuanceState,
    IssuedDocument,
    RetryIssuanceResult,
)

logger = logging.getLogger(__name__)


def _safe_get(data: dict, key: str, default: Any, expected_type: type) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if not isinstance(value, expected_type):
        return default
    return value


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("Ignoring invalid timestamp %r in documents file", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_document(raw: Any) -> Document | None:
    """Parse one document entry; entries without an id or name are skipped."""
    if not isinstance(raw, dict):
        return None
    document_id = _safe_get(raw, "id", "", str)
    name = _safe_get(raw, "name", "", str)
    if not document_id or not name:
        logger.warning("Skipping document entry without id/name: %r", raw)
        return None

    state_raw = _safe_get(raw, "state", IssuanceState.ISSUED.value, str)
    try:
        state = IssuanceState(state_raw)
    except ValueError:
        logger.warning("Invalid state %r for document %r, defaulting to 'issued'", state_raw, name)
        state = IssuanceState.ISSUED

    issuer = raw.get("issuer")
    return Document(
        document_id=document_id,
        name=name,
        format_type=_safe_get(raw, "format_type", "", str),
        issuer=issuer if isinstance(issuer, str) and issuer else None,
        issued_at=_parse_timestamp(raw.get("issued_at")),
        expires_at=_parse_timestamp(raw.get("expires_at")),
        issuance_state=state,
    )


def _document_to_dict(document: Document) -> dict[str, Any]:
    return {
        "id": document.document_id,
        "name": document.name,
        "format_type": document.format_type,
        "issuer": document.issuer,
        "issued_at": _format_timestamp(document.issued_at),
        "expires_at": _format_timestamp(document.expires_at),
        "state": document.issuance_state.value,
    }


def load_documents_file(path: Path) -> list[Document]:
    """Read documents from ``path``.

    A missing file is an empty wallet. Invalid JSON or an unreadable file
    raises, since the caller reports fetch failures to the user.
    """
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    raw_documents = data.get("documents", []) if isinstance(data, dict) else []
    if not isinstance(raw_documents, list):
        return []
    documents = []
    for raw in raw_documents:
        document = _parse_document(raw)
        if document is not None:
            documents.append(document)
    return documents


def save_documents_file(path: Path, documents: list[Document]) -> None:
    """Write documents atomically (temp file in the same dir + ``os.replace``)."""
    json_str = json.dumps(
        {"documents": [_document_to_dict(doc) for doc in documents]},
        indent=2,
        ensure_ascii=False,
    )
    _atomic_write_text(path, json_str, ".documents-")


def classify_retry(
    documents: list[Document], pending_refs: Mapping[str, str]
) -> RetryIssuanceResult:
    """Answer a retry query from the documents' current states."""
    by_id = {doc.document_id: doc for doc in documents}
    succeeded: list[IssuedDocument] = []
    still_pending: list[str] = []
    failed: list[str] = []
    for document_id in pending_refs:
        document = by_id.get(document_id)
        if document is None or document.issuance_state is IssuanceState.FAILED:
            failed.append(document_id)
        elif document.issuance_state is IssuanceState.PENDING:
            still_pending.append(document_id)
        else:
            succeeded.append(IssuedDocument(document_id=document_id, name=document.name))
    return RetryIssuanceResult(
        succeeded=tuple(succeeded),
        still_pending=tuple(still_pending),
        failed=tuple(failed),
    )


class JsonFileDocumentsController:
    """``DocumentsController`` over a JSON file; file I/O runs in a worker thread."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._write_lock = asyncio.Lock()

    async def get_all_documents(self) -> list[Document]:
        return await asyncio.to_thread(load_documents_file, self.path)

    async def get_document_by_id(self, document_id: str) -> Document:
        for document in await self.get_all_documents():
            if document.document_id == document_id:
                return document
        raise DocumentNotFoundError(document_id)

    async def retry_issuance(self, pending_refs: Mapping[str, str]) -> RetryIssuanceResult:
        documents = await self.get_all_documents()
        return classify_retry(documents, pending_refs)

    async def delete_document(self, document_id: str) -> DeleteResult:
        async with self._write_lock:
            documents = await self.get_all_documents()
            remaining = [doc for doc in documents if doc.document_id != document_id]
            if len(remaining) == len(documents):
                raise DocumentNotFoundError(document_id)
            await asyncio.to_thread(save_documents_file, self.path, remaining)
        logger.debug("Deleted document %s, %d remaining", document_id, len(remaining))
        return DeleteResult(all_deleted=not remaining)


__all__ = [
    "JsonFileDocumentsController",
    "classify_retry",
    "load_documents_file",
    "save_documents_file",
]

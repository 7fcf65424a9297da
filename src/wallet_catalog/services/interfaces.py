"""Collaborator interfaces + default adapters for catalog dependency injection."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from wallet_catalog.models import DeleteResult, Document, RetryIssuanceResult
from wallet_catalog.services.json_controller import JsonFileDocumentsController
from wallet_catalog.text import DefaultTextProvider


@runtime_checkable
class DocumentsController(Protocol):
    """Interface to the wallet engine's document store."""

    async def get_all_documents(self) -> list[Document]:
        """Return every known document, including those mid-issuance."""
        ...

    async def get_document_by_id(self, document_id: str) -> Document:
        """Return one document; raise ``DocumentNotFoundError`` if absent."""
        ...

    async def retry_issuance(self, pending_refs: Mapping[str, str]) -> RetryIssuanceResult:
        """Ask the issuer again about ``document_id -> format_type`` refs."""
        ...

    async def delete_document(self, document_id: str) -> DeleteResult:
        """Delete one document and report whether the wallet is now empty."""
        ...


@runtime_checkable
class LocalizedTextProvider(Protocol):
    """Display-text lookup. Nothing in the catalog branches on its output."""

    def get_string(self, key: str, *args: object) -> str: ...


@dataclass(slots=True)
class CatalogServices:
    """Aggregated collaborators consumed by the catalog orchestrator."""

    documents: DocumentsController
    text: LocalizedTextProvider


def build_default_services(documents_path: Path) -> CatalogServices:
    """Build services backed by a JSON documents file and the bundled strings."""
    return CatalogServices(
        documents=JsonFileDocumentsController(documents_path),
        text=DefaultTextProvider(),
    )


__all__ = [
    "CatalogServices",
    "DocumentsController",
    "LocalizedTextProvider",
    "build_default_services",
]

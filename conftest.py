"""Shared test fixtures for wallet catalog tests."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from wallet_catalog.catalog import DocumentCatalogOrchestrator
from wallet_catalog.config import CatalogSettings
from wallet_catalog.errors import DocumentNotFoundError
from wallet_catalog.models import (
    DeleteResult,
    Document,
    DocumentAttributes,
    DocumentListEntry,
    FilterableItem,
    IssuanceState,
    RetryIssuanceResult,
)
from wallet_catalog.services.interfaces import CatalogServices
from wallet_catalog.services.json_controller import classify_retry
from wallet_catalog.text import DefaultTextProvider

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class GatedSleep:
    """Async sleep stand-in that blocks until the test releases it.

    Releases made before a cycle reaches its sleep are remembered, so a
    test can release first and wait on the handle afterwards.
    """

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._gate = asyncio.Semaphore(0)

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await self._gate.acquire()

    def release(self, cycles: int = 1) -> None:
        for _ in range(cycles):
            self._gate.release()


class FakeDocumentsController:
    """In-memory ``DocumentsController``.

    Scripted retry answers (or exceptions) are consumed in order and also
    update the stored documents' states, so the refresh that follows a
    poll sees what the issuer reported. Without a script, answers are
    derived from the stored states.
    """

    def __init__(
        self,
        documents: list[Document] | None = None,
        retry_results: list[RetryIssuanceResult | Exception] | None = None,
    ) -> None:
        self.documents = list(documents or [])
        self.retry_results = list(retry_results or [])
        self.retry_calls: list[dict[str, str]] = []
        self.fetch_calls = 0
        self.fetch_error: Exception | None = None
        self.delete_error: Exception | None = None

    def set_state(self, document_id: str, state: IssuanceState) -> None:
        self.documents = [
            replace(doc, issuance_state=state) if doc.document_id == document_id else doc
            for doc in self.documents
        ]

    async def get_all_documents(self) -> list[Document]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.documents)

    async def get_document_by_id(self, document_id: str) -> Document:
        for document in self.documents:
            if document.document_id == document_id:
                return document
        raise DocumentNotFoundError(document_id)

    async def retry_issuance(self, pending_refs: Mapping[str, str]) -> RetryIssuanceResult:
        self.retry_calls.append(dict(pending_refs))
        if not self.retry_results:
            return classify_retry(self.documents, pending_refs)
        answer = self.retry_results.pop(0)
        if isinstance(answer, Exception):
            raise answer
        for issued in answer.succeeded:
            self.set_state(issued.document_id, IssuanceState.ISSUED)
        for document_id in answer.failed:
            self.set_state(document_id, IssuanceState.FAILED)
        return answer

    async def delete_document(self, document_id: str) -> DeleteResult:
        if self.delete_error is not None:
            raise self.delete_error
        remaining = [doc for doc in self.documents if doc.document_id != document_id]
        if len(remaining) == len(self.documents):
            raise DocumentNotFoundError(document_id)
        self.documents = remaining
        return DeleteResult(all_deleted=not remaining)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def text_provider() -> DefaultTextProvider:
    return DefaultTextProvider()


@pytest.fixture
def gated_sleep() -> GatedSleep:
    return GatedSleep()


@pytest.fixture
def make_document():
    """Factory fixture for creating Document instances with sensible defaults.

    ``expires_in_days`` is relative to FIXED_NOW; pass None for no expiry.
    """

    def _make(
        document_id: str = "doc-1",
        name: str = "National ID",
        format_type: str = "mso_mdoc",
        issuer: str | None = "Utopia",
        issued_days_ago: int | None = 30,
        expires_in_days: int | None = 365,
        state: IssuanceState = IssuanceState.ISSUED,
    ) -> Document:
        return Document(
            document_id=document_id,
            name=name,
            format_type=format_type,
            issuer=issuer,
            issued_at=(
                FIXED_NOW - timedelta(days=issued_days_ago) if issued_days_ago is not None else None
            ),
            expires_at=(
                FIXED_NOW + timedelta(days=expires_in_days) if expires_in_days is not None else None
            ),
            issuance_state=state,
        )

    return _make


@pytest.fixture
def make_item():
    """Factory fixture for FilterableItems carrying document attributes."""

    def _make(
        item_id: str = "a",
        name: str | None = None,
        issuer: str | None = None,
        expires_at: datetime | None = None,
        issued_at: datetime | None = None,
        state: IssuanceState = IssuanceState.ISSUED,
        format_type: str = "mso_mdoc",
        search_tags: tuple[str, ...] | None = None,
    ) -> FilterableItem:
        name = name if name is not None else item_id.upper()
        if search_tags is None:
            search_tags = tuple(tag for tag in (name, issuer) if tag)
        attributes = DocumentAttributes(
            name=name,
            format_type=format_type,
            issuer=issuer,
            issued_at=issued_at,
            expires_at=expires_at,
            issuance_state=state,
            search_tags=search_tags,
        )
        payload = DocumentListEntry(document_id=item_id, title=name, issuance_state=state)
        return FilterableItem(id=item_id, attributes=attributes, payload=payload)

    return _make


@pytest.fixture
def fake_controller():
    """Factory fixture for FakeDocumentsController."""

    def _make(**kwargs: Any) -> FakeDocumentsController:
        return FakeDocumentsController(**kwargs)

    return _make


@pytest.fixture
def make_catalog(gated_sleep, text_provider):
    """Factory fixture wiring an orchestrator to a controller, FIXED_NOW and gated sleep."""

    def _make(
        controller: FakeDocumentsController, **kwargs: Any
    ) -> DocumentCatalogOrchestrator:
        on_ready = kwargs.pop("on_ready", None)
        on_poll_error = kwargs.pop("on_poll_error", None)
        settings = CatalogSettings(**kwargs)
        return DocumentCatalogOrchestrator(
            CatalogServices(documents=controller, text=text_provider),
            settings,
            now=lambda: FIXED_NOW,
            sleep=gated_sleep,
            on_ready=on_ready,
            on_poll_error=on_poll_error,
        )

    return _make

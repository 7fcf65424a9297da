"""Merge freshly fetched documents with deferred-issuance markers.

Failures of deferred documents are data, not exceptions: a document is
Failed because its id sits in the tracker's failed set, and it stays there
across poll cycles until it is issued, deleted, or retried by hand.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from wallet_catalog.models import (
    DeferredDocumentRef,
    DeferredState,
    DocumentListEntry,
    FilterableCollection,
    FilterableItem,
    IssuanceState,
    RetryIssuanceResult,
    RetryReconciliation,
)

logger = logging.getLogger(__name__)


def _mark_item_failed(item: FilterableItem, status_text: str) -> FilterableItem:
    attributes = item.attributes
    if hasattr(attributes, "issuance_state"):
        attributes = replace(attributes, issuance_state=IssuanceState.FAILED)
    payload = item.payload
    if isinstance(payload, DocumentListEntry):
        payload = replace(
            payload,
            issuance_state=IssuanceState.FAILED,
            supporting_text=status_text or payload.supporting_text,
            show_error_icon=True,
        )
    return replace(item, attributes=attributes, payload=payload)


def mark_failed(
    collection: FilterableCollection,
    failed_ids: Iterable[str],
    *,
    status_text: str = "",
) -> FilterableCollection:
    """Overlay the failed status on items whose id is in ``failed_ids``.

    Other items pass through untouched (same objects).
    """
    failed = frozenset(failed_ids)
    if not failed:
        return collection
    return collection.with_items(
        _mark_item_failed(item, status_text) if item.id in failed else item
        for item in collection.items
    )


def extract_pending(collection: FilterableCollection) -> dict[str, str]:
    """Map ``document_id -> format_type`` for items still awaiting issuance."""
    pending: dict[str, str] = {}
    for item in collection.items:
        attributes = item.attributes
        if getattr(attributes, "issuance_state", None) is IssuanceState.PENDING:
            pending[item.id] = getattr(attributes, "format_type", "")
    return pending


def reconcile_retry_result(
    queried: Mapping[str, str], result: RetryIssuanceResult
) -> RetryReconciliation:
    """Classify a retry answer against the refs that were actually queried.

    A queried document that the controller neither issued nor reported as
    still pending has failed, whether or not it was listed as failed.
    Answers about ids that were not queried are ignored.
    """
    issued = tuple(doc for doc in result.succeeded if doc.document_id in queried)
    issued_ids = {doc.document_id for doc in issued}
    still_pending = {
        doc_id: queried[doc_id]
        for doc_id in result.still_pending
        if doc_id in queried and doc_id not in issued_ids
    }
    failed_ids = frozenset(
        doc_id for doc_id in queried if doc_id not in issued_ids and doc_id not in still_pending
    )
    unexplained = failed_ids.difference(result.failed)
    if unexplained:
        logger.debug("Deferred documents dropped out of retry answer: %s", sorted(unexplained))
    return RetryReconciliation(issued=issued, still_pending=still_pending, failed_ids=failed_ids)


@dataclass(frozen=True, slots=True)
class DeferredTracker:
    """Immutable record of deferred documents still being tracked."""

    refs: dict[str, DeferredDocumentRef] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.refs)

    @property
    def pending(self) -> dict[str, str]:
        return {
            ref.document_id: ref.format_type
            for ref in self.refs.values()
            if ref.state is DeferredState.PENDING
        }

    @property
    def failed_ids(self) -> frozenset[str]:
        return frozenset(
            ref.document_id for ref in self.refs.values() if ref.state is DeferredState.FAILED
        )

    def track_pending(self, pending: Mapping[str, str]) -> DeferredTracker:
        """Record ``pending`` refs as Pending (a manual retry re-pends a failure)."""
        if not pending:
            return self
        refs = dict(self.refs)
        for doc_id, format_type in pending.items():
            refs[doc_id] = DeferredDocumentRef(doc_id, format_type, DeferredState.PENDING)
        return DeferredTracker(refs)

    def apply(
        self, reconciliation: RetryReconciliation, queried: Mapping[str, str]
    ) -> DeferredTracker:
        """Fold one retry answer in: issued refs leave, the rest are re-stated."""
        refs = dict(self.refs)
        for doc in reconciliation.issued:
            refs.pop(doc.document_id, None)
        for doc_id, format_type in reconciliation.still_pending.items():
            refs[doc_id] = DeferredDocumentRef(doc_id, format_type, DeferredState.PENDING)
        for doc_id in reconciliation.failed_ids:
            format_type = queried.get(doc_id, "")
            refs[doc_id] = DeferredDocumentRef(doc_id, format_type, DeferredState.FAILED)
        return DeferredTracker(refs)

    def forget(self, document_id: str) -> DeferredTracker:
        if document_id not in self.refs:
            return self
        refs = dict(self.refs)
        del refs[document_id]
        return DeferredTracker(refs)

    def clear_issued(self, collection: FilterableCollection) -> DeferredTracker:
        """Drop refs for documents the latest fetch reports as fully issued."""
        issued = {
            item.id
            for item in collection.items
            if item.id in self.refs
            and getattr(item.attributes, "issuance_state", None) is IssuanceState.ISSUED
        }
        if not issued:
            return self
        logger.debug("Deferred documents issued since last check: %s", sorted(issued))
        return DeferredTracker(
            {doc_id: ref for doc_id, ref in self.refs.items() if doc_id not in issued}
        )

    def retain(self, present_ids: Iterable[str]) -> DeferredTracker:
        """Drop refs for documents no longer present (deleted elsewhere)."""
        present = set(present_ids)
        if all(doc_id in present for doc_id in self.refs):
            return self
        return DeferredTracker(
            {doc_id: ref for doc_id, ref in self.refs.items() if doc_id in present}
        )


__all__ = [
    "DeferredTracker",
    "extract_pending",
    "mark_failed",
    "reconcile_retry_result",
]

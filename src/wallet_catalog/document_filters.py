"""The documents screen's filter catalogue and document -> item conversion."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from wallet_catalog.models import (
    DEFAULT_EXPIRING_SOON_DAYS,
    DEFAULT_EXPIRING_WINDOW_DAYS,
    Document,
    DocumentAttributes,
    DocumentListEntry,
    FilterableCollection,
    FilterableItem,
    FilterConfiguration,
    FilterGroup,
    FilterItem,
    GroupKind,
    IssuanceState,
    Predicate,
    SortDirection,
    SortKey,
    match_all_item,
)

if TYPE_CHECKING:
    from wallet_catalog.services.interfaces import LocalizedTextProvider

Clock = Callable[[], datetime]

# Group and filter ids (stable across releases; persisted in session state)
EXPIRY_GROUP_ID = "expiry_period"
EXPIRY_NEXT_SOON = "expiry_next_soon"
EXPIRY_NEXT_WINDOW = "expiry_next_window"
EXPIRY_BEYOND_WINDOW = "expiry_beyond_window"
EXPIRY_EXPIRED = "expiry_expired"

SORT_GROUP_ID = "sort"
SORT_DEFAULT = "sort_default"
SORT_DATE_ISSUED = "sort_date_issued"
SORT_EXPIRY_DATE = "sort_expiry_date"

ISSUER_GROUP_ID = "issuer"
ISSUER_ALL = "issuer_all"

STATE_GROUP_ID = "state"
STATE_VALID = "state_valid"
STATE_EXPIRED = "state_expired"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Expiry helpers
# ============================================================================


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and expires_at < now


def is_within_next_days(expires_at: datetime | None, days: int, now: datetime) -> bool:
    """True when the document is still valid but expires within ``days``."""
    if expires_at is None:
        return False
    return now <= expires_at <= now + timedelta(days=days)


def is_beyond_next_days(expires_at: datetime | None, days: int, now: datetime) -> bool:
    return expires_at is not None and expires_at > now + timedelta(days=days)


# ============================================================================
# Default configuration
# ============================================================================


def _name_key(attributes: DocumentAttributes) -> str:
    return attributes.name.lower()


def _issued_key(attributes: DocumentAttributes) -> datetime | None:
    return attributes.issued_at


def _expiry_key(attributes: DocumentAttributes) -> datetime | None:
    return attributes.expires_at


def build_default_configuration(
    text: LocalizedTextProvider,
    *,
    now: Clock = utc_now,
    soon_days: int = DEFAULT_EXPIRING_SOON_DAYS,
    window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS,
) -> FilterConfiguration:
    """Build the documents screen's initial filter configuration.

    Expiry predicates read ``now()`` at evaluation time, so a long-lived
    configuration keeps classifying documents against the current clock.
    The issuer group starts empty and is filled by ``derive_issuer_group``
    once documents are loaded.
    """
    expiry_group = FilterGroup(
        id=EXPIRY_GROUP_ID,
        name=text.get_string("documents_screen_filters_filter_by_expiry_period"),
        items=(
            FilterItem(
                id=EXPIRY_NEXT_SOON,
                name=text.get_string(
                    "documents_screen_filters_filter_by_expiry_period_1", soon_days
                ),
                selected=False,
                action=Predicate(lambda a: is_within_next_days(a.expires_at, soon_days, now())),
            ),
            FilterItem(
                id=EXPIRY_NEXT_WINDOW,
                name=text.get_string(
                    "documents_screen_filters_filter_by_expiry_period_2", window_days
                ),
                selected=False,
                action=Predicate(lambda a: is_within_next_days(a.expires_at, window_days, now())),
            ),
            FilterItem(
                id=EXPIRY_BEYOND_WINDOW,
                name=text.get_string(
                    "documents_screen_filters_filter_by_expiry_period_3", window_days
                ),
                selected=False,
                action=Predicate(lambda a: is_beyond_next_days(a.expires_at, window_days, now())),
            ),
            FilterItem(
                id=EXPIRY_EXPIRED,
                name=text.get_string("documents_screen_filters_filter_by_expiry_period_4"),
                selected=False,
                action=Predicate(lambda a: is_expired(a.expires_at, now())),
            ),
        ),
    )
    sort_group = FilterGroup(
        id=SORT_GROUP_ID,
        name=text.get_string("documents_screen_filters_sort_by"),
        kind=GroupKind.SORT,
        items=(
            FilterItem(
                id=SORT_DEFAULT,
                name=text.get_string("documents_screen_filters_sort_default"),
                selected=True,
                action=SortKey(_name_key),
            ),
            FilterItem(
                id=SORT_DATE_ISSUED,
                name=text.get_string("documents_screen_filters_sort_date_issued"),
                selected=False,
                action=SortKey(_issued_key),
            ),
            FilterItem(
                id=SORT_EXPIRY_DATE,
                name=text.get_string("documents_screen_filters_sort_expiry_date"),
                selected=False,
                action=SortKey(_expiry_key),
            ),
        ),
    )
    issuer_group = FilterGroup(
        id=ISSUER_GROUP_ID,
        name=text.get_string("documents_screen_filters_filter_by_issuer"),
    )
    state_group = FilterGroup(
        id=STATE_GROUP_ID,
        name=text.get_string("documents_screen_filters_filter_by_state"),
        items=(
            FilterItem(
                id=STATE_VALID,
                name=text.get_string("documents_screen_filters_filter_by_state_valid"),
                selected=False,
                action=Predicate(
                    lambda a: a.expires_at is not None and not is_expired(a.expires_at, now())
                ),
            ),
            FilterItem(
                id=STATE_EXPIRED,
                name=text.get_string("documents_screen_filters_filter_by_state_expired"),
                selected=False,
                action=Predicate(lambda a: is_expired(a.expires_at, now())),
            ),
        ),
    )
    return FilterConfiguration(
        groups=(expiry_group, sort_group, issuer_group, state_group),
        sort_direction=SortDirection.ASCENDING,
    )


def _issuer_predicate(issuer: str) -> Predicate:
    return Predicate(lambda a: a.issuer == issuer)


def derive_issuer_group(
    collection: FilterableCollection,
    existing: FilterGroup,
    all_label: str,
    *,
    preselected: Iterable[str] = (),
) -> FilterGroup:
    """Rebuild the issuer group from the issuers present in ``collection``.

    Entries are ``[all] + distinct issuers`` in first-seen order. Issuers
    selected in ``existing`` (or listed in ``preselected``) stay selected if
    they are still present; otherwise the sentinel is selected.
    """
    keep = {item.id for item in existing.items if item.selected and not item.sentinel}
    keep.update(preselected)

    issuers: list[str] = []
    seen: set[str] = set()
    for item in collection.items:
        issuer = getattr(item.attributes, "issuer", None)
        if issuer is None or issuer in seen:
            continue
        seen.add(issuer)
        issuers.append(issuer)

    entries = [
        FilterItem(
            id=issuer, name=issuer, selected=issuer in keep, action=_issuer_predicate(issuer)
        )
        for issuer in issuers
    ]
    any_selected = any(entry.selected for entry in entries)
    sentinel = match_all_item(ISSUER_ALL, all_label, selected=not any_selected)
    return replace(existing, items=(sentinel, *entries))


# ============================================================================
# Document conversion
# ============================================================================


def _supporting_text(document: Document, text: LocalizedTextProvider, now: datetime) -> str:
    if document.issuance_state is IssuanceState.PENDING:
        return text.get_string("dashboard_document_deferred_pending")
    if document.issuance_state is IssuanceState.FAILED:
        return text.get_string("dashboard_document_deferred_failed")
    if document.expires_at is None:
        return ""
    if is_expired(document.expires_at, now):
        return text.get_string("dashboard_document_expired")
    valid_until = document.expires_at.date().isoformat()
    return text.get_string("dashboard_document_valid_until", valid_until)


def document_to_item(
    document: Document, text: LocalizedTextProvider, *, now: Clock = utc_now
) -> FilterableItem:
    """Wrap a controller document as a filterable list item."""
    search_tags = tuple(tag for tag in (document.name, document.issuer) if tag)
    attributes = DocumentAttributes(
        name=document.name,
        format_type=document.format_type,
        issuer=document.issuer,
        issued_at=document.issued_at,
        expires_at=document.expires_at,
        issuance_state=document.issuance_state,
        search_tags=search_tags,
    )
    payload = DocumentListEntry(
        document_id=document.document_id,
        title=document.name,
        supporting_text=_supporting_text(document, text, now()),
        issuance_state=document.issuance_state,
        show_error_icon=document.issuance_state is IssuanceState.FAILED,
    )
    return FilterableItem(id=document.document_id, attributes=attributes, payload=payload)


def documents_to_collection(
    documents: Iterable[Document], text: LocalizedTextProvider, *, now: Clock = utc_now
) -> FilterableCollection:
    """Convert documents, keeping the first occurrence of a duplicated id."""
    items: list[FilterableItem] = []
    seen: set[str] = set()
    for document in documents:
        if document.document_id in seen:
            continue
        seen.add(document.document_id)
        items.append(document_to_item(document, text, now=now))
    return FilterableCollection(items=tuple(items))


__all__ = [
    "EXPIRY_BEYOND_WINDOW",
    "EXPIRY_EXPIRED",
    "EXPIRY_GROUP_ID",
    "EXPIRY_NEXT_SOON",
    "EXPIRY_NEXT_WINDOW",
    "ISSUER_ALL",
    "ISSUER_GROUP_ID",
    "SORT_DATE_ISSUED",
    "SORT_DEFAULT",
    "SORT_EXPIRY_DATE",
    "SORT_GROUP_ID",
    "STATE_EXPIRED",
    "STATE_GROUP_ID",
    "STATE_VALID",
    "build_default_configuration",
    "derive_issuer_group",
    "document_to_item",
    "documents_to_collection",
    "is_beyond_next_days",
    "is_expired",
    "is_within_next_days",
    "utc_now",
]

"""Wallet document catalog: filtering, sorting and deferred-issuance reconciliation."""

from wallet_catalog.catalog import (
    CatalogView,
    DeleteOutcome,
    DocumentCatalogOrchestrator,
    ReadyNotice,
)
from wallet_catalog.config import CatalogSettings, SessionState, load_settings, save_settings
from wallet_catalog.errors import (
    CatalogError,
    DeletionFailure,
    DocumentNotFoundError,
    FetchFailure,
    PollQueryFailure,
)
from wallet_catalog.filter_session import FilterSessionManager
from wallet_catalog.filtering import (
    apply_filters,
    filter_by_query,
    has_active_filters,
    item_passes_group,
    sort_collection,
)
from wallet_catalog.models import (
    DeferredDocumentRef,
    DeferredState,
    DeleteResult,
    Document,
    FilterableCollection,
    FilterableItem,
    FilterConfiguration,
    FilterGroup,
    FilterItem,
    GroupKind,
    IssuanceState,
    IssuedDocument,
    Predicate,
    RetryIssuanceResult,
    SortDirection,
    SortKey,
)
from wallet_catalog.polling import DeferredIssuancePoller, PollHandle, PollOutcome, PollerState
from wallet_catalog.reconciliation import (
    DeferredTracker,
    extract_pending,
    mark_failed,
    reconcile_retry_result,
)

__all__ = [
    "CatalogError",
    "CatalogSettings",
    "CatalogView",
    "DeferredDocumentRef",
    "DeferredIssuancePoller",
    "DeferredState",
    "DeferredTracker",
    "DeleteOutcome",
    "DeleteResult",
    "DeletionFailure",
    "Document",
    "DocumentCatalogOrchestrator",
    "DocumentNotFoundError",
    "FetchFailure",
    "FilterConfiguration",
    "FilterGroup",
    "FilterItem",
    "FilterSessionManager",
    "FilterableCollection",
    "FilterableItem",
    "GroupKind",
    "IssuanceState",
    "IssuedDocument",
    "PollHandle",
    "PollOutcome",
    "PollQueryFailure",
    "PollerState",
    "Predicate",
    "ReadyNotice",
    "RetryIssuanceResult",
    "SessionState",
    "SortDirection",
    "SortKey",
    "apply_filters",
    "extract_pending",
    "filter_by_query",
    "has_active_filters",
    "item_passes_group",
    "load_settings",
    "mark_failed",
    "reconcile_retry_result",
    "save_settings",
    "sort_collection",
]

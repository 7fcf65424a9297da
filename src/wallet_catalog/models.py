"""Data models and constants for the wallet document catalog."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

# Application identity — single source of truth for platformdirs config paths
CONFIG_APP_NAME = "wallet-catalog"

# Delay before each deferred-issuance query
DEFAULT_POLL_DELAY_SECONDS = 5.0
MAX_POLL_DELAY_SECONDS = 300.0

# Expiry windows used by the default filter catalogue
DEFAULT_EXPIRING_SOON_DAYS = 7
DEFAULT_EXPIRING_WINDOW_DAYS = 30

# Minimum rapidfuzz partial_ratio score accepted by fuzzy search
FUZZY_SCORE_CUTOFF = 80


class IssuanceState(str, Enum):
    """Issuance status of a document as seen by the catalog."""

    ISSUED = "issued"
    PENDING = "pending"
    FAILED = "failed"


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class GroupKind(str, Enum):
    """Whether a group narrows the collection or selects its ordering."""

    FILTER = "filter"
    SORT = "sort"


class DeferredState(str, Enum):
    PENDING = "pending"
    FAILED = "failed"


# ============================================================================
# Documents (controller-facing)
# ============================================================================


@dataclass(frozen=True, slots=True)
class Document:
    """A wallet document as reported by the documents controller."""

    document_id: str
    name: str
    format_type: str
    issuer: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    issuance_state: IssuanceState = IssuanceState.ISSUED


@dataclass(frozen=True, slots=True)
class IssuedDocument:
    """A deferred document that finished issuance during a retry."""

    document_id: str
    name: str


@dataclass(frozen=True, slots=True)
class RetryIssuanceResult:
    """Controller answer to a deferred-issuance retry query."""

    succeeded: tuple[IssuedDocument, ...] = ()
    still_pending: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Controller answer to a delete; all_deleted means the wallet is now empty."""

    all_deleted: bool


# ============================================================================
# Filterable collections
# ============================================================================


@dataclass(frozen=True, slots=True)
class DocumentAttributes:
    """Attribute bag the document filters and sort keys read from."""

    name: str
    format_type: str
    issuer: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    issuance_state: IssuanceState = IssuanceState.ISSUED
    search_tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DocumentListEntry:
    """Display payload for one row of the documents list."""

    document_id: str
    title: str
    supporting_text: str = ""
    issuance_state: IssuanceState = IssuanceState.ISSUED
    show_error_icon: bool = False


@dataclass(frozen=True, slots=True)
class FilterableItem:
    """An item the filter engine can test and order.

    Identity is the ``id`` alone; two items with the same id are the same
    document even when their attributes differ.
    """

    id: str
    attributes: Any
    payload: Any = None


@dataclass(frozen=True, slots=True)
class FilterableCollection:
    """Immutable, ordered list of filterable items."""

    items: tuple[FilterableItem, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[FilterableItem]:
        return iter(self.items)

    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    def get(self, item_id: str) -> FilterableItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def with_items(self, items: Iterable[FilterableItem]) -> FilterableCollection:
        return FilterableCollection(items=tuple(items))


# ============================================================================
# Filter configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class Predicate:
    """Inclusion test evaluated against an item's attributes."""

    test: Callable[[Any], bool]


@dataclass(frozen=True, slots=True)
class SortKey:
    """Key extractor; a ``None`` key always sorts last."""

    key: Callable[[Any], Any]


FilterAction = Predicate | SortKey


def _match_all(_attributes: Any) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class FilterItem:
    """One selectable entry of a filter or sort group."""

    id: str
    name: str
    selected: bool
    action: FilterAction
    sentinel: bool = False


def match_all_item(item_id: str, name: str, *, selected: bool = True) -> FilterItem:
    """Build the sentinel "all" entry of a filter group."""
    return FilterItem(
        id=item_id,
        name=name,
        selected=selected,
        action=Predicate(_match_all),
        sentinel=True,
    )


@dataclass(frozen=True, slots=True)
class FilterGroup:
    id: str
    name: str
    kind: GroupKind = GroupKind.FILTER
    items: tuple[FilterItem, ...] = ()

    def find(self, filter_id: str) -> FilterItem | None:
        for item in self.items:
            if item.id == filter_id:
                return item
        return None

    def selected_items(self) -> list[FilterItem]:
        return [item for item in self.items if item.selected]

    def selected_ids(self) -> list[str]:
        return [item.id for item in self.items if item.selected]

    @property
    def sentinel(self) -> FilterItem | None:
        for item in self.items:
            if item.sentinel:
                return item
        return None


@dataclass(frozen=True, slots=True)
class FilterConfiguration:
    """Complete filter + sort state. Never edited in place."""

    groups: tuple[FilterGroup, ...] = ()
    sort_direction: SortDirection = SortDirection.ASCENDING

    def group(self, group_id: str) -> FilterGroup | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def replace_group(self, updated: FilterGroup) -> FilterConfiguration:
        """Return a copy with the group sharing ``updated.id`` swapped out."""
        groups = tuple(updated if group.id == updated.id else group for group in self.groups)
        return replace(self, groups=groups)

    def with_sort_direction(self, direction: SortDirection) -> FilterConfiguration:
        return replace(self, sort_direction=direction)

    def selections(self) -> dict[str, list[str]]:
        """Selected filter ids per group, in group order."""
        return {group.id: group.selected_ids() for group in self.groups}


# ============================================================================
# Deferred issuance tracking
# ============================================================================


@dataclass(frozen=True, slots=True)
class DeferredDocumentRef:
    document_id: str
    format_type: str
    state: DeferredState = DeferredState.PENDING


@dataclass(frozen=True, slots=True)
class RetryReconciliation:
    """Classification of one retry query against the refs that were queried."""

    issued: tuple[IssuedDocument, ...] = ()
    still_pending: dict[str, str] = field(default_factory=dict)
    failed_ids: frozenset[str] = frozenset()


__all__ = [
    "CONFIG_APP_NAME",
    "DEFAULT_EXPIRING_SOON_DAYS",
    "DEFAULT_EXPIRING_WINDOW_DAYS",
    "DEFAULT_POLL_DELAY_SECONDS",
    "FUZZY_SCORE_CUTOFF",
    "MAX_POLL_DELAY_SECONDS",
    "DeferredDocumentRef",
    "DeferredState",
    "DeleteResult",
    "Document",
    "DocumentAttributes",
    "DocumentListEntry",
    "FilterAction",
    "FilterConfiguration",
    "FilterGroup",
    "FilterItem",
    "FilterableCollection",
    "FilterableItem",
    "GroupKind",
    "IssuanceState",
    "IssuedDocument",
    "Predicate",
    "RetryIssuanceResult",
    "RetryReconciliation",
    "SortDirection",
    "SortKey",
    "match_all_item",
]

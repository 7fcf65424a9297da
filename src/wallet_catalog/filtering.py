"""Filter, sort, and search over filterable collections."""

from __future__ import annotations

import logging
import time
from typing import Any

from rapidfuzz import fuzz

from wallet_catalog.models import (
    FUZZY_SCORE_CUTOFF,
    FilterableCollection,
    FilterableItem,
    FilterConfiguration,
    FilterGroup,
    FilterItem,
    GroupKind,
    Predicate,
    SortDirection,
    SortKey,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Action dispatch
# ============================================================================


def _predicate_of(item: FilterItem) -> Predicate:
    """Return the predicate behind a filter-group entry."""
    action = item.action
    if isinstance(action, Predicate):
        return action
    if isinstance(action, SortKey):
        raise TypeError(f"Filter {item.id!r} carries a sort key inside a filter group")
    raise TypeError(f"Unknown filter action {type(action).__name__} on {item.id!r}")


def _sort_key_of(item: FilterItem) -> SortKey:
    """Return the key extractor behind a sort-group entry."""
    action = item.action
    if isinstance(action, SortKey):
        return action
    if isinstance(action, Predicate):
        raise TypeError(f"Filter {item.id!r} carries a predicate inside a sort group")
    raise TypeError(f"Unknown filter action {type(action).__name__} on {item.id!r}")


# ============================================================================
# Filter Engine
# ============================================================================


def item_passes_group(item: FilterableItem, group: FilterGroup) -> bool:
    """Check one item against one group.

    Selected predicates within a group are OR-ed. A group with nothing
    selected (or no entries at all) never excludes anything, and sort
    groups never filter.
    """
    if group.kind is GroupKind.SORT:
        return True
    selected = group.selected_items()
    if not selected:
        return True
    return any(_predicate_of(entry).test(item.attributes) for entry in selected)


def active_sort_item(config: FilterConfiguration) -> FilterItem | None:
    """Return the selected entry of the first sort group, if any."""
    for group in config.groups:
        if group.kind is not GroupKind.SORT:
            continue
        selected = group.selected_items()
        if selected:
            return selected[0]
    return None


def apply_filters(
    collection: FilterableCollection, config: FilterConfiguration
) -> FilterableCollection:
    """Derive the filtered and sorted view of ``collection``.

    An item survives only if it passes every group (AND across groups).
    Survivors are then ordered by the active sort key and direction.
    """
    perf_start = time.perf_counter() if logger.isEnabledFor(logging.DEBUG) else None
    filter_groups = [group for group in config.groups if group.kind is GroupKind.FILTER]
    survivors = [
        item
        for item in collection.items
        if all(item_passes_group(item, group) for group in filter_groups)
    ]
    result = collection.with_items(survivors)

    sort_item = active_sort_item(config)
    if sort_item is not None:
        result = sort_collection(result, _sort_key_of(sort_item), config.sort_direction)

    if perf_start is not None:
        logger.debug(
            "Filters applied: matched=%d/%d, sort=%s %s, %.2fms",
            len(result),
            len(collection),
            sort_item.id if sort_item else None,
            config.sort_direction.value,
            (time.perf_counter() - perf_start) * 1000.0,
        )
    return result


# ============================================================================
# Sort Engine
# ============================================================================


def sort_collection(
    collection: FilterableCollection,
    sort_key: SortKey,
    direction: SortDirection = SortDirection.ASCENDING,
) -> FilterableCollection:
    """Sort a collection by ``sort_key``, returning a new collection.

    The sort is stable in both directions. Items whose key is ``None`` are
    placed after every keyed item regardless of direction, keeping their
    relative input order.
    """
    keyed: list[tuple[Any, FilterableItem]] = []
    missing: list[FilterableItem] = []
    for item in collection.items:
        value = sort_key.key(item.attributes)
        if value is None:
            missing.append(item)
        else:
            keyed.append((value, item))

    keyed.sort(key=lambda pair: pair[0], reverse=direction is SortDirection.DESCENDING)
    return collection.with_items([item for _, item in keyed] + missing)


# ============================================================================
# Search
# ============================================================================


def _search_tags(item: FilterableItem) -> list[str]:
    tags = getattr(item.attributes, "search_tags", ()) or ()
    return [tag.lower() for tag in tags if tag]


def matches_query(item: FilterableItem, needle: str, *, fuzzy: bool = False) -> bool:
    """Check a lower-cased, stripped needle against an item's search tags."""
    tags = _search_tags(item)
    if any(needle in tag for tag in tags):
        return True
    if not fuzzy:
        return False
    return any(fuzz.partial_ratio(needle, tag) >= FUZZY_SCORE_CUTOFF for tag in tags)


def filter_by_query(
    collection: FilterableCollection, query: str, *, fuzzy: bool = False
) -> FilterableCollection:
    """Keep items whose search tags contain ``query`` (case-insensitive).

    Args:
        collection: Collection to search, typically already filtered and sorted.
        query: Free text typed by the user. Blank queries match everything.
        fuzzy: Also accept tags scoring at least FUZZY_SCORE_CUTOFF with
            rapidfuzz's partial ratio.

    Returns:
        A new collection preserving the input order.
    """
    needle = query.strip().lower()
    if not needle:
        return collection
    return collection.with_items(
        item for item in collection.items if matches_query(item, needle, fuzzy=fuzzy)
    )


# ============================================================================
# Configuration comparison
# ============================================================================


def has_active_filters(applied: FilterConfiguration, defaults: FilterConfiguration) -> bool:
    """Return True when ``applied`` narrows or reorders relative to ``defaults``.

    Filter groups count as active when any non-sentinel entry is selected;
    sort groups when their selection differs from the default selection.
    """
    if applied.sort_direction is not defaults.sort_direction:
        return True
    for group in applied.groups:
        if group.kind is GroupKind.FILTER:
            if any(entry.selected and not entry.sentinel for entry in group.items):
                return True
            continue
        default_group = defaults.group(group.id)
        default_ids = default_group.selected_ids() if default_group else []
        if group.selected_ids() != default_ids:
            return True
    return False


__all__ = [
    "active_sort_item",
    "apply_filters",
    "filter_by_query",
    "has_active_filters",
    "item_passes_group",
    "matches_query",
    "sort_collection",
]

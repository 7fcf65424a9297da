"""Working-copy vs. applied filter configuration for one catalog screen."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace

from wallet_catalog.filtering import apply_filters
from wallet_catalog.models import (
    FilterableCollection,
    FilterConfiguration,
    FilterGroup,
    GroupKind,
    SortDirection,
)

logger = logging.getLogger(__name__)


def toggle_in_group(group: FilterGroup, filter_id: str) -> FilterGroup:
    """Return ``group`` with ``filter_id`` toggled under the group's selection rules.

    Sort groups are single-select: the target becomes the only selection.
    In filter groups the sentinel and the specific entries exclude each
    other; deselecting the last specific entry falls back to the sentinel.
    """
    target = group.find(filter_id)
    if target is None:
        return group

    if group.kind is GroupKind.SORT:
        items = tuple(replace(item, selected=item.id == filter_id) for item in group.items)
        return replace(group, items=items)

    if target.sentinel:
        items = tuple(replace(item, selected=item.id == filter_id) for item in group.items)
        return replace(group, items=items)

    flipped = tuple(
        replace(item, selected=not item.selected) if item.id == filter_id else item
        for item in group.items
    )
    any_specific = any(item.selected and not item.sentinel for item in flipped)
    items = tuple(
        replace(item, selected=not any_specific) if item.sentinel else item for item in flipped
    )
    return replace(group, items=items)


class FilterSessionManager:
    """Keeps the configuration being edited apart from the one in effect.

    Every mutation produces a new ``FilterConfiguration``; the applied and
    default configurations are only ever swapped, never edited, so a revert
    is a plain reference restore.
    """

    def __init__(
        self,
        defaults: FilterConfiguration,
        collection: FilterableCollection | None = None,
    ) -> None:
        self._defaults = defaults
        self._applied = defaults
        self._working: FilterConfiguration | None = None
        self._dirty = False
        self._collection = collection if collection is not None else FilterableCollection()
        self._result = apply_filters(self._collection, self._applied)

    @property
    def defaults(self) -> FilterConfiguration:
        return self._defaults

    @property
    def applied(self) -> FilterConfiguration:
        return self._applied

    @property
    def working(self) -> FilterConfiguration:
        """The configuration the editor shows (the applied one when not editing)."""
        return self._working if self._working is not None else self._applied

    @property
    def is_editing(self) -> bool:
        return self._working is not None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def collection(self) -> FilterableCollection:
        return self._collection

    @property
    def result(self) -> FilterableCollection:
        """Filtered and sorted view under the applied configuration."""
        return self._result

    def begin_edit(self) -> FilterConfiguration:
        """Snapshot the applied configuration as the working copy."""
        self._working = self._applied
        self._dirty = False
        return self._working

    def toggle_selection(self, group_id: str, filter_id: str) -> FilterConfiguration:
        """Toggle one entry in the working copy and return the new working copy."""
        working = self._working if self._working is not None else self.begin_edit()
        group = working.group(group_id)
        if group is None or group.find(filter_id) is None:
            logger.warning("Ignoring toggle of unknown filter %r in group %r", filter_id, group_id)
            return working
        self._working = working.replace_group(toggle_in_group(group, filter_id))
        self._dirty = True
        return self._working

    def set_sort_direction(self, direction: SortDirection) -> FilterConfiguration:
        working = self._working if self._working is not None else self.begin_edit()
        if working.sort_direction is direction:
            return working
        self._working = working.with_sort_direction(direction)
        self._dirty = True
        return self._working

    def apply(self) -> FilterableCollection:
        """Commit the working copy and return the derived collection.

        A no-op when nothing was edited since ``begin_edit``.
        """
        if self._dirty and self._working is not None:
            self._applied = self._working
            self._result = apply_filters(self._collection, self._applied)
            logger.debug("Applied filter selections: %s", self._applied.selections())
        self._working = None
        self._dirty = False
        return self._result

    def revert(self) -> FilterConfiguration:
        """Discard the working copy; the applied configuration is untouched."""
        if self._dirty:
            logger.debug("Reverting unapplied filter edits")
        self._working = None
        self._dirty = False
        return self._applied

    def reset_to_defaults(self) -> FilterableCollection:
        """Apply the default configuration immediately and drop any edits."""
        self._applied = self._defaults
        self._working = None
        self._dirty = False
        self._result = apply_filters(self._collection, self._applied)
        return self._result

    def replace_applied(self, configuration: FilterConfiguration) -> FilterableCollection:
        """Install ``configuration`` as applied without an edit cycle (session restore)."""
        self._applied = configuration
        self._working = None
        self._dirty = False
        self._result = apply_filters(self._collection, self._applied)
        return self._result

    def update_collection(self, collection: FilterableCollection) -> FilterableCollection:
        """Swap in a freshly loaded collection, keeping the applied configuration."""
        self._collection = collection
        self._result = apply_filters(self._collection, self._applied)
        return self._result

    def rebuild_group(
        self, group_id: str, rebuild: Callable[[FilterGroup], FilterGroup]
    ) -> None:
        """Rebuild one group in the defaults, applied and working configurations.

        Used for groups whose entries derive from the loaded documents; the
        callback receives each configuration's current group so it can carry
        selections over.
        """

        def _rebuilt(config: FilterConfiguration) -> FilterConfiguration:
            group = config.group(group_id)
            if group is None:
                return config
            return config.replace_group(rebuild(group))

        self._defaults = _rebuilt(self._defaults)
        self._applied = _rebuilt(self._applied)
        if self._working is not None:
            self._working = _rebuilt(self._working)


__all__ = [
    "FilterSessionManager",
    "toggle_in_group",
]

"""Display copy: default localized strings and actionable message builders."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wallet_catalog.services.interfaces import LocalizedTextProvider

logger = logging.getLogger(__name__)

DEFAULT_STRINGS: dict[str, str] = {
    "documents_screen_filters_ascending": "Ascending",
    "documents_screen_filters_descending": "Descending",
    "documents_screen_filters_filter_by_expiry_period": "Filter by expiry period",
    "documents_screen_filters_filter_by_expiry_period_1": "Next {0} days",
    "documents_screen_filters_filter_by_expiry_period_2": "Next {0} days",
    "documents_screen_filters_filter_by_expiry_period_3": "Beyond {0} days",
    "documents_screen_filters_filter_by_expiry_period_4": "Expired",
    "documents_screen_filters_sort_by": "Sort by",
    "documents_screen_filters_sort_default": "Default",
    "documents_screen_filters_sort_date_issued": "Date issued",
    "documents_screen_filters_sort_expiry_date": "Expiry date",
    "documents_screen_filters_filter_by_issuer": "Filter by issuer",
    "documents_screen_filters_filter_by_issuer_all": "All",
    "documents_screen_filters_filter_by_state": "Filter by state",
    "documents_screen_filters_filter_by_state_valid": "Valid",
    "documents_screen_filters_filter_by_state_expired": "Expired",
    "dashboard_document_deferred_pending": "Pending",
    "dashboard_document_deferred_failed": "Failed",
    "dashboard_document_valid_until": "Valid until {0}",
    "dashboard_document_expired": "Expired",
    "documents_screen_deferred_ready_one": "{0} is ready to use",
    "documents_screen_deferred_ready_many": "{0} documents are ready to use",
}


class DefaultTextProvider:
    """In-process ``LocalizedTextProvider`` backed by a key -> template mapping.

    Templates use ``str.format`` positional fields. Unknown keys come back
    verbatim so a missing translation is visible rather than fatal.
    """

    def __init__(self, strings: Mapping[str, str] | None = None) -> None:
        self._strings = dict(DEFAULT_STRINGS)
        if strings:
            self._strings.update(strings)

    def get_string(self, key: str, *args: object) -> str:
        template = self._strings.get(key)
        if template is None:
            logger.debug("Missing display string for key %r", key)
            return key
        if not args:
            return template
        try:
            return template.format(*args)
        except (IndexError, KeyError, ValueError):
            logger.warning("Display string %r does not accept args %r", key, args)
            return template


def _ensure_sentence(text: str) -> str:
    """Return text with terminal sentence punctuation."""
    cleaned = text.strip()
    if not cleaned:
        return ""
    if cleaned.endswith((".", "!", "?")):
        return cleaned
    return f"{cleaned}."


def build_next_step_hint(next_step: str) -> str:
    return f"Next step: {_ensure_sentence(next_step)}"


def build_actionable_error(
    action: str,
    *,
    next_step: str,
    why: str | None = None,
) -> str:
    """Build a 2-3 line actionable error message."""
    lines = [f"Could not {action.strip()}."]
    if why:
        lines.append(f"Why: {_ensure_sentence(why)}")
    lines.append(build_next_step_hint(next_step))
    return "\n".join(lines)


def build_ready_message(names: list[str], text: LocalizedTextProvider | None = None) -> str:
    """Build the one-line "documents ready" notification text."""
    provider = text or DefaultTextProvider()
    if len(names) == 1:
        return provider.get_string("documents_screen_deferred_ready_one", names[0])
    return provider.get_string("documents_screen_deferred_ready_many", len(names))


__all__ = [
    "DEFAULT_STRINGS",
    "DefaultTextProvider",
    "build_actionable_error",
    "build_next_step_hint",
    "build_ready_message",
]

"""Document catalog orchestration for one documents screen.

Composes load -> reconcile -> filter -> sort -> search and routes user
actions to the filter session and the deferred-issuance poller. Every
operation derives a fresh ``CatalogView``; nothing shared is edited in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum

from wallet_catalog.config import CatalogSettings, SessionState
from wallet_catalog.document_filters import (
    ISSUER_ALL,
    ISSUER_GROUP_ID,
    Clock,
    build_default_configuration,
    derive_issuer_group,
    documents_to_collection,
    utc_now,
)
from wallet_catalog.errors import DeletionFailure, FetchFailure, PollQueryFailure
from wallet_catalog.filter_session import FilterSessionManager
from wallet_catalog.filtering import filter_by_query, has_active_filters
from wallet_catalog.models import (
    Document,
    FilterableCollection,
    FilterConfiguration,
    FilterGroup,
    GroupKind,
    IssuanceState,
    IssuedDocument,
    SortDirection,
)
from wallet_catalog.polling import DeferredIssuancePoller, PollHandle, PollOutcome
from wallet_catalog.reconciliation import extract_pending, mark_failed
from wallet_catalog.services.interfaces import CatalogServices
from wallet_catalog.text import build_ready_message

logger = logging.getLogger(__name__)


class DeleteOutcome(str, Enum):
    """What a successful delete did to the catalog."""

    ALL_DELETED = "all_deleted"
    SINGLE_DELETED = "single_deleted"


@dataclass(frozen=True, slots=True)
class ReadyNotice:
    """One-time notification that deferred documents finished issuance."""

    documents: tuple[IssuedDocument, ...]
    message: str


@dataclass(frozen=True, slots=True)
class CatalogView:
    """Everything the documents screen renders, derived in one pass."""

    items: FilterableCollection
    search_text: str
    is_filtering_active: bool
    sort_direction: SortDirection
    configuration: FilterConfiguration
    pending_ids: frozenset[str]
    failed_ids: frozenset[str]
    total_count: int


def _with_selection(group: FilterGroup, wanted: Iterable[str]) -> FilterGroup:
    """Select exactly the known ids in ``wanted``, honouring the group's rules."""
    wanted_ids = set(wanted)
    items = tuple(replace(item, selected=item.id in wanted_ids) for item in group.items)
    if group.kind is GroupKind.SORT:
        if sum(item.selected for item in items) != 1:
            logger.warning(
                "Ignoring saved selection %s for sort group %r", sorted(wanted_ids), group.id
            )
            return group
        return replace(group, items=items)
    any_specific = any(item.selected and not item.sentinel for item in items)
    items = tuple(
        replace(item, selected=not any_specific) if item.sentinel else item for item in items
    )
    return replace(group, items=items)


class DocumentCatalogOrchestrator:
    """Screen-scoped owner of the document list, its filters and deferred polling.

    One instance belongs to one screen session; ``close()`` releases the
    poll task when the screen goes away.

    Args:
        services: Documents controller and text provider.
        settings: Poll delay, expiry windows, search mode. Defaults apply when None.
        now: Clock used by the expiry filters and status texts.
        sleep: Async sleep used between poll cycles (tests inject a fake).
        on_ready: Called with each new ``ReadyNotice``.
        on_poll_error: Called when a deferred-issuance query fails.
    """

    def __init__(
        self,
        services: CatalogServices,
        settings: CatalogSettings | None = None,
        *,
        now: Clock = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_ready: Callable[[ReadyNotice], None] | None = None,
        on_poll_error: Callable[[PollQueryFailure], None] | None = None,
    ) -> None:
        self._services = services
        self._settings = settings if settings is not None else CatalogSettings()
        self._now = now
        self._on_ready = on_ready
        self._on_poll_error = on_poll_error
        self._filters = FilterSessionManager(self._build_defaults())
        self._poller = DeferredIssuancePoller(
            services.documents.retry_issuance,
            delay_seconds=self._settings.poll_delay_seconds,
            sleep=sleep,
            on_outcome=self._on_poll_outcome,
            on_error=self._handle_poll_error,
        )
        self._raw = FilterableCollection()
        self._search_text = ""
        self._preselected_issuers: tuple[str, ...] = ()
        self._fetch_generation = 0
        self._ready_notice: ReadyNotice | None = None
        self._last_failure: FetchFailure | DeletionFailure | PollQueryFailure | None = None
        self._view = self._build_view()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def view(self) -> CatalogView:
        return self._view

    @property
    def filters(self) -> FilterSessionManager:
        return self._filters

    @property
    def poller(self) -> DeferredIssuancePoller:
        return self._poller

    @property
    def ready_notice(self) -> ReadyNotice | None:
        return self._ready_notice

    @property
    def last_failure(self) -> FetchFailure | DeletionFailure | PollQueryFailure | None:
        """Most recent failure reported to the screen, cleared by a good load."""
        return self._last_failure

    def dismiss_ready_notice(self) -> None:
        self._ready_notice = None

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def _build_defaults(self) -> FilterConfiguration:
        return build_default_configuration(
            self._services.text,
            now=self._now,
            soon_days=self._settings.expiring_soon_days,
            window_days=self._settings.expiring_window_days,
        )

    def _build_view(self) -> CatalogView:
        applied = self._filters.applied
        items = filter_by_query(
            self._filters.result, self._search_text, fuzzy=self._settings.fuzzy_search
        )
        tracker = self._poller.tracker
        pending_ids = frozenset(extract_pending(self._filters.collection)) | frozenset(
            tracker.pending
        )
        return CatalogView(
            items=items,
            search_text=self._search_text,
            is_filtering_active=has_active_filters(applied, self._filters.defaults),
            sort_direction=applied.sort_direction,
            configuration=applied,
            pending_ids=pending_ids - tracker.failed_ids,
            failed_ids=tracker.failed_ids,
            total_count=len(self._filters.collection),
        )

    def _refresh_collection(self) -> None:
        """Re-derive the marked collection and issuer group from the raw fetch."""
        text = self._services.text
        marked = mark_failed(
            self._raw,
            self._poller.tracker.failed_ids,
            status_text=text.get_string("dashboard_document_deferred_failed"),
        )
        all_label = text.get_string("documents_screen_filters_filter_by_issuer_all")
        self._filters.rebuild_group(
            ISSUER_GROUP_ID, lambda group: derive_issuer_group(marked, group, all_label)
        )
        if self._preselected_issuers and len(marked):
            applied = self._filters.applied
            group = applied.group(ISSUER_GROUP_ID)
            if group is not None:
                restored = derive_issuer_group(
                    marked, group, all_label, preselected=self._preselected_issuers
                )
                self._filters.replace_applied(applied.replace_group(restored))
            self._preselected_issuers = ()
        self._filters.update_collection(marked)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, *, start_polling: bool = True) -> CatalogView | FetchFailure:
        """Fetch all documents and rebuild the view.

        Pending documents start a poll cycle unless ``start_polling`` is
        False (the poller's own refresh passes False so it does not cancel
        the cycle it runs in). On failure the previous view stays in place.
        """
        self._fetch_generation += 1
        generation = self._fetch_generation
        try:
            documents = await self._services.documents.get_all_documents()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to load documents", exc_info=True)
            failure = FetchFailure.from_exception(exc)
            self._last_failure = failure
            return failure

        if self._settings.cancel_stale_fetches and generation != self._fetch_generation:
            logger.debug(
                "Discarding stale document fetch %d (latest is %d)",
                generation,
                self._fetch_generation,
            )
            return self._view

        self._last_failure = None
        collection = documents_to_collection(documents, self._services.text, now=self._now)
        self._poller.retain(collection.ids())
        self._poller.clear_issued(collection)
        self._raw = collection
        self._refresh_collection()
        self._view = self._build_view()
        logger.debug("Loaded %d documents, %d shown", len(collection), len(self._view.items))

        if start_polling:
            self._poller.start(extract_pending(self._filters.collection))
        return self._view

    async def document_details(self, document_id: str) -> Document | FetchFailure:
        try:
            return await self._services.documents.get_document_by_id(document_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to load document %s", document_id, exc_info=True)
            failure = FetchFailure.from_exception(exc)
            self._last_failure = failure
            return failure

    # ------------------------------------------------------------------
    # Search and filters
    # ------------------------------------------------------------------

    def search(self, text: str) -> CatalogView:
        self._search_text = text
        self._view = self._build_view()
        return self._view

    def begin_filter_edit(self) -> FilterConfiguration:
        return self._filters.begin_edit()

    def toggle_filter(self, group_id: str, filter_id: str) -> FilterConfiguration:
        return self._filters.toggle_selection(group_id, filter_id)

    def set_sort_direction(self, direction: SortDirection) -> FilterConfiguration:
        return self._filters.set_sort_direction(direction)

    def apply_filters(self) -> CatalogView:
        self._filters.apply()
        self._view = self._build_view()
        return self._view

    def revert_filters(self) -> FilterConfiguration:
        """Drop unapplied edits; the view is unchanged."""
        return self._filters.revert()

    def reset_filters(self) -> CatalogView:
        self._filters.reset_to_defaults()
        self._view = self._build_view()
        return self._view

    # ------------------------------------------------------------------
    # Deferred issuance
    # ------------------------------------------------------------------

    def retry_issuance(self, document_id: str) -> PollHandle | None:
        """Clear a document's failure marker and poll for it again.

        Only failed or pending documents can be retried; anything else
        returns None. Documents still pending are queried in the same cycle
        and any cycle in flight is replaced. Must be called with a running event loop.
        """
        item = self._raw.get(document_id)
        if item is None:
            logger.warning("Ignoring retry for unknown document %r", document_id)
            return None
        tracker = self._poller.tracker
        state = getattr(item.attributes, "issuance_state", None)
        if (
            document_id not in tracker.failed_ids
            and document_id not in tracker.pending
            and state not in (IssuanceState.PENDING, IssuanceState.FAILED)
        ):
            logger.warning("Ignoring retry for %r, it is not awaiting issuance", document_id)
            return None
        self._poller.forget(document_id)
        self._refresh_collection()
        pending = extract_pending(self._filters.collection)
        pending.update(self._poller.tracker.pending)
        pending[document_id] = getattr(item.attributes, "format_type", "")
        handle = self._poller.start(pending)
        self._view = self._build_view()
        return handle

    def pause(self) -> None:
        """Stop polling while the screen is hidden; the next ``load()`` resumes it."""
        self._poller.cancel()

    async def _on_poll_outcome(self, outcome: PollOutcome) -> None:
        if outcome.issued:
            if self._ready_notice is None:
                names = [doc.name for doc in outcome.issued]
                self._ready_notice = ReadyNotice(
                    documents=outcome.issued,
                    message=build_ready_message(names, self._services.text),
                )
                if self._on_ready is not None:
                    self._on_ready(self._ready_notice)
            else:
                logger.debug("Ready notice already showing, suppressing a new one")
        await self.load(start_polling=False)

    def _handle_poll_error(self, failure: PollQueryFailure) -> None:
        self._last_failure = failure
        self._view = self._build_view()
        if self._on_poll_error is not None:
            self._on_poll_error(failure)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> DeleteOutcome | DeletionFailure:
        """Delete a document, then reset (wallet empty) or reload."""
        try:
            result = await self._services.documents.delete_document(document_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to delete document %s", document_id, exc_info=True)
            failure = DeletionFailure.from_exception(document_id, exc)
            self._last_failure = failure
            return failure

        if result.all_deleted:
            logger.info("Last document deleted, resetting catalog")
            self._reset()
            return DeleteOutcome.ALL_DELETED

        self._poller.forget(document_id)
        await self.load()
        return DeleteOutcome.SINGLE_DELETED

    def _reset(self) -> None:
        self._poller.reset()
        self._filters = FilterSessionManager(self._build_defaults())
        self._raw = FilterableCollection()
        self._search_text = ""
        self._preselected_issuers = ()
        self._ready_notice = None
        self._last_failure = None
        self._view = self._build_view()

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------

    def snapshot_session(self) -> SessionState:
        applied = self._filters.applied
        return SessionState(
            selections=applied.selections(),
            sort_direction=applied.sort_direction,
            search_text=self._search_text,
        )

    def restore_session(self, session: SessionState) -> CatalogView:
        """Install saved selections, sort direction and search text as applied.

        Issuer selections are held until documents supply the issuer group.
        Ids no longer in the catalogue are dropped.
        """
        config = self._filters.defaults
        for group in config.groups:
            wanted = session.selections.get(group.id)
            if wanted is None:
                continue
            if group.id == ISSUER_GROUP_ID:
                self._preselected_issuers = tuple(fid for fid in wanted if fid != ISSUER_ALL)
                continue
            config = config.replace_group(_with_selection(group, wanted))
        self._filters.replace_applied(config.with_sort_direction(session.sort_direction))
        self._search_text = session.search_text
        if len(self._raw):
            self._refresh_collection()
        self._view = self._build_view()
        return self._view

    async def close(self) -> None:
        """Cancel polling and wait briefly for the poll task to unwind."""
        await self._poller.shutdown()


__all__ = [
    "CatalogView",
    "DeleteOutcome",
    "DocumentCatalogOrchestrator",
    "ReadyNotice",
]

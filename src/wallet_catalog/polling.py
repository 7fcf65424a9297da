"""Delayed, cancellable retry cycles for deferred document issuance.

State machine::

    IDLE --start(refs)--> WAITING --delay--> POLLING --answer--> IDLE
                                                      \\--still pending--> WAITING

At most one cycle is outstanding: ``start`` cancels whatever cycle is in
flight (including its pending delay) before scheduling a new one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from wallet_catalog.errors import PollQueryFailure
from wallet_catalog.models import (
    DEFAULT_POLL_DELAY_SECONDS,
    FilterableCollection,
    IssuedDocument,
    RetryIssuanceResult,
)
from wallet_catalog.reconciliation import DeferredTracker, reconcile_retry_result

logger = logging.getLogger(__name__)

RetryIssuanceFn = Callable[[Mapping[str, str]], Awaitable[RetryIssuanceResult]]


class PollerState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    POLLING = "polling"


@dataclass(frozen=True, slots=True)
class PollOutcome:
    """Result of one completed poll cycle."""

    queried: dict[str, str]
    issued: tuple[IssuedDocument, ...]
    still_pending: dict[str, str]
    failed_ids: frozenset[str]
    tracker: DeferredTracker


class PollHandle:
    """Cancellation handle for one scheduled poll cycle."""

    def __init__(self, task: asyncio.Task[None], pending: dict[str, str]) -> None:
        self._task = task
        self._cancelled = False
        self.pending = pending

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Cancel the cycle; a pending delay or query is abandoned."""
        self._cancelled = True
        self._task.cancel()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until the cycle's task finishes (cancelled or not).

        Returns False if ``timeout`` elapsed first.
        """
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)


class DeferredIssuancePoller:
    """Re-queries the controller until no deferred document is pending.

    Args:
        retry_issuance: Async callable issuing one reconciliation query for
            the given ``document_id -> format_type`` refs.
        delay_seconds: Wait before each query.
        sleep: Injectable async sleep (tests pass a controllable fake).
        on_outcome: Awaited after every successful query, before the next
            cycle is scheduled. The catalog refreshes itself here.
        on_error: Called when a query raises; the cycle stops and tracked
            markers are left as they were.
    """

    def __init__(
        self,
        retry_issuance: RetryIssuanceFn,
        *,
        delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_outcome: Callable[[PollOutcome], Awaitable[None]] | None = None,
        on_error: Callable[[PollQueryFailure], None] | None = None,
    ) -> None:
        self._retry_issuance = retry_issuance
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._on_outcome = on_outcome
        self._on_error = on_error
        self._state = PollerState.IDLE
        self._handle: PollHandle | None = None
        self._tracker = DeferredTracker()
        self._queries_issued = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def handle(self) -> PollHandle | None:
        return self._handle

    @property
    def tracker(self) -> DeferredTracker:
        return self._tracker

    @property
    def queries_issued(self) -> int:
        return self._queries_issued

    def _set_state(self, state: PollerState) -> None:
        if state is not self._state:
            logger.debug("Deferred poller %s -> %s", self._state.value, state.value)
            self._state = state

    def start(self, pending_refs: Mapping[str, str]) -> PollHandle | None:
        """Cancel any in-flight cycle and schedule a new one for ``pending_refs``.

        With no refs the poller just settles in IDLE and returns None. Must be
        called with a running event loop.
        """
        self.cancel()
        if not pending_refs:
            return None

        pending = dict(pending_refs)
        self._tracker = self._tracker.track_pending(pending)
        task = asyncio.get_running_loop().create_task(self._run_cycle(pending))
        handle = PollHandle(task, pending)
        task.add_done_callback(self._on_task_done)
        self._handle = handle
        self._set_state(PollerState.WAITING)
        logger.debug(
            "Scheduled deferred issuance check for %d document(s) in %.1fs",
            len(pending),
            self._delay_seconds,
        )
        return handle

    def cancel(self) -> None:
        """Return to IDLE immediately, abandoning any scheduled delay or query."""
        handle = self._handle
        self._handle = None
        if handle is not None and not handle.done():
            handle.cancel()
        self._set_state(PollerState.IDLE)

    def forget(self, document_id: str) -> None:
        """Stop tracking one document (deleted, or about to be retried)."""
        self._tracker = self._tracker.forget(document_id)

    def retain(self, present_ids: list[str]) -> None:
        self._tracker = self._tracker.retain(present_ids)

    def clear_issued(self, collection: FilterableCollection) -> None:
        """Forget documents that a fresh fetch shows as issued."""
        self._tracker = self._tracker.clear_issued(collection)

    def reset(self) -> None:
        """Cancel polling and clear every pending/failed marker."""
        self.cancel()
        self._tracker = DeferredTracker()

    async def shutdown(self, timeout: float = 0.5) -> None:
        """Cancel and wait briefly for the in-flight cycle to unwind."""
        handle = self._handle
        self.cancel()
        if handle is None or handle.done():
            return
        if not await handle.wait(timeout):
            logger.debug("Deferred poll cycle did not cancel before shutdown")

    def _is_current(self, pending: dict[str, str]) -> bool:
        handle = self._handle
        return handle is not None and not handle.cancelled and handle.pending is pending

    async def _run_cycle(self, pending: dict[str, str]) -> None:
        await self._sleep(self._delay_seconds)
        self._set_state(PollerState.POLLING)
        self._queries_issued += 1
        try:
            result = await self._retry_issuance(dict(pending))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Deferred issuance query failed for %s", sorted(pending), exc_info=True
            )
            self._handle = None
            self._set_state(PollerState.IDLE)
            if self._on_error is not None:
                self._on_error(PollQueryFailure.from_exception(pending, exc))
            return

        reconciliation = reconcile_retry_result(pending, result)
        self._tracker = self._tracker.apply(reconciliation, pending)
        outcome = PollOutcome(
            queried=dict(pending),
            issued=reconciliation.issued,
            still_pending=dict(reconciliation.still_pending),
            failed_ids=reconciliation.failed_ids,
            tracker=self._tracker,
        )
        logger.debug(
            "Deferred issuance answer: issued=%d pending=%d failed=%d",
            len(outcome.issued),
            len(outcome.still_pending),
            len(outcome.failed_ids),
        )
        self._set_state(PollerState.IDLE)
        if self._on_outcome is not None:
            await self._on_outcome(outcome)

        # The callback may have cancelled or replaced this cycle.
        if not self._is_current(pending):
            return
        self._handle = None
        if outcome.still_pending:
            self.start(outcome.still_pending)

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from poll cycles."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in deferred poll cycle: %s", exc, exc_info=exc)


__all__ = [
    "DeferredIssuancePoller",
    "PollHandle",
    "PollOutcome",
    "PollerState",
]

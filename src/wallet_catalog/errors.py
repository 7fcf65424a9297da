"""Error types and typed failure results reported by the catalog."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from wallet_catalog.text import build_actionable_error


class CatalogError(Exception):
    """Base class for errors raised by catalog collaborators."""


class DocumentNotFoundError(CatalogError, LookupError):
    """Raised by a documents controller for an id it does not know."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} not found")
        self.document_id = document_id


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


@dataclass(frozen=True, slots=True)
class FetchFailure:
    """Loading documents failed; the screen offers retry or cancel."""

    message: str
    error: BaseException | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> FetchFailure:
        return cls(
            message=build_actionable_error(
                "load your documents",
                why=_describe(error),
                next_step="retry, or go back and open the documents screen again",
            ),
            error=error,
        )


@dataclass(frozen=True, slots=True)
class DeletionFailure:
    """Deleting a document failed; the catalog is left as it was."""

    document_id: str
    message: str
    error: BaseException | None = None

    @classmethod
    def from_exception(cls, document_id: str, error: BaseException) -> DeletionFailure:
        return cls(
            document_id=document_id,
            message=build_actionable_error(
                "delete the document",
                why=_describe(error),
                next_step="retry the deletion",
            ),
            error=error,
        )


@dataclass(frozen=True, slots=True)
class PollQueryFailure:
    """A deferred-issuance query failed; pending/failed markers are unchanged."""

    document_ids: frozenset[str]
    message: str
    error: BaseException | None = None

    @classmethod
    def from_exception(cls, document_ids: Iterable[str], error: BaseException) -> PollQueryFailure:
        return cls(
            document_ids=frozenset(document_ids),
            message=build_actionable_error(
                "check on documents still being issued",
                why=_describe(error),
                next_step="retry issuance from the documents list",
            ),
            error=error,
        )


__all__ = [
    "CatalogError",
    "DeletionFailure",
    "DocumentNotFoundError",
    "FetchFailure",
    "PollQueryFailure",
]

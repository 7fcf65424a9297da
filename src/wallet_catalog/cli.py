"""CLI/bootstrap helpers for the wallet document catalog."""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
from collections.abc import Callable
from pathlib import Path

from platformdirs import user_config_dir
from rich.console import Console
from rich.markup import escape as escape_markup
from rich.table import Table

from wallet_catalog.catalog import CatalogView, DocumentCatalogOrchestrator, ReadyNotice
from wallet_catalog.config import (
    CONFIG_APP_NAME,
    CatalogSettings,
    _coerce_poll_delay,
    load_settings,
    save_settings,
)
from wallet_catalog.document_filters import (
    SORT_DATE_ISSUED,
    SORT_DEFAULT,
    SORT_EXPIRY_DATE,
    SORT_GROUP_ID,
)
from wallet_catalog.errors import DeletionFailure, FetchFailure, PollQueryFailure
from wallet_catalog.models import DocumentAttributes, DocumentListEntry, SortDirection
from wallet_catalog.services.interfaces import CatalogServices, build_default_services
from wallet_catalog.text import build_actionable_error

logger = logging.getLogger(__name__)

SORT_CHOICES = {
    "default": SORT_DEFAULT,
    "date-issued": SORT_DATE_ISSUED,
    "expiry-date": SORT_EXPIRY_DATE,
}
DEFAULT_MAX_POLL_CYCLES = 12


def _configure_logging(debug: bool) -> None:
    """Configure logging. When debug=True, logs to file at DEBUG level."""
    if not debug:
        # Default: suppress all logging (stdout carries the table)
        logging.disable(logging.CRITICAL)
        return

    log_dir = Path(user_config_dir(CONFIG_APP_NAME))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "debug.log"

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)


def _validate_documents_file(path: Path) -> int:
    """Return 0 when ``path`` is a readable documents file, else an exit code."""
    documents_file = path.resolve()
    if not documents_file.exists():
        print(
            build_actionable_error(
                "open the wallet",
                why=f"{documents_file} was not found",
                next_step="pass the path of a documents JSON file",
            ),
            file=sys.stderr,
        )
        return 1
    if documents_file.is_dir():
        print(f"Error: {documents_file} is a directory, not a file", file=sys.stderr)
        return 1
    if not os.access(documents_file, os.R_OK):
        print(f"Error: {documents_file} is not readable (permission denied)", file=sys.stderr)
        return 1
    return 0


def _parse_filter_spec(spec: str) -> tuple[str, str] | None:
    group_id, sep, filter_id = spec.partition(":")
    if not sep or not group_id or not filter_id:
        return None
    return group_id, filter_id


def _render_view(console: Console, view: CatalogView) -> None:
    title = f"{len(view.items)} of {view.total_count} documents"
    if view.is_filtering_active:
        title += " (filtered)"
    table = Table(title=title)
    table.add_column("Document")
    table.add_column("Issuer")
    table.add_column("Status")
    table.add_column("Expires")
    for item in view.items:
        entry = item.payload
        attributes = item.attributes
        if not isinstance(entry, DocumentListEntry) or not isinstance(
            attributes, DocumentAttributes
        ):
            continue
        status = escape_markup(entry.supporting_text)
        if entry.show_error_icon:
            status = f"[red]! {status}[/red]"
        elif entry.document_id in view.pending_ids:
            status = f"[yellow]{status}[/yellow]"
        expires = attributes.expires_at.date().isoformat() if attributes.expires_at else ""
        table.add_row(
            escape_markup(entry.title),
            escape_markup(attributes.issuer or ""),
            status,
            expires,
        )
    console.print(table)


async def _wait_for_polling(catalog: DocumentCatalogOrchestrator, max_cycles: int) -> int:
    """Wait for poll cycles until nothing is pending; returns cycles waited."""
    cycles = 0
    while cycles < max_cycles:
        handle = catalog.poller.handle
        if handle is None:
            break
        await handle.wait()
        cycles += 1
    return cycles


async def _run_catalog(
    args: argparse.Namespace,
    settings: CatalogSettings,
    services: CatalogServices,
    console: Console,
    save_settings_fn: Callable[[CatalogSettings], bool],
) -> int:
    def _on_ready(notice: ReadyNotice) -> None:
        console.print(f"[green]{escape_markup(notice.message)}[/green]")

    def _on_poll_error(failure: PollQueryFailure) -> None:
        print(failure.message, file=sys.stderr)

    catalog = DocumentCatalogOrchestrator(
        services, settings, on_ready=_on_ready, on_poll_error=_on_poll_error
    )
    try:
        if not args.no_restore:
            catalog.restore_session(settings.session)

        loaded = await catalog.load(start_polling=args.poll)
        if isinstance(loaded, FetchFailure):
            print(loaded.message, file=sys.stderr)
            return 1

        if args.delete:
            deleted = await catalog.delete_document(args.delete)
            if isinstance(deleted, DeletionFailure):
                print(deleted.message, file=sys.stderr)
                return 1
            console.print(f"Deleted {escape_markup(args.delete)} ({deleted.value})")

        if args.retry:
            if catalog.retry_issuance(args.retry) is None:
                print(
                    build_actionable_error(
                        "retry issuance",
                        why=f"document {args.retry!r} is not awaiting issuance",
                        next_step="retry only documents shown as Failed or Pending",
                    ),
                    file=sys.stderr,
                )
                return 1

        if args.filter or args.sort or args.descending:
            catalog.begin_filter_edit()
            for spec in args.filter:
                parsed = _parse_filter_spec(spec)
                if parsed is None:
                    print(f"Error: --filter expects GROUP:ID, got {spec!r}", file=sys.stderr)
                    return 1
                catalog.toggle_filter(*parsed)
            if args.sort:
                catalog.toggle_filter(SORT_GROUP_ID, SORT_CHOICES[args.sort])
            if args.descending:
                catalog.set_sort_direction(SortDirection.DESCENDING)
            catalog.apply_filters()

        if args.search is not None:
            catalog.search(args.search)

        if args.poll or args.retry:
            cycles = await _wait_for_polling(catalog, args.max_cycles)
            logger.debug("Waited for %d poll cycle(s)", cycles)

        _render_view(console, catalog.view)

        if args.save_session:
            settings.session = catalog.snapshot_session()
            if not save_settings_fn(settings):
                print("Warning: could not save the session", file=sys.stderr)
        return 0
    finally:
        await catalog.close()


def main(
    argv: list[str] | None = None,
    *,
    load_settings_fn: Callable[[], CatalogSettings] = load_settings,
    save_settings_fn: Callable[[CatalogSettings], bool] = save_settings,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    services_factory: Callable[[Path], CatalogServices] = build_default_services,
    console: Console | None = None,
) -> int:
    """Main entry point. Returns exit code."""
    parser = argparse.ArgumentParser(
        description="List wallet documents with filters, sorting and deferred issuance checks"
    )
    parser.add_argument("documents", type=Path, help="Documents JSON file")
    parser.add_argument("--search", type=str, default=None, help="Free-text search")
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="GROUP:ID",
        help="Toggle a filter entry, e.g. issuer:Utopia or state:state_valid (repeatable)",
    )
    parser.add_argument(
        "--sort",
        choices=sorted(SORT_CHOICES),
        default=None,
        help="Sort key (default: name)",
    )
    parser.add_argument("--descending", action="store_true", help="Sort descending")
    parser.add_argument(
        "--poll",
        action="store_true",
        help="Keep checking documents still being issued until none is pending",
    )
    parser.add_argument(
        "--poll-delay",
        type=float,
        default=None,
        help="Seconds between deferred issuance checks (default: config value)",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=DEFAULT_MAX_POLL_CYCLES,
        help=f"Stop waiting after this many poll cycles (default: {DEFAULT_MAX_POLL_CYCLES})",
    )
    parser.add_argument("--retry", metavar="ID", default=None, help="Retry a failed issuance")
    parser.add_argument("--delete", metavar="ID", default=None, help="Delete a document")
    parser.add_argument(
        "--no-restore",
        action="store_true",
        help="Ignore the saved filters, sort direction and search",
    )
    parser.add_argument(
        "--save-session",
        action="store_true",
        help="Remember the applied filters and search for the next run",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/wallet-catalog/debug.log)",
    )
    args = parser.parse_args(argv)
    if args.max_cycles < 1:
        print("Error: --max-cycles must be at least 1", file=sys.stderr)
        return 1

    configure_logging_fn(args.debug)
    logger.debug("wallet-catalog starting, documents=%s", args.documents)

    exit_code = _validate_documents_file(args.documents)
    if exit_code:
        return exit_code

    settings = load_settings_fn()
    if args.poll_delay is not None:
        settings.poll_delay_seconds = _coerce_poll_delay(args.poll_delay)

    services = services_factory(args.documents.resolve())
    return asyncio.run(
        _run_catalog(args, settings, services, console or Console(), save_settings_fn)
    )


__all__ = [
    "_configure_logging",
    "_parse_filter_spec",
    "_render_view",
    "_validate_documents_file",
    "_wait_for_polling",
    "main",
]

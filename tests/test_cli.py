"""Tests for the command-line entry point."""

from __future__ import annotations

import io
import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from wallet_catalog.cli import _configure_logging, _parse_filter_spec, main
from wallet_catalog.config import CatalogSettings, SessionState
from wallet_catalog.models import IssuanceState, IssuedDocument, RetryIssuanceResult, SortDirection
from wallet_catalog.services.interfaces import CatalogServices
from wallet_catalog.text import DefaultTextProvider


@pytest.fixture
def documents_file(tmp_path):
    path = tmp_path / "documents.json"
    path.write_text(
        json.dumps(
            {
                "documents": [
                    {"id": "pid", "name": "PID", "format_type": "mso_mdoc", "issuer": "Utopia"},
                    {"id": "mdl", "name": "mDL", "format_type": "mso_mdoc", "issuer": "Transport"},
                    {
                        "id": "card",
                        "name": "Library card",
                        "format_type": "vc+sd-jwt",
                        "issuer": "City",
                        "expires_at": "2000-01-01T00:00:00+00:00",
                    },
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


def _run(argv, console, **kwargs) -> int:
    kwargs.setdefault("configure_logging_fn", lambda debug: None)
    kwargs.setdefault("load_settings_fn", CatalogSettings)
    kwargs.setdefault("save_settings_fn", MagicMock(return_value=True))
    return main(argv, console=console, **kwargs)


def _output(console: Console) -> str:
    return console.file.getvalue()


def test_lists_documents(documents_file, console) -> None:
    assert _run([str(documents_file)], console) == 0

    output = _output(console)
    assert "3 of 3 documents" in output
    assert "Library card" in output
    assert "Expired" in output


def test_filter_and_sort_options(documents_file, console) -> None:
    exit_code = _run(
        [str(documents_file), "--filter", "issuer:Utopia", "--filter", "issuer:City"],
        console,
    )

    output = _output(console)
    assert exit_code == 0
    assert "2 of 3 documents (filtered)" in output
    assert "mDL" not in output
    assert output.index("Library card") < output.index("PID")


def test_descending_search(documents_file, console) -> None:
    assert _run([str(documents_file), "--descending", "--search", "d"], console) == 0

    output = _output(console)
    assert "3 of 3 documents (filtered)" in output
    assert output.index("PID") < output.index("mDL") < output.index("Library card")


def test_invalid_filter_spec(documents_file, console, capsys) -> None:
    assert _run([str(documents_file), "--filter", "issuer"], console) == 1
    assert "GROUP:ID" in capsys.readouterr().err


def test_missing_documents_file(tmp_path, console, capsys) -> None:
    assert _run([str(tmp_path / "missing.json")], console) == 1
    assert "Could not open the wallet." in capsys.readouterr().err


def test_directory_is_rejected(tmp_path, console, capsys) -> None:
    assert _run([str(tmp_path)], console) == 1
    assert "is a directory" in capsys.readouterr().err


def test_invalid_max_cycles(documents_file, console) -> None:
    assert _run([str(documents_file), "--max-cycles", "0"], console) == 1


def test_poll_reports_ready_documents(
    documents_file, console, fake_controller, make_document
) -> None:
    controller = fake_controller(
        documents=[make_document("pid", name="PID", state=IssuanceState.PENDING)],
        retry_results=[RetryIssuanceResult(succeeded=(IssuedDocument("pid", "PID"),))],
    )

    exit_code = _run(
        [str(documents_file), "--poll", "--poll-delay", "0"],
        console,
        services_factory=lambda path: CatalogServices(
            documents=controller, text=DefaultTextProvider()
        ),
    )

    assert exit_code == 0
    assert controller.retry_calls == [{"pid": "mso_mdoc"}]
    assert "PID is ready to use" in _output(console)


def test_save_session(documents_file, console) -> None:
    save = MagicMock(return_value=True)

    exit_code = _run(
        [str(documents_file), "--filter", "issuer:Utopia", "--descending", "--save-session"],
        console,
        save_settings_fn=save,
    )

    assert exit_code == 0
    saved: CatalogSettings = save.call_args.args[0]
    assert saved.session.selections["issuer"] == ["Utopia"]
    assert saved.session.sort_direction is SortDirection.DESCENDING


def test_restores_saved_session_unless_disabled(documents_file, console) -> None:
    def _settings() -> CatalogSettings:
        return CatalogSettings(session=SessionState(selections={"issuer": ["City"]}))

    assert _run([str(documents_file)], console, load_settings_fn=_settings) == 0
    assert "1 of 3 documents" in _output(console)

    fresh = Console(file=io.StringIO(), width=120, color_system=None)
    assert _run([str(documents_file), "--no-restore"], fresh, load_settings_fn=_settings) == 0
    assert "3 of 3 documents" in _output(fresh)


def test_delete_and_unknown_retry(documents_file, console, capsys) -> None:
    assert _run([str(documents_file), "--delete", "mdl"], console) == 0
    assert "2 of 2 documents" in _output(console)

    assert _run([str(documents_file), "--retry", "zzz"], console) == 1
    assert "document 'zzz' is not awaiting issuance" in capsys.readouterr().err


def test_retry_of_issued_document_is_rejected(documents_file, console, capsys) -> None:
    assert _run([str(documents_file), "--retry", "pid"], console) == 1
    assert "not awaiting issuance" in capsys.readouterr().err


def test_parse_filter_spec() -> None:
    assert _parse_filter_spec("issuer:Utopia") == ("issuer", "Utopia")
    assert _parse_filter_spec("issuer:") is None
    assert _parse_filter_spec(":x") is None


def test_configure_logging_disabled_without_debug() -> None:
    with patch("wallet_catalog.cli.logging.disable") as disable:
        _configure_logging(False)

    disable.assert_called_once_with(logging.CRITICAL)


def test_configure_logging_debug_writes_to_config_dir(tmp_path) -> None:
    root = logging.getLogger()
    handlers_before = list(root.handlers)
    level_before = root.level
    try:
        with patch("wallet_catalog.cli.user_config_dir", return_value=str(tmp_path)):
            _configure_logging(True)
        added = [h for h in root.handlers if h not in handlers_before]
        assert len(added) == 1
        assert isinstance(added[0], logging.handlers.RotatingFileHandler)
        assert added[0].baseFilename == str(tmp_path / "debug.log")
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers:
            if handler not in handlers_before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level_before)

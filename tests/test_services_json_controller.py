"""Tests for the JSON-file documents controller."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from wallet_catalog.errors import DocumentNotFoundError
from wallet_catalog.models import IssuanceState, IssuedDocument
from wallet_catalog.services.json_controller import (
    JsonFileDocumentsController,
    classify_retry,
    load_documents_file,
    save_documents_file,
)


def _write(path, documents) -> None:
    path.write_text(json.dumps({"documents": documents}), encoding="utf-8")


@pytest.fixture
def documents_file(tmp_path):
    path = tmp_path / "documents.json"
    _write(
        path,
        [
            {
                "id": "pid",
                "name": "PID",
                "format_type": "mso_mdoc",
                "issuer": "Utopia",
                "issued_at": "2024-01-15T00:00:00",
                "expires_at": "2034-01-15T00:00:00+00:00",
                "state": "issued",
                "category": "government",
            },
            {"id": "mdl", "name": "mDL", "format_type": "mso_mdoc", "state": "pending"},
        ],
    )
    return path


def test_load_parses_documents(documents_file) -> None:
    pid, mdl = load_documents_file(documents_file)

    assert pid.issuer == "Utopia"
    assert pid.issued_at == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert mdl.issuance_state is IssuanceState.PENDING
    assert mdl.issuer is None


def test_load_missing_file_is_empty(tmp_path) -> None:
    assert load_documents_file(tmp_path / "nope.json") == []


def test_load_invalid_json_raises(tmp_path) -> None:
    path = tmp_path / "documents.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(json.JSONDecodeError):
        load_documents_file(path)


def test_load_skips_malformed_entries(tmp_path) -> None:
    path = tmp_path / "documents.json"
    _write(
        path,
        [
            "junk",
            {"name": "No id"},
            {"id": "x", "name": "X", "state": "teleporting", "expires_at": "tomorrow"},
        ],
    )

    (document,) = load_documents_file(path)

    assert document.document_id == "x"
    assert document.issuance_state is IssuanceState.ISSUED
    assert document.expires_at is None


def test_save_round_trip_keeps_states(documents_file) -> None:
    documents = load_documents_file(documents_file)

    save_documents_file(documents_file, documents)

    assert load_documents_file(documents_file) == documents


def test_failed_save_keeps_original_and_removes_temp_file(documents_file) -> None:
    before = documents_file.read_text(encoding="utf-8")

    with (
        patch("wallet_catalog.config.os.replace", side_effect=OSError("disk full")),
        pytest.raises(OSError),
    ):
        save_documents_file(documents_file, [])

    assert documents_file.read_text(encoding="utf-8") == before
    assert list(documents_file.parent.glob(".documents-*.tmp")) == []


def test_classify_retry(make_document) -> None:
    documents = [
        make_document("a", name="A"),
        make_document("b", state=IssuanceState.PENDING),
        make_document("c", state=IssuanceState.FAILED),
    ]

    result = classify_retry(documents, {"a": "m", "b": "m", "c": "m", "gone": "m"})

    assert result.succeeded == (IssuedDocument("a", "A"),)
    assert result.still_pending == ("b",)
    assert result.failed == ("c", "gone")


class TestJsonFileDocumentsController:
    @pytest.mark.asyncio
    async def test_get_all_and_by_id(self, documents_file) -> None:
        controller = JsonFileDocumentsController(documents_file)

        documents = await controller.get_all_documents()
        pid = await controller.get_document_by_id("pid")

        assert [doc.document_id for doc in documents] == ["pid", "mdl"]
        assert pid.name == "PID"

    @pytest.mark.asyncio
    async def test_get_by_id_missing_raises(self, documents_file) -> None:
        controller = JsonFileDocumentsController(documents_file)

        with pytest.raises(DocumentNotFoundError) as excinfo:
            await controller.get_document_by_id("zzz")

        assert excinfo.value.document_id == "zzz"
        assert isinstance(excinfo.value, LookupError)

    @pytest.mark.asyncio
    async def test_retry_reads_current_file_state(self, documents_file) -> None:
        controller = JsonFileDocumentsController(documents_file)

        first = await controller.retry_issuance({"mdl": "mso_mdoc"})
        data = json.loads(documents_file.read_text(encoding="utf-8"))
        data["documents"][1]["state"] = "issued"
        documents_file.write_text(json.dumps(data), encoding="utf-8")
        second = await controller.retry_issuance({"mdl": "mso_mdoc"})

        assert first.still_pending == ("mdl",)
        assert second.succeeded == (IssuedDocument("mdl", "mDL"),)

    @pytest.mark.asyncio
    async def test_delete_reports_all_deleted(self, documents_file) -> None:
        controller = JsonFileDocumentsController(documents_file)

        first = await controller.delete_document("pid")
        second = await controller.delete_document("mdl")

        assert first.all_deleted is False
        assert second.all_deleted is True
        assert load_documents_file(documents_file) == []

    @pytest.mark.asyncio
    async def test_delete_unknown_raises(self, documents_file) -> None:
        controller = JsonFileDocumentsController(documents_file)

        with pytest.raises(DocumentNotFoundError):
            await controller.delete_document("zzz")

"""Unit tests for starting a parse run and the workflow's failure handling."""

import uuid

import pytest

from priceledger.core.exceptions import (
    DocumentDeletedError,
    DocumentNotFoundError,
    FatalWorkflowError,
    ParseAlreadyRunningError,
    PdfSplitError,
    StorageError,
)
from priceledger.models.enums import DocumentStatus, ParseRunStatus
from priceledger.pipeline.document_parse import start_parse_run
from tests.fakes import make_invoice, make_item, make_pdf


class TestStartParseRun:

    @pytest.mark.asyncio
    async def test_opens_run_and_marks_document_parsing(self, db):
        document = db.add_document()

        run_id = await start_parse_run(
            document.id, scope_factory=db.scope, model="gemini-test", prompt_version="v9"
        )

        run = db.run(run_id)
        assert run.document_id == document.id
        assert run.status == "RUNNING"
        assert (run.model, run.prompt_version) == ("gemini-test", "v9")
        assert db.document(document.id).status == "PARSING"

    @pytest.mark.asyncio
    async def test_previous_outcome_does_not_block_a_new_run(self, db):
        document = db.add_document(status=DocumentStatus.PARSED_PARTIAL)

        run_id = await start_parse_run(document.id, scope_factory=db.scope)

        assert run_id in db.tables.parse_runs

    @pytest.mark.asyncio
    async def test_unknown_document(self, db):
        with pytest.raises(DocumentNotFoundError):
            await start_parse_run(uuid.uuid4(), scope_factory=db.scope)

    @pytest.mark.asyncio
    async def test_deleted_document(self, db):
        document = db.add_document(is_deleted=True)

        with pytest.raises(DocumentDeletedError):
            await start_parse_run(document.id, scope_factory=db.scope)

        assert db.tables.parse_runs == {}

    @pytest.mark.asyncio
    async def test_document_already_parsing(self, db):
        document = db.add_document(status=DocumentStatus.PARSING)

        with pytest.raises(ParseAlreadyRunningError):
            await start_parse_run(document.id, scope_factory=db.scope)

        assert db.tables.parse_runs == {}


class TestDocumentParseWorkflowFailures:

    @pytest.mark.asyncio
    async def test_unknown_run_is_fatal(self, workflow):
        with pytest.raises(FatalWorkflowError):
            await workflow.run(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_document_deleted_after_start_is_fatal(self, db, workflow, extractor):
        document = db.add_document()
        run_id = await start_parse_run(document.id, scope_factory=db.scope)
        db.document(document.id).is_deleted = True

        with pytest.raises(FatalWorkflowError):
            await workflow.run(run_id)

        assert db.run(run_id).status == "FAILED"
        assert db.run(run_id).error_detail == "PARSE_RUN_OR_DOCUMENT_NOT_FOUND"
        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_invalid_pdf_fails_run_and_document(self, db, storage, workflow, sleep):
        document = db.add_document()
        storage.objects[document.storage_key] = b"not a pdf at all"
        run_id = await start_parse_run(document.id, scope_factory=db.scope)

        with pytest.raises(PdfSplitError):
            await workflow.run(run_id)

        run = db.run(run_id)
        assert run.status == ParseRunStatus.FAILED.value
        assert run.error_detail.startswith("PDF_INVALID_HEADER")
        assert run.finished_at is not None
        doc = db.document(document.id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.parse_error_summary.startswith("PDF_INVALID_HEADER")
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_download_error_is_retried(self, db, storage, extractor, workflow, sleep):
        document = db.add_document()
        storage.objects[document.storage_key] = make_pdf(1)
        storage.get_errors[document.storage_key] = [
            StorageError("Storage download failed 503", status_code=503)
        ]
        extractor.results[1] = make_invoice(items=[make_item(1, "Bolt")])
        run_id = await start_parse_run(document.id, scope_factory=db.scope)

        result = await workflow.run(run_id)

        assert result.status == ParseRunStatus.SUCCEEDED
        assert sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_missing_original_fails_without_retry(self, db, workflow, sleep):
        document = db.add_document()
        run_id = await start_parse_run(document.id, scope_factory=db.scope)

        with pytest.raises(StorageError):
            await workflow.run(run_id)

        assert db.run(run_id).status == "FAILED"
        assert sleep.delays == []

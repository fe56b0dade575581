"""Unit tests for the merge-and-finalize step."""

import uuid
from datetime import date

import pytest

from priceledger.core.exceptions import FatalWorkflowError
from priceledger.models.enums import DocumentStatus, ParsePageStatus, ParseRunStatus
from priceledger.models.stats import ParseRunStats
from priceledger.pipeline.finalizer import FAILED_RUN_SUMMARY, ParseRunFinalizer, partial_run_summary
from tests.fakes import make_invoice, make_item


def _widget(line_no, name="Widget", **fields):
    values = {"spec": "Type A", "quantity": 2, "unitPrice": 50, "amount": 100, "confidence": 0.95}
    values.update(fields)
    return make_item(line_no, name, **values)


async def _succeed(db, run, page_no, invoice):
    await db.repos.parse_pages.upsert_page(
        run.id, page_no, ParsePageStatus.SUCCEEDED, parsed_json=invoice.to_json()
    )


async def _fail(db, run, page_no):
    await db.repos.parse_pages.upsert_page(
        run.id, page_no, ParsePageStatus.FAILED, error_summary="GEMINI_RESPONSE_EMPTY"
    )


@pytest.fixture
def finalizer(db):
    return ParseRunFinalizer(scope_factory=db.scope)


@pytest.fixture
def document(db):
    return db.add_document(status=DocumentStatus.PARSING)


@pytest.fixture
def run(db, document):
    return db.add_run(document.id)


class TestParseRunFinalizer:

    @pytest.mark.asyncio
    async def test_all_pages_succeeded(self, db, finalizer, document, run):
        await _succeed(db, run, 1, make_invoice(items=[_widget(1)]))
        await _succeed(db, run, 2, make_invoice(None, None, [_widget(1, "Gadget")]))

        result = await finalizer.finalize(run.id, document.id, 2, 2)

        assert result.status == ParseRunStatus.SUCCEEDED
        assert result.document_status == DocumentStatus.PARSED

        stored_run = db.run(run.id)
        assert stored_run.status == "SUCCEEDED"
        assert stored_run.error_detail is None
        assert stored_run.finished_at is not None
        stats = ParseRunStats.from_json(stored_run.stats)
        assert stats.line_item_count == 2
        assert stats.diff_count == 2
        assert stats.diff_summary["NEW_CANDIDATE"] == 2

        doc = db.document(document.id)
        assert doc.status == "PARSED"
        assert doc.vendor_name == "Acme Supply"
        assert doc.invoice_date == date(2024, 5, 1)
        assert doc.parse_error_summary is None

        lines = await db.repos.line_items.list_for_run(run.id)
        assert [(li.line_no, li.product_name_raw) for li in lines] == [(1, "Widget"), (2, "Gadget")]
        assert all(li.matched_product_id is not None for li in lines)

    @pytest.mark.asyncio
    async def test_partial_run_records_failed_pages(self, db, finalizer, document, run):
        await _succeed(db, run, 1, make_invoice(items=[_widget(1)]))
        await _succeed(db, run, 2, make_invoice(items=[_widget(1, "Gadget")]))
        await _fail(db, run, 3)

        result = await finalizer.finalize(run.id, document.id, 3, 3)

        assert result.status == ParseRunStatus.PARTIAL
        assert result.stats.failed_page_nos == [3]
        assert result.stats.succeeded_pages == 2
        assert result.stats.failed_pages == 1

        stored_run = db.run(run.id)
        assert stored_run.status == "PARTIAL"
        assert stored_run.error_detail == "Failed to parse pages: 3"
        assert stored_run.stats["failedPageNos"] == [3]

        doc = db.document(document.id)
        assert doc.status == "PARSED_PARTIAL"
        assert doc.parse_error_summary == "Failed to parse pages: 3"

    @pytest.mark.asyncio
    async def test_no_successful_page_fails_the_run(self, db, finalizer, document, run):
        await _fail(db, run, 1)
        await _fail(db, run, 2)

        result = await finalizer.finalize(run.id, document.id, 2, 2)

        assert result.status == ParseRunStatus.FAILED
        assert result.stats.line_item_count == 0
        assert result.stats.diff_summary == {}
        assert db.run(run.id).error_detail == FAILED_RUN_SUMMARY
        doc = db.document(document.id)
        assert doc.status == "FAILED"
        assert doc.parse_error_summary == FAILED_RUN_SUMMARY

    @pytest.mark.asyncio
    async def test_document_vendor_is_the_fallback(self, db, finalizer):
        document = db.add_document(status=DocumentStatus.PARSING, vendor_name="Fallback Traders")
        run = db.add_run(document.id)
        await _succeed(db, run, 1, make_invoice(None, None, [_widget(1)]))

        await finalizer.finalize(run.id, document.id, 1, 1)

        doc = db.document(document.id)
        assert doc.vendor_name == "Fallback Traders"
        assert doc.invoice_date is None
        diff = next(iter(db.tables.diff_items.values()))
        assert diff.vendor_name == "Fallback Traders"

    @pytest.mark.asyncio
    async def test_finalize_twice_produces_identical_rows(self, db, finalizer, document, run):
        existing = db.add_product("widget type a", "Widget", spec="Type A", category="Hardware")
        db.add_vendor_price(existing.id, "Acme Supply", "45.00", date(2024, 1, 1))
        await _succeed(
            db, run, 1, make_invoice(items=[_widget(1), _widget(2, "Gadget")])
        )

        await finalizer.finalize(run.id, document.id, 1, 1)
        first_lines = [
            (li.line_no, li.product_key_candidate, li.system_confidence, li.matched_product_id)
            for li in await db.repos.line_items.list_for_run(run.id)
        ]
        first_diffs = [
            (d.classification, d.reason, d.before, d.after)
            for d, _ in await db.repos.diff_items.list_for_run(run.id)
        ]
        first_history = sorted(h.update_key for h in db.history_rows())
        product_count = len(db.tables.products)

        await finalizer.finalize(run.id, document.id, 1, 1)

        second_lines = [
            (li.line_no, li.product_key_candidate, li.system_confidence, li.matched_product_id)
            for li in await db.repos.line_items.list_for_run(run.id)
        ]
        second_diffs = [
            (d.classification, d.reason, d.before, d.after)
            for d, _ in await db.repos.diff_items.list_for_run(run.id)
        ]
        assert second_lines == first_lines
        assert second_diffs == first_diffs
        assert sorted(h.update_key for h in db.history_rows()) == first_history
        assert len(db.tables.products) == product_count
        assert len(db.tables.line_items) == 2
        assert len(db.tables.diff_items) == 2

    @pytest.mark.asyncio
    async def test_missing_document_is_fatal(self, db, finalizer, run):
        with pytest.raises(FatalWorkflowError):
            await finalizer.finalize(run.id, uuid.uuid4(), 1, 1)

        assert db.rollbacks == 1


def test_partial_summary_lists_failed_pages_comma_joined():
    assert partial_run_summary([3, 5]) == "Failed to parse pages: 3,5"

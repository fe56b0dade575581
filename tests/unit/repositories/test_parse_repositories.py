"""Unit tests for the SQL built by the parse pipeline repositories."""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from priceledger.models.enums import DocumentStatus, ParsePageStatus
from priceledger.repositories.document_repository import DocumentRepository
from priceledger.repositories.line_item_repository import LineItemRepository
from priceledger.repositories.parse_page_repository import ParsePageRepository
from priceledger.repositories.product_repository import ProductRepository
from priceledger.repositories.scope import ParseRepositories
from priceledger.repositories.update_history_repository import (
    UpdateHistoryRepository,
    make_update_key,
)
from priceledger.repositories.vendor_price_repository import VendorPriceRepository


def _compiled(stmt):
    return stmt.compile(dialect=postgresql.dialect())


@pytest.fixture
def result():
    return MagicMock()


@pytest.fixture
def session(result):
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.flush = AsyncMock()
    return session


def _statement(session, call_index=0):
    return session.execute.call_args_list[call_index].args[0]


class TestParsePageRepository:

    @pytest.mark.asyncio
    async def test_skipped_is_never_written(self, session):
        repo = ParsePageRepository(session)

        with pytest.raises(ValueError):
            await repo.upsert_page(uuid.uuid4(), 1, ParsePageStatus.SKIPPED)

        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_keeps_payload_and_timestamps(self, session):
        repo = ParsePageRepository(session)

        await repo.upsert_page(
            uuid.uuid4(), 2, ParsePageStatus.FAILED, error_summary="e" * 900, attempt=3
        )

        compiled = _compiled(_statement(session))
        sql = str(compiled)
        assert "ON CONFLICT (parse_run_id, page_no) DO UPDATE" in sql
        assert "coalesce(excluded.parsed_json, document_parse_pages.parsed_json)" in sql
        assert "coalesce(excluded.started_at, document_parse_pages.started_at)" in sql
        assert compiled.params["status"] == "FAILED"
        assert len(compiled.params["error_summary"]) == 500
        assert compiled.params["attempt"] == 3
        session.flush.assert_awaited_once()


class TestVendorPriceRepository:

    @pytest.mark.asyncio
    async def test_upsert_is_gated_on_newer_date(self, session, result):
        result.scalar_one_or_none.return_value = uuid.uuid4()
        repo = VendorPriceRepository(session)

        written = await repo.upsert_price(
            uuid.uuid4(), "Acme", Decimal("1.50"), date(2024, 5, 1), "run-1"
        )

        assert written is True
        sql = str(_compiled(_statement(session)))
        assert "ON CONFLICT (product_id, vendor_name) DO UPDATE" in sql
        assert "vendor_prices.price_updated_on IS NULL" in sql
        assert "excluded.price_updated_on > vendor_prices.price_updated_on" in sql
        assert "RETURNING vendor_prices.id" in sql

    @pytest.mark.asyncio
    async def test_upsert_reports_skipped_write(self, session, result):
        result.scalar_one_or_none.return_value = None
        repo = VendorPriceRepository(session)

        written = await repo.upsert_price(uuid.uuid4(), "Acme", Decimal("1.50"), None, "run-1")

        assert written is False

    @pytest.mark.asyncio
    async def test_no_ids_no_query(self, session):
        repo = VendorPriceRepository(session)

        assert await repo.get_for_products([], "Acme") == {}
        assert await repo.get_for_products([uuid.uuid4()], "") == {}
        session.execute.assert_not_called()


class TestProductRepository:

    @pytest.mark.asyncio
    async def test_create_if_absent_returns_existing_id_on_conflict(self, session):
        existing_id = uuid.uuid4()
        conflict = MagicMock()
        conflict.scalar_one_or_none.return_value = None
        lookup = MagicMock()
        lookup.scalar_one.return_value = existing_id
        session.execute = AsyncMock(side_effect=[conflict, lookup])
        repo = ProductRepository(session)

        product_id = await repo.create_if_absent(
            "hex bolt m8", "Hex Bolt", "M8", "Fasteners", Decimal("0.25"), "OK", "run-1"
        )

        assert product_id == existing_id
        sql = str(_compiled(_statement(session, 0)))
        assert "ON CONFLICT (product_key) DO NOTHING" in sql

    @pytest.mark.asyncio
    async def test_update_without_fields_is_a_no_op(self, session):
        await ProductRepository(session).update_fields(uuid.uuid4(), "run-1")

        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_by_keys_skips_empty_input(self, session):
        assert await ProductRepository(session).get_by_keys([None, ""]) == {}
        session.execute.assert_not_called()


class TestUpdateHistoryRepository:

    def test_update_key(self):
        run_id, product_id = uuid.uuid4(), uuid.uuid4()
        assert make_update_key(run_id, product_id, "spec") == f"{run_id}:{product_id}:spec"

    @pytest.mark.asyncio
    async def test_insert_many_ignores_existing_keys(self, session):
        repo = UpdateHistoryRepository(session)

        await repo.insert_many(
            [
                {
                    "update_key": "k1",
                    "product_id": uuid.uuid4(),
                    "field_name": "spec",
                    "vendor_name": None,
                    "before_value": None,
                    "after_value": "M8",
                    "source_type": "PDF",
                    "source_id": "run-1",
                    "updated_by": "parse-workflow",
                }
            ]
        )

        sql = str(_compiled(_statement(session)))
        assert "ON CONFLICT (update_key) DO NOTHING" in sql

    @pytest.mark.asyncio
    async def test_insert_nothing(self, session):
        await UpdateHistoryRepository(session).insert_many([])
        session.execute.assert_not_called()


class TestDocumentRepository:

    @pytest.mark.asyncio
    async def test_status_writes_skip_deleted_documents(self, session):
        repo = DocumentRepository(session)

        await repo.update_parse_outcome(
            uuid.uuid4(), DocumentStatus.PARSED, "Acme", date(2024, 5, 1), None
        )

        compiled = _compiled(_statement(session))
        assert "documents.is_deleted IS false" in str(compiled)
        assert compiled.params["status"] == "PARSED"


class TestLineItemRepository:

    @pytest.mark.asyncio
    async def test_insert_nothing(self, session):
        assert await LineItemRepository(session).insert_many([]) == 0
        session.execute.assert_not_called()


def test_repository_bundle_shares_one_session(session):
    repos = ParseRepositories.for_session(session)

    assert repos.documents.session is session
    assert repos.history.session is session
    assert repos.vendor_prices.session is session

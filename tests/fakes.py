"""In-memory doubles for the repository bundle, object store and extractor.

``InMemoryDatabase.scope`` has the same shape as ``repository_scope``: it
yields a ``ParseRepositories`` bundle and rolls every table back to its
state at entry when the block raises.
"""

import copy
import io
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple, Union

from pypdf import PdfWriter

from priceledger.core.exceptions import StorageError
from priceledger.models.enums import (
    SOURCE_TYPE_PDF,
    DocumentStatus,
    ParsePageStatus,
    ParseRunStatus,
)
from priceledger.models.invoice import ParsedInvoice
from priceledger.models.stats import ParseRunStats
from priceledger.repositories.parse_page_repository import ERROR_SUMMARY_MAX_LENGTH
from priceledger.repositories.scope import ParseRepositories
from priceledger.services.extraction.extraction_service import InvoiceExtractionService


def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_pdf(page_count: int) -> bytes:
    writer = PdfWriter()
    for _ in range(page_count):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def make_invoice(
    vendor_name: Optional[str] = "Acme Supply",
    invoice_date: Optional[str] = "2024-05-01",
    items: Optional[List[Dict[str, Any]]] = None,
) -> ParsedInvoice:
    return ParsedInvoice.model_validate(
        {"vendorName": vendor_name, "invoiceDate": invoice_date, "lineItems": items or []}
    )


def make_item(line_no: int, product_name: str, **fields: Any) -> Dict[str, Any]:
    return {"lineNo": line_no, "productName": product_name, **fields}


class _Tables:
    def __init__(self):
        self.documents: Dict[uuid.UUID, SimpleNamespace] = {}
        self.parse_runs: Dict[uuid.UUID, SimpleNamespace] = {}
        self.page_assets: Dict[Tuple[uuid.UUID, int], SimpleNamespace] = {}
        self.parse_pages: Dict[Tuple[uuid.UUID, int], SimpleNamespace] = {}
        self.line_items: Dict[uuid.UUID, SimpleNamespace] = {}
        self.diff_items: Dict[uuid.UUID, SimpleNamespace] = {}
        self.products: Dict[uuid.UUID, SimpleNamespace] = {}
        self.vendor_prices: Dict[Tuple[uuid.UUID, str], SimpleNamespace] = {}
        self.history: Dict[str, SimpleNamespace] = {}


class _FakeRepository:
    def __init__(self, db: "InMemoryDatabase"):
        self.db = db

    @property
    def t(self) -> _Tables:
        return self.db.tables


class FakeDocumentRepository(_FakeRepository):
    async def get_by_id(self, document_id):
        return self.t.documents.get(document_id)

    async def get_for_update(self, document_id):
        return self.t.documents.get(document_id)

    async def mark_parsing(self, document_id):
        doc = self.t.documents.get(document_id)
        if doc is not None and not doc.is_deleted:
            doc.status = DocumentStatus.PARSING.value
            doc.parse_error_summary = None

    async def update_parse_outcome(
        self, document_id, status, vendor_name, invoice_date, parse_error_summary
    ):
        doc = self.t.documents.get(document_id)
        if doc is not None and not doc.is_deleted:
            doc.status = status.value
            doc.vendor_name = vendor_name
            doc.invoice_date = invoice_date
            doc.parse_error_summary = parse_error_summary

    async def mark_failed(self, document_id, summary):
        doc = self.t.documents.get(document_id)
        if doc is not None and not doc.is_deleted:
            doc.status = DocumentStatus.FAILED.value
            doc.parse_error_summary = summary


class FakeParseRunRepository(_FakeRepository):
    async def get_by_id(self, parse_run_id):
        return self.t.parse_runs.get(parse_run_id)

    async def create_run(self, document_id, model, prompt_version):
        run = SimpleNamespace(
            id=uuid.uuid4(),
            document_id=document_id,
            status=ParseRunStatus.RUNNING.value,
            model=model,
            prompt_version=prompt_version,
            stats=ParseRunStats().to_json(),
            error_detail=None,
            started_at=_now(),
            finished_at=None,
        )
        self.t.parse_runs[run.id] = run
        return run

    async def get_with_document(self, parse_run_id):
        run = self.t.parse_runs.get(parse_run_id)
        if run is None:
            return None
        document = self.t.documents.get(run.document_id)
        if document is None:
            return None
        return run, document

    async def get_stats(self, parse_run_id):
        run = self.t.parse_runs.get(parse_run_id)
        return ParseRunStats.from_json(run.stats if run is not None else None)

    async def update_stats(self, parse_run_id, stats):
        self.t.parse_runs[parse_run_id].stats = stats.to_json()

    async def finish_run(self, parse_run_id, status, stats, error_detail):
        run = self.t.parse_runs[parse_run_id]
        run.status = status.value
        run.stats = stats.to_json()
        run.error_detail = error_detail
        run.finished_at = _now()

    async def mark_failed(self, parse_run_id, error_detail):
        run = self.t.parse_runs.get(parse_run_id)
        if run is not None:
            run.status = ParseRunStatus.FAILED.value
            run.error_detail = error_detail
            run.finished_at = _now()


class FakePageAssetRepository(_FakeRepository):
    async def upsert_page_asset(
        self, document_id, page_no, storage_key, page_hash, byte_size, mime_type
    ):
        key = (document_id, page_no)
        existing = self.t.page_assets.get(key)
        asset = SimpleNamespace(
            id=existing.id if existing else uuid.uuid4(),
            document_id=document_id,
            page_no=page_no,
            storage_key=storage_key,
            page_hash=page_hash,
            byte_size=byte_size,
            mime_type=mime_type,
        )
        self.t.page_assets[key] = asset

    async def get_page_asset(self, document_id, page_no):
        return self.t.page_assets.get((document_id, page_no))

    async def list_page_assets(self, document_id):
        return sorted(
            (a for (doc_id, _), a in self.t.page_assets.items() if doc_id == document_id),
            key=lambda a: a.page_no,
        )


class FakeParsePageRepository(_FakeRepository):
    async def get_status(self, parse_run_id, page_no):
        page = self.t.parse_pages.get((parse_run_id, page_no))
        return page.status if page is not None else None

    async def upsert_page(
        self,
        parse_run_id,
        page_no,
        status,
        parsed_json=None,
        error_summary=None,
        step_id=None,
        attempt=None,
        mark_started=False,
        mark_finished=False,
    ):
        if status == ParsePageStatus.SKIPPED:
            raise ValueError("SKIPPED is a step result and is never persisted")
        key = (parse_run_id, page_no)
        page = self.t.parse_pages.get(key)
        if page is None:
            page = SimpleNamespace(
                parse_run_id=parse_run_id,
                page_no=page_no,
                parsed_json=None,
                started_at=None,
                finished_at=None,
            )
            self.t.parse_pages[key] = page
        page.status = status.value
        if parsed_json is not None:
            page.parsed_json = parsed_json
        page.error_summary = error_summary[:ERROR_SUMMARY_MAX_LENGTH] if error_summary else None
        page.step_id = step_id
        page.attempt = attempt
        if mark_started:
            page.started_at = _now()
        if mark_finished:
            page.finished_at = _now()

    async def list_succeeded(self, parse_run_id):
        return sorted(
            (
                p for (run_id, _), p in self.t.parse_pages.items()
                if run_id == parse_run_id and p.status == ParsePageStatus.SUCCEEDED.value
            ),
            key=lambda p: p.page_no,
        )

    async def list_failed_page_nos(self, parse_run_id):
        return sorted(
            page_no for (run_id, page_no), p in self.t.parse_pages.items()
            if run_id == parse_run_id and p.status == ParsePageStatus.FAILED.value
        )


class FakeLineItemRepository(_FakeRepository):
    async def delete_for_run(self, parse_run_id):
        for line_id in [k for k, v in self.t.line_items.items() if v.parse_run_id == parse_run_id]:
            del self.t.line_items[line_id]

    async def insert_many(self, rows):
        for row in rows:
            self.t.line_items[row["id"]] = SimpleNamespace(**row)
        return len(rows)

    async def list_for_run(self, parse_run_id):
        return sorted(
            (v for v in self.t.line_items.values() if v.parse_run_id == parse_run_id),
            key=lambda v: v.line_no,
        )


class FakeDiffItemRepository(_FakeRepository):
    async def delete_for_run(self, parse_run_id):
        for diff_id in [k for k, v in self.t.diff_items.items() if v.parse_run_id == parse_run_id]:
            del self.t.diff_items[diff_id]

    async def insert_many(self, rows):
        for row in rows:
            if row["line_item_id"] not in self.t.line_items:
                raise AssertionError("diff item references a missing line item")
            self.t.diff_items[row["id"]] = SimpleNamespace(**row)
        return len(rows)

    async def list_for_run(self, parse_run_id, classification=None):
        rows = [
            (diff, self.t.line_items[diff.line_item_id])
            for diff in self.t.diff_items.values()
            if diff.parse_run_id == parse_run_id
            and (classification is None or diff.classification == classification)
        ]
        return sorted(rows, key=lambda r: (r[0].classification, r[1].line_no))

    async def summary_for_run(self, parse_run_id):
        summary: Dict[str, int] = {}
        for diff in self.t.diff_items.values():
            if diff.parse_run_id == parse_run_id:
                summary[diff.classification] = summary.get(diff.classification, 0) + 1
        return summary


class FakeProductRepository(_FakeRepository):
    async def get_by_id(self, product_id):
        return self.t.products.get(product_id)

    async def get_by_keys(self, product_keys):
        keys = {k for k in product_keys if k}
        return {p.product_key: p for p in self.t.products.values() if p.product_key in keys}

    async def create_if_absent(
        self,
        product_key,
        product_name,
        spec,
        category,
        default_unit_price,
        quality_flag,
        source_id,
    ):
        for product in self.t.products.values():
            if product.product_key == product_key:
                return product.id
        product = SimpleNamespace(
            id=uuid.uuid4(),
            product_key=product_key,
            product_name=product_name,
            spec=spec,
            category=category,
            default_unit_price=default_unit_price,
            quality_flag=quality_flag,
            last_source_type=SOURCE_TYPE_PDF,
            last_source_id=source_id,
        )
        self.t.products[product.id] = product
        return product.id

    async def update_fields(self, product_id, source_id, **fields):
        if not fields:
            return
        product = self.t.products[product_id]
        for name, value in fields.items():
            setattr(product, name, value)
        product.last_source_type = SOURCE_TYPE_PDF
        product.last_source_id = source_id


class FakeVendorPriceRepository(_FakeRepository):
    async def get_for_products(self, product_ids, vendor_name):
        ids = set(product_ids)
        # Copies, like rows loaded before a later upsert
        return {
            pid: copy.copy(price)
            for (pid, vendor), price in self.t.vendor_prices.items()
            if pid in ids and vendor == vendor_name
        }

    async def upsert_price(self, product_id, vendor_name, unit_price, price_updated_on, source_id):
        key = (product_id, vendor_name)
        existing = self.t.vendor_prices.get(key)
        if existing is not None:
            stored = existing.price_updated_on
            newer = stored is None or (price_updated_on is not None and price_updated_on > stored)
            if not newer:
                return False
        self.t.vendor_prices[key] = SimpleNamespace(
            product_id=product_id,
            vendor_name=vendor_name,
            unit_price=unit_price,
            price_updated_on=price_updated_on,
            source_type=SOURCE_TYPE_PDF,
            source_id=source_id,
        )
        return True


class FakeUpdateHistoryRepository(_FakeRepository):
    async def list_for_run(self, parse_run_id):
        return [
            h for h in self.t.history.values()
            if h.source_type == SOURCE_TYPE_PDF and h.source_id == str(parse_run_id)
        ]

    async def insert_many(self, rows):
        for row in rows:
            if row["update_key"] not in self.t.history:
                self.t.history[row["update_key"]] = SimpleNamespace(id=uuid.uuid4(), **row)


class InMemoryDatabase:
    def __init__(self):
        self.tables = _Tables()
        self.scopes_opened = 0
        self.rollbacks = 0
        self.repos = ParseRepositories(
            documents=FakeDocumentRepository(self),
            parse_runs=FakeParseRunRepository(self),
            page_assets=FakePageAssetRepository(self),
            parse_pages=FakeParsePageRepository(self),
            line_items=FakeLineItemRepository(self),
            diff_items=FakeDiffItemRepository(self),
            products=FakeProductRepository(self),
            vendor_prices=FakeVendorPriceRepository(self),
            history=FakeUpdateHistoryRepository(self),
        )

    @asynccontextmanager
    async def scope(self):
        self.scopes_opened += 1
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self.repos
        except BaseException:
            self.tables = snapshot
            self.rollbacks += 1
            raise

    def add_document(
        self,
        storage_key: Optional[str] = None,
        status: DocumentStatus = DocumentStatus.UPLOADED,
        is_deleted: bool = False,
        vendor_name: Optional[str] = None,
    ) -> SimpleNamespace:
        document_id = uuid.uuid4()
        doc = SimpleNamespace(
            id=document_id,
            file_name="invoice.pdf",
            file_hash="0" * 64,
            storage_key=storage_key or f"documents/{document_id}/original.pdf",
            status=status.value,
            vendor_name=vendor_name,
            invoice_date=None,
            parse_error_summary=None,
            is_deleted=is_deleted,
        )
        self.tables.documents[document_id] = doc
        return doc

    def add_run(self, document_id: uuid.UUID) -> SimpleNamespace:
        run = SimpleNamespace(
            id=uuid.uuid4(),
            document_id=document_id,
            status=ParseRunStatus.RUNNING.value,
            model="gemini-test",
            prompt_version="v1",
            stats=ParseRunStats().to_json(),
            error_detail=None,
            started_at=_now(),
            finished_at=None,
        )
        self.tables.parse_runs[run.id] = run
        return run

    def add_page_asset(self, document_id: uuid.UUID, page_no: int, storage_key: str) -> SimpleNamespace:
        asset = SimpleNamespace(
            id=uuid.uuid4(),
            document_id=document_id,
            page_no=page_no,
            storage_key=storage_key,
            page_hash="0" * 64,
            byte_size=0,
            mime_type="application/pdf",
        )
        self.tables.page_assets[(document_id, page_no)] = asset
        return asset

    def add_product(
        self,
        product_key: str,
        product_name: str,
        spec: Optional[str] = None,
        category: Optional[str] = None,
    ) -> SimpleNamespace:
        product = SimpleNamespace(
            id=uuid.uuid4(),
            product_key=product_key,
            product_name=product_name,
            spec=spec,
            category=category,
            default_unit_price=None,
            quality_flag="OK",
            last_source_type=None,
            last_source_id=None,
        )
        self.tables.products[product.id] = product
        return product

    def add_vendor_price(
        self,
        product_id: uuid.UUID,
        vendor_name: str,
        unit_price: Union[str, Decimal],
        price_updated_on: Optional[date],
    ) -> SimpleNamespace:
        price = SimpleNamespace(
            product_id=product_id,
            vendor_name=vendor_name,
            unit_price=Decimal(unit_price),
            price_updated_on=price_updated_on,
            source_type="MANUAL",
            source_id="seed",
        )
        self.tables.vendor_prices[(product_id, vendor_name)] = price
        return price

    def document(self, document_id: uuid.UUID) -> SimpleNamespace:
        return self.tables.documents[document_id]

    def run(self, parse_run_id: uuid.UUID) -> SimpleNamespace:
        return self.tables.parse_runs[parse_run_id]

    def history_rows(self) -> List[SimpleNamespace]:
        return list(self.tables.history.values())


class FakeStorage:
    """Object store keyed by storage key. Queued errors are raised before reads."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.get_calls: List[str] = []
        self.put_calls: List[str] = []
        self.get_errors: Dict[str, List[Exception]] = {}

    async def get_bytes(self, key: str) -> bytes:
        self.get_calls.append(key)
        queued = self.get_errors.get(key)
        if queued:
            raise queued.pop(0)
        if key not in self.objects:
            raise StorageError(f"Storage download failed 404 for {key}: not found", status_code=404)
        return self.objects[key]

    async def put_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.put_calls.append(key)
        self.objects[key] = data


class FakeExtractor:
    """Returns, or raises, a scripted result per page number.

    A list scripts successive calls for the same page. A string is treated as
    raw model output and goes through the real response validation.
    """

    def __init__(self, results: Optional[Dict[int, Any]] = None):
        self.results: Dict[int, Any] = dict(results or {})
        self.calls: List[int] = []
        self._service = InvoiceExtractionService(client=None)

    async def extract_page(self, page_bytes_b64: str, page_no: int) -> ParsedInvoice:
        self.calls.append(page_no)
        result = self.results[page_no]
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, str):
            return self._service.parse_response(result, page_no)
        return result


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)



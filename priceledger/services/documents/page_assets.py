"""Preparation of per-page PDF assets for a parse run."""

import uuid
from dataclasses import dataclass
from typing import Optional

from priceledger.core.config import PipelineSettings, settings
from priceledger.core.exceptions import PdfSplitError
from priceledger.repositories.scope import ScopeFactory, repository_scope
from priceledger.services.documents.pdf_splitter import PDF_MIME_TYPE, PdfPageSplitter
from priceledger.services.storage_service import StorageService
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_HEADER = b"%PDF-"


def page_storage_key(document_id: uuid.UUID, page_no: int) -> str:
    return f"documents/{document_id}/pages/page-{page_no}.pdf"


@dataclass
class PreparedPages:
    page_count: int
    processed_pages: int
    reused: bool = False


class PageAssetPreparer:
    """Splits a document once per run and stores every page as its own asset.

    Re-entering a run whose page counts are already recorded and whose assets
    all exist does not download or split again.
    """

    def __init__(
        self,
        storage: StorageService,
        splitter: Optional[PdfPageSplitter] = None,
        scope_factory: ScopeFactory = repository_scope,
        pipeline_settings: Optional[PipelineSettings] = None,
    ):
        self.storage = storage
        self.splitter = splitter or PdfPageSplitter()
        self.scope_factory = scope_factory
        self.pipeline_settings = pipeline_settings or settings.pipeline

    async def prepare(
        self, parse_run_id: uuid.UUID, document_id: uuid.UUID, storage_key: str
    ) -> PreparedPages:
        reused = await self._existing_preparation(parse_run_id, document_id)
        if reused is not None:
            LOGGER.info(
                "Page assets already prepared; skipping split",
                extra={"parse_run_id": str(parse_run_id), "processed_pages": reused.processed_pages},
            )
            return reused

        pdf_bytes = await self.storage.get_bytes(storage_key)
        self._validate(pdf_bytes)

        result = self.splitter.split(pdf_bytes, self.pipeline_settings.max_pdf_pages)

        for page in result.pages:
            await self.storage.put_bytes(
                page_storage_key(document_id, page.page_no), page.data, PDF_MIME_TYPE
            )

        async with self.scope_factory() as repos:
            for page in result.pages:
                await repos.page_assets.upsert_page_asset(
                    document_id=document_id,
                    page_no=page.page_no,
                    storage_key=page_storage_key(document_id, page.page_no),
                    page_hash=page.page_hash,
                    byte_size=page.byte_size,
                    mime_type=PDF_MIME_TYPE,
                )
            stats = await repos.parse_runs.get_stats(parse_run_id)
            stats.page_count = result.page_count
            stats.processed_pages = result.processed_pages
            await repos.parse_runs.update_stats(parse_run_id, stats)

        LOGGER.info(
            "Prepared page assets",
            extra={
                "parse_run_id": str(parse_run_id),
                "document_id": str(document_id),
                "page_count": result.page_count,
                "processed_pages": result.processed_pages,
                "fallback": result.fallback,
            },
        )
        return PreparedPages(page_count=result.page_count, processed_pages=result.processed_pages)

    async def _existing_preparation(
        self, parse_run_id: uuid.UUID, document_id: uuid.UUID
    ) -> Optional[PreparedPages]:
        async with self.scope_factory() as repos:
            stats = await repos.parse_runs.get_stats(parse_run_id)
            if not stats.pages_recorded:
                return None
            assets = await repos.page_assets.list_page_assets(document_id)

        present = {asset.page_no for asset in assets}
        if all(page_no in present for page_no in range(1, stats.processed_pages + 1)):
            return PreparedPages(
                page_count=stats.page_count, processed_pages=stats.processed_pages, reused=True
            )
        return None

    def _validate(self, pdf_bytes: bytes) -> None:
        if not pdf_bytes.lstrip().startswith(PDF_HEADER):
            raise PdfSplitError("PDF_INVALID_HEADER", "PDF_INVALID_HEADER: input is not a PDF")
        if len(pdf_bytes) > self.pipeline_settings.max_pdf_bytes:
            raise PdfSplitError(
                "PDF_TOO_LARGE",
                f"PDF_TOO_LARGE: {len(pdf_bytes)} bytes exceeds {self.pipeline_settings.max_pdf_mb} MB",
            )

"""Document services: PDF splitting, page asset preparation and page merge."""

from priceledger.services.documents.page_assets import PageAssetPreparer, page_storage_key
from priceledger.services.documents.page_merge import classify_run_status, merge_parsed_invoices
from priceledger.services.documents.pdf_splitter import PdfPageSplitter, SplitPage, SplitResult

__all__ = [
    "PageAssetPreparer",
    "page_storage_key",
    "classify_run_status",
    "merge_parsed_invoices",
    "PdfPageSplitter",
    "SplitPage",
    "SplitResult",
]

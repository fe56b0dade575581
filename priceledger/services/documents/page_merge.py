"""Merging of per-page extraction results into one invoice."""

from typing import Iterable, List, Optional

from priceledger.models.invoice import ParsedInvoice, ParsedLineItem
from priceledger.models.enums import DocumentStatus, ParseRunStatus


def merge_parsed_invoices(pages: Iterable[ParsedInvoice]) -> ParsedInvoice:
    """Merge pages, given in ascending page order, into a single invoice.

    Vendor name and invoice date are the first non-null values across pages.
    Line items are concatenated in page order and renumbered from 1; the
    per-page line numbers are discarded.
    """
    vendor_name: Optional[str] = None
    invoice_date: Optional[str] = None
    line_items: List[ParsedLineItem] = []

    for page in pages:
        if vendor_name is None and page.vendor_name:
            vendor_name = page.vendor_name
        if invoice_date is None and page.invoice_date:
            invoice_date = page.invoice_date
        line_items.extend(page.line_items)

    renumbered = [
        item.model_copy(update={"line_no": index})
        for index, item in enumerate(line_items, start=1)
    ]
    # model_construct skips the per-page item cap, which does not apply to a merged document
    return ParsedInvoice.model_construct(
        vendor_name=vendor_name, invoice_date=invoice_date, line_items=renumbered
    )


def classify_run_status(succeeded: int, failed: int) -> tuple[ParseRunStatus, DocumentStatus]:
    """Run status from page outcomes, and the document status that mirrors it."""
    if succeeded > 0 and failed == 0:
        return ParseRunStatus.SUCCEEDED, DocumentStatus.PARSED
    if succeeded > 0:
        return ParseRunStatus.PARTIAL, DocumentStatus.PARSED_PARTIAL
    return ParseRunStatus.FAILED, DocumentStatus.FAILED

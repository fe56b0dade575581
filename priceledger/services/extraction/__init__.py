"""AI extraction of invoice data from single-page PDFs."""

from priceledger.services.extraction.extraction_service import InvoiceExtractionService
from priceledger.services.extraction.prompt import SYSTEM_PROMPT

__all__ = ["InvoiceExtractionService", "SYSTEM_PROMPT"]

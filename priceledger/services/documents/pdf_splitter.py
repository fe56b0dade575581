"""Split a PDF into single-page PDF blobs."""

import hashlib
import io
import re
from dataclasses import dataclass, field
from typing import List

from pypdf import PdfReader, PdfWriter

from priceledger.core.exceptions import PdfSplitError
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_MIME_TYPE = "application/pdf"

_OBJECT_RE = re.compile(rb"\d+\s+\d+\s+obj(.*?)endobj", re.DOTALL)
_PAGES_TYPE_RE = re.compile(rb"/Type\s*/Pages\b")
_COUNT_RE = re.compile(rb"/Count\s+(\d{1,5})\b")


@dataclass
class SplitPage:
    page_no: int
    data: bytes
    page_hash: str
    byte_size: int


@dataclass
class SplitResult:
    page_count: int
    processed_pages: int
    pages: List[SplitPage] = field(default_factory=list)
    fallback: bool = False


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def detect_pdf_page_count(pdf_bytes: bytes) -> int:
    """Estimate the page count by scanning raw ``/Type /Pages`` objects.

    Only used for diagnostics when the PDF cannot be opened. Prefers the
    largest ``/Count`` found on a page-tree node, then any ``/Count`` at all,
    then 1.
    """
    tree_counts = []
    for match in _OBJECT_RE.finditer(pdf_bytes):
        body = match.group(1)
        if not _PAGES_TYPE_RE.search(body):
            continue
        count_match = _COUNT_RE.search(body)
        if count_match and int(count_match.group(1)) > 0:
            tree_counts.append(int(count_match.group(1)))
    if tree_counts:
        return max(tree_counts)

    counts = [int(m.group(1)) for m in _COUNT_RE.finditer(pdf_bytes) if int(m.group(1)) > 0]
    return max(counts) if counts else 1


class PdfPageSplitter:
    """Copies each page of a PDF, up to a cap, into its own single-page PDF."""

    def split(self, pdf_bytes: bytes, max_pages: int) -> SplitResult:
        """Split ``pdf_bytes`` into at most ``max_pages`` single-page PDFs.

        If the page tree cannot be read, or reports no pages, the whole input
        is treated as page 1. That truncates a genuinely multi-page file that
        pypdf cannot open, so the fallback is logged with a raw page estimate.

        Raises:
            PdfSplitError: If writing an individual page fails.
        """
        cap = max(1, max_pages)

        try:
            reader = PdfReader(io.BytesIO(pdf_bytes))
            page_count = len(reader.pages)
        except Exception as e:
            return self._single_page_fallback(pdf_bytes, reason=str(e))

        if page_count <= 0:
            return self._single_page_fallback(pdf_bytes, reason="no pages in page tree")

        processed_pages = min(page_count, cap)
        pages = []
        for index in range(processed_pages):
            page_no = index + 1
            try:
                writer = PdfWriter()
                writer.add_page(reader.pages[index])
                buffer = io.BytesIO()
                writer.write(buffer)
            except Exception as e:
                LOGGER.error(
                    "Failed to write single-page PDF",
                    exc_info=True,
                    extra={"page_no": page_no},
                )
                raise PdfSplitError(
                    "PDF_SPLIT_FAILED",
                    f"PDF_SPLIT_FAILED: page {page_no}: {e}",
                    page_no=page_no,
                    original_error=e,
                ) from e

            data = buffer.getvalue()
            pages.append(
                SplitPage(page_no=page_no, data=data, page_hash=sha256_hex(data), byte_size=len(data))
            )

        if page_count > cap:
            LOGGER.info(
                "PDF exceeds page cap; extra pages are not processed",
                extra={"page_count": page_count, "max_pages": cap},
            )

        return SplitResult(page_count=page_count, processed_pages=processed_pages, pages=pages)

    def _single_page_fallback(self, pdf_bytes: bytes, reason: str) -> SplitResult:
        LOGGER.warning(
            "Could not read PDF page tree; treating input as a single page",
            extra={"reason": reason[:200], "detected_page_count": detect_pdf_page_count(pdf_bytes)},
        )
        page = SplitPage(
            page_no=1,
            data=pdf_bytes,
            page_hash=sha256_hex(pdf_bytes),
            byte_size=len(pdf_bytes),
        )
        return SplitResult(page_count=1, processed_pages=1, pages=[page], fallback=True)

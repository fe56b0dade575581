"""Per-page parse step.

State per (parse_run_id, page_no) moves from nothing to RUNNING and then to
SUCCEEDED or FAILED. A page found already SUCCEEDED returns SKIPPED without
fetching bytes or calling the model, which is what makes re-running the
step after a crash or retry safe.
"""

import asyncio
import base64
import re
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx

from priceledger.core.exceptions import APITimeoutError, PipelineError, RetryableStepError
from priceledger.models.enums import ParsePageStatus
from priceledger.pipeline.step_runner import StepContext
from priceledger.repositories.parse_page_repository import ERROR_SUMMARY_MAX_LENGTH
from priceledger.repositories.scope import ScopeFactory, repository_scope
from priceledger.services.extraction.extraction_service import InvoiceExtractionService
from priceledger.services.storage_service import StorageService
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

TRANSIENT_ERROR_RE = re.compile(r"\b(429|5\d\d)\b|timeout|ETIMEDOUT|temporar", re.IGNORECASE)

PAGE_STEP_NAME = "parse-page"


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_transient_error(error: BaseException) -> bool:
    """Rate limits, timeouts and 5xx responses are worth retrying.

    An explicit HTTP status decides on its own; otherwise the message is
    matched against the transient pattern.
    """
    if isinstance(error, (APITimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return True

    status = _status_code(error)
    if status is not None and 100 <= status <= 599:
        return status == 429 or status >= 500

    return bool(TRANSIENT_ERROR_RE.search(str(error)))


@dataclass(frozen=True)
class PageParseResult:
    page_no: int
    status: ParsePageStatus


class PageParser:
    def __init__(
        self,
        storage: StorageService,
        extractor: InvoiceExtractionService,
        scope_factory: ScopeFactory = repository_scope,
    ):
        self.storage = storage
        self.extractor = extractor
        self.scope_factory = scope_factory

    async def parse_page(
        self,
        parse_run_id: uuid.UUID,
        document_id: uuid.UUID,
        page_no: int,
        *,
        step: StepContext,
    ) -> PageParseResult:
        """Parse one page.

        Returns FAILED instead of raising when the page cannot be parsed, so
        one bad page never aborts the run.

        Raises:
            RetryableStepError: On a transient failure before the last attempt.
        """
        log_extra = {
            "parse_run_id": str(parse_run_id),
            "page_no": page_no,
            "step_id": step.step_id,
            "attempt": step.attempt,
        }

        try:
            async with self.scope_factory() as repos:
                existing = await repos.parse_pages.get_status(parse_run_id, page_no)
            if existing == ParsePageStatus.SUCCEEDED.value:
                LOGGER.info("Page already parsed; skipping", extra=log_extra)
                return PageParseResult(page_no, ParsePageStatus.SKIPPED)

            # Durable marker before any external call
            async with self.scope_factory() as repos:
                await repos.parse_pages.upsert_page(
                    parse_run_id,
                    page_no,
                    ParsePageStatus.RUNNING,
                    error_summary=None,
                    step_id=step.step_id,
                    attempt=step.attempt,
                    mark_started=True,
                )

            async with self.scope_factory() as repos:
                asset = await repos.page_assets.get_page_asset(document_id, page_no)
            if asset is None:
                raise PipelineError(f"PAGE_ASSET_NOT_FOUND: page {page_no}")

            page_bytes = await self.storage.get_bytes(asset.storage_key)
            parsed = await self.extractor.extract_page(
                base64.b64encode(page_bytes).decode("ascii"), page_no
            )

            async with self.scope_factory() as repos:
                await repos.parse_pages.upsert_page(
                    parse_run_id,
                    page_no,
                    ParsePageStatus.SUCCEEDED,
                    parsed_json=parsed.to_json(),
                    step_id=step.step_id,
                    attempt=step.attempt,
                    mark_finished=True,
                )

            LOGGER.info(
                "Page parsed",
                extra={**log_extra, "line_items": len(parsed.line_items)},
            )
            return PageParseResult(page_no, ParsePageStatus.SUCCEEDED)

        except Exception as e:
            if is_transient_error(e) and not step.is_last_attempt:
                LOGGER.warning(f"Transient page parse error: {e}", extra=log_extra)
                raise RetryableStepError("PAGE_PARSE_RETRY", original_error=e) from e

            LOGGER.warning(f"Page parse failed: {e}", extra=log_extra)
            await self._record_failure(parse_run_id, page_no, step, e)
            return PageParseResult(page_no, ParsePageStatus.FAILED)

    async def _record_failure(
        self,
        parse_run_id: uuid.UUID,
        page_no: int,
        step: StepContext,
        error: Exception,
    ) -> None:
        summary = (str(error) or "PAGE_PARSE_FAILED")[:ERROR_SUMMARY_MAX_LENGTH]
        try:
            async with self.scope_factory() as repos:
                await repos.parse_pages.upsert_page(
                    parse_run_id,
                    page_no,
                    ParsePageStatus.FAILED,
                    error_summary=summary,
                    step_id=step.step_id,
                    attempt=step.attempt,
                    mark_finished=True,
                )
        except Exception:
            LOGGER.error(
                "Failed to persist page failure",
                exc_info=True,
                extra={"parse_run_id": str(parse_run_id), "page_no": page_no},
            )

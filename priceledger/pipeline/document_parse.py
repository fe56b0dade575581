"""Document parse workflow: prepare pages, parse each page, finalize.

Pages run sequentially. Each unit of work goes through the ``StepRunner``
under a deterministic step id, and a page failure is contained in the page
step. Only failures in loading, preparation or finalize reach the top-level
handler, which marks the run and the document FAILED and re-raises.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from priceledger.core.config import settings
from priceledger.core.exceptions import (
    DocumentDeletedError,
    DocumentNotFoundError,
    FatalWorkflowError,
    ParseAlreadyRunningError,
    PdfSplitError,
    RetryableStepError,
)
from priceledger.models.enums import DocumentStatus, ParsePageStatus
from priceledger.pipeline.finalizer import FinalizeResult, ParseRunFinalizer
from priceledger.pipeline.page_parser import PAGE_STEP_NAME, PageParser, is_transient_error
from priceledger.pipeline.step_runner import StepContext, StepRunner, make_step_id
from priceledger.repositories.scope import ScopeFactory, repository_scope
from priceledger.services.documents.page_assets import PageAssetPreparer, PreparedPages
from priceledger.services.extraction.extraction_service import InvoiceExtractionService
from priceledger.services.storage_service import StorageService
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

FAILURE_REASON_MAX_LENGTH = 200

PREPARE_STEP_NAME = "prepare-pages"
FINALIZE_STEP_NAME = "merge-finalize"


@dataclass(frozen=True)
class ParseContext:
    parse_run_id: uuid.UUID
    document_id: uuid.UUID
    storage_key: str


async def start_parse_run(
    document_id: uuid.UUID,
    scope_factory: ScopeFactory = repository_scope,
    model: Optional[str] = None,
    prompt_version: Optional[str] = None,
) -> uuid.UUID:
    """Open a new parse run for a document and move the document to PARSING.

    Raises:
        DocumentNotFoundError: If the document does not exist.
        DocumentDeletedError: If the document is soft-deleted.
        ParseAlreadyRunningError: If the document is already being parsed.
    """
    async with scope_factory() as repos:
        document = await repos.documents.get_for_update(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if document.is_deleted or document.status == DocumentStatus.DELETED.value:
            raise DocumentDeletedError(f"Document {document_id} is deleted")
        if document.status == DocumentStatus.PARSING.value:
            raise ParseAlreadyRunningError(f"Document {document_id} is already being parsed")

        await repos.documents.mark_parsing(document_id)
        run = await repos.parse_runs.create_run(
            document_id, model or settings.gemini_model, prompt_version or settings.prompt_version
        )

    LOGGER.info(
        "Started parse run",
        extra={"document_id": str(document_id), "parse_run_id": str(run.id)},
    )
    return run.id


class DocumentParseWorkflow:
    def __init__(
        self,
        preparer: PageAssetPreparer,
        page_parser: PageParser,
        finalizer: ParseRunFinalizer,
        step_runner: Optional[StepRunner] = None,
        scope_factory: ScopeFactory = repository_scope,
    ):
        self.preparer = preparer
        self.page_parser = page_parser
        self.finalizer = finalizer
        self.step_runner = step_runner or StepRunner()
        self.scope_factory = scope_factory

    async def run(self, parse_run_id: uuid.UUID) -> FinalizeResult:
        context: Optional[ParseContext] = None
        try:
            context = await self._load_context(parse_run_id)

            prepared: PreparedPages = await self.step_runner.run(
                make_step_id(PREPARE_STEP_NAME, parse_run_id), self._prepare, context
            )

            failed_pages = 0
            for page_no in range(1, prepared.processed_pages + 1):
                result = await self.step_runner.run(
                    make_step_id(PAGE_STEP_NAME, parse_run_id, page_no),
                    self.page_parser.parse_page,
                    parse_run_id,
                    context.document_id,
                    page_no,
                )
                if result.status == ParsePageStatus.FAILED:
                    failed_pages += 1

            LOGGER.info(
                "All pages attempted",
                extra={
                    "parse_run_id": str(parse_run_id),
                    "processed_pages": prepared.processed_pages,
                    "failed_pages": failed_pages,
                },
            )

            return await self.step_runner.run(
                make_step_id(FINALIZE_STEP_NAME, parse_run_id),
                self.finalizer.finalize,
                parse_run_id,
                context.document_id,
                prepared.page_count,
                prepared.processed_pages,
            )
        except Exception as e:
            LOGGER.error(
                f"Parse workflow failed: {e}",
                exc_info=True,
                extra={"parse_run_id": str(parse_run_id)},
            )
            await self._mark_failed(parse_run_id, context, e)
            raise

    async def _load_context(self, parse_run_id: uuid.UUID) -> ParseContext:
        async with self.scope_factory() as repos:
            loaded = await repos.parse_runs.get_with_document(parse_run_id)
        if loaded is None:
            raise FatalWorkflowError("PARSE_RUN_OR_DOCUMENT_NOT_FOUND")

        run, document = loaded
        if document.is_deleted:
            raise FatalWorkflowError("PARSE_RUN_OR_DOCUMENT_NOT_FOUND")

        return ParseContext(
            parse_run_id=run.id,
            document_id=document.id,
            storage_key=document.storage_key,
        )

    async def _prepare(self, context: ParseContext, *, step: StepContext) -> PreparedPages:
        try:
            return await self.preparer.prepare(
                context.parse_run_id, context.document_id, context.storage_key
            )
        except PdfSplitError:
            raise
        except Exception as e:
            if is_transient_error(e) and not step.is_last_attempt:
                raise RetryableStepError("PREPARE_PAGES_RETRY", original_error=e) from e
            raise

    async def _mark_failed(
        self,
        parse_run_id: uuid.UUID,
        context: Optional[ParseContext],
        error: Exception,
    ) -> None:
        reason = (str(error) or type(error).__name__)[:FAILURE_REASON_MAX_LENGTH]
        try:
            async with self.scope_factory() as repos:
                await repos.parse_runs.mark_failed(parse_run_id, reason)
                if context is not None:
                    await repos.documents.mark_failed(context.document_id, reason)
        except Exception:
            LOGGER.error(
                "Failed to mark parse run as failed",
                exc_info=True,
                extra={"parse_run_id": str(parse_run_id)},
            )


def build_document_parse_workflow(
    storage: Optional[StorageService] = None,
    extractor: Optional[InvoiceExtractionService] = None,
) -> DocumentParseWorkflow:
    storage = storage or StorageService()
    extractor = extractor or InvoiceExtractionService()
    return DocumentParseWorkflow(
        preparer=PageAssetPreparer(storage),
        page_parser=PageParser(storage, extractor),
        finalizer=ParseRunFinalizer(),
    )


async def run_document_parse_workflow(parse_run_id: uuid.UUID) -> FinalizeResult:
    """Run the parse workflow for ``parse_run_id`` with the production collaborators."""
    return await build_document_parse_workflow().run(parse_run_id)

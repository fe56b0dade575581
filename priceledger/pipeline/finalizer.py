"""Finalize step: merge parsed pages, reconcile and record the run outcome."""

import uuid
from dataclasses import dataclass
from typing import List, Optional

from priceledger.core.exceptions import FatalWorkflowError
from priceledger.models.enums import DocumentStatus, ParseRunStatus
from priceledger.models.invoice import ParsedInvoice
from priceledger.models.line_item import LineItemDraft
from priceledger.models.stats import ParseRunStats
from priceledger.pipeline.step_runner import StepContext
from priceledger.repositories.scope import ScopeFactory, repository_scope
from priceledger.services.documents.page_merge import classify_run_status, merge_parsed_invoices
from priceledger.services.reconciliation.reconciliation_service import ReconciliationEngine
from priceledger.utils.logging import get_logger
from priceledger.utils.normalize import normalize_optional_text, parse_invoice_date

LOGGER = get_logger(__name__)

FAILED_RUN_SUMMARY = "Failed to parse the PDF."


def partial_run_summary(failed_page_nos: List[int]) -> str:
    return "Failed to parse pages: " + ",".join(str(n) for n in failed_page_nos)


@dataclass
class FinalizeResult:
    status: ParseRunStatus
    document_status: DocumentStatus
    stats: ParseRunStats


class ParseRunFinalizer:
    """Replaces the run's line items and diff items and records its final status.

    Everything happens in one transaction, so the run and its document can
    never disagree about the outcome.
    """

    def __init__(
        self,
        engine: Optional[ReconciliationEngine] = None,
        scope_factory: ScopeFactory = repository_scope,
    ):
        self.engine = engine or ReconciliationEngine()
        self.scope_factory = scope_factory

    async def finalize(
        self,
        parse_run_id: uuid.UUID,
        document_id: uuid.UUID,
        page_count: int,
        processed_pages: int,
        *,
        step: Optional[StepContext] = None,
    ) -> FinalizeResult:
        async with self.scope_factory() as repos:
            document = await repos.documents.get_by_id(document_id)
            if document is None:
                raise FatalWorkflowError("PARSE_RUN_OR_DOCUMENT_NOT_FOUND")

            succeeded_pages = await repos.parse_pages.list_succeeded(parse_run_id)
            failed_page_nos = await repos.parse_pages.list_failed_page_nos(parse_run_id)

            parsed_pages = [
                ParsedInvoice.model_validate(page.parsed_json)
                for page in succeeded_pages
                if page.parsed_json
            ]
            merged = merge_parsed_invoices(parsed_pages)

            vendor_name = normalize_optional_text(merged.vendor_name) or normalize_optional_text(
                document.vendor_name
            )
            invoice_date = parse_invoice_date(merged.invoice_date)

            await repos.diff_items.delete_for_run(parse_run_id)
            await repos.line_items.delete_for_run(parse_run_id)

            drafts = [LineItemDraft.from_parsed(parse_run_id, item) for item in merged.line_items]

            run_status, document_status = classify_run_status(
                len(succeeded_pages), len(failed_page_nos)
            )

            diff_rows = []
            diff_summary = {}
            if succeeded_pages:
                result = await self.engine.reconcile(
                    repos, parse_run_id, vendor_name, invoice_date, drafts
                )
                diff_rows = result.diff_rows
                diff_summary = result.summary

            line_item_count = await repos.line_items.insert_many([d.to_row() for d in drafts])
            diff_count = await repos.diff_items.insert_many(diff_rows)

            if run_status == ParseRunStatus.FAILED:
                error_summary = FAILED_RUN_SUMMARY
            elif run_status == ParseRunStatus.PARTIAL:
                error_summary = partial_run_summary(failed_page_nos)
            else:
                error_summary = None

            stats = ParseRunStats(
                page_count=page_count,
                processed_pages=processed_pages,
                succeeded_pages=len(succeeded_pages),
                failed_pages=len(failed_page_nos),
                failed_page_nos=failed_page_nos,
                line_item_count=line_item_count,
                diff_count=diff_count,
                diff_summary=diff_summary,
            )
            await repos.parse_runs.finish_run(parse_run_id, run_status, stats, error_summary)
            await repos.documents.update_parse_outcome(
                document_id,
                document_status,
                vendor_name=vendor_name,
                invoice_date=invoice_date,
                parse_error_summary=error_summary,
            )

        LOGGER.info(
            "Finalized parse run",
            extra={
                "parse_run_id": str(parse_run_id),
                "document_id": str(document_id),
                "status": run_status.value,
                "line_item_count": line_item_count,
                "diff_count": diff_count,
                "failed_page_nos": failed_page_nos,
            },
        )
        return FinalizeResult(status=run_status, document_status=document_status, stats=stats)

"""Read side of the parse pipeline: runs, line items and diff items."""

import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.core.exceptions import ParseRunNotFoundError
from priceledger.database.models import DocumentParseRun
from priceledger.models.enums import DiffClassification
from priceledger.models.stats import ParseRunStats
from priceledger.repositories.scope import ParseRepositories
from priceledger.schemas.documents import (
    DiffItemResponse,
    DiffSummaryResponse,
    LineItemResponse,
    ParseRunResponse,
)
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentQueryService:
    """Answers read queries about parse runs.

    Every run-scoped query checks that the run belongs to the given
    document, so a run id cannot be read through another document's URL.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repos = ParseRepositories.for_session(session)

    async def get_parse_run(
        self, parse_run_id: uuid.UUID, document_id: Optional[uuid.UUID] = None
    ) -> ParseRunResponse:
        run = await self._load_run(parse_run_id, document_id)
        stats = ParseRunStats.from_json(run.stats)
        return ParseRunResponse(
            parse_run_id=run.id,
            document_id=run.document_id,
            status=run.status,
            model=run.model,
            prompt_version=run.prompt_version,
            stats=stats,
            failed_page_nos=stats.failed_page_nos,
            error_detail=run.error_detail,
            started_at=run.started_at,
            finished_at=run.finished_at,
        )

    async def list_line_items(
        self, document_id: uuid.UUID, parse_run_id: uuid.UUID
    ) -> List[LineItemResponse]:
        await self._load_run(parse_run_id, document_id)
        rows = await self.repos.line_items.list_for_run(parse_run_id)
        return [LineItemResponse.model_validate(row) for row in rows]

    async def list_diff_items(
        self,
        document_id: uuid.UUID,
        parse_run_id: uuid.UUID,
        classification: Optional[DiffClassification] = None,
    ) -> List[DiffItemResponse]:
        """Diff items ordered by classification, then line number."""
        await self._load_run(parse_run_id, document_id)
        rows = await self.repos.diff_items.list_for_run(
            parse_run_id, classification.value if classification else None
        )
        return [
            DiffItemResponse(
                diff_item_id=diff.id,
                line_item_id=diff.line_item_id,
                line_no=line.line_no,
                classification=diff.classification,
                reason=diff.reason,
                vendor_name=diff.vendor_name,
                invoice_date=diff.invoice_date,
                before=diff.before or {},
                after=diff.after or {},
            )
            for diff, line in rows
        ]

    async def diff_summary(
        self, document_id: uuid.UUID, parse_run_id: uuid.UUID
    ) -> DiffSummaryResponse:
        await self._load_run(parse_run_id, document_id)
        found = await self.repos.diff_items.summary_for_run(parse_run_id)
        counts = {c.value: int(found.get(c.value, 0)) for c in DiffClassification}
        return DiffSummaryResponse(
            parse_run_id=parse_run_id,
            total=sum(counts.values()),
            counts=counts,
        )

    async def _load_run(
        self, parse_run_id: uuid.UUID, document_id: Optional[uuid.UUID]
    ) -> DocumentParseRun:
        run = await self.repos.parse_runs.get_by_id(parse_run_id)
        if run is None or (document_id is not None and run.document_id != document_id):
            LOGGER.info(
                "Parse run not found",
                extra={"parse_run_id": str(parse_run_id), "document_id": str(document_id)},
            )
            raise ParseRunNotFoundError(f"Parse run {parse_run_id} not found")
        return run

import uuid
from typing import Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import Document, DocumentParseRun
from priceledger.models.enums import ParseRunStatus
from priceledger.models.stats import ParseRunStats
from priceledger.repositories.base_repository import BaseRepository


class ParseRunRepository(BaseRepository[DocumentParseRun]):
    """Repository for parse runs."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentParseRun)

    async def create_run(
        self, document_id: uuid.UUID, model: str, prompt_version: str
    ) -> DocumentParseRun:
        return await self.create(
            id=uuid.uuid4(),
            document_id=document_id,
            status=ParseRunStatus.RUNNING.value,
            model=model,
            prompt_version=prompt_version,
            stats=ParseRunStats().to_json(),
        )

    async def get_with_document(
        self, parse_run_id: uuid.UUID
    ) -> Optional[Tuple[DocumentParseRun, Document]]:
        """Load a parse run together with its owning document."""
        query = (
            select(DocumentParseRun, Document)
            .join(Document, Document.id == DocumentParseRun.document_id)
            .where(DocumentParseRun.id == parse_run_id)
        )
        result = await self.session.execute(query)
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def get_stats(self, parse_run_id: uuid.UUID) -> ParseRunStats:
        query = select(DocumentParseRun.stats).where(DocumentParseRun.id == parse_run_id)
        result = await self.session.execute(query)
        return ParseRunStats.from_json(result.scalar_one_or_none())

    async def update_stats(self, parse_run_id: uuid.UUID, stats: ParseRunStats) -> None:
        stmt = (
            update(DocumentParseRun)
            .where(DocumentParseRun.id == parse_run_id)
            .values(stats=stats.to_json())
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def finish_run(
        self,
        parse_run_id: uuid.UUID,
        status: ParseRunStatus,
        stats: ParseRunStats,
        error_detail: Optional[str],
    ) -> None:
        stmt = (
            update(DocumentParseRun)
            .where(DocumentParseRun.id == parse_run_id)
            .values(
                status=status.value,
                stats=stats.to_json(),
                error_detail=error_detail,
                finished_at=func.now(),
            )
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def mark_failed(self, parse_run_id: uuid.UUID, error_detail: str) -> None:
        stmt = (
            update(DocumentParseRun)
            .where(DocumentParseRun.id == parse_run_id)
            .values(
                status=ParseRunStatus.FAILED.value,
                error_detail=error_detail,
                finished_at=func.now(),
            )
        )
        await self.session.execute(stmt)
        await self.session.flush()

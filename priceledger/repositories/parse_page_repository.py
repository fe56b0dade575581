import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import DocumentParsePage
from priceledger.models.enums import ParsePageStatus
from priceledger.repositories.base_repository import BaseRepository

ERROR_SUMMARY_MAX_LENGTH = 500


class ParsePageRepository(BaseRepository[DocumentParsePage]):
    """Per-page parse records keyed by (parse_run_id, page_no)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentParsePage)

    async def get_status(self, parse_run_id: uuid.UUID, page_no: int) -> Optional[str]:
        query = (
            select(DocumentParsePage.status)
            .where(
                DocumentParsePage.parse_run_id == parse_run_id,
                DocumentParsePage.page_no == page_no,
            )
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert_page(
        self,
        parse_run_id: uuid.UUID,
        page_no: int,
        status: ParsePageStatus,
        parsed_json: Optional[dict] = None,
        error_summary: Optional[str] = None,
        step_id: Optional[str] = None,
        attempt: Optional[int] = None,
        mark_started: bool = False,
        mark_finished: bool = False,
    ) -> None:
        """Write the page's current state.

        A missing ``parsed_json`` keeps the stored payload, and the start and
        finish timestamps are only ever set, never cleared.
        """
        if status == ParsePageStatus.SKIPPED:
            raise ValueError("SKIPPED is a step result and is never persisted")

        if error_summary is not None:
            error_summary = error_summary[:ERROR_SUMMARY_MAX_LENGTH]

        stmt = insert(DocumentParsePage).values(
            id=uuid.uuid4(),
            parse_run_id=parse_run_id,
            page_no=page_no,
            status=status.value,
            parsed_json=parsed_json,
            error_summary=error_summary,
            step_id=step_id,
            attempt=attempt,
            started_at=func.now() if mark_started else None,
            finished_at=func.now() if mark_finished else None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentParsePage.parse_run_id, DocumentParsePage.page_no],
            set_={
                "status": stmt.excluded.status,
                "parsed_json": func.coalesce(stmt.excluded.parsed_json, DocumentParsePage.parsed_json),
                "error_summary": stmt.excluded.error_summary,
                "step_id": stmt.excluded.step_id,
                "attempt": stmt.excluded.attempt,
                "started_at": func.coalesce(stmt.excluded.started_at, DocumentParsePage.started_at),
                "finished_at": func.coalesce(stmt.excluded.finished_at, DocumentParsePage.finished_at),
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def list_succeeded(self, parse_run_id: uuid.UUID) -> List[DocumentParsePage]:
        """Succeeded pages of a run, ascending by page number."""
        query = (
            select(DocumentParsePage)
            .where(
                DocumentParsePage.parse_run_id == parse_run_id,
                DocumentParsePage.status == ParsePageStatus.SUCCEEDED.value,
            )
            .order_by(DocumentParsePage.page_no.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_failed_page_nos(self, parse_run_id: uuid.UUID) -> List[int]:
        query = (
            select(DocumentParsePage.page_no)
            .where(
                DocumentParsePage.parse_run_id == parse_run_id,
                DocumentParsePage.status == ParsePageStatus.FAILED.value,
            )
            .order_by(DocumentParsePage.page_no.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

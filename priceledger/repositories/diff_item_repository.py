import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import DocumentDiffItem, DocumentLineItem
from priceledger.repositories.base_repository import BaseRepository


class DiffItemRepository(BaseRepository[DocumentDiffItem]):
    """Diff items of a parse run. Rows are never updated, only replaced as a set."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentDiffItem)

    async def delete_for_run(self, parse_run_id: uuid.UUID) -> None:
        stmt = delete(DocumentDiffItem).where(DocumentDiffItem.parse_run_id == parse_run_id)
        await self.session.execute(stmt)
        await self.session.flush()

    async def insert_many(self, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        await self.session.execute(insert(DocumentDiffItem), rows)
        await self.session.flush()
        return len(rows)

    async def list_for_run(
        self, parse_run_id: uuid.UUID, classification: Optional[str] = None
    ) -> List[Tuple[DocumentDiffItem, DocumentLineItem]]:
        """Diff items joined to their line items, by classification then line number."""
        query = (
            select(DocumentDiffItem, DocumentLineItem)
            .join(DocumentLineItem, DocumentLineItem.id == DocumentDiffItem.line_item_id)
            .where(DocumentDiffItem.parse_run_id == parse_run_id)
        )
        if classification:
            query = query.where(DocumentDiffItem.classification == classification)
        query = query.order_by(
            DocumentDiffItem.classification.asc(), DocumentLineItem.line_no.asc()
        )
        result = await self.session.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    async def summary_for_run(self, parse_run_id: uuid.UUID) -> Dict[str, int]:
        """Count diff items per classification."""
        query = (
            select(DocumentDiffItem.classification, func.count())
            .where(DocumentDiffItem.parse_run_id == parse_run_id)
            .group_by(DocumentDiffItem.classification)
        )
        result = await self.session.execute(query)
        return {classification: count for classification, count in result.all()}

import uuid
from typing import Any, Dict, List

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import DocumentLineItem
from priceledger.repositories.base_repository import BaseRepository


class LineItemRepository(BaseRepository[DocumentLineItem]):
    """Line items of a parse run. The set is replaced wholesale on finalize."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentLineItem)

    async def delete_for_run(self, parse_run_id: uuid.UUID) -> None:
        stmt = delete(DocumentLineItem).where(DocumentLineItem.parse_run_id == parse_run_id)
        await self.session.execute(stmt)
        await self.session.flush()

    async def insert_many(self, rows: List[Dict[str, Any]]) -> int:
        """Bulk insert line items given as attribute dicts with pre-assigned ids."""
        if not rows:
            return 0
        await self.session.execute(insert(DocumentLineItem), rows)
        await self.session.flush()
        return len(rows)

    async def list_for_run(self, parse_run_id: uuid.UUID) -> List[DocumentLineItem]:
        query = (
            select(DocumentLineItem)
            .where(DocumentLineItem.parse_run_id == parse_run_id)
            .order_by(DocumentLineItem.line_no.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

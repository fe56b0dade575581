import uuid
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import UpdateHistory
from priceledger.models.enums import SOURCE_TYPE_PDF
from priceledger.repositories.base_repository import BaseRepository


def make_update_key(parse_run_id: uuid.UUID, product_id: uuid.UUID, field_name: str) -> str:
    return f"{parse_run_id}:{product_id}:{field_name}"


class UpdateHistoryRepository(BaseRepository[UpdateHistory]):
    """Append-only audit log. Inserts are idempotent on ``update_key``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UpdateHistory)

    async def list_for_run(self, parse_run_id: uuid.UUID) -> List[UpdateHistory]:
        query = select(UpdateHistory).where(
            UpdateHistory.source_type == SOURCE_TYPE_PDF,
            UpdateHistory.source_id == str(parse_run_id),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def insert_many(self, rows: List[Dict[str, Any]]) -> None:
        """Insert history rows, skipping any whose update_key already exists."""
        if not rows:
            return
        values = [{"id": uuid.uuid4(), **row} for row in rows]
        stmt = insert(UpdateHistory).values(values).on_conflict_do_nothing(
            index_elements=[UpdateHistory.update_key]
        )
        await self.session.execute(stmt)
        await self.session.flush()

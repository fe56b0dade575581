import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import DocumentPageAsset
from priceledger.repositories.base_repository import BaseRepository


class PageAssetRepository(BaseRepository[DocumentPageAsset]):
    """Mapping of (document_id, page_no) to the stored single-page PDF."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentPageAsset)

    async def upsert_page_asset(
        self,
        document_id: uuid.UUID,
        page_no: int,
        storage_key: str,
        page_hash: str,
        byte_size: int,
        mime_type: str,
    ) -> None:
        """Insert the page asset, replacing any existing row for the same page."""
        stmt = insert(DocumentPageAsset).values(
            id=uuid.uuid4(),
            document_id=document_id,
            page_no=page_no,
            storage_key=storage_key,
            page_hash=page_hash,
            byte_size=byte_size,
            mime_type=mime_type,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentPageAsset.document_id, DocumentPageAsset.page_no],
            set_={
                "storage_key": stmt.excluded.storage_key,
                "page_hash": stmt.excluded.page_hash,
                "byte_size": stmt.excluded.byte_size,
                "mime_type": stmt.excluded.mime_type,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get_page_asset(
        self, document_id: uuid.UUID, page_no: int
    ) -> Optional[DocumentPageAsset]:
        query = select(DocumentPageAsset).where(
            DocumentPageAsset.document_id == document_id,
            DocumentPageAsset.page_no == page_no,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_page_assets(self, document_id: uuid.UUID) -> List[DocumentPageAsset]:
        query = (
            select(DocumentPageAsset)
            .where(DocumentPageAsset.document_id == document_id)
            .order_by(DocumentPageAsset.page_no.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

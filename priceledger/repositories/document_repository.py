import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import Document
from priceledger.models.enums import DocumentStatus
from priceledger.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[Document]):
    """Repository for documents. Status writes never touch soft-deleted rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def get_for_update(self, document_id: uuid.UUID) -> Optional[Document]:
        """Load a document with a row lock, for the start-of-run status gate."""
        query = select(Document).where(Document.id == document_id).with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def mark_parsing(self, document_id: uuid.UUID) -> None:
        stmt = (
            update(Document)
            .where(Document.id == document_id, Document.is_deleted.is_(False))
            .values(status=DocumentStatus.PARSING.value, parse_error_summary=None)
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def update_parse_outcome(
        self,
        document_id: uuid.UUID,
        status: DocumentStatus,
        vendor_name: Optional[str],
        invoice_date: Optional[date],
        parse_error_summary: Optional[str],
    ) -> None:
        """Write the finalized parse outcome onto the document."""
        stmt = (
            update(Document)
            .where(Document.id == document_id, Document.is_deleted.is_(False))
            .values(
                status=status.value,
                vendor_name=vendor_name,
                invoice_date=invoice_date,
                parse_error_summary=parse_error_summary,
            )
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def mark_failed(self, document_id: uuid.UUID, summary: str) -> None:
        stmt = (
            update(Document)
            .where(Document.id == document_id, Document.is_deleted.is_(False))
            .values(status=DocumentStatus.FAILED.value, parse_error_summary=summary)
        )
        await self.session.execute(stmt)
        await self.session.flush()

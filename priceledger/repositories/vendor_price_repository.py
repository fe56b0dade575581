import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import VendorPrice
from priceledger.models.enums import SOURCE_TYPE_PDF
from priceledger.repositories.base_repository import BaseRepository


class VendorPriceRepository(BaseRepository[VendorPrice]):
    """Per-(product, vendor) price points."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, VendorPrice)

    async def get_for_products(
        self, product_ids: Iterable[uuid.UUID], vendor_name: str
    ) -> Dict[uuid.UUID, VendorPrice]:
        ids = list({pid for pid in product_ids if pid})
        if not ids or not vendor_name:
            return {}
        query = select(VendorPrice).where(
            VendorPrice.product_id.in_(ids),
            VendorPrice.vendor_name == vendor_name,
        )
        result = await self.session.execute(query)
        return {price.product_id: price for price in result.scalars().all()}

    async def upsert_price(
        self,
        product_id: uuid.UUID,
        vendor_name: str,
        unit_price: Decimal,
        price_updated_on: Optional[date],
        source_id: str,
    ) -> bool:
        """Insert or update the vendor price, never overwriting a newer or equal date.

        Returns:
            True if a row was written.
        """
        stmt = insert(VendorPrice).values(
            id=uuid.uuid4(),
            product_id=product_id,
            vendor_name=vendor_name,
            unit_price=unit_price,
            price_updated_on=price_updated_on,
            source_type=SOURCE_TYPE_PDF,
            source_id=source_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[VendorPrice.product_id, VendorPrice.vendor_name],
            set_={
                "unit_price": stmt.excluded.unit_price,
                "price_updated_on": stmt.excluded.price_updated_on,
                "source_type": stmt.excluded.source_type,
                "source_id": stmt.excluded.source_id,
                "updated_at": func.now(),
            },
            where=or_(
                VendorPrice.price_updated_on.is_(None),
                stmt.excluded.price_updated_on > VendorPrice.price_updated_on,
            ),
        ).returning(VendorPrice.id)
        result = await self.session.execute(stmt)
        written = result.scalar_one_or_none() is not None
        await self.session.flush()
        return written

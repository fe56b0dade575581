import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.database.models import ProductMaster
from priceledger.models.enums import SOURCE_TYPE_PDF
from priceledger.repositories.base_repository import BaseRepository


class ProductRepository(BaseRepository[ProductMaster]):
    """Repository for the product master."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProductMaster)

    async def get_by_keys(self, product_keys: Iterable[str]) -> Dict[str, ProductMaster]:
        """Bulk fetch products by product key.

        Returns:
            Dict mapping product_key to product.
        """
        keys = sorted({key for key in product_keys if key})
        if not keys:
            return {}
        query = select(ProductMaster).where(ProductMaster.product_key.in_(keys))
        result = await self.session.execute(query)
        return {product.product_key: product for product in result.scalars().all()}

    async def create_if_absent(
        self,
        product_key: str,
        product_name: str,
        spec: Optional[str],
        category: Optional[str],
        default_unit_price: Optional[Decimal],
        quality_flag: str,
        source_id: str,
    ) -> uuid.UUID:
        """Create a product unless its key already exists; return the product id either way."""
        stmt = (
            insert(ProductMaster)
            .values(
                id=uuid.uuid4(),
                product_key=product_key,
                product_name=product_name,
                spec=spec,
                category=category,
                default_unit_price=default_unit_price,
                quality_flag=quality_flag,
                last_source_type=SOURCE_TYPE_PDF,
                last_source_id=source_id,
            )
            .on_conflict_do_nothing(index_elements=[ProductMaster.product_key])
            .returning(ProductMaster.id)
        )
        result = await self.session.execute(stmt)
        product_id = result.scalar_one_or_none()
        if product_id is None:
            existing = await self.session.execute(
                select(ProductMaster.id).where(ProductMaster.product_key == product_key)
            )
            product_id = existing.scalar_one()
        await self.session.flush()
        return product_id

    async def update_fields(
        self, product_id: uuid.UUID, source_id: str, **fields: Any
    ) -> None:
        """Update product fields and stamp the last-updated metadata."""
        if not fields:
            return
        stmt = (
            update(ProductMaster)
            .where(ProductMaster.id == product_id)
            .values(
                **fields,
                last_updated_at=func.now(),
                last_source_type=SOURCE_TYPE_PDF,
                last_source_id=source_id,
            )
        )
        await self.session.execute(stmt)
        await self.session.flush()

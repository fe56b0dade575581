"""Unit-of-work scope for the parse pipeline.

``repository_scope`` opens a session, begins a transaction and yields every
repository the pipeline needs bound to that session. The transaction commits
when the block exits normally and rolls back when it raises.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from priceledger.core.database import get_session_maker
from priceledger.repositories.diff_item_repository import DiffItemRepository
from priceledger.repositories.document_repository import DocumentRepository
from priceledger.repositories.line_item_repository import LineItemRepository
from priceledger.repositories.page_asset_repository import PageAssetRepository
from priceledger.repositories.parse_page_repository import ParsePageRepository
from priceledger.repositories.parse_run_repository import ParseRunRepository
from priceledger.repositories.product_repository import ProductRepository
from priceledger.repositories.update_history_repository import UpdateHistoryRepository
from priceledger.repositories.vendor_price_repository import VendorPriceRepository


@dataclass
class ParseRepositories:
    documents: DocumentRepository
    parse_runs: ParseRunRepository
    page_assets: PageAssetRepository
    parse_pages: ParsePageRepository
    line_items: LineItemRepository
    diff_items: DiffItemRepository
    products: ProductRepository
    vendor_prices: VendorPriceRepository
    history: UpdateHistoryRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "ParseRepositories":
        return cls(
            documents=DocumentRepository(session),
            parse_runs=ParseRunRepository(session),
            page_assets=PageAssetRepository(session),
            parse_pages=ParsePageRepository(session),
            line_items=LineItemRepository(session),
            diff_items=DiffItemRepository(session),
            products=ProductRepository(session),
            vendor_prices=VendorPriceRepository(session),
            history=UpdateHistoryRepository(session),
        )


# A zero-argument callable returning an async context manager that yields
# a ParseRepositories bundle inside one transaction.
ScopeFactory = Callable[[], AsyncContextManager[ParseRepositories]]


@asynccontextmanager
async def repository_scope(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[ParseRepositories]:
    maker = session_maker or get_session_maker()
    async with maker() as session:
        async with session.begin():
            yield ParseRepositories.for_session(session)

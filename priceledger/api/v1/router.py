from fastapi import APIRouter

from priceledger.api.v1.endpoints import documents

# Create API router
api_router = APIRouter()

api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])

__all__ = ["api_router"]

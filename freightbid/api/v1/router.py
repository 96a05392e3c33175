from fastapi import APIRouter

from freightbid.api.v1.endpoints import (
    quotes,
    auctions,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(quotes.router)
api_router.include_router(auctions.router)

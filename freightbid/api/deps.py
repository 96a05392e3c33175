from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from freightbid.core.reference_data import ReferenceData, get_reference_data
from freightbid.database import get_db
from freightbid.services.auction_service import AuctionService
from freightbid.services.distance_service import DistanceResolver
from freightbid.services.quote_service import QuoteService


# Type aliases for dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]


def get_reference() -> ReferenceData:
    """Process-wide pincode tables, loaded at startup."""
    return get_reference_data()


Reference = Annotated[ReferenceData, Depends(get_reference)]


def get_distance_resolver(reference: Reference) -> DistanceResolver:
    return DistanceResolver(reference.geocoder)


async def get_quote_service(
    db: DB,
    reference: Reference,
    distance_resolver: Annotated[DistanceResolver, Depends(get_distance_resolver)],
) -> QuoteService:
    return QuoteService(db, reference_data=reference, distance_resolver=distance_resolver)


async def get_auction_service(
    db: DB,
    quote_service: Annotated[QuoteService, Depends(get_quote_service)],
) -> AuctionService:
    return AuctionService(db, quote_service=quote_service)


Quotes = Annotated[QuoteService, Depends(get_quote_service)]
Auctions = Annotated[AuctionService, Depends(get_auction_service)]

"""
Auction API Endpoints.

Covers:
1. Auction creation (seeded from the lowest committed quote)
2. Bidding
3. Bidder visibility and auction details
4. A customer's auctions
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Query, status

from freightbid.api.deps import Auctions
from freightbid.schemas.auction import (
    AuctionCreate,
    AuctionDetail,
    AuctionSnapshot,
    BidCreate,
    VisibleAuctions,
)

router = APIRouter(prefix="/auctions", tags=["Auctions"])


@router.post(
    "",
    response_model=AuctionSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Create an auction",
)
async def create_auction(request: AuctionCreate, service: Auctions):
    """End time (and pickup date, when given) must be at least two days out."""
    return await service.create_auction(request)


@router.get(
    "/visible",
    response_model=VisibleAuctions,
    summary="Auctions a bidder can see",
)
async def list_visible_auctions(
    service: Auctions,
    bidder_id: UUID = Query(..., description="Transporter id of the bidder"),
    include_closed: bool = Query(False),
):
    return await service.list_visible_auctions(bidder_id, include_closed=include_closed)


@router.get(
    "/customer/{customer_id}",
    response_model=List[AuctionSnapshot],
    summary="Auctions created by a customer",
)
async def list_customer_auctions(customer_id: UUID, service: Auctions):
    return await service.list_customer_auctions(customer_id)


@router.get(
    "/{auction_id}",
    response_model=AuctionDetail,
    summary="Auction details with bid history",
)
async def get_auction(auction_id: UUID, service: Auctions):
    return await service.get_auction_details(auction_id)


@router.post(
    "/{auction_id}/bids",
    response_model=AuctionSnapshot,
    summary="Place a bid",
)
async def place_bid(auction_id: UUID, bid: BidCreate, service: Auctions):
    """A bid must be strictly lower than the current lowest; at most three per bidder."""
    return await service.place_bid(auction_id, bid.bidder_id, bid.amount)

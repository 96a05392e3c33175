"""Pydantic schemas for reverse auctions."""
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import AliasChoices, BaseModel, Field, PlainSerializer, field_validator

from freightbid.models.auction import AuctionStatus, AuctionType
from freightbid.schemas.base import BaseCreateSchema, BaseResponseSchema
from freightbid.schemas.quote import ShipmentRequest


DecimalAsFloat = Annotated[Decimal, PlainSerializer(lambda x: float(x), return_type=float)]

# Names used by the older bidding client
LEGACY_AUCTION_TYPES = {
    "limited": AuctionType.RESTRICTED.value,
    "semi-limited": AuctionType.RATED_RESTRICTED.value,
    "open": AuctionType.OPEN.value,
}


# ============================================
# REQUEST SCHEMAS
# ============================================

class AuctionCreate(BaseCreateSchema):
    """Create an auction for a shipment."""
    customer_id: uuid.UUID = Field(
        ..., validation_alias=AliasChoices("customer_id", "customerID", "customerId")
    )
    auction_type: AuctionType = Field(
        ..., validation_alias=AliasChoices("auction_type", "biddingType", "type")
    )
    shipment: ShipmentRequest
    end_time: datetime = Field(
        ..., validation_alias=AliasChoices("end_time", "endTime", "bidEndTime")
    )
    pickup_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("pickup_date", "pickupDate")
    )
    pickup_time: Optional[str] = Field(
        default=None, max_length=20,
        validation_alias=AliasChoices("pickup_time", "pickupTime"),
    )
    # RATED_RESTRICTED only; ignored for the other types
    bidder_ids: Optional[List[uuid.UUID]] = Field(
        default=None, validation_alias=AliasChoices("bidder_ids", "bidders")
    )
    min_rating: Optional[float] = Field(
        default=None, ge=0, le=5,
        validation_alias=AliasChoices("min_rating", "minRating"),
    )

    @field_validator("auction_type", mode="before")
    @classmethod
    def map_legacy_type(cls, v):
        if isinstance(v, str):
            key = v.strip().lower().replace("_", "-")
            return LEGACY_AUCTION_TYPES.get(key, v.strip().upper())
        return v


class BidCreate(BaseCreateSchema):
    """Place a bid."""
    bidder_id: uuid.UUID = Field(
        ..., validation_alias=AliasChoices("bidder_id", "bidderId", "transporterId")
    )
    amount: float = Field(..., gt=0, allow_inf_nan=False)


# ============================================
# RESPONSE SCHEMAS
# ============================================

class ParticipantInfo(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None


class BidEntry(BaseResponseSchema):
    bidder_id: uuid.UUID
    bidder_name: Optional[str] = None
    amount: DecimalAsFloat
    placed_at: datetime


class AuctionSnapshot(BaseResponseSchema):
    """State of an auction after a create or an accepted bid."""
    id: uuid.UUID
    customer_id: uuid.UUID
    auction_type: AuctionType
    status: AuctionStatus
    origin_pincode: str
    destination_pincode: str
    starting_amount: DecimalAsFloat
    current_lowest: DecimalAsFloat
    end_time: datetime
    pickup_date: Optional[date] = None
    pickup_time: Optional[str] = None
    participant_ids: List[uuid.UUID] = Field(default_factory=list)
    bid_count: int = 0
    version: int = 0


class AuctionDetail(AuctionSnapshot):
    """Full auction view including the shipment and bid history."""
    customer_name: Optional[str] = None
    shipment: dict = Field(default_factory=dict)
    eligible_bidder_ids: List[uuid.UUID] = Field(default_factory=list)
    min_rating: Optional[float] = None
    bids: List[BidEntry] = Field(default_factory=list)
    participants: List[ParticipantInfo] = Field(default_factory=list)


class VisibleAuctions(BaseModel):
    """Auctions a bidder can see, grouped by type."""
    open: List[AuctionSnapshot] = Field(default_factory=list)
    restricted: List[AuctionSnapshot] = Field(default_factory=list)
    rated_restricted: List[AuctionSnapshot] = Field(default_factory=list)

"""Reverse auction models."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    String, DateTime, Date, ForeignKey, Integer, Float, Numeric, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freightbid.database import Base
from freightbid.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from freightbid.models.customer import Customer
    from freightbid.models.transporter import Transporter


class AuctionType(str, Enum):
    """Who may see and bid on an auction."""
    RESTRICTED = "RESTRICTED"                # Customer's related vendors only
    RATED_RESTRICTED = "RATED_RESTRICTED"    # Explicit list and/or minimum rating
    OPEN = "OPEN"                            # Every vendor


class AuctionStatus(str, Enum):
    """Derived from end_time at read time, never stored."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Auction(Base):
    """
    Reverse auction for one shipment.
    `current_lowest` only ever decreases; `version` is bumped on every
    accepted bid and used for compare-and-swap updates.
    """
    __tablename__ = "auctions"
    __table_args__ = (
        Index("idx_auction_type_end", "auction_type", "end_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    auction_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="RESTRICTED, RATED_RESTRICTED, OPEN"
    )

    # Shipment snapshot
    origin_pincode: Mapped[str] = mapped_column(String(6), nullable=False)
    destination_pincode: Mapped[str] = mapped_column(String(6), nullable=False)
    shipment: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="Shipment request as submitted"
    )

    # Eligibility
    eligible_bidder_ids: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Transporter ids allowed to bid (RESTRICTED / RATED_RESTRICTED)"
    )
    min_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Schedule
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    pickup_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    pickup_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Pricing
    starting_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    current_lowest: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    seed_vendor_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    participant_ids: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer")
    bids: Mapped[List["AuctionBid"]] = relationship(
        "AuctionBid",
        back_populates="auction",
        cascade="all, delete-orphan",
        order_by="AuctionBid.sequence"
    )

    def __repr__(self) -> str:
        return f"<Auction(id='{self.id}', type='{self.auction_type}', lowest={self.current_lowest})>"


class AuctionBid(Base):
    """One accepted bid. Rows are append-only."""
    __tablename__ = "auction_bids"
    __table_args__ = (
        Index("idx_auction_bid_bidder", "auction_id", "bidder_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    auction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("auctions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    bidder_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("transporters.id", ondelete="CASCADE"),
        nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Auction version at which this bid was accepted"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    auction: Mapped["Auction"] = relationship("Auction", back_populates="bids")
    bidder: Mapped["Transporter"] = relationship("Transporter")

    def __repr__(self) -> str:
        return f"<AuctionBid(bidder='{self.bidder_id}', amount={self.amount})>"

"""Public vendor (transporter) models."""
import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freightbid.database import Base
from freightbid.db_types import JSONType, UUIDType


class Transporter(Base):
    """
    Public freight vendor.
    Quotes for any customer whose shipment falls inside its service area, and
    bids in auctions.
    """
    __tablename__ = "transporters"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique transporter code e.g., SAFEXP, VRL"
    )
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Used by RATED_RESTRICTED auctions
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Serviceability
    service_area: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="List of {pincode, zone, is_oda}"
    )
    servicable_zones: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Zone codes this vendor prices; empty means unrestricted"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

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
    prices: Mapped[List["TransporterPrice"]] = relationship(
        "TransporterPrice",
        back_populates="transporter",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Transporter(code='{self.code}', name='{self.company_name}')>"


class TransporterPrice(Base):
    """
    Shared price document for a public vendor.
    Same shape as a customer rate card: charge settings + zone price chart.
    """
    __tablename__ = "transporter_prices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    transporter_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("transporters.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )

    price_rate: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Charge settings (fuel, docket, rov, oda, divisor...)"
    )
    zone_rates: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Zone pair unit price chart, any supported shape"
    )
    invoice_value_charges: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    invoice_rule: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

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

    transporter: Mapped["Transporter"] = relationship(
        "Transporter",
        back_populates="prices"
    )

    def __repr__(self) -> str:
        return f"<TransporterPrice(transporter_id='{self.transporter_id}')>"

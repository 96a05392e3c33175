"""Customer rate cards and per-vendor zone mappings."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freightbid.database import Base
from freightbid.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from freightbid.models.customer import Customer


# ============================================
# ENUMS
# ============================================

class RateCardPool(str, Enum):
    """Which quote pool a customer rate card belongs to."""
    TIED_UP = "TIED_UP"        # Negotiated, long-term vendor
    TEMPORARY = "TEMPORARY"    # Short-term / trial vendor price


class ZoneMappingSource(str, Enum):
    """How a vendor zone mapping row was created."""
    MANUAL = "MANUAL"
    UPLOAD = "UPLOAD"
    API = "API"


# ============================================
# RATE CARDS
# ============================================

class CustomerRateCard(Base):
    """
    Customer-private vendor rate card.
    Holds the zone price chart, charge settings, optional vendor zone map and
    optional invoice-value addon configuration.
    """
    __tablename__ = "customer_rate_cards"
    __table_args__ = (
        Index("idx_rate_card_customer_pool", "customer_id", "pool"),
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

    # Vendor identification
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    vendor_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vendor_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    vendor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    pool: Mapped[str] = mapped_column(
        String(20),
        default=RateCardPool.TIED_UP.value,
        nullable=False,
        comment="TIED_UP, TEMPORARY"
    )
    mode: Mapped[str] = mapped_column(String(20), default="Road", nullable=False)

    # Pricing
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
    zone_config: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Vendor static zone map: zone -> [pincodes]"
    )
    selected_zones: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Zone restriction list; empty means unrestricted"
    )
    invoice_value_charges: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="{enabled, percentage, minimumAmount}"
    )
    invoice_rule: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="General invoice addon rule"
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

    customer: Mapped["Customer"] = relationship("Customer")

    def __repr__(self) -> str:
        return f"<CustomerRateCard(vendor='{self.vendor_name}', pool='{self.pool}')>"


# ============================================
# ZONE MAPPINGS
# ============================================

class VendorZoneMapping(Base):
    """
    Per-vendor pincode to zone mapping.
    Second tier of zone resolution after the rate card's static zone map.
    """
    __tablename__ = "vendor_zone_mappings"
    __table_args__ = (
        UniqueConstraint(
            "vendor_id", "pincode",
            name="uq_vendor_zone_mapping"
        ),
        Index("idx_vendor_zone_mapping_pincode", "pincode"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        nullable=False,
        index=True,
        comment="Rate card or transporter id"
    )
    pincode: Mapped[str] = mapped_column(String(6), nullable=False)
    zone: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Upper-case zone code"
    )
    is_oda: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Out of Delivery Area flag"
    )
    source: Mapped[str] = mapped_column(
        String(20),
        default=ZoneMappingSource.MANUAL.value,
        nullable=False,
        comment="MANUAL, UPLOAD, API"
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

    def __repr__(self) -> str:
        return f"<VendorZoneMapping({self.vendor_id}: {self.pincode} = Zone {self.zone})>"

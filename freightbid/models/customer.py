"""Customer models for quote entitlement and vendor relationships."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freightbid.database import Base
from freightbid.db_types import UUIDType

if TYPE_CHECKING:
    from freightbid.models.transporter import Transporter


class Customer(Base):
    """
    Shipper requesting quotes and creating auctions.
    `is_subscribed` controls whether public vendor quotes are shown in full.
    """
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Basic Info
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Entitlement
    is_subscribed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Subscribed customers see public vendor quotes unmasked"
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
    transporter_links: Mapped[List["CustomerTransporterRelationship"]] = relationship(
        "CustomerTransporterRelationship",
        back_populates="customer",
        cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name

    @property
    def display_name(self) -> str:
        return self.company_name or self.full_name

    def __repr__(self) -> str:
        return f"<Customer(name='{self.display_name}', subscribed={self.is_subscribed})>"


class CustomerTransporterRelationship(Base):
    """
    Vendors a customer works with directly.
    This is the eligible bidder list for RESTRICTED auctions.
    """
    __tablename__ = "customer_transporter_relationships"
    __table_args__ = (
        UniqueConstraint(
            "customer_id", "transporter_id",
            name="uq_customer_transporter"
        ),
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
    transporter_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("transporters.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    customer: Mapped["Customer"] = relationship(
        "Customer",
        back_populates="transporter_links"
    )
    transporter: Mapped["Transporter"] = relationship("Transporter")

    def __repr__(self) -> str:
        return f"<CustomerTransporterRelationship({self.customer_id} -> {self.transporter_id})>"

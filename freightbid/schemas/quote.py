"""Pydantic schemas for shipment quote requests."""
import math
import uuid
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator

from freightbid.config import settings
from freightbid.schemas.base import BaseCreateSchema


class PackageLine(BaseCreateSchema):
    """One line of identical boxes."""
    length: float = Field(default=0, ge=0, allow_inf_nan=False)
    width: float = Field(default=0, ge=0, allow_inf_nan=False)
    height: float = Field(default=0, ge=0, allow_inf_nan=False)
    weight: float = Field(default=0, ge=0, allow_inf_nan=False)
    count: int = Field(default=1, ge=0)


class ShipmentRequest(BaseCreateSchema):
    """
    Quote request.

    Either `packages` (a list of box lines) or the legacy single-box form
    (`no_of_boxes`, `length`, `width`, `height`, `weight`) must be given.
    """
    customer_id: uuid.UUID = Field(
        ..., validation_alias=AliasChoices("customer_id", "customerID", "customerId")
    )
    origin_pincode: str = Field(
        ..., min_length=1, max_length=10,
        validation_alias=AliasChoices("origin_pincode", "fromPincode"),
    )
    destination_pincode: str = Field(
        ..., min_length=1, max_length=10,
        validation_alias=AliasChoices("destination_pincode", "toPincode"),
    )
    mode: str = Field(
        default="Road",
        validation_alias=AliasChoices("mode", "modeoftransport"),
    )

    packages: Optional[List[PackageLine]] = Field(
        default=None,
        validation_alias=AliasChoices("packages", "shipment_details"),
    )

    # Legacy single-box form
    no_of_boxes: Optional[int] = Field(
        default=None, ge=0,
        validation_alias=AliasChoices("no_of_boxes", "noofboxes"),
    )
    length: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    width: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    height: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    weight: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)

    invoice_value: float = Field(
        ..., validation_alias=AliasChoices("invoice_value", "invoiceValue"),
    )

    @field_validator("origin_pincode", "destination_pincode", mode="before")
    @classmethod
    def stringify_pincode(cls, v):
        if isinstance(v, int):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_shipment(self) -> "ShipmentRequest":
        if not math.isfinite(self.invoice_value) or not (
            settings.INVOICE_VALUE_MIN <= self.invoice_value <= settings.INVOICE_VALUE_MAX
        ):
            raise ValueError(
                f"invoice_value must be a number between {settings.INVOICE_VALUE_MIN:g} "
                f"and {settings.INVOICE_VALUE_MAX:g}"
            )
        if not self.has_packages and not self.has_legacy_box:
            raise ValueError(
                "Provide packages or the legacy no_of_boxes/length/width/height/weight fields"
            )
        return self

    @property
    def has_packages(self) -> bool:
        return bool(self.packages)

    @property
    def has_legacy_box(self) -> bool:
        return all(
            value is not None
            for value in (self.no_of_boxes, self.length, self.width, self.height, self.weight)
        )

    def snapshot(self) -> dict:
        """JSON-safe copy stored on auctions."""
        return self.model_dump(mode="json", exclude_none=True)

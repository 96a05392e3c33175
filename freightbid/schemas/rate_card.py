"""Pydantic schemas for vendor rate card charge settings and zone mappings."""
from typing import Optional
import re

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

PINCODE_PATTERN = r"^[1-9]\d{5}$"
PINCODE_RE = re.compile(PINCODE_PATTERN)


def _zero_if_blank(v):
    if v is None or v == "":
        return 0
    return v


class ChargeRule(BaseModel):
    """A charge with a percentage part and a fixed part."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    variable: float = 0
    fixed: float = 0
    threshold_weight: float = Field(
        default=0,
        validation_alias=AliasChoices("threshold_weight", "threshholdweight", "thresholdWeight"),
    )

    @field_validator("variable", "fixed", "threshold_weight", mode="before")
    @classmethod
    def blank_to_zero(cls, v):
        return _zero_if_blank(v)


def _charge_field(*aliases: str):
    return Field(default_factory=ChargeRule, validation_alias=AliasChoices(*aliases))


class PriceRate(BaseModel):
    """
    Charge settings of a rate card.

    Accepts the camelCase keys stored by the vendor onboarding tools as well
    as snake_case. Missing numbers are 0; missing charge rules are all-zero.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    min_weight: float = Field(default=0, validation_alias=AliasChoices("min_weight", "minWeight"))
    docket_charges: float = Field(default=0, validation_alias=AliasChoices("docket_charges", "docketCharges"))
    fuel: float = Field(default=0, validation_alias=AliasChoices("fuel", "fuelCharges"))
    min_charges: float = Field(default=0, validation_alias=AliasChoices("min_charges", "minCharges"))
    green_tax: float = Field(default=0, validation_alias=AliasChoices("green_tax", "greenTax"))
    dacc_charges: float = Field(default=0, validation_alias=AliasChoices("dacc_charges", "daccCharges"))
    misc_charges: float = Field(
        default=0,
        validation_alias=AliasChoices(
            "misc_charges", "miscellanousCharges", "miscellaneousCharges", "miscCharges"
        ),
    )

    rov_charges: ChargeRule = _charge_field("rov_charges", "rovCharges")
    insurance_charges: ChargeRule = _charge_field(
        "insurance_charges", "insuaranceCharges", "insuranceCharges"
    )
    oda_charges: ChargeRule = _charge_field("oda_charges", "odaCharges")
    handling_charges: ChargeRule = _charge_field("handling_charges", "handlingCharges")
    fm_charges: ChargeRule = _charge_field("fm_charges", "fmCharges")
    appointment_charges: ChargeRule = _charge_field("appointment_charges", "appointmentCharges")

    # Volumetric divisor; k_factor wins over divisor when both are set
    divisor: Optional[float] = None
    k_factor: Optional[float] = Field(default=None, validation_alias=AliasChoices("k_factor", "kFactor"))

    @field_validator(
        "min_weight", "docket_charges", "fuel", "min_charges",
        "green_tax", "dacc_charges", "misc_charges",
        mode="before",
    )
    @classmethod
    def blank_to_zero(cls, v):
        return _zero_if_blank(v)

    @field_validator(
        "rov_charges", "insurance_charges", "oda_charges",
        "handling_charges", "fm_charges", "appointment_charges",
        mode="before",
    )
    @classmethod
    def blank_to_empty_rule(cls, v):
        if v is None or v == "":
            return {}
        return v

    @field_validator("divisor", "k_factor", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v == "":
            return None
        return v


class ZoneMappingCreate(BaseModel):
    """Input for a single vendor zone mapping row."""
    model_config = ConfigDict(extra="ignore")

    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    zone: str = Field(..., min_length=1, max_length=20)
    is_oda: bool = False
    source: str = "MANUAL"

    @field_validator("pincode", mode="before")
    @classmethod
    def stringify_pincode(cls, v):
        if isinstance(v, int):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("zone")
    @classmethod
    def upper_zone(cls, v: str) -> str:
        zone = v.strip().upper()
        if not zone:
            raise ValueError("zone must not be blank")
        return zone

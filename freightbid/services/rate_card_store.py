"""
Rate card store boundary.

Everything the quote engine reads from the database passes through here and
comes out normalized:
- zone price charts in any stored shape become {ORIGIN: {DEST: rate}}
- charge settings become a PriceRate
- vendor static zone maps become a pincode -> zone index
- public vendor service areas become a pincode -> (zone, is_oda) index
"""
import logging
import math
import uuid
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from freightbid.models.customer import Customer, CustomerTransporterRelationship
from freightbid.models.rate_card import CustomerRateCard, RateCardPool
from freightbid.models.transporter import Transporter
from freightbid.schemas.rate_card import PriceRate
from freightbid.services.invoice_charge_service import validate_invoice_charge_settings
from freightbid.services.zone_service import index_zone_map, normalize_zone

logger = logging.getLogger(__name__)

FLAT_KEY_SEPARATORS = ("-", ":")
ROW_FROM_KEYS = ("from", "from_zone", "fromZone", "origin", "origin_zone")
ROW_TO_KEYS = ("to", "to_zone", "toZone", "destination", "destination_zone")
ROW_RATE_KEYS = ("rate", "price", "unit_price", "unitPrice", "value")
WRAPPER_KEYS = ("priceChart", "price_chart", "zoneRates", "zone_rates")


# ============================================
# PRICE CHART NORMALIZATION
# ============================================

def _to_rate(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    return rate if math.isfinite(rate) else None


def _first_present(row: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def _put(chart: Dict[str, Dict[str, float]], origin: Any, dest: Any, value: Any) -> None:
    origin_zone = normalize_zone(origin)
    dest_zone = normalize_zone(dest)
    rate = _to_rate(value)
    if origin_zone is None or dest_zone is None or rate is None:
        return
    chart.setdefault(origin_zone, {}).setdefault(dest_zone, rate)


def _split_flat_key(key: str):
    for separator in FLAT_KEY_SEPARATORS:
        if separator in key:
            origin, _, dest = key.partition(separator)
            return origin, dest
    return None


def normalize_price_chart(raw: Any) -> Dict[str, Dict[str, float]]:
    """
    Canonical {ORIGIN: {DEST: rate}} chart from any supported shape.

    Supported shapes:
        {"N1": {"S1": 12.5}}                         nested
        [{"from": "N1", "to": "S1", "rate": 12.5}]   rows
        {"N1-S1": 12.5} or {"N1:S1": 12.5}           flat keys

    Zone codes are trimmed and upper-cased. Non-numeric rates are dropped.
    When a pair appears twice the first value wins.
    """
    chart: Dict[str, Dict[str, float]] = {}
    if not raw:
        return chart

    if isinstance(raw, Mapping):
        for wrapper in WRAPPER_KEYS:
            if wrapper in raw and len(raw) == 1:
                return normalize_price_chart(raw[wrapper])

        for key, value in raw.items():
            if isinstance(value, Mapping):
                for dest, rate in value.items():
                    _put(chart, key, dest, rate)
            else:
                pair = _split_flat_key(str(key))
                if pair is not None:
                    _put(chart, pair[0], pair[1], value)
        return chart

    if isinstance(raw, (list, tuple)):
        for row in raw:
            if isinstance(row, Mapping):
                _put(
                    chart,
                    _first_present(row, ROW_FROM_KEYS),
                    _first_present(row, ROW_TO_KEYS),
                    _first_present(row, ROW_RATE_KEYS),
                )
        return chart

    logger.warning(f"Unsupported price chart type {type(raw).__name__}, treating as empty")
    return chart


def normalize_price_rate(raw: Any) -> PriceRate:
    if isinstance(raw, PriceRate):
        return raw
    if not isinstance(raw, Mapping):
        return PriceRate()
    return PriceRate.model_validate(raw)


def check_invoice_value_charges(raw: Any, vendor_name: str) -> Optional[dict]:
    """Pass stored invoice settings through, logging any problems found."""
    if not isinstance(raw, Mapping) or not raw:
        return None
    problems = validate_invoice_charge_settings(raw)
    if problems:
        logger.warning(f"Invoice charge settings for {vendor_name} look wrong: {'; '.join(problems)}")
    return dict(raw)


def normalize_selected_zones(raw: Any) -> List[str]:
    if not isinstance(raw, (list, tuple, set)):
        return []
    zones = []
    for zone in raw:
        code = normalize_zone(zone)
        if code and code not in zones:
            zones.append(code)
    return zones


class ServiceAreaEntry(NamedTuple):
    zone: Optional[str]
    is_oda: bool


def index_service_area(raw: Any) -> Dict[str, ServiceAreaEntry]:
    """[{pincode, zone, is_oda}] -> {pincode: ServiceAreaEntry}. First entry wins."""
    index: Dict[str, ServiceAreaEntry] = {}
    if not isinstance(raw, (list, tuple)):
        return index
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        pincode = str(entry.get("pincode") or "").strip()
        if not pincode or pincode in index:
            continue
        is_oda = entry.get("is_oda", entry.get("isOda", False))
        index[pincode] = ServiceAreaEntry(
            zone=normalize_zone(entry.get("zone")),
            is_oda=bool(is_oda),
        )
    return index


# ============================================
# NORMALIZED RECORDS
# ============================================

class RateCardRecord:
    """A vendor's pricing inputs after normalization."""

    def __init__(
        self,
        vendor_id: uuid.UUID,
        vendor_name: str,
        price_rate: PriceRate,
        price_chart: Dict[str, Dict[str, float]],
        pincode_zones: Optional[Dict[str, str]] = None,
        selected_zones: Optional[List[str]] = None,
        invoice_value_charges: Optional[dict] = None,
        invoice_rule: Optional[dict] = None,
        pool: Optional[str] = None,
    ):
        self.vendor_id = vendor_id
        self.vendor_name = vendor_name
        self.price_rate = price_rate
        self.price_chart = price_chart
        self.pincode_zones = pincode_zones or {}
        self.selected_zones = selected_zones or []
        self.invoice_value_charges = invoice_value_charges
        self.invoice_rule = invoice_rule
        self.pool = pool

    @classmethod
    def from_model(cls, card: CustomerRateCard) -> "RateCardRecord":
        return cls(
            vendor_id=card.id,
            vendor_name=card.vendor_name,
            price_rate=normalize_price_rate(card.price_rate),
            price_chart=normalize_price_chart(card.zone_rates),
            pincode_zones=index_zone_map(card.zone_config),
            selected_zones=normalize_selected_zones(card.selected_zones),
            invoice_value_charges=check_invoice_value_charges(card.invoice_value_charges, card.vendor_name),
            invoice_rule=card.invoice_rule,
            pool=card.pool,
        )


class PublicVendorRecord:
    """A public transporter with its shared price document."""

    def __init__(
        self,
        rate_card: RateCardRecord,
        service_area: Dict[str, ServiceAreaEntry],
        servicable_zones: List[str],
        rating: float = 0.0,
    ):
        self.rate_card = rate_card
        self.service_area = service_area
        self.servicable_zones = servicable_zones
        self.rating = rating

    @property
    def vendor_id(self) -> uuid.UUID:
        return self.rate_card.vendor_id

    @property
    def vendor_name(self) -> str:
        return self.rate_card.vendor_name

    @classmethod
    def from_model(cls, transporter: Transporter) -> "PublicVendorRecord":
        price = transporter.prices[0] if transporter.prices else None
        rate_card = RateCardRecord(
            vendor_id=transporter.id,
            vendor_name=transporter.company_name,
            price_rate=normalize_price_rate(price.price_rate if price else None),
            price_chart=normalize_price_chart(price.zone_rates if price else None),
            invoice_value_charges=check_invoice_value_charges(
                price.invoice_value_charges if price else None, transporter.company_name
            ),
            invoice_rule=price.invoice_rule if price else None,
        )
        return cls(
            rate_card=rate_card,
            service_area=index_service_area(transporter.service_area),
            servicable_zones=normalize_selected_zones(transporter.servicable_zones),
            rating=transporter.rating or 0.0,
        )


def _enumeration_key(record) -> tuple:
    return (record.vendor_name or "", str(record.vendor_id))


# ============================================
# STORE
# ============================================

class RateCardStore:
    """Read-only access to customers, rate cards and public vendors."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_customer(self, customer_id: uuid.UUID) -> Optional[Customer]:
        return await self.db.get(Customer, customer_id)

    async def get_rate_cards(self, customer_id: uuid.UUID, pool: RateCardPool) -> List[RateCardRecord]:
        """Active cards for one pool, ordered by vendor name then id."""
        result = await self.db.execute(
            select(CustomerRateCard).where(
                CustomerRateCard.customer_id == customer_id,
                CustomerRateCard.pool == pool.value,
                CustomerRateCard.is_active == True,  # noqa: E712
            )
        )
        records = []
        for card in result.scalars().all():
            try:
                records.append(RateCardRecord.from_model(card))
            except PydanticValidationError as e:
                logger.info(
                    f"Skipping rate card {card.id} ({card.vendor_name}): invalid charge settings",
                    extra={"vendor_id": str(card.id), "reason": str(e)},
                )
        return sorted(records, key=_enumeration_key)

    async def get_public_vendors(self, origin: str, destination: str) -> List[PublicVendorRecord]:
        """Active transporters whose service area lists both pincodes."""
        result = await self.db.execute(
            select(Transporter)
            .options(selectinload(Transporter.prices))
            .where(Transporter.is_active == True)  # noqa: E712
            .execution_options(populate_existing=True)
        )
        records = []
        for transporter in result.scalars().all():
            try:
                record = PublicVendorRecord.from_model(transporter)
            except PydanticValidationError as e:
                logger.info(
                    f"Skipping transporter {transporter.id} ({transporter.company_name}): invalid charge settings",
                    extra={"vendor_id": str(transporter.id), "reason": str(e)},
                )
                continue
            if origin in record.service_area and destination in record.service_area:
                records.append(record)
        return sorted(records, key=_enumeration_key)

    async def get_transporter(self, transporter_id: uuid.UUID) -> Optional[Transporter]:
        return await self.db.get(Transporter, transporter_id)

    async def get_related_transporter_ids(self, customer_id: uuid.UUID) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(CustomerTransporterRelationship.transporter_id)
            .where(CustomerTransporterRelationship.customer_id == customer_id)
        )
        return sorted(set(result.scalars().all()), key=str)

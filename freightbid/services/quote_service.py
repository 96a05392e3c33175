"""
Quote Service - multi-vendor quote aggregation.

For one shipment:
1. Validate the request and look up the customer
2. Resolve distance once
3. Load tied-up, temporary and public vendors (normalized)
4. Price every vendor concurrently behind one candidate contract
5. Keep public quotes only when cheaper than the best committed quote
6. Rank and return, or return NoQuotesFound with the exclusion reasons

A failure while pricing one vendor drops that vendor only.
"""
import asyncio
import logging
import math
import uuid
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from freightbid.core.exceptions import NotFoundError, ValidationError
from freightbid.core.reference_data import ReferenceData, get_reference_data
from freightbid.models.customer import Customer
from freightbid.models.rate_card import RateCardPool
from freightbid.schemas.quote import ShipmentRequest
from freightbid.services.distance_service import DistanceResolver, DistanceResult
from freightbid.services.rate_card_store import PublicVendorRecord, RateCardRecord, RateCardStore
from freightbid.services.tariff_calculator import TariffBreakdown, TariffCalculator, TariffExclusion
from freightbid.services.zone_service import (
    SOURCE_GLOBAL, ZoneLookupCache, ZoneResolution, ZoneResolver, SQLZoneMappingStore,
)

logger = logging.getLogger(__name__)

SOURCE_SERVICE_AREA = "service_area"


class Provenance:
    TIED_UP = "TIED_UP"
    TEMPORARY = "TEMPORARY"
    PUBLIC = "PUBLIC"


def validation_message(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()) if p != "body")
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(parts) or "Invalid request"


# ============================================
# RESULT TYPES
# ============================================

class VendorQuote:
    """Priced quote from one vendor."""

    def __init__(
        self,
        vendor_id: uuid.UUID,
        vendor_name: str,
        provenance: str,
        origin: ZoneResolution,
        destination: ZoneResolution,
        distance: DistanceResult,
        breakdown: TariffBreakdown,
        is_hidden: bool = False,
    ):
        self.vendor_id = vendor_id
        self.vendor_name = vendor_name
        self.provenance = provenance
        self.origin = origin
        self.destination = destination
        self.distance = distance
        self.breakdown = breakdown
        self.is_hidden = is_hidden

    @property
    def total(self) -> int:
        return self.breakdown.total

    @property
    def total_without_addon(self) -> int:
        return self.breakdown.total_without_addon

    def to_dict(self) -> dict:
        if self.is_hidden:
            return {
                "provenance": self.provenance,
                "is_hidden": True,
                "total": self.total,
                "total_without_addon": self.total_without_addon,
            }
        data = {
            "vendor_id": str(self.vendor_id),
            "vendor_name": self.vendor_name,
            "provenance": self.provenance,
            "is_hidden": False,
            "origin_zone": self.origin.zone,
            "destination_zone": self.destination.zone,
            "origin_zone_source": self.origin.source,
            "destination_zone_source": self.destination.source,
            "distance_km": self.distance.distance_km,
            "eta_days": self.distance.eta_days,
        }
        data.update(self.breakdown.to_dict())
        return data


class QuoteResult:
    """Quotes in enumeration order plus the lowest committed quote."""

    def __init__(
        self,
        quotes: List[VendorQuote],
        distance: DistanceResult,
        excluded: Optional[List[TariffExclusion]] = None,
    ):
        self.quotes = quotes
        self.distance = distance
        self.excluded = excluded or []

    @property
    def committed_quotes(self) -> List[VendorQuote]:
        return [q for q in self.quotes if q.provenance != Provenance.PUBLIC]

    @property
    def public_quotes(self) -> List[VendorQuote]:
        return [q for q in self.quotes if q.provenance == Provenance.PUBLIC]

    @property
    def lowest_quote(self) -> Optional[VendorQuote]:
        lowest = None
        for quote in self.committed_quotes:
            if lowest is None or quote.total < lowest.total:
                lowest = quote
        return lowest

    def to_dict(self) -> dict:
        lowest = self.lowest_quote
        return {
            "distance_km": self.distance.distance_km,
            "eta_days": self.distance.eta_days,
            "distance_source": self.distance.source,
            "tied_up": [q.to_dict() for q in self.quotes if q.provenance == Provenance.TIED_UP],
            "temporary": [q.to_dict() for q in self.quotes if q.provenance == Provenance.TEMPORARY],
            "public": [q.to_dict() for q in self.public_quotes],
            "lowest_quote": lowest.to_dict() if lowest else None,
            "excluded": [e.to_dict() for e in self.excluded],
        }


class NoQuotesFound:
    """No vendor could price the shipment. A value, not an error."""

    def __init__(self, excluded: List[TariffExclusion], distance: Optional[DistanceResult] = None):
        self.excluded = excluded
        self.distance = distance

    @property
    def message(self) -> str:
        return "No vendor could quote this shipment"

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "distance_km": self.distance.distance_km if self.distance else None,
            "eta_days": self.distance.eta_days if self.distance else None,
            "excluded": [e.to_dict() for e in self.excluded],
        }


# ============================================
# VENDOR CANDIDATES
# ============================================

class QuoteContext:
    """Per-call state shared by every candidate. Discarded when the call ends."""

    def __init__(
        self,
        shipment: ShipmentRequest,
        customer: Customer,
        distance: DistanceResult,
        zone_resolver: ZoneResolver,
        calculator: TariffCalculator,
    ):
        self.shipment = shipment
        self.customer = customer
        self.distance = distance
        self.zone_resolver = zone_resolver
        self.calculator = calculator

    @property
    def rule_context(self) -> Dict[str, Any]:
        return {"mode": self.shipment.mode, "distance_km": self.distance.distance_km}


class ResolvedZones(NamedTuple):
    origin: ZoneResolution
    destination: ZoneResolution
    is_oda: bool


class VendorCandidate:
    """One vendor to price. Subclasses decide how zones are resolved."""
    provenance: str = ""

    def __init__(self, rate_card: RateCardRecord):
        self.rate_card = rate_card

    @property
    def vendor_id(self) -> uuid.UUID:
        return self.rate_card.vendor_id

    @property
    def vendor_name(self) -> str:
        return self.rate_card.vendor_name

    def exclude(self, reason: str) -> TariffExclusion:
        return TariffExclusion(reason, vendor_id=self.vendor_id, vendor_name=self.vendor_name)

    async def resolve_zones(self, ctx: QuoteContext) -> Union[ResolvedZones, TariffExclusion]:
        raise NotImplementedError

    def is_hidden(self, ctx: QuoteContext) -> bool:
        return False

    async def quote(self, ctx: QuoteContext) -> Union[VendorQuote, TariffExclusion]:
        zones = await self.resolve_zones(ctx)
        if isinstance(zones, TariffExclusion):
            return zones

        result = ctx.calculator.calculate(
            self.rate_card,
            zones.origin.zone,
            zones.destination.zone,
            ctx.shipment,
            is_oda=zones.is_oda,
            context=ctx.rule_context,
        )
        if isinstance(result, TariffExclusion):
            return result

        return VendorQuote(
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            provenance=self.provenance,
            origin=zones.origin,
            destination=zones.destination,
            distance=ctx.distance,
            breakdown=result,
            is_hidden=self.is_hidden(ctx),
        )


class TiedUpCandidate(VendorCandidate):
    """Customer-private rate card resolved through the three zone tiers."""
    provenance = Provenance.TIED_UP

    async def resolve_zones(self, ctx: QuoteContext) -> Union[ResolvedZones, TariffExclusion]:
        resolver = ctx.zone_resolver
        card = self.rate_card
        origin = await resolver.resolve(card.vendor_id, ctx.shipment.origin_pincode, card.pincode_zones)
        destination = await resolver.resolve(card.vendor_id, ctx.shipment.destination_pincode, card.pincode_zones)

        if not origin.found or not destination.found:
            return self.exclude(f"zone not resolved (origin={origin.source}, destination={destination.source})")

        if await resolver.vendor_owns_zones(card.vendor_id, card.pincode_zones):
            if not resolver.is_strict_match(origin, destination):
                return self.exclude(
                    f"vendor zone map does not cover both pincodes "
                    f"(origin={origin.source}, destination={destination.source})"
                )

        if card.selected_zones and (
            origin.zone not in card.selected_zones or destination.zone not in card.selected_zones
        ):
            return self.exclude(f"zones {origin.zone}->{destination.zone} outside selected zones")

        return ResolvedZones(origin=origin, destination=destination, is_oda=destination.is_oda)


class TemporaryCandidate(TiedUpCandidate):
    provenance = Provenance.TEMPORARY


class PublicCandidate(VendorCandidate):
    """Public transporter; zones and ODA come from its service area."""
    provenance = Provenance.PUBLIC

    def __init__(self, record: PublicVendorRecord):
        super().__init__(record.rate_card)
        self.record = record

    def _endpoint(self, ctx: QuoteContext, pincode: str) -> Optional[ZoneResolution]:
        entry = self.record.service_area.get(pincode)
        if entry is None:
            return None
        if entry.zone:
            return ZoneResolution(zone=entry.zone, is_oda=entry.is_oda, source=SOURCE_SERVICE_AREA)
        zone = ctx.zone_resolver.global_zones.zone_for(pincode)
        if zone is None:
            return None
        return ZoneResolution(zone=zone, is_oda=entry.is_oda, source=SOURCE_GLOBAL)

    async def resolve_zones(self, ctx: QuoteContext) -> Union[ResolvedZones, TariffExclusion]:
        origin = self._endpoint(ctx, ctx.shipment.origin_pincode)
        destination = self._endpoint(ctx, ctx.shipment.destination_pincode)
        if origin is None or destination is None:
            return self.exclude("pincode outside service area")
        if origin.is_oda:
            return self.exclude("origin pincode is ODA")

        zones = self.record.servicable_zones
        if zones and (origin.zone not in zones or destination.zone not in zones):
            return self.exclude(f"zones {origin.zone}->{destination.zone} not serviceable")

        return ResolvedZones(origin=origin, destination=destination, is_oda=destination.is_oda)

    def is_hidden(self, ctx: QuoteContext) -> bool:
        return not ctx.customer.is_subscribed


# ============================================
# SERVICE
# ============================================

class QuoteService:
    """Entry point for shipment quotes."""

    def __init__(
        self,
        db: AsyncSession,
        reference_data: Optional[ReferenceData] = None,
        distance_resolver: Optional[DistanceResolver] = None,
        calculator: Optional[TariffCalculator] = None,
    ):
        self.db = db
        self.reference_data = reference_data or get_reference_data()
        self.distance_resolver = distance_resolver or DistanceResolver(self.reference_data.geocoder)
        self.calculator = calculator or TariffCalculator()
        self.store = RateCardStore(db)

    @staticmethod
    def parse_shipment(shipment: Union[ShipmentRequest, dict]) -> ShipmentRequest:
        if isinstance(shipment, ShipmentRequest):
            return shipment
        if not isinstance(shipment, dict):
            raise ValidationError("Shipment request must be an object")
        try:
            return ShipmentRequest.model_validate(shipment)
        except PydanticValidationError as e:
            raise ValidationError(validation_message(e))

    async def compute_quotes(
        self, shipment: Union[ShipmentRequest, dict]
    ) -> Union[QuoteResult, NoQuotesFound]:
        request = self.parse_shipment(shipment)

        customer = await self.store.get_customer(request.customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {request.customer_id} not found")

        distance = await self.distance_resolver.resolve(request.origin_pincode, request.destination_pincode)

        candidates: List[VendorCandidate] = []
        candidates.extend(
            TiedUpCandidate(card)
            for card in await self.store.get_rate_cards(customer.id, RateCardPool.TIED_UP)
        )
        candidates.extend(
            TemporaryCandidate(card)
            for card in await self.store.get_rate_cards(customer.id, RateCardPool.TEMPORARY)
        )
        candidates.extend(
            PublicCandidate(record)
            for record in await self.store.get_public_vendors(
                request.origin_pincode, request.destination_pincode
            )
        )

        ctx = QuoteContext(
            shipment=request,
            customer=customer,
            distance=distance,
            zone_resolver=ZoneResolver(
                self.reference_data.zones,
                store=SQLZoneMappingStore(self.db),
                cache=ZoneLookupCache(),
            ),
            calculator=self.calculator,
        )

        outcomes = await asyncio.gather(*(self._price(candidate, ctx) for candidate in candidates))

        quotes: List[VendorQuote] = []
        excluded: List[TariffExclusion] = []
        for outcome in outcomes:
            if isinstance(outcome, VendorQuote):
                quotes.append(outcome)
            else:
                excluded.append(outcome)

        committed_totals = [q.total for q in quotes if q.provenance != Provenance.PUBLIC]
        l1 = min(committed_totals) if committed_totals else math.inf

        kept: List[VendorQuote] = []
        for quote in quotes:
            if quote.provenance == Provenance.PUBLIC and not quote.total_without_addon < l1:
                exclusion = TariffExclusion(
                    f"not cheaper than best committed quote ({l1})",
                    vendor_id=quote.vendor_id,
                    vendor_name=quote.vendor_name,
                )
                self._log_exclusion(exclusion)
                excluded.append(exclusion)
                continue
            kept.append(quote)

        logger.info(
            f"Quotes for {request.origin_pincode}->{request.destination_pincode}: "
            f"{len(kept)} priced, {len(excluded)} excluded",
            extra={"customer_id": str(customer.id)},
        )

        if not kept:
            return NoQuotesFound(excluded=excluded, distance=distance)
        return QuoteResult(quotes=kept, distance=distance, excluded=excluded)

    async def _price(self, candidate: VendorCandidate, ctx: QuoteContext) -> Union[VendorQuote, TariffExclusion]:
        try:
            outcome = await candidate.quote(ctx)
        except Exception:
            logger.exception(
                f"Pricing failed for vendor {candidate.vendor_name} ({candidate.vendor_id})",
                extra={"vendor_id": str(candidate.vendor_id)},
            )
            return candidate.exclude("internal error while pricing")
        if isinstance(outcome, TariffExclusion):
            self._log_exclusion(outcome)
        return outcome

    @staticmethod
    def _log_exclusion(exclusion: TariffExclusion) -> None:
        logger.info(
            f"Excluded vendor {exclusion.vendor_name}: {exclusion.reason}",
            extra={"vendor_id": str(exclusion.vendor_id), "reason": exclusion.reason},
        )

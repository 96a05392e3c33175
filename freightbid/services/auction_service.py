"""
Auction Service - reverse auctions seeded from the quote engine.

Lifecycle:
1. create_auction() prices the shipment and seeds current_lowest with the
   lowest committed quote
2. place_bid() accepts strictly lower bids until end_time
3. After end_time the auction is CLOSED (evaluated on read, no timer)

Bids on one auction are serialized by an in-process lock and by a
compare-and-swap UPDATE on (version, current_lowest), so two writers in
different processes cannot both win.
"""
import asyncio
import logging
import math
import uuid
import weakref
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from freightbid.config import settings
from freightbid.core.exceptions import (
    AuctionRejectedError, NotFoundError, ServerFault, ValidationError,
)
from freightbid.core.money import PAISE
from freightbid.models.auction import Auction, AuctionBid, AuctionStatus, AuctionType
from freightbid.models.transporter import Transporter
from freightbid.schemas.auction import (
    AuctionCreate, AuctionDetail, AuctionSnapshot, BidEntry, ParticipantInfo, VisibleAuctions,
)
from freightbid.services.quote_service import NoQuotesFound, QuoteService, validation_message
from freightbid.services.rate_card_store import RateCardStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_uuid(value: Any, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")


def parse_amount(value: Any) -> Decimal:
    """Positive, finite bid amount rounded to paise."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Bid amount must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Bid amount must be a number")
    if not amount.is_finite() or not math.isfinite(float(amount)):
        raise ValidationError("Bid amount must be finite")
    amount = amount.quantize(PAISE, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError("Bid amount must be greater than 0")
    return amount


class AuctionLockRegistry:
    """
    One asyncio.Lock per auction id, created on demand.
    Entries are weak: a lock disappears once no bid holds or awaits it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, auction_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(auction_id)
        if lock is None:
            lock = self._locks[auction_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


auction_locks = AuctionLockRegistry()


class AuctionService:
    """Create auctions, accept bids and answer visibility queries."""

    def __init__(
        self,
        db: AsyncSession,
        quote_service: Optional[QuoteService] = None,
        now: Optional[Callable[[], datetime]] = None,
        locks: Optional[AuctionLockRegistry] = None,
    ):
        self.db = db
        self.quote_service = quote_service
        self.now = now or utcnow
        self.locks = auction_locks if locks is None else locks
        self.store = RateCardStore(db)
        self.min_lead = timedelta(days=settings.AUCTION_MIN_LEAD_DAYS)
        self.max_bids = settings.AUCTION_MAX_BIDS_PER_BIDDER

    # ============================================
    # HELPERS
    # ============================================

    def status_of(self, auction: Auction, now: Optional[datetime] = None) -> AuctionStatus:
        now = now or self.now()
        return AuctionStatus.OPEN if now < as_utc(auction.end_time) else AuctionStatus.CLOSED

    @staticmethod
    def _id_list(values: Optional[list]) -> List[uuid.UUID]:
        return [uuid.UUID(str(v)) for v in (values or [])]

    def is_eligible(self, auction: Auction, bidder: Transporter) -> bool:
        if auction.auction_type == AuctionType.OPEN.value:
            return True
        listed = str(bidder.id) in {str(v) for v in (auction.eligible_bidder_ids or [])}
        if auction.auction_type == AuctionType.RESTRICTED.value:
            return listed
        rated = auction.min_rating is not None and (bidder.rating or 0) >= auction.min_rating
        return listed or rated

    def _snapshot(self, auction: Auction, bid_count: int, now: Optional[datetime] = None) -> AuctionSnapshot:
        return AuctionSnapshot(
            id=auction.id,
            customer_id=auction.customer_id,
            auction_type=AuctionType(auction.auction_type),
            status=self.status_of(auction, now),
            origin_pincode=auction.origin_pincode,
            destination_pincode=auction.destination_pincode,
            starting_amount=auction.starting_amount,
            current_lowest=auction.current_lowest,
            end_time=as_utc(auction.end_time),
            pickup_date=auction.pickup_date,
            pickup_time=auction.pickup_time,
            participant_ids=self._id_list(auction.participant_ids),
            bid_count=bid_count,
            version=auction.version,
        )

    async def _get_auction(self, auction_id: uuid.UUID, with_bids: bool = False) -> Auction:
        stmt = (
            select(Auction)
            .where(Auction.id == auction_id)
            .execution_options(populate_existing=True)
        )
        if with_bids:
            stmt = stmt.options(
                selectinload(Auction.bids).selectinload(AuctionBid.bidder),
                selectinload(Auction.customer),
            )
        auction = (await self.db.execute(stmt)).scalar_one_or_none()
        if auction is None:
            raise NotFoundError(f"Auction {auction_id} not found")
        return auction

    async def _bid_count(self, auction_id: uuid.UUID, bidder_id: Optional[uuid.UUID] = None) -> int:
        stmt = select(func.count(AuctionBid.id)).where(AuctionBid.auction_id == auction_id)
        if bidder_id is not None:
            stmt = stmt.where(AuctionBid.bidder_id == bidder_id)
        return (await self.db.execute(stmt)).scalar() or 0

    async def _persistence_fault(self, action: str) -> ServerFault:
        await self.db.rollback()
        logger.exception(f"Database error while {action}")
        return ServerFault()

    # ============================================
    # CREATE
    # ============================================

    async def create_auction(self, request: Union[AuctionCreate, dict]) -> AuctionSnapshot:
        if isinstance(request, dict):
            try:
                request = AuctionCreate.model_validate(request)
            except PydanticValidationError as e:
                raise ValidationError(validation_message(e))

        if request.shipment.customer_id != request.customer_id:
            raise ValidationError("Shipment customer does not match auction customer")

        customer = await self.store.get_customer(request.customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {request.customer_id} not found")

        now = self.now()
        end_time = as_utc(request.end_time)
        if end_time < now + self.min_lead:
            raise AuctionRejectedError(
                f"end_time must be at least {self.min_lead.days} days from now"
            )
        if request.pickup_date is not None:
            earliest: date = (now + self.min_lead).date()
            if request.pickup_date < earliest:
                raise AuctionRejectedError(
                    f"pickup_date must be on or after {earliest.isoformat()}"
                )

        eligible_ids: List[uuid.UUID] = []
        min_rating = None
        if request.auction_type == AuctionType.RESTRICTED:
            eligible_ids = await self.store.get_related_transporter_ids(customer.id)
        elif request.auction_type == AuctionType.RATED_RESTRICTED:
            if not request.bidder_ids and request.min_rating is None:
                raise ValidationError(
                    "RATED_RESTRICTED auctions need bidder_ids or min_rating"
                )
            eligible_ids = list(dict.fromkeys(request.bidder_ids or []))
            await self._check_bidders_exist(eligible_ids)
            min_rating = request.min_rating

        quote_service = self.quote_service or QuoteService(self.db)
        result = await quote_service.compute_quotes(request.shipment)
        lowest = None if isinstance(result, NoQuotesFound) else result.lowest_quote
        if lowest is None:
            raise AuctionRejectedError("No committed vendor quote available to seed the auction")

        seed = Decimal(lowest.total).quantize(PAISE)
        auction = Auction(
            customer_id=customer.id,
            auction_type=request.auction_type.value,
            origin_pincode=request.shipment.origin_pincode,
            destination_pincode=request.shipment.destination_pincode,
            shipment=request.shipment.snapshot(),
            eligible_bidder_ids=[str(v) for v in eligible_ids],
            min_rating=min_rating,
            end_time=end_time,
            pickup_date=request.pickup_date,
            pickup_time=request.pickup_time,
            starting_amount=seed,
            current_lowest=seed,
            seed_vendor_name=lowest.vendor_name,
            participant_ids=[],
            version=0,
        )
        try:
            self.db.add(auction)
            await self.db.commit()
        except SQLAlchemyError:
            raise await self._persistence_fault("creating auction")

        logger.info(
            f"Created {auction.auction_type} auction {auction.id} seeded at {seed} "
            f"from {lowest.vendor_name}",
            extra={"auction_id": str(auction.id), "customer_id": str(customer.id)},
        )
        return self._snapshot(auction, bid_count=0, now=now)

    async def _check_bidders_exist(self, bidder_ids: List[uuid.UUID]) -> None:
        if not bidder_ids:
            return
        result = await self.db.execute(select(Transporter.id).where(Transporter.id.in_(bidder_ids)))
        known = set(result.scalars().all())
        unknown = [str(b) for b in bidder_ids if b not in known]
        if unknown:
            raise ValidationError(f"Unknown bidder ids: {', '.join(unknown)}")

    # ============================================
    # BIDDING
    # ============================================

    async def place_bid(self, auction_id: Any, bidder_id: Any, amount: Any) -> AuctionSnapshot:
        auction_uuid = parse_uuid(auction_id, "auction id")
        bidder_uuid = parse_uuid(bidder_id, "bidder id")
        bid_amount = parse_amount(amount)

        async with self.locks.lock_for(auction_uuid):
            auction = await self._get_auction(auction_uuid)
            bidder = await self.store.get_transporter(bidder_uuid)
            if bidder is None:
                raise ValidationError(f"Unknown bidder {bidder_uuid}")

            now = self.now()
            if self.status_of(auction, now) == AuctionStatus.CLOSED:
                raise AuctionRejectedError("Auction has already closed")
            if not self.is_eligible(auction, bidder):
                raise AuctionRejectedError("Bidder is not eligible for this auction")
            if bid_amount >= auction.current_lowest:
                raise AuctionRejectedError(
                    f"Bid ({bid_amount}) must be lower than the current lowest ({auction.current_lowest})"
                )
            if await self._bid_count(auction_uuid, bidder_uuid) >= self.max_bids:
                raise AuctionRejectedError(
                    f"Maximum of {self.max_bids} bids per bidder reached"
                )

            expected_version = auction.version
            participants = [str(v) for v in (auction.participant_ids or [])]
            if str(bidder_uuid) not in participants:
                participants.append(str(bidder_uuid))

            try:
                result = await self.db.execute(
                    update(Auction)
                    .where(
                        Auction.id == auction_uuid,
                        Auction.version == expected_version,
                        Auction.current_lowest > bid_amount,
                    )
                    .values(
                        current_lowest=bid_amount,
                        version=expected_version + 1,
                        participant_ids=participants,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await self.db.rollback()
                    raise AuctionRejectedError(
                        "Auction was updated by another bid; refresh and retry"
                    )
                self.db.add(AuctionBid(
                    auction_id=auction_uuid,
                    bidder_id=bidder_uuid,
                    amount=bid_amount,
                    sequence=expected_version + 1,
                ))
                await self.db.commit()
                await self.db.refresh(auction)
                bid_count = await self._bid_count(auction_uuid)
            except SQLAlchemyError:
                raise await self._persistence_fault(f"placing bid on auction {auction_uuid}")

        logger.info(
            f"Accepted bid {bid_amount} on auction {auction_uuid}",
            extra={"auction_id": str(auction_uuid), "bidder_id": str(bidder_uuid)},
        )
        return self._snapshot(auction, bid_count=bid_count, now=now)

    # ============================================
    # QUERIES
    # ============================================

    async def list_visible_auctions(self, bidder_id: Any, include_closed: bool = False) -> VisibleAuctions:
        bidder_uuid = parse_uuid(bidder_id, "bidder id")
        bidder = await self.store.get_transporter(bidder_uuid)
        if bidder is None:
            raise ValidationError(f"Unknown bidder {bidder_uuid}")

        result = await self.db.execute(
            select(Auction)
            .options(selectinload(Auction.bids))
            .execution_options(populate_existing=True)
        )
        auctions = sorted(result.scalars().all(), key=lambda a: (as_utc(a.end_time), str(a.id)))

        now = self.now()
        visible = VisibleAuctions()
        groups = {
            AuctionType.OPEN.value: visible.open,
            AuctionType.RESTRICTED.value: visible.restricted,
            AuctionType.RATED_RESTRICTED.value: visible.rated_restricted,
        }
        for auction in auctions:
            if not include_closed and self.status_of(auction, now) == AuctionStatus.CLOSED:
                continue
            if auction.auction_type not in groups or not self.is_eligible(auction, bidder):
                continue
            groups[auction.auction_type].append(self._snapshot(auction, len(auction.bids), now))
        return visible

    async def get_auction_details(self, auction_id: Any) -> AuctionDetail:
        auction_uuid = parse_uuid(auction_id, "auction id")
        auction = await self._get_auction(auction_uuid, with_bids=True)

        participant_ids = self._id_list(auction.participant_ids)
        names: Dict[uuid.UUID, str] = {}
        if participant_ids:
            rows = await self.db.execute(
                select(Transporter.id, Transporter.company_name).where(Transporter.id.in_(participant_ids))
            )
            names = {row.id: row.company_name for row in rows}

        snapshot = self._snapshot(auction, len(auction.bids))
        return AuctionDetail(
            **snapshot.model_dump(),
            customer_name=auction.customer.display_name if auction.customer else None,
            shipment=auction.shipment or {},
            eligible_bidder_ids=self._id_list(auction.eligible_bidder_ids),
            min_rating=auction.min_rating,
            bids=[
                BidEntry(
                    bidder_id=bid.bidder_id,
                    bidder_name=bid.bidder.company_name if bid.bidder else None,
                    amount=bid.amount,
                    placed_at=as_utc(bid.created_at),
                )
                for bid in auction.bids
            ],
            participants=[ParticipantInfo(id=pid, name=names.get(pid)) for pid in participant_ids],
        )

    async def list_customer_auctions(self, customer_id: Any) -> List[AuctionSnapshot]:
        customer_uuid = parse_uuid(customer_id, "customer id")
        if await self.store.get_customer(customer_uuid) is None:
            raise NotFoundError(f"Customer {customer_uuid} not found")

        result = await self.db.execute(
            select(Auction)
            .options(selectinload(Auction.bids))
            .where(Auction.customer_id == customer_uuid)
            .execution_options(populate_existing=True)
        )
        auctions = sorted(
            result.scalars().all(),
            key=lambda a: (as_utc(a.created_at), str(a.id)),
            reverse=True,
        )
        now = self.now()
        return [self._snapshot(a, len(a.bids), now) for a in auctions]

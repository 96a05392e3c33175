"""Tests for auction creation, bidding and visibility."""
import asyncio
import gc
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from freightbid.core.exceptions import (
    AuctionRejectedError,
    NotFoundError,
    ServerFault,
    ValidationError,
)
from freightbid.models import AuctionStatus, AuctionType
from freightbid.services.auction_service import AuctionLockRegistry, parse_amount

from tests.conftest import BASE_TIME, shipment_payload


def auction_payload(customer, auction_type="OPEN", **overrides) -> dict:
    payload = {
        "customer_id": str(customer.id),
        "auction_type": auction_type,
        "shipment": shipment_payload(customer.id),
        "end_time": (BASE_TIME + timedelta(days=3)).isoformat(),
        "pickup_date": (BASE_TIME + timedelta(days=2)).date().isoformat(),
        "pickup_time": "10:00",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def market(make_customer, make_rate_card, make_transporter):
    """
    A customer whose best committed quote is 1000, and three transporters:
    - x, y: related to the customer, well rated
    - z: unrelated, low rating
    """
    customer = await make_customer()
    await make_rate_card(customer, "Alpha Freight")
    x = await make_transporter("X Carriers", rating=4.5, customer=customer)
    y = await make_transporter("Y Logistics", rating=4.2, customer=customer)
    z = await make_transporter("Z Haulage", rating=3.0)
    return {"customer": customer, "x": x, "y": y, "z": z}


# =============================================================================
# CREATE
# =============================================================================

class TestCreateAuction:

    async def test_seeded_from_lowest_quote(self, auction_service, market):
        snapshot = await auction_service.create_auction(auction_payload(market["customer"]))

        assert snapshot.starting_amount == Decimal("1000")
        assert snapshot.current_lowest == Decimal("1000")
        assert snapshot.status == AuctionStatus.OPEN
        assert snapshot.auction_type == AuctionType.OPEN
        assert snapshot.bid_count == 0
        assert snapshot.version == 0

    async def test_legacy_type_names(self, auction_service, market):
        snapshot = await auction_service.create_auction(auction_payload(market["customer"], "limited"))
        assert snapshot.auction_type == AuctionType.RESTRICTED

    async def test_end_time_too_soon(self, auction_service, market):
        payload = auction_payload(
            market["customer"], end_time=(BASE_TIME + timedelta(days=1, hours=23)).isoformat()
        )
        with pytest.raises(AuctionRejectedError):
            await auction_service.create_auction(payload)

    async def test_pickup_date_too_soon(self, auction_service, market):
        payload = auction_payload(
            market["customer"], pickup_date=(BASE_TIME + timedelta(days=1)).date().isoformat()
        )
        with pytest.raises(AuctionRejectedError):
            await auction_service.create_auction(payload)

    async def test_no_committed_quote(self, auction_service, make_customer):
        customer = await make_customer()
        with pytest.raises(AuctionRejectedError):
            await auction_service.create_auction(auction_payload(customer))

    async def test_shipment_customer_must_match(self, auction_service, market):
        payload = auction_payload(market["customer"], shipment=shipment_payload(uuid.uuid4()))
        with pytest.raises(ValidationError):
            await auction_service.create_auction(payload)

    async def test_unknown_customer(self, auction_service, market):
        stranger = type("Stranger", (), {"id": uuid.uuid4()})()
        with pytest.raises(NotFoundError):
            await auction_service.create_auction(auction_payload(stranger))

    async def test_rated_restricted_needs_bidders_or_rating(self, auction_service, market):
        with pytest.raises(ValidationError):
            await auction_service.create_auction(auction_payload(market["customer"], "RATED_RESTRICTED"))

    async def test_rated_restricted_unknown_bidder(self, auction_service, market):
        payload = auction_payload(market["customer"], "RATED_RESTRICTED", bidder_ids=[str(uuid.uuid4())])
        with pytest.raises(ValidationError):
            await auction_service.create_auction(payload)

    async def test_malformed_request(self, auction_service, market):
        with pytest.raises(ValidationError):
            await auction_service.create_auction(auction_payload(market["customer"], "SEALED"))


# =============================================================================
# BIDDING
# =============================================================================

class TestPlaceBid:

    async def test_improving_bids_only(self, auction_service, market):
        """Seeded at 1000: X 900 ok, X 950 rejected, Y 850 ok."""
        auction = await auction_service.create_auction(auction_payload(market["customer"]))
        x, y = market["x"], market["y"]

        after_x = await auction_service.place_bid(auction.id, x.id, 900)
        assert after_x.current_lowest == Decimal("900")

        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(auction.id, x.id, 950)

        after_y = await auction_service.place_bid(auction.id, y.id, 850)
        assert after_y.current_lowest == Decimal("850")
        assert after_y.bid_count == 2
        assert after_y.version == 2
        assert after_y.participant_ids == [x.id, y.id]

    async def test_equal_bid_rejected(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))
        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(auction.id, market["x"].id, 1000)

    async def test_fourth_bid_rejected(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))
        x = market["x"]

        for amount in (900, 800, 700):
            await auction_service.place_bid(auction.id, x.id, amount)

        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(auction.id, x.id, 1)

        # the cap is per bidder
        snapshot = await auction_service.place_bid(auction.id, market["y"].id, 600)
        assert snapshot.current_lowest == Decimal("600")

    async def test_closed_auction_rejects_any_bid(self, auction_service, clock, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))

        clock.advance(days=3)

        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(auction.id, market["x"].id, 10)

    async def test_restricted_to_related_transporters(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"], "RESTRICTED"))

        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(auction.id, market["z"].id, 900)
        await auction_service.place_bid(auction.id, market["x"].id, 900)

    async def test_rated_restricted_by_rating_or_list(self, auction_service, market):
        by_rating = await auction_service.create_auction(
            auction_payload(market["customer"], "RATED_RESTRICTED", min_rating=4.3)
        )
        await auction_service.place_bid(by_rating.id, market["x"].id, 900)
        with pytest.raises(AuctionRejectedError):
            await auction_service.place_bid(by_rating.id, market["y"].id, 800)

        by_list = await auction_service.create_auction(
            auction_payload(market["customer"], "RATED_RESTRICTED", bidder_ids=[str(market["z"].id)])
        )
        await auction_service.place_bid(by_list.id, market["z"].id, 900)

    async def test_bad_input(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))

        with pytest.raises(ValidationError):
            await auction_service.place_bid(auction.id, uuid.uuid4(), 900)
        with pytest.raises(ValidationError):
            await auction_service.place_bid("nope", market["x"].id, 900)
        with pytest.raises(NotFoundError):
            await auction_service.place_bid(uuid.uuid4(), market["x"].id, 900)

    async def test_concurrent_equal_bids_one_wins(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))

        outcomes = await asyncio.gather(
            auction_service.place_bid(auction.id, market["x"].id, 900),
            auction_service.place_bid(auction.id, market["y"].id, 900),
            return_exceptions=True,
        )

        rejected = [o for o in outcomes if isinstance(o, AuctionRejectedError)]
        accepted = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(accepted) == 1
        assert len(rejected) == 1

        details = await auction_service.get_auction_details(auction.id)
        assert details.current_lowest == Decimal("900")
        assert len(details.bids) == 1

    async def test_accepted_bids_strictly_decrease(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))
        attempts = [(market["x"], 990), (market["y"], 995), (market["y"], 970), (market["x"], 970), (market["x"], 500)]

        for bidder, amount in attempts:
            try:
                await auction_service.place_bid(auction.id, bidder.id, amount)
            except AuctionRejectedError:
                pass

        details = await auction_service.get_auction_details(auction.id)
        amounts = [bid.amount for bid in details.bids]
        assert amounts == [Decimal("990"), Decimal("970"), Decimal("500")]

    async def test_persistence_failure_is_server_fault(self, db, auction_service, market, monkeypatch):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))

        async def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", failing_commit)

        with pytest.raises(ServerFault):
            await auction_service.place_bid(auction.id, market["x"].id, 900)

        monkeypatch.undo()
        details = await auction_service.get_auction_details(auction.id)
        assert details.current_lowest == Decimal("1000")
        assert details.bids == []


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:

    async def test_visibility_by_type(self, auction_service, market):
        customer = market["customer"]
        open_auction = await auction_service.create_auction(auction_payload(customer, "OPEN"))
        restricted = await auction_service.create_auction(auction_payload(customer, "RESTRICTED"))
        rated = await auction_service.create_auction(
            auction_payload(customer, "RATED_RESTRICTED", min_rating=4.0)
        )

        for_x = await auction_service.list_visible_auctions(market["x"].id)
        for_z = await auction_service.list_visible_auctions(market["z"].id)

        assert [a.id for a in for_x.open] == [open_auction.id]
        assert [a.id for a in for_x.restricted] == [restricted.id]
        assert [a.id for a in for_x.rated_restricted] == [rated.id]
        assert [a.id for a in for_z.open] == [open_auction.id]
        assert for_z.restricted == [] and for_z.rated_restricted == []

    async def test_closed_auctions_hidden_by_default(self, auction_service, clock, market):
        await auction_service.create_auction(auction_payload(market["customer"]))
        clock.advance(days=5)

        visible = await auction_service.list_visible_auctions(market["x"].id)
        with_closed = await auction_service.list_visible_auctions(market["x"].id, include_closed=True)

        assert visible.open == []
        assert with_closed.open[0].status == AuctionStatus.CLOSED

    async def test_unknown_bidder_visibility(self, auction_service, market):
        with pytest.raises(ValidationError):
            await auction_service.list_visible_auctions(uuid.uuid4())

    async def test_details(self, auction_service, market):
        auction = await auction_service.create_auction(auction_payload(market["customer"]))
        await auction_service.place_bid(auction.id, market["x"].id, 900)
        await auction_service.place_bid(auction.id, market["y"].id, 880.555)

        details = await auction_service.get_auction_details(str(auction.id))

        assert details.customer_name == "Asha Traders"
        assert details.shipment["origin_pincode"] == "110001"
        assert [(b.bidder_name, b.amount) for b in details.bids] == [
            ("X Carriers", Decimal("900")),
            ("Y Logistics", Decimal("880.56")),
        ]
        assert [p.name for p in details.participants] == ["X Carriers", "Y Logistics"]

    async def test_details_unknown_auction(self, auction_service):
        with pytest.raises(NotFoundError):
            await auction_service.get_auction_details(uuid.uuid4())

    async def test_customer_auctions(self, auction_service, make_customer, market):
        customer = market["customer"]
        first = await auction_service.create_auction(auction_payload(customer))
        second = await auction_service.create_auction(auction_payload(customer, "RESTRICTED"))

        listed = await auction_service.list_customer_auctions(customer.id)
        other = await make_customer()

        assert {a.id for a in listed} == {first.id, second.id}
        assert await auction_service.list_customer_auctions(other.id) == []


class TestHelpers:

    def test_parse_amount(self):
        assert parse_amount("900.005") == Decimal("900.01")
        for bad in (None, True, "abc", "NaN", "Infinity", 0, -5):
            with pytest.raises(ValidationError):
                parse_amount(bad)

    def test_lock_registry(self):
        registry = AuctionLockRegistry()
        auction_id = uuid.uuid4()
        held = registry.lock_for(auction_id)
        assert registry.lock_for(auction_id) is held
        assert len(registry) == 1

    def test_lock_registry_releases_unused_locks(self):
        registry = AuctionLockRegistry()
        held = registry.lock_for(uuid.uuid4())
        for _ in range(500):
            registry.lock_for(uuid.uuid4())
        gc.collect()

        assert len(registry) == 1
        del held
        gc.collect()
        assert len(registry) == 0

    async def test_lock_kept_while_bid_in_flight(self):
        registry = AuctionLockRegistry()
        auction_id = uuid.uuid4()

        async with registry.lock_for(auction_id):
            gc.collect()
            assert registry.lock_for(auction_id).locked()
        gc.collect()
        assert len(registry) == 0

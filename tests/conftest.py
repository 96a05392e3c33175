"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, so tests never share
state and never touch the configured DATABASE_URL.
"""
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freightbid.core.reference_data import GlobalZoneTable, PincodeGeocoder, ReferenceData
from freightbid.database import build_engine, init_db
from freightbid.models import (
    Customer,
    CustomerRateCard,
    CustomerTransporterRelationship,
    RateCardPool,
    Transporter,
    TransporterPrice,
)
from freightbid.services.auction_service import AuctionLockRegistry, AuctionService
from freightbid.services.distance_service import DistanceResolver
from freightbid.services.quote_service import QuoteService


CENTROIDS = [
    {"pincode": "110001", "lat": 28.6328, "lng": 77.2197},
    {"pincode": "400001", "lat": 18.9388, "lng": 72.8354},
    {"pincode": "560001", "lat": 12.9716, "lng": 77.5946},
]

ZONES = [
    {"pincode": "110001", "zone": "N1"},
    {"pincode": "122001", "zone": "N1"},
    {"pincode": "400001", "zone": "W1"},
    {"pincode": "411001", "zone": "W1"},
    {"pincode": "560001", "zone": "S1"},
]

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

# 100 kg, volumetric ceil(1000 / 5000) = 1 kg, so chargeable = 100 kg
SIMPLE_PRICE_RATE = {"minWeight": 0}
SIMPLE_CHART = {"N1": {"W1": 10, "S1": 12}}


class Clock:
    """Mutable clock injected into AuctionService."""

    def __init__(self, now: datetime = BASE_TIME):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


def shipment_payload(customer_id, /, origin="110001", destination="400001", weight=100, **overrides) -> dict:
    payload = {
        "customer_id": str(customer_id),
        "origin_pincode": origin,
        "destination_pincode": destination,
        "no_of_boxes": 1,
        "length": 10,
        "width": 10,
        "height": 10,
        "weight": weight,
        "invoice_value": 1000,
    }
    payload.update(overrides)
    return payload


# ============================================
# DATABASE
# ============================================

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================
# FACTORIES
# ============================================

@pytest.fixture
def make_customer(db):
    async def _make(is_subscribed: bool = True, first_name: str = "Asha", company_name: str = "Asha Traders"):
        customer = Customer(
            first_name=first_name,
            last_name="Rao",
            company_name=company_name,
            email=f"{uuid.uuid4().hex[:8]}@example.com",
            is_subscribed=is_subscribed,
        )
        db.add(customer)
        await db.commit()
        return customer
    return _make


@pytest.fixture
def make_rate_card(db):
    async def _make(
        customer,
        vendor_name: str,
        pool: RateCardPool = RateCardPool.TIED_UP,
        price_rate=None,
        zone_rates=None,
        **fields,
    ):
        card = CustomerRateCard(
            customer_id=customer.id,
            vendor_name=vendor_name,
            pool=pool.value,
            price_rate=SIMPLE_PRICE_RATE if price_rate is None else price_rate,
            zone_rates=SIMPLE_CHART if zone_rates is None else zone_rates,
            **fields,
        )
        db.add(card)
        await db.commit()
        return card
    return _make


@pytest.fixture
def make_transporter(db):
    async def _make(
        company_name: str,
        rating: float = 4.0,
        service_area=None,
        zone_rates=None,
        price_rate=None,
        servicable_zones=None,
        customer=None,
        **price_fields,
    ):
        transporter = Transporter(
            code=uuid.uuid4().hex[:10].upper(),
            company_name=company_name,
            rating=rating,
            service_area=service_area or [],
            servicable_zones=servicable_zones or [],
        )
        db.add(transporter)
        await db.flush()
        if zone_rates is not None:
            db.add(TransporterPrice(
                transporter_id=transporter.id,
                price_rate=SIMPLE_PRICE_RATE if price_rate is None else price_rate,
                zone_rates=zone_rates,
                **price_fields,
            ))
        if customer is not None:
            db.add(CustomerTransporterRelationship(
                customer_id=customer.id,
                transporter_id=transporter.id,
            ))
        await db.commit()
        return transporter
    return _make


# ============================================
# SERVICES
# ============================================

@pytest.fixture
def reference_data():
    return ReferenceData(
        geocoder=PincodeGeocoder.from_records(CENTROIDS),
        zones=GlobalZoneTable.from_records(ZONES),
    )


@pytest.fixture
def distance_resolver(reference_data):
    # Empty key keeps tests offline
    return DistanceResolver(reference_data.geocoder, api_key="")


@pytest.fixture
def quote_service(db, reference_data, distance_resolver):
    return QuoteService(db, reference_data=reference_data, distance_resolver=distance_resolver)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def auction_service(db, quote_service, clock):
    return AuctionService(db, quote_service=quote_service, now=clock, locks=AuctionLockRegistry())


# ============================================
# API
# ============================================

@pytest.fixture
async def client(session_factory, reference_data):
    from freightbid.api import deps
    from freightbid.database import get_db
    from freightbid.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_reference] = lambda: reference_data
    app.dependency_overrides[deps.get_distance_resolver] = (
        lambda: DistanceResolver(reference_data.geocoder, api_key="")
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

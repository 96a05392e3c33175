"""
Seed Demo Data.

Creates:
1. A subscribed demo customer
2. Public transporters with service areas and price documents
3. Tied-up and temporary rate cards for the customer
4. Vendor zone mappings for one tied-up vendor
5. Customer -> transporter relationships (RESTRICTED auction bidders)

Usage:
    python -m scripts.seed_demo_data
"""
import asyncio

from sqlalchemy import select

from freightbid.database import get_db_session, init_db
from freightbid.models import (
    Customer,
    CustomerRateCard,
    CustomerTransporterRelationship,
    RateCardPool,
    Transporter,
    TransporterPrice,
)
from freightbid.schemas.rate_card import ZoneMappingCreate
from freightbid.services.zone_service import SQLZoneMappingStore


DEMO_EMAIL = "demo.shipper@example.com"

ZONES = ["N1", "N2", "N3", "W1", "W2", "S1", "S2", "E1", "C1", "NE1"]


def _flat_chart(base_rate: float) -> dict:
    """Every zone pair priced; farther pairs cost more."""
    chart = {}
    for i, origin in enumerate(ZONES):
        chart[origin] = {}
        for j, dest in enumerate(ZONES):
            chart[origin][dest] = round(base_rate + abs(i - j) * 1.5, 2)
    return chart


STANDARD_PRICE_RATE = {
    "minWeight": 20,
    "docketCharges": 100,
    "fuel": 10,
    "rovCharges": {"variable": 0.1, "fixed": 100},
    "insuaranceCharges": {"variable": 0, "fixed": 0},
    "odaCharges": {"variable": 2, "fixed": 500},
    "handlingCharges": {"variable": 1, "fixed": 50},
    "fmCharges": {"variable": 0, "fixed": 0},
    "appointmentCharges": {"variable": 0, "fixed": 0},
    "kFactor": 4500,
    "minCharges": 0,
    "greenTax": 50,
    "daccCharges": 0,
    "miscellanousCharges": 0,
}

SERVICE_AREA = [
    {"pincode": "110001", "zone": "N1", "is_oda": False},
    {"pincode": "122001", "zone": "N1", "is_oda": False},
    {"pincode": "400001", "zone": "W1", "is_oda": False},
    {"pincode": "411001", "zone": "W1", "is_oda": True},
    {"pincode": "560001", "zone": "S1", "is_oda": False},
    {"pincode": "600001", "zone": "S1", "is_oda": False},
    {"pincode": "700001", "zone": "E1", "is_oda": False},
]

TRANSPORTERS = [
    {"code": "SAFEXP", "company_name": "Safeexpress Logistics", "rating": 4.5, "base_rate": 9.0},
    {"code": "VRL", "company_name": "VRL Logistics", "rating": 4.1, "base_rate": 8.0},
    {"code": "GATI", "company_name": "Gati Surface", "rating": 3.6, "base_rate": 7.5},
]

RATE_CARDS = [
    {"vendor_name": "Rivigo Freight", "pool": RateCardPool.TIED_UP, "base_rate": 10.0},
    {"vendor_name": "Delhivery Part Truck", "pool": RateCardPool.TIED_UP, "base_rate": 11.0,
     "invoice_value_charges": {"enabled": True, "percentage": 0.2, "minimumAmount": 100}},
    {"vendor_name": "Spoton Trial", "pool": RateCardPool.TEMPORARY, "base_rate": 9.5,
     "invoice_rule": {"type": "slab", "slabs": [
         {"min": 0, "max": 50000, "percent": 0.1},
         {"min": 50000, "percent": 0.05},
     ], "min": 50}},
]


async def seed_customer(db) -> Customer:
    print("\n=== Seeding Customer ===")
    customer = (await db.execute(select(Customer).where(Customer.email == DEMO_EMAIL))).scalar_one_or_none()
    if customer:
        print(f"  Customer {customer.display_name} already exists, skipping")
        return customer
    customer = Customer(
        first_name="Demo",
        last_name="Shipper",
        company_name="Demo Shipper Pvt Ltd",
        email=DEMO_EMAIL,
        is_subscribed=True,
    )
    db.add(customer)
    await db.commit()
    print(f"  Created customer: {customer.display_name}")
    return customer


async def seed_transporters(db) -> list:
    print("\n=== Seeding Transporters ===")
    transporters = []
    for data in TRANSPORTERS:
        existing = (await db.execute(select(Transporter).where(Transporter.code == data["code"]))).scalar_one_or_none()
        if existing:
            print(f"  Transporter {data['code']} already exists, skipping")
            transporters.append(existing)
            continue
        transporter = Transporter(
            code=data["code"],
            company_name=data["company_name"],
            rating=data["rating"],
            service_area=SERVICE_AREA,
            servicable_zones=["N1", "W1", "S1", "E1"],
        )
        transporter.prices.append(TransporterPrice(
            price_rate=STANDARD_PRICE_RATE,
            zone_rates=_flat_chart(data["base_rate"]),
        ))
        db.add(transporter)
        transporters.append(transporter)
        print(f"  Created transporter: {data['company_name']}")
    await db.commit()
    return transporters


async def seed_rate_cards(db, customer: Customer) -> list:
    print("\n=== Seeding Rate Cards ===")
    cards = []
    for data in RATE_CARDS:
        existing = (await db.execute(
            select(CustomerRateCard).where(
                CustomerRateCard.customer_id == customer.id,
                CustomerRateCard.vendor_name == data["vendor_name"],
            )
        )).scalar_one_or_none()
        if existing:
            print(f"  Rate card {data['vendor_name']} already exists, skipping")
            cards.append(existing)
            continue
        card = CustomerRateCard(
            customer_id=customer.id,
            vendor_name=data["vendor_name"],
            pool=data["pool"].value,
            price_rate=STANDARD_PRICE_RATE,
            zone_rates=_flat_chart(data["base_rate"]),
            invoice_value_charges=data.get("invoice_value_charges"),
            invoice_rule=data.get("invoice_rule"),
        )
        db.add(card)
        cards.append(card)
        print(f"  Created {data['pool'].value} rate card: {data['vendor_name']}")
    await db.commit()
    return cards


async def seed_zone_mappings(db, card: CustomerRateCard) -> None:
    print("\n=== Seeding Vendor Zone Mappings ===")
    store = SQLZoneMappingStore(db)
    for entry in SERVICE_AREA:
        await store.upsert(card.id, ZoneMappingCreate(
            pincode=entry["pincode"],
            zone=entry["zone"],
            is_oda=entry["is_oda"],
            source="UPLOAD",
        ))
    await db.commit()
    print(f"  {len(SERVICE_AREA)} pincodes mapped for {card.vendor_name}")


async def seed_relationships(db, customer: Customer, transporters: list) -> None:
    print("\n=== Seeding Customer Relationships ===")
    created = 0
    for transporter in transporters[:2]:
        existing = (await db.execute(
            select(CustomerTransporterRelationship).where(
                CustomerTransporterRelationship.customer_id == customer.id,
                CustomerTransporterRelationship.transporter_id == transporter.id,
            )
        )).scalar_one_or_none()
        if existing:
            continue
        db.add(CustomerTransporterRelationship(customer_id=customer.id, transporter_id=transporter.id))
        created += 1
    await db.commit()
    print(f"  {created} relationships created")


async def main():
    print("=" * 60)
    print("FREIGHTBID DEMO DATA SEEDING")
    print("=" * 60)

    await init_db()
    async with get_db_session() as db:
        customer = await seed_customer(db)
        transporters = await seed_transporters(db)
        cards = await seed_rate_cards(db, customer)
        await seed_zone_mappings(db, cards[0])
        await seed_relationships(db, customer, transporters)

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE")
    print(f"Customer id: {customer.id}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())

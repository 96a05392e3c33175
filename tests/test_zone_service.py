"""Tests for three-tier zone resolution."""
import uuid

from freightbid.core.reference_data import GlobalZoneTable
from freightbid.schemas.rate_card import ZoneMappingCreate
from freightbid.services.zone_service import (
    SOURCE_GLOBAL,
    SOURCE_INVALID,
    SOURCE_NOT_FOUND,
    SOURCE_VENDOR,
    SOURCE_VENDOR_COLLECTION,
    SQLZoneMappingStore,
    ZoneHit,
    ZoneLookupCache,
    ZoneResolver,
    index_zone_map,
    is_valid_pincode,
)


GLOBAL = GlobalZoneTable({"110001": "N1", "400001": "W1", "560001": "S1"})


class FakeStore:
    """In-memory mapping store that counts lookups."""

    def __init__(self, rows=None):
        self.rows = rows or {}
        self.lookups = 0

    async def lookup(self, vendor_id, pincode):
        self.lookups += 1
        return self.rows.get((vendor_id, pincode))

    async def has_entries(self, vendor_id):
        return any(key[0] == vendor_id for key in self.rows)


class TestHelpers:

    def test_index_zone_map_inverts_and_first_wins(self):
        index = index_zone_map({"n1": ["110001", 122001], "w1": ["400001", "110001"]})
        assert index == {"110001": "N1", "122001": "N1", "400001": "W1"}

    def test_index_zone_map_ignores_junk(self):
        assert index_zone_map(None) == {}
        assert index_zone_map({"N1": "110001", "": ["400001"]}) == {}

    def test_pincode_format(self):
        assert is_valid_pincode("110001")
        assert is_valid_pincode(560001)
        assert not is_valid_pincode("011000")
        assert not is_valid_pincode("11001")
        assert not is_valid_pincode(None)


class TestZoneResolver:

    async def test_vendor_map_first(self):
        vendor = uuid.uuid4()
        store = FakeStore({(vendor, "110001"): ZoneHit("X9", True)})
        resolver = ZoneResolver(GLOBAL, store=store)

        result = await resolver.resolve(vendor, "110001", {"110001": "z1"})

        assert result.zone == "Z1"
        assert result.source == SOURCE_VENDOR
        assert store.lookups == 0

    async def test_vendor_collection_second(self):
        vendor = uuid.uuid4()
        store = FakeStore({(vendor, "110001"): ZoneHit("X9", True)})

        result = await ZoneResolver(GLOBAL, store=store).resolve(vendor, "110001")

        assert result.zone == "X9"
        assert result.is_oda is True
        assert result.source == SOURCE_VENDOR_COLLECTION

    async def test_global_last(self):
        result = await ZoneResolver(GLOBAL, store=FakeStore()).resolve(uuid.uuid4(), "400001")
        assert (result.zone, result.source) == ("W1", SOURCE_GLOBAL)

    async def test_not_found_and_invalid(self):
        resolver = ZoneResolver(GLOBAL)
        missing = await resolver.resolve(None, "999999")
        invalid = await resolver.resolve(None, "abc")
        assert not missing.found and missing.source == SOURCE_NOT_FOUND
        assert not invalid.found and invalid.source == SOURCE_INVALID

    async def test_lookups_are_memoized_per_cache(self):
        vendor = uuid.uuid4()
        store = FakeStore()
        resolver = ZoneResolver(GLOBAL, store=store, cache=ZoneLookupCache())

        for _ in range(3):
            await resolver.resolve(vendor, "110001")
        assert store.lookups == 1

        # A fresh cache means a fresh lookup
        await ZoneResolver(GLOBAL, store=store).resolve(vendor, "110001")
        assert store.lookups == 2

    async def test_strict_mode(self):
        vendor = uuid.uuid4()
        store = FakeStore({(vendor, "400001"): ZoneHit("W1", False)})
        resolver = ZoneResolver(GLOBAL, store=store)

        origin = await resolver.resolve(vendor, "110001")
        destination = await resolver.resolve(vendor, "400001")

        assert await resolver.vendor_owns_zones(vendor)
        assert not resolver.is_strict_match(origin, destination)
        assert not await resolver.vendor_owns_zones(uuid.uuid4())


class TestSQLZoneMappingStore:

    async def test_upsert_then_lookup(self, db):
        vendor = uuid.uuid4()
        store = SQLZoneMappingStore(db)

        await store.upsert(vendor, ZoneMappingCreate(pincode="110001", zone="n2"))
        await store.upsert(vendor, ZoneMappingCreate(pincode="110001", zone="n3", is_oda=True))
        await db.commit()

        hit = await store.lookup(vendor, "110001")
        assert hit == ZoneHit("N3", True)
        assert await store.has_entries(vendor)
        assert await store.lookup(vendor, "400001") is None
        assert not await store.has_entries(uuid.uuid4())

"""
Zone Service - pincode to zone resolution per vendor.

Resolution order for a (vendor, pincode) pair:
1. The vendor's static zone map on its rate card     -> source "vendor"
2. The vendor's rows in vendor_zone_mappings         -> source "vendor_collection"
3. The global pincode -> zone table                  -> source "global"

A vendor that owns any zone entries is resolved in strict mode: both
endpoints must come from tiers 1 or 2.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, NamedTuple, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from freightbid.core.reference_data import GlobalZoneTable
from freightbid.models.rate_card import VendorZoneMapping
from freightbid.schemas.rate_card import PINCODE_RE, ZoneMappingCreate

logger = logging.getLogger(__name__)

SOURCE_VENDOR = "vendor"
SOURCE_VENDOR_COLLECTION = "vendor_collection"
SOURCE_GLOBAL = "global"
SOURCE_NOT_FOUND = "not_found"
SOURCE_INVALID = "invalid"

VENDOR_SOURCES = frozenset({SOURCE_VENDOR, SOURCE_VENDOR_COLLECTION})


class ZoneResolution(NamedTuple):
    zone: Optional[str]
    is_oda: bool
    source: str

    @property
    def found(self) -> bool:
        return self.zone is not None


class ZoneHit(NamedTuple):
    zone: str
    is_oda: bool


def normalize_zone(zone: Any) -> Optional[str]:
    if zone is None:
        return None
    value = str(zone).strip().upper()
    return value or None


def is_valid_pincode(pincode: Any) -> bool:
    return pincode is not None and bool(PINCODE_RE.match(str(pincode).strip()))


def index_zone_map(zone_map: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Invert a `zone -> [pincodes]` map into `pincode -> ZONE`. First zone listed wins."""
    index: Dict[str, str] = {}
    if not isinstance(zone_map, Mapping):
        return index
    for zone, pincodes in zone_map.items():
        zone_code = normalize_zone(zone)
        if not zone_code or not isinstance(pincodes, (list, tuple, set)):
            continue
        for pincode in pincodes:
            key = str(pincode).strip()
            if key and key not in index:
                index[key] = zone_code
    return index


# ============================================
# ZONE MAPPING STORE
# ============================================

class ZoneMappingStore(Protocol):
    """Per-vendor pincode -> zone point lookups."""

    async def lookup(self, vendor_id: uuid.UUID, pincode: str) -> Optional[ZoneHit]:
        ...

    async def has_entries(self, vendor_id: uuid.UUID) -> bool:
        ...


class SQLZoneMappingStore:
    """
    vendor_zone_mappings backed store.

    An AsyncSession must not be used by two tasks at once, so every query
    runs under the store's lock.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._lock = asyncio.Lock()

    async def lookup(self, vendor_id: uuid.UUID, pincode: str) -> Optional[ZoneHit]:
        stmt = select(VendorZoneMapping.zone, VendorZoneMapping.is_oda).where(
            VendorZoneMapping.vendor_id == vendor_id,
            VendorZoneMapping.pincode == pincode,
            VendorZoneMapping.is_active == True,  # noqa: E712
        )
        async with self._lock:
            row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        zone = normalize_zone(row.zone)
        if zone is None:
            return None
        return ZoneHit(zone=zone, is_oda=bool(row.is_oda))

    async def has_entries(self, vendor_id: uuid.UUID) -> bool:
        stmt = select(func.count(VendorZoneMapping.id)).where(
            VendorZoneMapping.vendor_id == vendor_id,
            VendorZoneMapping.is_active == True,  # noqa: E712
        )
        async with self._lock:
            count = (await self.db.execute(stmt)).scalar() or 0
        return count > 0

    async def upsert(self, vendor_id: uuid.UUID, data: ZoneMappingCreate) -> VendorZoneMapping:
        """Insert or update the mapping for (vendor_id, pincode)."""
        async with self._lock:
            result = await self.db.execute(
                select(VendorZoneMapping).where(
                    VendorZoneMapping.vendor_id == vendor_id,
                    VendorZoneMapping.pincode == data.pincode,
                )
            )
            mapping = result.scalar_one_or_none()
            if mapping is None:
                mapping = VendorZoneMapping(vendor_id=vendor_id, pincode=data.pincode)
                self.db.add(mapping)
            mapping.zone = data.zone
            mapping.is_oda = data.is_oda
            mapping.source = data.source
            mapping.is_active = True
            await self.db.flush()
        return mapping


# ============================================
# REQUEST-SCOPED CACHE
# ============================================

class ZoneLookupCache:
    """
    Memo for one quote computation.
    Created per call and dropped with it; never shared across requests.
    """

    def __init__(self):
        self._entries: Dict[Hashable, Any] = {}
        self._lock = asyncio.Lock()

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            if key not in self._entries:
                self._entries[key] = await loader()
            return self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


# ============================================
# RESOLVER
# ============================================

class ZoneResolver:
    """Three-tier zone resolution with a request-scoped memo."""

    def __init__(
        self,
        global_zones: GlobalZoneTable,
        store: Optional[ZoneMappingStore] = None,
        cache: Optional[ZoneLookupCache] = None,
    ):
        self.global_zones = global_zones
        self.store = store
        self.cache = cache or ZoneLookupCache()

    async def resolve(
        self,
        vendor_id: Optional[uuid.UUID],
        pincode: Any,
        vendor_pincode_zones: Optional[Mapping[str, str]] = None,
    ) -> ZoneResolution:
        """
        Resolve a pincode for one vendor.

        Args:
            vendor_id: Owner of the zone mapping rows (None skips tier 2)
            pincode: 6-digit pincode
            vendor_pincode_zones: The vendor's static map, already inverted
                with index_zone_map()
        """
        if not is_valid_pincode(pincode):
            return ZoneResolution(zone=None, is_oda=False, source=SOURCE_INVALID)
        pin = str(pincode).strip()

        if vendor_pincode_zones:
            zone = normalize_zone(vendor_pincode_zones.get(pin))
            if zone:
                return ZoneResolution(zone=zone, is_oda=False, source=SOURCE_VENDOR)

        if vendor_id is not None and self.store is not None:
            hit = await self.cache.get_or_load(
                (vendor_id, pin),
                lambda: self.store.lookup(vendor_id, pin),
            )
            if hit is not None:
                return ZoneResolution(zone=hit.zone, is_oda=hit.is_oda, source=SOURCE_VENDOR_COLLECTION)

        zone = self.global_zones.zone_for(pin)
        if zone:
            return ZoneResolution(zone=zone, is_oda=False, source=SOURCE_GLOBAL)

        return ZoneResolution(zone=None, is_oda=False, source=SOURCE_NOT_FOUND)

    async def vendor_owns_zones(
        self,
        vendor_id: Optional[uuid.UUID],
        vendor_pincode_zones: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """True when the vendor has a static map or any active mapping rows."""
        if vendor_pincode_zones:
            return True
        if vendor_id is None or self.store is None:
            return False
        return await self.cache.get_or_load(
            (vendor_id, None),
            lambda: self.store.has_entries(vendor_id),
        )

    @staticmethod
    def is_strict_match(origin: ZoneResolution, destination: ZoneResolution) -> bool:
        return origin.source in VENDOR_SOURCES and destination.source in VENDOR_SOURCES

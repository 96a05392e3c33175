"""
Static pincode reference data.

Two tables are loaded once at process start and shared read-only:
1. Pincode -> centroid (lat/lng), used by the haversine distance fallback
2. Pincode -> zone, the global tier of zone resolution

Both are wrapped in MappingProxyType so nothing can mutate them per request.
"""
import json
import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from freightbid.config import settings

logger = logging.getLogger(__name__)


class Centroid(NamedTuple):
    lat: float
    lng: float


class PincodeGeocoder:
    """Pincode -> lat/lng centroid lookup."""

    def __init__(self, centroids: Mapping[str, Centroid]):
        self._centroids = MappingProxyType(dict(centroids))

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "PincodeGeocoder":
        centroids = {}
        for entry in records:
            pincode = str(entry.get("pincode") or "").strip()
            try:
                lat = float(entry["lat"])
                lng = float(entry["lng"])
            except (KeyError, TypeError, ValueError):
                continue
            if pincode:
                centroids[pincode] = Centroid(lat, lng)
        return cls(centroids)

    def locate(self, pincode) -> Optional[Centroid]:
        if pincode is None:
            return None
        return self._centroids.get(str(pincode).strip())

    def __len__(self) -> int:
        return len(self._centroids)


class GlobalZoneTable:
    """Pincode -> zone code lookup shared by every vendor."""

    def __init__(self, zones: Mapping[str, str]):
        self._zones = MappingProxyType(dict(zones))

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "GlobalZoneTable":
        zones = {}
        for item in records:
            pincode = str(item.get("pincode") or "").strip()
            zone = item.get("zone")
            if pincode and zone:
                zones[pincode] = str(zone).strip().upper()
        return cls(zones)

    def zone_for(self, pincode) -> Optional[str]:
        if not pincode:
            return None
        return self._zones.get(str(pincode).strip())

    def __len__(self) -> int:
        return len(self._zones)


class ReferenceData(NamedTuple):
    geocoder: PincodeGeocoder
    zones: GlobalZoneTable


def _read_json_list(path: str) -> list:
    file_path = Path(path)
    if not file_path.exists():
        logger.warning(f"Reference data file not found: {path}")
        return []
    with file_path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        logger.warning(f"Reference data file {path} is not a JSON list, ignoring")
        return []
    return data


def load_reference_data(
    centroids_path: Optional[str] = None,
    zones_path: Optional[str] = None,
) -> ReferenceData:
    """Read both tables from disk."""
    geocoder = PincodeGeocoder.from_records(
        _read_json_list(centroids_path or settings.PINCODE_CENTROIDS_PATH)
    )
    zones = GlobalZoneTable.from_records(
        _read_json_list(zones_path or settings.PINCODE_ZONES_PATH)
    )
    logger.info(
        f"Loaded reference data: {len(geocoder)} centroids, {len(zones)} zone entries"
    )
    return ReferenceData(geocoder=geocoder, zones=zones)


@lru_cache()
def get_reference_data() -> ReferenceData:
    """Process-wide reference data, loaded on first use."""
    return load_reference_data()

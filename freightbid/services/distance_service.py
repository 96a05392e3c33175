"""
Distance Service - road distance and transit estimate between two pincodes.

Order of attempts:
1. Google Distance Matrix (single request, bounded timeout, no retry)
2. Haversine distance between pincode centroids
3. Fixed default when a centroid is unknown

resolve() never raises; every provider failure falls through to step 2.
"""

import logging
import math
import re
from typing import Optional

import httpx
from pydantic import BaseModel

from freightbid.config import settings
from freightbid.core.reference_data import PincodeGeocoder

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_TRANSIT_DAY = 400.0
DEFAULT_DISTANCE_KM = 100.0
DEFAULT_ETA_DAYS = 1.0

_DISTANCE_TEXT_RE = re.compile(r"^\s*([\d,]+(?:\.\d+)?)\s*(km|m)\s*$", re.IGNORECASE)


class DistanceResult(BaseModel):
    distance_km: float
    eta_days: float
    source: str  # provider, haversine, default


class DistanceProviderError(Exception):
    """Provider answered but the answer is unusable."""


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_distance_text(text: str) -> float:
    """'1,234 km' -> 1234.0, '850 m' -> 0.85."""
    match = _DISTANCE_TEXT_RE.match(text or "")
    if not match:
        raise DistanceProviderError(f"Unparsable distance text: {text!r}")
    value = float(match.group(1).replace(",", ""))
    if match.group(2).lower() == "m":
        value = value / 1000
    return value


class DistanceResolver:
    """Resolve distance and ETA for an origin/destination pincode pair."""

    def __init__(
        self,
        geocoder: PincodeGeocoder,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.geocoder = geocoder
        self.api_key = settings.GOOGLE_MAPS_API_KEY if api_key is None else api_key
        self.api_url = api_url or settings.DISTANCE_API_URL
        self.timeout = timeout or settings.DISTANCE_API_TIMEOUT
        self._client = client

    async def resolve(self, origin: str, destination: str) -> DistanceResult:
        if self.api_key:
            try:
                return await self._from_provider(origin, destination)
            except (
                httpx.HTTPError, DistanceProviderError,
                ValueError, KeyError, IndexError, TypeError, AttributeError,
            ) as e:
                logger.warning(
                    f"Distance provider failed for {origin}->{destination}, "
                    f"using haversine: {type(e).__name__}: {e}"
                )
        return self.fallback(origin, destination)

    def fallback(self, origin: str, destination: str) -> DistanceResult:
        """Haversine over centroids, or the fixed default when one is missing."""
        origin_point = self.geocoder.locate(origin)
        dest_point = self.geocoder.locate(destination)
        if origin_point is None or dest_point is None:
            logger.warning(
                f"No centroid for {origin if origin_point is None else destination}, "
                f"using default distance"
            )
            return DistanceResult(
                distance_km=DEFAULT_DISTANCE_KM,
                eta_days=DEFAULT_ETA_DAYS,
                source="default",
            )

        km = haversine_km(origin_point.lat, origin_point.lng, dest_point.lat, dest_point.lng)
        return DistanceResult(
            distance_km=round(km, 2),
            eta_days=float(max(1, math.ceil(km / KM_PER_TRANSIT_DAY))),
            source="haversine",
        )

    async def _from_provider(self, origin: str, destination: str) -> DistanceResult:
        params = {
            "origins": origin,
            "destinations": destination,
            "key": self.api_key,
        }
        if self._client is not None:
            response = await self._client.get(self.api_url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.api_url, params=params, timeout=self.timeout)

        if response.status_code != 200:
            raise DistanceProviderError(f"HTTP {response.status_code}")

        data = response.json()
        if not isinstance(data, dict):
            raise DistanceProviderError(f"Unexpected payload type {type(data).__name__}")
        if data.get("status", "OK") != "OK":
            raise DistanceProviderError(f"status {data.get('status')}")

        element = data["rows"][0]["elements"][0]
        if not isinstance(element, dict):
            raise DistanceProviderError(f"Unexpected element {element!r}")
        if element.get("status") != "OK":
            raise DistanceProviderError(f"element status {element.get('status')}")

        meters = float(element["distance"]["value"])
        distance_km = parse_distance_text(element["distance"]["text"])
        return DistanceResult(
            distance_km=distance_km,
            eta_days=round(meters / (KM_PER_TRANSIT_DAY * 1000), 2),
            source="provider",
        )

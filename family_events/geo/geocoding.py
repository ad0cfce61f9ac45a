# family_events/geo/geocoding.py
"""
Address → coordinates resolution.

Three pieces:
  - NominatimGeocoder: the external collaborator (OpenStreetMap Nominatim via
    geopy), rate-limited to ~1 request/second. A miss comes back as None;
    a provider or transport failure raises GeocodingError.
  - GeocodeCache: explicit, lock-guarded cache keyed by normalized address.
    Lives as long as whoever owns it (one run, or the whole process).
  - SpatialResolver: cache + geocoder + fixed origin → (lat, lon, distance).
    Never raises. Misses are cached; failures are not, so the address is
    retried on the next lookup.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from ..config import GEOCODER_COUNTRY_CODES, GEOCODER_MIN_DELAY_S, GEOCODER_USER_AGENT
from ..errors import GeocodingError
from .distance import ORIGIN, distance_from_origin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str = ""


@dataclass(frozen=True)
class Resolution:
    latitude: float
    longitude: float
    distance_km: float


class Geocoder(Protocol):
    def geocode(self, address: str) -> Optional[GeocodeResult]:
        """None for a miss; raises on provider failure."""


def normalize_address(address: Optional[str]) -> str:
    """Cache key: casefold, trim, collapse whitespace."""
    if not address:
        return ""
    return re.sub(r"\s+", " ", address.casefold()).strip()


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class GeocodeCache:
    """
    Normalized address → GeocodeResult | None.

    Negative results are cached too, so a bad address costs one request
    per cache lifetime.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Optional[GeocodeResult]] = {}

    def get(self, key: str) -> tuple[bool, Optional[GeocodeResult]]:
        with self._lock:
            if key in self._entries:
                return True, self._entries[key]
            return False, None

    def set(self, key: str, value: Optional[GeocodeResult]) -> None:
        with self._lock:
            self._entries[key] = value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "entries": sum(1 for v in self._entries.values() if v is not None),
            }


# ---------------------------------------------------------------------------
# Nominatim collaborator
# ---------------------------------------------------------------------------

class NominatimGeocoder:
    def __init__(
        self,
        *,
        user_agent: str = GEOCODER_USER_AGENT,
        country_codes: str = GEOCODER_COUNTRY_CODES,
        min_delay_seconds: float = GEOCODER_MIN_DELAY_S,
        timeout: int = 10,
        client: Any = None,
    ) -> None:
        self.country_codes = country_codes
        self._client = client or Nominatim(user_agent=user_agent, timeout=timeout)
        self._geocode = RateLimiter(
            self._client.geocode,
            min_delay_seconds=min_delay_seconds,
            max_retries=0,
            swallow_exceptions=False,
        )

    def geocode(self, address: str) -> Optional[GeocodeResult]:
        if not address or not address.strip():
            return None
        try:
            location = self._geocode(
                address,
                exactly_one=True,
                country_codes=self.country_codes,
            )
        except Exception as e:
            raise GeocodingError(f"geocoding failed address={address!r}: {type(e).__name__}: {e}") from e

        if location is None:
            return None

        return GeocodeResult(
            latitude=float(location.latitude),
            longitude=float(location.longitude),
            display_name=getattr(location, "address", "") or "",
        )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class SpatialResolver:
    def __init__(
        self,
        geocoder: Geocoder,
        cache: Optional[GeocodeCache] = None,
        *,
        origin: tuple[float, float] = ORIGIN,
    ) -> None:
        self.geocoder = geocoder
        self.cache = cache if cache is not None else GeocodeCache()
        self.origin = origin

    def lookup(self, address: str) -> Optional[GeocodeResult]:
        key = normalize_address(address)
        if not key:
            return None

        hit, cached = self.cache.get(key)
        if hit:
            return cached

        try:
            result = self.geocoder.geocode(address)
        except Exception as e:
            # failed call, not a miss: leave the key uncached
            logger.warning("[geocoding] geocoder failed address=%r: %s: %s", address, type(e).__name__, e)
            return None

        self.cache.set(key, result)
        return result

    def resolve(self, address: str) -> Optional[Resolution]:
        result = self.lookup(address)
        if result is None:
            return None
        return Resolution(
            latitude=result.latitude,
            longitude=result.longitude,
            distance_km=distance_from_origin(result.latitude, result.longitude, self.origin),
        )

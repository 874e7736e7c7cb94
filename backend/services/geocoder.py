"""
Geocoder Service - Google Geocoding API wrapper for US show venues

Google Geocoding API: https://developers.google.com/maps/documentation/geocoding

Endpoint: GET https://maps.googleapis.com/maps/api/geocode/json
Answers are cached in geocode_cache by normalized query, so a candidate
re-geocoded after an edit with the same address does not spend another call.
A ZERO_RESULTS answer is cached as a definitive miss; transport errors and
quota errors are not cached.

Usage:
    from services.geocoder import GoogleGeocoder

    geocoder = GoogleGeocoder(db_session=db.session)
    result = geocoder.geocode_payload(pending.normalized_payload)
    if result:
        print(f"Lat: {result.latitude}, Lng: {result.longitude}")
"""
import logging
import time
from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import GEOCODE_FAILURE
from models.geocode_cache import GeocodeCacheEntry
from scrapers.rate_limiter import RateLimitTimeout, get_scraper_rate_limiter
from scrapers.utils.hashing import compute_text_key

logger = logging.getLogger(__name__)

# Google address component type -> payload field
COMPONENT_FIELDS = {
    "locality": ("city", "long_name"),
    "administrative_area_level_1": ("state", "short_name"),
    "postal_code": ("zip_code", "long_name"),
}

# Rough bounds of the US including Alaska and Hawaii
US_LAT_RANGE = (18.0, 72.0)
US_LNG_RANGE = (-180.0, -64.0)


@dataclass
class GeocodingResult:
    """Result from geocoding operation"""
    latitude: float
    longitude: float
    formatted_address: str
    place_id: Optional[str]
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    source: str = "google"  # 'google' or 'cache'

    def to_payload(self, normalized: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        geocoded_payload for a pending show.

        `backfilled` lists the fields the normalizer left empty that this
        result can fill.
        """
        normalized = normalized or {}
        payload = {
            "coordinates": {"latitude": self.latitude, "longitude": self.longitude},
            "formatted_address": self.formatted_address,
            "place_id": self.place_id,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }
        payload["backfilled"] = [
            name for name in ("city", "state", "zip_code")
            if not normalized.get(name) and payload.get(name)
        ]
        return payload

    def to_cache(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "formatted_address": self.formatted_address,
            "place_id": self.place_id,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "GeocodingResult":
        return cls(source="cache", **data)


def build_geocode_query(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Address string for a normalized payload.

    Needs street+city or venue+city; anything less is too vague to spend a
    metered call on.
    """
    payload = payload or {}
    city = payload.get("city")
    if not city:
        return None
    street = payload.get("address")
    venue = payload.get("venue_name")
    if not street and not venue:
        return None

    parts: List[str] = [street] if street else [venue]
    parts.append(city)
    state = payload.get("state")
    if state:
        parts.append(f"{state} {payload['zip_code']}" if payload.get("zip_code") else state)
    return ", ".join(parts)


class GoogleGeocoder:
    """Google Geocoding API client with a database-backed answer cache."""

    BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
    RATE_LIMIT_DOMAIN = "maps.googleapis.com"
    RATE_LIMIT_DELAY = 0.05  # minimal spacing between calls from one process

    def __init__(self, api_key: Optional[str] = None, db_session=None,
                 session: Optional[requests.Session] = None, timeout: Optional[float] = None,
                 rate_limiter=None):
        self.api_key = api_key if api_key is not None else Config.GOOGLE_MAPS_API_KEY
        self.db_session = db_session
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else Config.GEOCODE_TIMEOUT_SECONDS
        self.rate_limiter = rate_limiter or get_scraper_rate_limiter()
        self.last_request_time = 0
        self.api_calls = 0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _wait_for_rate_limit(self):
        """Ensure we don't exceed rate limits"""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.RATE_LIMIT_DELAY:
            time.sleep(self.RATE_LIMIT_DELAY - elapsed)
        self.rate_limiter.wait(self.RATE_LIMIT_DOMAIN, "geocode")
        self.last_request_time = time.time()

    # =========================================================================
    # Cache
    # =========================================================================

    def _cache_get(self, key: str) -> Optional[GeocodeCacheEntry]:
        if self.db_session is None:
            return None
        return self.db_session.get(GeocodeCacheEntry, key)

    def _cache_put(self, key: str, query: str, result: Optional[GeocodingResult]):
        if self.db_session is None:
            return
        entry = GeocodeCacheEntry(
            query_key=key,
            query=query[:1000],
            result=result.to_cache() if result else None,
        )
        try:
            self.db_session.merge(entry)
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

    # =========================================================================
    # API
    # =========================================================================

    def _search(self, query: str) -> Optional[Dict[str, Any]]:
        """
        Execute a search against the Geocoding API.

        Returns:
            {"status": ..., "result": first result or None}, or None when the
            request itself failed (not cacheable)
        """
        try:
            self._wait_for_rate_limit()
        except RateLimitTimeout as e:
            logger.warning(f"{GEOCODE_FAILURE} rate limit for '{query}': {e}")
            return None
        self.api_calls += 1

        try:
            response = self.session.get(
                self.BASE_URL,
                params={"address": query, "key": self.api_key, "region": "us"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.warning(f"{GEOCODE_FAILURE} request error for '{query}': {e}")
            return None
        except ValueError as e:
            logger.warning(f"{GEOCODE_FAILURE} JSON parse error for '{query}': {e}")
            return None

        status = data.get("status")
        if status == "OK" and data.get("results"):
            return {"status": status, "result": data["results"][0]}
        if status == "ZERO_RESULTS":
            return {"status": status, "result": None}

        logger.warning(
            f"{GEOCODE_FAILURE} API status {status} for '{query}': {data.get('error_message', '')}"
        )
        return None

    def _parse_result(self, query: str, result: Dict[str, Any]) -> Optional[GeocodingResult]:
        try:
            location = result["geometry"]["location"]
            latitude = float(location["lat"])
            longitude = float(location["lng"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"{GEOCODE_FAILURE} error parsing coordinates for '{query}': {e}")
            return None

        if not (US_LAT_RANGE[0] <= latitude <= US_LAT_RANGE[1]
                and US_LNG_RANGE[0] <= longitude <= US_LNG_RANGE[1]):
            logger.warning(f"{GEOCODE_FAILURE} coordinates outside US bounds for '{query}'")
            return None

        components = {}
        for component in result.get("address_components") or []:
            for component_type in component.get("types") or []:
                if component_type in COMPONENT_FIELDS:
                    name, attr = COMPONENT_FIELDS[component_type]
                    components[name] = component.get(attr)

        return GeocodingResult(
            latitude=latitude,
            longitude=longitude,
            formatted_address=result.get("formatted_address", ""),
            place_id=result.get("place_id"),
            city=components.get("city"),
            state=components.get("state"),
            zip_code=components.get("zip_code"),
        )

    def geocode(self, query: str) -> Optional[GeocodingResult]:
        """
        Geocode an address string, consulting the cache first.

        Returns:
            GeocodingResult if successful, None otherwise
        """
        if not query or not query.strip():
            return None
        query = query.strip()
        key = compute_text_key(query)

        cached = self._cache_get(key)
        if cached is not None:
            logger.debug(f"Geocode cache hit for '{query}'")
            return GeocodingResult.from_cache(cached.result) if cached.result else None

        if not self.enabled:
            return None

        answer = self._search(query)
        if answer is None:
            return None

        result = self._parse_result(query, answer["result"]) if answer["result"] else None
        if answer["result"] is None or result is not None:
            self._cache_put(key, query, result)
        if result is None:
            logger.info(f"{GEOCODE_FAILURE} no result for '{query}'")
        return result

    def geocode_payload(self, payload: Optional[Dict[str, Any]]) -> Optional[GeocodingResult]:
        """Geocode a normalized show payload; None when too vague to try."""
        query = build_geocode_query(payload)
        if not query:
            return None
        return self.geocode(query)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate the haversine distance between two points on Earth.

    Args:
        lat1, lng1: Coordinates of first point
        lat2, lng2: Coordinates of second point

    Returns:
        Distance in meters
    """
    R = 6371000  # Earth's radius in meters

    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    a = sin(dlat/2)**2 + cos(lat1) * cos(lat2) * sin(dlng/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1-a))

    return R * c

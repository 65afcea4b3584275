"""
Location resolver (process-wide caches).

Behavior:
- Map locations are fetched once per map slug and kept for the process lifetime.
- Locations that cannot be geocoded are removed from the cached list.
- Reverse geocoding is cached per coordinate rounded to 6 decimals.
- Unresolvable coordinates are not cached; transport failures return a
  partial result instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from ..errors import (
    GeocodeUnresolvedError,
    MapNotReadyError,
    NoResolvableLocationError,
    UnknownMapError,
)
from .geocode import GeocodeService, MapCatalog
from .maps import MAPS

logger = logging.getLogger(__name__)

LocationRecord = Dict[str, Any]

UNKNOWN_SUBDIVISION = "Unknown subdivision"

SUBDIVISION_KEYS = (
    "state",
    "province",
    "region",
    "territory",
    "state_district",
    "county",
    "administrative",
    "municipality",
    "district",
    "city",
    "town",
    "village",
    "locality",
    "borough",
    "suburb",
    "neighbourhood",
    "hamlet",
    "ISO3166-2-lvl4",
    "ISO3166-2-lvl6",
    "political",
)

US_TERRITORIES = (
    "us virgin islands",
    "puerto rico",
    "guam",
    "american samoa",
    "northern mariana islands",
)


@dataclass(frozen=True)
class LocationInfo:
    country: Optional[str]
    subdivision: Optional[str]
    raw_address: Optional[dict]
    partial: bool = False


# -----------------------------
# Helpers
# -----------------------------

def cache_key(lat: float, lng: float) -> str:
    return f"{lat:.6f},{lng:.6f}"


def pick_subdivision(address: dict) -> str:
    for key in SUBDIVISION_KEYS:
        value = address.get(key)
        if value:
            return value
    return UNKNOWN_SUBDIVISION


def apply_territory_rule(country: str, subdivision: str) -> str:
    """Rewrite "United States" to the territory named in the subdivision."""
    if country.lower() != "united states":
        return country.lower()

    lowered = subdivision.lower()
    for territory in US_TERRITORIES:
        if territory in lowered:
            return territory
    return country.lower()


def location_info_from_address(address: Optional[dict]) -> Optional[LocationInfo]:
    if not address:
        return None

    country = address.get("country")
    if not country:
        return None

    subdivision = pick_subdivision(address)
    return LocationInfo(
        country=apply_territory_rule(country, subdivision),
        subdivision=subdivision,
        raw_address=address,
    )


# -----------------------------
# Public API
# -----------------------------

class LocationResolver:
    def __init__(
        self,
        catalog: Optional[MapCatalog] = None,
        geocoder: Optional[GeocodeService] = None,
        maps: Optional[Dict[str, str]] = None,
    ):
        self.catalog = catalog or MapCatalog()
        self.geocoder = geocoder or GeocodeService()
        self.maps = MAPS if maps is None else maps

        self._map_cache: Dict[str, List[LocationRecord]] = {}
        self._location_cache: Dict[str, LocationInfo] = {}
        self._map_locks: Dict[str, asyncio.Lock] = {}

    # ---- map locations ----

    def _slug_for(self, map_name: str) -> str:
        slug = self.maps.get(map_name)
        if not slug:
            raise UnknownMapError(map_name)
        return slug

    async def locations_for_map(self, map_name: str) -> List[LocationRecord]:
        """
        Cached candidate list for a map.
        The returned list is the cache itself; use discard_location to edit it.
        """
        slug = self._slug_for(map_name)

        cached = self._map_cache.get(slug)
        if cached is not None:
            return cached

        lock = self._map_locks.setdefault(slug, asyncio.Lock())
        async with lock:
            cached = self._map_cache.get(slug)
            if cached is not None:
                return cached

            try:
                data = await self.catalog.fetch_locations(slug)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning("Failed to fetch map %s (%s): %s", map_name, slug, e)
                raise MapNotReadyError(map_name, "unavailable right now") from e

            if not isinstance(data, dict) or not data.get("ready"):
                raise MapNotReadyError(map_name)
            locations = data.get("locations")
            if not isinstance(locations, list) or not locations:
                raise MapNotReadyError(map_name)

            self._map_cache[slug] = locations
            logger.info("Cached %d locations for map %s", len(locations), map_name)
            return locations

    def cached_locations(self, map_name: str) -> List[LocationRecord]:
        slug = self.maps.get(map_name)
        return self._map_cache.get(slug, []) if slug else []

    def discard_location(
        self,
        map_name: str,
        location: LocationRecord,
        index: Optional[int] = None,
    ) -> bool:
        """
        Remove a bad location from the cached list of a map.

        `index` is a hint only: another task may have shrunk the list since
        it was taken, so it is bounds-checked and verified by identity.
        """
        slug = self.maps.get(map_name)
        locations = self._map_cache.get(slug) if slug else None
        if not locations:
            return False

        if index is not None and 0 <= index < len(locations) and locations[index] is location:
            del locations[index]
            return True

        for i, candidate in enumerate(locations):
            if candidate is location:
                del locations[i]
                return True
        return False

    # ---- geocoding ----

    async def resolve_country(self, lat: float, lng: float) -> Optional[LocationInfo]:
        key = cache_key(lat, lng)
        cached = self._location_cache.get(key)
        if cached is not None:
            return cached

        try:
            address = await self.geocoder.reverse_lookup(lat, lng)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Reverse geocoding failed for %s: %s", key, e)
            return LocationInfo(country=None, subdivision=None, raw_address=None, partial=True)

        info = location_info_from_address(address)
        if info is None:
            logger.debug("No country for %s", key)
            return None

        # Another task may have filled the slot while we were awaiting
        return self._location_cache.setdefault(key, info)

    async def require_country(self, location: LocationRecord) -> LocationInfo:
        info = await self.resolve_country(location["lat"], location["lng"])
        if info is None:
            raise GeocodeUnresolvedError(location["lat"], location["lng"])
        return info

    async def pick_location(self, map_name: str) -> tuple[LocationRecord, LocationInfo]:
        """
        Pick a random location of a map that resolves to a country.

        Unresolvable picks are discarded and selection retries until the list
        is empty. A partial (transport failure) result is returned as-is so
        the caller can decide; the location is kept.
        """
        locations = await self.locations_for_map(map_name)

        while locations:
            index = random.randrange(len(locations))
            location = locations[index]

            try:
                return location, await self.require_country(location)
            except GeocodeUnresolvedError as e:
                logger.info("%s. Deleting from map %s.", e, map_name)
                self.discard_location(map_name, location, index)

        raise NoResolvableLocationError(map_name)

    async def preload(self, map_names: Iterable[str]) -> int:
        """Warm both caches; returns the number of cached coordinates."""
        logger.info("Preloading known locations...")

        for map_name in map_names:
            try:
                locations = await self.locations_for_map(map_name)
            except (UnknownMapError, MapNotReadyError) as e:
                logger.error("Error loading map %s: %s", map_name, e)
                continue

            for i in range(len(locations) - 1, -1, -1):
                if i >= len(locations):
                    continue
                location = locations[i]
                if cache_key(location["lat"], location["lng"]) in self._location_cache:
                    continue

                try:
                    await self.require_country(location)
                except GeocodeUnresolvedError as e:
                    logger.info("%s. Deleting from map %s.", e, map_name)
                    self.discard_location(map_name, location, i)

        logger.info("Location cache preloaded with %d entries", len(self._location_cache))
        return len(self._location_cache)

    async def close(self) -> None:
        await self.catalog.close()
        await self.geocoder.close()

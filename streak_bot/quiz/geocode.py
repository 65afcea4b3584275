# streak_bot/quiz/geocode.py
"""
HTTP collaborators of the location resolver.

- MapCatalog:     GET {MAP_CATALOG_URL}/mapLocations/{slug}
- GeocodeService: Nominatim-style reverse lookup, English names
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import aiohttp

from streak_bot.config import GEOCODE_URL, GEOCODE_USER_AGENT, MAP_CATALOG_URL

logger = logging.getLogger(__name__)

_TIMEOUT = aiohttp.ClientTimeout(total=20)


class _HttpClient:
    """Owns one lazily created aiohttp session."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=_TIMEOUT)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class MapCatalog(_HttpClient):
    def __init__(self, base_url: str = MAP_CATALOG_URL, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(session)
        self.base_url = base_url.rstrip("/")

    async def fetch_locations(self, slug: str) -> Dict[str, Any]:
        """Return the raw catalog payload: {"ready": bool, "locations": [...]}."""
        url = f"{self.base_url}/mapLocations/{slug}"
        async with self._get_session().get(url) as resp:
            resp.raise_for_status()
            return await resp.json()


class GeocodeService(_HttpClient):
    def __init__(
        self,
        url: str = GEOCODE_URL,
        user_agent: str = GEOCODE_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(session)
        self.url = url
        self.headers = {
            "User-Agent": user_agent,
            "Accept-Language": "en",
        }

    async def reverse_lookup(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        """Return the `address` block of the reverse-geocoding answer, if any."""
        params = {
            "format": "json",
            "lat": str(lat),
            "lon": str(lng),
            "zoom": "5",
            "addressdetails": "1",
        }
        async with self._get_session().get(self.url, params=params, headers=self.headers) as resp:
            resp.raise_for_status()
            data = await resp.json()

        if not isinstance(data, dict):
            return None
        return data.get("address")

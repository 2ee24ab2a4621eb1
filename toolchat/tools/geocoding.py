"""
Geocoding tools — address to coordinates and back.

Talks to a Nominatim-style geocoder (geocode.maps.co by default):
  GET {url}search?q=...&format=json&api_key=...
  GET {url}reverse?lat=...&lon=...&api_key=...

An empty result set for a detailed address is retried once with just the
first comma-delimited segment, after a short pause (the free tier
rate-limits at about one request per second).
"""

import asyncio
import logging

import httpx

from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import FunctionTool, Toolkit

logger = logging.getLogger(__name__)


def _is_empty(body: str) -> bool:
    return not body or body.strip() in ("", "[]")


class GeocodingTool(Toolkit):
    """Forward and reverse geocoding over HTTP."""

    def __init__(
        self,
        url: str = "https://geocode.maps.co/",
        api_key: str = "",
        retry_delay: float = 1.0,
        timeout: float = 30,
    ):
        self.url = url if url.endswith("/") else url + "/"
        self.api_key = api_key
        self.retry_delay = retry_delay
        self.timeout = timeout
        logger.info("GeocodingTool initialized (url=%s)", self.url)

    async def _get(self, path: str, params: dict) -> httpx.Response:
        if self.api_key:
            params = {**params, "api_key": self.api_key}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(f"{self.url}{path}", params=params)

    async def coordinates_of(self, address: str) -> str:
        """Geocode an address. Returns the geocoder's JSON body."""
        try:
            query = address.replace(",", " ").strip()
            logger.debug("Geocoding '%s'", query)
            resp = await self._get("search", {"q": query, "format": "json"})
            if resp.status_code != 200:
                return f"Error: HTTP {resp.status_code}: {resp.text[:200]}"

            if _is_empty(resp.text):
                simplified = address.split(",")[0].strip()
                logger.info(
                    "No geocoding results for '%s', retrying with '%s' in %.1fs",
                    address, simplified, self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)
                resp = await self._get("search", {"q": simplified, "format": "json"})
                if resp.status_code != 200:
                    return f"Error: HTTP {resp.status_code}: {resp.text[:200]}"
                if _is_empty(resp.text):
                    return f"Error: No results found for address: {address}"

            return resp.text
        except Exception as e:
            logger.error("Geocoding failed for '%s': %s", address, e)
            return f"Error: {e}"

    async def address_of(self, latitude: float, longitude: float) -> str:
        """Reverse-geocode a coordinate pair. Returns the geocoder's JSON body."""
        try:
            resp = await self._get("reverse", {"lat": latitude, "lon": longitude})
            if resp.status_code != 200:
                return f"Error: HTTP {resp.status_code}: {resp.text[:200]}"
            return resp.text
        except Exception as e:
            logger.error("Reverse geocoding failed for (%s, %s): %s", latitude, longitude, e)
            return f"Error: {e}"

    def tools(self) -> list[FunctionTool]:
        return [
            FunctionTool(
                ToolDescriptor(
                    "coordinates_of",
                    "Get geographic coordinates for an address.",
                    (ToolParameter("address", "string", "The address to geocode"),),
                ),
                self.coordinates_of,
            ),
            FunctionTool(
                ToolDescriptor(
                    "address_of",
                    "Get address for geographic coordinates.",
                    (
                        ToolParameter("latitude", "number", "The latitude coordinate"),
                        ToolParameter("longitude", "number", "The longitude coordinate"),
                    ),
                ),
                self.address_of,
            ),
        ]

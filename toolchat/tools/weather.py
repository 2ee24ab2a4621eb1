"""
Weather tools — Open-Meteo forecast and recent history.

Open-Meteo is free and keyless. It forecasts up to 16 days ahead and
serves up to 92 past days from the same endpoint (past_days).
Units are imperial: fahrenheit, mph, inch.

Out-of-range day counts are answered locally, without a request.
"""

import logging

import httpx

from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import FunctionTool, Toolkit

logger = logging.getLogger(__name__)

MAX_FORECAST_DAYS = 16
MAX_PAST_DAYS = 92

FORECAST_BOUNDS_ERROR = (
    f"Day count is out of bounds. Days should be between 1 and {MAX_FORECAST_DAYS}"
)
PAST_BOUNDS_ERROR = (
    f"Day count is out of bounds. Days in past should be between 1 and {MAX_PAST_DAYS}"
)

_UNITS = {
    "temperature_unit": "fahrenheit",
    "wind_speed_unit": "mph",
    "precipitation_unit": "inch",
}

_CURRENT_FIELDS = ",".join([
    "temperature_2m", "relative_humidity_2m", "apparent_temperature",
    "precipitation", "rain", "showers", "snowfall", "weather_code",
    "wind_speed_10m", "wind_direction_10m", "wind_gusts_10m",
])
_HOURLY_FIELDS = ",".join([
    "temperature_2m", "relative_humidity_2m", "apparent_temperature",
    "precipitation_probability", "precipitation", "rain", "showers", "snowfall",
    "weather_code", "cloud_cover", "wind_speed_10m", "uv_index",
])
_DAILY_FIELDS = ",".join([
    "weather_code", "temperature_2m_max", "temperature_2m_min",
    "apparent_temperature_max", "apparent_temperature_min", "sunrise", "sunset",
    "daylight_duration", "uv_index_max", "precipitation_sum", "rain_sum",
    "showers_sum", "snowfall_sum", "precipitation_hours",
    "wind_speed_10m_max", "wind_gusts_10m_max",
])

_LAT = ToolParameter("latitude", "number", "The latitude coordinate")
_LON = ToolParameter("longitude", "number", "The longitude coordinate")


class WeatherTool(Toolkit):
    """Forecast and recent weather for a coordinate pair."""

    def __init__(self, url: str = "https://api.open-meteo.com/v1/forecast", timeout: float = 30):
        self.url = url.rstrip("/")
        self.timeout = timeout
        logger.info("WeatherTool initialized (url=%s)", self.url)

    async def _fetch(self, params: dict) -> str:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(self.url, params=params)
        if resp.status_code != 200:
            return f"Error: HTTP {resp.status_code}: {resp.text[:200]}"
        return resp.text

    async def forecast(self, latitude: float, longitude: float, days: int) -> str:
        if days < 1 or days > MAX_FORECAST_DAYS:
            return FORECAST_BOUNDS_ERROR
        try:
            return await self._fetch({
                "latitude": latitude,
                "longitude": longitude,
                "current": _CURRENT_FIELDS,
                "hourly": _HOURLY_FIELDS,
                "forecast_days": days,
                **_UNITS,
            })
        except Exception as e:
            logger.error("Forecast failed for (%s, %s): %s", latitude, longitude, e)
            return f"Error: {e}"

    async def recent_weather(self, latitude: float, longitude: float, days_in_past: int) -> str:
        if days_in_past < 1 or days_in_past > MAX_PAST_DAYS:
            return PAST_BOUNDS_ERROR
        try:
            return await self._fetch({
                "latitude": latitude,
                "longitude": longitude,
                "daily": _DAILY_FIELDS,
                "past_days": days_in_past,
                **_UNITS,
            })
        except Exception as e:
            logger.error("Recent weather failed for (%s, %s): %s", latitude, longitude, e)
            return f"Error: {e}"

    def tools(self) -> list[FunctionTool]:
        return [
            FunctionTool(
                ToolDescriptor(
                    "forecast",
                    "Gets the forecast for a given latitude, longitude and number of days. "
                    f"Can forecast up to {MAX_FORECAST_DAYS} days in the future.",
                    (_LAT, _LON, ToolParameter("days", "integer", "Number of days")),
                ),
                self.forecast,
            ),
            FunctionTool(
                ToolDescriptor(
                    "recent_weather",
                    "Gets the weather details for recent previous weather at a given location. "
                    "This can go a number of days up to 3 months into the past.",
                    (_LAT, _LON, ToolParameter("days_in_past", "integer", "Number of days in the past")),
                ),
                self.recent_weather,
            ),
        ]

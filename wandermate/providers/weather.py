# providers/weather.py
"""
Weather Providers

- StaticWeatherProvider: fixed report for the default city (no credentials)
- OpenWeatherProvider: OpenWeatherMap current conditions
"""

from typing import Any, Dict, Optional

import httpx

from ..errors import FatalProviderError
from ..schemas.agent_schemas import GeoPoint
from .base import HttpProvider, WeatherProvider


class StaticWeatherProvider(WeatherProvider):
    """Fixed report, same shape as the live provider."""

    name = "weather"

    def __init__(self, default_city: str = "Varanasi"):
        self.default_city = default_city

    async def current(self, city: Optional[str] = None, location: Optional[GeoPoint] = None) -> Dict[str, Any]:
        return {
            "city": city or self.default_city,
            "temperature_c": 28,
            "feels_like_c": 31,
            "condition": "Partly cloudy",
            "humidity": 65,
            "wind_kmh": 12,
            "description": "Perfect weather for exploring ghats and temples",
            "source": "static",
        }


class OpenWeatherProvider(HttpProvider, WeatherProvider):
    name = "weather"

    def __init__(
        self,
        api_key: str,
        default_city: str = "Varanasi",
        base_url: str = "https://api.openweathermap.org/data/2.5",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, timeout=timeout, client=client)
        self._api_key = api_key
        self.default_city = default_city

    async def current(self, city: Optional[str] = None, location: Optional[GeoPoint] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"appid": self._api_key, "units": "metric"}
        if city:
            params["q"] = city
        elif location:
            params["lat"] = location.lat
            params["lon"] = location.lng
        else:
            params["q"] = self.default_city

        data = await self._request("GET", "/weather", params=params)

        main = data.get("main") or {}
        if "temp" not in main:
            raise FatalProviderError(self.name, "weather response missing temperature")
        conditions = data.get("weather") or [{}]
        wind = data.get("wind") or {}

        return {
            "city": data.get("name") or city or self.default_city,
            "temperature_c": round(main["temp"]),
            "feels_like_c": round(main.get("feels_like", main["temp"])),
            "condition": (conditions[0].get("description") or conditions[0].get("main") or "").capitalize(),
            "humidity": main.get("humidity"),
            "wind_kmh": round(wind.get("speed", 0) * 3.6),
            "source": "openweathermap",
        }

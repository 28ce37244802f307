# providers/navigation.py
"""
Google Directions navigation provider
"""

import re
from typing import Any, Dict, Optional

import httpx

from ..errors import FatalProviderError, RetryableProviderError
from ..schemas.agent_schemas import GeoPoint
from .base import HttpProvider, NavigationProvider

_TAG_RE = re.compile(r"<[^>]+>")

# Directions API statuses that are worth another attempt
_RETRYABLE_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}

TRAVEL_MODES = ("walking", "driving", "bicycling", "transit")


class GoogleDirectionsProvider(HttpProvider, NavigationProvider):
    name = "navigation"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://maps.googleapis.com/maps/api",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, timeout=timeout, client=client)
        self._api_key = api_key

    async def route(self, origin: GeoPoint, destination: str, mode: str = "walking") -> Dict[str, Any]:
        if mode not in TRAVEL_MODES:
            mode = "walking"

        data = await self._request(
            "GET",
            "/directions/json",
            params={
                "origin": f"{origin.lat},{origin.lng}",
                "destination": destination,
                "mode": mode,
                "key": self._api_key,
            }
        )

        status = data.get("status", "OK")
        if status in _RETRYABLE_STATUSES:
            raise RetryableProviderError(self.name, f"directions status {status}")
        if status != "OK" or not data.get("routes"):
            raise FatalProviderError(self.name, f"no route to {destination} ({status})")

        route = data["routes"][0]
        leg = route["legs"][0]
        return {
            "destination": destination,
            "mode": mode,
            "distance": leg["distance"]["text"],
            "duration": leg["duration"]["text"],
            "steps": [
                {
                    "instruction": _TAG_RE.sub("", step.get("html_instructions", "")),
                    "distance": step["distance"]["text"],
                    "duration": step["duration"]["text"],
                    "maneuver": step.get("maneuver"),
                }
                for step in leg.get("steps", [])
            ],
            "polyline": route.get("overview_polyline", {}).get("points"),
        }

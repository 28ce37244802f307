# providers/base.py
"""
Capability Provider Contracts

Narrow request/response contracts the orchestrator consumes:
- BookingProvider: search offerings, book one
- PaymentProvider: create orders, verify payment signatures
- WeatherProvider / NavigationProvider: read-only lookups
- MessageTransport: deliver a composed message to a phone number

Plus HttpProvider, the shared httpx base that maps HTTP failures onto
RetryableProviderError / FatalProviderError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..config import ProviderReadiness
from ..errors import FatalProviderError, ProviderNotConfigured, RetryableProviderError
from ..schemas.agent_schemas import ContactInfo, GeoPoint, ReplyButton

# Status codes worth retrying
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


# ============================================
# Contracts
# ============================================

class BookingProvider(ABC):
    name = "booking"

    @abstractmethod
    async def search(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Return offerings matching the filters."""

    @abstractmethod
    async def book(
        self,
        offering_id: str,
        date: str,
        guest_count: int,
        contact: Optional[ContactInfo] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return {booking_id, confirmation_code, amount, currency, status}."""


class PaymentProvider(ABC):
    name = "payment"

    @abstractmethod
    async def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return {order_id, amount, currency}. Amount is in major units."""

    @abstractmethod
    def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Synchronous, deterministic signature check."""


class WeatherProvider(ABC):
    name = "weather"

    @abstractmethod
    async def current(self, city: Optional[str] = None, location: Optional[GeoPoint] = None) -> Dict[str, Any]:
        """Return a read-only weather report."""


class NavigationProvider(ABC):
    name = "navigation"

    @abstractmethod
    async def route(self, origin: GeoPoint, destination: str, mode: str = "walking") -> Dict[str, Any]:
        """Return {distance, duration, steps, polyline}."""


class MessageTransport(ABC):
    name = "messaging"

    @abstractmethod
    async def send(
        self,
        destination: str,
        text: str,
        quick_replies: Optional[List[str]] = None,
        buttons: Optional[List[ReplyButton]] = None
    ) -> bool:
        """Deliver one message. True on success."""


@dataclass
class ProviderSet:
    """Constructor-injected provider handles. None means not configured."""
    booking: Optional[BookingProvider] = None
    payment: Optional[PaymentProvider] = None
    weather: Optional[WeatherProvider] = None
    navigation: Optional[NavigationProvider] = None
    transport: Optional[MessageTransport] = None

    def readiness(self) -> ProviderReadiness:
        readiness = ProviderReadiness()
        for name, provider in (
            ("booking", self.booking),
            ("payment", self.payment),
            ("weather", self.weather),
            ("navigation", self.navigation),
            ("messaging", self.transport),
        ):
            readiness.ready[name] = provider is not None
            if provider is None:
                readiness.issues[name] = ProviderNotConfigured(name)
        return readiness

    async def aclose(self):
        """Close the HTTP clients of every provider that owns one."""
        closed = set()
        for provider in (self.booking, self.payment, self.weather, self.navigation, self.transport):
            if provider is None or id(provider) in closed or not hasattr(provider, "aclose"):
                continue
            closed.add(id(provider))
            await provider.aclose()
        logger.info(f"Closed {len(closed)} provider client(s)")


# ============================================
# Shared HTTP base
# ============================================

class HttpProvider:
    """Base for httpx-backed providers with shared error mapping."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        **client_kwargs
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout, **client_kwargs)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Make an HTTP request and return parsed JSON.

        Raises:
            RetryableProviderError: timeouts, connection errors, 408/429/5xx
            FatalProviderError: other 4xx responses or undecodable bodies
        """
        url = f"{self.base_url}{path}"

        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers
            )
        except httpx.TimeoutException as e:
            raise RetryableProviderError(self.name, f"timeout calling {path}") from e
        except httpx.RequestError as e:
            raise RetryableProviderError(self.name, f"request failed: {e}") from e

        if response.status_code >= 400:
            error_text = response.text[:300] if response.text else ""
            message = f"API returned error {response.status_code}: {error_text}"
            if response.status_code in RETRYABLE_STATUS_CODES:
                raise RetryableProviderError(self.name, message)
            raise FatalProviderError(self.name, message)

        try:
            return response.json()
        except ValueError as e:
            raise FatalProviderError(self.name, "response was not valid JSON") from e

    async def aclose(self):
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning(f"{self.name}: error closing HTTP client: {e}")

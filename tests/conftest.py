"""
Shared fixtures: fake providers, a fixed clock and an agent factory.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from wandermate.agents.tool_dispatcher import ToolDispatcher
from wandermate.agents.travel_agent import TravelAgent
from wandermate.channels.channel_adapter import ChannelAdapter
from wandermate.errors import ProviderError
from wandermate.interfaces.session_store import SessionStore
from wandermate.providers.base import MessageTransport, NavigationProvider, PaymentProvider, ProviderSet
from wandermate.providers.booking import InMemoryTourCatalog
from wandermate.providers.payment import sign_payment, verify_payment_signature
from wandermate.providers.weather import StaticWeatherProvider
from wandermate.schemas.agent_schemas import GeoPoint

# Monday
FIXED_NOW = datetime(2025, 10, 20, 9, 0, tzinfo=timezone.utc)
PAYMENT_SECRET = "test_secret"


class FakePaymentProvider(PaymentProvider):
    """Creates sequential orders; fail_with is raised by create_order while set."""

    name = "payment"

    def __init__(self, fail_with: Optional[ProviderError] = None, secret: str = PAYMENT_SECRET):
        self.fail_with = fail_with
        self.secret = secret
        self.orders: List[Dict[str, Any]] = []
        self.create_calls = 0

    async def create_order(self, amount, currency, receipt, idempotency_key=None):
        self.create_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        order = {
            "order_id": f"order_{len(self.orders) + 1}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }
        self.orders.append(order)
        return order

    def verify(self, order_id, payment_id, signature):
        return verify_payment_signature(order_id, payment_id, signature, self.secret)

    def sign(self, order_id: str, payment_id: str) -> str:
        return sign_payment(order_id, payment_id, self.secret)


class FakeNavigationProvider(NavigationProvider):
    name = "navigation"

    def __init__(self):
        self.calls = []

    async def route(self, origin, destination, mode="walking"):
        self.calls.append((origin, destination, mode))
        return {
            "destination": destination,
            "mode": mode,
            "distance": "1.2 km",
            "duration": "15 mins",
            "steps": [{"instruction": "Head south on Dashashwamedh Rd", "distance": "0.5 km"}],
            "polyline": None,
        }


class FakeTransport(MessageTransport):
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    async def send(self, destination, text, quick_replies=None, buttons=None):
        self.sent.append({"to": destination, "text": text, "buttons": buttons})
        return self.ok


@pytest.fixture
def catalog():
    return InMemoryTourCatalog()


@pytest.fixture
def payment():
    return FakePaymentProvider()


@pytest.fixture
def navigation():
    return FakeNavigationProvider()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def providers(catalog, payment, navigation, transport):
    return ProviderSet(
        booking=catalog,
        payment=payment,
        weather=StaticWeatherProvider(),
        navigation=navigation,
        transport=transport,
    )


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def make_agent(providers, no_sleep):
    """Factory so tests can swap providers or timeouts."""

    def _make(provider_set: Optional[ProviderSet] = None, turn_timeout: float = 5.0, **kwargs) -> TravelAgent:
        provider_set = provider_set or providers
        return TravelAgent(
            provider_set,
            session_store=kwargs.pop("session_store", SessionStore(lock_timeout=1.0)),
            dispatcher=ToolDispatcher(provider_set, max_attempts=3, sleep=no_sleep),
            channel_adapter=ChannelAdapter(provider_set.transport),
            turn_timeout=turn_timeout,
            clock=lambda: FIXED_NOW,
            **kwargs
        )

    return _make


@pytest.fixture
def agent(make_agent):
    return make_agent()


@pytest.fixture
def ghat_location():
    return GeoPoint(lat=25.3109, lng=83.0107)


@pytest.fixture
def fixed_now():
    return FIXED_NOW

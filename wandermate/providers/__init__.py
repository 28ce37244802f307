# providers/__init__.py
"""
Capability Providers Package

Contracts and concrete adapters the agent dispatches to:
- booking: InMemoryTourCatalog, HttpBookingProvider
- payment: RazorpayPaymentProvider
- weather: StaticWeatherProvider, OpenWeatherProvider
- navigation: GoogleDirectionsProvider
- whatsapp: WhatsAppCloudTransport
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .base import (
        BookingProvider, PaymentProvider, WeatherProvider, NavigationProvider,
        MessageTransport, ProviderSet, HttpProvider
    )
    from .booking import InMemoryTourCatalog, HttpBookingProvider, BOAT_TOURS
    from .payment import RazorpayPaymentProvider, sign_payment, verify_payment_signature
    from .weather import StaticWeatherProvider, OpenWeatherProvider
    from .navigation import GoogleDirectionsProvider
    from .whatsapp import WhatsAppCloudTransport

__all__ = [
    "BookingProvider",
    "PaymentProvider",
    "WeatherProvider",
    "NavigationProvider",
    "MessageTransport",
    "ProviderSet",
    "HttpProvider",
    "InMemoryTourCatalog",
    "HttpBookingProvider",
    "BOAT_TOURS",
    "RazorpayPaymentProvider",
    "sign_payment",
    "verify_payment_signature",
    "StaticWeatherProvider",
    "OpenWeatherProvider",
    "GoogleDirectionsProvider",
    "WhatsAppCloudTransport"
]

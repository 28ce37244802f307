# providers/booking.py
"""
Booking Providers

- InMemoryTourCatalog: the Varanasi boat-tour catalog, used when no
  booking service is configured
- HttpBookingProvider: forwards search/book to BOOKING_SERVICE_URL
"""

import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..errors import FatalProviderError
from ..schemas.agent_schemas import ContactInfo
from .base import BookingProvider, HttpProvider


# ============================================
# Default catalog
# ============================================

BOAT_TOURS: List[Dict[str, Any]] = [
    {
        "id": "sunrise-ghat",
        "name": "Sunrise Ghat Experience",
        "type": "sunrise",
        "duration": "2 hours",
        "price": 1200,
        "rating": 4.8,
        "max_guests": 8,
        "departure_time": "5:30 AM",
        "highlights": ["Sunrise over Ganges", "Morning Aarti", "Photography spots", "Local guide"],
    },
    {
        "id": "sunset-ghat",
        "name": "Sunset Ghat Serenity",
        "type": "sunset",
        "duration": "2.5 hours",
        "price": 1500,
        "rating": 4.9,
        "max_guests": 10,
        "departure_time": "5:00 PM",
        "highlights": ["Sunset views", "Evening Aarti", "Floating diyas", "Cultural insights"],
    },
    {
        "id": "day-exploration",
        "name": "Day Ghat Discovery",
        "type": "day",
        "duration": "3 hours",
        "price": 1800,
        "rating": 4.7,
        "max_guests": 12,
        "departure_time": "9:00 AM",
        "highlights": ["Ghat exploration", "Cultural insights", "Local interactions", "Historical context"],
    },
    {
        "id": "evening-mystique",
        "name": "Evening Mystique",
        "type": "evening",
        "duration": "2 hours",
        "price": 1400,
        "rating": 4.6,
        "max_guests": 8,
        "departure_time": "6:30 PM",
        "highlights": ["Evening atmosphere", "Light displays", "Spiritual energy", "Peaceful experience"],
    },
    {
        "id": "private-luxury",
        "name": "Private Luxury Experience",
        "type": "private",
        "duration": "4 hours",
        "price": 3500,
        "rating": 5.0,
        "max_guests": 4,
        "departure_time": "Flexible",
        "highlights": ["Private boat", "Personal guide", "Premium amenities", "Customized experience"],
    },
    {
        "id": "photography-special",
        "name": "Photography Special Tour",
        "type": "sunrise",
        "duration": "3.5 hours",
        "price": 2200,
        "rating": 4.9,
        "max_guests": 6,
        "departure_time": "5:00 AM",
        "highlights": ["Photography guidance", "Best photo spots", "Golden hour timing", "Professional tips"],
    },
]


class InMemoryTourCatalog(BookingProvider):
    """
    Boat-tour catalog held in memory.

    Bookings are keyed by idempotency key, so replaying a booking with the
    same key returns the original confirmation.
    """

    name = "booking"

    def __init__(self, tours: Optional[List[Dict[str, Any]]] = None, currency: str = "INR"):
        self.tours = {tour["id"]: dict(tour) for tour in (tours or BOAT_TOURS)}
        self.currency = currency
        self._bookings: Dict[str, Dict[str, Any]] = {}
        self.book_calls = 0

    def get_tour(self, tour_id: str) -> Optional[Dict[str, Any]]:
        return self.tours.get(tour_id)

    async def search(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        results = list(self.tours.values())

        tour_type = filters.get("type")
        if tour_type and tour_type != "all":
            results = [t for t in results if t["type"] == tour_type]

        price_range = filters.get("price_range")
        if price_range:
            low, high = price_range
            results = [t for t in results if low <= t["price"] <= high]

        guests = filters.get("guests")
        if guests:
            results = [t for t in results if t["max_guests"] >= int(guests)]

        return sorted(results, key=lambda t: -t["rating"])

    async def book(
        self,
        offering_id: str,
        date: str,
        guest_count: int,
        contact: Optional[ContactInfo] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        self.book_calls += 1

        if idempotency_key and idempotency_key in self._bookings:
            return dict(self._bookings[idempotency_key])

        tour = self.tours.get(offering_id)
        if not tour:
            raise FatalProviderError(self.name, f"Tour not found: {offering_id}")
        if guest_count > tour["max_guests"]:
            raise FatalProviderError(
                self.name,
                f"{tour['name']} takes at most {tour['max_guests']} guests"
            )

        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        booking = {
            "booking_id": f"BOAT-{stamp}-{secrets.token_hex(4)}",
            "confirmation_code": secrets.token_hex(3).upper(),
            "offering_id": offering_id,
            "offering_name": tour["name"],
            "date": date,
            "guest_count": guest_count,
            "amount": float(tour["price"] * guest_count),
            "currency": self.currency,
            "status": "confirmed",
        }
        if idempotency_key:
            self._bookings[idempotency_key] = booking

        logger.info(f"Booked {offering_id} for {guest_count} on {date}: {booking['booking_id']}")
        return dict(booking)


# ============================================
# Remote booking service
# ============================================

class HttpBookingProvider(HttpProvider, BookingProvider):
    """Booking service reached over HTTP."""

    name = "booking"

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(base_url, timeout=timeout, client=client)

    async def search(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        params = {k: v for k, v in filters.items() if v is not None and not isinstance(v, (list, tuple))}
        if filters.get("price_range"):
            params["minPrice"], params["maxPrice"] = filters["price_range"]
        data = await self._request("GET", "/tours", params=params)
        return data.get("data", [])

    async def book(
        self,
        offering_id: str,
        date: str,
        guest_count: int,
        contact: Optional[ContactInfo] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        body = {
            "tourId": offering_id,
            "date": date,
            "guests": guest_count,
        }
        if contact:
            body.update(contact.model_dump(exclude_none=True))

        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._request("POST", "/bookings", json=body, headers=headers)

        booking = data.get("data", data)
        if not data.get("success", True) or not booking.get("bookingId", booking.get("booking_id")):
            raise FatalProviderError(self.name, data.get("message", "booking rejected"))

        booking_id = booking.get("bookingId", booking.get("booking_id"))
        return {
            "booking_id": booking_id,
            "confirmation_code": booking.get("confirmationCode", booking_id),
            "offering_id": offering_id,
            "date": date,
            "guest_count": guest_count,
            "amount": float(booking.get("totalAmount", booking.get("amount", 0))),
            "currency": booking.get("currency", "INR"),
            "status": booking.get("status", "confirmed"),
        }

# providers/payment.py
"""
Razorpay Payment Provider

Orders are created through the Razorpay REST API (basic auth, amounts in
paise). Verification is local: HMAC-SHA256 over "order_id|payment_id"
keyed with the key secret, compared in constant time.
"""

import hashlib
import hmac
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from ..errors import FatalProviderError
from .base import HttpProvider, PaymentProvider


def sign_payment(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 signature Razorpay returns for a captured payment."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Pure check; any change to an input makes it fail."""
    if not (order_id and payment_id and signature and secret):
        return False
    expected = sign_payment(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


class RazorpayPaymentProvider(HttpProvider, PaymentProvider):
    name = "payment"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if client is None:
            client = httpx.AsyncClient(timeout=timeout, auth=(key_id, key_secret))
        super().__init__(base_url, timeout=timeout, client=client)
        self.key_id = key_id
        self._key_secret = key_secret

    async def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        if amount is None or amount <= 0:
            raise FatalProviderError(self.name, f"Invalid amount provided: {amount}")

        body = {
            "amount": int(round(amount * 100)),  # paise
            "currency": currency,
            "receipt": receipt[:40],
            "notes": {"idempotency_key": idempotency_key or ""},
        }

        data = await self._find_open_order(body["receipt"], body["amount"])
        if data is not None:
            logger.info(f"Reusing open payment order {data.get('id')} for receipt {body['receipt']}")
        else:
            data = await self._request(
                "POST",
                "/orders",
                json=body,
                headers={"Content-Type": "application/json"}
            )
            logger.info(f"Created payment order {data.get('id')} for {amount} {currency}")

        order_id = data.get("id")
        if not order_id:
            raise FatalProviderError(self.name, "order response missing id")

        return {
            "order_id": order_id,
            "amount": data.get("amount", body["amount"]) / 100,
            "currency": data.get("currency", currency),
            "receipt": data.get("receipt", body["receipt"]),
            "status": data.get("status", "created"),
            "key_id": self.key_id,
        }

    async def _find_open_order(self, receipt: str, amount_paise: int) -> Optional[Dict[str, Any]]:
        """
        Razorpay has no idempotency header for orders, so a retried create
        first looks for an unpaid order already opened for the same receipt
        and amount. The lookup and the create are not atomic: two creates
        racing on one receipt can still open two orders.
        """
        data = await self._request("GET", "/orders", params={"receipt": receipt})
        for order in data.get("items") or []:
            if order.get("status") == "created" and order.get("amount") == amount_paise:
                return order
        return None

    def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_payment_signature(order_id, payment_id, signature, self._key_secret)

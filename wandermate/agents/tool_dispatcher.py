# agents/tool_dispatcher.py
"""
Tool Dispatcher
Maps an approved Intent to an ordered chain of provider calls and runs it:
- deterministic idempotency keys, cached successes, shared in-flight calls
- bounded exponential backoff on RetryableProviderError / transport errors
- a failed step stops the chain, later steps are recorded as SKIPPED

Provider errors never escape execute(); every outcome is a ToolCallResult.
"""

import asyncio
import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
from loguru import logger

from ..errors import FatalProviderError, ProviderError, ProviderNotConfigured, RetryableProviderError
from ..providers.base import ProviderSet
from ..schemas.agent_schemas import GeoPoint, Intent, ToolCall, ToolCallResult, ToolStatus

Invoker = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass
class DispatchContext:
    """Session slice a dispatch may use."""
    user_location: Optional[GeoPoint] = None
    default_city: str = "Varanasi"


@dataclass
class _Step:
    provider: str
    operation: str
    build_request: Callable[[List[ToolCallResult]], Dict[str, Any]]
    invoke: Optional[Invoker] = None
    error: Optional[ProviderError] = None


def make_idempotency_key(session_id: str, kind: str, slots: Dict[str, Any], step: int) -> str:
    """SHA-256 over canonical JSON of (session, intent kind, slots, step)."""
    canonical = json.dumps(
        {"session_id": session_id, "kind": kind, "slots": slots, "step": step},
        sort_keys=True,
        separators=(",", ":"),
        default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ToolDispatcher:
    """
    Executes provider calls for approved intents.

    Args:
        providers: Injected providers; None entries are unconfigured
        max_attempts: Attempts per call for retryable failures
        base_delay: First backoff delay in seconds
        max_delay: Backoff ceiling in seconds
        sleep: Awaitable sleep, replaceable in tests
        completed_ttl: Seconds a successful result is replayed for its key
        max_completed: Most successful results kept; the oldest go first
        clock: Monotonic clock, replaceable in tests
    """

    def __init__(
        self,
        providers: ProviderSet,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        completed_ttl: float = 24 * 3600,
        max_completed: int = 10000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.providers = providers
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self.completed_ttl = completed_ttl
        self.max_completed = max_completed
        self._clock = clock

        self._completed: "OrderedDict[str, Tuple[float, ToolCallResult]]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Future] = {}

    def backoff_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    # ============================================
    # Public API
    # ============================================

    async def execute(
        self,
        intent: Intent,
        session_id: str,
        context: Optional[DispatchContext] = None,
        results: Optional[List[ToolCallResult]] = None
    ) -> List[ToolCallResult]:
        """
        Run the provider chain for an intent.

        Args:
            intent: Approved, fully specified intent
            session_id: Owning session (part of the idempotency key)
            context: Session slice (location, default city)
            results: List to append to, so callers keep partial progress on cancellation

        Returns:
            One ToolCallResult per chain step, in order
        """
        context = context or DispatchContext()
        results = results if results is not None else []
        steps = self._plan(intent, context)
        slots = intent.slot_values()
        chain_failed = False

        for index, step in enumerate(steps):
            key = make_idempotency_key(session_id, intent.kind, slots, index)

            if chain_failed:
                results.append(ToolCallResult(
                    provider=step.provider,
                    operation=step.operation,
                    idempotency_key=key,
                    status=ToolStatus.SKIPPED,
                    reason="previous step failed"
                ))
                continue

            call = ToolCall(
                provider=step.provider,
                operation=step.operation,
                request=step.build_request(results),
                idempotency_key=key
            )

            try:
                result = await self._run(call, step)
            except asyncio.CancelledError:
                results.append(ToolCallResult(
                    provider=call.provider,
                    operation=call.operation,
                    idempotency_key=key,
                    request=call.request,
                    status=ToolStatus.RETRYABLE_FAILURE,
                    reason="interrupted by turn timeout"
                ))
                raise

            results.append(result)
            if not result.succeeded:
                chain_failed = True

        return results

    # ============================================
    # Planning
    # ============================================

    def _missing(self, name: str) -> ProviderNotConfigured:
        return ProviderNotConfigured(name)

    def _plan(self, intent: Intent, context: DispatchContext) -> List[_Step]:
        providers = self.providers
        kind = intent.kind

        if kind == "book_tour":
            booking, payment = providers.booking, providers.payment
            return [
                _Step(
                    provider="booking",
                    operation="book",
                    build_request=lambda _: {
                        "offering_id": intent.tour_id,
                        "date": intent.date,
                        "guest_count": intent.guest_count,
                        "contact": intent.contact.model_dump() if intent.contact else None,
                    },
                    invoke=(lambda req, key=None: booking.book(
                        req["offering_id"], req["date"], req["guest_count"],
                        contact=intent.contact, idempotency_key=key
                    )) if booking else None,
                    error=None if booking else self._missing("booking")
                ),
                _Step(
                    provider="payment",
                    operation="create_order",
                    build_request=lambda previous: {
                        "amount": previous[-1].payload.get("amount"),
                        "currency": previous[-1].payload.get("currency", "INR"),
                        "receipt": previous[-1].payload.get("booking_id"),
                    },
                    invoke=(lambda req, key=None: payment.create_order(
                        req["amount"], req["currency"], req["receipt"] or f"rcpt_{key[:16]}",
                        idempotency_key=key
                    )) if payment else None,
                    error=None if payment else self._missing("payment")
                ),
            ]

        if kind == "create_payment_order":
            payment = providers.payment
            return [_Step(
                provider="payment",
                operation="create_order",
                build_request=lambda _: {
                    "amount": intent.amount,
                    "currency": intent.currency,
                    "receipt": intent.receipt,
                },
                invoke=(lambda req, key=None: payment.create_order(
                    req["amount"], req["currency"], req["receipt"] or f"rcpt_{key[:16]}",
                    idempotency_key=key
                )) if payment else None,
                error=None if payment else self._missing("payment")
            )]

        if kind == "verify_payment":
            payment = providers.payment

            async def verify(req, key=None):
                if not payment.verify(req["order_id"], req["payment_id"], intent.signature or ""):
                    raise FatalProviderError("payment", "payment signature mismatch")
                return {"verified": True, "order_id": req["order_id"], "payment_id": req["payment_id"]}

            return [_Step(
                provider="payment",
                operation="verify",
                # Signature is kept out of the recorded request
                build_request=lambda _: {"order_id": intent.order_id, "payment_id": intent.payment_id},
                invoke=verify if payment else None,
                error=None if payment else self._missing("payment")
            )]

        if kind == "get_weather":
            weather = providers.weather
            location = intent.location or context.user_location
            city = intent.city or (None if location else context.default_city)
            return [_Step(
                provider="weather",
                operation="current",
                build_request=lambda _: {
                    "city": city,
                    "location": location.model_dump() if location else None,
                },
                invoke=(lambda req, key=None: weather.current(city=city, location=location)) if weather else None,
                error=None if weather else self._missing("weather")
            )]

        if kind == "get_navigation":
            navigation = providers.navigation
            origin = intent.origin or context.user_location
            error = None
            if navigation is None:
                error = self._missing("navigation")
            elif origin is None:
                error = FatalProviderError("navigation", "current location unknown")
            return [_Step(
                provider="navigation",
                operation="route",
                build_request=lambda _: {
                    "origin": origin.model_dump() if origin else None,
                    "destination": intent.destination,
                    "mode": intent.mode,
                },
                invoke=(lambda req, key=None: navigation.route(
                    origin, req["destination"], mode=req["mode"]
                )) if navigation and origin else None,
                error=error
            )]

        # general_chat and unknown make no provider calls
        return []

    # ============================================
    # Execution
    # ============================================

    async def _run(self, call: ToolCall, step: _Step) -> ToolCallResult:
        key = call.idempotency_key

        if step.error is not None:
            logger.error(f"{call.provider}.{call.operation} not attempted: {step.error.reason}")
            return self._result(call, ToolStatus.FATAL_FAILURE, reason=step.error.reason, attempts=0)

        completed = self._cached(key)
        if completed is not None:
            logger.info(f"Idempotent replay of {call.provider}.{call.operation} ({key[:12]})")
            return completed.model_copy(update={"cached": True})

        pending = self._in_flight.get(key)
        if pending is not None:
            try:
                shared = await asyncio.shield(pending)
                return shared.model_copy(update={"cached": True})
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The owning call was cancelled; run it here instead

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await self._call_with_retry(call, step.invoke)
            future.set_result(result)
            if result.succeeded:
                self._remember(key, result)
            return result
        except asyncio.CancelledError:
            future.cancel()
            raise
        finally:
            self._in_flight.pop(key, None)

    async def _call_with_retry(self, call: ToolCall, invoke: Invoker) -> ToolCallResult:
        """Invoke with exponential backoff. Never raises provider errors."""
        last_reason = None

        for attempt in range(self.max_attempts):
            try:
                payload = await invoke(call.request, key=call.idempotency_key)
                if attempt > 0:
                    logger.info(
                        f"{call.provider}.{call.operation} succeeded on attempt {attempt + 1}/{self.max_attempts}"
                    )
                return self._result(call, ToolStatus.SUCCESS, payload=payload, attempts=attempt + 1)

            except FatalProviderError as e:
                logger.error(f"{call.provider}.{call.operation} failed: {e.reason}")
                return self._result(call, ToolStatus.FATAL_FAILURE, reason=e.reason, attempts=attempt + 1)

            except (RetryableProviderError, httpx.TransportError, asyncio.TimeoutError) as e:
                last_reason = getattr(e, "reason", None) or str(e) or type(e).__name__
                if attempt + 1 < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        f"{call.provider}.{call.operation} attempt {attempt + 1}/{self.max_attempts} "
                        f"failed ({last_reason}), retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)

            except Exception as e:
                logger.error(f"{call.provider}.{call.operation} raised unexpectedly: {e}")
                return self._result(call, ToolStatus.FATAL_FAILURE, reason=f"unexpected error: {e}", attempts=attempt + 1)

        logger.error(f"{call.provider}.{call.operation} retries exhausted: {last_reason}")
        return self._result(
            call,
            ToolStatus.FATAL_FAILURE,
            reason=f"retries exhausted: {last_reason}",
            attempts=self.max_attempts
        )

    def _result(
        self,
        call: ToolCall,
        status: ToolStatus,
        payload: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        attempts: int = 0
    ) -> ToolCallResult:
        return ToolCallResult(
            provider=call.provider,
            operation=call.operation,
            idempotency_key=call.idempotency_key,
            request=call.request,
            status=status,
            payload=payload,
            reason=reason,
            attempts=attempts
        )

    # ============================================
    # Completed-result cache
    # ============================================

    def _cached(self, key: str) -> Optional[ToolCallResult]:
        entry = self._completed.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at >= self.completed_ttl:
            del self._completed[key]
            return None
        return result

    def _remember(self, key: str, result: ToolCallResult):
        now = self._clock()
        self._completed[key] = (now, result)
        self._completed.move_to_end(key)

        while self._completed:
            oldest_key, (stored_at, _) = next(iter(self._completed.items()))
            if len(self._completed) <= self.max_completed and now - stored_at < self.completed_ttl:
                break
            del self._completed[oldest_key]

    def __len__(self) -> int:
        return len(self._completed)

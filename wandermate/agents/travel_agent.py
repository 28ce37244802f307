# agents/travel_agent.py
"""
WanderMate Travel Agent (orchestrator)

One turn, end to end:
    inbound message -> SessionStore.with_lock
        -> IntentParser -> AutonomyPolicy -> [confirmation turn]
        -> ToolDispatcher (under TURN_TIMEOUT) -> ResponseComposer
        -> Session.append_turn, commit, release
    -> ChannelAdapter.deliver

Providers are injected; build_travel_agent() wires them from settings and
runs the provider readiness check once.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..channels.channel_adapter import ChannelAdapter, normalize_phone
from ..config import ProviderReadiness, Settings, check_provider_readiness
from ..errors import ValidationError
from ..interfaces.session_store import SessionStore, create_session_store
from ..llm.intent_parser import (
    IntentParser,
    ResolveContext,
    create_classifier,
    detect_language,
    is_affirmative,
    is_negative,
    is_retry,
)
from ..providers.base import ProviderSet
from ..schemas.agent_schemas import (
    AgentResponse,
    AutonomyLevel,
    Channel,
    ContactInfo,
    GeoPoint,
    Intent,
    PolicyDecision,
    Session,
    ToolCallResult,
    Turn,
    TurnOutcome,
    utc_now,
)
from .autonomy_policy import AutonomyPolicy
from .response_composer import ResponseComposer, TurnDraft
from .tool_dispatcher import DispatchContext, ToolDispatcher

AGENT_CAPABILITIES = [
    "Tour booking",
    "Payment processing",
    "Payment verification",
    "Real-time weather",
    "Navigation",
    "Local guidance",
]

AGENT_FEATURES = [
    "Autonomy levels (manual, assisted, autonomous)",
    "Confirmation before payments",
    "Multi-step booking and payment",
    "Context awareness across turns",
    "English and Hindi replies",
]

_REMEDIABLE_OUTCOMES = {TurnOutcome.PARTIAL_FAILURE, TurnOutcome.FAILED, TurnOutcome.TIMED_OUT}


class TravelAgent:
    """
    Conversational travel agent.

    Args:
        providers: Capability providers (None entries are unconfigured)
        session_store: Owner of all Session state
        intent_parser: Text -> Intent resolver
        policy: Autonomy policy
        dispatcher: Tool dispatcher (built from providers when omitted)
        composer: Response composer
        channel_adapter: Delivery (built from providers.transport when omitted)
        readiness: Result of the one-time provider readiness check
        turn_timeout: Seconds allowed for a turn's provider calls
        default_city: City used for weather when none is given
        clock: Returns the current time, injected into intent resolution
    """

    def __init__(
        self,
        providers: ProviderSet,
        session_store: Optional[SessionStore] = None,
        intent_parser: Optional[IntentParser] = None,
        policy: Optional[AutonomyPolicy] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        composer: Optional[ResponseComposer] = None,
        channel_adapter: Optional[ChannelAdapter] = None,
        readiness: Optional[ProviderReadiness] = None,
        turn_timeout: float = 20.0,
        default_city: str = "Varanasi",
        default_currency: str = "INR",
        clock: Callable[[], Any] = utc_now
    ):
        self.providers = providers
        self.session_store = session_store or SessionStore()
        self.intent_parser = intent_parser or IntentParser()
        self.policy = policy or AutonomyPolicy()
        self.dispatcher = dispatcher or ToolDispatcher(providers)
        self.composer = composer or ResponseComposer()
        self.channel_adapter = channel_adapter or ChannelAdapter(providers.transport)
        self.turn_timeout = turn_timeout
        self.default_city = default_city
        self.default_currency = default_currency
        self.clock = clock

        self.readiness = readiness or providers.readiness()
        for name, ready in self.readiness.ready.items():
            if not ready:
                logger.warning(f"Provider '{name}' unavailable: {self.readiness.issue_for(name).reason}")

        logger.info(
            f"TravelAgent initialized (classifier={self.intent_parser.classifier.name}, "
            f"turn_timeout={turn_timeout}s)"
        )

    # ============================================
    # Public API
    # ============================================

    async def process_message(
        self,
        text: str,
        session_id: Optional[str] = None,
        user_location: Optional[GeoPoint] = None,
        language: Optional[str] = None,
        autonomy_level: Optional[Any] = None,
        channel: Channel = Channel.WEB,
        destination: Optional[str] = None
    ) -> AgentResponse:
        """
        Process one inbound message and commit exactly one Turn.

        Raises:
            ValidationError: empty text, bad autonomy level or bad WhatsApp number
            ConcurrencyTimeout: the session is busy with another message
            asyncio.CancelledError: the request was cancelled; the partial turn is
                committed as TIMED_OUT before this propagates
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message is required", field="message")

        level_override = AutonomyLevel.parse(autonomy_level) if autonomy_level else None
        if channel == Channel.WHATSAPP:
            destination = normalize_phone(destination, self.channel_adapter.default_country_code)

        session_id = session_id or self.session_store.new_session_id()

        async def run_turn(session: Session) -> Tuple[Turn, AutonomyLevel, bool]:
            if level_override is not None:
                session.autonomy_level = level_override
            if user_location is not None:
                session.user_location = user_location
            if language:
                session.language = language
            elif detect_language(text) == "hi":
                session.language = "hi"
            if channel == Channel.WHATSAPP and session.contact is None:
                session.contact = ContactInfo(phone=destination)
            session.channel = channel

            draft = await self._run_turn(session, text)
            reply = self.composer.compose(draft, session.language)
            turn = Turn(
                index=session.next_turn_index,
                input_text=text,
                intent=draft.intent,
                decision=draft.decision,
                outcome=draft.outcome,
                tool_results=draft.tool_results,
                reply=reply,
                channel=channel
            )
            session.append_turn(turn)
            return turn, session.autonomy_level, draft.interrupted

        turn, level, interrupted = await self.session_store.with_lock(session_id, run_turn)

        # The turn is committed; the caller still sees the cancellation
        if interrupted:
            raise asyncio.CancelledError()

        logger.info(
            f"Session {session_id} turn {turn.index}: "
            f"{turn.intent.kind if turn.intent else 'none'} -> {turn.outcome.value}"
        )

        delivery = await self.channel_adapter.deliver(turn.reply, channel, destination)

        return AgentResponse(
            session_id=session_id,
            reply=turn.reply,
            autonomy_level=level,
            turn_index=turn.index,
            outcome=turn.outcome,
            timestamp=turn.timestamp,
            delivery=delivery
        )

    async def set_autonomy_level(self, session_id: str, level: Any) -> AutonomyLevel:
        """Change the session's autonomy level through the session lock."""
        new_level = AutonomyLevel.parse(level)

        def apply(session: Session) -> AutonomyLevel:
            session.autonomy_level = new_level
            return new_level

        await self.session_store.with_lock(session_id, apply)
        logger.info(f"Session {session_id} autonomy level set to {new_level.value}")
        return new_level

    async def agent_info(self, session_id: str) -> Dict[str, Any]:
        session = await self.session_store.get(session_id)
        level = session.autonomy_level if session else self.session_store.default_autonomy
        return {
            "name": "WanderMate",
            "sessionId": session_id,
            "autonomyLevel": level.value,
            "capabilities": list(AGENT_CAPABILITIES),
            "features": list(AGENT_FEATURES),
            "providers": self.readiness.to_dict(),
        }

    async def history(self, session_id: str) -> Optional[List[Turn]]:
        """Committed turns, or None for an unknown session."""
        session = await self.session_store.get(session_id)
        return list(session.turns) if session else None

    # ============================================
    # Turn logic (runs inside the session lock)
    # ============================================

    async def _run_turn(self, session: Session, text: str) -> TurnDraft:
        try:
            return await self._decide_turn(session, text)
        except Exception as e:
            logger.exception(f"Turn failed unexpectedly for session {session.session_id}: {e}")
            return TurnDraft(outcome=TurnOutcome.FAILED)

    async def _decide_turn(self, session: Session, text: str) -> TurnDraft:
        pending = session.pending_intent
        last_turn = session.turns[-1] if session.turns else None

        # A pending intent only answers the prompt of the turn right before it
        if pending is not None and (last_turn is None or last_turn.outcome != TurnOutcome.AWAITING_CONFIRMATION):
            session.pending_intent = None
            pending = None

        # Answer to a confirmation prompt
        if pending is not None and is_negative(text):
            session.pending_intent = None
            return TurnDraft(outcome=TurnOutcome.CANCELLED, intent=pending)

        if pending is not None and not pending.missing_slots and is_affirmative(text):
            session.pending_intent = None
            decision = self.policy.decide(pending, session.autonomy_level, confirmed=True)
            return await self._execute(session, pending, decision)

        # Remediation after a failed turn
        if pending is None and last_turn is not None and last_turn.outcome in _REMEDIABLE_OUTCOMES:
            if is_negative(text):
                return TurnDraft(
                    outcome=TurnOutcome.CANCELLED,
                    intent=last_turn.intent,
                    unpaid_booking_id=self._unpaid_booking_id(last_turn)
                )
            if is_retry(text) and last_turn.intent is not None:
                return await self._handle_intent(
                    session,
                    last_turn.intent,
                    confirmed=last_turn.decision == PolicyDecision.EXECUTE
                )

        context = ResolveContext(
            now=self.clock(),
            pending_intent=pending,
            user_location=session.user_location,
            contact=session.contact,
            outstanding_amount=self._outstanding_amount(session),
            default_currency=self.default_currency
        )
        intent = await self._resolve(text, context)
        return await self._handle_intent(session, intent)

    async def _handle_intent(self, session: Session, intent: Intent, confirmed: bool = False) -> TurnDraft:
        decision = self.policy.decide(intent, session.autonomy_level, confirmed=confirmed)
        session.pending_intent = None

        if decision == PolicyDecision.DECLINE:
            return TurnDraft(outcome=TurnOutcome.DECLINED, intent=intent, decision=decision)

        if decision == PolicyDecision.CONFIRM:
            session.pending_intent = intent
            return TurnDraft(
                outcome=TurnOutcome.AWAITING_CONFIRMATION,
                intent=intent,
                decision=decision,
                estimated_amount=self._estimate_amount(intent)
            )

        return await self._execute(session, intent, decision)

    async def _resolve(self, text: str, context: ResolveContext) -> Intent:
        if self.intent_parser.classifier.blocking:
            return await asyncio.to_thread(self.intent_parser.resolve, text, context)
        return self.intent_parser.resolve(text, context)

    async def _execute(self, session: Session, intent: Intent, decision: PolicyDecision) -> TurnDraft:
        results: List[ToolCallResult] = []
        context = DispatchContext(user_location=session.user_location, default_city=self.default_city)

        try:
            await asyncio.wait_for(
                self.dispatcher.execute(intent, session.session_id, context, results),
                timeout=self.turn_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Turn timed out after {self.turn_timeout}s for session {session.session_id} "
                f"({sum(r.succeeded for r in results)} step(s) completed)"
            )
            return TurnDraft(
                outcome=TurnOutcome.TIMED_OUT,
                intent=intent,
                decision=decision,
                tool_results=list(results)
            )
        except asyncio.CancelledError:
            logger.warning(
                f"Turn cancelled for session {session.session_id} "
                f"({sum(r.succeeded for r in results)} step(s) completed), recording it as timed out"
            )
            return TurnDraft(
                outcome=TurnOutcome.TIMED_OUT,
                intent=intent,
                decision=decision,
                tool_results=list(results),
                interrupted=True
            )

        return TurnDraft(
            outcome=self._outcome_for(results),
            intent=intent,
            decision=decision,
            tool_results=results
        )

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    def _outcome_for(results: List[ToolCallResult]) -> TurnOutcome:
        if all(r.succeeded for r in results):
            return TurnOutcome.COMPLETED
        if any(r.succeeded for r in results):
            return TurnOutcome.PARTIAL_FAILURE
        return TurnOutcome.FAILED

    def _estimate_amount(self, intent: Intent) -> Optional[float]:
        if intent.kind == "create_payment_order":
            return intent.amount
        if intent.kind != "book_tour" or not intent.tour_id or not intent.guest_count:
            return None
        tour = self.intent_parser.tours.get(intent.tour_id)
        return float(tour["price"] * intent.guest_count) if tour else None

    @staticmethod
    def _unpaid_booking(turn: Optional[Turn]) -> Optional[ToolCallResult]:
        """The successful booking in a turn whose payment order did not succeed."""
        if turn is None:
            return None
        booking = next((r for r in turn.tool_results if r.operation == "book" and r.succeeded), None)
        paid = any(r.operation == "create_order" and r.succeeded for r in turn.tool_results)
        return booking if booking and not paid else None

    def _unpaid_booking_id(self, turn: Optional[Turn]) -> Optional[str]:
        booking = self._unpaid_booking(turn)
        return booking.payload.get("booking_id") if booking else None

    def _outstanding_amount(self, session: Session) -> Optional[float]:
        booking = self._unpaid_booking(session.turns[-1] if session.turns else None)
        return booking.payload.get("amount") if booking else None


# ============================================
# Factory
# ============================================

def build_travel_agent(config: Optional[Settings] = None) -> TravelAgent:
    """Wire providers from settings and build the agent."""
    from ..config import settings
    from ..providers.booking import HttpBookingProvider, InMemoryTourCatalog
    from ..providers.navigation import GoogleDirectionsProvider
    from ..providers.payment import RazorpayPaymentProvider
    from ..providers.weather import OpenWeatherProvider, StaticWeatherProvider
    from ..providers.whatsapp import WhatsAppCloudTransport

    config = config or settings
    readiness = check_provider_readiness(config)
    timeout = config.PROVIDER_TIMEOUT

    if config.BOOKING_SERVICE_URL:
        booking = HttpBookingProvider(config.BOOKING_SERVICE_URL, timeout=timeout)
    else:
        booking = InMemoryTourCatalog(currency=config.DEFAULT_CURRENCY)

    if config.OPENWEATHER_API_KEY:
        weather = OpenWeatherProvider(config.OPENWEATHER_API_KEY, default_city=config.DEFAULT_CITY, timeout=timeout)
    else:
        weather = StaticWeatherProvider(default_city=config.DEFAULT_CITY)

    providers = ProviderSet(
        booking=booking,
        payment=RazorpayPaymentProvider(
            config.RAZORPAY_KEY_ID,
            config.RAZORPAY_KEY_SECRET,
            base_url=config.RAZORPAY_BASE_URL,
            timeout=timeout
        ) if readiness.is_ready("payment") else None,
        weather=weather,
        navigation=GoogleDirectionsProvider(
            config.GOOGLE_MAPS_API_KEY,
            timeout=timeout
        ) if readiness.is_ready("navigation") else None,
        transport=WhatsAppCloudTransport(
            config.WHATSAPP_ACCESS_TOKEN,
            config.WHATSAPP_PHONE_NUMBER_ID,
            api_version=config.WHATSAPP_API_VERSION,
            timeout=timeout
        ) if readiness.is_ready("messaging") else None,
    )

    dispatcher = ToolDispatcher(
        providers,
        max_attempts=config.TOOL_MAX_ATTEMPTS,
        base_delay=config.TOOL_RETRY_BASE_DELAY,
        max_delay=config.TOOL_RETRY_MAX_DELAY,
        completed_ttl=config.SESSION_TTL_HOURS * 3600
    )

    return TravelAgent(
        providers,
        session_store=create_session_store(config),
        intent_parser=IntentParser(create_classifier(config)),
        dispatcher=dispatcher,
        composer=ResponseComposer(default_language=config.DEFAULT_LANGUAGE),
        channel_adapter=ChannelAdapter(providers.transport, default_country_code=config.DEFAULT_COUNTRY_CODE),
        readiness=readiness,
        turn_timeout=config.TURN_TIMEOUT,
        default_city=config.DEFAULT_CITY,
        default_currency=config.DEFAULT_CURRENCY
    )


# ============================================
# Global Instance
# ============================================

_travel_agent: Optional[TravelAgent] = None


def get_travel_agent() -> TravelAgent:
    """Process-wide agent, built on first use. FastAPI dependency."""
    global _travel_agent
    if _travel_agent is None:
        _travel_agent = build_travel_agent()
    return _travel_agent

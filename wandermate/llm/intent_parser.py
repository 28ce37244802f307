# llm/intent_parser.py
"""
Intent Resolver for the Travel Agent
Turns a free-text message into one of the closed Intent variants:
- Classification by a pluggable IntentClassifier (keyword rules or OpenAI)
- Slot extraction: tour, date, guests, amount, payment ids, city, route
- Slot filling into a pending intent across turns

Resolution never raises on user text; anything unrecognised becomes
UnknownIntent or GeneralChatIntent.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..providers.booking import BOAT_TOURS
from ..schemas.agent_schemas import (
    BookTourIntent,
    ContactInfo,
    CreatePaymentOrderIntent,
    GeneralChatIntent,
    GeoPoint,
    GetNavigationIntent,
    GetWeatherIntent,
    Intent,
    UnknownIntent,
    VerifyPaymentIntent,
    utc_now,
)

INTENT_KINDS = (
    "book_tour",
    "create_payment_order",
    "verify_payment",
    "get_weather",
    "get_navigation",
    "general_chat",
    "unknown",
)

ACTIONABLE_KINDS = {"book_tour", "create_payment_order", "verify_payment", "get_weather", "get_navigation"}

_INTENT_CLASSES = {
    "book_tour": BookTourIntent,
    "create_payment_order": CreatePaymentOrderIntent,
    "verify_payment": VerifyPaymentIntent,
    "get_weather": GetWeatherIntent,
    "get_navigation": GetNavigationIntent,
    "general_chat": GeneralChatIntent,
    "unknown": UnknownIntent,
}


@dataclass
class ResolveContext:
    """What the resolver may read from the session. Nothing else."""
    now: datetime = field(default_factory=utc_now)
    pending_intent: Optional[Intent] = None
    user_location: Optional[GeoPoint] = None
    contact: Optional[ContactInfo] = None
    outstanding_amount: Optional[float] = None
    default_currency: str = "INR"


# ============================================
# Language & confirmation helpers
# ============================================

_DEVANAGARI_RE = re.compile(r"[ऀ-ॿ]")

_AFFIRMATIVE_RE = re.compile(
    r"^\s*(yes|y|yeah|yep|yup|sure|ok|okay|confirm|confirmed|go ahead|proceed|do it|book it|"
    r"haan|ha|ji|हाँ|हां|जी|ठीक है)(?=[\s,.!?]|$)",
    re.IGNORECASE
)
_NEGATIVE_RE = re.compile(
    r"^\s*(no|n|nope|nah|cancel|stop|don'?t|never mind|nevermind|nahi|नहीं|नही|रद्द)(?=[\s,.!?]|$)",
    re.IGNORECASE
)
_RETRY_RE = re.compile(r"^\s*(try again|retry|again|फिर से)(?=[\s,.!?]|$)", re.IGNORECASE)


def detect_language(text: str) -> str:
    """Devanagari script means Hindi, anything else English."""
    return "hi" if _DEVANAGARI_RE.search(text or "") else "en"


def is_affirmative(text: str) -> bool:
    return bool(_AFFIRMATIVE_RE.match(text or ""))


def is_negative(text: str) -> bool:
    return bool(_NEGATIVE_RE.match(text or ""))


def is_retry(text: str) -> bool:
    return bool(_RETRY_RE.match(text or ""))


# ============================================
# Classifiers
# ============================================

class IntentClassifier(ABC):
    """Maps text to an intent kind. Slot extraction is not its job."""

    name = "classifier"
    blocking = False  # True when classify() does network I/O

    @abstractmethod
    def classify(self, text: str) -> Tuple[str, float]:
        """Return (kind, confidence)."""


class RuleBasedClassifier(IntentClassifier):
    """Keyword classifier over English and Hindi trigger words."""

    name = "rules"

    def __init__(self):
        self.verify_patterns = [r"\bverify\b.*\bpay", r"\border_\w+.*\bpay_\w+", r"\bpay_\w+.*\border_\w+"]
        self.book_patterns = [r"\b(book|reserve)\b", r"\bbook (a|the|me)\b", r"बुक", r"बुकिंग"]
        self.payment_patterns = [
            r"\bpay(ment)?\b", r"\bcheckout\b", r"\bpayment order\b", r"भुगतान", r"पेमेंट"
        ]
        self.weather_patterns = [
            r"\bweather\b", r"\btemperature\b", r"\bforecast\b", r"\brain(ing|y)?\b",
            r"\bhumid(ity)?\b", r"\bhot\b.*\b(today|outside)\b", r"मौसम", r"तापमान"
        ]
        self.navigation_patterns = [
            r"\bdirections?\b", r"\bhow (do i|to|can i) (get|reach|go)\b", r"\bnavigate\b",
            r"\broute to\b", r"\btake me to\b", r"\bway to\b", r"रास्ता", r"कैसे पहुँच"
        ]
        self.chat_topics = {
            "emergency": [
                r"\bemergency\b", r"\burgent(ly)?\b", r"\bsos\b", r"\bambulance\b", r"\bpolice\b",
                r"\bhospital\b", r"\bmedical\b", r"\bdoctor\b", r"\bhelp me\b", r"आपात", r"एम्बुलेंस", r"पुलिस", r"अस्पताल"
            ],
            "greeting": [r"^\s*(hi|hello|hey|namaste|namaskar|good (morning|afternoon|evening))\b", r"नमस्ते", r"नमस्कार"],
            "capabilities": [r"\bwhat can you do\b", r"\bhelp\b", r"\bcapabilit", r"\bwho are you\b", r"मदद"],
            "tours": [r"\b(boat )?tours?\b", r"\bboat( ride)?s?\b", r"नाव"],
            "temples": [r"\btemples?\b", r"\bkashi vishwanath\b", r"मंदिर"],
            "ghats": [r"\bghats?\b", r"\baarti\b", r"घाट"],
            "food": [r"\bfood\b", r"\beat\b", r"\brestaurants?\b", r"\bcuisine\b", r"खाना"],
        }

    def _matches(self, patterns: List[str], text: str) -> bool:
        return any(re.search(pattern, text, re.IGNORECASE) for pattern in patterns)

    def classify(self, text: str) -> Tuple[str, float]:
        text_lower = text.lower().strip()
        if not text_lower:
            return "unknown", 0.0

        # Emergencies are never routed to a booking or payment
        if self._matches(self.chat_topics["emergency"], text_lower):
            return "general_chat", 0.9
        if self._matches(self.verify_patterns, text_lower):
            return "verify_payment", 0.9
        if self._matches(self.book_patterns, text_lower):
            return "book_tour", 0.8
        if self._matches(self.payment_patterns, text_lower):
            return "create_payment_order", 0.8
        if self._matches(self.weather_patterns, text_lower):
            return "get_weather", 0.8
        if self._matches(self.navigation_patterns, text_lower):
            return "get_navigation", 0.8
        if self.chat_topic(text_lower):
            return "general_chat", 0.6

        return "unknown", 0.0

    def chat_topic(self, text: str) -> Optional[str]:
        for topic, patterns in self.chat_topics.items():
            if self._matches(patterns, text):
                return topic
        return None


class OpenAIIntentClassifier(IntentClassifier):
    """
    Chat-completion classifier. Any API error, or an answer that is not a
    known kind, falls back to the rule-based classifier.
    """

    name = "openai"
    blocking = True

    SYSTEM_PROMPT = (
        "You classify messages sent to a Varanasi travel assistant. "
        "Answer with exactly one of: " + ", ".join(INTENT_KINDS) + ". "
        "book_tour: booking a boat tour. create_payment_order: paying or opening a payment. "
        "verify_payment: checking a payment with order and payment ids. "
        "get_weather: weather questions. get_navigation: directions to a place. "
        "general_chat: greetings, emergencies and questions about the city. unknown: anything else."
    )

    def __init__(self, client, model: str = "gpt-3.5-turbo", fallback: Optional[IntentClassifier] = None):
        self.client = client
        self.model = model
        self.fallback = fallback or RuleBasedClassifier()

    def classify(self, text: str) -> Tuple[str, float]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": text}
                ],
                max_tokens=10,
                temperature=0
            )
            answer = (response.choices[0].message.content or "").strip().lower().strip(".")
        except Exception as e:
            logger.warning(f"OpenAI classifier failed, using rules: {e}")
            return self.fallback.classify(text)

        if answer not in INTENT_KINDS:
            logger.warning(f"OpenAI classifier returned unexpected kind {answer!r}, using rules")
            return self.fallback.classify(text)
        return answer, 0.85


def create_classifier(config=None) -> IntentClassifier:
    """Rules by default; OpenAI when INTENT_CLASSIFIER=openai and a key is set."""
    from ..config import settings
    config = config or settings

    if config.use_openai_classifier:
        try:
            from openai import OpenAI
            client = OpenAI(api_key=config.OPENAI_API_KEY)
            logger.info("IntentParser: OpenAI classifier initialized")
            return OpenAIIntentClassifier(client, model=config.OPENAI_MODEL)
        except Exception as e:
            logger.warning(f"IntentParser: OpenAI init failed, using rules: {e}")
    return RuleBasedClassifier()


# ============================================
# Resolver
# ============================================

class IntentParser:
    """
    Resolves text to an Intent. Deterministic for a fixed classifier and
    context.now.
    """

    def __init__(self, classifier: Optional[IntentClassifier] = None, tours: Optional[List[Dict[str, Any]]] = None):
        self.classifier = classifier or RuleBasedClassifier()
        self._topic_classifier = RuleBasedClassifier()

        self.tours = {tour["id"]: tour for tour in (tours or BOAT_TOURS)}
        self.tour_aliases = self._build_tour_aliases()

        self.month_names = {
            "jan": 1, "january": 1, "feb": 2, "february": 2,
            "mar": 3, "march": 3, "apr": 4, "april": 4,
            "may": 5, "jun": 6, "june": 6,
            "jul": 7, "july": 7, "aug": 8, "august": 8,
            "sep": 9, "sept": 9, "september": 9, "oct": 10, "october": 10,
            "nov": 11, "november": 11, "dec": 12, "december": 12
        }
        self.weekdays = {
            "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
            "friday": 4, "saturday": 5, "sunday": 6
        }
        self.word_numbers = {
            "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
            "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
            "couple": 2, "pair": 2, "solo": 1, "alone": 1
        }
        self.travel_modes = {
            "walking": [r"\bwalk(ing)?\b", r"\bon foot\b"],
            "driving": [r"\bdriv(e|ing)\b", r"\bby (car|cab|taxi|auto)\b"],
            "transit": [r"\bby (bus|metro|train)\b", r"\btransit\b"],
            "bicycling": [r"\bby (bike|bicycle|cycle)\b", r"\bcycling\b"],
        }

    def _build_tour_aliases(self) -> List[Tuple[str, str]]:
        aliases: Dict[str, str] = {}
        for tour_id, tour in self.tours.items():
            aliases[tour_id] = tour_id
            aliases[tour_id.replace("-", " ")] = tour_id
            aliases[tour["name"].lower()] = tour_id
        aliases.update({
            "sunrise": "sunrise-ghat",
            "morning": "sunrise-ghat",
            "sunset": "sunset-ghat",
            "day ghat": "day-exploration",
            "day tour": "day-exploration",
            "day exploration": "day-exploration",
            "evening": "evening-mystique",
            "mystique": "evening-mystique",
            "private": "private-luxury",
            "luxury": "private-luxury",
            "photography": "photography-special",
            "photo tour": "photography-special",
        })
        # Longest first, so "sunrise ghat experience" beats "sunrise"
        return sorted(
            ((alias, tour_id) for alias, tour_id in aliases.items() if tour_id in self.tours),
            key=lambda item: -len(item[0])
        )

    # ============================================
    # Public API
    # ============================================

    def resolve(self, text: str, context: Optional[ResolveContext] = None) -> Intent:
        """
        Resolve text to an Intent.

        Args:
            text: User message
            context: Session facts (clock, pending intent, location)

        Returns:
            An Intent with missing_slots filled in
        """
        context = context or ResolveContext()
        text = (text or "").strip()

        if not text:
            return UnknownIntent(raw_text=text)

        kind, confidence = self.classifier.classify(text)
        if kind not in _INTENT_CLASSES:
            kind, confidence = "unknown", 0.0

        pending = context.pending_intent
        is_emergency = self._topic_classifier.chat_topic(text.lower()) == "emergency"
        if pending is not None and not is_emergency and (kind == pending.kind or kind not in ACTIONABLE_KINDS):
            filled = self._fill_pending(pending, text, context)
            if filled is not None:
                return filled

        intent = self._build(kind, text, context)
        intent.confidence = confidence if kind != "unknown" else 0.0

        logger.info(
            f"Resolved intent: kind={intent.kind}, slots={intent.slot_values()}, "
            f"missing={intent.missing_slots}, confidence={intent.confidence:.2f}"
        )
        return intent

    def _fill_pending(self, pending: Intent, text: str, context: ResolveContext) -> Optional[Intent]:
        """Merge slots found in the new text into the pending intent, or None if there are none."""
        extracted = self._extract_slots(pending.kind, text.lower(), text, context)
        extracted = {k: v for k, v in extracted.items() if v is not None}
        if not extracted:
            return None

        updates = dict(extracted)
        for slot, value in self._context_slots(pending.kind, context).items():
            if value is not None and getattr(pending, slot, None) is None:
                updates[slot] = value

        merged = pending.model_copy(update=updates)
        merged = type(pending).model_validate(merged.model_dump())
        merged.raw_text = f"{pending.raw_text}\n{text}".strip()
        merged.refresh_missing_slots()

        logger.info(f"Filled pending {merged.kind} with {sorted(extracted)}; missing={merged.missing_slots}")
        return merged

    def _build(self, kind: str, text: str, context: ResolveContext) -> Intent:
        intent_class = _INTENT_CLASSES[kind]
        slots = {k: v for k, v in self._context_slots(kind, context).items() if v is not None}
        extracted = self._extract_slots(kind, text.lower(), text, context)
        slots.update({k: v for k, v in extracted.items() if v is not None})
        intent = intent_class(raw_text=text, **slots)
        intent.refresh_missing_slots()
        return intent

    # ============================================
    # Slot extraction
    # ============================================

    def _context_slots(self, kind: str, context: ResolveContext) -> Dict[str, Any]:
        """Slots taken from the session rather than the message."""
        if kind == "book_tour":
            return {"contact": context.contact}
        if kind == "create_payment_order":
            return {"amount": context.outstanding_amount, "currency": context.default_currency}
        if kind == "get_weather":
            return {"location": context.user_location}
        if kind == "get_navigation":
            return {"origin": context.user_location}
        return {}

    def _extract_slots(self, kind: str, text: str, original: str, context: ResolveContext) -> Dict[str, Any]:
        """Slots found in the message text. None means not mentioned."""
        if kind == "book_tour":
            tour_id = self._extract_tour(text)
            return {
                "tour_id": tour_id,
                "tour_name": self.tours[tour_id]["name"] if tour_id else None,
                "date": self._extract_date(text, context.now),
                "guest_count": self._extract_guests(text),
            }

        if kind == "create_payment_order":
            amount, currency = self._extract_amount(text)
            return {"amount": amount, "currency": currency}

        if kind == "verify_payment":
            order_id, payment_id, signature = self._extract_payment_ids(original)
            return {"order_id": order_id, "payment_id": payment_id, "signature": signature}

        if kind == "get_weather":
            return {"city": self._extract_city(original)}

        if kind == "get_navigation":
            return {
                "destination": self._extract_destination(original),
                "mode": self._extract_mode(text),
            }

        if kind == "general_chat":
            return {"topic": self._topic_classifier.chat_topic(text) or "general"}

        return {}

    def _extract_tour(self, text: str) -> Optional[str]:
        for alias, tour_id in self.tour_aliases:
            if re.search(rf"\b{re.escape(alias)}\b", text):
                return tour_id
        return None

    def _extract_date(self, text: str, now: datetime) -> Optional[str]:
        """Resolve a date expression relative to now. Returns YYYY-MM-DD."""
        today = now.date()

        iso = re.search(r"\b(\d{4})-(\d{2})-(\d{2})\b", text)
        if iso:
            return self._safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

        if "day after tomorrow" in text or "परसों" in text:
            return (today + timedelta(days=2)).isoformat()
        if re.search(r"\btomorrow\b", text) or "कल" in text:
            return (today + timedelta(days=1)).isoformat()
        if re.search(r"\b(today|tonight)\b", text) or "आज" in text:
            return today.isoformat()

        for match in re.finditer(r"\b([a-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b", text):
            if match.group(1) in self.month_names:
                return self._next_date(today, self.month_names[match.group(1)], int(match.group(2)))

        for match in re.finditer(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?([a-z]{3,9})\b", text):
            if match.group(2) in self.month_names:
                return self._next_date(today, self.month_names[match.group(2)], int(match.group(1)))

        for name, weekday in self.weekdays.items():
            if re.search(rf"\b{name}\b", text):
                days_ahead = (weekday - today.weekday()) % 7 or 7
                return (today + timedelta(days=days_ahead)).isoformat()

        return None

    def _safe_date(self, year: int, month: int, day: int) -> Optional[str]:
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    def _next_date(self, today: date, month: int, day: int) -> Optional[str]:
        """Month/day without a year: this year, or next year if already past."""
        candidate = self._safe_date(today.year, month, day)
        if candidate and candidate < today.isoformat():
            candidate = self._safe_date(today.year + 1, month, day)
        return candidate

    def _extract_guests(self, text: str) -> Optional[int]:
        patterns = [
            r"(\d{1,2})\s*(?:people|persons?|guests?|adults?|pax|travell?ers?|of us|log|लोग)",
            r"party\s+of\s+(\d{1,2})",
            r"\bfor\s+(\d{1,2})\b(?!\s*(?:st|nd|rd|th|am|pm|:|[a-z]{3,9}\s*\d|jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec))",
        ]
        for pattern in patterns:
            match = re.search(pattern, text)
            if match:
                count = int(match.group(1))
                if count >= 1:
                    return count

        word_pattern = r"\b(" + "|".join(self.word_numbers) + r")\b\s*(people|persons?|guests?|adults?|of us)?"
        for match in re.finditer(word_pattern, text):
            word = match.group(1)
            # Bare number words only count after "for" or with a noun
            preceding = text[:match.start()].rstrip()
            if match.group(2) or preceding.endswith("for") or word in ("couple", "pair", "solo", "alone"):
                return self.word_numbers[word]

        if re.search(r"\bjust me\b|\bmyself\b", text):
            return 1
        return None

    def _extract_amount(self, text: str) -> Tuple[Optional[float], Optional[str]]:
        number = r"(\d[\d,]*(?:\.\d+)?)"
        patterns = [
            (rf"(?:₹|\brs\.?|\binr)\s*{number}", "INR"),
            (rf"{number}\s*(?:rupees|rs\b|inr\b|₹|रुपये)", "INR"),
            (rf"\$\s*{number}", "USD"),
            (rf"{number}\s*(?:dollars?|usd\b)", "USD"),
            (rf"\b(?:pay|amount(?:\s+of)?|order\s+(?:for|of))\s+{number}", None),
        ]
        for pattern, currency in patterns:
            match = re.search(pattern, text)
            if match:
                try:
                    amount = float(match.group(1).replace(",", ""))
                except ValueError:
                    continue
                if amount > 0:
                    return amount, currency
        return None, None

    def _extract_payment_ids(self, text: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        order = re.search(r"\b(order_[A-Za-z0-9]+)\b", text)
        payment = re.search(r"\b(pay_[A-Za-z0-9]+)\b", text)
        signature = re.search(r"\b([a-fA-F0-9]{64})\b", text)
        return (
            order.group(1) if order else None,
            payment.group(1) if payment else None,
            signature.group(1).lower() if signature else None,
        )

    def _extract_city(self, text: str) -> Optional[str]:
        match = re.search(
            r"\b(?:in|at|for)\s+([A-Za-z][A-Za-z]+(?:\s+[A-Z][a-z]+)?)",
            text
        )
        if not match:
            return None
        city = match.group(1).strip()
        if city.lower() in {"today", "tomorrow", "now", "the", "this", "tonight", "here", "my"}:
            return None
        return city.title()

    def _extract_destination(self, text: str) -> Optional[str]:
        match = re.search(
            r"(?:directions?|route|way|navigate|take me|how (?:do i|to|can i) (?:get|reach|go))"
            r"\s+(?:to\s+|for\s+)?(?:the\s+)?(.+?)"
            r"(?:\s+(?:by|on)\s+(?:foot|car|cab|taxi|auto|bus|metro|train|bike|bicycle|cycle)|\s+from\s+.*|[?.!]|$)",
            text,
            re.IGNORECASE
        )
        if not match:
            return None
        destination = match.group(1).strip(" ,")
        return destination or None

    def _extract_mode(self, text: str) -> Optional[str]:
        for mode, patterns in self.travel_modes.items():
            if any(re.search(pattern, text) for pattern in patterns):
                return mode
        return None

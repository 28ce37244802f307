"""
tests/test_intent_parser.py - intent classification and slot extraction
"""

from unittest.mock import MagicMock

import pytest

from wandermate.llm.intent_parser import (
    IntentParser,
    OpenAIIntentClassifier,
    ResolveContext,
    RuleBasedClassifier,
    detect_language,
    is_affirmative,
    is_negative,
    is_retry,
)
from wandermate.schemas.agent_schemas import BookTourIntent, ContactInfo, GeoPoint


@pytest.fixture
def parser():
    return IntentParser()


@pytest.fixture
def ctx(fixed_now):
    return ResolveContext(now=fixed_now)


class TestHelpers:
    @pytest.mark.parametrize("text", ["yes", "Yes, confirm", "ok", "go ahead", "हाँ", "haan ji"])
    def test_affirmative(self, text):
        assert is_affirmative(text)

    @pytest.mark.parametrize("text", ["no", "Cancel", "Cancel booking", "नहीं", "रद्द करें"])
    def test_negative(self, text):
        assert is_negative(text)

    def test_yesterday_is_not_affirmative(self):
        assert not is_affirmative("yesterday was fun")

    @pytest.mark.parametrize("text", ["Try again", "Retry payment", "फिर से भुगतान"])
    def test_retry(self, text):
        assert is_retry(text)

    def test_detect_language(self):
        assert detect_language("नाव बुक करें") == "hi"
        assert detect_language("book a boat") == "en"


class TestRuleBasedClassifier:
    @pytest.mark.parametrize("text,kind", [
        ("Book the sunrise boat tour for tomorrow for 2 people", "book_tour"),
        ("I want to pay ₹500", "create_payment_order"),
        ("verify payment order_abc pay_xyz", "verify_payment"),
        ("What's the weather like?", "get_weather"),
        ("Directions to Assi Ghat", "get_navigation"),
        ("Hello!", "general_chat"),
        ("Tell me about the temples", "general_chat"),
        ("asdfghjkl", "unknown"),
        ("मौसम कैसा है", "get_weather"),
    ])
    def test_classify(self, text, kind):
        assert RuleBasedClassifier().classify(text)[0] == kind

    def test_chat_topic(self):
        assert RuleBasedClassifier().chat_topic("what can you do") == "capabilities"

    @pytest.mark.parametrize("text", [
        "This is an emergency", "I need a doctor urgently", "call the police", "🏥 Medical", "एम्बुलेंस चाहिए"
    ])
    def test_emergency_topic(self, text):
        classifier = RuleBasedClassifier()
        assert classifier.classify(text)[0] == "general_chat"
        assert classifier.chat_topic(text.lower()) == "emergency"

    def test_emergency_wins_over_booking(self):
        assert RuleBasedClassifier().classify("urgent, book an ambulance")[0] == "general_chat"

    def test_plain_help_is_capabilities(self):
        assert RuleBasedClassifier().chat_topic("help") == "capabilities"


class TestOpenAIClassifier:
    def _client(self, content=None, error=None):
        client = MagicMock()
        if error:
            client.chat.completions.create.side_effect = error
        else:
            response = MagicMock()
            response.choices = [MagicMock(message=MagicMock(content=content))]
            client.chat.completions.create.return_value = response
        return client

    def test_uses_model_answer(self):
        classifier = OpenAIIntentClassifier(self._client("get_weather"))
        assert classifier.classify("is it sunny") == ("get_weather", 0.85)

    def test_falls_back_on_error(self):
        classifier = OpenAIIntentClassifier(self._client(error=RuntimeError("rate limited")))
        assert classifier.classify("book a boat tour")[0] == "book_tour"

    def test_falls_back_on_unknown_answer(self):
        classifier = OpenAIIntentClassifier(self._client("reserve_hotel"))
        assert classifier.classify("what's the weather")[0] == "get_weather"

    def test_is_blocking(self):
        assert OpenAIIntentClassifier(MagicMock()).blocking is True


class TestBookTour:
    def test_fully_specified(self, parser, ctx):
        intent = parser.resolve("Book the sunrise boat tour for tomorrow for 2 people", ctx)

        assert isinstance(intent, BookTourIntent)
        assert intent.tour_id == "sunrise-ghat"
        assert intent.date == "2025-10-21"
        assert intent.guest_count == 2
        assert intent.missing_slots == []

    def test_missing_slots_in_order(self, parser, ctx):
        intent = parser.resolve("I want to book a boat", ctx)
        assert intent.missing_slots == ["tour_id", "date", "guest_count"]

    def test_month_day_not_taken_as_guests(self, parser, ctx):
        intent = parser.resolve("book sunset tour for oct 25 for 3 guests", ctx)
        assert intent.date == "2025-10-25"
        assert intent.guest_count == 3

    def test_past_month_day_rolls_to_next_year(self, parser, ctx):
        intent = parser.resolve("book the sunset tour on 5 march for two people", ctx)
        assert intent.date == "2026-03-05"
        assert intent.guest_count == 2

    def test_weekday_is_next_occurrence(self, parser, ctx):
        # FIXED_NOW is a Monday
        intent = parser.resolve("book private tour on monday for 4 people", ctx)
        assert intent.tour_id == "private-luxury"
        assert intent.date == "2025-10-27"

    def test_iso_date(self, parser, ctx):
        intent = parser.resolve("book photography tour 2025-11-02 just me", ctx)
        assert intent.tour_id == "photography-special"
        assert intent.date == "2025-11-02"
        assert intent.guest_count == 1

    def test_contact_taken_from_session(self, parser, fixed_now):
        context = ResolveContext(now=fixed_now, contact=ContactInfo(phone="919876543210"))
        intent = parser.resolve("book sunrise tour tomorrow for 2", context)
        assert intent.contact.phone == "919876543210"

    def test_hindi(self, parser, ctx):
        intent = parser.resolve("कल सूर्योदय sunrise नाव बुक करें 2 लोग", ctx)
        assert intent.kind == "book_tour"
        assert intent.date == "2025-10-21"
        assert intent.guest_count == 2


class TestPendingIntent:
    def test_fills_missing_slot(self, parser, ctx, fixed_now):
        pending = parser.resolve("book the sunset tour for 2 people", ctx)
        assert pending.missing_slots == ["date"]

        context = ResolveContext(now=fixed_now, pending_intent=pending)
        filled = parser.resolve("tomorrow", context)

        assert filled.kind == "book_tour"
        assert filled.tour_id == "sunset-ghat"
        assert filled.date == "2025-10-21"
        assert filled.missing_slots == []

    def test_unrelated_text_starts_new_intent(self, parser, ctx, fixed_now):
        pending = parser.resolve("book the sunset tour for 2 people", ctx)
        context = ResolveContext(now=fixed_now, pending_intent=pending)

        intent = parser.resolve("what's the weather", context)
        assert intent.kind == "get_weather"

    def test_nothing_extracted_falls_through(self, parser, ctx, fixed_now):
        pending = parser.resolve("book the sunset tour for 2 people", ctx)
        context = ResolveContext(now=fixed_now, pending_intent=pending)

        assert parser.resolve("hmm", context).kind == "unknown"

    def test_emergency_does_not_fill_pending(self, parser, ctx, fixed_now):
        pending = parser.resolve("book the sunset tour for 2 people", ctx)
        context = ResolveContext(now=fixed_now, pending_intent=pending)

        intent = parser.resolve("I need a doctor tomorrow", context)

        assert intent.kind == "general_chat"
        assert intent.topic == "emergency"


class TestOtherIntents:
    def test_payment_amount(self, parser, ctx):
        intent = parser.resolve("create a payment order for ₹1,500", ctx)
        assert intent.kind == "create_payment_order"
        assert intent.amount == 1500
        assert intent.currency == "INR"

    def test_payment_amount_from_outstanding_booking(self, parser, fixed_now):
        context = ResolveContext(now=fixed_now, outstanding_amount=2400.0)
        intent = parser.resolve("I want to pay now", context)
        assert intent.amount == 2400.0
        assert intent.missing_slots == []

    def test_verify_payment_ids(self, parser, ctx):
        signature = "a" * 64
        intent = parser.resolve(f"verify payment order_ABC123 pay_XYZ789 {signature}", ctx)
        assert intent.order_id == "order_ABC123"
        assert intent.payment_id == "pay_XYZ789"
        assert intent.signature == signature
        assert intent.missing_slots == []

    def test_weather_city(self, parser, ctx):
        assert parser.resolve("weather in Delhi", ctx).city == "Delhi"

    def test_weather_uses_location(self, parser, fixed_now, ghat_location):
        context = ResolveContext(now=fixed_now, user_location=ghat_location)
        intent = parser.resolve("what's the weather today", context)
        assert intent.city is None
        assert intent.location == ghat_location

    def test_navigation(self, parser, fixed_now, ghat_location):
        context = ResolveContext(now=fixed_now, user_location=ghat_location)
        intent = parser.resolve("directions to Kashi Vishwanath Temple by car", context)

        assert intent.destination == "Kashi Vishwanath Temple"
        assert intent.mode == "driving"
        assert intent.origin == GeoPoint(lat=25.3109, lng=83.0107)

    def test_navigation_defaults_to_walking(self, parser, ctx):
        intent = parser.resolve("how do i get to Assi Ghat?", ctx)
        assert intent.destination == "Assi Ghat"
        assert intent.mode == "walking"

    def test_chat_topic(self, parser, ctx):
        assert parser.resolve("tell me about food here", ctx).topic == "food"

    def test_empty_is_unknown(self, parser, ctx):
        assert parser.resolve("   ", ctx).kind == "unknown"

    def test_deterministic(self, parser, ctx):
        text = "book sunrise tour tomorrow for 2 people"
        assert parser.resolve(text, ctx) == parser.resolve(text, ctx)

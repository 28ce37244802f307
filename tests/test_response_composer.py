"""
tests/test_response_composer.py - reply text, quick replies and buttons
"""

import pytest

from wandermate.agents.response_composer import ResponseComposer, TurnDraft, format_amount
from wandermate.schemas.agent_schemas import (
    BookTourIntent,
    CreatePaymentOrderIntent,
    GeneralChatIntent,
    PolicyDecision,
    ToolCallResult,
    ToolStatus,
    TurnOutcome,
    UnknownIntent,
    VerifyPaymentIntent,
)


def result(provider, operation, status=ToolStatus.SUCCESS, payload=None, reason=None):
    return ToolCallResult(
        provider=provider,
        operation=operation,
        idempotency_key="k" * 64,
        status=status,
        payload=payload,
        reason=reason,
    )


BOOKING = {
    "booking_id": "BOAT-20251021-abcd",
    "confirmation_code": "A1B2C3",
    "offering_id": "sunrise-ghat",
    "offering_name": "Sunrise Ghat Experience",
    "date": "2025-10-21",
    "guest_count": 2,
    "amount": 2400.0,
    "currency": "INR",
}


@pytest.fixture
def composer():
    return ResponseComposer()


@pytest.fixture
def booking_intent():
    intent = BookTourIntent(
        tour_id="sunrise-ghat", tour_name="Sunrise Ghat Experience", date="2025-10-21", guest_count=2
    )
    intent.refresh_missing_slots()
    return intent


class TestFormatting:
    def test_format_amount(self):
        assert format_amount(2400.0) == "₹2,400"
        assert format_amount(12.5, "USD") == "$12.50"
        assert format_amount(10, "EUR") == "10 EUR"
        assert format_amount(None) == "?"


class TestSimpleOutcomes:
    def test_greeting_gets_welcome(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.COMPLETED, GeneralChatIntent(topic="greeting")))
        assert "Namaste" in reply.text
        assert reply.quick_replies == ["Book a boat tour", "Weather today", "Get directions"]

    def test_hindi_welcome(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.COMPLETED, GeneralChatIntent(topic="greeting")), "hi")
        assert "नमस्ते" in reply.text

    def test_declined(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.DECLINED, UnknownIntent(), PolicyDecision.DECLINE))
        assert "not sure" in reply.text
        assert len(reply.quick_replies) == 3

    def test_cancelled(self, composer, booking_intent):
        reply = composer.compose(TurnDraft(TurnOutcome.CANCELLED, booking_intent))
        assert "Nothing was booked or charged" in reply.text

    def test_cancelled_unpaid_booking(self, composer, booking_intent):
        draft = TurnDraft(TurnOutcome.CANCELLED, booking_intent, unpaid_booking_id="BOAT-1")
        reply = composer.compose(draft)
        assert "BOAT-1" in reply.text
        assert "left unpaid" in reply.text
        assert "confirmed" not in reply.text

    def test_emergency_helplines(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.COMPLETED, GeneralChatIntent(topic="emergency")))
        assert "*100*" in reply.text
        assert "*108*" in reply.text
        assert "Tourist Helpline" in reply.text
        assert reply.quick_replies == ["🚨 Emergency", "🏥 Medical", "👮 Police"]

    def test_hindi_emergency(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.COMPLETED, GeneralChatIntent(topic="emergency")), "hi")
        assert "आपातकालीन" in reply.text
        assert reply.quick_replies[2] == "👮 पुलिस"

    def test_unsupported_language_uses_default(self, composer):
        reply = composer.compose(TurnDraft(TurnOutcome.COMPLETED, GeneralChatIntent(topic="food")), "fr")
        assert "kachori" in reply.text


class TestConfirmation:
    def test_booking_summary(self, composer, booking_intent):
        draft = TurnDraft(
            TurnOutcome.AWAITING_CONFIRMATION, booking_intent, PolicyDecision.CONFIRM, estimated_amount=2400.0
        )
        reply = composer.compose(draft)

        assert "Sunrise Ghat Experience" in reply.text
        assert "2025-10-21" in reply.text
        assert "₹2,400" in reply.text
        assert reply.quick_replies == ["Yes, confirm", "Cancel"]

    def test_missing_slots_prompt(self, composer):
        intent = BookTourIntent(tour_id="sunset-ghat", guest_count=2)
        intent.refresh_missing_slots()

        reply = composer.compose(TurnDraft(TurnOutcome.AWAITING_CONFIRMATION, intent, PolicyDecision.CONFIRM))

        assert "the date" in reply.text
        assert reply.quick_replies == ["Today", "Tomorrow", "Cancel"]

    def test_payment_summary(self, composer):
        intent = CreatePaymentOrderIntent(amount=1500)
        reply = composer.compose(TurnDraft(TurnOutcome.AWAITING_CONFIRMATION, intent, PolicyDecision.CONFIRM))
        assert "₹1,500" in reply.text


class TestExecution:
    def test_booking_and_order(self, composer, booking_intent):
        draft = TurnDraft(TurnOutcome.COMPLETED, booking_intent, PolicyDecision.EXECUTE, tool_results=[
            result("booking", "book", payload=BOOKING),
            result("payment", "create_order", payload={"order_id": "order_1", "amount": 2400.0, "currency": "INR"}),
        ])
        reply = composer.compose(draft)

        assert "Booking confirmed" in reply.text
        assert "BOAT-20251021-abcd" in reply.text
        assert "order_1" in reply.text
        assert reply.buttons[0].action == "pay:order_1"
        assert reply.quick_replies[0] == "Weather today"

    def test_partial_failure_reports_both_steps(self, composer, booking_intent):
        draft = TurnDraft(TurnOutcome.PARTIAL_FAILURE, booking_intent, PolicyDecision.EXECUTE, tool_results=[
            result("booking", "book", payload=BOOKING),
            result("payment", "create_order", ToolStatus.FATAL_FAILURE, reason="card declined"),
        ])
        reply = composer.compose(draft)

        assert "✅ Booking: BOAT-20251021-abcd" in reply.text
        assert "❌ Payment order: card declined" in reply.text
        assert "not paid" in reply.text
        assert "Booking confirmed" not in reply.text
        assert reply.quick_replies == ["Retry payment", "Cancel booking"]

    def test_failure_says_nothing_charged(self, composer, booking_intent):
        draft = TurnDraft(TurnOutcome.FAILED, booking_intent, PolicyDecision.EXECUTE, tool_results=[
            result("booking", "book", ToolStatus.FATAL_FAILURE, reason="tour full"),
            result("payment", "create_order", ToolStatus.SKIPPED),
        ])
        reply = composer.compose(draft)

        assert "tour full" in reply.text
        assert "Nothing was booked or charged" in reply.text
        assert reply.quick_replies == ["Try again", "Cancel"]

    def test_failed_verification_not_reported_as_success(self, composer):
        intent = VerifyPaymentIntent(order_id="order_1", payment_id="pay_1", signature="0" * 64)
        draft = TurnDraft(TurnOutcome.FAILED, intent, PolicyDecision.EXECUTE, tool_results=[
            result("payment", "verify", ToolStatus.FATAL_FAILURE, reason="payment signature mismatch"),
        ])
        reply = composer.compose(draft)

        assert "could *not* be verified" in reply.text
        assert "is verified" not in reply.text

    def test_timeout_lists_completed_steps(self, composer, booking_intent):
        draft = TurnDraft(TurnOutcome.TIMED_OUT, booking_intent, PolicyDecision.EXECUTE, tool_results=[
            result("booking", "book", payload=BOOKING),
            result("payment", "create_order", ToolStatus.RETRYABLE_FAILURE, reason="interrupted by turn timeout"),
        ])
        reply = composer.compose(draft)

        assert "taking longer" in reply.text
        assert "BOAT-20251021-abcd" in reply.text
        assert "not paid" in reply.text

    def test_timeout_with_nothing_done(self, composer, booking_intent):
        reply = composer.compose(TurnDraft(TurnOutcome.TIMED_OUT, booking_intent, PolicyDecision.EXECUTE))
        assert "Nothing was completed" in reply.text

    def test_quick_replies_never_exceed_three(self, composer, booking_intent):
        for outcome in TurnOutcome:
            reply = composer.compose(TurnDraft(outcome, booking_intent, PolicyDecision.EXECUTE))
            assert len(reply.quick_replies) <= 3
            assert len(reply.buttons) <= 3

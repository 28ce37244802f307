"""
tests/test_autonomy_policy.py - execute / confirm / decline decisions
"""

import pytest

from wandermate.agents.autonomy_policy import AutonomyPolicy
from wandermate.schemas.agent_schemas import (
    AutonomyLevel,
    BookTourIntent,
    CreatePaymentOrderIntent,
    GeneralChatIntent,
    GetNavigationIntent,
    GetWeatherIntent,
    PolicyDecision,
    UnknownIntent,
    VerifyPaymentIntent,
)
from wandermate.errors import ValidationError

ALL_LEVELS = list(AutonomyLevel)


def complete(intent):
    intent.refresh_missing_slots()
    return intent


@pytest.fixture
def policy():
    return AutonomyPolicy()


@pytest.fixture
def booking():
    return complete(BookTourIntent(tour_id="sunrise-ghat", date="2025-10-21", guest_count=2))


@pytest.fixture
def order():
    return complete(CreatePaymentOrderIntent(amount=2400))


@pytest.fixture
def verification():
    return complete(VerifyPaymentIntent(order_id="order_1", payment_id="pay_1", signature="a" * 64))


class TestReadOnly:
    @pytest.mark.parametrize("level", ALL_LEVELS)
    @pytest.mark.parametrize("intent", [
        GetWeatherIntent(city="Varanasi"),
        GetNavigationIntent(destination="Assi Ghat"),
        GeneralChatIntent(topic="food"),
    ])
    def test_always_execute(self, policy, intent, level):
        assert policy.decide(intent, level) == PolicyDecision.EXECUTE

    @pytest.mark.parametrize("level", ALL_LEVELS)
    def test_unknown_declined(self, policy, level):
        assert policy.decide(UnknownIntent(), level) == PolicyDecision.DECLINE


class TestSideEffects:
    def test_manual_never_executes_unconfirmed(self, policy, booking, order, verification):
        for intent in (booking, order, verification):
            assert policy.decide(intent, AutonomyLevel.MANUAL) == PolicyDecision.CONFIRM

    def test_assisted_executes_booking(self, policy, booking):
        assert policy.decide(booking, AutonomyLevel.ASSISTED) == PolicyDecision.EXECUTE

    def test_assisted_confirms_payments(self, policy, order, verification):
        assert policy.decide(order, AutonomyLevel.ASSISTED) == PolicyDecision.CONFIRM
        assert policy.decide(verification, AutonomyLevel.ASSISTED) == PolicyDecision.CONFIRM

    def test_autonomous_executes(self, policy, booking, order, verification):
        for intent in (booking, order, verification):
            assert policy.decide(intent, AutonomyLevel.AUTONOMOUS) == PolicyDecision.EXECUTE

    @pytest.mark.parametrize("level", ALL_LEVELS)
    def test_missing_slots_always_confirm(self, policy, level):
        intent = complete(BookTourIntent(tour_id="sunset-ghat"))
        assert intent.missing_slots == ["date", "guest_count"]
        assert policy.decide(intent, level) == PolicyDecision.CONFIRM
        assert policy.decide(intent, level, confirmed=True) == PolicyDecision.CONFIRM

    def test_confirmation_executes_at_manual(self, policy, booking):
        assert policy.decide(booking, AutonomyLevel.MANUAL, confirmed=True) == PolicyDecision.EXECUTE


class TestAutonomyLevel:
    def test_ordering(self):
        assert AutonomyLevel.MANUAL < AutonomyLevel.ASSISTED < AutonomyLevel.AUTONOMOUS

    @pytest.mark.parametrize("raw,expected", [
        ("manual", AutonomyLevel.MANUAL),
        ("guided", AutonomyLevel.MANUAL),
        ("semi-autonomous", AutonomyLevel.ASSISTED),
        ("Fully Autonomous", AutonomyLevel.AUTONOMOUS),
        ("fully_autonomous", AutonomyLevel.AUTONOMOUS),
    ])
    def test_parse_aliases(self, raw, expected):
        assert AutonomyLevel.parse(raw) == expected

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValidationError):
            AutonomyLevel.parse("reckless")

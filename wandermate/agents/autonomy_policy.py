# agents/autonomy_policy.py
"""
Autonomy Policy
Decides whether an intent is executed, confirmed first, or declined.

Rules (evaluated in order):
1. get_weather, get_navigation, general_chat: EXECUTE at every level
2. side-effecting intent with missing slots: CONFIRM
3. side-effecting intent, fully specified:
   - MANUAL: CONFIRM
   - ASSISTED: CONFIRM if payment-bearing, otherwise EXECUTE
   - AUTONOMOUS: EXECUTE
4. unknown: DECLINE

confirmed=True (an affirmative answer to a CONFIRM turn) upgrades CONFIRM
to EXECUTE only when nothing is missing.
"""

from loguru import logger

from ..schemas.agent_schemas import AutonomyLevel, Intent, PolicyDecision

READ_ONLY_KINDS = {"get_weather", "get_navigation", "general_chat"}
SIDE_EFFECT_KINDS = {"book_tour", "create_payment_order", "verify_payment"}


class AutonomyPolicy:
    """Pure decision function over (intent kind, missing slots, level)."""

    def decide(self, intent: Intent, level: AutonomyLevel, confirmed: bool = False) -> PolicyDecision:
        kind = intent.kind

        if kind in READ_ONLY_KINDS:
            decision = PolicyDecision.EXECUTE
        elif kind in SIDE_EFFECT_KINDS:
            decision = self._decide_side_effect(intent, level, confirmed)
        elif kind == "unknown":
            decision = PolicyDecision.DECLINE
        else:
            raise ValueError(f"Unhandled intent kind: {kind}")

        logger.debug(f"Policy: {kind} at {level.value} (confirmed={confirmed}) -> {decision.value}")
        return decision

    def _decide_side_effect(self, intent: Intent, level: AutonomyLevel, confirmed: bool) -> PolicyDecision:
        if intent.missing_slots:
            return PolicyDecision.CONFIRM

        if confirmed:
            return PolicyDecision.EXECUTE

        if level == AutonomyLevel.AUTONOMOUS:
            return PolicyDecision.EXECUTE
        if level == AutonomyLevel.ASSISTED:
            return PolicyDecision.CONFIRM if intent.PAYMENT_BEARING else PolicyDecision.EXECUTE
        return PolicyDecision.CONFIRM

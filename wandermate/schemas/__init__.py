# schemas/__init__.py
"""
Pydantic Schemas Package

Contains all Pydantic v2 models for:
- Sessions and turns
- Intents (tagged union) and tool calls
- Replies and delivery outcomes
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .agent_schemas import (
        # Enums
        AutonomyLevel, Channel, PolicyDecision, TurnOutcome, ToolStatus,
        # Context
        GeoPoint, ContactInfo,
        # Intents
        Intent, BookTourIntent, CreatePaymentOrderIntent, VerifyPaymentIntent,
        GetWeatherIntent, GetNavigationIntent, GeneralChatIntent, UnknownIntent,
        # Tool calls
        ToolCall, ToolCallResult,
        # Replies
        Reply, ReplyButton, DeliveryOutcome,
        # Session
        Turn, Session, AgentResponse
    )

__all__ = [
    # Enums
    "AutonomyLevel", "Channel", "PolicyDecision", "TurnOutcome", "ToolStatus",
    # Context
    "GeoPoint", "ContactInfo",
    # Intents
    "Intent", "BookTourIntent", "CreatePaymentOrderIntent", "VerifyPaymentIntent",
    "GetWeatherIntent", "GetNavigationIntent", "GeneralChatIntent", "UnknownIntent",
    # Tool calls
    "ToolCall", "ToolCallResult",
    # Replies
    "Reply", "ReplyButton", "DeliveryOutcome",
    # Session
    "Turn", "Session", "AgentResponse"
]

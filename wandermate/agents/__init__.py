# agents/__init__.py
"""
Agents Package

Contains the travel agent and the stages of a turn:
- TravelAgent: Orchestrates one turn per inbound message
- AutonomyPolicy: Decides execute / confirm / decline
- ToolDispatcher: Runs provider calls with idempotency and retries
- ResponseComposer: Builds localized channel-neutral replies
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .travel_agent import TravelAgent, build_travel_agent, get_travel_agent
    from .autonomy_policy import AutonomyPolicy
    from .tool_dispatcher import ToolDispatcher, DispatchContext, make_idempotency_key
    from .response_composer import ResponseComposer, TurnDraft

__all__ = [
    "TravelAgent",
    "build_travel_agent",
    "get_travel_agent",
    "AutonomyPolicy",
    "ToolDispatcher",
    "DispatchContext",
    "make_idempotency_key",
    "ResponseComposer",
    "TurnDraft"
]

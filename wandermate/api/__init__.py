# api/__init__.py
"""
API Endpoints Package

Contains all FastAPI routers for the agent service:
- agent: Web chat interface, autonomy and history
- whatsapp: WhatsApp Cloud API webhook
- payments: Razorpay payment verification
"""

from typing import TYPE_CHECKING

# Lazy imports to avoid circular dependencies
if TYPE_CHECKING:
    from .agent import router as agent_router
    from .whatsapp import router as whatsapp_router
    from .payments import router as payments_router

__all__ = [
    "agent_router",
    "whatsapp_router",
    "payments_router"
]

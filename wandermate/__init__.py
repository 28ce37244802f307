# wandermate/__init__.py
"""
WanderMate Travel Agent Package

A conversational travel agent with:
- Intent resolution (rules or OpenAI)
- Autonomy levels (manual, assisted, autonomous)
- Tour booking, payments, weather and navigation
- Web chat and WhatsApp delivery
"""

__version__ = "1.0.0"

# Package structure:
# wandermate/
# ├── __init__.py           <- This file
# ├── main.py               <- FastAPI application entry
# ├── config.py             <- Configuration settings
# ├── errors.py             <- Error classes
# │
# ├── agents/               <- Turn pipeline
# │   ├── travel_agent.py   <- Orchestrator
# │   ├── autonomy_policy.py
# │   ├── tool_dispatcher.py
# │   └── response_composer.py
# │
# ├── api/                  <- FastAPI Routers
# │   ├── agent.py          <- /api/ai-agent
# │   ├── whatsapp.py       <- /api/whatsapp/webhook
# │   └── payments.py       <- /api/verify-payment
# │
# ├── channels/             <- Web / WhatsApp delivery
# │   └── channel_adapter.py
# │
# ├── interfaces/           <- Data Stores
# │   └── session_store.py  <- Sessions and per-session locks
# │
# ├── llm/                  <- Intent resolution
# │   └── intent_parser.py
# │
# ├── providers/            <- Booking, payment, weather, navigation, WhatsApp
# │
# └── schemas/              <- Pydantic Models
#     └── agent_schemas.py

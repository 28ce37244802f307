"""
WanderMate Travel Agent Service - FastAPI Application
Conversational travel agent for web chat and WhatsApp.

Intent classifier:
- If INTENT_CLASSIFIER=openai and OPENAI_API_KEY is set: use OpenAI
- Otherwise: use the rule-based classifier
"""

import asyncio
import math
import sys
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .agents.travel_agent import get_travel_agent
from .api.agent import router as agent_router
from .api.payments import router as payments_router
from .api.whatsapp import router as whatsapp_router
from .config import settings
from .errors import ConcurrencyTimeout, ValidationError

# Configure logging
logger.remove()
logger.add(
    sys.stderr,
    level=settings.LOG_LEVEL.upper(),
    format="{time:YYYY-MM-DD HH:mm:ss} - {name} - {level} - {message}"
)


def _resolve_agent(app: FastAPI):
    provider = app.dependency_overrides.get(get_travel_agent, get_travel_agent)
    return provider()


async def _periodic_eviction(agent):
    """Drop idle in-memory sessions every SESSION_EVICT_INTERVAL seconds"""
    try:
        while True:
            await asyncio.sleep(settings.SESSION_EVICT_INTERVAL)
            try:
                await agent.session_store.evict_expired()
            except Exception as e:
                logger.error(f"Error in session eviction: {e}")
    except asyncio.CancelledError:
        logger.info("Session eviction stopped")
        raise


# ============================================
# Lifespan
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("=" * 50)
    logger.info("Starting WanderMate Travel Agent Service")
    logger.info("=" * 50)
    logger.info(f"Environment: {settings.API_ENV}")
    logger.info(f"Intent classifier: {'OpenAI' if settings.use_openai_classifier else 'rules'}")
    if settings.use_openai_classifier:
        logger.info(f"  Model: {settings.OPENAI_MODEL}")

    agent = _resolve_agent(app)
    await agent.session_store.connect()

    ready = sum(1 for v in agent.readiness.ready.values() if v)
    logger.info(f"Providers ready: {ready}/{len(agent.readiness.ready)}")
    for name, status in agent.readiness.to_dict().items():
        logger.info(f"  {'✓' if status == 'ready' else '✗'} {name}: {status}")

    eviction_task = asyncio.create_task(_periodic_eviction(agent))

    yield

    eviction_task.cancel()
    try:
        await eviction_task
    except asyncio.CancelledError:
        pass
    await agent.session_store.close()
    await agent.providers.aclose()
    logger.info("WanderMate service shutdown complete")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="WanderMate Travel Agent",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(agent_router)
app.include_router(whatsapp_router)
app.include_router(payments_router)


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": exc.message, "field": exc.field}
    )


@app.exception_handler(ConcurrencyTimeout)
async def concurrency_timeout_handler(request: Request, exc: ConcurrencyTimeout):
    logger.warning(f"Rejected message for busy session {exc.session_id}")
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(max(1, math.ceil(exc.timeout)))},
        content={"success": False, "error": "Session is busy, please retry shortly"}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Failed to process request"}
    )


# ============================================
# REST Endpoints
# ============================================

@app.get("/")
async def root():
    return {
        "service": "WanderMate Travel Agent",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "endpoints": [
            "POST /api/ai-agent",
            "GET /api/ai-agent",
            "PUT /api/ai-agent/autonomy",
            "GET /api/ai-agent/history/{session_id}",
            "GET /api/whatsapp/webhook",
            "POST /api/whatsapp/webhook",
            "POST /api/verify-payment",
        ],
    }


@app.get("/api/ai/health")
async def health_check():
    agent = _resolve_agent(app)
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "session_backend": "redis" if agent.session_store.is_redis else "memory",
        "active_sessions": len(agent.session_store),
        "providers": agent.readiness.to_dict(),
    }


# ============================================
# Main
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "wandermate.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_ENV == "development"
    )

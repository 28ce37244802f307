# api/agent.py
"""
AI Agent API Endpoint
Web chat interface to the WanderMate travel agent.

- POST /api/ai-agent: process one message
- GET  /api/ai-agent: agent info for a session
- PUT  /api/ai-agent/autonomy: change the session's autonomy level
- GET  /api/ai-agent/history/{session_id}: committed turns
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ..agents.travel_agent import TravelAgent, get_travel_agent
from ..schemas.agent_schemas import Channel, GeoPoint, ReplyButton

router = APIRouter(prefix="/api/ai-agent", tags=["agent"])


# ============================================
# Request/Response Models
# ============================================

class AgentRequest(BaseModel):
    """Inbound web message"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field("", max_length=2000, description="User's message")
    session_id: Optional[str] = Field(None, alias="sessionId", description="Session ID for context continuity")
    user_location: Optional[GeoPoint] = Field(None, alias="userLocation")
    language: Optional[str] = Field(None, description="'en' or 'hi'")
    autonomy_level: Optional[str] = Field(None, alias="autonomyLevel", description="manual, assisted or autonomous")


class AgentReply(BaseModel):
    text: str
    quickReplies: List[str] = Field(default_factory=list)
    buttons: List[ReplyButton] = Field(default_factory=list)


class AgentResponseBody(BaseModel):
    """Response to one message"""
    success: bool = True
    response: AgentReply
    sessionId: str
    autonomyLevel: str
    turnIndex: int
    outcome: str
    timestamp: str


class AutonomyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1)
    autonomy_level: str = Field(..., alias="autonomyLevel")


# ============================================
# Endpoints
# ============================================

@router.post("", response_model=AgentResponseBody)
async def send_message(request: AgentRequest, agent: TravelAgent = Depends(get_travel_agent)):
    """
    Process a chat message.

    ValidationError (400) and ConcurrencyTimeout (429) are mapped by the
    application's exception handlers.
    """
    result = await agent.process_message(
        request.message,
        session_id=request.session_id,
        user_location=request.user_location,
        language=request.language,
        autonomy_level=request.autonomy_level,
        channel=Channel.WEB
    )

    return AgentResponseBody(
        response=AgentReply(
            text=result.reply.text,
            quickReplies=result.reply.quick_replies,
            buttons=result.reply.buttons
        ),
        sessionId=result.session_id,
        autonomyLevel=result.autonomy_level.value,
        turnIndex=result.turn_index,
        outcome=result.outcome.value,
        timestamp=result.timestamp.isoformat()
    )


@router.get("")
async def get_agent_info(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    agent: TravelAgent = Depends(get_travel_agent)
) -> Dict[str, Any]:
    """Agent info (autonomy level, capabilities, features) for a session."""
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    return {"success": True, "agentInfo": await agent.agent_info(session_id)}


@router.put("/autonomy")
async def update_autonomy(request: AutonomyRequest, agent: TravelAgent = Depends(get_travel_agent)) -> Dict[str, Any]:
    level = await agent.set_autonomy_level(request.session_id, request.autonomy_level)
    return {"success": True, "sessionId": request.session_id, "autonomyLevel": level.value}


@router.get("/history/{session_id}")
async def get_history(session_id: str, agent: TravelAgent = Depends(get_travel_agent)) -> Dict[str, Any]:
    turns = await agent.history(session_id)
    if turns is None:
        raise HTTPException(status_code=404, detail="Session not found")

    logger.debug(f"History for {session_id}: {len(turns)} turns")
    return {
        "success": True,
        "sessionId": session_id,
        "turns": [turn.model_dump(mode="json") for turn in turns],
    }

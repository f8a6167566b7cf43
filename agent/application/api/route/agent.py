# REST endpoints for state queries and provider status
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request
import structlog

from application.session_registry import SessionRegistry
from application.websocket.ws_server import SESSION_ID_PATTERN

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/api/avatar-state/{session_id}")
async def get_avatar_state(session_id: str, request: Request) -> Dict[str, Any]:
    """Current avatar and the five most recent memories"""

    if not SESSION_ID_PATTERN.match(session_id):
        raise HTTPException(status_code=400, detail="Invalid session ID format")

    sessions: SessionRegistry = request.app.state.sessions
    state = await sessions.read_avatar_state(session_id)
    return state.model_dump(mode="json", by_alias=True)


@router.get("/check-open-ai-key")
async def check_provider(request: Request) -> Dict[str, Any]:
    sessions: SessionRegistry = request.app.state.sessions
    return {
        "success": sessions.inference_client is not None,
        "provider": request.app.state.settings.model_provider
    }

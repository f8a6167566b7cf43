from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Dict, Any, Set
import asyncio
import re
import structlog

from pydantic import ValidationError

from .connection_manager import ConnectionManager
from .schema.events import (
    UserMessage, EventType, ComponentType, FormSubmitData
)
from application.session_registry import SessionRegistry
from domain.streaming.streaming_handler import StreamingHandler

logger = structlog.get_logger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

router = APIRouter()


@router.websocket("/ws/agent/{session_id}")
async def agent_websocket(websocket: WebSocket, session_id: str):
    """Main WebSocket endpoint for agent interaction"""

    if not SESSION_ID_PATTERN.match(session_id):
        await websocket.close(code=1008, reason="Invalid session ID format")
        return

    sessions: SessionRegistry = websocket.app.state.sessions
    connection_manager: ConnectionManager = websocket.app.state.connection_manager
    streaming_handler = StreamingHandler(connection_manager)

    async def sink(chunk):
        await streaming_handler.handle_chunk(session_id, chunk)

    await connection_manager.connect(websocket, session_id)
    await sessions.attach_sink(session_id, sink)
    turns: Set[asyncio.Task] = set()

    def start_turn(work):
        task = asyncio.ensure_future(_run_turn(connection_manager, session_id, work))
        turns.add(task)
        task.add_done_callback(turns.discard)

    try:
        await streaming_handler.send_progress(session_id, "Agent ready")

        # Main message loop
        while True:
            data = await websocket.receive_json()

            try:
                event_type = data.get("type")

                if event_type == EventType.USER_MESSAGE:
                    if sessions.inference_client is None:
                        await connection_manager.send_error(session_id, "No inference provider is configured",
                                                            error_code="provider_unavailable")
                        continue
                    user_message = UserMessage(**data)
                    start_turn(sessions.handle_user_message(session_id, user_message.content))

                elif event_type == EventType.COMPONENT:
                    await handle_component_interaction(sessions, connection_manager, session_id, data, start_turn)

                elif event_type == EventType.CANCEL:
                    if not sessions.cancel(session_id):
                        logger.info("Cancel received with no turn running", session_id=session_id)

                else:
                    await connection_manager.send_error(session_id, f"Unsupported event type: {event_type}",
                                                        error_code="unsupported_event")

            except ValidationError as e:
                logger.warning("Invalid event", error=str(e), session_id=session_id)
                await connection_manager.send_error(session_id, f"Invalid event: {e.error_count()} errors",
                                                    error_code="invalid_event")
            except Exception as e:
                logger.error("Error processing message", error=str(e), session_id=session_id)
                await connection_manager.send_error(
                    session_id,
                    f"Error processing message: {str(e)}"
                )

    except WebSocketDisconnect:
        logger.info("Client disconnected", session_id=session_id)
    except Exception as e:
        logger.error("WebSocket error", error=str(e), session_id=session_id)
    finally:
        sessions.detach_sink(session_id, sink)
        if turns:
            sessions.cancel(session_id)
        await connection_manager.disconnect(session_id, websocket)


async def _run_turn(connection_manager: ConnectionManager, session_id: str, work):
    try:
        await work
    except Exception as e:
        logger.exception("Turn crashed", session_id=session_id)
        await connection_manager.send_error(session_id, f"Error in agent processing: {str(e)}")


async def handle_component_interaction(
    sessions: SessionRegistry,
    connection_manager: ConnectionManager,
    session_id: str,
    data: Dict[str, Any],
    start_turn
):
    """Handle UI component interactions; form submits answer tool confirmations"""

    payload = data.get("payload") or {}
    if payload.get("component") != ComponentType.FORM_SUBMIT:
        await connection_manager.send_error(session_id, f"Unsupported component: {payload.get('component')}",
                                            error_code="unsupported_component")
        return

    form = FormSubmitData(**(payload.get("data") or {}))
    approved = form.approved
    if approved is None:
        await connection_manager.send_error(session_id, "Form action must be 'approve' or 'reject'",
                                            error_code="invalid_form")
        return

    logger.info("Confirmation submitted", session_id=session_id, tool_call_id=form.form_id, approved=approved)

    async def confirm():
        if await sessions.handle_confirmation(session_id, form.form_id, approved) is None:
            await connection_manager.send_error(session_id, f"No pending tool call with id {form.form_id}",
                                                error_code="unknown_tool_call")

    start_turn(confirm())

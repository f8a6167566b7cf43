from typing import Dict, Any, Optional
import time
import structlog

from application.websocket.connection_manager import ConnectionManager
from application.websocket.schema.events import (
    MarkdownEvent, ComponentEvent, ComponentPayload, ProgressData, ToolActivityData,
    ComponentType, FormData, FormField, WORKFLOW_FINISH
)
from domain.streaming.output_stream import ChunkType, FinishReason, StreamChunk

logger = structlog.get_logger(__name__)


class StreamingHandler:
    """Converts a turn's output chunks into WebSocket events.

    Text deltas are buffered and sent in batches; the buffer is always
    flushed before any other event so the client sees chunks in the order
    they were produced.
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        flush_chars: int = 50,
        flush_interval: float = 0.1
    ):
        self.connection_manager = connection_manager or ConnectionManager()
        self.flush_chars = flush_chars
        self.flush_interval = flush_interval
        self.streaming_sessions: Dict[str, Dict[str, Any]] = {}

    async def handle_chunk(self, session_id: str, chunk: StreamChunk):
        """Forward one output chunk to the client"""

        if chunk.type == ChunkType.TEXT_DELTA:
            await self.stream_token(session_id, chunk.text or "")
            return

        await self.flush_stream(session_id)

        if chunk.type == ChunkType.TOOL_CALL:
            await self.send_tool_activity(session_id, ToolActivityData(
                phase="call", tool_call_id=chunk.tool_call_id, tool_name=chunk.tool_name, args=chunk.args
            ))
        elif chunk.type == ChunkType.TOOL_RESULT:
            await self.send_tool_activity(session_id, ToolActivityData(
                phase="result", tool_call_id=chunk.tool_call_id, tool_name=chunk.tool_name,
                result=chunk.result, success=chunk.success
            ))
        elif chunk.type == ChunkType.CONFIRMATION_REQUIRED:
            await self._send_confirmation_form(session_id, chunk)
        elif chunk.type == ChunkType.ERROR:
            await self.connection_manager.send_error(session_id, chunk.error or "Unknown error")
        elif chunk.type == ChunkType.FINISH:
            await self.send_workflow_complete(session_id, chunk.finish_reason)

    async def _send_confirmation_form(self, session_id: str, chunk: StreamChunk):
        """Ask the user to approve or reject a confirmation-gated tool call"""

        form_data = FormData(
            id=chunk.tool_call_id,
            title=f"Confirm {chunk.tool_name}",
            description=f"The assistant wants to run {chunk.tool_name} with {chunk.args or {}}",
            fields=[
                FormField(
                    key="action",
                    type="select",
                    label="Action",
                    required=True,
                    options=[
                        {"value": "approve", "label": "Approve"},
                        {"value": "reject", "label": "Reject"}
                    ]
                )
            ]
        )

        await self.connection_manager.send_event(
            session_id,
            ComponentEvent(
                payload=ComponentPayload(component=ComponentType.UI_INTERACTION, data=form_data)
            )
        )

    async def send_tool_activity(self, session_id: str, activity: ToolActivityData):
        await self.connection_manager.send_event(
            session_id,
            ComponentEvent(
                payload=ComponentPayload(component=ComponentType.TOOL_ACTIVITY, data=activity)
            )
        )

    async def send_progress(
        self,
        session_id: str,
        status: str,
        detail: Optional[str] = None
    ):
        """Send progress update to client"""

        await self.connection_manager.send_event(
            session_id,
            ComponentEvent(
                payload=ComponentPayload(
                    component=ComponentType.PROGRESS,
                    data=ProgressData(status=status, detail=detail)
                )
            )
        )

    async def send_markdown(self, session_id: str, content: str):
        """Send markdown content to client"""

        await self.connection_manager.send_event(
            session_id,
            MarkdownEvent(payload=content)
        )

    async def send_workflow_complete(self, session_id: str, reason: Optional[FinishReason] = None):
        """Send the end-of-turn marker"""

        await self.send_progress(session_id, WORKFLOW_FINISH, detail=reason.value if reason else None)

    async def stream_token(self, session_id: str, token: str):
        """Buffer a text delta, sending when the buffer is large or old enough"""

        if session_id not in self.streaming_sessions:
            self.streaming_sessions[session_id] = {
                "buffer": "",
                "last_send": time.monotonic()
            }

        session_data = self.streaming_sessions[session_id]
        session_data["buffer"] += token

        now = time.monotonic()
        if now - session_data["last_send"] > self.flush_interval or len(session_data["buffer"]) > self.flush_chars:
            await self.send_markdown(session_id, session_data["buffer"])
            session_data["buffer"] = ""
            session_data["last_send"] = now

    async def flush_stream(self, session_id: str):
        """Flush any remaining buffered content"""

        session_data = self.streaming_sessions.pop(session_id, None)
        if session_data and session_data["buffer"]:
            await self.send_markdown(session_id, session_data["buffer"])

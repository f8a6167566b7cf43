from typing import Dict, Optional
from fastapi import WebSocket
import asyncio
from datetime import datetime, timezone
import structlog

from .schema.events import BaseEvent, ConnectionEvent, ErrorEvent

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionManager:
    """Manages WebSocket connections and message routing"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_metadata: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str):
        """Accept a new WebSocket connection, replacing any older one for the session"""
        await websocket.accept()

        async with self._lock:
            previous = self.active_connections.get(session_id)
            self.active_connections[session_id] = websocket
            self.session_metadata[session_id] = {
                "connected_at": _now(),
                "last_activity": _now()
            }

        if previous is not None:
            logger.info("Replacing existing connection", session_id=session_id)
            try:
                await previous.close(code=1000, reason="Replaced by a newer connection")
            except Exception as e:
                logger.error("Error closing WebSocket", session_id=session_id, error=str(e))

        # Send connection confirmation
        await self.send_event(
            session_id,
            ConnectionEvent(
                status="connected",
                session_id=session_id
            )
        )

        logger.info("WebSocket connected", session_id=session_id)

    async def disconnect(self, session_id: str, websocket: Optional[WebSocket] = None):
        """Disconnect a session; with websocket given, only if it is still the active one"""
        async with self._lock:
            current = self.active_connections.get(session_id)
            if current is None or (websocket is not None and current is not websocket):
                return
            ws = self.active_connections.pop(session_id)
            self.session_metadata.pop(session_id, None)

        try:
            await ws.close()
        except Exception as e:
            logger.debug("WebSocket already closed", session_id=session_id, error=str(e))

        logger.info("WebSocket disconnected", session_id=session_id)

    async def send_event(self, session_id: str, event: BaseEvent) -> bool:
        """Send an event to a specific session"""
        if session_id not in self.active_connections:
            logger.warning("Attempted to send to disconnected session", session_id=session_id)
            return False

        websocket = self.active_connections[session_id]
        if event.session_id is None:
            event.session_id = session_id

        try:
            await websocket.send_json(event.model_dump(mode="json"))

            if session_id in self.session_metadata:
                self.session_metadata[session_id]["last_activity"] = _now()

            return True

        except Exception as e:
            logger.error("Failed to send event", session_id=session_id, error=str(e))
            await self.disconnect(session_id, websocket)
            return False

    async def send_error(self, session_id: str, error_message: str, error_code: Optional[str] = None):
        """Send an error event to a session"""
        error_event = ErrorEvent(
            payload={"message": error_message},
            error_code=error_code,
            session_id=session_id
        )
        await self.send_event(session_id, error_event)

    async def health_check(self, idle_timeout: float = 300, interval: float = 60):
        """Periodic health check to clean up stale connections"""
        while True:
            try:
                current_time = _now()
                stale_sessions = [
                    session_id
                    for session_id, metadata in list(self.session_metadata.items())
                    if (current_time - metadata["last_activity"]).total_seconds() > idle_timeout
                ]

                for session_id in stale_sessions:
                    logger.warning("Disconnecting stale session", session_id=session_id)
                    await self.disconnect(session_id)

            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(interval)

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from application.api.route.agent import router as agent_router
from application.session_registry import SessionRegistry
from application.websocket.connection_manager import ConnectionManager
from application.websocket.ws_server import router as ws_router
from infrastructure.config.settings import Settings, get_settings
from infrastructure.inference.inference_client import InferenceClient, create_inference_client
from infrastructure.observability.logging import metrics, setup_logging
from infrastructure.storage.state_storage import StateStorage

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    inference_client: Optional[InferenceClient] = None,
    storage: Optional[StateStorage] = None
) -> FastAPI:
    """Build the service; without an explicit client one is created from settings"""

    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    if inference_client is None:
        try:
            inference_client = create_inference_client(settings)
        except Exception as e:
            logger.warning("Inference provider unavailable", provider=settings.model_provider, error=str(e))

    connection_manager = ConnectionManager()
    sessions = SessionRegistry(settings, inference_client, storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        health_task = asyncio.create_task(connection_manager.health_check())
        sweep_task = asyncio.create_task(
            sessions.sweep_idle(settings.session_idle_timeout, settings.session_sweep_interval)
        )
        logger.info("Avatar agent server started", provider=settings.model_provider)
        try:
            yield
        finally:
            health_task.cancel()
            sweep_task.cancel()
            for session_id in list(connection_manager.active_connections.keys()):
                await connection_manager.disconnect(session_id)
            await sessions.shutdown()
            logger.info("Avatar agent server shutdown")

    app = FastAPI(title="Percify Avatar Co-Pilot", lifespan=lifespan)
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.connection_manager = connection_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agent_router)
    app.include_router(ws_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "active_connections": len(connection_manager.active_connections),
            "active_sessions": len(sessions.sessions),
            "metrics": metrics.get_metrics_summary(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

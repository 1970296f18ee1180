"""Roomkeeper Backend Application.

This is the main entry point for the room presence service: membership,
reconnection handling, history replay and typing indicators for a
multi-room real-time chat.

Modules:
    - chat: room state, per-room event serialization and the WebSocket surface
    - config: YAML-backed settings
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomkeeper.chat.coordinator import ChatCoordinator
from roomkeeper.chat.router import router as chat_router
from roomkeeper.chat.transport import WebSocketTransport
from roomkeeper.config import AppConfig, get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn logs every websocket frame at DEBUG.
for _noisy in ("uvicorn.access", "websockets", "websockets.protocol"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config: AppConfig = app.state.config

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in roomkeeper.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"Room service ready on http://{config.server.host}:{config.server.port} "
        f"(reconnection window {config.presence.reconnection_window_ms} ms)"
    )

    yield  # Application runs here

    # Shutdown
    await app.state.coordinator.shutdown()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application and the room coordinator it serves.

    Args:
        config: Settings to use. Defaults to get_config().

    Returns:
        FastAPI app with ``state.config`` and ``state.coordinator`` set.
    """
    config = config or get_config()

    app = FastAPI(
        title="Roomkeeper API",
        description="Presence, membership and history replay for multi-room chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.coordinator = ChatCoordinator(WebSocketTransport(), config)

    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn on the configured host and port."""
    import uvicorn

    config = get_config()
    logger.info(f"Starting room service on {config.server.host}:{config.server.port}")
    uvicorn.run(
        "roomkeeper.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level,
    )

"""BruinMarket Backend Application.

This is the main entry point for the BruinMarket realtime messaging service,
the part of the university marketplace that lets buyers and sellers chat
about a listing in real time.

Modules:
    - chat: WebSocket hub and per-connection sessions
    - messages: DuckDB conversation/message storage and history endpoints
    - auth: JWT session tokens
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bruinmarket.chat.hub import Hub, get_hub, set_hub
from bruinmarket.chat.router import router as chat_router
from bruinmarket.config import get_config
from bruinmarket.messages.router import router as messages_router
from bruinmarket.messages.service import MessageStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn logs every WebSocket handshake; not useful when debugging chat flow.
for _noisy in (
    "uvicorn.access",
    "websockets",
    "websockets.server",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.server.log_level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.server.log_level.upper())

    MessageStore.get_instance(db_path=config.database.path)
    logger.info("Message store ready: %s", config.database.path)

    set_hub(Hub(evict_superseded=config.hub.evict_superseded))
    logger.info(
        "Realtime hub ready: queue_size=%d evict_superseded=%s",
        config.hub.outbound_queue_size,
        config.hub.evict_superseded,
    )

    yield  # Application runs here

    # Shutdown: closing every outbound queue drives each session to CLOSED
    sessions = get_hub().shutdown()
    if sessions:
        try:
            await asyncio.wait_for(
                asyncio.gather(*(s.wait_closed() for s in sessions)),
                timeout=config.hub.drain_timeout_seconds + 1,
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out waiting for %d chat sessions to close", len(sessions))
    MessageStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="BruinMarket API",
    description="Realtime messaging backend for the BruinMarket university marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(chat_router)
app.include_router(messages_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object with the number of connected chat users.
    """
    return {"status": "ok", "online": len(get_hub())}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "bruinmarket.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
    )

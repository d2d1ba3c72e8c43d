from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from constants import (
    ALLOWED_ORIGINS,
    HEARTBEAT_INTERVAL,
    LOG_FILE,
    LOG_LEVEL,
    REDIS_URL,
    SEND_TIMEOUT,
    SHUTDOWN_GRACE,
    WS_PATH,
)
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from service import RealtimeService

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def origin_allowed(origin: Optional[str], allowed_origins: list) -> bool:
    # Native clients send no Origin header
    if not origin:
        return True
    return "*" in allowed_origins or origin in allowed_origins


def create_app(service: Optional[RealtimeService] = None, allowed_origins: Optional[list] = None) -> FastAPI:
    if service is None:
        service = RealtimeService(
            redis_url=REDIS_URL,
            heartbeat_interval=HEARTBEAT_INTERVAL,
            send_timeout=SEND_TIMEOUT,
            shutdown_grace=SHUTDOWN_GRACE,
        )
    if allowed_origins is None:
        allowed_origins = ALLOWED_ORIGINS

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.start()
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "WebSocket server running"

    @app.websocket(WS_PATH)
    async def websocket_endpoint(websocket: WebSocket):
        origin = websocket.headers.get("origin")
        if not origin_allowed(origin, allowed_origins):
            logger.warning(f"Rejected WebSocket connection from origin: {origin}")
            await websocket.close(code=1008, reason="Origin not allowed")
            return

        await websocket.accept()
        connection = service.connect(websocket)
        message_count = 0
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug(f"WebSocket disconnected normally for connection {connection.id}")
                    break
                message_count += 1
                data = message.get("text")
                if data is None:
                    # Binary frames are not part of the protocol
                    logger.debug(f"Ignoring non-text message #{message_count} from connection {connection.id}")
                    continue
                logger.debug(f"Received message #{message_count} from connection {connection.id}")
                await service.receive(connection, data)
        except WebSocketDisconnect:
            logger.debug(f"WebSocket disconnected normally for connection {connection.id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection.id}: {e}", exc_info=True)
            await connection.close(code=1011)
        finally:
            service.disconnect(connection)

    logger.info("FastAPI application initialized")
    return app


app = create_app()

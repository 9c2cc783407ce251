"""FastAPI application entry point."""

import asyncio
import json
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from . import __version__
from .config import settings
from .database import async_session_maker, create_tables
from .exceptions import (
    AuthError,
    DevCollabError,
    EditWindowExpiredError,
    InvalidPayloadError,
    NotAuthorizedError,
    NotFoundError,
    TransientIOError,
)
from .routers import auth_router, chat_router, notifications_router
from .services.auth_service import authenticate_handshake, parse_token
from .services.redis_service import redis_service
from .websocket import manager
from .websocket.handlers import route_incoming_message

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Close codes used before and after the handshake
WS_CLOSE_AUTH_FAILED = 4001
LIVENESS_GRACE_SECONDS = 10


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    if settings.db_create_tables:
        logger.info("Creating database tables...")
        await create_tables()

    if settings.redis_enabled:
        logger.info("Connecting to Redis...")
        try:
            await redis_service.connect()
            await manager.initialize_redis()
            await redis_service.start_listening()
            logger.info("Redis pub/sub ready, room broadcasts span all workers")
        except Exception as e:
            if settings.redis_required:
                logger.error(f"Redis connection failed and REDIS_REQUIRED=true: {e}")
                raise RuntimeError(
                    f"Redis is required for multi-worker deployment but connection failed: {e}"
                )
            logger.warning(f"Redis connection failed, running in single-worker mode: {e}")
            await redis_service.disconnect()

    yield

    if redis_service.is_connected:
        logger.info("Disconnecting from Redis...")
        await redis_service.disconnect()


app = FastAPI(
    title="DevCollab API",
    description="Realtime project collaboration: rooms, presence, chat and notifications",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Sessions used outside request dependencies (WebSocket handshake and commands)
app.state.session_factory = async_session_maker

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_STATUS: dict[type[DevCollabError], int] = {
    AuthError: status.HTTP_401_UNAUTHORIZED,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NotAuthorizedError: status.HTTP_403_FORBIDDEN,
    InvalidPayloadError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EditWindowExpiredError: status.HTTP_400_BAD_REQUEST,
    TransientIOError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(DevCollabError)
async def devcollab_error_handler(request: Request, exc: DevCollabError):
    """Map the error taxonomy onto HTTP status codes."""
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.reason},
    )


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(f"Database pool exhausted on {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url}: {exc}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(notifications_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "status": "healthy",
        "service": "DevCollab API",
        "version": __version__,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "redis": await redis_service.health_check(),
        "websocket": {
            "connections": manager.total_connections,
            "rooms": manager.total_rooms,
            "online_users": manager.registry.total_users,
        },
    }


def _extract_token(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def _send_transport_error(websocket: WebSocket, error: str, message: str) -> None:
    await websocket.send_json({"type": "error", "data": {"error": error, "message": message}})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """
    WebSocket endpoint for real-time collaboration.

    Authentication uses the ``token`` query parameter (browsers cannot set
    headers on the handshake) with an ``Authorization: Bearer`` fallback.
    A failed handshake is closed before it is accepted, with code 4001
    and the failure reason.

    Usage:
        ws://localhost:8000/ws?token=<jwt_token>
    """
    raw_token = _extract_token(websocket, token)
    session_factory = websocket.app.state.session_factory

    try:
        async with session_factory() as db:
            user = await authenticate_handshake(db, raw_token)
            profile = user.to_profile()
            user_id = user.id
    except AuthError as e:
        logger.info(f"WebSocket handshake rejected: {e.reason}")
        await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason=e.reason)
        return

    connection = await manager.connect(websocket, user_id, profile)
    if connection is None:
        return  # per-user connection cap

    message_timestamps: list[float] = []
    token_valid = True
    loop = asyncio.get_running_loop()
    last_token_check = loop.time()

    async def server_ping_task():
        """Send periodic pings and re-validate the token."""
        nonlocal token_valid, last_token_check
        try:
            while True:
                await asyncio.sleep(settings.ws_ping_interval)
                try:
                    await websocket.send_json({"type": "ping", "data": {}})

                    current_time = loop.time()
                    if current_time - last_token_check > settings.ws_token_revalidation_interval:
                        try:
                            parse_token(raw_token)
                        except AuthError:
                            logger.warning(f"Token expired for user {user_id}, closing connection")
                            token_valid = False
                            await _send_transport_error(
                                websocket, "token_expired", "Session expired, please re-authenticate"
                            )
                            await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason="token_expired")
                            break
                        last_token_check = current_time
                except Exception:
                    break  # Connection is dead
        except asyncio.CancelledError:
            pass

    ping_task = asyncio.create_task(server_ping_task())

    try:
        while token_valid:
            try:
                raw_message = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_receive_timeout,
                )
            except asyncio.TimeoutError:
                # Silent client: ping once more before giving up
                try:
                    await websocket.send_json({"type": "ping", "data": {}})
                    raw_message = await asyncio.wait_for(
                        websocket.receive_text(),
                        timeout=LIVENESS_GRACE_SECONDS,
                    )
                except (asyncio.TimeoutError, WebSocketDisconnect, RuntimeError):
                    logger.info(f"Connection timeout for user: {user_id}")
                    break

            manager.registry.touch(user_id)

            current_time = loop.time()
            message_timestamps[:] = [
                t for t in message_timestamps if current_time - t < settings.ws_rate_limit_window
            ]
            if len(message_timestamps) >= settings.ws_rate_limit_messages:
                logger.warning(f"Rate limit exceeded for user {user_id}")
                await _send_transport_error(websocket, "rate_limited", "Too many messages, slow down")
                continue
            message_timestamps.append(current_time)

            if len(raw_message) > settings.ws_max_message_size:
                logger.warning(
                    f"Message too large from user {user_id}: "
                    f"{len(raw_message)} bytes (max: {settings.ws_max_message_size})"
                )
                await _send_transport_error(
                    websocket,
                    "message_too_large",
                    f"Message exceeds maximum size of {settings.ws_max_message_size} bytes",
                )
                continue

            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {user_id}")
                await _send_transport_error(websocket, "invalid_json", "Invalid JSON format")
                continue

            if not isinstance(data, dict):
                await _send_transport_error(websocket, "invalid_json", "Expected a JSON object")
                continue

            await route_incoming_message(connection, data, session_factory=session_factory)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnect for user: {user_id}")
    except Exception as e:
        logger.error(f"WebSocket exception for user {user_id}: {e}")
    finally:
        ping_task.cancel()
        try:
            await ping_task
        except asyncio.CancelledError:
            pass
        await manager.disconnect(connection)

"""
FastAPI application for ephemeral two-party chat rooms.
Rooms are reached by a 6-digit passcode and live in memory for 40 minutes.
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from room_manager import RoomRegistry
from room_models import EventFrame
from session_handler import SYSTEM_MESSAGE, SessionHandler
from transport import ConnectionHub

# ============ ENVIRONMENT CONFIG ============
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "*").split(",") if h.strip()]
HTTP_RATE_LIMIT = os.getenv("HTTP_RATE_LIMIT", "100/minute")
WS_RATE_LIMIT = int(os.getenv("WS_RATE_LIMIT", "20"))
WS_RATE_WINDOW = float(os.getenv("WS_RATE_WINDOW", "2.0"))

MSG_RATE_LIMITED = "Rate limit exceeded. Please slow down."

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STATIC_PATH = Path(__file__).parent / "static"


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        # Prevent content type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "connect-src 'self' ws: wss:; "
            "frame-ancestors 'none';"
        )
        # HSTS - enforce HTTPS in production
        if not DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app(registry: RoomRegistry = None, hub: ConnectionHub = None) -> FastAPI:
    """
    Build the application with its own hub, registry and session handler.

    Room state belongs to the app instance, so every call starts empty.
    """
    hub = hub or ConnectionHub()
    registry = registry or RoomRegistry()
    registry.members_of = hub.members_of
    handler = SessionHandler(registry, hub)
    registry.on_expire = handler.expire_room

    limiter = Limiter(key_func=get_remote_address)

    # ============ LIFESPAN CONTEXT ============
    @asynccontextmanager
    async def lifespan(app):
        logger.info("Passchat started successfully")
        yield
        await registry.shutdown()
        logger.info("Passchat shutting down")

    app = FastAPI(title="Passchat", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.limiter = limiter
    app.state.hub = hub
    app.state.registry = registry
    app.state.handler = handler
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    # Trusted Host Middleware - prevent host header attacks
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)

    @app.get("/", include_in_schema=False)
    @limiter.limit(HTTP_RATE_LIMIT)
    async def landing_page(request: Request):
        """Serve the chat client."""
        return FileResponse(STATIC_PATH / "index.html", media_type="text/html")

    @app.websocket("/ws")
    async def websocket_room(websocket: WebSocket):
        """
        WebSocket endpoint carrying room events.
        Every frame is JSON: {"event": "<name>", "data": <payload>}
        """
        await websocket.accept()
        connection_id = hub.register(websocket)
        session = handler.open_session(connection_id)
        logger.info(f"Connected: {connection_id}")

        # Rate limiting: WS_RATE_LIMIT events per WS_RATE_WINDOW seconds
        event_timestamps = []

        try:
            while True:
                data = await websocket.receive_text()

                now = time.monotonic()
                event_timestamps = [t for t in event_timestamps if now - t < WS_RATE_WINDOW]
                if len(event_timestamps) >= WS_RATE_LIMIT:
                    await hub.emit_to_connection(connection_id, SYSTEM_MESSAGE, MSG_RATE_LIMITED)
                    continue
                event_timestamps.append(now)

                try:
                    frame = EventFrame.model_validate_json(data)
                except ValidationError:
                    logger.debug(f"Malformed frame from {connection_id} ignored")
                    continue

                await handler.dispatch(session, frame.event, frame.data)

        except WebSocketDisconnect:
            logger.info(f"Disconnected: {connection_id}")
        except Exception:
            logger.exception(f"WebSocket error for {connection_id}")
        finally:
            await handler.on_disconnect(session)
            hub.unregister(connection_id)

    # Mount static files
    app.mount("/static", StaticFiles(directory=STATIC_PATH), name="static")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Server running on http://{HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT)

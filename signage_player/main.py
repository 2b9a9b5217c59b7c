import os
import asyncio
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from signage_player.db import Base, SessionLocal, engine, ensure_sqlite_schema
from signage_player.api import playback, display
from signage_player.models import playback_state  # noqa: F401  registers the table
from signage_player.services.controller import CONTROLLER_URL, ControllerClient
from signage_player.services.orchestrator import PlaybackOrchestrator
from signage_player.services.realtime import hub

API_KEY = os.getenv("SIGNAGE_API_KEY", "").strip()
LOG_LEVEL = os.getenv("SIGNAGE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
QUIET_ACCESS_LOG = os.getenv("SIGNAGE_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_WEBSOCKET_LOG = os.getenv("SIGNAGE_QUIET_WEBSOCKET_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
_player_task: asyncio.Task | None = None

logging.getLogger("signage_player").setLevel(LOG_LEVEL)

if QUIET_ACCESS_LOG:
    # The renderer polls /playback/current constantly; keep only warnings/errors.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_WEBSOCKET_LOG:
    # Kiosk browsers drop their socket on every page reload; reconnect is handled client side.
    logging.getLogger("websockets").setLevel(logging.CRITICAL)
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)

logger = logging.getLogger(__name__)

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "signage-player",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    orchestrator = getattr(app.state, "orchestrator", None)
    return {
        "ok": True,
        "status": orchestrator.status.value if orchestrator else "stopped",
        "render_clients": hub.client_count,
        "revision": hub.revision,
    }


@app.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket):
    orchestrator = getattr(websocket.app.state, "orchestrator", None)
    greeting = None
    if orchestrator is not None:
        greeting = {
            "playback": orchestrator.playback().model_dump(mode="json"),
            "debug_enabled": orchestrator.debug_enabled,
        }
    await hub.connect(websocket, greeting)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)


@app.on_event("startup")
async def startup_events() -> None:
    global _player_task
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()
    if getattr(app.state, "orchestrator", None) is None:
        logger.info("Starting player against controller %s", CONTROLLER_URL)
        app.state.controller = ControllerClient()
        app.state.orchestrator = PlaybackOrchestrator(
            app.state.controller,
            hub=hub,
            session_factory=SessionLocal,
        )
    if _player_task is None or _player_task.done():
        _player_task = asyncio.create_task(app.state.orchestrator.run())


@app.on_event("shutdown")
async def shutdown_events() -> None:
    global _player_task
    if _player_task is not None:
        _player_task.cancel()
        try:
            await _player_task
        except asyncio.CancelledError:
            pass
        _player_task = None
    controller = getattr(app.state, "controller", None)
    if controller is not None:
        await controller.aclose()


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not API_KEY:
        return await call_next(request)
    path = request.url.path
    if path.startswith("/docs") or path.startswith("/openapi.json") or path.startswith("/redoc") or path == "/healthz":
        return await call_next(request)
    if request.headers.get("X-API-Key") != API_KEY:
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)
    return await call_next(request)

app.include_router(playback.router)
app.include_router(display.router)

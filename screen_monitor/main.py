# screen_monitor/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, all routers, and the
monitor scheduler started on startup.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from screen_monitor.routers import incidents, checks, screens, health
from screen_monitor.database import create_tables
from screen_monitor.config import settings
from screen_monitor.exceptions import ScreenMonitorError
from screen_monitor.services.notification_service import build_dispatcher
from screen_monitor.services.scheduler import MonitorScheduler
from screen_monitor.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Screen Monitor API",
    description="Incident lifecycle, notifications and availability monitoring for video screens.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow the admin dashboard to call the API) ────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(ScreenMonitorError)
async def app_exception_handler(request: Request, exc: ScreenMonitorError):
    logger.warning(f"Unhandled application error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(incidents.router, prefix="/api/v1", tags=["🛠  Incidents"])
app.include_router(checks.router,    prefix="/api/v1", tags=["🔍 Checks"])
app.include_router(screens.router,   prefix="/api/v1", tags=["📺 Screens & Uptime"])
app.include_router(health.router,    prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Screen Monitor starting up...")
    create_tables()
    logger.info("✅ Database tables ready")

    # Transports are built once and shared by every request and job
    app.state.dispatcher = build_dispatcher()

    if settings.SCHEDULER_ENABLED:
        app.state.scheduler = MonitorScheduler(app.state.dispatcher)
        app.state.scheduler.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Screen Monitor shutting down...")
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is not None and dispatcher.telegram is not None:
        await dispatcher.telegram.aclose()

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database import Database
from .errors import install_exception_handlers
from .rate_limit import SlidingWindowLimiter
from .routers import auth, tasks, users
from .security import TokenService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup, release connections on shutdown.
    app.state.db.create_all()
    app.state.started_at = time.monotonic()
    logger.info("Taskboard API started in %s mode", app.state.settings.env)
    try:
        yield
    finally:
        app.state.db.dispose()
        logger.info("Taskboard API stopped")


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API with its own settings, data-access handle, token service and limiter."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Taskboard API",
        description="Task management API with JWT authentication and refresh-token rotation",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database or Database(settings.database_url)
    app.state.tokens = TokenService.from_settings(settings)
    app.state.auth_limiter = SlidingWindowLimiter(
        max_requests=settings.auth_rate_limit_max,
        window=settings.auth_rate_limit_window_seconds,
    )
    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug("%s %s", request.method, request.url.path)
        return await call_next(request)

    install_exception_handlers(app, expose_stack=settings.is_development)

    # Include routers
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(users.router, prefix="/api/user", tags=["user"])
    app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])

    @app.get("/api/health", tags=["health"])
    def health_check():
        return {
            "success": True,
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
        }

    return app

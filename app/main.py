"""
Application entry point.

Run locally:
    uvicorn app.main:app --reload --port 8000

API docs available at:
    http://localhost:8000/docs   (Swagger UI)
    http://localhost:8000/redoc  (ReDoc)
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.logging_config import setup_logging
from app.core.rate_limiter import limiter
from app.routers import auth, notifications, admin, websocket

logger = logging.getLogger(__name__)


async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Database errors that escaped a service. Logged in full, reported generically
    so constraint names and SQL never reach the client.
    """
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Something went wrong. Please try again."},
    )


def create_app() -> FastAPI:
    setup_logging(settings.log_level)

    app = FastAPI(
        title="PM-AJAY Portal API",
        description=(
            "Backend for the PM-AJAY scheme monitoring portal. "
            "OTP-gated registration and login for citizens, agencies and administrators, "
            "plus per-user notifications with a live WebSocket feed."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Errors ────────────────────────────────────────────────────────────────
    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)

    # ── CORS ──────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
    app.include_router(admin.router, prefix="/admin", tags=["Admin"])
    # WebSocket (no prefix; full path is /ws/notifications)
    app.include_router(websocket.router, tags=["WebSocket"])

    # ── Health Check ──────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health_check():
        """Liveness probe for load balancers and Docker health checks."""
        return {"status": "ok", "version": "1.0.0"}

    return app


app = create_app()

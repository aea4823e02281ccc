"""
FastAPI application for quiz-elo-sync.

Provides REST API for:
- Canvas sync (manual trigger + status)
- Course leaderboards
- Practice recommendations

On startup the background scheduler syncs all courses every
SYNC_INTERVAL_MINUTES (0 disables it).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import get_settings
from elosync.canvas.client import CanvasClient
from elosync.db.database import check_database, dispose_engine, init_db
from elosync.logging_setup import configure_logging
from elosync.sync.scheduler import BackgroundSync
from elosync.sync.sync_service import SyncService

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging(settings)
    logger.info("Starting quiz-elo-sync service...")
    await init_db()

    canvas = CanvasClient()
    app.state.sync_service = SyncService(canvas=canvas)
    app.state.scheduler = None
    if settings.sync_interval_minutes > 0 and settings.has_canvas_configured():
        app.state.scheduler = BackgroundSync(
            app.state.sync_service,
            interval_seconds=settings.sync_interval_minutes * 60,
            run_on_start=settings.sync_on_startup,
        )
        app.state.scheduler.start()
    else:
        logger.warning("Background sync disabled (no Canvas credentials or interval is 0)")

    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down quiz-elo-sync service...")
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
    await canvas.close()
    await dispose_engine()


app = FastAPI(
    title="Quiz ELO Sync",
    description="""
    Incremental Canvas quiz sync with dual ELO ratings for students and questions.

    ## Data Flow

    ```
    Canvas (quizzes, submissions)
        ↓ incremental sync (per-course watermark)
    Title parser → ELO engine
        ↓ one transaction per submission
    Students / Questions / Attempts
    ```
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "quiz-elo-sync",
        "version": "1.0.0",
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check with database connectivity and scheduler status."""
    db_status, db_error = await check_database()
    scheduler = getattr(app.state, "scheduler", None)

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "canvas": "configured" if settings.has_canvas_configured() else "not_configured",
            "scheduler": "running" if scheduler and scheduler.status.is_running else "stopped",
        },
    }
    if scheduler and scheduler.status.last_run_at:
        result["last_background_sync"] = {
            "at": scheduler.status.last_run_at.isoformat(),
            "success": scheduler.status.last_success,
            "message": scheduler.status.last_message,
        }
    if db_error:
        result["errors"] = {"database": db_error}

    return result


# ========================================
# Import and mount routers
# ========================================

from elosync.api.routers import ranking_router, sync_router  # noqa: E402

app.include_router(sync_router.router, prefix="/api/sync", tags=["Sync"])
app.include_router(ranking_router.router, prefix="/api", tags=["Ranking"])

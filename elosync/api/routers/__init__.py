"""API routers for quiz-elo-sync."""

from elosync.api.routers import (
    ranking_router,
    sync_router,
)

__all__ = [
    "sync_router",
    "ranking_router",
]

"""
Sync operations router.

Endpoints for triggering a Canvas sync and checking sync status.
Failures are reported as `success: false` with a message; tracebacks are
only logged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from elosync.db.database import get_async_session
from elosync.errors import CourseSyncError
from elosync.services.ranking import get_sync_status
from elosync.sync.sync_service import SyncService

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class SyncRequest(BaseModel):
    """Request model for sync operations."""

    course_id: str | None = None
    full_sync: bool = False


class SyncResponse(BaseModel):
    """Response model for sync operations."""

    success: bool
    message: str
    stats: dict[str, Any] = {}
    timestamp: str


class SyncStatusResponse(BaseModel):
    """Response model for sync status."""

    course_id: str
    course_name: str | None
    last_sync: str | None
    status: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_sync_service(request: Request) -> SyncService:
    """Sync service stored on the app at startup."""
    return request.app.state.sync_service


# ========================================
# Sync Endpoints
# ========================================


@router.post("", response_model=SyncResponse, summary="Sync from Canvas")
async def sync(
    request: SyncRequest = SyncRequest(),
    service: SyncService = Depends(get_sync_service),
) -> SyncResponse:
    """
    Trigger a Canvas sync.

    **Request Body:**
    - `course_id` (str, optional): Sync one course; all courses when omitted
    - `full_sync` (bool): Ignore the watermark and re-read every submission
    """
    logger.info(f"Manual sync requested (course_id={request.course_id}, full_sync={request.full_sync})")

    if request.course_id is None:
        result = await service.sync_all_courses(full_sync=request.full_sync)
        return SyncResponse(
            success=result.success,
            message=result.message,
            stats=result.to_dict(),
            timestamp=_now(),
        )

    try:
        stats = await service.sync_course(request.course_id, full_sync=request.full_sync)
    except CourseSyncError as e:
        return SyncResponse(
            success=False,
            message=f"Sync failed for course {e.course_id}: {e.cause}",
            timestamp=_now(),
        )

    return SyncResponse(
        success=True,
        message=f"Sync completed for course {request.course_id}",
        stats=stats.to_dict(),
        timestamp=_now(),
    )


@router.get("/status/{course_id}", response_model=SyncStatusResponse, summary="Get sync status")
async def sync_status(
    course_id: str,
    session: AsyncSession = Depends(get_async_session),
) -> SyncStatusResponse:
    """Last successful sync time for a course."""
    info = await get_sync_status(session, course_id)
    return SyncStatusResponse(**info.to_dict())

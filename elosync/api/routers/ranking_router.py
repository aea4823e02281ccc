"""
Ranking and recommendation endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from elosync.db.database import get_async_session
from elosync.services.ranking import get_course_ranking, get_recommendations, get_recommendations_by_type

router = APIRouter()


class RankingEntryResponse(BaseModel):
    rank: int
    student_id: str
    name: str
    short_name: str
    rating: float
    attempts: int


class RecommendationResponse(BaseModel):
    quiz_id: str
    title: str
    types: list[str]
    rating: float
    lesson: str | None = None


@router.get("/ranking/{course_id}", response_model=list[RankingEntryResponse], summary="Course leaderboard")
async def course_ranking(
    course_id: str,
    limit: int | None = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_async_session),
) -> list[RankingEntryResponse]:
    """Students ordered by rating, highest first."""
    entries = await get_course_ranking(session, course_id, limit=limit)
    return [RankingEntryResponse(**entry.__dict__) for entry in entries]


@router.get(
    "/recommendations/{course_id}/{student_id}",
    response_model=dict[str, list[RecommendationResponse]],
    summary="Practice recommendations",
)
async def recommendations(
    course_id: str,
    student_id: str,
    type_tag: str | None = Query(default=None, alias="type"),
    count: int = Query(default=3, ge=1, le=20),
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, list[RecommendationResponse]]:
    """
    Unattempted questions near the student's rating, grouped by type tag.

    With `?type=TAG` only that tag is returned.
    """
    if type_tag:
        grouped = {type_tag: await get_recommendations(session, course_id, student_id, type_tag, count)}
    else:
        grouped = await get_recommendations_by_type(session, course_id, student_id, count)

    return {
        tag: [RecommendationResponse(**rec.__dict__) for rec in recs]
        for tag, recs in grouped.items()
    }

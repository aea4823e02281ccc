from .ranking import (
    RankingEntry,
    Recommendation,
    SyncStatusInfo,
    get_course_ranking,
    get_recommendations,
    get_recommendations_by_type,
    get_sync_status,
)

__all__ = [
    "RankingEntry",
    "Recommendation",
    "SyncStatusInfo",
    "get_course_ranking",
    "get_recommendations",
    "get_recommendations_by_type",
    "get_sync_status",
]

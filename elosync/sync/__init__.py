"""
Canvas sync engine.

Components:
- sync_service: per-course incremental sync and rating updates
- scheduler: periodic sync of all courses
"""

from .scheduler import BackgroundSync, SchedulerStatus
from .sync_service import SyncResult, SyncService, SyncState, SyncStats

__all__ = [
    "BackgroundSync",
    "SchedulerStatus",
    "SyncResult",
    "SyncService",
    "SyncState",
    "SyncStats",
]

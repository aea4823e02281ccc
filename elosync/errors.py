"""
Exception hierarchy for elosync.

Skips (unparseable quiz titles, incomplete or duplicate submissions) are not
exceptions; they are counted in SyncStats.
"""

from __future__ import annotations


class EloSyncError(Exception):
    """Base class for all elosync errors."""


class RemoteAPIError(EloSyncError):
    """A Canvas request failed (non-2xx response, network failure or timeout)."""

    def __init__(self, endpoint: str, status: int | None = None, detail: str = "") -> None:
        self.endpoint = endpoint
        self.status = status
        self.detail = detail
        status_text = f"HTTP {status}" if status is not None else "request failed"
        message = f"Canvas {status_text} for {endpoint}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class PersistenceError(EloSyncError):
    """A transactional write failed and was rolled back."""


class CourseSyncError(EloSyncError):
    """A course sync was aborted. The watermark for the course was not advanced."""

    def __init__(self, course_id: str, state: str, cause: Exception) -> None:
        self.course_id = course_id
        self.state = state
        self.cause = cause
        super().__init__(f"Sync of course {course_id} aborted during {state}: {cause}")

"""
Canvas LMS API client.

Async HTTP client for the read-only Canvas endpoints the sync engine needs:
courses, course members, quizzes, quiz submissions and user profiles.

Usage:
    async with CanvasClient() as canvas:
        quizzes = await canvas.fetch_quizzes("1136")
        subs = await canvas.fetch_submissions_since("1136", quizzes[0].id, since)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
from loguru import logger

from config import get_settings
from elosync.canvas.models import (
    CanvasCourse,
    CanvasMember,
    CanvasQuiz,
    CanvasSubmission,
    UserProfile,
)
from elosync.errors import RemoteAPIError

API_PREFIX = "/api/v1"


def format_since(since: datetime) -> str:
    """Render a watermark as the ISO-8601 UTC string Canvas expects."""
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class CanvasClient:
    """
    HTTP client for the Canvas REST API.

    Handles:
    - Bearer authentication on every request
    - Link-header pagination (rel="next") for list endpoints
    - Per-request timeouts
    - Mapping of HTTP/network failures to RemoteAPIError

    Retries are left to the caller.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        per_page: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize Canvas client.

        Args:
            base_url: Canvas URL without /api/v1 (defaults to settings)
            api_key: Access token (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
            per_page: Page size for list endpoints (defaults to settings)
            client: Pre-built httpx.AsyncClient (used by tests)
        """
        settings = get_settings()
        self.base_url = (base_url or settings.canvas_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.canvas_api_key
        self.timeout = timeout or settings.canvas_request_timeout
        self.per_page = per_page or settings.canvas_per_page
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
        )
        if not self.api_key:
            logger.warning("Canvas credentials missing. Set CANVAS_API_KEY to enable syncing.")

    async def __aenter__(self) -> CanvasClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def fetch_courses(self) -> list[CanvasCourse]:
        """Fetch every course visible to the token."""
        data = await self._get_paginated(f"{API_PREFIX}/courses")
        return [CanvasCourse.from_dict(item) for item in data]

    async def fetch_course(self, course_id: str) -> CanvasCourse:
        """Fetch a single course's metadata."""
        data = await self._get_json(f"{API_PREFIX}/courses/{course_id}")
        return CanvasCourse.from_dict(data)

    async def fetch_course_members(self, course_id: str) -> list[CanvasMember]:
        """Fetch the students enrolled in a course."""
        data = await self._get_paginated(
            f"{API_PREFIX}/courses/{course_id}/users",
            params={"enrollment_type[]": "student"},
        )
        return [CanvasMember.from_dict(item) for item in data]

    async def fetch_quizzes(self, course_id: str) -> list[CanvasQuiz]:
        """Fetch all quizzes in a course."""
        data = await self._get_paginated(f"{API_PREFIX}/courses/{course_id}/quizzes")
        return [CanvasQuiz.from_dict(item) for item in data]

    async def fetch_submissions_since(
        self,
        course_id: str,
        quiz_id: str,
        since: datetime,
    ) -> list[CanvasSubmission]:
        """
        Fetch quiz submissions updated since a watermark.

        The server applies the `updated_since` filter; callers still validate
        completeness and deduplicate.
        """
        data = await self._get_paginated(
            f"{API_PREFIX}/courses/{course_id}/quizzes/{quiz_id}/submissions",
            params={"updated_since": format_since(since)},
            key="quiz_submissions",
        )
        return [CanvasSubmission.from_dict(item) for item in data]

    async def fetch_user_profile(self, user_id: str) -> UserProfile:
        """Fetch a user's display names."""
        data = await self._get_json(f"{API_PREFIX}/users/{user_id}/profile")
        return UserProfile.from_dict(data)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _request(self, url: str, endpoint: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self._client.get(url, params=params, headers=self._headers)
        except httpx.TimeoutException as e:
            raise RemoteAPIError(endpoint, detail=f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise RemoteAPIError(endpoint, detail=str(e)) from e

        if not response.is_success:
            raise RemoteAPIError(endpoint, status=response.status_code, detail=response.reason_phrase)
        return response

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Any:
        """Parse a 2xx body. HTML login pages and other non-JSON bodies become RemoteAPIError."""
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIError(endpoint, status=response.status_code, detail="invalid JSON") from e

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._request(path, path, params)
        payload = self._decode(response, path)
        if not isinstance(payload, dict):
            raise RemoteAPIError(
                path, status=response.status_code, detail=f"expected an object, got {type(payload).__name__}"
            )
        return payload

    async def _get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        key: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Follow rel="next" links until the last page, accumulating results.

        Args:
            path: Endpoint path under the Canvas base URL
            params: Query parameters for the first page (next links carry their own)
            key: Envelope key holding the list, for endpoints that wrap results

        Returns:
            All items across pages
        """
        items: list[dict[str, Any]] = []
        url: str | None = path
        query: dict[str, Any] | None = {**(params or {}), "per_page": self.per_page}
        page = 0

        while url:
            response = await self._request(url, path, query)
            payload = self._decode(response, path)
            if key:
                if not isinstance(payload, dict) or key not in payload:
                    raise RemoteAPIError(path, status=response.status_code, detail=f"missing {key!r} envelope")
                payload = payload[key] or []
            if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
                raise RemoteAPIError(path, status=response.status_code, detail="expected a list of objects")
            items.extend(payload)
            page += 1
            logger.debug(f"Fetched page {page} of {path} ({len(payload)} items)")

            url = response.links.get("next", {}).get("url")
            query = None

        return items

"""
Unit tests for the Canvas API client.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from elosync.canvas.client import CanvasClient, format_since
from elosync.errors import RemoteAPIError

BASE_URL = "https://canvas.test"


def _client_for(handler) -> CanvasClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return CanvasClient(base_url=BASE_URL, api_key="secret-token", per_page=2, client=http_client)


@pytest.fixture
def requests_seen():
    """Requests captured by a handler."""
    return []


class TestFormatSince:
    """Tests for watermark formatting."""

    def test_utc(self):
        assert format_since(datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)) == "2024-03-01T10:00:00Z"

    def test_converts_offset_to_utc(self):
        since = datetime(2024, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_since(since) == "2024-03-01T10:00:00Z"

    def test_naive_is_treated_as_utc(self):
        assert format_since(datetime(2024, 3, 1, 10, 0)) == "2024-03-01T10:00:00Z"


class TestPagination:
    """Tests for Link-header pagination."""

    @pytest.mark.asyncio
    async def test_follows_next_links(self, requests_seen):
        pages = {
            "1": ([{"id": 1, "title": "[A] One"}, {"id": 2, "title": "[A] Two"}], f"{BASE_URL}/api/v1/courses/7/quizzes?page=2&per_page=2"),
            "2": ([{"id": 3, "title": "[B] Three"}], None),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            items, next_url = pages[request.url.params.get("page", "1")]
            headers = {"Link": f'<{next_url}>; rel="next"'} if next_url else {}
            return httpx.Response(200, json=items, headers=headers)

        async with _client_for(handler) as client:
            quizzes = await client.fetch_quizzes("7")

        assert [q.id for q in quizzes] == ["1", "2", "3"]
        assert len(requests_seen) == 2
        assert requests_seen[0].url.params["per_page"] == "2"

    @pytest.mark.asyncio
    async def test_submissions_unwrap_envelope_and_send_updated_since(self, requests_seen):
        def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return httpx.Response(200, json={"quiz_submissions": [{
                "id": 55,
                "quiz_id": 9,
                "user_id": 1001,
                "workflow_state": "complete",
                "finished_at": "2024-03-01T10:00:00Z",
                "score": 7,
                "quiz_points_possible": 10,
            }]})

        since = datetime(2024, 2, 1, tzinfo=timezone.utc)
        async with _client_for(handler) as client:
            submissions = await client.fetch_submissions_since("7", "9", since)

        assert requests_seen[0].url.path == "/api/v1/courses/7/quizzes/9/submissions"
        assert requests_seen[0].url.params["updated_since"] == "2024-02-01T00:00:00Z"
        assert len(submissions) == 1
        assert submissions[0].user_id == "1001"
        assert submissions[0].score == 7.0
        assert submissions[0].is_complete

    @pytest.mark.asyncio
    async def test_members_filtered_to_students(self, requests_seen):
        def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return httpx.Response(200, json=[{"id": 1001, "name": "Ada Lovelace", "short_name": "Ada"}])

        async with _client_for(handler) as client:
            members = await client.fetch_course_members("7")

        assert requests_seen[0].url.params["enrollment_type[]"] == "student"
        assert members[0].id == "1001"
        assert members[0].short_name == "Ada"


class TestRequests:
    """Tests for auth headers and error mapping."""

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, requests_seen):
        def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return httpx.Response(200, json={"id": 7, "name": "Biology 9"})

        async with _client_for(handler) as client:
            course = await client.fetch_course("7")

        assert course.name == "Biology 9"
        assert requests_seen[0].headers["authorization"] == "Bearer secret-token"

    @pytest.mark.asyncio
    async def test_profile(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/users/1001/profile"
            return httpx.Response(200, json={"name": "Ada Lovelace", "short_name": "Ada"})

        async with _client_for(handler) as client:
            profile = await client.fetch_user_profile("1001")

        assert profile.name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_http_error_maps_to_remote_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"errors": [{"message": "unauthorized"}]})

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.fetch_courses()

        assert exc_info.value.status == 403
        assert exc_info.value.endpoint == "/api/v1/courses"

    @pytest.mark.asyncio
    async def test_error_on_later_page_fails_whole_fetch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(500)
            return httpx.Response(
                200,
                json=[{"id": 1}],
                headers={"Link": f'<{BASE_URL}/api/v1/courses?page=2>; rel="next"'},
            )

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.fetch_courses()

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_timeout_maps_to_remote_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.fetch_course("7")

        assert exc_info.value.status is None
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error_maps_to_remote_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError):
                await client.fetch_quizzes("7")

    @pytest.mark.asyncio
    async def test_html_login_page_maps_to_remote_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>login</html>", headers={"Content-Type": "text/html"})

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                await client.fetch_courses()

        assert exc_info.value.status == 200
        assert exc_info.value.detail == "invalid JSON"

    @pytest.mark.asyncio
    async def test_object_where_list_expected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": "nope"})

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError, match="expected a list"):
                await client.fetch_quizzes("7")

    @pytest.mark.asyncio
    async def test_list_where_object_expected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": 7}])

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError, match="expected an object"):
                await client.fetch_course("7")

    @pytest.mark.asyncio
    async def test_missing_submissions_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": 55}])

        async with _client_for(handler) as client:
            with pytest.raises(RemoteAPIError, match="quiz_submissions"):
                await client.fetch_submissions_since("7", "9", datetime(2024, 2, 1, tzinfo=timezone.utc))

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
            base_url=BASE_URL,
        )
        async with CanvasClient(base_url=BASE_URL, api_key="t", client=http_client):
            pass

        assert not http_client.is_closed
        await http_client.aclose()

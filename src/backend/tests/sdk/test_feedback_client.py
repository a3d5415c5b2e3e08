"""
Tests for the feedback API client.
"""

import httpx
import pytest

from core.exceptions import AmbiguousWrite, ConcurrencyConflict, DisplayEmailDisabled, StoreUnavailable
from models.documents import AnalysisKind, VoteOutcome
from core.config import settings
from sdk.client import DEFAULT_TIMEOUT_SECONDS, FeedbackAPIError, FeedbackClient, raise_for_response


def mock_client(handler, identity) -> FeedbackClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return FeedbackClient("http://test", identity, http_client=http_client)


@pytest.mark.unit
class TestAgainstApplication:
    async def test_vote_ledger(self, feedback_client) -> None:
        assert await feedback_client.has_voted("s1") is False
        assert await feedback_client.mark_voted("s1") == VoteOutcome.RECORDED
        assert await feedback_client.mark_voted("s1") == VoteOutcome.ALREADY_VOTED
        assert await feedback_client.has_voted("s1") is True
        assert await feedback_client.count_votes("s1") == 1

    async def test_responses(self, feedback_client) -> None:
        record_id = await feedback_client.submit_response("s1", "hello", answers={"q1": "yes"})

        items = await feedback_client.list_responses("s1")

        assert [item["id"] for item in items] == [record_id]

    async def test_display_email_disabled(self, feedback_client) -> None:
        with pytest.raises(DisplayEmailDisabled):
            await feedback_client.submit_response("s1", "hello", display_email="me@uni.edu")

    async def test_wall_and_likes(self, feedback_client) -> None:
        post_id = await feedback_client.submit_wall_post("hello wall")
        assert [p["id"] for p in await feedback_client.list_wall_posts()] == [post_id]

        assert (await feedback_client.set_liked(post_id, True))["count"] == 1
        assert (await feedback_client.toggle_like(post_id))["liked"] is False
        assert (await feedback_client.like_state(post_id))["count"] == 0

    async def test_analysis(self, feedback_client) -> None:
        status = await feedback_client.analysis_status(AnalysisKind.SURVEY_THEMES, "s1")
        assert status["cached"] is False

        result = await feedback_client.analyze(AnalysisKind.CHAT_SUMMARY, "student-1", texts=[])
        assert result["payload"]["summary"] == "No chat history available."

        assert await feedback_client.invalidate_analysis(AnalysisKind.CHAT_SUMMARY, "student-1") is True


@pytest.mark.unit
class TestVisitorHeaderScope:
    async def test_header_only_on_ledger_and_like_requests(self, identity) -> None:
        seen: dict[str, bool] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen[f"{request.method} {request.url.path}"] = "X-Visitor-ID" in request.headers
            if request.url.path.startswith("/api/v1/votes"):
                return httpx.Response(201, json={"subject_id": "s1", "outcome": "recorded", "message": "ok"})
            if request.url.path.startswith("/api/v1/likes"):
                return httpx.Response(200, json={"post_id": "p1", "liked": True, "count": 1})
            return httpx.Response(201, json={"id": "r1", "subject_id": "s1", "kind": "survey_response"})

        async with mock_client(handler, identity) as client:
            await client.submit_response("s1", "hello")
            await client.submit_wall_post("hi")
            await client.mark_voted("s1")
            await client.set_liked("p1", True)

        assert seen == {
            "POST /api/v1/surveys/s1/responses": False,
            "POST /api/v1/wall/community/posts": False,
            "POST /api/v1/votes/s1": True,
            "PUT /api/v1/likes/p1": True,
        }


@pytest.mark.unit
class TestTransportFailures:
    async def test_lost_response_on_write_is_ambiguous(self, identity) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler, identity) as client:
            with pytest.raises(AmbiguousWrite):
                await client.submit_response("s1", "hello")

    async def test_refused_connection_on_write_is_unavailable(self, identity) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler, identity) as client:
            with pytest.raises(StoreUnavailable):
                await client.mark_voted("s1")

    async def test_timed_out_analysis_is_unavailable(self, identity) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler, identity) as client:
            with pytest.raises(StoreUnavailable):
                await client.analyze(AnalysisKind.SURVEY_THEMES, "s1")
            with pytest.raises(StoreUnavailable):
                await client.lookup_own_responses("me@uni.edu")

    def test_default_timeout_outlasts_summarizer(self, identity) -> None:
        client = FeedbackClient("http://test", identity)

        assert client._http.timeout.read == DEFAULT_TIMEOUT_SECONDS
        assert DEFAULT_TIMEOUT_SECONDS > settings.SUMMARIZER_TIMEOUT_SECONDS + settings.STORE_WRITE_TIMEOUT_SECONDS

    async def test_reads_are_retried(self, identity) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"subject_id": "s1", "has_voted": True})

        async with mock_client(handler, identity) as client:
            assert await client.has_voted("s1") is True
        assert len(calls) == 2


@pytest.mark.unit
class TestRaiseForResponse:
    def test_success(self) -> None:
        raise_for_response(httpx.Response(200, json={}), write=True)

    def test_503(self) -> None:
        with pytest.raises(StoreUnavailable):
            raise_for_response(httpx.Response(503, json={"detail": "down"}), write=False)

    def test_504_on_write_is_ambiguous(self) -> None:
        with pytest.raises(AmbiguousWrite):
            raise_for_response(httpx.Response(504, json={"detail": "slow"}), write=True)

    def test_504_on_read_is_unavailable(self) -> None:
        with pytest.raises(StoreUnavailable):
            raise_for_response(httpx.Response(504, json={"detail": "slow"}), write=False)

    def test_conflict(self) -> None:
        with pytest.raises(ConcurrencyConflict):
            raise_for_response(httpx.Response(409, json={"detail": "busy", "code": "conflict"}), write=True)

    def test_unmapped_error(self) -> None:
        with pytest.raises(FeedbackAPIError) as exc_info:
            raise_for_response(httpx.Response(422, json={"detail": "bad"}), write=True)
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail == "bad"

    def test_non_json_error_body(self) -> None:
        with pytest.raises(FeedbackAPIError) as exc_info:
            raise_for_response(httpx.Response(500, text="oops"), write=False)
        assert exc_info.value.detail == "oops"

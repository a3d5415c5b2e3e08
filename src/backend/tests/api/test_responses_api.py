"""
Tests for anonymous survey response endpoints.
"""

from unittest.mock import patch

import pytest
from httpx import AsyncClient

from core.config import settings
from db.store import RESPONSES_CONTAINER


@pytest.mark.unit
class TestSubmitResponse:
    async def test_submit_and_list(self, client: AsyncClient) -> None:
        created = await client.post(
            "/api/v1/surveys/s1/responses",
            json={"content": "  great course  ", "answers": {"q1": 5}},
        )
        assert created.status_code == 201
        assert created.json()["kind"] == "survey_response"

        listing = await client.get("/api/v1/surveys/s1/responses")
        data = listing.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["content"] == "great course"
        assert item["answers"] == {"q1": 5}
        # Unconfigured summarizer yields a neutral sentiment
        assert item["derived_score"] == 50

    async def test_visitor_header_is_not_stored(self, client: AsyncClient, visitor_id, memory_store) -> None:
        await client.post(
            "/api/v1/surveys/s1/responses",
            json={"content": "hello"},
            headers={"X-Visitor-ID": visitor_id},
        )

        stored = await memory_store.query(RESPONSES_CONTAINER)
        assert all(visitor_id not in str(value) for value in stored[0].values())

    async def test_visitor_field_in_body_is_rejected(self, client: AsyncClient, visitor_id) -> None:
        response = await client.post(
            "/api/v1/surveys/s1/responses",
            json={"content": "hello", "visitor_id": visitor_id},
        )
        assert response.status_code == 422

    async def test_blank_content_is_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/surveys/s1/responses", json={"content": "   "})
        assert response.status_code == 422

    async def test_idempotency_key_deduplicates(self, client: AsyncClient) -> None:
        body = {"content": "hello", "idempotency_key": "resubmit-0001"}

        first = await client.post("/api/v1/surveys/s1/responses", json=body)
        second = await client.post("/api/v1/surveys/s1/responses", json=body)

        assert first.json()["id"] == second.json()["id"]
        assert (await client.get("/api/v1/surveys/s1/responses")).json()["total"] == 1

    async def test_list_limit(self, client: AsyncClient) -> None:
        for i in range(3):
            await client.post("/api/v1/surveys/s1/responses", json={"content": f"response {i}"})

        data = (await client.get("/api/v1/surveys/s1/responses", params={"limit": 2})).json()

        assert len(data["items"]) == 2
        assert data["total"] == 3

    async def test_sentiment_is_derived(self, app, client: AsyncClient, summarizer_factory, json_reply) -> None:
        from api.deps import get_summarizer_client

        scorer = summarizer_factory(lambda request: json_reply({"score": 90, "tags": ["Praise"], "summary": "ok"}))
        app.dependency_overrides[get_summarizer_client] = lambda: scorer

        await client.post("/api/v1/surveys/s1/responses", json={"content": "loved it"})

        item = (await client.get("/api/v1/surveys/s1/responses")).json()["items"][0]
        assert item["derived_score"] == 90
        assert item["derived_tags"] == ["Praise"]


@pytest.mark.unit
class TestDisplayEmail:
    async def test_rejected_when_disabled(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/surveys/s1/responses",
            json={"content": "hello", "display_email": "me@uni.edu"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "display_email_disabled"

    async def test_lookup_rejected_when_disabled(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/responses/lookup", json={"display_email": "me@uni.edu"})
        assert response.status_code == 403

    async def test_lookup_when_enabled(self, client: AsyncClient) -> None:
        with patch.object(settings, "ALLOW_DISPLAY_EMAIL", True):
            await client.post(
                "/api/v1/surveys/s1/responses",
                json={"content": "mine", "display_email": "Me@Uni.edu"},
            )
            await client.post("/api/v1/surveys/s1/responses", json={"content": "not mine"})

            listing = (await client.get("/api/v1/surveys/s1/responses")).json()
            lookup = await client.post("/api/v1/responses/lookup", json={"display_email": "me@uni.edu"})

        assert all("display_email" not in item for item in listing["items"])
        assert lookup.status_code == 200
        assert [item["content"] for item in lookup.json()["items"]] == ["mine"]

    async def test_invalid_email(self, client: AsyncClient) -> None:
        with patch.object(settings, "ALLOW_DISPLAY_EMAIL", True):
            response = await client.post(
                "/api/v1/surveys/s1/responses",
                json={"content": "hello", "display_email": "not-an-email"},
            )
        assert response.status_code == 422

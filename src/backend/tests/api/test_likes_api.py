"""
Tests for wall-post like endpoints.
"""

import pytest
from httpx import AsyncClient

from core.exceptions import ConcurrencyConflict
from db.memory_store import InMemoryDocumentStore
from db.session import get_store


class AlwaysConflictingStore(InMemoryDocumentStore):
    async def replace(self, collection, body, etag):
        raise ConcurrencyConflict("lost the race")


@pytest.mark.unit
class TestLikes:
    async def test_requires_visitor(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/likes/p1")).status_code == 400

    async def test_like_and_unlike(self, client: AsyncClient, visitor_headers) -> None:
        liked = await client.put("/api/v1/likes/p1", headers=visitor_headers)
        assert liked.json() == {"post_id": "p1", "liked": True, "count": 1}

        again = await client.put("/api/v1/likes/p1", headers=visitor_headers)
        assert again.json()["count"] == 1

        unliked = await client.delete("/api/v1/likes/p1", headers=visitor_headers)
        assert unliked.json() == {"post_id": "p1", "liked": False, "count": 0}

    async def test_toggle(self, client: AsyncClient, visitor_headers) -> None:
        first = await client.post("/api/v1/likes/p1/toggle", headers=visitor_headers)
        second = await client.post("/api/v1/likes/p1/toggle", headers=visitor_headers)

        assert first.json()["liked"] is True
        assert second.json()["liked"] is False

    async def test_state_is_per_visitor(self, client: AsyncClient, visitor_headers) -> None:
        await client.put("/api/v1/likes/p1", headers=visitor_headers)

        other = await client.get("/api/v1/likes/p1", headers={"X-Visitor-ID": "v_other-visitor"})

        assert other.json() == {"post_id": "p1", "liked": False, "count": 1}

    async def test_persistent_conflict_is_409(self, app, client: AsyncClient, visitor_headers) -> None:
        store = AlwaysConflictingStore()
        app.dependency_overrides[get_store] = lambda: store
        await client.put("/api/v1/likes/p1", headers={"X-Visitor-ID": "v_first-visitor"})

        response = await client.put("/api/v1/likes/p1", headers=visitor_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

"""
Tests for the Cosmos DB document store.

The Cosmos SDK is mocked; these tests cover query building, error
translation and the polling subscription.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core import MatchConditions
from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from core.exceptions import AmbiguousWrite, ConcurrencyConflict, DocumentExists, StoreUnavailable
from db.cosmos_session import CosmosDocumentStore, PollingSubscription, build_query
from db.store import LIKES_CONTAINER, VOTES_CONTAINER, WALL_POSTS_CONTAINER


def _async_items(items):
    async def generator():
        for item in items:
            yield item

    return generator()


@pytest.fixture
def container() -> MagicMock:
    container = MagicMock()
    container.read_item = AsyncMock()
    container.create_item = AsyncMock()
    container.upsert_item = AsyncMock()
    container.replace_item = AsyncMock()
    container.query_items = MagicMock(return_value=_async_items([]))
    return container


@pytest.fixture
def cosmos_store(container: MagicMock) -> CosmosDocumentStore:
    store = CosmosDocumentStore()
    store._database = MagicMock()
    store._database.get_container_client.return_value = container
    return store


@pytest.mark.unit
class TestBuildQuery:
    def test_select_all(self) -> None:
        query, parameters = build_query(None)
        assert query == "SELECT * FROM c"
        assert parameters == []

    def test_filters_are_parameterized(self) -> None:
        query, parameters = build_query({"subject_id": "s1", "kind": "wall_post"}, order_by="created_at", limit=10)

        assert query == (
            "SELECT * FROM c WHERE c.subject_id = @p0 AND c.kind = @p1 "
            "ORDER BY c.created_at DESC OFFSET 0 LIMIT @limit"
        )
        assert {"name": "@p0", "value": "s1"} in parameters
        assert {"name": "@limit", "value": 10} in parameters

    def test_count_select(self) -> None:
        query, _ = build_query({"subject_id": "s1"}, select="VALUE COUNT(1)")
        assert query.startswith("SELECT VALUE COUNT(1) FROM c WHERE")

    def test_rejects_unsafe_field_names(self) -> None:
        with pytest.raises(ValueError):
            build_query({"subject_id = 1 OR 1": "x"})


@pytest.mark.unit
class TestPointOperations:
    async def test_read_strips_system_properties(self, cosmos_store, container) -> None:
        container.read_item.return_value = {"id": "s1_v1", "subject_id": "s1", "_etag": "e1", "_ts": 1}

        stored = await cosmos_store.read(VOTES_CONTAINER, "s1_v1", "s1")

        assert stored.body == {"id": "s1_v1", "subject_id": "s1"}
        assert stored.etag == "e1"
        container.read_item.assert_awaited_once_with(item="s1_v1", partition_key="s1")

    async def test_read_missing_returns_none(self, cosmos_store, container) -> None:
        container.read_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")
        assert await cosmos_store.read(VOTES_CONTAINER, "s1_v1", "s1") is None

    async def test_read_throttled_is_unavailable(self, cosmos_store, container) -> None:
        container.read_item.side_effect = CosmosHttpResponseError(status_code=429, message="throttled")
        with pytest.raises(StoreUnavailable):
            await cosmos_store.read(VOTES_CONTAINER, "s1_v1", "s1")

    async def test_create_conflict_is_document_exists(self, cosmos_store, container) -> None:
        container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="exists")
        with pytest.raises(DocumentExists):
            await cosmos_store.create(VOTES_CONTAINER, {"id": "s1_v1", "subject_id": "s1"})

    async def test_replace_uses_etag_condition(self, cosmos_store, container) -> None:
        container.replace_item.return_value = {"id": "p1", "liked_by": ["v1"], "_etag": "e2"}

        stored = await cosmos_store.replace(LIKES_CONTAINER, {"id": "p1", "liked_by": ["v1"]}, "e1")

        assert stored.etag == "e2"
        kwargs = container.replace_item.await_args.kwargs
        assert kwargs["etag"] == "e1"
        assert kwargs["match_condition"] == MatchConditions.IfNotModified

    async def test_replace_precondition_failure_is_conflict(self, cosmos_store, container) -> None:
        container.replace_item.side_effect = CosmosAccessConditionFailedError(status_code=412, message="changed")
        with pytest.raises(ConcurrencyConflict):
            await cosmos_store.replace(LIKES_CONTAINER, {"id": "p1", "liked_by": []}, "e1")

    async def test_request_never_sent_is_unavailable(self, cosmos_store, container) -> None:
        container.create_item.side_effect = ServiceRequestError("connection refused")
        with pytest.raises(StoreUnavailable):
            await cosmos_store.create(VOTES_CONTAINER, {"id": "s1_v1", "subject_id": "s1"})

    async def test_lost_response_is_ambiguous(self, cosmos_store, container) -> None:
        container.create_item.side_effect = ServiceResponseError("connection reset")
        with pytest.raises(AmbiguousWrite):
            await cosmos_store.create(VOTES_CONTAINER, {"id": "s1_v1", "subject_id": "s1"})

    async def test_write_timeout_is_ambiguous(self, cosmos_store, container) -> None:
        async def slow_create(**kwargs):
            await asyncio.sleep(1)

        container.create_item.side_effect = slow_create

        with patch("db.cosmos_session.settings") as mock_settings:
            mock_settings.STORE_WRITE_TIMEOUT_SECONDS = 0.01
            with pytest.raises(AmbiguousWrite):
                await cosmos_store.create(VOTES_CONTAINER, {"id": "s1_v1", "subject_id": "s1"})

    async def test_not_initialized(self) -> None:
        with pytest.raises(RuntimeError):
            await CosmosDocumentStore().read(VOTES_CONTAINER, "x", "y")


@pytest.mark.unit
class TestQueries:
    async def test_query_passes_partition_key(self, cosmos_store, container) -> None:
        container.query_items.return_value = _async_items([{"id": "r1", "subject_id": "s1", "_rid": "x"}])

        results = await cosmos_store.query(WALL_POSTS_CONTAINER, partition_key="s1", where={"subject_id": "s1"})

        assert results == [{"id": "r1", "subject_id": "s1"}]
        assert container.query_items.call_args.kwargs["partition_key"] == "s1"

    async def test_count(self, cosmos_store, container) -> None:
        container.query_items.return_value = _async_items([7])
        assert await cosmos_store.count(VOTES_CONTAINER, partition_key="s1") == 7


@pytest.mark.unit
class TestPollingSubscription:
    async def test_emits_only_on_change(self) -> None:
        rounds = [
            [{"id": "a", "_etag": "1"}],
            [{"id": "a", "_etag": "1"}],
            [{"id": "a", "_etag": "2"}],
        ]
        fetch = AsyncMock(side_effect=rounds + [rounds[-1]] * 100)
        snapshots: list[list[dict]] = []

        subscription = PollingSubscription(fetch, snapshots.append, interval_seconds=0)
        subscription.start()
        while fetch.await_count < 4:
            await asyncio.sleep(0)
        await subscription.close()

        assert len(snapshots) == 2
        assert snapshots[0] == [{"id": "a"}]
        assert subscription.closed

    async def test_keeps_polling_after_store_failure(self) -> None:
        fetch = AsyncMock(side_effect=[StoreUnavailable("down"), [{"id": "a", "_etag": "1"}]] + [[]] * 100)
        snapshots: list[list[dict]] = []

        subscription = PollingSubscription(fetch, snapshots.append, interval_seconds=0)
        subscription.start()
        while fetch.await_count < 2:
            await asyncio.sleep(0)
        await subscription.close()

        assert snapshots[0] == [{"id": "a"}]

    async def test_keeps_polling_after_unexpected_error(self) -> None:
        fetch = AsyncMock(side_effect=[RuntimeError("bad request"), [{"id": "a", "_etag": "1"}]] + [[]] * 100)
        snapshots: list[list[dict]] = []

        subscription = PollingSubscription(fetch, snapshots.append, interval_seconds=0)
        subscription.start()
        while fetch.await_count < 3:
            await asyncio.sleep(0)
        assert not subscription.closed
        await subscription.close()

        assert snapshots[0] == [{"id": "a"}]

    async def test_failing_callback_is_retried(self) -> None:
        fetch = AsyncMock(return_value=[{"id": "a", "_etag": "1"}])
        delivered: list[list[dict]] = []
        attempts = 0

        def callback(snapshot: list[dict]) -> None:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ValueError("listener broke")
            delivered.append(snapshot)

        subscription = PollingSubscription(fetch, callback, interval_seconds=0)
        subscription.start()
        while fetch.await_count < 4:
            await asyncio.sleep(0)
        assert not subscription.closed
        await subscription.close()

        assert delivered == [[{"id": "a"}]]
        assert attempts == 2

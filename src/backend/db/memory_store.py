"""
In-process document store.

Used for local development and tests. Behaves like the Cosmos backend for
everything the engine relies on: create-if-absent, ETag-conditional replace
and push-based snapshot subscriptions. Each operation completes without
yielding to the event loop, so it is atomic with respect to other tasks.
"""

import copy
import inspect
import uuid
from collections import defaultdict
from typing import Any

import structlog

from core.exceptions import ConcurrencyConflict, DocumentExists
from db.store import SnapshotCallback, StoredDocument, partition_value

logger = structlog.get_logger(__name__)


class _Entry:
    __slots__ = ("body", "etag", "partition_key")

    def __init__(self, body: dict[str, Any], partition_key: str):
        self.body = body
        self.partition_key = partition_key
        self.etag = uuid.uuid4().hex


class MemorySubscription:
    """Subscription on an in-memory collection."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection: str,
        callback: SnapshotCallback,
        partition_key: str | None,
        order_by: str | None,
        limit: int | None,
    ):
        self._store = store
        self.collection = collection
        self.callback = callback
        self.partition_key = partition_key
        self.order_by = order_by
        self.limit = limit
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._store._remove_subscription(self)

    async def _emit(self) -> None:
        snapshot = self._store._snapshot(self.collection, self.partition_key, self.order_by, self.limit)
        result = self.callback(snapshot)
        if inspect.isawaitable(result):
            await result


class InMemoryDocumentStore:
    """Dictionary-backed DocumentStore."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[tuple[str, str], _Entry]] = defaultdict(dict)
        self._subscriptions: dict[str, list[MemorySubscription]] = defaultdict(list)

    # ========================================================================
    # Point Operations
    # ========================================================================

    async def read(self, collection: str, item_id: str, partition_key: str) -> StoredDocument | None:
        entry = self._collections[collection].get((partition_key, item_id))
        if entry is None:
            return None
        return StoredDocument(body=copy.deepcopy(entry.body), etag=entry.etag)

    async def create(self, collection: str, body: dict[str, Any]) -> StoredDocument:
        key = (partition_value(collection, body), body["id"])
        items = self._collections[collection]
        if key in items:
            raise DocumentExists(f"{collection}/{body['id']} already exists")
        entry = _Entry(copy.deepcopy(body), key[0])
        items[key] = entry
        await self._notify(collection, key[0])
        return StoredDocument(body=copy.deepcopy(entry.body), etag=entry.etag)

    async def upsert(self, collection: str, body: dict[str, Any]) -> StoredDocument:
        key = (partition_value(collection, body), body["id"])
        entry = _Entry(copy.deepcopy(body), key[0])
        self._collections[collection][key] = entry
        await self._notify(collection, key[0])
        return StoredDocument(body=copy.deepcopy(entry.body), etag=entry.etag)

    async def replace(self, collection: str, body: dict[str, Any], etag: str) -> StoredDocument:
        key = (partition_value(collection, body), body["id"])
        items = self._collections[collection]
        current = items.get(key)
        if current is None or current.etag != etag:
            raise ConcurrencyConflict(f"{collection}/{body['id']} was modified")
        entry = _Entry(copy.deepcopy(body), key[0])
        items[key] = entry
        await self._notify(collection, key[0])
        return StoredDocument(body=copy.deepcopy(entry.body), etag=entry.etag)

    # ========================================================================
    # Queries
    # ========================================================================

    async def query(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        partition_key: str | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        entries = self._matching(collection, where, partition_key)
        bodies = [copy.deepcopy(e.body) for e in entries]
        if order_by:
            bodies.sort(key=lambda b: b.get(order_by) or "", reverse=descending)
        if limit is not None:
            bodies = bodies[:limit]
        return bodies

    async def count(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        partition_key: str | None = None,
    ) -> int:
        return len(self._matching(collection, where, partition_key))

    def _matching(
        self,
        collection: str,
        where: dict[str, Any] | None,
        partition_key: str | None,
    ) -> list[_Entry]:
        result = []
        for entry in self._collections[collection].values():
            if partition_key is not None and entry.partition_key != partition_key:
                continue
            if where and any(entry.body.get(field) != value for field, value in where.items()):
                continue
            result.append(entry)
        return result

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        partition_key: str | None = None,
        order_by: str | None = "created_at",
        limit: int | None = None,
    ) -> MemorySubscription:
        subscription = MemorySubscription(self, collection, callback, partition_key, order_by, limit)
        self._subscriptions[collection].append(subscription)
        # Deliver the current state immediately, like a snapshot listener
        await subscription._emit()
        return subscription

    def subscriber_count(self, collection: str) -> int:
        """Number of open subscriptions on a collection."""
        return len(self._subscriptions[collection])

    def _remove_subscription(self, subscription: MemorySubscription) -> None:
        subs = self._subscriptions[subscription.collection]
        if subscription in subs:
            subs.remove(subscription)

    def _snapshot(
        self,
        collection: str,
        partition_key: str | None,
        order_by: str | None,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        entries = self._matching(collection, None, partition_key)
        bodies = [copy.deepcopy(e.body) for e in entries]
        if order_by:
            bodies.sort(key=lambda b: b.get(order_by) or "", reverse=True)
        if limit is not None:
            bodies = bodies[:limit]
        return bodies

    async def _notify(self, collection: str, partition_key: str) -> None:
        for subscription in list(self._subscriptions[collection]):
            if subscription.partition_key is not None and subscription.partition_key != partition_key:
                continue
            try:
                await subscription._emit()
            except Exception as e:
                # A failing listener must not fail the write that triggered it
                logger.exception("subscription_callback_failed", collection=collection, error=str(e))

    async def close(self) -> None:
        for subs in self._subscriptions.values():
            for subscription in list(subs):
                await subscription.close()

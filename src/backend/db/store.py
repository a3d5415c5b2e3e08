"""
Document store interface.

The engine treats its database as a key-addressable, subscribe-able document
store. Every invariant is enforced with collision-keyed creates and
ETag-conditional replaces, so no backend needs locks or transactions.

Container Strategy:
- votes: one record per (subject, visitor) pair (partition: /subject_id)
- responses: anonymous survey responses (partition: /subject_id)
- wall_posts: anonymous community wall posts (partition: /subject_id)
- likes: like state per wall post (partition: /id)
- analysis_cache: LLM-derived summaries (partition: /subject_id)
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

# Container names
VOTES_CONTAINER = "votes"
RESPONSES_CONTAINER = "responses"
WALL_POSTS_CONTAINER = "wall_posts"
LIKES_CONTAINER = "likes"
ANALYSIS_CACHE_CONTAINER = "analysis_cache"

ALL_CONTAINERS = {
    VOTES_CONTAINER: "/subject_id",
    RESPONSES_CONTAINER: "/subject_id",
    WALL_POSTS_CONTAINER: "/subject_id",
    LIKES_CONTAINER: "/id",
    ANALYSIS_CACHE_CONTAINER: "/subject_id",
}

SnapshotCallback = Callable[[list[dict[str, Any]]], Union[Awaitable[None], None]]


@dataclass
class StoredDocument:
    """A document body together with its concurrency token."""

    body: dict[str, Any]
    etag: str | None = None


@runtime_checkable
class Subscription(Protocol):
    """Handle on a live subscription. Must be closed by its consumer."""

    @property
    def closed(self) -> bool: ...

    async def close(self) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Operations the engine needs from its document store.

    Errors:
    - create raises DocumentExists when the id is taken
    - replace raises ConcurrencyConflict when the etag no longer matches
    - any call raises StoreUnavailable when the backend cannot be reached
    - writes raise AmbiguousWrite when the outcome is unknown
    """

    async def read(self, collection: str, item_id: str, partition_key: str) -> StoredDocument | None: ...

    async def create(self, collection: str, body: dict[str, Any]) -> StoredDocument: ...

    async def upsert(self, collection: str, body: dict[str, Any]) -> StoredDocument: ...

    async def replace(self, collection: str, body: dict[str, Any], etag: str) -> StoredDocument: ...

    async def query(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        partition_key: str | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def count(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        partition_key: str | None = None,
    ) -> int: ...

    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        partition_key: str | None = None,
        order_by: str | None = "created_at",
        limit: int | None = None,
    ) -> Subscription: ...

    async def close(self) -> None: ...


def partition_value(collection: str, body: dict[str, Any]) -> str:
    """Extract the partition key value of a document for its container."""
    path = ALL_CONTAINERS.get(collection, "/id")
    return str(body[path.lstrip("/")])

"""
Azure Cosmos DB document store.

Uses async Cosmos DB SDK with DefaultAzureCredential for RBAC authentication,
or a connection string for the local emulator.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from azure.core import MatchConditions
from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from core.config import settings
from core.exceptions import AmbiguousWrite, ConcurrencyConflict, DocumentExists, StoreUnavailable
from db.store import ALL_CONTAINERS, SnapshotCallback, StoredDocument

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Field names are interpolated into SQL, values never are
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Status codes where the request was refused before being applied
_UNAVAILABLE_STATUS = {429, 449, 503}
# Status codes where a write may have been applied
_AMBIGUOUS_STATUS = {408, 500}


def _clean(item: dict[str, Any]) -> dict[str, Any]:
    """Strip Cosmos system properties (_rid, _self, _etag, _ts, _attachments)."""
    return {k: v for k, v in item.items() if not k.startswith("_")}


def _field(name: str) -> str:
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name}")
    return name


def build_query(
    where: dict[str, Any] | None,
    *,
    select: str = "*",
    order_by: str | None = None,
    descending: bool = True,
    limit: int | None = None,
) -> tuple[str, list[dict[str, Any]]]:
    """
    Build a parameterized Cosmos SQL query from equality filters.

    Example:
        build_query({"subject_id": "s1"}, order_by="created_at", limit=10)
        -> ("SELECT * FROM c WHERE c.subject_id = @p0 ORDER BY c.created_at DESC
             OFFSET 0 LIMIT @limit", [...])
    """
    clauses = []
    parameters: list[dict[str, Any]] = []
    for index, (name, value) in enumerate((where or {}).items()):
        clauses.append(f"c.{_field(name)} = @p{index}")
        parameters.append({"name": f"@p{index}", "value": value})

    query = f"SELECT {select} FROM c"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    if order_by:
        query += f" ORDER BY c.{_field(order_by)} {'DESC' if descending else 'ASC'}"
    if limit is not None:
        query += " OFFSET 0 LIMIT @limit"
        parameters.append({"name": "@limit", "value": limit})
    return query, parameters


class PollingSubscription:
    """
    Live subscription on a Cosmos partition.

    Polls the partition and invokes the callback with a fresh snapshot
    whenever the set of (id, etag) pairs changes. Failed polls and failing
    callbacks are logged and polling continues until the subscription is
    closed.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[dict[str, Any]]]],
        callback: SnapshotCallback,
        interval_seconds: float,
    ):
        self._fetch = fetch
        self._callback = callback
        self._interval = interval_seconds
        self._last_signature: tuple | None = None
        self._task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._task is None or self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def _poll(self) -> None:
        items = await self._fetch()
        signature = tuple((i.get("id"), i.get("_etag")) for i in items)
        if signature == self._last_signature:
            return
        result = self._callback([_clean(i) for i in items])
        if asyncio.iscoroutine(result):
            await result
        # Only a delivered snapshot counts; a failed callback is retried next poll
        self._last_signature = signature

    async def _run(self) -> None:
        while True:
            try:
                await self._poll()
            except StoreUnavailable as e:
                logger.warning("subscription_poll_failed", error=str(e))
            except Exception as e:
                logger.exception("subscription_poll_failed", error=str(e))
            await asyncio.sleep(self._interval)

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class CosmosDocumentStore:
    """DocumentStore backed by Azure Cosmos DB."""

    def __init__(self) -> None:
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._subscriptions: list[PollingSubscription] = []

    async def initialize(self) -> None:
        """
        Create the Cosmos DB client and ensure containers exist.

        Supports two authentication modes:
        1. Connection string (for local development with Cosmos DB Emulator)
        2. DefaultAzureCredential/RBAC (for Azure deployment)
        """
        if self._client is not None:
            return

        if settings.AZURE_COSMOS_CONNECTION_STRING:
            # Format: AccountEndpoint=https://...;AccountKey=...;
            conn_parts = dict(
                part.split("=", 1) for part in settings.AZURE_COSMOS_CONNECTION_STRING.split(";") if "=" in part
            )
            endpoint = conn_parts.get("AccountEndpoint", "")
            key = conn_parts.get("AccountKey", "")

            if not endpoint or not key:
                raise ValueError("AZURE_COSMOS_CONNECTION_STRING must contain AccountEndpoint and AccountKey")

            # Emulator uses a self-signed certificate
            self._client = CosmosClient(
                url=endpoint,
                credential=key,
                connection_verify=not settings.AZURE_COSMOS_DISABLE_SSL,
            )
            logger.info("cosmos_client_initialized", endpoint=endpoint, method="connection_string")
        else:
            if not settings.AZURE_COSMOS_ENDPOINT:
                raise ValueError("Either AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING must be set")

            self._credential = DefaultAzureCredential()
            self._client = CosmosClient(url=settings.AZURE_COSMOS_ENDPOINT, credential=self._credential)
            logger.info("cosmos_client_initialized", endpoint=settings.AZURE_COSMOS_ENDPOINT, method="rbac")

        self._database = await self._client.create_database_if_not_exists(settings.AZURE_COSMOS_DATABASE)
        for name, path in ALL_CONTAINERS.items():
            await self._database.create_container_if_not_exists(id=name, partition_key=PartitionKey(path=path))
        logger.info("cosmos_containers_ready", database=settings.AZURE_COSMOS_DATABASE)

    def _container(self, name: str) -> ContainerProxy:
        if self._database is None:
            raise RuntimeError("Cosmos store not initialized. Call initialize() first.")
        return self._database.get_container_client(name)

    # ========================================================================
    # Error translation
    # ========================================================================

    async def _read_op(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except (ServiceRequestError, ServiceResponseError) as e:
            raise StoreUnavailable(str(e)) from e
        except CosmosHttpResponseError as e:
            if e.status_code in _UNAVAILABLE_STATUS or e.status_code in _AMBIGUOUS_STATUS:
                raise StoreUnavailable(str(e)) from e
            raise

    async def _write_op(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=settings.STORE_WRITE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as e:
            raise AmbiguousWrite("Write timed out after the request was sent") from e
        except CosmosResourceExistsError as e:
            raise DocumentExists(str(e)) from e
        except CosmosAccessConditionFailedError as e:
            raise ConcurrencyConflict(str(e)) from e
        except ServiceRequestError as e:
            # Request never left the client
            raise StoreUnavailable(str(e)) from e
        except ServiceResponseError as e:
            raise AmbiguousWrite(str(e)) from e
        except CosmosHttpResponseError as e:
            if e.status_code in _UNAVAILABLE_STATUS:
                raise StoreUnavailable(str(e)) from e
            if e.status_code in _AMBIGUOUS_STATUS:
                raise AmbiguousWrite(str(e)) from e
            raise

    # ========================================================================
    # Point Operations
    # ========================================================================

    async def read(self, collection: str, item_id: str, partition_key: str) -> StoredDocument | None:
        container = self._container(collection)
        try:
            item = await self._read_op(lambda: container.read_item(item=item_id, partition_key=partition_key))
        except CosmosResourceNotFoundError:
            return None
        return StoredDocument(body=_clean(item), etag=item.get("_etag"))

    async def create(self, collection: str, body: dict[str, Any]) -> StoredDocument:
        container = self._container(collection)
        item = await self._write_op(lambda: container.create_item(body=body))
        return StoredDocument(body=_clean(item), etag=item.get("_etag"))

    async def upsert(self, collection: str, body: dict[str, Any]) -> StoredDocument:
        container = self._container(collection)
        item = await self._write_op(lambda: container.upsert_item(body=body))
        return StoredDocument(body=_clean(item), etag=item.get("_etag"))

    async def replace(self, collection: str, body: dict[str, Any], etag: str) -> StoredDocument:
        container = self._container(collection)
        item = await self._write_op(
            lambda: container.replace_item(
                item=body["id"],
                body=body,
                etag=etag,
                match_condition=MatchConditions.IfNotModified,
            )
        )
        return StoredDocument(body=_clean(item), etag=item.get("_etag"))

    # ========================================================================
    # Queries
    # ========================================================================

    async def _query_raw(
        self,
        collection: str,
        query: str,
        parameters: list[dict[str, Any]],
        partition_key: str | None,
    ) -> list[Any]:
        container = self._container(collection)
        # Cross-partition querying is enabled automatically when no partition_key is given
        query_kwargs: dict[str, Any] = {"query": query, "parameters": parameters}
        if partition_key is not None:
            query_kwargs["partition_key"] = partition_key

        async def run() -> list[Any]:
            return [item async for item in container.query_items(**query_kwargs)]

        return await self._read_op(run)

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
        query, parameters = build_query(where, order_by=order_by, descending=descending, limit=limit)
        items = await self._query_raw(collection, query, parameters, partition_key)
        return [_clean(i) for i in items]

    async def count(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        partition_key: str | None = None,
    ) -> int:
        query, parameters = build_query(where, select="VALUE COUNT(1)")
        results = await self._query_raw(collection, query, parameters, partition_key)
        if results and isinstance(results[0], (int, float)):
            return int(results[0])
        return 0

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
    ) -> PollingSubscription:
        partition_field = ALL_CONTAINERS.get(collection, "/id").lstrip("/")
        where = {partition_field: partition_key} if partition_key is not None else None
        query, parameters = build_query(where, order_by=order_by, limit=limit)

        async def fetch() -> list[dict[str, Any]]:
            return await self._query_raw(collection, query, parameters, partition_key)

        subscription = PollingSubscription(fetch, callback, settings.SUBSCRIPTION_POLL_SECONDS)
        subscription.start()
        self._subscriptions.append(subscription)
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        return subscription

    async def close(self) -> None:
        """Close subscriptions and Cosmos DB connections."""
        for subscription in self._subscriptions:
            await subscription.close()
        self._subscriptions = []

        if self._client is not None:
            await self._client.close()
            self._client = None
            self._database = None
            logger.info("cosmos_client_closed")

        if self._credential is not None:
            await self._credential.close()
            self._credential = None

"""
Live feeds over server-sent events.

Every stream endpoint sends full snapshots, so a consumer can render each
one as it arrives without tracking deltas.
"""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Generic, Optional, TypeVar

import httpx
import structlog

from core.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class ContentSnapshot:
    """Full state of a wall or a survey's responses at one point in time, newest first."""

    subject_id: str
    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_event(cls, payload: dict[str, Any]) -> "ContentSnapshot":
        return cls(
            subject_id=payload.get("subject_id", ""),
            items=payload.get("items", []),
            total=payload.get("total", 0),
        )


WallSnapshot = ContentSnapshot


@dataclass
class VoteCountSnapshot:
    """Participation count of a subject."""

    subject_id: str
    count: int = 0

    @classmethod
    def from_event(cls, payload: dict[str, Any]) -> "VoteCountSnapshot":
        return cls(subject_id=payload.get("subject_id", ""), count=payload.get("count", 0))


async def parse_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Group SSE lines into (event, data) pairs. Comment lines are skipped."""
    event = "message"
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class SnapshotFeed(Generic[T]):
    """
    Async context manager yielding one parsed object per snapshot event.

    Leaving the context closes the connection, which closes the server-side
    subscription.

    Usage:
        async with client.stream_wall("community") as feed:
            async for snapshot in feed:
                render(snapshot.items)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        parse: Callable[[dict[str, Any]], T],
        params: Optional[dict] = None,
    ):
        self._http = http_client
        self._url = url
        self._parse = parse
        self._params = params
        self._stream = None
        self._response: Optional[httpx.Response] = None

    async def __aenter__(self) -> "SnapshotFeed[T]":
        self._stream = self._http.stream(
            "GET",
            self._url,
            params=self._params,
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(10.0, read=None),
        )
        try:
            self._response = await self._stream.__aenter__()
        except httpx.TransportError as e:
            self._stream = None
            raise StoreUnavailable(f"Could not open feed: {e}") from e

        if not self._response.is_success:
            status_code = self._response.status_code
            await self.aclose()
            raise StoreUnavailable(f"Feed rejected with HTTP {status_code}")

        logger.debug("feed_opened", url=self._url)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._stream is not None:
            stream, self._stream = self._stream, None
            await stream.__aexit__(None, None, None)
            logger.debug("feed_closed", url=self._url)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._snapshots()

    async def _snapshots(self) -> AsyncIterator[T]:
        if self._response is None:
            raise RuntimeError(f"{type(self).__name__} must be used as an async context manager")
        async for event, data in parse_sse_events(self._response.aiter_lines()):
            if event != "snapshot":
                continue
            yield self._parse(json.loads(data))


class WallFeed(SnapshotFeed[ContentSnapshot]):
    """Live feed of a wall or a survey's responses."""

    def __init__(self, http_client: httpx.AsyncClient, url: str, params: Optional[dict] = None):
        super().__init__(http_client, url, ContentSnapshot.from_event, params)
